"""Browser-based web UI for memsim.

This package provides a Flask application that exposes the simulator
shell through a web browser.  It is an **optional** extra — install
with::

    pip install memsim[web]

The ``create_app`` factory in ``app.py`` creates a session and shell
and serves three endpoints:

- ``GET /`` — HTML terminal page.
- ``POST /api/execute`` — execute a shell command and return JSON.
- ``GET /api/status`` — which devices are initialised, for polling.
"""
