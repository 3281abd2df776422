"""Flask application factory for the memsim web UI.

The ``create_app`` function creates a shell over a fresh session and
returns a Flask app with three endpoints:

- ``GET /`` — render the terminal HTML page with the banner.
- ``POST /api/execute`` — execute a command and return JSON.
- ``GET /api/status`` — return the initialised devices and allocator stats.
"""

from __future__ import annotations

import dataclasses

from flask import Flask, Response, jsonify, render_template, request

from memsim.repl import format_banner
from memsim.shell import Shell

_HTTP_BAD_REQUEST = 400


def create_app() -> Flask:
    """Create and configure the Flask application.

    Returns:
        A configured Flask application ready to serve.

    """
    shell = Shell()
    session = shell.session

    app = Flask(__name__)

    @app.route("/")
    def index() -> str:  # pyright: ignore[reportUnusedFunction]
        """Render the terminal HTML page."""
        return render_template("index.html", banner=format_banner())

    @app.route("/api/execute", methods=["POST"])
    def execute() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Execute a shell command and return JSON output.

        Expects JSON body: ``{"command": "..."}``

        Returns:
            JSON with ``output`` and ``halted`` fields.

        """
        data = request.get_json(silent=True)
        if data is None or "command" not in data:
            return jsonify({"error": "Missing 'command' field"}), _HTTP_BAD_REQUEST

        if shell.halted:
            return jsonify({"output": "Simulator stopped.", "halted": True})

        command: str = data["command"]
        result = shell.execute(command)
        if result == Shell.EXIT_SENTINEL:
            return jsonify({"output": "Simulator stopped.", "halted": True})

        return jsonify({"output": result, "halted": False})

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return which devices exist, plus allocator statistics.

        Returns:
            JSON with ``memory``, ``cache``, ``mmu`` and ``stats`` fields.

        """
        allocator = session.allocator
        stats = dataclasses.asdict(allocator.stats()) if allocator is not None else None
        return jsonify(
            {
                "memory": allocator is not None,
                "cache": session.cache is not None,
                "mmu": session.mmu is not None,
                "stats": stats,
            }
        )

    return app


def main() -> None:
    """Run the web UI development server.

    This is the ``memsim-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
