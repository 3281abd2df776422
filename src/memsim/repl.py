"""Interactive REPL (Read-Eval-Print Loop) for the simulator.

The REPL is the terminal interface.  It creates a shell and enters the
classic loop:

    1. **Read** — display a prompt and read user input.
    2. **Eval** — pass the command to ``shell.execute()``.
    3. **Print** — display the result.
    4. **Loop** — repeat until the shell returns the exit sentinel.

The shell is fully testable (returns strings, no I/O); the REPL is the
thin I/O wrapper that connects it to ``stdin``/``stdout``.  The helper
functions (``build_prompt``, ``format_banner``) are pure and testable.
"""

import readline

from memsim import __version__
from memsim.completer import Completer
from memsim.session import Session
from memsim.shell import Shell

_BANNER_WIDTH = 40


def format_banner() -> str:
    """Return the start-up banner."""
    border = "=" * _BANNER_WIDTH
    return (
        f"{border}\n   Memory & Cache Simulator v{__version__}\n{border}\n"
        "Type 'help' for commands, 'exit' to quit."
    )


def build_prompt(session: Session) -> str:
    """Build the prompt, showing which address space ``access`` uses.

    Returns:
        ``virt> `` when the MMU is active, ``phys> `` when only memory
        or the cache is, and ``> `` before anything is initialised.

    """
    if session.mmu is not None:
        return "virt> "
    if session.allocator is not None or session.cache is not None:
        return "phys> "
    return "> "


def run() -> None:
    """Run the interactive REPL.

    This is the ``memsim`` console entry point.  It handles:
    - Shell creation and tab completion.
    - The read-eval-print loop.
    - Graceful handling of Ctrl+C and Ctrl+D.
    """
    shell = Shell()

    # Wire up tab completion via readline.
    completer = Completer(shell)
    readline.set_completer(completer.complete)
    readline.set_completer_delims(" \t")
    readline.parse_and_bind("tab: complete")

    print(format_banner())  # noqa: T201

    try:
        while True:
            try:
                command = input(build_prompt(shell.session))
            except EOFError:
                # Ctrl+D
                print()  # noqa: T201
                break

            result = shell.execute(command)
            if result == Shell.EXIT_SENTINEL:
                break
            if result:
                print(result)  # noqa: T201

    except KeyboardInterrupt:
        # Ctrl+C
        print("\nInterrupted.")  # noqa: T201

    finally:
        print("Simulator stopped.")  # noqa: T201
