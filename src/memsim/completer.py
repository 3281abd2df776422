"""Context-aware tab completer for the memsim shell.

The completer separates **what to complete** (pure logic, fully
testable) from **how to wire it** (readline integration in the REPL).

The ``complete(text, state)`` method is the readline callback.  It
delegates to ``completions(text, line)`` which analyses the input
context and returns a list of candidate strings.
"""

from __future__ import annotations

import readline
from typing import TYPE_CHECKING

from memsim.memory.allocator import AllocationStrategy

if TYPE_CHECKING:
    from memsim.shell import Shell

# Commands that accept a keyword as their second word.
_SUBCOMMANDS: dict[str, list[str]] = {
    "init": ["standard"],
    "set": ["allocator"],
    "help": ["standard", "cache", "mmu"],
}

# Word positions (counting the command as word 1).
_SECOND_WORD = 2
_THIRD_WORD = 3


class Completer:
    """Context-aware tab completer for the memsim shell."""

    def __init__(self, shell: Shell) -> None:
        """Create a completer attached to a shell instance."""
        self._shell = shell

    def complete(self, text: str, state: int) -> str | None:
        """Readline callback — return the *state*-th candidate for *text*.

        Args:
            text: The partial word being completed.
            state: Index into the candidate list (0, 1, 2, …).

        Returns:
            The candidate at *state*, or ``None`` when exhausted.

        """
        line = readline.get_line_buffer()
        candidates = self.completions(text, line)
        if state < len(candidates):
            return candidates[state]
        return None

    def completions(self, text: str, line: str) -> list[str]:
        """Return completion candidates based on context.

        Args:
            text: The partial word under the cursor.
            line: The full input line so far.

        Returns:
            Sorted list of matching candidates.

        """
        words = line.lstrip().split()

        # No words yet, or still typing the first word → command completion
        if not words or (len(words) == 1 and not line.endswith(" ")):
            return [cmd for cmd in self._shell.command_names if cmd.startswith(text)]

        # Index of the word being typed (1-based).
        position = len(words) + 1 if line.endswith(" ") else len(words)
        cmd = words[0]

        if cmd in _SUBCOMMANDS and position == _SECOND_WORD:
            return sorted(sub for sub in _SUBCOMMANDS[cmd] if sub.startswith(text))
        if cmd == "set" and position == _THIRD_WORD:
            return sorted(s.value for s in AllocationStrategy if s.value.startswith(text))
        if cmd == "access" and position == _THIRD_WORD:
            return [kind for kind in ("r", "w") if kind.startswith(text)]
        return []
