"""The shell — command interpreter for the memory simulator.

The shell reads a command string, splits it into a command name and
arguments, dispatches to the matching handler, and returns the result
as a string.

Design choices:
    - **Returns strings, not prints.**  This keeps the shell fully
      testable; the REPL and the web UI decide how to display output.
    - **Command dispatch via a dict.**  Adding a command means writing
      a method and adding one dict entry.
    - **Errors become text.**  Every simulator error is reported as an
      ``Error: ...`` line and the session carries on.
"""

from collections.abc import Callable
from typing import TypeAlias

from memsim.cache.controller import AccessKind, AccessOutcome
from memsim.errors import MemsimError
from memsim.memory.allocator import AllocationStrategy
from memsim.memory.mmu import MMUAccess, MMUEventKind
from memsim.session import Session, SessionError

# Type alias for a command handler: takes a list of args, returns output.
_Handler: TypeAlias = Callable[[list[str]], str]

# Argument counts for the multi-argument commands.
_PAIR = 2
_TRIPLE = 3

_HELP_TOPICS: dict[str, str] = {
    "standard": "\n".join(
        [
            "--- Standard Allocator Help ---",
            "  malloc <size>                    : Allocate memory",
            "  free <address>                   : Free block by start address",
            "  set allocator <first|best|worst> : Change strategy",
            "  dump                             : Show memory map",
            "  stats                            : Show fragmentation stats",
        ]
    ),
    "cache": "\n".join(
        [
            "--- Cache Simulation Help ---",
            "  init_cache <size> <block> <ways> : L1 of <size> bytes (L2 is 8x)",
            "  access <addr> <r|w>              : Physical access (virtual if MMU active)",
            "  cache_stats                      : Show hits, misses and hit rate",
        ]
    ),
    "mmu": "\n".join(
        [
            "--- Virtual Memory Help ---",
            "  init_mmu <page_size>             : Enable virtual addressing",
            "  access <v_addr> <r|w>            : Access a virtual address",
            "  pt_dump                          : Dump the page table",
        ]
    ),
}

_GENERAL_HELP = "\n".join(
    [
        "--- General Help ---",
        "  init standard <size>             : Initialize memory allocator",
        "  init_cache <size> <block> <ways> : Initialize L1/L2 cache",
        "  init_mmu <page_size>             : Initialize virtual memory (MMU)",
        "  help <standard|cache|mmu>        : Specific help menus",
        "  log                              : Show the event log",
        "  exit                             : Quit",
    ]
)


def _parse_int(text: str, name: str) -> int:
    """Parse a decimal or 0x-prefixed hexadecimal integer argument.

    Raises:
        ValueError: With a message naming the argument.

    """
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    except ValueError:
        msg = f"invalid {name}: {text!r}"
        raise ValueError(msg) from None


class Shell:
    """Command interpreter that drives a ``Session``."""

    EXIT_SENTINEL = "__EXIT__"

    def __init__(self, *, session: Session | None = None) -> None:
        """Create a shell, with a fresh session unless one is given."""
        self._session = session if session is not None else Session()
        self._halted = False

        # Command dispatch table: command name to handler method.
        self._commands: dict[str, _Handler] = {
            "help": self._cmd_help,
            "init": self._cmd_init,
            "init_cache": self._cmd_init_cache,
            "init_mmu": self._cmd_init_mmu,
            "malloc": self._cmd_malloc,
            "free": self._cmd_free,
            "set": self._cmd_set,
            "dump": self._cmd_dump,
            "stats": self._cmd_stats,
            "access": self._cmd_access,
            "cache_stats": self._cmd_cache_stats,
            "pt_dump": self._cmd_pt_dump,
            "log": self._cmd_log,
            "exit": self._cmd_exit,
        }

    @property
    def session(self) -> Session:
        """Return the session this shell drives."""
        return self._session

    @property
    def halted(self) -> bool:
        """Return True once ``exit`` has been run."""
        return self._halted

    @property
    def command_names(self) -> list[str]:
        """Return the sorted command names."""
        return sorted(self._commands)

    def execute(self, command: str) -> str:
        """Parse and execute one command line.

        Args:
            command: The raw command string (e.g. "malloc 100").

        Returns:
            The command output, an ``Error: ...`` message, or
            ``EXIT_SENTINEL`` for ``exit``.

        """
        parts = command.split()
        if not parts:
            return ""
        name, args = parts[0], parts[1:]
        handler = self._commands.get(name)
        if handler is None:
            return f"Unknown command: {name}. Type 'help'."
        try:
            return handler(args)
        except (MemsimError, SessionError, ValueError) as e:
            return f"Error: {e}"

    # -- setup --------------------------------------------------------------

    def _cmd_help(self, args: list[str]) -> str:
        """Show general or topic-specific help."""
        if args and args[0] in _HELP_TOPICS:
            return _HELP_TOPICS[args[0]]
        return _GENERAL_HELP

    def _cmd_init(self, args: list[str]) -> str:
        """Initialise physical memory."""
        if len(args) != _PAIR:
            return "Usage: init standard <size>"
        kind, size_text = args
        if kind != "standard":
            return "Unknown type. Use 'standard'."
        size = _parse_int(size_text, "size")
        had_cache = self._session.cache is not None
        had_mmu = self._session.mmu is not None
        self._session.init_memory(size)
        lines: list[str] = []
        if had_cache:
            lines.append("Note: Cache reset due to memory change.")
        if had_mmu:
            lines.append("Note: MMU reset due to memory change.")
        lines.append(f"Standard Allocator Initialized ({size} bytes).")
        return "\n".join(lines)

    def _cmd_init_cache(self, args: list[str]) -> str:
        """Initialise the L1/L2 cache."""
        if len(args) != _TRIPLE:
            return "Usage: init_cache <size> <block_size> <associativity>"
        size = _parse_int(args[0], "size")
        block_size = _parse_int(args[1], "block size")
        associativity = _parse_int(args[2], "associativity")
        cache = self._session.init_cache(
            size=size, block_size=block_size, associativity=associativity
        )
        lines = [f"Cache Initialized (L1: {size}B, L2: {cache.levels[-1].size}B)."]
        if self._session.allocator is not None:
            lines.append("-> Linked to Active Memory.")
        else:
            lines.append("-> Warning: No Memory Initialized yet.")
        return "\n".join(lines)

    def _cmd_init_mmu(self, args: list[str]) -> str:
        """Enable virtual addressing."""
        if len(args) != 1:
            return "Usage: init_mmu <page_size>"
        page_size = _parse_int(args[0], "page size")
        self._session.init_mmu(page_size)
        return f"Virtual Addressing Enabled (page size {page_size})."

    # -- allocator ----------------------------------------------------------

    def _cmd_malloc(self, args: list[str]) -> str:
        """Allocate a block of physical memory."""
        if len(args) != 1:
            return "Usage: malloc <size>"
        size = _parse_int(args[0], "size")
        region = self._session.require_allocator().reserve(size)
        return f"Allocated {region.size} bytes at {region.start} (ID = {region.id})"

    def _cmd_free(self, args: list[str]) -> str:
        """Free the block starting at an address."""
        if len(args) != 1:
            return "Usage: free <address>"
        address = _parse_int(args[0], "address")
        self._session.free(address)
        return f"Block at address {address} freed."

    def _cmd_set(self, args: list[str]) -> str:
        """Change a setting (currently only the allocation strategy)."""
        if len(args) != _PAIR or args[0] != "allocator":
            return "Usage: set allocator <first|best|worst>"
        allocator = self._session.require_allocator()
        try:
            strategy = AllocationStrategy(args[1])
        except ValueError:
            return f"Unknown strategy: {args[1]}"
        allocator.set_strategy(strategy)
        return f"Allocator strategy set to {strategy.name}."

    def _cmd_dump(self, _args: list[str]) -> str:
        """Show the physical memory map."""
        regions = self._session.require_allocator().dump()
        lines = ["--- Memory Dump ---"]
        for r in regions:
            state = "FREE" if r.free else f"USED (ID={r.id})"
            lines.append(f"[{r.start} - {r.end - 1}] {state}")
        return "\n".join(lines)

    def _cmd_stats(self, _args: list[str]) -> str:
        """Show allocator usage and fragmentation."""
        s = self._session.require_allocator().stats()
        used_pct = s.used / s.total * 100
        return "\n".join(
            [
                "--- Statistics ---",
                f"Total Memory:       {s.total}",
                f"Used Memory:        {s.used} ({used_pct:.2f}%)",
                f"Free Memory:        {s.free}",
                f"Largest Free Block: {s.largest_free}",
                f"Total Requests:     {s.requests}",
                f"Success Rate:       {s.successes}/{s.requests}",
                f"Failed Requests:    {s.failures}",
                f"External Frag:      {s.ext_frag_pct:.2f}%",
            ]
        )

    # -- access -------------------------------------------------------------

    def _cmd_access(self, args: list[str]) -> str:
        """Access an address through the MMU or directly through the cache."""
        if len(args) != _PAIR:
            return "Usage: access <addr> <r|w>"
        address = _parse_int(args[0], "address")
        kind = AccessKind.parse(args[1])
        result = self._session.access(address, kind)
        if isinstance(result, MMUAccess):
            return self._format_mmu_access(result)
        return f"[Physical Access] {self._format_outcome(result, address)}"

    @staticmethod
    def _format_outcome(outcome: AccessOutcome, address: int) -> str:
        match outcome:
            case AccessOutcome.L1_HIT:
                return "--- L1 HIT ---"
            case AccessOutcome.L2_HIT:
                return "--- L2 HIT ---"
            case AccessOutcome.MEMORY_FETCH:
                return f"--- L2 MISS! Fetching block at {address} from main memory ---"
            case AccessOutcome.FAULT:
                return f">> SEGMENTATION FAULT: address {address} is not allocated"

    def _format_mmu_access(self, result: MMUAccess) -> str:
        lines: list[str] = []
        for event in result.events:
            match event.kind:
                case MMUEventKind.PAGE_FAULT:
                    lines.append(f">> Page Fault! VPN {event.vpn} not in memory.")
                case MMUEventKind.NOTHING_TO_EVICT:
                    lines.append(">> Physical memory full and no page to evict.")
                case MMUEventKind.WRITE_BACK:
                    lines.append(f"   (Saving Dirty Page {event.vpn} to disk...)")
                case MMUEventKind.EVICTION:
                    lines.append(f">> Evicted Page {event.vpn} (Frame {event.address} freed)")
                case MMUEventKind.FRAME_ALLOCATED:
                    lines.append(f">> Page {event.vpn} loaded into Frame at {event.address}")
                case MMUEventKind.UNRESOLVED:
                    lines.append("CRITICAL: Cannot resolve Page Fault. Memory Full?")
                case MMUEventKind.TRANSLATED:
                    lines.append(
                        f"   [MMU] VA {result.virtual_address} -> VPN {event.vpn}"
                        f" -> PA {event.address}"
                    )
                case MMUEventKind.NO_CACHE:
                    lines.append("   [MMU] Warning: No Cache connected. Access complete.")
        if result.cache_outcome is not None and result.physical_address is not None:
            lines.append(self._format_outcome(result.cache_outcome, result.physical_address))
        return "\n".join(lines)

    # -- reporting ----------------------------------------------------------

    def _cmd_cache_stats(self, _args: list[str]) -> str:
        """Show hits, misses and hit rate per cache level."""
        stats = self._session.require_cache().dump_stats()
        lines = ["--- Cache Statistics ---"]
        for level in stats.levels:
            line = f"L{level.level} Stats: Hits: {level.hits}, Misses: {level.misses}"
            if level.accesses:
                line += f", Hit Rate: {level.hit_rate * 100:.2f}%"
            lines.append(line)
        return "\n".join(lines)

    def _cmd_pt_dump(self, _args: list[str]) -> str:
        """Dump the valid page table entries."""
        rows = self._session.require_mmu().dump_page_table()
        lines = ["--- Page Table ---", "  VPN | Valid | Frame | Dirty | LRU Time"]
        lines.extend(
            f"{r.vpn:>5} | {int(r.valid):>5} | {r.frame:>5} | {int(r.dirty):>5} | {r.last_access:>8}"
            for r in rows
        )
        return "\n".join(lines)

    def _cmd_log(self, _args: list[str]) -> str:
        """Show the event log."""
        entries = self._session.logger.entries
        return "\n".join(str(e) for e in entries) if entries else "No log entries."

    def _cmd_exit(self, _args: list[str]) -> str:
        """Signal the REPL to stop."""
        self._halted = True
        return self.EXIT_SENTINEL
