"""Cache controller — walk an access down L1 → L2 → main memory.

The controller owns the cache levels and decides what an access
costs:

1. **L1 hit** — done.
2. **L2 hit** — the block is **promoted** into L1 (L2 keeps its copy).
3. **Miss everywhere** — ask the physical allocator whether the
   address belongs to a live allocation.  If it does, the block is
   fetched from main memory and installed in L2 and then L1.  If it
   does not, the access is a **segmentation fault** and nothing is
   cached — an address that no allocation backs never gets a line.

The allocator is only consulted for validity; no bytes move anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from memsim.cache.level import CacheLevel, LevelStats
from memsim.logging import Logger, LogLevel

if TYPE_CHECKING:
    from memsim.memory.allocator import PhysicalAllocator

_SOURCE = "cache"

# By convention L2 is eight times the size of L1.
L2_SCALE = 8


class AccessKind(StrEnum):
    """Read or write."""

    READ = "read"
    WRITE = "write"

    @classmethod
    def parse(cls, text: str) -> AccessKind:
        """Parse ``r``/``read``/``w``/``write``.

        Raises:
            ValueError: For anything else.

        """
        aliases = {"r": cls.READ, "w": cls.WRITE}
        lowered = text.lower()
        if lowered in aliases:
            return aliases[lowered]
        return cls(lowered)


class AccessOutcome(StrEnum):
    """Where an access was satisfied."""

    L1_HIT = "L1 hit"
    L2_HIT = "L2 hit"
    MEMORY_FETCH = "memory fetch"
    FAULT = "segmentation fault"


@dataclass(frozen=True)
class CacheStats:
    """Per-level statistics for the whole hierarchy."""

    levels: tuple[LevelStats, ...]


class CacheController:
    """Sequence lookups through the cache levels and main memory."""

    def __init__(
        self,
        *,
        l1: CacheLevel,
        l2: CacheLevel | None = None,
        allocator: PhysicalAllocator | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create a controller that takes ownership of its levels.

        Args:
            l1: The first-level cache.
            l2: Optional second-level cache.
            allocator: Physical memory used to validate misses.  Without
                one every miss is a segmentation fault.
            logger: Optional event log.

        """
        self._l1 = l1
        self._l2 = l2
        self._allocator = allocator
        self._logger = logger

    @classmethod
    def build(
        cls,
        *,
        size: int,
        block_size: int,
        associativity: int,
        allocator: PhysicalAllocator | None = None,
        logger: Logger | None = None,
    ) -> CacheController:
        """Build an L1 of *size* bytes and an L2 ``L2_SCALE`` times larger.

        Raises:
            ConfigurationError: If either level's geometry is invalid.

        """
        l1 = CacheLevel(level=1, size=size, block_size=block_size, associativity=associativity)
        l2 = CacheLevel(
            level=2, size=size * L2_SCALE, block_size=block_size, associativity=associativity
        )
        return cls(l1=l1, l2=l2, allocator=allocator, logger=logger)

    @property
    def l1(self) -> CacheLevel:
        """Return the first-level cache."""
        return self._l1

    @property
    def l2(self) -> CacheLevel | None:
        """Return the second-level cache, if any."""
        return self._l2

    @property
    def levels(self) -> list[CacheLevel]:
        """Return the levels from fastest to slowest."""
        return [self._l1] if self._l2 is None else [self._l1, self._l2]

    def access(self, address: int, kind: AccessKind = AccessKind.READ) -> AccessOutcome:
        """Perform one access at a physical address.

        Args:
            address: The physical address.
            kind: Read or write (writes are not tracked per line).

        Returns:
            The level that satisfied the access, or ``FAULT``.

        """
        if self._l1.lookup(address):
            outcome = AccessOutcome.L1_HIT
        elif self._l2 is not None and self._l2.lookup(address):
            self._l1.allocate_line(address)
            outcome = AccessOutcome.L2_HIT
        elif self._allocator is not None and self._allocator.is_allocated(address):
            if self._l2 is not None:
                self._l2.allocate_line(address)
            self._l1.allocate_line(address)
            outcome = AccessOutcome.MEMORY_FETCH
        else:
            outcome = AccessOutcome.FAULT

        if outcome is AccessOutcome.FAULT:
            self._log(
                LogLevel.ERROR,
                f"Segmentation fault: {kind} of unallocated address {address}",
                address=address,
            )
        else:
            self._log(LogLevel.DEBUG, f"{kind} {address}: {outcome}", address=address)
        return outcome

    def invalidate(self, start: int, size: int) -> int:
        """Drop cached blocks of ``[start, start + size)`` from every level.

        Called whenever physical memory is freed, so a dead address
        faults instead of hitting a stale line.

        Returns:
            The total number of lines invalidated.

        """
        dropped = sum(level.invalidate_range(start, size) for level in self.levels)
        if dropped:
            self._log(
                LogLevel.DEBUG,
                f"Invalidated {dropped} line(s) for [{start}, {start + size})",
                address=start,
            )
        return dropped

    def dump_stats(self) -> CacheStats:
        """Return hit/miss statistics for every level."""
        return CacheStats(levels=tuple(level.stats() for level in self.levels))

    def reset_stats(self) -> None:
        """Zero every level's counters."""
        for level in self.levels:
            level.reset_stats()

    def _log(self, level: LogLevel, message: str, *, address: int | None = None) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source=_SOURCE, address=address)
