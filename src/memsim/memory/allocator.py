"""Physical allocator — variable-sized regions over one address space.

Physical memory is a single run of addresses ``[0, total_size)``.  The
allocator carves it into **regions**, each either free or allocated,
kept in ascending address order.  Together the regions always cover
the whole space with no gaps and no overlaps.

Allocation picks a free region using one of three classic placement
strategies:

- **First fit** — the first free region (in address order) that is big
  enough.  Fast, and tends to leave small fragments near the start.
- **Best fit** — the smallest free region that is big enough.  Wastes
  the least space per allocation, but leaves tiny unusable slivers.
- **Worst fit** — the largest free region.  Leaves big leftovers that
  are more likely to be useful later.

The chosen region is split: the front becomes the allocation, and any
remainder becomes a new free region right behind it.  Freeing flips a
region back to free and immediately **coalesces** neighbouring free
regions, so two adjacent regions are never both free.

Why a list instead of linked nodes?
    Splitting and merging become ``list.insert`` and slice deletion —
    the "next" region is simply the one at the next index, so nothing
    can be left dangling while the list is reshaped.
"""

import dataclasses
from dataclasses import dataclass
from enum import StrEnum

from memsim.errors import InvalidFreeError, OutOfMemoryError, require_positive
from memsim.logging import Logger, LogLevel

_SOURCE = "allocator"


class AllocationStrategy(StrEnum):
    """Placement strategies for choosing a free region."""

    FIRST_FIT = "first"
    BEST_FIT = "best"
    WORST_FIT = "worst"


@dataclass
class Region:
    """A contiguous run of physical addresses.

    Attributes:
        start: First address of the region.
        size: Number of addresses in the region.
        free: True if the region is available for allocation.
        id: Allocation id, or None while the region is free.

    """

    start: int
    size: int
    free: bool = True
    id: int | None = None

    @property
    def end(self) -> int:
        """Return the first address past the region."""
        return self.start + self.size

    def contains(self, address: int) -> bool:
        """Return True if *address* falls inside the region."""
        return self.start <= address < self.end


@dataclass(frozen=True)
class AllocatorStats:
    """A snapshot of allocator usage and fragmentation."""

    total: int
    used: int
    free: int
    largest_free: int
    ext_frag_pct: float
    requests: int
    successes: int
    failures: int


class PhysicalAllocator:
    """Manage physical memory as an ordered list of regions.

    The allocator owns its id counter and its request counters; nothing
    about it is global, so several allocators can coexist in one test.
    """

    def __init__(
        self,
        *,
        total_size: int,
        strategy: AllocationStrategy = AllocationStrategy.FIRST_FIT,
        logger: Logger | None = None,
    ) -> None:
        """Create an allocator with one free region spanning all memory.

        Args:
            total_size: Number of addresses in physical memory.
            strategy: The initial placement strategy.
            logger: Optional event log.

        Raises:
            ConfigurationError: If total_size is not positive.

        """
        require_positive(total_size=total_size)
        self._total_size = total_size
        self._strategy = strategy
        self._logger = logger
        self._regions: list[Region] = [Region(start=0, size=total_size)]
        self._next_id = 1
        self._requests = 0
        self._successes = 0
        self._failures = 0

    @property
    def total_size(self) -> int:
        """Return the size of physical memory."""
        return self._total_size

    @property
    def strategy(self) -> AllocationStrategy:
        """Return the active placement strategy."""
        return self._strategy

    def set_strategy(self, strategy: AllocationStrategy) -> None:
        """Change the strategy used by subsequent allocations.

        Existing regions are left exactly as they are.
        """
        self._strategy = strategy
        self._log(LogLevel.INFO, f"Strategy set to {strategy.name}")

    # -- allocation ---------------------------------------------------------

    def reserve(self, size: int) -> Region:
        """Allocate a region of exactly *size* addresses.

        Args:
            size: The number of addresses requested.

        Returns:
            A copy of the newly allocated region.

        Raises:
            OutOfMemoryError: If the size is not positive or no free
                region is large enough under the active strategy.

        """
        self._requests += 1
        index = self._find_fit(size) if size > 0 else None
        if index is None:
            self._failures += 1
            reason = "size must be positive" if size <= 0 else "no free region fits"
            msg = f"Cannot allocate {size} bytes ({self._strategy.name}): {reason}"
            self._log(LogLevel.WARNING, msg)
            raise OutOfMemoryError(msg)

        region = self._regions[index]
        if region.size > size:
            remainder = Region(start=region.start + size, size=region.size - size)
            self._regions.insert(index + 1, remainder)
        region.size = size
        region.free = False
        region.id = self._next_id
        self._next_id += 1
        self._successes += 1
        self._log(
            LogLevel.INFO,
            f"Allocated {size} bytes at {region.start} (ID={region.id})",
            address=region.start,
        )
        return dataclasses.replace(region)

    def allocate(self, size: int) -> int | None:
        """Allocate *size* addresses and return the start address.

        Returns:
            The start address, or None if the request failed.  The
            failure is counted and logged.

        """
        try:
            region = self.reserve(size)
        except OutOfMemoryError:
            return None
        return region.start

    def _find_fit(self, size: int) -> int | None:
        """Return the index of the region the active strategy picks."""
        candidates = [
            i for i, r in enumerate(self._regions) if r.free and r.size >= size
        ]
        if not candidates:
            return None
        match self._strategy:
            case AllocationStrategy.FIRST_FIT:
                return candidates[0]
            case AllocationStrategy.BEST_FIT:
                # min/max return the first of equal keys, so ties go to
                # the lowest address.
                return min(candidates, key=lambda i: self._regions[i].size)
            case AllocationStrategy.WORST_FIT:
                return max(candidates, key=lambda i: self._regions[i].size)

    # -- deallocation -------------------------------------------------------

    def release(self, address: int) -> Region:
        """Free the allocated region that starts exactly at *address*.

        Returns:
            A copy of the region as it was before merging with its
            free neighbours, so callers know which addresses died.

        Raises:
            InvalidFreeError: If no allocated region starts there.  An
                address inside a region does not count.

        """
        for region in self._regions:
            if not region.free and region.start == address:
                freed = dataclasses.replace(region, free=True, id=None)
                region.free = True
                region.id = None
                self._coalesce()
                self._log(LogLevel.INFO, f"Block at address {address} freed", address=address)
                return freed
        msg = f"No allocated block starts at address {address}"
        self._log(LogLevel.WARNING, msg, address=address)
        raise InvalidFreeError(msg)

    def free(self, address: int) -> bool:
        """Free the allocated region starting at *address*.

        Returns:
            True on success, False (state unchanged) otherwise.

        """
        try:
            self.release(address)
        except InvalidFreeError:
            return False
        return True

    def _coalesce(self) -> None:
        """Merge every run of adjacent free regions into one."""
        merged: list[Region] = []
        for region in self._regions:
            if merged and merged[-1].free and region.free:
                merged[-1].size += region.size
            else:
                merged.append(region)
        self._regions = merged

    # -- queries ------------------------------------------------------------

    def is_allocated(self, address: int) -> bool:
        """Return True if *address* lies inside an allocated region."""
        for region in self._regions:
            if region.contains(address):
                return not region.free
        return False

    def dump(self) -> list[Region]:
        """Return copies of all regions in address order."""
        return [dataclasses.replace(r) for r in self._regions]

    def stats(self) -> AllocatorStats:
        """Return usage counters and the external fragmentation.

        External fragmentation is ``1 - largest_free / total_free``,
        expressed as a percentage, and 0 when nothing is free.
        """
        free_sizes = [r.size for r in self._regions if r.free]
        free_total = sum(free_sizes)
        largest = max(free_sizes, default=0)
        ext_frag = (1.0 - largest / free_total) * 100 if free_total else 0.0
        return AllocatorStats(
            total=self._total_size,
            used=self._total_size - free_total,
            free=free_total,
            largest_free=largest,
            ext_frag_pct=ext_frag,
            requests=self._requests,
            successes=self._successes,
            failures=self._failures,
        )

    def _log(self, level: LogLevel, message: str, *, address: int | None = None) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source=_SOURCE, address=address)
