"""Tests for the physical allocator.

Physical memory is one run of addresses carved into regions.  The
allocator must keep the regions covering the whole space, split on
allocation, coalesce on free, and pick regions according to the
active placement strategy.
"""

import pytest

from memsim.errors import ConfigurationError, InvalidFreeError, OutOfMemoryError
from memsim.logging import Logger, LogLevel
from memsim.memory.allocator import AllocationStrategy, PhysicalAllocator, Region

# -- Named constants (PLR2004) ------------------------------------------------

TOTAL = 100
SIZE_10 = 10
SIZE_30 = 30
SIZE_40 = 40
SIZE_50 = 50
SEPARATOR = 5
BIG_START = 0
SMALL_START = 55
MEDIUM_START = 70
THREE = 3
TWO = 2


def _assert_partition(allocator: PhysicalAllocator) -> None:
    """Check coverage of [0, total) and that no two neighbours are free."""
    regions = allocator.dump()
    position = 0
    for region in regions:
        assert region.start == position
        assert region.size > 0
        position = region.end
    assert position == allocator.total_size
    for left, right in zip(regions, regions[1:], strict=False):
        assert not (left.free and right.free)


def _fragmented(strategy: AllocationStrategy) -> PhysicalAllocator:
    """Build free holes of sizes 50, 10 and 30, in address order."""
    allocator = PhysicalAllocator(total_size=TOTAL)
    big = allocator.allocate(SIZE_50)
    allocator.allocate(SEPARATOR)
    small = allocator.allocate(SIZE_10)
    allocator.allocate(SEPARATOR)
    medium = allocator.allocate(SIZE_30)
    for address in (big, small, medium):
        assert address is not None
        assert allocator.free(address)
    allocator.set_strategy(strategy)
    return allocator


class TestConstruction:
    """Verify the initial state."""

    def test_single_free_region(self) -> None:
        """A new allocator should hold one free region spanning memory."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        assert allocator.dump() == [Region(start=0, size=TOTAL)]

    def test_default_strategy_is_first_fit(self) -> None:
        """First fit should be the default strategy."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        assert allocator.strategy is AllocationStrategy.FIRST_FIT

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_size_rejected(self, size: int) -> None:
        """A non-positive memory size is a configuration error."""
        with pytest.raises(ConfigurationError, match="total_size"):
            PhysicalAllocator(total_size=size)


class TestAllocate:
    """Verify allocation and splitting."""

    def test_returns_start_address(self) -> None:
        """Consecutive allocations should be packed from address 0."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        assert allocator.allocate(SIZE_10) == 0
        assert allocator.allocate(SIZE_30) == SIZE_10

    def test_split_leaves_free_remainder(self) -> None:
        """The leftover of a split region should follow it as a free region."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_30)
        regions = allocator.dump()
        assert regions[0] == Region(start=0, size=SIZE_30, free=False, id=1)
        assert regions[1] == Region(start=SIZE_30, size=TOTAL - SIZE_30)
        _assert_partition(allocator)

    def test_exact_fit_does_not_split(self) -> None:
        """Allocating all memory should leave a single allocated region."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(TOTAL)
        assert len(allocator.dump()) == 1

    def test_ids_increase_monotonically(self) -> None:
        """Every allocation gets a fresh id, even after frees."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        first = allocator.reserve(SIZE_10)
        allocator.free(first.start)
        second = allocator.reserve(SIZE_10)
        assert first.id is not None
        assert second.id is not None
        assert second.id > first.id

    def test_out_of_memory_returns_none(self) -> None:
        """A request larger than any free region should fail."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        before = allocator.dump()
        assert allocator.allocate(TOTAL + 1) is None
        assert allocator.dump() == before

    def test_reserve_raises_out_of_memory(self) -> None:
        """The raising variant should name the size that failed."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        with pytest.raises(OutOfMemoryError, match=str(TOTAL + 1)):
            allocator.reserve(TOTAL + 1)

    def test_zero_size_fails(self) -> None:
        """A zero-byte request is counted as a failure."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        assert allocator.allocate(0) is None
        assert allocator.stats().failures == 1

    def test_reserve_returns_copy(self) -> None:
        """Mutating the returned region must not affect the allocator."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        region = allocator.reserve(SIZE_10)
        region.free = True
        assert allocator.is_allocated(0)


class TestStrategies:
    """Verify region selection with holes of sizes 50, 10 and 30."""

    def test_first_fit_takes_first_hole(self) -> None:
        """First fit should split the 50-byte hole into 10 + 40."""
        allocator = _fragmented(AllocationStrategy.FIRST_FIT)
        assert allocator.allocate(SIZE_10) == BIG_START
        regions = allocator.dump()
        assert regions[0] == Region(start=0, size=SIZE_10, free=False, id=regions[0].id)
        assert regions[1] == Region(start=SIZE_10, size=SIZE_40)
        _assert_partition(allocator)

    def test_best_fit_takes_exact_match(self) -> None:
        """Best fit should take the 10-byte hole without splitting."""
        allocator = _fragmented(AllocationStrategy.BEST_FIT)
        count = len(allocator.dump())
        assert allocator.allocate(SIZE_10) == SMALL_START
        assert len(allocator.dump()) == count

    def test_worst_fit_takes_largest(self) -> None:
        """Worst fit should take the 50-byte hole."""
        allocator = _fragmented(AllocationStrategy.WORST_FIT)
        assert allocator.allocate(SIZE_10) == BIG_START

    def test_best_fit_skips_too_small(self) -> None:
        """Best fit should pick the smallest hole that is big enough."""
        allocator = _fragmented(AllocationStrategy.BEST_FIT)
        assert allocator.allocate(SIZE_30) == MEDIUM_START

    def test_best_fit_tie_goes_to_lowest_address(self) -> None:
        """Equal-sized candidates should resolve to the first one."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        first = allocator.allocate(SIZE_10)
        allocator.allocate(SEPARATOR)
        second = allocator.allocate(SIZE_10)
        allocator.allocate(TOTAL - 2 * SIZE_10 - SEPARATOR)
        assert first is not None
        assert second is not None
        allocator.free(second)
        allocator.free(first)
        allocator.set_strategy(AllocationStrategy.BEST_FIT)
        assert allocator.allocate(SIZE_10) == first

    def test_set_strategy_leaves_regions_alone(self) -> None:
        """Changing strategy should not touch existing regions."""
        allocator = _fragmented(AllocationStrategy.FIRST_FIT)
        before = allocator.dump()
        allocator.set_strategy(AllocationStrategy.WORST_FIT)
        assert allocator.dump() == before

    def test_strategy_parses_from_name(self) -> None:
        """Strategies should be constructible from their short names."""
        assert AllocationStrategy("best") is AllocationStrategy.BEST_FIT


class TestFree:
    """Verify exact-address free and coalescing."""

    def test_free_marks_region_free(self) -> None:
        """Freeing the only allocation should restore one free region."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        address = allocator.allocate(SIZE_10)
        assert address is not None
        assert allocator.free(address)
        assert allocator.dump() == [Region(start=0, size=TOTAL)]

    def test_coalesces_both_neighbours(self) -> None:
        """A freed region between two free regions merges with both."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        a = allocator.allocate(SIZE_10)
        b = allocator.allocate(SIZE_10)
        c = allocator.allocate(SIZE_10)
        assert a is not None
        assert b is not None
        assert c is not None
        allocator.free(a)
        allocator.free(c)
        _assert_partition(allocator)
        allocator.free(b)
        assert allocator.dump() == [Region(start=0, size=TOTAL)]

    def test_interior_address_fails(self) -> None:
        """Freeing an address inside a region should fail and change nothing."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_30)
        before = allocator.dump()
        assert not allocator.free(SEPARATOR)
        assert allocator.dump() == before

    def test_free_region_start_fails(self) -> None:
        """Freeing the start of a free region should fail."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_10)
        assert not allocator.free(SIZE_10)

    def test_double_free_fails(self) -> None:
        """A region can only be freed once."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        address = allocator.allocate(SIZE_10)
        assert address is not None
        assert allocator.free(address)
        assert not allocator.free(address)

    def test_release_raises_invalid_free(self) -> None:
        """The raising variant should name the offending address."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        with pytest.raises(InvalidFreeError, match="42"):
            allocator.release(42)

    def test_release_returns_freed_block(self) -> None:
        """release() reports the block as it was, before coalescing."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_10)
        second = allocator.reserve(SIZE_30)
        freed = allocator.release(second.start)
        assert freed == Region(start=SIZE_10, size=SIZE_30)
        assert allocator.dump()[-1] == Region(start=SIZE_10, size=TOTAL - SIZE_10)

    def test_partition_holds_through_mixed_operations(self) -> None:
        """Coverage and no-adjacent-free should hold after every step."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        addresses = []
        for size in (SIZE_10, SIZE_30, SEPARATOR, SIZE_10, SIZE_30):
            address = allocator.allocate(size)
            assert address is not None
            addresses.append(address)
            _assert_partition(allocator)
        for address in addresses[::2] + addresses[1::2]:
            allocator.free(address)
            _assert_partition(allocator)


class TestIsAllocated:
    """Verify address validation."""

    def test_inside_allocated_region(self) -> None:
        """Every address of an allocated region is allocated."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_10)
        assert allocator.is_allocated(0)
        assert allocator.is_allocated(SIZE_10 - 1)

    def test_free_region_is_not_allocated(self) -> None:
        """Addresses in a free region are not allocated."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_10)
        assert not allocator.is_allocated(SIZE_10)

    @pytest.mark.parametrize("address", [-1, TOTAL, TOTAL * 2])
    def test_out_of_range(self, address: int) -> None:
        """Addresses outside physical memory are never allocated."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(TOTAL)
        assert not allocator.is_allocated(address)

    def test_repeated_queries_agree(self) -> None:
        """Querying an unchanged allocator twice gives the same answer."""
        allocator = _fragmented(AllocationStrategy.FIRST_FIT)
        first = [allocator.is_allocated(a) for a in range(TOTAL)]
        second = [allocator.is_allocated(a) for a in range(TOTAL)]
        assert first == second


class TestStats:
    """Verify usage counters and fragmentation."""

    def test_counts_requests(self) -> None:
        """Requests, successes and failures should be tracked."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_10)
        allocator.allocate(TOTAL)
        stats = allocator.stats()
        assert stats.requests == TWO
        assert stats.successes == 1
        assert stats.failures == 1

    def test_usage(self) -> None:
        """Used plus free should equal the total."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(SIZE_30)
        stats = allocator.stats()
        assert stats.used == SIZE_30
        assert stats.free == TOTAL - SIZE_30
        assert stats.largest_free == TOTAL - SIZE_30
        assert stats.ext_frag_pct == 0.0

    def test_external_fragmentation(self) -> None:
        """Holes of 50, 10 and 30 give 1 - 50/90 fragmentation."""
        allocator = _fragmented(AllocationStrategy.FIRST_FIT)
        stats = allocator.stats()
        assert stats.largest_free == SIZE_50
        assert stats.ext_frag_pct == pytest.approx((1 - SIZE_50 / 90) * 100)

    def test_fragmentation_zero_when_full(self) -> None:
        """With no free memory, fragmentation is defined as zero."""
        allocator = PhysicalAllocator(total_size=TOTAL)
        allocator.allocate(TOTAL)
        stats = allocator.stats()
        assert stats.free == 0
        assert stats.ext_frag_pct == 0.0


class TestLogging:
    """Verify allocator events reach the log."""

    def test_allocation_and_failure_logged(self) -> None:
        """Successes log at INFO, failures at WARNING."""
        logger = Logger()
        allocator = PhysicalAllocator(total_size=TOTAL, logger=logger)
        allocator.allocate(SIZE_10)
        allocator.allocate(TOTAL)
        allocator.free(THREE)
        entries = logger.filter(source="allocator")
        assert entries[0].level is LogLevel.INFO
        assert entries[0].address == 0
        warnings = logger.filter(min_level=LogLevel.WARNING)
        assert len(warnings) == TWO

    def test_raising_variants_log_failures(self) -> None:
        """reserve/release failures are logged even when the caller handles them."""
        logger = Logger()
        allocator = PhysicalAllocator(total_size=TOTAL, logger=logger)
        with pytest.raises(OutOfMemoryError):
            allocator.reserve(TOTAL + 1)
        with pytest.raises(InvalidFreeError):
            allocator.release(THREE)
        warnings = logger.filter(min_level=LogLevel.WARNING, source="allocator")
        assert len(warnings) == TWO
        assert str(TOTAL + 1) in warnings[0].message
        assert warnings[1].address == THREE
