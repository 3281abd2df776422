"""Session — owner of the simulated memory hierarchy.

The session plays the part of the machine: it holds the physical
allocator, the cache controller and the MMU, wires them together, and
routes accesses to the right entry point.

Lifetimes follow the hardware dependencies:

- Replacing the **allocator** invalidates everything that refers to
  physical addresses, so the cache controller and MMU are discarded.
- Replacing the **cache** keeps the MMU; it is simply re-attached to
  the new controller.
- Replacing the **MMU** first evicts every page the old MMU holds, so
  its frames go back to the allocator instead of leaking.
"""

from memsim.cache.controller import AccessKind, AccessOutcome, CacheController
from memsim.errors import InvalidFreeError
from memsim.logging import Logger, LogLevel
from memsim.memory.allocator import PhysicalAllocator, Region
from memsim.memory.mmu import MMU, MMUAccess

_SOURCE = "session"


class SessionError(Exception):
    """Raise when an operation needs a subsystem that isn't initialised."""


class Session:
    """Create, connect and replace the allocator, cache and MMU."""

    def __init__(self, *, logger: Logger | None = None) -> None:
        """Create an empty session with no devices."""
        self._logger = logger if logger is not None else Logger()
        self._allocator: PhysicalAllocator | None = None
        self._cache: CacheController | None = None
        self._mmu: MMU | None = None

    @property
    def logger(self) -> Logger:
        """Return the shared event log."""
        return self._logger

    @property
    def allocator(self) -> PhysicalAllocator | None:
        """Return the physical allocator, if initialised."""
        return self._allocator

    @property
    def cache(self) -> CacheController | None:
        """Return the cache controller, if initialised."""
        return self._cache

    @property
    def mmu(self) -> MMU | None:
        """Return the MMU, if initialised."""
        return self._mmu

    def require_allocator(self) -> PhysicalAllocator:
        """Return the allocator or raise ``SessionError``."""
        if self._allocator is None:
            msg = "Memory not initialized (use 'init standard <size>')"
            raise SessionError(msg)
        return self._allocator

    def require_cache(self) -> CacheController:
        """Return the cache controller or raise ``SessionError``."""
        if self._cache is None:
            msg = "Cache not initialized"
            raise SessionError(msg)
        return self._cache

    def require_mmu(self) -> MMU:
        """Return the MMU or raise ``SessionError``."""
        if self._mmu is None:
            msg = "MMU not initialized"
            raise SessionError(msg)
        return self._mmu

    def init_memory(self, size: int) -> PhysicalAllocator:
        """Replace physical memory, discarding the cache and MMU.

        Raises:
            ConfigurationError: If size is not positive (nothing is
                discarded in that case).

        """
        allocator = PhysicalAllocator(total_size=size, logger=self._logger)
        if self._cache is not None:
            self._log(LogLevel.WARNING, "Cache reset due to memory change")
            self._cache = None
        if self._mmu is not None:
            self._log(LogLevel.WARNING, "MMU reset due to memory change")
            self._mmu = None
        self._allocator = allocator
        self._log(LogLevel.INFO, f"Standard allocator initialized ({size} bytes)")
        return allocator

    def init_cache(self, *, size: int, block_size: int, associativity: int) -> CacheController:
        """Replace the cache hierarchy (L1 of *size* bytes, L2 eight times larger).

        Raises:
            ConfigurationError: If the geometry is invalid.

        """
        cache = CacheController.build(
            size=size,
            block_size=block_size,
            associativity=associativity,
            allocator=self._allocator,
            logger=self._logger,
        )
        self._cache = cache
        if self._allocator is None:
            self._log(LogLevel.WARNING, "Cache initialized with no memory; every miss will fault")
        if self._mmu is not None:
            self._mmu.attach_cache(cache)
        self._log(LogLevel.INFO, f"Cache initialized (L1: {size}B, L2: {cache.levels[-1].size}B)")
        return cache

    def init_mmu(self, page_size: int) -> MMU:
        """Enable virtual addressing with pages of *page_size* bytes.

        Raises:
            SessionError: If memory is not initialised.
            ConfigurationError: If page_size is not positive.

        """
        allocator = self.require_allocator()
        mmu = MMU(page_size=page_size, allocator=allocator, cache=self._cache, logger=self._logger)
        if self._mmu is not None:
            self._mmu.release_all()
        self._mmu = mmu
        self._log(LogLevel.INFO, f"MMU initialized with page size {page_size}")
        return mmu

    def free(self, address: int) -> Region:
        """Free the user block at *address* and drop its cached lines.

        Frames backing resident pages belong to the MMU and cannot be
        freed here; they go back to the allocator only by eviction.

        Returns:
            A copy of the freed region.

        Raises:
            SessionError: If memory is not initialised.
            InvalidFreeError: If *address* is a page frame or does not
                start an allocated block.

        """
        allocator = self.require_allocator()
        vpn = self._mmu.frame_owner(address) if self._mmu is not None else None
        if vpn is not None:
            msg = f"Address {address} is the frame of virtual page {vpn} and is owned by the MMU"
            self._log(LogLevel.WARNING, msg)
            raise InvalidFreeError(msg)
        freed = allocator.release(address)
        if self._cache is not None:
            self._cache.invalidate(freed.start, freed.size)
        return freed

    def access(self, address: int, kind: AccessKind) -> MMUAccess | AccessOutcome:
        """Access *address*: virtual if the MMU is active, else physical.

        Raises:
            SessionError: If neither the MMU nor the cache exists.

        """
        if self._mmu is not None:
            return self._mmu.access(address, kind)
        if self._cache is not None:
            return self._cache.access(address, kind)
        msg = "Neither MMU nor cache is initialized"
        raise SessionError(msg)

    def _log(self, level: LogLevel, message: str) -> None:
        self._logger.log(level, message, source=_SOURCE)
