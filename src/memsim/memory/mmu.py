"""MMU — virtual-to-physical translation with demand paging.

Every virtual address splits into a **virtual page number** (VPN) and
an offset::

    vpn    = virtual_address // page_size
    offset = virtual_address %  page_size

The **page table** maps each VPN to a page table entry.  When an entry
is missing or invalid the access **page faults**: the MMU asks the
physical allocator for a page-sized frame.  If physical memory is
full, one resident page is **evicted** (least recently used first),
its frame is freed, and the allocation is retried exactly once.

Once the page is resident the physical address is
``frame_start + offset`` and the access continues into the cache
controller.

Design choices:
    - **One source of truth.**  The page table dict is kept in
      residency order (a page that becomes resident is re-inserted at
      the end), so the resident set is just "the valid entries, in dict
      order" — no parallel list that could drift.
    - **Structured results.**  ``access`` returns an ``MMUAccess`` that
      lists every sub-event (fault, allocation, eviction, write-back)
      so callers don't have to scrape log text.
    - **Non-owning references.**  The MMU borrows the allocator and
      the controller; the session decides their lifetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from memsim.cache.controller import AccessKind, AccessOutcome
from memsim.errors import require_positive
from memsim.logging import Logger, LogLevel

if TYPE_CHECKING:
    from memsim.cache.controller import CacheController
    from memsim.memory.allocator import PhysicalAllocator

_SOURCE = "mmu"


@dataclass
class PageTableEntry:
    """Where a virtual page lives and how it has been used."""

    valid: bool = False
    frame_start: int = -1
    dirty: bool = False
    last_access: int = 0


@dataclass(frozen=True)
class PageTableRow:
    """One row of a page table dump."""

    vpn: int
    valid: bool
    frame: int
    dirty: bool
    last_access: int


class MMUEventKind(StrEnum):
    """Things that can happen during one MMU access."""

    PAGE_FAULT = "page fault"
    FRAME_ALLOCATED = "frame allocated"
    EVICTION = "eviction"
    WRITE_BACK = "write-back"
    NOTHING_TO_EVICT = "nothing to evict"
    UNRESOLVED = "unresolved page fault"
    TRANSLATED = "translated"
    NO_CACHE = "no cache attached"


@dataclass(frozen=True)
class MMUEvent:
    """A single sub-event of an access."""

    kind: MMUEventKind
    vpn: int
    address: int | None = None


class TranslationStatus(StrEnum):
    """Final state of an MMU access."""

    HIT = "hit"
    FAULT_RESOLVED = "fault resolved"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class MMUAccess:
    """The full record of one virtual access.

    Attributes:
        virtual_address: The address that was accessed.
        vpn: Its virtual page number.
        offset: Its offset inside the page.
        status: Whether the page was resident, faulted in, or unresolved.
        physical_address: The translation, or None when unresolved.
        cache_outcome: The controller's answer, or None when no
            controller is attached or the fault was unresolved.
        events: Every sub-event, in order.

    """

    virtual_address: int
    vpn: int
    offset: int
    status: TranslationStatus
    physical_address: int | None = None
    cache_outcome: AccessOutcome | None = None
    events: tuple[MMUEvent, ...] = field(default_factory=tuple)

    @property
    def page_fault(self) -> bool:
        """Return True if the access faulted."""
        return self.status is not TranslationStatus.HIT

    @property
    def evicted(self) -> list[int]:
        """Return the VPNs evicted while serving this access."""
        return [e.vpn for e in self.events if e.kind is MMUEventKind.EVICTION]


class MMU:
    """Translate virtual addresses and page on demand."""

    def __init__(
        self,
        *,
        page_size: int,
        allocator: PhysicalAllocator,
        cache: CacheController | None = None,
        logger: Logger | None = None,
    ) -> None:
        """Create an MMU with an empty page table.

        Args:
            page_size: Bytes per page; also the frame allocation unit.
            allocator: Physical memory that supplies frames.
            cache: Controller that receives translated accesses.
            logger: Optional event log.

        Raises:
            ConfigurationError: If page_size is not positive.

        """
        require_positive(page_size=page_size)
        self._page_size = page_size
        self._allocator = allocator
        self._cache = cache
        self._logger = logger
        self._timer = 0
        self._page_table: dict[int, PageTableEntry] = {}

    @property
    def page_size(self) -> int:
        """Return the page size in bytes."""
        return self._page_size

    @property
    def timer(self) -> int:
        """Return the access clock (advanced once per access)."""
        return self._timer

    @property
    def cache(self) -> CacheController | None:
        """Return the attached cache controller, if any."""
        return self._cache

    def attach_cache(self, cache: CacheController | None) -> None:
        """Route future translated accesses to *cache*."""
        self._cache = cache

    def entry(self, vpn: int) -> PageTableEntry | None:
        """Return the page table entry for *vpn*, if one exists."""
        return self._page_table.get(vpn)

    @property
    def resident_pages(self) -> list[int]:
        """Return resident VPNs in the order they became resident."""
        return [vpn for vpn, entry in self._page_table.items() if entry.valid]

    # -- access -------------------------------------------------------------

    def access(self, virtual_address: int, kind: AccessKind = AccessKind.READ) -> MMUAccess:
        """Translate *virtual_address* and forward it to the cache.

        Args:
            virtual_address: A non-negative virtual address.
            kind: Read or write; writes mark the page dirty.

        Returns:
            A structured record of everything that happened.

        Raises:
            ValueError: If the address is negative.

        """
        if virtual_address < 0:
            msg = f"Virtual address {virtual_address} is negative"
            raise ValueError(msg)

        self._timer += 1
        vpn, offset = divmod(virtual_address, self._page_size)
        events: list[MMUEvent] = []
        status = TranslationStatus.HIT

        entry = self._page_table.get(vpn)
        if entry is None or not entry.valid:
            status = TranslationStatus.FAULT_RESOLVED
            events.append(MMUEvent(MMUEventKind.PAGE_FAULT, vpn))
            self._log(LogLevel.INFO, f"Page fault: VPN {vpn} not in memory")
            entry = self._handle_page_fault(vpn, events)
            if entry is None:
                events.append(MMUEvent(MMUEventKind.UNRESOLVED, vpn))
                self._log(
                    LogLevel.ERROR,
                    f"Cannot resolve page fault for VPN {vpn}: physical memory full",
                    address=virtual_address,
                )
                return MMUAccess(
                    virtual_address=virtual_address,
                    vpn=vpn,
                    offset=offset,
                    status=TranslationStatus.UNRESOLVED,
                    events=tuple(events),
                )

        physical = entry.frame_start + offset
        entry.last_access = self._timer
        if kind is AccessKind.WRITE:
            entry.dirty = True
        events.append(MMUEvent(MMUEventKind.TRANSLATED, vpn, physical))
        self._log(
            LogLevel.DEBUG,
            f"VA {virtual_address} -> VPN {vpn} -> PA {physical}",
            address=physical,
        )

        outcome: AccessOutcome | None = None
        if self._cache is not None:
            outcome = self._cache.access(physical, kind)
        else:
            events.append(MMUEvent(MMUEventKind.NO_CACHE, vpn, physical))
            self._log(LogLevel.WARNING, "No cache connected; translation only", address=physical)

        return MMUAccess(
            virtual_address=virtual_address,
            vpn=vpn,
            offset=offset,
            status=status,
            physical_address=physical,
            cache_outcome=outcome,
            events=tuple(events),
        )

    def _handle_page_fault(self, vpn: int, events: list[MMUEvent]) -> PageTableEntry | None:
        """Bring *vpn* into a fresh frame, evicting once if needed.

        Returns:
            The new valid entry, or None if no frame could be found.
            On failure the faulting VPN's entry is left untouched.

        """
        frame = self._allocator.allocate(self._page_size)
        if frame is None:
            self._log(LogLevel.WARNING, "Physical memory full; evicting a victim page")
            self.evict_victim(events)
            frame = self._allocator.allocate(self._page_size)
            if frame is None:
                return None

        # Re-insert so dict order stays residency order.
        self._page_table.pop(vpn, None)
        entry = PageTableEntry(valid=True, frame_start=frame, last_access=self._timer)
        self._page_table[vpn] = entry
        events.append(MMUEvent(MMUEventKind.FRAME_ALLOCATED, vpn, frame))
        self._log(LogLevel.INFO, f"Page {vpn} loaded into frame at {frame}", address=frame)
        return entry

    # -- eviction -----------------------------------------------------------

    def evict_victim(self, events: list[MMUEvent] | None = None) -> int | None:
        """Evict the least recently used resident page.

        Ties on ``last_access`` go to the page that became resident
        first.

        Args:
            events: Optional list that receives the eviction sub-events.

        Returns:
            The evicted VPN, or None if nothing was resident.

        """
        resident = [(vpn, e) for vpn, e in self._page_table.items() if e.valid]
        if not resident:
            if events is not None:
                events.append(MMUEvent(MMUEventKind.NOTHING_TO_EVICT, -1))
            self._log(LogLevel.WARNING, "No resident page to evict")
            return None

        vpn, entry = min(resident, key=lambda item: item[1].last_access)
        frame = entry.frame_start
        if not self._allocator.free(frame):
            self._log(
                LogLevel.ERROR,
                f"Frame {frame} of page {vpn} was no longer allocated",
                address=frame,
            )
        if self._cache is not None:
            self._cache.invalidate(frame, self._page_size)
        if entry.dirty:
            if events is not None:
                events.append(MMUEvent(MMUEventKind.WRITE_BACK, vpn, frame))
            self._log(LogLevel.INFO, f"Saving dirty page {vpn} to disk", address=frame)
        entry.valid = False
        entry.dirty = False
        if events is not None:
            events.append(MMUEvent(MMUEventKind.EVICTION, vpn, frame))
        self._log(LogLevel.INFO, f"Evicted page {vpn} (frame {frame} freed)", address=frame)
        return vpn

    def frame_owner(self, address: int) -> int | None:
        """Return the VPN whose frame starts at *address*, if any."""
        for vpn, entry in self._page_table.items():
            if entry.valid and entry.frame_start == address:
                return vpn
        return None

    def release_all(self) -> None:
        """Evict every resident page, returning all frames to the allocator."""
        while self.evict_victim() is not None:
            pass

    # -- reporting ----------------------------------------------------------

    def dump_page_table(self) -> list[PageTableRow]:
        """Return the valid entries ordered by VPN."""
        return [
            PageTableRow(
                vpn=vpn,
                valid=entry.valid,
                frame=entry.frame_start,
                dirty=entry.dirty,
                last_access=entry.last_access,
            )
            for vpn, entry in sorted(self._page_table.items())
            if entry.valid
        ]

    def _log(self, level: LogLevel, message: str, *, address: int | None = None) -> None:
        if self._logger is not None:
            self._logger.log(level, message, source=_SOURCE, address=address)
