"""Memory subsystem — physical allocation and virtual memory.

Re-exports public symbols so callers can write::

    from memsim.memory import MMU, PhysicalAllocator
"""

from memsim.memory.allocator import (
    AllocationStrategy,
    AllocatorStats,
    PhysicalAllocator,
    Region,
)
from memsim.memory.mmu import (
    MMU,
    MMUAccess,
    MMUEvent,
    MMUEventKind,
    PageTableEntry,
    PageTableRow,
    TranslationStatus,
)

__all__ = [
    "MMU",
    "AllocationStrategy",
    "AllocatorStats",
    "MMUAccess",
    "MMUEvent",
    "MMUEventKind",
    "PageTableEntry",
    "PageTableRow",
    "PhysicalAllocator",
    "Region",
    "TranslationStatus",
]
