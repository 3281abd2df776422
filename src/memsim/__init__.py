"""memsim — a simulated memory hierarchy for learning.

Three cooperating devices model how a memory access travels through a
machine:

- ``memsim.memory.allocator`` — the physical-memory allocator.
- ``memsim.cache`` — a two-level set-associative hardware cache.
- ``memsim.memory.mmu`` — the MMU, translating virtual addresses through
  a page table and evicting pages when physical memory runs out.
"""

__version__ = "0.1.0"
