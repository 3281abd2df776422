"""Cache level — one set-associative hardware cache with LRU replacement.

A cache level holds copies of recently used memory **blocks**.  Each
physical address is split into three bit fields::

    | tag | index | offset |

- **offset** (``log2(block_size)`` bits) — position inside the block.
- **index** (``log2(num_sets)`` bits) — which *set* the block may live in.
- **tag** (the remaining high bits) — identifies the block within its set.

Each set holds ``associativity`` **lines** ("ways").  Associativity 1
is a direct-mapped cache; a single set holding every line is fully
associative.  When a set is full, the least recently used line is the
victim.

Lookup and insertion are deliberately separate operations: ``lookup``
only probes, and ``allocate_line`` only fills.  The controller decides
when a block deserves a line (only once main memory has vouched for
the address).
"""

from dataclasses import dataclass

from memsim.errors import ConfigurationError, is_power_of_two, require_positive


@dataclass
class CacheLine:
    """One way of a set: a validity bit, a tag, and an LRU timestamp."""

    valid: bool = False
    tag: int = 0
    last_access: int = 0


@dataclass(frozen=True)
class LevelStats:
    """Hit/miss counters for one cache level."""

    level: int
    hits: int
    misses: int

    @property
    def accesses(self) -> int:
        """Return the total number of lookups."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Return hits / accesses, or 0.0 before the first access."""
        return self.hits / self.accesses if self.accesses else 0.0


class CacheLevel:
    """A single cache level (L1, L2, ...).

    Geometry is fixed at construction.  The level owns its access
    counter, which is bumped on every touch and stamped on lines so the
    LRU victim is simply the line with the smallest stamp.
    """

    def __init__(self, *, level: int, size: int, block_size: int, associativity: int) -> None:
        """Create an empty cache level.

        Args:
            level: Level number used in reports (1 for L1).
            size: Total capacity in bytes.
            block_size: Bytes per line; must be a power of two.
            associativity: Lines per set.

        Raises:
            ConfigurationError: If any size is not positive, or the
                geometry does not give a power-of-two number of sets.

        """
        require_positive(size=size, block_size=block_size, associativity=associativity)
        if not is_power_of_two(block_size):
            msg = f"L{level} block size {block_size} is not a power of two"
            raise ConfigurationError(msg)
        set_bytes = block_size * associativity
        if size % set_bytes != 0:
            msg = f"L{level} size {size} is not a multiple of block_size * associativity ({set_bytes})"
            raise ConfigurationError(msg)
        num_sets = size // set_bytes
        if not is_power_of_two(num_sets):
            msg = f"L{level} set count {num_sets} is not a power of two"
            raise ConfigurationError(msg)

        self._level = level
        self._size = size
        self._block_size = block_size
        self._associativity = associativity
        self._num_sets = num_sets
        self._offset_bits = block_size.bit_length() - 1
        self._index_bits = num_sets.bit_length() - 1
        self._sets: list[list[CacheLine]] = [
            [CacheLine() for _ in range(associativity)] for _ in range(num_sets)
        ]
        self._clock = 0
        self._hits = 0
        self._misses = 0

    @property
    def level(self) -> int:
        """Return the level number."""
        return self._level

    @property
    def size(self) -> int:
        """Return the capacity in bytes."""
        return self._size

    @property
    def block_size(self) -> int:
        """Return the line size in bytes."""
        return self._block_size

    @property
    def associativity(self) -> int:
        """Return the number of ways per set."""
        return self._associativity

    @property
    def num_sets(self) -> int:
        """Return the number of sets."""
        return self._num_sets

    def decompose(self, address: int) -> tuple[int, int]:
        """Split an address into ``(tag, index)``."""
        index = (address >> self._offset_bits) & (self._num_sets - 1)
        tag = address >> (self._offset_bits + self._index_bits)
        return tag, index

    def _find(self, tag: int, index: int) -> CacheLine | None:
        for line in self._sets[index]:
            if line.valid and line.tag == tag:
                return line
        return None

    def _tick(self) -> int:
        self._clock += 1
        return self._clock

    def lookup(self, address: int) -> bool:
        """Probe the level for *address*.

        A hit refreshes the line's timestamp; a miss changes nothing
        except the miss counter.

        Returns:
            True on a hit.

        """
        tag, index = self.decompose(address)
        line = self._find(tag, index)
        if line is None:
            self._misses += 1
            return False
        line.last_access = self._tick()
        self._hits += 1
        return True

    def allocate_line(self, address: int) -> None:
        """Place the block holding *address* in its set.

        If the block is already resident only its timestamp moves.
        Otherwise the first invalid way is filled, or, in a full set,
        the least recently used way is overwritten.
        """
        tag, index = self.decompose(address)
        now = self._tick()
        line = self._find(tag, index)
        if line is None:
            ways = self._sets[index]
            line = next((w for w in ways if not w.valid), None)
            if line is None:
                line = min(ways, key=lambda w: w.last_access)
            line.valid = True
            line.tag = tag
        line.last_access = now

    def is_resident(self, address: int) -> bool:
        """Return True if *address* is cached, without touching any state."""
        tag, index = self.decompose(address)
        return self._find(tag, index) is not None

    def invalidate_range(self, start: int, size: int) -> int:
        """Drop every line whose block overlaps ``[start, start + size)``.

        A block that straddles the boundary is dropped as well; its
        other bytes are simply refetched on the next access.

        Returns:
            The number of lines invalidated.

        """
        end = start + size
        dropped = 0
        for index, ways in enumerate(self._sets):
            for line in ways:
                if not line.valid:
                    continue
                block = (
                    (line.tag << (self._offset_bits + self._index_bits))
                    | (index << self._offset_bits)
                )
                if block < end and start < block + self._block_size:
                    line.valid = False
                    dropped += 1
        return dropped

    def resident_lines(self) -> list[tuple[int, int, CacheLine]]:
        """Return ``(index, way, line)`` copies for every valid line."""
        return [
            (index, way, CacheLine(line.valid, line.tag, line.last_access))
            for index, ways in enumerate(self._sets)
            for way, line in enumerate(ways)
            if line.valid
        ]

    def stats(self) -> LevelStats:
        """Return the hit/miss counters."""
        return LevelStats(level=self._level, hits=self._hits, misses=self._misses)

    def reset_stats(self) -> None:
        """Zero the hit/miss counters (cached lines are kept)."""
        self._hits = 0
        self._misses = 0
