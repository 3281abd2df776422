"""Cache subsystem — set-associative levels and the L1/L2 controller."""

from memsim.cache.controller import (
    L2_SCALE,
    AccessKind,
    AccessOutcome,
    CacheController,
    CacheStats,
)
from memsim.cache.level import CacheLevel, CacheLine, LevelStats

__all__ = [
    "L2_SCALE",
    "AccessKind",
    "AccessOutcome",
    "CacheController",
    "CacheLevel",
    "CacheLine",
    "CacheStats",
    "LevelStats",
]
