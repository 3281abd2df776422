"""Exception taxonomy for the simulator.

Every condition is locally recoverable: callers report it and carry
on.  Conditions that are part of normal simulated behaviour (a cache
segmentation fault, an unresolved page fault) are *outcomes*, not
exceptions — see ``AccessOutcome`` and ``TranslationStatus``.
"""


class MemsimError(Exception):
    """Base class for all simulator errors."""


class ConfigurationError(MemsimError):
    """Raise when a device is constructed with invalid geometry."""


class OutOfMemoryError(MemsimError):
    """Raise when no free region can satisfy an allocation request."""


class InvalidFreeError(MemsimError):
    """Raise when no allocated region starts at the address being freed."""


def require_positive(**values: int) -> None:
    """Check that every keyword value is a positive integer.

    Raises:
        ConfigurationError: Naming the first offending parameter.

    """
    for name, value in values.items():
        if value <= 0:
            msg = f"{name} must be positive (got {value})"
            raise ConfigurationError(msg)


def is_power_of_two(value: int) -> bool:
    """Return True if *value* is a positive power of two."""
    return value > 0 and value & (value - 1) == 0
