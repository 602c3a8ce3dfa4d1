"""Data layer error hierarchy."""

from perch.errors import PerchError


class DataError(PerchError):
    """Base for all perch.data errors."""


class EntityConfigurationError(DataError):
    """Raised when an entity class cannot be mapped (not a dataclass, no ``id``)."""


class EntityNotManagedError(DataError):
    """Raised when removing an entity the store has never persisted."""
