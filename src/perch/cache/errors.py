"""Cache adapter error hierarchy."""

from perch.errors import PerchError


class InvalidCacheArgumentError(PerchError, ValueError):
    """Base for invalid arguments passed to a cache adapter."""

    def __init__(self, message: str = "Cache has an invalid argument!") -> None:
        super().__init__(message)


class CacheKeyError(InvalidCacheArgumentError):
    """A key is not a non-empty string, or a key pattern is malformed."""

    def __init__(self, message: str = "Keys must be strings!") -> None:
        super().__init__(message)


class CacheValueError(InvalidCacheArgumentError):
    """A value is not a scalar (``str``, ``int``, ``float``, ``bool``)."""

    def __init__(self, message: str = "The value must be a scalar!") -> None:
        super().__init__(message)


class UnsupportedOperationError(PerchError, NotImplementedError):
    """The adapter cannot perform this operation (e.g. pattern deletion)."""
