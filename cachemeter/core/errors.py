"""Exceptions raised by cachemeter.

Read-time failures of native statistics calls are never wrapped: they
propagate as raised by the cache client.
"""


class CacheMeterError(Exception):
    """Base class for cachemeter errors."""


class MissingCacheNameError(CacheMeterError, ValueError):
    """Raised when a binder is constructed without a usable cache name."""


class UnreferenceableCacheError(CacheMeterError, TypeError):
    """Raised when the cache object does not support weak references."""


class InvalidTagsError(CacheMeterError, ValueError):
    """Raised when tags cannot be parsed into key/value pairs."""


class MeterTypeConflictError(CacheMeterError, ValueError):
    """Raised when a meter name is reused with a different meter type."""


__all__ = [
    "CacheMeterError",
    "InvalidTagsError",
    "MeterTypeConflictError",
    "MissingCacheNameError",
    "UnreferenceableCacheError",
]
