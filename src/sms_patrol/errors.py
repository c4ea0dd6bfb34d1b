"""Custom exceptions for the patrol domain."""


class PatrolError(Exception):
    """Base exception for this project."""


class ConfigError(PatrolError):
    """Raised when runtime configuration is invalid."""


class FetchError(PatrolError):
    """Raised when both the direct and the proxied request fail."""


class ParseError(PatrolError):
    """Raised when content expected to be JSON cannot be decoded."""


class StorageError(PatrolError):
    """Raised when the storage file or an import payload is unusable."""
