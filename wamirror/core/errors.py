"""
Exception taxonomy for the message mirror.

Open-time failures (configuration, capability) are fatal and surfaced
verbatim; query and media errors are raised to the caller of the
individual operation.
"""


class MirrorError(Exception):
    """Base class for all wamirror errors."""

    pass


class ConfigurationError(MirrorError):
    """Raised for bad paths, permissions, or configuration values."""

    pass


class CapabilityError(MirrorError):
    """Raised when the SQLite build lacks a required feature."""

    def __init__(self, feature: str, message: str = None):
        self.feature = feature
        super().__init__(message or f"SQLite {feature} is not available")


class QueryError(MirrorError):
    """Raised for a malformed query or filter."""

    pass


class NotFoundError(MirrorError):
    """Raised when a referenced message or chat does not exist locally."""

    pass


class IncompleteMediaError(MirrorError):
    """Raised when a stored media descriptor cannot be used for download."""

    def __init__(self, message_id: str, missing: list):
        self.message_id = message_id
        self.missing = missing
        super().__init__(
            f"Incomplete media info for message {message_id} "
            f"(missing: {', '.join(missing)})"
        )


class TransportError(MirrorError):
    """Raised by transport implementations on connect/send failure."""

    pass


class FormatError(MirrorError):
    """Raised when a binary buffer is not in the expected container format."""

    pass
