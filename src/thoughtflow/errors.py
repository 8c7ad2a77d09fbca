"""
Error taxonomy for Thoughtflow.

ValidationError is surfaced to callers. ClassifierError is recovered through
the fallback path. PersistenceError is logged and swallowed by the operation
that triggered the write.
"""


class ThoughtflowError(Exception):
    """Base class for all Thoughtflow errors."""


class ConfigError(ThoughtflowError):
    """Missing or invalid configuration (e.g. no API key)."""


class ValidationError(ThoughtflowError, ValueError):
    """Bad caller input, such as empty thought content."""


class ClassifierError(ThoughtflowError):
    """The external classifier failed or gave an unusable answer."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    MALFORMED = "malformed"
    LOW_CONFIDENCE = "low_confidence"

    def __init__(self, kind: str, message: str = ""):
        self.kind = kind
        super().__init__(f"{kind}: {message}" if message else kind)

    @property
    def is_transport_failure(self) -> bool:
        """True when the call never produced an answer."""
        return self.kind in (self.TIMEOUT, self.NETWORK)


class PersistenceError(ThoughtflowError):
    """A store read or write failed."""
