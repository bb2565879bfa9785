class ConfigurationError(ValueError):
    """Raised when required tracker settings are missing at startup."""


class SerializationError(ValueError):
    """Raised when an envelope cannot be encoded as JSON."""


class DispatchError(RuntimeError):
    """Raised when an envelope could not be delivered to the ingestion API."""


class CorrelationError(RuntimeError):
    """Raised when a time-spent update has no event id to patch."""
