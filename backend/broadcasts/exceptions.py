class BroadcastError(Exception):
    """Base class for everything the broadcast engine raises."""


class ValidationError(BroadcastError):
    """Malformed input; the broadcast is not created."""


class InvalidScope(ValidationError):
    pass


class InvalidConfiguration(BroadcastError):
    pass


class NotConfigured(BroadcastError):
    """The tenant has no usable provider credentials."""


class NotFound(BroadcastError):
    pass


class InvalidState(BroadcastError):
    pass


class BatchSendError(BroadcastError):
    """The provider rejected (or never received) one multicast call."""

    def __init__(self, reason: str, status_code=None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
