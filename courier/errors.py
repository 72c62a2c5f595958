"""Exception types raised across service boundaries."""


class CourierError(Exception):
    """Base class for courier errors."""


class ProviderError(CourierError):
    """The generation service failed on every candidate model."""


class DeliveryError(CourierError):
    """A channel client could not deliver a message."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
