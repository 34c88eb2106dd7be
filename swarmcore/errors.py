"""Error taxonomy for the coordination core."""


class SwarmCoreError(Exception):
    """Base class for all coordination core errors."""


class ValidationError(SwarmCoreError):
    """Malformed event, task or agent rejected before entering the system."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class DeliveryError(SwarmCoreError):
    """A subscriber handler raised while processing an event."""

    def __init__(self, subscription_id: str, event_id: str, cause: BaseException):
        self.subscription_id = subscription_id
        self.event_id = event_id
        self.cause = cause
        super().__init__(
            f"Handler {subscription_id} failed on event {event_id}: {cause}"
        )


class ExhaustedRetriesError(SwarmCoreError):
    """A handler kept failing after all retries. Never raised to publishers."""

    def __init__(self, subscription_id: str, event_id: str, attempts: int, last_error: str):
        self.subscription_id = subscription_id
        self.event_id = event_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Handler {subscription_id} gave up on event {event_id} "
            f"after {attempts} attempts: {last_error}"
        )


class StoreError(SwarmCoreError):
    """The event store could not write or read events."""
