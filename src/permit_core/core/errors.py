"""Custom exception hierarchy for the permit core primitives."""


class PermitCoreError(Exception):
    """Base exception for all permit core errors."""


# --- Configuration ---
class ConfigError(PermitCoreError):
    """Invalid or missing configuration."""


# --- Validation ---
class ValidationError(PermitCoreError):
    """A required argument was missing or empty."""


class IdentifierRequiredError(ValidationError):
    """Aggregate lookup attempted without an identifier."""

    def __init__(self, namespace: str):
        self.namespace = namespace
        super().__init__(f"Identifier required for {namespace} aggregate")


class EventNameRequiredError(ValidationError):
    """Listener count requested without an event name."""

    def __init__(self) -> None:
        super().__init__("Expected event name")


# --- Emitter ---
class EmitterError(PermitCoreError):
    """Listener registry or delivery error."""


class DuplicateListenerError(EmitterError):
    """The same listener is already registered for this event."""

    def __init__(self, event_name: str):
        self.event_name = event_name
        super().__init__(f"Duplicate listener detected for {event_name!r}")


class MaxListenersExceededError(EmitterError):
    """Listener count went past the ceiling. The listener is still added."""

    def __init__(self, event_name: str, max_listeners: int, count: int):
        self.event_name = event_name
        self.max_listeners = max_listeners
        self.count = count
        super().__init__(
            f"Possible memory leak on {event_name!r}: {count} listeners, "
            f"max_listeners is {max_listeners}"
        )


class UnhandledErrorEvent(EmitterError):
    """An "error" event was emitted with no listener to observe it."""

    def __init__(self, value: object = None):
        self.value = value
        super().__init__(f"Unhandled error event: {value!r}")
