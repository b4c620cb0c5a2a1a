"""Async event emitter and the aggregate event bus."""

from .bus import EventBus, create_event_bus
from .emitter import ERROR_EVENT, Emitter, Listener

__all__ = ["ERROR_EVENT", "Emitter", "EventBus", "Listener", "create_event_bus"]
