from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple

__all__ = ['EventBus', 'Event', 'SNAPSHOT', 'SESSION_STATUS', 'EXPENSE_ADDED', 'PERIOD_RESET', 'channel']


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], Any]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._subscribers[name]

    def has_subscribers(self, name: str) -> bool:
        return bool(self._subscribers.get(name))

    def publish(self, name: str, payload: dict) -> List[Any]:
        # Copy: a handler may unsubscribe itself while being called.
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return []

        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        return [handler(event, payload) for handler in handlers]


SNAPSHOT = "SNAPSHOT"
SESSION_STATUS = "SESSION_STATUS"
EXPENSE_ADDED = "EXPENSE_ADDED"
PERIOD_RESET = "PERIOD_RESET"


def channel(name: str, *parts: str) -> str:
    """Scoped event name, e.g. ``SNAPSHOT:uid:2024-03``."""
    return ":".join((name,) + parts)
