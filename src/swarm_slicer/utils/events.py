"""Typed callback registry for progress and execution events."""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

TODO_LIST_REGISTERED = "todo-list-registered"
TODO_LIST_UNREGISTERED = "todo-list-unregistered"
TODO_UPDATED = "todo-updated"
PROGRESS_BATCH_UPDATE = "progress-batch-update"
HELP_REQUESTED = "help-requested"
SUBTASK_STATUS_CHANGED = "subtask-status-changed"
WORKFLOW_HALTED = "workflow-halted"
WORKFLOW_COMPLETED = "workflow-completed"

EventCallback = Callable[[Any], None]


class EventBus:
    """
    Publish/subscribe registry keyed by event name.

    PATTERN: subscribe() returns an unsubscribe handle
    CRITICAL: A failing subscriber must not break delivery to the others
    """

    def __init__(self):
        """Initialize empty registry."""
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)

    def subscribe(self, event_type: str, callback: EventCallback) -> Callable[[], None]:
        """
        Register a callback for an event type.

        Args:
            event_type: Event name
            callback: Called with the event payload

        Returns:
            Function that removes the subscription when called
        """
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def emit(self, event_type: str, payload: Any) -> int:
        """
        Deliver a payload to every subscriber of an event type.

        Args:
            event_type: Event name
            payload: Event payload

        Returns:
            Number of callbacks that ran without raising
        """
        delivered = 0
        # Copy so callbacks may unsubscribe while we iterate
        for callback in list(self._subscribers.get(event_type, [])):
            try:
                callback(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Error in '{event_type}' subscriber: {e}")
        return delivered

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, []))

    def clear(self) -> None:
        self._subscribers.clear()
