"""
Event system for pool and factory lifecycle events.

Provides a simple pub/sub mechanism consumed by metrics and external indexers.
"""
from typing import Dict, List, Callable, Any, Union
import logging

from protocol.types.common import EventType

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple event bus for staking events.

    Events are delivered synchronously in the same thread. A failing
    listener is logged and never affects the operation that emitted.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    @staticmethod
    def _key(event_type: Union[EventType, str]) -> str:
        return event_type.value if isinstance(event_type, EventType) else event_type

    def subscribe(self, event_type: Union[EventType, str], callback: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., EventType.STAKED or 'reward_paid')
            callback: Function to call when event is emitted
        """
        key = self._key(event_type)
        self.listeners.setdefault(key, []).append(callback)
        logger.debug(f"Subscribed to event: {key}")

    def unsubscribe(self, event_type: Union[EventType, str], callback: Callable) -> None:
        key = self._key(event_type)
        if key in self.listeners:
            try:
                self.listeners[key].remove(callback)
                logger.debug(f"Unsubscribed from event: {key}")
            except ValueError:
                logger.warning(f"Callback not found for event: {key}")

    def emit(self, event_type: Union[EventType, str], **data: Any) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event_type: Event name
            **data: Event data as keyword arguments
        """
        key = self._key(event_type)
        listeners = self.listeners.get(key, [])

        if not listeners:
            logger.debug(f"No listeners for event: {key}")
            return

        logger.debug(f"Emitting event: {key} to {len(listeners)} listener(s)")

        for callback in list(listeners):
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {key}: {e}", exc_info=True)

    def clear(self, event_type: Union[EventType, str, None] = None) -> None:
        """Clear listeners for one event type, or all listeners if no type specified."""
        if event_type:
            key = self._key(event_type)
            self.listeners.pop(key, None)
            logger.debug(f"Cleared listeners for event: {key}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")


# Global event bus instance
event_bus = EventBus()
