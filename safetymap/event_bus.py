"""In-process change notification channel.

Stands in for a realtime changefeed (remote store) and for the cross-tab storage
event (local store): emitting carries no payload, listeners re-read on receipt.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], Union[Awaitable[None], None]]


class ChangeChannel:
    """Fan-out of change signals to registered listeners, in registration order."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._listeners: list[ChangeListener] = []

    def on(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it (safe to call twice)."""
        self._listeners.append(listener)

        def off() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return off

    async def emit(self) -> None:
        """Notify every listener. A failing listener does not stop the rest."""
        for listener in list(self._listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("Change listener on %s failed: %s", self.name or "channel", e)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


_channels: dict[str, ChangeChannel] = {}


def channel_for(key: str) -> ChangeChannel:
    """Process-wide channel per key, shared by every store bound to the same storage."""
    channel = _channels.get(key)
    if channel is None:
        channel = ChangeChannel(key)
        _channels[key] = channel
    return channel


def reset_channels() -> None:
    _channels.clear()


def call_listener(callback: Callable[..., Any], *args: Any) -> Union[Awaitable[Any], None]:
    """Invoke a sync or async callback; returns the awaitable if there is one."""
    result = callback(*args)
    return result if inspect.isawaitable(result) else None
