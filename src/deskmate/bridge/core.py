"""Command/event bridge between the controllers and the backend.

Commands are fire-and-await: one response or one ``BridgeError``. Long-running
backend work also publishes notifications on named channels that callers must
explicitly ``listen`` to.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class BridgeError(RuntimeError):
    """Raised when a bridge command fails, carrying the backend's description."""


class Subscription:
    """Handle for one listener on one channel; release it with ``close()``."""

    def __init__(self, event: str, release: Callable[[], None]) -> None:
        self.event = event
        self._release: Callable[[], None] | None = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def close(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CommandBridge(Protocol):
    async def invoke(self, command: str, **params: Any) -> Any:
        """Run one backend command and return its JSON-like response."""

    def listen(self, event: str, listener: Listener) -> Subscription:
        """Subscribe ``listener`` to push events published on ``event``."""


def to_wire(value: Any) -> Any:
    """Convert models (and lists of them) into the JSON-like form carried by the bridge."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    return value


class LocalBridge:
    """In-process bridge: a command registry plus named push channels.

    Coroutine handlers run on the event loop; plain functions are treated as
    blocking work and run in a worker thread. Whatever a handler raises reaches
    the caller as ``BridgeError``.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def register(self, command: str, handler: Callable[..., Any]) -> None:
        if command in self._handlers:
            raise ValueError(f"Command already registered: {command}")
        self._handlers[command] = handler

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def invoke(self, command: str, **params: Any) -> Any:
        handler = self._handlers.get(command)
        if handler is None:
            raise BridgeError(f"Unknown command: {command}")
        try:
            if inspect.iscoroutinefunction(handler):
                result = await handler(**params)
            else:
                result = await asyncio.to_thread(handler, **params)
        except BridgeError:
            raise
        except Exception as exc:
            logger.debug("Command %s failed", command, exc_info=True)
            raise BridgeError(str(exc) or exc.__class__.__name__) from exc
        return to_wire(result)

    def listen(self, event: str, listener: Listener) -> Subscription:
        self._listeners[event].append(listener)

        def release() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return Subscription(event, release)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any) -> None:
        """Publish ``payload`` to every current listener of ``event``.

        Must be called from the event loop thread. A failing listener is logged
        and does not stop delivery to the others.
        """
        wire = to_wire(payload)
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(wire)
            except Exception:
                logger.exception("Listener for %s raised", event)
