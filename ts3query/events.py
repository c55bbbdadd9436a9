"""Notification events and a small observer for session events."""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ts3query.types import Response

logger = logging.getLogger(__name__)

# Handlers registered under this name receive every event as (name, *args)
ANY_EVENT = "*"

Handler = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """Server-pushed notification, e.g. ``notifycliententerview``."""

    name: str
    payload: Response


class EventEmitter:
    """
    Name-keyed publish/subscribe.

    Handlers may be plain functions or coroutine functions. Coroutines are
    scheduled on the running loop. A failing handler is logged and does not
    stop the others.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._handlers: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, name: str, handler: Handler) -> Callable[[], bool]:
        """Subscribe ``handler`` to ``name``. Returns a callable that unsubscribes it."""
        handlers = self._handlers.setdefault(name, [])
        if handler not in handlers:
            handlers.append(handler)
        return lambda: self.off(name, handler)

    def off(self, name: str, handler: Handler) -> bool:
        handlers = self._handlers.get(name, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def listeners(self, name: str) -> list[Handler]:
        return list(self._handlers.get(name, []))

    def emit(self, name: str, *args: Any) -> None:
        for handler in self.listeners(name):
            self._call(handler, *args)
        if name != ANY_EVENT:
            for handler in self.listeners(ANY_EVENT):
                self._call(handler, name, *args)

    def _call(self, handler: Handler, *args: Any) -> None:
        try:
            result = handler(*args)
        except Exception:
            self._log.exception("Event handler %r failed", handler)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._log.error("Event handler task failed", exc_info=task.exception())
