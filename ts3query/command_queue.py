"""Pending command bookkeeping: one command on the wire at a time."""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from ts3query.types import Response

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PendingCommand:
    """A command waiting for, or currently collecting, its response."""

    request: str
    future: asyncio.Future[Response]
    buffer: str = field(default="", repr=False)


class CommandQueue:
    """
    FIFO of pending commands with a single active slot.

    The queue never talks to the socket itself. It is handed a ``write``
    callable that puts one line on the wire and an ``is_ready`` callable that
    tells whether the session finished its handshake.
    """

    def __init__(
        self,
        write: Callable[[str], None],
        is_ready: Callable[[], bool],
        log: logging.Logger | None = None,
    ) -> None:
        self._write = write
        self._is_ready = is_ready
        self._log = log or logger
        self._pending: deque[PendingCommand] = deque()
        self.active: PendingCommand | None = None

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def idle(self) -> bool:
        return self.active is None

    def enqueue(self, pending: PendingCommand) -> None:
        self._log.debug("Adding %r to send queue", pending.request)
        self._pending.append(pending)
        self.advance()

    def advance(self) -> None:
        """Write the next command if ready and nothing is in flight."""
        if not self._is_ready() or self.active is not None:
            return

        while self._pending:
            pending = self._pending.popleft()
            if pending.future.done():
                # Cancelled by the caller before it reached the wire
                self._log.debug("Skipping cancelled command %r", pending.request)
                continue
            self.active = pending
            self._log.debug("Sending %r", pending.request)
            self._write(pending.request + "\n")
            return

    def append_line(self, line: str) -> None:
        """Add a response line to the active command's buffer."""
        if self.active is None:
            raise RuntimeError("No active command")
        self.active.buffer += line + "\n"

    def complete(self, result: Response) -> None:
        """Resolve the active command and move on to the next one."""
        pending = self._release()
        self._log.debug("Successfully executed %r", pending.request)
        if not pending.future.done():
            pending.future.set_result(result)
        self.advance()

    def fail(self, exc: BaseException) -> None:
        """Reject the active command and move on to the next one."""
        pending = self._release()
        self._log.debug("Failed to execute %r: %s", pending.request, exc)
        if not pending.future.done():
            pending.future.set_exception(exc)
        self.advance()

    def drain(self) -> list[PendingCommand]:
        """Remove and return every queued command that is not yet on the wire."""
        drained = list(self._pending)
        self._pending.clear()
        return drained

    def _release(self) -> PendingCommand:
        if self.active is None:
            raise RuntimeError("No active command")
        pending, self.active = self.active, None
        return pending
