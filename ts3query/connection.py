"""Async TS3 ServerQuery session."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Self

from ts3query.command_queue import CommandQueue, PendingCommand
from ts3query.events import ANY_EVENT, EventEmitter, Handler, NotificationEvent
from ts3query.exceptions import TS3ConnectionError, TS3Error, TS3ProtocolError, TS3QueryError, TS3TimeoutError
from ts3query.protocol import build_command, parse_response, parse_status, strip_empty_keys
from ts3query.types import ConnectionState, Response

if TYPE_CHECKING:
    from ts3query.config import QuerySettings

logger = logging.getLogger(__name__)

HANDSHAKE_TAG = "TS3"
WELCOME_PREFIX = "Welcome to the TeamSpeak 3 ServerQuery interface"
NOTIFY_MARKER = "notif"
ERROR_MARKER = "error"


@dataclass(frozen=True)
class Command:
    """A query command: verb, ``key=value`` parameters and ``-option`` flags."""

    verb: str
    params: Mapping[str, object] = field(default_factory=dict)
    options: Sequence[str] = ()

    def to_line(self) -> str:
        return build_command(self.verb, self.params, self.options)


class ServerQuery:
    """
    Async TeamSpeak 3 ServerQuery session.

    One TCP connection, one command on the wire at a time. Commands queue up
    in call order and each ``send()`` returns a future for its response.
    Server notifications are published as events named after their tag.

    Usage:
        async with ServerQuery(host, port) as query:
            await query.send("login", {"client_login_name": user, "client_login_password": password})
            await query.send("use", {"sid": 1})
            query.on("notifytextmessage", handle_message)
            await query.send("servernotifyregister", {"event": "textprivate"})
            clients = await query.send("clientlist", options=["uid"])

    Events:
        ``connect``  the welcome banner arrived, commands are flowing
        ``close``    the session ended; receives the list of commands that
                     were still queued (they are failed right after)
        ``error``    a transport or protocol error ended the session
        ``notify*``  one event per notification tag, with a NotificationEvent
        ``*``        every event, called with the event name first
    """

    DEFAULT_TIMEOUT: float = 10.0
    DEFAULT_LINE_LIMIT: int = 2**20
    KEEPALIVE_INTERVAL: float = 5.0

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 10011,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        line_limit: int = DEFAULT_LINE_LIMIT,
        log: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._line_limit = line_limit
        self._log = log or logger

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

        # Tasks
        self._recv_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._ready: asyncio.Future[None] | None = None
        self._closed = asyncio.Event()
        self._error: TS3Error | None = None

        self._events = EventEmitter(self._log)
        self._queue = CommandQueue(self._write_line, lambda: self._state is ConnectionState.READY, self._log)

    @classmethod
    def from_settings(cls, settings: "QuerySettings", log: logging.Logger | None = None) -> Self:
        """Create a session from the ``query`` configuration section."""
        return cls(
            settings.host,
            settings.port,
            timeout=settings.timeout,
            line_limit=settings.line_limit,
            log=log,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        """Check if the handshake finished and the session is usable."""
        return self._state is ConnectionState.READY

    @property
    def error(self) -> TS3Error | None:
        """The transport or protocol error that ended the session, if any."""
        return self._error

    async def connect(self, host: str | None = None, port: int | None = None) -> None:
        """Open the connection and wait for the welcome banner."""
        if self._state is not ConnectionState.DISCONNECTED:
            raise TS3ConnectionError(f"Cannot connect while {self._state.value}")
        if host is not None:
            self._host = host
        if port is not None:
            self._port = port

        self._state = ConnectionState.CONNECTING
        self._log.debug("Connecting to %s:%s", self._host, self._port)

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port, limit=self._line_limit),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            error: TS3Error = TS3TimeoutError(f"Connection to {self._host}:{self._port} timed out")
            self._handle_fatal(error)
            raise error from e
        except OSError as e:
            error = TS3ConnectionError(f"Failed to connect: {e}")
            self._handle_fatal(error)
            raise error from e

        self._state = ConnectionState.AWAITING_BANNER
        self._ready = asyncio.get_running_loop().create_future()
        self._log.debug("Connected, waiting for welcome banner")
        self._recv_task = asyncio.create_task(self._receive_loop())

        try:
            await asyncio.wait_for(self._ready, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            error = TS3TimeoutError(f"No welcome banner from {self._host}:{self._port}")
            self._handle_fatal(error)
            raise error from e

    async def close(self) -> None:
        """Close the connection and fail every command still outstanding."""
        if self._keepalive_task:
            self._keepalive_task.cancel()
            try:
                await self._keepalive_task
            except asyncio.CancelledError:
                pass

        if self._recv_task and not self._recv_task.done():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass

        self._finish(None)

        if self._writer:
            try:
                await self._writer.wait_closed()
            except OSError:
                pass

    async def wait_closed(self) -> None:
        """Wait until the session is closed. Re-raises the error that ended it, if any."""
        await self._closed.wait()
        if self._error is not None:
            raise self._error

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # ============ Commands ============

    def send(
        self,
        verb: str,
        params: Mapping[str, object] | None = None,
        options: Sequence[str] | None = None,
    ) -> asyncio.Future[Response]:
        """
        Queue a command and return a future for its response.

        The future resolves with None, a record or a list of records, or
        fails with TS3QueryError when the server reports an error. Commands
        are written in the order ``send()`` was called.
        """
        return self.execute(Command(verb, dict(params or {}), tuple(options or ())))

    def execute(self, command: Command) -> asyncio.Future[Response]:
        """Queue a prepared Command. See ``send()``."""
        if self._state is ConnectionState.CLOSED:
            raise TS3ConnectionError("Connection is closed")

        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()
        self._queue.enqueue(PendingCommand(command.to_line(), future))
        return future

    def _write_line(self, line: str) -> None:
        if not self._writer:
            raise TS3ConnectionError("Not connected")
        self._writer.write(line.encode("utf-8"))

    # ============ Events ============

    def on(self, name: str, handler: Handler) -> Callable[[], bool]:
        """Subscribe to an event. Returns a callable that unsubscribes again."""
        return self._events.on(name, handler)

    def off(self, name: str, handler: Handler) -> bool:
        return self._events.off(name, handler)

    async def events(self) -> AsyncIterator[NotificationEvent]:
        """
        Async iterator over notifications, ending when the session closes.

        Usage:
            async for event in query.events():
                if event.name == "notifytextmessage":
                    ...
        """
        if self._state is ConnectionState.CLOSED:
            return

        pending: asyncio.Queue[NotificationEvent | None] = asyncio.Queue()

        def forward(name: str, *args: Any) -> None:
            if name == "close":
                pending.put_nowait(None)
            elif args and isinstance(args[0], NotificationEvent):
                pending.put_nowait(args[0])

        unsubscribe = self._events.on(ANY_EVENT, forward)
        try:
            while True:
                event = await pending.get()
                if event is None:
                    return
                yield event
        finally:
            unsubscribe()

    # ============ Receiving ============

    async def _receive_loop(self) -> None:
        """Background task that frames incoming lines and dispatches them."""
        assert self._reader is not None
        try:
            while self._state is not ConnectionState.CLOSED:
                raw = await self._reader.readline()
                if not raw:
                    raise TS3ConnectionError("Connection closed by server")
                self._process_line(raw.decode("utf-8", errors="replace"))
        except asyncio.CancelledError:
            raise
        except TS3Error as e:
            self._handle_fatal(e)
        except ValueError as e:
            # StreamReader.readline() reports an overlong line this way
            self._handle_fatal(TS3ProtocolError(f"Line exceeds limit: {e}"))
        except OSError as e:
            self._handle_fatal(TS3ConnectionError(f"Connection lost: {e}"))

    def _process_line(self, raw: str) -> None:
        """Classify one framed line and route it."""
        line = raw.strip()

        if line == HANDSHAKE_TAG:
            return

        if line.startswith(WELCOME_PREFIX):
            self._on_banner()
            return

        if line[:5] == NOTIFY_MARKER:
            self._on_notification(line)
            return

        active = self._queue.active
        if active is None:
            if not line:
                raise TS3ConnectionError("Connection closed")
            raise TS3ProtocolError(f"Unexpected message: {line!r}")

        if line[:5] != ERROR_MARKER:
            self._queue.append_line(line)
            return

        status = parse_status(line[len(ERROR_MARKER) :])
        if status.id > 0:
            self._queue.fail(TS3QueryError(status.id, status.msg, status.extra_msg))
        else:
            self._queue.complete(strip_empty_keys(parse_response(active.buffer)))

    def _on_banner(self) -> None:
        if self._state is ConnectionState.READY:
            self._log.debug("Ignoring repeated welcome banner")
            return

        self._log.debug("Connection established")
        self._state = ConnectionState.READY
        self._events.emit("connect")
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)
        self._queue.advance()

    def _on_notification(self, line: str) -> None:
        name, _, payload = line.partition(" ")
        self._log.debug("Emit notification %s", name)
        self._events.emit(name, NotificationEvent(name, strip_empty_keys(parse_response(payload))))

    # ============ Shutdown ============

    def _handle_fatal(self, error: TS3Error) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        self._log.error("Session failed: %s", error)
        self._error = error
        self._events.emit("error", error)
        self._finish(error)

    def _finish(self, error: TS3Error | None) -> None:
        """Move to CLOSED exactly once and fail everything still outstanding."""
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED

        if self._keepalive_task:
            self._keepalive_task.cancel()
        if self._writer:
            self._writer.close()

        reason = error or TS3ConnectionError("Connection closed")
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(reason)

        queued = self._queue.drain()
        self._events.emit("close", queued)

        if self._queue.active is not None:
            self._queue.fail(reason)
        for pending in queued:
            if not pending.future.done():
                pending.future.set_exception(reason)

        self._closed.set()
        self._log.debug("Connection closed, %d queued command(s) failed", len(queued))

    # ============ Keepalive ============

    async def start_keepalive(self, interval: float = KEEPALIVE_INTERVAL, verb: str = "whoami") -> None:
        """Start background keepalive task."""
        if self._keepalive_task and not self._keepalive_task.done():
            return
        self._keepalive_task = asyncio.create_task(self._keepalive_loop(interval, verb))

    async def _keepalive_loop(self, interval: float, verb: str) -> None:
        """Send a harmless command periodically so the server keeps the session."""
        while self._state is not ConnectionState.CLOSED:
            try:
                await asyncio.sleep(interval)
                await self.send(verb)
            except asyncio.CancelledError:
                break
            except TS3Error as e:
                self._log.warning("Keepalive failed: %s", e)
