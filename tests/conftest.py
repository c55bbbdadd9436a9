"""Shared test fixtures for the ts3query test suite."""

import asyncio
from collections.abc import Callable

import pytest
import pytest_asyncio

from ts3query.connection import ServerQuery
from ts3query.types import ConnectionState

WELCOME = (
    'Welcome to the TeamSpeak 3 ServerQuery interface, type "help" for a list of commands '
    'and "help <command>" for information on a specific command.'
)


class FakeWriter:
    """Stands in for asyncio.StreamWriter and records every written line."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        text = data.decode("utf-8")
        assert text.endswith("\n")
        self.lines.append(text[:-1])

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


def handshake(query: ServerQuery) -> None:
    """Feed the two greeting lines a real server sends."""
    query._process_line("TS3\n")
    query._process_line("\r" + WELCOME + "\n")


@pytest.fixture
def writer() -> FakeWriter:
    return FakeWriter()


@pytest.fixture
def query(writer: FakeWriter) -> ServerQuery:
    """A session whose socket was just opened, driven line by line."""
    query = ServerQuery()
    query._writer = writer  # type: ignore[assignment]
    query._state = ConnectionState.AWAITING_BANNER
    return query


class FakeServer:
    """
    Minimal ServerQuery server on localhost.

    Greets every client, records each request line and answers from
    ``replies`` (request line -> response lines). Requests without an entry
    get a plain ``error id=0 msg=ok``.
    """

    def __init__(self) -> None:
        self.replies: dict[str, list[str]] = {}
        self.received: list[str] = []
        self.greet = True
        self.port = 0
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        for writer in self._writers:
            writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    def push(self, line: str) -> None:
        """Send an unsolicited line to every connected client."""
        for writer in self._writers:
            writer.write(line.encode("utf-8") + b"\n\r")

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        if self.greet:
            writer.write(b"TS3\n\r" + WELCOME.encode("utf-8") + b"\n\r")
            await writer.drain()

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                request = line.decode("utf-8").strip()
                self.received.append(request)
                for reply in self.replies.get(request, ["error id=0 msg=ok"]):
                    writer.write(reply.encode("utf-8") + b"\n\r")
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()


@pytest_asyncio.fixture
async def server():
    srv = FakeServer()
    await srv.start()
    yield srv
    await srv.stop()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail the test after ``timeout``."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)
