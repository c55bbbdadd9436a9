"""
ts3query - Async TeamSpeak 3 ServerQuery client.

Usage:
    from ts3query import ServerQuery

    async with ServerQuery("localhost", 10011) as query:
        await query.send("login", {"client_login_name": "serveradmin", "client_login_password": "secret"})
        await query.send("use", {"sid": 1})

        await query.send("servernotifyregister", {"event": "textprivate"})

        async for event in query.events():
            handle_event(event)
"""

from ts3query.connection import Command, ServerQuery
from ts3query.events import NotificationEvent
from ts3query.exceptions import (
    TS3ConnectionError,
    TS3Error,
    TS3ProtocolError,
    TS3QueryError,
    TS3TimeoutError,
)
from ts3query.protocol import build_command, escape, parse_response, unescape
from ts3query.types import ConnectionState, Record, Response, TS3ErrorCode

__all__ = [
    # Connection
    "ServerQuery",
    "Command",
    "ConnectionState",
    # Events
    "NotificationEvent",
    # Protocol
    "escape",
    "unescape",
    "build_command",
    "parse_response",
    # Exceptions
    "TS3Error",
    "TS3ConnectionError",
    "TS3ProtocolError",
    "TS3QueryError",
    "TS3TimeoutError",
    # Types
    "Record",
    "Response",
    "TS3ErrorCode",
]

__version__ = "1.0.0"
