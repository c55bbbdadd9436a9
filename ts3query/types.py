"""Shared types for the ServerQuery client."""

from enum import Enum, IntEnum

Record = dict[str, str | bool]
Response = Record | list[Record] | None


class ConnectionState(Enum):
    """Lifecycle of a ServerQuery session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_BANNER = "awaiting_banner"
    READY = "ready"
    CLOSED = "closed"


class TS3ErrorCode(IntEnum):
    """Error ids reported in ServerQuery status lines."""

    OK = 0
    UNDEFINED = 1
    NOT_IMPLEMENTED = 2
    COMMAND_NOT_FOUND = 256
    INVALID_CLIENT_ID = 512
    NICKNAME_IN_USE = 513
    INVALID_LOGIN = 520
    CLIENT_FLOODING = 524
    INVALID_CHANNEL_ID = 768
    INVALID_SERVER_ID = 1024
    SERVER_NOT_RUNNING = 1033
    DATABASE_EMPTY_RESULT = 1281
    INVALID_PARAMETER = 1536
    PARAMETER_NOT_FOUND = 1537
    MISSING_PARAMETER = 1540
    INSUFFICIENT_PERMISSIONS = 2568
    BANNED = 3329
