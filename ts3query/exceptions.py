"""ServerQuery client exceptions."""

from ts3query.types import TS3ErrorCode


class TS3Error(Exception):
    """Base exception for ServerQuery client errors."""

    pass


class TS3ConnectionError(TS3Error):
    """Connection-related errors (refused, disconnect, closed session)."""

    pass


class TS3TimeoutError(TS3ConnectionError):
    """Connecting to the server timed out."""

    pass


class TS3ProtocolError(TS3Error):
    """The server sent something the protocol does not allow. Fatal for the session."""

    pass


class TS3QueryError(TS3Error):
    """Command failed with an error status from the server."""

    def __init__(self, error_id: int, message: str, extra_message: str | None = None) -> None:
        try:
            self.error_code = TS3ErrorCode(error_id)
        except ValueError:
            self.error_code = TS3ErrorCode.UNDEFINED
        self.error_id = error_id
        self.error_message = message
        self.extra_message = extra_message

        text = f"Query failed: id={error_id} msg={message}"
        if extra_message:
            text += f"\n{extra_message}"
        super().__init__(text)
