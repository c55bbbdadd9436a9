"""ServerQuery wire format: escaping, command building and response parsing."""

from collections.abc import Mapping, Sequence
from typing import Final, NamedTuple

from ts3query.exceptions import TS3ProtocolError
from ts3query.types import Record, Response

# Don't change the order in this map, backslash has to be escaped first
_ESCAPE_MAP: Final[list[tuple[str, str]]] = [
    ("\\", r"\\"),
    ("/", r"\/"),
    ("|", r"\p"),
    ("\n", r"\n"),
    ("\r", r"\r"),
    ("\t", r"\t"),
    ("\v", r"\v"),
    ("\f", r"\f"),
    ("\a", r"\a"),
    ("\b", r"\b"),
    (" ", r"\s"),
]

_UNESCAPE_MAP: Final[dict[str, str]] = {escaped[1]: char for char, escaped in _ESCAPE_MAP}


class Status(NamedTuple):
    """Parsed terminal status line of a command response."""

    id: int
    msg: str
    extra_msg: str | None = None


def escape(raw: object) -> str:
    """Escape special characters for the ServerQuery protocol."""
    text = str(raw)
    for char, replacement in _ESCAPE_MAP:
        text = text.replace(char, replacement)
    return text


def unescape(raw: object) -> str:
    """
    Unescape ServerQuery protocol characters.

    Scans once from left to right, so an escaped backslash followed by a
    letter (``\\\\s``) comes back as a backslash and a letter, never as a
    space. Unknown or dangling escapes are kept as they are.
    """
    text = str(raw)
    if "\\" not in text:
        return text

    out: list[str] = []
    i = 0
    end = len(text)
    while i < end:
        char = text[i]
        if char == "\\" and i + 1 < end and text[i + 1] in _UNESCAPE_MAP:
            out.append(_UNESCAPE_MAP[text[i + 1]])
            i += 2
        else:
            out.append(char)
            i += 1
    return "".join(out)


def build_command(
    verb: str,
    params: Mapping[str, object] | None = None,
    options: Sequence[str] | None = None,
) -> str:
    """Build a single command line (without terminator) with proper escaping."""
    parts = [escape(verb)]
    if params:
        parts.extend(f"{escape(key)}={escape(value)}" for key, value in params.items())
    if options:
        parts.extend(f"-{escape(option)}" for option in options)
    return " ".join(parts)


def parse_record(group: str) -> Record:
    """Parse one pipe-free group of tokens into a record."""
    record: Record = {}
    for token in group.replace("\n", " ").split(" "):
        if "=" in token:
            key, value = token.split("=", 1)
            record[unescape(key)] = unescape(value)
        else:
            # Flag without value
            record[unescape(token)] = True
    return record


def parse_response(payload: str) -> Response:
    """
    Parse an unframed response payload.

    Returns None for an empty payload, a single record when the payload holds
    one group, and a list of records when it holds several ``|``-separated
    groups.
    """
    payload = payload.strip()
    if not payload:
        return None

    records = [parse_record(group) for group in payload.split("|")]
    if len(records) == 1:
        return records[0]
    return records


def strip_empty_keys(response: Response) -> Response:
    """Drop the empty-string key that stray spaces leave behind."""
    if response is None:
        return None
    if isinstance(response, list):
        return [{k: v for k, v in record.items() if k != ""} for record in response]
    return {k: v for k, v in response.items() if k != ""}


def parse_status(payload: str) -> Status:
    """Parse the parameters of an ``error`` status line."""
    record = parse_response(payload)
    if not isinstance(record, dict) or "id" not in record:
        raise TS3ProtocolError(f"Malformed status line: {payload!r}")

    raw_id = record["id"]
    try:
        if not isinstance(raw_id, str):
            raise ValueError(raw_id)
        error_id = int(raw_id)
    except ValueError as e:
        raise TS3ProtocolError(f"Malformed status id: {raw_id!r}") from e

    msg = record.get("msg", "")
    extra_msg = record.get("extra_msg")
    return Status(
        id=error_id,
        msg=msg if isinstance(msg, str) else "",
        extra_msg=extra_msg if isinstance(extra_msg, str) else None,
    )
