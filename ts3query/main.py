import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError

from ts3query.config import CONFIG_PATH, Settings
from ts3query.connection import Command, ServerQuery
from ts3query.exceptions import TS3Error, TS3QueryError
from ts3query.types import Response

logger = logging.getLogger(__name__)


def parse_command_line(text: str) -> Command:
    """
    Turn ``"clientlist -uid"`` or ``"use sid=1"`` into a Command.

    Quoting follows shell rules, so values with spaces can be written as
    ``msg="hello world"``. Escaping for the wire happens later.
    """
    tokens = shlex.split(text)
    if not tokens:
        raise ValueError("Empty command")

    verb, *rest = tokens
    params: dict[str, str] = {}
    options: list[str] = []
    for token in rest:
        if token.startswith("-") and len(token) > 1:
            options.append(token[1:])
        elif "=" in token:
            key, value = token.split("=", 1)
            params[key] = value
        else:
            raise ValueError(f"Cannot parse {token!r} in {text!r}, expected key=value or -option")
    return Command(verb, params, tuple(options))


def format_response(response: Response | dict[str, Response]) -> str:
    return yaml.safe_dump(response, sort_keys=False, allow_unicode=True, default_flow_style=False)


async def run(settings: Settings, commands: list[Command], listen: bool = False) -> int:
    async with ServerQuery.from_settings(settings.query) as query:
        if settings.query.keepalive_interval:
            await query.start_keepalive(settings.query.keepalive_interval)

        for command in commands:
            try:
                response = await query.execute(command)
            except TS3QueryError as e:
                print(f"{command.verb}: {e}", file=sys.stderr)
                return 1
            if response is not None:
                print(format_response(response), end="")

        if listen:
            async for event in query.events():
                print(format_response({event.name: event.payload}), end="", flush=True)
            if query.error is not None:
                raise query.error

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="TeamSpeak 3 ServerQuery client")
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_PATH,
        help=f"Path to config file (default: {CONFIG_PATH})",
    )
    parser.add_argument("--host", help="Server address, overrides the config file")
    parser.add_argument("--port", type=int, help="ServerQuery port, overrides the config file")
    parser.add_argument(
        "--listen",
        action="store_true",
        help="Print notifications after the commands ran, until the connection closes",
    )
    parser.add_argument(
        "commands",
        nargs="*",
        metavar="COMMAND",
        help='Query command, e.g. "use sid=1" or "clientlist -uid"',
    )
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_yaml(args.config)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        parser.exit(1, f"Failed to load config file {args.config}: {e}\n")

    if args.host:
        settings.query.host = args.host
    if args.port:
        settings.query.port = args.port

    logging.basicConfig(
        level=settings.logging.level.upper(),
        format=settings.logging.format,
    )

    try:
        commands = [parse_command_line(text) for text in args.commands]
    except ValueError as e:
        parser.error(str(e))

    try:
        return asyncio.run(run(settings, commands, listen=args.listen))
    except TS3Error as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
