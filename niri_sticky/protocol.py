"""
Request protocol for niri-sticky.

One whitespace-delimited line per request, one line per response.
"""

import json
from typing import Iterable, List, Optional

from pydantic import ValidationError

from .errors import ProtocolError
from .models import Command, Request, Response, ResponseKind, Selector, U64_MAX

ERROR_PREFIX = "Error: "

STAGE_FLAGS = {
    "--all": Selector.ALL,
    "--list": Selector.LIST,
    "--active": Selector.ACTIVE,
}

UNSTAGE_FLAGS = {
    "--all": Selector.ALL,
    "--active": Selector.ACTIVE,
}


def _parse_window_id(token: Optional[str], line: str) -> int:
    if token is None:
        raise ProtocolError("Missing window id", line)
    if not (token.isascii() and token.isdigit()) or int(token) > U64_MAX:
        raise ProtocolError(f"Invalid window id: {token}", line)
    return int(token)


def _rest(parts: List[str]) -> str:
    """Join the remaining words; titles may contain spaces."""
    return " ".join(parts)


def _build(line: str, **fields) -> Request:
    try:
        return Request(**fields)
    except ValidationError as e:
        raise ProtocolError(f"Invalid request: {e.errors()[0]['msg']}", line)


def _parse_selection(command: Command, parts: List[str], line: str) -> Request:
    """Parse the arguments of 'stage' or 'unstage'."""
    flags = STAGE_FLAGS if command == Command.STAGE else UNSTAGE_FLAGS
    name = command.value

    if not parts:
        raise ProtocolError(f"Missing argument for {name}", line)
    arg, rest = parts[0], parts[1:]

    if arg == "--toggle-appid":
        if not rest:
            raise ProtocolError("Missing appid for toggle", line)
        if command == Command.UNSTAGE:
            return _build(line, command=Command.TOGGLE_APPID, appid=rest[0])
        return _build(line, command=command, selector=Selector.TOGGLE_APPID, appid=rest[0])

    if arg == "--toggle-title":
        title = _rest(rest)
        if not title:
            raise ProtocolError("Missing title for toggle", line)
        if command == Command.UNSTAGE:
            return _build(line, command=Command.TOGGLE_TITLE, title=title)
        return _build(line, command=command, selector=Selector.TOGGLE_TITLE, title=title)

    if arg in flags:
        return _build(line, command=command, selector=flags[arg])

    if arg == "--appid":
        if not rest:
            raise ProtocolError(f"Missing appid for {name}", line)
        return _build(line, command=command, selector=Selector.APPID, appid=rest[0])

    if arg == "--title":
        title = _rest(rest)
        if not title:
            raise ProtocolError(f"Missing title for {name}", line)
        return _build(line, command=command, selector=Selector.TITLE, title=title)

    if arg.startswith("--"):
        raise ProtocolError(f"Unknown option for {name}: {arg}", line)

    return _build(line, command=command, selector=Selector.ID,
                  window_id=_parse_window_id(arg, line))


def parse_request(line: str) -> Request:
    """
    Parse a request line.

    Args:
        line: Raw request text

    Returns:
        Parsed Request

    Raises:
        ProtocolError: On an unknown keyword or a missing/invalid argument
    """
    line = line.strip()
    parts = line.split()
    if not parts:
        raise ProtocolError("Empty command", line)

    keyword, rest = parts[0], parts[1:]
    try:
        command = Command(keyword)
    except ValueError:
        raise ProtocolError(f"Unknown command: {keyword}", line)

    if command in (Command.ADD, Command.REMOVE):
        return _build(line, command=command,
                      window_id=_parse_window_id(rest[0] if rest else None, line))

    if command == Command.TOGGLE_APPID:
        if not rest:
            raise ProtocolError("Missing appid", line)
        return _build(line, command=command, appid=rest[0])

    if command == Command.TOGGLE_TITLE:
        title = _rest(rest)
        if not title:
            raise ProtocolError("Missing title", line)
        return _build(line, command=command, title=title)

    if command in (Command.STAGE, Command.UNSTAGE):
        return _parse_selection(command, rest, line)

    # list, toggle_active, ping
    return _build(line, command=command)


def render_ids(window_ids: Iterable[int]) -> str:
    """Render window IDs as a JSON array in ascending order."""
    return json.dumps(sorted(window_ids))


def format_response(response: Response) -> str:
    """Render a response as a single line."""
    text = " ".join(response.text.splitlines())
    if response.kind == ResponseKind.ERROR:
        return f"{ERROR_PREFIX}{text}"
    return text


def is_error_line(line: str) -> bool:
    return line.startswith(ERROR_PREFIX)
