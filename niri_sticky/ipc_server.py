"""
IPC server for niri-sticky.

Line-oriented Unix socket server: each request line is parsed, routed to
the transition engine, and answered with one response line.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .engine import TransitionEngine
from .errors import StickyError
from .host import HostGateway
from .models import Command, Request, Response, Selector
from .protocol import format_response, parse_request, render_ids

logger = logging.getLogger(__name__)


class IPCServer:
    """Request server for the sticky window daemon."""

    def __init__(self, engine: TransitionEngine, host: HostGateway, socket_path: Path):
        """
        Initialize IPC server.

        Args:
            engine: Transition engine requests are routed to
            host: Gateway used to look up the active workspace for unstaging
            socket_path: Unix socket to listen on
        """
        self.engine = engine
        self.host = host
        self.socket_path = socket_path
        self.server: Optional[asyncio.AbstractServer] = None
        self.clients = set()

    async def start(self):
        """Start IPC server."""
        # Ensure socket directory exists
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        # Remove stale socket
        if self.socket_path.exists():
            self.socket_path.unlink()

        self.server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path)
        )

        logger.info(f"IPC server listening on {self.socket_path}")

    async def stop(self):
        """Stop IPC server."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()

        if self.socket_path.exists():
            self.socket_path.unlink()

        logger.info("IPC server stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        Handle client connection.

        Args:
            reader: Stream reader
            writer: Stream writer
        """
        logger.debug("Client connected")
        self.clients.add(writer)

        try:
            while True:
                try:
                    data = await reader.readline()
                except ValueError:
                    # Over the stream limit; the rest of the line can't be framed
                    logger.warning("Dropping client: request line exceeds stream limit")
                    reply = format_response(Response.error("Request line too long"))
                    writer.write((reply + "\n").encode())
                    await writer.drain()
                    break
                if not data:
                    break

                reply = await self.handle_line(data.decode(errors="replace"))
                writer.write((reply + "\n").encode())
                await writer.drain()

        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Client connection dropped: {e}")
        finally:
            self.clients.discard(writer)
            writer.close()
            logger.debug("Client disconnected")

    async def handle_line(self, line: str) -> str:
        """Parse, execute and render one request line."""
        try:
            request = parse_request(line)
        except StickyError as e:
            logger.debug(f"Rejected request {line.strip()!r}: {e.message}")
            return format_response(Response.error(e.message))

        logger.debug(f"Received request: {request.command.value}")

        try:
            response = await self._dispatch(request)
        except StickyError as e:
            logger.info(f"{request.command.value} failed: {e.message}")
            response = Response.error(e.message)
        except Exception as e:
            logger.error(f"Unexpected error handling {request.command.value}: {e}", exc_info=True)
            response = Response.error(f"Internal error: {e}")

        return format_response(response)

    async def _dispatch(self, request: Request) -> Response:
        """Route a parsed request to the engine."""
        command = request.command

        if command == Command.ADD:
            if await self.engine.add(request.window_id):
                return Response.success(f"Added window {request.window_id} to sticky list")
            return Response.success(f"Window {request.window_id} already in sticky list")

        if command == Command.REMOVE:
            if await self.engine.remove(request.window_id):
                return Response.success(f"Removed window {request.window_id} from sticky list")
            return Response.success(f"Window {request.window_id} not in sticky list")

        if command == Command.LIST:
            return Response.data(render_ids(await self.engine.list_sticky()))

        if command == Command.TOGGLE_ACTIVE:
            if await self.engine.toggle_focused():
                return Response.success("Active window added to sticky list")
            return Response.success("Active window removed from sticky list")

        if command == Command.TOGGLE_APPID:
            sticky = await self.engine.toggle_by_label(request.appid)
            return Response.success(self._toggle_message(f"with appid {request.appid}", sticky))

        if command == Command.TOGGLE_TITLE:
            sticky = await self.engine.toggle_by_title(request.title)
            return Response.success(
                self._toggle_message(f"with title containing '{request.title}'", sticky)
            )

        if command == Command.STAGE:
            return await self._dispatch_stage(request)

        if command == Command.UNSTAGE:
            return await self._dispatch_unstage(request)

        if command == Command.PING:
            return Response.success("pong")

        raise ValueError(f"Unhandled command: {command.value}")

    @staticmethod
    def _toggle_message(subject: str, sticky: bool) -> str:
        if sticky:
            return f"Window {subject} added to sticky list"
        return f"Window {subject} removed from sticky list"

    async def _dispatch_stage(self, request: Request) -> Response:
        selector = request.selector

        if selector == Selector.ID:
            await self.engine.stage(request.window_id)
            return Response.success(f"Staged window {request.window_id}")
        if selector == Selector.ALL:
            count = await self.engine.stage_all()
            return Response.success(f"Staged {count} windows")
        if selector == Selector.LIST:
            return Response.data(render_ids(await self.engine.list_staged()))
        if selector == Selector.ACTIVE:
            window_id = await self.engine.stage_focused()
            return Response.success(f"Staged active window {window_id}")
        if selector == Selector.APPID:
            window_id = await self.engine.stage_by_label(request.appid)
            return Response.success(f"Staged window {window_id} with appid {request.appid}")
        if selector == Selector.TITLE:
            window_id = await self.engine.stage_by_title(request.title)
            return Response.success(
                f"Staged window {window_id} with title containing '{request.title}'"
            )

        if selector == Selector.TOGGLE_APPID:
            subject = f"with appid {request.appid}"
            unstaged_to = await self.engine.toggle_stage_by_label(request.appid)
        else:
            subject = f"with title containing '{request.title}'"
            unstaged_to = await self.engine.toggle_stage_by_title(request.title)
        if unstaged_to is None:
            return Response.success(f"Window {subject} staged")
        return Response.success(f"Window {subject} unstaged to workspace {unstaged_to}")

    async def _dispatch_unstage(self, request: Request) -> Response:
        selector = request.selector
        context_id = await self.host.get_active_context()

        if selector == Selector.ID:
            await self.engine.unstage(request.window_id, context_id)
            return Response.success(
                f"Unstaged window {request.window_id} to workspace {context_id}"
            )
        if selector == Selector.ALL:
            count = await self.engine.unstage_all(context_id)
            return Response.success(f"Unstaged {count} windows to workspace {context_id}")
        if selector == Selector.ACTIVE:
            window_id = await self.engine.unstage_focused(context_id)
            return Response.success(f"Unstaged active window {window_id}")
        if selector == Selector.APPID:
            window_id = await self.engine.unstage_by_label(request.appid, context_id)
            return Response.success(f"Unstaged window {window_id} with appid {request.appid}")
        if selector == Selector.TITLE:
            window_id = await self.engine.unstage_by_title(request.title, context_id)
            return Response.success(
                f"Unstaged window {window_id} with title containing '{request.title}'"
            )

        raise ValueError(f"Unhandled unstage selector: {selector}")
