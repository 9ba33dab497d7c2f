"""niri host gateway.

Queries niri for its live windows, focused window and active workspace, and
moves windows between workspaces. Queries go through either a one-shot
'niri msg --json' invocation or the IPC socket; moves and the event stream
always use the socket.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Union

from pydantic import ValidationError

from .config import DaemonConfig
from .errors import HostRejected, HostUnavailable, NoActiveContext, NoFocus
from .logging_config import log_ipc_message, log_subprocess_call
from .models import WindowInfo, WorkspaceInfo

logger = logging.getLogger(__name__)

Destination = Union[int, str]

# niri sends WindowsChanged/WorkspacesChanged as one line holding the full list
STREAM_LIMIT = 64 * 1024 * 1024

# 'niri msg' subcommand -> socket request name
QUERY_REQUESTS = {
    "windows": "Windows",
    "focused-window": "FocusedWindow",
    "workspaces": "Workspaces",
}


class HostGateway(ABC):
    """Operations the transition engine needs from the compositor."""

    @abstractmethod
    async def list_windows(self) -> List[WindowInfo]:
        """Return every live window in host order."""

    @abstractmethod
    async def get_focused_resource(self) -> int:
        """Return the focused window ID, raising NoFocus if there is none."""

    @abstractmethod
    async def get_active_context(self) -> int:
        """Return the active workspace ID, raising NoActiveContext if there is none."""

    @abstractmethod
    async def move_resource(self, window_id: int, destination: Destination) -> None:
        """Move a window to a workspace given by ID (int) or name (str)."""

    @abstractmethod
    def event_stream(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield compositor events as decoded JSON objects."""

    async def list_live_resources(self) -> Set[int]:
        """Return the IDs of every live window."""
        return {window.id for window in await self.list_windows()}

    async def resolve_by_label(self, label: str) -> Optional[int]:
        """Return the first window whose app_id equals label."""
        for window in await self.list_windows():
            if window.app_id is not None and window.app_id == label:
                return window.id
        return None

    async def resolve_by_title(self, substring: str) -> Optional[int]:
        """Return the first window whose title contains substring."""
        for window in await self.list_windows():
            if window.title is not None and substring in window.title:
                return window.id
        return None


class SocketTransport:
    """Line-delimited JSON requests over niri's IPC socket."""

    def __init__(self, socket_path: Optional[str], timeout: float, limit: int = STREAM_LIMIT):
        self.socket_path = socket_path
        self.timeout = timeout
        self.limit = limit

    async def _connect(self, operation: str):
        if not self.socket_path:
            raise HostUnavailable(operation, "NIRI_SOCKET is not set")
        try:
            return await asyncio.wait_for(
                asyncio.open_unix_connection(self.socket_path, limit=self.limit), self.timeout
            )
        except asyncio.TimeoutError:
            raise HostUnavailable(operation, f"connect timed out after {self.timeout}s")
        except OSError as e:
            raise HostUnavailable(operation, str(e))

    @staticmethod
    def _unwrap(operation: str, line: bytes) -> Any:
        """Decode a reply line and return its Ok payload."""
        if not line:
            raise HostUnavailable(operation, "socket closed before reply")
        try:
            reply = json.loads(line.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise HostUnavailable(operation, f"invalid reply: {e}")

        if isinstance(reply, dict) and "Ok" in reply:
            return reply["Ok"]
        if isinstance(reply, dict) and "Err" in reply:
            raise HostRejected(operation, str(reply["Err"]))
        raise HostUnavailable(operation, f"unexpected reply: {reply!r}")

    async def request(self, payload: Any, operation: str) -> Any:
        """Send one request and return the Ok payload of its reply."""
        reader, writer = await self._connect(operation)
        try:
            log_ipc_message("send", payload, logger)
            writer.write((json.dumps(payload) + "\n").encode())
            await asyncio.wait_for(writer.drain(), self.timeout)
            line = await asyncio.wait_for(reader.readline(), self.timeout)
            log_ipc_message("recv", line, logger)
        except asyncio.TimeoutError:
            raise HostUnavailable(operation, f"no reply within {self.timeout}s")
        except ValueError as e:
            raise HostUnavailable(operation, f"reply exceeds stream limit: {e}")
        except OSError as e:
            raise HostUnavailable(operation, str(e))
        finally:
            writer.close()
        return self._unwrap(operation, line)

    @staticmethod
    async def _read_event_line(reader: asyncio.StreamReader) -> bytes:
        try:
            line = await reader.readline()
        except ValueError as e:
            raise HostUnavailable("event-stream", f"event exceeds stream limit: {e}")
        except OSError as e:
            raise HostUnavailable("event-stream", str(e))
        if not line:
            raise HostUnavailable("event-stream", "niri closed the event stream")
        return line

    async def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Subscribe to the event stream and yield each event.

        Raises:
            HostUnavailable: When the subscription fails or the stream ends
        """
        reader, writer = await self._connect("event-stream")
        try:
            try:
                writer.write(b'"EventStream"\n')
                await asyncio.wait_for(writer.drain(), self.timeout)
                line = await asyncio.wait_for(reader.readline(), self.timeout)
            except asyncio.TimeoutError:
                raise HostUnavailable("event-stream", "no handshake reply")
            except (OSError, ValueError) as e:
                raise HostUnavailable("event-stream", str(e))
            self._unwrap("event-stream", line)
            logger.info("Subscribed to niri event stream")

            while True:
                line = await self._read_event_line(reader)
                try:
                    event = json.loads(line.decode())
                except (UnicodeDecodeError, json.JSONDecodeError):
                    logger.debug(f"Skipping undecodable event line: {line[:200]!r}")
                    continue
                if isinstance(event, dict):
                    yield event
        finally:
            writer.close()


class CommandTransport:
    """One-shot 'niri msg --json <query>' invocations."""

    def __init__(self, niri_command: str, timeout: float):
        self.niri_command = niri_command
        self.timeout = timeout

    async def query(self, name: str) -> Any:
        cmd = [self.niri_command, "msg", "--json", name]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise HostUnavailable(name, str(e))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise HostUnavailable(name, f"'{' '.join(cmd)}' timed out after {self.timeout}s")

        log_subprocess_call(cmd, proc.returncode, stdout, stderr, logger)

        if proc.returncode != 0:
            reason = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
            raise HostUnavailable(name, reason)
        try:
            return json.loads(stdout.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise HostUnavailable(name, f"invalid JSON output: {e}")


class NiriGateway(HostGateway):
    """HostGateway backed by niri's IPC."""

    def __init__(self, config: DaemonConfig):
        """
        Initialize gateway.

        Args:
            config: Daemon configuration (socket path, transport, timeout)
        """
        self.config = config
        self.socket = SocketTransport(config.niri_socket, config.host_timeout)
        self.command = CommandTransport(config.niri_command, config.host_timeout)

    async def _query(self, name: str) -> Any:
        if self.config.query_transport == "socket":
            request = QUERY_REQUESTS[name]
            reply = await self.socket.request(request, name)
            if not isinstance(reply, dict) or request not in reply:
                raise HostUnavailable(name, f"unexpected reply: {reply!r}")
            return reply[request]
        return await self.command.query(name)

    async def list_windows(self) -> List[WindowInfo]:
        data = await self._query("windows")
        if not isinstance(data, list):
            raise HostUnavailable("windows", "expected a list of windows")
        try:
            return [WindowInfo.model_validate(item) for item in data]
        except ValidationError as e:
            raise HostUnavailable("windows", str(e))

    async def get_focused_resource(self) -> int:
        data = await self._query("focused-window")
        if data is None:
            raise NoFocus()
        try:
            return WindowInfo.model_validate(data).id
        except ValidationError as e:
            raise HostUnavailable("focused-window", str(e))

    async def get_active_context(self) -> int:
        data = await self._query("workspaces")
        if not isinstance(data, list):
            raise HostUnavailable("workspaces", "expected a list of workspaces")
        try:
            workspaces = [WorkspaceInfo.model_validate(item) for item in data]
        except ValidationError as e:
            raise HostUnavailable("workspaces", str(e))

        # Focused workspace wins; fall back to the first active one
        for workspace in workspaces:
            if workspace.is_focused:
                return workspace.id
        for workspace in workspaces:
            if workspace.is_active:
                return workspace.id
        raise NoActiveContext()

    async def move_resource(self, window_id: int, destination: Destination) -> None:
        if isinstance(destination, str):
            reference = {"Name": destination}
        else:
            reference = {"Id": destination}

        action = {
            "Action": {
                "MoveWindowToWorkspace": {
                    "window_id": window_id,
                    "focus": False,
                    "reference": reference,
                }
            }
        }
        reply = await self.socket.request(action, "move-window-to-workspace")
        logger.debug(f"Moved window {window_id} to {reference}: {reply}")

    def event_stream(self) -> AsyncIterator[Dict[str, Any]]:
        return self.socket.events()
