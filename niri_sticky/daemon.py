"""
niri-sticky daemon

Keeps sticky windows on the focused workspace and serves sticky/stage
requests over a Unix socket.
"""
# Module can be run with: python -m niri_sticky

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DaemonConfig, load_config
from .engine import TransitionEngine
from .errors import ConfigLoadError, HostUnavailable, StickyError
from .host import HostGateway, NiriGateway
from .ipc_server import IPCServer
from .logging_config import setup_logging
from .state import StateStore

logger = logging.getLogger(__name__)

RECONNECT_DELAY_INITIAL = 0.1
RECONNECT_DELAY_MAX = 5.0


class NiriStickyDaemon:
    """Main daemon for sticky window management."""

    def __init__(self, config: DaemonConfig, host: Optional[HostGateway] = None):
        """
        Initialize daemon.

        Args:
            config: Daemon configuration
            host: Compositor gateway (defaults to NiriGateway)
        """
        self.config = config
        self.store = StateStore()
        self.host = host or NiriGateway(config)
        self.engine = TransitionEngine(self.store, self.host, config.stage_workspace)
        self.ipc_server = IPCServer(self.engine, self.host, config.ipc_socket_path)
        self.running = False
        self.focused_workspace: Optional[int] = None
        self._event_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the daemon and run until stopped."""
        logger.info("Starting niri-sticky daemon")

        await self.ipc_server.start()
        self.running = True
        logger.info("Daemon started successfully")

        self._event_task = asyncio.create_task(self._run_event_loop())
        try:
            await self._event_task
        except asyncio.CancelledError:
            logger.info("Event loop cancelled")

    def request_stop(self):
        """Stop consuming events; safe to call from a signal handler."""
        self.running = False
        if self._event_task and not self._event_task.done():
            self._event_task.cancel()

    async def stop(self):
        """Stop the daemon."""
        logger.info("Stopping daemon...")
        self.request_stop()
        await self.ipc_server.stop()
        logger.info("Daemon stopped")

    async def _run_event_loop(self):
        """Consume niri events, reconnecting with exponential backoff."""
        delay = RECONNECT_DELAY_INITIAL

        while self.running:
            try:
                async for event in self.host.event_stream():
                    delay = RECONNECT_DELAY_INITIAL
                    await self.handle_event(event)
            except HostUnavailable as e:
                if not self.running:
                    break
                logger.warning(f"Lost niri event stream ({e.message}); retrying in {delay:.1f}s")
            except Exception as e:
                if not self.running:
                    break
                logger.error(f"Event loop error: {e}; retrying in {delay:.1f}s", exc_info=True)
            await asyncio.sleep(delay)
            delay = min(delay * 2, RECONNECT_DELAY_MAX)

    async def handle_event(self, event: Dict[str, Any]):
        """Dispatch one niri event."""
        activated = event.get("WorkspaceActivated")
        if not isinstance(activated, dict) or not activated.get("focused", False):
            return

        workspace_id = activated.get("id")
        if workspace_id is None or workspace_id == self.focused_workspace:
            return

        self.focused_workspace = workspace_id
        await self.on_workspace_activated(workspace_id)

    async def on_workspace_activated(self, workspace_id: int):
        """Bring sticky windows to a newly focused workspace."""
        try:
            moved = await self.engine.reconcile_on_activation(workspace_id)
            logger.debug(f"Workspace {workspace_id} activated; moved {moved} sticky windows")
        except StickyError as e:
            logger.warning(f"Reconcile on workspace {workspace_id} skipped: {e.message}")


async def main(config_file: Optional[Path] = None, verbose: bool = False, debug: bool = False):
    """Main entry point."""
    try:
        config = load_config(config_file)
    except ConfigLoadError as e:
        setup_logging()
        logger.error(e.message)
        sys.exit(1)

    setup_logging(verbose=verbose, debug=debug, level=config.log_level)
    daemon = NiriStickyDaemon(config)

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        daemon.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await daemon.start()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await daemon.stop()


def run(argv=None):
    """Console script entry point for the daemon."""
    parser = argparse.ArgumentParser(
        description="niri-sticky daemon",
        prog="niri-sticky-daemon"
    )
    parser.add_argument("--config", type=Path, help="Configuration file (JSON)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args(argv)

    try:
        asyncio.run(main(args.config, args.verbose, args.debug))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    run()
