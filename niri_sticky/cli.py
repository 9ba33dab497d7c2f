#!/usr/bin/env python3
"""
niri-sticky CLI

Command-line interface for the niri-sticky daemon.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_IPC_SOCKET, load_config
from .errors import ConfigLoadError
from .protocol import is_error_line


class NiriStickyCLI:
    """CLI client for the niri-sticky daemon."""

    def __init__(self, socket_path: Optional[Path] = None, timeout: float = 10.0):
        """Initialize CLI client."""
        if socket_path is None:
            try:
                socket_path = load_config().ipc_socket_path
            except ConfigLoadError:
                socket_path = DEFAULT_IPC_SOCKET
        self.socket_path = socket_path
        self.timeout = timeout

    async def send_request(self, line: str) -> str:
        """
        Send one request line to the daemon.

        Args:
            line: Request text, e.g. "stage --all"

        Returns:
            Response line

        Raises:
            ConnectionError: If cannot connect to daemon
        """
        if not self.socket_path.exists():
            raise ConnectionError(f"Daemon not running (socket not found: {self.socket_path})")

        try:
            reader, writer = await asyncio.open_unix_connection(str(self.socket_path))
        except OSError as e:
            raise ConnectionError(f"Failed to connect to daemon: {e}")

        try:
            writer.write((line + "\n").encode())
            await writer.drain()
            data = await asyncio.wait_for(reader.readline(), self.timeout)
        except asyncio.TimeoutError:
            raise ConnectionError(f"No reply from daemon within {self.timeout}s")
        finally:
            writer.close()

        if not data:
            raise ConnectionError("Daemon closed the connection without replying")
        return data.decode().rstrip("\n")

    @staticmethod
    def build_request(args: argparse.Namespace) -> str:
        """Turn parsed arguments into a request line."""
        command = args.command

        if command in ("add", "remove"):
            return f"{command} {args.window_id}"
        if command == "toggle_appid":
            return f"toggle_appid {args.appid}"
        if command == "toggle_title":
            return f"toggle_title {' '.join(args.title)}"
        if command in ("stage", "unstage"):
            if getattr(args, "all", False):
                return f"{command} --all"
            if getattr(args, "list", False):
                return f"{command} --list"
            if args.active:
                return f"{command} --active"
            if args.appid:
                return f"{command} --appid {args.appid}"
            if args.title:
                return f"{command} --title {' '.join(args.title)}"
            if args.toggle_appid:
                return f"{command} --toggle-appid {args.toggle_appid}"
            if args.toggle_title:
                return f"{command} --toggle-title {' '.join(args.toggle_title)}"
            return f"{command} {args.window_id}"
        return command

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Sticky and staged windows for niri",
            prog="niri-sticky"
        )

        subparsers = parser.add_subparsers(dest="command", help="Command to execute")

        add_parser = subparsers.add_parser("add", help="Make a window sticky")
        add_parser.add_argument("window_id", type=int, help="niri window ID")

        remove_parser = subparsers.add_parser("remove", help="Stop a window being sticky")
        remove_parser.add_argument("window_id", type=int, help="niri window ID")

        subparsers.add_parser("list", help="List sticky windows")
        subparsers.add_parser("toggle_active", help="Toggle the focused window")

        appid_parser = subparsers.add_parser("toggle_appid", help="Toggle a window by app_id")
        appid_parser.add_argument("appid", help="Exact app_id")

        title_parser = subparsers.add_parser("toggle_title", help="Toggle a window by title")
        title_parser.add_argument("title", nargs="+", help="Title substring")

        for name, help_text in (("stage", "Park sticky windows on the stage workspace"),
                                ("unstage", "Bring staged windows back")):
            sub = subparsers.add_parser(name, help=help_text)
            group = sub.add_mutually_exclusive_group(required=True)
            group.add_argument("window_id", type=int, nargs="?", help="niri window ID")
            group.add_argument("--all", action="store_true", help="All windows")
            if name == "stage":
                group.add_argument("--list", action="store_true", help="List staged windows")
            group.add_argument("--active", action="store_true", help="The focused window")
            group.add_argument("--appid", help="First window with this app_id")
            group.add_argument("--title", nargs="+", help="First window whose title contains this")
            group.add_argument("--toggle-appid", help="Toggle staging by app_id")
            group.add_argument("--toggle-title", nargs="+", help="Toggle staging by title")

        subparsers.add_parser("ping", help="Check if daemon is running")

        return parser

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run CLI."""
        parser = self.build_parser()
        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return 1

        line = self.build_request(args)

        try:
            reply = asyncio.run(self.send_request(line))
        except KeyboardInterrupt:
            print("\nInterrupted")
            return 130
        except ConnectionError as e:
            print(f"❌ {e}", file=sys.stderr)
            return 1

        if is_error_line(reply):
            print(reply, file=sys.stderr)
            return 1

        print(reply)
        return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    cli = NiriStickyCLI()
    sys.exit(cli.run(argv))


if __name__ == "__main__":
    main()
