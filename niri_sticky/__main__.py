"""Entry point: no arguments runs the daemon, anything else is a CLI command."""

import sys

from .cli import main as cli_main
from .daemon import run as daemon_run


def main():
    if len(sys.argv) > 1:
        cli_main(sys.argv[1:])
    else:
        daemon_run([])


if __name__ == "__main__":
    main()
