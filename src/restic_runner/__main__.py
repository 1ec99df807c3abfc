"""restic-runner: restic_runner/__main__.py."""

import sys

from .cli.dispatcher import main as cli_main


def main() -> int:
    """Console script entry point."""
    return cli_main(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
