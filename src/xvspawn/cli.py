"""Command-line interface for xvspawn."""

import argparse
import asyncio
import logging
import sys

from xvspawn import __version__
from xvspawn.config import load_config
from xvspawn.display import XvfbDisplay
from xvspawn.errors import XvspawnError
from xvspawn.resolve import find_executable
from xvspawn.supervisor import Supervisor

log = logging.getLogger("xvspawn")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xvspawn",
        description=(
            "Run a GUI program, restarting it under a private Xvfb display "
            "when the current display is unusable"
        ),
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--detached",
        action="store_true",
        help="Start the program in its own session; return without waiting for it "
        "unless its output is piped through xvspawn or it runs under Xvfb",
    )
    parser.add_argument(
        "--binary",
        metavar="PATH",
        help="Executable to run; every positional argument is passed to it "
        "(overrides XVSPAWN_RUN_BINARY)",
    )
    parser.add_argument(
        "--verbose-child",
        action="store_true",
        help="Show the program's own stderr while probing the display",
    )
    parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        metavar="program [args ...]",
        help="Program to run, followed by its arguments. With --binary or "
        "XVSPAWN_RUN_BINARY every positional argument goes to that executable",
    )
    return parser


def _exit_status(code: int) -> int:
    """Map a negative signal exit code to the usual 128+N shell status."""
    if code < 0:
        return 128 - code
    return code


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(name)s %(levelname)s: %(message)s",
    )

    config = load_config()
    if args.binary:
        config.run_binary = args.binary
    if args.verbose_child:
        config.verbose_child_logging = True

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if config.run_binary:
        program, program_args = config.run_binary, command
    elif command:
        program, program_args = command[0], command[1:]
    else:
        parser.error("a program to run is required (or --binary / XVSPAWN_RUN_BINARY)")

    try:
        executable = find_executable(program, config)
        supervisor = Supervisor(config, XvfbDisplay(config.xvfb_executable, config.xvfb_screen))
        code = asyncio.run(
            supervisor.start(executable, program_args, detached=args.detached)
        )
    except XvspawnError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log.debug("final exit code %s", code)
    return _exit_status(code)


def entrypoint() -> None:
    """Console script entrypoint."""
    raise SystemExit(main())
