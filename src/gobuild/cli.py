# src/gobuild/cli.py

import argparse
import sys
from typing import List, Optional

from gobuild import log_utils
from gobuild.config import load_settings
from gobuild.constants import EXIT_FAILURE, EXIT_SUCCESS
from gobuild.download.orchestrator import BuildOrchestrator, InstallOptions
from gobuild.exceptions import GoBuildError, UsageError
from gobuild.utils import get_package_version


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad arguments as a UsageError (exit 1)."""

    def error(self, message):
        self.print_usage(sys.stderr)
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="go-build",
        description="go-build - install a Go toolchain version into a directory",
    )
    parser.add_argument(
        "--definitions",
        action="store_true",
        help="List the available version definitions and exit",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Display the go-build version and exit",
    )
    parser.add_argument(
        "-k",
        "--keep",
        action="store_true",
        help="Keep the build directory after installation",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Echo the build log while installing",
    )
    parser.add_argument(
        "-q",
        "--no-progress",
        dest="quiet",
        action="store_true",
        help="Do not show download progress bars",
    )
    parser.add_argument(
        "-g",
        "--debug",
        action="store_true",
        help="Debug build: keep the build directory and log at DEBUG level",
    )
    family_group = parser.add_mutually_exclusive_group()
    family_group.add_argument(
        "-4",
        "--ipv4",
        dest="ip_version",
        action="store_const",
        const=4,
        help="Resolve names to IPv4 addresses only",
    )
    family_group.add_argument(
        "-6",
        "--ipv6",
        dest="ip_version",
        action="store_const",
        const=6,
        help="Resolve names to IPv6 addresses only",
    )
    parser.add_argument(
        "version_spec",
        nargs="?",
        metavar="VERSION",
        help="Version to install, e.g. 1.21.3, 21 or 1.22rc1, or a definition file",
    )
    parser.add_argument(
        "prefix",
        nargs="?",
        metavar="PREFIX",
        help="Directory to install into",
    )
    return parser


def main(argv: Optional[List[str]] = None):
    # Logging is automatically initialized by importing log_utils

    """
    Entry point for the go-build command-line interface.

    Parses arguments and either prints the package version, lists the
    available definitions, or installs VERSION into PREFIX. Exits with 0 on
    success, 2 when no definition matches, and 1 for usage errors and every
    other failure.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)

        if args.version:
            print(f"go-build {get_package_version()}")
            sys.exit(EXIT_SUCCESS)

        settings = load_settings()

        if args.definitions:
            for identifier in BuildOrchestrator(settings).list_definitions():
                print(identifier)
            sys.exit(EXIT_SUCCESS)

        if not args.version_spec or not args.prefix:
            parser.print_usage(sys.stderr)
            raise UsageError("both VERSION and PREFIX are required")

        options = InstallOptions(
            keep=args.keep,
            verbose=args.verbose,
            quiet=args.quiet,
            ip_version=args.ip_version,
            debug=args.debug,
        )
        exit_code = BuildOrchestrator(settings, options).run(
            args.version_spec, args.prefix
        )
    except GoBuildError as exc:
        log_utils.logger.error(str(exc))
        sys.exit(exc.exit_code)
    except KeyboardInterrupt:
        log_utils.logger.error("Interrupted")
        sys.exit(EXIT_FAILURE)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
