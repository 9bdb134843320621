"""Argument parsing functionality for langbump."""

import argparse

from .versioning.ecosystems import SUPPORTED_ECOSYSTEMS


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="langbump",
        description=(
            "langbump - update pinned toolchain versions in build files to the latest stable releases"
        ),
        add_help=True,
    )

    parser.add_argument("-e", "--ecosystem",
                        dest="ECOSYSTEMS",
                        help="Ecosystem to update; repeat for several (default: all)",
                        action="append",
                        type=str.lower,
                        choices=SUPPORTED_ECOSYSTEMS)
    parser.add_argument("-r", "--root",
                        dest="ROOT",
                        help="Directory that target paths are relative to (default: current directory)",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="YAML configuration file with ecosystem overrides",
                        action="store",
                        type=str)
    parser.add_argument("--cache-dir",
                        dest="CACHE_DIR",
                        help="Directory for version cache files",
                        action="store",
                        type=str)
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="HTTP request timeout in seconds",
                        action="store",
                        type=int)

    fetch_group = parser.add_mutually_exclusive_group()
    fetch_group.add_argument("--offline",
                             dest="OFFLINE",
                             help="Do not contact upstream feeds; use the cache or fallback versions",
                             action="store_true")
    fetch_group.add_argument("--refresh",
                             dest="REFRESH",
                             help="Discard cached version lists before resolving",
                             action="store_true")

    action_group = parser.add_mutually_exclusive_group()
    action_group.add_argument("-l", "--list",
                              dest="LIST",
                              help="List the fixers that would be registered and exit",
                              action="store_true")
    action_group.add_argument("-f", "--fixer",
                              dest="FIXER",
                              help="Run the named fixer (e.g. update-rust-1.76.0) instead of the latest",
                              action="store",
                              type=str)

    parser.add_argument("--strict",
                        dest="STRICT",
                        help="Exit non-zero when an ecosystem could not update any target file",
                        action="store_true")
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Also write log output to this file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
