"""langbump - pinned toolchain version updater

    Resolves the latest stable release of each selected language toolchain
    and rewrites the version markers in its build files.

    Returns:
        int: Exit code
"""
import asyncio
import logging
import os
import sys

from .args import parse_args
from .cli_config import ConfigError, apply_ecosystem_overrides, apply_runtime_overrides, load_config
from .common.http_client import ReleaseSource
from .common.logging_utils import add_file_handler, configure_logging
from .constants import Constants, ExitCodes, RunOutcome
from .fixers.runner import FixerNotFoundError, VersionValidationError, build_registry, run_ecosystems
from .versioning.cache import VersionCache
from .versioning.ecosystems import ECOSYSTEMS, SUPPORTED_ECOSYSTEMS, select
from .versioning.normalizer import VersionNormalizer

logger = logging.getLogger(__name__)


def _setup_logging(args) -> None:
    """Configure logging based on CLI arguments."""
    configure_logging(getattr(args, "LOG_LEVEL", None))
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        add_file_handler(log_file)
        logger.info("Logging to file: %s", log_file)


def _cache_dir(root: str) -> str:
    if os.path.isabs(Constants.CACHE_DIR):
        return Constants.CACHE_DIR
    return os.path.join(root, Constants.CACHE_DIR)


async def _list_fixers(ecosystems, normalizer, root) -> None:
    registry, _ = await build_registry(ecosystems, normalizer, root)
    for fixer in registry:
        print(f"{fixer.name}\t{fixer.description}")


async def _run(args, ecosystems, root) -> int:
    cache = VersionCache(_cache_dir(root))
    if args.REFRESH:
        removed = cache.clear()
        logger.debug("Removed %d cached version lists", removed)

    async with ReleaseSource() as source:
        normalizer = VersionNormalizer(source=source, cache=cache, offline=args.OFFLINE)
        if args.LIST:
            await _list_fixers(ecosystems, normalizer, root)
            return ExitCodes.SUCCESS.value
        reports = await run_ecosystems(ecosystems, normalizer, root, fixer=args.FIXER)

    for report in reports:
        logger.info(
            "%s: %s (target %s, versions from %s)",
            report.label,
            report.outcome.value,
            report.target_version,
            report.source.value,
        )
    if args.STRICT and any(r.outcome == RunOutcome.FAILED for r in reports):
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def main(argv=None) -> int:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        config = load_config(args.CONFIG)
        apply_runtime_overrides(config, args)
        table = apply_ecosystem_overrides(ECOSYSTEMS, config)
        ecosystems = select(table, args.ECOSYSTEMS or SUPPORTED_ECOSYSTEMS)
    except ConfigError as exc:
        logger.error("%s", exc)
        return ExitCodes.USAGE_ERROR.value

    root = os.path.abspath(args.ROOT)
    if not os.path.isdir(root):
        logger.error("Root directory not found: %s", root)
        return ExitCodes.USAGE_ERROR.value

    try:
        return asyncio.run(_run(args, ecosystems, root))
    except VersionValidationError as exc:
        logger.error("Fatal error during version update: %s", exc)
        return ExitCodes.FATAL.value
    except FixerNotFoundError as exc:
        logger.error("No fixer registered with name %s", exc)
        return ExitCodes.USAGE_ERROR.value


if __name__ == "__main__":
    sys.exit(main())
