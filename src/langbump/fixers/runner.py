"""Top-level orchestration: resolve, pick a fixer, validate, patch, report.

Resolution for all requested ecosystems runs concurrently. Every selected
version is validated before any file is touched, so a malformed version
aborts the run without partial writes. Per-file failures are reported but
never abort the run.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..constants import RunOutcome
from ..patching.engine import PatchResult, read_marker
from ..versioning.models import EcosystemConfig, ResolvedVersions, VersionFeed, VersionSource
from .registry import Fixer, FixerRegistry, fixer_name, register_ecosystem, target_paths

logger = logging.getLogger(__name__)


class VersionValidationError(Exception):
    """Raised when a selected target version has a malformed format."""


class FixerNotFoundError(LookupError):
    """Raised when a requested fixer name was not registered."""


@dataclass
class EcosystemReport:
    """What happened for one ecosystem during a run."""
    ecosystem_id: str
    label: str
    fixer_name: str
    target_version: str
    secondary_version: Optional[str]
    source: VersionSource
    outcome: RunOutcome
    results: List[PatchResult] = field(default_factory=list)

    @property
    def updated_files(self) -> List[str]:
        return sorted({r.path for r in self.results if r.changed})

    @property
    def failures(self) -> List[PatchResult]:
        return [r for r in self.results if r.failed]


@dataclass
class _Plan:
    ecosystem: EcosystemConfig
    resolved: ResolvedVersions
    fixer: Fixer
    version: str
    secondary_version: Optional[str]


def validate_version(version: str, feed: VersionFeed) -> str:
    """Re-check a version against the feed format before it is used.

    Raises:
        VersionValidationError: if the format does not match.
    """
    if not isinstance(version, str) or not re.match(feed.version_format, version):
        raise VersionValidationError(f"Invalid {feed.display_name} version format: {version!r}")
    return version


def summarize(results: Sequence[PatchResult]) -> RunOutcome:
    """Collapse per-file results into one outcome."""
    if any(r.changed for r in results):
        return RunOutcome.UPDATED
    if any(r.failed for r in results):
        return RunOutcome.FAILED
    return RunOutcome.CURRENT


def current_versions(ecosystem: EcosystemConfig, root: str) -> Dict[str, Dict[str, Optional[str]]]:
    """Read the marker values currently present in each target file."""
    current: Dict[str, Dict[str, Optional[str]]] = {}
    for path in target_paths(ecosystem, root):
        current[path] = {feed.marker_key: read_marker(path, feed.marker_key) for feed in ecosystem.feeds}
    return current


async def _log_current(ecosystem: EcosystemConfig, root: str) -> None:
    current = await asyncio.to_thread(current_versions, ecosystem, root)
    logger.info("Current %s versions:", ecosystem.label)
    for path, markers in current.items():
        values = ", ".join(f"{key} {value or 'not found'}" for key, value in markers.items())
        logger.info("  %s: %s", os.path.basename(path), values)


def _fixer_version(ecosystem: EcosystemConfig, resolved: ResolvedVersions, name: str) -> Optional[str]:
    for candidate in resolved.primary:
        if fixer_name(ecosystem, candidate.version) == name:
            return candidate.version
    return None


def _plan(
    registry: FixerRegistry,
    ecosystem: EcosystemConfig,
    resolved: ResolvedVersions,
    requested: Optional[str],
) -> Optional[_Plan]:
    if requested is None:
        version = resolved.latest.version
    else:
        version = _fixer_version(ecosystem, resolved, requested)
        if version is None:
            return None

    validate_version(version, ecosystem.primary)
    secondary_version = None
    if ecosystem.secondary is not None:
        secondary = resolved.latest_secondary
        secondary_version = validate_version(secondary.version if secondary else "", ecosystem.secondary)

    fixer = registry.get(fixer_name(ecosystem, version))
    assert fixer is not None
    return _Plan(ecosystem, resolved, fixer, version, secondary_version)


async def _execute(plan: _Plan, root: str) -> EcosystemReport:
    eco = plan.ecosystem
    if plan.secondary_version is not None:
        logger.info("Target %s version: %s (%s %s)", eco.label, plan.version,
                    eco.secondary.display_name, plan.secondary_version)
    else:
        logger.info("Target %s version: %s", eco.label, plan.version)
    await _log_current(eco, root)

    assert plan.fixer.run is not None
    results = await plan.fixer.run()
    outcome = summarize(results)

    for failure in (r for r in results if r.failed):
        logger.error("  - %s (%s): %s", failure.path, failure.marker_key, failure.error or failure.status.value)
    if outcome == RunOutcome.UPDATED:
        logger.info("%s version update completed successfully; backup files were created.", eco.label)
    elif outcome == RunOutcome.CURRENT:
        logger.info("No updates needed - %s versions are already current.", eco.label)
    else:
        logger.error("%s version update failed: no target file could be updated.", eco.label)

    return EcosystemReport(
        ecosystem_id=eco.ecosystem_id,
        label=eco.label,
        fixer_name=plan.fixer.name,
        target_version=plan.version,
        secondary_version=plan.secondary_version,
        source=plan.resolved.source,
        outcome=outcome,
        results=results,
    )


async def build_registry(
    ecosystems: Sequence[EcosystemConfig],
    normalizer,
    root: str,
    registry: Optional[FixerRegistry] = None,
) -> Tuple[FixerRegistry, List[ResolvedVersions]]:
    """Resolve all ecosystems concurrently and register their fixers.

    Returns:
        (registry, list of ResolvedVersions in ``ecosystems`` order)
    """
    registry = registry if registry is not None else FixerRegistry()
    resolved = await asyncio.gather(*(register_ecosystem(registry, eco, normalizer, root) for eco in ecosystems))
    return registry, list(resolved)


async def run_ecosystems(
    ecosystems: Sequence[EcosystemConfig],
    normalizer,
    root: str,
    fixer: Optional[str] = None,
) -> List[EcosystemReport]:
    """Run the latest fixer (or the named one) for each ecosystem.

    Raises:
        VersionValidationError: if a selected version is malformed.
        FixerNotFoundError: if ``fixer`` names no registered fixer.
    """
    registry, resolved_list = await build_registry(ecosystems, normalizer, root)

    plans = []
    for eco, resolved in zip(ecosystems, resolved_list):
        plan = _plan(registry, eco, resolved, fixer)
        if plan is not None:
            plans.append(plan)
    if fixer is not None and not plans:
        raise FixerNotFoundError(fixer)

    return list(await asyncio.gather(*(_execute(plan, root) for plan in plans)))


async def run_ecosystem(
    ecosystem: EcosystemConfig,
    normalizer,
    root: str,
    fixer: Optional[str] = None,
) -> EcosystemReport:
    """Single-ecosystem form of ``run_ecosystems``."""
    reports = await run_ecosystems([ecosystem], normalizer, root, fixer)
    return reports[0]
