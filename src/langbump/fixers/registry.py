"""Fixer registry: one named, runnable patch job per discovered version."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterator, List, Optional

from ..constants import PatchStatus
from ..patching.engine import PatchResult, apatch_file
from ..versioning.models import EcosystemConfig, ResolvedVersions

logger = logging.getLogger(__name__)

PatchJob = Callable[[], Awaitable[List[PatchResult]]]


@dataclass
class Fixer:
    """A registered unit of work.

    ``execute`` is the contract external runners rely on. ``run``, when
    present, returns the per-file results ``execute`` aggregates.
    """
    name: str
    description: str
    execute: Callable[[], Awaitable[bool]]
    run: Optional[PatchJob] = None


class FixerRegistry:
    """Named collection of fixers in registration order."""

    def __init__(self) -> None:
        self._fixers: Dict[str, Fixer] = {}

    def register(
        self,
        name: str,
        description: str,
        execute: Callable[[], Awaitable[bool]],
        run: Optional[PatchJob] = None,
    ) -> Fixer:
        """Register a fixer.

        Raises:
            ValueError: if ``name`` is already registered.
        """
        if name in self._fixers:
            raise ValueError(f"Fixer already registered: {name}")
        fixer = Fixer(name=name, description=description, execute=execute, run=run)
        self._fixers[name] = fixer
        return fixer

    def get(self, name: str) -> Optional[Fixer]:
        return self._fixers.get(name)

    def names(self) -> List[str]:
        return list(self._fixers)

    def __iter__(self) -> Iterator[Fixer]:
        return iter(self._fixers.values())

    def __len__(self) -> int:
        return len(self._fixers)

    def __contains__(self, name: object) -> bool:
        return name in self._fixers


def target_paths(ecosystem: EcosystemConfig, root: str) -> List[str]:
    """Resolve configured targets against ``root``; absolute paths pass through."""
    return [os.path.join(root, target) for target in ecosystem.targets]


def any_changed(results: List[PatchResult]) -> bool:
    return any(result.changed for result in results)


async def _patch_one_file(
    path: str,
    ecosystem: EcosystemConfig,
    version: str,
    secondary_version: Optional[str],
) -> List[PatchResult]:
    # Markers in the same file are patched in sequence; files run concurrently.
    results = [await apatch_file(path, ecosystem.primary.marker_key, version)]
    if ecosystem.secondary is not None and secondary_version is not None:
        results.append(await apatch_file(path, ecosystem.secondary.marker_key, secondary_version))
    return results


async def patch_targets(
    ecosystem: EcosystemConfig,
    root: str,
    version: str,
    secondary_version: Optional[str] = None,
) -> List[PatchResult]:
    """Patch every target of ``ecosystem`` concurrently.

    A failure on one file never prevents the others from being attempted.
    """
    paths = target_paths(ecosystem, root)
    outcomes = await asyncio.gather(
        *(_patch_one_file(path, ecosystem, version, secondary_version) for path in paths),
        return_exceptions=True,
    )

    results: List[PatchResult] = []
    for path, outcome in zip(paths, outcomes):
        if isinstance(outcome, Exception):
            logger.error("Unexpected error patching %s: %s", path, outcome)
            results.append(
                PatchResult(
                    path,
                    ecosystem.primary.marker_key,
                    version,
                    PatchStatus.ERROR,
                    error=str(outcome),
                )
            )
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.extend(outcome)
    return results


def make_fixer_job(
    ecosystem: EcosystemConfig,
    root: str,
    version: str,
    secondary_version: Optional[str] = None,
) -> PatchJob:
    """Bind the patch operation for one version into a zero-argument job."""
    async def _run() -> List[PatchResult]:
        return await patch_targets(ecosystem, root, version, secondary_version)

    return _run


def fixer_name(ecosystem: EcosystemConfig, version: str) -> str:
    return f"update-{ecosystem.ecosystem_id}-{version}"


def fixer_description(ecosystem: EcosystemConfig, version: str, secondary_version: Optional[str] = None) -> str:
    description = f"Update {ecosystem.label} version to {version}"
    if ecosystem.secondary is not None and secondary_version is not None:
        description += f" with {ecosystem.secondary.display_name} {secondary_version}"
    return description


def register_versions(
    registry: FixerRegistry,
    ecosystem: EcosystemConfig,
    resolved: ResolvedVersions,
    root: str,
) -> List[Fixer]:
    """Register one fixer per primary candidate.

    Paired ecosystems pair every primary version with the latest secondary.
    """
    secondary = resolved.latest_secondary
    secondary_version = secondary.version if secondary is not None else None

    fixers = []
    for candidate in resolved.primary:
        job = make_fixer_job(ecosystem, root, candidate.version, secondary_version)

        async def _execute(job: PatchJob = job) -> bool:
            return any_changed(await job())

        fixers.append(
            registry.register(
                fixer_name(ecosystem, candidate.version),
                fixer_description(ecosystem, candidate.version, secondary_version),
                _execute,
                run=job,
            )
        )
    return fixers


async def register_ecosystem(
    registry: FixerRegistry,
    ecosystem: EcosystemConfig,
    normalizer,
    root: str,
) -> ResolvedVersions:
    """Resolve ``ecosystem`` through ``normalizer`` and register its fixers."""
    resolved = await normalizer.resolve(ecosystem)
    register_versions(registry, ecosystem, resolved, root)
    return resolved
