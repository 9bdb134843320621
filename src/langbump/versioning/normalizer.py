"""Turn noisy upstream release listings into ordered stable versions.

``normalize`` is the pure per-feed pipeline; ``VersionNormalizer`` wraps it
with the file cache, the release source and the last-known-good fallback so
``resolve`` always yields a non-empty list per feed.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Iterable, List, Optional, Tuple

import semantic_version

from ..common.http_client import FetchError
from .cache import VersionCache
from .models import (
    EcosystemConfig,
    ResolvedVersions,
    VersionCandidate,
    VersionFeed,
    VersionSource,
)

logger = logging.getLogger(__name__)


def version_key(version: str) -> semantic_version.Version:
    """Sort key comparing dotted versions numerically, missing parts as zero."""
    return semantic_version.Version.coerce(version)


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Return unique versions, newest first."""
    unique = list(dict.fromkeys(versions))
    return sorted(unique, key=version_key, reverse=True)


def is_valid_version(version: Any, feed: VersionFeed) -> bool:
    """Check a candidate against the feed's strict numeric format."""
    return isinstance(version, str) and re.match(feed.version_format, version) is not None


def extract_version(tag: str, feed: VersionFeed) -> Optional[str]:
    """Apply the feed's tag pattern and separator rule to one tag name."""
    match = re.match(feed.tag_pattern, tag)
    if not match:
        return None
    candidate = match.group("version")
    if feed.separator != ".":
        candidate = candidate.replace(feed.separator, ".")
    return candidate


def _is_stable_record(record: Any) -> bool:
    if not isinstance(record, dict):
        return False
    return not record.get("prerelease") and not record.get("draft")


def normalize(records: Iterable[Any], feed: VersionFeed) -> List[str]:
    """Filter, extract, validate, sort and truncate raw release records.

    Args:
        records: Decoded JSON records from the release source.
        feed: Feed description carrying the extraction rules.

    Returns:
        Up to ``feed.retention`` versions, newest first. May be empty.
    """
    candidates: List[str] = []
    for record in records:
        if not _is_stable_record(record):
            continue
        tag = record.get(feed.tag_field)
        if not isinstance(tag, str):
            continue
        candidate = extract_version(tag.strip(), feed)
        if candidate is None or not is_valid_version(candidate, feed):
            continue
        candidates.append(candidate)
    return sort_versions(candidates)[: feed.retention]


class VersionNormalizer:
    """Resolve an ecosystem to ordered candidates via cache, network, or fallback."""

    def __init__(self, source=None, cache: Optional[VersionCache] = None, offline: bool = False):
        """Initialize the normalizer.

        Args:
            source: Object with an async ``fetch(url) -> list`` (a ReleaseSource).
            cache: Version cache; None disables caching.
            offline: Never touch the network; use the cache, then fallbacks.
        """
        self._source = source
        self._cache = cache
        self._offline = offline or source is None

    async def resolve(self, ecosystem: EcosystemConfig) -> ResolvedVersions:
        """Return ordered candidates for every feed of ``ecosystem``."""
        cached = await asyncio.to_thread(self._read_cache, ecosystem)
        if cached is not None:
            logger.info("Using cached %s versions", ecosystem.label)
            return cached

        if self._offline:
            logger.info("Offline: using fallback %s versions", ecosystem.label)
            lists = [[feed.fallback_version] for feed in ecosystem.feeds]
            return self._build(ecosystem, lists, VersionSource.FALLBACK, [])

        outcomes = await asyncio.gather(*(self._resolve_feed(ecosystem, feed) for feed in ecosystem.feeds))
        lists = [versions for versions, _ in outcomes]
        errors = [error for _, error in outcomes if error is not None]

        if errors:
            return self._build(ecosystem, lists, VersionSource.FALLBACK, errors)

        await asyncio.to_thread(self._write_cache, ecosystem, lists)
        return self._build(ecosystem, lists, VersionSource.NETWORK, [])

    async def _resolve_feed(self, ecosystem: EcosystemConfig, feed: VersionFeed) -> Tuple[List[str], Optional[str]]:
        """Fetch and normalize one feed; substitute the fallback on any failure."""
        logger.info("Fetching latest %s versions from %s", feed.feed_id, feed.source_url)
        try:
            records = await self._source.fetch(feed.source_url)
            versions = normalize(records, feed)
        except FetchError as exc:
            return self._fallback(ecosystem, feed, str(exc))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Parsing surprises are recovered the same way as fetch failures.
            return self._fallback(ecosystem, feed, f"{type(exc).__name__}: {exc}")

        if not versions:
            return self._fallback(ecosystem, feed, "no stable versions found")
        logger.info("Found %d stable %s versions", len(versions), feed.feed_id)
        return versions, None

    def _fallback(self, ecosystem: EcosystemConfig, feed: VersionFeed, reason: str) -> Tuple[List[str], str]:
        logger.warning(
            "Failed to fetch %s versions for %s, using fallback %s: %s",
            feed.feed_id,
            ecosystem.label,
            feed.fallback_version,
            reason,
        )
        return [feed.fallback_version], f"{feed.feed_id}: {reason}"

    def _read_cache(self, ecosystem: EcosystemConfig) -> Optional[ResolvedVersions]:
        """Return cached lists that still satisfy the feed formats."""
        if self._cache is None:
            return None
        entry = self._cache.read(ecosystem.ecosystem_id)
        if entry is None:
            return None
        if ecosystem.is_paired != (entry.secondary is not None):
            return None

        raw_lists = [entry.versions] if entry.secondary is None else [entry.versions, entry.secondary]
        lists = []
        for feed, versions in zip(ecosystem.feeds, raw_lists):
            valid = list(dict.fromkeys(v for v in versions if is_valid_version(v, feed)))
            if not valid:
                return None
            lists.append(valid)
        return self._build(ecosystem, lists, VersionSource.CACHE, [])

    def _write_cache(self, ecosystem: EcosystemConfig, lists: List[List[str]]) -> None:
        if self._cache is None:
            return
        secondary = lists[1] if ecosystem.is_paired else None
        try:
            self._cache.write(ecosystem.ecosystem_id, lists[0], secondary)
        except OSError as exc:
            logger.warning("Could not write %s version cache: %s", ecosystem.label, exc)

    @staticmethod
    def _build(
        ecosystem: EcosystemConfig,
        lists: List[List[str]],
        source: VersionSource,
        errors: List[str],
    ) -> ResolvedVersions:
        feeds = ecosystem.feeds
        candidates = [
            [VersionCandidate(ecosystem.ecosystem_id, feed.feed_id, v) for v in versions]
            for feed, versions in zip(feeds, lists)
        ]
        return ResolvedVersions(
            ecosystem_id=ecosystem.ecosystem_id,
            primary=candidates[0],
            secondary=candidates[1] if len(candidates) > 1 else None,
            source=source,
            errors=errors,
        )
