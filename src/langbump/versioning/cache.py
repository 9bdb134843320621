"""File-backed TTL cache for normalized version lists.

One JSON file per ecosystem. Entries older than the TTL, unreadable files
and malformed payloads all read as a miss; nothing here raises to callers
except on ``write``.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from ..constants import Constants
from .models import VersionCacheEntry

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list) or not value:
        return None
    if not all(isinstance(item, str) for item in value):
        return None
    return list(value)


class VersionCache:
    """TTL cache persisting version lists under ``cache_dir``."""

    def __init__(self, cache_dir: str, ttl: Optional[int] = None):
        """Initialize the cache.

        Args:
            cache_dir: Directory holding one JSON file per ecosystem.
            ttl: Freshness window in seconds (default 24 hours).
        """
        self._cache_dir = cache_dir
        self._ttl = ttl if ttl is not None else Constants.CACHE_TTL_SEC

    @property
    def cache_dir(self) -> str:
        return self._cache_dir

    def path_for(self, ecosystem_id: str) -> str:
        """Return the cache file path for an ecosystem."""
        name = Constants.CACHE_FILE_TEMPLATE.format(ecosystem=ecosystem_id)
        return os.path.join(self._cache_dir, name)

    def is_fresh(self, entry: VersionCacheEntry, now_ms: Optional[float] = None) -> bool:
        """Check whether an entry is within the TTL."""
        now = now_ms if now_ms is not None else _now_ms()
        age_ms = now - entry.timestamp
        return 0 <= age_ms < self._ttl * 1000

    def load(self, ecosystem_id: str) -> Optional[VersionCacheEntry]:
        """Load an entry regardless of age; None on absence or corruption."""
        path = self.path_for(ecosystem_id)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable cache file %s: %s", path, exc)
            return None
        return self._parse(ecosystem_id, data, path)

    def read(self, ecosystem_id: str) -> Optional[VersionCacheEntry]:
        """Return the cached entry if present and fresh.

        Args:
            ecosystem_id: Ecosystem identifier.

        Returns:
            VersionCacheEntry or None when absent, stale or corrupt.
        """
        entry = self.load(ecosystem_id)
        if entry is None:
            return None
        if not self.is_fresh(entry):
            logger.debug("Cache entry for %s is stale", ecosystem_id)
            return None
        return entry

    def write(
        self,
        ecosystem_id: str,
        versions: List[str],
        secondary: Optional[List[str]] = None,
    ) -> VersionCacheEntry:
        """Overwrite the entry for an ecosystem with the current timestamp.

        Raises:
            OSError: if the cache directory or file cannot be written.
        """
        entry = VersionCacheEntry(
            ecosystem_id=ecosystem_id,
            versions=list(versions),
            secondary=list(secondary) if secondary is not None else None,
            timestamp=_now_ms(),
        )
        payload: Dict[str, Any]
        if entry.secondary is None:
            payload = {"versions": entry.versions, "timestamp": entry.timestamp}
        else:
            payload = {
                "primary": entry.versions,
                "secondary": entry.secondary,
                "timestamp": entry.timestamp,
            }

        os.makedirs(self._cache_dir, exist_ok=True)
        path = self.path_for(ecosystem_id)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
        os.replace(tmp_path, path)
        return entry

    def clear(self, ecosystem_id: Optional[str] = None) -> int:
        """Remove one ecosystem's cache file, or every cache file.

        Returns:
            Number of files removed.
        """
        if ecosystem_id is not None:
            paths = [self.path_for(ecosystem_id)]
        elif os.path.isdir(self._cache_dir):
            suffix = Constants.CACHE_FILE_TEMPLATE.format(ecosystem="")[1:]
            paths = [
                os.path.join(self._cache_dir, name)
                for name in os.listdir(self._cache_dir)
                if name.startswith(".") and name.endswith(suffix)
            ]
        else:
            paths = []

        removed = 0
        for path in paths:
            try:
                os.remove(path)
                removed += 1
            except FileNotFoundError:
                continue
        return removed

    def _parse(self, ecosystem_id: str, data: Any, path: str) -> Optional[VersionCacheEntry]:
        """Validate a decoded payload."""
        if not isinstance(data, dict):
            logger.debug("Ignoring cache file %s: not an object", path)
            return None
        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            logger.debug("Ignoring cache file %s: bad timestamp", path)
            return None

        if "primary" in data:
            primary = _string_list(data.get("primary"))
            secondary = _string_list(data.get("secondary"))
            if primary is None or secondary is None:
                logger.debug("Ignoring cache file %s: bad paired lists", path)
                return None
            return VersionCacheEntry(ecosystem_id, primary, float(timestamp), secondary)

        versions = _string_list(data.get("versions"))
        if versions is None:
            logger.debug("Ignoring cache file %s: bad version list", path)
            return None
        return VersionCacheEntry(ecosystem_id, versions, float(timestamp))
