"""Data models for release feeds, ecosystems and resolved versions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..constants import Constants

STRICT_VERSION_FORMAT = r"^\d+\.\d+(\.\d+)?$"


class VersionSource(Enum):
    """Where a resolved version list came from."""
    CACHE = "cache"
    NETWORK = "network"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class VersionFeed:
    """One independently versioned upstream component.

    ``tag_pattern`` must define a ``version`` group; the text it captures has
    ``separator`` replaced by dots before the format check.
    """
    feed_id: str
    source_url: str
    marker_key: str
    fallback_version: str
    tag_pattern: str
    tag_field: str = "tag_name"
    separator: str = "."
    version_format: str = STRICT_VERSION_FORMAT
    retention: int = Constants.DEFAULT_RETENTION
    label: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.label or self.feed_id


@dataclass(frozen=True)
class EcosystemConfig:
    """Static description of one language ecosystem."""
    ecosystem_id: str
    label: str
    targets: Tuple[str, ...]
    primary: VersionFeed
    secondary: Optional[VersionFeed] = None

    @property
    def feeds(self) -> Tuple[VersionFeed, ...]:
        if self.secondary is None:
            return (self.primary,)
        return (self.primary, self.secondary)

    @property
    def is_paired(self) -> bool:
        return self.secondary is not None


@dataclass
class VersionCacheEntry:
    """Persisted version lists for one ecosystem."""
    ecosystem_id: str
    versions: List[str]
    timestamp: float  # unix millis
    secondary: Optional[List[str]] = None


@dataclass(frozen=True)
class VersionCandidate:
    """A version string that survived normalization."""
    ecosystem_id: str
    feed_id: str
    version: str


@dataclass
class ResolvedVersions:
    """Resolution outcome for one ecosystem; each list is non-empty."""
    ecosystem_id: str
    primary: List[VersionCandidate]
    secondary: Optional[List[VersionCandidate]] = None
    source: VersionSource = VersionSource.NETWORK
    errors: List[str] = field(default_factory=list)

    @property
    def latest(self) -> VersionCandidate:
        return self.primary[0]

    @property
    def latest_secondary(self) -> Optional[VersionCandidate]:
        if not self.secondary:
            return None
        return self.secondary[0]
