"""Built-in ecosystem table.

Each entry names the upstream feed, the marker key rewritten in the target
Dockerfiles, the extraction rule for tag names and the last-known-good
fallback used when the feed is unavailable.
"""

from typing import Dict, Iterable, List, Tuple

from ..constants import Constants
from .models import EcosystemConfig, VersionFeed


def _github(repo: str, kind: str = "releases") -> str:
    return f"{Constants.URL_GITHUB_REPOS}/{repo}/{kind}"


def _chunk_targets(ecosystem_id: str) -> Tuple[str, ...]:
    base = f"{Constants.CHUNKS_DIR}/lang-{ecosystem_id}"
    return (f"{base}/Dockerfile", f"{base}/Dockerfile.build.ubi8")


_BUILTIN: List[EcosystemConfig] = [
    EcosystemConfig(
        ecosystem_id="php",
        label="PHP",
        targets=_chunk_targets("php"),
        primary=VersionFeed(
            feed_id="php",
            source_url=_github("php/php-src"),
            marker_key="PHP_VERSION",
            fallback_version="8.3.3",
            tag_pattern=r"^(?:php-)?v?(?P<version>[78]\..+)$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="csharp",
        label="C# (.NET)",
        targets=_chunk_targets("csharp"),
        primary=VersionFeed(
            feed_id="dotnet",
            source_url=_github("dotnet/runtime"),
            marker_key="DOTNET_VERSION",
            fallback_version="8.0.3",
            tag_pattern=r"^v?(?P<version>\d.*)$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="java",
        label="Java",
        targets=_chunk_targets("java"),
        primary=VersionFeed(
            feed_id="java",
            source_url=_github("openjdk/jdk"),
            marker_key="JAVA_VERSION",
            fallback_version="21",
            # Only the major is pinned: jdk-21.0.2-ga and jdk21 both yield 21.
            tag_pattern=r"^jdk-?(?P<version>\d+)(?:\D.*)?$",
            version_format=r"^\d+$",
            retention=10,
        ),
    ),
    EcosystemConfig(
        ecosystem_id="cpp",
        label="C++ (GCC)",
        targets=_chunk_targets("cpp"),
        primary=VersionFeed(
            feed_id="gcc",
            source_url=_github("gcc-mirror/gcc"),
            marker_key="GCC_VERSION",
            fallback_version="13.2.0",
            tag_pattern=r"^releases/gcc-(?P<version>\d+\.\d+(?:\.\d+)?)$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="elixir",
        label="Elixir",
        targets=_chunk_targets("elixir"),
        primary=VersionFeed(
            feed_id="elixir",
            source_url=_github("elixir-lang/elixir"),
            marker_key="ELIXIR_VERSION",
            fallback_version="1.16.1",
            tag_pattern=r"^v(?P<version>.+)$",
        ),
        secondary=VersionFeed(
            feed_id="otp",
            label="OTP",
            source_url=_github("erlang/otp"),
            marker_key="OTP_VERSION",
            fallback_version="26.2.1",
            tag_pattern=r"^OTP-(?P<version>.+)$",
            version_format=r"^\d+(\.\d+){0,2}$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="python",
        label="Python",
        targets=_chunk_targets("python"),
        primary=VersionFeed(
            feed_id="python",
            source_url=_github("python/cpython", "tags"),
            marker_key="PYTHON_VERSION",
            fallback_version="3.12.2",
            tag_field="name",
            tag_pattern=r"^v?(?P<version>.+)$",
            version_format=r"^\d+\.\d+\.\d+$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="rust",
        label="Rust",
        targets=_chunk_targets("rust"),
        primary=VersionFeed(
            feed_id="rust",
            source_url=_github("rust-lang/rust"),
            marker_key="RUST_VERSION",
            fallback_version="1.76.0",
            tag_pattern=r"^v?(?P<version>1\..+)$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="node",
        label="Node.js",
        targets=_chunk_targets("node"),
        primary=VersionFeed(
            feed_id="node",
            source_url=Constants.URL_NODE_INDEX,
            marker_key="NODE_VERSION",
            fallback_version="20.11.0",
            tag_field="version",
            # rc, beta and nightly builds carry a suffix and fail the match.
            tag_pattern=r"^v(?P<version>\d+\.\d+\.\d+)$",
        ),
    ),
    EcosystemConfig(
        ecosystem_id="ruby",
        label="Ruby",
        targets=_chunk_targets("ruby"),
        primary=VersionFeed(
            feed_id="ruby",
            source_url=_github("ruby/ruby"),
            marker_key="RUBY_VERSION",
            fallback_version="3.3.0",
            tag_pattern=r"^[v_]?(?P<version>\d+[._]\d+(?:[._]\d+)?)$",
            separator="_",
        ),
    ),
]

ECOSYSTEMS: Dict[str, EcosystemConfig] = {eco.ecosystem_id: eco for eco in _BUILTIN}

SUPPORTED_ECOSYSTEMS: List[str] = list(ECOSYSTEMS)


def select(table: Dict[str, EcosystemConfig], ids: Iterable[str]) -> List[EcosystemConfig]:
    """Return table entries for ``ids`` in first-seen order, without repeats.

    Raises:
        KeyError: if an id is not in the table.
    """
    keys = dict.fromkeys(ecosystem_id.strip().lower() for ecosystem_id in ids)
    for key in keys:
        if key not in table:
            raise KeyError(key)
    return [table[key] for key in keys]
