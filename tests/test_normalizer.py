"""Tests for release normalization and version resolution."""

import asyncio
import os
import threading

import pytest

from langbump.common.http_client import FetchError
from langbump.versioning.cache import VersionCache
from langbump.versioning.ecosystems import ECOSYSTEMS
from langbump.versioning.models import VersionSource
from langbump.versioning.normalizer import (
    VersionNormalizer,
    extract_version,
    normalize,
    sort_versions,
)


def _tags(*names, field="tag_name", **flags):
    return [dict({field: name}, **flags) for name in names]


class FakeSource:
    """Release source serving canned payloads keyed by URL."""

    def __init__(self, payloads=None, errors=None):
        self.payloads = payloads or {}
        self.errors = errors or {}
        self.calls = []

    async def fetch(self, url):
        self.calls.append(url)
        if url in self.errors:
            raise self.errors[url]
        return self.payloads.get(url, [])


def _feed(ecosystem_id, secondary=False):
    eco = ECOSYSTEMS[ecosystem_id]
    return eco.secondary if secondary else eco.primary


class TestSortVersions:
    """Numeric ordering of dotted versions."""

    def test_numeric_not_lexicographic(self):
        assert sort_versions(["2.9.0", "2.10.0", "2.1.0"]) == ["2.10.0", "2.9.0", "2.1.0"]

    def test_missing_components_count_as_zero(self):
        assert sort_versions(["1.2", "1.2.1", "1.10"]) == ["1.10", "1.2.1", "1.2"]

    def test_single_component(self):
        assert sort_versions(["17", "21", "8"]) == ["21", "17", "8"]

    def test_duplicates_removed(self):
        assert sort_versions(["3.3.0", "3.3.0", "3.2.2"]) == ["3.3.0", "3.2.2"]


class TestNormalizePerEcosystem:
    """Tag extraction rules for each built-in feed."""

    def test_rust_skips_prerelease_and_draft(self):
        records = (
            _tags("1.76.0", "1.75.0")
            + _tags("1.77.0-beta.1", prerelease=True)
            + _tags("1.78.0", draft=True)
        )
        assert normalize(records, _feed("rust")) == ["1.76.0", "1.75.0"]

    def test_php_prefix_and_rc(self):
        records = _tags("php-8.3.3", "php-8.4.0RC1", "php-8.2.17", "php-5.6.40")
        assert normalize(records, _feed("php")) == ["8.3.3", "8.2.17"]

    def test_dotnet_previews_rejected(self):
        records = _tags("v8.0.3", "v9.0.0-preview.1.24080.9", "v6.0.28")
        assert normalize(records, _feed("csharp")) == ["8.0.3", "6.0.28"]

    def test_java_major_only(self):
        records = _tags("jdk-21.0.2-ga", "jdk-22+36", "jdk-21+35", "jdk-17.0.10-ga")
        assert normalize(records, _feed("java")) == ["22", "21", "17"]

    def test_gcc_release_tags(self):
        records = _tags("releases/gcc-13.2.0", "releases/gcc-12.3.0", "basepoints/gcc-14", "releases/gcc-14")
        assert normalize(records, _feed("cpp")) == ["13.2.0", "12.3.0"]

    def test_elixir_tags(self):
        records = _tags("v1.16.1", "v1.17.0-rc.0", "v1.15.7")
        assert normalize(records, _feed("elixir")) == ["1.16.1", "1.15.7"]

    def test_otp_tags(self):
        records = _tags("OTP-26.2.1", "OTP-27.0-rc1", "OTP-26", "OTP-25.3.2.9")
        assert normalize(records, _feed("elixir", secondary=True)) == ["26.2.1", "26"]

    def test_python_tags_use_name_field(self):
        records = _tags("v3.12.2", "v3.13.0a4", "v3.11.8", "v3.12", field="name")
        assert normalize(records, _feed("python")) == ["3.12.2", "3.11.8"]

    def test_node_index_entries(self):
        records = [
            {"version": "v21.6.2", "lts": False},
            {"version": "v20.11.0", "lts": "Iron"},
            {"version": "v22.0.0-nightly20240201", "lts": False},
        ]
        assert normalize(records, _feed("node")) == ["21.6.2", "20.11.0"]

    def test_ruby_underscore_tags(self):
        records = _tags("v3_3_0", "v3_2_3", "v3_4_0_preview1", "3.1.4")
        assert normalize(records, _feed("ruby")) == ["3.3.0", "3.2.3", "3.1.4"]

    def test_retention_limit(self):
        records = _tags(*[f"1.{minor}.0" for minor in range(50, 75)])
        versions = normalize(records, _feed("rust"))
        assert len(versions) == 20
        assert versions[0] == "1.74.0"
        assert versions[-1] == "1.55.0"

    def test_java_retention_is_ten(self):
        records = _tags(*[f"jdk-{major}+1" for major in range(8, 24)])
        assert normalize(records, _feed("java")) == [str(m) for m in range(23, 13, -1)]

    def test_garbage_records_skipped(self):
        records = [None, "1.76.0", {"tag_name": 176}, {"name": "1.76.0"}, {"tag_name": " 1.76.0 "}]
        assert normalize(records, _feed("rust")) == ["1.76.0"]

    def test_extract_version_no_match(self):
        assert extract_version("nightly", _feed("rust")) is None


class TestVersionNormalizerResolve:
    """Cache, network and fallback resolution."""

    def test_network_result_cached(self, tmp_path):
        rust = ECOSYSTEMS["rust"]
        source = FakeSource({rust.primary.source_url: _tags("1.75.0", "1.76.0")})
        cache = VersionCache(str(tmp_path))

        resolved = asyncio.run(VersionNormalizer(source, cache).resolve(rust))

        assert [c.version for c in resolved.primary] == ["1.76.0", "1.75.0"]
        assert resolved.latest.version == "1.76.0"
        assert resolved.source == VersionSource.NETWORK
        assert resolved.errors == []
        assert cache.read("rust").versions == ["1.76.0", "1.75.0"]

    def test_cache_hit_skips_network(self, tmp_path):
        rust = ECOSYSTEMS["rust"]
        cache = VersionCache(str(tmp_path))
        cache.write("rust", ["1.76.0", "1.75.0"])
        source = FakeSource(errors={rust.primary.source_url: AssertionError("should not fetch")})

        resolved = asyncio.run(VersionNormalizer(source, cache).resolve(rust))

        assert source.calls == []
        assert resolved.source == VersionSource.CACHE
        assert resolved.latest.version == "1.76.0"

    def test_cached_malformed_entries_dropped(self, tmp_path):
        rust = ECOSYSTEMS["rust"]
        cache = VersionCache(str(tmp_path))
        cache.write("rust", ["1.76.0; rm -rf /", "1.75.0", "1.75.0"])

        resolved = asyncio.run(VersionNormalizer(FakeSource(), cache).resolve(rust))

        assert [c.version for c in resolved.primary] == ["1.75.0"]
        assert resolved.source == VersionSource.CACHE

    def test_fetch_error_uses_fallback(self, tmp_path):
        rust = ECOSYSTEMS["rust"]
        source = FakeSource(errors={rust.primary.source_url: FetchError(rust.primary.source_url, "HTTP 503")})
        cache = VersionCache(str(tmp_path))

        resolved = asyncio.run(VersionNormalizer(source, cache).resolve(rust))

        assert [c.version for c in resolved.primary] == ["1.76.0"]
        assert resolved.source == VersionSource.FALLBACK
        assert len(resolved.errors) == 1
        assert "HTTP 503" in resolved.errors[0]
        assert not os.path.exists(cache.path_for("rust"))

    @pytest.mark.parametrize("payload", [[], _tags("nightly", "1.77.0-beta.2"), None, 42])
    def test_unusable_payload_uses_fallback(self, payload):
        rust = ECOSYSTEMS["rust"]
        source = FakeSource({rust.primary.source_url: payload})

        resolved = asyncio.run(VersionNormalizer(source).resolve(rust))

        assert [c.version for c in resolved.primary] == [rust.primary.fallback_version]
        assert resolved.source == VersionSource.FALLBACK

    def test_paired_feeds_fall_back_independently(self, tmp_path):
        elixir = ECOSYSTEMS["elixir"]
        source = FakeSource(
            {elixir.primary.source_url: _tags("v1.16.2", "v1.16.1")},
            errors={elixir.secondary.source_url: FetchError(elixir.secondary.source_url, "timed out")},
        )
        cache = VersionCache(str(tmp_path))

        resolved = asyncio.run(VersionNormalizer(source, cache).resolve(elixir))

        assert [c.version for c in resolved.primary] == ["1.16.2", "1.16.1"]
        assert [c.version for c in resolved.secondary] == ["26.2.1"]
        assert resolved.source == VersionSource.FALLBACK
        assert cache.read("elixir") is None

    def test_paired_feeds_cached_together(self, tmp_path):
        elixir = ECOSYSTEMS["elixir"]
        source = FakeSource({
            elixir.primary.source_url: _tags("v1.16.2"),
            elixir.secondary.source_url: _tags("OTP-26.2.2", "OTP-26.2.1"),
        })
        cache = VersionCache(str(tmp_path))

        resolved = asyncio.run(VersionNormalizer(source, cache).resolve(elixir))

        assert resolved.latest_secondary.version == "26.2.2"
        entry = cache.read("elixir")
        assert entry.versions == ["1.16.2"]
        assert entry.secondary == ["26.2.2", "26.2.1"]

    def test_offline_uses_fallback_without_fetching(self):
        resolved = asyncio.run(VersionNormalizer(offline=True).resolve(ECOSYSTEMS["java"]))
        assert [c.version for c in resolved.primary] == ["21"]
        assert resolved.source == VersionSource.FALLBACK
        assert resolved.errors == []

    def test_offline_prefers_fresh_cache(self, tmp_path):
        cache = VersionCache(str(tmp_path))
        cache.write("node", ["20.11.1"])
        resolved = asyncio.run(VersionNormalizer(cache=cache, offline=True).resolve(ECOSYSTEMS["node"]))
        assert resolved.latest.version == "20.11.1"
        assert resolved.source == VersionSource.CACHE

    def test_candidates_tagged_with_feed(self):
        resolved = asyncio.run(VersionNormalizer().resolve(ECOSYSTEMS["elixir"]))
        assert resolved.latest.ecosystem_id == "elixir"
        assert resolved.latest.feed_id == "elixir"
        assert resolved.latest_secondary.feed_id == "otp"


class TestCacheAccessOffLoop:
    """Cache file access runs on worker threads."""

    def test_cache_read_and_write_leave_event_loop_thread(self, tmp_path):
        rust = ECOSYSTEMS["rust"]
        threads = {}

        class RecordingCache(VersionCache):
            def read(self, ecosystem_id):
                threads["read"] = threading.get_ident()
                return super().read(ecosystem_id)

            def write(self, ecosystem_id, versions, secondary=None):
                threads["write"] = threading.get_ident()
                return super().write(ecosystem_id, versions, secondary)

        async def _run():
            threads["loop"] = threading.get_ident()
            source = FakeSource({rust.primary.source_url: _tags("1.76.0")})
            return await VersionNormalizer(source, RecordingCache(str(tmp_path))).resolve(rust)

        resolved = asyncio.run(_run())

        assert resolved.source == VersionSource.NETWORK
        assert threads["read"] != threads["loop"]
        assert threads["write"] != threads["loop"]
