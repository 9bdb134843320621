"""Tests for the release feed client."""

import asyncio

import pytest

aiohttp = pytest.importorskip("aiohttp")
from aiohttp import web
import aiohttp.test_utils

from langbump.common.http_client import FetchError, ReleaseSource


def _app(routes):
    app = web.Application()
    for path, handler in routes.items():
        app.router.add_get(path, handler)
    return app


async def _fetch_from(routes, path, **kwargs):
    async with aiohttp.test_utils.TestServer(_app(routes)) as ts:
        async with ReleaseSource(**kwargs) as source:
            return await source.fetch(f"http://{ts.host}:{ts.port}{path}")


class TestReleaseSourceFetch:
    """Fetching against a local server."""

    def test_returns_decoded_list(self):
        """A JSON array body is returned as-is."""
        async def handler(request):
            return web.json_response([{"tag_name": "1.76.0"}, {"tag_name": "1.75.0"}])

        data = asyncio.run(_fetch_from({"/releases": handler}, "/releases"))

        assert data == [{"tag_name": "1.76.0"}, {"tag_name": "1.75.0"}]

    def test_non_2xx_raises_fetch_error(self):
        async def handler(request):
            return web.Response(status=404, text="Not Found")

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(_fetch_from({"/releases": handler}, "/releases"))

        assert excinfo.value.status == 404
        assert "HTTP 404" in str(excinfo.value)

    def test_rate_limited_raises_fetch_error(self):
        async def handler(request):
            return web.json_response({"message": "API rate limit exceeded"}, status=403)

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(_fetch_from({"/releases": handler}, "/releases"))

        assert excinfo.value.status == 403

    def test_malformed_json_raises_fetch_error(self):
        async def handler(request):
            return web.Response(text="[{not json", content_type="application/json")

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(_fetch_from({"/releases": handler}, "/releases"))

        assert "malformed JSON" in str(excinfo.value)

    def test_non_list_payload_raises_fetch_error(self):
        async def handler(request):
            return web.json_response({"releases": []})

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(_fetch_from({"/releases": handler}, "/releases"))

        assert "expected a JSON list" in str(excinfo.value)

    def test_timeout_raises_fetch_error(self):
        async def handler(request):
            await asyncio.sleep(1)
            return web.json_response([])

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(_fetch_from({"/slow": handler}, "/slow", timeout=0.2))

        assert "timed out" in str(excinfo.value)

    def test_connection_refused_raises_fetch_error(self):
        async def _run():
            async with ReleaseSource(timeout=5) as source:
                await source.fetch("http://127.0.0.1:1/releases")

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(_run())

        assert excinfo.value.status is None

    def test_sends_user_agent_and_accept(self):
        seen = {}

        async def handler(request):
            seen.update(request.headers)
            return web.json_response([])

        asyncio.run(_fetch_from({"/index.json": handler}, "/index.json", token="secret"))

        assert seen["User-Agent"] == "langbump/1.0"
        assert seen["Accept"] == "application/json"
        # Tokens are only sent to the GitHub API host.
        assert "Authorization" not in seen

    def test_fetch_starts_session_lazily(self):
        async def handler(request):
            return web.json_response([{"version": "v20.11.0"}])

        async def _run():
            async with aiohttp.test_utils.TestServer(_app({"/index.json": handler})) as ts:
                source = ReleaseSource()
                try:
                    return await source.fetch(f"http://{ts.host}:{ts.port}/index.json")
                finally:
                    await source.stop()

        assert asyncio.run(_run()) == [{"version": "v20.11.0"}]


class TestReleaseSourceRequestBuilding:
    """URL and header construction."""

    def test_github_url_gets_per_page(self):
        source = ReleaseSource()
        url = source.build_url("https://api.github.com/repos/rust-lang/rust/releases")
        assert url == "https://api.github.com/repos/rust-lang/rust/releases?per_page=100"

    def test_existing_per_page_kept(self):
        source = ReleaseSource()
        url = source.build_url("https://api.github.com/repos/python/cpython/tags?per_page=30")
        assert url == "https://api.github.com/repos/python/cpython/tags?per_page=30"

    def test_non_github_url_untouched(self):
        source = ReleaseSource()
        assert source.build_url("https://nodejs.org/dist/index.json") == "https://nodejs.org/dist/index.json"

    def test_token_sent_to_github(self):
        source = ReleaseSource(token="abc123")
        headers = source.build_headers("https://api.github.com/repos/ruby/ruby/releases")
        assert headers["Authorization"] == "Bearer abc123"

    def test_token_from_environment(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        source = ReleaseSource()
        headers = source.build_headers("https://api.github.com/repos/ruby/ruby/releases")
        assert headers["Authorization"] == "Bearer from-env"

    def test_no_token_no_authorization(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        source = ReleaseSource()
        headers = source.build_headers("https://api.github.com/repos/ruby/ruby/releases")
        assert "Authorization" not in headers

    def test_fetch_error_message_hides_query(self):
        err = FetchError("https://api.github.com/repos/x/y/releases?access_token=zzz", "HTTP 500")
        assert "zzz" not in str(err)
        assert err.reason == "HTTP 500"
