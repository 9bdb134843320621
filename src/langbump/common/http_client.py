"""Release feed client.

Fetches raw release/tag listings from upstream JSON endpoints (GitHub
releases and tags, the Node.js distribution index). Every failure mode,
whether network error, timeout, non-2xx status or an unparseable body, is
raised as ``FetchError`` so callers only need one fallback path. There is
no retry logic here.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import urllib.parse
from typing import Any, Dict, List, Optional

import aiohttp

from ..constants import Constants
from .logging_utils import Timer, extra_context, is_debug_enabled, safe_url

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when an upstream release listing cannot be obtained."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"{safe_url(url)}: {reason}")


class ReleaseSource:
    """Async client for upstream release listings.

    One instance wraps one ``aiohttp.ClientSession`` and can serve many
    concurrent ``fetch`` calls.
    """

    def __init__(
        self,
        timeout: Optional[int] = None,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the release source.

        Args:
            timeout: Total request timeout in seconds.
            token: GitHub token; defaults to the GITHUB_TOKEN environment variable.
            session: Pre-built session (tests); not closed by ``stop``.
        """
        effective = timeout if timeout is not None else Constants.REQUEST_TIMEOUT
        self._timeout = aiohttp.ClientTimeout(total=effective)
        self._token = token if token is not None else os.environ.get(Constants.ENV_GITHUB_TOKEN)
        self._session = session
        self._owns_session = session is None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def build_url(self, url: str) -> str:
        """Add paging parameters for GitHub list endpoints."""
        parts = urllib.parse.urlsplit(url)
        if parts.hostname != Constants.GITHUB_API_HOST:
            return url
        query = dict(urllib.parse.parse_qsl(parts.query))
        query.setdefault("per_page", str(Constants.GITHUB_PER_PAGE))
        return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))

    def build_headers(self, url: str) -> Dict[str, str]:
        """Build request headers for ``url``."""
        headers = {
            "Accept": "application/json",
            "User-Agent": Constants.USER_AGENT,
        }
        if self._token and urllib.parse.urlsplit(url).hostname == Constants.GITHUB_API_HOST:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def fetch(self, url: str) -> List[Dict[str, Any]]:
        """Fetch and decode a JSON list of release records.

        Args:
            url: Listing endpoint.

        Returns:
            The decoded list.

        Raises:
            FetchError: On any network, status or decoding failure.
        """
        if self._session is None:
            await self.start()
        assert self._session is not None

        target = self.build_url(url)
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_url(target),
                    ),
                )
            try:
                async with self._session.get(
                    target, headers=self.build_headers(target), timeout=self._timeout
                ) as response:
                    if not 200 <= response.status < 300:
                        raise FetchError(url, f"HTTP {response.status} {response.reason or ''}".strip(), response.status)
                    text = await response.text()
            except FetchError:
                raise
            except asyncio.TimeoutError as exc:
                raise FetchError(url, f"timed out after {self._timeout.total} seconds") from exc
            except aiohttp.ClientError as exc:
                raise FetchError(url, f"connection error: {exc}") from exc
            except UnicodeDecodeError as exc:
                raise FetchError(url, f"undecodable body: {exc.reason}") from exc

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FetchError(url, f"malformed JSON: {exc.msg}") from exc
        if not isinstance(data, list):
            raise FetchError(url, f"expected a JSON list, got {type(data).__name__}")

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    duration_ms=t.duration_ms(),
                    target=safe_url(target),
                    records=len(data),
                ),
            )
        return data

    async def __aenter__(self) -> "ReleaseSource":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
