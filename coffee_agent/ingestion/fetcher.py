"""
HTTP Fetcher Module
===================

Provides HTTP fetching for collectors with robots.txt compliance and
per-source rate limiting.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx

from coffee_agent.core.errors import CollectionError

if TYPE_CHECKING:
    from coffee_agent.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Result of fetching a URL."""

    url: str
    content: bytes
    mime_type: str
    status_code: int
    fetched_at: datetime
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if fetch was successful."""
        return self.error is None and 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class TokenBucket:
    """
    Token bucket rate limiter for per-source HTTP rate limiting.

    Allows bursting up to burst_limit requests, then enforces
    the steady-state rate of requests_per_second.
    """

    def __init__(self, requests_per_second: float, burst_limit: int) -> None:
        self.requests_per_second = requests_per_second
        self.burst_limit = burst_limit
        self.tokens = float(burst_limit)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Acquire a token, waiting if necessary."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.last_update = now

            self.tokens = min(self.burst_limit, self.tokens + elapsed * self.requests_per_second)

            if self.tokens < 1.0:
                wait_time = (1.0 - self.tokens) / self.requests_per_second
                await asyncio.sleep(wait_time)
                self.tokens = 0.0
            else:
                self.tokens -= 1.0


class RobotsChecker:
    """Fetches and caches robots.txt per domain."""

    def __init__(self, user_agent: str, client: httpx.AsyncClient) -> None:
        self.user_agent = user_agent
        self._client = client
        self._cache: dict[str, RobotFileParser | None] = {}
        self._lock = asyncio.Lock()

    async def _fetch_robots(self, domain: str, scheme: str) -> RobotFileParser | None:
        robots_url = f"{scheme}://{domain}/robots.txt"
        try:
            response = await self._client.get(robots_url, headers={"User-Agent": self.user_agent})
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch robots.txt for {domain}: {e}")
            return None

        if response.status_code != 200:
            # No robots.txt - allow all
            return None
        parser = RobotFileParser()
        parser.parse(response.text.splitlines())
        return parser

    async def is_allowed(self, url: str) -> bool:
        """Check if a URL is allowed by robots.txt."""
        parsed = urlparse(url)
        domain = parsed.netloc
        scheme = parsed.scheme or "https"

        async with self._lock:
            if domain not in self._cache:
                self._cache[domain] = await self._fetch_robots(domain, scheme)

        parser = self._cache.get(domain)
        if parser is None:
            return True
        return parser.can_fetch(self.user_agent, url)

    def clear_cache(self) -> None:
        """Clear the robots.txt cache."""
        self._cache.clear()


class Fetcher:
    """
    HTTP client used by collectors.

    Features:
    - Per-source rate limiting with token bucket algorithm
    - Robots.txt compliance
    - Bounded retries with exponential backoff on transport errors and 5xx
    """

    def __init__(
        self,
        user_agent: str = "CoffeeAgent/0.1",
        timeout: float = 30.0,
        max_retries: int = 3,
        respect_robots: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._owns_client = client is None
        self._robots_checker = RobotsChecker(user_agent, self._client) if respect_robots else None
        self._rate_limiters: dict[str, TokenBucket] = {}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_rate_limiter(self, source: SourceConfig) -> TokenBucket:
        if source.name not in self._rate_limiters:
            self._rate_limiters[source.name] = TokenBucket(
                requests_per_second=source.rate_limit.requests_per_second,
                burst_limit=source.rate_limit.burst_limit,
            )
        return self._rate_limiters[source.name]

    def _failure(self, url: str, fetched_at: datetime, error: str, status_code: int = 0) -> FetchResult:
        return FetchResult(
            url=url,
            content=b"",
            mime_type="",
            status_code=status_code,
            fetched_at=fetched_at,
            error=error,
        )

    async def fetch(self, url: str, source: SourceConfig) -> FetchResult:
        """
        Fetch a URL with rate limiting and robots.txt compliance.

        Args:
            url: URL to fetch
            source: Source configuration for rate limiting

        Returns:
            FetchResult with content or error
        """
        fetched_at = datetime.now(UTC)

        if self._robots_checker and not await self._robots_checker.is_allowed(url):
            return self._failure(url, fetched_at, "Disallowed by robots.txt")

        await self._get_rate_limiter(source).acquire()

        last_error: str | None = None
        last_status = 0
        for attempt in range(self.max_retries):
            try:
                response = await self._client.get(url, headers={"User-Agent": self.user_agent})
            except httpx.TimeoutException:
                last_error = f"Timeout after {self.timeout}s"
                logger.warning(f"Timeout fetching {url} (attempt {attempt + 1}/{self.max_retries})")
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(f"HTTP error fetching {url}: {e} (attempt {attempt + 1}/{self.max_retries})")
            else:
                if response.status_code < 500:
                    mime_type = response.headers.get("content-type", "").split(";")[0].strip()
                    error = None if response.is_success else f"HTTP {response.status_code}"
                    return FetchResult(
                        url=url,
                        content=response.content,
                        mime_type=mime_type,
                        status_code=response.status_code,
                        fetched_at=fetched_at,
                        error=error,
                    )
                last_status = response.status_code
                last_error = f"HTTP {response.status_code}"
                logger.warning(f"Server error fetching {url}: {last_error} (attempt {attempt + 1}/{self.max_retries})")

            if attempt < self.max_retries - 1:
                await asyncio.sleep(2**attempt)

        return self._failure(url, fetched_at, last_error or "Unknown error", last_status)

    async def fetch_json(self, url: str, source: SourceConfig) -> Any:
        """
        Fetch a URL and decode its JSON body.

        Raises:
            CollectionError: If the fetch fails or the body is not JSON
        """
        result = await self.fetch(url, source)
        if not result.success:
            raise CollectionError(source.name, f"{url}: {result.error}")
        try:
            return json.loads(result.content)
        except ValueError as e:
            raise CollectionError(source.name, f"{url}: invalid JSON ({e})") from e
