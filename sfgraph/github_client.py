"""Authenticated, rate-limited, caching client for GitHub repository content.

Every request goes through one :class:`RequestLimiter`, carries a bearer
token, and is retried on transient network failures with exponential
backoff. A 403 gets a single delayed retry before it is reported as a rate
limit. Responses are cached per kind (contents/trees, file text, search).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import quote, urlsplit

import httpx

from .cache import ExpiringCache
from .config import SEARCH_PAGE_SIZE, Settings
from .errors import (
    AuthenticationError,
    GitHubAPIError,
    NotFoundError,
    RateLimitError,
    TransientNetworkError,
)
from .rate_limiter import RequestLimiter

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/vnd.github.v3+json"
TEXT_MATCH_MEDIA_TYPE = "application/vnd.github.v3.text-match+json"
RAW_MEDIA_TYPE = "application/vnd.github.v3.raw"

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]

_RETRYABLE = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


def normalize_download_url(url: str) -> str:
    """Strip the query string so tokenised raw URLs share one cache key."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


class GitHubContentClient:
    """Read-only access to trees, contents, blobs and code search."""

    def __init__(
        self,
        settings: Settings,
        token_provider: Optional[TokenProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RequestLimiter] = None,
    ) -> None:
        self.settings = settings
        self.api_base = settings.api_base.rstrip("/")
        self._token = settings.token
        self._token_provider = token_provider
        self._http = http_client or httpx.AsyncClient(follow_redirects=True)
        self._owns_http = http_client is None
        self.limiter = limiter or RequestLimiter(
            max_concurrent=settings.max_concurrent_requests,
            min_interval=settings.request_interval,
        )

        self.contents_cache: ExpiringCache[Any] = ExpiringCache("contents", settings.contents_ttl)
        self.file_content_cache: ExpiringCache[str] = ExpiringCache("file-content", settings.file_content_ttl)
        self.search_cache: ExpiringCache[Dict[str, Any]] = ExpiringCache("search", settings.search_ttl)
        # Remembered 404s, so probing conventional paths does not repeat itself.
        self.missing_cache: ExpiringCache[bool] = ExpiringCache("missing", settings.contents_ttl)

        self.api_calls = 0
        self.downloads = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "GitHubContentClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Authentication + transport
    # ------------------------------------------------------------------

    async def _ensure_token(self) -> str:
        if not self._token and self._token_provider is not None:
            token = self._token_provider()
            if inspect.isawaitable(token):
                token = await token
            self._token = token
        if not self._token:
            raise AuthenticationError("GitHub authentication required")
        return self._token

    async def _get(self, url: str, accept: str = JSON_MEDIA_TYPE, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        token = await self._ensure_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": accept}
        max_retries = self.settings.max_retries

        for attempt in range(max_retries + 1):
            try:
                async with self.limiter:
                    logger.debug("GitHub request (attempt %d): %s", attempt + 1, url)
                    self.api_calls += 1
                    response = await self._http.get(
                        url, headers=headers, params=params, timeout=self.settings.request_timeout
                    )
                    if response.status_code == 403:
                        logger.warning(
                            "Rate limit hit for %s, retrying in %.1fs", url, self.settings.rate_limit_delay
                        )
                        await asyncio.sleep(self.settings.rate_limit_delay)
                        self.api_calls += 1
                        response = await self._http.get(
                            url, headers=headers, params=params, timeout=self.settings.request_timeout
                        )
                        if response.status_code == 403:
                            raise RateLimitError(
                                f"GitHub API error after retry: {response.status_code}",
                                status_code=403,
                                url=url,
                            )
            except _RETRYABLE as exc:
                if attempt >= max_retries:
                    raise TransientNetworkError(
                        f"Network error for URL {url} after {max_retries + 1} attempts: {exc}",
                        url=url,
                    ) from exc
                delay = min(self.settings.backoff_base * (2 ** attempt), self.settings.backoff_max)
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1, max_retries + 1, delay, exc,
                )
                await asyncio.sleep(delay)
                continue

            self._raise_for_status(response, url)
            return response

        raise TransientNetworkError(f"Request to {url} was never attempted", url=url)

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 401:
            raise AuthenticationError("GitHub rejected the access token", status_code=status, url=url)
        if status == 404:
            raise NotFoundError(f"Not found: {url}", status_code=status, url=url)
        raise GitHubAPIError(
            f"GitHub API error: {status} - {response.reason_phrase}", status_code=status, url=url
        )

    async def _get_json(self, url: str, accept: str = JSON_MEDIA_TYPE, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._get(url, accept=accept, params=params)
        return response.json()

    # ------------------------------------------------------------------
    # Repository structure
    # ------------------------------------------------------------------

    def _repo_url(self, org: str, repo: str) -> str:
        return f"{self.api_base}/repos/{org}/{repo}"

    async def get_repository(self, org: str, repo: str) -> Dict[str, Any]:
        cache_key = f"repo:{org}:{repo}"
        cached = self.contents_cache.get(cache_key)
        if cached is not None:
            return cached
        data = await self._get_json(self._repo_url(org, repo))
        self.contents_cache.set(cache_key, data)
        return data

    async def list_tree(self, org: str, repo: str, branch: Optional[str] = None) -> List[Dict[str, Any]]:
        """Every entry of the branch tree (``recursive=1``)."""
        cache_key = f"tree:{org}:{repo}"
        cached = self.contents_cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for repository tree: %s/%s", org, repo)
            return cached

        if branch is None:
            branch = (await self.get_repository(org, repo)).get("default_branch", "main")

        logger.info("Fetching repository tree from API: %s/%s@%s", org, repo, branch)
        data = await self._get_json(
            f"{self._repo_url(org, repo)}/git/trees/{quote(branch, safe='')}",
            params={"recursive": "1"},
        )
        if data.get("truncated"):
            logger.warning("Repository %s/%s tree was truncated; some files may be missing", org, repo)

        tree = data.get("tree", [])
        self.contents_cache.set(cache_key, tree)
        return tree

    async def get_contents(self, org: str, repo: str, path: str = "") -> List[Dict[str, Any]]:
        """Directory listing or single file entry, always as a list.

        Raises:
            NotFoundError: when the path does not exist.
        """
        cache_key = f"contents:{org}:{repo}:{path}"
        cached = self.contents_cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for repository contents: %s/%s/%s", org, repo, path)
            return cached
        if cache_key in self.missing_cache:
            raise NotFoundError(f"Not found: {org}/{repo}/{path}", status_code=404)

        url = f"{self._repo_url(org, repo)}/contents/{quote(path)}"
        try:
            data = await self._get_json(url)
        except NotFoundError:
            self.missing_cache.set(cache_key, True)
            raise

        result = data if isinstance(data, list) else [data]
        self.contents_cache.set(cache_key, result)
        return result

    async def get_file_metadata(self, org: str, repo: str, path: str) -> Optional[Dict[str, Any]]:
        """Content entry for a single file, or ``None`` when it does not exist."""
        try:
            entries = await self.get_contents(org, repo, path)
        except NotFoundError:
            return None
        for entry in entries:
            if entry.get("type", "file") == "file" and entry.get("path", path) == path:
                return entry
        return None

    # ------------------------------------------------------------------
    # Blobs + search
    # ------------------------------------------------------------------

    async def get_file_content(self, download_url: Optional[str]) -> Optional[str]:
        """Download file text, or ``None`` when the URL is empty or gone."""
        if not download_url:
            return None

        cache_key = normalize_download_url(download_url)
        cached = self.file_content_cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for file content: %s", cache_key)
            return cached

        try:
            response = await self._get(download_url, accept=RAW_MEDIA_TYPE)
        except NotFoundError:
            logger.debug("File content not found: %s", download_url)
            return None

        self.downloads += 1
        content = response.text
        self.file_content_cache.set(cache_key, content)
        return content

    async def search_code(self, query: str, per_page: Optional[int] = None) -> Dict[str, Any]:
        cache_key = f"search:{query}"
        cached = self.search_cache.get(cache_key)
        if cached is not None:
            return cached

        logger.debug("GitHub code search: %s", query)
        data = await self._get_json(
            f"{self.api_base}/search/code",
            accept=TEXT_MATCH_MEDIA_TYPE,
            params={"q": query, "per_page": per_page or SEARCH_PAGE_SIZE},
        )
        self.search_cache.set(cache_key, data)
        return data

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def _caches(self) -> List[ExpiringCache]:
        return [self.contents_cache, self.file_content_cache, self.search_cache, self.missing_cache]

    def cache_stats(self) -> Dict[str, Dict[str, Any]]:
        return {cache.name: cache.stats() for cache in self._caches()}

    def cleanup(self) -> int:
        return sum(cache.cleanup() for cache in self._caches())

    def clear_caches(self) -> None:
        for cache in self._caches():
            cache.clear()

    def invalidate_repository(self, repository: str) -> int:
        """Forget cached listings and searches that mention *repository*."""
        org_repo = repository.replace("/", ":")
        removed = 0
        for cache in (self.contents_cache, self.missing_cache):
            removed += cache.invalidate(lambda key: org_repo in key or repository in key)
        removed += self.search_cache.invalidate(f"repo:{repository}")
        removed += self.file_content_cache.invalidate(f"/{repository}/")
        return removed
