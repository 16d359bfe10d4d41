"""Shared utilities for the metadata scrapers.

This module provides common functionality used by the source adapters,
the stage runner and the resolution service:

Includes text normalization, DOI/arXiv handling, async HTTP infrastructure
with per-source rate limiting and retries, and a race combinator for
mirrored endpoints.
"""

from __future__ import annotations

import asyncio
import re
import time
import unicodedata
from collections.abc import Awaitable
from typing import Any, TypeVar
from urllib.parse import quote, urlencode

import httpx

T = TypeVar("T")

# ------------- Constants & Regex -------------

ARXIV_ID_RE = re.compile(
    r"""
    (?:
        arxiv[:\s/]?   # prefix
    )?
    (?P<id>
        (?:\d{4}\.\d{4,5})(?:v\d+)?   # new style
        |
        (?:[a-z\-]+(?:\.[A-Z]{2})?/\d{7})(?:v\d+)?  # old style e.g., cs/0301001
    )
    """,
    re.IGNORECASE | re.VERBOSE,
)

ARXIV_HOST_RE = re.compile(r"https?://(?:www\.)?arxiv\.org/(?:abs|pdf)/(?P<id>[^?/]+)", re.IGNORECASE)

DOI_IN_TEXT_RE = re.compile(r"10\.\d{4,9}/[-._;()/:A-Z0-9]+", re.IGNORECASE)

# API endpoints
ARXIV_API = "https://export.arxiv.org/api/query"
DOI_RESOLVER = "https://dx.doi.org"
CROSSREF_API = "https://api.crossref.org/works"
CROSSREF_OPENURL = "https://doi.crossref.org/servlet/query"
DBLP_HOST = "https://dblp.org"
DBLP_MIRROR_HOST = "https://dblp.uni-trier.de"
S2_API = "https://api.semanticscholar.org/graph/v1"
OPENREVIEW_API = "https://api.openreview.net"
PUBMED_EUTILS = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
CHEMRXIV_API = "https://chemrxiv.org/engage/chemrxiv/public-api/v1"
PWC_API = "https://paperswithcode.com/api/v1"
IEEE_API = "http://ieeexploreapi.ieee.org/api/v1/search/articles"
PAPERLIB_METADATA_API = "https://api.paperlib.app/metadata/query"

CONTACT_EMAIL = "hi@paperlib.app"

# ------------- Emptiness -------------


def is_empty(value: Any) -> bool:
    """True for None, blank strings, the literals 'undefined'/'null' and empty lists.

    Numbers (including a publication type of 0) are never empty.
    """
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped in ("undefined", "null")
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


# ------------- Text Normalization -------------


def strip_diacritics(text: str) -> str:
    """Remove diacritics from text (e.g., 'café' -> 'cafe')."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join([c for c in nfkd if not unicodedata.combining(c)])


_LATEX_CMD_RE = re.compile(r"\\[a-zA-Z]+(\s*\[[^\]]*\])?(\s*\{[^}]*\})?")
_LATEX_MATH_RE = re.compile(r"\$[^$]*\$")
_BRACES_RE = re.compile(r"[{}]")


def latex_to_plain(text: str) -> str:
    """Remove LaTeX commands, math, and braces from text."""
    if not text:
        return ""
    t = _LATEX_MATH_RE.sub(" ", text)
    t = _LATEX_CMD_RE.sub(" ", t)
    t = _BRACES_RE.sub("", t)
    t = re.sub(r"\s+", " ", t)
    return t.strip()


def unescape_amp(text: str | None) -> str:
    """Turn HTML-escaped ampersands back into '&'."""
    return (text or "").replace("&amp;", "&")


def normalize_for_signature(text: str | None) -> str:
    """Normalize text into a compact matching signature.

    Drops escaped ampersands and diacritics, lowercases, and removes every
    character that is not a letter or digit (whitespace included).
    """
    t = (text or "").replace("&amp;", "")
    t = strip_diacritics(t).lower()
    return re.sub(r"[^a-z0-9]", "", t)


def query_text(text: str | None) -> str:
    """Clean a title for use as a search query.

    Removes escaped and bare ampersands and newlines, and replaces symbols
    with whitespace.
    """
    t = (text or "").replace("&amp;", "").replace("&", "")
    t = t.replace("\n", " ").replace("\r", " ").replace("\u2014", "-")
    t = re.sub(r"[^\w\s-]", " ", t)
    return re.sub(r"\s+", " ", t).strip()


def year_from_text(text: Any) -> str:
    """Extract the first four-digit year from a date-like value."""
    if text is None:
        return ""
    m = re.search(r"\d{4}", str(text))
    return m.group(0) if m else ""


# ------------- DOI & arXiv Utilities -------------


def doi_for_query(doi: str | None) -> str:
    """Strip whitespace and any resolver URL or 'doi:' prefix so the DOI can be sent to an API."""
    d = "".join((doi or "").split())
    d = re.sub(r"^https?://(dx\.)?doi\.org/", "", d, flags=re.IGNORECASE)
    return re.sub(r"^doi:", "", d, flags=re.IGNORECASE)


def extract_doi_from_text(text: str | None) -> str | None:
    """Find the first DOI-looking token in free text."""
    if not text:
        return None
    m = DOI_IN_TEXT_RE.search(text)
    return m.group(0) if m else None


def extract_arxiv_id_from_text(text: str) -> str | None:
    """Extract arXiv ID from a text string (URL, eprint field, note, etc.)."""
    if not text:
        return None
    m = ARXIV_HOST_RE.search(text)
    if m:
        return m.group("id")
    m = ARXIV_ID_RE.search(text)
    if m:
        return m.group("id")
    return None


def arxiv_id_for_query(arxiv: str) -> str:
    """Strip an 'arXiv:' prefix or URL so the id can be sent to the arXiv API."""
    arxiv = (arxiv or "").strip()
    extracted = extract_arxiv_id_from_text(arxiv)
    if extracted:
        return extracted
    return re.sub(r"^arxiv:", "", arxiv, flags=re.IGNORECASE)


def with_query(base: str, params: dict[str, Any]) -> str:
    """Append URL-encoded query parameters to a base URL."""
    return f"{base}?{urlencode(params)}"


def quote_path(segment: str) -> str:
    """Percent-encode a path segment such as a DOI (slashes kept)."""
    return quote(segment.strip(), safe="/:")


# ------------- Errors -------------


class FetchError(RuntimeError):
    """Raised when a request fails after retries or returns a non-success status."""

    def __init__(self, message: str, url: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


# ------------- Async Rate Limiting -------------


class AsyncRateLimiter:
    """Async-compatible rate limiter using sliding window.

    This rate limiter uses an asyncio lock and sleep for non-blocking
    rate limiting in async contexts. It maintains a sliding window of
    timestamps to enforce the rate limit.
    """

    def __init__(self, req_per_min: int) -> None:
        """Initialize the async rate limiter.

        Args:
            req_per_min: Maximum number of requests allowed per minute.
                        Minimum value is 1.
        """
        self.req_per_min = max(req_per_min, 1)
        self.lock = asyncio.Lock()
        self.timestamps: list[float] = []

    async def wait(self) -> None:
        """Async wait until a request can be made within the rate limit."""
        async with self.lock:
            now = time.time()
            window = 60.0
            self.timestamps = [t for t in self.timestamps if now - t < window]

            if len(self.timestamps) >= self.req_per_min:
                earliest = min(self.timestamps)
                sleep_for = window - (now - earliest) + 0.01
                if sleep_for > 0:
                    await asyncio.sleep(sleep_for)
                    now = time.time()
                    self.timestamps = [t for t in self.timestamps if now - t < window]

            self.timestamps.append(now)


class AsyncRateLimiterRegistry:
    """Manages per-source async rate limiters.

    Each metadata source gets its own limiter so that a slow, strict source
    does not throttle the others.
    """

    DEFAULT_LIMITS = {
        "paperlib": 120,  # Aggregation endpoint
        "arxiv": 30,  # arXiv: 30/min
        "doi": 50,  # doi.org content negotiation
        "crossref": 50,  # Crossref: 50/min polite pool
        "dblp": 30,  # DBLP: 30/min (conservative)
        "semanticscholar": 100,  # S2: 100/min (1000 with API key)
        "openreview": 30,
        "pubmed": 60,  # NCBI allows 3 req/sec without a key
        "chemrxiv": 30,
        "pwc": 30,
        "ieee": 10,  # IEEE Xplore: daily quota, keep it low
    }

    def __init__(self, limits: dict[str, int] | None = None) -> None:
        """Initialize the registry with optional custom limits.

        Args:
            limits: Optional dict of source name to requests per minute.
                   Overrides DEFAULT_LIMITS for specified sources.
        """
        self._limits = {**self.DEFAULT_LIMITS, **(limits or {})}
        self._limiters: dict[str, AsyncRateLimiter] = {}

    def get(self, service: str) -> AsyncRateLimiter:
        """Get or create async rate limiter for a source."""
        if service not in self._limiters:
            limit = self._limits.get(service, 30)  # Default 30/min
            self._limiters[service] = AsyncRateLimiter(limit)
        return self._limiters[service]

    async def wait(self, service: str) -> None:
        """Async wait for rate limit on specified source."""
        await self.get(service).wait()


# ------------- Async HTTP Client -------------


class AsyncHttpClient:
    """Async HTTP client with rate limiting and retry logic.

    This client provides the single ``fetch`` primitive the scrapers use:
    - Per-source rate limiting via AsyncRateLimiterRegistry
    - Automatic retry with exponential backoff for transient failures
    - A per-call timeout
    """

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        rate_limiters: AsyncRateLimiterRegistry | None = None,
        timeout: float = 10.0,
        user_agent: str = "metadata-scraper/0.3 (async)",
        transport: httpx.AsyncBaseTransport | None = None,
        backoff: float = 1.0,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            rate_limiters: AsyncRateLimiterRegistry for per-source rate limiting
            timeout: Default request timeout in seconds
            user_agent: User-Agent header value
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
            backoff: Initial delay between retries in seconds
        """
        self.rate_limiters = rate_limiters or AsyncRateLimiterRegistry()
        self.timeout = timeout
        self.user_agent = user_agent
        self.backoff = backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client instance."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        *,
        service: str = "default",
        max_retries: int = 1,
        timeout: float | None = None,
    ) -> str:
        """GET a URL and return the response body as text.

        Args:
            url: Request URL (query string included)
            headers: Additional request headers
            service: Source name for rate limiting (e.g., 'crossref', 'dblp')
            max_retries: Number of retries after the first attempt
            timeout: Per-call timeout in seconds (defaults to the client timeout)

        Returns:
            Response body text

        Raises:
            FetchError: On a non-retryable error status, or when all attempts fail
        """
        request_timeout = httpx.Timeout(timeout if timeout is not None else self.timeout)
        backoff = self.backoff
        last_error: FetchError | None = None

        for attempt in range(max(max_retries, 0) + 1):
            await self.rate_limiters.wait(service)
            try:
                resp = await self.client.get(url, headers=headers or {}, timeout=request_timeout)
            except httpx.HTTPError as e:
                last_error = FetchError(f"{type(e).__name__} for {url}: {e}", url=url)
            else:
                if resp.status_code in self.RETRYABLE_STATUS:
                    last_error = FetchError(f"Status {resp.status_code} for {url}", url=url, status_code=resp.status_code)
                elif resp.status_code >= 400:
                    raise FetchError(f"Status {resp.status_code} for {url}", url=url, status_code=resp.status_code)
                else:
                    return resp.text

            if attempt < max_retries:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 16.0)

        if last_error is None:
            raise FetchError(f"No attempt made for {url}", url=url)
        raise last_error

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AsyncHttpClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context manager."""
        await self.close()


# ------------- Concurrency helpers -------------


async def first_success(*aws: Awaitable[T]) -> T:
    """Race awaitables and return the first result that does not raise.

    The losers are cancelled. If every awaitable fails, the last error is
    re-raised.
    """
    if not aws:
        raise ValueError("first_success() needs at least one awaitable")
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    last_error: BaseException | None = None
    try:
        for next_done in asyncio.as_completed(tasks):
            try:
                return await next_done
            except Exception as e:
                last_error = e
        if last_error is None:
            raise FetchError("All racing requests were cancelled")
        raise last_error
    finally:
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
