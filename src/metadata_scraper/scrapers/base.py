"""Base interface shared by every metadata source adapter."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from metadata_scraper.matching import match_candidates
from metadata_scraper.models import PaperDraft, ScraperRequest
from metadata_scraper.utils import AsyncHttpClient


class Scraper(ABC):
    """Abstract base class for metadata source adapters.

    Subclasses must implement:
    - is_applicable(): whether the draft carries what this source is keyed by
    - build_request(): the outbound request and its similarity threshold
    - parse_response(): decode a response body into candidate drafts

    Multi-step sources override scrape() and chain further reads.
    """

    name: str = ""
    service: str = ""  # Rate-limit bucket, defaults to the name

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    @property
    def rate_key(self) -> str:
        return self.service or self.name

    @abstractmethod
    def is_applicable(self, draft: PaperDraft) -> bool:
        """Return True if the draft holds the identifier/title this source needs."""
        ...

    @abstractmethod
    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        """Describe the request for this draft."""
        ...

    @abstractmethod
    def parse_response(self, body: str) -> list[PaperDraft]:
        """Decode a response body into candidates. No results yields []."""
        ...

    async def fetch(self, http: AsyncHttpClient, request: ScraperRequest) -> str:
        return await http.fetch(
            request.url,
            request.headers,
            service=self.rate_key,
            max_retries=request.max_retries,
            timeout=request.timeout,
        )

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        """Query the source and merge the matching candidate into ``draft``.

        Raises on fetch or decode failure.
        """
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        body = await self.fetch(http, request)
        candidates = self.parse_response(body)
        return match_candidates(draft, candidates, request.sim_threshold)

    async def resolve(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        """Like scrape(), but returns ``draft`` untouched on any failure."""
        try:
            return await self.scrape(draft.copy(), http)
        except Exception as e:
            self.logger.debug("%s failed for %s: %s", self.name, draft.title or draft.doi or draft.arxiv, e)
            return draft

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
