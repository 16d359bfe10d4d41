"""Shared fixtures for metadata_scraper tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from metadata_scraper import PaperDraft, PubType, Scraper, ScraperRequest
from metadata_scraper.matching import TRUST_FIRST_THRESHOLD, match_candidates
from metadata_scraper.utils import AsyncHttpClient, FetchError


@pytest.fixture
def logger():
    """Create a test logger."""
    return logging.getLogger("test")


@pytest.fixture
def make_draft():
    """Factory fixture for creating drafts."""

    def _make_draft(**kwargs) -> PaperDraft:
        return PaperDraft(**kwargs)

    return _make_draft


@pytest.fixture
def complete_draft():
    """A draft with every mandatory field and a real venue."""
    return PaperDraft(
        title="Deep Residual Learning for Image Recognition",
        authors="Kaiming He, Xiangyu Zhang, Shaoqing Ren, Jian Sun",
        publication="CVPR",
        pub_time="2016",
        pub_type=PubType.CONFERENCE,
        key="he2016deep",
    )


class FakeHttpClient(AsyncHttpClient):
    """Fake async HTTP client serving canned bodies by URL substring.

    Routes are tried in insertion order; the first pattern contained in the
    URL wins. A route value may be a string body, an exception to raise, or a
    callable taking the URL. Every requested URL is recorded in ``calls``.
    """

    def __init__(self, routes: dict[str, Any] | None = None, delays: dict[str, float] | None = None):
        # Don't call parent __init__ to avoid setting up real HTTP
        self.routes: dict[str, Any] = dict(routes or {})
        self.delays: dict[str, float] = dict(delays or {})
        self.calls: list[str] = []

    def add(self, pattern: str, response: Any, delay: float = 0.0) -> None:
        self.routes[pattern] = response
        if delay:
            self.delays[pattern] = delay

    def called(self, pattern: str) -> bool:
        return any(pattern in url for url in self.calls)

    async def fetch(self, url, headers=None, *, service="default", max_retries=1, timeout=None) -> str:
        self.calls.append(url)
        for pattern, response in self.routes.items():
            if pattern not in url:
                continue
            delay = self.delays.get(pattern, 0.0)
            if delay:
                await asyncio.sleep(delay)
            if isinstance(response, BaseException):
                raise response
            if callable(response):
                return response(url)
            return response
        raise FetchError(f"No route for {url}", url=url, status_code=404)

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_http():
    """Create a fake HTTP client with no routes."""
    return FakeHttpClient()


class StaticScraper(Scraper):
    """Scraper returning a fixed candidate after an optional delay."""

    def __init__(
        self,
        name: str,
        candidate: PaperDraft | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        threshold: float = TRUST_FIRST_THRESHOLD,
    ):
        super().__init__(logging.getLogger("test"))
        self.name = name
        self.candidate = candidate
        self.delay = delay
        self.error = error
        self.threshold = threshold
        self.started_at: float | None = None
        self.finished = False
        self.runs = 0

    def is_applicable(self, draft: PaperDraft) -> bool:
        return True

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        return ScraperRequest(url=f"fake://{self.name}", sim_threshold=self.threshold)

    def parse_response(self, body: str) -> list[PaperDraft]:
        return [self.candidate] if self.candidate is not None else []

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        self.started_at = asyncio.get_running_loop().time()
        self.runs += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.finished = True
        return match_candidates(draft, self.parse_response(""), self.threshold)


@pytest.fixture
def static_scraper():
    """Factory fixture for StaticScraper instances."""
    return StaticScraper


# ------------- Canned source responses -------------

ARXIV_ATOM = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <title type="html">ArXiv Query: id_list=1706.03762</title>
  <id>http://arxiv.org/api/cHxbiOdZaP56ODnBPIenZhzg5f8</id>
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All You
  Need</title>
    <author><name>Ashish Vaswani</name></author>
    <author><name>Noam Shazeer</name></author>
    <author><name>Niki Parmar</name></author>
    <arxiv:comment>15 pages, 5 figures</arxiv:comment>
  </entry>
</feed>
"""

ARXIV_ERROR_ATOM = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <id>http://arxiv.org/api/errors#incorrect_id_format_for_9999.99999</id>
    <title>Error</title>
    <summary>incorrect id format for 9999.99999</summary>
  </entry>
</feed>
"""


@pytest.fixture
def arxiv_atom():
    return ARXIV_ATOM


@pytest.fixture
def arxiv_error_atom():
    return ARXIV_ERROR_ATOM
