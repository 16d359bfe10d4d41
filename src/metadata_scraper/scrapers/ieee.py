"""IEEE Xplore metadata API adapter (needs a user-supplied API key)."""

from __future__ import annotations

import json
import logging

from metadata_scraper.models import PaperDraft, PubType, ScraperRequest, is_metadata_completed
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import IEEE_API, is_empty, unescape_amp, with_query

SEARCH_THRESHOLD = 0.95


def _pub_type(content_type: str) -> PubType:
    if "Journals" in content_type or "Article" in content_type:
        return PubType.JOURNAL
    if "Conferences" in content_type:
        return PubType.CONFERENCE
    if "Book" in content_type:
        return PubType.BOOK
    return PubType.OTHER


class IEEEScraper(Scraper):
    """Title search on IEEE Xplore.

    Disabled without an API key, and for drafts that are already complete.
    """

    name = "ieee"

    def __init__(self, api_key: str = "", logger: logging.Logger | None = None) -> None:
        super().__init__(logger)
        self.api_key = api_key or ""

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.title) and bool(self.api_key) and not is_metadata_completed(draft)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        title = " ".join(draft.title.splitlines())
        url = with_query(
            IEEE_API,
            {
                "apikey": self.api_key,
                "format": "json",
                "max_records": 25,
                "start_record": 1,
                "sort_order": "asc",
                "sort_field": "article_number",
                "article_title": title,
            },
        )
        return ScraperRequest(url=url, headers={"Accept": "application/json"}, sim_threshold=SEARCH_THRESHOLD)

    def parse_response(self, body: str) -> list[PaperDraft]:
        response = json.loads(body)
        if not response.get("total_records"):
            return []
        candidates = []
        for article in response.get("articles") or []:
            authors = (article.get("authors") or {}).get("authors") or []
            pages = article.get("start_page") or ""
            if article.get("end_page"):
                pages = f"{pages}-{article['end_page']}"
            candidates.append(
                PaperDraft(
                    title=unescape_amp(article.get("title")),
                    authors=", ".join((a.get("full_name") or "").strip() for a in authors),
                    pub_time=str(article.get("publication_year") or ""),
                    pub_type=_pub_type(article.get("content_type") or ""),
                    publication=article.get("publication_title") or "",
                    volume=str(article.get("volume") or ""),
                    pages=pages,
                    publisher=article.get("publisher") or "",
                )
            )
        return candidates
