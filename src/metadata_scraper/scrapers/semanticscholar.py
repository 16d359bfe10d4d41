"""Semantic Scholar Graph API adapter (title search)."""

from __future__ import annotations

import json
import logging

from metadata_scraper.matching import match_candidates
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.scrapers.doi import DOIScraper
from metadata_scraper.utils import S2_API, AsyncHttpClient, is_empty, query_text, unescape_amp, with_query

S2_FIELDS = "externalIds,authors,title,year,journal,publicationVenue"
SEARCH_THRESHOLD = 0.95


def _pub_type(venue_type: str) -> PubType:
    if "journal" in venue_type:
        return PubType.JOURNAL
    if "book" in venue_type:
        return PubType.BOOK
    if "conference" in venue_type:
        return PubType.CONFERENCE
    return PubType.OTHER


class SemanticScholarScraper(Scraper):
    """Title search on Semantic Scholar.

    When the hit carries a DOI, the DOI adapter is consulted too; Semantic
    Scholar's author list is kept if the DOI record lists fewer authors.
    """

    name = "semanticscholar"

    def __init__(self, logger: logging.Logger | None = None, doi_scraper: DOIScraper | None = None) -> None:
        super().__init__(logger)
        self.doi_scraper = doi_scraper or DOIScraper(logger)

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.title)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        url = with_query(
            f"{S2_API}/paper/search",
            {"query": query_text(draft.title), "limit": 10, "fields": S2_FIELDS},
        )
        return ScraperRequest(url=url, sim_threshold=SEARCH_THRESHOLD, timeout=5.0)

    def parse_response(self, body: str) -> list[PaperDraft]:
        response = json.loads(body)
        if not response.get("total") or not response.get("data"):
            return []
        candidates = []
        for item in response["data"]:
            candidate = PaperDraft(
                title=unescape_amp(item.get("title")),
                pub_time=str(item.get("year") or ""),
                authors=", ".join(a.get("name", "") for a in item.get("authors") or [] if a.get("name")),
            )
            venue = item.get("publicationVenue") or {}
            if venue.get("name") and venue.get("type"):
                candidate.pub_type = _pub_type(venue["type"])
                candidate.publication = unescape_amp(venue["name"])
            journal = item.get("journal") or {}
            candidate.volume = str(journal.get("volume") or "").strip()
            candidate.pages = str(journal.get("pages") or "").strip()
            external = item.get("externalIds") or {}
            candidate.arxiv = external.get("ArXiv") or ""
            candidate.doi = external.get("DOI") or ""
            candidates.append(candidate)
        return candidates

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        body = await self.fetch(http, request)
        draft = match_candidates(draft, self.parse_response(body), request.sim_threshold)

        if not is_empty(draft.doi):
            s2_authors = draft.authors.split(", ") if draft.authors else []
            draft = await self.doi_scraper.resolve(draft, http)
            # DOI records sometimes truncate the author list
            doi_authors = draft.authors.split(", ") if draft.authors else []
            if len(doi_authors) < len(s2_authors):
                draft.authors = ", ".join(s2_authors)
        return draft
