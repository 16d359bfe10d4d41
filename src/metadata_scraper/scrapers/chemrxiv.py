"""ChemRxiv public API adapters (by DOI and by title)."""

from __future__ import annotations

import json
import logging
from typing import Any

from metadata_scraper.matching import TRUST_FIRST_THRESHOLD, match_candidates
from metadata_scraper.models import PaperDraft, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.scrapers.doi import DOIScraper
from metadata_scraper.utils import CHEMRXIV_API, AsyncHttpClient, doi_for_query, is_empty, quote_path, with_query

SEARCH_THRESHOLD = 0.95


def _item_to_draft(item: dict[str, Any]) -> PaperDraft:
    authors = [
        f"{a.get('firstName', '')} {a.get('lastName', '')}".strip() for a in item.get("authors") or []
    ]
    candidate = PaperDraft(
        title=item.get("title") or "",
        authors=", ".join(a for a in authors if a),
        pub_time=(item.get("publishedDate") or "")[:4],
        doi=item.get("doi") or "",
    )
    vor = item.get("vor") or {}
    if vor.get("vorDoi"):
        # A version of record exists; its DOI gives the published venue
        candidate.doi = vor["vorDoi"]
    else:
        candidate.publication = "chemRxiv"
    return candidate


class ChemRxivPreciseScraper(Scraper):
    """Lookup of a chemRxiv DOI, followed by the DOI adapter."""

    name = "chemrxivprecise"
    service = "chemrxiv"

    def __init__(self, logger: logging.Logger | None = None, doi_scraper: DOIScraper | None = None) -> None:
        super().__init__(logger)
        self.doi_scraper = doi_scraper or DOIScraper(logger)

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.doi) and "chemrxiv" in draft.doi.lower()

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        return ScraperRequest(
            url=f"{CHEMRXIV_API}/items/doi/{quote_path(doi_for_query(draft.doi))}",
            sim_threshold=TRUST_FIRST_THRESHOLD,
            timeout=5.0,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        response = json.loads(body)
        items = response["itemHits"] if "itemHits" in response else [response]
        candidates = []
        for hit in items or []:
            item = hit.get("item") or hit
            if item.get("title"):
                candidates.append(_item_to_draft(item))
        return candidates

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        body = await self.fetch(http, request)
        draft = match_candidates(draft, self.parse_response(body), request.sim_threshold)
        return await self.doi_scraper.resolve(draft, http)


class ChemRxivFuzzyScraper(ChemRxivPreciseScraper):
    """Title search on chemRxiv."""

    name = "chemrxivfuzzy"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.title)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        return ScraperRequest(
            url=with_query(f"{CHEMRXIV_API}/items", {"term": draft.title}),
            sim_threshold=SEARCH_THRESHOLD,
            timeout=5.0,
        )
