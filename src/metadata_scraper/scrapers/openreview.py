"""OpenReview adapter (title search over forum notes)."""

from __future__ import annotations

import json
import re
from typing import Any

from metadata_scraper.bibtex import container_title, parse_bibtex_records
from metadata_scraper.matching import match_candidates
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.scrapers.dblp import (
    CORR_KEY,
    is_venue_placeholder,
    make_venue_placeholder,
    resolve_dblp_venue,
)
from metadata_scraper.utils import OPENREVIEW_API, AsyncHttpClient, is_empty, unescape_amp, with_query

SEARCH_THRESHOLD = 0.95


def _value(field: Any) -> Any:
    # API v2 wraps every content field as {"value": ...}
    if isinstance(field, dict) and "value" in field:
        return field["value"]
    return field


def _venue_fields(content: dict[str, Any]) -> tuple[str, str, int | None]:
    """Decode (publication, year, pub type) from a note's venue information."""
    venue = _value(content.get("venue")) or ""
    venue_id = _value(content.get("venueid")) or ""
    bibtex = _value(content.get("_bibtex")) or ""

    if not venue:
        m = re.search(r"year=\{(\d{4})", bibtex)
        return "openreview.net", m.group(1) if m else "", None

    if "Submitted" in venue or "CoRR" in venue:
        return "", "", None

    if "accept" in venue.lower():
        records = parse_bibtex_records(bibtex)
        if not records:
            return "", "", None
        record = records[0]
        entry_type = record.get("ENTRYTYPE", "").lower()
        if entry_type in ("inproceedings", "conference"):
            pub_type = PubType.CONFERENCE
        elif entry_type == "article":
            pub_type = PubType.JOURNAL
        else:
            pub_type = PubType.OTHER
        return container_title(record), record.get("year", ""), pub_type

    if "dblp" in venue_id:
        # e.g. dblp.org/conf/ICLR/2021
        kind = "conf" if "conf" in venue_id else "journals"
        parts = venue_id.split("/")
        dblp_venue = f"{kind}/{parts[2].lower()}" if len(parts) > 2 else ""
        publication = make_venue_placeholder(dblp_venue) if dblp_venue and CORR_KEY not in dblp_venue else ""
    else:
        publication = venue
    m = re.search(r"\d{4}", venue_id or venue)
    return publication, m.group(0) if m else "", None


class OpenReviewScraper(Scraper):
    name = "openreview"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.title)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        url = with_query(
            f"{OPENREVIEW_API}/notes/search",
            {
                "content": "all",
                "group": "all",
                "limit": 10,
                "source": "forum",
                "term": draft.title,
                "type": "terms",
            },
        )
        return ScraperRequest(
            url=url,
            headers={"Accept": "application/json"},
            sim_threshold=SEARCH_THRESHOLD,
            timeout=5.0,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        candidates = []
        for note in json.loads(body).get("notes") or []:
            content = note.get("content") or {}
            title = _value(content.get("title")) or ""
            if not title:
                continue
            publication, year, pub_type = _venue_fields(content)
            candidates.append(
                PaperDraft(
                    title=unescape_amp(title),
                    authors=", ".join(_value(content.get("authors")) or []),
                    publication=publication,
                    pub_time=year,
                    pub_type=pub_type,
                )
            )
        return candidates

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        body = await self.fetch(http, request)
        draft = match_candidates(draft, self.parse_response(body), request.sim_threshold)
        if is_venue_placeholder(draft.publication):
            draft = await resolve_dblp_venue(draft, http, self.logger)
        return draft
