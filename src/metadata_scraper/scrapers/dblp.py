"""DBLP adapters: publication search and venue placeholder resolution.

The publication search answers with a venue key such as ``conf/nips`` rather
than a readable venue name. Until it is resolved, the publication field holds
a placeholder ``dblp://{"venueID": ..., "paperKey": ...}``; the venue search
API (plus the record's BibTeX, to detect workshops) turns it into a name.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from metadata_scraper.bibtex import container_title, parse_bibtex_records
from metadata_scraper.matching import EXACT_MATCH_THRESHOLD, match_candidates
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import (
    DBLP_HOST,
    DBLP_MIRROR_HOST,
    AsyncHttpClient,
    FetchError,
    first_success,
    is_empty,
    with_query,
    year_from_text,
)

DBLP_PLACEHOLDER_PREFIX = "dblp://"
CORR_KEY = "journals/corr"

log = logging.getLogger(__name__)


# ------------- Placeholder helpers -------------


def make_venue_placeholder(venue_id: str, paper_key: str = "") -> str:
    return DBLP_PLACEHOLDER_PREFIX + json.dumps({"venueID": venue_id, "paperKey": paper_key})


def parse_venue_placeholder(publication: str) -> tuple[str, str]:
    """Return (venue id, paper key) from a ``dblp://`` placeholder."""
    data = json.loads(publication[len(DBLP_PLACEHOLDER_PREFIX) :])
    return data.get("venueID", ""), data.get("paperKey", "")


def is_venue_placeholder(publication: str) -> bool:
    return (publication or "").startswith(DBLP_PLACEHOLDER_PREFIX)


def search_query(title: str) -> str:
    """DBLP search query for a title: ampersands dropped, em dashes flattened."""
    return title.replace("&amp;", "").replace("&", "").replace("—", "-").strip()


def publ_search_url(query: str) -> str:
    return with_query(f"{DBLP_HOST}/search/publ/api", {"q": query, "format": "json"})


def venue_search_url(venue_id: str) -> str:
    return with_query(f"{DBLP_HOST}/search/venue/api", {"q": venue_id, "format": "json"})


def bib_url(paper_key: str) -> str:
    return f"{DBLP_HOST}/rec/{paper_key}.bib?param=1"


# ------------- Response decoding -------------


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _pub_type(dblp_type: str) -> PubType:
    if "Journal" in dblp_type:
        return PubType.JOURNAL
    if "Conference" in dblp_type:
        return PubType.CONFERENCE
    if "Book" in dblp_type:
        return PubType.BOOK
    return PubType.OTHER


def _hits(body: str) -> list[dict[str, Any]]:
    hits = json.loads(body).get("result", {}).get("hits", {})
    if int(hits.get("@sent", 0) or 0) <= 0:
        return []
    return [h.get("info", {}) for h in _as_list(hits.get("hit"))]


def parse_venue_hits(body: str) -> list[tuple[str, str]]:
    """Decode a venue search response into (url, venue name) pairs."""
    return [(info.get("url", ""), info.get("venue", "")) for info in _hits(body)]


def select_venue(hits: list[tuple[str, str]], venue_id: str) -> str:
    """Name of the first venue whose DBLP URL contains the venue id, or ''.

    A URL holding the id as a whole path segment (``conf/cvpr/`` rather than
    ``conf/cvprw/``) is preferred.
    """
    needle = venue_id.lower().strip("/")
    if not needle:
        return ""
    for url, venue in hits:
        if f"{needle}/" in url.lower():
            return venue
    for url, venue in hits:
        if needle in url.lower():
            return venue
    return ""


# ------------- Shared HTTP helpers -------------


async def fetch_mirrored(http: AsyncHttpClient, url: str, timeout: float = 10.0) -> str:
    """Race dblp.org and its Trier mirror; the first successful body wins."""
    mirror = url.replace(DBLP_HOST, DBLP_MIRROR_HOST)
    return await first_success(
        http.fetch(url, service="dblp", timeout=timeout),
        http.fetch(mirror, service="dblp", timeout=timeout),
    )


async def resolve_dblp_venue(
    draft: PaperDraft,
    http: AsyncHttpClient,
    logger: logging.Logger | None = None,
) -> PaperDraft:
    """Replace a ``dblp://`` placeholder publication with a venue name.

    Workshop papers (detected from the record's BibTeX) get a " Workshop"
    suffix and the conference type. An unresolved placeholder leaves the
    publication empty.

    Raises:
        FetchError: If the venue search fails on both mirrors
    """
    logger = logger or log
    if not is_venue_placeholder(draft.publication):
        return draft
    venue_id, paper_key = parse_venue_placeholder(draft.publication)

    venue_body = await fetch_mirrored(http, venue_search_url(venue_id))
    venue = select_venue(parse_venue_hits(venue_body), venue_id)

    bib_body = ""
    if paper_key:
        try:
            bib_body = await fetch_mirrored(http, bib_url(paper_key))
        except FetchError as e:
            logger.debug("DBLP BibTeX fetch failed for %s: %s", paper_key, e)

    records = parse_bibtex_records(bib_body)
    booktitle = container_title(records[0]) if records else ""
    if "workshop" in booktitle.lower():
        venue = f"{venue} Workshop" if venue else booktitle
        draft.pub_type = PubType.CONFERENCE

    draft.publication = venue
    return draft


# ------------- Adapters -------------


class DBLPScraper(Scraper):
    """Exact-title search on DBLP.

    Falls back to year-filtered searches when the plain search finds nothing,
    then resolves the venue key of the hit.
    """

    name = "dblp"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(search_query(draft.title or ""))

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        return ScraperRequest(
            url=publ_search_url(search_query(draft.title)),
            sim_threshold=EXACT_MATCH_THRESHOLD,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        candidates: list[PaperDraft] = []
        for info in _hits(body):
            key = info.get("key", "")
            venue_key = "/".join(key.split("/")[:2])
            venue = info.get("venue", "")
            if isinstance(venue, list):
                venue = venue[0] if venue else ""
            # arXiv mirror entries carry no venue
            if venue_key == CORR_KEY and venue == "CoRR":
                continue

            authors = [
                "".join(c for c in a.get("text", "") if not c.isdigit()).strip()
                for a in _as_list(info.get("authors", {}).get("author"))
            ]
            title = (info.get("title") or "").replace("&amp;", "&")
            if title.endswith("."):
                title = title[:-1]

            candidates.append(
                PaperDraft(
                    title=title,
                    authors=", ".join(a for a in authors if a),
                    pub_time=str(info.get("year") or ""),
                    pub_type=_pub_type(info.get("type", "")),
                    publication=make_venue_placeholder(venue if venue_key == CORR_KEY else venue_key, key),
                    doi=info.get("doi") or "",
                    volume=str(info.get("volume") or ""),
                    pages=str(info.get("pages") or ""),
                    number=str(info.get("number") or ""),
                    publisher=info.get("publisher") or "",
                )
            )
        return candidates

    async def _search(self, draft: PaperDraft, http: AsyncHttpClient, url: str) -> PaperDraft:
        body = await fetch_mirrored(http, url)
        return match_candidates(draft, self.parse_response(body), EXACT_MATCH_THRESHOLD)

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        query = search_query(draft.title)
        draft = await self._search(draft, http, publ_search_url(query))

        # Long titles are often only found with a year filter
        for offset in (0, 1):
            if is_venue_placeholder(draft.publication):
                break
            year = year_from_text(draft.pub_time)
            if not year:
                break
            draft = await self._search(draft, http, publ_search_url(f"{query} year:{int(year) - offset}"))

        if is_venue_placeholder(draft.publication):
            draft = await resolve_dblp_venue(draft, http, self.logger)
        return draft


class DBLPVenueScraper(Scraper):
    """Resolves ``dblp://`` venue placeholders left by earlier sources."""

    name = "dblpvenue"
    service = "dblp"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return is_venue_placeholder(draft.publication)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        venue_id, _ = parse_venue_placeholder(draft.publication)
        return ScraperRequest(url=venue_search_url(venue_id))

    def parse_response(self, body: str) -> list[PaperDraft]:
        return [PaperDraft(publication=venue) for _, venue in parse_venue_hits(body) if venue]

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        return await resolve_dblp_venue(draft, http, self.logger)
