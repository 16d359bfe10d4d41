"""Crossref adapter: works lookup by DOI, OpenURL servlet or bibliographic search."""

from __future__ import annotations

import json
from typing import Any

from metadata_scraper.matching import TRUST_FIRST_THRESHOLD, match_candidates
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.scrapers.doi import date_parts_year
from metadata_scraper.utils import (
    CONTACT_EMAIL,
    CROSSREF_API,
    CROSSREF_OPENURL,
    AsyncHttpClient,
    doi_for_query,
    extract_doi_from_text,
    is_empty,
    query_text,
    quote_path,
    unescape_amp,
    with_query,
)

SEARCH_THRESHOLD = 0.95

_OPENURL_TEMPLATE = (
    '<?xml version = "1.0" encoding="UTF-8"?>'
    '<query_batch xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" version="2.0" '
    'xmlns="http://www.crossref.org/qschema/2.0" '
    'xsi:schemaLocation="http://www.crossref.org/qschema/2.0 '
    'http://www.crossref.org/qschema/crossref_query_input2.0.xsd">'
    "<head><email_address>{email}</email_address><doi_batch_id>metadata-scraper</doi_batch_id></head>"
    '<body><query enable-multiple-hits="false" secondary-query="author-title" key="key1">'
    '<article_title match="fuzzy">{title}</article_title>'
    '<author search-all-authors="true">{author}</author>'
    "</query></body></query_batch>"
)


def _pub_type(work_type: str) -> PubType:
    if "journal" in work_type:
        return PubType.JOURNAL
    if "book" in work_type or "monograph" in work_type:
        return PubType.BOOK
    if "proceedings" in work_type:
        return PubType.CONFERENCE
    return PubType.OTHER


def _item_to_draft(item: dict[str, Any]) -> PaperDraft:
    work_type = item.get("type") or ""
    if "monograph" in work_type:
        publication = item.get("publisher") or ""
    else:
        publication = ", ".join(item.get("container-title") or [])
    titles = item.get("title") or [""]
    authors = [
        f"{a.get('given', '')} {a.get('family', '')}".strip() for a in item.get("author") or []
    ]
    return PaperDraft(
        title=unescape_amp(titles[0] if titles else ""),
        doi=item.get("DOI") or "",
        publisher=item.get("publisher") or "",
        pub_type=_pub_type(work_type),
        pages=item.get("page") or "",
        publication=unescape_amp(publication),
        pub_time=date_parts_year(item),
        authors=", ".join(a for a in authors if a),
        number=str(item.get("issue") or ""),
        volume=str(item.get("volume") or ""),
    )


def _first_author_surname(authors: str) -> str:
    first = authors.split(",")[0].strip()
    return first.split(" ")[-1] if first else ""


class CrossrefScraper(Scraper):
    """Crossref works API.

    With a DOI the work is fetched directly. With a title and authors the
    OpenURL servlet is asked for a DOI first, which is then fetched. With a
    title alone a bibliographic search is matched by title similarity.
    """

    name = "crossref"

    def is_applicable(self, draft: PaperDraft) -> bool:
        has_key = not is_empty(draft.title) or not is_empty(draft.doi)
        return has_key and "arxiv" not in draft.doi.lower()

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        if not is_empty(draft.doi):
            return ScraperRequest(
                url=f"{CROSSREF_API}/{quote_path(doi_for_query(draft.doi))}",
                sim_threshold=TRUST_FIRST_THRESHOLD,
            )
        if not is_empty(draft.authors):
            qdata = _OPENURL_TEMPLATE.format(
                email=CONTACT_EMAIL,
                title=draft.title.replace("&", ""),
                author=_first_author_surname(draft.authors),
            )
            return ScraperRequest(
                url=with_query(CROSSREF_OPENURL, {"usr": CONTACT_EMAIL, "qdata": qdata}),
                sim_threshold=TRUST_FIRST_THRESHOLD,
            )
        return ScraperRequest(
            url=with_query(
                CROSSREF_API,
                {"query.bibliographic": query_text(draft.title), "rows": 2, "mailto": CONTACT_EMAIL},
            ),
            sim_threshold=SEARCH_THRESHOLD,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        message = json.loads(body).get("message") or {}
        if "items" in message:
            return [_item_to_draft(item) for item in message["items"] or []]
        return [_item_to_draft(message)] if message else []

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        body = await self.fetch(http, request)

        if request.url.startswith(CROSSREF_OPENURL):
            # Servlet answers with pipe-separated fields, the DOI last
            doi = extract_doi_from_text(body.strip().split("|")[-1])
            if not doi:
                return draft
            request = ScraperRequest(url=f"{CROSSREF_API}/{quote_path(doi)}", sim_threshold=TRUST_FIRST_THRESHOLD)
            body = await self.fetch(http, request)

        return match_candidates(draft, self.parse_response(body), request.sim_threshold)
