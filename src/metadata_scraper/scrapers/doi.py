"""DOI content-negotiation adapter (doi.org, CSL JSON)."""

from __future__ import annotations

import json
from typing import Any

from metadata_scraper.matching import TRUST_FIRST_THRESHOLD
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import DOI_RESOLVER, doi_for_query, is_empty, quote_path, unescape_amp

IEEE_LONG_NAME = "Institute of Electrical and Electronics Engineers (IEEE)"


def date_parts_year(item: dict[str, Any]) -> str:
    """Year from 'published-print', falling back to 'published'/'issued'."""
    for key in ("published-print", "published", "issued"):
        try:
            year = item[key]["date-parts"][0][0]
        except (KeyError, IndexError, TypeError):
            continue
        if year:
            return str(year)
    return ""


def csl_authors(authors: list[dict[str, Any]] | None) -> str:
    names = []
    for author in authors or []:
        if author.get("name"):
            names.append(author["name"].strip())
        else:
            given = (author.get("given") or "").strip()
            family = (author.get("family") or "").strip()
            names.append(f"{given} {family}".strip())
    return ", ".join(n for n in names if n)


def _pub_type(work_type: str) -> PubType:
    if work_type == "proceedings-article":
        return PubType.CONFERENCE
    if work_type == "journal-article":
        return PubType.JOURNAL
    if "book" in work_type or "monograph" in work_type:
        return PubType.BOOK
    return PubType.OTHER


class DOIScraper(Scraper):
    name = "doi"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.doi)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        doi = doi_for_query(draft.doi)
        return ScraperRequest(
            url=f"{DOI_RESOLVER}/{quote_path(doi)}",
            headers={"Accept": "application/json"},
            sim_threshold=TRUST_FIRST_THRESHOLD,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        # Some registrars answer with an HTML landing page instead of CSL JSON
        if body.lstrip().startswith("<"):
            return []
        item = json.loads(body)
        work_type = item.get("type") or ""

        subtitle = item.get("subtitle") or []
        if isinstance(subtitle, str):
            subtitle = [subtitle]
        title = item.get("title") or ""
        if isinstance(title, list):
            title = title[0] if title else ""
        title = " - ".join(t for t in [title, " ".join(subtitle)] if t)

        if "monograph" in work_type:
            publication = item.get("publisher") or ""
        else:
            container = item.get("container-title") or ""
            publication = ", ".join(container) if isinstance(container, list) else container

        institution = item.get("institution") or []
        if institution and institution[0].get("name") in ("medRxiv", "bioRxiv"):
            publication = institution[0]["name"]

        publisher = item.get("publisher") or ""
        if publisher == IEEE_LONG_NAME:
            publisher = "IEEE"

        return [
            PaperDraft(
                title=unescape_amp(title),
                authors=csl_authors(item.get("author")),
                pub_time=date_parts_year(item),
                pub_type=_pub_type(work_type),
                publication=unescape_amp(publication),
                volume=str(item.get("volume") or ""),
                number=str(item.get("issue") or ""),
                pages=str(item.get("page") or ""),
                publisher=publisher,
            )
        ]
