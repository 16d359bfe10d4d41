"""arXiv export API adapter (keyed by arXiv id)."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

from metadata_scraper.matching import TRUST_FIRST_THRESHOLD
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import ARXIV_API, arxiv_id_for_query, is_empty, with_query

ATOM_NS = {"a": "http://www.w3.org/2005/Atom"}


class ArxivScraper(Scraper):
    name = "arxiv"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.arxiv)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        url = with_query(ARXIV_API, {"id_list": arxiv_id_for_query(draft.arxiv)})
        return ScraperRequest(
            url=url,
            headers={"Accept": "application/atom+xml"},
            sim_threshold=TRUST_FIRST_THRESHOLD,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        root = ET.fromstring(body)
        candidates: list[PaperDraft] = []
        for entry in root.findall("a:entry", ATOM_NS):
            entry_id = entry.findtext("a:id", default="", namespaces=ATOM_NS)
            title = entry.findtext("a:title", default="", namespaces=ATOM_NS)
            # Unknown ids come back as an error entry
            if "api/errors" in entry_id or not title.strip():
                continue
            authors = [
                (a.findtext("a:name", default="", namespaces=ATOM_NS) or "").strip()
                for a in entry.findall("a:author", ATOM_NS)
            ]
            published = entry.findtext("a:published", default="", namespaces=ATOM_NS)
            candidates.append(
                PaperDraft(
                    title=re.sub(r"\s+", " ", title).strip(),
                    authors=", ".join(a for a in authors if a),
                    pub_time=published[:4],
                    pub_type=PubType.JOURNAL,
                    publication="arXiv",
                )
            )
        return candidates
