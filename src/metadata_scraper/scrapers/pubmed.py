"""PubMed adapter: E-utilities esearch (JSON) followed by efetch (XML)."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET

from metadata_scraper.matching import match_candidates
from metadata_scraper.models import PaperDraft, PubType, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import PUBMED_EUTILS, AsyncHttpClient, is_empty, with_query, year_from_text

SEARCH_THRESHOLD = 0.95

BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.114 Safari/537.36"
)


def _text(element: ET.Element | None) -> str:
    if element is None:
        return ""
    return " ".join("".join(element.itertext()).split())


def parse_esearch_ids(body: str) -> list[str]:
    """PubMed ids from an esearch JSON response."""
    return list(json.loads(body).get("esearchresult", {}).get("idlist") or [])


class PubMedScraper(Scraper):
    name = "pubmed"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.title)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        url = with_query(
            f"{PUBMED_EUTILS}/esearch.fcgi",
            {"db": "pubmed", "retmode": "json", "retmax": 5, "sort": "relevance", "term": draft.title},
        )
        return ScraperRequest(url=url, headers={"user-agent": BROWSER_UA}, sim_threshold=SEARCH_THRESHOLD)

    def parse_response(self, body: str) -> list[PaperDraft]:
        """Decode an efetch XML article set."""
        root = ET.fromstring(body)
        candidates = []
        for article in root.iter("Article"):
            journal = article.find("Journal")
            issue = journal.find("JournalIssue") if journal is not None else None

            authors = []
            for author in article.findall("AuthorList/Author"):
                collective = _text(author.find("CollectiveName"))
                if collective:
                    authors.append(collective)
                    continue
                name = f"{_text(author.find('ForeName'))} {_text(author.find('LastName'))}".strip()
                if name:
                    authors.append(name)

            year = ""
            if issue is not None:
                year = _text(issue.find("PubDate/Year")) or year_from_text(_text(issue.find("PubDate/MedlineDate")))

            doi = ""
            for loc in article.findall("ELocationID"):
                if loc.get("EIdType") == "doi":
                    doi = _text(loc)
                    break

            title = _text(article.find("ArticleTitle"))
            if title.endswith("."):
                title = title[:-1]

            candidates.append(
                PaperDraft(
                    title=title,
                    authors=", ".join(authors),
                    publication=_text(journal.find("Title")) if journal is not None else "",
                    volume=_text(issue.find("Volume")) if issue is not None else "",
                    number=_text(issue.find("Issue")) if issue is not None else "",
                    pub_time=year,
                    pages=_text(article.find("Pagination/MedlinePgn")),
                    doi=doi,
                    pub_type=PubType.JOURNAL,
                )
            )
        return candidates

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        ids = parse_esearch_ids(await self.fetch(http, request))
        if not ids or not ids[0]:
            return draft
        fetch_request = ScraperRequest(
            url=with_query(f"{PUBMED_EUTILS}/efetch.fcgi", {"db": "pubmed", "retmode": "xml", "id": ids[0]}),
            headers=request.headers,
        )
        body = await self.fetch(http, fetch_request)
        return match_candidates(draft, self.parse_response(body), request.sim_threshold)
