"""Remote aggregation service adapter.

The aggregation endpoint runs a list of named sources server-side and returns
one merged record, which is applied to the draft field by field as-is.
"""

from __future__ import annotations

import json
import logging

from metadata_scraper.models import MERGE_FIELDS, PaperDraft, ScraperRequest
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import PAPERLIB_METADATA_API, AsyncHttpClient, is_empty, with_query

AGGREGATOR_TIMEOUT = 15.0

# Response keys differ from draft attribute names for these fields
_RESPONSE_KEYS = {"pub_time": "pubTime", "pub_type": "pubType"}


class PaperlibMetadataScraper(Scraper):
    """Client of the metadata aggregation service.

    Args:
        scrapers: Source names the service should consult (``cache`` first)
        url: Endpoint URL
    """

    name = "paperlib"

    def __init__(
        self,
        scrapers: list[str] | None = None,
        url: str = PAPERLIB_METADATA_API,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger)
        self.scrapers = list(scrapers or ["cache"])
        self.url = url

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not (is_empty(draft.title) and is_empty(draft.arxiv) and is_empty(draft.doi))

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        params = {"scrapers": ",".join(self.scrapers)}
        title = " ".join((draft.title or "").replace("&amp;", "").splitlines()).strip()
        if title:
            params["title"] = title
        if not is_empty(draft.arxiv):
            params["arxiv"] = draft.arxiv
        if not is_empty(draft.doi):
            params["doi"] = draft.doi
        return ScraperRequest(url=with_query(self.url, params), timeout=AGGREGATOR_TIMEOUT)

    def parse_response(self, body: str) -> list[PaperDraft]:
        response = json.loads(body)
        if not isinstance(response, dict):
            return []
        values = {name: response.get(_RESPONSE_KEYS.get(name, name)) for name in MERGE_FIELDS}
        return [PaperDraft.from_dict({k: v for k, v in values.items() if v is not None})]

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        """Apply the service's record verbatim: every non-empty field replaces the draft's."""
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        body = await self.fetch(http, request)
        for record in self.parse_response(body):
            for name in MERGE_FIELDS:
                value = getattr(record, name)
                if not is_empty(value):
                    setattr(draft, name, value)
        return draft
