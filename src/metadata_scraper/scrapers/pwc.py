"""Papers with Code adapter: links code repositories to a paper."""

from __future__ import annotations

import json

from metadata_scraper.matching import title_similarity
from metadata_scraper.merging import merge_candidate
from metadata_scraper.models import PaperDraft, ScraperRequest, make_code
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import PWC_API, AsyncHttpClient, is_empty, with_query

SEARCH_THRESHOLD = 0.98
MAX_CODES = 3


def parse_search_hits(body: str) -> list[tuple[str, str, bool]]:
    """(paper id, paper title, has repository) for each search result."""
    response = json.loads(body)
    if not response.get("count"):
        return []
    hits = []
    for result in response.get("results") or []:
        paper = result.get("paper") or {}
        hits.append((paper.get("id", ""), paper.get("title", ""), bool(result.get("repository"))))
    return hits


class PwCScraper(Scraper):
    """Search by title, then fetch the repository list of the matching paper.

    At most three repositories are kept (most stars first), official
    implementations ahead of the rest.
    """

    name = "pwc"

    def is_applicable(self, draft: PaperDraft) -> bool:
        return not is_empty(draft.title)

    def build_request(self, draft: PaperDraft) -> ScraperRequest:
        slug = draft.title.replace("&amp;", "").lower().strip().replace(" ", "-").replace(".", "")
        return ScraperRequest(
            url=with_query(f"{PWC_API}/search/", {"q": slug}),
            headers={"Accept": "application/json"},
            sim_threshold=SEARCH_THRESHOLD,
        )

    def parse_response(self, body: str) -> list[PaperDraft]:
        """Decode a repository list into a single candidate carrying ``codes``."""
        response = json.loads(body)
        if not response.get("count"):
            return []
        results = sorted(response.get("results") or [], key=lambda r: r.get("stars") or 0, reverse=True)
        top = results[:MAX_CODES]
        # sorted() is stable, so star order survives within each group
        top = sorted(top, key=lambda r: not r.get("is_official"))
        return [PaperDraft(codes=[make_code(r.get("url", ""), bool(r.get("is_official"))) for r in top])]

    async def scrape(self, draft: PaperDraft, http: AsyncHttpClient) -> PaperDraft:
        if not self.is_applicable(draft):
            return draft
        request = self.build_request(draft)
        hits = parse_search_hits(await self.fetch(http, request))

        paper_id = ""
        for hit_id, hit_title, has_repository in hits:
            if has_repository and title_similarity(hit_title, draft.title) > request.sim_threshold:
                paper_id = hit_id
                break
        if not paper_id:
            return draft

        repo_request = ScraperRequest(url=f"{PWC_API}/papers/{paper_id}/repositories/", headers=request.headers)
        candidates = self.parse_response(await self.fetch(http, repo_request))
        if candidates:
            merge_candidate(draft, candidates[0])
        return draft
