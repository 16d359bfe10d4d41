"""Metadata Scraper - Multi-source resolution of bibliographic metadata.

This package provides tools for:
- Querying several metadata sources (arXiv, DOI, Crossref, DBLP, Semantic
  Scholar, OpenReview, PubMed, chemRxiv, Papers with Code, IEEE) concurrently
- Selecting the matching candidate among fuzzy search results
- Merging per-field results with source priorities
- Completing BibTeX files from the command line

Example usage:
    import asyncio
    from metadata_scraper import MetadataScrapeService, PaperDraft

    async def run():
        async with MetadataScrapeService() as service:
            drafts = [PaperDraft(title="Attention Is All You Need", arxiv="1706.03762")]
            return await service.scrape(drafts)

    resolved = asyncio.run(run())
"""

from metadata_scraper._version import __version__
from metadata_scraper.config import DEFAULT_STAGES, PRESETS, ResolverConfig, StageSpec, expand_scraper_names
from metadata_scraper.matching import match_candidates, select_candidate, signature, similarity
from metadata_scraper.merging import merge_by_priority, merge_candidate, new_priority_levels
from metadata_scraper.models import (
    PaperDraft,
    PubType,
    ResolutionOutcome,
    ScraperProps,
    ScraperRequest,
    SourceError,
    is_metadata_completed,
)
from metadata_scraper.pipeline import StageResult, StageRunner
from metadata_scraper.scrapers import SCRAPER_CLASSES, Scraper, build_registry
from metadata_scraper.service import MetadataScrapeService
from metadata_scraper.utils import AsyncHttpClient, AsyncRateLimiterRegistry, FetchError, first_success, is_empty

__all__ = [
    # Version
    "__version__",
    # Data model
    "PaperDraft",
    "PubType",
    "ScraperProps",
    "ScraperRequest",
    "SourceError",
    "ResolutionOutcome",
    "is_metadata_completed",
    "is_empty",
    # Matching & merging
    "signature",
    "similarity",
    "select_candidate",
    "match_candidates",
    "merge_candidate",
    "merge_by_priority",
    "new_priority_levels",
    # Sources
    "Scraper",
    "SCRAPER_CLASSES",
    "build_registry",
    # Pipeline
    "StageRunner",
    "StageResult",
    "MetadataScrapeService",
    # Config
    "ResolverConfig",
    "StageSpec",
    "DEFAULT_STAGES",
    "PRESETS",
    "expand_scraper_names",
    # HTTP
    "AsyncHttpClient",
    "AsyncRateLimiterRegistry",
    "FetchError",
    "first_success",
]
