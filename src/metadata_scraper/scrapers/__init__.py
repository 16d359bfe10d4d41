"""Metadata source adapters and their registry."""

from __future__ import annotations

import logging

from metadata_scraper.scrapers.arxiv import ArxivScraper
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.scrapers.chemrxiv import ChemRxivFuzzyScraper, ChemRxivPreciseScraper
from metadata_scraper.scrapers.crossref import CrossrefScraper
from metadata_scraper.scrapers.dblp import DBLPScraper, DBLPVenueScraper
from metadata_scraper.scrapers.doi import DOIScraper
from metadata_scraper.scrapers.ieee import IEEEScraper
from metadata_scraper.scrapers.openreview import OpenReviewScraper
from metadata_scraper.scrapers.paperlib import PaperlibMetadataScraper
from metadata_scraper.scrapers.pubmed import PubMedScraper
from metadata_scraper.scrapers.pwc import PwCScraper
from metadata_scraper.scrapers.semanticscholar import SemanticScholarScraper

__all__ = [
    "Scraper",
    "ArxivScraper",
    "DOIScraper",
    "CrossrefScraper",
    "DBLPScraper",
    "DBLPVenueScraper",
    "SemanticScholarScraper",
    "OpenReviewScraper",
    "PubMedScraper",
    "ChemRxivPreciseScraper",
    "ChemRxivFuzzyScraper",
    "PwCScraper",
    "IEEEScraper",
    "PaperlibMetadataScraper",
    "SCRAPER_CLASSES",
    "build_registry",
]

SCRAPER_CLASSES: dict[str, type[Scraper]] = {
    cls.name: cls
    for cls in (
        ArxivScraper,
        DOIScraper,
        CrossrefScraper,
        DBLPScraper,
        DBLPVenueScraper,
        SemanticScholarScraper,
        OpenReviewScraper,
        PubMedScraper,
        ChemRxivPreciseScraper,
        ChemRxivFuzzyScraper,
        PwCScraper,
        IEEEScraper,
    )
}


def build_registry(ieee_api_key: str = "", logger: logging.Logger | None = None) -> dict[str, Scraper]:
    """Instantiate one adapter per known source name."""
    registry: dict[str, Scraper] = {}
    for name, cls in SCRAPER_CLASSES.items():
        if cls is IEEEScraper:
            registry[name] = IEEEScraper(api_key=ieee_api_key, logger=logger)
        else:
            registry[name] = cls(logger=logger)
    return registry
