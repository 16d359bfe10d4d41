"""Metadata resolution service and the ``metadata-scrape`` command line tool.

Resolution of one draft runs through these states:

    AGGREGATOR -> LOCAL_PRECISE -> LOCAL_FUZZY -> LOCAL_ADDITIONAL
               -> CLIENTSIDE -> CLIENTSIDE_ADDITIONAL -> DONE

The remote aggregation service is asked first. If it fails, or returns no
venue for a draft keyed by DOI/arXiv id, the local pipeline runs instead:
identifier-keyed sources, then (only if still incomplete) title-keyed ones,
then enrichment sources. Drafts still incomplete afterwards go through the
clientside sources, followed by the enrichment sources once more.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
from collections.abc import Callable, Mapping
from typing import Any

from metadata_scraper.bibtex import BibLoader, BibWriter, entry_to_draft, update_entry_from_draft
from metadata_scraper.config import (
    AGGREGATOR_SCRAPERS,
    DEFAULT_STAGES,
    PRESETS,
    ResolverConfig,
    StageSpec,
    expand_scraper_names,
)
from metadata_scraper.models import PaperDraft, ResolutionOutcome, SourceError, is_metadata_completed
from metadata_scraper.pipeline import StageRunner
from metadata_scraper.scrapers import PaperlibMetadataScraper, Scraper, build_registry
from metadata_scraper.utils import AsyncHttpClient, AsyncRateLimiterRegistry, is_empty

ProgressCallback = Callable[[int, int], None]


# ------------- Resolution service -------------


class MetadataScrapeService:
    """Resolves batches of drafts against the configured metadata sources.

    Args:
        config: Resolver configuration
        http: Shared async HTTP client; one is created (and closed) if omitted
        registry: Adapter registry keyed by name; built from the config if omitted
        stages: Stage tables keyed by stage name; defaults to DEFAULT_STAGES
        logger: Logger for progress and failures
    """

    def __init__(
        self,
        config: ResolverConfig | None = None,
        http: AsyncHttpClient | None = None,
        registry: dict[str, Scraper] | None = None,
        stages: Mapping[str, StageSpec] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or ResolverConfig()
        self.stages = stages if stages is not None else DEFAULT_STAGES
        self.logger = logger or logging.getLogger(__name__)
        self._owns_http = http is None
        self.http = http or AsyncHttpClient(
            rate_limiters=AsyncRateLimiterRegistry(self.config.rate_limits),
            timeout=self.config.request_timeout,
            user_agent=self.config.user_agent,
        )
        self.registry = registry if registry is not None else build_registry(self.config.get_ieee_api_key(), self.logger)
        self.runner = StageRunner(self.registry, self.http, self.config.stage_timeout, self.logger)

    async def close(self) -> None:
        if self._owns_http:
            await self.http.close()

    async def __aenter__(self) -> MetadataScrapeService:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # --- Batch API ---

    async def scrape(
        self,
        drafts: list[PaperDraft],
        scrapers: list[str] | None = None,
        force: bool = False,
        progress: ProgressCallback | None = None,
    ) -> list[PaperDraft]:
        """Resolve a batch of drafts.

        Args:
            drafts: Drafts to resolve; not mutated
            scrapers: Enabled source names (bundle names expanded); defaults to the config
            force: Also resolve drafts that are already complete
            progress: Called with (completed, total) after each resolved draft

        Returns:
            Resolved drafts, in input order
        """
        outcomes = await self.scrape_outcomes(drafts, scrapers, force, progress)
        return [outcome.draft for outcome in outcomes]

    async def scrape_outcomes(
        self,
        drafts: list[PaperDraft],
        scrapers: list[str] | None = None,
        force: bool = False,
        progress: ProgressCallback | None = None,
    ) -> list[ResolutionOutcome]:
        """Like scrape(), but keeps the errors collected for each draft."""
        names = expand_scraper_names(scrapers) if scrapers is not None else self.config.enabled_scrapers()

        outcomes: list[ResolutionOutcome | None] = [None] * len(drafts)
        todo: list[int] = []
        for i, draft in enumerate(drafts):
            if force or not is_metadata_completed(draft):
                todo.append(i)
            else:
                outcomes[i] = ResolutionOutcome(draft=draft)

        total = len(todo)
        completed = 0
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        if total:
            self.logger.info("Metadata Scraping %d/%d...", completed, total)

        async def worker(index: int) -> None:
            nonlocal completed
            draft = drafts[index]
            async with semaphore:
                try:
                    outcome = await self.resolve(draft, names, force)
                except Exception as e:
                    self.logger.warning("Failed to scrape metadata for %s: %s", draft, e)
                    outcome = ResolutionOutcome(draft=draft, errors=[SourceError("service", "batch", e)])
            outcomes[index] = outcome
            completed += 1
            self.logger.info("Metadata Scraping %d/%d...", completed, total)
            if progress is not None:
                progress(completed, total)

        await asyncio.gather(*(worker(i) for i in todo))
        return [outcome for outcome in outcomes if outcome is not None]

    # --- Single draft ---

    async def resolve(self, draft: PaperDraft, scrapers: list[str], force: bool = False) -> ResolutionOutcome:
        """Run the resolution state machine for one draft.

        Args:
            draft: Draft to resolve; not mutated
            scrapers: Expanded names of the enabled adapters
            force: Resolve even if the draft is already complete
        """
        draft = draft.copy()
        errors: list[SourceError] = []
        if not force and is_metadata_completed(draft):
            return ResolutionOutcome(draft=draft)

        if self.config.use_aggregator:
            draft = await self._scrape_aggregator(draft, scrapers, errors)
        else:
            draft = await self._scrape_local(draft, scrapers, errors)

        if not is_metadata_completed(draft):
            draft = await self._scrape_clientside(draft, scrapers, errors)

        for error in errors:
            self.logger.debug("%s: %s", draft, error)
        return ResolutionOutcome(draft=draft, errors=errors)

    async def _scrape_aggregator(self, draft: PaperDraft, scrapers: list[str], errors: list[SourceError]) -> PaperDraft:
        enabled = [name for name in AGGREGATOR_SCRAPERS if name in scrapers]
        aggregator = PaperlibMetadataScraper(["cache", *enabled], url=self.config.aggregator_url, logger=self.logger)
        try:
            scraped = await aggregator.scrape(draft.copy(), self.http)
        except Exception as e:
            self.logger.warning("Paperlib metadata service error for %s: %s", draft, e)
            errors.append(SourceError(source=aggregator.name, stage="aggregator", error=e))
            return await self._scrape_local(draft, scrapers, errors)

        if is_empty(scraped.publication) and not (is_empty(scraped.arxiv) and is_empty(scraped.doi)):
            return await self._scrape_local(scraped, scrapers, errors)
        return scraped

    async def _scrape_local(self, draft: PaperDraft, scrapers: list[str], errors: list[SourceError]) -> PaperDraft:
        draft = await self._run_stage(draft, self.stages["precise"], scrapers, errors)
        if not is_metadata_completed(draft):
            draft = await self._run_stage(draft, self.stages["fuzzy"], scrapers, errors)
        return await self._run_stage(draft, self.stages["additional"], scrapers, errors)

    async def _scrape_clientside(self, draft: PaperDraft, scrapers: list[str], errors: list[SourceError]) -> PaperDraft:
        clientside = self.stages["clientside"]
        # Clientside adapters need an API key
        if is_metadata_completed(draft) or not self.config.get_ieee_api_key() or not clientside.enabled(scrapers):
            return draft
        draft = await self._run_stage(draft, clientside, scrapers, errors)
        return await self._run_stage(draft, self.stages["additional"], scrapers, errors)

    async def _run_stage(
        self, draft: PaperDraft, stage: StageSpec, scrapers: list[str], errors: list[SourceError]
    ) -> PaperDraft:
        entries = stage.enabled(scrapers)
        if not entries:
            return draft
        result = await self.runner.run(draft, entries, stage.gap_time, stage.offset, stage.name)
        errors.extend(result.errors)
        return result.draft


# ------------- CLI -------------


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="metadata-scrape",
        description="Complete the metadata of BibTeX entries from multiple bibliographic sources.",
    )
    p.add_argument("input", help="Input .bib file")
    out = p.add_mutually_exclusive_group()
    out.add_argument("-o", "--output", help="Output .bib file (default: stdout)")
    out.add_argument("--jsonl", help="Write resolved records as JSON lines instead of BibTeX")
    p.add_argument("--scrapers", help="Comma-separated source names (e.g. doi,arxiv,dblp)")
    p.add_argument("--presetting", choices=sorted(PRESETS), help="Source bundle when --scrapers is not given")
    p.add_argument("--config", help="YAML config file")
    p.add_argument("--force", action="store_true", help="Also resolve entries that are already complete")
    p.add_argument("--no-aggregator", action="store_true", help="Skip the remote aggregation service")
    p.add_argument("--ieee-api-key", help="IEEE Xplore API key (default: $IEEE_API_KEY)")
    p.add_argument("--max-concurrency", type=int, help="Entries resolved concurrently (default 10)")
    p.add_argument("--stage-timeout", type=float, help="Wall-clock limit per stage in seconds (default 20)")
    p.add_argument("--timeout", type=float, help="HTTP timeout seconds (default 10)")
    p.add_argument("--verbose", action="store_true", help="Verbose logging")
    return p


def init_logging(verbose: bool) -> logging.Logger:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    return logging.getLogger("metadata_scrape")


def build_config(args: argparse.Namespace) -> ResolverConfig:
    """Merge the optional YAML config with command-line overrides.

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If a value is invalid
    """
    config = ResolverConfig.from_yaml(args.config) if args.config else ResolverConfig()
    overrides: dict[str, Any] = {}
    if args.scrapers:
        overrides["scrapers"] = [s.strip() for s in args.scrapers.split(",") if s.strip()]
    if args.presetting:
        overrides["presetting"] = args.presetting
    if args.no_aggregator:
        overrides["use_aggregator"] = False
    if args.ieee_api_key:
        overrides["ieee_api_key"] = args.ieee_api_key
    if args.max_concurrency is not None:
        overrides["max_concurrency"] = args.max_concurrency
    if args.stage_timeout is not None:
        overrides["stage_timeout"] = args.stage_timeout
    if args.timeout is not None:
        overrides["request_timeout"] = args.timeout
    return dataclasses.replace(config, **overrides)


async def resolve_drafts(
    config: ResolverConfig,
    drafts: list[PaperDraft],
    force: bool,
    logger: logging.Logger,
) -> list[ResolutionOutcome]:
    async with MetadataScrapeService(config, logger=logger) as service:
        return await service.scrape_outcomes(drafts, force=force)


def outcome_to_json(outcome: ResolutionOutcome) -> str:
    record = outcome.draft.to_dict()
    record["complete"] = outcome.complete
    record["errors"] = [str(e) for e in outcome.errors]
    return json.dumps(record, ensure_ascii=False)


def write_jsonl(outcomes: list[ResolutionOutcome], path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for outcome in outcomes:
            f.write(outcome_to_json(outcome) + "\n")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the metadata scraper.

    Args:
        argv: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code: 0=all entries complete, 1=error, 2=some entries incomplete.
    """
    args = build_arg_parser().parse_args(argv)
    logger = init_logging(args.verbose)

    try:
        config = build_config(args)
    except (FileNotFoundError, ValueError, TypeError, ImportError) as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    if not os.path.exists(args.input):
        logger.error("Input file not found: %s", args.input)
        return 1
    try:
        db = BibLoader().load_file(args.input)
    except Exception as e:
        logger.error("Failed to parse %s: %s", args.input, e)
        return 1

    drafts = [entry_to_draft(entry) for entry in db.entries]
    outcomes = asyncio.run(resolve_drafts(config, drafts, args.force, logger))

    if args.jsonl:
        write_jsonl(outcomes, args.jsonl)
    else:
        db.entries = [update_entry_from_draft(entry, o.draft) for entry, o in zip(db.entries, outcomes)]
        writer = BibWriter()
        if args.output:
            writer.dump_to_file(db, args.output)
        else:
            sys.stdout.write(writer.dumps(db))

    incomplete = [o for o in outcomes if not o.complete]
    logger.info(
        "Summary: total=%d, complete=%d, incomplete=%d",
        len(outcomes),
        len(outcomes) - len(incomplete),
        len(incomplete),
    )
    for outcome in incomplete:
        logger.info("Incomplete: %s", outcome.draft.key or outcome.draft)
    return 2 if incomplete else 0
