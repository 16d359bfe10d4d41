"""Stage runner: concurrent, staggered, rank-ordered merging of adapter results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from metadata_scraper.merging import merge_by_priority, new_priority_levels
from metadata_scraper.models import PaperDraft, ScraperProps, SourceError, is_metadata_completed
from metadata_scraper.scrapers.base import Scraper
from metadata_scraper.utils import AsyncHttpClient

DEFAULT_STAGE_TIMEOUT = 20.0


@dataclass
class StageResult:
    """Outcome of one stage.

    Attributes:
        draft: The merged draft
        errors: Adapter failures, attributed to their source
        timed_out: True if the stage hit its wall-clock ceiling
        completed: Names of adapters whose result was taken into account
    """

    draft: PaperDraft
    errors: list[SourceError] = field(default_factory=list)
    timed_out: bool = False
    completed: list[str] = field(default_factory=list)


class StageRunner:
    """Runs the adapters of one stage concurrently against one draft.

    Each adapter works on its own copy of the stage-entry draft and starts
    ``gap_time * index`` seconds after the stage begins. Results are merged
    one at a time as they arrive, with rank ``priority_offset + index``, so a
    more authoritative adapter can still overwrite a field that a less
    authoritative one set earlier.

    The stage ends when all adapters are done, when the hard timeout elapses,
    or early once a breakable adapter has completed, the draft is complete
    and every must-wait adapter has completed. Outstanding adapters are
    cancelled and contribute nothing.
    """

    def __init__(
        self,
        registry: dict[str, Scraper],
        http: AsyncHttpClient,
        stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.registry = registry
        self.http = http
        self.stage_timeout = stage_timeout
        self.logger = logger or logging.getLogger(__name__)

    async def _run_one(self, scraper: Scraper, delay: float, snapshot: PaperDraft) -> PaperDraft:
        if delay > 0:
            await asyncio.sleep(delay)
        return await scraper.scrape(snapshot, self.http)

    async def run(
        self,
        draft: PaperDraft,
        entries: Iterable[tuple[str, ScraperProps]],
        gap_time: float = 0.0,
        priority_offset: int = 0,
        stage: str = "stage",
    ) -> StageResult:
        """Run one stage.

        Args:
            draft: Draft at stage entry; not mutated
            entries: Ordered (adapter name, props) of the enabled adapters
            gap_time: Stagger between adapter starts, in seconds
            priority_offset: Base rank of the stage
            stage: Stage name for logs and error attribution

        Returns:
            StageResult with the merged draft and collected errors
        """
        origin = draft.copy()
        result = StageResult(draft=draft.copy())

        active: list[tuple[str, ScraperProps]] = []
        for name, props in entries:
            if name in self.registry:
                active.append((name, props))
            else:
                self.logger.warning("Unknown scraper '%s' in stage %s, skipping", name, stage)
        if not active:
            return result

        levels = new_priority_levels()
        must_wait = sum(1 for _, props in active if props.must_wait)
        breakable_done = False

        tasks: dict[asyncio.Task[PaperDraft], tuple[int, str, ScraperProps]] = {}
        for index, (name, props) in enumerate(active):
            task = asyncio.create_task(self._run_one(self.registry[name], gap_time * index, origin.copy()))
            tasks[task] = (index, name, props)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.stage_timeout
        pending: set[asyncio.Task[PaperDraft]] = set(tasks)
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    result.timed_out = True
                    break
                done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                if not done:
                    result.timed_out = True
                    break

                for task in sorted(done, key=lambda t: tasks[t][0]):
                    index, name, props = tasks[task]
                    if task.cancelled():
                        continue
                    error = task.exception()
                    if error is not None:
                        self.logger.debug("%s failed: %s", name, error)
                        result.errors.append(SourceError(source=name, stage=stage, error=error))
                    else:
                        merge_by_priority(origin, result.draft, task.result(), levels, priority_offset + index)
                        result.completed.append(name)
                    if props.must_wait:
                        must_wait -= 1
                    if props.breakable:
                        breakable_done = True

                if breakable_done and must_wait == 0 and is_metadata_completed(result.draft):
                    break
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if result.timed_out:
            self.logger.debug("Stage %s timed out after %.1fs with %d adapter(s) outstanding", stage, self.stage_timeout, len(pending))
        return result
