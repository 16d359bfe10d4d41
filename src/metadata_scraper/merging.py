"""Field-level merge of candidate records into a draft.

Two layers:

- ``merge_candidate`` applies one chosen candidate to a draft inside a single
  adapter.
- ``merge_by_priority`` reconciles the results of several adapters of one
  stage, using a per-field record of the best rank that has set each field.
"""

from __future__ import annotations

import math

from metadata_scraper.models import MERGE_FIELDS, PREPRINT_VENUES, PaperDraft
from metadata_scraper.utils import is_empty


def new_priority_levels() -> dict[str, float]:
    """Fresh per-field rank map; every field starts unset."""
    return {name: math.inf for name in MERGE_FIELDS}


def _suppressed(name: str, current: object, incoming: object) -> bool:
    # A preprint venue never overwrites a real one
    return name == "publication" and incoming in PREPRINT_VENUES and not is_empty(current)


def merge_candidate(draft: PaperDraft, candidate: PaperDraft) -> PaperDraft:
    """Copy every non-empty field of ``candidate`` onto ``draft``.

    The candidate is only read. Returns the (mutated) draft.
    """
    for name in MERGE_FIELDS:
        value = getattr(candidate, name)
        if is_empty(value):
            continue
        if _suppressed(name, getattr(draft, name), value):
            continue
        setattr(draft, name, list(value) if isinstance(value, list) else value)
    return draft


def merge_by_priority(
    origin: PaperDraft,
    draft: PaperDraft,
    scraped: PaperDraft,
    levels: dict[str, float],
    rank: int,
) -> PaperDraft:
    """Merge one adapter's result into the stage's running draft.

    A field is taken from ``scraped`` when it is non-empty, differs from the
    stage-entry snapshot ``origin`` (the adapter actually changed it), and
    ``rank`` beats the best rank that has set the field so far. ``levels`` is
    updated in place.

    Args:
        origin: Draft as it was when the stage started
        draft: Running stage draft, mutated
        scraped: Adapter output
        levels: Field name to lowest rank that set it
        rank: Priority of this adapter (lower is more authoritative)

    Returns:
        The mutated draft
    """
    for name in MERGE_FIELDS:
        value = getattr(scraped, name)
        if is_empty(value) or value == getattr(origin, name):
            continue
        if rank >= levels.get(name, math.inf):
            continue
        if _suppressed(name, getattr(draft, name), value):
            continue
        setattr(draft, name, list(value) if isinstance(value, list) else value)
        levels[name] = rank
    return draft
