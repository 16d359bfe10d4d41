"""Candidate selection for title-keyed sources.

A candidate is compared to the draft through a compact signature: the
normalized title, followed by a short prefix of the normalized author string
when the draft already has authors.
"""

from __future__ import annotations

from rapidfuzz import fuzz

from metadata_scraper.merging import merge_candidate
from metadata_scraper.models import PaperDraft
from metadata_scraper.utils import is_empty, normalize_for_signature

__all__ = [
    "AUTHOR_PREFIX_LENGTH",
    "EXACT_MATCH_THRESHOLD",
    "RELAXATION_FACTOR",
    "TRUST_FIRST_THRESHOLD",
    "signature",
    "similarity",
    "title_similarity",
    "select_candidate",
    "match_candidates",
]

# Empirically tuned; adjust with care
AUTHOR_PREFIX_LENGTH = 10
EXACT_MATCH_THRESHOLD = 1
RELAXATION_FACTOR = 0.8
TRUST_FIRST_THRESHOLD = -1


# ------------- Signatures & Similarity -------------


def signature(record: PaperDraft, with_authors: bool) -> str:
    """Normalized title, optionally followed by an author prefix."""
    sig = normalize_for_signature(record.title)
    if with_authors:
        sig += normalize_for_signature(record.authors)[:AUTHOR_PREFIX_LENGTH]
    return sig


def similarity(a: str, b: str) -> float:
    """Normalized edit similarity in [0, 1]."""
    if not a and not b:
        return 1.0
    return fuzz.ratio(a, b) / 100.0


def title_similarity(title_a: str, title_b: str) -> float:
    """Similarity of two titles after signature normalization."""
    return similarity(normalize_for_signature(title_a), normalize_for_signature(title_b))


def _relaxed(draft: PaperDraft, candidate: PaperDraft) -> bool:
    # Same author string and same year lowers the bar
    if is_empty(draft.authors) or is_empty(draft.pub_time):
        return False
    return candidate.authors == draft.authors and candidate.pub_time == draft.pub_time


# ------------- Matching -------------


def select_candidate(
    draft: PaperDraft,
    candidates: list[PaperDraft],
    sim_threshold: float,
) -> PaperDraft | None:
    """Pick the candidate that matches the draft, or None.

    Args:
        draft: The record being resolved
        candidates: Decoded source results, in source order
        sim_threshold: -1 trusts the first candidate, 1 requires an identical
            signature, anything else requires similarity strictly above it

    Returns:
        The first matching candidate, or None
    """
    if not candidates:
        return None
    if sim_threshold == TRUST_FIRST_THRESHOLD:
        return candidates[0]

    with_authors = not is_empty(draft.authors)
    draft_sig = signature(draft, with_authors)

    if sim_threshold == EXACT_MATCH_THRESHOLD:
        for candidate in candidates:
            if signature(candidate, with_authors) == draft_sig:
                return candidate
        return None

    for candidate in candidates:
        threshold = sim_threshold * RELAXATION_FACTOR if _relaxed(draft, candidate) else sim_threshold
        if similarity(signature(candidate, with_authors), draft_sig) > threshold:
            return candidate
    return None


def match_candidates(
    draft: PaperDraft,
    candidates: list[PaperDraft],
    sim_threshold: float,
) -> PaperDraft:
    """Merge the matching candidate (if any) into the draft and return it."""
    chosen = select_candidate(draft, candidates, sim_threshold)
    if chosen is not None:
        merge_candidate(draft, chosen)
    return draft
