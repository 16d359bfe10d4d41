"""Data model for metadata resolution: drafts, source properties and outcomes."""

from __future__ import annotations

import copy as _copy
import json
from dataclasses import asdict, dataclass, field, fields
from enum import IntEnum
from typing import Any

from metadata_scraper.utils import is_empty


class PubType(IntEnum):
    """Publication type codes."""

    JOURNAL = 0
    CONFERENCE = 1
    OTHER = 2
    BOOK = 3


# Fields that take part in merging, in a stable order
MERGE_FIELDS = (
    "title",
    "authors",
    "publication",
    "pub_time",
    "pub_type",
    "doi",
    "arxiv",
    "pages",
    "volume",
    "number",
    "publisher",
    "codes",
)

# Venue strings that only mark a preprint and never replace a real venue
PREPRINT_VENUES = ("arXiv", "CoRR")

_PLACEHOLDER_PREFIXES = ("arxiv",)
_PLACEHOLDER_MARKERS = ("corr", "openreview", "dblp://", "submitted to")


@dataclass
class PaperDraft:
    """An in-progress bibliographic record.

    ``authors`` is a single display string with names joined by ", ".
    ``codes`` holds JSON strings of the form ``{"url": ..., "isOfficial": ...}``.
    """

    title: str = ""
    authors: str = ""
    publication: str = ""
    pub_time: str = ""
    pub_type: PubType | None = None
    doi: str = ""
    arxiv: str = ""
    pages: str = ""
    volume: str = ""
    number: str = ""
    publisher: str = ""
    codes: list[str] = field(default_factory=list)
    key: str = ""  # citation key / caller id, never merged

    def copy(self) -> PaperDraft:
        """Return an independent copy of this draft."""
        return _copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["pub_type"] = None if self.pub_type is None else int(self.pub_type)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaperDraft:
        """Build a draft from a plain dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if values.get("pub_type") is not None:
            values["pub_type"] = PubType(int(values["pub_type"]))
        for name in ("title", "authors", "publication", "pub_time", "doi", "arxiv", "pages", "volume", "number", "publisher", "key"):
            if name in values:
                values[name] = "" if values[name] is None else str(values[name])
        if "codes" in values:
            values["codes"] = list(values["codes"] or [])
        return cls(**values)

    def __str__(self) -> str:
        return f"{self.title or '<untitled>'} ({self.pub_time or 'n.d.'})"


def make_code(url: str, is_official: bool) -> str:
    """Serialize a code-repository link the way ``PaperDraft.codes`` stores it."""
    return json.dumps({"url": url, "isOfficial": is_official})


def is_placeholder_publication(publication: str) -> bool:
    """True if the venue only marks a preprint or an unresolved lookup."""
    pub = (publication or "").strip().lower()
    if pub.startswith(_PLACEHOLDER_PREFIXES):
        return True
    return any(marker in pub for marker in _PLACEHOLDER_MARKERS)


def is_metadata_completed(draft: PaperDraft) -> bool:
    """Whether a draft has every mandatory field and a real venue.

    Mandatory fields are title, authors, publication and year. A preprint
    or placeholder venue (arXiv, CoRR, OpenReview, dblp://..., "Submitted to")
    does not count as complete.
    """
    if any(is_empty(getattr(draft, name)) for name in ("title", "authors", "publication", "pub_time")):
        return False
    return not is_placeholder_publication(draft.publication)


@dataclass(frozen=True)
class ScraperProps:
    """Stage policy for one adapter.

    Attributes:
        breakable: Completion of this adapter may end the stage early once the draft is complete
        must_wait: The stage never ends early before this adapter completes
    """

    breakable: bool = False
    must_wait: bool = False


@dataclass
class ScraperRequest:
    """An outbound request description built by an adapter."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    sim_threshold: float = -1
    timeout: float = 10.0
    max_retries: int = 1


@dataclass
class SourceError:
    """A failure attributed to one source during one stage."""

    source: str
    stage: str
    error: BaseException

    def __str__(self) -> str:
        return f"[{self.stage}/{self.source}] {type(self.error).__name__}: {self.error}"


@dataclass
class ResolutionOutcome:
    """Final draft of one resolution plus every error collected along the way."""

    draft: PaperDraft
    errors: list[SourceError] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return is_metadata_completed(self.draft)
