"""Resolver configuration: enabled sources, presets and stage tables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any

from metadata_scraper.models import ScraperProps
from metadata_scraper.utils import PAPERLIB_METADATA_API

# ------------- Source bundles -------------

# Source bundles per research field
PRESETS: dict[str, tuple[str, ...]] = {
    "general": ("arxiv", "crossref", "dblp", "doi", "openreview", "pwc", "semanticscholar"),
    "cs": ("arxiv", "crossref", "dblp", "doi", "openreview", "pwc", "semanticscholar"),
    "es": ("crossref", "doi", "semanticscholar"),
    "phy": ("arxiv", "crossref", "doi", "semanticscholar"),
}

# User-facing names that stand for more than one adapter
NAME_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "chemrxiv": ("chemrxivprecise", "chemrxivfuzzy"),
    "dblp": ("dblp", "dblpvenue"),
}


def expand_scraper_names(names: list[str] | tuple[str, ...]) -> list[str]:
    """Expand bundle names and drop duplicates, keeping first-seen order."""
    expanded: list[str] = []
    for raw in names:
        name = raw.strip().lower()
        if not name:
            continue
        for item in NAME_EXPANSIONS.get(name, (name,)):
            if item not in expanded:
                expanded.append(item)
    return expanded


# ------------- Stage tables -------------


@dataclass(frozen=True)
class StageSpec:
    """One stage of the local pipeline.

    Attributes:
        name: Stage name used in logs and error attribution
        offset: Base priority rank of the stage
        gap_time: Stagger between adapter starts, in seconds
        entries: Ordered (adapter name, props); index in this tuple adds to the rank
    """

    name: str
    offset: int
    gap_time: float
    entries: tuple[tuple[str, ScraperProps], ...]

    def enabled(self, names: list[str] | set[str]) -> tuple[tuple[str, ScraperProps], ...]:
        return tuple((n, p) for n, p in self.entries if n in names)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(n for n, _ in self.entries)


PRECISE_STAGE = StageSpec(
    name="precise",
    offset=0,
    gap_time=0.0,
    entries=(
        ("doi", ScraperProps(breakable=True, must_wait=True)),
        ("arxiv", ScraperProps(breakable=False, must_wait=False)),
        ("chemrxivprecise", ScraperProps(breakable=True, must_wait=True)),
    ),
)

FUZZY_STAGE = StageSpec(
    name="fuzzy",
    offset=200,
    gap_time=0.5,
    entries=(
        ("dblp", ScraperProps(breakable=True, must_wait=True)),
        ("openreview", ScraperProps(breakable=False, must_wait=False)),
        ("semanticscholar", ScraperProps(breakable=False, must_wait=False)),
        ("crossref", ScraperProps(breakable=False, must_wait=False)),
        ("chemrxivfuzzy", ScraperProps(breakable=False, must_wait=False)),
        ("pubmed", ScraperProps(breakable=False, must_wait=False)),
    ),
)

ADDITIONAL_STAGE = StageSpec(
    name="additional",
    offset=400,
    gap_time=0.0,
    entries=(
        ("pwc", ScraperProps(breakable=False, must_wait=True)),
        ("dblpvenue", ScraperProps(breakable=False, must_wait=True)),
    ),
)

CLIENTSIDE_STAGE = StageSpec(
    name="clientside",
    offset=300,
    gap_time=0.0,
    entries=(("ieee", ScraperProps(breakable=True, must_wait=False)),),
)

DEFAULT_STAGES = MappingProxyType(
    {stage.name: stage for stage in (PRECISE_STAGE, FUZZY_STAGE, ADDITIONAL_STAGE, CLIENTSIDE_STAGE)}
)

# Sources the aggregation service can run on our behalf
AGGREGATOR_SCRAPERS = PRECISE_STAGE.names + FUZZY_STAGE.names + ADDITIONAL_STAGE.names


# ------------- Config -------------


@dataclass
class ResolverConfig:
    """Configuration for metadata resolution.

    Attributes:
        scrapers: Enabled source names; empty means the preset's bundle
        presetting: Source bundle ("general", "cs", "es", "phy")
        ieee_api_key: IEEE Xplore API key. Falls back to the IEEE_API_KEY
            environment variable
        use_aggregator: Query the remote aggregation service first
        aggregator_url: Endpoint of the aggregation service
        stage_timeout: Wall-clock ceiling of one stage, in seconds
        max_concurrency: Drafts resolved concurrently in a batch
        request_timeout: Default per-request timeout, in seconds
        user_agent: User-Agent header for outbound requests
        rate_limits: Per-source requests/minute overrides
    """

    scrapers: list[str] = field(default_factory=list)
    presetting: str = "general"
    ieee_api_key: str | None = None
    use_aggregator: bool = True
    aggregator_url: str = PAPERLIB_METADATA_API
    stage_timeout: float = 20.0
    max_concurrency: int = 10
    request_timeout: float = 10.0
    user_agent: str = "metadata-scraper/0.3 (mailto:hi@paperlib.app)"
    rate_limits: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.presetting not in PRESETS:
            raise ValueError(f"Unknown presetting '{self.presetting}'. Choose from: {', '.join(PRESETS)}")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.stage_timeout <= 0:
            raise ValueError("stage_timeout must be positive")

    def get_ieee_api_key(self) -> str:
        """Get the IEEE key, using the environment if not set."""
        return self.ieee_api_key or os.environ.get("IEEE_API_KEY", "")

    def enabled_scrapers(self) -> list[str]:
        """Adapter names in effect, with bundle names expanded."""
        return expand_scraper_names(self.scrapers or list(PRESETS[self.presetting]))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolverConfig:
        """Create config from a dictionary (e.g., loaded from YAML)."""
        data = dict(data)
        unknown = sorted(set(data) - {f.name for f in fields(cls)})
        if unknown:
            raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")
        scrapers = data.pop("scrapers", [])
        if isinstance(scrapers, str):
            scrapers = [s for s in scrapers.split(",") if s.strip()]
        return cls(scrapers=list(scrapers), **data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> ResolverConfig:
        """Load config from a YAML file.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If the YAML is not a mapping or has unknown keys
        """
        try:
            import yaml
        except ImportError as err:
            raise ImportError("PyYAML required for config files. Install with: pip install pyyaml") from err

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Invalid config format in {path}: expected a mapping")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary for serialization. The API key is omitted."""
        return {
            "scrapers": list(self.scrapers),
            "presetting": self.presetting,
            "use_aggregator": self.use_aggregator,
            "aggregator_url": self.aggregator_url,
            "stage_timeout": self.stage_timeout,
            "max_concurrency": self.max_concurrency,
            "request_timeout": self.request_timeout,
            "user_agent": self.user_agent,
            "rate_limits": dict(self.rate_limits),
        }
