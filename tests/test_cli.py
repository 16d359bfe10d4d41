"""Tests for the metadata-scrape command line tool."""

from __future__ import annotations

import json
import sys

import pytest

from metadata_scraper import PaperDraft, PubType, ResolutionOutcome, SourceError
from metadata_scraper import service as service_module
from metadata_scraper.cli import scrape_cli
from metadata_scraper.service import build_arg_parser, build_config, main

INPUT_BIB = r"""@article{vaswani2017attention,
  title = {Attention Is All You Need},
  author = {Vaswani, Ashish},
  journal = {arXiv preprint arXiv:1706.03762},
  year = {2017}
}
"""

RESOLVED = PaperDraft(
    title="Attention Is All You Need",
    authors="Ashish Vaswani, Noam Shazeer",
    publication="Advances in Neural Information Processing Systems",
    pub_time="2017",
    pub_type=PubType.CONFERENCE,
    key="vaswani2017attention",
)


@pytest.fixture
def bib_file(tmp_path):
    path = tmp_path / "refs.bib"
    path.write_text(INPUT_BIB, encoding="utf-8")
    return path


@pytest.fixture
def fake_resolve(monkeypatch):
    """Replace network resolution with canned outcomes."""
    captured = {}

    def install(outcome: ResolutionOutcome):
        async def _resolve(config, drafts, force, logger):
            captured["config"] = config
            captured["drafts"] = drafts
            captured["force"] = force
            return [outcome for _ in drafts]

        monkeypatch.setattr(service_module, "resolve_drafts", _resolve)
        return captured

    return install


class TestArgs:
    def test_build_config_overrides(self):
        args = build_arg_parser().parse_args(
            ["refs.bib", "--scrapers", "doi, arxiv", "--no-aggregator", "--max-concurrency", "3", "--stage-timeout", "7"]
        )
        config = build_config(args)
        assert config.scrapers == ["doi", "arxiv"]
        assert not config.use_aggregator
        assert config.max_concurrency == 3
        assert config.stage_timeout == 7.0

    def test_output_and_jsonl_exclusive(self):
        with pytest.raises(SystemExit):
            build_arg_parser().parse_args(["refs.bib", "-o", "a.bib", "--jsonl", "a.jsonl"])


class TestMain:
    """Tests for main() exit codes and outputs."""

    def test_missing_input(self, tmp_path):
        assert main([str(tmp_path / "missing.bib")]) == 1

    def test_bad_config(self, bib_file, tmp_path):
        assert main([str(bib_file), "--config", str(tmp_path / "missing.yaml")]) == 1

    def test_unknown_config_key(self, bib_file, tmp_path):
        cfg = tmp_path / "resolver.yaml"
        cfg.write_text("stage_timout: 5\n", encoding="utf-8")
        assert main([str(bib_file), "--config", str(cfg)]) == 1

    def test_mistyped_config_value(self, bib_file, tmp_path):
        cfg = tmp_path / "resolver.yaml"
        cfg.write_text("max_concurrency: many\n", encoding="utf-8")
        assert main([str(bib_file), "--config", str(cfg)]) == 1

    def test_invalid_max_concurrency(self, bib_file):
        assert main([str(bib_file), "--max-concurrency", "0"]) == 1

    def test_all_complete_writes_bib(self, bib_file, tmp_path, fake_resolve):
        captured = fake_resolve(ResolutionOutcome(draft=RESOLVED))
        out = tmp_path / "out.bib"

        assert main([str(bib_file), "-o", str(out), "--force"]) == 0

        text = out.read_text(encoding="utf-8")
        assert "@inproceedings{vaswani2017attention," in text
        assert "Advances in Neural Information Processing Systems" in text
        assert "Ashish Vaswani and Noam Shazeer" in text
        assert captured["force"] is True
        assert captured["drafts"][0].arxiv == "1706.03762"

    def test_incomplete_returns_two(self, bib_file, tmp_path, fake_resolve):
        draft = PaperDraft(title="Attention Is All You Need", publication="arXiv", key="vaswani2017attention")
        error = SourceError(source="dblp", stage="fuzzy", error=TimeoutError("slow"))
        fake_resolve(ResolutionOutcome(draft=draft, errors=[error]))
        out = tmp_path / "out.jsonl"

        assert main([str(bib_file), "--jsonl", str(out)]) == 2

        record = json.loads(out.read_text(encoding="utf-8").splitlines()[0])
        assert record["key"] == "vaswani2017attention"
        assert record["complete"] is False
        assert record["errors"] == ["[fuzzy/dblp] TimeoutError: slow"]

    def test_stdout(self, bib_file, fake_resolve, capsys):
        fake_resolve(ResolutionOutcome(draft=RESOLVED))
        assert main([str(bib_file)]) == 0
        assert "@inproceedings{vaswani2017attention," in capsys.readouterr().out


class TestEntryPoint:
    def test_exits_with_code(self, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["metadata-scrape", str(tmp_path / "missing.bib")])
        with pytest.raises(SystemExit) as exc_info:
            scrape_cli.main()
        assert exc_info.value.code == 1
