"""Tests for candidate signatures and selection."""

from __future__ import annotations

from metadata_scraper import PaperDraft, match_candidates, select_candidate, signature, similarity
from metadata_scraper.matching import RELAXATION_FACTOR, title_similarity


class TestSignature:
    """Tests for signature construction."""

    def test_title_only(self):
        draft = PaperDraft(title="Attention Is All You Need!", authors="Ashish Vaswani")
        assert signature(draft, with_authors=False) == "attentionisallyouneed"

    def test_author_prefix(self):
        draft = PaperDraft(title="A B", authors="Ashish Vaswani, Noam Shazeer")
        assert signature(draft, with_authors=True) == "ab" + "ashishvasw"

    def test_diacritics_and_escaped_ampersand(self):
        draft = PaperDraft(title="Café &amp; Crème")
        assert signature(draft, with_authors=False) == "cafecreme"


class TestSimilarity:
    def test_identical(self):
        assert similarity("abc", "abc") == 1.0

    def test_both_empty(self):
        assert similarity("", "") == 1.0

    def test_disjoint(self):
        assert similarity("abc", "xyz") == 0.0

    def test_title_similarity_normalizes(self):
        assert title_similarity("Deep Learning.", "deep learning") == 1.0


class TestSelectCandidate:
    """Tests for select_candidate thresholds."""

    def test_no_candidates(self):
        assert select_candidate(PaperDraft(title="A"), [], -1) is None
        assert select_candidate(PaperDraft(title="A"), [], 0.9) is None

    def test_trust_first(self):
        """-1 takes the first candidate regardless of its title."""
        first = PaperDraft(title="Something else")
        second = PaperDraft(title="A")
        assert select_candidate(PaperDraft(title="A"), [first, second], -1) is first

    def test_exact_requires_identical_signature(self):
        draft = PaperDraft(title="Attention Is All You Need", authors="Ashish Vaswani, Noam Shazeer")
        near = PaperDraft(title="Attention Is All You Needs", authors="Ashish Vaswani, Noam Shazeer")
        same = PaperDraft(title="Attention is all you need.", authors="Ashish Vaswani, Illia Polosukhin")
        assert select_candidate(draft, [near], 1) is None
        # Only the first ten signature characters of the authors count
        assert select_candidate(draft, [near, same], 1) is same

    def test_exact_ignores_authors_when_draft_has_none(self):
        draft = PaperDraft(title="Attention Is All You Need")
        candidate = PaperDraft(title="Attention is all you need", authors="Ashish Vaswani")
        assert select_candidate(draft, [candidate], 1) is candidate

    def test_fuzzy_strictly_above_threshold(self):
        draft = PaperDraft(title="abcdefghij")
        candidate = PaperDraft(title="abcdefghiX")
        sim = similarity(signature(candidate, False), signature(draft, False))
        assert select_candidate(draft, [candidate], sim - 0.01) is candidate
        assert select_candidate(draft, [candidate], sim) is None

    def test_fuzzy_returns_first_match_in_order(self):
        draft = PaperDraft(title="Deep Residual Learning for Image Recognition")
        weak = PaperDraft(title="Shallow Networks")
        good1 = PaperDraft(title="Deep Residual Learning for Image Recognition.")
        good2 = PaperDraft(title="Deep residual learning for image recognition")
        assert select_candidate(draft, [weak, good1, good2], 0.95) is good1

    def test_relaxed_threshold_for_same_authors_and_year(self):
        """Same authors and year lower the threshold by the relaxation factor."""
        draft = PaperDraft(title="abcdefghij", authors="Jane Doe", pub_time="2020")
        candidate = PaperDraft(title="abcdeqrstu", authors="Jane Doe", pub_time="2020")
        sim = similarity(signature(candidate, True), signature(draft, True))

        accepted = sim / RELAXATION_FACTOR - 0.005
        rejected = sim / RELAXATION_FACTOR + 0.005
        assert select_candidate(draft, [candidate], accepted) is candidate
        assert select_candidate(draft, [candidate], rejected) is None

    def test_no_relaxation_when_year_differs(self):
        draft = PaperDraft(title="abcdefghij", authors="Jane Doe", pub_time="2020")
        candidate = PaperDraft(title="abcdeqrstu", authors="Jane Doe", pub_time="2021")
        sim = similarity(signature(candidate, True), signature(draft, True))
        assert select_candidate(draft, [candidate], sim / RELAXATION_FACTOR - 0.005) is None

    def test_no_relaxation_without_draft_year(self):
        draft = PaperDraft(title="abcdefghij", authors="Jane Doe")
        candidate = PaperDraft(title="abcdeqrstu", authors="Jane Doe")
        sim = similarity(signature(candidate, True), signature(draft, True))
        assert select_candidate(draft, [candidate], sim / RELAXATION_FACTOR - 0.005) is None


class TestMatchCandidates:
    def test_merges_chosen_candidate(self):
        draft = PaperDraft(title="Deep Residual Learning for Image Recognition")
        candidate = PaperDraft(title="Deep Residual Learning for Image Recognition", publication="CVPR", pub_time="2016")
        result = match_candidates(draft, [candidate], 0.95)
        assert result is draft
        assert draft.publication == "CVPR"

    def test_no_match_leaves_draft(self):
        draft = PaperDraft(title="Deep Residual Learning for Image Recognition")
        match_candidates(draft, [PaperDraft(title="Unrelated", publication="X")], 0.95)
        assert draft.publication == ""
