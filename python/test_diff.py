"""
Tests for suggestline.diff and the CriticMarkup renderer.

Run: python3 -m pytest test_diff.py
From: python/
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from suggestline.config import ReconcileSettings
from suggestline.diff import similarity, word_diff
from suggestline.markup import is_full_rewrite, render_critic_markup
from suggestline.models import DiffKind


def _kinds(tokens):
    return [(t.kind, t.text) for t in tokens]


U, D, I = DiffKind.UNCHANGED, DiffKind.DELETED, DiffKind.INSERTED


# ---------------------------------------------------------------------------
# Edge shapes
# ---------------------------------------------------------------------------

def test_both_empty_returns_nothing():
    assert word_diff("", "") == []
    assert word_diff(None, None) == []


def test_empty_original_is_single_insertion():
    assert _kinds(word_diff("", "**Shipped** v2")) == [(I, "Shipped v2")]


def test_empty_suggestion_is_single_deletion():
    assert _kinds(word_diff("Shipped _v2_", "")) == [(D, "Shipped v2")]
    assert _kinds(word_diff("Shipped v2", None)) == [(D, "Shipped v2")]


def test_identical_text_is_single_unchanged_token():
    for text in ["Led team of 5 engineers", "x", "  padded  "]:
        assert _kinds(word_diff(text, text)) == [(U, text)]


def test_markup_is_ignored_when_comparing():
    tokens = word_diff("**Led** team", "Led team  ")
    assert _kinds(tokens) == [(U, "Led team")]


# ---------------------------------------------------------------------------
# Full rewrite classification
# ---------------------------------------------------------------------------

def test_dissimilar_text_is_full_rewrite():
    tokens = word_diff("Managed a small team", "Architected and delivered a scalable platform")
    assert _kinds(tokens) == [
        (D, "Managed a small team"),
        (I, "Architected and delivered a scalable platform"),
    ]
    assert is_full_rewrite(tokens)


def test_similarity_is_jaccard_of_lowercased_words():
    assert similarity(["Led", "team"], ["led", "TEAM"]) == 1.0
    assert similarity(["a", "b"], ["b", "c"]) == 1 / 3
    assert similarity([], []) == 1.0
    assert similarity(["a"], []) == 0.0


def test_threshold_decides_shape():
    pairs = [
        ("Led team of 5 engineers", "Led team of 5 engineers to ship on time"),
        ("Built APIs for payments", "Built scalable APIs for payments"),
        ("Managed a small team", "Architected and delivered a scalable platform"),
        ("Reduced latency by 30% across services", "Reduced latency by 40% across services"),
        ("Wrote docs", "Wrote internal docs for the platform team"),
    ]
    for original, suggested in pairs:
        score = similarity(original.lower().split(), suggested.lower().split())
        tokens = word_diff(original, suggested)
        if score < 0.6:
            assert is_full_rewrite(tokens), (original, suggested)
        else:
            assert not is_full_rewrite(tokens), (original, suggested)
            assert any(t.kind == U for t in tokens)


def test_appended_words_below_threshold_are_a_rewrite():
    # 5 shared words out of 9 distinct ones: 0.56 < 0.6
    tokens = word_diff("Led team of 5 engineers", "Led team of 5 engineers to ship on time")
    assert is_full_rewrite(tokens)


def test_appended_words_inline_with_lower_threshold():
    settings = ReconcileSettings(rewrite_threshold=0.5)
    tokens = word_diff("Led team of 5 engineers", "Led team of 5 engineers to ship on time", settings)
    assert _kinds(tokens) == [
        (U, "Led"),
        (U, "team"),
        (U, "of"),
        (U, "5"),
        (U, "engineers"),
        (I, "to"),
        (I, "ship"),
        (I, "on"),
        (I, "time"),
    ]


# ---------------------------------------------------------------------------
# Greedy alignment
# ---------------------------------------------------------------------------

def test_trailing_insertions():
    tokens = word_diff("Led team of 5 engineers", "Led team of 5 engineers to ship")
    assert _kinds(tokens)[-2:] == [(I, "to"), (I, "ship")]
    assert all(kind == U for kind, _ in _kinds(tokens)[:5])


def test_lookahead_in_original_marks_deletions():
    tokens = word_diff("Led a team of five engineers", "Led team of five engineers")
    assert _kinds(tokens) == [
        (U, "Led"),
        (D, "a"),
        (U, "team"),
        (U, "of"),
        (U, "five"),
        (U, "engineers"),
    ]


def test_lookahead_in_suggestion_marks_insertions():
    tokens = word_diff("Built APIs for payments", "Built scalable APIs for payments")
    assert _kinds(tokens) == [
        (U, "Built"),
        (I, "scalable"),
        (U, "APIs"),
        (U, "for"),
        (U, "payments"),
    ]


def test_unmatched_word_is_replacement_pair():
    tokens = word_diff("Reduced latency by 30% across services", "Reduced latency by 40% across services")
    assert _kinds(tokens) == [
        (U, "Reduced"),
        (U, "latency"),
        (U, "by"),
        (D, "30%"),
        (I, "40%"),
        (U, "across"),
        (U, "services"),
    ]


def test_word_match_is_case_insensitive_and_keeps_original_casing():
    tokens = word_diff("led Team well", "Led team well")
    assert _kinds(tokens) == [(U, "led"), (U, "Team"), (U, "well")]


def test_trailing_deletions_are_flushed():
    tokens = word_diff("Shipped the billing service on time", "Shipped the billing service")
    assert _kinds(tokens)[-2:] == [(D, "on"), (D, "time")]


# ---------------------------------------------------------------------------
# CriticMarkup rendering
# ---------------------------------------------------------------------------

def test_render_inline_changes():
    tokens = word_diff("Reduced latency by 30% across services", "Reduced latency by 40% across services")
    assert render_critic_markup(tokens) == "Reduced latency by {--30%--}{++40%++} across services"

    tokens = word_diff("Built APIs for payments", "Built scalable APIs for payments")
    assert render_critic_markup(tokens) == "Built {++scalable++} APIs for payments"


def test_render_full_rewrite_as_two_lines():
    tokens = word_diff("Managed a small team", "Architected and delivered a scalable platform")
    assert render_critic_markup(tokens) == (
        "{--Managed a small team--}\n{++Architected and delivered a scalable platform++}"
    )


def test_render_empty():
    assert render_critic_markup([]) == ""


if __name__ == "__main__":
    tests = [value for name, value in sorted(globals().items()) if name.startswith("test_")]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__}: {e}")
            failed += 1

    print(f"\n{'=' * 50}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        sys.exit(1)
    else:
        print("All tests passed!")
