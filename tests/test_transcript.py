"""Tests for transcript extraction, normalization and merging."""

from __future__ import annotations

import random
from collections import Counter

import pytest

from models import Alternative, DirectTranscript, PlainText, PlainValue
from transcript import (
    extract_transcript,
    fold_transcript,
    normalize_transcript,
    parse_payload,
    select_alternative,
)


# ---------------------------------------------------------------
# select_alternative
# ---------------------------------------------------------------

def test_select_alternative_empty_returns_none() -> None:
    assert select_alternative([]) is None


def test_highest_confidence_always_wins() -> None:
    alternatives = [Alternative("a", 0.2), Alternative("b", 0.9)]
    for seed in range(50):
        assert select_alternative(alternatives, random.Random(seed)) == "b"


def test_confidence_beats_missing_confidence() -> None:
    alternatives = [Alternative("a"), Alternative("b", 0.1), Alternative("c")]
    for seed in range(20):
        assert select_alternative(alternatives, random.Random(seed)) == "b"


def test_confidence_ties_pick_among_tied_only() -> None:
    alternatives = [Alternative("a", 0.9), Alternative("b", 0.9), Alternative("c", 0.1)]
    rng = random.Random(7)
    picks = {select_alternative(alternatives, rng) for _ in range(200)}
    assert picks == {"a", "b"}


def test_seeded_tie_break_is_deterministic() -> None:
    alternatives = [Alternative("a", 0.5), Alternative("b", 0.5)]
    first = [select_alternative(alternatives, random.Random(42)) for _ in range(5)]
    second = [select_alternative(alternatives, random.Random(42)) for _ in range(5)]
    assert first == second


def test_no_confidence_selection_is_roughly_uniform() -> None:
    alternatives = [Alternative("a"), Alternative("b"), Alternative("c")]
    rng = random.Random(1234)
    counts = Counter(select_alternative(alternatives, rng) for _ in range(3000))
    assert set(counts) == {"a", "b", "c"}
    for value in counts.values():
        assert 800 < value < 1200


# ---------------------------------------------------------------
# parse_payload / extract_transcript
# ---------------------------------------------------------------

def test_parse_payload_orders_variants() -> None:
    variants = parse_payload({"value": "v", "text": "t", "transcript": "d"})
    assert [type(v) for v in variants] == [DirectTranscript, PlainText, PlainValue]


def test_parse_payload_rejects_non_dict() -> None:
    assert parse_payload(None) == []
    assert parse_payload(["transcript"]) == []


def test_direct_transcript_is_trimmed() -> None:
    assert extract_transcript({"transcript": "  buy milk "}) == "buy milk"


def test_direct_transcript_wins_over_alternatives() -> None:
    payload = {
        "transcript": "first",
        "alternatives": [{"transcript": "second", "confidence": 1.0}],
    }
    assert extract_transcript(payload) == "first"


def test_blank_transcript_falls_through() -> None:
    assert extract_transcript({"transcript": "   ", "text": "call mom"}) == "call mom"


def test_top_level_alternatives_use_confidence() -> None:
    payload = {
        "alternatives": [
            {"transcript": "by milk", "confidence": 0.2},
            {"transcript": " buy milk ", "confidence": 0.9},
        ]
    }
    assert extract_transcript(payload) == "buy milk"


def test_alternative_text_key_is_accepted() -> None:
    assert extract_transcript({"alternatives": [{"text": "hello"}]}) == "hello"


def test_result_segments_are_joined_in_order() -> None:
    payload = {
        "results": [
            {"alternatives": [{"transcript": "buy milk", "confidence": 0.8}]},
            {"transcript": " call mom "},
            {"text": "walk the dog"},
        ]
    }
    assert extract_transcript(payload) == "buy milk call mom walk the dog"


def test_result_segment_without_usable_alternative_uses_transcript() -> None:
    payload = {"results": [{"alternatives": [{"transcript": "  "}], "transcript": "feed cat"}]}
    assert extract_transcript(payload) == "feed cat"


def test_empty_segments_fall_back_to_text() -> None:
    payload = {"results": [{"transcript": " "}, "junk"], "text": "fallback"}
    assert extract_transcript(payload) == "fallback"


def test_value_field_is_last_resort() -> None:
    assert extract_transcript({"value": " x y "}) == "x y"


@pytest.mark.parametrize("payload", [{}, None, {"transcript": 5}, {"results": []}, {"text": "  "}])
def test_unusable_payload_returns_none(payload: object) -> None:
    assert extract_transcript(payload) is None


# ---------------------------------------------------------------
# normalize_transcript
# ---------------------------------------------------------------

def test_normalize_removes_repeated_tokens() -> None:
    assert normalize_transcript("to to to the store") == "to the store"


def test_normalize_is_case_insensitive() -> None:
    assert normalize_transcript("To to the Store store") == "To the Store"


def test_normalize_collapses_repeated_bigram() -> None:
    assert normalize_transcript("buy milk buy milk") == "buy milk"


def test_normalize_collapses_repeated_trigram() -> None:
    assert (
        normalize_transcript("call mom and and walk the dog walk the dog")
        == "call mom and walk the dog"
    )


def test_normalize_whitespace_and_punctuation() -> None:
    assert normalize_transcript("  buy   milk ,\n call mom . ") == "buy milk, call mom."


def test_normalize_runs_until_stable() -> None:
    assert normalize_transcript("a b a b a b") == "a b"


def test_normalize_empty() -> None:
    assert normalize_transcript("") == ""
    assert normalize_transcript("   ") == ""


@pytest.mark.parametrize(
    "text",
    [
        "to to to the store",
        "buy milk buy milk",
        "a b a b a b",
        "buy , buy , milk",
        "Walk the dog ; walk the dog ;",
        "one two three one two three four four",
        "x x y y x y x y",
    ],
)
def test_normalize_is_idempotent(text: str) -> None:
    once = normalize_transcript(text)
    assert normalize_transcript(once) == once


def test_normalize_output_has_no_adjacent_duplicates() -> None:
    result = normalize_transcript("buy , buy , milk milk Milk eggs eggs")
    tokens = [t.lower() for t in result.split()]
    assert all(a != b for a, b in zip(tokens, tokens[1:]))


# ---------------------------------------------------------------
# fold_transcript
# ---------------------------------------------------------------

def test_fold_into_empty() -> None:
    assert fold_transcript("", "buy milk") == "buy milk"


def test_fold_cumulative_growth_replaces() -> None:
    assert fold_transcript("buy", "buy milk") == "buy milk"


def test_fold_suffix_is_noop() -> None:
    assert fold_transcript("buy milk", "milk") == "buy milk"


def test_fold_appends_new_material() -> None:
    assert fold_transcript("buy milk", "call mom") == "buy milk call mom"


def test_fold_prefix_check_is_case_sensitive() -> None:
    assert fold_transcript("Buy", "buy milk") == "Buy buy milk"
