from __future__ import annotations

import pytest

from task_parser import (
    are_similar,
    collapse_to_longest,
    dedupe_candidates,
    extract_task_titles,
    has_explicit_splitter,
    split_tasks,
)


# ---------------------------------------------------------------
# split_tasks
# ---------------------------------------------------------------

def test_split_on_comma_and_word() -> None:
    assert split_tasks("buy milk, call mom and walk the dog") == [
        "buy milk",
        "call mom",
        "walk the dog",
    ]


def test_split_without_delimiters_keeps_single_title() -> None:
    assert split_tasks("i need to buy milk") == ["i need to buy milk"]


def test_split_on_every_delimiter_kind() -> None:
    assert split_tasks("feed the cat then water plants; email Bob & call Alice or nap") == [
        "feed the cat",
        "water plants",
        "email Bob",
        "call Alice",
        "nap",
    ]


def test_split_is_case_insensitive() -> None:
    assert split_tasks("buy milk AND eggs") == ["buy milk", "eggs"]


@pytest.mark.parametrize("text", ["call Andrew", "order pizza", "brand new shoes", "other things"])
def test_split_ignores_delimiter_words_inside_words(text: str) -> None:
    assert split_tasks(text) == [text]


def test_split_drops_empty_parts() -> None:
    assert split_tasks(", buy milk ,, ;") == ["buy milk"]


def test_split_empty_text() -> None:
    assert split_tasks("") == []
    assert split_tasks("   ") == []


# ---------------------------------------------------------------
# has_explicit_splitter / are_similar
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("buy milk", False),
        ("buy milk, eggs", True),
        ("buy milk then eggs", True),
        ("milk & eggs", True),
        ("brand new android", False),
        ("", False),
    ],
)
def test_has_explicit_splitter(text: str, expected: bool) -> None:
    assert has_explicit_splitter(text) is expected


def test_similar_titles_share_most_words() -> None:
    assert are_similar("buy some milk", "buy some milk today") is True
    assert are_similar("Buy Milk", "buy milk") is True


def test_dissimilar_titles() -> None:
    assert are_similar("buy milk", "call mom") is False
    assert are_similar("buy milk", "walk the dog") is False


def test_similarity_needs_words() -> None:
    assert are_similar("", "buy milk") is False


# ---------------------------------------------------------------
# dedupe_candidates
# ---------------------------------------------------------------

def test_collapse_to_longest_keeps_first_on_tie() -> None:
    assert collapse_to_longest(["abc d", "abd c"]) == ["abc d"]
    assert collapse_to_longest([]) == []


def test_variants_without_splitter_collapse_to_longest() -> None:
    assert dedupe_candidates(["buy some milk", "buy some milk today"], False) == [
        "buy some milk today"
    ]


def test_distinct_tasks_with_splitter_survive() -> None:
    titles = ["buy milk", "call mom", "walk the dog"]
    assert dedupe_candidates(titles, True) == titles


def test_case_insensitive_duplicates_collapse() -> None:
    assert dedupe_candidates(["buy milk", "Buy Milk"], True) == ["buy milk"]


def test_longer_similar_title_replaces_shorter_in_place() -> None:
    assert dedupe_candidates(["buy milk", "call mom", "buy milk now"], True) == [
        "buy milk now",
        "call mom",
    ]


def test_shorter_similar_title_is_dropped() -> None:
    assert dedupe_candidates(["buy milk now", "buy milk"], True) == ["buy milk now"]


def test_tiny_titles_are_discarded() -> None:
    assert dedupe_candidates(["a", "call mom", " "], True) == ["call mom"]


def test_single_candidate_without_splitter_is_kept() -> None:
    assert dedupe_candidates(["i need to buy milk"], False) == ["i need to buy milk"]


# ---------------------------------------------------------------
# extract_task_titles
# ---------------------------------------------------------------

def test_extract_titles_from_delimited_transcript() -> None:
    assert extract_task_titles("buy milk, call mom and walk the dog") == [
        "buy milk",
        "call mom",
        "walk the dog",
    ]


def test_echoed_variants_reduce_to_longest() -> None:
    assert extract_task_titles("buy some milk buy some milk today") == ["buy some milk today"]


def test_repeated_task_with_splitter_kept_once() -> None:
    assert extract_task_titles("milk and milk") == ["milk"]


def test_extract_titles_nothing_actionable() -> None:
    assert extract_task_titles("a, b") == []
    assert extract_task_titles("   ") == []
