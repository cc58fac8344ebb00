"""Split a dictated transcript into task titles."""

from __future__ import annotations

import re

from transcript import normalize_transcript

_SPLITTER_RE = re.compile(r"\s*(?:,|;|\band\b|\bthen\b|\bor\b|&)\s*", re.IGNORECASE)
_AND_RE = re.compile(r"\s+and\s+", re.IGNORECASE)
_SPLITTER_TOKEN_RE = re.compile(r",|;|\band\b|\bthen\b|\bor\b|&", re.IGNORECASE)

SIMILARITY_THRESHOLD = 0.6
MIN_TITLE_LENGTH = 2


def _clean_parts(parts: list[str]) -> list[str]:
    return [p.strip() for p in parts if p and p.strip()]


def split_tasks(text: str) -> list[str]:
    if not text or not text.strip():
        return []
    parts = _clean_parts(_SPLITTER_RE.split(text))
    if len(parts) == 1:
        fallback = _clean_parts(_AND_RE.split(text))
        if len(fallback) > 1:
            return fallback
    return parts


def has_explicit_splitter(text: str) -> bool:
    return bool(_SPLITTER_TOKEN_RE.search(text or ""))


def are_similar(a: str, b: str) -> bool:
    """Word-overlap check measured against the shorter title."""
    words_a = a.lower().split()
    words_b = b.lower().split()
    if not words_a or not words_b:
        return False
    known = set(words_a)
    common = sum(1 for word in words_b if word in known)
    return common / min(len(words_a), len(words_b)) >= SIMILARITY_THRESHOLD


def collapse_to_longest(candidates: list[str]) -> list[str]:
    if not candidates:
        return []
    longest = candidates[0]
    for candidate in candidates[1:]:
        if len(candidate) > len(longest):
            longest = candidate
    return [longest]


def dedupe_candidates(candidates: list[str], had_explicit_splitter: bool) -> list[str]:
    """Drop near-duplicate titles.

    Without an explicit splitter in the source text, several candidates are
    treated as recognizer variants of one utterance and reduced to the longest.
    """
    titles = [c.strip() for c in candidates if c and c.strip()]
    if len(titles) > 1 and not had_explicit_splitter:
        titles = collapse_to_longest(titles)

    kept: list[str] = []
    seen: set[str] = set()
    for title in titles:
        if len(title) < MIN_TITLE_LENGTH:
            continue
        similar_at = next((i for i, k in enumerate(kept) if are_similar(k, title)), None)
        if similar_at is not None:
            if len(title) > len(kept[similar_at]):
                kept[similar_at] = title
                seen.add(title.lower())
            continue
        if title.lower() in seen:
            continue
        kept.append(title)
        seen.add(title.lower())

    if len(kept) > 1 and not had_explicit_splitter:
        kept = collapse_to_longest(kept)
    return kept


def extract_task_titles(transcript: str) -> list[str]:
    """Normalize, split and dedupe a transcript into task titles."""
    normalized = normalize_transcript(transcript)
    if not normalized:
        return []
    return dedupe_candidates(split_tasks(normalized), has_explicit_splitter(normalized))
