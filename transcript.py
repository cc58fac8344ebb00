"""Transcript extraction, normalization and merging.

Recognizers disagree on payload layout, resend cumulative text and echo
partial results. Everything here is a pure function so the controller can run
each stage per event without holding extra state.
"""

from __future__ import annotations

import random
import re
from typing import Any, Optional, Sequence

from models import (
    Alternative,
    AlternativesList,
    DirectTranscript,
    Payload,
    PlainText,
    PlainValue,
    ResultSegment,
    ResultSegments,
)

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.;?!])")
_PHRASE_WINDOWS = (3, 2)


# ------------------------------------------------------------------
# Alternative selection
# ------------------------------------------------------------------


def select_alternative(
    alternatives: Sequence[Alternative],
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """Pick one alternative's text.

    The highest confidence wins when any alternative carries one; ties and the
    no-confidence case are broken uniformly at random.
    """
    if not alternatives:
        return None
    chooser = rng or random
    scored = [alt for alt in alternatives if alt.confidence is not None]
    if scored:
        best = max(alt.confidence for alt in scored)
        tied = [alt for alt in scored if alt.confidence == best]
        return chooser.choice(tied).text
    return chooser.choice(list(alternatives)).text


# ------------------------------------------------------------------
# Payload parsing
# ------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_alternatives(raw: Any) -> list[Alternative]:
    if not isinstance(raw, list):
        return []
    alternatives: list[Alternative] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        text = item.get("transcript")
        if not isinstance(text, str):
            text = item.get("text")
        if not isinstance(text, str):
            continue
        confidence = item.get("confidence")
        alternatives.append(
            Alternative(text=text, confidence=float(confidence) if _is_number(confidence) else None)
        )
    return alternatives


def _parse_segment(raw: Any) -> Optional[ResultSegment]:
    if not isinstance(raw, dict):
        return None
    transcript = raw.get("transcript")
    text = raw.get("text")
    return ResultSegment(
        alternatives=_parse_alternatives(raw.get("alternatives")),
        transcript=transcript if isinstance(transcript, str) else None,
        text=text if isinstance(text, str) else None,
    )


def parse_payload(raw: Any) -> list[Payload]:
    """Return the payload variants present in ``raw``, in extraction order."""
    if not isinstance(raw, dict):
        return []
    variants: list[Payload] = []
    if isinstance(raw.get("transcript"), str):
        variants.append(DirectTranscript(raw["transcript"]))
    alternatives = _parse_alternatives(raw.get("alternatives"))
    if alternatives:
        variants.append(AlternativesList(alternatives))
    if isinstance(raw.get("results"), list):
        segments = [s for s in (_parse_segment(r) for r in raw["results"]) if s is not None]
        if segments:
            variants.append(ResultSegments(segments))
    if isinstance(raw.get("text"), str):
        variants.append(PlainText(raw["text"]))
    if isinstance(raw.get("value"), str):
        variants.append(PlainValue(raw["value"]))
    return variants


def _resolve_segment(segment: ResultSegment, rng: Optional[random.Random]) -> str:
    if segment.alternatives:
        chosen = (select_alternative(segment.alternatives, rng) or "").strip()
        if chosen:
            return chosen
    if segment.transcript and segment.transcript.strip():
        return segment.transcript.strip()
    if segment.text and segment.text.strip():
        return segment.text.strip()
    return ""


def _resolve(variant: Payload, rng: Optional[random.Random]) -> str:
    if isinstance(variant, AlternativesList):
        return (select_alternative(variant.alternatives, rng) or "").strip()
    if isinstance(variant, ResultSegments):
        parts = [_resolve_segment(s, rng) for s in variant.segments]
        return " ".join(p for p in parts if p).strip()
    if isinstance(variant, (DirectTranscript, PlainText, PlainValue)):
        return variant.text.strip()
    raise TypeError(f"unknown payload variant: {variant!r}")


def extract_transcript(raw: Any, rng: Optional[random.Random] = None) -> Optional[str]:
    """Pull one trimmed, non-empty string out of a recognition payload."""
    for variant in parse_payload(raw):
        text = _resolve(variant, rng)
        if text:
            return text
    return None


# ------------------------------------------------------------------
# Normalization
# ------------------------------------------------------------------


def _drop_adjacent_duplicates(tokens: list[str]) -> list[str]:
    kept: list[str] = []
    for token in tokens:
        if kept and kept[-1].lower() == token.lower():
            continue
        kept.append(token)
    return kept


def _collapse_repeated_phrases(tokens: list[str]) -> list[str]:
    lowered = [t.lower() for t in tokens]
    cleaned: list[str] = []
    i = 0
    while i < len(tokens):
        for n in _PHRASE_WINDOWS:
            if i + 2 * n <= len(tokens) and lowered[i : i + n] == lowered[i + n : i + 2 * n]:
                cleaned.extend(tokens[i : i + n])
                i += 2 * n
                break
        else:
            cleaned.append(tokens[i])
            i += 1
    return cleaned


def _normalize_once(text: str) -> str:
    collapsed = _WHITESPACE_RE.sub(" ", text.strip())
    if not collapsed:
        return ""
    tokens = _drop_adjacent_duplicates(collapsed.split(" "))
    tokens = _collapse_repeated_phrases(tokens)
    tokens = _drop_adjacent_duplicates(tokens)
    return _SPACE_BEFORE_PUNCT_RE.sub(r"\1", " ".join(tokens))


def normalize_transcript(text: str) -> str:
    """Clean whitespace and collapse words or phrases echoed by partial results."""
    if not text:
        return ""
    current = _normalize_once(text)
    # Every pass that changes the text makes it shorter, so this terminates.
    while True:
        following = _normalize_once(current)
        if following == current:
            return current
        current = following


# ------------------------------------------------------------------
# Incremental merge
# ------------------------------------------------------------------


def fold_transcript(previous_final: str, new_chunk: str) -> str:
    """Combine the running final transcript with a newly recognized chunk."""
    if not previous_final:
        return new_chunk
    if new_chunk.startswith(previous_final):
        return new_chunk
    if previous_final.endswith(new_chunk):
        return previous_final
    return f"{previous_final} {new_chunk}"
