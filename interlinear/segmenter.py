"""Text segmentation under a per-request length cap."""

from __future__ import annotations

import re
from typing import List, Sequence

from .structures import TextSegment

MAX_SEGMENT_LENGTH = 4000

LINE_PATTERN = re.compile(r"(\n)")
SENTENCE_PATTERN = re.compile(r".+?(?:[.!?…。！？]\s*|$)", re.DOTALL)


def _consume_pattern(pattern: re.Pattern[str], text: str) -> List[str]:
    """Split text by greedily consuming matches from the start of a string."""

    if not text:
        return []

    fragments: List[str] = []
    index = 0
    length = len(text)
    while index < length:
        match = pattern.match(text, index)
        if not match:
            fragments.append(text[index:])
            break
        end = match.end()
        if end == index:
            # Avoid zero-length loops by consuming at least one character.
            end += 1
        fragments.append(text[index:end])
        index = end
    return fragments


def _split_fixed(text: str, budget: int) -> List[str]:
    """Hard-split text into budget-sized chunks with no semantic awareness."""

    return [text[start:start + budget] for start in range(0, len(text), budget)]


def _split_fragments(text: str) -> List[str]:
    """Break text into newline and sentence fragments without losing characters."""

    fragments: List[str] = []
    for line in LINE_PATTERN.split(text):
        if not line:
            continue
        if line == "\n":
            fragments.append(line)
            continue
        fragments.extend(_consume_pattern(SENTENCE_PATTERN, line))
    return fragments


def _pack_segments(fragments: Sequence[str], budget: int) -> List[str]:
    """Greedily pack fragments into budget-sized segments."""

    packed: List[str] = []
    current = ""
    for fragment in fragments:
        if not fragment:
            continue
        if len(current) + len(fragment) > budget:
            if current:
                packed.append(current)
            current = fragment
        else:
            current += fragment
    if current:
        packed.append(current)
    return packed


def segment_text(text: str, max_length: int = MAX_SEGMENT_LENGTH) -> List[str]:
    """Segment text into line/sentence-aligned chunks of at most ``max_length``.

    Concatenating the result reproduces ``text`` exactly.
    """

    if max_length < 1:
        raise ValueError("max_length must be at least 1")
    if len(text) <= max_length:
        return [text]

    safe_fragments: List[str] = []
    for fragment in _split_fragments(text):
        if len(fragment) > max_length:
            safe_fragments.extend(_split_fixed(fragment, max_length))
        else:
            safe_fragments.append(fragment)

    segments = _pack_segments(safe_fragments, max_length)
    return segments or [text]


class Segmenter:
    """Turns a text unit into ordered translation segments."""

    def __init__(self, max_length: int = MAX_SEGMENT_LENGTH) -> None:
        if max_length < 1:
            raise ValueError("max_length must be at least 1")
        self.max_length = max_length

    def segment(self, text: str) -> List[TextSegment]:
        return [
            TextSegment(text=content, order=idx)
            for idx, content in enumerate(segment_text(text, self.max_length))
        ]
