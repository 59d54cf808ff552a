"""
Reasoning extraction from assistant messages.

Vendors return intermediate reasoning either in a dedicated field
(`reasoning` / `reasoning_content`) or inline as a tagged region inside the
content. Dedicated fields win; inline tags are a best-effort fallback.
"""

from __future__ import annotations

from typing import Any, NamedTuple

REASONING_TAGS = ("thinking", "thought")


class TagRegion(NamedTuple):
    start: int  # index of "<"
    end: int  # index just past the closing ">"
    inner: str


class ExtractedReasoning(NamedTuple):
    content: str
    reasoning: str


def find_tag_region(text: str, tags: tuple[str, ...] = REASONING_TAGS) -> TagRegion | None:
    """
    Find the first well-formed <tag>...</tag> region, tag names case-insensitive.

    Opening tags are visited left to right; the first one followed by its own
    closing tag wins. An opening tag without a close is skipped.
    """
    lowered = text.lower()
    pos = 0
    while True:
        # Earliest opening tag from pos, across all tag names
        best: tuple[int, str] | None = None
        for tag in tags:
            idx = lowered.find(f"<{tag}>", pos)
            if idx != -1 and (best is None or idx < best[0]):
                best = (idx, tag)
        if best is None:
            return None

        open_idx, tag = best
        inner_start = open_idx + len(tag) + 2
        close_idx = lowered.find(f"</{tag}>", inner_start)
        if close_idx != -1:
            return TagRegion(
                start=open_idx,
                end=close_idx + len(tag) + 3,
                inner=text[inner_start:close_idx],
            )
        pos = inner_start


def extract_reasoning(message: dict[str, Any]) -> ExtractedReasoning:
    """
    Split an assistant message into visible content and reasoning.

    Returns the untrimmed content with any extracted region removed, and the
    reasoning text. Malformed or unterminated tags leave content untouched.
    """
    content = message.get("content") or ""
    if not isinstance(content, str):
        content = ""

    explicit = message.get("reasoning_content") or message.get("reasoning")
    if explicit:
        return ExtractedReasoning(content=content, reasoning=str(explicit))

    region = find_tag_region(content)
    if region is None:
        return ExtractedReasoning(content=content, reasoning="")

    return ExtractedReasoning(
        content=content[: region.start] + content[region.end :],
        reasoning=region.inner.strip(),
    )
