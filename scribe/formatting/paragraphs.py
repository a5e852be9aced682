"""Split long single-speaker passages into paragraphs without rewording them."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import replace

from scribe.transcription.models import Utterance

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"

ParagraphSplitter = Callable[[str], Awaitable[list[str]]]

_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def merge_short_paragraphs(chunks: list[str], min_chars: int = 150) -> list[str]:
    """Merge fragments shorter than *min_chars* into their neighbours.

    Fragments are buffered forward until the buffer reaches *min_chars*; a
    short trailing buffer is appended to the last complete paragraph.
    """
    merged: list[str] = []
    buffer = ""
    for chunk in chunks:
        chunk = chunk.strip()
        if not chunk:
            continue
        buffer = f"{buffer} {chunk}" if buffer else chunk
        if len(buffer) >= min_chars:
            merged.append(buffer)
            buffer = ""

    if buffer:
        if merged:
            merged[-1] = f"{merged[-1]} {buffer}"
        else:
            merged.append(buffer)

    return merged


async def _reflow_one(
    text: str,
    split_paragraphs: ParagraphSplitter,
    min_chars: int,
) -> str | None:
    chunks = await split_paragraphs(text)
    paragraphs = merge_short_paragraphs(chunks, min_chars)
    if not paragraphs:
        return None

    reflowed = PARAGRAPH_SEPARATOR.join(paragraphs)
    if collapse_whitespace(reflowed) != collapse_whitespace(text):
        raise ValueError("paragraphs do not reproduce the original wording")
    return reflowed


async def reflow_paragraphs(
    utterances: list[Utterance],
    split_paragraphs: ParagraphSplitter,
    threshold: int = 1500,
    min_chars: int = 150,
) -> list[Utterance]:
    """Break utterances longer than *threshold* characters into paragraphs.

    Qualifying passages are split concurrently. A passage whose split fails,
    comes back empty, or alters the wording keeps its original text; other
    passages are unaffected.

    Args:
        utterances: Utterances to reflow. Not modified.
        split_paragraphs: Async callable returning the paragraphs of a passage.
        threshold: Character count above which a passage is split.
        min_chars: Minimum paragraph size after merging.

    Returns:
        A new list; reflowed entries are copies with only ``text`` changed.
    """
    long_indices = [i for i, u in enumerate(utterances) if len(u.text) > threshold]
    if not long_indices:
        return list(utterances)

    logger.info("Breaking %d long passage(s) into paragraphs", len(long_indices))
    results = await asyncio.gather(
        *(_reflow_one(utterances[i].text, split_paragraphs, min_chars) for i in long_indices),
        return_exceptions=True,
    )

    updated = list(utterances)
    for idx, result in zip(long_indices, results, strict=True):
        if isinstance(result, BaseException):
            logger.warning("Paragraph breaking failed for passage %d: %s", idx, result)
            continue
        if result is None:
            continue
        updated[idx] = replace(updated[idx], text=result)

    return updated
