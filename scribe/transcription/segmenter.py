"""Re-segmentation of oversized utterances using sentence boundaries."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from scribe.transcription.models import SentenceUnit, Utterance

logger = logging.getLogger(__name__)

SentenceFetcher = Callable[[str], Awaitable[list[SentenceUnit]]]

# Matched sentences shorter than this share of the utterance text get a warning
MIN_MATCHED_RATIO = 0.9


@dataclass
class SegmentationResult:
    """Segmented utterances plus the input indices that could not be split."""

    utterances: list[Utterance]
    unsplit: list[int] = field(default_factory=list)


def group_sentences(
    sentences: list[SentenceUnit],
    speaker: str,
    max_chars: int = 4000,
) -> list[Utterance]:
    """Greedily pack consecutive sentences into chunks of at most *max_chars*.

    Sentences accumulate until appending the next one would exceed the limit,
    at which point the chunk is flushed. A single sentence longer than the
    limit becomes a chunk of its own. Each chunk takes the start time of its
    first sentence and the end time of its last.

    Args:
        sentences: Sentences in transcript order.
        speaker: Label assigned to every produced chunk.
        max_chars: Maximum chunk length in characters.

    Returns:
        List of :class:`Utterance` chunks.
    """
    chunks: list[Utterance] = []
    current: list[SentenceUnit] = []
    length = 0

    for sentence in sentences:
        added = len(sentence.text) + (1 if current else 0)
        if current and length + added > max_chars:
            chunks.append(_flush(current, speaker))
            current, length = [], 0
            added = len(sentence.text)
        current.append(sentence)
        length += added

    if current:
        chunks.append(_flush(current, speaker))

    return chunks


def _flush(sentences: list[SentenceUnit], speaker: str) -> Utterance:
    return Utterance(
        speaker=speaker,
        text=" ".join(s.text for s in sentences),
        start_ms=sentences[0].start_ms,
        end_ms=sentences[-1].end_ms,
    )


def _sentences_within(sentences: list[SentenceUnit], utterance: Utterance) -> list[SentenceUnit]:
    # Sentences straddling the utterance boundary are excluded.
    return [
        s for s in sentences
        if s.start_ms >= utterance.start_ms and s.end_ms <= utterance.end_ms
    ]


async def segment_utterances(
    utterances: list[Utterance],
    transcript_id: str,
    fetch_sentences: SentenceFetcher,
    max_chars: int = 4000,
) -> SegmentationResult:
    """Split utterances longer than *max_chars* along sentence boundaries.

    Sentences are fetched once for the whole transcript, and only when at
    least one utterance is over the limit. Single-speaker transcripts are
    regrouped from scratch; multi-speaker transcripts only have their
    oversized utterances replaced in place. Any chunk still over the limit
    (a single sentence longer than *max_chars*) is logged and the index of
    the input utterance it came from is reported in ``unsplit``.

    Raises:
        SentenceFetchError: If the sentence breakdown cannot be fetched.
    """
    oversized = [i for i, u in enumerate(utterances) if len(u.text) > max_chars]
    if not oversized:
        return SegmentationResult(utterances=utterances)

    logger.info(
        "Re-segmenting %d utterance(s) longer than %d chars", len(oversized), max_chars
    )
    sentences = await fetch_sentences(transcript_id)

    labels = {u.speaker for u in utterances}
    if len(labels) == 1:
        if not sentences:
            logger.warning("No sentence data for transcript %s; leaving utterances as-is", transcript_id)
            return SegmentationResult(utterances=utterances, unsplit=oversized)
        speaker = utterances[0].speaker
        chunks = group_sentences(sentences, speaker, max_chars)
        logger.info("Regrouped single-speaker transcript into %d chunk(s)", len(chunks))
        unsplit = sorted(
            {i for chunk in _over_limit(chunks, max_chars) for i in _overlapping(utterances, chunk)}
        )
        return SegmentationResult(utterances=chunks, unsplit=unsplit)

    result: list[Utterance] = []
    unsplit = []
    for i, utterance in enumerate(utterances):
        if len(utterance.text) <= max_chars:
            result.append(utterance)
            continue

        matching = _sentences_within(sentences, utterance)
        if not matching:
            # Never drop content when timestamps don't line up.
            logger.warning(
                "No sentences matched utterance %d (%d-%d ms, %d chars); keeping it unsplit",
                i, utterance.start_ms, utterance.end_ms, len(utterance.text),
            )
            result.append(utterance)
            unsplit.append(i)
            continue

        matched_chars = len(" ".join(s.text for s in matching))
        if matched_chars < len(utterance.text) * MIN_MATCHED_RATIO:
            logger.warning(
                "Sentences matched for utterance %d cover %d of %d chars; "
                "boundary-straddling sentences were dropped",
                i, matched_chars, len(utterance.text),
            )

        chunks = group_sentences(matching, utterance.speaker, max_chars)
        if _over_limit(chunks, max_chars):
            unsplit.append(i)
        result.extend(chunks)

    return SegmentationResult(utterances=result, unsplit=unsplit)


def _over_limit(chunks: list[Utterance], max_chars: int) -> list[Utterance]:
    """Chunks that are a single sentence longer than *max_chars*."""
    over = [c for c in chunks if len(c.text) > max_chars]
    for c in over:
        logger.warning(
            "Sentence at %d-%d ms is %d chars, over the %d-char limit; leaving it whole",
            c.start_ms, c.end_ms, len(c.text), max_chars,
        )
    return over


def _overlapping(utterances: list[Utterance], chunk: Utterance) -> list[int]:
    return [
        i for i, u in enumerate(utterances)
        if u.start_ms < chunk.end_ms and u.end_ms > chunk.start_ms
    ]
