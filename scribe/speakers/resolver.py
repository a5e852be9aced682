"""Speaker identification: sampling, context building, and label rewriting."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scribe.speakers.models import Confidence, SpeakerIdentification, SpeakerMapping

if TYPE_CHECKING:
    from scribe.speakers.classifier import TranscriptClassifier
    from scribe.transcription.models import Utterance

logger = logging.getLogger(__name__)


def sample_utterances(
    utterances: list[Utterance],
    max_total: int = 50,
    head: int = 20,
    middle: int = 15,
    tail: int = 15,
) -> list[Utterance]:
    """Sample from the beginning, middle, and end of a transcript.

    Introductions and sign-offs carry most of the naming evidence, so long
    transcripts are reduced to a head, a centred middle window, and a tail.
    Windows that overlap contribute each utterance once, in original order.
    """
    if len(utterances) <= max_total:
        return list(utterances)

    n = len(utterances)
    mid_start = max(0, (n - middle) // 2)
    indices = set(range(min(head, n)))
    indices.update(range(mid_start, min(mid_start + middle, n)))
    indices.update(range(max(0, n - tail), n))
    return [utterances[i] for i in sorted(indices)]


def build_context(hints: list[tuple[str, str | None]]) -> str:
    """Join labelled optional hints into a deterministic context block.

    >>> build_context([("Title", "Episode 12"), ("Channel", None), ("Speaker notes", "Nick and Sarah")])
    'Title: Episode 12\\nSpeaker notes: Nick and Sarah'
    """
    lines = [f"{label}: {value.strip()}" for label, value in hints if value and value.strip()]
    return "\n".join(lines)


def identity_mapping(labels: list[str]) -> list[SpeakerMapping]:
    return [SpeakerMapping(label=label, name=label, confidence=Confidence.LOW) for label in labels]


async def identify_speakers(
    utterances: list[Utterance],
    classifier: TranscriptClassifier,
    context: str = "",
    max_total: int = 50,
    head: int = 20,
    middle: int = 15,
    tail: int = 15,
) -> SpeakerIdentification:
    """Map every distinct speaker label to a name using the classifier.

    Never raises: any classifier failure yields an identity mapping with
    ``low`` confidence and a reasoning string describing the failure.

    Args:
        utterances: The full utterance list (labels are collected from all of it).
        classifier: Object exposing ``identify(excerpt, context, labels)``.
        context: Free-text hints (title, description, user notes).

    Returns:
        A :class:`SpeakerIdentification` with one entry per distinct label.
    """
    if not utterances:
        return SpeakerIdentification(speakers=[], reasoning="No utterances provided")

    labels = list(dict.fromkeys(u.speaker for u in utterances))
    sampled = sample_utterances(utterances, max_total, head, middle, tail)
    excerpt = "\n".join(f"{u.speaker}: {u.text}" for u in sampled)

    logger.info("Identifying %d speaker(s) from %d sampled utterances", len(labels), len(sampled))
    try:
        result = await classifier.identify(excerpt, context, labels)
    except Exception as exc:
        logger.warning("Speaker identification failed: %s; falling back to original labels", exc)
        return SpeakerIdentification(
            speakers=identity_mapping(labels),
            reasoning=f"Identification failed: {exc}",
        )

    return SpeakerIdentification(
        speakers=_normalise(result.speakers, labels),
        reasoning=result.reasoning,
    )


def _normalise(returned: list[SpeakerMapping], labels: list[str]) -> list[SpeakerMapping]:
    """Ensure exactly one mapping per known label, in label order."""
    by_label: dict[str, SpeakerMapping] = {}
    for mapping in returned:
        if mapping.label not in labels or mapping.label in by_label:
            continue
        # An unidentified speaker keeps its label and is never more than low confidence.
        if not mapping.name or mapping.is_identity:
            mapping = SpeakerMapping(label=mapping.label, name=mapping.label, confidence=Confidence.LOW)
        by_label[mapping.label] = mapping

    missing = [label for label in labels if label not in by_label]
    if missing:
        logger.warning("Classifier returned no name for %s; keeping original labels", ", ".join(missing))

    return [
        by_label.get(label) or SpeakerMapping(label=label, name=label, confidence=Confidence.LOW)
        for label in labels
    ]


def apply_speaker_mapping(
    utterances: list[Utterance],
    mapping: list[SpeakerMapping],
) -> list[Utterance]:
    """Replace provider labels with identified names, in place.

    Labels absent from *mapping* are left untouched. Returns *utterances*
    for convenience.
    """
    names = {m.label: m.name for m in mapping if m.name}
    if not names:
        return utterances

    for utterance in utterances:
        name = names.get(utterance.speaker)
        if name is not None and name != utterance.speaker:
            utterance.speaker = name
    return utterances
