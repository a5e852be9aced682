"""Data models for transcripts returned by the transcription provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Utterance:
    """One speaker-attributed, timestamped span of speech (times in ms)."""

    speaker: str
    text: str
    start_ms: int
    end_ms: int

    def to_dict(self) -> dict[str, Any]:
        """Serialise using the field names saved transcripts expose."""
        return {
            "speaker": self.speaker,
            "text": self.text,
            "start": self.start_ms,
            "end": self.end_ms,
        }


@dataclass(frozen=True)
class SentenceUnit:
    """A single sentence with provider timestamps, used to re-chunk utterances."""

    speaker: str | None
    text: str
    start_ms: int
    end_ms: int


@dataclass
class TranscriptResult:
    """Normalised output of a completed transcription job."""

    id: str
    text: str
    utterances: list[Utterance] = field(default_factory=list)
    duration_seconds: float | None = None

    @property
    def speaker_labels(self) -> list[str]:
        """Distinct speaker labels in order of first appearance."""
        return list(dict.fromkeys(u.speaker for u in self.utterances))
