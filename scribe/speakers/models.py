"""Data models for speaker identification results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Confidence(StrEnum):
    """How sure the classifier is about a name."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class SpeakerMapping:
    """Maps an anonymous provider label (e.g. ``"A"``) to a person's name."""

    label: str
    name: str
    confidence: Confidence = Confidence.LOW

    @property
    def is_identity(self) -> bool:
        return self.name == self.label


@dataclass
class SpeakerIdentification:
    """Full label → name mapping for a transcript, with the model's rationale."""

    speakers: list[SpeakerMapping] = field(default_factory=list)
    reasoning: str = ""

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.speakers]
