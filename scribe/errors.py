"""Exception hierarchy for transcription runs.

Fatal errors (input, acquisition, transcription, duplicate source) propagate
to the CLI unmodified. ``ClassifierError`` is always caught where the optional
classifier is called and converted into a fallback value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scribe.storage.models import TranscriptRecord


class ScribeError(Exception):
    """Base class for all errors raised by this package."""


class InputError(ScribeError):
    """The input reference is missing, unreadable, or unsupported."""


class ConfigurationError(InputError):
    """A required credential or setting is missing."""


class AcquisitionError(ScribeError):
    """Downloading remote audio failed."""


class TranscriptionError(ScribeError):
    """The transcription provider reported an error."""


class SentenceFetchError(TranscriptionError):
    """Sentence boundaries needed for re-segmentation could not be fetched."""


class ClassifierError(ScribeError):
    """The language-model classifier failed or returned an unusable response."""


class DuplicateSourceError(ScribeError):
    """The remote source was already transcribed."""

    def __init__(self, existing: TranscriptRecord) -> None:
        self.existing = existing
        created = existing.created_at.strftime("%Y-%m-%d %H:%M") if existing.created_at else "?"
        super().__init__(
            f"Already transcribed: {existing.title!r} (id {existing.id}, {created}). "
            "Use --force to transcribe again."
        )
