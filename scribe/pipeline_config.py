"""Per-run configuration: output/source enums and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutputFormat(str, Enum):
    """Rendered document formats."""

    MARKDOWN = "markdown"
    TEXT = "text"
    JSON = "json"

    @property
    def extension(self) -> str:
        return {"markdown": ".md", "text": ".txt", "json": ".json"}[self.value]


class SourceType(str, Enum):
    """Where the transcribed audio came from."""

    YOUTUBE = "youtube"
    URL = "url"
    LOCAL = "local"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable options for a single transcription run.

    ``None`` thresholds fall back to the values in :mod:`scribe.config`.
    """

    output_format: OutputFormat = OutputFormat.MARKDOWN
    diarize: bool = True
    force: bool = False
    speaker_context: str = ""
    output_path: str | None = None
    segment_max_chars: int | None = None
    paragraph_threshold: int | None = None
    paragraph_min_chars: int | None = None
