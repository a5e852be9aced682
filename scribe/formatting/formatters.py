"""Render processed transcripts as markdown, plain text, or JSON."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from scribe.pipeline_config import OutputFormat
from scribe.transcription.models import Utterance


@dataclass
class DocumentMetadata:
    """Everything a rendered document reports besides the utterances."""

    title: str
    transcript_id: str | None = None
    duration_seconds: float | None = None
    speakers: list[str] = field(default_factory=list)
    speaker_reasoning: str = ""
    source_url: str | None = None
    channel: str | None = None
    created_at: datetime = field(default_factory=datetime.now)


def format_timestamp(ms: int) -> str:
    """Format milliseconds as ``MM:SS`` (minutes are not wrapped into hours)."""
    total_seconds = max(0, ms) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def format_duration(seconds: float) -> str:
    mins = int(seconds // 60)
    secs = round(seconds % 60)
    return f"{mins}m {secs}s"


def _yaml_str(value: str) -> str:
    # JSON strings are valid YAML double-quoted scalars.
    return json.dumps(value, ensure_ascii=False)


def format_markdown(utterances: list[Utterance], text: str, metadata: DocumentMetadata) -> str:
    """Format a transcript as Obsidian-friendly markdown with YAML frontmatter."""
    lines: list[str] = ["---"]
    lines.append(f"date: {metadata.created_at.date().isoformat()}")
    lines.append("type: transcript")
    lines.append(f"title: {_yaml_str(metadata.title)}")
    if metadata.source_url:
        lines.append(f"source: {_yaml_str(metadata.source_url)}")
    if metadata.channel:
        lines.append(f"channel: {_yaml_str(metadata.channel)}")
    if metadata.duration_seconds:
        lines.append(f"duration: {format_duration(metadata.duration_seconds)}")
    if metadata.speakers:
        lines.append("speakers:")
        lines.extend(f"  - {_yaml_str(name)}" for name in metadata.speakers)
    if metadata.transcript_id:
        lines.append(f"assemblyai_id: {metadata.transcript_id}")
    lines.append("---")
    lines.append("")

    lines.append(f"# {metadata.title}")
    lines.append("")

    if metadata.speaker_reasoning:
        lines.append(f"> **Speaker identification**: {metadata.speaker_reasoning}")
        lines.append("")

    lines.append("## Transcript")
    lines.append("")
    if utterances:
        for u in utterances:
            lines.append(f"[{format_timestamp(u.start_ms)}] **{u.speaker}**: {u.text}")
            lines.append("")
    else:
        lines.append(text or "(No transcript text available)")
        lines.append("")

    return "\n".join(lines)


def format_text(utterances: list[Utterance], text: str, metadata: DocumentMetadata) -> str:
    """Format a transcript as plain text, one utterance per block."""
    if utterances:
        return "\n".join(f"[{format_timestamp(u.start_ms)}] {u.speaker}: {u.text}" for u in utterances) + "\n"
    return text or ""


def format_json(utterances: list[Utterance], text: str, metadata: DocumentMetadata) -> str:
    """Format a transcript as a JSON envelope."""
    return json.dumps(
        {
            "title": metadata.title,
            "date": metadata.created_at.isoformat(),
            "metadata": {
                "transcript_id": metadata.transcript_id,
                "duration_seconds": metadata.duration_seconds,
                "source_url": metadata.source_url,
                "channel": metadata.channel,
                "speaker_reasoning": metadata.speaker_reasoning,
            },
            "speakers": metadata.speakers,
            "utterances": [u.to_dict() for u in utterances],
            "text": text or "",
        },
        indent=2,
        ensure_ascii=False,
    )


def render_document(
    output_format: str | OutputFormat,
    utterances: list[Utterance],
    text: str,
    metadata: DocumentMetadata,
) -> str:
    """Dispatch to the formatter for *output_format*.

    Raises:
        ValueError: If *output_format* is not recognized.
    """
    dispatch: dict[OutputFormat, Callable[[list[Utterance], str, DocumentMetadata], str]] = {
        OutputFormat.MARKDOWN: format_markdown,
        OutputFormat.TEXT: format_text,
        OutputFormat.JSON: format_json,
    }
    return dispatch[OutputFormat(output_format)](utterances, text, metadata)


def preview(utterances: list[Utterance], text: str, limit: int = 10) -> str:
    """Short console preview: the first *limit* utterances or 500 characters."""
    lines = ["─── Transcript Preview ───", ""]
    if utterances:
        lines.extend(f"{u.speaker}: {u.text}" for u in utterances[:limit])
        if len(utterances) > limit:
            lines.append(f"\n... and {len(utterances) - limit} more utterances")
    elif text:
        lines.append(text[:500])
        if len(text) > 500:
            lines.append("\n... (truncated)")
    else:
        lines.append("(No transcript content)")
    lines.extend(["", "──────────────────────────"])
    return "\n".join(lines)
