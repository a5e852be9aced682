"""Pydantic response schemas for the transcripts API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TranscriptSummary(BaseModel):
    """Summary representation of a transcript for list views."""

    id: str
    title: str
    source_type: str
    source_url: str | None = None
    channel: str | None = None
    duration_seconds: float | None = None
    speakers: list[str] = []
    file_path: str
    created_at: datetime


class TranscriptDetail(TranscriptSummary):
    """Full transcript record including the rendered document."""

    description: str | None = None
    channel_url: str | None = None
    content: str
