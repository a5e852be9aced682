"""SQLModel table for transcript metadata."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class TranscriptRecord(SQLModel, table=True):
    __tablename__ = "transcripts"

    id: str = Field(primary_key=True)  # transcription provider id
    source_url: Optional[str] = Field(default=None, index=True)
    source_type: str = Field(index=True)  # youtube|url|local
    title: str
    description: Optional[str] = None
    channel: Optional[str] = Field(default=None, index=True)
    channel_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    speakers: Optional[str] = None  # JSON list of names
    file_path: str
    created_at: datetime = Field(default_factory=datetime.now, index=True)
    raw_metadata: Optional[str] = None  # JSON blob from the downloader
    content: str = ""

    @property
    def speaker_names(self) -> list[str]:
        return json.loads(self.speakers) if self.speakers else []
