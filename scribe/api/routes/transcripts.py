"""Transcript endpoints: list and detail views of saved transcripts."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from scribe.api.deps import get_store
from scribe.api.models import TranscriptDetail, TranscriptSummary
from scribe.pipeline_config import SourceType
from scribe.storage.models import TranscriptRecord
from scribe.storage.store import TranscriptStore

router = APIRouter()

StoreDep = Annotated[TranscriptStore, Depends(get_store)]


def _summary(r: TranscriptRecord) -> TranscriptSummary:
    return TranscriptSummary(
        id=r.id,
        title=r.title,
        source_type=r.source_type,
        source_url=r.source_url,
        channel=r.channel,
        duration_seconds=r.duration_seconds,
        speakers=r.speaker_names,
        file_path=r.file_path,
        created_at=r.created_at,
    )


@router.get("/api/transcripts", response_model=list[TranscriptSummary])
async def list_transcripts(
    store: StoreDep,
    channel: str | None = None,
    speaker: str | None = None,
    source_type: SourceType | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 20,
) -> list[TranscriptSummary]:
    """List saved transcripts, newest first."""
    records = store.query(
        channel=channel,
        speaker=speaker,
        source_type=source_type.value if source_type else None,
        limit=limit,
    )
    return [_summary(r) for r in records]


@router.get("/api/transcripts/{transcript_id}", response_model=TranscriptDetail)
async def get_transcript(transcript_id: str, store: StoreDep) -> TranscriptDetail:
    """Get a transcript record including its rendered content."""
    r = store.get(transcript_id)
    if r is None:
        raise HTTPException(status_code=404, detail="Transcript not found")

    return TranscriptDetail(
        **_summary(r).model_dump(),
        description=r.description,
        channel_url=r.channel_url,
        content=r.content,
    )
