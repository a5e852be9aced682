"""AssemblyAI transcription adapter.

The SDK handles upload and polling synchronously, so every call is pushed to
a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import assemblyai as aai  # type: ignore[import-untyped]

from scribe.config import settings
from scribe.errors import ConfigurationError, SentenceFetchError, TranscriptionError
from scribe.transcription.models import SentenceUnit, TranscriptResult, Utterance

logger = logging.getLogger(__name__)

# USD per hour of audio, used for the cost estimate in the logs
ASSEMBLYAI_PRICE_PER_HOUR = 0.37


class AssemblyAITranscriber:
    """Transcribe local audio files and fetch sentence boundaries."""

    def __init__(self, api_key: str | None = None, speech_models: list[str] | None = None) -> None:
        api_key = api_key if api_key is not None else settings.assemblyai_api_key
        if not api_key:
            raise ConfigurationError("ASSEMBLYAI_API_KEY is not set")
        aai.settings.api_key = api_key
        self.speech_models = speech_models or list(settings.speech_models)

    async def transcribe(self, audio_path: str, diarize: bool = True) -> TranscriptResult:
        """Upload *audio_path* and wait for the finished transcript."""
        return await asyncio.to_thread(self._transcribe, audio_path, diarize)

    async def get_sentence_units(self, transcript_id: str) -> list[SentenceUnit]:
        """Fetch the sentence-level breakdown of a finished transcript."""
        return await asyncio.to_thread(self._get_sentence_units, transcript_id)

    def _transcribe(self, audio_path: str, diarize: bool) -> TranscriptResult:
        logger.info("Uploading and transcribing %s (diarization %s)", audio_path,
                    "enabled" if diarize else "disabled")
        # speaker_labels=True enables diarization; without it the API returns
        # a flat text block with no utterances.
        config = aai.TranscriptionConfig(
            speech_models=self.speech_models,
            speaker_labels=diarize,
        )
        transcript = aai.Transcriber().transcribe(audio_path, config=config)

        if transcript.status == aai.TranscriptStatus.error:
            raise TranscriptionError(f"Transcription failed: {transcript.error}")

        if transcript.audio_duration:
            cost = transcript.audio_duration / 3600 * ASSEMBLYAI_PRICE_PER_HOUR
            logger.info("Transcribed %ds of audio (~$%.4f)", round(transcript.audio_duration), cost)

        return _to_result(transcript)

    def _get_sentence_units(self, transcript_id: str) -> list[SentenceUnit]:
        try:
            transcript = aai.Transcript.get_by_id(transcript_id)
            sentences = transcript.get_sentences()
        except Exception as exc:
            raise SentenceFetchError(
                f"Could not fetch sentences for transcript {transcript_id}: {exc}"
            ) from exc

        return [
            SentenceUnit(
                speaker=getattr(s, "speaker", None),
                text=s.text,
                start_ms=s.start,
                end_ms=s.end,
            )
            for s in sentences
        ]


def _to_result(transcript: Any) -> TranscriptResult:
    """Convert an SDK transcript into a :class:`TranscriptResult`."""
    utterances = [
        Utterance(speaker=u.speaker, text=u.text, start_ms=u.start, end_ms=u.end)
        for u in (transcript.utterances or [])
        if u.text
    ]
    return TranscriptResult(
        id=transcript.id,
        text=transcript.text or "",
        utterances=utterances,
        duration_seconds=transcript.audio_duration,
    )
