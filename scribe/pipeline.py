"""End-to-end transcription run: acquire -> transcribe -> segment -> enrich -> format -> persist."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from scribe.acquisition.sources import AcquiredAudio, acquire_audio, is_url
from scribe.config import Settings, settings as default_settings
from scribe.errors import DuplicateSourceError
from scribe.formatting.formatters import DocumentMetadata, render_document
from scribe.formatting.paragraphs import reflow_paragraphs
from scribe.pipeline_config import OutputFormat, PipelineConfig
from scribe.speakers.models import SpeakerIdentification
from scribe.speakers.resolver import apply_speaker_mapping, build_context, identify_speakers
from scribe.storage.models import TranscriptRecord
from scribe.storage.paths import sanitize_filename, write_unique
from scribe.transcription.segmenter import segment_utterances

if TYPE_CHECKING:
    from scribe.speakers.classifier import TranscriptClassifier
    from scribe.storage.store import TranscriptStore
    from scribe.transcription.assemblyai_client import AssemblyAITranscriber
    from scribe.transcription.models import Utterance

logger = logging.getLogger(__name__)

AudioAcquirer = Callable[[str], AbstractAsyncContextManager[AcquiredAudio]]


class RunState(StrEnum):
    """Stages of a single run, in order."""

    RESOLVING_INPUT = "resolving_input"
    TRANSCRIBING = "transcribing"
    SEGMENTING = "segmenting"
    ENRICHING = "enriching"
    FORMATTING = "formatting"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    """What a successful run produced."""

    record: TranscriptRecord
    output_path: Path
    utterances: list[Utterance]
    text: str
    identification: SpeakerIdentification | None = None
    unsplit: list[int] = field(default_factory=list)


class TranscriptionPipeline:
    """Sequences one transcription run and owns its utterance list.

    Collaborators are injected: the metadata store, the transcription
    provider, the optional language-model classifier, and the audio
    acquirer (an async context manager factory that cleans up after itself).
    """

    def __init__(
        self,
        store: TranscriptStore,
        transcriber: AssemblyAITranscriber,
        classifier: TranscriptClassifier | None = None,
        acquire: AudioAcquirer = acquire_audio,
        app_settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.transcriber = transcriber
        self.classifier = classifier
        self.acquire = acquire
        self.settings = app_settings or default_settings
        self.state = RunState.RESOLVING_INPUT

    def _enter(self, state: RunState) -> None:
        self.state = state
        logger.info("Stage: %s", state.value)

    async def run(self, input_ref: str, config: PipelineConfig | None = None) -> RunResult:
        """Transcribe *input_ref* and persist the result.

        Raises:
            DuplicateSourceError: *input_ref* is a URL that was already
                transcribed and ``config.force`` is not set.
            ScribeError: Any fatal input, acquisition, or transcription error.
        """
        config = config or PipelineConfig()
        try:
            result = await self._run(input_ref, config)
        except Exception as exc:
            failed_in = self.state
            self.state = RunState.FAILED
            logger.error("Run failed during %s: %s", failed_in.value, exc)
            raise
        self._enter(RunState.DONE)
        return result

    async def _run(self, input_ref: str, config: PipelineConfig) -> RunResult:
        self._enter(RunState.RESOLVING_INPUT)
        if is_url(input_ref) and not config.force:
            existing = self.store.find_by_source(input_ref)
            if existing is not None:
                raise DuplicateSourceError(existing)

        async with self.acquire(input_ref) as audio:
            self._enter(RunState.TRANSCRIBING)
            transcript = await self.transcriber.transcribe(str(audio.local_path), diarize=config.diarize)
            labels = transcript.speaker_labels
            logger.info(
                "Transcription complete: %d utterance(s), %d speaker(s) %s",
                len(transcript.utterances), len(labels), ", ".join(labels),
            )

            self._enter(RunState.SEGMENTING)
            segmentation = await segment_utterances(
                transcript.utterances,
                transcript.id,
                self.transcriber.get_sentence_units,
                max_chars=config.segment_max_chars or self.settings.segment_max_chars,
            )

            self._enter(RunState.ENRICHING)
            context = build_context(
                [
                    ("Title", audio.title),
                    ("Channel", audio.uploader),
                    ("Description", audio.description),
                    ("Speaker notes", config.speaker_context),
                ]
            )
            utterances, identification = await self._enrich(segmentation.utterances, config, context)

            self._enter(RunState.FORMATTING)
            title = audio.title or audio.local_path.stem
            speakers = list(dict.fromkeys(u.speaker for u in utterances))
            created_at = datetime.now()
            metadata = DocumentMetadata(
                title=title,
                transcript_id=transcript.id,
                duration_seconds=transcript.duration_seconds,
                speakers=speakers,
                speaker_reasoning=identification.reasoning if identification else "",
                source_url=audio.source_url,
                channel=audio.uploader,
                created_at=created_at,
            )
            content = render_document(config.output_format, utterances, transcript.text, metadata)

            self._enter(RunState.PERSISTING)
            output_path = write_unique(self._output_path(title, config), content)
            logger.info("Saved to: %s", output_path)

            record = TranscriptRecord(
                id=transcript.id,
                source_url=audio.source_url,
                source_type=audio.source_type.value,
                title=title,
                description=audio.description,
                channel=audio.uploader,
                channel_url=audio.uploader_url,
                duration_seconds=transcript.duration_seconds,
                speakers=json.dumps(speakers),
                file_path=str(output_path.resolve()),
                created_at=created_at,
                raw_metadata=audio.raw_metadata,
                content=content,
            )
            try:
                self.store.upsert(record)
            except Exception:
                # No document without a matching record.
                output_path.unlink(missing_ok=True)
                raise

        return RunResult(
            record=record,
            output_path=output_path,
            utterances=utterances,
            text=transcript.text,
            identification=identification,
            unsplit=segmentation.unsplit,
        )

    async def _enrich(
        self,
        utterances: list[Utterance],
        config: PipelineConfig,
        context: str,
    ) -> tuple[list[Utterance], SpeakerIdentification | None]:
        """Name speakers and reflow long passages, concurrently when both apply."""
        if self.classifier is None:
            logger.info("Skipping speaker identification and paragraphs (no classifier configured)")
            return utterances, None

        threshold = config.paragraph_threshold or self.settings.paragraph_threshold
        min_chars = config.paragraph_min_chars or self.settings.paragraph_min_chars
        reflow = reflow_paragraphs(utterances, self.classifier.split_paragraphs, threshold, min_chars)

        if not (config.diarize and utterances):
            logger.info("Skipping speaker identification (diarization disabled)")
            return await reflow, None

        identify = identify_speakers(
            utterances,
            self.classifier,
            context,
            max_total=self.settings.speaker_sample_max,
            head=self.settings.speaker_sample_head,
            middle=self.settings.speaker_sample_middle,
            tail=self.settings.speaker_sample_tail,
        )
        identification, reflowed = await asyncio.gather(identify, reflow)

        for s in identification.speakers:
            label = s.label if s.is_identity else f"{s.label} → {s.name}"
            logger.info("   %s (%s confidence)", label, s.confidence.value)

        return apply_speaker_mapping(reflowed, identification.speakers), identification

    def _output_path(self, title: str, config: PipelineConfig) -> Path:
        if config.output_path:
            return Path(config.output_path).expanduser()
        extension = OutputFormat(config.output_format).extension
        return Path(self.settings.transcripts_dir) / f"{sanitize_filename(title)}{extension}"
