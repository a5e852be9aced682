"""Pipeline orchestration tests with fake transcriber, classifier, and acquirer.

The store is a real SQLite database in a temp directory; nothing touches the
network.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from scribe.acquisition.sources import AcquiredAudio
from scribe.config import Settings
from scribe.errors import DuplicateSourceError, SentenceFetchError, TranscriptionError
from scribe.pipeline import RunState, TranscriptionPipeline
from scribe.pipeline_config import OutputFormat, PipelineConfig, SourceType
from scribe.speakers.models import Confidence, SpeakerIdentification, SpeakerMapping
from scribe.storage.models import TranscriptRecord
from scribe.storage.store import TranscriptStore
from scribe.transcription.models import TranscriptResult, Utterance

URL = "https://youtu.be/weekly-sync"

LONG_TEXT = " ".join(f"Budget item {i} needs another review before Friday." for i in range(6))


def _transcript(id: str = "tx1", long: bool = False) -> TranscriptResult:
    return TranscriptResult(
        id=id,
        text="full text",
        utterances=[
            Utterance(speaker="A", text="Welcome, I'm Nick.", start_ms=0, end_ms=2000),
            Utterance(speaker="B", text=LONG_TEXT if long else "Hi, Sarah here.", start_ms=2000, end_ms=9000),
            Utterance(speaker="A", text="Great, let's start.", start_ms=9000, end_ms=10_000),
        ],
        duration_seconds=10.0,
    )


def _transcriber(result: TranscriptResult | None = None) -> MagicMock:
    transcriber = MagicMock()
    transcriber.transcribe = AsyncMock(return_value=result or _transcript())
    transcriber.get_sentence_units = AsyncMock(return_value=[])
    return transcriber


class FakeAcquirer:
    """Async context manager factory that records which inputs were cleaned up."""

    def __init__(self, audio: AcquiredAudio) -> None:
        self.audio = audio
        self.entered: list[str] = []
        self.cleaned: list[str] = []

    @asynccontextmanager
    async def __call__(self, input_ref: str) -> AsyncIterator[AcquiredAudio]:
        self.entered.append(input_ref)
        try:
            yield self.audio
        finally:
            self.cleaned.append(input_ref)


class FakeClassifier:
    """Names speakers from a fixed table and splits text in half at a space."""

    def __init__(self, names: dict[str, str]) -> None:
        self.names = names
        self.contexts: list[str] = []
        self.split_calls = 0

    async def identify(self, excerpt: str, context: str, labels: list[str]) -> SpeakerIdentification:
        self.contexts.append(context)
        return SpeakerIdentification(
            speakers=[
                SpeakerMapping(label=label, name=self.names.get(label, label), confidence=Confidence.HIGH)
                for label in labels
            ],
            reasoning="Introductions in the first minute.",
        )

    async def split_paragraphs(self, text: str) -> list[str]:
        self.split_calls += 1
        cut = text.index(" ", len(text) // 2)
        return [text[:cut], text[cut + 1 :]]


class RendezvousClassifier(FakeClassifier):
    """identify() only succeeds if paragraph splitting starts while it is waiting."""

    def __init__(self, names: dict[str, str]) -> None:
        super().__init__(names)
        self.split_started = asyncio.Event()

    async def identify(self, excerpt: str, context: str, labels: list[str]) -> SpeakerIdentification:
        await asyncio.wait_for(self.split_started.wait(), timeout=1)
        return await super().identify(excerpt, context, labels)

    async def split_paragraphs(self, text: str) -> list[str]:
        self.split_started.set()
        await asyncio.sleep(0)
        return await super().split_paragraphs(text)


@pytest.fixture
def store(tmp_path: Path) -> Iterator[TranscriptStore]:
    s = TranscriptStore(tmp_path / "data")
    yield s
    s.close()


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        data_dir=str(tmp_path / "data"),
        transcripts_dir=str(tmp_path / "out"),
    )


def _url_audio(tmp_path: Path) -> AcquiredAudio:
    return AcquiredAudio(
        local_path=tmp_path / "audio-1.mp3",
        source_type=SourceType.YOUTUBE,
        source_url=URL,
        title="Weekly Sync",
        description="Our weekly planning call",
        uploader="Team Channel",
        uploader_url="https://youtube.com/@team",
        raw_metadata=json.dumps({"title": "Weekly Sync"}),
    )


def _local_audio(tmp_path: Path) -> AcquiredAudio:
    return AcquiredAudio(
        local_path=tmp_path / "standup.m4a",
        source_type=SourceType.LOCAL,
        title="standup",
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestRun:
    def test_local_run_without_classifier(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        acquirer = FakeAcquirer(_local_audio(tmp_path))
        pipeline = TranscriptionPipeline(store, _transcriber(), acquire=acquirer, app_settings=app_settings)

        result = asyncio.run(pipeline.run(str(tmp_path / "standup.m4a")))

        assert pipeline.state is RunState.DONE
        assert result.output_path == tmp_path / "out" / "standup.md"
        assert [u.speaker for u in result.utterances] == ["A", "B", "A"]
        assert result.identification is None
        assert acquirer.cleaned == [str(tmp_path / "standup.m4a")]

        record = store.get("tx1")
        assert record is not None
        assert record.source_url is None
        assert record.source_type == "local"
        assert record.speaker_names == ["A", "B"]
        assert record.file_path == str(result.output_path.resolve())
        assert record.content == result.output_path.read_text(encoding="utf-8")

    def test_url_run_names_speakers(self, tmp_path: Path, store: TranscriptStore, app_settings: Settings) -> None:
        classifier = FakeClassifier({"A": "Nick", "B": "Sarah"})
        pipeline = TranscriptionPipeline(
            store, _transcriber(), classifier, FakeAcquirer(_url_audio(tmp_path)), app_settings
        )

        result = asyncio.run(pipeline.run(URL, PipelineConfig(speaker_context="Nick hosts")))

        assert [u.speaker for u in result.utterances] == ["Nick", "Sarah", "Nick"]
        content = result.output_path.read_text(encoding="utf-8")
        assert "**Nick**: Welcome, I'm Nick." in content
        assert "Introductions in the first minute." in content

        record = store.get("tx1")
        assert record is not None
        assert record.source_url == URL
        assert record.channel == "Team Channel"
        assert record.speaker_names == ["Nick", "Sarah"]

    def test_context_built_from_source_metadata(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        classifier = FakeClassifier({})
        pipeline = TranscriptionPipeline(
            store, _transcriber(), classifier, FakeAcquirer(_url_audio(tmp_path)), app_settings
        )

        asyncio.run(pipeline.run(URL, PipelineConfig(speaker_context="Nick and Sarah")))

        assert classifier.contexts == [
            "Title: Weekly Sync\n"
            "Channel: Team Channel\n"
            "Description: Our weekly planning call\n"
            "Speaker notes: Nick and Sarah"
        ]

    def test_output_path_and_format_override(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        pipeline = TranscriptionPipeline(
            store, _transcriber(), acquire=FakeAcquirer(_local_audio(tmp_path)), app_settings=app_settings
        )
        config = PipelineConfig(output_format=OutputFormat.JSON, output_path=str(tmp_path / "custom" / "t.json"))

        result = asyncio.run(pipeline.run("standup.m4a", config))

        assert result.output_path == tmp_path / "custom" / "t.json"
        data = json.loads(result.output_path.read_text(encoding="utf-8"))
        assert data["metadata"]["transcript_id"] == "tx1"

    def test_existing_output_file_is_never_overwritten(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        (out_dir / "standup.md").write_text("keep me", encoding="utf-8")
        pipeline = TranscriptionPipeline(
            store, _transcriber(), acquire=FakeAcquirer(_local_audio(tmp_path)), app_settings=app_settings
        )

        result = asyncio.run(pipeline.run("standup.m4a"))

        assert result.output_path.name == "standup (2).md"
        assert (out_dir / "standup.md").read_text(encoding="utf-8") == "keep me"


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


class TestEnrichment:
    def test_identification_and_reflow_run_concurrently(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        classifier = RendezvousClassifier({"A": "Nick", "B": "Sarah"})
        pipeline = TranscriptionPipeline(
            store, _transcriber(_transcript(long=True)), classifier, FakeAcquirer(_url_audio(tmp_path)), app_settings
        )

        result = asyncio.run(pipeline.run(URL, PipelineConfig(paragraph_threshold=100, paragraph_min_chars=10)))

        # Names landed on the reflowed utterance list.
        assert [u.speaker for u in result.utterances] == ["Nick", "Sarah", "Nick"]
        assert "\n\n" in result.utterances[1].text
        assert classifier.split_calls == 1

    def test_no_diarize_skips_identification(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        classifier = FakeClassifier({"A": "Nick"})
        classifier.identify = AsyncMock()  # type: ignore[method-assign]
        pipeline = TranscriptionPipeline(
            store, _transcriber(), classifier, FakeAcquirer(_local_audio(tmp_path)), app_settings
        )

        result = asyncio.run(pipeline.run("standup.m4a", PipelineConfig(diarize=False)))

        classifier.identify.assert_not_called()
        assert result.identification is None
        assert [u.speaker for u in result.utterances] == ["A", "B", "A"]

    def test_diarize_flag_reaches_transcriber(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        transcriber = _transcriber()
        pipeline = TranscriptionPipeline(
            store, transcriber, acquire=FakeAcquirer(_local_audio(tmp_path)), app_settings=app_settings
        )

        asyncio.run(pipeline.run("standup.m4a", PipelineConfig(diarize=False)))

        transcriber.transcribe.assert_awaited_once_with(str(tmp_path / "standup.m4a"), diarize=False)


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


class TestDuplicateSources:
    def _existing(self) -> TranscriptRecord:
        return TranscriptRecord(
            id="tx_old",
            source_url=URL,
            source_type="youtube",
            title="Weekly Sync",
            file_path="/tmp/old.md",
            created_at=datetime.now() - timedelta(days=3),
            content="old",
        )

    def test_already_transcribed_url_aborts_before_work(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        store.upsert(self._existing())
        transcriber = _transcriber()
        acquirer = FakeAcquirer(_url_audio(tmp_path))
        pipeline = TranscriptionPipeline(store, transcriber, acquire=acquirer, app_settings=app_settings)

        with pytest.raises(DuplicateSourceError, match="--force") as excinfo:
            asyncio.run(pipeline.run(URL))

        assert excinfo.value.existing.id == "tx_old"
        assert pipeline.state is RunState.FAILED
        assert acquirer.entered == []
        transcriber.transcribe.assert_not_called()
        assert not (tmp_path / "out").exists()

    def test_force_transcribes_again(self, tmp_path: Path, store: TranscriptStore, app_settings: Settings) -> None:
        store.upsert(self._existing())
        pipeline = TranscriptionPipeline(
            store, _transcriber(), acquire=FakeAcquirer(_url_audio(tmp_path)), app_settings=app_settings
        )

        asyncio.run(pipeline.run(URL, PipelineConfig(force=True)))

        newest = store.find_by_source(URL)
        assert newest is not None
        assert newest.id == "tx1"
        # The old row is kept; only rows with the same provider id are replaced.
        assert store.get("tx_old") is not None

    def test_same_transcript_id_replaces_row(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        pipeline = TranscriptionPipeline(
            store, _transcriber(), acquire=FakeAcquirer(_url_audio(tmp_path)), app_settings=app_settings
        )

        first = asyncio.run(pipeline.run(URL))
        second = asyncio.run(pipeline.run(URL, PipelineConfig(force=True)))

        assert first.output_path.name == "Weekly Sync.md"
        assert second.output_path.name == "Weekly Sync (2).md"
        rows = store.query()
        assert len(rows) == 1
        assert rows[0].file_path == str(second.output_path.resolve())

    def test_local_files_are_not_deduplicated(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        transcriber = _transcriber()
        pipeline = TranscriptionPipeline(
            store, transcriber, acquire=FakeAcquirer(_local_audio(tmp_path)), app_settings=app_settings
        )

        asyncio.run(pipeline.run("standup.m4a"))
        asyncio.run(pipeline.run("standup.m4a"))

        assert transcriber.transcribe.await_count == 2


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_transcription_error_cleans_up(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        transcriber = _transcriber()
        transcriber.transcribe = AsyncMock(side_effect=TranscriptionError("Transcription failed: bad audio"))
        acquirer = FakeAcquirer(_url_audio(tmp_path))
        pipeline = TranscriptionPipeline(store, transcriber, acquire=acquirer, app_settings=app_settings)

        with pytest.raises(TranscriptionError):
            asyncio.run(pipeline.run(URL))

        assert pipeline.state is RunState.FAILED
        assert acquirer.cleaned == [URL]
        assert store.query() == []

    def test_sentence_fetch_failure_is_fatal(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        transcriber = _transcriber(_transcript(long=True))
        transcriber.get_sentence_units = AsyncMock(side_effect=SentenceFetchError("sentences unavailable"))
        acquirer = FakeAcquirer(_url_audio(tmp_path))
        pipeline = TranscriptionPipeline(store, transcriber, acquire=acquirer, app_settings=app_settings)

        with pytest.raises(SentenceFetchError):
            asyncio.run(pipeline.run(URL, PipelineConfig(segment_max_chars=50)))

        assert pipeline.state is RunState.FAILED
        assert acquirer.cleaned == [URL]
        assert not (tmp_path / "out").exists()
        assert store.query() == []

    def test_classifier_failure_is_not_fatal(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        classifier = FakeClassifier({})
        classifier.identify = AsyncMock(side_effect=RuntimeError("overloaded"))  # type: ignore[method-assign]
        pipeline = TranscriptionPipeline(
            store, _transcriber(), classifier, FakeAcquirer(_url_audio(tmp_path)), app_settings
        )

        result = asyncio.run(pipeline.run(URL))

        assert pipeline.state is RunState.DONE
        assert [u.speaker for u in result.utterances] == ["A", "B", "A"]
        assert result.identification is not None
        assert result.identification.reasoning == "Identification failed: overloaded"

    def test_store_failure_removes_written_document(
        self, tmp_path: Path, store: TranscriptStore, app_settings: Settings
    ) -> None:
        store.upsert = MagicMock(side_effect=RuntimeError("disk full"))  # type: ignore[method-assign]
        acquirer = FakeAcquirer(_url_audio(tmp_path))
        pipeline = TranscriptionPipeline(store, _transcriber(), acquire=acquirer, app_settings=app_settings)

        with pytest.raises(RuntimeError, match="disk full"):
            asyncio.run(pipeline.run(URL))

        assert pipeline.state is RunState.FAILED
        assert acquirer.cleaned == [URL]
        assert list((tmp_path / "out").glob("*")) == []
        assert store.query() == []
