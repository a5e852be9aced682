"""Command-line entry point: ``scribe transcribe``, ``scribe list``, and ``scribe serve``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn

from scribe.api.main import app
from scribe.config import settings
from scribe.errors import (
    AcquisitionError,
    ConfigurationError,
    InputError,
    ScribeError,
)
from scribe.formatting.formatters import format_duration, preview
from scribe.pipeline import TranscriptionPipeline
from scribe.pipeline_config import OutputFormat, PipelineConfig, SourceType
from scribe.speakers.classifier import create_classifier
from scribe.storage.store import TranscriptStore
from scribe.transcription.assemblyai_client import AssemblyAITranscriber


def _hint(exc: Exception) -> str | None:
    """Suggest a fix for common failures."""
    if isinstance(exc, ConfigurationError):
        return "Check your API keys in the .env file"
    if isinstance(exc, AcquisitionError):
        return "Check that the URL is reachable and that ffmpeg is installed"
    if isinstance(exc, InputError) and "File not found" in str(exc):
        return "Check that the audio file path is correct"
    return None


def handle_transcribe(args: argparse.Namespace) -> int:
    store = TranscriptStore(settings.data_dir)
    try:
        pipeline = TranscriptionPipeline(
            store=store,
            transcriber=AssemblyAITranscriber(),
            classifier=create_classifier(),
        )
        config = PipelineConfig(
            output_format=OutputFormat(args.format),
            diarize=not args.no_diarize,
            force=args.force,
            speaker_context=args.speakers or "",
            output_path=args.output,
        )
        result = asyncio.run(pipeline.run(args.input, config))
    finally:
        store.close()

    print(preview(result.utterances, result.text))
    print(f"\nSaved to: {result.output_path}")
    return 0


def handle_list(args: argparse.Namespace) -> int:
    store = TranscriptStore(settings.data_dir)
    try:
        records = store.query(
            channel=args.channel,
            speaker=args.speaker,
            source_type=args.source_type,
            limit=args.limit,
        )
    finally:
        store.close()

    if not records:
        print("No transcripts found.")
        return 0

    for r in records:
        duration = format_duration(r.duration_seconds) if r.duration_seconds else "?"
        channel = f" — {r.channel}" if r.channel else ""
        print(f"{r.created_at:%Y-%m-%d}  [{r.source_type}] {r.title}{channel} ({duration})")
    return 0


def handle_serve(args: argparse.Namespace) -> int:
    uvicorn.run(
        "scribe.api.main:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scribe",
        description="Transcribe audio with speaker diarization and named speakers.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    tx = subparsers.add_parser(
        "transcribe",
        aliases=["tx"],
        help="Transcribe an audio file or media URL",
    )
    tx.add_argument("input", help="Path to an audio file, or a YouTube/podcast/media URL")
    tx.add_argument("-s", "--speakers", help='Context about the speakers, e.g. "Meeting between Nick and Sarah"')
    tx.add_argument("-o", "--output", help="Output file path (default: <transcripts_dir>/<title>.<ext>)")
    tx.add_argument(
        "-f", "--format",
        default=OutputFormat.MARKDOWN.value,
        choices=[f.value for f in OutputFormat],
    )
    tx.add_argument("--no-diarize", action="store_true", help="Disable speaker diarization")
    tx.add_argument("--force", action="store_true", help="Re-transcribe even if the URL was already transcribed")
    tx.set_defaults(handler=handle_transcribe)

    ls = subparsers.add_parser("list", aliases=["ls"], help="List saved transcripts")
    ls.add_argument("-c", "--channel", help="Filter by channel name (partial match)")
    ls.add_argument("--speaker", help="Filter by speaker name (partial match)")
    ls.add_argument("-t", "--source-type", choices=[s.value for s in SourceType])
    ls.add_argument("-n", "--limit", type=int, default=20)
    ls.set_defaults(handler=handle_list)

    serve = subparsers.add_parser("serve", help="Run the read-only transcripts API")
    serve.add_argument("--host", default=settings.api_host, help="Host to bind to")
    serve.add_argument("--port", type=int, default=settings.api_port, help="Port to bind to")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (dev only)")
    serve.set_defaults(handler=handle_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return int(args.handler(args))
    except ScribeError as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        hint = _hint(exc)
        if hint:
            print(f"Tip: {hint}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
