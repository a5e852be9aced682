"""Resolve an input reference (local file or media URL) to a local audio file.

Remote media is fetched with ``yt-dlp``, which handles YouTube, podcast hosts,
and plain audio URLs alike. Audio extraction needs ``ffmpeg`` on the PATH.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import secrets
import shutil
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yt_dlp  # type: ignore[import-untyped]
from yt_dlp.utils import YoutubeDLError  # type: ignore[import-untyped]

from scribe.errors import AcquisitionError, InputError
from scribe.pipeline_config import SourceType

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {".mp3", ".m4a", ".wav", ".flac", ".ogg", ".wma", ".aac", ".mp4", ".webm"}

YOUTUBE_PATTERNS = [
    re.compile(r"^https?://(www\.)?youtube\.com/watch"),
    re.compile(r"^https?://youtu\.be/"),
    re.compile(r"^https?://(www\.)?youtube\.com/shorts/"),
    re.compile(r"^https?://m\.youtube\.com/watch"),
]

UNKNOWN_TITLE = "Unknown Media"

# Seconds
SOCKET_TIMEOUT = 30


def is_url(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


def is_youtube_url(ref: str) -> bool:
    return any(p.match(ref) for p in YOUTUBE_PATTERNS)


def source_type_for(ref: str) -> SourceType:
    if is_youtube_url(ref):
        return SourceType.YOUTUBE
    if is_url(ref):
        return SourceType.URL
    return SourceType.LOCAL


def validate_audio_file(path: str | Path) -> Path:
    """Check that *path* exists and has a supported audio extension.

    Raises:
        InputError: If the file is missing or the format is unsupported.
    """
    path = Path(path).expanduser().resolve()
    if not path.is_file():
        raise InputError(f"File not found: {path}")

    ext = path.suffix.lower()
    if ext not in SUPPORTED_FORMATS:
        raise InputError(
            f"Unsupported format: {ext or '(none)'}. "
            f"Supported formats: {', '.join(sorted(SUPPORTED_FORMATS))}"
        )
    return path


@dataclass
class AcquiredAudio:
    """A local audio file ready for transcription, plus what we know about its source."""

    local_path: Path
    source_type: SourceType
    source_url: str | None = None
    title: str | None = None
    description: str | None = None
    uploader: str | None = None
    uploader_url: str | None = None
    raw_metadata: str | None = None
    temp_dir: Path | None = None

    def cleanup(self) -> None:
        """Delete any temporary download. Local input files are never touched."""
        if self.temp_dir is not None:
            shutil.rmtree(self.temp_dir, ignore_errors=True)
            self.temp_dir = None


def _ydl_options(temp_dir: Path) -> dict[str, Any]:
    return {
        "format": "bestaudio/best",
        "outtmpl": str(temp_dir / f"audio-{secrets.token_hex(4)}.%(ext)s"),
        "postprocessors": [
            {"key": "FFmpegExtractAudio", "preferredcodec": "mp3", "preferredquality": "0"},
        ],
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
        "socket_timeout": SOCKET_TIMEOUT,
    }


def _download(url: str, temp_dir: Path) -> dict[str, Any]:
    with yt_dlp.YoutubeDL(_ydl_options(temp_dir)) as ydl:
        info = ydl.extract_info(url, download=True)
        return ydl.sanitize_info(info) or {}


def media_metadata(info: dict[str, Any]) -> dict[str, str | None]:
    """Pick title, description, and uploader out of a yt-dlp info dict.

    Missing fields are ``None`` except the title, which falls back to a placeholder.
    """
    return {
        "title": info.get("title") or UNKNOWN_TITLE,
        "description": info.get("description") or None,
        "uploader": info.get("uploader") or info.get("channel") or None,
        "uploader_url": info.get("channel_url") or info.get("uploader_url") or None,
    }


async def download_audio(url: str) -> AcquiredAudio:
    """Download the audio track of *url* as mp3 into a fresh temp directory.

    Raises:
        AcquisitionError: If yt-dlp cannot fetch the media or ffmpeg is missing.
    """
    temp_dir = Path(tempfile.mkdtemp(prefix="scribe-"))
    logger.info("Downloading audio from %s", url)
    try:
        info = await asyncio.to_thread(_download, url, temp_dir)
    except YoutubeDLError as exc:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise AcquisitionError(f"yt-dlp failed: {exc}") from exc

    downloaded = sorted(temp_dir.glob("audio-*.mp3"))
    if not downloaded:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise AcquisitionError("yt-dlp failed: output file not found")

    metadata = media_metadata(info)
    logger.info("Media: %s", metadata["title"])
    return AcquiredAudio(
        local_path=downloaded[0],
        source_type=source_type_for(url),
        source_url=url,
        raw_metadata=json.dumps(info, default=str),
        temp_dir=temp_dir,
        **metadata,
    )


@asynccontextmanager
async def acquire_audio(input_ref: str) -> AsyncIterator[AcquiredAudio]:
    """Yield a local audio file for *input_ref*; temporary downloads are always removed."""
    if is_url(input_ref):
        audio = await download_audio(input_ref)
        logger.info("Saved to temp: %s", audio.local_path)
    else:
        path = validate_audio_file(input_ref)
        audio = AcquiredAudio(local_path=path, source_type=SourceType.LOCAL, title=path.stem)

    try:
        yield audio
    finally:
        audio.cleanup()
