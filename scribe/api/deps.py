"""FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from scribe.config import settings
from scribe.storage.store import TranscriptStore


@lru_cache(maxsize=1)
def get_store() -> TranscriptStore:
    """One store (and engine) per process."""
    return TranscriptStore(settings.data_dir)
