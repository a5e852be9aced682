from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    assemblyai_api_key: str = ""
    anthropic_api_key: str = ""  # Optional: speaker naming and reflow are skipped if absent

    # Models
    llm_model: str = "claude-sonnet-4-20250514"
    speech_models: list[str] = ["universal-3-pro"]

    # Storage
    data_dir: str = "data"
    transcripts_dir: str = "transcripts"

    # Post-processing thresholds (characters)
    segment_max_chars: int = 4000
    paragraph_threshold: int = 1500
    paragraph_min_chars: int = 150

    # Speaker identification sampling
    speaker_sample_max: int = 50
    speaker_sample_head: int = 20
    speaker_sample_middle: int = 15
    speaker_sample_tail: int = 15

    # App config
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
