"""SQLite-backed transcript metadata store."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, col, create_engine, select

from scribe.storage.models import TranscriptRecord

logger = logging.getLogger(__name__)

DATABASE_FILE = "transcription.db"


def _enable_wal(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


class TranscriptStore:
    """Owns the database engine for one data directory.

    Construct once per process and pass it to whoever needs it.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.data_dir / DATABASE_FILE
        self.engine: Engine = create_engine(
            f"sqlite:///{self.db_path}", connect_args={"check_same_thread": False}
        )
        event.listen(self.engine, "connect", _enable_wal)
        SQLModel.metadata.create_all(self.engine)

    def find_by_source(self, source_url: str) -> TranscriptRecord | None:
        """Return the most recent record transcribed from *source_url*, if any."""
        with Session(self.engine) as session:
            statement = (
                select(TranscriptRecord)
                .where(TranscriptRecord.source_url == source_url)
                .order_by(col(TranscriptRecord.created_at).desc())
            )
            return session.exec(statement).first()

    def get(self, transcript_id: str) -> TranscriptRecord | None:
        with Session(self.engine) as session:
            return session.get(TranscriptRecord, transcript_id)

    def upsert(self, record: TranscriptRecord) -> TranscriptRecord:
        """Insert *record*, replacing any existing row with the same id wholesale."""
        with Session(self.engine) as session:
            existing = session.get(TranscriptRecord, record.id)
            if existing is not None:
                logger.info("Replacing existing transcript record %s", record.id)
                session.delete(existing)
                session.flush()
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    def query(
        self,
        channel: str | None = None,
        speaker: str | None = None,
        source_type: str | None = None,
        limit: int = 20,
    ) -> list[TranscriptRecord]:
        """List records newest first; channel and speaker are partial matches."""
        statement = select(TranscriptRecord)
        if channel:
            statement = statement.where(col(TranscriptRecord.channel).like(f"%{channel}%"))
        if speaker:
            statement = statement.where(col(TranscriptRecord.speakers).like(f"%{speaker}%"))
        if source_type:
            statement = statement.where(TranscriptRecord.source_type == source_type)
        statement = statement.order_by(col(TranscriptRecord.created_at).desc()).limit(limit)

        with Session(self.engine) as session:
            return list(session.exec(statement))

    def close(self) -> None:
        self.engine.dispose()
