"""SQLAlchemy models for persistent storage."""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rows_checksum(rows: list[list[Any]]) -> str:
    """Checksum of sorted rows, equal for equal relation contents."""
    payload = json.dumps(rows, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ProgramModel(Base):
    """SQLAlchemy model for program declarations."""

    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    kinds = Column(Text, nullable=False)  # JSON-encoded list of FactKind dicts
    source = Column(Text)
    created_at = Column(DateTime, default=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the Program dictionary form."""
        return {
            "name": self.name,
            "kinds": json.loads(self.kinds) if self.kinds else [],
            "source": self.source,
        }


class SnapshotModel(Base):
    """SQLAlchemy model for relation snapshots."""

    __tablename__ = "relation_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    program_name = Column(String(255), nullable=False, index=True)
    relation = Column(String(255), nullable=False, index=True)
    kind = Column(Text, nullable=False)  # JSON-encoded FactKind
    rows = Column(Text, nullable=False)  # JSON-encoded sorted rows
    fact_count = Column(Integer, nullable=False, default=0)
    checksum = Column(String(64), nullable=False, index=True)
    label = Column(String(255))
    taken_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "program_name": self.program_name,
            "relation": self.relation,
            "kind": json.loads(self.kind),
            "rows": json.loads(self.rows),
            "fact_count": self.fact_count,
            "checksum": self.checksum,
            "label": self.label,
            "taken_at": self.taken_at.isoformat() if self.taken_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def create_database(db_path: str = "fact_bridge.db") -> tuple:
    """
    Create database engine and session factory.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Tuple of (engine, SessionLocal factory)
    """
    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    return engine, SessionLocal
