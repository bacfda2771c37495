"""SQLite storage for program declarations and relation snapshots."""

import json
import logging
from datetime import timezone
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from ..query import RelationSnapshot
from ..schemas.facts import FactKind
from ..schemas.program import Program
from .models import ProgramModel, SnapshotModel, create_database, rows_checksum


class SQLiteStore:
    """
    SQLite-based storage for bridge data.

    Handles persistence for:
    - Program declarations (name, Fact Kinds, inline source)
    - Relation snapshots, for auditing and comparing runs
    """

    def __init__(self, db_path: str = "fact_bridge.db", logger: Optional[logging.Logger] = None):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file
            logger: Logger instance
        """
        self.db_path = db_path
        self.logger = logger or logging.getLogger(__name__)
        self.engine, self.SessionLocal = create_database(db_path)

    def _get_session(self) -> DBSession:
        """Get a new database session."""
        return self.SessionLocal()

    def close(self) -> None:
        """Dispose of the database engine's connections."""
        self.engine.dispose()

    # --- Program Operations ---

    def save_program(self, program: Program) -> Program:
        """
        Persist a program declaration.

        Saving the same declaration twice is a no-op.

        Raises:
            ValueError: If the name is stored with different Fact Kinds
        """
        kinds_json = json.dumps([k.to_dict() for k in program.kinds])
        with self._get_session() as session:
            existing = session.query(ProgramModel).filter(
                ProgramModel.name == program.name
            ).first()
            if existing is not None:
                if json.loads(existing.kinds) != json.loads(kinds_json):
                    raise ValueError(
                        f"Program '{program.name}' is already stored with different facts"
                    )
                return program
            session.add(ProgramModel(
                name=program.name,
                kinds=kinds_json,
                source=program.source,
            ))
            session.commit()
        self.logger.debug(f"Saved program '{program.name}'")
        return program

    def load_program(self, name: str) -> Program | None:
        """
        Load a program declaration by name.

        Returns:
            Program or None if not found
        """
        with self._get_session() as session:
            model = session.query(ProgramModel).filter(
                ProgramModel.name == name
            ).first()
            if model is None:
                return None
            return Program.from_dict(model.to_dict())

    def list_programs(self) -> list[str]:
        """Names of all stored programs."""
        with self._get_session() as session:
            return [
                name for (name,) in
                session.query(ProgramModel.name).order_by(ProgramModel.name).all()
            ]

    # --- Snapshot Operations ---

    def save_snapshot(
        self,
        program_name: str,
        snapshot: RelationSnapshot,
        label: Optional[str] = None,
    ) -> int:
        """
        Persist a relation snapshot.

        Args:
            program_name: Program the snapshot was taken from
            snapshot: The snapshot
            label: Optional free-form label (e.g. a run identifier)

        Returns:
            The stored snapshot's id
        """
        rows = [list(row) for row in snapshot.rows()]
        with self._get_session() as session:
            model = SnapshotModel(
                program_name=program_name,
                relation=snapshot.kind.name,
                kind=json.dumps(snapshot.kind.to_dict()),
                rows=json.dumps(rows),
                fact_count=len(rows),
                checksum=rows_checksum(rows),
                label=label,
                taken_at=snapshot.taken_at,
            )
            session.add(model)
            session.commit()
            snapshot_id = model.id
        self.logger.debug(
            f"Saved snapshot {snapshot_id} of '{program_name}.{snapshot.kind.name}' "
            f"({len(rows)} facts)"
        )
        return snapshot_id

    def _to_snapshot(self, model: SnapshotModel, kind: Optional[FactKind]) -> RelationSnapshot:
        kind = kind or FactKind.from_dict(json.loads(model.kind))
        taken_at = model.taken_at
        if taken_at.tzinfo is None:
            taken_at = taken_at.replace(tzinfo=timezone.utc)
        rows = [tuple(row) for row in json.loads(model.rows)]
        return RelationSnapshot.from_rows(kind, rows, taken_at=taken_at)

    def get_snapshots(
        self,
        program_name: str,
        relation: str,
        kind: Optional[FactKind] = None,
        label: Optional[str] = None,
    ) -> list[RelationSnapshot]:
        """
        Get stored snapshots of a relation, oldest first.

        Args:
            program_name: The program name
            relation: The relation name
            kind: Kind to decode into (e.g. one with a record type);
                defaults to the stored schema
            label: Only return snapshots with this label

        Returns:
            List of RelationSnapshot objects
        """
        with self._get_session() as session:
            query = session.query(SnapshotModel).filter(
                SnapshotModel.program_name == program_name,
                SnapshotModel.relation == relation,
            )
            if label is not None:
                query = query.filter(SnapshotModel.label == label)
            models = query.order_by(SnapshotModel.id).all()
            return [self._to_snapshot(m, kind) for m in models]

    def latest_snapshot(
        self,
        program_name: str,
        relation: str,
        kind: Optional[FactKind] = None,
    ) -> RelationSnapshot | None:
        """Most recently stored snapshot of a relation, or None."""
        with self._get_session() as session:
            model = session.query(SnapshotModel).filter(
                SnapshotModel.program_name == program_name,
                SnapshotModel.relation == relation,
            ).order_by(SnapshotModel.id.desc()).first()
            if model is None:
                return None
            return self._to_snapshot(model, kind)

    def checksums(self, program_name: str, relation: str) -> list[str]:
        """Checksums of stored snapshots, oldest first; equal runs share one."""
        with self._get_session() as session:
            return [
                checksum for (checksum,) in
                session.query(SnapshotModel.checksum).filter(
                    SnapshotModel.program_name == program_name,
                    SnapshotModel.relation == relation,
                ).order_by(SnapshotModel.id).all()
            ]

    def delete_snapshots(self, program_name: str, relation: Optional[str] = None) -> int:
        """
        Delete stored snapshots.

        Args:
            program_name: The program name
            relation: Only delete snapshots of this relation

        Returns:
            Number of snapshots deleted
        """
        with self._get_session() as session:
            query = session.query(SnapshotModel).filter(
                SnapshotModel.program_name == program_name
            )
            if relation is not None:
                query = query.filter(SnapshotModel.relation == relation)
            result = query.delete()
            session.commit()
            return result
