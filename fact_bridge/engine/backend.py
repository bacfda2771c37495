"""Capability interface shared by the execution modes, and their file I/O."""

import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Protocol

from ..codec import format_row, parse_row, parse_rows
from ..config import ExecutionMode
from ..errors import EngineError
from ..schemas.facts import FactKind, FieldType

logger = logging.getLogger(__name__)

# Rows to append, grouped by relation
RowBatches = dict[FactKind, list[tuple]]


class EngineBackend(Protocol):
    """
    What a session needs from an engine, whatever the execution mode.

    Backends deal in primitive tuples only; validation and program
    membership are the session's job.
    """

    mode: ExecutionMode

    def start(self) -> None:
        """Acquire the engine. Raises EngineNotFoundError if it is missing."""
        ...

    def add_rows(self, batches: RowBatches) -> None:
        """Append base facts. All rows are written or none are."""
        ...

    def run(self) -> None:
        """Recompute derived relations. Raises EngineError on failure."""
        ...

    def read_rows(self, kind: FactKind) -> list[tuple]:
        """All tuples of a relation as of the last run."""
        ...

    def contains_row(self, kind: FactKind, row: tuple) -> bool:
        """Membership test against a relation as of the last run."""
        ...

    def set_num_threads(self, num_threads: int) -> None:
        ...

    def close(self) -> None:
        """Release the engine. Safe to call more than once."""
        ...


class FactFiles:
    """
    Session-private directory of Soufflé fact and output files.

    Layout:
        <root>/facts/<relation>.facts   base facts, appended to
        <root>/output/<relation>.csv    written by the engine on each run
    """

    def __init__(self, parent: Optional[Path] = None, prefix: str = "fact_bridge_"):
        if parent is not None:
            Path(parent).mkdir(parents=True, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
        self.facts_dir = self.root / "facts"
        self.output_dir = self.root / "output"
        self.facts_dir.mkdir()
        self.output_dir.mkdir()

    def fact_path(self, relation: str) -> Path:
        return self.facts_dir / f"{relation}.facts"

    def output_path(self, relation: str) -> Path:
        return self.output_dir / f"{relation}.csv"

    def ensure_inputs(self, relations: Iterable[str]) -> None:
        """Soufflé requires a fact file for every input relation, even if empty."""
        for relation in relations:
            self.fact_path(relation).touch(exist_ok=True)

    def append(self, batches: RowBatches) -> int:
        """
        Append rows to their fact files.

        Every row is formatted before anything is written, so a row the
        codec rejects leaves all files untouched. If a write fails, files
        already appended to are truncated back to their previous size.

        Returns:
            Number of rows written

        Raises:
            EngineError: If a fact file cannot be written
        """
        rendered = {
            kind.name: "".join(format_row(row, kind) + "\n" for row in rows)
            for kind, rows in batches.items()
        }
        sizes: dict[Path, int] = {}
        try:
            for relation, text in rendered.items():
                path = self.fact_path(relation)
                sizes[path] = path.stat().st_size if path.is_file() else 0
                with open(path, "a", encoding="utf-8") as f:
                    f.write(text)
        except OSError as e:
            for path, size in sizes.items():
                if path.is_file():
                    os.truncate(path, size)
            raise EngineError(f"Cannot write facts: {e}") from e
        return sum(len(rows) for rows in batches.values())

    def clear_output(self) -> None:
        """Remove previous run results."""
        for csv_file in self.output_dir.glob("*.csv"):
            csv_file.unlink()

    def read_output(self, kind: FactKind) -> list[tuple]:
        """Parse a relation's output file ([] if the engine wrote none)."""
        filepath = self.output_path(kind.name)
        if not filepath.exists():
            return []
        with open(filepath, encoding="utf-8") as f:
            return parse_rows(f, kind)

    def scan_output(self, kind: FactKind, row: tuple) -> bool:
        """Check an output file for one row, stopping at the first match."""
        filepath = self.output_path(kind.name)
        if not filepath.exists():
            return False
        target = format_row(row, kind)
        # Soufflé may render floats differently than repr()
        compare_parsed = FieldType.FLOAT in kind.field_types
        with open(filepath, encoding="utf-8") as f:
            for line in f:
                line = line.rstrip("\r\n")
                if line == target:
                    return True
                if compare_parsed and line and parse_row(line, kind) == row:
                    return True
        return False

    def cleanup(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)


class EngineResources:
    """
    Everything a backend must release on shutdown.

    Kept separate from the backend so a ``weakref.finalize`` hook can
    release it without holding a reference to the backend itself.
    """

    def __init__(self, keep_files: bool = False):
        self.files: Optional[FactFiles] = None
        self.process: Optional[subprocess.Popen] = None
        self.keep_files = keep_files

    def release(self) -> None:
        process, self.process = self.process, None
        if process is not None and process.poll() is None:
            logger.debug(f"Killing engine process {process.pid}")
            process.kill()
            process.wait()

        files, self.files = self.files, None
        if files is not None:
            if self.keep_files:
                logger.info(f"Keeping session files in {files.root}")
            else:
                files.cleanup()
