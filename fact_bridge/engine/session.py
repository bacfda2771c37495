"""Session lifecycle: one program bound to one running engine instance."""

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from ..codec import encode, format_row, parse_rows
from ..config import BridgeConfig, ExecutionMode
from ..errors import FactDirectionError, InvalidStateError
from ..query import RelationSnapshot, as_kind, find_fact, get_facts
from ..schemas.facts import FactKind, kind_of
from ..schemas.program import Program
from .backend import EngineBackend, RowBatches


class SessionState(str, Enum):
    """Lifecycle states of a session."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    SHUT_DOWN = "shut_down"


def create_backend(
    program: Program,
    mode: ExecutionMode,
    config: BridgeConfig,
    logger: Optional[logging.Logger] = None,
) -> EngineBackend:
    """Build the backend for an execution mode."""
    from .compiled import CompiledBackend
    from .interpreted import InterpretedBackend

    mode = ExecutionMode(mode)
    if mode is ExecutionMode.COMPILED:
        return CompiledBackend(program, config, logger=logger)
    return InterpretedBackend(program, config, logger=logger)


class Session:
    """
    A running Datalog program with its base and derived facts.

    Sessions are created with ``init`` and must be shut down; use them as
    context managers to guarantee it. Every operation takes the session's
    lock for its full duration, so one session is never driven by two
    callers at once. Separate sessions share nothing.

    Usage:
        with init(program, ExecutionMode.INTERPRETED) as session:
            session.add_facts([Edge("a", "b"), Edge("b", "c")])
            session.run()
            reachable = session.get_facts(Reachable)
    """

    def __init__(
        self,
        program: Program,
        backend: EngineBackend,
        config: Optional[BridgeConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.program = program
        self.backend = backend
        self.config = config or BridgeConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._state = SessionState.UNINITIALIZED
        self._num_threads = self.config.num_threads
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mode(self) -> ExecutionMode:
        return self.backend.mode

    @property
    def num_threads(self) -> int:
        return self._num_threads

    # --- Lifecycle ---

    def _start(self) -> None:
        with self._lock:
            if self._state is not SessionState.UNINITIALIZED:
                raise InvalidStateError("initialize", self._state.value)
            self._state = SessionState.INITIALIZING
            try:
                self.backend.start()
                self.backend.set_num_threads(self._num_threads)
            except BaseException:
                self.backend.close()
                self._state = SessionState.UNINITIALIZED
                raise
            self._state = SessionState.READY

    def shutdown(self) -> None:
        """Release the engine. Further operations raise InvalidStateError."""
        with self._lock:
            if self._state is SessionState.SHUT_DOWN:
                return
            try:
                self.backend.close()
            finally:
                self._state = SessionState.SHUT_DOWN
        self.logger.info(f"Session for program '{self.program.name}' shut down")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @contextmanager
    def _ready(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._state is not SessionState.READY:
                raise InvalidStateError(operation, self._state.value)
            yield

    def _check_kind(self, kind: FactKind, adding: bool) -> FactKind:
        # The caller's kind is returned so its record type drives decoding
        self.program.require(kind)
        if adding and not kind.direction.can_add:
            raise FactDirectionError(
                f"Cannot add facts to '{kind.name}': it is declared {kind.direction.value}"
            )
        if not adding and not kind.direction.can_query:
            raise FactDirectionError(
                f"Cannot query '{kind.name}': it is declared {kind.direction.value}"
            )
        return kind

    # --- Fact input ---

    def add_fact(self, fact: Any) -> None:
        """Add one base fact."""
        self.add_facts([fact])

    def add_facts(self, facts: Iterable[Any]) -> int:
        """
        Add base facts, preserving order.

        All facts are validated and encoded before anything reaches the
        engine; if one is rejected, none are added.

        Returns:
            Number of facts added

        Raises:
            UnknownFactError: A fact's kind is not declared by the program
            FactDirectionError: A fact's kind is not an input
            SchemaMismatchError: A fact does not fit its kind
        """
        facts = list(facts)
        with self._ready("add facts"):
            batches: RowBatches = {}
            for fact in facts:
                kind = self._check_kind(kind_of(fact), adding=True)
                batches.setdefault(kind, []).append(encode(fact))
            if batches:
                self.backend.add_rows(batches)
        self.logger.debug(f"Added {len(facts)} facts to program '{self.program.name}'")
        return len(facts)

    def load_facts(self, directory: str | Path) -> int:
        """
        Load ``<relation>.facts`` files for the program's input relations.

        Files that do not exist are skipped. Rows are validated before any
        are added.

        Returns:
            Number of facts loaded
        """
        directory = Path(directory)
        with self._ready("load facts"):
            batches: RowBatches = {}
            for kind in self.program.input_kinds:
                path = directory / f"{kind.name}.facts"
                if not path.exists():
                    continue
                with open(path, encoding="utf-8") as f:
                    rows = parse_rows(f, kind)
                if rows:
                    batches[kind] = rows
            if batches:
                self.backend.add_rows(batches)
        count = sum(len(rows) for rows in batches.values())
        self.logger.info(f"Loaded {count} facts from {directory}")
        return count

    # --- Evaluation ---

    def run(self) -> None:
        """
        Evaluate the program over the current base facts.

        Raises:
            EngineError: The engine failed; the session stays usable
        """
        with self._ready("run"):
            self._state = SessionState.RUNNING
            start_time = time.time()
            try:
                self.backend.run()
            finally:
                self._state = SessionState.READY
        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.info(f"Program '{self.program.name}' ran in {elapsed_ms}ms")

    def set_num_threads(self, num_threads: int) -> None:
        """Set the engine parallelism used by subsequent runs."""
        if num_threads < 1:
            raise ValueError(f"num_threads must be at least 1, got {num_threads}")
        with self._ready("set threads"):
            self.backend.set_num_threads(num_threads)
            self._num_threads = num_threads

    # --- Relation access (used by the query layer) ---

    def read_relation(self, kind: Any) -> tuple[FactKind, list[tuple]]:
        """Validated raw read of a relation as of the last run."""
        with self._ready("query facts"):
            kind = self._check_kind(as_kind(kind), adding=False)
            return kind, self.backend.read_rows(kind)

    def has_row(self, fact: Any) -> tuple[FactKind, tuple, bool]:
        """Validated membership test for one fact as of the last run."""
        with self._ready("find fact"):
            kind = self._check_kind(kind_of(fact), adding=False)
            row = encode(fact)
            return kind, row, self.backend.contains_row(kind, row)

    def get_facts(self, kind: Any) -> RelationSnapshot:
        """Snapshot of a relation. See ``fact_bridge.query.get_facts``."""
        return get_facts(self, kind)

    def find_fact(self, fact: Any) -> Any:
        """Look up one fact. See ``fact_bridge.query.find_fact``."""
        return find_fact(self, fact)

    def write_facts(self, directory: str | Path) -> list[Path]:
        """
        Write every queryable relation to ``<directory>/<relation>.csv``.

        Returns:
            Paths written
        """
        directory = Path(directory)
        written = []
        with self._ready("write facts"):
            directory.mkdir(parents=True, exist_ok=True)
            for kind in self.program.output_kinds:
                path = directory / f"{kind.name}.csv"
                rows = self.backend.read_rows(kind)
                with open(path, "w", encoding="utf-8") as f:
                    f.writelines(format_row(row, kind) + "\n" for row in rows)
                written.append(path)
        return written

    def __repr__(self) -> str:
        return (
            f"Session(program='{self.program.name}', mode={self.mode.value}, "
            f"state={self._state.value})"
        )


def init(
    program: Program,
    mode: ExecutionMode = ExecutionMode.INTERPRETED,
    config: Optional[BridgeConfig] = None,
    backend: Optional[EngineBackend] = None,
    logger: Optional[logging.Logger] = None,
) -> Session:
    """
    Start a session for a program.

    Args:
        program: The declared program
        mode: Interpreted or compiled execution
        config: Bridge configuration (defaults to ``BridgeConfig.from_env()``)
        backend: Explicit backend, overriding ``mode``
        logger: Logger instance

    Returns:
        A ready Session

    Raises:
        EngineNotFoundError: The engine, source or artifact is missing;
            nothing is left running
        SchemaMismatchError: The program's facts disagree with its source
    """
    config = config or BridgeConfig.from_env()
    backend = backend or create_backend(program, mode, config, logger=logger)
    session = Session(program, backend, config=config, logger=logger)
    session._start()
    session.logger.info(
        f"Session for program '{program.name}' ready ({session.mode.value} mode)"
    )
    return session
