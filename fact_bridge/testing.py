"""
Test doubles for sessions without a Soufflé installation.

MemoryBackend stands in for any EngineBackend; FakeSwigModule mimics the
module ``souffle -s python`` generates, so CompiledBackend can be driven
end to end. Both evaluate the ``path`` example program in Python.
"""

from pathlib import Path
from typing import Callable, Optional

from .codec import parse_rows
from .config import ExecutionMode
from .errors import EngineError, EngineNotFoundError
from .schemas.facts import Direction, FactKind, fact
from .schemas.program import Program, ProgramRegistry, declare

PATH_SOURCE = """
// Transitive closure over a directed graph
.decl edge(x: symbol, y: symbol)
.input edge

.decl reachable(x: symbol, y: symbol)
.output reachable

reachable(x, y) :- edge(x, y).
reachable(x, z) :- edge(x, y), reachable(y, z).
"""

PATH_EDGES = [
    ("a", "b"),
    ("b", "c"),
    ("b", "d"),
    ("d", "e"),
    ("e", "f"),
    ("d", "h"),
]


@fact("edge", direction=Direction.INPUT)
class Edge:
    src: str
    dst: str


@fact("reachable", direction=Direction.OUTPUT)
class Reachable:
    src: str
    dst: str


def path_kinds() -> list[FactKind]:
    return [Edge.__fact_kind__, Reachable.__fact_kind__]


def path_program(registry: Optional[ProgramRegistry] = None) -> Program:
    """Declare the ``path`` program in a registry (a fresh one by default)."""
    return declare("path", path_kinds(), source=PATH_SOURCE, registry=registry or ProgramRegistry())


def transitive_closure(edges) -> set[tuple]:
    reach = set(edges)
    while True:
        new = {(a, d) for (a, b) in reach for (c, d) in edges if b == c} - reach
        if not new:
            return reach
        reach |= new


def path_rules(base: dict[str, list[tuple]]) -> dict[str, list[tuple]]:
    """Python rendition of PATH_SOURCE's rules."""
    return {"reachable": sorted(transitive_closure(set(base.get("edge", []))))}


class MemoryBackend:
    """
    In-memory EngineBackend.

    ``run()`` copies base relations to the derived state and applies
    ``rules``; every call is recorded in ``calls``.
    """

    mode = ExecutionMode.INTERPRETED

    def __init__(
        self,
        rules: Optional[Callable[[dict], dict]] = None,
        fail_start: bool = False,
        fail_run: bool = False,
    ):
        self.rules = rules or (lambda base: {})
        self.fail_start = fail_start
        self.fail_run = fail_run
        self.base: dict[str, list[tuple]] = {}
        self.derived: dict[str, list[tuple]] = {}
        self.calls: list[str] = []
        self.num_threads = 1
        self.closed = False

    def start(self) -> None:
        self.calls.append("start")
        if self.fail_start:
            raise EngineNotFoundError("engine missing")

    def add_rows(self, batches) -> None:
        self.calls.append("add_rows")
        for kind, rows in batches.items():
            self.base.setdefault(kind.name, []).extend(rows)

    def run(self) -> None:
        self.calls.append("run")
        if self.fail_run:
            raise EngineError("engine crashed", stderr="boom")
        self.derived = {name: list(dict.fromkeys(rows)) for name, rows in self.base.items()}
        self.derived.update(self.rules(self.base))

    def read_rows(self, kind: FactKind) -> list[tuple]:
        self.calls.append("read_rows")
        return list(self.derived.get(kind.name, []))

    def contains_row(self, kind: FactKind, row: tuple) -> bool:
        self.calls.append("contains_row")
        return row in self.derived.get(kind.name, [])

    def set_num_threads(self, num_threads: int) -> None:
        self.num_threads = num_threads

    def close(self) -> None:
        self.calls.append("close")
        self.closed = True


class FakeSwigProgram:
    """Mimics a SWIGSouffleProgram for the ``path`` program."""

    def __init__(self):
        self.edges: set[tuple] = set()
        self.reachable: set[tuple] = set()
        self.runs = 0

    def loadAll(self, directory: str) -> None:
        path = Path(directory) / "edge.facts"
        with open(path, encoding="utf-8") as f:
            self.edges.update(parse_rows(f, Edge.__fact_kind__))

    def run(self) -> None:
        self.runs += 1
        self.reachable = transitive_closure(self.edges)

    def printAll(self, directory: str) -> None:
        with open(Path(directory) / "reachable.csv", "w", encoding="utf-8") as f:
            for src, dst in sorted(self.reachable):
                f.write(f"{src}\t{dst}\n")


class FakeSwigModule:
    """Mimics the generated ``SwigInterface`` module."""

    def __init__(self, programs=("path",)):
        self.programs = set(programs)
        self.instances: list[FakeSwigProgram] = []

    def newInstance(self, name: str) -> Optional[FakeSwigProgram]:
        if name not in self.programs:
            return None
        instance = FakeSwigProgram()
        self.instances.append(instance)
        return instance

    def loader(self, artifact_dir: Path) -> "FakeSwigModule":
        return self
