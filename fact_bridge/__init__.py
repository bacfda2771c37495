"""
Fact Bridge - typed facts in and out of the Soufflé Datalog engine.

Host records are marshalled into Soufflé relations, the program is
evaluated, and derived relations are read back as typed records. The
engine is reached either through the souffle interpreter (an external
process per run) or a compiled SWIG module loaded in-process; both give
sessions the same interface.

Quick Start:
    from fact_bridge import Direction, ExecutionMode, declare, fact, init

    @fact("edge", direction=Direction.INPUT)
    class Edge:
        src: str
        dst: str

    @fact("reachable", direction=Direction.OUTPUT)
    class Reachable:
        src: str
        dst: str

    path = declare("path", [Edge.__fact_kind__, Reachable.__fact_kind__])

    with init(path, ExecutionMode.INTERPRETED) as session:
        session.add_facts([Edge("a", "b"), Edge("b", "c")])
        session.run()
        print(session.get_facts(Reachable).to_set())
        print(session.find_fact(Reachable("a", "c")))
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    BridgeError,
    EngineError,
    EngineNotFoundError,
    FactDirectionError,
    InvalidStateError,
    SchemaMismatchError,
    UnknownFactError,
)

# Schemas
from .schemas import (
    Direction,
    FactInstance,
    FactKind,
    FieldSpec,
    FieldType,
    Program,
    ProgramRegistry,
    contains,
    declare,
    fact,
    kind_of,
    unsigned,
)

# Codec
from .codec import decode, encode, format_row, parse_row, parse_rows

# Config
from .config import BridgeConfig, ExecutionMode

# Query
from .query import RelationSnapshot, find_fact, get_facts, snapshots_equal

# Engine
from .engine import (
    Session,
    SessionState,
    build_compiled,
    check_souffle_installed,
    init,
)

__all__ = [
    # Errors
    "BridgeError",
    "EngineError",
    "EngineNotFoundError",
    "FactDirectionError",
    "InvalidStateError",
    "SchemaMismatchError",
    "UnknownFactError",
    # Schemas
    "Direction",
    "FactInstance",
    "FactKind",
    "FieldSpec",
    "FieldType",
    "Program",
    "ProgramRegistry",
    "contains",
    "declare",
    "fact",
    "kind_of",
    "unsigned",
    # Codec
    "decode",
    "encode",
    "format_row",
    "parse_row",
    "parse_rows",
    # Config
    "BridgeConfig",
    "ExecutionMode",
    # Query
    "RelationSnapshot",
    "find_fact",
    "get_facts",
    "snapshots_equal",
    # Engine
    "Session",
    "SessionState",
    "build_compiled",
    "check_souffle_installed",
    "init",
]
