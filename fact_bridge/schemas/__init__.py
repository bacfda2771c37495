"""Schemas for facts, relations and programs."""

from .facts import (
    Direction,
    FactInstance,
    FactKind,
    FieldSpec,
    FieldType,
    fact,
    kind_of,
    unsigned,
)
from .declarations import RelationDecl, check_kinds, input_relations, parse_declarations
from .program import Program, ProgramRegistry, contains, declare, default_registry

__all__ = [
    # Facts
    "Direction",
    "FactInstance",
    "FactKind",
    "FieldSpec",
    "FieldType",
    "fact",
    "kind_of",
    "unsigned",
    # Declarations
    "RelationDecl",
    "check_kinds",
    "input_relations",
    "parse_declarations",
    # Programs
    "Program",
    "ProgramRegistry",
    "contains",
    "declare",
    "default_registry",
]
