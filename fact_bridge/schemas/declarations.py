"""Relation declarations read from Soufflé Datalog source."""

import re
from dataclasses import dataclass
from typing import Optional

from ..errors import SchemaMismatchError
from .facts import FieldType

_LINE_COMMENT = re.compile(r"//[^\n]*")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_DECL = re.compile(r"\.decl\s+(\w+)\s*\(([^)]*)\)")
_TYPE = re.compile(r"\.type\s+(\w+)\s*(?:<:|=)\s*([^\n]+)")
_IO = re.compile(r"\.(input|output)\s+(\w+(?:\s*,\s*\w+)*)")

_BASE_TYPES = {t.value: t for t in FieldType}


@dataclass(frozen=True)
class RelationDecl:
    """
    A relation as declared in Datalog source.

    Attributes:
        name: Relation name
        field_types: Resolved primitive type per column, None where the
            type could not be resolved (records, ADTs, unions)
        is_input: Relation has an .input directive
        is_output: Relation has an .output directive
    """
    name: str
    field_types: tuple[Optional[FieldType], ...]
    is_input: bool = False
    is_output: bool = False


def strip_comments(program: str) -> str:
    """Remove // and /* */ comments from Datalog source."""
    return _LINE_COMMENT.sub("", _BLOCK_COMMENT.sub("", program))


def _resolve_type(name: str, aliases: dict[str, str]) -> Optional[FieldType]:
    seen = set()
    while name not in _BASE_TYPES:
        if name in seen or name not in aliases:
            return None
        seen.add(name)
        name = aliases[name]
    return _BASE_TYPES[name]


def input_relations(program: str) -> set[str]:
    """
    Extract all input relation names from a Datalog program.

    Matches ``.input name`` directives, including comma-separated lists.
    """
    names = set()
    for directive, targets in _IO.findall(strip_comments(program)):
        if directive == "input":
            names.update(t.strip() for t in targets.split(","))
    return names


def parse_declarations(program: str) -> dict[str, RelationDecl]:
    """
    Parse ``.decl``, ``.type``, ``.input`` and ``.output`` statements.

    Args:
        program: Datalog program text

    Returns:
        Mapping of relation name to its declaration
    """
    text = strip_comments(program)

    aliases = {}
    for name, rhs in _TYPE.findall(text):
        rhs = rhs.strip()
        if re.fullmatch(r"\w+", rhs):
            aliases[name] = rhs

    inputs, outputs = set(), set()
    for directive, targets in _IO.findall(text):
        bucket = inputs if directive == "input" else outputs
        bucket.update(t.strip() for t in targets.split(","))

    decls = {}
    for name, body in _DECL.findall(text):
        types = []
        for column in filter(None, (c.strip() for c in body.split(","))):
            _, _, type_name = column.partition(":")
            types.append(_resolve_type(type_name.strip(), aliases))
        decls[name] = RelationDecl(
            name=name,
            field_types=tuple(types),
            is_input=name in inputs,
            is_output=name in outputs,
        )
    return decls


def check_kinds(kinds, program_name: str, program: str) -> dict[str, RelationDecl]:
    """
    Check Fact Kinds against the relations declared in Datalog source.

    Columns whose type cannot be resolved are not compared.

    Raises:
        SchemaMismatchError: If a kind is undeclared or disagrees in arity or type
    """
    decls = parse_declarations(program)
    for kind in kinds:
        decl = decls.get(kind.name)
        if decl is None:
            raise SchemaMismatchError(
                f"Fact '{kind.name}' is not declared in the source of "
                f"program '{program_name}'"
            )
        if len(decl.field_types) != kind.arity:
            raise SchemaMismatchError(
                f"Fact '{kind.name}' has {kind.arity} fields but program "
                f"'{program_name}' declares {len(decl.field_types)}"
            )
        for col, declared in zip(kind.fields, decl.field_types):
            if declared is not None and declared is not col.type:
                raise SchemaMismatchError(
                    f"Field '{col.name}' of fact '{kind.name}' is "
                    f"{col.type.value} but program '{program_name}' "
                    f"declares {declared.value}"
                )
    return decls
