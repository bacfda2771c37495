"""
Tuple codec between typed facts and Soufflé primitive tuples.

Two layers:
    encode / decode         typed fact  <-> tuple of str, int, float
    format_row / parse_row  primitives  <-> tab-separated line in a
                                            ``.facts`` or ``.csv`` file
"""

import math
from typing import Any, Iterable, Sequence

from .errors import SchemaMismatchError
from .schemas.facts import FactInstance, FactKind, FieldType, kind_of

# Characters Soufflé's default reader treats as delimiters
_FORBIDDEN_SYMBOL_CHARS = ("\t", "\n", "\r")


def encode(fact: Any) -> tuple:
    """
    Encode a FactInstance or typed record as an ordered primitive tuple.

    Raises:
        SchemaMismatchError: If the value is not a fact or disagrees with its kind
    """
    kind = kind_of(fact)
    if isinstance(fact, FactInstance):
        return kind.check_values(fact.values)
    return kind.check_values(tuple(getattr(fact, col.name) for col in kind.fields))


def decode(values: Sequence[Any], kind: FactKind) -> Any:
    """
    Decode a primitive tuple into a fact of the given kind.

    Returns:
        An instance of ``kind.record_type`` if the kind came from a record
        class, otherwise a FactInstance

    Raises:
        SchemaMismatchError: On field count or type disagreement
    """
    checked = kind.check_values(values)
    if kind.record_type is not None:
        return kind.record_type(*checked)
    return FactInstance(kind, checked)


def _format_value(value: Any, ftype: FieldType) -> str:
    if ftype is FieldType.SYMBOL:
        if any(c in value for c in _FORBIDDEN_SYMBOL_CHARS):
            raise SchemaMismatchError(
                f"Symbol {value!r} contains a tab or line break"
            )
        return value
    if ftype is FieldType.FLOAT:
        if math.isnan(value) or math.isinf(value):
            raise SchemaMismatchError(f"Float {value} cannot be written to Soufflé")
        return repr(value)
    return str(value)


def format_row(values: Sequence[Any], kind: FactKind) -> str:
    """
    Render a primitive tuple as one line of a Soufflé fact file.

    Values are checked against the kind first. The returned line has no
    trailing newline.
    """
    checked = kind.check_values(values)
    if not kind.arity:
        return "()"
    return "\t".join(
        _format_value(v, col.type) for col, v in zip(kind.fields, checked)
    )


def _parse_value(text: str, ftype: FieldType) -> Any:
    if ftype is FieldType.SYMBOL:
        return text
    try:
        if ftype is FieldType.FLOAT:
            return float(text)
        return int(text)
    except ValueError:
        raise SchemaMismatchError(
            f"Cannot read {text!r} as {ftype.value}"
        ) from None


def parse_row(line: str, kind: FactKind) -> tuple:
    """
    Parse one line of Soufflé output into a primitive tuple.

    Args:
        line: A line from a ``.csv`` or ``.facts`` file
        kind: The relation's Fact Kind

    Raises:
        SchemaMismatchError: If the line does not fit the kind
    """
    line = line.rstrip("\r\n")
    parts = line.split("\t") if kind.arity else []
    if len(parts) != kind.arity:
        raise SchemaMismatchError(
            f"Fact '{kind.name}' expects {kind.arity} columns, got "
            f"{len(parts)} in line {line!r}"
        )
    values = tuple(_parse_value(p, col.type) for p, col in zip(parts, kind.fields))
    return kind.check_values(values)


def parse_rows(lines: Iterable[str], kind: FactKind) -> list[tuple]:
    """
    Parse every row of a ``.facts`` or ``.csv`` file.

    Whitespace is data: a line of spaces or tabs is a row of symbols. An
    empty line is a row only for a unary relation, where it holds the
    empty symbol; for other arities it is skipped.
    """
    rows = []
    for line in lines:
        line = line.rstrip("\r\n")
        if not line and kind.arity != 1:
            continue
        rows.append(parse_row(line, kind))
    return rows
