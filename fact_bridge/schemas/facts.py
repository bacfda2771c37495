"""Fact Kind and Fact Instance schemas."""

from __future__ import annotations

import dataclasses
import functools
import re
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..errors import SchemaMismatchError

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1
UINT32_MAX = 2 ** 32 - 1

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FieldType(str, Enum):
    """Soufflé primitive types a fact field can carry."""
    SYMBOL = "symbol"
    NUMBER = "number"        # signed 32-bit
    UNSIGNED = "unsigned"    # unsigned 32-bit
    FLOAT = "float"

    def coerce(self, value: Any) -> Any:
        """
        Check a value against this type and return its canonical form.

        Integers are widened for float fields. Booleans are never numbers.

        Raises:
            SchemaMismatchError: If the value does not fit this type
        """
        if self is FieldType.SYMBOL:
            if isinstance(value, str):
                return value
        elif isinstance(value, bool):
            pass
        elif self is FieldType.NUMBER:
            if isinstance(value, int):
                if not INT32_MIN <= value <= INT32_MAX:
                    raise SchemaMismatchError(
                        f"Value {value} is out of range for a 32-bit number"
                    )
                return value
        elif self is FieldType.UNSIGNED:
            if isinstance(value, int):
                if not 0 <= value <= UINT32_MAX:
                    raise SchemaMismatchError(
                        f"Value {value} is out of range for a 32-bit unsigned"
                    )
                return value
        elif self is FieldType.FLOAT:
            if isinstance(value, (int, float)):
                return float(value)
        raise SchemaMismatchError(
            f"Expected {self.value}, got {type(value).__name__} {value!r}"
        )


# Python annotations accepted by the @fact decorator
PYTHON_FIELD_TYPES: dict[Any, FieldType] = {
    str: FieldType.SYMBOL,
    int: FieldType.NUMBER,
    float: FieldType.FLOAT,
}


class Direction(str, Enum):
    """How a relation is used by the Datalog program."""
    INPUT = "input"                # facts are added, never read back
    OUTPUT = "output"              # facts are derived and read back
    INPUT_OUTPUT = "input_output"  # both
    INTERNAL = "internal"          # neither

    @property
    def can_add(self) -> bool:
        return self in (Direction.INPUT, Direction.INPUT_OUTPUT)

    @property
    def can_query(self) -> bool:
        return self in (Direction.OUTPUT, Direction.INPUT_OUTPUT)


@dataclass(frozen=True)
class FieldSpec:
    """A single named, typed column of a relation."""
    name: str
    type: FieldType

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"name": self.name, "type": self.type.value}


@dataclass(frozen=True)
class FactKind:
    """
    A named relation schema.

    Attributes:
        name: Relation name, as declared in the Datalog source
        fields: Ordered field specifications
        direction: Whether facts of this kind are added, queried, or both
        record_type: Dataclass the codec decodes into (None for FactInstance)
    """
    name: str
    fields: tuple[FieldSpec, ...]
    direction: Direction = Direction.INPUT_OUTPUT
    record_type: Optional[type] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if not _IDENTIFIER.match(self.name or ""):
            raise SchemaMismatchError(f"Invalid relation name: {self.name!r}")

        specs = []
        for col in self.fields:
            if not isinstance(col, FieldSpec):
                name, ftype = col
                col = FieldSpec(name, FieldType(ftype))
            specs.append(col)
        names = [s.name for s in specs]
        if len(set(names)) != len(names):
            raise SchemaMismatchError(
                f"Duplicate field names in fact '{self.name}': {names}"
            )

        object.__setattr__(self, "fields", tuple(specs))
        object.__setattr__(self, "direction", Direction(self.direction))

    @property
    def arity(self) -> int:
        return len(self.fields)

    @property
    def field_types(self) -> tuple[FieldType, ...]:
        return tuple(s.type for s in self.fields)

    def check_values(self, values: typing.Sequence[Any]) -> tuple:
        """
        Validate values positionally against this kind.

        Args:
            values: Candidate field values

        Returns:
            The values as a tuple in canonical form

        Raises:
            SchemaMismatchError: On arity or type disagreement
        """
        values = tuple(values)
        if len(values) != self.arity:
            raise SchemaMismatchError(
                f"Fact '{self.name}' expects {self.arity} fields, got {len(values)}"
            )
        checked = []
        for col, value in zip(self.fields, values):
            try:
                checked.append(col.type.coerce(value))
            except SchemaMismatchError as e:
                raise SchemaMismatchError(
                    f"Field '{col.name}' of fact '{self.name}': {e}"
                ) from e
        return tuple(checked)

    def __call__(self, *values: Any) -> "FactInstance":
        """Build a FactInstance of this kind."""
        return FactInstance(self, values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "fields": [s.to_dict() for s in self.fields],
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FactKind":
        """Create from dictionary."""
        return cls(
            name=data["name"],
            fields=tuple(
                FieldSpec(f["name"], FieldType(f["type"])) for f in data["fields"]
            ),
            direction=Direction(data.get("direction", Direction.INPUT_OUTPUT.value)),
        )


@dataclass(frozen=True)
class FactInstance:
    """
    One concrete tuple of a Fact Kind.

    Values are checked against the kind when the instance is built.
    """
    kind: FactKind
    values: tuple

    def __post_init__(self):
        object.__setattr__(self, "values", self.kind.check_values(self.values))

    def __getitem__(self, index: int) -> Any:
        return self.values[index]

    def as_dict(self) -> dict[str, Any]:
        """Field name to value mapping."""
        return {s.name: v for s, v in zip(self.kind.fields, self.values)}

    def __repr__(self) -> str:
        args = ", ".join(repr(v) for v in self.values)
        return f"{self.kind.name}({args})"


def unsigned(**kwargs: Any) -> Any:
    """Dataclass field marking an int attribute as a Soufflé unsigned."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata["souffle"] = FieldType.UNSIGNED.value
    return field(metadata=metadata, **kwargs)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def fact(
    name: Optional[str] = None,
    direction: Direction = Direction.INPUT_OUTPUT,
) -> Callable[[type], type]:
    """
    Class decorator turning a dataclass into a typed fact record.

    Plain classes are made into frozen dataclasses first. The generated
    FactKind is stored on the class as ``__fact_kind__``, and field values
    are checked against it whenever a record is constructed.

    Example:
        @fact("edge", direction=Direction.INPUT)
        class Edge:
            src: str
            dst: str

    Args:
        name: Relation name (defaults to the snake_cased class name)
        direction: Direction of the relation
    """
    def wrap(cls: type) -> type:
        if not dataclasses.is_dataclass(cls):
            cls = dataclass(frozen=True)(cls)
        hints = typing.get_type_hints(cls)

        specs = []
        for f in dataclasses.fields(cls):
            declared = f.metadata.get("souffle")
            if declared:
                ftype = FieldType(declared)
            else:
                ftype = PYTHON_FIELD_TYPES.get(hints.get(f.name))
            if ftype is None:
                raise SchemaMismatchError(
                    f"Field '{f.name}' of {cls.__name__} has no Soufflé type "
                    f"(annotation {hints.get(f.name)!r})"
                )
            specs.append(FieldSpec(f.name, ftype))

        kind = FactKind(
            name=name or _snake_case(cls.__name__),
            fields=tuple(specs),
            direction=direction,
            record_type=cls,
        )
        dataclass_init = cls.__init__

        @functools.wraps(dataclass_init)
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            dataclass_init(self, *args, **kwargs)
            kind.check_values(tuple(getattr(self, col.name) for col in kind.fields))

        cls.__init__ = __init__
        cls.__fact_kind__ = kind
        return cls

    return wrap


def kind_of(fact_value: Any) -> FactKind:
    """
    Return the Fact Kind of a FactInstance or a decorated record.

    Raises:
        SchemaMismatchError: If the value is not a fact
    """
    if isinstance(fact_value, FactInstance):
        return fact_value.kind
    kind = getattr(type(fact_value), "__fact_kind__", None)
    if kind is None:
        raise SchemaMismatchError(
            f"{type(fact_value).__name__} is not a fact record"
        )
    return kind
