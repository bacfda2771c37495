"""Program descriptors and the process-wide program registry."""

import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ..errors import SchemaMismatchError, UnknownFactError
from .facts import FactKind


@dataclass(frozen=True)
class Program:
    """
    A Datalog ruleset and the Fact Kinds it declares.

    Attributes:
        name: Program name; the source file is ``<name>.dl`` unless
            ``source`` is given
        kinds: Declared Fact Kinds, in declaration order
        source: Optional inline Datalog source
    """
    name: str
    kinds: tuple[FactKind, ...]
    source: Optional[str] = field(default=None, compare=False, repr=False)
    _by_name: dict = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self):
        kinds = tuple(self.kinds)
        by_name = {}
        for kind in kinds:
            if not isinstance(kind, FactKind):
                raise SchemaMismatchError(
                    f"Program '{self.name}' got a non-FactKind: {kind!r}"
                )
            if kind.name in by_name:
                raise SchemaMismatchError(
                    f"Program '{self.name}' declares fact '{kind.name}' twice"
                )
            by_name[kind.name] = kind
        object.__setattr__(self, "kinds", kinds)
        object.__setattr__(self, "_by_name", by_name)

    def contains(self, kind: FactKind) -> bool:
        """Check if this exact Fact Kind is declared by the program."""
        return self._by_name.get(kind.name) == kind

    def require(self, kind: FactKind) -> FactKind:
        """
        Ensure a Fact Kind belongs to this program.

        Raises:
            UnknownFactError: If no kind with that name is declared
            SchemaMismatchError: If the name is declared with another schema
        """
        declared = self._by_name.get(kind.name)
        if declared is None:
            raise UnknownFactError(kind.name, self.name)
        if declared != kind:
            raise SchemaMismatchError(
                f"Fact '{kind.name}' does not match its declaration in "
                f"program '{self.name}'"
            )
        return declared

    def kind(self, name: str) -> FactKind:
        """Look up a declared Fact Kind by name."""
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownFactError(name, self.name) from None

    @property
    def input_kinds(self) -> list[FactKind]:
        return [k for k in self.kinds if k.direction.can_add]

    @property
    def output_kinds(self) -> list[FactKind]:
        return [k for k in self.kinds if k.direction.can_query]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "kinds": [k.to_dict() for k in self.kinds],
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Program":
        """Create from dictionary."""
        return cls(
            name=data["name"],
            kinds=tuple(FactKind.from_dict(k) for k in data.get("kinds", [])),
            source=data.get("source"),
        )


class ProgramRegistry:
    """
    Registry of declared programs.

    A program's Fact Kind set is fixed once registered: declaring the same
    name again is allowed only with an identical set.
    """

    def __init__(self):
        self._programs: dict[str, Program] = {}
        self._lock = threading.Lock()

    def register(self, program: Program) -> Program:
        """
        Register a program, or return the identical one already registered.

        Raises:
            SchemaMismatchError: If the name is registered with other kinds
        """
        with self._lock:
            existing = self._programs.get(program.name)
            if existing is None:
                self._programs[program.name] = program
                return program
            if existing.kinds != program.kinds:
                raise SchemaMismatchError(
                    f"Program '{program.name}' is already declared with "
                    f"different facts"
                )
            return existing

    def get(self, name: str) -> Program | None:
        return self._programs.get(name)

    def names(self) -> list[str]:
        return sorted(self._programs)

    def clear(self) -> None:
        with self._lock:
            self._programs.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._programs


default_registry = ProgramRegistry()


def declare(
    name: str,
    kinds: Iterable[FactKind],
    source: Optional[str] = None,
    registry: Optional[ProgramRegistry] = None,
) -> Program:
    """
    Declare a program and the Fact Kinds it uses.

    Args:
        name: Program name
        kinds: Fact Kinds declared by the program
        source: Optional inline Datalog source
        registry: Registry to use (defaults to the process-wide one)

    Returns:
        The registered Program
    """
    registry = registry or default_registry
    return registry.register(Program(name=name, kinds=tuple(kinds), source=source))


def contains(program: Program, kind: FactKind) -> bool:
    """Check if a program declares a Fact Kind."""
    return program.contains(kind)
