"""Query layer: read-only views of a session's relations."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterator, Optional

from .codec import decode, encode
from .errors import SchemaMismatchError
from .schemas.facts import FactKind

if TYPE_CHECKING:
    from .engine.session import Session


def as_kind(kind: Any) -> FactKind:
    """Accept a FactKind or a class decorated with ``@fact``."""
    if isinstance(kind, FactKind):
        return kind
    declared = getattr(kind, "__fact_kind__", None)
    if declared is None:
        raise SchemaMismatchError(f"{kind!r} is not a Fact Kind")
    return declared


@dataclass(frozen=True)
class RelationSnapshot:
    """
    Contents of one relation at a point in time.

    A snapshot does not change when the session runs again. Order follows
    the engine's output and carries no meaning; compare with ``to_set()``.

    Attributes:
        kind: The relation's Fact Kind
        facts: Decoded facts
        taken_at: When the snapshot was read
    """
    kind: FactKind
    facts: tuple
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _rows: frozenset = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "facts", tuple(self.facts))
        object.__setattr__(self, "_rows", frozenset(encode(f) for f in self.facts))

    @classmethod
    def from_rows(
        cls,
        kind: FactKind,
        rows: list[tuple],
        taken_at: Optional[datetime] = None,
    ) -> "RelationSnapshot":
        """Build a snapshot from primitive tuples."""
        facts = tuple(decode(row, kind) for row in rows)
        if taken_at is None:
            return cls(kind=kind, facts=facts)
        return cls(kind=kind, facts=facts, taken_at=taken_at)

    def __len__(self) -> int:
        return len(self.facts)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.facts)

    def __contains__(self, fact: Any) -> bool:
        try:
            return encode(fact) in self._rows
        except SchemaMismatchError:
            return False

    def rows(self) -> list[tuple]:
        """Primitive tuples, sorted for stable comparison and storage."""
        return sorted(self._rows, key=repr)

    def to_set(self) -> frozenset:
        """The facts as a set of primitive tuples."""
        return self._rows


def snapshots_equal(a: RelationSnapshot, b: RelationSnapshot) -> bool:
    """Order-independent comparison of two snapshots of the same relation."""
    return a.kind == b.kind and a.to_set() == b.to_set()


def get_facts(session: "Session", kind: Any) -> RelationSnapshot:
    """
    Read every fact of a relation.

    Args:
        session: A ready session
        kind: FactKind or ``@fact`` record class of a queryable relation

    Returns:
        A RelationSnapshot (empty before the first run)

    Raises:
        InvalidStateError: The session is not ready
        UnknownFactError: The kind is not declared by the session's program
        FactDirectionError: The kind is not queryable
    """
    kind, rows = session.read_relation(kind)
    return RelationSnapshot.from_rows(kind, rows)


def find_fact(session: "Session", fact: Any) -> Optional[Any]:
    """
    Look up one fact without decoding the whole relation.

    Returns:
        The fact as stored by the engine, or None if absent

    Raises:
        InvalidStateError: The session is not ready
        UnknownFactError: The fact's kind is not declared by the program
        FactDirectionError: The kind is not queryable
    """
    kind, row, found = session.has_row(fact)
    if not found:
        return None
    return decode(row, kind)
