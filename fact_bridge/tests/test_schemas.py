"""Tests for fact and program schemas."""

import dataclasses

import pytest

from fact_bridge.errors import SchemaMismatchError, UnknownFactError
from fact_bridge.schemas import (
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
from fact_bridge.testing import Edge, Reachable, path_program


def make_kind(name="edge", direction=Direction.INPUT_OUTPUT):
    return FactKind(name, (("src", "symbol"), ("dst", "symbol")), direction)


class TestFieldType:
    """Tests for FieldType.coerce."""

    def test_symbol(self):
        assert FieldType.SYMBOL.coerce("abc") == "abc"
        with pytest.raises(SchemaMismatchError):
            FieldType.SYMBOL.coerce(1)

    def test_number_range(self):
        assert FieldType.NUMBER.coerce(-(2 ** 31)) == -(2 ** 31)
        assert FieldType.NUMBER.coerce(2 ** 31 - 1) == 2 ** 31 - 1
        with pytest.raises(SchemaMismatchError):
            FieldType.NUMBER.coerce(2 ** 31)

    def test_unsigned_range(self):
        assert FieldType.UNSIGNED.coerce(2 ** 32 - 1) == 2 ** 32 - 1
        with pytest.raises(SchemaMismatchError):
            FieldType.UNSIGNED.coerce(-1)

    def test_bool_is_not_a_number(self):
        for ftype in (FieldType.NUMBER, FieldType.UNSIGNED, FieldType.FLOAT):
            with pytest.raises(SchemaMismatchError):
                ftype.coerce(True)

    def test_float_widens_int(self):
        value = FieldType.FLOAT.coerce(3)
        assert value == 3.0
        assert isinstance(value, float)

    def test_float_rejects_string(self):
        with pytest.raises(SchemaMismatchError):
            FieldType.FLOAT.coerce("1.5")


class TestDirection:

    def test_capabilities(self):
        assert Direction.INPUT.can_add and not Direction.INPUT.can_query
        assert Direction.OUTPUT.can_query and not Direction.OUTPUT.can_add
        assert Direction.INPUT_OUTPUT.can_add and Direction.INPUT_OUTPUT.can_query
        assert not Direction.INTERNAL.can_add and not Direction.INTERNAL.can_query


class TestFactKind:
    """Tests for FactKind."""

    def test_fields_normalized(self):
        kind = make_kind()
        assert kind.fields == (
            FieldSpec("src", FieldType.SYMBOL),
            FieldSpec("dst", FieldType.SYMBOL),
        )
        assert kind.arity == 2
        assert kind.field_types == (FieldType.SYMBOL, FieldType.SYMBOL)

    def test_invalid_name(self):
        with pytest.raises(SchemaMismatchError):
            FactKind("not a name", ())

    def test_duplicate_fields(self):
        with pytest.raises(SchemaMismatchError):
            FactKind("pair", (("x", "number"), ("x", "number")))

    def test_equality_ignores_record_type(self):
        assert make_kind("edge", Direction.INPUT) == Edge.__fact_kind__
        assert hash(make_kind("edge", Direction.INPUT)) == hash(Edge.__fact_kind__)

    def test_direction_matters(self):
        assert make_kind(direction=Direction.INPUT) != make_kind(direction=Direction.OUTPUT)

    def test_dict_round_trip(self):
        kind = FactKind("score", (("who", "symbol"), ("points", "float")), Direction.OUTPUT)
        assert FactKind.from_dict(kind.to_dict()) == kind


class TestFactInstance:
    """Tests for FactInstance."""

    def test_call_builds_instance(self):
        edge = make_kind()
        instance = edge("a", "b")
        assert isinstance(instance, FactInstance)
        assert instance.values == ("a", "b")
        assert instance[1] == "b"
        assert instance.as_dict() == {"src": "a", "dst": "b"}
        assert repr(instance) == "edge('a', 'b')"

    def test_checked_at_construction(self):
        edge = make_kind()
        with pytest.raises(SchemaMismatchError):
            edge("a")
        with pytest.raises(SchemaMismatchError, match="dst"):
            edge("a", 2)

    def test_immutable(self):
        instance = make_kind()("a", "b")
        with pytest.raises(dataclasses.FrozenInstanceError):
            instance.values = ("c", "d")

    def test_hashable_and_equal(self):
        edge = make_kind()
        assert edge("a", "b") == edge("a", "b")
        assert len({edge("a", "b"), edge("a", "b")}) == 1


class TestFactDecorator:
    """Tests for the @fact record decorator."""

    def test_record_kind(self):
        kind = Edge.__fact_kind__
        assert kind.name == "edge"
        assert kind.direction == Direction.INPUT
        assert kind.record_type is Edge
        assert kind_of(Edge("a", "b")) is kind

    def test_default_name_is_snake_case(self):
        @fact()
        class ParentOf:
            parent: str
            child: str

        assert ParentOf.__fact_kind__.name == "parent_of"

    def test_types_and_unsigned(self):
        @fact("measure")
        class Measure:
            label: str
            count: int
            size: int = unsigned(default=0)
            ratio: float = 0.0

        assert Measure.__fact_kind__.field_types == (
            FieldType.SYMBOL, FieldType.NUMBER, FieldType.UNSIGNED, FieldType.FLOAT,
        )

    def test_records_checked_at_construction(self):
        assert Edge("a", "b").dst == "b"
        with pytest.raises(SchemaMismatchError, match="dst"):
            Edge("c", 3)
        with pytest.raises(SchemaMismatchError):
            dataclasses.replace(Edge("a", "b"), src=None)

    def test_records_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            Edge("a", "b").src = "c"

    def test_unsupported_annotation(self):
        with pytest.raises(SchemaMismatchError):
            @fact("bad")
            class Bad:
                items: list

    def test_kind_of_rejects_non_facts(self):
        with pytest.raises(SchemaMismatchError):
            kind_of(("a", "b"))


class TestProgram:
    """Tests for Program and declare/contains."""

    def test_declare_and_contains(self):
        registry = ProgramRegistry()
        program = declare("path", [Edge.__fact_kind__, Reachable.__fact_kind__], registry=registry)
        assert contains(program, Edge.__fact_kind__)
        assert contains(program, Reachable.__fact_kind__)
        assert not contains(program, make_kind("other"))
        assert "path" in registry

    def test_contains_requires_same_schema(self):
        program = path_program()
        assert not contains(program, make_kind("edge", Direction.OUTPUT))

    def test_require_unknown(self):
        program = path_program()
        with pytest.raises(UnknownFactError) as exc_info:
            program.require(make_kind("other"))
        assert exc_info.value.kind_name == "other"
        assert exc_info.value.program_name == "path"

    def test_require_mismatched_schema(self):
        program = path_program()
        with pytest.raises(SchemaMismatchError):
            program.require(FactKind("edge", (("src", "number"), ("dst", "number")), Direction.INPUT))

    def test_kind_lookup(self):
        program = path_program()
        assert program.kind("reachable") == Reachable.__fact_kind__
        with pytest.raises(UnknownFactError):
            program.kind("missing")

    def test_directions(self):
        program = path_program()
        assert program.input_kinds == [Edge.__fact_kind__]
        assert program.output_kinds == [Reachable.__fact_kind__]

    def test_duplicate_kind_rejected(self):
        with pytest.raises(SchemaMismatchError):
            Program("dup", (make_kind(), make_kind()))

    def test_redeclare_identical_returns_registered(self):
        registry = ProgramRegistry()
        first = declare("p", [make_kind()], registry=registry)
        second = declare("p", [make_kind()], registry=registry)
        assert second is first

    def test_redeclare_different_kinds_rejected(self):
        registry = ProgramRegistry()
        declare("p", [make_kind()], registry=registry)
        with pytest.raises(SchemaMismatchError):
            declare("p", [make_kind("other")], registry=registry)
        assert registry.get("p").kinds == (make_kind(),)

    def test_registry_names_and_clear(self):
        registry = ProgramRegistry()
        declare("b", [], registry=registry)
        declare("a", [], registry=registry)
        assert registry.names() == ["a", "b"]
        registry.clear()
        assert registry.names() == []

    def test_dict_round_trip(self):
        program = path_program()
        restored = Program.from_dict(program.to_dict())
        assert restored == program
        assert restored.source == program.source
