"""Tests for the session-private fact and output files."""

import pytest

from fact_bridge.codec import format_row
from fact_bridge.engine.backend import FactFiles
from fact_bridge.errors import EngineError, SchemaMismatchError
from fact_bridge.schemas import Direction, FactKind
from fact_bridge.testing import Edge

EDGE = Edge.__fact_kind__
NAME = FactKind("name", (("value", "symbol"),), Direction.OUTPUT)
FLAG = FactKind("flag", (), Direction.OUTPUT)
OTHER = FactKind("other", (("x", "symbol"),), Direction.INPUT)


@pytest.fixture
def files(tmp_path):
    files = FactFiles(tmp_path)
    yield files
    files.cleanup()


def write_output(files, kind, rows):
    text = "".join(format_row(row, kind) + "\n" for row in rows)
    files.output_path(kind.name).write_text(text, encoding="utf-8")


class TestReadOutput:
    """Tests for reading relations back from output files."""

    def test_missing_file_is_empty(self, files):
        assert files.read_output(EDGE) == []

    def test_whitespace_symbols_are_rows(self, files):
        rows = [("",), (" ",), ("x",)]
        write_output(files, NAME, rows)
        assert files.read_output(NAME) == rows
        for row in rows:
            assert files.scan_output(NAME, row)

    def test_empty_symbol_pair(self, files):
        rows = [("", ""), (" ", "b")]
        write_output(files, EDGE, rows)
        assert files.read_output(EDGE) == rows
        assert files.scan_output(EDGE, ("", ""))

    def test_blank_lines_skipped_for_pairs(self, files):
        files.output_path("edge").write_text("a\tb\n\nb\tc\n", encoding="utf-8")
        assert files.read_output(EDGE) == [("a", "b"), ("b", "c")]

    def test_nullary_relation(self, files):
        write_output(files, FLAG, [()])
        assert files.read_output(FLAG) == [()]
        assert files.scan_output(FLAG, ())

    def test_crlf_line_endings(self, files):
        files.output_path("edge").write_bytes(b"a\tb\r\n")
        assert files.read_output(EDGE) == [("a", "b")]


class TestAppend:
    """Tests for appending base facts."""

    def test_append_counts_rows(self, files):
        assert files.append({EDGE: [("a", "b"), ("b", "c")], OTHER: [("z",)]}) == 3
        assert files.fact_path("edge").read_text() == "a\tb\nb\tc\n"
        assert files.fact_path("other").read_text() == "z\n"

    def test_rejected_row_writes_nothing(self, files):
        files.ensure_inputs(["edge"])
        with pytest.raises(SchemaMismatchError):
            files.append({EDGE: [("a", "b"), ("c", "x\ty")]})
        assert files.fact_path("edge").read_text() == ""

    def test_write_failure_rolls_back(self, files):
        files.append({EDGE: [("a", "b")]})
        # A directory in place of the second fact file makes its write fail
        files.fact_path("other").mkdir()
        with pytest.raises(EngineError, match="Cannot write facts"):
            files.append({EDGE: [("b", "c")], OTHER: [("z",)]})
        assert files.fact_path("edge").read_text() == "a\tb\n"

    def test_cleanup(self, tmp_path):
        files = FactFiles(tmp_path)
        files.cleanup()
        assert not files.root.exists()
