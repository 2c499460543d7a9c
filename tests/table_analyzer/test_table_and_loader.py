from __future__ import annotations

from pathlib import Path

import pytest

from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.core.errors import (
    MalformedRowError,
    NotFound,
    ReadFailed,
    TableAnalyzerError,
    UnknownColumnError,
)
from table_analyzer.core.table import Column, ColumnType, TypedTable
from table_analyzer.data.loader import DataLoader
from table_analyzer.io.filesystem import InMemoryFileSystem, LocalFileSystem


def test_parse_infers_numeric_and_text_columns() -> None:
    table = DataLoader().parse("x,y\n1,a\n2,b\n3,a\n", ",")

    assert table.column_names == ["x", "y"]
    assert table.types == {"x": ColumnType.NUMERIC, "y": ColumnType.TEXT}
    assert table.resolved("x") == [1.0, 2.0, 3.0]
    assert table.resolved("y") == ["a", "b", "a"]
    assert len(table) == 3


def test_parse_maps_missing_markers_to_none() -> None:
    table = DataLoader().parse("x,y\n1,\nNA,b\n4.5,c\n")

    assert table.types["x"] is ColumnType.NUMERIC
    assert table.resolved("x") == [1.0, None, 4.5]
    assert table.resolved("y") == [None, "b", "c"]


def test_parse_uses_custom_missing_markers() -> None:
    loader = DataLoader(AnalyzerSettings(missing_markers=["-"]))
    table = loader.parse("x\n1\n-\n")

    assert table.resolved("x") == [1.0, None]


def test_mixed_column_falls_back_to_text() -> None:
    table = DataLoader().parse("code\n10\n2b\n")

    assert table.types["code"] is ColumnType.TEXT
    assert table.resolved("code") == ["10", "2b"]


def test_parse_trims_header_names_and_supports_tabs() -> None:
    table = DataLoader().parse(" a \tb\n1\t2\n", "\t")

    assert table.column_names == ["a", "b"]
    assert table.resolved("b") == [2.0]


def test_short_row_reports_line_number() -> None:
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse("x,y\n1,a\n2\n")

    assert excinfo.value.line_number == 3


def test_row_with_extra_field_reports_line_number() -> None:
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse("x,y\n1,a\n2,b,c\n3,d\n")

    assert excinfo.value.line_number == 3


def test_row_with_many_extra_fields_is_rejected() -> None:
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse("x,y\n1,a\n2,b,c,d\n")

    assert excinfo.value.line_number == 3


def test_duplicate_header_names_are_rejected() -> None:
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse("x, x\n1,2\n")

    assert excinfo.value.line_number == 1


def test_empty_input_is_rejected() -> None:
    with pytest.raises(MalformedRowError):
        DataLoader().parse("\n")


def test_header_only_input_gives_empty_table() -> None:
    table = DataLoader().parse("x,y\n")

    assert len(table) == 0
    assert table.column_names == ["x", "y"]


def test_load_reads_through_filesystem_and_infers_tab_delimiter() -> None:
    filesystem = InMemoryFileSystem({"data.tsv": "g\tv\na\t1\nb\t2\n"})
    table = DataLoader(filesystem=filesystem).load("data.tsv")

    assert table.types == {"g": ColumnType.TEXT, "v": ColumnType.NUMERIC}


def test_load_missing_source_raises_not_found(tmp_path: Path) -> None:
    loader = DataLoader(filesystem=LocalFileSystem(tmp_path))

    with pytest.raises(NotFound):
        loader.load("missing.csv")
    with pytest.raises(FileNotFoundError):
        DataLoader(filesystem=InMemoryFileSystem()).load("missing.csv")


def test_local_filesystem_round_trips_text_and_bytes(tmp_path: Path) -> None:
    (tmp_path / "in.csv").write_text("x\n1\n", encoding="utf-8")
    filesystem = LocalFileSystem(tmp_path)

    filesystem.write("out/figure.png", b"payload")

    assert filesystem.read("in.csv") == "x\n1\n"
    assert (tmp_path / "out" / "figure.png").read_bytes() == b"payload"


def test_table_rejects_mismatched_column_lengths() -> None:
    with pytest.raises(ValueError):
        TypedTable(
            [
                Column("a", ColumnType.NUMERIC, (1.0, 2.0)),
                Column("b", ColumnType.TEXT, ("x",)),
            ]
        )


def test_column_validates_storage_against_type() -> None:
    with pytest.raises(TypeError):
        Column("a", ColumnType.NUMERIC, ("1",))
    with pytest.raises(ValueError):
        Column("g", ColumnType.CATEGORICAL, (0, 3), ("a", "b"))
    with pytest.raises(ValueError):
        Column("t", ColumnType.TEXT, ("a",), ("a",))


def test_table_lookup_and_take() -> None:
    table = TypedTable.from_dict({"x": [1, 2, 3], "y": ["a", "b", None]})

    assert table.types == {"x": ColumnType.NUMERIC, "y": ColumnType.TEXT}
    assert table.take([2, 0]).rows() == [{"x": 3.0, "y": None}, {"x": 1.0, "y": "a"}]
    with pytest.raises(UnknownColumnError):
        table.column("z")


def test_replace_column_checks_length() -> None:
    table = TypedTable.from_dict({"x": [1, 2]})

    with pytest.raises(ValueError):
        table.replace_column(Column("x", ColumnType.NUMERIC, (1.0,)))
    assert table.resolved("x") == [1.0, 2.0]


def test_trailing_empty_field_is_missing_but_absent_field_is_malformed() -> None:
    table = DataLoader().parse("x,y\n1,\n2,b\n")

    assert table.resolved("y") == [None, "b"]
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse("x,y\n1,a\n2\n3,c\n")
    assert excinfo.value.line_number == 3


def test_leading_blank_lines_are_skipped_before_header() -> None:
    table = DataLoader().parse("\n\nx,y\n1,a\n")

    assert table.column_names == ["x", "y"]
    assert table.resolved("y") == ["a"]
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse("\nx,x\n1,2\n")
    assert excinfo.value.line_number == 2


def test_quoted_newlines_keep_physical_line_numbers() -> None:
    table = DataLoader().parse('x,y\n1,"a\nb"\n2,c\n')

    assert table.resolved("y") == ["a\nb", "c"]
    with pytest.raises(MalformedRowError) as excinfo:
        DataLoader().parse('x,y\n1,"a\nb"\n2\n')
    assert excinfo.value.line_number == 4


def test_blank_line_between_rows_is_ignored() -> None:
    table = DataLoader().parse("x,y\n1,a\n\n2,b\n")

    assert table.resolved("x") == [1.0, 2.0]


def test_undecodable_source_raises_read_failed(tmp_path: Path) -> None:
    (tmp_path / "bad.csv").write_bytes(b"x,y\n1,\xff\n")
    loader = DataLoader(filesystem=LocalFileSystem(tmp_path))

    with pytest.raises(ReadFailed) as excinfo:
        loader.load("bad.csv")

    assert isinstance(excinfo.value, TableAnalyzerError)
    assert "bad.csv" in str(excinfo.value)
