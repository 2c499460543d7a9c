from __future__ import annotations

import json
from pathlib import Path

import pytest

from table_analyzer.cli.main import build_parser, main


def test_parse_run_all_command() -> None:
    parser = build_parser()
    args = parser.parse_args(
        [
            "run-all",
            "sample.csv",
            "--formula",
            "response ~ arm * dose",
            "--categorical",
            "arm",
            "--group-vars",
            "site",
            "--x",
            "dose",
            "--y",
            "response",
            "--reference",
            "arm=B",
        ]
    )

    assert args.command == "run-all"
    assert args.input == "sample.csv"
    assert args.formula == "response ~ arm * dose"
    assert args.categorical == ["arm"]
    assert args.group_vars == ["site"]
    assert args.reference == ["arm=B"]
    assert args.no_intercept is False


def test_parse_explain_flag() -> None:
    args = build_parser().parse_args(["fit", "sample.csv", "--response", "y", "--explain"])

    assert args.command == "fit"
    assert args.explain is True


def test_plot_requires_both_axes() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["plot", "sample.csv", "--x", "dose"])


def test_ingest_prints_schema(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "data.csv"
    source.write_text("x,y\n1,a\n2,b\n3,a\n", encoding="utf-8")

    code = main(["ingest", str(source), "--categorical", "y"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["rows"] == 3
    assert payload["schema"][1] == {"name": "y", "type": "Categorical", "levels": ["a", "b"], "missing": 0}


def test_group_prints_sizes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "data.csv"
    source.write_text("x,y\n1,a\n2,b\n3,a\n", encoding="utf-8")

    code = main(["group", str(source), "--group-vars", "y"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["groups"] == [{"key": ["a"], "rows": 2}, {"key": ["b"], "rows": 1}]


def test_malformed_input_exits_with_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "bad.csv"
    source.write_text("x,y\n1,a\n2\n", encoding="utf-8")

    code = main(["ingest", str(source)])

    assert code == 2
    assert "line 3" in capsys.readouterr().err


def test_no_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert main([]) == 1
    assert "table-analyzer" in capsys.readouterr().out


def test_undecodable_input_exits_with_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "bad.csv"
    source.write_bytes(b"x,y\n1,\xff\n")

    code = main(["ingest", str(source)])

    assert code == 2
    assert "Could not read source" in capsys.readouterr().err
