from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from table_analyzer.cli.help_text import EXPLANATIONS
from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.core.errors import TableAnalyzerError
from table_analyzer.core.models import AnalysisRequest, RunResult
from table_analyzer.data.coercion import coerce, to_categorical
from table_analyzer.data.loader import DataLoader
from table_analyzer.data.splitter import DataSplitter
from table_analyzer.io.filesystem import LocalFileSystem
from table_analyzer.pipeline.orchestrator import PipelineOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="table-analyzer",
        description="Typed table wrangling, grouped charts and linear models from delimited text.",
    )
    subparsers = parser.add_subparsers(dest="command")

    ingest = subparsers.add_parser("ingest", help="Read a delimited file and report its schema.")
    _add_source_arguments(ingest)

    group = subparsers.add_parser("group", help="Split a table by key columns and report group sizes.")
    _add_source_arguments(group)
    _add_group_arguments(group, required=True)

    plot = subparsers.add_parser("plot", help="Write point charts, one per group when grouped.")
    _add_source_arguments(plot)
    _add_group_arguments(plot, required=False)
    _add_plot_arguments(plot, required=True)

    fit = subparsers.add_parser("fit", help="Fit a linear model and print coefficients and diagnostics.")
    _add_source_arguments(fit)
    _add_model_arguments(fit)

    run_all = subparsers.add_parser("run-all", help="Execute the full pipeline.")
    _add_source_arguments(run_all)
    _add_group_arguments(run_all, required=False)
    _add_plot_arguments(run_all, required=False)
    _add_model_arguments(run_all)

    return parser


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", type=str, help="Path to the delimited input file.")
    parser.add_argument(
        "--delimiter",
        type=str,
        default=None,
        help="Field delimiter. Defaults to tab for .tsv/.tab files, otherwise the configured delimiter.",
    )
    parser.add_argument("--config", type=str, help="Path to a settings YAML file.")
    parser.add_argument(
        "--categorical",
        nargs="*",
        default=[],
        help="Columns to convert to Categorical after ingest.",
    )
    parser.add_argument(
        "--coerce",
        nargs="*",
        default=[],
        metavar="COLUMN=TYPE",
        help="Explicit coercions, e.g. year=Numeric when=Temporal.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING). Defaults to the configured level.",
    )
    parser.add_argument("--explain", action="store_true", help="Show assumptions and method context.")


def _add_group_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument(
        "--group-vars",
        nargs="+" if required else "*",
        required=required,
        default=[],
        help="Key columns used to split the table.",
    )


def _add_plot_arguments(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument("--x", type=str, required=required, help="Numeric column for the x axis.")
    parser.add_argument("--y", type=str, required=required, help="Numeric column for the y axis.")
    parser.add_argument("--color", type=str, default=None, help="Column mapped to point color.")
    parser.add_argument("--title", type=str, default=None, help="Chart title.")
    parser.add_argument(
        "--output-dir",
        type=str,
        default="output/table_analyzer",
        help="Directory for rendered figures.",
    )


def _add_model_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--formula", type=str, default=None, help="Model formula, e.g. 'y ~ a * b'.")
    parser.add_argument("--response", type=str, default=None, help="Numeric response column.")
    parser.add_argument(
        "--terms",
        nargs="*",
        default=[],
        help="Predictor terms; use a:b for interactions.",
    )
    parser.add_argument("--no-intercept", action="store_true", help="Suppress the intercept column.")
    parser.add_argument(
        "--reference",
        nargs="*",
        default=[],
        metavar="COLUMN=LEVEL",
        help="Reference level overrides for categorical terms.",
    )


def _parse_pairs(parser: argparse.ArgumentParser, values: list[str], option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for value in values:
        name, separator, target = value.partition("=")
        if not separator or not name or not target:
            parser.error(f"{option} expects COLUMN=VALUE, got {value!r}")
        pairs[name] = target
    return pairs


def _build_request(
    parser: argparse.ArgumentParser,
    args: argparse.Namespace,
    *,
    run_plots: bool,
    run_model: bool,
) -> AnalysisRequest:
    return AnalysisRequest(
        source_name=str(Path(args.input).resolve()),
        delimiter=args.delimiter,
        categorical_columns=args.categorical or [],
        coercions=_parse_pairs(parser, args.coerce or [], "--coerce"),
        group_variables=getattr(args, "group_vars", None) or [],
        x=getattr(args, "x", None),
        y=getattr(args, "y", None),
        color=getattr(args, "color", None),
        response=getattr(args, "response", None),
        formula=getattr(args, "formula", None),
        terms=getattr(args, "terms", None) or [],
        intercept=not getattr(args, "no_intercept", False),
        reference_levels=_parse_pairs(parser, getattr(args, "reference", None) or [], "--reference"),
        run_plots=run_plots,
        run_model=run_model,
        chart_title=getattr(args, "title", None),
    )


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _print_explain(command: str | None) -> bool:
    if not command:
        return False
    explanation = EXPLANATIONS.get(command)
    if explanation is None:
        return False
    print(explanation)
    return True


def _model_payload(result: RunResult) -> dict[str, Any]:
    return {
        "model": result.model.summary() if result.model else None,
        "diagnostics": result.diagnostics.to_dict() if result.diagnostics else None,
        "assumptions_passed": result.assumption_validation.passed if result.assumption_validation else None,
        "flags": [asdict(flag) for flag in result.flags],
    }


def _run(parser: argparse.ArgumentParser, args: argparse.Namespace, settings: AnalyzerSettings) -> int:
    if args.command in {"ingest", "group"}:
        request = _build_request(parser, args, run_plots=False, run_model=False)
        loader = DataLoader(settings, LocalFileSystem())
        table = loader.load(request.source_name, request.delimiter)
        for column in request.categorical_columns:
            to_categorical(table, column)
        for column, target in request.coercions.items():
            coerce(table, column, target, temporal_format=settings.temporal_format)

        if args.command == "ingest":
            _print_json({"rows": len(table), "columns": len(table.column_names), "schema": table.schema()})
            return 0

        partition = DataSplitter().group_by(table, request.group_variables)
        _print_json(
            {
                "key_columns": partition.key_columns,
                "groups": [{"key": list(key), "rows": size} for key, size in partition.sizes().items()],
            }
        )
        return 0

    run_plots = args.command in {"plot", "run-all"}
    run_model = args.command in {"fit", "run-all"}
    request = _build_request(parser, args, run_plots=run_plots, run_model=run_model)
    if run_model and not (request.formula or request.response):
        parser.error("fitting needs --formula or --response")

    output_dir = Path(getattr(args, "output_dir", None) or ".")
    orchestrator = PipelineOrchestrator(settings=settings, filesystem=LocalFileSystem(output_dir))
    result = orchestrator.run(request)

    payload: dict[str, Any] = {"figures": [str(output_dir / figure.name) for figure in result.figures]}
    if run_model:
        payload.update(_model_payload(result))
    _print_json(payload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.explain:
        _print_explain(args.command)
        return 0

    settings = AnalyzerSettings.from_yaml(Path(args.config) if args.config else None)
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return _run(parser, args, settings)
    except TableAnalyzerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
