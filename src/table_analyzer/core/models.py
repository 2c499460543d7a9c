from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from table_analyzer.checks.diagnostics import Diagnostics
    from table_analyzer.core.table import TypedTable
    from table_analyzer.data.splitter import GroupPartition
    from table_analyzer.modeling.linear_model import LinearModel
    from table_analyzer.plotting.chart_spec import ChartSpec

Severity = Literal["INFO", "WARN", "ERROR"]
SolverName = Literal["qr", "lsqr"]


@dataclass
class Flag:
    code: str
    message: str
    severity: Severity = "WARN"
    stage: str = "unknown"
    variables: list[str] = field(default_factory=list)
    recommendation: str | None = None


@dataclass
class ValidationResult:
    name: str
    passed: bool
    summary: str = ""
    flags: list[Flag] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    assumptions: list[str] = field(default_factory=list)


@dataclass
class AnalysisRequest:
    source_name: str
    delimiter: str | None = None
    categorical_columns: list[str] = field(default_factory=list)
    coercions: dict[str, str] = field(default_factory=dict)
    group_variables: list[str] = field(default_factory=list)
    x: str | None = None
    y: str | None = None
    color: str | None = None
    response: str | None = None
    formula: str | None = None
    terms: list[str] = field(default_factory=list)
    intercept: bool = True
    reference_levels: dict[str, str] = field(default_factory=dict)
    output_prefix: str = "figures"
    run_plots: bool = True
    run_model: bool = True
    chart_title: str | None = None


@dataclass
class FigureArtifact:
    figure_id: str
    name: str
    title: str
    caption: str
    section: str
    size_bytes: int = 0
    tags: list[str] = field(default_factory=list)


@dataclass
class RunResult:
    request: AnalysisRequest
    table: TypedTable | None = None
    partition: GroupPartition | None = None
    charts: list[ChartSpec] = field(default_factory=list)
    figures: list[FigureArtifact] = field(default_factory=list)
    model: LinearModel | None = None
    diagnostics: Diagnostics | None = None
    assumption_validation: ValidationResult | None = None
    flags: list[Flag] = field(default_factory=list)
