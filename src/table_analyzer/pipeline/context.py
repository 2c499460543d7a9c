from __future__ import annotations

from dataclasses import dataclass, field

from table_analyzer.checks.diagnostics import Diagnostics
from table_analyzer.core.models import AnalysisRequest, FigureArtifact, Flag, RunResult, ValidationResult
from table_analyzer.core.table import TypedTable
from table_analyzer.data.splitter import GroupPartition
from table_analyzer.modeling.linear_model import LinearModel
from table_analyzer.plotting.chart_spec import ChartSpec


@dataclass
class PipelineContext:
    request: AnalysisRequest
    table: TypedTable | None = None
    partition: GroupPartition | None = None
    charts: list[ChartSpec] = field(default_factory=list)
    figures: list[FigureArtifact] = field(default_factory=list)
    model: LinearModel | None = None
    diagnostics: Diagnostics | None = None
    assumption_validation: ValidationResult | None = None
    flags: list[Flag] = field(default_factory=list)

    def add_model(self, model: LinearModel) -> None:
        self.model = model
        self.flags.extend(model.flags)

    def add_validation(self, result: ValidationResult) -> None:
        self.assumption_validation = result
        self.flags.extend(result.flags)

    def add_figure(self, chart: ChartSpec, artifact: FigureArtifact) -> None:
        self.charts.append(chart)
        self.figures.append(artifact)

    def to_result(self) -> RunResult:
        return RunResult(
            request=self.request,
            table=self.table,
            partition=self.partition,
            charts=list(self.charts),
            figures=list(self.figures),
            model=self.model,
            diagnostics=self.diagnostics,
            assumption_validation=self.assumption_validation,
            flags=list(self.flags),
        )
