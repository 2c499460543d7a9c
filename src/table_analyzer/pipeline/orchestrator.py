from __future__ import annotations

import logging

from table_analyzer.checks.assumptions import AssumptionChecker
from table_analyzer.checks.diagnostics import diagnose
from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.core.models import AnalysisRequest, FigureArtifact, RunResult
from table_analyzer.data.coercion import coerce, to_categorical
from table_analyzer.data.loader import DataLoader
from table_analyzer.data.splitter import DataSplitter
from table_analyzer.io.filesystem import FileSystemProvider, LocalFileSystem
from table_analyzer.modeling.linear_model import LinearModel, LinearModelFitter
from table_analyzer.pipeline.context import PipelineContext
from table_analyzer.plotting.chart_spec import ChannelBindings, ChartBuilder, ChartSpec, ChartStyle
from table_analyzer.plotting.diagnostic import DiagnosticChartBuilder
from table_analyzer.plotting.renderer import MatplotlibRenderer

logger = logging.getLogger(__name__)

_CAPTIONS = {
    "diagnostic_residuals": ("Residuals vs Fitted", "Diagnostic residual plot for model quality review."),
    "diagnostic_qq": ("Normal Q-Q", "Standardized residuals against theoretical normal quantiles."),
    "comparison_observed_vs_model": (
        "Observed vs Model-Predicted",
        "Comparison of raw response values against model predictions.",
    ),
}


class PipelineOrchestrator:
    """Run ingest, conversion, grouping, charting and modeling for one request."""

    def __init__(
        self,
        settings: AnalyzerSettings | None = None,
        filesystem: FileSystemProvider | None = None,
        loader: DataLoader | None = None,
        splitter: DataSplitter | None = None,
        chart_builder: ChartBuilder | None = None,
        renderer: MatplotlibRenderer | None = None,
        fitter: LinearModelFitter | None = None,
        assumption_checker: AssumptionChecker | None = None,
    ) -> None:
        self.settings = settings or AnalyzerSettings()
        self.filesystem = filesystem or LocalFileSystem()
        self.loader = loader or DataLoader(self.settings, self.filesystem)
        self.splitter = splitter or DataSplitter()
        self.chart_builder = chart_builder or ChartBuilder()
        self.renderer = renderer or MatplotlibRenderer(self.settings)
        self.fitter = fitter or LinearModelFitter(self.settings)
        self.assumption_checker = assumption_checker or AssumptionChecker(self.settings.assumption_alpha)

    def _base_style(self, title: str | None = None) -> ChartStyle:
        return ChartStyle(
            title=title,
            theme=self.settings.theme,
            width=self.settings.figure_width,
            height=self.settings.figure_height,
        )

    def _emit(
        self,
        context: PipelineContext,
        chart: ChartSpec,
        figure_id: str,
        title: str,
        caption: str,
        section: str,
        tags: list[str],
    ) -> None:
        name = f"{context.request.output_prefix}/{figure_id}.{self.settings.figure_format}"
        payload = self.renderer.render(chart)
        self.filesystem.write(name, payload)
        context.add_figure(
            chart,
            FigureArtifact(
                figure_id=figure_id,
                name=name,
                title=title,
                caption=caption,
                section=section,
                size_bytes=len(payload),
                tags=tags,
            ),
        )

    def fit_model(self, context: PipelineContext) -> LinearModel | None:
        request = context.request
        if context.table is None:
            raise ValueError("fit_model needs a loaded table.")
        if request.formula:
            return self.fitter.fit_formula(context.table, request.formula, request.reference_levels)
        if request.response:
            return self.fitter.fit(
                context.table,
                request.response,
                request.terms,
                intercept=request.intercept,
                reference_levels=request.reference_levels,
            )
        return None

    def run(self, request: AnalysisRequest) -> RunResult:
        context = PipelineContext(request=request)

        table = self.loader.load(request.source_name, request.delimiter)
        for column in request.categorical_columns:
            to_categorical(table, column)
        for column, target in request.coercions.items():
            coerce(table, column, target, temporal_format=self.settings.temporal_format)
        context.table = table

        partition = self.splitter.group_by(table, request.group_variables)
        context.partition = partition
        logger.info("Split %s into %d groups by %s", request.source_name, len(partition), request.group_variables)

        if request.run_plots and request.x and request.y:
            bindings = ChannelBindings(x=request.x, y=request.y, color=request.color)
            style = self._base_style(request.chart_title)
            if request.group_variables:
                charts = self.chart_builder.build_grouped(partition, bindings, ("point",), style)
                for index, (key, chart) in enumerate(charts.items(), start=1):
                    label = ", ".join(str(part) for part in key)
                    self._emit(
                        context,
                        chart,
                        figure_id=f"group_{index:02d}",
                        title=chart.style.title or label,
                        caption=f"{request.y} against {request.x} for group {label}.",
                        section="groups",
                        tags=["group", "scatter"],
                    )
            else:
                chart = self.chart_builder.build(table, bindings, ("point",), style)
                self._emit(
                    context,
                    chart,
                    figure_id="scatter",
                    title=request.chart_title or f"{request.y} vs {request.x}",
                    caption=f"{request.y} against {request.x}.",
                    section="figures",
                    tags=["scatter"],
                )

        if request.run_model:
            model = self.fit_model(context)
            if model is not None:
                context.add_model(model)
                context.diagnostics = diagnose(model)
                context.add_validation(self.assumption_checker.run(context.diagnostics))
                if request.run_plots:
                    diagnostic_charts = DiagnosticChartBuilder(self.chart_builder, self._base_style())
                    for figure_id, chart in diagnostic_charts.run(context.diagnostics).items():
                        title, caption = _CAPTIONS[figure_id]
                        self._emit(
                            context,
                            chart,
                            figure_id=figure_id,
                            title=title,
                            caption=caption,
                            section="assumptions",
                            tags=["diagnostic", "model-fit"],
                        )

        return context.to_result()
