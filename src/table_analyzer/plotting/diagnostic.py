from __future__ import annotations

import math

from table_analyzer.checks.diagnostics import Diagnostics
from table_analyzer.core.table import ColumnType, TypedTable
from table_analyzer.plotting.chart_spec import ChannelBindings, ChartBuilder, ChartSpec, ChartStyle, Geometry


class DiagnosticChartBuilder:
    """Chart specifications for residual review."""

    def __init__(self, builder: ChartBuilder | None = None, base_style: ChartStyle | None = None) -> None:
        self.builder = builder or ChartBuilder()
        self.base_style = base_style or ChartStyle()

    def residuals_vs_fitted(self, diagnostics: Diagnostics) -> ChartSpec:
        style = ChartStyle(
            title="Residuals vs Fitted",
            x_label="Fitted values",
            y_label="Residuals",
            theme=self.base_style.theme,
            width=self.base_style.width,
            height=self.base_style.height,
        )
        return self.builder.build(
            diagnostics.residual_table(),
            ChannelBindings(x="fitted", y="residual"),
            ("point", Geometry.hline(0.0)),
            style,
        )

    def normal_qq(self, diagnostics: Diagnostics) -> ChartSpec:
        intercept, slope = diagnostics.qq_line
        geometries: list[Geometry | str] = ["point"]
        if not (math.isnan(intercept) or math.isnan(slope)):
            geometries.append(Geometry.abline(intercept, slope))
        style = ChartStyle(
            title="Normal Q-Q",
            x_label="Theoretical quantiles",
            y_label="Standardized residuals",
            theme=self.base_style.theme,
            width=self.base_style.width,
            height=self.base_style.height,
        )
        return self.builder.build(
            diagnostics.qq_table(),
            ChannelBindings(x="theoretical_quantile", y="sample_quantile"),
            geometries,
            style,
        )

    def observed_vs_fitted(self, diagnostics: Diagnostics) -> ChartSpec:
        observed = [float(f + r) for f, r in zip(diagnostics.fitted, diagnostics.residuals)]
        table = TypedTable.from_dict(
            {"observed": observed, "fitted": [float(value) for value in diagnostics.fitted]},
            types={"observed": ColumnType.NUMERIC, "fitted": ColumnType.NUMERIC},
        )
        style = ChartStyle(
            title="Observed vs Model-Predicted",
            x_label="Observed",
            y_label="Predicted",
            theme=self.base_style.theme,
            width=self.base_style.width,
            height=self.base_style.height,
        )
        return self.builder.build(
            table,
            ChannelBindings(x="observed", y="fitted"),
            ("point", Geometry.abline(0.0, 1.0)),
            style,
        )

    def run(self, diagnostics: Diagnostics) -> dict[str, ChartSpec]:
        return {
            "diagnostic_residuals": self.residuals_vs_fitted(diagnostics),
            "diagnostic_qq": self.normal_qq(diagnostics),
            "comparison_observed_vs_model": self.observed_vs_fitted(diagnostics),
        }
