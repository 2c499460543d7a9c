from __future__ import annotations

import io
import logging
from typing import Any

from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.plotting.chart_spec import ChartSpec

logger = logging.getLogger(__name__)

_THEME_FACE = {"default": "white", "minimal": "white", "dark": "#2b2b2b"}
_THEME_INK = {"default": "black", "minimal": "#333333", "dark": "#e6e6e6"}


class MatplotlibRenderer:
    """Render chart specifications to image bytes with matplotlib's Agg canvas."""

    def __init__(self, settings: AnalyzerSettings | None = None) -> None:
        self.settings = settings or AnalyzerSettings()

    def _series(self, spec: ChartSpec) -> list[tuple[Any, list[float], list[float]]]:
        xs = spec.data.resolved(spec.bindings.x)
        ys = spec.data.resolved(spec.bindings.y)
        series_column = spec.bindings.series_column
        labels = spec.data.resolved(series_column) if series_column else [None] * len(xs)

        grouped: dict[Any, tuple[list[float], list[float]]] = {}
        for label, x_value, y_value in zip(labels, xs, ys):
            if x_value is None or y_value is None:
                continue
            points = grouped.setdefault(label, ([], []))
            points[0].append(x_value)
            points[1].append(y_value)
        return [(label, points[0], points[1]) for label, points in grouped.items()]

    def _apply_theme(self, fig: Any, ax: Any, theme: str) -> None:
        face, ink = _THEME_FACE[theme], _THEME_INK[theme]
        fig.set_facecolor(face)
        ax.set_facecolor(face)
        ax.tick_params(colors=ink)
        for spine in ax.spines.values():
            spine.set_color(ink)
        ax.xaxis.label.set_color(ink)
        ax.yaxis.label.set_color(ink)
        ax.title.set_color(ink)
        if theme == "minimal":
            ax.spines["top"].set_visible(False)
            ax.spines["right"].set_visible(False)
            ax.grid(True, alpha=0.3)

    def render(self, spec: ChartSpec) -> bytes:
        import matplotlib
        from matplotlib.figure import Figure

        style = spec.style
        fig = Figure(figsize=(style.width, style.height))
        ax = fig.subplots()
        colors = matplotlib.rcParams["axes.prop_cycle"].by_key()["color"]
        ink = _THEME_INK[style.theme]

        series = self._series(spec)
        for index, (label, xs, ys) in enumerate(series):
            color = colors[index % len(colors)]
            name = str(label) if label is not None and spec.bindings.series_column else None
            for geometry in spec.geometries:
                if geometry.kind == "point":
                    ax.scatter(xs, ys, alpha=style.point_alpha, color=color, label=name)
                elif geometry.kind == "line":
                    ordered = sorted(zip(xs, ys))
                    ax.plot([p[0] for p in ordered], [p[1] for p in ordered], color=color, label=name)

        for geometry in spec.geometries:
            if geometry.kind == "hline":
                ax.axhline(y=geometry.option("y"), color=ink, linestyle="--", linewidth=1)
            elif geometry.kind == "abline":
                ax.axline(
                    (0.0, geometry.option("intercept")),
                    slope=geometry.option("slope"),
                    color=ink,
                    linestyle="--",
                    linewidth=1,
                )

        if style.title:
            ax.set_title(style.title)
        ax.set_xlabel(spec.x_label)
        ax.set_ylabel(spec.y_label)
        self._apply_theme(fig, ax, style.theme)
        if style.show_legend and spec.bindings.series_column and series:
            handles, _ = ax.get_legend_handles_labels()
            if handles:
                ax.legend(title=spec.bindings.series_column)
        fig.tight_layout()

        buffer = io.BytesIO()
        fig.savefig(buffer, format=self.settings.figure_format, dpi=self.settings.figure_dpi)
        payload = buffer.getvalue()
        logger.debug("Rendered %s chart (%d bytes)", self.settings.figure_format, len(payload))
        return payload
