from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from scipy import stats
from statsmodels.stats.stattools import durbin_watson, jarque_bera

from table_analyzer.core.table import ColumnType, TypedTable
from table_analyzer.modeling.linear_model import LinearModel

SHAPIRO_MIN_N = 3
SHAPIRO_MAX_N = 5000


@dataclass
class NormalitySummary:
    n: int
    skewness: float = float("nan")
    kurtosis: float = float("nan")
    jarque_bera_stat: float = float("nan")
    jarque_bera_pvalue: float = float("nan")
    shapiro_stat: float | None = None
    shapiro_pvalue: float | None = None
    qq_correlation: float = float("nan")


@dataclass
class Diagnostics:
    """Residual data derived from a fitted model, for human or rule-based review."""

    rows: list[int]
    fitted: np.ndarray
    residuals: np.ndarray
    standardized_residuals: np.ndarray
    theoretical_quantiles: np.ndarray
    sample_quantiles: np.ndarray
    qq_line: tuple[float, float]
    normality: NormalitySummary
    cooks_distance: np.ndarray
    leverage: np.ndarray
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def residual_fitted_pairs(self) -> list[tuple[float, float]]:
        return [(float(f), float(r)) for f, r in zip(self.fitted, self.residuals)]

    def residual_table(self) -> TypedTable:
        return TypedTable.from_dict(
            {
                "row": [float(row) for row in self.rows],
                "fitted": [float(value) for value in self.fitted],
                "residual": [float(value) for value in self.residuals],
                "standardized_residual": [_optional(value) for value in self.standardized_residuals],
                "cooks_distance": [_optional(value) for value in self.cooks_distance],
            },
            types={
                "row": ColumnType.NUMERIC,
                "fitted": ColumnType.NUMERIC,
                "residual": ColumnType.NUMERIC,
                "standardized_residual": ColumnType.NUMERIC,
                "cooks_distance": ColumnType.NUMERIC,
            },
        )

    def qq_table(self) -> TypedTable:
        return TypedTable.from_dict(
            {
                "theoretical_quantile": [float(value) for value in self.theoretical_quantiles],
                "sample_quantile": [float(value) for value in self.sample_quantiles],
            },
            types={
                "theoretical_quantile": ColumnType.NUMERIC,
                "sample_quantile": ColumnType.NUMERIC,
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "n": len(self.rows),
            "qq_line": {"intercept": self.qq_line[0], "slope": self.qq_line[1]},
            "normality": {
                key: (None if isinstance(value, float) and math.isnan(value) else value)
                for key, value in self.normality.__dict__.items()
            },
            "metrics": dict(self.metrics),
        }


def _optional(value: float) -> float | None:
    return None if not np.isfinite(value) else float(value)


def plotting_positions(n: int) -> np.ndarray:
    """Probability points for a normal Q-Q plot of ``n`` sorted values."""
    if n <= 0:
        return np.empty(0, dtype=np.float64)
    offset = 3.0 / 8.0 if n <= 10 else 0.5
    ranks = np.arange(1, n + 1, dtype=np.float64)
    return (ranks - offset) / (n + 1 - 2 * offset)


def _qq_reference_line(sample: np.ndarray) -> tuple[float, float]:
    if sample.size < 2:
        return float("nan"), float("nan")
    first, third = np.quantile(sample, [0.25, 0.75])
    normal_first, normal_third = stats.norm.ppf([0.25, 0.75])
    slope = float((third - first) / (normal_third - normal_first))
    return float(first - slope * normal_first), slope


def _normality_summary(sample: np.ndarray, theoretical: np.ndarray) -> NormalitySummary:
    summary = NormalitySummary(n=int(sample.size))
    if sample.size >= 2 and float(np.ptp(sample)) > 0:
        jb_stat, jb_pvalue, skewness, kurtosis = jarque_bera(sample)
        summary.jarque_bera_stat = float(jb_stat)
        summary.jarque_bera_pvalue = float(jb_pvalue)
        summary.skewness = float(skewness)
        summary.kurtosis = float(kurtosis)
        summary.qq_correlation = float(np.corrcoef(np.sort(sample), theoretical)[0, 1])
        if SHAPIRO_MIN_N <= sample.size <= SHAPIRO_MAX_N:
            shapiro = stats.shapiro(sample)
            summary.shapiro_stat = float(shapiro.statistic)
            summary.shapiro_pvalue = float(shapiro.pvalue)
    return summary


def diagnose(model: LinearModel) -> Diagnostics:
    """Residual-vs-fitted and normality data for ``model``. Never refits."""
    fitted = np.asarray(model.fitted, dtype=np.float64)
    residuals = np.asarray(model.residuals, dtype=np.float64)
    leverage = np.asarray(model.leverage, dtype=np.float64)

    sigma = model.sigma
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = sigma * np.sqrt(1.0 - leverage)
        standardized = np.where(scale > 0, residuals / scale, np.nan)
        cooks = np.where(
            leverage < 1.0,
            standardized**2 * leverage / ((1.0 - leverage) * max(model.rank, 1)),
            np.nan,
        )

    finite = standardized[np.isfinite(standardized)]
    sample = np.sort(finite)
    theoretical = stats.norm.ppf(plotting_positions(sample.size))

    metrics: dict[str, Any] = {
        "residual_mean": float(residuals.mean()) if residuals.size else float("nan"),
        "residual_std": float(residuals.std(ddof=1)) if residuals.size > 1 else float("nan"),
        "sigma": sigma,
        "df_residual": model.df_residual,
        "excluded_rows": model.n_excluded,
        "max_leverage": float(leverage.max()) if leverage.size else float("nan"),
    }
    if residuals.size >= 2:
        metrics["durbin_watson"] = float(durbin_watson(residuals))
    finite_cooks = cooks[np.isfinite(cooks)]
    if finite_cooks.size:
        threshold = 4.0 / max(int(residuals.size), 1)
        metrics["cooks_distance_threshold"] = threshold
        metrics["high_cooks_distance_count"] = int((finite_cooks > threshold).sum())

    return Diagnostics(
        rows=list(model.retained_rows),
        fitted=fitted,
        residuals=residuals,
        standardized_residuals=standardized,
        theoretical_quantiles=theoretical,
        sample_quantiles=sample,
        qq_line=_qq_reference_line(sample),
        normality=_normality_summary(sample, theoretical),
        cooks_distance=cooks,
        leverage=leverage,
        metrics=metrics,
    )
