from __future__ import annotations

import math
from typing import Any

from table_analyzer.checks.diagnostics import Diagnostics
from table_analyzer.core.models import Flag, ValidationResult


class AssumptionChecker:
    """Turn residual diagnostics into review flags. The model itself is never rejected."""

    name = "model-assumptions"
    assumptions = [
        "Residuals are approximately normal.",
        "Residual variance is approximately homogeneous across fitted values.",
        "Residuals are independent (Durbin-Watson screened).",
        "No extreme influence points dominate the fit.",
    ]

    def __init__(self, alpha: float = 0.05) -> None:
        self.alpha = alpha

    def run(self, diagnostics: Diagnostics | None) -> ValidationResult:
        flags: list[Flag] = []
        if diagnostics is None:
            flags.append(
                Flag(
                    code="model_missing",
                    message="Assumption checks skipped because no fitted model was provided.",
                    severity="WARN",
                    stage="assumptions",
                    recommendation="Run the modeling step before assumptions validation.",
                )
            )
            return ValidationResult(
                name=self.name,
                passed=False,
                summary="No model available for assumption checks.",
                flags=flags,
                assumptions=self.assumptions,
            )

        metrics: dict[str, Any] = {"observation_count": len(diagnostics.rows), "assumption_alpha": self.alpha}
        metrics.update(diagnostics.metrics)

        normality = diagnostics.normality
        if not math.isnan(normality.jarque_bera_pvalue):
            metrics["jarque_bera_pvalue"] = normality.jarque_bera_pvalue
            metrics["residual_skew"] = normality.skewness
            metrics["residual_kurtosis"] = normality.kurtosis
            if normality.jarque_bera_pvalue < self.alpha:
                flags.append(
                    Flag(
                        code="residual_non_normality",
                        message=(
                            "Residual normality check failed (Jarque-Bera "
                            f"p={normality.jarque_bera_pvalue:.4g}, alpha={self.alpha:.4g})."
                        ),
                        severity="WARN",
                        stage="assumptions",
                        recommendation="Inspect the Q-Q plot and consider transformations or robust inference.",
                    )
                )
        if normality.shapiro_pvalue is not None:
            metrics["shapiro_pvalue"] = normality.shapiro_pvalue
            if normality.shapiro_pvalue < self.alpha:
                flags.append(
                    Flag(
                        code="residual_non_normality_shapiro",
                        message=(
                            f"Shapiro-Wilk rejects residual normality (p={normality.shapiro_pvalue:.4g})."
                        ),
                        severity="WARN",
                        stage="assumptions",
                    )
                )

        dw_stat = diagnostics.metrics.get("durbin_watson")
        if dw_stat is not None and not math.isnan(dw_stat) and (dw_stat < 1.5 or dw_stat > 2.5):
            flags.append(
                Flag(
                    code="residual_autocorrelation_signal",
                    message=f"Durbin-Watson statistic is {dw_stat:.4g}, outside heuristic [1.5, 2.5].",
                    severity="WARN",
                    stage="assumptions",
                    recommendation="Review observation ordering and dependence structure.",
                )
            )

        high_count = diagnostics.metrics.get("high_cooks_distance_count", 0)
        if high_count > 0:
            threshold = diagnostics.metrics["cooks_distance_threshold"]
            flags.append(
                Flag(
                    code="influential_observations_detected",
                    message=f"{high_count} observations exceed Cook's distance threshold {threshold:.4g}.",
                    severity="WARN",
                    stage="assumptions",
                    recommendation="Inspect influence diagnostics and assess sensitivity to outliers.",
                )
            )

        if diagnostics.metrics.get("df_residual", 1) <= 0:
            flags.append(
                Flag(
                    code="no_residual_degrees_of_freedom",
                    message="Residual diagnostics are undefined without residual degrees of freedom.",
                    severity="ERROR",
                    stage="assumptions",
                    recommendation="Simplify model terms or increase sample size.",
                )
            )

        passed = all(flag.severity != "ERROR" for flag in flags)
        return ValidationResult(
            name=self.name,
            passed=passed,
            summary="Assumption checks completed.",
            flags=flags,
            assumptions=self.assumptions,
            metrics=metrics,
        )
