from __future__ import annotations

import numpy as np
import pytest

from table_analyzer.checks.assumptions import AssumptionChecker
from table_analyzer.checks.diagnostics import diagnose, plotting_positions
from table_analyzer.core.table import ColumnType, TypedTable
from table_analyzer.modeling.linear_model import LinearModelFitter


def _model(y_values: list[float]):
    x_values = [float(index) for index in range(len(y_values))]
    table = TypedTable.from_dict({"y": y_values, "x": x_values})
    return LinearModelFitter().fit(table, "y", ["x"])


def test_plotting_positions_use_small_sample_offset() -> None:
    small = plotting_positions(4)
    large = plotting_positions(20)

    np.testing.assert_allclose(small, [(i - 0.375) / 4.25 for i in range(1, 5)])
    np.testing.assert_allclose(large, [(i - 0.5) / 20 for i in range(1, 21)])
    assert plotting_positions(0).size == 0


def test_diagnostics_pair_every_retained_row() -> None:
    model = _model([1.1, 1.9, 3.2, 3.8, 5.3, 5.9, 7.1, 8.2])

    diagnostics = diagnose(model)

    assert diagnostics.rows == list(range(8))
    assert len(diagnostics.residual_fitted_pairs) == 8
    np.testing.assert_allclose(diagnostics.residuals, model.residuals)
    assert diagnostics.sample_quantiles.size == 8
    assert np.all(np.diff(diagnostics.sample_quantiles) >= 0)
    assert diagnostics.normality.shapiro_pvalue is not None
    assert "durbin_watson" in diagnostics.metrics


def test_residual_and_qq_tables_are_numeric() -> None:
    diagnostics = diagnose(_model([1.1, 1.9, 3.2, 3.8, 5.3, 5.9]))

    residuals = diagnostics.residual_table()
    qq = diagnostics.qq_table()

    assert set(residuals.types.values()) == {ColumnType.NUMERIC}
    assert residuals.column_names == ["row", "fitted", "residual", "standardized_residual", "cooks_distance"]
    assert len(qq) == 6
    payload = diagnostics.to_dict()
    assert payload["n"] == 6
    assert payload["qq_line"]["slope"] > 0


def test_diagnose_does_not_refit() -> None:
    model = _model([1.0, 2.2, 2.9, 4.1, 5.0])
    coefficients = model.coefficients.copy()

    diagnose(model)

    np.testing.assert_array_equal(model.coefficients, coefficients)


def test_clean_fit_passes_assumption_checks() -> None:
    model = _model([1.1, 1.9, 3.2, 3.8, 5.3, 5.9, 7.1, 8.2, 8.8, 10.2])

    result = AssumptionChecker().run(diagnose(model))

    assert result.passed is True
    assert result.metrics["observation_count"] == 10


def test_outlier_is_flagged_but_model_is_kept() -> None:
    y_values = [float(index) + (0.05 if index % 2 else -0.05) for index in range(30)]
    y_values[15] += 25.0
    diagnostics = diagnose(_model(y_values))

    result = AssumptionChecker(alpha=0.05).run(diagnostics)
    codes = {flag.code for flag in result.flags}

    assert "residual_non_normality" in codes
    assert "influential_observations_detected" in codes
    assert result.passed is True


def test_missing_model_is_reported() -> None:
    result = AssumptionChecker().run(None)

    assert result.passed is False
    assert result.flags[0].code == "model_missing"


@pytest.mark.parametrize("alpha", [0.01, 0.05])
def test_alpha_is_recorded(alpha: float) -> None:
    result = AssumptionChecker(alpha=alpha).run(diagnose(_model([1.0, 2.1, 2.9, 4.2, 4.8])))

    assert result.metrics["assumption_alpha"] == alpha
