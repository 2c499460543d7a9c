from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest
import statsmodels.formula.api as smf
from statsmodels.stats.anova import anova_lm

from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.core.errors import InvalidTermError, NotConverged, SingularDesignError
from table_analyzer.core.table import TypedTable
from table_analyzer.data.coercion import to_categorical
from table_analyzer.modeling.linear_model import LinearModelFitter

GROUPS = ["a", "b", "c", "a", "b", "c", "a", "b", "c", "a", "b", "c"]
X_VALUES = [1.2, 2.4, 0.7, 3.1, 1.9, 2.8, 0.4, 3.6, 1.1, 2.2, 0.9, 3.3]
Y_VALUES = [10.1, 13.4, 11.0, 12.9, 13.2, 14.8, 9.4, 16.1, 11.7, 11.8, 12.0, 15.6]


def _grouped_table() -> TypedTable:
    table = TypedTable.from_dict({"y": Y_VALUES, "g": GROUPS, "x": X_VALUES})
    return to_categorical(table, "g")


def test_fitted_plus_residuals_reproduces_response() -> None:
    model = LinearModelFitter().fit(_grouped_table(), "y", ["g", "x"])

    np.testing.assert_allclose(model.fitted + model.residuals, Y_VALUES, rtol=0, atol=1e-9)
    assert model.rank == 4
    assert model.df_residual == 8
    assert model.n_obs == 12


def test_fit_matches_statsmodels_ols() -> None:
    model = LinearModelFitter().fit_formula(_grouped_table(), "y ~ g + x")
    frame = pd.DataFrame({"y": Y_VALUES, "g": GROUPS, "x": X_VALUES})
    reference = smf.ols("y ~ C(g) + x", data=frame).fit()

    names = {"(Intercept)": "Intercept", "g[b]": "C(g)[T.b]", "g[c]": "C(g)[T.c]", "x": "x"}
    table = {row["term"]: row for row in model.coefficient_table()}
    for ours, theirs in names.items():
        assert table[ours]["estimate"] == pytest.approx(reference.params[theirs], rel=1e-8)
        assert table[ours]["std_error"] == pytest.approx(reference.bse[theirs], rel=1e-8)
        assert table[ours]["p_value"] == pytest.approx(reference.pvalues[theirs], rel=1e-6)

    np.testing.assert_allclose(model.fitted, reference.fittedvalues.to_numpy(), atol=1e-9)
    assert model.r_squared == pytest.approx(reference.rsquared, rel=1e-9)
    assert model.adj_r_squared == pytest.approx(reference.rsquared_adj, rel=1e-9)
    assert model.f_statistic == pytest.approx(reference.fvalue, rel=1e-8)


def test_sequential_anova_matches_statsmodels_type_one() -> None:
    model = LinearModelFitter().fit_formula(_grouped_table(), "y ~ g + x")
    frame = pd.DataFrame({"y": Y_VALUES, "g": GROUPS, "x": X_VALUES})
    reference = anova_lm(smf.ols("y ~ C(g) + x", data=frame).fit(), typ=1)

    rows = {row["term"]: row for row in model.anova_table()}
    assert rows["g"]["df"] == 2
    assert rows["g"]["sum_sq"] == pytest.approx(reference.loc["C(g)", "sum_sq"], rel=1e-8)
    assert rows["x"]["sum_sq"] == pytest.approx(reference.loc["x", "sum_sq"], rel=1e-8)
    assert rows["x"]["f_value"] == pytest.approx(reference.loc["x", "F"], rel=1e-8)
    assert rows["Residuals"]["sum_sq"] == pytest.approx(reference.loc["Residual", "sum_sq"], rel=1e-8)


def test_collinear_predictors_raise_singular_design() -> None:
    table = TypedTable.from_dict(
        {"y": [1.0, 2.5, 2.9, 4.2, 5.1], "x": [1.0, 2.0, 3.0, 4.0, 5.0], "x2": [2.0, 4.0, 6.0, 8.0, 10.0]}
    )

    with pytest.raises(SingularDesignError) as excinfo:
        LinearModelFitter().fit(table, "y", ["x", "x2"])

    assert excinfo.value.rank == 2
    assert excinfo.value.column_count == 3
    assert len(excinfo.value.aliased_columns) == 1
    assert excinfo.value.aliased_columns[0] in {"x", "x2"}


def test_single_observed_level_is_singular() -> None:
    table = TypedTable.from_dict({"y": [1.0, 2.0, 3.0], "g": ["a", "a", "a"]})
    to_categorical(table, "g")

    with pytest.raises(SingularDesignError):
        LinearModelFitter().fit(table, "y", ["g"])


def test_level_lost_to_missing_rows_is_singular() -> None:
    table = TypedTable.from_dict({"y": [1.0, 2.0, None, 4.0], "g": ["a", "a", "b", "a"]})
    to_categorical(table, "g")

    with pytest.raises(SingularDesignError) as excinfo:
        LinearModelFitter().fit(table, "y", ["g"])

    assert excinfo.value.aliased_columns == ["g"]


def test_excluded_rows_are_reported_with_a_flag() -> None:
    table = TypedTable.from_dict(
        {"y": [1.0, 2.1, None, 3.9, 5.2, 6.1], "x": [1.0, 2.0, 3.0, None, 5.0, 6.0]}
    )

    model = LinearModelFitter().fit(table, "y", ["x"])

    assert model.excluded_rows == [2, 3]
    assert model.retained_rows == [0, 1, 4, 5]
    assert model.n_obs == 4
    assert [flag.code for flag in model.flags] == ["rows_excluded_missing"]
    assert model.summary()["excluded_rows"] == [2, 3]


def test_lsqr_solver_matches_qr() -> None:
    table = _grouped_table()
    exact = LinearModelFitter().fit(table, "y", ["g", "x"])
    iterative = LinearModelFitter(AnalyzerSettings(solver="lsqr", max_iterations=200)).fit(table, "y", ["g", "x"])

    np.testing.assert_allclose(iterative.coefficients, exact.coefficients, atol=1e-6)
    assert iterative.solver == "lsqr"
    assert iterative.iterations is not None


def test_lsqr_iteration_limit_raises_not_converged() -> None:
    settings = AnalyzerSettings(solver="lsqr", max_iterations=1)

    with pytest.raises(NotConverged) as excinfo:
        LinearModelFitter(settings).fit(_grouped_table(), "y", ["g", "x"])

    assert excinfo.value.iterations == 1


def test_text_response_is_rejected() -> None:
    table = TypedTable.from_dict({"y": ["a", "b"], "x": [1.0, 2.0]})

    with pytest.raises(InvalidTermError):
        LinearModelFitter().fit(table, "y", ["x"])


def test_empty_model_is_rejected() -> None:
    table = TypedTable.from_dict({"y": [1.0, 2.0]})

    with pytest.raises(InvalidTermError):
        LinearModelFitter().fit(table, "y", [], intercept=False)


def test_intercept_only_model_estimates_the_mean() -> None:
    table = TypedTable.from_dict({"y": [2.0, 4.0, 9.0]})

    model = LinearModelFitter().fit(table, "y")

    assert model.column_names == ["(Intercept)"]
    assert model.coefficients[0] == pytest.approx(5.0)
    assert model.df_model == 0
    assert math.isnan(model.f_statistic)


def test_saturated_model_flags_missing_residual_df() -> None:
    table = TypedTable.from_dict({"y": [1.0, 3.0], "x": [0.0, 1.0]})

    model = LinearModelFitter().fit(table, "y", ["x"])

    assert model.df_residual == 0
    assert math.isnan(model.sigma)
    assert [flag.code for flag in model.flags] == ["model_df_resid_nonpositive"]
    assert model.flags[0].severity == "ERROR"
