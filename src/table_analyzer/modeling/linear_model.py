from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
from scipy import stats
from scipy.linalg import qr, solve_triangular
from scipy.sparse.linalg import lsqr

from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.core.errors import InvalidTermError, NotConverged, SingularDesignError
from table_analyzer.core.models import Flag
from table_analyzer.core.table import TypedTable
from table_analyzer.modeling.design import INTERCEPT, DesignMatrix, DesignMatrixBuilder
from table_analyzer.modeling.formula import ModelFormula, Term, parse_formula

logger = logging.getLogger(__name__)

_LSQR_ITERATION_LIMIT = 7


@dataclass
class LinearModel:
    """Ordinary least squares fit over a design matrix."""

    formula: ModelFormula
    design: DesignMatrix
    coefficients: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    leverage: np.ndarray
    unscaled_covariance: np.ndarray
    rank: int
    df_residual: int
    solver: str = "qr"
    iterations: int | None = None
    anova: list[dict[str, Any]] = field(default_factory=list)
    flags: list[Flag] = field(default_factory=list)

    @property
    def response(self) -> str:
        return self.formula.response

    @property
    def terms(self) -> tuple[Term, ...]:
        return self.formula.terms

    @property
    def observed(self) -> np.ndarray:
        return self.design.response

    @property
    def column_names(self) -> list[str]:
        return self.design.column_names

    @property
    def retained_rows(self) -> list[int]:
        return self.design.retained_rows

    @property
    def excluded_rows(self) -> list[int]:
        return self.design.excluded_rows

    @property
    def n_obs(self) -> int:
        return int(self.observed.shape[0])

    @property
    def n_excluded(self) -> int:
        return len(self.design.excluded_rows)

    @property
    def df_model(self) -> int:
        return self.rank - (1 if self.formula.intercept else 0)

    @property
    def rss(self) -> float:
        return float(np.sum(self.residuals**2))

    @property
    def tss(self) -> float:
        if self.formula.intercept:
            return float(np.sum((self.observed - self.observed.mean()) ** 2)) if self.n_obs else 0.0
        return float(np.sum(self.observed**2))

    @property
    def sigma(self) -> float:
        if self.df_residual <= 0:
            return float("nan")
        return math.sqrt(self.rss / self.df_residual)

    @property
    def r_squared(self) -> float:
        return 1.0 - self.rss / self.tss if self.tss > 0 else float("nan")

    @property
    def adj_r_squared(self) -> float:
        if self.df_residual <= 0 or math.isnan(self.r_squared):
            return float("nan")
        base = self.n_obs - (1 if self.formula.intercept else 0)
        return 1.0 - (1.0 - self.r_squared) * base / self.df_residual

    @property
    def f_statistic(self) -> float:
        if self.df_model <= 0 or self.df_residual <= 0 or self.rss == 0:
            return float("nan")
        return ((self.tss - self.rss) / self.df_model) / (self.rss / self.df_residual)

    @property
    def f_pvalue(self) -> float:
        if math.isnan(self.f_statistic):
            return float("nan")
        return float(stats.f.sf(self.f_statistic, self.df_model, self.df_residual))

    def standard_errors(self) -> np.ndarray:
        return self.sigma * np.sqrt(np.diag(self.unscaled_covariance))

    def coefficient_table(self) -> list[dict[str, Any]]:
        errors = self.standard_errors()
        rows = []
        for name, estimate, error in zip(self.column_names, self.coefficients, errors):
            t_value = float(estimate / error) if error > 0 else float("nan")
            p_value = (
                float(2.0 * stats.t.sf(abs(t_value), self.df_residual))
                if not math.isnan(t_value)
                else float("nan")
            )
            rows.append(
                {
                    "term": name,
                    "estimate": float(estimate),
                    "std_error": float(error),
                    "t_value": t_value,
                    "p_value": p_value,
                }
            )
        return rows

    def anova_table(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.anova]

    def fit_statistics(self) -> dict[str, float]:
        return {
            "r_squared": self.r_squared,
            "adj_r_squared": self.adj_r_squared,
            "sigma": self.sigma,
            "f_statistic": self.f_statistic,
            "f_pvalue": self.f_pvalue,
            "df_model": float(self.df_model),
            "df_residual": float(self.df_residual),
            "n_obs": float(self.n_obs),
            "n_excluded": float(self.n_excluded),
        }

    def summary(self) -> dict[str, Any]:
        return {
            "formula": str(self.formula),
            "solver": self.solver,
            "reference_levels": dict(self.design.reference_levels),
            "fit_statistics": self.fit_statistics(),
            "coefficients": self.coefficient_table(),
            "anova": self.anova_table(),
            "excluded_rows": list(self.excluded_rows),
        }


def _residual_sum_of_squares(matrix: np.ndarray, response: np.ndarray) -> float:
    if matrix.shape[1] == 0:
        return float(np.sum(response**2))
    coefficients, *_ = np.linalg.lstsq(matrix, response, rcond=None)
    residuals = response - matrix @ coefficients
    return float(np.sum(residuals**2))


class LinearModelFitter:
    """Fit ordinary least squares models with rank checks and Type I ANOVA."""

    def __init__(self, settings: AnalyzerSettings | None = None) -> None:
        self.settings = settings or AnalyzerSettings()

    def fit(
        self,
        table: TypedTable,
        response: str,
        terms: Iterable[str | Term | Sequence[str]] = (),
        intercept: bool = True,
        reference_levels: Mapping[str, str] | None = None,
    ) -> LinearModel:
        formula = ModelFormula.build(response, terms, intercept=intercept)
        return self.fit_formula(table, formula, reference_levels=reference_levels)

    def fit_formula(
        self,
        table: TypedTable,
        formula: ModelFormula | str,
        reference_levels: Mapping[str, str] | None = None,
    ) -> LinearModel:
        if isinstance(formula, str):
            formula = parse_formula(formula)
        if not formula.terms and not formula.intercept:
            raise InvalidTermError("0", "the model has neither terms nor an intercept.")

        design = DesignMatrixBuilder(reference_levels).build(table, formula)
        flags: list[Flag] = []
        if design.excluded_rows:
            logger.info(
                "Excluded %d of %d rows with missing values from %s",
                len(design.excluded_rows),
                len(table),
                formula,
            )
            flags.append(
                Flag(
                    code="rows_excluded_missing",
                    message=(
                        f"{len(design.excluded_rows)} rows with missing response or predictor values "
                        "were excluded from the fit."
                    ),
                    severity="WARN",
                    stage="modeling",
                    variables=formula.columns,
                    recommendation="Review missingness before interpreting the model.",
                )
            )

        for name, count in design.observed_levels.items():
            if count < 2:
                raise SingularDesignError(
                    rank=0,
                    column_count=design.shape[1],
                    aliased_columns=[name],
                    reason=f"categorical column '{name}' has {count} observed level(s).",
                )

        matrix, response = design.matrix, design.response
        n_rows, n_columns = matrix.shape
        if n_rows == 0:
            raise SingularDesignError(0, n_columns, design.column_names, reason="no complete rows to fit.")

        q_matrix, r_matrix, pivot = qr(matrix, mode="economic", pivoting=True)
        rank = self._rank(r_matrix)
        logger.debug("Design matrix %dx%d has rank %d", n_rows, n_columns, rank)
        if rank < n_columns:
            aliased = [design.column_names[index] for index in pivot[rank:]]
            raise SingularDesignError(rank, n_columns, aliased)

        solver = self.settings.solver
        iterations: int | None = None
        if solver == "qr":
            permuted = solve_triangular(r_matrix, q_matrix.T @ response, lower=False)
            coefficients = np.empty(n_columns, dtype=np.float64)
            coefficients[pivot] = permuted
        elif solver == "lsqr":
            coefficients, iterations = self._solve_iteratively(matrix, response)
        else:
            raise ValueError(f"Unknown solver: {solver!r}")

        r_inverse = solve_triangular(r_matrix, np.eye(n_columns), lower=False)
        unscaled = np.empty((n_columns, n_columns), dtype=np.float64)
        unscaled[np.ix_(pivot, pivot)] = r_inverse @ r_inverse.T

        fitted = matrix @ coefficients
        residuals = response - fitted
        df_residual = n_rows - rank
        if df_residual <= 0:
            flags.append(
                Flag(
                    code="model_df_resid_nonpositive",
                    message="Model residual degrees of freedom are non-positive.",
                    severity="ERROR",
                    stage="modeling",
                    recommendation="Simplify model terms or increase sample size.",
                )
            )

        model = LinearModel(
            formula=formula,
            design=design,
            coefficients=coefficients,
            fitted=fitted,
            residuals=residuals,
            leverage=np.sum(q_matrix**2, axis=1),
            unscaled_covariance=unscaled,
            rank=rank,
            df_residual=df_residual,
            solver=solver,
            iterations=iterations,
            flags=flags,
        )
        model.anova = self._sequential_anova(model)
        return model

    def _rank(self, r_matrix: np.ndarray) -> int:
        diagonal = np.abs(np.diag(r_matrix))
        if diagonal.size == 0 or diagonal[0] == 0:
            return 0
        return int(np.sum(diagonal > self.settings.rank_tolerance * diagonal[0]))

    def _solve_iteratively(self, matrix: np.ndarray, response: np.ndarray) -> tuple[np.ndarray, int]:
        limit = self.settings.max_iterations
        result = lsqr(matrix, response, atol=1e-12, btol=1e-12, iter_lim=limit)
        coefficients, istop, iterations = result[0], int(result[1]), int(result[2])
        if istop == _LSQR_ITERATION_LIMIT:
            raise NotConverged(iterations, "Raise max_iterations or use the 'qr' solver.")
        logger.debug("lsqr stopped with code %d after %d iterations", istop, iterations)
        return np.asarray(coefficients, dtype=np.float64), iterations

    def _sequential_anova(self, model: LinearModel) -> list[dict[str, Any]]:
        design = model.design
        slices = design.term_columns()
        included = list(slices.get(INTERCEPT, []))
        previous = _residual_sum_of_squares(design.matrix[:, included], design.response)

        df_residual = model.df_residual
        residual_mean_square = model.rss / df_residual if df_residual > 0 else float("nan")
        rows: list[dict[str, Any]] = []
        for term in model.terms:
            columns = slices.get(term.label, [])
            included.extend(columns)
            current = _residual_sum_of_squares(design.matrix[:, included], design.response)
            df = len(columns)
            sum_sq = max(previous - current, 0.0)
            mean_sq = sum_sq / df if df else float("nan")
            f_value = mean_sq / residual_mean_square if df and residual_mean_square > 0 else float("nan")
            p_value = float(stats.f.sf(f_value, df, df_residual)) if not math.isnan(f_value) else float("nan")
            rows.append(
                {
                    "term": term.label,
                    "df": df,
                    "sum_sq": sum_sq,
                    "mean_sq": mean_sq,
                    "f_value": f_value,
                    "p_value": p_value,
                }
            )
            previous = current

        rows.append(
            {
                "term": "Residuals",
                "df": df_residual,
                "sum_sq": model.rss,
                "mean_sq": residual_mean_square,
                "f_value": float("nan"),
                "p_value": float("nan"),
            }
        )
        return rows
