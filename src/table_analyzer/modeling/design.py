from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Mapping

import numpy as np

from table_analyzer.core.errors import InvalidTermError
from table_analyzer.core.table import ColumnType, TypedTable
from table_analyzer.modeling.formula import ModelFormula, Term

INTERCEPT = "(Intercept)"


@dataclass
class DesignMatrix:
    matrix: np.ndarray
    response: np.ndarray
    column_names: list[str]
    column_terms: list[str]
    retained_rows: list[int]
    excluded_rows: list[int] = field(default_factory=list)
    reference_levels: dict[str, str] = field(default_factory=dict)
    observed_levels: dict[str, int] = field(default_factory=dict)

    @property
    def shape(self) -> tuple[int, int]:
        return self.matrix.shape

    def term_columns(self) -> dict[str, list[int]]:
        slices: dict[str, list[int]] = {}
        for index, label in enumerate(self.column_terms):
            slices.setdefault(label, []).append(index)
        return slices


class DesignMatrixBuilder:
    """Expand a formula's terms into a numeric design matrix.

    Numeric columns contribute themselves. Categorical columns contribute one
    indicator per non-reference level, and interactions are the row-wise
    products of their factors' expansions. Rows with a missing response or
    predictor value are dropped and listed in ``excluded_rows``.
    """

    def __init__(self, reference_levels: Mapping[str, str] | None = None) -> None:
        self.reference_levels = dict(reference_levels or {})

    def _validate(self, table: TypedTable, formula: ModelFormula) -> None:
        table.require(formula.columns)
        response_type = table.column(formula.response).column_type
        if response_type is not ColumnType.NUMERIC:
            raise InvalidTermError(formula.response, f"the response must be Numeric, not {response_type.value}.")
        for term in formula.terms:
            for name in term.factors:
                if name == formula.response:
                    raise InvalidTermError(term.label, "the response cannot also be a predictor.")
                column = table.column(name)
                if column.column_type not in (ColumnType.NUMERIC, ColumnType.CATEGORICAL):
                    raise InvalidTermError(
                        term.label,
                        f"column '{name}' is {column.column_type.value}; "
                        "convert it with to_categorical or coerce it to Numeric.",
                    )
                if column.column_type is ColumnType.CATEGORICAL and not column.levels:
                    raise InvalidTermError(term.label, f"column '{name}' has no levels.")

    def _reference_for(self, table: TypedTable, name: str) -> str:
        levels = table.column(name).levels or ()
        reference = self.reference_levels.get(name, levels[0])
        if reference not in levels:
            raise InvalidTermError(name, f"reference level {reference!r} is not one of {list(levels)}.")
        return reference

    def _expand_factor(
        self,
        table: TypedTable,
        name: str,
        rows: list[int],
    ) -> tuple[np.ndarray, list[str]]:
        column = table.column(name)
        values = [column.values[row] for row in rows]
        if column.column_type is ColumnType.NUMERIC:
            return np.asarray(values, dtype=np.float64).reshape(-1, 1), [name]
        if column.column_type is ColumnType.CATEGORICAL:
            levels = column.levels or ()
            reference = levels.index(self._reference_for(table, name))
            kept = [index for index in range(len(levels)) if index != reference]
            codes = np.asarray(values, dtype=np.int64)
            block = np.zeros((len(rows), len(kept)), dtype=np.float64)
            for position, index in enumerate(kept):
                block[:, position] = codes == index
            return block, [f"{name}[{levels[index]}]" for index in kept]
        raise ValueError(f"Unsupported column type: {column.column_type}")

    def _expand_term(self, table: TypedTable, term: Term, rows: list[int]) -> tuple[np.ndarray, list[str]]:
        block = np.ones((len(rows), 1), dtype=np.float64)
        names = [""]
        for factor in term.factors:
            factor_block, factor_names = self._expand_factor(table, factor, rows)
            columns = []
            combined = []
            for left_index, left_name in enumerate(names):
                for right_index, right_name in enumerate(factor_names):
                    columns.append(block[:, left_index] * factor_block[:, right_index])
                    combined.append(f"{left_name}:{right_name}" if left_name else right_name)
            block = np.column_stack(columns) if columns else np.empty((len(rows), 0), dtype=np.float64)
            names = combined
        return block, names

    def build(self, table: TypedTable, formula: ModelFormula) -> DesignMatrix:
        self._validate(table, formula)

        used = formula.columns
        retained: list[int] = []
        excluded: list[int] = []
        for row in range(len(table)):
            if any(table.column(name).values[row] is None for name in used):
                excluded.append(row)
            else:
                retained.append(row)

        for name in used:
            column = table.column(name)
            if column.column_type is not ColumnType.NUMERIC:
                continue
            for row in retained:
                if not math.isfinite(column.values[row]):
                    raise InvalidTermError(name, f"row {row} holds non-finite value {column.values[row]!r}.")

        blocks: list[np.ndarray] = []
        column_names: list[str] = []
        column_terms: list[str] = []
        if formula.intercept:
            blocks.append(np.ones((len(retained), 1), dtype=np.float64))
            column_names.append(INTERCEPT)
            column_terms.append(INTERCEPT)
        for term in formula.terms:
            block, names = self._expand_term(table, term, retained)
            blocks.append(block)
            column_names.extend(names)
            column_terms.extend([term.label] * len(names))

        matrix = np.hstack(blocks) if blocks else np.empty((len(retained), 0), dtype=np.float64)
        response_column = table.column(formula.response)
        response = np.asarray([response_column.values[row] for row in retained], dtype=np.float64)

        references: dict[str, str] = {}
        observed: dict[str, int] = {}
        for name in used[1:]:
            column = table.column(name)
            if column.column_type is ColumnType.CATEGORICAL:
                references[name] = self._reference_for(table, name)
                observed[name] = len({column.values[row] for row in retained})

        return DesignMatrix(
            matrix=matrix,
            response=response,
            column_names=column_names,
            column_terms=column_terms,
            retained_rows=retained,
            excluded_rows=excluded,
            reference_levels=references,
            observed_levels=observed,
        )
