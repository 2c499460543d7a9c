from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Sequence

import numpy as np
import pandas as pd

from table_analyzer.core.errors import TypeCoercionError
from table_analyzer.core.table import Column, ColumnType, TypedTable

LevelOrder = Literal["sorted", "appearance"]


def format_value(value: Any, column_type: ColumnType) -> str:
    """Canonical text form of a stored value, used for levels and Text conversion."""
    if column_type is ColumnType.NUMERIC:
        numeric = float(value)
        if numeric.is_integer() and abs(numeric) < 1e15:
            return str(int(numeric))
        return repr(numeric)
    if column_type is ColumnType.TEMPORAL:
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0) and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if column_type in (ColumnType.TEXT, ColumnType.CATEGORICAL):
        return str(value)
    raise ValueError(f"Unsupported column type: {column_type}")


def _parse_numeric(column: str, tokens: Sequence[str | None]) -> tuple[float | None, ...]:
    present = [(row, token) for row, token in enumerate(tokens) if token is not None]
    stripped = pd.Series([token.strip() for _, token in present], dtype=object)
    parsed = pd.to_numeric(stripped, errors="coerce")

    values: list[float | None] = [None] * len(tokens)
    for (row, token), value in zip(present, parsed):
        if pd.isna(value) or not np.isfinite(value):
            raise TypeCoercionError(column, row, token, ColumnType.NUMERIC.value)
        values[row] = float(value)
    return tuple(values)


def _parse_temporal(
    column: str,
    tokens: Sequence[str | None],
    temporal_format: str | None,
) -> tuple[datetime | None, ...]:
    values: list[datetime | None] = []
    for row, token in enumerate(tokens):
        if token is None:
            values.append(None)
            continue
        try:
            parsed = pd.to_datetime(token.strip(), format=temporal_format or "ISO8601")
        except (ValueError, TypeError) as exc:
            raise TypeCoercionError(column, row, token, ColumnType.TEMPORAL.value) from exc
        if pd.isna(parsed):
            raise TypeCoercionError(column, row, token, ColumnType.TEMPORAL.value)
        values.append(parsed.to_pydatetime())
    return tuple(values)


def parse_tokens(
    column: str,
    tokens: Sequence[str | None],
    target: ColumnType,
    temporal_format: str | None = None,
) -> Column:
    """Parse raw tokens (``None`` for missing) into a column of the target type."""
    if target is ColumnType.NUMERIC:
        return Column(column, target, _parse_numeric(column, tokens))
    if target is ColumnType.TEXT:
        return Column(column, target, tuple(tokens))
    if target is ColumnType.TEMPORAL:
        return Column(column, target, _parse_temporal(column, tokens, temporal_format))
    if target is ColumnType.CATEGORICAL:
        text_column = Column(column, ColumnType.TEXT, tuple(tokens))
        return _categorical_from(text_column, levels=None, order="sorted")
    raise ValueError(f"Unsupported column type: {target}")


def infer_column(column: str, tokens: Sequence[str | None]) -> Column:
    """Numeric when every non-missing token parses as a number, Text otherwise."""
    try:
        return parse_tokens(column, tokens, ColumnType.NUMERIC)
    except TypeCoercionError:
        return parse_tokens(column, tokens, ColumnType.TEXT)


def _text_tokens(column: Column) -> list[str | None]:
    return [
        None if value is None else format_value(value, column.column_type)
        for value in column.resolved_values()
    ]


def _categorical_from(column: Column, levels: Sequence[str] | None, order: LevelOrder) -> Column:
    resolved = column.resolved_values()
    if levels is None:
        present = [value for value in resolved if value is not None]
        if order == "appearance":
            distinct = list(dict.fromkeys(present))
        elif order == "sorted":
            distinct = sorted(set(present))
        else:
            raise ValueError(f"Unknown level order: {order!r}")
        level_list = list(dict.fromkeys(format_value(value, column.column_type) for value in distinct))
    else:
        level_list = [str(level) for level in levels]
        if len(set(level_list)) != len(level_list):
            raise ValueError(f"Explicit levels for '{column.name}' contain duplicates.")

    positions = {level: index for index, level in enumerate(level_list)}
    codes: list[int | None] = []
    for row, value in enumerate(resolved):
        if value is None:
            codes.append(None)
            continue
        text = format_value(value, column.column_type)
        if text not in positions:
            raise TypeCoercionError(column.name, row, value, ColumnType.CATEGORICAL.value)
        codes.append(positions[text])
    return Column(column.name, ColumnType.CATEGORICAL, tuple(codes), tuple(level_list))


def to_categorical(
    table: TypedTable,
    column_name: str,
    levels: Sequence[str] | None = None,
    order: LevelOrder = "sorted",
) -> TypedTable:
    """Replace a column with level indices into its distinct values.

    Levels default to the sorted distinct non-missing values (by value for
    Numeric and Temporal sources); ``order="appearance"`` keeps first-seen
    order instead, and ``levels`` fixes an explicit order. An existing
    Categorical column keeps its levels unless ``order="appearance"`` or
    ``levels`` asks for new ones. The table is mutated in place and returned.
    """
    column = table.column(column_name)
    if column.column_type is ColumnType.CATEGORICAL and levels is None and order == "sorted":
        return table
    table.replace_column(_categorical_from(column, levels, order))
    return table


def to_text(table: TypedTable, column_name: str) -> TypedTable:
    """Inverse of :func:`to_categorical`: substitute level strings for indices."""
    column = table.column(column_name)
    if column.column_type is ColumnType.TEXT:
        return table
    table.replace_column(Column(column_name, ColumnType.TEXT, tuple(_text_tokens(column))))
    return table


def coerce(
    table: TypedTable,
    column_name: str,
    target: ColumnType | str,
    temporal_format: str | None = None,
) -> TypedTable:
    """Re-parse every value of a column as ``target``.

    The replacement column is built in full before it is swapped in, so a
    failing value leaves the table unchanged.
    """
    target_type = ColumnType.parse(target)
    column = table.column(column_name)
    if column.column_type is target_type:
        return table
    if target_type is ColumnType.CATEGORICAL:
        return to_categorical(table, column_name)
    if target_type is ColumnType.TEXT:
        return to_text(table, column_name)

    table.replace_column(parse_tokens(column_name, _text_tokens(column), target_type, temporal_format))
    return table
