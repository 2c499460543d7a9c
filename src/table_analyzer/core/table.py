from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from table_analyzer.core.errors import UnknownColumnError


class ColumnType(str, Enum):
    NUMERIC = "Numeric"
    TEXT = "Text"
    CATEGORICAL = "Categorical"
    TEMPORAL = "Temporal"

    @classmethod
    def parse(cls, value: "ColumnType | str") -> "ColumnType":
        if isinstance(value, ColumnType):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if normalized in {member.value.lower(), member.name.lower()}:
                return member
        raise ValueError(f"Unknown column type: {value!r}")


def _normalize_value(name: str, column_type: ColumnType, value: Any, levels: tuple[str, ...] | None) -> Any:
    if value is None:
        return None
    if column_type is ColumnType.NUMERIC:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"Column '{name}' is Numeric but holds {value!r}.")
        numeric = float(value)
        return None if math.isnan(numeric) else numeric
    if column_type is ColumnType.TEXT:
        if not isinstance(value, str):
            raise TypeError(f"Column '{name}' is Text but holds {value!r}.")
        return value
    if column_type is ColumnType.CATEGORICAL:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Column '{name}' is Categorical but holds non-index {value!r}.")
        if levels is None or not 0 <= value < len(levels):
            raise ValueError(f"Column '{name}' level index {value} is outside its level list.")
        return int(value)
    if column_type is ColumnType.TEMPORAL:
        if not isinstance(value, datetime):
            raise TypeError(f"Column '{name}' is Temporal but holds {value!r}.")
        return value
    raise ValueError(f"Unsupported column type: {column_type}")


@dataclass(frozen=True)
class Column:
    """One named, typed column. Categorical columns store level indices."""

    name: str
    column_type: ColumnType
    values: tuple[Any, ...] = ()
    levels: tuple[str, ...] | None = field(default=None)

    def __post_init__(self) -> None:
        column_type = ColumnType.parse(self.column_type)
        levels = tuple(self.levels) if self.levels is not None else None
        if column_type is ColumnType.CATEGORICAL:
            if levels is None:
                raise ValueError(f"Categorical column '{self.name}' needs a level list.")
            if any(not isinstance(level, str) for level in levels):
                raise TypeError(f"Categorical column '{self.name}' levels must be strings.")
            if len(set(levels)) != len(levels):
                raise ValueError(f"Categorical column '{self.name}' has duplicate levels.")
        elif levels is not None:
            raise ValueError(f"Only Categorical columns carry levels; '{self.name}' is {column_type.value}.")

        normalized = tuple(
            _normalize_value(self.name, column_type, value, levels) for value in self.values
        )
        object.__setattr__(self, "column_type", column_type)
        object.__setattr__(self, "levels", levels)
        object.__setattr__(self, "values", normalized)

    def __len__(self) -> int:
        return len(self.values)

    def resolve(self, index: int) -> Any:
        value = self.values[index]
        if value is None or self.levels is None:
            return value
        return self.levels[value]

    def resolved_values(self) -> list[Any]:
        return [self.resolve(index) for index in range(len(self.values))]

    def missing_count(self) -> int:
        return sum(1 for value in self.values if value is None)

    def take(self, indices: Sequence[int]) -> "Column":
        return Column(
            name=self.name,
            column_type=self.column_type,
            values=tuple(self.values[index] for index in indices),
            levels=self.levels,
        )


def _infer_type(values: Sequence[Any]) -> ColumnType:
    present = [value for value in values if value is not None]
    if all(isinstance(value, datetime) for value in present) and present:
        return ColumnType.TEMPORAL
    if all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in present):
        return ColumnType.NUMERIC
    return ColumnType.TEXT


class TypedTable:
    """In-memory table with named columns sharing one row count."""

    def __init__(self, columns: Iterable[Column] = ()) -> None:
        column_list = list(columns)
        names = [column.name for column in column_list]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate column names: {', '.join(duplicates)}")
        lengths = {len(column) for column in column_list}
        if len(lengths) > 1:
            detail = ", ".join(f"{column.name}={len(column)}" for column in column_list)
            raise ValueError(f"Columns must share one length: {detail}")

        self._columns: dict[str, Column] = {column.name: column for column in column_list}
        self._row_count = lengths.pop() if lengths else 0

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Sequence[Any]],
        types: Mapping[str, ColumnType | str] | None = None,
    ) -> "TypedTable":
        declared = dict(types or {})
        columns = []
        for name, values in data.items():
            column_type = ColumnType.parse(declared[name]) if name in declared else _infer_type(values)
            columns.append(Column(name=name, column_type=column_type, values=tuple(values)))
        return cls(columns)

    @property
    def column_names(self) -> list[str]:
        return list(self._columns)

    @property
    def types(self) -> dict[str, ColumnType]:
        return {name: column.column_type for name, column in self._columns.items()}

    @property
    def columns(self) -> list[Column]:
        return list(self._columns.values())

    def __len__(self) -> int:
        return self._row_count

    def __contains__(self, name: object) -> bool:
        return name in self._columns

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypedTable):
            return NotImplemented
        return self.columns == other.columns

    def __repr__(self) -> str:
        schema = ", ".join(f"{name}:{column.column_type.value}" for name, column in self._columns.items())
        return f"TypedTable(rows={self._row_count}, columns=[{schema}])"

    def column(self, name: str) -> Column:
        try:
            return self._columns[name]
        except KeyError:
            raise UnknownColumnError(name, self.column_names) from None

    def require(self, names: Iterable[str]) -> None:
        for name in names:
            self.column(name)

    def resolved(self, name: str) -> list[Any]:
        return self.column(name).resolved_values()

    def row(self, index: int) -> dict[str, Any]:
        if not -self._row_count <= index < self._row_count:
            raise IndexError(f"Row {index} is outside a table of {self._row_count} rows.")
        return {name: column.resolve(index) for name, column in self._columns.items()}

    def rows(self) -> list[dict[str, Any]]:
        return [self.row(index) for index in range(self._row_count)]

    def take(self, indices: Sequence[int]) -> "TypedTable":
        return TypedTable(column.take(indices) for column in self._columns.values())

    def replace_column(self, column: Column) -> None:
        self.column(column.name)
        if len(column) != self._row_count:
            raise ValueError(
                f"Replacement column '{column.name}' has {len(column)} values; table has {self._row_count} rows."
            )
        self._columns[column.name] = column

    def copy(self) -> "TypedTable":
        return TypedTable(self._columns.values())

    def schema(self) -> list[dict[str, Any]]:
        return [
            {
                "name": column.name,
                "type": column.column_type.value,
                "levels": list(column.levels) if column.levels is not None else None,
                "missing": column.missing_count(),
            }
            for column in self._columns.values()
        ]

    @classmethod
    def concat(cls, tables: Sequence["TypedTable"]) -> "TypedTable":
        if not tables:
            return cls()
        first = tables[0]
        signature = [(c.name, c.column_type, c.levels) for c in first.columns]
        for table in tables[1:]:
            if [(c.name, c.column_type, c.levels) for c in table.columns] != signature:
                raise ValueError("Cannot concatenate tables with different schemas.")
        return cls(
            Column(
                name=name,
                column_type=column_type,
                values=tuple(value for table in tables for value in table.column(name).values),
                levels=levels,
            )
            for name, column_type, levels in signature
        )

    def to_frame(self, columns: Sequence[str] | None = None) -> Any:
        import pandas as pd

        names = self.column_names if columns is None else list(columns)
        series: dict[str, Any] = {}
        for name in names:
            column = self.column(name)
            values = column.resolved_values()
            if column.column_type is ColumnType.NUMERIC:
                series[name] = pd.Series([float("nan") if v is None else v for v in values], dtype=float)
            elif column.column_type is ColumnType.TEMPORAL:
                series[name] = pd.Series(pd.to_datetime(values))
            else:
                series[name] = pd.Series(values, dtype=object)
        return pd.DataFrame(series, columns=names)
