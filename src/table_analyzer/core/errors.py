from __future__ import annotations

from typing import Any, Sequence


class TableAnalyzerError(Exception):
    """Base class for every failure raised by the analyzer pipeline."""


class MalformedRowError(TableAnalyzerError):
    """A delimited row could not be turned into a table row."""

    def __init__(self, line_number: int | None, message: str) -> None:
        self.line_number = line_number
        location = f"line {line_number}" if line_number is not None else "unknown line"
        super().__init__(f"Malformed input at {location}: {message}")


class TypeCoercionError(TableAnalyzerError, ValueError):
    """A column value could not be parsed to the requested type."""

    def __init__(self, column: str, row_index: int, value: Any, target: str) -> None:
        self.column = column
        self.row_index = row_index
        self.value = value
        self.target = target
        super().__init__(
            f"Cannot coerce column '{column}' to {target}: value {value!r} at row {row_index}."
        )


class UnknownColumnError(TableAnalyzerError, LookupError):
    def __init__(self, column: str, available: Sequence[str] = ()) -> None:
        self.column = column
        self.available = list(available)
        super().__init__(
            f"Column '{column}' is not in the table (available: {', '.join(self.available) or 'none'})."
        )


class ChannelTypeError(TableAnalyzerError, TypeError):
    def __init__(self, channel: str, column: str, column_type: str, expected: str) -> None:
        self.channel = channel
        self.column = column
        self.column_type = column_type
        super().__init__(
            f"Channel '{channel}' needs a {expected} column; '{column}' is {column_type}."
        )


class InvalidTermError(TableAnalyzerError, TypeError):
    def __init__(self, term: str, message: str) -> None:
        self.term = term
        super().__init__(f"Invalid model term '{term}': {message}")


class SingularDesignError(TableAnalyzerError):
    """The design matrix is rank deficient, so coefficients are not unique."""

    def __init__(
        self,
        rank: int,
        column_count: int,
        aliased_columns: Sequence[str] = (),
        reason: str | None = None,
    ) -> None:
        self.rank = rank
        self.column_count = column_count
        self.aliased_columns = list(aliased_columns)
        self.reason = reason
        if reason:
            super().__init__(f"Design matrix cannot be fit uniquely: {reason}")
            return
        detail = f" Aliased columns: {', '.join(self.aliased_columns)}." if self.aliased_columns else ""
        super().__init__(
            f"Design matrix is rank deficient (rank {rank} < {column_count} columns).{detail}"
        )


class NotConverged(TableAnalyzerError):
    def __init__(self, iterations: int, message: str = "") -> None:
        self.iterations = iterations
        suffix = f" {message}" if message else ""
        super().__init__(f"Solver did not converge within {iterations} iterations.{suffix}")


class NotFound(TableAnalyzerError, FileNotFoundError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Source not found: {name}")

    def __str__(self) -> str:
        return f"Source not found: {self.name}"


class WriteFailed(TableAnalyzerError, OSError):
    def __init__(self, name: str, reason: str = "") -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Could not write artifact '{name}'. {reason}".strip())

    def __str__(self) -> str:
        return f"Could not write artifact '{self.name}'. {self.reason}".strip()


class ReadFailed(TableAnalyzerError, OSError):
    def __init__(self, name: str, reason: str = "") -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Could not read source '{name}'. {reason}".strip())

    def __str__(self) -> str:
        return f"Could not read source '{self.name}'. {self.reason}".strip()
