from __future__ import annotations

import csv
import io
import logging
from pathlib import PurePath

import pandas as pd

from table_analyzer.config.settings import AnalyzerSettings
from table_analyzer.core.errors import MalformedRowError
from table_analyzer.core.table import TypedTable
from table_analyzer.data.coercion import infer_column
from table_analyzer.io.filesystem import FileSystemProvider, LocalFileSystem

logger = logging.getLogger(__name__)

_TAB_SUFFIXES = {".tsv", ".tab"}


class DataLoader:
    """Read delimited text into typed tables."""

    def __init__(
        self,
        settings: AnalyzerSettings | None = None,
        filesystem: FileSystemProvider | None = None,
    ) -> None:
        self.settings = settings or AnalyzerSettings()
        self.filesystem = filesystem or LocalFileSystem()

    def delimiter_for(self, name: str) -> str:
        if PurePath(name).suffix.lower() in _TAB_SUFFIXES:
            return "\t"
        return self.settings.delimiter

    def load(self, name: str, delimiter: str | None = None) -> TypedTable:
        text = self.filesystem.read(name)
        table = self.parse(text, delimiter or self.delimiter_for(name))
        logger.info("Loaded %s: %d rows, %d columns", name, len(table), len(table.column_names))
        return table

    def parse(self, text: str, delimiter: str | None = None) -> TypedTable:
        delimiter = delimiter or self.settings.delimiter
        if len(delimiter) != 1:
            raise ValueError(f"Delimiter must be a single character, got {delimiter!r}.")

        records = self._scan_records(text, delimiter)
        if not records:
            raise MalformedRowError(1, "input has no header line.")

        header_line, header_fields = records[0]
        header = self._read_header(header_line, header_fields)
        for line_number, fields in records[1:]:
            if len(fields) != len(header):
                raise MalformedRowError(line_number, f"expected {len(header)} fields, saw {len(fields)}.")

        tokens = self._read_fields(text, delimiter, len(header), len(records) - 1)

        columns = []
        for position, name in enumerate(header):
            column = infer_column(name, [row[position] for row in tokens])
            logger.debug("Inferred column %s as %s", name, column.column_type.value)
            columns.append(column)
        return TypedTable(columns)

    @staticmethod
    def _scan_records(text: str, delimiter: str) -> list[tuple[int, list[str]]]:
        """Non-blank records paired with the physical line each one starts on."""
        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        records: list[tuple[int, list[str]]] = []
        start = 1
        try:
            for fields in reader:
                if not _is_blank(fields):
                    records.append((start, fields))
                start = reader.line_num + 1
        except csv.Error as exc:
            raise MalformedRowError(start, str(exc)) from exc
        return records

    @staticmethod
    def _read_header(line_number: int, fields: list[str]) -> list[str]:
        names = [field.strip() for field in fields]
        for position, name in enumerate(names, start=1):
            if not name:
                raise MalformedRowError(line_number, f"header field {position} is empty.")
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise MalformedRowError(line_number, f"duplicate column names: {', '.join(duplicates)}.")
        return names

    def _read_fields(self, text: str, delimiter: str, width: int, expected: int) -> list[list[str | None]]:
        # Field counts are already checked, so every record fills exactly ``width`` columns.
        try:
            frame = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=None,
                names=list(range(width)),
                dtype=object,
                keep_default_na=False,
                skip_blank_lines=True,
            )
        except pd.errors.ParserError as exc:
            raise MalformedRowError(None, str(exc)) from exc

        body = frame.iloc[1:]
        if len(body) != expected:
            raise MalformedRowError(None, f"expected {expected} data rows, tokenizer produced {len(body)}.")

        markers = set(self.settings.missing_markers)
        return [
            [None if field in markers else field for field in raw]
            for raw in body.itertuples(index=False, name=None)
        ]


def _is_blank(fields: list[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())
