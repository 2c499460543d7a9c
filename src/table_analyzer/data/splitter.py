from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from table_analyzer.core.table import TypedTable

GroupKey = tuple[Any, ...]


@dataclass
class GroupPartition:
    """Sub-tables keyed by key-column values, in first-appearance order."""

    key_columns: list[str]
    groups: dict[GroupKey, TypedTable] = field(default_factory=dict)
    positions: dict[GroupKey, list[int]] = field(default_factory=dict)
    template: TypedTable | None = None

    def __len__(self) -> int:
        return len(self.groups)

    def __iter__(self) -> Iterator[GroupKey]:
        return iter(self.groups)

    def __getitem__(self, key: GroupKey) -> TypedTable:
        return self.groups[key]

    def keys(self) -> list[GroupKey]:
        return list(self.groups)

    def items(self) -> list[tuple[GroupKey, TypedTable]]:
        return list(self.groups.items())

    def sizes(self) -> dict[GroupKey, int]:
        return {key: len(table) for key, table in self.groups.items()}


class DataSplitter:
    """Split a table by the configured group variables."""

    def group_by(self, table: TypedTable, key_columns: Sequence[str]) -> GroupPartition:
        key_columns = list(key_columns)
        table.require(key_columns)

        if not key_columns:
            everything = list(range(len(table)))
            return GroupPartition(
                key_columns=[],
                groups={(): table.copy()},
                positions={(): everything},
                template=table.take([]),
            )

        frame = table.to_frame(key_columns)
        grouped = frame.groupby(key_columns, sort=False, dropna=False)

        partition = GroupPartition(key_columns=key_columns, template=table.take([]))
        for _, sub_frame in grouped:
            rows = [int(position) for position in sub_frame.index]
            first = table.row(rows[0])
            key = tuple(first[name] for name in key_columns)
            partition.groups[key] = table.take(rows)
            partition.positions[key] = rows

        # Missing keys can be emitted last by groupby; restore first-appearance order.
        order = sorted(partition.groups, key=lambda key: partition.positions[key][0])
        partition.groups = {key: partition.groups[key] for key in order}
        partition.positions = {key: partition.positions[key] for key in order}
        return partition

    def ungroup(self, partition: GroupPartition) -> TypedTable:
        tables = list(partition.groups.values())
        if not tables:
            return partition.template.copy() if partition.template is not None else TypedTable()
        combined = TypedTable.concat(tables)
        if set(partition.positions) != set(partition.groups):
            return combined

        source_positions = [
            position for key in partition.groups for position in partition.positions[key]
        ]
        order = sorted(range(len(source_positions)), key=source_positions.__getitem__)
        return combined.take(order)
