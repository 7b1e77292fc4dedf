"""Dialect-agnostic pieces of single-row and bulk upsert.

Both :class:`~recordspine.core.repository.Repository` and its async twin
drive upsert through these helpers, so batching, parameter naming and
action classification behave identically for sync and async callers and
for both engines.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple, TypeVar

from recordspine.core.dialect import bind_name, get_dialect
from recordspine.core.entity import EntityDescriptor, bind_value
from recordspine.core.errors import UnsupportedProviderError
from recordspine.core.mapping import EntityMapping

T = TypeVar("T")

INSERT_ACTION = "INSERT"
UPDATE_ACTION = "UPDATE"


class UpsertResult(NamedTuple):
    """Inserted/updated row counts of a bulk upsert."""

    inserted: int = 0
    updated: int = 0

    def merge(self, other: UpsertResult) -> UpsertResult:
        return UpsertResult(self.inserted + other.inserted, self.updated + other.updated)

    @property
    def total(self) -> int:
        return self.inserted + self.updated


@dataclass(frozen=True)
class BatchStatement:
    """One synthesized multi-row upsert and its bind parameters."""

    sql: str
    parameters: dict[str, Any]
    row_count: int


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Consecutive slices of at most ``size`` items, in order."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def batch_parameters(descriptor: EntityDescriptor, rows: Sequence[Any]) -> dict[str, Any]:
    """``{column}_{row_index}`` → value for every cell of the chunk."""
    parameters: dict[str, Any] = {}
    for index, row in enumerate(rows):
        for column in descriptor.columns:
            parameters[bind_name(column, index)] = bind_value(getattr(row, column))
    return parameters


def build_batch_statement(
    provider: Any,
    mapping: EntityMapping,
    descriptor: EntityDescriptor,
    rows: Sequence[Any],
) -> BatchStatement:
    """Synthesize the bulk-upsert statement for one chunk.

    Raises:
        UnsupportedProviderError: If ``provider`` has no bulk-upsert dialect.
    """
    try:
        dialect = get_dialect(provider)
    except UnsupportedProviderError as exc:
        raise UnsupportedProviderError(
            provider, entity=descriptor.name, operation="bulk upsert"
        ) from exc

    sql = dialect.bulk_upsert(
        mapping.table_name,
        descriptor.columns,
        mapping.key_columns,
        len(rows),
    )
    return BatchStatement(sql=sql, parameters=batch_parameters(descriptor, rows), row_count=len(rows))


def classify_actions(actions: Iterable[Any]) -> UpsertResult:
    """Count ``INSERT``/``UPDATE`` actions (case-insensitive); ignore others."""
    inserted = updated = 0
    for action in actions:
        if action is None:
            continue
        value = str(action).strip().upper()
        if value == INSERT_ACTION:
            inserted += 1
        elif value == UPDATE_ACTION:
            updated += 1
    return UpsertResult(inserted, updated)


def existence_query(table: str, key_columns: Sequence[str]) -> str:
    """``SELECT *`` matching every key column, for composite-key upsert."""
    where = " AND ".join(f"{k} = :{k}" for k in key_columns)
    return f"SELECT * FROM {table} WHERE {where}"


__all__ = [
    "INSERT_ACTION",
    "UPDATE_ACTION",
    "UpsertResult",
    "BatchStatement",
    "chunked",
    "batch_parameters",
    "build_batch_statement",
    "classify_actions",
    "existence_query",
]
