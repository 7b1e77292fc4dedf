"""Entity descriptors: columns, key columns and table name of a dataclass.

Entities are plain dataclasses. Key columns are declared with
:func:`key_field` (or ``field(metadata={"key": True})``); the table name
comes from ``__tablename__`` or, failing that, the class name. A repository
builds its :class:`EntityDescriptor` once, at construction, and passes
explicit ``keys=``/``table=`` overrides through when the class carries no
declarations.

Examples:
    >>> @dataclass
    ... class OrderLine:
    ...     __tablename__ = "order_lines"
    ...     OrderId: int = key_field(default=0)
    ...     LineNo: int = key_field(default=0)
    ...     Sku: str = ""
    >>> describe(OrderLine).key_columns
    ('OrderId', 'LineNo')
"""

from __future__ import annotations

import dataclasses
import typing
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from recordspine.core.errors import EntityDefinitionError

KEY_METADATA = "key"


def key_field(**kwargs: Any) -> Any:
    """``dataclasses.field`` that marks the attribute as a key column."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[KEY_METADATA] = True
    return field(metadata=metadata, **kwargs)


@dataclass(frozen=True)
class EntityDescriptor:
    """Resolved shape of an entity type.

    Attributes:
        entity_type: The dataclass
        table_name: Table the type maps to
        columns: Every field name, in declaration order
        key_columns: Key field names, in declaration order
        enum_columns: Fields annotated with an ``Enum`` subclass
    """

    entity_type: type
    table_name: str
    columns: tuple[str, ...]
    key_columns: tuple[str, ...]
    enum_columns: Mapping[str, type[Enum]] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def non_key_columns(self) -> tuple[str, ...]:
        return tuple(c for c in self.columns if c not in self.key_columns)

    def values(self, entity: Any) -> dict[str, Any]:
        """Column → value for every column of ``entity``."""
        return {column: getattr(entity, column) for column in self.columns}

    def key_values(self, entity: Any) -> dict[str, Any]:
        return {column: getattr(entity, column) for column in self.key_columns}

    def build(self, row: Mapping[str, Any]) -> Any:
        """Instantiate the entity from a result-row mapping.

        Column names are matched case-insensitively (PostgreSQL folds
        unquoted identifiers to lower case); unknown columns are ignored.
        """
        lowered = {str(k).lower(): v for k, v in row.items()}
        kwargs: dict[str, Any] = {}
        for column in self.columns:
            if column in row:
                value = row[column]
            elif column.lower() in lowered:
                value = lowered[column.lower()]
            else:
                continue
            enum_type = self.enum_columns.get(column)
            if enum_type is not None:
                value = parse_enum(enum_type, value)
            kwargs[column] = value
        return self.entity_type(**kwargs)


def describe(
    entity_type: type,
    *,
    keys: Iterable[str] | None = None,
    table: str | None = None,
) -> EntityDescriptor:
    """Build the :class:`EntityDescriptor` for a dataclass entity type.

    Args:
        entity_type: Dataclass describing one table row
        keys: Explicit key columns; overrides ``key_field`` declarations
        table: Explicit table name; overrides ``__tablename__``

    Raises:
        EntityDefinitionError: If the type is not a dataclass or an explicit
            key names an unknown field.
    """
    if not (isinstance(entity_type, type) and dataclasses.is_dataclass(entity_type)):
        raise EntityDefinitionError(
            getattr(entity_type, "__name__", repr(entity_type)),
            f"{entity_type!r} is not a dataclass; entities must be dataclasses",
        )

    fields = dataclasses.fields(entity_type)
    columns = tuple(f.name for f in fields)

    if keys is not None:
        key_columns = tuple(keys)
        unknown = [k for k in key_columns if k not in columns]
        if unknown:
            raise EntityDefinitionError(
                entity_type.__name__,
                f"Key columns {unknown} are not fields of {entity_type.__name__}",
            )
    else:
        key_columns = tuple(f.name for f in fields if f.metadata.get(KEY_METADATA))

    table_name = table or getattr(entity_type, "__tablename__", None) or entity_type.__name__

    return EntityDescriptor(
        entity_type=entity_type,
        table_name=table_name,
        columns=columns,
        key_columns=key_columns,
        enum_columns=_enum_columns(entity_type, columns),
    )


def _enum_columns(entity_type: type, columns: tuple[str, ...]) -> dict[str, type[Enum]]:
    try:
        hints = typing.get_type_hints(entity_type)
    except (NameError, TypeError):
        # Unresolvable forward references: no enum conversion for this type.
        return {}

    result: dict[str, type[Enum]] = {}
    for column in columns:
        hint = hints.get(column)
        for candidate in (hint, *typing.get_args(hint)):
            if isinstance(candidate, type) and issubclass(candidate, Enum):
                result[column] = candidate
                break
    return result


def is_default(value: Any) -> bool:
    """True for ``None`` and for the zero value of the value's own type."""
    if value is None:
        return True
    try:
        return value == type(value)()
    except TypeError:
        # Types without a no-argument constructor (UUID, datetime) have no zero value.
        return False


def widen_key(value: Any) -> Any:
    """Return a numeric key as ``int``; other key types unchanged."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return int(value)
    return value


def bind_value(value: Any) -> Any:
    """Database parameter for ``value``; enums are bound by member name."""
    if isinstance(value, Enum):
        return value.name
    return value


def parse_enum(enum_type: type[Enum], value: Any) -> Any:
    """Read an enum back from its stored name, ignoring case."""
    if value is None or isinstance(value, enum_type):
        return value
    text = str(value)
    for member in enum_type:
        if member.name.lower() == text.lower():
            return member
    return enum_type(value)


__all__ = [
    "KEY_METADATA",
    "EntityDescriptor",
    "key_field",
    "describe",
    "is_default",
    "widen_key",
    "bind_value",
    "parse_enum",
]
