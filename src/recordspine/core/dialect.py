"""SQL dialect builders for SQL Server and PostgreSQL.

The repository never branches on the connection class. It carries an
explicit :class:`DatabaseProvider` tag and asks :func:`get_dialect` for the
matching builder; each builder returns complete statements with SQLAlchemy
``:name`` bind placeholders.

Manifesto:
    Bulk upsert is the one place where the two engines need genuinely
    different SQL. Keeping that SQL in one small closed set of builders
    means the repository's batching and classification logic is written
    once and is identical for both engines.

    - **Explicit tag:** ``DatabaseProvider.SQLSERVER`` / ``POSTGRESQL``
    - **Same result shape:** both bulk statements return one ``Action`` column
    - **No quoting:** identifiers are interpolated as-is

Architecture::

    ┌──────────────────────────────────────────────────────────────────┐
    │                  bulk_upsert(table, cols, keys, n)                │
    └──────────────────────────────────────────────────────────────────┘
           │                                        │
           ▼                                        ▼
    ┌──────────────────────────┐   ┌─────────────────────────────────┐
    │ SqlServerDialect         │   │ PostgreSQLDialect               │
    │ MERGE … USING (VALUES …) │   │ INSERT … VALUES …               │
    │ OUTPUT $action AS Action │   │ ON CONFLICT (keys) DO UPDATE    │
    │                          │   │ RETURNING CASE WHEN xmax = 0 …  │
    └──────────────────────────┘   └─────────────────────────────────┘

Examples:
    >>> d = get_dialect("postgresql")
    >>> d.values_list(["Id", "Name"], 2)
    '(:Id_0, :Name_0), (:Id_1, :Name_1)'

Guardrails:
    ❌ DON'T: Pass attacker-controlled table or column names
    ✅ DO: Use fixed, valid, unquoted identifiers from your mappings

Tags:
    dialect, sql, upsert, merge, on-conflict, record-spine
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Protocol, runtime_checkable

from recordspine.core.errors import UnsupportedProviderError

ACTION_COLUMN = "Action"


class DatabaseProvider(str, Enum):
    """Engines with a bulk-upsert dialect."""

    SQLSERVER = "sqlserver"
    POSTGRESQL = "postgresql"

    @classmethod
    def parse(cls, value: DatabaseProvider | str | None) -> DatabaseProvider:
        """Resolve a provider tag or alias (``mssql``, ``postgres``, ...).

        SQLAlchemy driver suffixes (``postgresql+psycopg2``) are accepted.

        Raises:
            UnsupportedProviderError: For anything else, including ``None``.
        """
        if isinstance(value, DatabaseProvider):
            return value
        if not isinstance(value, str):
            raise UnsupportedProviderError(value)
        key = value.strip().lower().split("+", 1)[0]
        if key not in _ALIASES:
            raise UnsupportedProviderError(value)
        return _ALIASES[key]


_ALIASES: dict[str, DatabaseProvider] = {
    "sqlserver": DatabaseProvider.SQLSERVER,
    "mssql": DatabaseProvider.SQLSERVER,
    "tsql": DatabaseProvider.SQLSERVER,
    "postgresql": DatabaseProvider.POSTGRESQL,
    "postgres": DatabaseProvider.POSTGRESQL,
    "pg": DatabaseProvider.POSTGRESQL,
}


@runtime_checkable
class Dialect(Protocol):
    """Statement builder contract.

    Every method returns a complete SQL statement with ``:name`` binds.
    """

    @property
    def name(self) -> str: ...

    @property
    def provider(self) -> DatabaseProvider: ...

    def bulk_upsert(
        self,
        table: str,
        columns: Sequence[str],
        key_columns: Sequence[str],
        row_count: int,
    ) -> str:
        """Multi-row upsert returning one ``Action`` row per affected input row."""
        ...

    def insert(self, table: str, columns: Sequence[str], key_column: str | None) -> str:
        """Single-row insert returning ``key_column`` when one is given."""
        ...

    def procedure_call(
        self,
        name: str,
        parameter_names: Sequence[str],
        returns_rows: bool,
    ) -> str:
        """Invocation of a stored routine with named parameters."""
        ...


# =========================================================================
# Shared fragments
# =========================================================================


def bind_name(column: str, row_index: int) -> str:
    """Unique parameter name for one (row, column) cell of a batch."""
    return f"{column}_{row_index}"


def _update_columns(columns: Sequence[str], key_columns: Sequence[str]) -> list[str]:
    non_key = [c for c in columns if c not in key_columns]
    # Key-only tables: assign the keys to themselves so the row still reports an action.
    return non_key or list(key_columns)


class _BaseDialect:
    def values_list(self, columns: Sequence[str], row_count: int) -> str:
        """``(:a_0, :b_0), (:a_1, :b_1), …`` in column order."""
        groups = []
        for i in range(row_count):
            groups.append("(" + ", ".join(f":{bind_name(c, i)}" for c in columns) + ")")
        return ", ".join(groups)


# =========================================================================
# Concrete dialects
# =========================================================================


class SqlServerDialect(_BaseDialect):
    """SQL Server (T-SQL): ``MERGE`` with ``OUTPUT $action``."""

    @property
    def name(self) -> str:
        return "sqlserver"

    @property
    def provider(self) -> DatabaseProvider:
        return DatabaseProvider.SQLSERVER

    def bulk_upsert(
        self,
        table: str,
        columns: Sequence[str],
        key_columns: Sequence[str],
        row_count: int,
    ) -> str:
        cols = ", ".join(columns)
        on_clause = " AND ".join(f"Target.{k} = Source.{k}" for k in key_columns)
        updates = ", ".join(
            f"Target.{c} = Source.{c}" for c in _update_columns(columns, key_columns)
        )
        source_values = ", ".join(f"Source.{c}" for c in columns)
        return (
            f"MERGE INTO {table} AS Target\n"
            f"USING (VALUES {self.values_list(columns, row_count)}) AS Source({cols})\n"
            f"ON {on_clause}\n"
            f"WHEN MATCHED THEN\n"
            f"    UPDATE SET {updates}\n"
            f"WHEN NOT MATCHED THEN\n"
            f"    INSERT ({cols}) VALUES ({source_values})\n"
            f"OUTPUT $action AS {ACTION_COLUMN};"
        )

    def insert(self, table: str, columns: Sequence[str], key_column: str | None) -> str:
        cols = ", ".join(columns)
        binds = ", ".join(f":{c}" for c in columns)
        output = f" OUTPUT INSERTED.{key_column}" if key_column else ""
        if not columns:
            return f"INSERT INTO {table}{output} DEFAULT VALUES"
        return f"INSERT INTO {table} ({cols}){output} VALUES ({binds})"

    def procedure_call(
        self,
        name: str,
        parameter_names: Sequence[str],
        returns_rows: bool,  # noqa: ARG002
    ) -> str:
        args = ", ".join(f"@{p} = :{p}" for p in parameter_names)
        return f"EXEC {name} {args}".rstrip()


class PostgreSQLDialect(_BaseDialect):
    """PostgreSQL: ``INSERT … ON CONFLICT`` with an ``xmax`` action test.

    ``xmax`` is zero for a freshly inserted row version and non-zero when
    the conflict branch updated an existing row.
    """

    @property
    def name(self) -> str:
        return "postgresql"

    @property
    def provider(self) -> DatabaseProvider:
        return DatabaseProvider.POSTGRESQL

    def bulk_upsert(
        self,
        table: str,
        columns: Sequence[str],
        key_columns: Sequence[str],
        row_count: int,
    ) -> str:
        cols = ", ".join(columns)
        conflict = ", ".join(key_columns)
        updates = ", ".join(
            f"{c} = EXCLUDED.{c}" for c in _update_columns(columns, key_columns)
        )
        return (
            f"INSERT INTO {table} ({cols})\n"
            f"VALUES {self.values_list(columns, row_count)}\n"
            f"ON CONFLICT ({conflict}) DO UPDATE\n"
            f"SET {updates}\n"
            f"RETURNING (CASE WHEN xmax = 0 THEN 'INSERT' ELSE 'UPDATE' END) AS {ACTION_COLUMN};"
        )

    def insert(self, table: str, columns: Sequence[str], key_column: str | None) -> str:
        returning = f" RETURNING {key_column}" if key_column else ""
        if not columns:
            return f"INSERT INTO {table} DEFAULT VALUES{returning}"
        cols = ", ".join(columns)
        binds = ", ".join(f":{c}" for c in columns)
        return f"INSERT INTO {table} ({cols}) VALUES ({binds}){returning}"

    def procedure_call(
        self,
        name: str,
        parameter_names: Sequence[str],
        returns_rows: bool,
    ) -> str:
        args = ", ".join(f"{p} => :{p}" for p in parameter_names)
        if returns_rows:
            return f"SELECT * FROM {name}({args})"
        return f"CALL {name}({args})"


# =========================================================================
# Registry / Factory
# =========================================================================

# Dialects are stateless
_DIALECTS: dict[DatabaseProvider, Dialect] = {
    DatabaseProvider.SQLSERVER: SqlServerDialect(),
    DatabaseProvider.POSTGRESQL: PostgreSQLDialect(),
}


def get_dialect(provider: DatabaseProvider | str | None) -> Dialect:
    """Get the statement builder for a provider tag or alias.

    Raises:
        UnsupportedProviderError: If the provider has no dialect.
    """
    return _DIALECTS[DatabaseProvider.parse(provider)]


__all__ = [
    "ACTION_COLUMN",
    "DatabaseProvider",
    "Dialect",
    "SqlServerDialect",
    "PostgreSQLDialect",
    "bind_name",
    "get_dialect",
]
