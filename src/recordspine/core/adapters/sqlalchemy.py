"""SQLAlchemy-backed connection wrappers and record stores.

This module provides:

* ``SAConnection`` / ``AsyncSAConnection`` -- wrap an ``Engine`` /
  ``AsyncEngine`` and satisfy the ``Connection`` / ``AsyncConnection``
  protocols the unit of work drives (``closed``, ``open``, ``begin``,
  ``close``). The underlying SQLAlchemy connection is opened lazily.
* ``SARecordStore`` / ``AsyncSARecordStore`` -- single-entity CRUD and raw
  query/execute over ``sqlalchemy.text()`` statements with ``:name`` binds.

Transactions:
    When a call receives a transaction it runs inside it and never commits.
    Without one, SQLAlchemy's implicitly begun transaction is committed as
    soon as the statement's result has been read (rolled back on error), so
    standalone calls behave like auto-commit.

Tags:
    sqlalchemy, record-store, connection, adapter, record-spine
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection as SAConnectionType
from sqlalchemy.engine import Engine, Result
from sqlalchemy.ext.asyncio import AsyncConnection as SAAsyncConnectionType
from sqlalchemy.ext.asyncio import AsyncEngine

from recordspine.core.dialect import Dialect, PostgreSQLDialect, get_dialect
from recordspine.core.entity import EntityDescriptor, bind_value, describe, is_default, widen_key
from recordspine.core.errors import NoKeyDefinedError, UnsupportedProviderError
from recordspine.core.protocols import CommandKind


# Engines other than SQL Server report generated keys through RETURNING.
_RETURNING_DIALECT = PostgreSQLDialect()


@lru_cache(maxsize=None)
def _descriptor(entity_type: type) -> EntityDescriptor:
    return describe(entity_type)


# =============================================================================
# Connections
# =============================================================================


class SAConnection:
    """Lazily opened SQLAlchemy ``Connection`` bound to an ``Engine``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._connection: SAConnectionType | None = None

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._connection is None or self._connection.closed

    def open(self) -> None:
        if self.closed:
            self._connection = self._engine.connect()

    @property
    def connection(self) -> SAConnectionType:
        """The underlying SQLAlchemy connection, opened on first access."""
        self.open()
        return self._connection  # type: ignore[return-value]

    def begin(self) -> Any:
        return self.connection.begin()

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()


class AsyncSAConnection:
    """Lazily opened SQLAlchemy ``AsyncConnection`` bound to an ``AsyncEngine``."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._connection: SAAsyncConnectionType | None = None

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._connection is None or self._connection.closed

    async def open(self) -> None:
        if self.closed:
            self._connection = await self._engine.connect()

    async def get_connection(self) -> SAAsyncConnectionType:
        await self.open()
        return self._connection  # type: ignore[return-value]

    async def begin(self) -> Any:
        connection = await self.get_connection()
        return await connection.begin()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()


# =============================================================================
# Record stores
# =============================================================================


class _SAStatements:
    """SQL synthesis shared by the sync and async record stores."""

    def __init__(self, provider: Any) -> None:
        self._provider = provider
        try:
            self._dialect: Dialect | None = get_dialect(provider)
        except UnsupportedProviderError:
            # CRUD still works on RETURNING-capable engines (e.g. SQLite);
            # stored procedures need one of the two dialects.
            self._dialect = None

    @property
    def provider(self) -> Any:
        return self._provider

    def _where_keys(self, descriptor: EntityDescriptor) -> str:
        if not descriptor.key_columns:
            raise NoKeyDefinedError(descriptor.name)
        return " AND ".join(f"{k} = :{k}" for k in descriptor.key_columns)

    def select_by_key(self, descriptor: EntityDescriptor, id: Any) -> tuple[str, dict[str, Any]]:
        where = self._where_keys(descriptor)
        keys = descriptor.key_columns
        if isinstance(id, Mapping):
            params = {k: bind_value(id[k]) for k in keys}
        elif len(keys) > 1:
            params = {k: bind_value(v) for k, v in zip(keys, id, strict=True)}
        else:
            params = {keys[0]: bind_value(id)}
        return f"SELECT * FROM {descriptor.table_name} WHERE {where}", params

    def select_all(self, descriptor: EntityDescriptor) -> str:
        return f"SELECT * FROM {descriptor.table_name}"

    def insert_statement(self, descriptor: EntityDescriptor, entity: Any) -> tuple[str, dict[str, Any], str | None]:
        values = descriptor.values(entity)
        keys = descriptor.key_columns
        # Default-valued keys are left to the database to generate.
        columns = [c for c in descriptor.columns if not (c in keys and is_default(values[c]))]
        identity = keys[0] if len(keys) == 1 else None
        builder = self._dialect or _RETURNING_DIALECT
        sql = builder.insert(descriptor.table_name, columns, identity)
        return sql, {c: bind_value(values[c]) for c in columns}, identity

    def update_statement(self, descriptor: EntityDescriptor, entity: Any) -> tuple[str, dict[str, Any]]:
        where = self._where_keys(descriptor)
        assigned = descriptor.non_key_columns or descriptor.key_columns
        assignments = ", ".join(f"{c} = :{c}" for c in assigned)
        params = {c: bind_value(v) for c, v in descriptor.values(entity).items()}
        return f"UPDATE {descriptor.table_name} SET {assignments} WHERE {where}", params

    def delete_statement(self, descriptor: EntityDescriptor, entity: Any) -> tuple[str, dict[str, Any]]:
        where = self._where_keys(descriptor)
        params = {k: bind_value(v) for k, v in descriptor.key_values(entity).items()}
        return f"DELETE FROM {descriptor.table_name} WHERE {where}", params

    def command(
        self,
        sql: str,
        parameters: Mapping[str, Any] | None,
        command_kind: CommandKind,
        returns_rows: bool,
    ) -> tuple[str, dict[str, Any]]:
        params = {k: bind_value(v) for k, v in (parameters or {}).items()}
        if command_kind is CommandKind.STORED_PROCEDURE:
            if self._dialect is None:
                raise UnsupportedProviderError(self._provider, operation="stored procedures")
            sql = self._dialect.procedure_call(sql, list(params), returns_rows)
        return sql, params


def _build(result: Result, descriptor: EntityDescriptor) -> list[Any]:
    return [descriptor.build(row._mapping) for row in result]


def _materialize(result: Result, result_type: type) -> list[Any]:
    if result_type is dict:
        return [dict(row._mapping) for row in result]
    if dataclasses.is_dataclass(result_type):
        return _build(result, _descriptor(result_type))
    values = []
    for row in result:
        value = row[0]
        if value is not None and not isinstance(value, result_type):
            value = result_type(value)
        values.append(value)
    return values


def _identity(result: Result, identity: str | None) -> int:
    if identity is None:
        return 0
    row = result.first()
    return widen_key(row[0]) if row is not None else 0


class SARecordStore(_SAStatements):
    """:class:`~recordspine.core.protocols.RecordStore` over ``SAConnection``.

    Parameters:
        provider: ``DatabaseProvider`` tag or engine name. Any engine with
            ``RETURNING`` support works for CRUD; stored procedures need
            ``sqlserver`` or ``postgresql``.

    ``timeout`` is accepted for protocol compatibility; configure driver
    timeouts on the engine (``connect_args``).

    CRUD methods take the table and key columns from ``descriptor`` when one
    is given, otherwise from :func:`~recordspine.core.entity.describe`.
    """

    def _run(
        self,
        connection: SAConnection,
        sql: str,
        params: Mapping[str, Any],
        transaction: Any,
        read: Callable[[Result], Any],
    ) -> Any:
        conn = connection.connection
        try:
            value = read(conn.execute(text(sql), dict(params)))
        except Exception:
            if transaction is None and conn.in_transaction():
                conn.rollback()
            raise
        if transaction is None and conn.in_transaction():
            conn.commit()
        return value

    def get(self, connection, entity_type, id, transaction=None, timeout=None, descriptor=None):
        descriptor = descriptor or _descriptor(entity_type)
        sql, params = self.select_by_key(descriptor, id)
        rows = self._run(connection, sql, params, transaction, lambda r: _build(r, descriptor))
        return rows[0] if rows else None

    def get_all(self, connection, entity_type, transaction=None, timeout=None, descriptor=None):
        descriptor = descriptor or _descriptor(entity_type)
        sql = self.select_all(descriptor)
        return self._run(connection, sql, {}, transaction, lambda r: _build(r, descriptor))

    def insert(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        sql, params, identity = self.insert_statement(descriptor or _descriptor(entity_type), entity)
        return self._run(connection, sql, params, transaction, lambda r: _identity(r, identity))

    def update(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        sql, params = self.update_statement(descriptor or _descriptor(entity_type), entity)
        return self._run(connection, sql, params, transaction, lambda r: r.rowcount > 0)

    def delete(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        sql, params = self.delete_statement(descriptor or _descriptor(entity_type), entity)
        return self._run(connection, sql, params, transaction, lambda r: r.rowcount > 0)

    def query(
        self,
        connection,
        sql,
        parameters=None,
        transaction=None,
        timeout=None,
        command_kind=CommandKind.TEXT,
        result_type=dict,
    ):
        sql, params = self.command(sql, parameters, command_kind, returns_rows=True)
        return self._run(connection, sql, params, transaction, lambda r: _materialize(r, result_type))

    def execute(
        self,
        connection,
        sql,
        parameters=None,
        transaction=None,
        timeout=None,
        command_kind=CommandKind.TEXT,
    ):
        sql, params = self.command(sql, parameters, command_kind, returns_rows=False)
        return self._run(connection, sql, params, transaction, lambda r: r.rowcount)


class AsyncSARecordStore(_SAStatements):
    """:class:`~recordspine.core.protocols.AsyncRecordStore` over ``AsyncSAConnection``."""

    async def _run(
        self,
        connection: AsyncSAConnection,
        sql: str,
        params: Mapping[str, Any],
        transaction: Any,
        read: Callable[[Result], Any],
    ) -> Any:
        conn = await connection.get_connection()
        try:
            value = read(await conn.execute(text(sql), dict(params)))
        except Exception:
            if transaction is None and conn.in_transaction():
                await conn.rollback()
            raise
        if transaction is None and conn.in_transaction():
            await conn.commit()
        return value

    async def get(self, connection, entity_type, id, transaction=None, timeout=None, descriptor=None):
        descriptor = descriptor or _descriptor(entity_type)
        sql, params = self.select_by_key(descriptor, id)
        rows = await self._run(connection, sql, params, transaction, lambda r: _build(r, descriptor))
        return rows[0] if rows else None

    async def get_all(self, connection, entity_type, transaction=None, timeout=None, descriptor=None):
        descriptor = descriptor or _descriptor(entity_type)
        sql = self.select_all(descriptor)
        return await self._run(connection, sql, {}, transaction, lambda r: _build(r, descriptor))

    async def insert(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        sql, params, identity = self.insert_statement(descriptor or _descriptor(entity_type), entity)
        return await self._run(connection, sql, params, transaction, lambda r: _identity(r, identity))

    async def update(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        sql, params = self.update_statement(descriptor or _descriptor(entity_type), entity)
        return await self._run(connection, sql, params, transaction, lambda r: r.rowcount > 0)

    async def delete(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        sql, params = self.delete_statement(descriptor or _descriptor(entity_type), entity)
        return await self._run(connection, sql, params, transaction, lambda r: r.rowcount > 0)

    async def query(
        self,
        connection,
        sql,
        parameters=None,
        transaction=None,
        timeout=None,
        command_kind=CommandKind.TEXT,
        result_type=dict,
    ):
        sql, params = self.command(sql, parameters, command_kind, returns_rows=True)
        return await self._run(connection, sql, params, transaction, lambda r: _materialize(r, result_type))

    async def execute(
        self,
        connection,
        sql,
        parameters=None,
        transaction=None,
        timeout=None,
        command_kind=CommandKind.TEXT,
    ):
        sql, params = self.command(sql, parameters, command_kind, returns_rows=False)
        return await self._run(connection, sql, params, transaction, lambda r: r.rowcount)


__all__ = [
    "SAConnection",
    "AsyncSAConnection",
    "SARecordStore",
    "AsyncSARecordStore",
]
