"""
Canonical protocol definitions for record-spine.

The repositories and units of work depend only on the shapes defined here.
Concrete SQLAlchemy implementations live in
:mod:`recordspine.core.adapters.sqlalchemy`; tests use in-memory fakes.

Architecture:
    ::

        protocols.py
        ├── CommandKind         TEXT or STORED_PROCEDURE
        ├── Transaction         commit / rollback / close
        ├── Connection          closed / open / begin / close
        ├── RecordStore         single-entity CRUD + raw query/execute
        ├── AsyncTransaction    awaitable variants
        ├── AsyncConnection
        └── AsyncRecordStore

    Ownership:
        UnitOfWork owns Connection and the active Transaction.
        Repositories hold non-owning references and never close either.

Tags:
    protocol, connection, transaction, record-store, contracts
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol, TypeVar, runtime_checkable

from recordspine.core.entity import EntityDescriptor

T = TypeVar("T")


class CommandKind(str, Enum):
    """How the record store interprets the command text."""

    TEXT = "text"
    STORED_PROCEDURE = "stored_procedure"


# ---------------------------------------------------------------------------
# Synchronous protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Transaction(Protocol):
    """An open database transaction."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None:
        """Release the transaction (rolls back if still open)."""
        ...


@runtime_checkable
class Connection(Protocol):
    """A connection the unit of work can open, transact on and close."""

    @property
    def closed(self) -> bool: ...

    def open(self) -> None: ...

    def begin(self) -> Transaction: ...

    def close(self) -> None: ...


@runtime_checkable
class RecordStore(Protocol):
    """
    Single-entity CRUD plus raw parameterized query/execute.

    Every method receives the connection and, optionally, the transaction
    the statement must run in. CRUD methods also accept the caller's
    ``descriptor``; when it is omitted the store describes ``entity_type``
    itself. Failures propagate unchanged.
    """

    def get(
        self,
        connection: Connection,
        entity_type: type[T],
        id: Any,
        transaction: Transaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> T | None: ...

    def get_all(
        self,
        connection: Connection,
        entity_type: type[T],
        transaction: Transaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> list[T]: ...

    def insert(
        self,
        connection: Connection,
        entity_type: type[T],
        entity: T,
        transaction: Transaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> int: ...

    def update(
        self,
        connection: Connection,
        entity_type: type[T],
        entity: T,
        transaction: Transaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> bool: ...

    def delete(
        self,
        connection: Connection,
        entity_type: type[T],
        entity: T,
        transaction: Transaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> bool: ...

    def query(
        self,
        connection: Connection,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
        timeout: int | None = None,
        command_kind: CommandKind = CommandKind.TEXT,
        result_type: type = dict,
    ) -> list[Any]: ...

    def execute(
        self,
        connection: Connection,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        transaction: Transaction | None = None,
        timeout: int | None = None,
        command_kind: CommandKind = CommandKind.TEXT,
    ) -> int: ...


# ---------------------------------------------------------------------------
# Asynchronous protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class AsyncTransaction(Protocol):
    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class AsyncConnection(Protocol):
    @property
    def closed(self) -> bool: ...

    async def open(self) -> None: ...

    async def begin(self) -> AsyncTransaction: ...

    async def close(self) -> None: ...


@runtime_checkable
class AsyncRecordStore(Protocol):
    """Awaitable counterpart of :class:`RecordStore` with identical semantics."""

    async def get(
        self,
        connection: AsyncConnection,
        entity_type: type[T],
        id: Any,
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> T | None: ...

    async def get_all(
        self,
        connection: AsyncConnection,
        entity_type: type[T],
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> list[T]: ...

    async def insert(
        self,
        connection: AsyncConnection,
        entity_type: type[T],
        entity: T,
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> int: ...

    async def update(
        self,
        connection: AsyncConnection,
        entity_type: type[T],
        entity: T,
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> bool: ...

    async def delete(
        self,
        connection: AsyncConnection,
        entity_type: type[T],
        entity: T,
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> bool: ...

    async def query(
        self,
        connection: AsyncConnection,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        command_kind: CommandKind = CommandKind.TEXT,
        result_type: type = dict,
    ) -> list[Any]: ...

    async def execute(
        self,
        connection: AsyncConnection,
        sql: str,
        parameters: Mapping[str, Any] | None = None,
        transaction: AsyncTransaction | None = None,
        timeout: int | None = None,
        command_kind: CommandKind = CommandKind.TEXT,
    ) -> int: ...


__all__ = [
    "CommandKind",
    "Transaction",
    "Connection",
    "RecordStore",
    "AsyncTransaction",
    "AsyncConnection",
    "AsyncRecordStore",
]
