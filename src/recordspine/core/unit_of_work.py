"""Unit of work: one connection, one transaction, one repository per type.

State machine::

    ┌────────────────┐  begin_transaction()   ┌────────────────────┐
    │ NoTransaction  │ ─────────────────────► │ TransactionActive  │
    │   (initial)    │ ◄───────────────────── │                    │
    └────────────────┘   commit()/rollback()  └────────────────────┘
            │                                          │
            └──────────────── close() ─────────────────┘
                                 ▼
                            ┌─────────┐
                            │ Closed  │
                            └─────────┘

Repositories receive the unit of work's :class:`TransactionContext` at
construction and read the active transaction through it, so whenever a
transaction is active every cached repository reports exactly that
transaction, and none after commit or rollback.

Usage:
    >>> with UnitOfWork(connection, store, mappings=registry, provider="postgresql") as uow:
    ...     uow.begin_transaction()
    ...     uow.repository(Order).add(order)
    ...     uow.repository(OrderLine).upsert_list_batch(lines)
    ...     uow.commit()

Tags:
    unit-of-work, transaction, repository-cache, record-spine
"""

from __future__ import annotations

from typing import Any, TypeVar

from recordspine.core.entity import EntityDescriptor
from recordspine.core.errors import (
    NoActiveTransactionError,
    NullArgumentError,
    TransactionAlreadyActiveError,
)
from recordspine.core.logging import get_logger
from recordspine.core.mapping import EntityMappingRegistry
from recordspine.core.protocols import (
    AsyncConnection,
    AsyncRecordStore,
    Connection,
    RecordStore,
)
from recordspine.core.repository import AsyncRepository, Repository
from recordspine.core.settings import DEFAULT_BATCH_SIZE
from recordspine.core.transaction import TransactionContext

T = TypeVar("T")

logger = get_logger(__name__)


class _UnitOfWorkBase:
    def __init__(
        self,
        connection: Any,
        record_store: Any,
        *,
        mappings: EntityMappingRegistry | None = None,
        provider: Any = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        command_timeout: int | None = None,
    ) -> None:
        if connection is None:
            raise NullArgumentError("connection")
        self._connection = connection
        self._store = record_store
        self._mappings = mappings
        self._provider = provider
        self._batch_size = batch_size
        self._timeout = command_timeout
        self._context = TransactionContext()
        self._repositories: dict[type, Any] = {}

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def transaction(self) -> Any:
        return self._context.current

    @property
    def in_transaction(self) -> bool:
        return self._context.active

    def _repository_kwargs(self) -> dict[str, Any]:
        return {
            "transaction_context": self._context,
            "mappings": self._mappings,
            "provider": self._provider,
            "batch_size": self._batch_size,
            "command_timeout": self._timeout,
        }

    def _cache(self, entity_type: type, factory: type, descriptor: EntityDescriptor | None) -> Any:
        repo = self._repositories.get(entity_type)
        if repo is None:
            repo = factory(
                self._connection,
                self._store,
                entity_type,
                descriptor=descriptor,
                **self._repository_kwargs(),
            )
            self._repositories[entity_type] = repo
            logger.debug(
                "repository_created",
                entity=entity_type.__name__,
                in_transaction=self._context.active,
            )
        return repo

    def _active_transaction(self, operation: str) -> Any:
        transaction = self._context.current
        if transaction is None:
            raise NoActiveTransactionError(operation)
        return transaction


class UnitOfWork(_UnitOfWorkBase):
    """Coordinates one connection's transaction across its repositories.

    Parameters:
        connection: Connection the unit of work owns and closes
        record_store: Record store shared by every repository
        mappings: Entity mapping registry for bulk upsert
        provider: ``DatabaseProvider`` tag for bulk upsert
        batch_size: Default bulk-upsert batch size for its repositories
        command_timeout: Command timeout for its repositories
    """

    def __init__(self, connection: Connection, record_store: RecordStore, **kwargs: Any) -> None:
        super().__init__(connection, record_store, **kwargs)

    def repository(self, entity_type: type[T], descriptor: EntityDescriptor | None = None) -> Repository[T]:
        """Return the repository for ``entity_type``, creating it on first use.

        ``descriptor`` overrides the table and key columns of a repository
        created by this call. Once cached, the repository keeps the
        descriptor it was created with.
        """
        return self._cache(entity_type, Repository, descriptor)

    def begin_transaction(self) -> None:
        """Open the connection if needed and start a transaction.

        Raises:
            TransactionAlreadyActiveError: If a transaction is already active.
        """
        if self._context.active:
            raise TransactionAlreadyActiveError()
        if self._connection.closed:
            self._connection.open()
        self._context.publish(self._connection.begin())
        logger.debug("transaction_begun", repositories=len(self._repositories))

    def commit(self) -> None:
        """Commit and release the active transaction.

        Raises:
            NoActiveTransactionError: If no transaction is active.
        """
        transaction = self._active_transaction("commit")
        try:
            transaction.commit()
        finally:
            self._release(transaction)
        logger.debug("transaction_committed")

    def rollback(self) -> None:
        """Roll back and release the active transaction.

        Raises:
            NoActiveTransactionError: If no transaction is active.
        """
        transaction = self._active_transaction("rollback")
        try:
            transaction.rollback()
        finally:
            self._release(transaction)
        logger.debug("transaction_rolled_back")

    def _release(self, transaction: Any) -> None:
        self._context.clear()
        transaction.close()

    def close(self) -> None:
        """Release an active transaction, then the connection."""
        transaction = self._context.current
        try:
            if transaction is not None:
                self._context.clear()
                transaction.close()
        finally:
            self._connection.close()
            logger.debug("unit_of_work_closed", released_transaction=transaction is not None)

    def __enter__(self) -> UnitOfWork:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class AsyncUnitOfWork(_UnitOfWorkBase):
    """Asynchronous unit of work; same contract as :class:`UnitOfWork`."""

    def __init__(self, connection: AsyncConnection, record_store: AsyncRecordStore, **kwargs: Any) -> None:
        super().__init__(connection, record_store, **kwargs)

    def repository(self, entity_type: type[T], descriptor: EntityDescriptor | None = None) -> AsyncRepository[T]:
        return self._cache(entity_type, AsyncRepository, descriptor)

    async def begin_transaction(self) -> None:
        if self._context.active:
            raise TransactionAlreadyActiveError()
        if self._connection.closed:
            await self._connection.open()
        self._context.publish(await self._connection.begin())
        logger.debug("transaction_begun", repositories=len(self._repositories))

    async def commit(self) -> None:
        transaction = self._active_transaction("commit")
        try:
            await transaction.commit()
        finally:
            await self._release(transaction)
        logger.debug("transaction_committed")

    async def rollback(self) -> None:
        transaction = self._active_transaction("rollback")
        try:
            await transaction.rollback()
        finally:
            await self._release(transaction)
        logger.debug("transaction_rolled_back")

    async def _release(self, transaction: Any) -> None:
        self._context.clear()
        await transaction.close()

    async def close(self) -> None:
        transaction = self._context.current
        try:
            if transaction is not None:
                self._context.clear()
                await transaction.close()
        finally:
            await self._connection.close()
            logger.debug("unit_of_work_closed", released_transaction=transaction is not None)

    async def __aenter__(self) -> AsyncUnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "UnitOfWork",
    "AsyncUnitOfWork",
]
