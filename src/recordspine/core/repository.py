"""Generic repositories: typed CRUD, upsert and batched bulk upsert.

:class:`Repository` and :class:`AsyncRepository` wrap one connection and
one entity type. Simple operations are single calls into a
:class:`~recordspine.core.protocols.RecordStore`; upsert and bulk upsert are
driven here, on top of the record store's raw query path.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                        Repository[T]                               │
    │                                                                    │
    │   connection            ← owned by the UnitOfWork                  │
    │   transaction_context   ← shared, read on every call               │
    │   descriptor            ← columns / keys / table of T              │
    │   mappings              ← EntityMappingRegistry (bulk upsert)      │
    │   provider              ← DatabaseProvider tag (bulk upsert)       │
    │                                                                    │
    │   get_by_id / get_all / add / update / delete  → record store      │
    │   execute_stored_procedure[_non_query]         → record store      │
    │   upsert               → get / update / add (single or composite)  │
    │   upsert_list_batch    → chunk → dialect SQL → query → classify    │
    └────────────────────────────────────────────────────────────────────┘

Usage:
    >>> with factory.create_unit_of_work(registry) as uow:
    ...     widgets = uow.repository(Widget)
    ...     widgets.upsert_list_batch(rows, batch_size=500)
    UpsertResult(inserted=498, updated=2)

Tags:
    repository, crud, upsert, bulk-upsert, record-spine
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from recordspine.core.entity import (
    EntityDescriptor,
    bind_value,
    describe,
    is_default,
    widen_key,
)
from recordspine.core.errors import (
    InvalidBatchSizeError,
    MappingNotRegisteredError,
    NoKeyDefinedError,
    NullArgumentError,
)
from recordspine.core.logging import get_logger
from recordspine.core.mapping import EntityMappingRegistry
from recordspine.core.protocols import (
    AsyncConnection,
    AsyncRecordStore,
    CommandKind,
    Connection,
    RecordStore,
)
from recordspine.core.settings import DEFAULT_BATCH_SIZE
from recordspine.core.transaction import TransactionContext
from recordspine.core.upsert import (
    BatchStatement,
    UpsertResult,
    build_batch_statement,
    chunked,
    classify_actions,
    existence_query,
)

T = TypeVar("T")

logger = get_logger(__name__)

# Returned by composite-key upsert when an existing row was updated.
COMPOSITE_UPDATE_SENTINEL = 0


class _RepositoryBase(Generic[T]):
    """State and pure helpers shared by the sync and async repositories."""

    def __init__(
        self,
        connection: Any,
        record_store: Any,
        entity_type: type[T],
        *,
        transaction_context: TransactionContext | None = None,
        mappings: EntityMappingRegistry | None = None,
        provider: Any = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        command_timeout: int | None = None,
        descriptor: EntityDescriptor | None = None,
    ) -> None:
        if connection is None:
            raise NullArgumentError("connection", entity=entity_type.__name__)
        self._connection = connection
        self._store = record_store
        self._entity_type = entity_type
        self._tx = transaction_context if transaction_context is not None else TransactionContext()
        self._mappings = mappings
        self._provider = provider
        self._batch_size = batch_size
        self._timeout = command_timeout
        self._descriptor = descriptor or describe(entity_type)

    # -- Properties --------------------------------------------------------

    @property
    def entity_type(self) -> type[T]:
        return self._entity_type

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def transaction(self) -> Any:
        """The active transaction of the owning unit of work, or ``None``."""
        return self._tx.current

    @property
    def descriptor(self) -> EntityDescriptor:
        return self._descriptor

    @property
    def provider(self) -> Any:
        return self._provider

    # -- Helpers -----------------------------------------------------------

    def _key_columns(self) -> tuple[str, ...]:
        keys = self._descriptor.key_columns
        if not keys:
            raise NoKeyDefinedError(self._descriptor.name)
        return keys

    def _existence_query(self, entity: T, keys: Sequence[str]) -> tuple[str, dict[str, Any]]:
        sql = existence_query(self._descriptor.table_name, keys)
        return sql, {k: bind_value(getattr(entity, k)) for k in keys}

    def _batch_rows(self, entities: Iterable[T] | None) -> list[T]:
        if entities is None:
            raise NullArgumentError("entities", entity=self._descriptor.name)
        return list(entities)

    def _resolve_batch_size(self, batch_size: int | None) -> int:
        size = self._batch_size if batch_size is None else batch_size
        if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
            raise InvalidBatchSizeError(size, entity=self._descriptor.name)
        return size

    def _batch_statement(self, chunk: Sequence[T]) -> BatchStatement:
        if self._mappings is None:
            raise MappingNotRegisteredError(self._descriptor.name)
        mapping = self._mappings.get_mapping(self._entity_type)
        return build_batch_statement(self._provider, mapping, self._descriptor, chunk)

    def _log_chunk(self, index: int, statement: BatchStatement, result: UpsertResult) -> None:
        logger.debug(
            "bulk_upsert_chunk",
            entity=self._descriptor.name,
            chunk=index,
            rows=statement.row_count,
            inserted=result.inserted,
            updated=result.updated,
        )

    def _log_completed(self, rows: int, chunks: int, result: UpsertResult) -> None:
        logger.info(
            "bulk_upsert_completed",
            entity=self._descriptor.name,
            rows=rows,
            chunks=chunks,
            inserted=result.inserted,
            updated=result.updated,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}[{self._descriptor.name}]"


class Repository(_RepositoryBase[T]):
    """Synchronous repository for one entity type.

    Parameters:
        connection: Connection owned by the caller (usually a UnitOfWork)
        record_store: :class:`RecordStore` executing the statements
        entity_type: Dataclass the repository manages
        transaction_context: Shared slot for the active transaction
        mappings: Registry consulted by :meth:`upsert_list_batch`
        provider: ``DatabaseProvider`` tag selecting the bulk-upsert dialect
        batch_size: Default rows per bulk-upsert statement
        command_timeout: Passed to the record store with every command
        descriptor: Explicit key/table descriptor (default: :func:`describe`)
    """

    def __init__(
        self,
        connection: Connection,
        record_store: RecordStore,
        entity_type: type[T],
        **kwargs: Any,
    ) -> None:
        super().__init__(connection, record_store, entity_type, **kwargs)

    # -- CRUD --------------------------------------------------------------

    def get_by_id(self, id: Any) -> T | None:
        return self._store.get(
            self._connection, self._entity_type, id, self.transaction, self._timeout, descriptor=self._descriptor
        )

    def get_all(self) -> list[T]:
        return self._store.get_all(
            self._connection, self._entity_type, self.transaction, self._timeout, descriptor=self._descriptor
        )

    def add(self, entity: T) -> int:
        """Insert ``entity``; returns the generated identity."""
        return self._store.insert(
            self._connection, self._entity_type, entity, self.transaction, self._timeout, descriptor=self._descriptor
        )

    def update(self, entity: T) -> bool:
        """Update by key; ``False`` when no row matched."""
        return self._store.update(
            self._connection, self._entity_type, entity, self.transaction, self._timeout, descriptor=self._descriptor
        )

    def delete(self, entity: T) -> bool:
        return self._store.delete(
            self._connection, self._entity_type, entity, self.transaction, self._timeout, descriptor=self._descriptor
        )

    # -- Stored procedures -------------------------------------------------

    def execute_stored_procedure(
        self,
        name: str,
        parameters: Mapping[str, Any] | None = None,
        result_type: type = dict,
    ) -> list[Any]:
        """Run a row-returning stored procedure; rows as ``result_type``."""
        return self._store.query(
            self._connection,
            name,
            parameters,
            self.transaction,
            self._timeout,
            CommandKind.STORED_PROCEDURE,
            result_type,
        )

    def execute_stored_procedure_non_query(
        self,
        name: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> int:
        """Run a stored procedure; returns the affected-row count."""
        return self._store.execute(
            self._connection,
            name,
            parameters,
            self.transaction,
            self._timeout,
            CommandKind.STORED_PROCEDURE,
        )

    # -- Upsert ------------------------------------------------------------

    def upsert(self, entity: T) -> int:
        """Insert or update ``entity`` by its key columns.

        Single key: a default key value, or a key that :meth:`get_by_id`
        cannot find, inserts and returns the generated identity. Otherwise
        the row is updated and its key returned; if the update matched
        nothing the entity is inserted after all.

        Composite key: existence is checked with one ``SELECT`` over all key
        columns. An update returns ``0``; an insert returns what
        :meth:`add` returns.

        Raises:
            NoKeyDefinedError: If the entity type declares no key columns.
        """
        keys = self._key_columns()

        if len(keys) == 1:
            value = getattr(entity, keys[0])
            if is_default(value) or self.get_by_id(value) is None:
                return self._insert_for_upsert(entity)
            if not self.update(entity):
                return self._insert_for_upsert(entity)
            logger.debug("upsert_updated", entity=self._descriptor.name, key=value)
            return widen_key(value)

        sql, params = self._existence_query(entity, keys)
        existing = self._store.query(
            self._connection,
            sql,
            params,
            self.transaction,
            self._timeout,
            CommandKind.TEXT,
            self._entity_type,
        )
        if not existing or not self.update(entity):
            return self._insert_for_upsert(entity)
        logger.debug("upsert_updated", entity=self._descriptor.name, key=params)
        return COMPOSITE_UPDATE_SENTINEL

    def _insert_for_upsert(self, entity: T) -> int:
        identity = self.add(entity)
        logger.debug("upsert_inserted", entity=self._descriptor.name, identity=identity)
        return identity

    def upsert_list_batch(
        self,
        entities: Iterable[T] | None,
        batch_size: int | None = None,
    ) -> UpsertResult:
        """Bulk upsert in chunks of at most ``batch_size`` rows.

        Each chunk becomes one dialect-specific statement whose returned
        ``Action`` column classifies every row as inserted or updated.

        Raises:
            NullArgumentError: If ``entities`` is ``None``.
            MappingNotRegisteredError: If the type has no registered mapping.
            UnsupportedProviderError: If the provider has no bulk dialect.
        """
        rows = self._batch_rows(entities)
        if not rows:
            return UpsertResult()
        size = self._resolve_batch_size(batch_size)

        total = UpsertResult()
        chunks = 0
        for index, chunk in enumerate(chunked(rows, size)):
            statement = self._batch_statement(chunk)
            actions = self._store.query(
                self._connection,
                statement.sql,
                statement.parameters,
                self.transaction,
                self._timeout,
                CommandKind.TEXT,
                str,
            )
            result = classify_actions(actions)
            self._log_chunk(index, statement, result)
            total = total.merge(result)
            chunks += 1

        self._log_completed(len(rows), chunks, total)
        return total


class AsyncRepository(_RepositoryBase[T]):
    """Asynchronous repository; same contract as :class:`Repository`.

    Every method suspends only while its statement runs on the connection.
    """

    def __init__(
        self,
        connection: AsyncConnection,
        record_store: AsyncRecordStore,
        entity_type: type[T],
        **kwargs: Any,
    ) -> None:
        super().__init__(connection, record_store, entity_type, **kwargs)

    # -- CRUD --------------------------------------------------------------

    async def get_by_id(self, id: Any) -> T | None:
        return await self._store.get(
            self._connection, self._entity_type, id, self.transaction, self._timeout, descriptor=self._descriptor
        )

    async def get_all(self) -> list[T]:
        return await self._store.get_all(
            self._connection, self._entity_type, self.transaction, self._timeout, descriptor=self._descriptor
        )

    async def add(self, entity: T) -> int:
        return await self._store.insert(
            self._connection, self._entity_type, entity, self.transaction, self._timeout, descriptor=self._descriptor
        )

    async def update(self, entity: T) -> bool:
        return await self._store.update(
            self._connection, self._entity_type, entity, self.transaction, self._timeout, descriptor=self._descriptor
        )

    async def delete(self, entity: T) -> bool:
        return await self._store.delete(
            self._connection, self._entity_type, entity, self.transaction, self._timeout, descriptor=self._descriptor
        )

    # -- Stored procedures -------------------------------------------------

    async def execute_stored_procedure(
        self,
        name: str,
        parameters: Mapping[str, Any] | None = None,
        result_type: type = dict,
    ) -> list[Any]:
        return await self._store.query(
            self._connection,
            name,
            parameters,
            self.transaction,
            self._timeout,
            CommandKind.STORED_PROCEDURE,
            result_type,
        )

    async def execute_stored_procedure_non_query(
        self,
        name: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> int:
        return await self._store.execute(
            self._connection,
            name,
            parameters,
            self.transaction,
            self._timeout,
            CommandKind.STORED_PROCEDURE,
        )

    # -- Upsert ------------------------------------------------------------

    async def upsert(self, entity: T) -> int:
        """See :meth:`Repository.upsert`."""
        keys = self._key_columns()

        if len(keys) == 1:
            value = getattr(entity, keys[0])
            if is_default(value) or await self.get_by_id(value) is None:
                return await self._insert_for_upsert(entity)
            if not await self.update(entity):
                return await self._insert_for_upsert(entity)
            logger.debug("upsert_updated", entity=self._descriptor.name, key=value)
            return widen_key(value)

        sql, params = self._existence_query(entity, keys)
        existing = await self._store.query(
            self._connection,
            sql,
            params,
            self.transaction,
            self._timeout,
            CommandKind.TEXT,
            self._entity_type,
        )
        if not existing or not await self.update(entity):
            return await self._insert_for_upsert(entity)
        logger.debug("upsert_updated", entity=self._descriptor.name, key=params)
        return COMPOSITE_UPDATE_SENTINEL

    async def _insert_for_upsert(self, entity: T) -> int:
        identity = await self.add(entity)
        logger.debug("upsert_inserted", entity=self._descriptor.name, identity=identity)
        return identity

    async def upsert_list_batch(
        self,
        entities: Iterable[T] | None,
        batch_size: int | None = None,
    ) -> UpsertResult:
        """See :meth:`Repository.upsert_list_batch`."""
        rows = self._batch_rows(entities)
        if not rows:
            return UpsertResult()
        size = self._resolve_batch_size(batch_size)

        total = UpsertResult()
        chunks = 0
        for index, chunk in enumerate(chunked(rows, size)):
            statement = self._batch_statement(chunk)
            actions = await self._store.query(
                self._connection,
                statement.sql,
                statement.parameters,
                self.transaction,
                self._timeout,
                CommandKind.TEXT,
                str,
            )
            result = classify_actions(actions)
            self._log_chunk(index, statement, result)
            total = total.merge(result)
            chunks += 1

        self._log_completed(len(rows), chunks, total)
        return total


__all__ = [
    "COMPOSITE_UPDATE_SENTINEL",
    "Repository",
    "AsyncRepository",
]
