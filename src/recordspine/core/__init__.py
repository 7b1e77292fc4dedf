"""Record-Spine Core -- repositories, unit of work and bulk upsert.

Manifesto:
    Application code wants to say "store these 40 000 rows" or "update this
    order and its lines atomically" without hand-writing MERGE statements or
    threading a transaction object through every call. ``recordspine.core``
    gives each entity type a typed repository, lets a unit of work share one
    transaction across all of them, and turns bulk upsert into chunked,
    engine-specific statements that report exactly how many rows were
    inserted and how many updated.

    - **Entities are dataclasses:** keys via ``key_field()``, table via ``__tablename__``
    - **Explicit provider tag:** no branching on connection classes
    - **Injected registry:** no process-wide mapping state
    - **Sync and async:** identical contracts, one shared implementation of the logic

Architecture::

    Layer 1 -- Types & Errors
        errors.py          Structured error hierarchy (RecordSpineError)
        protocols.py       Connection / Transaction / RecordStore protocols
        entity.py          EntityDescriptor, key_field(), enum binding

    Layer 2 -- SQL
        dialect.py         SQL Server MERGE / PostgreSQL ON CONFLICT builders
        mapping.py         EntityMappingRegistry (type -> table, keys)
        upsert.py          Chunking, batch parameters, action classification

    Layer 3 -- Data Access
        transaction.py     Shared TransactionContext
        repository.py      Repository[T] / AsyncRepository[T]
        unit_of_work.py    UnitOfWork / AsyncUnitOfWork

    Layer 4 -- Infrastructure
        adapters/          SQLAlchemy connection wrappers and record stores
        connection.py      Provider detection + ConnectionFactory
        settings.py        RecordSpineSettings (RECORDSPINE_* env vars)
        logging.py         structlog configuration

Examples:
    >>> registry = EntityMappingRegistry()
    >>> registry.register(Widget, "widgets", ["Id"])
    >>> factory = ConnectionFactory()
    >>> with factory.create_unit_of_work(registry) as uow:
    ...     uow.begin_transaction()
    ...     result = uow.repository(Widget).upsert_list_batch(widgets)
    ...     uow.commit()

Tags:
    repository, unit-of-work, upsert, sqlalchemy, record-spine
"""

from recordspine.core.adapters import (
    AsyncSAConnection,
    AsyncSARecordStore,
    SAConnection,
    SARecordStore,
)
from recordspine.core.connection import ConnectionFactory, detect_provider
from recordspine.core.dialect import (
    DatabaseProvider,
    PostgreSQLDialect,
    SqlServerDialect,
    get_dialect,
)
from recordspine.core.entity import EntityDescriptor, describe, key_field
from recordspine.core.errors import (
    EntityDefinitionError,
    InvalidBatchSizeError,
    MappingNotRegisteredError,
    MissingConfigError,
    NoActiveTransactionError,
    NoKeyDefinedError,
    NullArgumentError,
    RecordSpineError,
    RegistryFrozenError,
    TransactionAlreadyActiveError,
    UnsupportedProviderError,
)
from recordspine.core.logging import configure_logging, configure_logging_from_settings, get_logger
from recordspine.core.mapping import EntityMapping, EntityMappingRegistry
from recordspine.core.protocols import CommandKind
from recordspine.core.repository import AsyncRepository, Repository
from recordspine.core.settings import RecordSpineSettings, get_settings
from recordspine.core.transaction import TransactionContext
from recordspine.core.unit_of_work import AsyncUnitOfWork, UnitOfWork
from recordspine.core.upsert import UpsertResult

__all__ = [
    # Entities / mappings
    "EntityDescriptor",
    "describe",
    "key_field",
    "EntityMapping",
    "EntityMappingRegistry",
    # Data access
    "Repository",
    "AsyncRepository",
    "UnitOfWork",
    "AsyncUnitOfWork",
    "TransactionContext",
    "UpsertResult",
    "CommandKind",
    # SQL
    "DatabaseProvider",
    "SqlServerDialect",
    "PostgreSQLDialect",
    "get_dialect",
    # Infrastructure
    "SAConnection",
    "AsyncSAConnection",
    "SARecordStore",
    "AsyncSARecordStore",
    "ConnectionFactory",
    "detect_provider",
    "RecordSpineSettings",
    "get_settings",
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    # Errors
    "RecordSpineError",
    "MappingNotRegisteredError",
    "RegistryFrozenError",
    "MissingConfigError",
    "UnsupportedProviderError",
    "NoKeyDefinedError",
    "NullArgumentError",
    "InvalidBatchSizeError",
    "EntityDefinitionError",
    "NoActiveTransactionError",
    "TransactionAlreadyActiveError",
]
