"""Connection construction and provider detection.

Usage
-----
::

    from recordspine.core.connection import ConnectionFactory
    from recordspine.core.settings import RecordSpineSettings

    factory = ConnectionFactory(RecordSpineSettings(
        database_url="postgresql+psycopg2://app:secret@db/orders",
    ))
    with factory.create_unit_of_work(registry) as uow:
        ...

Design
------
The provider tag is taken from ``settings.provider`` when set, otherwise it
is detected from the URL. Two notations are understood:

- SQLAlchemy URLs (``mssql+pyodbc://…``, ``postgresql+asyncpg://…``),
  classified by backend name;
- ADO-style connection strings, where ``Host=`` means PostgreSQL and
  ``Server=`` or ``Data Source=`` means SQL Server.

ADO-style strings identify the engine but cannot be handed to SQLAlchemy;
``create_engine`` requires a SQLAlchemy URL.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from recordspine.core.adapters.sqlalchemy import (
    AsyncSAConnection,
    AsyncSARecordStore,
    SAConnection,
    SARecordStore,
)
from recordspine.core.dialect import DatabaseProvider
from recordspine.core.errors import MissingConfigError, UnsupportedProviderError
from recordspine.core.logging import configure_logging_from_settings, get_logger
from recordspine.core.mapping import EntityMappingRegistry
from recordspine.core.settings import RecordSpineSettings, get_settings
from recordspine.core.unit_of_work import AsyncUnitOfWork, UnitOfWork

logger = get_logger(__name__)


def detect_provider(connection_string: str) -> DatabaseProvider:
    """Classify a SQLAlchemy URL or ADO-style connection string.

    Raises:
        UnsupportedProviderError: If the engine cannot be determined or is
            neither SQL Server nor PostgreSQL.
    """
    if "://" in connection_string:
        try:
            backend = make_url(connection_string).get_backend_name()
        except ArgumentError as exc:
            raise UnsupportedProviderError(
                connection_string, operation="connection string detection"
            ) from exc
        return DatabaseProvider.parse(backend)

    lowered = connection_string.lower()
    if "host=" in lowered:
        return DatabaseProvider.POSTGRESQL
    if "server=" in lowered or "data source=" in lowered:
        return DatabaseProvider.SQLSERVER
    raise UnsupportedProviderError(connection_string, operation="connection string detection")


class ConnectionFactory:
    """Builds engines, connections, record stores and units of work from settings.

    Parameters:
        settings: Settings to build from (default: :func:`get_settings`)
        configure_logs: Apply the settings' ``log_*`` fields to the
            process-wide logging configuration
    """

    def __init__(self, settings: RecordSpineSettings | None = None, *, configure_logs: bool = False) -> None:
        self._settings = settings or get_settings()
        if configure_logs:
            configure_logging_from_settings(self._settings)
        self._engine: Engine | None = None
        self._async_engine: AsyncEngine | None = None

    @property
    def settings(self) -> RecordSpineSettings:
        return self._settings

    @property
    def url(self) -> str:
        if not self._settings.database_url:
            raise MissingConfigError("database_url")
        return self._settings.database_url

    @property
    def provider(self) -> DatabaseProvider:
        if self._settings.provider:
            return DatabaseProvider.parse(self._settings.provider)
        return detect_provider(self.url)

    # -- Engines -----------------------------------------------------------

    def create_engine(self) -> Engine:
        """Return the (cached) synchronous engine."""
        if self._engine is None:
            self._engine = create_engine(self.url, echo=self._settings.echo_sql)
            logger.debug("engine_created", provider=self.provider.value)
        return self._engine

    def create_async_engine(self) -> AsyncEngine:
        """Return the (cached) asynchronous engine; needs an async driver URL."""
        if self._async_engine is None:
            self._async_engine = create_async_engine(self.url, echo=self._settings.echo_sql)
            logger.debug("async_engine_created", provider=self.provider.value)
        return self._async_engine

    # -- Connections / stores ---------------------------------------------

    def create_connection(self) -> SAConnection:
        return SAConnection(self.create_engine())

    def create_async_connection(self) -> AsyncSAConnection:
        return AsyncSAConnection(self.create_async_engine())

    def create_record_store(self) -> SARecordStore:
        return SARecordStore(self.provider)

    def create_async_record_store(self) -> AsyncSARecordStore:
        return AsyncSARecordStore(self.provider)

    # -- Units of work -----------------------------------------------------

    def create_unit_of_work(self, mappings: EntityMappingRegistry | None = None) -> UnitOfWork:
        """New unit of work over a fresh connection."""
        return UnitOfWork(
            self.create_connection(),
            self.create_record_store(),
            mappings=mappings,
            provider=self.provider,
            batch_size=self._settings.batch_size,
            command_timeout=self._settings.command_timeout,
        )

    def create_async_unit_of_work(self, mappings: EntityMappingRegistry | None = None) -> AsyncUnitOfWork:
        return AsyncUnitOfWork(
            self.create_async_connection(),
            self.create_async_record_store(),
            mappings=mappings,
            provider=self.provider,
            batch_size=self._settings.batch_size,
            command_timeout=self._settings.command_timeout,
        )

    def dispose(self) -> None:
        """Dispose the synchronous engine's pool (the async engine needs ``await``)."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


__all__ = [
    "detect_provider",
    "ConnectionFactory",
]
