"""Tests for the SQLAlchemy record store against in-memory SQLite."""

from __future__ import annotations

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine

from recordspine.core.adapters.sqlalchemy import (
    AsyncSAConnection,
    AsyncSARecordStore,
    SAConnection,
    SARecordStore,
)
from recordspine.core.entity import describe
from recordspine.core.errors import NoKeyDefinedError, UnsupportedProviderError
from recordspine.core.protocols import AsyncRecordStore, CommandKind, Connection, RecordStore
from recordspine.core.repository import AsyncRepository, Repository
from recordspine.core.unit_of_work import AsyncUnitOfWork, UnitOfWork
from tests._support.entities import AuditEntry, Gadget, Memo, OrderLine, Status, Widget

DDL = [
    "CREATE TABLE widgets (Id INTEGER PRIMARY KEY AUTOINCREMENT, Name TEXT NOT NULL)",
    "CREATE TABLE gadgets (Code TEXT PRIMARY KEY, Label TEXT, State TEXT)",
    "CREATE TABLE order_lines (OrderId INTEGER, LineNo INTEGER, Sku TEXT, Quantity INTEGER, "
    "PRIMARY KEY (OrderId, LineNo))",
    "CREATE TABLE memos (Id INTEGER PRIMARY KEY AUTOINCREMENT, Text TEXT)",
]

MEMO_DESCRIPTOR = describe(Memo, keys=["Id"], table="memos")


@pytest.fixture
def sa_connection() -> Generator[SAConnection, None, None]:
    engine = create_engine("sqlite://")
    connection = SAConnection(engine)
    for statement in DDL:
        connection.connection.exec_driver_sql(statement)
    connection.connection.commit()
    yield connection
    connection.close()
    engine.dispose()


@pytest.fixture
def sa_store() -> SARecordStore:
    return SARecordStore("sqlite")


class TestSAConnection:
    def test_lazy_open(self) -> None:
        engine = create_engine("sqlite://")
        connection = SAConnection(engine)
        assert connection.closed
        connection.open()
        assert not connection.closed
        connection.close()
        assert connection.closed
        engine.dispose()


class TestCrud:
    def test_insert_returns_generated_identity(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        first = sa_store.insert(sa_connection, Widget, Widget(0, "a"))
        second = sa_store.insert(sa_connection, Widget, Widget(0, "b"))
        assert (first, second) == (1, 2)

    def test_get_and_get_all(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        sa_store.insert(sa_connection, Widget, Widget(0, "a"))
        assert sa_store.get(sa_connection, Widget, 1) == Widget(1, "a")
        assert sa_store.get(sa_connection, Widget, 99) is None
        assert sa_store.get_all(sa_connection, Widget) == [Widget(1, "a")]

    def test_update_and_delete_report_matches(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        sa_store.insert(sa_connection, Widget, Widget(0, "a"))
        assert sa_store.update(sa_connection, Widget, Widget(1, "z")) is True
        assert sa_store.get(sa_connection, Widget, 1).Name == "z"
        assert sa_store.update(sa_connection, Widget, Widget(2, "none")) is False
        assert sa_store.delete(sa_connection, Widget, Widget(1, "z")) is True
        assert sa_store.delete(sa_connection, Widget, Widget(1, "z")) is False

    def test_composite_keys(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        assert sa_store.insert(sa_connection, OrderLine, OrderLine(1, 2, "A", 3)) == 0
        assert sa_store.get(sa_connection, OrderLine, (1, 2)) == OrderLine(1, 2, "A", 3)
        assert sa_store.get(sa_connection, OrderLine, {"OrderId": 1, "LineNo": 2}).Sku == "A"

    def test_no_key_entity(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        with pytest.raises(NoKeyDefinedError):
            sa_store.get(sa_connection, AuditEntry, 1)


class TestEnumBinding:
    def test_enum_stored_by_name_and_read_back(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        assert sa_store.insert(sa_connection, Gadget, Gadget("g1", "x", Status.RETIRED)) == "g1"
        assert sa_store.query(sa_connection, "SELECT State FROM gadgets", result_type=str) == ["RETIRED"]
        assert sa_store.get(sa_connection, Gadget, "g1").State is Status.RETIRED


class TestQueryExecute:
    def test_result_types(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        sa_store.insert(sa_connection, Widget, Widget(0, "a"))
        assert sa_store.query(sa_connection, "SELECT Id, Name FROM widgets") == [{"Id": 1, "Name": "a"}]
        assert sa_store.query(sa_connection, "SELECT COUNT(*) FROM widgets", result_type=int) == [1]
        assert sa_store.query(
            sa_connection, "SELECT * FROM widgets WHERE Name = :name", {"name": "a"}, result_type=Widget
        ) == [Widget(1, "a")]

    def test_execute_returns_rowcount(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        sa_store.insert(sa_connection, Widget, Widget(0, "a"))
        sa_store.insert(sa_connection, Widget, Widget(0, "b"))
        assert sa_store.execute(sa_connection, "UPDATE widgets SET Name = :n", {"n": "x"}) == 2

    def test_stored_procedure_needs_dialect(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        with pytest.raises(UnsupportedProviderError):
            sa_store.query(sa_connection, "top_widgets", command_kind=CommandKind.STORED_PROCEDURE)


class TestStatements:
    def test_sqlserver_insert_uses_output(self) -> None:
        sql, params, identity = SARecordStore("sqlserver").insert_statement(describe(Widget), Widget(0, "a"))
        assert sql == "INSERT INTO widgets (Name) OUTPUT INSERTED.Id VALUES (:Name)"
        assert params == {"Name": "a"}
        assert identity == "Id"

    def test_procedure_command(self) -> None:
        sql, params = SARecordStore("postgresql").command(
            "top_widgets", {"n": 3}, CommandKind.STORED_PROCEDURE, returns_rows=True
        )
        assert sql == "SELECT * FROM top_widgets(n => :n)"
        assert params == {"n": 3}


class TestWithUnitOfWork:
    def test_rollback_discards_writes(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        uow = UnitOfWork(sa_connection, sa_store)
        uow.begin_transaction()
        uow.repository(Widget).add(Widget(0, "temp"))
        assert len(uow.repository(Widget).get_all()) == 1
        uow.rollback()
        assert uow.repository(Widget).get_all() == []

    def test_commit_keeps_writes_and_upsert_round_trip(
        self, sa_connection: SAConnection, sa_store: SARecordStore
    ) -> None:
        uow = UnitOfWork(sa_connection, sa_store)
        widgets = uow.repository(Widget)
        uow.begin_transaction()
        identity = widgets.upsert(Widget(0, "a"))
        assert widgets.upsert(Widget(identity, "b")) == identity
        uow.commit()
        assert widgets.get_by_id(identity) == Widget(identity, "b")

    def test_composite_upsert(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        lines = UnitOfWork(sa_connection, sa_store).repository(OrderLine)
        assert lines.upsert(OrderLine(1, 1, "A", 1)) == 0
        assert lines.upsert(OrderLine(1, 1, "B", 2)) == 0
        assert lines.get_all() == [OrderLine(1, 1, "B", 2)]


class TestDescriptorOverride:
    def test_store_uses_given_descriptor(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        assert sa_store.insert(sa_connection, Memo, Memo(0, "a"), descriptor=MEMO_DESCRIPTOR) == 1
        assert sa_store.get(sa_connection, Memo, 1, descriptor=MEMO_DESCRIPTOR) == Memo(1, "a")
        with pytest.raises(NoKeyDefinedError):
            sa_store.get(sa_connection, Memo, 1)

    def test_repository_upsert_get_delete(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        memos = Repository(sa_connection, sa_store, Memo, descriptor=MEMO_DESCRIPTOR)
        assert memos.upsert(Memo(0, "a")) == 1
        assert memos.get_by_id(1) == Memo(1, "a")
        assert memos.upsert(Memo(1, "b")) == 1
        assert memos.get_all() == [Memo(1, "b")]
        assert memos.delete(Memo(1, "b")) is True
        assert memos.get_by_id(1) is None
        assert sa_store.query(sa_connection, "SELECT COUNT(*) FROM memos", result_type=int) == [0]

    def test_unit_of_work_override(self, sa_connection: SAConnection, sa_store: SARecordStore) -> None:
        uow = UnitOfWork(sa_connection, sa_store)
        memos = uow.repository(Memo, descriptor=MEMO_DESCRIPTOR)
        uow.begin_transaction()
        identity = memos.upsert(Memo(0, "draft"))
        assert memos.update(Memo(identity, "final")) is True
        uow.commit()
        assert uow.repository(Memo).get_by_id(identity) == Memo(identity, "final")

class TestAsyncStore:
    @pytest.mark.asyncio
    async def test_async_round_trip(self) -> None:
        engine = create_async_engine("sqlite+aiosqlite://")
        connection = AsyncSAConnection(engine)
        raw = await connection.get_connection()
        await raw.exec_driver_sql(DDL[0])
        await raw.commit()

        uow = AsyncUnitOfWork(connection, AsyncSARecordStore("sqlite"))
        widgets = uow.repository(Widget)
        await uow.begin_transaction()
        identity = await widgets.add(Widget(0, "a"))
        await uow.commit()

        assert await widgets.get_by_id(identity) == Widget(identity, "a")
        assert await widgets.update(Widget(identity, "b")) is True
        assert await widgets.get_all() == [Widget(identity, "b")]

        await uow.close()
        assert connection.closed
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_async_descriptor_override(self) -> None:
        engine = create_async_engine("sqlite+aiosqlite://")
        connection = AsyncSAConnection(engine)
        raw = await connection.get_connection()
        await raw.exec_driver_sql(DDL[3])
        await raw.commit()

        memos = AsyncRepository(connection, AsyncSARecordStore("sqlite"), Memo, descriptor=MEMO_DESCRIPTOR)
        identity = await memos.upsert(Memo(0, "a"))
        assert identity == 1
        assert await memos.upsert(Memo(identity, "b")) == identity
        assert await memos.get_by_id(identity) == Memo(identity, "b")
        assert await memos.delete(Memo(identity, "b")) is True
        assert await memos.get_all() == []

        await connection.close()
        await engine.dispose()


def test_protocol_conformance() -> None:
    engine = create_engine("sqlite://")
    assert isinstance(SARecordStore("sqlite"), RecordStore)
    assert isinstance(AsyncSARecordStore("sqlite"), AsyncRecordStore)
    assert isinstance(SAConnection(engine), Connection)
    engine.dispose()
