"""In-memory fakes for the connection, transaction and record store protocols.

The record store records every call together with the transaction it
received, so tests can assert both what was executed and under which
transaction.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from recordspine.core.protocols import CommandKind


class FakeTransaction:
    def __init__(self, fail_commit: bool = False) -> None:
        self.fail_commit = fail_commit
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def commit(self) -> None:
        if self.fail_commit:
            raise RuntimeError("commit failed")
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, closed: bool = True) -> None:
        self._closed = closed
        self.open_calls = 0
        self.close_calls = 0
        self.transactions: list[FakeTransaction] = []
        self.fail_commit = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        self.open_calls += 1
        self._closed = False

    def begin(self) -> FakeTransaction:
        transaction = FakeTransaction(fail_commit=self.fail_commit)
        self.transactions.append(transaction)
        return transaction

    def close(self) -> None:
        self.close_calls += 1
        self._closed = True


@dataclass
class Call:
    method: str
    transaction: Any
    timeout: Any
    args: tuple = ()
    sql: str | None = None
    parameters: dict | None = None
    command_kind: CommandKind | None = None
    result_type: Any = None
    descriptor: Any = None


@dataclass
class FakeRecordStore:
    """Configurable record store.

    ``rows`` maps key values to stored entities for ``get``; ``query_results``
    is consumed one list per ``query`` call (``[]`` once exhausted), unless
    ``query_handler`` is set.
    """

    rows: dict[Any, Any] = field(default_factory=dict)
    insert_result: int = 0
    update_result: bool = True
    delete_result: bool = True
    execute_result: int = 0
    query_results: deque = field(default_factory=deque)
    query_handler: Callable[..., list] | None = None
    calls: list[Call] = field(default_factory=list)

    def get(self, connection, entity_type, id, transaction=None, timeout=None, descriptor=None):
        self.calls.append(Call("get", transaction, timeout, (entity_type, id), descriptor=descriptor))
        return self.rows.get(id)

    def get_all(self, connection, entity_type, transaction=None, timeout=None, descriptor=None):
        self.calls.append(Call("get_all", transaction, timeout, (entity_type,), descriptor=descriptor))
        return list(self.rows.values())

    def insert(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        self.calls.append(Call("insert", transaction, timeout, (entity_type, entity), descriptor=descriptor))
        return self.insert_result

    def update(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        self.calls.append(Call("update", transaction, timeout, (entity_type, entity), descriptor=descriptor))
        return self.update_result

    def delete(self, connection, entity_type, entity, transaction=None, timeout=None, descriptor=None):
        self.calls.append(Call("delete", transaction, timeout, (entity_type, entity), descriptor=descriptor))
        return self.delete_result

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
        self.calls.append(
            Call("query", transaction, timeout, (), sql, parameters, command_kind, result_type)
        )
        if self.query_handler is not None:
            return self.query_handler(sql, parameters)
        return self.query_results.popleft() if self.query_results else []

    def execute(
        self,
        connection,
        sql,
        parameters=None,
        transaction=None,
        timeout=None,
        command_kind=CommandKind.TEXT,
    ):
        self.calls.append(Call("execute", transaction, timeout, (), sql, parameters, command_kind))
        return self.execute_result

    def methods(self) -> list[str]:
        return [c.method for c in self.calls]

    def queries(self) -> list[Call]:
        return [c for c in self.calls if c.method == "query"]


# ---------------------------------------------------------------------------
# Async twins
# ---------------------------------------------------------------------------


class AsyncFakeTransaction(FakeTransaction):
    async def commit(self) -> None:  # type: ignore[override]
        FakeTransaction.commit(self)

    async def rollback(self) -> None:  # type: ignore[override]
        FakeTransaction.rollback(self)

    async def close(self) -> None:  # type: ignore[override]
        FakeTransaction.close(self)


class AsyncFakeConnection(FakeConnection):
    async def open(self) -> None:  # type: ignore[override]
        FakeConnection.open(self)

    async def begin(self) -> AsyncFakeTransaction:  # type: ignore[override]
        transaction = AsyncFakeTransaction(fail_commit=self.fail_commit)
        self.transactions.append(transaction)
        return transaction

    async def close(self) -> None:  # type: ignore[override]
        FakeConnection.close(self)


class AsyncFakeRecordStore(FakeRecordStore):
    async def get(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.get(self, *args, **kwargs)

    async def get_all(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.get_all(self, *args, **kwargs)

    async def insert(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.insert(self, *args, **kwargs)

    async def update(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.update(self, *args, **kwargs)

    async def delete(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.delete(self, *args, **kwargs)

    async def query(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.query(self, *args, **kwargs)

    async def execute(self, *args, **kwargs):  # type: ignore[override]
        return FakeRecordStore.execute(self, *args, **kwargs)
