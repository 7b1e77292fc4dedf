"""Shared slot holding the active transaction of a unit of work.

A unit of work hands the same :class:`TransactionContext` to every
repository it creates. Repositories read ``context.current`` each time they
issue a statement, so beginning, committing or rolling back is visible to
all of them at once without the unit of work touching any repository.
"""

from __future__ import annotations

from typing import Any


class TransactionContext:
    """Non-owning reference to the current transaction (or ``None``)."""

    __slots__ = ("_current",)

    def __init__(self, transaction: Any = None) -> None:
        self._current = transaction

    @property
    def current(self) -> Any:
        return self._current

    @property
    def active(self) -> bool:
        return self._current is not None

    def publish(self, transaction: Any) -> None:
        self._current = transaction

    def clear(self) -> None:
        self._current = None

    def __repr__(self) -> str:
        return f"TransactionContext(active={self.active})"


__all__ = ["TransactionContext"]
