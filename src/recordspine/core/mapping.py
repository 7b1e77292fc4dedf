"""Entity mapping registry: ``type → (table_name, key_columns)``.

Bulk upsert needs to know which table an entity type lives in and which
columns form its conflict key. Callers register that once at startup, then
every repository built with the registry can look it up from any thread.

The registry is an ordinary object injected into repositories and units of
work, not a module global, so two applications in one process (or two
tests) never see each other's mappings. ``freeze()`` turns it read-only once
setup is done.

Examples:
    >>> registry = EntityMappingRegistry()
    >>> registry.register(Widget, "widgets", ["Id"])
    >>> registry.get_mapping(Widget)
    EntityMapping(table_name='widgets', key_columns=('Id',))
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass

from recordspine.core.errors import MappingNotRegisteredError, RegistryFrozenError
from recordspine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EntityMapping:
    """Table name and ordered key columns for one entity type.

    Attributes:
        table_name: Target table, interpolated into SQL as-is
        key_columns: Primary/conflict key columns in declared order
    """

    table_name: str
    key_columns: tuple[str, ...]

    def __post_init__(self) -> None:
        # Accept any iterable of names; store an immutable tuple.
        object.__setattr__(self, "key_columns", tuple(self.key_columns))


class EntityMappingRegistry:
    """Thread-safe registry of entity mappings.

    Reads and writes are serialized with a lock. Mapping values are frozen
    and replaced whole, so a lookup racing a re-registration sees either the
    old mapping or the new one, never a mix.
    """

    def __init__(self) -> None:
        self._mappings: dict[type, EntityMapping] = {}
        self._frozen = False
        self._lock = threading.RLock()

    def register(
        self,
        entity_type: type,
        mapping: EntityMapping | str,
        key_columns: Iterable[str] | None = None,
    ) -> EntityMapping:
        """Store or overwrite the mapping for ``entity_type``.

        Accepts either a ready :class:`EntityMapping` or a table name plus
        key columns. No validation of identifier legality is performed.

        Raises:
            RegistryFrozenError: If :meth:`freeze` has been called.
        """
        if not isinstance(mapping, EntityMapping):
            mapping = EntityMapping(table_name=mapping, key_columns=tuple(key_columns or ()))

        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(entity_type.__name__)
            self._mappings[entity_type] = mapping

        logger.debug(
            "mapping_registered",
            entity=entity_type.__name__,
            table=mapping.table_name,
            key_columns=list(mapping.key_columns),
        )
        return mapping

    def get_mapping(self, entity_type: type) -> EntityMapping:
        """Return the mapping for ``entity_type``.

        Raises:
            MappingNotRegisteredError: If nothing was registered for the type.
        """
        with self._lock:
            mapping = self._mappings.get(entity_type)
        if mapping is None:
            raise MappingNotRegisteredError(entity_type.__name__)
        return mapping

    def freeze(self) -> None:
        """Reject all further registrations."""
        with self._lock:
            self._frozen = True

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def entity_types(self) -> list[type]:
        with self._lock:
            return list(self._mappings)

    def __contains__(self, entity_type: object) -> bool:
        with self._lock:
            return entity_type in self._mappings

    def __len__(self) -> int:
        with self._lock:
            return len(self._mappings)


__all__ = [
    "EntityMapping",
    "EntityMappingRegistry",
]
