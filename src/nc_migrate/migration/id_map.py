"""Run-scoped translation of source identifiers to destination identifiers."""

from collections import Counter
from typing import Any, Dict, Optional, Tuple

from ..models.record import EntityType, Record
from .catalog import EntityCatalog
from .exceptions import UnresolvedReferenceError


def _blank(value: Any) -> bool:
    return value is None or value == '' or value == []


class IdentifierMap:
    """Maps ``(entity type, source id)`` to a destination id.

    Identifiers are compared by their string form since servers return them
    as numbers or strings interchangeably.
    """

    def __init__(self):
        self._mappings: Dict[Tuple[EntityType, str], Any] = {}

    def put(self, entity_type: EntityType, source_id: Any, dest_id: Any) -> None:
        """Record a mapping, replacing any previous one for the same key."""
        self._mappings[(entity_type, str(source_id))] = dest_id

    def resolve(self, entity_type: EntityType, source_id: Any) -> Optional[Any]:
        if source_id is None:
            return None
        return self._mappings.get((entity_type, str(source_id)))

    def __contains__(self, key) -> bool:
        entity_type, source_id = key
        return (entity_type, str(source_id)) in self._mappings

    def __len__(self) -> int:
        return len(self._mappings)

    def count(self, entity_type: EntityType) -> int:
        """Number of mappings recorded for one type."""
        return Counter(t for t, _ in self._mappings)[entity_type]

    def rewrite(self, record: Record, catalog: EntityCatalog) -> Record:
        """Return a copy of ``record`` with foreign keys translated.

        Required references must all resolve. Optional references are left
        out when absent, and their unresolvable values are dropped.

        Raises:
            UnresolvedReferenceError: If a required reference has no mapping
        """
        data = dict(record.data)

        for fk in catalog.foreign_keys(record.entity_type):
            value = data.get(fk.field)

            if _blank(value):
                if fk.optional or fk.many:
                    data.pop(fk.field, None)
                    continue
                raise UnresolvedReferenceError(fk.field, fk.referenced_type, None)

            if fk.many:
                values = value if isinstance(value, (list, tuple)) else [value]
                resolved = []
                for item in values:
                    dest_id = self.resolve(fk.referenced_type, item)
                    if dest_id is None:
                        if fk.optional:
                            continue
                        raise UnresolvedReferenceError(
                            fk.field, fk.referenced_type, str(item)
                        )
                    resolved.append(dest_id)
                data[fk.field] = resolved
            else:
                dest_id = self.resolve(fk.referenced_type, value)
                if dest_id is None:
                    if fk.optional:
                        data.pop(fk.field, None)
                        continue
                    raise UnresolvedReferenceError(
                        fk.field, fk.referenced_type, str(value)
                    )
                data[fk.field] = dest_id

        return record.with_data(data)
