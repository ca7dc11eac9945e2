"""Entity catalog: what can be migrated, in which order, and how records match.

The catalog is data. Adding an entity type means adding a descriptor to
``DEFAULT_DESCRIPTORS``; the engines do not change.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..models.record import EntityType, Record
from .exceptions import UnknownEntityTypeError

if TYPE_CHECKING:
    from .id_map import IdentifierMap

KEY_SEPARATOR = '/'


class ForeignKey(BaseModel):
    """A record field holding source-side identifiers of another type."""

    model_config = ConfigDict(frozen=True)

    field: str
    referenced_type: EntityType
    many: bool = False
    optional: bool = False


class EntityDescriptor(BaseModel):
    """Static description of one entity type."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    id_fields: Tuple[str, ...] = Field(..., description='Identifier fields, first match wins')
    key_fields: Tuple[str, ...] = Field(..., description='Natural key fields')
    foreign_keys: Tuple[ForeignKey, ...] = Field(default=())
    rank: int = Field(..., description='Dependency rank, lower runs first')
    migratable: bool = Field(default=True)

    def foreign_key(self, field: str) -> Optional[ForeignKey]:
        for fk in self.foreign_keys:
            if fk.field == field:
                return fk
        return None


class StepMode(str, Enum):
    """How a plan step processes its type."""

    MIGRATE = 'migrate'
    MAP_ONLY = 'map_only'


class PlanStep(BaseModel):
    """One entity type in a processing plan."""

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType
    mode: StepMode


DEFAULT_DESCRIPTORS = (
    EntityDescriptor(
        entity_type=EntityType.DEVICE,
        id_fields=('deviceId',),
        key_fields=('longName',),
        rank=5,
        migratable=False,
    ),
    EntityDescriptor(
        entity_type=EntityType.CUSTOMER,
        id_fields=('customerId',),
        key_fields=('customerName',),
        rank=10,
    ),
    EntityDescriptor(
        entity_type=EntityType.SITE,
        id_fields=('siteId',),
        key_fields=('parentId', 'siteName'),
        foreign_keys=(ForeignKey(field='parentId', referenced_type=EntityType.CUSTOMER),),
        rank=20,
    ),
    EntityDescriptor(
        entity_type=EntityType.ACCESS_GROUP,
        id_fields=('groupId', 'accessGroupId'),
        key_fields=('groupName',),
        foreign_keys=(
            ForeignKey(
                field='orgUnitIds',
                referenced_type=EntityType.CUSTOMER,
                many=True,
                optional=True,
            ),
        ),
        rank=30,
    ),
    EntityDescriptor(
        entity_type=EntityType.USER_ROLE,
        id_fields=('roleId', 'userRoleId'),
        key_fields=('roleName',),
        rank=40,
    ),
    EntityDescriptor(
        entity_type=EntityType.USER,
        id_fields=('userId',),
        key_fields=('userName',),
        foreign_keys=(
            ForeignKey(
                field='orgUnitId', referenced_type=EntityType.CUSTOMER, optional=True
            ),
            ForeignKey(field='roleIds', referenced_type=EntityType.USER_ROLE, many=True),
            ForeignKey(
                field='accessGroupIds',
                referenced_type=EntityType.ACCESS_GROUP,
                many=True,
                optional=True,
            ),
        ),
        rank=50,
    ),
    EntityDescriptor(
        entity_type=EntityType.ORG_PROPERTY,
        id_fields=('propertyId',),
        key_fields=('orgUnitId', 'label'),
        foreign_keys=(ForeignKey(field='orgUnitId', referenced_type=EntityType.CUSTOMER),),
        rank=60,
    ),
    EntityDescriptor(
        entity_type=EntityType.DEVICE_PROPERTY,
        id_fields=('propertyId',),
        key_fields=('deviceId', 'label'),
        foreign_keys=(ForeignKey(field='deviceId', referenced_type=EntityType.DEVICE),),
        rank=60,
    ),
)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class EntityCatalog:
    """Lookup table over entity descriptors. No side effects."""

    def __init__(self, descriptors: Iterable[EntityDescriptor] = DEFAULT_DESCRIPTORS):
        self._descriptors: Dict[EntityType, EntityDescriptor] = {}
        self._position: Dict[EntityType, int] = {}
        for position, descriptor in enumerate(descriptors):
            self._descriptors[descriptor.entity_type] = descriptor
            self._position[descriptor.entity_type] = position

    def __contains__(self, entity_type) -> bool:
        return entity_type in self._descriptors

    @property
    def types(self) -> List[EntityType]:
        """All catalog types in declaration order."""
        return list(self._descriptors)

    def descriptor(self, entity_type: EntityType) -> EntityDescriptor:
        """Get the descriptor of a type.

        Raises:
            UnknownEntityTypeError: If the type is not in the catalog
        """
        try:
            return self._descriptors[entity_type]
        except (KeyError, TypeError):
            raise UnknownEntityTypeError(entity_type)

    def foreign_keys(self, entity_type: EntityType) -> Tuple[ForeignKey, ...]:
        return self.descriptor(entity_type).foreign_keys

    def is_migratable(self, entity_type: EntityType) -> bool:
        return self.descriptor(entity_type).migratable

    def _sort_key(self, entity_type: EntityType) -> Tuple[int, int]:
        return self.descriptor(entity_type).rank, self._position[entity_type]

    def ordered_types(self, selected: Iterable[EntityType]) -> List[EntityType]:
        """Sort types by dependency rank, ties in declaration order."""
        return sorted(set(selected), key=self._sort_key)

    def source_id(self, entity_type: EntityType, data: Dict[str, Any]) -> Optional[str]:
        """Extract a record's identifier as a string, or None if absent."""
        for field in self.descriptor(entity_type).id_fields:
            value = data.get(field)
            if not _is_blank(value):
                return str(value)
        return None

    def natural_key(
        self, record: Record, id_map: Optional['IdentifierMap'] = None
    ) -> Optional[str]:
        """Compute the natural key used to match records across servers.

        Text parts are compared case-insensitively. Key parts that are
        foreign keys are translated through ``id_map`` when one is given
        (source records) so they compare equal to destination values.

        Returns:
            The key, or None when any part is missing
        """
        descriptor = self.descriptor(record.entity_type)
        parts = []
        for field in descriptor.key_fields:
            value = record.data.get(field)
            if _is_blank(value):
                return None

            fk = descriptor.foreign_key(field)
            if fk is not None and id_map is not None:
                value = id_map.resolve(fk.referenced_type, value)
                if value is None:
                    return None

            parts.append(str(value).strip().lower())

        return KEY_SEPARATOR.join(parts)

    def plan(self, selected: Iterable[EntityType]) -> List[PlanStep]:
        """Build the ordered processing plan for a selection.

        Selected types are migrated. A type referenced by a migrated type
        but not selected is added as a map-only step so references into it
        still resolve; map-only types pull in the types their natural keys
        depend on.
        """
        selected = set(selected)
        for entity_type in selected:
            self.descriptor(entity_type)

        map_only = set()

        def add_references(entity_type: EntityType, key_only: bool) -> None:
            descriptor = self.descriptor(entity_type)
            for fk in descriptor.foreign_keys:
                if key_only and fk.field not in descriptor.key_fields:
                    continue
                referenced = fk.referenced_type
                if referenced in selected or referenced in map_only:
                    continue
                map_only.add(referenced)
                add_references(referenced, key_only=True)

        for entity_type in selected:
            add_references(entity_type, key_only=False)

        return [
            PlanStep(
                entity_type=entity_type,
                mode=StepMode.MIGRATE if entity_type in selected else StepMode.MAP_ONLY,
            )
            for entity_type in self.ordered_types(selected | map_only)
        ]


DEFAULT_CATALOG = EntityCatalog()
