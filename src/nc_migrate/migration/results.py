"""Run requests, states and results."""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config.config import Config, MigrationConfig, ServerConfig
from ..models.record import EntityType
from .exceptions import ConfigurationError


class RunState(str, Enum):
    """Engine state."""

    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class RunOutcome(str, Enum):
    """Terminal outcome of a run."""

    COMPLETED = 'completed'
    PARTIAL = 'partial'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class EntityStatus(str, Enum):
    """What happened to one source record."""

    CREATED = 'created'
    SKIPPED_DUPLICATE = 'skipped-duplicate'
    FAILED = 'failed'


class Scope(BaseModel):
    """A server plus the service organization that bounds what is visible."""

    model_config = ConfigDict(frozen=True)

    server_url: str = Field(..., description='Server base URL')
    service_org_id: int = Field(..., description='Service organization ID')

    @field_validator('server_url')
    @classmethod
    def normalize_url(cls, v):
        return v.strip().rstrip('/')

    @classmethod
    def from_server_config(cls, config: ServerConfig) -> 'Scope':
        """Build a scope from server settings.

        Raises:
            ConfigurationError: If no service organization is configured
        """
        if config.service_org_id is None:
            raise ConfigurationError(
                f'No service_org_id configured for {config.url}'
            )
        return cls(server_url=config.url, service_org_id=config.service_org_id)

    def __str__(self) -> str:
        return f'{self.server_url} (SO {self.service_org_id})'


# Config flag -> entity type
MIGRATION_FLAGS = {
    'customers': EntityType.CUSTOMER,
    'sites': EntityType.SITE,
    'access_groups': EntityType.ACCESS_GROUP,
    'user_roles': EntityType.USER_ROLE,
    'users': EntityType.USER,
    'org_properties': EntityType.ORG_PROPERTY,
    'device_properties': EntityType.DEVICE_PROPERTY,
}


def selected_migration_types(config: MigrationConfig) -> FrozenSet[EntityType]:
    """Entity types switched on in the migration settings."""
    return frozenset(
        entity_type
        for flag, entity_type in MIGRATION_FLAGS.items()
        if getattr(config, flag)
    )


def parse_entity_types(names: Iterable[str]) -> FrozenSet[EntityType]:
    """Parse entity type names as given on the command line.

    Accepts enum values (``user_role``) as well as config flag names
    (``user_roles``) and dashes.

    Raises:
        ConfigurationError: For unknown names
    """
    aliases = dict(MIGRATION_FLAGS)
    aliases['devices'] = EntityType.DEVICE
    types = set()
    for name in names:
        normalized = name.strip().lower().replace('-', '_')
        if not normalized:
            continue
        if normalized in aliases:
            types.add(aliases[normalized])
            continue
        try:
            types.add(EntityType(normalized))
        except ValueError:
            raise ConfigurationError(f'Unknown entity type: {name}')
    return frozenset(types)


class RunRequest(BaseModel):
    """A request to migrate a selection of entity types between two scopes."""

    selected_types: FrozenSet[EntityType] = Field(default_factory=frozenset)
    source_scope: Scope
    destination_scope: Optional[Scope] = Field(
        default=None, description='Absent means export only'
    )

    @classmethod
    def from_config(
        cls, config: Config, types: Optional[Iterable[EntityType]] = None
    ) -> 'RunRequest':
        """Build a migration request from configuration.

        Args:
            config: Tool configuration
            types: Explicit selection overriding the migration flags

        Raises:
            ConfigurationError: If the selection is empty or a scope is invalid
        """
        if config.destination is None:
            raise ConfigurationError('Migration requires a destination server')

        selected = (
            frozenset(types)
            if types is not None
            else selected_migration_types(config.migration)
        )
        if not selected:
            raise ConfigurationError('No entity types selected for migration')

        return cls(
            selected_types=selected,
            source_scope=Scope.from_server_config(config.source),
            destination_scope=Scope.from_server_config(config.destination),
        )


class EntityOutcome(BaseModel):
    """Outcome for one source record."""

    entity_type: EntityType
    source_id: str
    status: EntityStatus
    natural_key: Optional[str] = None
    destination_id: Optional[str] = None
    detail: Optional[str] = None

    @field_validator('destination_id', mode='before')
    @classmethod
    def stringify_destination_id(cls, v):
        return None if v is None else str(v)


class RunResult(BaseModel):
    """Result of a migration run."""

    outcome: RunOutcome
    outcomes: List[EntityOutcome] = Field(default_factory=list)
    total_processed: int = 0
    error: Optional[str] = Field(default=None, description='Why a run failed')
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def count(self, status: EntityStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def created(self) -> int:
        return self.count(EntityStatus.CREATED)

    @property
    def skipped(self) -> int:
        return self.count(EntityStatus.SKIPPED_DUPLICATE)

    @property
    def failed(self) -> int:
        return self.count(EntityStatus.FAILED)

    @property
    def duration(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def outcomes_for(self, entity_type: EntityType) -> List[EntityOutcome]:
        return [o for o in self.outcomes if o.entity_type == entity_type]

    def counts_by_type(self) -> Dict[EntityType, Dict[EntityStatus, int]]:
        """Per-type status counts, types in the order they were processed."""
        counts: Dict[EntityType, Dict[EntityStatus, int]] = {}
        for outcome in self.outcomes:
            per_type = counts.setdefault(
                outcome.entity_type, {status: 0 for status in EntityStatus}
            )
            per_type[outcome.status] += 1
        return counts
