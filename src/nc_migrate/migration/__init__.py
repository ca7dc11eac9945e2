"""Entity catalog, identifier map and run bookkeeping.

The engine lives in ``nc_migrate.migration.engine``.
"""

from .catalog import DEFAULT_CATALOG, EntityCatalog, ForeignKey, PlanStep, StepMode
from .exceptions import (
    ConfigurationError,
    ConflictError,
    MigrationError,
    NaturalKeyCollisionError,
    UnknownEntityTypeError,
    UnresolvedReferenceError,
)
from .id_map import IdentifierMap
from .progress import NullProgressSink, ProgressSink, ProgressUpdate
from .results import (
    EntityOutcome,
    EntityStatus,
    RunOutcome,
    RunRequest,
    RunResult,
    RunState,
    Scope,
)

__all__ = [
    'DEFAULT_CATALOG',
    'EntityCatalog',
    'ForeignKey',
    'PlanStep',
    'StepMode',
    'MigrationError',
    'ConfigurationError',
    'ConflictError',
    'NaturalKeyCollisionError',
    'UnknownEntityTypeError',
    'UnresolvedReferenceError',
    'IdentifierMap',
    'ProgressSink',
    'NullProgressSink',
    'ProgressUpdate',
    'EntityOutcome',
    'EntityStatus',
    'RunOutcome',
    'RunRequest',
    'RunResult',
    'RunState',
    'Scope',
]
