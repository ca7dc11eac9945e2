"""Migration engine - moves entities from a source scope to a destination scope."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..api.client import NCentralClientFactory
from ..api.entity_client import NCentralEntityClient, RemoteEntityClient, list_all
from ..api.exceptions import NCentralAPIError
from ..config.config import COLLISION_POLICIES, Config
from ..models.record import EntityType, Record
from .catalog import DEFAULT_CATALOG, EntityCatalog, PlanStep, StepMode
from .exceptions import (
    ConfigurationError,
    NaturalKeyCollisionError,
    UnresolvedReferenceError,
)
from .id_map import IdentifierMap
from .progress import NullProgressSink, ProgressSink, ProgressUpdate, compute_percent
from .results import (
    EntityOutcome,
    EntityStatus,
    RunOutcome,
    RunRequest,
    RunResult,
    RunState,
    Scope,
)
from .state import RunCancelled, RunStateMachine


class _RunContext:
    """Mutable bookkeeping owned by one run."""

    def __init__(self, request: RunRequest):
        self.request = request
        self.id_map = IdentifierMap()
        self.outcomes: List[EntityOutcome] = []
        self.processed = 0
        self.total = 0
        self.started_at = datetime.now()


class MigrationEngine:
    """Runs dependency-ordered migrations between two N-central scopes.

    One engine runs one migration at a time. A run lists every selected type
    on the source, matches records against a snapshot of the destination by
    natural key, creates what is missing and rewrites references through a
    run-scoped identifier map.
    """

    def __init__(
        self,
        source: RemoteEntityClient,
        destination: RemoteEntityClient,
        catalog: EntityCatalog = DEFAULT_CATALOG,
        sink: Optional[ProgressSink] = None,
        collision_policy: str = 'first_wins',
    ):
        """Initialize migration engine.

        Args:
            source: Client bound to the source scope
            destination: Client bound to the destination scope
            catalog: Entity catalog
            sink: Receives progress updates and log lines
            collision_policy: ``first_wins`` or ``error`` for source records
                sharing a natural key
        """
        if collision_policy not in COLLISION_POLICIES:
            raise ConfigurationError(
                f'collision_policy must be one of: {COLLISION_POLICIES}'
            )

        self.source = source
        self.destination = destination
        self.catalog = catalog
        self.sink = sink or NullProgressSink()
        self.collision_policy = collision_policy
        self.logger = logger.bind(component='MigrationEngine')

        self._run_state = RunStateMachine('migration')
        self._owned_clients: List[RemoteEntityClient] = []

    @classmethod
    def from_config(
        cls, config: Config, sink: Optional[ProgressSink] = None
    ) -> 'MigrationEngine':
        """Build an engine with REST clients for the configured servers.

        Raises:
            ConfigurationError: If the destination or a scope is missing
        """
        if config.destination is None:
            raise ConfigurationError('Migration requires a destination server')

        source = NCentralEntityClient(
            NCentralClientFactory.create_client(config.source),
            Scope.from_server_config(config.source),
        )
        destination = NCentralEntityClient(
            NCentralClientFactory.create_client(config.destination),
            Scope.from_server_config(config.destination),
            default_permission_ids=config.migration.default_permission_ids,
        )

        engine = cls(
            source,
            destination,
            sink=sink,
            collision_policy=config.migration.collision_policy,
        )
        engine._owned_clients = [source, destination]
        return engine

    @property
    def state(self) -> RunState:
        return self._run_state.state

    @property
    def is_running(self) -> bool:
        return self._run_state.is_running

    def cancel(self) -> None:
        """Request cooperative cancellation of the active run.

        Safe to call from a signal handler or another thread. Observed
        before the next record and before the next entity type.
        """
        if self.is_running:
            self.logger.warning('Cancellation requested')
        self._run_state.request_cancel()

    def close(self) -> None:
        """Close clients this engine created."""
        for client in self._owned_clients:
            client.close()

    def check_connectivity(self) -> None:
        """Test connectivity to both servers.

        Raises:
            ConnectionError: If either server cannot be reached
        """
        self.logger.info('Testing connectivity to N-central servers')

        for name, client in (('source', self.source), ('destination', self.destination)):
            http_client = getattr(client, 'client', None)
            if http_client is not None and not http_client.test_connection():
                raise ConnectionError(f'Cannot connect to {name} server {client.scope}')

        self.logger.info('Connectivity tests passed')

    def _validate(self, request: RunRequest) -> None:
        if request.destination_scope is None:
            raise ConfigurationError('A destination scope is required for migration')

        for entity_type in request.selected_types:
            if not self.catalog.is_migratable(entity_type):
                raise ConfigurationError(
                    f'{entity_type.label} can be exported but not migrated'
                )

        if self.source.scope != request.source_scope:
            raise ConfigurationError(
                f'Source client is bound to {self.source.scope}, '
                f'not {request.source_scope}'
            )
        if self.destination.scope != request.destination_scope:
            raise ConfigurationError(
                f'Destination client is bound to {self.destination.scope}, '
                f'not {request.destination_scope}'
            )

    async def run(self, request: RunRequest) -> RunResult:
        """Execute one migration run.

        Args:
            request: Selected types and scopes

        Returns:
            Run result with one outcome per processed source record

        Raises:
            ConflictError: If a run is already active
            ConfigurationError: If the request is invalid
        """
        self._run_state.begin(lambda: self._validate(request))
        ctx = _RunContext(request)

        try:
            result = await self._execute(ctx)
        except asyncio.CancelledError:
            self._run_state.finish(RunOutcome.CANCELLED)
            raise
        except Exception:
            self._run_state.finish(RunOutcome.FAILED)
            raise

        self._run_state.finish(result.outcome)
        return result

    async def _execute(self, ctx: _RunContext) -> RunResult:
        request = ctx.request
        plan = self.catalog.plan(request.selected_types)
        migrate_steps = [step for step in plan if step.mode == StepMode.MIGRATE]

        self.logger.info(
            f'Starting migration from {request.source_scope} '
            f'to {request.destination_scope}'
        )
        self._emit('Starting', 'Starting migration', 0.0)

        if not migrate_steps:
            return self._complete(ctx, 'No entity types selected')

        # The service organization is the root org unit records may point at
        ctx.id_map.put(
            EntityType.CUSTOMER,
            request.source_scope.service_org_id,
            request.destination_scope.service_org_id,
        )

        try:
            listings = await self._discover(ctx, migrate_steps)
            ctx.total = sum(len(records) for records in listings.values())
            if ctx.total == 0:
                return self._complete(ctx, 'Nothing to migrate')

            for step in plan:
                self._run_state.check_cancelled()
                if step.mode == StepMode.MAP_ONLY:
                    await self._map_existing(ctx, step.entity_type)
                else:
                    await self._migrate_type(
                        ctx, step.entity_type, listings[step.entity_type]
                    )
        except RunCancelled:
            self._emit_log(
                'WARNING', f'Migration cancelled after {ctx.processed} records'
            )
            return self._result(ctx, RunOutcome.CANCELLED)
        except NCentralAPIError as e:
            self._emit_log('ERROR', f'Migration failed: {e}')
            return self._result(ctx, RunOutcome.FAILED, error=str(e))

        outcome = RunOutcome.COMPLETED
        if any(o.status == EntityStatus.FAILED for o in ctx.outcomes):
            outcome = RunOutcome.PARTIAL
        return self._complete(ctx, 'Migration finished', outcome)

    async def _discover(
        self, ctx: _RunContext, steps: List[PlanStep]
    ) -> Dict[EntityType, List[Record]]:
        """Fetch the source listing of every migrated type up front."""
        listings: Dict[EntityType, List[Record]] = {}
        for index, step in enumerate(steps, start=1):
            self._run_state.check_cancelled()
            entity_type = step.entity_type
            self._emit(
                'Discovery',
                f'Fetching source {entity_type.label.lower()}...',
                0.0,
                index - 1,
                len(steps),
            )
            listings[entity_type] = await list_all(self.source, entity_type)
            self.logger.info(
                f'Found {len(listings[entity_type])} source '
                f'{entity_type.label.lower()}'
            )
        return listings

    def _existing_lookup(
        self, entity_type: EntityType, records: List[Record]
    ) -> Dict[str, str]:
        """Natural key -> destination id for a destination listing snapshot."""
        lookup: Dict[str, str] = {}
        for record in records:
            key = self.catalog.natural_key(record)
            if key is None:
                continue
            if key in lookup:
                self._emit_log(
                    'WARNING',
                    f'Destination has several {entity_type.label.lower()} with key '
                    f'"{key}"; using {lookup[key]}',
                )
                continue
            lookup[key] = record.source_id
        return lookup

    async def _map_existing(self, ctx: _RunContext, entity_type: EntityType) -> None:
        """Map source records onto existing destination records without creating."""
        self._emit(
            entity_type.label,
            f'Matching existing {entity_type.label.lower()}...',
            compute_percent(ctx.processed, ctx.total),
        )
        source_records = await list_all(self.source, entity_type)
        existing = self._existing_lookup(
            entity_type, await list_all(self.destination, entity_type)
        )

        matched = 0
        for record in source_records:
            key = self.catalog.natural_key(record, ctx.id_map)
            if key is not None and key in existing:
                ctx.id_map.put(entity_type, record.source_id, existing[key])
                matched += 1

        self._emit_log(
            'INFO',
            f'Mapped {matched} of {len(source_records)} '
            f'{entity_type.label.lower()} to existing destination records',
        )

    async def _migrate_type(
        self, ctx: _RunContext, entity_type: EntityType, records: List[Record]
    ) -> None:
        label = entity_type.label
        self._emit(
            label,
            f'Fetching destination {label.lower()}...',
            compute_percent(ctx.processed, ctx.total),
            0,
            len(records),
        )
        existing = self._existing_lookup(
            entity_type, await list_all(self.destination, entity_type)
        )
        # Natural keys created earlier in this type: key -> (source id, dest id)
        created: Dict[str, Tuple[str, str]] = {}

        for index, record in enumerate(records, start=1):
            self._run_state.check_cancelled()

            outcome = await self._process_record(ctx, record, existing, created)
            ctx.outcomes.append(outcome)
            ctx.processed += 1

            message = self._describe(outcome)
            self._emit_log(
                'ERROR' if outcome.status == EntityStatus.FAILED else 'INFO', message
            )
            self._emit(
                label,
                message,
                compute_percent(ctx.processed, ctx.total),
                index,
                len(records),
            )

        self.logger.info(
            f'{label}: {len(records)} processed, '
            f'{ctx.id_map.count(entity_type)} mapped'
        )

    async def _process_record(
        self,
        ctx: _RunContext,
        record: Record,
        existing: Dict[str, str],
        created: Dict[str, Tuple[str, str]],
    ) -> EntityOutcome:
        entity_type = record.entity_type
        key = self.catalog.natural_key(record, ctx.id_map)

        def outcome(status: EntityStatus, destination_id=None, detail=None):
            return EntityOutcome(
                entity_type=entity_type,
                source_id=record.source_id,
                status=status,
                natural_key=key,
                destination_id=destination_id,
                detail=detail,
            )

        if key is not None and key in existing:
            ctx.id_map.put(entity_type, record.source_id, existing[key])
            return outcome(
                EntityStatus.SKIPPED_DUPLICATE,
                existing[key],
                'Already exists on destination',
            )

        if key is not None and key in created:
            first_source_id, dest_id = created[key]
            if self.collision_policy == 'error':
                return outcome(
                    EntityStatus.FAILED,
                    detail=str(NaturalKeyCollisionError(key, first_source_id)),
                )
            ctx.id_map.put(entity_type, record.source_id, dest_id)
            return outcome(
                EntityStatus.SKIPPED_DUPLICATE,
                dest_id,
                f'Same natural key as source record {first_source_id}',
            )

        try:
            rewritten = ctx.id_map.rewrite(record, self.catalog)
        except UnresolvedReferenceError as e:
            return outcome(EntityStatus.FAILED, detail=str(e))

        # Keyless records are never created
        if key is None:
            fields = ', '.join(self.catalog.descriptor(entity_type).key_fields)
            return outcome(
                EntityStatus.FAILED, detail=f'No natural key (requires {fields})'
            )

        try:
            dest_id = await self.destination.create(entity_type, rewritten)
        except asyncio.TimeoutError:
            return outcome(EntityStatus.FAILED, detail='Create request timed out')
        except (NCentralAPIError, ValueError) as e:
            return outcome(EntityStatus.FAILED, detail=str(e))

        ctx.id_map.put(entity_type, record.source_id, dest_id)
        created[key] = (record.source_id, dest_id)
        return outcome(EntityStatus.CREATED, dest_id)

    @staticmethod
    def _describe(outcome: EntityOutcome) -> str:
        name = outcome.natural_key or outcome.source_id
        kind = outcome.entity_type.value.replace('_', ' ')
        if outcome.status == EntityStatus.CREATED:
            return f'Created {kind} "{name}" (ID: {outcome.destination_id})'
        if outcome.status == EntityStatus.SKIPPED_DUPLICATE:
            return f'Skipped {kind} "{name}": {outcome.detail}'
        return f'Failed {kind} "{name}": {outcome.detail}'

    def _emit(
        self,
        phase: str,
        message: str,
        percent: float,
        current: int = 0,
        total: int = 0,
    ) -> None:
        self.sink.on_progress(
            ProgressUpdate(
                phase=phase,
                message=message,
                percent=percent,
                current=current,
                total=total,
            )
        )

    def _emit_log(self, level: str, message: str) -> None:
        self.logger.log(level, message)
        self.sink.on_log(level, message)

    def _complete(
        self,
        ctx: _RunContext,
        message: str,
        outcome: RunOutcome = RunOutcome.COMPLETED,
    ) -> RunResult:
        self._emit('Complete', message, 100.0, ctx.processed, ctx.total)
        result = self._result(ctx, outcome)
        self.logger.info(
            f'Migration {outcome.value}: {result.created} created, '
            f'{result.skipped} skipped, {result.failed} failed'
        )
        return result

    def _result(
        self, ctx: _RunContext, outcome: RunOutcome, error: Optional[str] = None
    ) -> RunResult:
        return RunResult(
            outcome=outcome,
            outcomes=ctx.outcomes,
            total_processed=ctx.processed,
            error=error,
            started_at=ctx.started_at,
            completed_at=datetime.now(),
        )
