"""Export engine - fetches entities from one scope and writes them to files."""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field, field_validator

from ..api.client import NCentralClientFactory
from ..api.entity_client import NCentralEntityClient, RemoteEntityClient
from ..api.exceptions import NCentralAPIError
from ..config.config import VALID_EXPORT_FORMATS, Config, ExportConfig
from ..migration.catalog import DEFAULT_CATALOG, EntityCatalog
from ..migration.exceptions import ConfigurationError
from ..migration.progress import NullProgressSink, ProgressSink, ProgressUpdate
from ..migration.results import MIGRATION_FLAGS, RunOutcome, RunState, Scope
from ..migration.state import RunCancelled, RunStateMachine
from ..models import ENTITY_MODELS, EntityType, Record
from .writers import WRITERS

# Config flag -> entity type
EXPORT_FLAGS = {**MIGRATION_FLAGS, 'devices': EntityType.DEVICE}


def selected_export_types(config: ExportConfig) -> FrozenSet[EntityType]:
    """Entity types switched on in the export settings."""
    return frozenset(
        entity_type
        for flag, entity_type in EXPORT_FLAGS.items()
        if getattr(config, flag)
    )


class ExportRequest(BaseModel):
    """A request to export a selection of entity types from one scope."""

    selected_types: FrozenSet[EntityType] = Field(default_factory=frozenset)
    scope: Scope
    output_dir: str = Field(default='./nc_export')
    formats: List[str] = Field(default_factory=lambda: ['csv'])
    basename: str = Field(default='nc_export')

    @field_validator('formats')
    @classmethod
    def validate_formats(cls, v):
        formats = list(dict.fromkeys(f.strip().lower() for f in v))
        invalid = [f for f in formats if f not in VALID_EXPORT_FORMATS]
        if invalid or not formats:
            raise ValueError(
                f'Export formats must be a non-empty subset of {VALID_EXPORT_FORMATS}'
            )
        return formats

    @classmethod
    def from_config(
        cls,
        config: Config,
        types: Optional[Iterable[EntityType]] = None,
        output_dir: Optional[str] = None,
        formats: Optional[List[str]] = None,
    ) -> 'ExportRequest':
        """Build an export request from configuration and CLI overrides.

        Raises:
            ConfigurationError: If the selection is empty or the scope is invalid
        """
        selected = (
            frozenset(types)
            if types is not None
            else selected_export_types(config.export)
        )
        if not selected:
            raise ConfigurationError('No entity types selected for export')

        try:
            return cls(
                selected_types=selected,
                scope=Scope.from_server_config(config.source),
                output_dir=output_dir or config.export.output_dir,
                formats=formats or config.export.formats,
                basename=config.export.basename,
            )
        except ValueError as e:
            raise ConfigurationError(str(e))


class ExportResult(BaseModel):
    """Result of an export run."""

    outcome: RunOutcome
    files_created: List[str] = Field(default_factory=list)
    total_records: int = 0
    records_by_type: Dict[EntityType, int] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def duration(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class ExportEngine:
    """Fetches every selected type from one scope and writes CSV/JSON files."""

    def __init__(
        self,
        client: RemoteEntityClient,
        catalog: EntityCatalog = DEFAULT_CATALOG,
        sink: Optional[ProgressSink] = None,
    ):
        """Initialize export engine.

        Args:
            client: Client bound to the scope to export
            catalog: Entity catalog
            sink: Receives progress updates and log lines
        """
        self.client = client
        self.catalog = catalog
        self.sink = sink or NullProgressSink()
        self.logger = logger.bind(component='ExportEngine')
        self._run_state = RunStateMachine('export')
        self._owns_client = False

    @classmethod
    def from_config(
        cls, config: Config, sink: Optional[ProgressSink] = None
    ) -> 'ExportEngine':
        """Build an engine with a REST client for the source server."""
        client = NCentralEntityClient(
            NCentralClientFactory.create_client(config.source),
            Scope.from_server_config(config.source),
        )
        engine = cls(client, sink=sink)
        engine._owns_client = True
        return engine

    @property
    def state(self) -> RunState:
        return self._run_state.state

    def cancel(self) -> None:
        """Request cooperative cancellation of the active export."""
        if self._run_state.is_running:
            self.logger.warning('Cancellation requested')
        self._run_state.request_cancel()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _validate(self, request: ExportRequest) -> None:
        for entity_type in request.selected_types:
            self.catalog.descriptor(entity_type)
        if self.client.scope != request.scope:
            raise ConfigurationError(
                f'Client is bound to {self.client.scope}, not {request.scope}'
            )

    async def run(self, request: ExportRequest) -> ExportResult:
        """Execute one export run.

        Raises:
            ConflictError: If an export is already active
            ConfigurationError: If the request is invalid
        """
        self._run_state.begin(lambda: self._validate(request))
        try:
            result = await self._execute(request)
        except asyncio.CancelledError:
            self._run_state.finish(RunOutcome.CANCELLED)
            raise
        except Exception:
            self._run_state.finish(RunOutcome.FAILED)
            raise
        self._run_state.finish(result.outcome)
        return result

    async def _execute(self, request: ExportRequest) -> ExportResult:
        started_at = datetime.now()
        types = self.catalog.ordered_types(request.selected_types)
        warnings: List[str] = []
        exported: Dict[EntityType, List[Record]] = {}

        self.logger.info(f'Starting export from {request.scope}')
        self._emit('Starting', 'Starting export', 0.0)

        if not types:
            self._emit('Complete', 'No entity types selected', 100.0)
            return ExportResult(
                outcome=RunOutcome.COMPLETED,
                started_at=started_at,
                completed_at=datetime.now(),
            )

        try:
            for index, entity_type in enumerate(types):
                self._run_state.check_cancelled()
                records = await self._fetch_type(entity_type, index, len(types), warnings)
                if records is not None:
                    exported[entity_type] = self._valid_records(
                        entity_type, records, warnings
                    )
        except RunCancelled:
            self._log('WARNING', 'Export cancelled; no files written')
            return ExportResult(
                outcome=RunOutcome.CANCELLED,
                total_records=sum(len(r) for r in exported.values()),
                records_by_type={t: len(r) for t, r in exported.items()},
                warnings=warnings,
                started_at=started_at,
                completed_at=datetime.now(),
            )

        self._emit('Writing', 'Writing export files...', 100.0)
        try:
            files = self._write_files(request, exported)
        except OSError as e:
            self._log('ERROR', f'Failed to write export files: {e}')
            return ExportResult(
                outcome=RunOutcome.FAILED,
                records_by_type={t: len(r) for t, r in exported.items()},
                warnings=warnings,
                error=str(e),
                started_at=started_at,
                completed_at=datetime.now(),
            )

        total = sum(len(records) for records in exported.values())
        outcome = RunOutcome.PARTIAL if warnings else RunOutcome.COMPLETED
        self._emit('Complete', f'Exported {total} records', 100.0, total, total)
        self.logger.info(f'Export {outcome.value}: {total} records, {len(files)} files')

        return ExportResult(
            outcome=outcome,
            files_created=files,
            total_records=total,
            records_by_type={t: len(r) for t, r in exported.items()},
            warnings=warnings,
            started_at=started_at,
            completed_at=datetime.now(),
        )

    async def _fetch_type(
        self,
        entity_type: EntityType,
        index: int,
        type_count: int,
        warnings: List[str],
    ) -> Optional[List[Record]]:
        """Fetch all pages of one type; None if the listing failed."""
        records: List[Record] = []
        base_percent = index / type_count * 100.0
        page = 1

        try:
            while True:
                self._run_state.check_cancelled()
                page_records, has_more = await self.client.list(entity_type, page)
                records.extend(page_records)
                self._emit(
                    entity_type.label,
                    f'Fetched {len(records)} {entity_type.label.lower()}',
                    base_percent,
                    len(records),
                    len(records),
                )
                if not has_more:
                    break
                page += 1
        except NCentralAPIError as e:
            message = f'Failed to fetch {entity_type.label.lower()}: {e}'
            warnings.append(message)
            self._log('WARNING', message)
            return None

        self._log('INFO', f'Fetched {len(records)} {entity_type.label.lower()}')
        return records

    def _valid_records(
        self, entity_type: EntityType, records: List[Record], warnings: List[str]
    ) -> List[Record]:
        """Drop records that do not validate or cannot be serialized."""
        model = ENTITY_MODELS.get(entity_type)
        valid = []
        for record in records:
            try:
                if model is not None:
                    model.model_validate(record.data)
                json.dumps(record.data)
            except (ValueError, TypeError) as e:
                message = (
                    f'Skipping {entity_type.value} {record.source_id}: '
                    f'{str(e).splitlines()[0]}'
                )
                warnings.append(message)
                self._log('WARNING', message)
                continue
            valid.append(record)
        return valid

    def _write_files(
        self, request: ExportRequest, exported: Dict[EntityType, List[Record]]
    ) -> List[str]:
        output_dir = Path(request.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        files = []
        for fmt in request.formats:
            path = output_dir / f'{request.basename}.{fmt}'
            count = WRITERS[fmt](path, exported)
            self._log('INFO', f'Wrote {count} records to {path}')
            files.append(str(path))
        return files

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

    def _log(self, level: str, message: str) -> None:
        self.logger.log(level, message)
        self.sink.on_log(level, message)
