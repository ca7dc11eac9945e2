"""Main CLI entry point for the N-central migration tool."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from .. import __version__
from ..api.client import NCentralClientFactory
from ..api.exceptions import NCentralAPIError
from ..config.config import COLLISION_POLICIES, VALID_EXPORT_FORMATS, Config
from ..export.engine import ExportEngine, ExportRequest, ExportResult
from ..migration.catalog import DEFAULT_CATALOG, StepMode
from ..migration.engine import MigrationEngine
from ..migration.exceptions import ConfigurationError
from ..migration.progress import ProgressSink, ProgressUpdate
from ..migration.results import (
    EntityStatus,
    RunOutcome,
    RunRequest,
    RunResult,
    parse_entity_types,
    selected_migration_types,
)
from ..utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.nc-migrate.yaml']

OUTCOME_STYLES = {
    RunOutcome.COMPLETED: 'green',
    RunOutcome.PARTIAL: 'yellow',
    RunOutcome.CANCELLED: 'yellow',
    RunOutcome.FAILED: 'red',
}


class RichProgressSink(ProgressSink):
    """Feeds engine progress into a rich progress bar and keeps log lines."""

    def __init__(self, progress: Progress, task_id):
        self.progress = progress
        self.task_id = task_id
        self.lines: List[Tuple[str, str]] = []

    def on_progress(self, update: ProgressUpdate) -> None:
        description = f'[blue]{update.phase}'
        if update.total:
            description += f' ({update.current}/{update.total})'
        self.progress.update(
            self.task_id,
            completed=update.percent,
            total=100,
            description=description,
        )

    def on_log(self, level: str, message: str) -> None:
        self.lines.append((level, message))

    def messages(self, level: str) -> List[str]:
        return [message for lvl, message in self.lines if lvl == level]


def _parse_types(ctx, param, value) -> Optional[frozenset]:
    """Click callback turning ``-t customers,sites -t users`` into entity types."""
    if not value:
        return None
    names = [name for item in value for name in item.split(',')]
    try:
        return parse_entity_types(names)
    except ConfigurationError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.version_option(version=__version__, prog_name='nc-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """N-central Migration Tool - Export N-central data or migrate it between servers."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Basic logging until the configuration is loaded
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]N-central Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your N-central server details[/yellow]'
        )

    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]N-central Migration Tool[/bold magenta]\nConfiguration',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        table = Table(title='Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        table.add_row('Source URL', config.source.url)
        table.add_row('Source Service Org', _or_dash(config.source.service_org_id))
        if config.destination is not None:
            table.add_row('Destination URL', config.destination.url)
            table.add_row(
                'Destination Service Org', _or_dash(config.destination.service_org_id)
            )
        else:
            table.add_row('Destination URL', '[yellow]not configured (export only)')

        selected = selected_migration_types(config.migration)
        for entity_type in DEFAULT_CATALOG.types:
            if DEFAULT_CATALOG.is_migratable(entity_type):
                table.add_row(
                    f'Migrate {entity_type.label}',
                    '✓' if entity_type in selected else '✗',
                )
        table.add_row('Collision Policy', config.migration.collision_policy)
        table.add_row('Export Directory', config.export.output_dir)
        table.add_row('Export Formats', ', '.join(config.export.formats))

        console.print(table)

    except (OSError, ValueError) as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and connectivity to the configured servers."""
    console.print(
        Panel.fit(
            '[bold cyan]N-central Migration Tool[/bold cyan]\n'
            'Validating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        servers = [('Source', config.source)]
        if config.destination is not None:
            servers.append(('Destination', config.destination))

        for name, server in servers:
            with NCentralClientFactory.create_client(server) as client:
                if not client.test_connection():
                    raise ConnectionError(
                        f'Cannot connect to {name.lower()} server {server.url}'
                    )
                version = client.get_version() or 'unknown version'
                console.print(
                    f'[green]✓[/green] {name} {server.url} reachable ({version})'
                )

                if server.service_org_id is None:
                    raise ConfigurationError(
                        f'No service_org_id configured for {name.lower()} server'
                    )
                org = client.get_service_org(server.service_org_id)
                org_name = org.get('soName') if isinstance(org, dict) else None
                console.print(
                    f'[green]✓[/green] {name} service organization '
                    f'{server.service_org_id} found'
                    + (f' ({org_name})' if org_name else '')
                )

        console.print('[green]✓[/green] Configuration validation completed')

    except (OSError, ValueError, NCentralAPIError, ConfigurationError) as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.option(
    '--types',
    '-t',
    multiple=True,
    callback=_parse_types,
    help='Entity types to migrate (comma separated); defaults to the config flags',
)
@click.pass_context
def plan(ctx: click.Context, types: Optional[frozenset]) -> None:
    """Show the processing order for a migration without contacting any server."""
    try:
        config = _load_config(ctx)
        selected = types if types is not None else selected_migration_types(config.migration)
        if not selected:
            raise ConfigurationError('No entity types selected for migration')
        for entity_type in selected:
            if not DEFAULT_CATALOG.is_migratable(entity_type):
                raise ConfigurationError(
                    f'{entity_type.label} can be exported but not migrated'
                )

        table = Table(title='Migration Plan')
        table.add_column('#', style='dim')
        table.add_column('Entity Type', style='cyan')
        table.add_column('Mode', style='green')
        table.add_column('References', style='blue')

        for index, step in enumerate(DEFAULT_CATALOG.plan(selected), start=1):
            references = ', '.join(
                f'{fk.field} → {fk.referenced_type.value}'
                for fk in DEFAULT_CATALOG.foreign_keys(step.entity_type)
            )
            mode = (
                'migrate'
                if step.mode == StepMode.MIGRATE
                else '[yellow]map existing only'
            )
            table.add_row(str(index), step.entity_type.label, mode, references or '-')

        console.print(table)

    except (OSError, ValueError, ConfigurationError) as e:
        console.print(f'[red]✗[/red] Failed to build plan: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.option(
    '--types',
    '-t',
    multiple=True,
    callback=_parse_types,
    help='Entity types to migrate (comma separated); defaults to the config flags',
)
@click.option(
    '--collision-policy',
    type=click.Choice(COLLISION_POLICIES),
    help='How to handle source records sharing a natural key',
)
@click.option(
    '--skip-connectivity-check',
    is_flag=True,
    help='Do not test server connectivity before migrating',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    types: Optional[frozenset],
    collision_policy: Optional[str],
    skip_connectivity_check: bool,
) -> None:
    """Migrate entities from the source server to the destination server."""
    console.print(
        Panel.fit(
            '[bold blue]N-central Migration Tool[/bold blue]\n'
            'Starting migration process...',
            border_style='blue',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if collision_policy:
            config.migration.collision_policy = collision_policy

        request = RunRequest.from_config(config, types)
        result = asyncio.run(_run_migration(config, request, skip_connectivity_check))

    except (OSError, ValueError, NCentralAPIError, ConfigurationError) as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    if result.outcome in (RunOutcome.FAILED, RunOutcome.CANCELLED):
        sys.exit(1)


@cli.command()
@click.option(
    '--types',
    '-t',
    multiple=True,
    callback=_parse_types,
    help='Entity types to export (comma separated); defaults to the config flags',
)
@click.option(
    '--output-dir',
    '-o',
    help='Directory to write export files to',
)
@click.option(
    '--format',
    '-f',
    'formats',
    multiple=True,
    type=click.Choice(VALID_EXPORT_FORMATS),
    help='Output format (repeatable)',
)
@click.pass_context
def export(
    ctx: click.Context,
    types: Optional[frozenset],
    output_dir: Optional[str],
    formats: Tuple[str, ...],
) -> None:
    """Export entities from the source server to CSV/JSON files."""
    console.print(
        Panel.fit(
            '[bold blue]N-central Migration Tool[/bold blue]\n'
            'Starting export...',
            border_style='blue',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        request = ExportRequest.from_config(
            config, types, output_dir=output_dir, formats=list(formats) or None
        )
        result = asyncio.run(_run_export(config, request))

    except (OSError, ValueError, NCentralAPIError, ConfigurationError) as e:
        console.print(f'[red]✗[/red] Export failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    if result.outcome in (RunOutcome.FAILED, RunOutcome.CANCELLED):
        sys.exit(1)


def _or_dash(value) -> str:
    return '-' if value is None else str(value)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    try:
        return Config.from_env()
    except ValueError:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            '"nc-migrate init" to create one.'
        )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Verbose flag overrides the configured level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _install_cancel_handler(cancel) -> bool:
    """Route Ctrl+C to cooperative cancellation while a run is active."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel)
    except (NotImplementedError, RuntimeError):
        # No loop signal handlers on this platform; Ctrl+C interrupts instead
        return False
    return True


def _remove_cancel_handler(installed: bool) -> None:
    if installed:
        asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)


def _new_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn('[progress.description]{task.description}'),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    )


async def _run_migration(
    config: Config, request: RunRequest, skip_connectivity_check: bool = False
) -> RunResult:
    """Run the migration with progress display."""
    with _new_progress() as progress:
        task = progress.add_task('[blue]Migration initializing...', total=100)
        sink = RichProgressSink(progress, task)
        engine = MigrationEngine.from_config(config, sink=sink)

        installed = _install_cancel_handler(engine.cancel)
        try:
            if not skip_connectivity_check:
                await asyncio.to_thread(engine.check_connectivity)
            result = await engine.run(request)
        finally:
            _remove_cancel_handler(installed)
            engine.close()

        style = OUTCOME_STYLES[result.outcome]
        progress.update(
            task, description=f'[{style}]Migration {result.outcome.value}'
        )

    _display_migration_summary(result, sink)
    return result


async def _run_export(config: Config, request: ExportRequest) -> ExportResult:
    """Run the export with progress display."""
    with _new_progress() as progress:
        task = progress.add_task('[blue]Export initializing...', total=100)
        sink = RichProgressSink(progress, task)
        engine = ExportEngine.from_config(config, sink=sink)

        installed = _install_cancel_handler(engine.cancel)
        try:
            result = await engine.run(request)
        finally:
            _remove_cancel_handler(installed)
            engine.close()

        style = OUTCOME_STYLES[result.outcome]
        progress.update(task, description=f'[{style}]Export {result.outcome.value}')

    _display_export_summary(result)
    return result


def _print_limited(title: str, style: str, items: List[str], limit: int = 5) -> None:
    if not items:
        return
    console.print(f'\n[{style}]{title} ({len(items)}):[/{style}]')
    for item in items[:limit]:
        console.print(f'  • {item}')
    if len(items) > limit:
        console.print(f'  ... and {len(items) - limit} more')


def _display_migration_summary(
    result: RunResult, sink: Optional[RichProgressSink] = None
) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Entity Type', style='cyan')
    table.add_column('Total', style='blue')
    table.add_column('Created', style='green')
    table.add_column('Skipped', style='yellow')
    table.add_column('Failed', style='red')

    for entity_type, counts in result.counts_by_type().items():
        table.add_row(
            entity_type.label,
            str(sum(counts.values())),
            str(counts[EntityStatus.CREATED]),
            str(counts[EntityStatus.SKIPPED_DUPLICATE]),
            str(counts[EntityStatus.FAILED]),
        )
    table.add_row(
        '[bold]Total',
        str(result.total_processed),
        str(result.created),
        str(result.skipped),
        str(result.failed),
    )

    console.print(table)

    style = OUTCOME_STYLES[result.outcome]
    console.print(f'\n[{style}]Outcome:[/{style}] {result.outcome.value}')
    if result.duration is not None:
        console.print(f'[blue]Migration Duration:[/blue] {result.duration:.1f}s')
    if result.error:
        console.print(f'[red]Error:[/red] {result.error}')

    if sink is not None:
        _print_limited('Warnings', 'yellow', sink.messages('WARNING'))

    _print_limited(
        'Failures',
        'red',
        [
            f'{o.entity_type.value} {o.source_id}: {o.detail}'
            for o in result.outcomes
            if o.status == EntityStatus.FAILED
        ],
    )


def _display_export_summary(result: ExportResult) -> None:
    """Display export summary results."""
    table = Table(title='Export Summary')
    table.add_column('Entity Type', style='cyan')
    table.add_column('Records', style='green')

    for entity_type, count in result.records_by_type.items():
        table.add_row(entity_type.label, str(count))
    table.add_row('[bold]Total', str(result.total_records))

    console.print(table)

    style = OUTCOME_STYLES[result.outcome]
    console.print(f'\n[{style}]Outcome:[/{style}] {result.outcome.value}')
    for path in result.files_created:
        console.print(f'[green]✓[/green] Wrote {path}')
    if result.error:
        console.print(f'[red]Error:[/red] {result.error}')

    _print_limited('Warnings', 'yellow', result.warnings)


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]Error: {e}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
