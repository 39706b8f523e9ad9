"""Main CLI entry point for the CRM migration tool."""

import sys
import asyncio
from typing import Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..utils.logging import setup_logging
from ..migration.engine import MigrationEngine
from ..migration.exceptions import MigrationStartupError
from ..migration.orchestrator import MigrationSummary

console = Console()

RESUME_HINT = 'You can resume the migration by running the command again.'


@click.group()
@click.version_option(version=__version__, prog_name='crm-migrate')
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
    """CRM Migration Tool - Migrate contacts from a paginated source API to a rate-limited destination API."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Setup basic logging first (will be enhanced later with config)
    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]CRM Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your API credentials[/yellow]'
        )

    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.pass_context
def migrate(ctx: click.Context) -> None:
    """Migrate every source record after the saved checkpoint."""
    console.print(
        Panel.fit(
            '[bold blue]CRM Migration Tool[/bold blue]\n'
            'Starting migration process...',
            border_style='blue',
        )
    )

    _run(ctx, retry=False)


@cli.command(name='retry-failed')
@click.pass_context
def retry_failed(ctx: click.Context) -> None:
    """Re-attempt records that failed in earlier runs."""
    console.print(
        Panel.fit(
            '[bold yellow]CRM Migration Tool[/bold yellow]\n'
            'Retrying failed records...',
            border_style='yellow',
        )
    )

    _run(ctx, retry=True)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and API connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]CRM Migration Tool[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)

        engine = MigrationEngine(config)
        try:
            engine.test_connectivity()
        finally:
            engine.close()

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration and checkpoint state."""
    console.print(
        Panel.fit(
            '[bold magenta]CRM Migration Tool[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        engine = MigrationEngine(config)
        try:
            checkpoint = engine.checkpoint()
        finally:
            engine.close()

        table = Table(title='Migration Status')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        table.add_row('Source URL', config.source.url)
        table.add_row(
            'Source Rate Limit',
            f'{config.source.rate_limit_requests} / {config.source.rate_limit_interval}s',
        )
        table.add_row('Destination URL', config.destination.url)
        table.add_row(
            'Destination Rate Limit',
            f'{config.destination.rate_limit_requests} / '
            f'{config.destination.rate_limit_interval}s',
        )
        table.add_row('Page Size', str(config.migration.page_size))
        table.add_row('Max Retries', str(config.migration.max_retries))
        table.add_row('Checkpoint File', config.migration.checkpoint_file)
        table.add_row('Last Processed Id', checkpoint.last_processed_id or '-')
        table.add_row('Queued Failures', str(len(checkpoint.failed_ids)))

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _run(ctx: click.Context, retry: bool) -> None:
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        summary = asyncio.run(_run_migration(config, retry))
        _display_migration_summary(summary, config)

    except MigrationStartupError as e:
        console.print(f'[red]✗[/red] An error occurred during migration: {e}')
        console.print(f'[yellow]{RESUME_HINT}[/yellow]')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        console.print(f'[yellow]{RESUME_HINT}[/yellow]')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    else:
        # Try to load from default locations
        default_paths = ['config.yaml', 'config.yml', '.crm-migrate.yaml']
        for path in default_paths:
            if Path(path).exists():
                return Config.from_file(path)

        # Fall back to environment variables
        try:
            return Config.from_env()
        except Exception as e:
            raise FileNotFoundError(
                'No configuration found. Use --config to specify a file or run '
                '"crm-migrate init" to create one.'
            ) from e


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Use config logging settings, but allow verbose flag to override level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


async def _run_migration(config: Config, retry: bool = False) -> MigrationSummary:
    """Run a migration or a retry of failed records."""
    engine = MigrationEngine(config)

    with console.status('[blue]Migrating records...'):
        if retry:
            return await engine.retry_failed()
        return await engine.migrate()


def _display_migration_summary(summary: MigrationSummary, config: Config) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Total', style='blue')
    table.add_column('Migrated', style='green')
    table.add_column('Failed', style='red')
    table.add_row(str(summary.total), str(summary.migrated), str(summary.failed))
    console.print(table)

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    console.print('[green]✓[/green] Migration completed!')
    console.print(f'Total migrated contacts: {summary.migrated}')
    console.print(f'Total failed contacts: {summary.failed}')
    console.print(
        f'Failed contacts have been logged to {config.migration.failed_log}'
    )
    console.print(
        f'Migrated contacts have been logged to {config.migration.migrated_log}'
    )

    errors = [r for r in summary.results if not r.success]
    if errors:
        console.print(f'\n[red]Errors ({len(errors)}):[/red]')
        for result in errors[:5]:
            console.print(f'  • {result.source_id}: {result.reason}')
        if len(errors) > 5:
            console.print(f'  ... and {len(errors) - 5} more errors')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        console.print(f'[yellow]{RESUME_HINT}[/yellow]')
        sys.exit(1)


if __name__ == '__main__':
    main()
