"""Main CLI entry point for the GEI migration control plane."""

import sys
import asyncio
import json
from typing import Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..api.client import GitHubClientFactory
from ..auth.sessions import SessionCredentialRegistry
from ..config.config import Config
from ..migration.service import MigrationService, OperationResult
from ..models.credentials import CredentialKind
from ..utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.gei-migrate.yaml']


@click.group()
@click.version_option(version=__version__, prog_name='gei-migrate')
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
    """GEI Migration Tool - Start, track and abort repository migrations into GitHub."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    setup_logging('DEBUG' if verbose else 'WARNING')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    try:
        Config.create_template(output)
        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            '[yellow]Secrets are not stored in it: set GH_PAT, GH_SOURCE_PAT '
            'or ADO_PAT in the environment[/yellow]'
        )
    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.pass_context
def prereqs(ctx: click.Context) -> None:
    """Check which platform tokens are configured."""
    result = _execute(ctx, lambda service: service.check_prerequisites())

    table = Table(title='Migration Prerequisites')
    table.add_column('Token', style='cyan')
    table.add_column('Configured', style='green')
    table.add_row('GitHub source', _mark(result.data['github_source']))
    table.add_row('GitHub target', _mark(result.data['github_target']))
    table.add_row('Azure DevOps', _mark(result.data['ado']))
    console.print(table)

    for detail in result.data['details']:
        console.print(f'  • {detail}')

    if result.data['ready']:
        console.print('[green]✓[/green] Ready to migrate')
    else:
        console.print('[red]✗[/red] Not ready to migrate')
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and target token connectivity."""
    try:
        config = _load_config(ctx)
        service = _build_service(config)
        token = service.resolver.resolve(CredentialKind.GITHUB_TARGET)

        with GitHubClientFactory(config.github).create_client(token) as client:
            if not client.test_connection():
                raise ConnectionError('Cannot connect to GitHub with the target token')

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.option(
    '--source',
    type=click.Choice(['github', 'ado']),
    default='github',
    show_default=True,
    help='Origin platform',
)
@click.option('--source-org', required=True, help='Origin organization name')
@click.option('--repo', 'repo_name', required=True, help='Repository to migrate')
@click.option('--target-org', required=True, help='Target GitHub organization')
@click.option('--target-repo', default=None, help='New repository name')
@click.option('--ado-project', default=None, help='Azure DevOps project')
@click.option('--wait', 'wait_', is_flag=True, help='Wait for the migration to finish')
@click.option(
    '--timeout', type=float, default=None, help='Minutes to wait when using --wait'
)
@click.pass_context
def migrate(
    ctx: click.Context,
    source: str,
    source_org: str,
    repo_name: str,
    target_org: str,
    target_repo: Optional[str],
    ado_project: Optional[str],
    wait_: bool,
    timeout: Optional[float],
) -> None:
    """Start a migration for a single repository."""
    console.print(
        Panel.fit(
            '[bold blue]GEI Migration Tool[/bold blue]\n'
            f'Migrating {source_org}/{repo_name} -> {target_org}',
            border_style='blue',
        )
    )

    async def run(service: MigrationService) -> OperationResult:
        started = await service.migrate_repository(
            source,
            source_org,
            repo_name,
            target_org,
            target_repo_name=target_repo,
            ado_project=ado_project,
        )
        if not started.success or not wait_:
            return started
        return await service.wait_for_migration(
            started.data['migration_id'], timeout_minutes=timeout
        )

    result = _execute(ctx, run)
    if 'completed' in result.data:
        _display_wait_result(result)
    else:
        console.print(f'[green]✓[/green] {result.data["message"]}')
        console.print(f'Migration ID: {result.data["migration_id"]}')


@cli.command()
@click.argument('migration_id')
@click.pass_context
def status(ctx: click.Context, migration_id: str) -> None:
    """Check the status of a migration."""
    result = _execute(ctx, lambda service: service.get_migration_status(migration_id))

    table = Table(title=f'Migration {migration_id}')
    table.add_column('Field', style='cyan')
    table.add_column('Value', style='green')
    for key in ('state', 'repository_name', 'created_at', 'failure_reason'):
        table.add_row(key, _text(result.data.get(key)))
    console.print(table)


@cli.command()
@click.argument('migration_id')
@click.option(
    '--timeout', type=float, default=None, help='Minutes to wait before giving up'
)
@click.pass_context
def wait(ctx: click.Context, migration_id: str, timeout: Optional[float]) -> None:
    """Wait for a migration to reach a final state."""
    with console.status(f'Waiting for {migration_id}...'):
        result = _execute(
            ctx,
            lambda service: service.wait_for_migration(
                migration_id, timeout_minutes=timeout
            ),
        )
    _display_wait_result(result)


@cli.command()
@click.argument('migration_id')
@click.confirmation_option(prompt='Abort this migration?')
@click.pass_context
def abort(ctx: click.Context, migration_id: str) -> None:
    """Abort an in-progress migration."""
    result = _execute(ctx, lambda service: service.abort_migration(migration_id))
    console.print(f'[green]✓[/green] {result.data["message"]}')
    if not result.data['provider_confirmed']:
        console.print('[yellow]The importer did not confirm the abort[/yellow]')


@cli.command()
@click.pass_context
def active(ctx: click.Context) -> None:
    """List active migrations."""
    result = _execute(ctx, lambda service: service.list_active_migrations())
    _display_migrations('Active Migrations', result.data['migrations'])
    if not result.data['refreshed']:
        console.print('[yellow]States shown as last recorded (no target token)[/yellow]')


@cli.command()
@click.option('--limit', default=50, show_default=True, help='Records to show')
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON')
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show completed migrations."""
    result = _execute(ctx, lambda service: service.get_migration_history(limit))
    if as_json:
        click.echo(json.dumps(result.data, indent=2))
        return
    _display_migrations('Migration History', result.data['migrations'])


@cli.command()
@click.argument('org')
@click.option(
    '--source',
    type=click.Choice(['github', 'ado']),
    default='github',
    show_default=True,
    help='Origin platform',
)
@click.option('--ado-project', default=None, help='Only this Azure DevOps project')
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON')
@click.pass_context
def repos(
    ctx: click.Context,
    org: str,
    source: str,
    ado_project: Optional[str],
    as_json: bool,
) -> None:
    """List repositories of an origin organization."""
    result = _execute(
        ctx, lambda service: service.list_source_repos(source, org, ado_project)
    )
    if as_json:
        click.echo(json.dumps(result.data, indent=2))
        return
    _display_repositories(f'Repositories in {org}', result.data['repositories'])


@cli.command()
@click.argument('org')
@click.option(
    '--source',
    type=click.Choice(['github', 'ado']),
    default='github',
    show_default=True,
    help='Origin platform',
)
@click.option(
    '--large-mb', type=float, default=None, help='Only repositories larger than this'
)
@click.option(
    '--stale-days',
    type=float,
    default=None,
    help='Only repositories inactive for this many days',
)
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON')
@click.pass_context
def inventory(
    ctx: click.Context,
    org: str,
    source: str,
    large_mb: Optional[float],
    stale_days: Optional[float],
    as_json: bool,
) -> None:
    """Inventory an origin organization for migration planning."""
    if large_mb is not None and stale_days is not None:
        raise click.UsageError('Use either --large-mb or --stale-days, not both')

    if large_mb is not None:
        title = f'Repositories larger than {large_mb:g} MB in {org}'
    elif stale_days is not None:
        title = f'Repositories inactive for {stale_days:g} days in {org}'
    else:
        title = f'Inventory of {org}'

    async def run(service: MigrationService) -> OperationResult:
        if large_mb is not None:
            return await service.find_large_repos(source, org, large_mb)
        if stale_days is not None:
            return await service.find_stale_repos(source, org, stale_days)
        return await service.inventory_org(source, org)

    result = _execute(ctx, run)
    if as_json:
        click.echo(json.dumps(result.data, indent=2))
        return

    _display_repositories(title, result.data['repositories'])
    summary = result.data.get('summary')
    if not summary:
        return

    table = Table(title='Summary')
    table.add_column('Metric', style='cyan')
    table.add_column('Value', style='green')
    for key, value in summary.items():
        if key != 'repos_by_project':
            table.add_row(key.replace('_', ' '), str(value))
    for project, count in summary.get('repos_by_project', {}).items():
        table.add_row(f'project {project}', str(count))
    console.print(table)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    return Config.from_env()


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    log_level = 'DEBUG' if ctx.obj.get('verbose') else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _build_service(config: Config) -> MigrationService:
    # The CLI has no connection, so secrets come from the environment.
    return MigrationService(config, SessionCredentialRegistry())


def _execute(ctx: click.Context, operation) -> OperationResult:
    """Run a service operation, exiting with status 1 on failure."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)
        service = _build_service(config)
        result = asyncio.run(operation(service))
    except Exception as e:
        console.print(f'[red]✗[/red] Failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    if not result.success:
        console.print(f'[red]✗[/red] {result.error_kind}: {result.detail}')
        sys.exit(1)
    return result


def _display_wait_result(result: OperationResult) -> None:
    data = result.data
    if data['completed']:
        state = _text(data['final_state'])
        style = 'green' if state == 'SUCCEEDED' else 'red'
        console.print(
            f'[{style}]Migration {data["migration_id"]} finished: {state}[/{style}] '
            f'({data["duration"]})'
        )
        status = data.get('status') or {}
        if status.get('failure_reason'):
            console.print(f'Failure reason: {status["failure_reason"]}')
    else:
        console.print(f'[yellow]{data["message"]}[/yellow]')


def _display_migrations(title: str, migrations) -> None:
    table = Table(title=title)
    table.add_column('ID', style='cyan')
    table.add_column('Source', style='blue')
    table.add_column('Target', style='blue')
    table.add_column('State', style='green')
    table.add_column('Started')
    table.add_column('Completed')

    for m in migrations:
        table.add_row(
            m['id'],
            f'{m["source"]}:{m["source_org"]}',
            f'{m["target_org"]}/{m["repo_name"]}',
            m['state'],
            m['started_at'],
            m['completed_at'] or '',
        )

    console.print(table)
    console.print(f'{len(migrations)} migration(s)')


def _display_repositories(title: str, repositories) -> None:
    table = Table(title=title)
    table.add_column('Name', style='cyan')
    table.add_column('Project', style='blue')
    table.add_column('Size (MB)', justify='right')
    table.add_column('Archived')
    table.add_column('Last activity')

    for r in repositories:
        table.add_row(
            r['name'],
            r['project'] or '',
            f'{r["size_mb"]:.2f}',
            _mark(r['archived']) if r['archived'] else '',
            r['last_activity'] or '',
        )

    console.print(table)
    console.print(f'{len(repositories)} repositories')


def _mark(flag: bool) -> str:
    return '✓' if flag else '✗'


def _text(value) -> str:
    if value is None:
        return ''
    return getattr(value, 'value', str(value))


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
