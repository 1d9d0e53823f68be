"""
Journey CLI commands - External interface layer
"""

import asyncio
import json
from pathlib import Path
from typing import Optional
import click

from ..services.conn.conn_service import ConnectionService
from ..services.journey.journey_service import (
    JourneyService,
    describe_tree,
    load_journeys,
    load_journeys_from_files,
)
from ..core.conn.am_api import AMGateway
from ..core.journey.journey_models import ExportOptions, ImportOptions
from ..core.exceptions import JctlError
from ..core.logger import setup_logger


def _journey_service(conn_name: str, token: Optional[str]) -> JourneyService:
    context = ConnectionService().get_context(conn_name, token)
    return JourneyService(AMGateway(context), context)


def _write_json(data: dict, file: Path) -> None:
    file.write_text(json.dumps(data, indent=2), encoding='utf-8')


def _read_json(file: Path) -> dict:
    try:
        return json.loads(file.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        raise click.UsageError(f"Invalid JSON in {file}: {e}")


def _conn_options(func):
    """Connection profile, token and verbosity options shared by platform commands"""
    func = click.option('-v', '--verbose', is_flag=True, help='Enable verbose logging')(func)
    func = click.option('--token', envvar='JCTL_ACCESS_TOKEN',
                        help='Bearer access token (default: JCTL_ACCESS_TOKEN or the profile)')(func)
    func = click.option('-c', '--conn', 'conn_name', required=True, help='Connection profile name')(func)
    return func


@click.group()
def journey():
    """Authentication journey export, import and maintenance"""
    pass


@journey.command(name='list')
@click.option('-l', '--long', 'long_format', is_flag=True, help='Show status and categories')
@click.option('--analyze', is_flag=True, help='Mark journeys that use custom nodes with * (slower)')
@_conn_options
def list_journeys(long_format: bool, analyze: bool, conn_name: str, token: str, verbose: bool):
    """List the journeys of the realm"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    asyncio.run(_list_async(long_format, analyze, conn_name, token))


async def _list_async(long_format: bool, analyze: bool, conn_name: str, token: Optional[str]):
    """Async list implementation"""

    try:
        service = _journey_service(conn_name, token)
        journeys = await service.list_journeys(analyze)
    except JctlError as e:
        click.echo(f"Command failed: {e}", err=True)
        exit(1)

    if not journeys:
        click.echo("No journeys found.")
        return

    names = [f"{'*' if summary.custom else ''}{summary.name}" for summary in journeys]
    if not long_format:
        for name in names:
            click.echo(name)
        return

    width = max(len(name) for name in names + ['Name'])
    click.echo(f"{'Name':<{width}}  {'Status':<8}  Tags")
    for name, summary in zip(names, journeys):
        status = 'enabled' if summary.enabled else 'disabled'
        click.echo(f"{name:<{width}}  {status:<8}  {', '.join(summary.categories)}")


@journey.command()
@click.option('-i', '--journey-id', help='Journey to export')
@click.option('-a', '--all', 'export_all', is_flag=True, help='Export all journeys into one file')
@click.option('-A', '--all-separate', is_flag=True, help='Export each journey into its own <name>.journey.json file')
@click.option('-f', '--file', 'file', type=click.Path(path_type=Path), help='Output file')
@click.option('-D', '--directory', type=click.Path(file_okay=False, path_type=Path), default=Path('.'),
              show_default=True, help='Output directory for --all-separate')
@click.option('--no-deps', is_flag=True, help='Do not include scripts, templates, providers and themes')
@click.option('--no-string-arrays', is_flag=True, help='Store script bodies as JSON strings instead of line arrays')
@_conn_options
def export(journey_id: str, export_all: bool, all_separate: bool, file: Path, directory: Path, no_deps: bool,
           no_string_arrays: bool, conn_name: str, token: str, verbose: bool):
    """Export a journey (or all journeys) with its dependencies"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    if sum([bool(journey_id), export_all, all_separate]) != 1:
        raise click.UsageError("Specify exactly one of --journey-id, --all or --all-separate")
    if all_separate and file:
        raise click.UsageError("--file cannot be used with --all-separate (use --directory)")

    asyncio.run(_export_async(journey_id, all_separate, file, directory, no_deps, no_string_arrays,
                              conn_name, token))


async def _export_async(journey_id: Optional[str], all_separate: bool, file: Optional[Path], directory: Path,
                        no_deps: bool, no_string_arrays: bool, conn_name: str, token: Optional[str]):
    """Async export implementation"""

    try:
        service = _journey_service(conn_name, token)
        options = ExportOptions(use_string_arrays=not no_string_arrays, deps=not no_deps)

        if all_separate:
            files = await service.export_journeys_to_files(directory, options)
            click.echo(f"Exported {len(files)} journey(s) to {directory}")
            return

        if journey_id:
            document = (await service.export_journey(journey_id, options)).to_dict()
            file = file or Path(f"{journey_id}.journey.json")
        else:
            exported = await service.export_journeys(options)
            document = exported.to_dict()
            file = file or Path(f"all{service.context.realm_name.capitalize()}Journeys.journey.json")

        _write_json(document, file)
        click.echo(f"Exported to {file}")

    except JctlError as e:
        click.echo(f"Command failed: {e}", err=True)
        exit(1)


@journey.command(name='import')
@click.argument('file', required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('-i', '--journey-id', help='Journey to import from a multi-journey file')
@click.option('-a', '--all', 'import_all', is_flag=True, help='Import all journeys in dependency order')
@click.option('-A', '--all-separate', 'directory', type=click.Path(exists=True, file_okay=False, path_type=Path),
              help='Import every *.journey.json file in DIRECTORY in dependency order')
@click.option('--re-uuid', is_flag=True, help='Generate new ids for all nodes')
@click.option('--no-deps', is_flag=True, help='Do not import dependencies carried in the file')
@_conn_options
def import_journeys(file: Optional[Path], journey_id: str, import_all: bool, directory: Optional[Path],
                    re_uuid: bool, no_deps: bool, conn_name: str, token: str, verbose: bool):
    """Import a journey (the first one in FILE unless --journey-id or --all) or a directory of journey files"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    if bool(file) == bool(directory):
        raise click.UsageError("Specify exactly one of FILE or --all-separate DIRECTORY")
    if journey_id and import_all:
        raise click.UsageError("--journey-id and --all are mutually exclusive")
    if directory and journey_id:
        raise click.UsageError("--journey-id cannot be used with --all-separate")

    document = _read_json(file) if file else None
    asyncio.run(_import_async(document, directory, journey_id, import_all, re_uuid, no_deps, conn_name, token))


async def _import_async(document: Optional[dict], directory: Optional[Path], journey_id: Optional[str],
                        import_all: bool, re_uuid: bool, no_deps: bool, conn_name: str, token: Optional[str]):
    """Async import implementation"""

    try:
        if directory:
            journeys = load_journeys_from_files(directory)
            import_all = True
        else:
            journeys = load_journeys(document)
        service = _journey_service(conn_name, token)
        options = ImportOptions(re_uuid=re_uuid, deps=not no_deps)

        if import_all:
            result = await service.import_journeys(journeys, options)
            for name, status in result.statuses.items():
                _echo_import_status(status)
            for name, missing in result.unresolved.items():
                click.echo(f"❌ {name}: unresolved dependencies {', '.join(missing)}", err=True)
            if result.failed or result.unresolved:
                exit(1)
            return

        if journey_id:
            if journey_id not in journeys:
                raise click.UsageError(f"Journey '{journey_id}' not found in import data")
            status = await service.import_journey(journeys[journey_id], options)
        else:
            status = await service.import_first_journey(journeys, options)
        _echo_import_status(status)

    except JctlError as e:
        click.echo(f"Command failed: {e}", err=True)
        exit(1)


def _echo_import_status(status):
    if status.status == "error":
        click.echo(f"❌ {status.journey}: {status.error}", err=True)
        return
    click.echo(f"{'✅' if status.status == 'success' else '⚠️ '} Imported {status.journey}")
    for key, failure in status.failures.items():
        click.echo(f"   {key}: {failure.error}", err=True)


@journey.command()
@click.option('-i', '--journey-id', help='Journey to delete')
@click.option('-a', '--all', 'delete_all', is_flag=True, help='Delete all journeys')
@click.option('--no-deep', is_flag=True, help='Keep the journey nodes')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@_conn_options
def delete(journey_id: str, delete_all: bool, no_deep: bool, force: bool,
           conn_name: str, token: str, verbose: bool):
    """Delete a journey (or all journeys) and, by default, its nodes"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    if bool(journey_id) == delete_all:
        raise click.UsageError("Specify exactly one of --journey-id or --all")

    target = f"journey '{journey_id}'" if journey_id else "ALL journeys"
    if not force and not click.confirm(f"Are you sure you want to delete {target}?"):
        click.echo("Operation cancelled.")
        return

    asyncio.run(_delete_async(journey_id, not no_deep, conn_name, token))


async def _delete_async(journey_id: Optional[str], deep: bool, conn_name: str, token: Optional[str]):
    """Async delete implementation"""

    try:
        service = _journey_service(conn_name, token)
        if journey_id:
            statuses = {journey_id: await service.delete_journey(journey_id, deep)}
        else:
            statuses = await service.delete_journeys(deep)
    except JctlError as e:
        click.echo(f"Command failed: {e}", err=True)
        exit(1)

    failed = False
    for name, status in statuses.items():
        if status.status == "error":
            failed = True
            click.echo(f"❌ {name}: {status.error}", err=True)
        elif status.node_errors:
            click.echo(f"⚠️  Deleted {name} ({status.node_errors} node(s) could not be deleted)")
        else:
            click.echo(f"✅ Deleted {name} ({len(status.nodes)} node(s))")
    if failed:
        exit(1)


@journey.command()
@click.argument('file', type=click.Path(exists=True, path_type=Path))
@click.option('-i', '--journey-id', help='Journey to describe from a multi-journey file')
def describe(file: Path, journey_id: str):
    """Describe the journeys in an export file"""

    try:
        journeys = load_journeys(_read_json(file))
    except JctlError as e:
        click.echo(f"Command failed: {e}", err=True)
        exit(1)

    if journey_id:
        if journey_id not in journeys:
            raise click.UsageError(f"Journey '{journey_id}' not found in {file}")
        journeys = {journey_id: journeys[journey_id]}

    for bundle in journeys.values():
        description = describe_tree(bundle)
        click.echo(f"\nJourney: {description['treeName']}")
        click.echo("========")
        click.echo("\nNodes:")
        for name, count in description['nodeTypes'].items():
            click.echo(f"- {name}: {count}")
        if description['scripts']:
            click.echo("\nScripts:")
            for name, desc in description['scripts'].items():
                click.echo(f"- {name}: {desc}")
        if description['emailTemplates']:
            click.echo("\nEmail Templates:")
            for template_id in description['emailTemplates']:
                click.echo(f"- {template_id}")


@journey.command()
@click.option('--remove', is_flag=True, help='Delete the orphaned nodes')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@_conn_options
def orphans(remove: bool, force: bool, conn_name: str, token: str, verbose: bool):
    """Find (and optionally remove) nodes not used by any journey"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    asyncio.run(_orphans_async(remove, force, conn_name, token))


async def _orphans_async(remove: bool, force: bool, conn_name: str, token: Optional[str]):
    """Async orphan scan implementation"""

    try:
        service = _journey_service(conn_name, token)
        report = await service.find_orphaned_nodes()

        click.echo(f"{report.total_nodes} total nodes, {report.active_nodes} active nodes, "
                   f"{len(report.orphans)} orphaned nodes")
        if not report.complete:
            click.echo(f"⚠️  Skipped type(s): {', '.join(report.skipped_types)}")
        for node in report.orphans:
            click.echo(f"- {node['_id']} ({node.get('_type', {}).get('_id', '')})")

        if not remove or not report.orphans:
            return
        if not force and not click.confirm(f"Delete {len(report.orphans)} orphaned node(s)?"):
            click.echo("Operation cancelled.")
            return

        status = await service.remove_orphaned_nodes(report.orphans)
        if status.node_errors:
            click.echo(f"❌ {status.error}", err=True)
            exit(1)
        click.echo(f"✅ Removed {len(status.nodes)} orphaned node(s)")

    except JctlError as e:
        click.echo(f"Command failed: {e}", err=True)
        exit(1)
