"""
Connection CLI commands - External interface layer
"""

from pathlib import Path
import click

from ..services.conn.conn_service import ConnectionService
from ..core.conn.conn_models import DEPLOYMENT_TYPES
from ..core.exceptions import ConfigError
from ..core.logger import setup_logger


@click.group()
def conn():
    """Connection profile management"""
    pass


@conn.command()
@click.argument('conn_name')
@click.option('--platform',
              help='Platform URL (e.g. https://openam-env.id.forgerock.io)')
@click.option('--realm',
              default='alpha',
              help='Realm the journeys live in (default: alpha)')
@click.option('--deployment-type',
              type=click.Choice(DEPLOYMENT_TYPES),
              default='cloud',
              help='Deployment type of the platform')
@click.option('--token', 'access_token',
              help='Bearer access token to store with the profile (optional)')
@click.option('--am-version',
              help='AM version recorded in export metadata (optional)')
@click.option('--managed-user-object',
              help='Managed user object of the realm, e.g. alpha_user (optional)')
@click.option('--description',
              help='Profile description (optional)')
@click.option('-c', '--config', 'config_path',
              type=click.Path(exists=True, path_type=Path),
              help='Path to YAML connection configuration file')
@click.option('-v', '--verbose',
              is_flag=True,
              help='Enable verbose logging')
def add(conn_name: str, platform: str, realm: str, deployment_type: str, access_token: str,
        am_version: str, managed_user_object: str, description: str, config_path: Path, verbose: bool):
    """Add a new connection profile

    Usage:
      # Using flags
      jctl conn add myenv --platform https://openam-env.id.forgerock.io --realm alpha

      # Using config file
      jctl conn add myenv --config /path/to/conn.yaml
    """

    # Setup logging
    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    connection_service = ConnectionService()

    if config_path:
        if verbose:
            click.echo(f"Loading connection profile from config: {config_path}")
        result = connection_service.create_profile_from_config(config_path, conn_name)
    else:
        if not platform:
            raise click.UsageError("--platform is required when not using --config")

        profile_data = {
            "name": conn_name,
            "platform_url": platform,
            "realm": realm,
            "deployment_type": deployment_type,
        }
        optional = {
            "access_token": access_token,
            "am_version": am_version,
            "managed_user_object": managed_user_object,
            "description": description,
        }
        profile_data.update({key: value for key, value in optional.items() if value})
        result = connection_service.create_profile(profile_data)

    if result["success"]:
        click.echo(f"✅ {result['message']}")
    else:
        click.echo(f"❌ Failed to create profile: {result['error']}", err=True)
        exit(1)


@conn.command(name='list')
@click.option('-v', '--verbose',
              is_flag=True,
              help='Enable verbose logging')
def list_profiles(verbose: bool):
    """List all connection profiles"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    result = ConnectionService().list_profiles()
    profiles = result["profiles"]

    if not profiles:
        click.echo("No connection profiles found.")
        return

    click.echo(f"Found {result['count']} connection profile(s):")
    click.echo()

    for profile in profiles:
        click.echo(f"📋 {profile['name']}")
        click.echo(f"   Platform: {profile['platform_url']}")
        click.echo(f"   Realm: {profile['realm']} ({profile['deployment_type']})")
        if profile.get('description'):
            click.echo(f"   Description: {profile['description']}")
        click.echo()


@conn.command()
@click.argument('conn_name')
@click.option('-v', '--verbose',
              is_flag=True,
              help='Enable verbose logging')
def show(conn_name: str, verbose: bool):
    """Show details of a specific connection profile"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    result = ConnectionService().get_profile(conn_name)

    if not result["success"]:
        click.echo(f"❌ {result['error']}", err=True)
        exit(1)

    profile = result["profile"]
    click.echo(f"📋 Connection Profile: {profile['name']}")
    click.echo(f"   Platform URL: {profile['platform_url']}")
    click.echo(f"   Realm: {profile['realm']}")
    click.echo(f"   Deployment type: {profile['deployment_type']}")
    if profile.get('am_version'):
        click.echo(f"   AM version: {profile['am_version']}")
    if profile.get('managed_user_object'):
        click.echo(f"   Managed user object: {profile['managed_user_object']}")
    if profile.get('description'):
        click.echo(f"   Description: {profile['description']}")
    click.echo(f"   Access token stored: {'✅' if profile.get('access_token') else '❌'}")


@conn.command()
@click.argument('conn_name')
@click.option('--force', is_flag=True, help='Skip confirmation prompt')
@click.option('-v', '--verbose',
              is_flag=True,
              help='Enable verbose logging')
def delete(conn_name: str, force: bool, verbose: bool):
    """Delete a connection profile"""

    log_level = "DEBUG" if verbose else "INFO"
    setup_logger(log_level)

    if not force:
        if not click.confirm(f"Are you sure you want to delete profile '{conn_name}'?"):
            click.echo("Operation cancelled.")
            return

    try:
        result = ConnectionService().delete_profile(conn_name)
    except ConfigError as e:
        click.echo(f"❌ Error: {e}", err=True)
        exit(1)

    if result["success"]:
        click.echo(f"✅ {result['message']}")
    else:
        click.echo(f"❌ {result['error']}", err=True)
        exit(1)
