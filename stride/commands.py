import click
from flask import current_app
from flask.cli import AppGroup

from stride.offline import InstallError, OfflineCache

offline_cli = AppGroup('offline', help='Manage the offline response cache.')


@offline_cli.command('install')
@click.option('--activate/--no-activate', default=True, help='Drop older cache generations afterwards.')
def install_command(activate):
    """Pre-cache the bootstrap assets under the current generation."""
    cache = OfflineCache.from_app(current_app._get_current_object())
    try:
        cache.install()
        dropped = cache.activate() if activate else []
    except InstallError as exc:
        raise click.ClickException(str(exc))
    finally:
        cache.close()
    click.echo(f"Installed {cache.cache_name}" + (f", dropped {', '.join(dropped)}" if dropped else ""))


@offline_cli.command('activate')
def activate_command():
    """Delete every cache generation except the current one."""
    cache = OfflineCache.from_app(current_app._get_current_object())
    try:
        dropped = cache.activate()
    except InstallError as exc:
        raise click.ClickException(str(exc))
    finally:
        cache.close()
    click.echo(f"Dropped: {', '.join(dropped) or 'nothing'}")


@offline_cli.command('fetch')
@click.argument('url')
@click.option('--navigate', is_flag=True, help='Fall back to the offline document when nothing is cached.')
def fetch_command(url, navigate):
    """Fetch URL network-first, falling back to the cache."""
    cache = OfflineCache.from_app(current_app._get_current_object())
    try:
        response = cache.fetch(url, navigate=navigate)
    except Exception as exc:
        raise click.ClickException(f"Fetch failed: {exc}")
    finally:
        cache.close()
    source = 'cache' if getattr(response, 'from_cache', False) else 'network'
    click.echo(f"{response.status_code} {url} ({source}, {len(response.content)} bytes)")
