"""
Main CLI interface for qobuz-sync

Command-line front end for the sync engine. Each command builds a
QobuzService, restores the persisted session when it needs one, runs its
operation on a fresh asyncio event loop and waits for the engine to settle
before printing the mirror.

Command groups:
- auth (login, logout, status)
- search (interactive or federated)
- playlists (list, show, create, rename, delete, add, remove)
- favorites (list, add, remove)
- stream-url
- config (show, set-quality)
"""

import asyncio
import functools
import sys
from typing import List

import click

from .config.credentials import reset_credential_store
from .config.settings import get_settings, reload_settings
from .core.events import EventTypes, LoginFailure
from .qobuz.models import PlaylistKind, PlaylistState, Quality, Track
from .sync.service import QobuzService
from .utils.helpers import format_duration
from .utils.logger import configure_from_settings, get_logger

# Initialize logging system from configuration settings
configure_from_settings()
logger = get_logger(__name__)

LOGIN_FAILURE_MESSAGES = {
    LoginFailure.CREDENTIALS: "Invalid username or password",
    LoginFailure.NOT_ENTITLED: "This account has no streaming subscription (free accounts can only play extracts)",
    LoginFailure.SERVICE: "Qobuz refused the login",
    LoginFailure.TRANSPORT: "Could not reach Qobuz",
}

KIND_CHOICES = {
    'featured': PlaylistKind.FEATURED,
    'user': PlaylistKind.USER_OWNED,
}


def print_banner():
    """Print application banner to console"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                          qobuz-sync                           ║
║                                                               ║
║    Search, favorites and playlists of your Qobuz account      ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    click.echo(click.style(banner, fg='blue', bold=True))


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Args:
        func: The CLI command function to wrap

    Returns:
        Wrapped function with error handling
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def run_with_service(action, load_user_data: bool = True, require_login: bool = True):
    """
    Run a coroutine function against a fresh service on a new event loop

    Args:
        action: async callable receiving the QobuzService
        load_user_data: Fetch playlists and favorites before running the action
        require_login: Exit with an error when no session is stored
    """
    async def runner():
        service = QobuzService()
        try:
            if load_user_data:
                logged_in = service.bootstrap()
                if logged_in:
                    await service.settle()
            else:
                logged_in = service.session.bootstrap()

            if require_login and not logged_in:
                click.echo(click.style("Not logged in. Run 'qobuz-sync auth login' first", fg='red'), err=True)
                return 1
            return await action(service)
        finally:
            await service.close()

    return asyncio.run(runner())


def print_tracks(tracks: List[Track], limit: int = 0):
    shown = tracks[:limit] if limit else tracks
    for index, track in enumerate(shown, 1):
        duration = format_duration(track.duration_seconds)
        click.echo(f"   {index:3d}. {track.artist} - {track.title} [{duration}] ({track.remote_id})")
    if len(shown) < len(tracks):
        click.echo(f"   ... and {len(tracks) - len(shown)} more")


def parse_playlist_id(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise click.BadParameter(f"Not a playlist id: {value}")


# Main CLI group - root command that all subcommands attach to
@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    qobuz-sync - Keep a local mirror of your Qobuz library

    Log in once, then search the catalog, browse featured and personal
    playlists, edit playlists and favorites, and resolve stream URLs.
    """
    ctx.ensure_object(dict)

    if version:
        from . import __version__
        click.echo(f"qobuz-sync {__version__}")
        return

    if config:
        reload_settings(config)
        reset_credential_store()
        configure_from_settings()
        click.echo(f"Loaded config: {config}")

    if verbose:
        ctx.obj['verbose'] = True
        logger.info("Verbose mode enabled")

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


# Authentication commands group
@cli.group()
def auth():
    """Authentication management"""
    pass


@auth.command()
@click.option('--username', '-u', prompt=True, help='Qobuz user name or e-mail')
@click.option('--password', '-p', prompt=True, hide_input=True, help='Qobuz password')
@handle_error
def login(username, password):
    """
    Log in to Qobuz

    Stores the session token so that later commands do not need the
    password. Featured playlists, favorites and user playlists are fetched
    right after a successful login.
    """
    if not get_settings().qobuz.app_id:
        click.echo(click.style("No Qobuz app_id configured (set QOBUZ_APP_ID)", fg='red'), err=True)
        sys.exit(1)

    async def action(service):
        failures = []
        service.events.on(EventTypes.LOGIN_FAILED, failures.append)

        connecting = service.connect(username, password)
        if connecting is None:
            click.echo(f"Already logged in as: {service.account_label()}")
            return 0

        if not await connecting:
            reason = failures[0].reason if failures else LoginFailure.SERVICE
            click.echo(click.style(f"Login failed: {LOGIN_FAILURE_MESSAGES[reason]}", fg='red'), err=True)
            return 1

        await service.settle()
        click.echo(f"Successfully logged in as: {service.account_label()}")
        click.echo(f"   Playlists: {len(service.list_playlists(PlaylistKind.USER_OWNED))}")
        click.echo(f"   Featured playlists: {len(service.list_playlists(PlaylistKind.FEATURED))}")
        click.echo(f"   Favorites: {len(service.favorites())}")
        return 0

    sys.exit(run_with_service(action, load_user_data=False, require_login=False))


@auth.command()
@handle_error
def logout():
    """
    Log out of Qobuz

    Waits for outstanding requests, then forgets the session and the
    stored token.
    """
    async def action(service):
        await service.logout()
        click.echo("Successfully logged out")
        return 0

    sys.exit(run_with_service(action, load_user_data=False, require_login=False))


@auth.command()
@handle_error
def status():
    """Check authentication status"""
    async def action(service):
        if service.is_logged_in():
            click.echo("Authentication Status: Logged in")
            click.echo(f"   Account: {service.account_label()}")
            click.echo(f"   Quality: {service.current_quality().name.lower()}")
        else:
            click.echo("Authentication Status: Not logged in")
            click.echo("   Run 'qobuz-sync auth login' to log in")
        return 0

    sys.exit(run_with_service(action, load_user_data=False, require_login=False))


@cli.command()
@click.argument('query')
@click.option('--simple', is_flag=True, help='Federated search (no debounce, shorter result list)')
@click.option('--limit', '-n', type=int, default=20, help='Number of results to display')
@handle_error
def search(query, simple, limit):
    """Search the Qobuz catalog for tracks"""
    async def action(service):
        if simple:
            results: List[Track] = []
            finished = asyncio.get_running_loop().create_future()

            def on_results(event):
                results.extend(event.tracks)

            def on_finished(event):
                if not finished.done():
                    finished.set_result(event.caller_id)

            service.events.on(EventTypes.RESULTS_AVAILABLE, on_results)
            service.events.on(EventTypes.SEARCH_FINISHED, on_finished)
            service.simple_search(query)
            await finished
        else:
            service.search(query, now=True)
            await service.settle()
            results = service.search_results()

        click.echo(f"Results for '{query}': {len(results)}")
        print_tracks(results, limit)
        return 0

    sys.exit(run_with_service(action, load_user_data=False, require_login=False))


@cli.command('stream-url')
@click.argument('track_id')
@handle_error
def stream_url(track_id):
    """Resolve the stream URL of a track at the current quality"""
    async def action(service):
        url = await service.resolve_stream_url(track_id)
        if not url:
            click.echo(click.style(f"No stream URL for track {track_id}", fg='red'), err=True)
            return 1
        click.echo(url)
        return 0

    sys.exit(run_with_service(action, load_user_data=False))


# Playlist commands group
@cli.group()
def playlists():
    """Playlist management"""
    pass


@playlists.command('list')
@click.option('--kind', type=click.Choice(['all', 'featured', 'user']), default='all', help='Collection to list')
@handle_error
def list_playlists(kind):
    """List mirrored playlists"""
    async def action(service):
        items = service.list_playlists(KIND_CHOICES.get(kind))
        if not items:
            click.echo("No playlists")
            return 0

        for playlist in items:
            flags = "" if playlist.editable else " (read-only)"
            if playlist.state != PlaylistState.POPULATED:
                flags += f" [{playlist.state.value}]"
            click.echo(f"{playlist.id:>10}  {playlist.name} - {len(playlist.member_track_ids)} tracks{flags}")
        return 0

    sys.exit(run_with_service(action))


@playlists.command('show')
@click.argument('playlist_id')
@handle_error
def show_playlist(playlist_id):
    """Show the tracks of a playlist"""
    async def action(service):
        pid = parse_playlist_id(playlist_id)
        playlist = service.registry.get(pid)
        if playlist is None:
            click.echo(click.style(f"Unknown playlist {pid}", fg='red'), err=True)
            return 1
        click.echo(f"{playlist.name} ({playlist.kind.value}, {len(playlist.member_track_ids)} tracks)")
        print_tracks(playlist.tracks)
        return 0

    sys.exit(run_with_service(action))


@playlists.command('create')
@click.argument('name')
@handle_error
def create_playlist(name):
    """Create a playlist"""
    async def action(service):
        before = {p.id for p in service.list_playlists(PlaylistKind.USER_OWNED)}
        pending = service.create_playlist(name)
        if pending is None:
            return 1
        await pending
        await service.settle()

        created = [p for p in service.list_playlists(PlaylistKind.USER_OWNED) if p.id not in before]
        if not created:
            click.echo(click.style("Playlist creation failed", fg='red'), err=True)
            return 1
        click.echo(f"Created playlist '{created[0].name}' ({created[0].id})")
        return 0

    sys.exit(run_with_service(action))


@playlists.command('rename')
@click.argument('playlist_id')
@click.argument('name')
@handle_error
def rename_playlist(playlist_id, name):
    """Rename a playlist"""
    async def action(service):
        pid = parse_playlist_id(playlist_id)
        pending = service.rename_playlist(pid, name)
        if pending is None:
            click.echo(click.style(f"Cannot rename playlist {pid}", fg='red'), err=True)
            return 1
        await pending
        playlist = service.registry.get(pid)
        click.echo(f"Playlist {pid} is now named '{playlist.name if playlist else name}'")
        return 0

    sys.exit(run_with_service(action))


@playlists.command('delete')
@click.argument('playlist_id')
@click.confirmation_option(prompt='Are you sure you want to delete this playlist?')
@handle_error
def delete_playlist(playlist_id):
    """Delete a playlist"""
    async def action(service):
        pid = parse_playlist_id(playlist_id)
        pending = service.delete_playlist(pid)
        if pending is None:
            click.echo(click.style(f"Cannot delete playlist {pid}", fg='red'), err=True)
            return 1
        await pending
        if service.registry.get(pid) is not None:
            click.echo(click.style("Playlist deletion failed", fg='red'), err=True)
            return 1
        click.echo(f"Deleted playlist {pid}")
        return 0

    sys.exit(run_with_service(action))


@playlists.command('add')
@click.argument('playlist_id')
@click.argument('track_id')
@handle_error
def add_to_playlist(playlist_id, track_id):
    """Append a track to a playlist"""
    async def action(service):
        pid = parse_playlist_id(playlist_id)
        pending = service.add_to_playlist(pid, track_id)
        if pending is None:
            click.echo(click.style(f"Cannot update playlist {pid}", fg='red'), err=True)
            return 1
        await pending
        await service.settle()
        click.echo(f"Playlist {pid} now has {len(service.playlist_membership(pid) or [])} tracks")
        return 0

    sys.exit(run_with_service(action))


@playlists.command('remove')
@click.argument('playlist_id')
@click.argument('track_ids', nargs=-1, required=True)
@handle_error
def remove_from_playlist(playlist_id, track_ids):
    """Remove tracks from a playlist (one occurrence per id)"""
    async def action(service):
        pid = parse_playlist_id(playlist_id)
        pending = service.remove_from_playlist(pid, list(track_ids))
        if pending is None:
            click.echo(click.style(f"Cannot update playlist {pid}", fg='red'), err=True)
            return 1
        await pending
        await service.settle()
        click.echo(f"Playlist {pid} now has {len(service.playlist_membership(pid) or [])} tracks")
        return 0

    sys.exit(run_with_service(action))


# Favorites commands group
@cli.group()
def favorites():
    """Favorite tracks"""
    pass


@favorites.command('list')
@handle_error
def list_favorites():
    """List favorite tracks"""
    async def action(service):
        tracks = service.favorites()
        click.echo(f"Favorites: {len(tracks)}")
        print_tracks(tracks)
        return 0

    sys.exit(run_with_service(action))


@favorites.command('add')
@click.argument('track_id')
@handle_error
def add_favorite(track_id):
    """Add a track to favorites"""
    async def action(service):
        pending = service.add_favorite(track_id)
        if pending is None:
            return 1
        await pending
        await service.settle()
        click.echo(f"Favorites: {len(service.favorites())}")
        return 0

    sys.exit(run_with_service(action, load_user_data=False))


@favorites.command('remove')
@click.argument('track_ids', nargs=-1, required=True)
@handle_error
def remove_favorites(track_ids):
    """Remove tracks from favorites"""
    async def action(service):
        pending = service.remove_favorites(list(track_ids))
        if pending is None:
            return 1
        await pending
        await service.settle()
        click.echo(f"Favorites: {len(service.favorites())}")
        return 0

    sys.exit(run_with_service(action, load_user_data=False))


# Configuration commands group
@cli.group()
def config():
    """Configuration management"""
    pass


@config.command('show')
@handle_error
def show_config():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Current Configuration:\n")

    click.echo("Qobuz:")
    click.echo(f"   Endpoint: {settings.qobuz.base_url}")
    click.echo(f"   App id: {settings.qobuz.app_id or '<unset>'}")
    click.echo(f"   App secret: {'<set>' if settings.qobuz.app_secret else '<unset>'}")

    click.echo("\nSearch:")
    click.echo(f"   Debounce: {settings.search.debounce_ms}ms")
    click.echo(f"   Result limit: {settings.search.search_limit}")
    click.echo(f"   Simple search limit: {settings.search.simple_search_limit}")

    click.echo("\nNetwork:")
    click.echo(f"   Timeout: {settings.network.request_timeout}s")
    click.echo(f"   Rate limit: {settings.network.rate_limit} requests / {settings.network.rate_period}s")

    click.echo("\nStorage:")
    click.echo(f"   Session file: {settings.get_credentials_path()}")


@config.command('set-quality')
@click.argument('quality', type=click.Choice(['none', 'lossy', 'lossless']))
@handle_error
def set_quality(quality):
    """Set the streaming quality used for stream URLs"""
    async def action(service):
        service.set_quality(Quality.from_value(quality))
        if not service.is_logged_in():
            click.echo(click.style("Not logged in: the quality only applies to this session", fg='yellow'))
        click.echo(f"Quality: {service.current_quality().name.lower()}")
        return 0

    sys.exit(run_with_service(action, load_user_data=False, require_login=False))


# Entry point for module execution
if __name__ == '__main__':
    cli()
