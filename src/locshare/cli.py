"""Command-line interface for locshare.

Provides CLI commands for tracking a session, inspecting stored sessions,
managing short links and serving the local viewer.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

import click

from locshare import __version__
from locshare.config import DEFAULT_CONFIG_PATH, ensure_data_dir, load_config
from locshare.lib.logging import setup_logging
from locshare.lib.store import FileStore, is_valid_key

if TYPE_CHECKING:
    from locshare.config import Config


class JSONOutput:
    """Helper for JSON output formatting."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._data: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        """Set a value in the output."""
        self._data[key] = value

    def update(self, data: dict[str, Any]) -> None:
        """Update with multiple values."""
        self._data.update(data)

    def output(self) -> None:
        """Print JSON output if enabled."""
        if self.enabled:
            click.echo(json.dumps(self._data, indent=2, default=str))


# Custom context class to hold shared state
class Context:
    """CLI context holding shared configuration and state."""

    def __init__(self) -> None:
        self.config: Config | None = None
        self.verbose: int = 0
        self.quiet: bool = False
        self.json_output: bool = False
        self.output: JSONOutput = JSONOutput()

    def log(self, message: str, level: int = 0) -> None:
        """Log a message if verbosity allows.

        Args:
            message: Message to log.
            level: Required verbosity level (0=normal, 1=-v, 2=-vv).
        """
        if self.json_output:
            return
        if self.quiet and level == 0:
            return
        if level <= self.verbose or level == 0:
            click.echo(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        if self.json_output:
            self.output.set("error", message)
            self.output.set("status", "error")
        else:
            click.echo(f"Error: {message}", err=True)

    def fail(self, message: str, code: int = 1) -> NoReturn:
        """Report an error and exit."""
        self.error(message)
        if self.json_output:
            self.output.output()
        sys.exit(code)

    def require_config(self) -> Config:
        """Get the loaded configuration."""
        if self.config is None:
            self.fail("Configuration not loaded")
        return self.config

    def store(self) -> FileStore:
        """Open the file store under the data directory."""
        return FileStore(ensure_data_dir(self.require_config()) / "store")


pass_context = click.make_pass_decorator(Context, ensure=True)


def _format_timestamp(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH})",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Data directory path (default: ./data)",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress non-error output",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format",
)
@click.version_option(version=__version__, prog_name="locshare")
@pass_context
def main(
    ctx: Context,
    config_path: Path | None,
    data_dir: Path | None,
    verbose: int,
    quiet: bool,
    json_output: bool,
) -> None:
    """Share a live location through short links.

    Track a session from a recorded route, inspect stored sessions,
    manage short links and serve them locally.
    """
    ctx.verbose = verbose
    ctx.quiet = quiet
    ctx.json_output = json_output
    ctx.output = JSONOutput(json_output)

    try:
        ctx.config = load_config(config_path)
    except ValueError as e:
        ctx.fail(str(e), code=2)

    if data_dir is not None:
        ctx.config.data.directory = data_dir

    console_level = logging.WARNING
    if verbose == 1:
        console_level = logging.INFO
    elif verbose >= 2:
        console_level = logging.DEBUG
    setup_logging(ctx.config, console_level=console_level, quiet=quiet)


@main.command()
@click.option(
    "--replay",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="CSV track to play back as the location source",
)
@click.option(
    "--name",
    help="Session name (default: 'Location Session <date>')",
)
@click.option(
    "--session-id",
    help="Continue an existing session instead of starting a new one",
)
@click.option(
    "--interval",
    type=float,
    help="Seconds between location updates (default: from config, 10)",
)
@click.option(
    "--count",
    type=int,
    help="Stop after this many recurring updates",
)
@pass_context
def track(
    ctx: Context,
    replay: Path,
    name: str | None,
    session_id: str | None,
    interval: float | None,
    count: int | None,
) -> None:
    """Track a session and print its share link.

    Takes one location immediately, then one per interval until the
    track runs out, --count is reached or Ctrl+C is pressed.
    """
    from locshare.errors import LocationUnavailableError
    from locshare.lib.geo import cumulative_distance, format_distance
    from locshare.models.session import HistoryStore, SessionStore
    from locshare.models.shortlink import ShortLinkDirectory
    from locshare.services.providers import ReplayLocationProvider, load_track_csv
    from locshare.services.tracker import SessionController

    config = ctx.require_config()
    if session_id and not is_valid_key(session_id):
        ctx.fail(
            f"Invalid session id {session_id!r}: use only letters, digits, '_', '.' and '-'",
            code=2,
        )

    try:
        samples = load_track_csv(replay)
    except ValueError as e:
        ctx.fail(str(e), code=2)

    store = ctx.store()
    provider = ReplayLocationProvider(samples)
    history = HistoryStore(store)
    sessions = SessionStore(store)
    links = ShortLinkDirectory(store, code_length=config.links.code_length)
    options: dict[str, Any] = {
        "base_url": config.viewer.base_url,
        "on_sample": lambda s: ctx.log(f"  {s.latitude:.6f}, {s.longitude:.6f} (±{s.accuracy:.1f}m)", 1),
    }

    controller = None
    if session_id:
        controller = SessionController.resume(session_id, provider, history, sessions, links, **options)
    if controller is None:
        controller = SessionController.create(
            provider,
            history,
            sessions,
            links,
            name=name or config.tracking.name or None,
            session_id=session_id,
            **options,
        )
    if name:
        controller.session.name = name

    try:
        controller.start()
    except LocationUnavailableError as e:
        ctx.fail(f"Location unavailable: {e}")

    ctx.log(f"Tracking session {controller.session.id}")
    ctx.log(f"Share link: {controller.share_url}")
    ctx.log(f"Viewer: {controller.viewer_url}", 1)

    period = config.tracking.interval if interval is None else interval
    ticks = 0
    try:
        while controller.is_tracking and (count is None or ticks < count):
            time.sleep(period)
            provider.tick()
            ticks += 1
    except KeyboardInterrupt:
        ctx.log("\nInterrupted")
    finally:
        controller.stop()

    distance = cumulative_distance(controller.session.location_history)
    if ctx.json_output:
        ctx.output.update({
            "status": "success",
            "session_id": controller.session.id,
            "name": controller.session.name,
            "samples": len(controller.session.location_history),
            "total_distance_m": distance,
            "share_code": controller.share_code,
            "share_url": controller.share_url,
            "viewer_url": controller.viewer_url,
            "last_error": controller.last_error,
        })
        ctx.output.output()
    else:
        if controller.last_error:
            ctx.log(controller.last_error)
        ctx.log(
            f"Recorded {len(controller.session.location_history)} locations, "
            f"{format_distance(distance)} traveled"
        )


@main.group()
def session() -> None:
    """Inspect stored tracking sessions."""
    pass


@session.command(name="list")
@pass_context
def session_list(ctx: Context) -> None:
    """List known sessions."""
    from locshare.models.session import SessionStore

    summaries = SessionStore(ctx.store()).list_sessions()
    if ctx.json_output:
        ctx.output.update({
            "status": "success",
            "sessions": [s.to_dict() for s in summaries],
        })
        ctx.output.output()
        return

    if not summaries:
        ctx.log("No sessions")
        return
    for s in summaries:
        ctx.log(f"{s.id}  {'LIVE   ' if s.is_active else 'offline'}  {s.name}")


@session.command(name="show")
@click.argument("session_id")
@pass_context
def session_show(ctx: Context, session_id: str) -> None:
    """Show statistics for a session."""
    from locshare.models.session import SessionStore
    from locshare.errors import NotFoundError
    from locshare.services.viewer import format_session_stats, require_session, session_stats

    try:
        found = require_session(SessionStore(ctx.store()), session_id)
    except NotFoundError as e:
        ctx.fail(str(e))

    stats = session_stats(found)
    if ctx.json_output:
        ctx.output.update({"status": "success", **stats})
        ctx.output.output()
    else:
        ctx.log(format_session_stats(stats))


@session.command(name="clear")
@click.argument("session_id")
@pass_context
def session_clear(ctx: Context, session_id: str) -> None:
    """Clear a session's location history."""
    from locshare.models.session import HistoryStore, SessionStore
    from locshare.services.tracker import clear_stored_history

    store = ctx.store()
    if not clear_stored_history(HistoryStore(store), SessionStore(store), session_id):
        ctx.fail(f"Session not found: {session_id}")

    if ctx.json_output:
        ctx.output.update({"status": "success", "session_id": session_id})
        ctx.output.output()
    else:
        ctx.log(f"Cleared history for {session_id}")


@session.command(name="watch")
@click.argument("session_id")
@click.option(
    "--interval",
    type=float,
    help="Seconds between refreshes (default: from config, 5)",
)
@click.option(
    "--count",
    type=int,
    help="Stop after this many refreshes",
)
@pass_context
def session_watch(ctx: Context, session_id: str, interval: float | None, count: int | None) -> None:
    """Follow a session as it updates."""
    from locshare.models.session import SessionStore, TrackingSession
    from locshare.services.viewer import SessionWatcher, format_session_stats, session_stats

    config = ctx.require_config()
    watcher = SessionWatcher(SessionStore(ctx.store()), session_id)
    updates: list[dict[str, Any] | None] = []

    def show(current: TrackingSession | None) -> None:
        if current is None:
            updates.append(None)
            ctx.log("Session not found. Make sure the tracker is running and the link is correct.")
            return
        stats = session_stats(current)
        updates.append(stats)
        ctx.log(format_session_stats(stats))
        ctx.log("")

    watcher.on_change(show)
    period = config.viewer.refresh_interval if interval is None else interval
    polls = 0
    try:
        while True:
            watcher.poll()
            polls += 1
            if count is not None and polls >= count:
                break
            time.sleep(period)
    except KeyboardInterrupt:
        pass

    if ctx.json_output:
        ctx.output.update({"status": "success", "polls": polls, "updates": updates})
        ctx.output.output()


@main.group()
def link() -> None:
    """Manage short links."""
    pass


@link.command(name="create")
@click.argument("session_id")
@pass_context
def link_create(ctx: Context, session_id: str) -> None:
    """Create a short link to a session's map."""
    from locshare.models.session import SessionStore
    from locshare.models.shortlink import ShortLinkDirectory
    from locshare.services.tracker import build_short_url, build_viewer_url

    config = ctx.require_config()
    store = ctx.store()
    if SessionStore(store).load(session_id) is None:
        click.echo(f"Warning: session {session_id} is not stored locally", err=True)

    directory = ShortLinkDirectory(store, code_length=config.links.code_length)
    code = directory.create(build_viewer_url(config.viewer.base_url, session_id), session_id)
    url = build_short_url(config.viewer.base_url, code)

    if ctx.json_output:
        ctx.output.update({"status": "success", "short_code": code, "short_url": url})
        ctx.output.output()
    else:
        ctx.log(url)


@link.command(name="resolve")
@click.argument("code")
@pass_context
def link_resolve(ctx: Context, code: str) -> None:
    """Follow a short code to its session (counts as a click)."""
    from locshare.models.session import SessionStore
    from locshare.models.shortlink import ShortLinkDirectory
    from locshare.services.viewer import STATUS_LINK_NOT_FOUND, resolve_short_code

    store = ctx.store()
    resolution = resolve_short_code(ShortLinkDirectory(store), SessionStore(store), code)
    if resolution.status == STATUS_LINK_NOT_FOUND or resolution.link is None:
        ctx.fail(f"Link not found: {code}")

    if ctx.json_output:
        ctx.output.update({
            "status": resolution.status,
            "short_code": code,
            "session_id": resolution.link.session_id,
            "original_url": resolution.link.original_url,
            "session_found": resolution.session is not None,
        })
        ctx.output.output()
    else:
        ctx.log(resolution.link.original_url)
        if resolution.session is None:
            ctx.log(f"Session {resolution.link.session_id} is not stored locally")


@link.command(name="list")
@pass_context
def link_list(ctx: Context) -> None:
    """List short links, newest first."""
    from locshare.models.shortlink import ShortLinkDirectory, link_stats, sort_newest_first

    links = sort_newest_first(ShortLinkDirectory(ctx.store()).list_links())
    stats = link_stats(links)

    if ctx.json_output:
        ctx.output.update({
            "status": "success",
            "links": [entry.to_dict() for entry in links],
            **stats,
        })
        ctx.output.output()
        return

    for entry in links:
        ctx.log(
            f"{entry.short_code}  {entry.clicks:>5} clicks  "
            f"{_format_timestamp(entry.created_at)}  {entry.session_id}"
        )
    ctx.log(
        f"Total: {stats['total_links']} links, {stats['total_clicks']} clicks, "
        f"{stats['average_clicks']} average"
    )


@link.command(name="delete")
@click.argument("code")
@pass_context
def link_delete(ctx: Context, code: str) -> None:
    """Delete a short link."""
    from locshare.models.shortlink import ShortLinkDirectory

    ShortLinkDirectory(ctx.store()).delete(code)
    if ctx.json_output:
        ctx.output.update({"status": "success", "short_code": code})
        ctx.output.output()
    else:
        ctx.log(f"Deleted {code}")


@main.command()
@click.option(
    "--port",
    default=8080,
    help="Server port (default: 8080)",
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Server host (default: 127.0.0.1)",
)
@click.option(
    "--open",
    "open_browser",
    is_flag=True,
    help="Open the link listing in a browser",
)
@pass_context
def serve(ctx: Context, port: int, host: str, open_browser: bool) -> None:
    """Start the local viewer server."""
    from locshare.views.server import start_server

    try:
        ctx.log(f"Starting viewer at http://{host}:{port}")
        start_server(ctx.store(), host=host, port=port, open_browser=open_browser)
    except OSError as e:
        ctx.fail(f"Viewer failed: {e}")


if __name__ == "__main__":
    main()
