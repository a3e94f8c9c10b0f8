"""Command-line interface for the Kaigen connector."""

import sys
from pathlib import Path

import click

from . import __version__
from .core.config import AppConfig
from .core.dependencies import AppState
from .core.errors import ConnectorError
from .core.storage import Storage, StorageError

DIR_OPTION = click.option(
    "--dir",
    "-d",
    "base_dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Base directory for the site (default: current directory)",
)


def _error(message: str) -> None:
    click.echo(click.style("Error: ", fg="red") + message)
    sys.exit(1)


def _load_state(base_dir: Path | None) -> AppState:
    """Build the services of an initialized site."""
    from .core.logging import setup_logging
    from .main import build_state

    config = AppConfig.from_env(base_dir or Path.cwd())
    if not config.db_path.exists():
        _error("Site not initialized. Run 'kaigen-connector init' first.")
    setup_logging("WARNING")
    return build_state(config)


@click.group()
@click.version_option(__version__, prog_name="kaigen-connector")
def main():
    """Kaigen connector - lets Kaigen read and edit site content."""
    pass


@main.command()
@DIR_OPTION
@click.option("--site-url", default=None, help="Public URL of the site")
@click.option("--site-name", default=None, help="Site title")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing database")
def init(base_dir: Path | None, site_url: str | None, site_name: str | None, force: bool):
    """Initialize a new site database.

    Creates default content, the admin user and the connector settings.
    """
    config = AppConfig.from_env(base_dir or Path.cwd())
    config.ensure_directories()

    storage = Storage(config.db_path)
    if storage.exists and not force:
        click.echo(click.style("Error: ", fg="red") + f"Database already exists at {config.db_path}")
        click.echo("Use --force to overwrite.")
        sys.exit(1)

    storage.initialize(site_url or config.site_url, site_name or config.site_name)

    click.echo()
    click.echo(click.style("Kaigen connector initialized successfully!", fg="green", bold=True))
    click.echo()
    click.echo("Next steps:")
    click.echo("  1. Run: kaigen-connector configure --api-key <key>")
    click.echo("  2. Run: kaigen-connector test-connection")
    click.echo("  3. Run: kaigen-connector run")
    click.echo()


@main.command()
@click.option("--host", "-h", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
@click.option("--port", "-p", default=8000, type=int, help="Port to bind to (default: 8000)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", "-w", default=1, type=int, help="Number of worker processes (default: 1)")
@DIR_OPTION
def run(host: str, port: int, reload: bool, workers: int, base_dir: Path | None):
    """Start the connector's REST API server."""
    import os

    import uvicorn

    config = AppConfig(base_dir=base_dir or Path.cwd())
    if not config.db_path.exists():
        _error("Site not initialized. Run 'kaigen-connector init' first.")

    # The application factory reads its configuration from the environment
    os.environ["KAIGEN_BASE_DIR"] = str(config.base_dir)

    click.echo(f"Starting Kaigen connector on http://{host}:{port}")
    uvicorn.run(
        "kaigen_connector.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers if not reload else 1,
    )


@main.command()
@DIR_OPTION
@click.option("--api-key", default=None, help="Kaigen API key (starts with kaigen_)")
@click.option("--api-url", default=None, help="Kaigen API URL")
@click.option(
    "--auth-method",
    type=click.Choice(["api_key", "app_password"]),
    default=None,
    help="How Kaigen authenticates to this site",
)
@click.option("--username", default=None, help="Username for application password auth")
@click.option("--app-password", default=None, help="Application password")
@click.option("--clear", is_flag=True, help="Remove stored credentials")
def configure(
    base_dir: Path | None,
    api_key: str | None,
    api_url: str | None,
    auth_method: str | None,
    username: str | None,
    app_password: str | None,
    clear: bool,
):
    """Update the authentication settings."""
    state = _load_state(base_dir)

    if clear:
        state.auth.clear_credentials()
        click.echo(click.style("Credentials cleared.", fg="green"))
        return

    if api_key and not api_key.startswith("kaigen_"):
        _error("API keys issued by Kaigen start with 'kaigen_'.")

    values = {
        "auth_method": auth_method,
        "api_url": api_url,
        "api_key": api_key,
        "wp_username": username,
        "wp_app_password": app_password,
    }
    try:
        state.settings.save(
            {k: v for k, v in values.items() if v is not None},
            "authentication",
            state.auth.encrypt_value,
        )
    except ValueError as e:
        _error(str(e))

    click.echo(click.style("Settings saved.", fg="green"))
    click.echo(f"  Auth method: {state.settings.auth_method}")
    click.echo(f"  API URL:     {state.settings.api_url}")
    click.echo(f"  API key:     {'stored' if state.auth.get_api_key() else 'not set'}")


@main.command("post-types")
@DIR_OPTION
@click.argument("post_types", nargs=-1)
def post_types(base_dir: Path | None, post_types: tuple[str, ...]):
    """Show or set the post types Kaigen may access."""
    state = _load_state(base_dir)

    if post_types:
        known = {pt.name for pt in state.site.get_post_types()}
        unknown = [pt for pt in post_types if pt not in known]
        if unknown:
            _error(f"Unknown post types: {', '.join(unknown)}")
        state.settings.save({"enabled_post_types": list(post_types)}, "post-types", state.auth.encrypt_value)

    enabled = set(state.settings.enabled_post_types)
    for item in state.content.get_custom_post_types():
        mark = click.style("enabled", fg="green") if item["slug"] in enabled else "disabled"
        click.echo(f"  {item['slug']:<20} {item['count']:>5} published  [{mark}]")


@main.command()
@DIR_OPTION
@click.argument("roles", nargs=-1)
def permissions(base_dir: Path | None, roles: tuple[str, ...]):
    """Show or set the roles allowed to use Kaigen."""
    state = _load_state(base_dir)

    if roles:
        unknown = [r for r in roles if r not in state.site.role_names()]
        if unknown:
            _error(f"Unknown roles: {', '.join(unknown)}")
        state.settings.save({"role_permissions": list(roles)}, "permissions", state.auth.encrypt_value)

    allowed = set(state.settings.role_permissions)
    for role in state.site.role_names():
        mark = click.style("allowed", fg="green") if role in allowed else "-"
        click.echo(f"  {role:<20} [{mark}]")


@main.command("test-connection")
@DIR_OPTION
def test_connection(base_dir: Path | None):
    """Validate the stored API key with Kaigen."""
    state = _load_state(base_dir)
    try:
        result = state.client.test_connection()
    except ConnectorError as e:
        _error(e.message)

    click.echo(click.style("Connection successful!", fg="green"))
    click.echo(f"  Project: {result.get('project_id') or '-'}")
    capabilities = result.get("capabilities") or []
    if capabilities:
        click.echo(f"  Capabilities: {', '.join(capabilities)}")


@main.command()
@DIR_OPTION
@click.option("--project-id", default=None, help="Kaigen project (default: from key validation)")
def sync(base_dir: Path | None, project_id: str | None):
    """Send the site structure and content library to Kaigen."""
    state = _load_state(base_dir)
    try:
        result = state.client.sync_content(project_id)
    except ConnectorError as e:
        _error(e.message)

    click.echo(click.style("Sync completed: ", fg="green") + f"{result.get('postsIngested', 0)} posts synced")


@main.command()
@DIR_OPTION
@click.option(
    "--kind",
    type=click.Choice(["updates", "syncs"]),
    default="updates",
    help="Which log to show",
)
@click.option("--limit", "-n", default=20, type=int, help="Number of entries")
def logs(base_dir: Path | None, kind: str, limit: int):
    """Show recent update or sync activity."""
    state = _load_state(base_dir)
    entries = state.updates.get_update_logs(limit) if kind == "updates" else state.client.get_sync_logs(limit)

    if not entries:
        click.echo("No activity recorded.")
        return
    for entry in entries:
        color = "green" if entry.get("status") == "success" else "yellow"
        target = f"post {entry['post_id']}" if entry.get("post_id") else ""
        click.echo(
            f"{entry.get('timestamp', '')}  {entry.get('action', ''):<10} "
            + click.style(f"{entry.get('status', ''):<8}", fg=color)
            + f" {target} {', '.join(entry.get('changes') or [])}"
        )


@main.command("add-app-password")
@DIR_OPTION
@click.argument("username")
def add_app_password(base_dir: Path | None, username: str):
    """Issue an application password for a user."""
    state = _load_state(base_dir)
    user = state.site.get_user_by_username(username)
    if user is None:
        _error(f"User '{username}' not found.")

    try:
        password = state.auth.create_app_password(user.id)
    except StorageError as e:
        _error(str(e))

    click.echo(click.style("Application password created. It will not be shown again:", fg="yellow"))
    click.echo(f"  {password}")


@main.command()
@DIR_OPTION
def backup(base_dir: Path | None):
    """Create a backup of the site database."""
    config = AppConfig(base_dir=base_dir or Path.cwd())
    storage = Storage(config.db_path)
    if not storage.exists:
        _error("No site data found.")
    click.echo(click.style("Backup created: ", fg="green") + str(storage.backup(config.backups_dir)))


@main.command()
@click.argument("backup_file", type=click.Path(exists=True, path_type=Path))
@DIR_OPTION
@click.option("--force", "-f", is_flag=True, help="Overwrite existing data")
def restore(backup_file: Path, base_dir: Path | None, force: bool):
    """Restore the site database from a backup."""
    config = AppConfig(base_dir=base_dir or Path.cwd())
    storage = Storage(config.db_path)
    if storage.exists and not force:
        _error("Existing data found. Use --force to overwrite.")

    config.ensure_directories()
    try:
        storage.restore(backup_file)
    except StorageError as e:
        _error(str(e))
    click.echo(click.style("Restore completed!", fg="green"))


if __name__ == "__main__":
    main()
