# Simple CLI for the session auth engine
import asyncio
import click

from core.config.settings import Settings
from core.logging import bind_session_context, configure_logging, get_logger
from services.session_auth import AuthenticationError, Session, SessionAuthService
from services.session_auth.components import SystemBrowser


def _format_session(session: Session) -> str:
    expires = session.expires_at.isoformat() if session.expires_at else "-"
    scopes = ",".join(sorted(session.scopes)) or "-"
    return f"{session.id}\t{session.account_label}\t{scopes}\t{expires}"


class _TerminalBrowser(SystemBrowser):
    """Falls back to printing the login URL when no browser can be opened."""

    async def open(self, url: str) -> bool:
        opened = await super().open(url)
        if not opened:
            click.echo(f"Open this URL to sign in:\n{url}")
        return opened


def _run(operation):
    """Run one operation against a started service, mapping auth errors to CLI errors."""
    settings = Settings()
    # One-shot commands sweep explicitly
    settings.sessions.sweep_on_start = False
    configure_logging(settings)

    async def _main():
        service = SessionAuthService(settings, browser=_TerminalBrowser())
        await service.start(background_sweep=False)
        try:
            return await operation(service)
        finally:
            await service.stop()

    try:
        return asyncio.run(_main())
    except AuthenticationError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")


@click.group()
def cli():
    """Session Auth CLI"""
    pass


@cli.command()
@click.option("--scope", "scopes", multiple=True, help="Scope the session must carry (repeatable)")
@click.option("--password", "use_password", is_flag=True, help="Log in with username and password")
def login(scopes, use_password):
    """Sign in and store a new session"""
    logger = get_logger("session_auth.cli", component="cli")
    if use_password:
        username = click.prompt("Username")
        password = click.prompt("Password", hide_input=True)
        session = _run(lambda service: service.login_with_credentials(username, password, scopes))
    else:
        click.echo("🌐 Opening the login page in your browser...")
        session = _run(lambda service: service.create_session(scopes))
    bind_session_context(logger, session.id, session.scopes).info("session created")
    click.echo(f"✅ Signed in as {session.account_label} ({session.id})")


@cli.command()
@click.argument("session_id")
def logout(session_id):
    """Remove a stored session"""
    removed = _run(lambda service: service.remove_session(session_id))
    if removed:
        click.echo(f"👋 Signed out {session_id}")
    else:
        click.echo(f"No session {session_id}")


@cli.command(name="list")
@click.option("--scope", "scopes", multiple=True, help="Only sessions carrying this scope")
def list_sessions(scopes):
    """List stored sessions"""
    async def _list(service):
        return service.get_sessions(scopes)

    sessions = _run(_list)
    if not sessions:
        click.echo("No sessions")
        return
    for session in sessions:
        click.echo(_format_session(session))


@cli.command()
@click.argument("session_id")
def refresh(session_id):
    """Refresh the access token of a stored session"""
    session = _run(lambda service: service.refresh_session(session_id))
    click.echo(f"🔄 Refreshed {session.id}")


@cli.command()
def sweep():
    """Validate stored sessions and evict the invalid ones"""
    evicted = _run(lambda service: service.sweep())
    if not evicted:
        click.echo("All sessions valid")
        return
    for session in evicted:
        click.echo(f"🗑️  Evicted {session.id}")


if __name__ == "__main__":
    cli()
