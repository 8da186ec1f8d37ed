"""
Typer CLI for ghostmessenger.

Each command is a thin wrapper around the async client (client.py), bridged
to synchronous execution via asyncio.run().

Commands:
    login: Log in (form, or --browser for a manual browser login) and bootstrap
    resume: Re-bootstrap from the saved cookies
    status: Show the saved session and its request params
    threads: Fetch and print the thread list
    alias: Save a short name for a thread id
    export: Write the saved session as JSON or binary

Usage:
    ghostmessenger login --username me@example.com
    ghostmessenger login --browser
    ghostmessenger threads -v
    ghostmessenger export session.bin --binary
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from .browser import BrowserManager
from .client import GhostMessenger
from .config import get_cookies, load_config, resolve_thread, save_config, session_path, set_cookies
from .errors import GhostMessengerError, InvalidCookies, InvalidLogin

# Disable loguru output by default for clean CLI output.
# Re-enabled per-command with --verbose flag.
logger.remove()

app = typer.Typer(help="ghostmessenger: a browserless messenger.com session client.")


def _verbose(verbose: bool) -> None:
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="INFO")


def _fail(message: str, code: int = 1):
    print(message, file=sys.stderr)
    raise typer.Exit(code)


def _persist(client: GhostMessenger, config: dict) -> None:
    set_cookies(config, client.cookies())
    save_config(config)
    client.save(session_path(config))


@app.command()
def login(
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Account email or phone"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Account password"),
    browser: bool = typer.Option(False, "--browser", help="Log in by hand in a browser window"),
    profile: Optional[str] = typer.Option(None, "--profile", help="Browser profile directory (with --browser)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Log in to messenger.com, bootstrap a session and save it.

    Without --browser the login form is posted directly; missing credentials
    come from the config (if saved) or an interactive prompt.
    """
    _verbose(verbose)
    config = load_config()

    async def _login():
        if browser:
            manager = BrowserManager(profile_dir=Path(profile) if profile else None)
            print("Log in to messenger.com in the browser window, then close it.")
            cookies = await manager.capture_login()
            async with GhostMessenger(cookies=cookies, budget=config["script_budget"]) as client:
                await client.resume()
                _persist(client, config)
                return client.state.user_id

        user = username or config.get("username") or typer.prompt("Username")
        pwd = password or config.get("password") or typer.prompt("Password", hide_input=True)
        async with GhostMessenger(budget=config["script_budget"]) as client:
            await client.login(user, pwd)
            if config.get("save_credentials"):
                config["username"], config["password"] = user, pwd
            _persist(client, config)
            return client.state.user_id

    try:
        user_id = asyncio.run(_login())
    except InvalidLogin:
        _fail("Invalid login credentials.")
    except InvalidCookies:
        _fail("Browser login did not produce a logged-in session.")
    except GhostMessengerError as e:
        _fail(f"Login failed: {e}", 3)
    print(f"Logged in as {user_id}. Session saved to {session_path(config)}")


@app.command()
def resume(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Bootstrap a fresh session from the saved cookies."""
    _verbose(verbose)
    config = load_config()
    cookies = get_cookies(config)
    if not cookies:
        _fail("No saved cookies. Run 'ghostmessenger login' first.")

    async def _resume():
        async with GhostMessenger(cookies=cookies, budget=config["script_budget"]) as client:
            await client.resume()
            _persist(client, config)
            return client.state.user_id

    try:
        user_id = asyncio.run(_resume())
    except InvalidCookies:
        set_cookies(config, [])
        save_config(config)
        _fail("Saved cookies are no longer valid. Run 'ghostmessenger login'.")
    except GhostMessengerError as e:
        _fail(f"Resume failed: {e}", 3)
    print(f"Session resumed for {user_id}.")


@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Print the saved session."""
    _verbose(verbose)
    path = session_path()
    if not path.exists():
        _fail("No saved session. Run 'ghostmessenger login' first.")

    async def _status():
        async with GhostMessenger() as client:
            client.load(path)
            return client.state

    try:
        state = asyncio.run(_status())
    except GhostMessengerError as e:
        _fail(f"Could not read session: {e}", 3)

    print(f"User:        {state.name} ({state.user_id})")
    print(f"Requests:    {state.request}")
    print(f"Doc IDs:     {len(state.doc_ids)}")
    print(f"Flags:       {len(state.flags)} (highest {state.flags.highest})")
    print("Params:")
    for key, value in state.post_params().items():
        print(f"  {key} = {value}")


@app.command()
def threads(
    name: Optional[str] = typer.Argument(None, help="Only show this thread (id or alias)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Fetch the thread list using the saved session."""
    _verbose(verbose)
    config = load_config()
    path = session_path(config)
    if not path.exists():
        _fail("No saved session. Run 'ghostmessenger login' first.")
    wanted = resolve_thread(name, config) if name else None

    async def _threads():
        async with GhostMessenger(budget=config["script_budget"]) as client:
            client.load(path)
            result = await client.threads()
            # the request counter moved; keep it
            _persist(client, config)
            return result

    try:
        result = asyncio.run(_threads())
    except GhostMessengerError as e:
        _fail(f"Could not fetch threads: {e}", 3)

    shown = [t for t in result if wanted is None or t.id == wanted]
    if not shown:
        print("No threads found.")
        return
    for t in shown:
        unread = f" ({t.unread_count} unread)" if t.unread_count else ""
        print(f"  {t.id:<20} {t.name or '(unnamed)'}{unread}")
        if t.last_message and t.last_message.snippet:
            print(f"  {'':<20} > {t.last_message.snippet[:70]}")


@app.command()
def alias(
    name: str = typer.Argument(..., help="Short name"),
    thread_id: Optional[str] = typer.Argument(None, help="Thread id; omit to remove the alias"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Save (or remove) a short name for a thread id."""
    _verbose(verbose)
    config = load_config()
    aliases = config.setdefault("aliases", {})
    if thread_id:
        aliases[name] = thread_id
        print(f"Saved '{name}' -> {thread_id}")
    elif aliases.pop(name, None):
        print(f"Removed '{name}'")
    else:
        _fail(f"Unknown alias: '{name}'")
    save_config(config)


@app.command()
def export(
    dest: Path = typer.Argument(..., help="Output file"),
    binary: bool = typer.Option(False, "--binary", help="Fixed-layout binary instead of JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Write the saved session to another file."""
    _verbose(verbose)
    path = session_path()
    if not path.exists():
        _fail("No saved session. Run 'ghostmessenger login' first.")

    async def _export():
        async with GhostMessenger() as client:
            client.load(path)
            client.save(dest, binary=binary)

    try:
        asyncio.run(_export())
    except GhostMessengerError as e:
        _fail(f"Export failed: {e}", 3)
    print(f"Exported to {dest}")


if __name__ == "__main__":
    app()
