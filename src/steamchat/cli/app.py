"""Typer application for the steamchat CLI.

Credentials are read from ``--user``/``--password`` or the ``STEAM_USER`` and
``STEAM_PASSWORD`` environment variables (a ``.env`` file is honoured), and
prompted for otherwise.
"""

import asyncio
import os
import sys
from typing import List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table

from steamchat.api import ApiMessage, ErrorKind, FriendSummary, MessageType, SteamApi, SteamApiError
from steamchat.utils.config import load_config

console = Console()

app = typer.Typer(
    name="steamchat",
    help="Talk to the Steam community web-chat API from the terminal.",
    rich_markup_mode="rich",
)


def _configure_logging(verbose: bool) -> None:
    logger.enable("steamchat")
    level = "DEBUG" if verbose else os.getenv("LOGURU_LEVEL", "INFO").upper()
    logger.configure(handlers=[{"sink": sys.stderr, "level": level}])


def _credentials(user: Optional[str], password: Optional[str]) -> tuple[str, str]:
    user = user or os.getenv("STEAM_USER") or typer.prompt("Steam account")
    password = password or os.getenv("STEAM_PASSWORD") or typer.prompt("Password", hide_input=True)
    return user, password


async def _login(api: SteamApi, user: str, password: str) -> None:
    """Key, auth (with Steam Guard / captcha prompts) and logon."""

    authcode: Optional[str] = None
    captcha: Optional[str] = None

    while True:
        await api.key(user).wait()
        try:
            await api.auth(user, password, authcode=authcode, captcha=captcha).wait()
            break
        except SteamApiError as exc:
            if exc.kind is ErrorKind.AUTH_GUARD:
                console.print(f"[yellow]{exc}[/yellow]")
                authcode = typer.prompt("Steam Guard code")
            elif exc.kind is ErrorKind.AUTH_CAPTCHA and api.session.auth is not None:
                console.print(f"[yellow]{exc}[/yellow]")
                console.print(f"Captcha: {api.session.auth.captcha_url}")
                captcha = typer.prompt("Captcha text")
            else:
                raise

    await api.logon().wait()
    console.print(f"[green]Logged on[/green] as {api.session.steamid}")


def _display_name(summary: FriendSummary) -> str:
    return summary.nick or summary.steamid


def _print_message(message: ApiMessage) -> None:
    who = _display_name(message.summary)
    if message.type is MessageType.SAYTEXT:
        console.print(f"[bold]{who}[/bold]: {message.text or ''}")
    elif message.type is MessageType.EMOTE:
        console.print(f"[italic]* {who} {message.text or ''}[/italic]")
    elif message.type is MessageType.STATE:
        state = message.summary.persona_state
        label = state.name.lower().replace("_", " ") if state is not None else str(message.summary.state)
        console.print(f"[dim]{who} is now {label}[/dim]")
    elif message.type is MessageType.RELATIONSHIP:
        console.print(f"[dim]{who}: relationship {message.summary.action.name.lower()}[/dim]")
    elif message.type is MessageType.LEFT_CONV:
        console.print(f"[dim]{who} left the conversation[/dim]")


async def _poll_forever(api: SteamApi) -> None:
    while True:
        try:
            messages: List[ApiMessage] = await api.poll().wait()
        except SteamApiError as exc:
            if exc.kind is not ErrorKind.TRANSPORT:
                raise
            logger.warning("Poll failed, retrying: {}", exc)
            await asyncio.sleep(1)
            continue
        for message in messages:
            _print_message(message)


def _friends_table(friends: List[FriendSummary]) -> Table:
    table = Table(title=f"Friends ({len(friends)})")
    table.add_column("Steam ID", style="cyan")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Game")
    for friend in sorted(friends, key=lambda f: (_display_name(f).casefold(), f.steamid)):
        state = friend.persona_state
        table.add_row(
            friend.steamid,
            _display_name(friend),
            state.name.lower() if state is not None else str(friend.state),
            friend.game or "",
        )
    return table


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except SteamApiError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        raise typer.Exit(130)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic to stderr."),
) -> None:
    """Steam web-chat client."""
    load_dotenv()
    _configure_logging(verbose)


@app.command()
def login(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Steam account name."),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Account password."),
    poll: bool = typer.Option(False, "--poll", help="Stay connected and print incoming messages."),
) -> None:
    """Log on and optionally stream incoming chat."""
    user, password = _credentials(user, password)

    async def _session() -> None:
        async with SteamApi(load_config()) as api:
            await _login(api, user, password)
            if poll:
                await _poll_forever(api)
            else:
                await api.logoff().wait()

    _run(_session())


@app.command()
def friends(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Steam account name."),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Account password."),
) -> None:
    """List friends with their current profile summaries."""
    user, password = _credentials(user, password)

    async def _session() -> None:
        async with SteamApi(load_config()) as api:
            await _login(api, user, password)
            result = await api.friends().wait()
            console.print(_friends_table(result))
            await api.logoff().wait()

    _run(_session())


@app.command()
def search(
    query: str = typer.Argument(..., help="Name to search for."),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Maximum number of results."),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Steam account name."),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Account password."),
) -> None:
    """Search Steam users by name."""
    user, password = _credentials(user, password)

    async def _session() -> None:
        async with SteamApi(load_config()) as api:
            await _login(api, user, password)
            results = await api.friend_search(query, count).wait()
            if not results:
                console.print(f"No users found for [bold]{query}[/bold]")
            for summary in results:
                console.print(f"[cyan]{summary.steamid}[/cyan]  {summary.nick or ''}  {summary.profile_url}")
            await api.logoff().wait()

    _run(_session())
