"""CLI commands for tvremote."""

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from tvremote import __logo__, __version__
from tvremote.commands.tv_commands import REMOTE_ACTIONS, TVCommands
from tvremote.config.loader import convert_keys, get_config_path, load_config
from tvremote.config.schema import Config
from tvremote.session.orchestrator import SessionOrchestrator
from tvremote.storage import CredentialStore, MemoryCredentialStore, SQLiteCredentialStore

app = typer.Typer(
    name="tvremote",
    help=f"{__logo__} tvremote - webOS TV remote control",
    no_args_is_help=True,
)

console = Console()

logger.disable("tvremote")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} tvremote v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    logs: bool = typer.Option(False, "--logs", help="Show runtime logs"),
):
    """tvremote - webOS TV remote control."""
    if logs:
        logger.enable("tvremote")
    else:
        logger.disable("tvremote")


# ============================================================================
# Helpers
# ============================================================================


def _make_store(config: Config) -> CredentialStore:
    if config.storage.backend == "memory":
        return MemoryCredentialStore()
    return SQLiteCredentialStore(
        config.storage.sqlite_file,
        busy_timeout_ms=config.storage.busy_timeout_ms,
    )


def _make_orchestrator(config: Config) -> SessionOrchestrator:
    return SessionOrchestrator(_make_store(config), config=config.tv)


async def _shutdown(orchestrator: SessionOrchestrator) -> None:
    await orchestrator.disconnect()
    orchestrator.store.close()


def _fail(result: dict[str, Any]) -> None:
    console.print(f"[red]✗[/red] {result.get('error', 'failed')} [dim]({result.get('code', 'error')})[/dim]")
    raise typer.Exit(1)


def _print_payload(payload: Any) -> None:
    console.print_json(json.dumps(payload, ensure_ascii=False, default=str))


def _run_command(action, *, label: str) -> None:
    """Reconnect to the last TV, run one command and print its result."""
    config = load_config()

    async def run() -> dict[str, Any]:
        orchestrator = _make_orchestrator(config)
        try:
            return await orchestrator.execute(action)
        finally:
            await _shutdown(orchestrator)

    result = asyncio.run(run())
    if not result.get("success"):
        _fail(result)
    console.print(f"[green]✓[/green] {label}")
    if result.get("result") not in (None, {}, []):
        _print_payload(result["result"])


# ============================================================================
# Discovery and pairing
# ============================================================================


@app.command()
def discover(
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Search window in seconds"),
):
    """Search the local network for TVs."""
    from tvremote.discovery import discover_devices

    config = load_config()
    devices = asyncio.run(discover_devices(config.discovery, timeout_s=timeout))
    if not devices:
        console.print("[yellow]No TVs found[/yellow]")
        return

    table = Table(title="Discovered TVs")
    table.add_column("Address", style="cyan")
    table.add_column("Description")
    for device in devices:
        table.add_row(device.address, device.location)
    console.print(table)


def _connect_flow(address: str, mode: str | None, pin: str | None, force: bool) -> None:
    config = load_config()

    async def run() -> dict[str, Any]:
        orchestrator = _make_orchestrator(config)
        try:
            result = await orchestrator.connect(address, mode, force=force)
            if not result.get("success") or not result.get("requires_pin"):
                return result
            code = pin or await asyncio.to_thread(typer.prompt, "PIN shown on the TV")
            return await orchestrator.complete_pairing(address, code)
        finally:
            await _shutdown(orchestrator)

    result = asyncio.run(run())
    if not result.get("success"):
        _fail(result)
    verb = "Paired with" if result.get("paired") else "Connected to"
    console.print(f"[green]✓[/green] {verb} {result['address']} ({result['transport_mode']})")


@app.command()
def connect(
    address: str = typer.Argument(..., help="TV IP address"),
    mode: str | None = typer.Option(None, "--mode", "-m", help="secure | insecure (default: try both)"),
    pin: str | None = typer.Option(None, "--pin", help="PIN shown on the TV, prompted when omitted"),
):
    """Connect to a TV, pairing when it asks for it."""
    _connect_flow(address, mode, pin, force=False)


@app.command()
def pair(
    address: str = typer.Argument(..., help="TV IP address"),
    mode: str | None = typer.Option(None, "--mode", "-m", help="secure | insecure (default: try both)"),
    pin: str | None = typer.Option(None, "--pin", help="PIN shown on the TV, prompted when omitted"),
):
    """Pair with a TV even if a session could be reused."""
    _connect_flow(address, mode, pin, force=True)


@app.command()
def status():
    """Show connection status, reconnecting to the last TV if possible."""
    config = load_config()

    async def run() -> dict[str, Any]:
        orchestrator = _make_orchestrator(config)
        try:
            return await orchestrator.status()
        finally:
            await _shutdown(orchestrator)

    result = asyncio.run(run())
    if result.get("authenticated"):
        console.print(f"[green]●[/green] Connected to {result['address']} ({result['transport_mode']})")
    else:
        reason = result.get("reconnect_error")
        suffix = f" [dim]({reason})[/dim]" if reason else ""
        console.print(f"[yellow]○[/yellow] Not connected{suffix}")
    console.print(f"stored_devices={result['stored_devices']}")


@app.command()
def reconnect(
    address: str | None = typer.Argument(None, help="TV IP address (default: most recent)"),
):
    """Re-authenticate with stored credentials."""
    config = load_config()

    async def run() -> dict[str, Any]:
        orchestrator = _make_orchestrator(config)
        try:
            return await orchestrator.reconnect(address)
        finally:
            await _shutdown(orchestrator)

    result = asyncio.run(run())
    if not result.get("success"):
        _fail(result)
    console.print(f"[green]✓[/green] Reconnected to {result['address']} ({result['transport_mode']})")


# ============================================================================
# Credentials
# ============================================================================


credentials_app = typer.Typer(help="Manage stored TV credentials")
app.add_typer(credentials_app, name="credentials")


@credentials_app.command("list")
def credentials_list():
    """List paired TVs (secrets are masked)."""
    config = load_config()
    store = _make_store(config)
    try:
        records = [record.to_public_dict() for record in store.list_all()]
    finally:
        store.close()
    if not records:
        console.print("No stored credentials.")
        return

    table = Table(title="Stored TVs")
    table.add_column("Address", style="cyan")
    table.add_column("Mode")
    table.add_column("Valid")
    table.add_column("Last Used")
    table.add_column("Key")
    for record in records:
        table.add_row(
            record["address"],
            record["transport_mode"],
            "[green]yes[/green]" if record["valid"] else "[red]no[/red]",
            record["last_used_at"],
            record["client_key"],
        )
    console.print(table)


@credentials_app.command("forget")
def credentials_forget(
    address: str = typer.Argument(..., help="TV IP address"),
):
    """Delete the stored credentials for a TV."""
    config = load_config()

    async def run() -> dict[str, Any]:
        orchestrator = _make_orchestrator(config)
        try:
            return await orchestrator.forget(address)
        finally:
            await _shutdown(orchestrator)

    result = asyncio.run(run())
    if not result.get("success"):
        _fail(result)
    console.print(f"[green]✓[/green] Forgot {address}")


# ============================================================================
# Commands
# ============================================================================


@app.command()
def send(
    uri: str = typer.Argument(..., help="ssap:// endpoint"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="JSON payload"),
):
    """Send a raw request to the current TV."""
    try:
        body = json.loads(payload) if payload else None
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON payload:[/red] {exc}")
        raise typer.Exit(2) from exc
    if body is not None and not isinstance(body, dict):
        console.print("[red]Payload must be a JSON object[/red]")
        raise typer.Exit(2)

    async def action(commands: TVCommands) -> Any:
        return await commands.session.request(uri, body)

    _run_command(action, label=uri)


@app.command()
def button(
    name: str = typer.Argument(..., help="Remote action (up, down, left, right, ok, back, home) or raw button name"),
):
    """Press a remote-control button."""
    key = name.strip().lower()

    async def action(commands: TVCommands) -> None:
        if key in REMOTE_ACTIONS:
            await commands.press(key)
        else:
            await commands.button(name)

    _run_command(action, label=f"Pressed {REMOTE_ACTIONS.get(key, name.upper())}")


@app.command()
def volume(
    value: str = typer.Argument("get", help="up | down | mute | unmute | get | 0-100"),
):
    """Read or change the volume."""
    op = value.strip().lower()
    if op.isdigit():
        level = int(op)
        if level > 100:
            console.print("[red]Volume must be between 0 and 100[/red]")
            raise typer.Exit(2)

        async def action(commands: TVCommands) -> Any:
            return await commands.set_volume(level)

    elif op in {"up", "down", "mute", "unmute", "get"}:

        async def action(commands: TVCommands) -> Any:
            if op == "up":
                return await commands.volume_up()
            if op == "down":
                return await commands.volume_down()
            if op in {"mute", "unmute"}:
                return await commands.mute(op == "mute")
            return await commands.get_volume()

    else:
        console.print(f"[red]Unknown volume operation:[/red] {value}")
        raise typer.Exit(2)

    _run_command(action, label=f"Volume {op}")


@app.command()
def watch(
    uri: str = typer.Argument(..., help="ssap:// endpoint to subscribe to"),
    count: int = typer.Option(0, "--count", "-n", help="Stop after N events (0 = until interrupted)"),
):
    """Print push events for a subscription."""
    config = load_config()

    async def run() -> dict[str, Any]:
        orchestrator = _make_orchestrator(config)
        try:
            result = await orchestrator.ensure_connection()
            if not result.get("success"):
                return result
            events: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
            session = orchestrator.commands.session
            sub_id = session.subscribe(uri, events.put_nowait)
            seen = 0
            try:
                while count <= 0 or seen < count:
                    event = await events.get()
                    seen += 1
                    _print_payload(event)
            finally:
                session.unsubscribe(sub_id)
            return {"success": True, "events": seen}
        finally:
            await _shutdown(orchestrator)

    try:
        result = asyncio.run(run())
    except KeyboardInterrupt:
        return
    if not result.get("success"):
        _fail(result)


# ============================================================================
# Config Commands
# ============================================================================


config_app = typer.Typer(help="Manage tvremote config")
app.add_typer(config_app, name="config")


@config_app.command("check")
def config_check(
    config: Path | None = typer.Option(None, "--config", help="Config path to validate"),
):
    """Validate config JSON structure and schema."""
    config_path = (config or get_config_path()).expanduser()
    if not config_path.exists():
        console.print(f"[red]Config file not found:[/red] {config_path}")
        raise typer.Exit(2)

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/red] {exc}")
        raise typer.Exit(2) from exc

    try:
        cfg = Config.model_validate(convert_keys(raw))
    except Exception as exc:
        console.print(f"[red]Schema validation failed:[/red] {exc}")
        raise typer.Exit(1) from exc

    console.print("[green]✓[/green] Config validation passed")
    console.print(f"path={config_path}")
    console.print(
        f"tv=ports {cfg.tv.secure_port}/{cfg.tv.insecure_port} "
        f"mode={cfg.tv.transport_mode} "
        f"pairing_timeout={cfg.tv.pairing_timeout_seconds:g}s"
    )
    console.print(f"storage={cfg.storage.backend} path={cfg.storage.sqlite_path or '(default)'}")


if __name__ == "__main__":
    app()
