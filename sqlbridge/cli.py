import json
import socket
from pathlib import Path
from typing import Optional

import httpx
import typer
import uvicorn

from sqlbridge.supervisor.app import configure_logging, create_app
from sqlbridge.supervisor.settings import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    SETTINGS_PATH,
    default_settings,
    load_settings,
    save_settings,
    validate_settings,
)

app = typer.Typer(help="HTTP bridge for an interactive command-line DBMS.")

BRIDGE_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"
REQUEST_TIMEOUT_SECONDS = 60.0
SHELL_EXIT_WORDS = {"exit", "quit", "\\q"}


def is_port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def _post_command(url: str, command: str) -> tuple[int, dict]:
    response = httpx.post(f"{url}/execute", json={"command": command}, timeout=REQUEST_TIMEOUT_SECONDS)
    try:
        payload = response.json()
    except ValueError:
        payload = {"output": response.text, "error": True}
    return response.status_code, payload


def _print_result(status_code: int, payload: dict) -> bool:
    """Echo command output; return True when the command succeeded."""
    output = str(payload.get("output", ""))
    failed = status_code != 200 or bool(payload.get("error"))
    if output:
        typer.echo(output, err=status_code != 200)
    failure = payload.get("failure")
    if isinstance(failure, dict):
        typer.echo(f"[{failure.get('error_code', 'UNKNOWN')}] {failure.get('message', '')}", err=True)
    return not failed


@app.command()
def serve(
    config: Path = typer.Option(SETTINGS_PATH, "--config", help="Settings JSON file"),
    host: Optional[str] = typer.Option(None, "--host", help="Bind host"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    dbms: Optional[str] = typer.Option(None, "--dbms", help="DBMS command line to supervise"),
):
    """Run the HTTP bridge and supervise the DBMS process."""
    try:
        settings = load_settings(config)
        if host is not None:
            settings["host"] = host
        if port is not None:
            settings["port"] = port
        if dbms is not None:
            settings["dbms_command"] = dbms
        settings = validate_settings(settings)
    except ValueError as exc:
        typer.echo(f"Invalid settings: {exc}")
        raise typer.Exit(code=1)

    configure_logging(settings["log_level"])
    if is_port_in_use(settings["host"], settings["port"]):
        typer.echo(f"Error: Port {settings['port']} is already in use by another process.")
        raise typer.Exit(code=1)

    typer.echo(f"API server running on http://{settings['host']}:{settings['port']}")
    uvicorn.run(
        create_app(settings),
        host=settings["host"],
        port=settings["port"],
        log_level=settings["log_level"].lower(),
    )


@app.command()
def status(url: str = typer.Option(BRIDGE_URL, "--url", help="Bridge base URL")):
    """Check bridge and DBMS health."""
    try:
        response = httpx.get(f"{url}/health", timeout=5.0)
    except httpx.HTTPError:
        typer.echo("Bridge: NOT RESPONDING (Connection refused)")
        raise typer.Exit(code=1)
    if response.status_code != 200:
        typer.echo("Bridge: UNHEALTHY (API not responding correctly)")
        raise typer.Exit(code=1)

    data = response.json()
    typer.echo("Bridge: RUNNING")
    typer.echo(f"DBMS: {str(data.get('status', 'unknown')).upper()} (state={data.get('state')}, pid={data.get('pid')})")
    typer.echo(f"Queue depth: {data.get('queue_depth', 0)} (in flight: {'yes' if data.get('in_flight') else 'no'})")
    typer.echo(f"Restarts: {data.get('restart_count', 0)} (last exit code: {data.get('last_exit_code')})")
    if not data.get("live"):
        raise typer.Exit(code=1)


@app.command()
def execute(
    command: str = typer.Argument(..., help="Command line to send to the DBMS"),
    url: str = typer.Option(BRIDGE_URL, "--url", help="Bridge base URL"),
    json_output: bool = typer.Option(False, "--json", help="Print the raw JSON response"),
):
    """Send one command through the bridge."""
    try:
        status_code, payload = _post_command(url, command)
    except httpx.HTTPError as exc:
        typer.echo(f"Bridge is not reachable: {exc}")
        raise typer.Exit(code=1)
    if json_output:
        typer.echo(json.dumps(payload, indent=2))
        ok = status_code == 200 and not payload.get("error")
    else:
        ok = _print_result(status_code, payload)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def shell(url: str = typer.Option(BRIDGE_URL, "--url", help="Bridge base URL")):
    """Interactive prompt that forwards each line to the bridge."""
    typer.echo("Type commands for the DBMS; 'exit' or 'quit' leaves the shell.")
    while True:
        try:
            line = typer.prompt("sql", prompt_suffix="> ")
        except typer.Abort:
            typer.echo("")
            break
        if line.strip().lower() in SHELL_EXIT_WORDS:
            break
        if not line.strip():
            continue
        try:
            status_code, payload = _post_command(url, line)
        except httpx.HTTPError as exc:
            typer.echo(f"Bridge is not reachable: {exc}")
            raise typer.Exit(code=1)
        _print_result(status_code, payload)


@app.command("init-config")
def init_config(
    config: Path = typer.Option(SETTINGS_PATH, "--config", help="Settings JSON file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write default settings to disk."""
    if config.exists() and not force:
        typer.echo(f"Settings already exist at {config} (use --force to overwrite)")
        raise typer.Exit(code=1)
    save_settings(default_settings(), config)
    typer.echo(f"Wrote default settings to {config}")


if __name__ == "__main__":
    app()
