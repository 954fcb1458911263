"""Typer CLI entrypoint and command definitions for cubicle."""

import asyncio
from pathlib import Path

import typer

from cubicle.core.defaults import (
    DEFAULT_DATA_DIR,
    DEFAULT_PSL_URL,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
)

app = typer.Typer()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Route browser tabs into containers by domain suffix."""
    from cubicle.core.logging import configure_logging

    configure_logging(verbose)


def _engine(data_dir: str):  # type: ignore[no-untyped-def]
    """Offline engine over *data_dir*; browser actions go nowhere."""
    from cubicle.adapters.browser import EventBusBrowser
    from cubicle.context import CubicleEngine
    from cubicle.core.errors import UnsupportedVersion
    from cubicle.ui.events import EventBus

    try:
        return CubicleEngine(EventBusBrowser(EventBus()), data_dir=Path(data_dir))
    except UnsupportedVersion as exc:
        typer.echo(f"Cannot load state: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc


# -- serve --------------------------------------------------------------------


@app.command("serve")
def serve_cmd(
    host: str = typer.Option(DEFAULT_SERVER_HOST, help="Interface to bind"),
    port: int = typer.Option(DEFAULT_SERVER_PORT, help="Port to listen on"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Run the HTTP/WebSocket server the browser extension talks to."""
    import uvicorn

    from cubicle.ui.server import create_app

    typer.echo(f"Serving on http://{host}:{port} (data: {data_dir})")
    uvicorn.run(create_app(data_dir=Path(data_dir)), host=host, port=port, log_config=None)


# -- psl ----------------------------------------------------------------------
psl_app = typer.Typer()
app.add_typer(psl_app, name="psl", help="Public suffix list maintenance.")


@psl_app.command("update")
def psl_update_cmd(
    url: str = typer.Option(None, "--url", help="Download the list from this URL"),
    file: str = typer.Option(None, "--file", help="Read the list from a local file"),
    official: bool = typer.Option(
        False, "--official", help=f"Download the list from {DEFAULT_PSL_URL}",
    ),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Refresh the cached public suffix list (bundled snapshot by default)."""
    from cubicle.core.errors import RefreshFailed

    if sum(map(bool, (url, file, official))) > 1:
        typer.echo("Pass only one of --url, --file or --official.", err=True)
        raise typer.Exit(code=2)
    if official:
        url = DEFAULT_PSL_URL
    if file and not Path(file).exists():
        typer.echo(f"File not found: {file}", err=True)
        raise typer.Exit(code=1)

    engine = _engine(data_dir)
    try:
        last_updated = asyncio.run(engine.resolver.refresh(url or file))
    except RefreshFailed as exc:
        typer.echo(f"Refresh failed: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    engine.save_psl()
    typer.echo(f"Public suffix list updated: {len(engine.resolver.table)} entries, {last_updated}")


@psl_app.command("status")
def psl_status_cmd(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Show the date and size of the public suffix list in use."""
    status = _engine(data_dir).psl_status()
    stale = " (stale)" if status.psl_stale else ""
    typer.echo(f"Last updated: {status.last_updated}{stale}")
    typer.echo(f"Entries:      {status.entries}")


# -- match --------------------------------------------------------------------


@app.command("match")
def match_cmd(
    host: str = typer.Argument(..., help="Host name to look up"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Show which container a host would be assigned to."""
    from cubicle.core.errors import InvalidHost
    from cubicle.domain.host import is_ip_literal

    engine = _engine(data_dir)
    try:
        result = engine.match(host)
    except InvalidHost as exc:
        typer.echo(f"Invalid host: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc

    if not is_ip_literal(result.host):
        typer.echo(f"Effective domain: {engine.resolver.effective_domain(result.host)}")
    if result.container_id is None:
        tied = f" (tied: {', '.join(result.tied)})" if result.tied else ""
        typer.echo(f"{result.host}: {result.outcome}{tied}")
        return
    container = engine.registry.get(result.container_id)
    typer.echo(f"{result.host}: {container.name} [{container.id}] via {result.rule}")


# -- containers ---------------------------------------------------------------
containers_app = typer.Typer()
app.add_typer(containers_app, name="containers", help="Inspect and edit containers.")


@containers_app.command("list")
def containers_list_cmd(
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """List containers and their rules."""
    engine = _engine(data_dir)
    containers = engine.registry.list()
    if not containers:
        typer.echo("No containers.")
        return
    for c in containers:
        flags = " (temporary)" if c.is_temporary else ""
        if engine.recordings.is_recording(c.id):
            flags += " (recording)"
        typer.echo(f"{c.id}  {c.name} [{c.color}/{c.icon}]{flags}")
        for rule in c.rules:
            typer.echo(f"    {rule.wire}")


@containers_app.command("create")
def containers_create_cmd(
    name: str = typer.Argument(..., help="Display name"),
    rule: list[str] = typer.Option(None, "--rule", help="Suffix rule (*pattern, !pattern or pattern); repeatable"),
    color: str = typer.Option("blue", help="Identity colour"),
    icon: str = typer.Option("circle", help="Identity icon"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Create a container, optionally with rules."""
    from pydantic import ValidationError

    from cubicle.core.errors import CubicleError
    from cubicle.core.types import IdentityDetails

    engine = _engine(data_dir)
    try:
        details = IdentityDetails(name=name, color=color, icon=icon)
        cid = engine.registry.create(details, rule or [])
    except ValidationError as exc:
        typer.echo(f"Invalid identity: {exc.errors()[0]['msg']}", err=True)
        raise typer.Exit(code=1) from exc
    except CubicleError as exc:
        typer.echo(f"{exc.kind}: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    engine.save_state()
    typer.echo(f"Created {cid}")


@containers_app.command("rules")
def containers_rules_cmd(
    container_id: str = typer.Argument(..., help="Container id"),
    add: list[str] = typer.Option(None, "--add", help="Rule to add; repeatable"),
    remove: list[str] = typer.Option(None, "--remove", help="Rule to remove; repeatable"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Add and remove rules of one container (removals first)."""
    from cubicle.core.errors import CubicleError

    engine = _engine(data_dir)
    try:
        container = engine.registry.update_rules(container_id, add=add or [], remove=remove or [])
    except CubicleError as exc:
        typer.echo(f"{exc.kind}: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    engine.save_state()
    typer.echo(f"{container.name}: {', '.join(r.wire for r in container.rules) or '(no rules)'}")


@containers_app.command("delete")
def containers_delete_cmd(
    container_id: str = typer.Argument(..., help="Container id"),
    data_dir: str = typer.Option(DEFAULT_DATA_DIR, help="Directory for persisted state"),
) -> None:
    """Delete a container and any pending recording."""
    from cubicle.core.errors import NotFound

    engine = _engine(data_dir)
    try:
        removed = engine.registry.delete(container_id)
    except NotFound as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=1) from exc
    engine.save_state()
    typer.echo(f"Deleted {removed.name}")


if __name__ == "__main__":
    app()
