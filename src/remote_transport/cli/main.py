"""
Typer application for issuing transport calls from the shell.

``call`` sends one operation through the selected adapter and prints the
response as JSON. The remaining commands inspect the wire contract and the
resolved settings without touching the network.
"""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from ..adapters.eventbus.client import DEFAULT_ADDRESS_PREFIX, bus_address
from ..config import ConfigError, TransportSettings, load_transport_settings
from ..core.logging import configure_logging
from ..transport import TransportError, TransportOperation, TransportRequest, TransportResponse
from ..transport.serialization import to_jsonable
from .adapters import available_transports, resolve_transport

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Protocol-agnostic remote data transport CLI.\n\n"
        "Commands:\n"
        "- call: execute one operation over REST, gRPC or the event bus.\n"
        "- addresses: list event-bus consumer addresses.\n"
        "- schema: print the protobuf wire contract.\n"
        "- config: show the resolved transport settings."
    ),
)


@app.callback(invoke_without_command=False)
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Transport settings file (TOML or YAML). Defaults to REMOTE_TRANSPORT_CONFIG or ./remote-transport.toml.",
        dir_okay=False,
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level, e.g. DEBUG."),
) -> None:
    """
    Load settings once and share them with sub-commands through :class:`typer.Context`.
    """

    configure_logging(log_level, force=log_level is not None)
    try:
        settings = load_transport_settings(config_file)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    state = ctx.ensure_object(dict)
    state["settings"] = settings


def _require_settings(ctx: typer.Context) -> TransportSettings:
    state = ctx.ensure_object(dict)
    settings = state.get("settings")
    if not isinstance(settings, TransportSettings):
        raise typer.Exit(code=2)
    return settings


def _parse_operation(value: str) -> TransportOperation:
    candidate = value.strip()
    try:
        return TransportOperation(candidate.lower())
    except ValueError:
        pass
    try:
        return TransportOperation[candidate.upper().replace("-", "_")]
    except KeyError:
        raise typer.BadParameter(
            f"Unknown operation '{value}'. Expected one of: {', '.join(item.value for item in TransportOperation)}."
        ) from None


def _parse_parameters(values: Optional[List[str]]) -> Dict[str, str]:
    parameters: Dict[str, str] = {}
    for entry in values or []:
        if "=" not in entry:
            raise typer.BadParameter(f"Parameter '{entry}' must use key=value format.")
        key, value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter(f"Parameter '{entry}' is missing a key.")
        parameters[key] = value
    return parameters


def _parse_payload(payload: Optional[str]) -> Any:
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Payload is not valid JSON: {exc}") from exc


def _render_response(response: TransportResponse[Any]) -> str:
    payload = {
        "success": response.success,
        "status_code": response.status_code,
        "body": to_jsonable(response.body),
        "error_message": response.error_message,
        "metadata": dict(response.metadata),
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


@app.command("call")
def call(
    ctx: typer.Context,
    operation: str = typer.Argument(..., help="Operation, e.g. find-by-id, find-all, query, save, delete, exists, count."),
    resource: str = typer.Argument(..., help="Resource name, e.g. users."),
    identifier: Optional[str] = typer.Option(None, "--id", help="Entity identifier."),
    parameter: Optional[List[str]] = typer.Option(None, "--param", "-p", help="Request parameter as key=value. Repeatable."),
    payload: Optional[str] = typer.Option(None, "--payload", help="JSON payload for save."),
    transport: str = typer.Option("rest", "--transport", "-t", help=f"One of: {', '.join(available_transports())}."),
) -> None:
    """Execute one operation and print the response as JSON."""

    settings = _require_settings(ctx)
    parsed_operation = _parse_operation(operation)
    try:
        request = TransportRequest(
            operation=parsed_operation,
            resource_name=resource,
            identifier=identifier,
            payload=_parse_payload(payload),
            parameters=_parse_parameters(parameter),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        client = resolve_transport(transport, settings)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    except TransportError as exc:
        typer.echo(f"Transport error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    with client:
        try:
            if parsed_operation.is_list_operation:
                response = client.execute_for_list(request)
            else:
                response = client.execute(request)
        except TransportError as exc:
            typer.echo(f"Transport error: {exc}", err=True)
            raise typer.Exit(code=2) from exc
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    typer.echo(_render_response(response))
    if not response.success:
        raise typer.Exit(code=1)


@app.command("addresses")
def addresses(
    ctx: typer.Context,
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Address prefix. Defaults to the [eventbus] setting."),
) -> None:
    """List the event-bus address each operation is sent to."""

    settings = _require_settings(ctx)
    if prefix is None:
        prefix = settings.eventbus.address_prefix if settings.eventbus else DEFAULT_ADDRESS_PREFIX
    header = f"{'Operation':<12} Address"
    typer.echo(header)
    typer.echo("-" * len(header))
    for item in TransportOperation:
        typer.echo(f"{item.value:<12} {bus_address(prefix, item)}")


@app.command("schema")
def schema() -> None:
    """Print the protobuf schema of the RPC and event-bus wire contract."""

    typer.echo(resources.files("remote_transport.resources").joinpath("remote_data.proto").read_text(encoding="utf-8"))


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the resolved transport settings as JSON."""

    settings = _require_settings(ctx)
    payload = {
        "source": str(settings.source_path) if settings.source_path else None,
        "rest": to_jsonable(settings.rest),
        "grpc": to_jsonable(settings.grpc),
        "eventbus": to_jsonable(settings.eventbus),
    }
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


if __name__ == "__main__":  # pragma: no cover
    app()
