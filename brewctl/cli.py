"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import typer

from brewctl.core.encoder import TEMPERATURES, VOLUMES, encode
from brewctl.core.errors import BrewctlError, NotReadyError
from brewctl.core.model import ChallengeResponse, CookParams, DeviceRuntimeState, ExecutionRequest
from brewctl.core.service import BrewService

app = typer.Typer(help="Brew coffee on a Bluetooth capsule machine")

_USER_OPTION = typer.Option(None, "--user", help="Account ID (defaults to settings)")
_DEVICE_OPTION = typer.Option(None, "--device", help="Device ID (defaults to settings)")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def _build_service() -> BrewService:
    service = BrewService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _target(service: BrewService, user: str | None, device: str | None) -> tuple[str, str]:
    return user or service.settings.user, device or service.settings.device


def _format_state(state: DeviceRuntimeState) -> str:
    return (
        f"online={state.online} mode={state.cooking_mode.value} "
        f"preset={state.food_preset} quantity={state.food_quantity}"
    )


async def _brew(
    service: BrewService,
    user_id: str,
    device_id: str,
    request: ExecutionRequest,
) -> DeviceRuntimeState:
    if await service.discover() is None:
        raise NotReadyError(
            f"Appliance {service.settings.machine_address} not found. Is it powered on and in range?"
        )
    return await service.execute(user_id, device_id, request)


@app.command("scan")
def scan() -> None:
    """Scan for the configured appliance."""
    try:
        service = _build_service()
        appliance = asyncio.run(service.discover())
        if appliance is None:
            typer.echo(f"Appliance {service.settings.machine_address} not found", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Found {appliance.address} ({appliance.name or '<unnamed>'})")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("brew")
def brew(
    preset: str | None = typer.Argument(None, help="Volume preset, e.g. espresso"),
    pin: str | None = typer.Option(None, "--pin", help="PIN for protected devices"),
    ack: bool = typer.Option(False, "--ack", help="Acknowledge the brew request"),
    user: str | None = _USER_OPTION,
    device: str | None = _DEVICE_OPTION,
) -> None:
    """Start brewing PRESET (defaults to the configured volume)."""
    try:
        service = _build_service()
        user_id, device_id = _target(service, user, device)
        request = ExecutionRequest(
            params=CookParams(start=True, food_preset=preset or service.settings.volume),
            challenge=ChallengeResponse(pin=pin, ack=ack) if pin is not None or ack else None,
        )
        state = asyncio.run(_brew(service, user_id, device_id, request))
        typer.echo(f"Brewing {state.food_preset} on {device_id}")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("cancel")
def cancel(
    user: str | None = _USER_OPTION,
    device: str | None = _DEVICE_OPTION,
) -> None:
    """Reset the brew state of a device."""
    try:
        service = _build_service()
        user_id, device_id = _target(service, user, device)
        request = ExecutionRequest(params=CookParams(start=False))
        state = asyncio.run(service.execute(user_id, device_id, request))
        typer.echo(f"{device_id}: {_format_state(state)}")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("status")
def status(
    user: str | None = _USER_OPTION,
    device: str | None = _DEVICE_OPTION,
) -> None:
    """Show the stored state of a device."""
    try:
        service = _build_service()
        user_id, device_id = _target(service, user, device)
        record = service.store.fetch_device(user_id, device_id)
        typer.echo(f"{record.id} ({record.name}): {_format_state(record.state)}")
        if record.state.error_code:
            typer.echo(f"  error: {record.state.error_code}")
        typer.echo(f"  challenge: {record.challenge.kind.value}")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(user: str | None = _USER_OPTION) -> None:
    """List the devices registered for an account."""
    try:
        service = _build_service()
        user_id = user or service.settings.user
        devices = service.sync(user_id)
        if not devices:
            typer.echo("No devices registered")
            return
        for descriptor in devices:
            typer.echo(f"{descriptor['id']}: {descriptor['name']['name']}")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("register")
def register(
    name: str = typer.Argument("Coffee machine", help="Display name"),
    user: str | None = _USER_OPTION,
    device: str | None = _DEVICE_OPTION,
) -> None:
    """Register a device for an account, creating the account if needed."""
    try:
        service = _build_service()
        user_id, device_id = _target(service, user, device)
        record = service.register(user_id, device_id, name)
        typer.echo(f"Registered {record.id} ({record.name}) for {user_id}")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("update")
def update(
    name: str | None = typer.Option(None, "--name", help="New display name"),
    error_code: str | None = typer.Option(None, "--error-code", help="Fault code; omit to clear"),
    tfa: str | None = typer.Option(None, "--tfa", help="'ack', a PIN, or '' to disable"),
    online: bool | None = typer.Option(None, "--online/--offline", help="Reachability flag"),
    user: str | None = _USER_OPTION,
    device: str | None = _DEVICE_OPTION,
) -> None:
    """Update a device record out of band."""
    try:
        service = _build_service()
        user_id, device_id = _target(service, user, device)
        record = service.update_device(
            user_id,
            device_id,
            name=name,
            error_code=error_code,
            tfa=tfa,
            states={"online": online} if online is not None else None,
        )
        typer.echo(f"{record.id}: {_format_state(record.state)}")
    except BrewctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("encode")
def encode_command(
    volume: str,
    temperature: str | None = typer.Option(None, "--temperature", help="Temperature name"),
) -> None:
    """Print the command bytes for VOLUME without touching the machine."""
    typer.echo(encode(volume, temperature).hex())


@app.command("presets")
def presets() -> None:
    """List the known volume and temperature names."""
    typer.echo(f"volumes: {', '.join(VOLUMES)}")
    typer.echo(f"temperatures: {', '.join(TEMPERATURES)}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
