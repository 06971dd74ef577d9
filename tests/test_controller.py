from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from brewctl.core.controller import ApplianceController
from brewctl.core.encoder import encode
from brewctl.core.errors import (
    BrewctlError,
    BusyError,
    ConnectError,
    DisconnectedError,
    NotReadyError,
    ServiceDiscoveryError,
    WriteError,
)
from brewctl.core.model import ControllerState, DiscoveredAppliance
from brewctl.core.settings_loader import gatt_profile_for

ADDRESS = "E9:C6:DD:63:48:D2"
AUTH_KEY = bytes.fromhex("8f9fdd9fac836416")
GATT = gatt_profile_for("Linux")


class FakeLink:
    def __init__(
        self,
        *,
        missing: tuple[str, ...] = (),
        block_discovery: bool = False,
        write_error: Exception | None = None,
        disconnect_error: Exception | None = None,
    ) -> None:
        self.writes: list[tuple[str, bytes]] = []
        self.disconnects = 0
        self.write_error = write_error
        self.disconnect_error = disconnect_error
        self.missing = set(missing)
        self.discovery_gate = asyncio.Event() if block_discovery else None
        self.on_disconnect: Callable[[], None] | None = None

    async def characteristic(self, service_uuid: str, char_uuid: str) -> str | None:
        if self.discovery_gate is not None:
            await self.discovery_gate.wait()
        if char_uuid in self.missing:
            return None
        return char_uuid

    async def write(self, characteristic: str, payload: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((characteristic, payload))

    async def disconnect(self) -> None:
        self.disconnects += 1
        # Real stacks report our own disconnect through the callback too.
        if self.on_disconnect is not None:
            self.on_disconnect()
        if self.disconnect_error is not None:
            raise self.disconnect_error


class FakeAdapter:
    def __init__(self, links: list[FakeLink] | None = None, *, found: bool = True) -> None:
        self.links = links if links is not None else []
        self.found = found
        self.scans = 0
        self.connects = 0
        self.on_disconnect: Callable[[], None] | None = None
        self.connect_error: Exception | None = None

    async def scan(self, address: str, timeout_s: float) -> DiscoveredAppliance | None:
        self.scans += 1
        if not self.found:
            return None
        return DiscoveredAppliance(address=address, name="Prodigio")

    async def connect(
        self,
        appliance: DiscoveredAppliance,
        on_disconnect: Callable[[], None],
    ) -> FakeLink:
        self.connects += 1
        if self.connect_error is not None:
            raise self.connect_error
        self.on_disconnect = on_disconnect
        link = self.links.pop(0)
        link.on_disconnect = on_disconnect
        return link


def _controller(adapter: FakeAdapter, *, settle_s: float = 0.0) -> ApplianceController:
    return ApplianceController(
        adapter,
        address=ADDRESS,
        auth_key=AUTH_KEY,
        gatt=GATT,
        temperature="muito quente",
        auth_settle_s=settle_s,
        disconnect_settle_s=settle_s,
    )


async def _wait_for_state(controller: ApplianceController, state: ControllerState) -> None:
    for _ in range(100):
        if controller.state is state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"controller never reached {state}")


def test_actuate_before_discovery_is_not_ready() -> None:
    adapter = FakeAdapter([FakeLink()])
    controller = _controller(adapter)

    with pytest.raises(NotReadyError):
        asyncio.run(controller.actuate("espresso"))

    assert adapter.scans == 0
    assert adapter.connects == 0
    assert controller.state is ControllerState.IDLE


def test_discover_not_found_leaves_controller_unready() -> None:
    adapter = FakeAdapter(found=False)
    controller = _controller(adapter)

    assert asyncio.run(controller.discover(0.1)) is None
    assert controller.ready is False
    assert controller.state is ControllerState.IDLE


def test_actuate_writes_auth_then_command_then_disconnects() -> None:
    link = FakeLink()
    adapter = FakeAdapter([link])
    controller = _controller(adapter)

    async def scenario() -> None:
        appliance = await controller.discover(1.0)
        assert appliance is not None
        await controller.actuate("espresso")

    asyncio.run(scenario())

    assert link.writes == [
        (GATT.auth_char_uuid, AUTH_KEY),
        (GATT.command_char_uuid, encode("espresso", "muito quente")),
    ]
    assert link.disconnects == 1
    assert controller.state is ControllerState.IDLE


def test_actuate_waits_settle_delays(monkeypatch: pytest.MonkeyPatch) -> None:
    link = FakeLink()
    controller = _controller(FakeAdapter([link]), settle_s=1.0)
    sleeps: list[float] = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay: float, *args, **kwargs) -> None:
        sleeps.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def scenario() -> None:
        await controller.discover(1.0)
        await controller.actuate("lungo")

    asyncio.run(scenario())

    assert len(sleeps) == 2
    assert 0.5 < sleeps[0] <= 1.0
    assert sleeps[1] == 1.0
    assert len(link.writes) == 2


def test_second_actuate_while_in_flight_is_busy() -> None:
    link = FakeLink(block_discovery=True)
    adapter = FakeAdapter([link])
    controller = _controller(adapter)

    async def scenario() -> None:
        await controller.discover(1.0)
        first = asyncio.ensure_future(controller.actuate("espresso"))
        await _wait_for_state(controller, ControllerState.SERVICE_DISCOVERY)

        with pytest.raises(BusyError):
            await controller.actuate("lungo")

        assert link.discovery_gate is not None
        link.discovery_gate.set()
        await first

    asyncio.run(scenario())

    assert adapter.connects == 1
    assert [payload for _, payload in link.writes] == [
        AUTH_KEY,
        encode("espresso", "muito quente"),
    ]


def test_disconnect_during_service_discovery_cancels_and_recovers() -> None:
    blocked = FakeLink(block_discovery=True)
    healthy = FakeLink()
    adapter = FakeAdapter([blocked, healthy])
    controller = _controller(adapter)

    async def scenario() -> None:
        await controller.discover(1.0)
        pending = asyncio.ensure_future(controller.actuate("espresso"))
        await _wait_for_state(controller, ControllerState.SERVICE_DISCOVERY)

        assert adapter.on_disconnect is not None
        adapter.on_disconnect()

        with pytest.raises(DisconnectedError):
            await pending
        assert controller.state is ControllerState.IDLE

        await controller.actuate("lungo")

    asyncio.run(scenario())

    assert blocked.writes == []
    assert [payload for _, payload in healthy.writes] == [
        AUTH_KEY,
        encode("lungo", "muito quente"),
    ]
    assert controller.state is ControllerState.IDLE


def test_missing_characteristic_fails_and_disconnects() -> None:
    link = FakeLink(missing=(GATT.command_char_uuid,))
    controller = _controller(FakeAdapter([link]))

    async def scenario() -> None:
        await controller.discover(1.0)
        await controller.actuate("espresso")

    with pytest.raises(ServiceDiscoveryError) as exc:
        asyncio.run(scenario())

    assert GATT.command_char_uuid in str(exc.value)
    assert link.writes == []
    assert link.disconnects == 1
    assert controller.state is ControllerState.IDLE


def test_connect_failure_returns_to_idle() -> None:
    adapter = FakeAdapter([FakeLink()])
    adapter.connect_error = ConnectError("BLE connect failed")
    controller = _controller(adapter)

    async def scenario() -> None:
        await controller.discover(1.0)
        with pytest.raises(ConnectError):
            await controller.actuate("espresso")

    asyncio.run(scenario())
    assert controller.state is ControllerState.IDLE


def test_discover_while_actuating_is_busy() -> None:
    link = FakeLink(block_discovery=True)
    controller = _controller(FakeAdapter([link]))

    async def scenario() -> None:
        await controller.discover(1.0)
        pending = asyncio.ensure_future(controller.actuate("espresso"))
        await _wait_for_state(controller, ControllerState.SERVICE_DISCOVERY)
        with pytest.raises(BusyError):
            await controller.discover(1.0)
        assert link.discovery_gate is not None
        link.discovery_gate.set()
        await pending

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "error",
    [OSError("GATT write failed"), WriteError("BLE GATT write failed: timeout")],
)
def test_write_failure_is_typed_and_closes_link(error: Exception) -> None:
    failing = FakeLink(write_error=error)
    healthy = FakeLink()
    controller = _controller(FakeAdapter([failing, healthy]))

    async def scenario() -> None:
        await controller.discover(1.0)
        with pytest.raises(WriteError) as exc:
            await controller.actuate("espresso")
        assert isinstance(exc.value, BrewctlError)
        assert exc.value.code == "deviceUnreachable"
        assert controller.state is ControllerState.IDLE

        await controller.actuate("lungo")

    asyncio.run(scenario())

    assert failing.disconnects == 1
    assert [payload for _, payload in healthy.writes] == [
        AUTH_KEY,
        encode("lungo", "muito quente"),
    ]


def test_failed_disconnect_after_brew_is_typed() -> None:
    link = FakeLink(disconnect_error=OSError("adapter went away"))
    controller = _controller(FakeAdapter([link]))

    async def scenario() -> None:
        await controller.discover(1.0)
        await controller.actuate("espresso")

    with pytest.raises(WriteError):
        asyncio.run(scenario())

    assert len(link.writes) == 2
    assert controller.state is ControllerState.IDLE


def test_missing_characteristic_survives_failed_disconnect() -> None:
    link = FakeLink(
        missing=(GATT.auth_char_uuid,),
        disconnect_error=WriteError("BLE disconnect failed"),
    )
    controller = _controller(FakeAdapter([link]))

    async def scenario() -> None:
        await controller.discover(1.0)
        await controller.actuate("espresso")

    with pytest.raises(ServiceDiscoveryError):
        asyncio.run(scenario())

    assert link.disconnects == 1
    assert controller.state is ControllerState.IDLE


def test_late_disconnect_from_previous_link_is_ignored() -> None:
    first = FakeLink()
    second = FakeLink(block_discovery=True)
    adapter = FakeAdapter([first, second])
    controller = _controller(adapter)

    async def scenario() -> None:
        await controller.discover(1.0)
        await controller.actuate("espresso")
        stale_callback = first.on_disconnect
        assert stale_callback is not None

        pending = asyncio.ensure_future(controller.actuate("lungo"))
        await _wait_for_state(controller, ControllerState.SERVICE_DISCOVERY)
        stale_callback()

        assert second.discovery_gate is not None
        second.discovery_gate.set()
        await pending

    asyncio.run(scenario())

    assert [payload for _, payload in second.writes] == [
        AUTH_KEY,
        encode("lungo", "muito quente"),
    ]
    assert controller.state is ControllerState.IDLE
