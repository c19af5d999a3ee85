import json

import httpx
import pytest

from grow_automation.drivers.actuator_sonoff import SonoffActuatorPort

DEVICES = {"grow_light": "192.168.1.19/1000b8d61a"}


class FakeRelay:
    """Stands in for a DIY-mode relay on the LAN."""

    def __init__(self):
        self.switch = "off"
        self.requests = []
        self.status_code = 200
        self.error = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if self.status_code != 200:
            return httpx.Response(self.status_code)
        if request.url.path == "/zeroconf/switch" and self.error == 0:
            self.switch = body["data"]["switch"]
        if request.url.path == "/zeroconf/info":
            return httpx.Response(200, json={"error": self.error, "data": {"switch": self.switch}})
        return httpx.Response(200, json={"error": self.error, "data": {}})


@pytest.fixture()
def relay():
    return FakeRelay()


@pytest.fixture()
def port(relay):
    return SonoffActuatorPort(DEVICES, transport=httpx.MockTransport(relay))


@pytest.mark.asyncio
async def test_switch_and_read_back(port, relay):
    await port.set_state("grow_light", True, "Inside window")
    assert relay.requests[0] == ("/zeroconf/switch", {"deviceid": "1000b8d61a", "data": {"switch": "on"}})
    assert await port.get_state("grow_light") is True

    relay.switch = "off"
    assert await port.get_state("grow_light") is False


@pytest.mark.asyncio
async def test_http_error_raises(port, relay):
    relay.status_code = 503
    with pytest.raises(httpx.HTTPStatusError):
        await port.set_state("grow_light", True, "Inside window")


@pytest.mark.asyncio
async def test_device_error_raises(port, relay):
    relay.error = 400
    with pytest.raises(RuntimeError, match="rejected switch=on"):
        await port.set_state("grow_light", True, "Inside window")
    assert relay.switch == "off"


@pytest.mark.asyncio
async def test_info_failure_returns_last_known_state(port, relay):
    await port.set_state("grow_light", True, "Manual control")

    relay.status_code = 500
    assert await port.get_state("grow_light") is True


@pytest.mark.asyncio
async def test_unknown_device(port):
    with pytest.raises(KeyError):
        await port.set_state("water_pump", True, "Manual control")
