from __future__ import annotations

import logging
from typing import Mapping, Optional

import httpx

logger = logging.getLogger(__name__)


class SonoffActuatorPort:
    """Sonoff BASICR3 relays in eWeLink DIY mode, addressed by device id.

    ``devices`` maps our device ids (``grow_light``, ``water_pump``...) to the
    relay's IP address and its eWeLink device id, e.g.
    ``{"grow_light": "192.168.1.19/1000b8d61a"}``.
    """

    def __init__(
        self,
        devices: Mapping[str, str],
        port: int = 8081,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._devices = {}
        for device_id, address in devices.items():
            ip, _, ewelink_id = address.partition("/")
            self._devices[device_id] = (f"http://{ip}:{port}", ewelink_id)
        self._timeout = timeout
        self._transport = transport
        self._last_known_state: dict[str, bool] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _target(self, device_id: str) -> tuple[str, str]:
        try:
            return self._devices[device_id]
        except KeyError:
            raise KeyError(f"No Sonoff relay configured for {device_id!r}")

    async def get_state(self, device_id: str) -> bool:
        base_url, ewelink_id = self._target(device_id)
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{base_url}/zeroconf/info",
                    json={"deviceid": ewelink_id, "data": {}},
                )
                resp.raise_for_status()
                data = resp.json()
                switch_val = data["data"]["switch"]
                self._last_known_state[device_id] = switch_val == "on"
        except Exception:
            logger.warning(
                "Sonoff get_state(%s) failed, returning last known state: %s",
                device_id,
                self._last_known_state.get(device_id, False),
                exc_info=True,
            )
        return self._last_known_state.get(device_id, False)

    async def set_state(self, device_id: str, on: bool, reason: str) -> None:
        base_url, ewelink_id = self._target(device_id)
        switch_val = "on" if on else "off"
        async with self._client() as client:
            resp = await client.post(
                f"{base_url}/zeroconf/switch",
                json={
                    "deviceid": ewelink_id,
                    "data": {"switch": switch_val},
                },
            )
            resp.raise_for_status()
            body = resp.json()
            if body.get("error", 0) != 0:
                raise RuntimeError(f"Sonoff {device_id} rejected switch={switch_val}: error={body.get('error')}")
        self._last_known_state[device_id] = on
        logger.info("Sonoff %s set_state=%s reason=%s", device_id, switch_val, reason)
