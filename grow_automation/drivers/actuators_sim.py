from __future__ import annotations
import logging

logger = logging.getLogger(__name__)


class SimulatedActuatorPort:
    """In-memory relays, one per device id."""

    def __init__(self) -> None:
        self._states: dict[str, bool] = {}
        self.writes: list[tuple[str, bool, str]] = []
        # set to make the next writes raise, for exercising retry paths
        self.fail_writes = False

    async def get_state(self, device_id: str) -> bool:
        return self._states.get(device_id, False)

    async def set_state(self, device_id: str, on: bool, reason: str) -> None:
        if self.fail_writes:
            raise RuntimeError(f"Simulated write failure for {device_id}")
        self._states[device_id] = bool(on)
        self.writes.append((device_id, bool(on), reason))
        logger.info("%s set_state=%s reason=%s", device_id, self._states[device_id], reason)
