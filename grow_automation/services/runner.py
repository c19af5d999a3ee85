from __future__ import annotations
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import timezone
from typing import Any, Awaitable, Optional, TypeVar, Union

from ..core.config import settings
from ..domain.controller import AutomationController
from ..domain.interfaces import ActuatorPort, Clock, ScheduleStore, SensorFeed
from ..domain.models import ActionEvent, Evaluation
from ..domain.schedule import TimeWindow

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()

# action events kept while the store is unreachable
_ACTION_BACKLOG = 256


@dataclass
class LiveState:
    actuator_state: bool = False
    sensor_ts: Optional[str] = None
    progress_percent: Optional[float] = None
    countdown_active: bool = False
    countdown_percent: Optional[float] = None
    last_evaluated: Optional[str] = None
    last_error: Optional[str] = None


class FamilyRunner:
    """Single worker task that owns one family's controller.

    Timer ticks, sensor pushes and user edits only set a wake flag; the worker
    evaluates once per wake-up, so bursts that arrive while a write is still
    outstanding collapse into one evaluation.
    """

    def __init__(
        self,
        controller: AutomationController,
        *,
        clock: Clock,
        feed: SensorFeed,
        actuator: ActuatorPort,
        store: ScheduleStore,
        device_id: str,
        profile_id: Optional[str] = None,
        tick_seconds: Optional[float] = None,
        io_timeout: Optional[float] = None,
    ) -> None:
        self.controller = controller
        self.device_id = device_id
        self.profile_id = profile_id or controller.family.value

        self._clock = clock
        self._feed = feed
        self._actuator = actuator
        self._store = store
        self._tick_seconds = tick_seconds or settings.tick_seconds
        self._io_timeout = io_timeout or settings.io_timeout_seconds

        self._task: Optional[asyncio.Task] = None
        self._feed_task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._wake = asyncio.Event()

        self._persisted: Optional[dict[str, Any]] = None
        self._published: Optional[dict[str, Any]] = None
        self._last_eval: Optional[Evaluation] = None
        self._actions: deque[ActionEvent] = deque(maxlen=_ACTION_BACKLOG)
        self._flush_task: Optional[asyncio.Task] = None
        self._flush_again = False
        self.live = LiveState()

    # --- lifecycle ----------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f"{self.profile_id}_runner")

    async def stop(self) -> None:
        # the actuator keeps its last commanded state
        self._stop.set()
        self._wake.set()
        if self._feed_task:
            self._feed_task.cancel()
            try:
                await self._feed_task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("%s sensor subscription ended with an error", self.profile_id, exc_info=True)
            self._feed_task = None
        if self._task:
            await self._task
            self._task = None
        await self.drain()

    async def __aenter__(self) -> "FamilyRunner":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def wake(self) -> None:
        self._wake.set()

    async def _run(self) -> None:
        logger.info(
            "%s runner started (tick_seconds=%s device=%s)",
            self.profile_id, self._tick_seconds, self.device_id,
        )
        await self.attach()

        while not self._stop.is_set():
            self._ensure_subscribed()
            try:
                await self.evaluate_once()
            except Exception as e:
                self.live.last_error = str(e)
                logger.exception("%s evaluation error: %s", self.profile_id, e)

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._tick_seconds)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

        logger.info("%s runner stopped", self.profile_id)

    # --- collaborators --------------------------------------------------------

    async def _bounded(self, aw: Awaitable[T]) -> T:
        return await asyncio.wait_for(aw, timeout=self._io_timeout)

    async def _safe(self, aw: Awaitable[Any], what: str) -> bool:
        try:
            await self._bounded(aw)
            return True
        except Exception as e:
            self.live.last_error = f"{what}: {e!r}"
            logger.warning("%s %s failed, retrying next tick", self.profile_id, what, exc_info=True)
            return False

    def _ensure_subscribed(self) -> None:
        if self._feed_task is not None and not self._feed_task.done():
            return
        if self._feed_task is not None and not self._feed_task.cancelled() and self._feed_task.exception():
            logger.warning(
                "%s sensor subscription dropped: %r, resubscribing",
                self.profile_id, self._feed_task.exception(),
            )
        self._feed_task = asyncio.create_task(self._consume_feed(), name=f"{self.profile_id}_feed")

    async def _consume_feed(self) -> None:
        async for sample in self._feed.subscribe(self.controller.policy.topic):
            self.controller.observe(sample.value)
            self.live.sensor_ts = sample.ts.isoformat()
            self.wake()

    async def attach(self) -> bool:
        self.controller.begin_loading()
        try:
            data = await self._bounded(self._store.read(self.profile_id))
        except Exception as e:
            self.live.last_error = f"store read: {e!r}"
            logger.warning("%s store read failed, retrying next tick", self.profile_id, exc_info=True)
            return False

        data = dict(data or {})
        stored = dict(data)
        if data.get("manual_state") is None:
            try:
                data["manual_state"] = await self._bounded(self._actuator.get_state(self.device_id))
            except Exception:
                logger.warning("%s could not read actuator state", self.profile_id, exc_info=True)

        ready = self.controller.load(data, self._clock.now())
        self._persisted = {k: stored.get(k, _MISSING) for k in self.controller.persistable()}
        self.live.actuator_state = self.controller.profile.manual_state
        if not ready:
            logger.info(
                "%s waiting for configuration: missing %s",
                self.profile_id, ", ".join(sorted(self.controller.missing_fields())),
            )
        return ready

    # --- evaluation -----------------------------------------------------------

    async def evaluate_once(self) -> Evaluation:
        if not self.controller.ready:
            await self.attach()

        ev = self.controller.evaluate(self._clock.now())
        if ev.command is not None:
            await self._command(ev)

        self.live.progress_percent = ev.progress_percent
        if ev.countdown is not None:
            self.live.countdown_active = ev.countdown.active
            self.live.countdown_percent = ev.countdown.remaining_percent
        self.live.last_evaluated = ev.ts.isoformat()

        self._last_eval = ev
        self._schedule_flush()
        return ev

    async def _command(self, ev: Evaluation) -> bool:
        ok = await self._safe(
            self._actuator.set_state(self.device_id, bool(ev.command), ev.reason),
            "actuator write",
        )
        if not ok:
            self.controller.command_failed(ev)
            return False

        self.live.actuator_state = bool(ev.command)
        self._actions.append(
            ActionEvent(
                ts_utc=ev.ts.astimezone(timezone.utc),
                profile_id=self.profile_id,
                device_id=self.device_id,
                state=bool(ev.command),
                reason=ev.reason,
                sensor_value=ev.sensor_value,
                progress_percent=ev.progress_percent,
            )
        )
        return True

    # --- bookkeeping ------------------------------------------------------------

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            self._flush_again = True
            return
        self._flush_task = asyncio.create_task(self._flush(), name=f"{self.profile_id}_flush")

    async def _flush(self) -> None:
        # runs beside the worker so a slow store never delays the next evaluation
        while True:
            self._flush_again = False
            await self._write_actions()
            await self._persist()
            if self._last_eval is not None:
                await self._publish(self._last_eval)
            if not self._flush_again:
                return

    async def drain(self) -> None:
        """Wait until the store has seen everything evaluated so far."""
        while self._flush_task is not None and not self._flush_task.done():
            await self._flush_task

    async def _write_actions(self) -> None:
        while self._actions:
            if not await self._safe(self._store.insert_action(self._actions[0]), "action log"):
                return
            self._actions.popleft()

    async def _persist(self) -> None:
        if self._persisted is None:
            # configured entirely by edits, the store was never read
            self._persisted = {}
        if self.controller.ready:
            current = self.controller.persistable()
        else:
            # never write defaults over a profile that has not been read yet
            current = self.controller.pending_edits()
        changed = {k: v for k, v in current.items() if self._persisted.get(k, _MISSING) != v}
        if not changed:
            return
        if await self._safe(self._store.write(self.profile_id, changed), "store write"):
            self._persisted.update(changed)

    async def _publish(self, ev: Evaluation) -> None:
        metrics: dict[str, Any] = {
            "mode": ev.mode.value,
            "actuator_state": ev.desired_state,
            "progress_percent": round(ev.progress_percent, 1) if ev.progress_percent is not None else None,
        }
        if ev.countdown is not None:
            metrics["countdown_active"] = ev.countdown.active
            metrics["countdown_percent"] = round(ev.countdown.remaining_percent, 1)
        if metrics == self._published:
            return
        if await self._safe(self._store.publish(self.profile_id, metrics), "metrics publish"):
            self._published = metrics

    # --- edits ------------------------------------------------------------------

    async def set_window(
        self,
        start_time: str,
        duration_hours: Union[str, float, None] = None,
        end_time: Optional[str] = None,
    ) -> TimeWindow:
        window = self.controller.set_window(start_time, duration_hours=duration_hours, end_time=end_time)
        self.wake()
        return window

    async def set_threshold(self, value: Union[str, float]) -> float:
        threshold = self.controller.set_threshold(value)
        self.wake()
        return threshold

    async def enable_automatic(self) -> None:
        self.controller.enable_automatic(self._clock.now())
        self.wake()

    async def disable_automatic(self) -> None:
        self.controller.disable_automatic()
        self.wake()

    async def manual_toggle(self, on: Optional[bool] = None) -> bool:
        target = self.controller.manual_toggle(on)
        self.wake()
        return target

    def status(self) -> dict[str, Any]:
        c = self.controller
        p = c.profile
        return {
            "family": c.family.value,
            "device_id": self.device_id,
            "attachment": c.state.attachment.value,
            "mode": c.mode.value,
            "auto_mode": bool(p.auto_mode),
            "start_time": p.window.start_label if p.window else None,
            "end_time": p.window.end_label if p.window else None,
            "duration_hours": p.window.duration_hours if p.window else None,
            "threshold": p.threshold,
            "last_activation": p.last_activation.isoformat() if p.last_activation else None,
            "actuator_state": self.live.actuator_state,
            "sensor_value": c.state.last_reading,
            "sensor_ts": self.live.sensor_ts,
            "progress_percent": self.live.progress_percent,
            "countdown_active": self.live.countdown_active,
            "countdown_percent": self.live.countdown_percent,
            "last_decision": c.state.last_decision,
            "last_reason": c.state.last_reason,
            "last_evaluated": self.live.last_evaluated,
            "last_error": self.live.last_error,
        }
