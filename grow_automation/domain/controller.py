from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Tuple, Union

from .countdown import Countdown
from .errors import ConfigurationError, InterlockViolation
from .models import Attachment, AutomationProfile, Evaluation, Family, Mode
from .policies import FamilyPolicy, parse_threshold
from .schedule import TimeWindow

logger = logging.getLogger(__name__)


@dataclass
class ControllerState:
    attachment: Attachment = Attachment.UNATTACHED
    mode: Mode = Mode.MANUAL
    manual_target: bool = False
    last_reading: Optional[float] = None
    last_decision: Optional[str] = None
    last_reason: Optional[str] = None
    last_progress: Optional[float] = None


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning("Ignoring unparseable timestamp %r", value)
        return None


class AutomationController:
    """Decides the actuator state for one family on every evaluation tick.

    The controller owns no I/O. Callers feed it the time and the latest sensor
    value, write the returned command to the actuator and report failed writes
    back through ``command_failed`` so the next tick retries.
    """

    def __init__(self, policy: FamilyPolicy, cooldown: timedelta = timedelta(hours=8)) -> None:
        self.policy = policy
        self.profile = AutomationProfile(family=policy.family)
        self.state = ControllerState()
        self.countdown: Optional[Countdown] = Countdown(cooldown) if policy.uses_countdown else None
        # stored keys the user changed while the profile was still loading
        self._edited: set[str] = set()

    @property
    def family(self) -> Family:
        return self.policy.family

    @property
    def mode(self) -> Mode:
        return self.state.mode

    @property
    def ready(self) -> bool:
        return self.state.attachment is Attachment.READY

    # --- attachment -------------------------------------------------------

    def _has(self, field: str) -> bool:
        return getattr(self.profile, field) is not None

    def missing_fields(self) -> set[str]:
        return {f for f in self.policy.required_fields if not self._has(f)}

    def _refresh_attachment(self) -> None:
        if self.state.attachment is Attachment.LOADING and not self.missing_fields():
            self.state.attachment = Attachment.READY
            self._edited.clear()
            logger.info("%s controller ready (%s)", self.family.value, self.describe())

    def _mark_edited(self, *keys: str) -> None:
        if not self.ready:
            self._edited.update(keys)

    def begin_loading(self) -> None:
        if self.state.attachment is Attachment.UNATTACHED:
            self.state.attachment = Attachment.LOADING

    def load(self, data: Mapping[str, Any], now: datetime) -> bool:
        """Apply a (possibly partial) stored configuration. Returns readiness.

        Fields the user edited since loading began keep the edited value.
        """
        self.begin_loading()
        p = self.profile
        edited = self._edited

        start = data.get("start_time")
        if self.policy.uses_window and start is not None and "start_time" not in edited:
            try:
                if data.get("duration_hours") is not None:
                    p.window = TimeWindow.parse(start, data["duration_hours"])
                elif data.get("end_time") is not None:
                    p.window = TimeWindow.between(start, data["end_time"])
            except ConfigurationError as e:
                logger.warning("Ignoring stored window for %s: %s", self.family.value, e.message)

        if data.get("threshold") is not None and "threshold" not in edited:
            try:
                p.threshold = parse_threshold(data["threshold"])
            except ConfigurationError as e:
                logger.warning("Ignoring stored threshold for %s: %s", self.family.value, e.message)

        if data.get("manual_state") is not None:
            p.manual_state = bool(data["manual_state"])
            if "manual_target" not in edited:
                self.state.manual_target = p.manual_state

        if data.get("last_activation") is not None and "last_activation" not in edited:
            p.last_activation = _parse_ts(data["last_activation"])

        if "auto_mode" not in edited:
            if data.get("auto_mode") is not None:
                p.auto_mode = bool(data["auto_mode"])
            if p.auto_mode:
                countdown_end = None if "countdown_end" in edited else _parse_ts(data.get("countdown_end"))
                self._resume_automatic(now, countdown_end)
            else:
                self.state.mode = Mode.MANUAL

        self._refresh_attachment()
        return self.ready

    def _resume_automatic(self, now: datetime, countdown_end: Optional[datetime]) -> None:
        if self.policy.automatic_state(self.profile, now, self.state.last_reading):
            self.state.mode = Mode.AUTO_ACTIVE
            if self.profile.last_activation is None:
                self.profile.last_activation = now
            return

        self.state.mode = Mode.AUTO_IDLE
        if self.countdown is not None and countdown_end is not None:
            if self.countdown.restore(countdown_end, now).active:
                self.state.mode = Mode.AUTO_COOLDOWN

    # --- user edits ---------------------------------------------------------

    def set_window(
        self,
        start_time: str,
        duration_hours: Union[str, float, None] = None,
        end_time: Optional[str] = None,
    ) -> TimeWindow:
        if not self.policy.uses_window:
            raise ConfigurationError("window", start_time, f"The {self.family.value} family has no schedule window")
        if duration_hours is not None:
            window = TimeWindow.parse(start_time, duration_hours)
        elif end_time is not None:
            window = TimeWindow.between(start_time, end_time)
        else:
            raise ConfigurationError("duration_hours", None, "Either a duration or an end time is required")

        self.profile.window = window
        self.profile.last_activation = None
        self._mark_edited("start_time", "duration_hours", "last_activation", "countdown_end")
        if self.countdown is not None:
            self.countdown.disarm()
        if self.state.mode.automatic:
            # recomputed from scratch on the next tick
            self.state.mode = Mode.AUTO_IDLE

        logger.info("%s window set to %s", self.family.value, window.label())
        self._refresh_attachment()
        return window

    def set_threshold(self, value: Union[str, float]) -> float:
        threshold = parse_threshold(value)
        self.profile.threshold = threshold
        self._mark_edited("threshold")
        logger.info("%s threshold set to %.1f", self.family.value, threshold)
        self._refresh_attachment()
        return threshold

    def enable_automatic(self, now: datetime) -> Mode:
        self.profile.auto_mode = True
        if self.policy.automatic_state(self.profile, now, self.state.last_reading):
            self.state.mode = Mode.AUTO_ACTIVE
            self.profile.last_activation = now
            self._mark_edited("last_activation")
        else:
            self.state.mode = Mode.AUTO_IDLE
        self._mark_edited("auto_mode")
        self._refresh_attachment()
        logger.info("%s automatic mode enabled (%s)", self.family.value, self.state.mode.value)
        return self.state.mode

    def disable_automatic(self) -> None:
        self.profile.auto_mode = False
        self._enter_manual(self.profile.manual_state)
        self._mark_edited("auto_mode", "countdown_end")
        self._refresh_attachment()
        logger.info("%s automatic mode disabled", self.family.value)

    def manual_toggle(self, on: Optional[bool] = None) -> bool:
        target = (not self.profile.manual_state) if on is None else bool(on)
        if target:
            blocked = self.policy.interlock(self.state.last_reading)
            if blocked:
                logger.warning("%s manual ON rejected: %s", self.family.value, blocked)
                raise InterlockViolation(self.family.value, blocked)

        # manual intent overrides the schedule
        self.profile.auto_mode = False
        self._enter_manual(target)
        self._mark_edited("auto_mode", "manual_target", "countdown_end")
        self._refresh_attachment()
        logger.info("%s manual toggle -> %s", self.family.value, "ON" if target else "OFF")
        return target

    def _enter_manual(self, target: bool) -> None:
        self.state.mode = Mode.MANUAL
        self.state.manual_target = target
        if self.countdown is not None:
            self.countdown.disarm()

    # --- evaluation ---------------------------------------------------------

    def observe(self, reading: Optional[float]) -> None:
        if reading is not None:
            self.state.last_reading = float(reading)

    def evaluate(self, now: datetime, reading: Optional[float] = None) -> Evaluation:
        self.observe(reading)
        reading = self.state.last_reading
        previous = self.profile.manual_state
        progress = self.policy.progress(self.profile, now)

        blocked = self.policy.interlock(reading)
        if not self.ready:
            if blocked and previous:
                self.profile.manual_state = False
                self.state.manual_target = False
                return self._finish(now, False, previous, f"Interlock: {blocked}", progress)
            return self._finish(now, None, previous, "Waiting for configuration", progress)

        if self.state.mode.automatic:
            desired, reason = self._automatic_step(now, reading)
        else:
            desired, reason = self.state.manual_target, "Manual control"

        if blocked and desired:
            desired = False
            reason = f"Interlock: {blocked}"
            if not self.state.mode.automatic:
                self.state.manual_target = False

        command = desired if desired != previous else None
        if command is not None:
            self.profile.manual_state = command
        return self._finish(now, command, previous, reason, progress)

    def _automatic_step(self, now: datetime, reading: Optional[float]) -> Tuple[bool, str]:
        wanted = self.policy.automatic_state(self.profile, now, reading)
        if wanted is None:
            return self.profile.manual_state, "No sensor reading yet"

        if wanted:
            if self.state.mode is not Mode.AUTO_ACTIVE:
                self.profile.last_activation = now
            self.state.mode = Mode.AUTO_ACTIVE
            if self.countdown is not None:
                self.countdown.disarm()
            return True, self._active_reason(reading)

        if self.countdown is None:
            self.state.mode = Mode.AUTO_IDLE
            return False, self._idle_reason(reading)

        if self.state.mode is Mode.AUTO_ACTIVE:
            self.countdown.arm(now)
            self.state.mode = Mode.AUTO_COOLDOWN
            return False, "Window closed, cooldown armed"

        if self.state.mode is Mode.AUTO_COOLDOWN:
            if self.countdown.tick(now).active:
                return False, "Cooldown running"
            self.state.mode = Mode.AUTO_IDLE
            return False, "Cooldown elapsed"

        self.state.mode = Mode.AUTO_IDLE
        return False, self._idle_reason(reading)

    def _active_reason(self, reading: Optional[float]) -> str:
        if self.policy.uses_window:
            return f"Inside window {self.profile.window.label()}"
        return f"Reading {reading:.1f} >= threshold {self.profile.threshold:.1f}"

    def _idle_reason(self, reading: Optional[float]) -> str:
        if self.policy.uses_window:
            return f"Outside window {self.profile.window.label()}"
        return f"Reading {reading:.1f} below threshold {self.profile.threshold:.1f}"

    def _finish(
        self,
        now: datetime,
        command: Optional[bool],
        previous: bool,
        reason: str,
        progress: Optional[float],
    ) -> Evaluation:
        ev = Evaluation(
            family=self.family,
            ts=now,
            mode=self.state.mode,
            command=command,
            previous_state=previous,
            reason=reason,
            progress_percent=progress,
            countdown=self.countdown.state if self.countdown is not None else None,
            sensor_value=self.state.last_reading,
        )
        self.state.last_decision = "NOOP" if command is None else ("ON" if command else "OFF")
        self.state.last_reason = reason
        self.state.last_progress = progress
        if command is not None:
            logger.info("%s decision: %s (%s)", self.family.value, self.state.last_decision, reason)
        return ev

    def command_failed(self, ev: Evaluation) -> None:
        """Forget an unacknowledged command so the next tick issues it again."""
        if ev.command is not None and self.profile.manual_state == ev.command:
            self.profile.manual_state = ev.previous_state

    # --- snapshots ----------------------------------------------------------

    def persistable(self) -> dict[str, Any]:
        p = self.profile
        out: dict[str, Any] = {
            "auto_mode": p.auto_mode,
            "manual_state": p.manual_state,
            "last_activation": p.last_activation.isoformat() if p.last_activation else None,
        }
        if p.window is not None:
            out["start_time"] = p.window.start_label
            out["duration_hours"] = p.window.duration_hours
        if p.threshold is not None:
            out["threshold"] = p.threshold
        if self.countdown is not None:
            end = self.countdown.state.end_ts
            out["countdown_end"] = end.isoformat() if end else None
        return out

    def pending_edits(self) -> dict[str, Any]:
        """Stored keys changed by edits while loading, safe to write before READY."""
        return {k: v for k, v in self.persistable().items() if k in self._edited}

    def describe(self) -> str:
        p = self.profile
        if self.policy.uses_window:
            what = p.window.label() if p.window else "no window"
        else:
            what = f"threshold={p.threshold}"
        return f"{what}, auto={p.auto_mode}, mode={self.state.mode.value}"
