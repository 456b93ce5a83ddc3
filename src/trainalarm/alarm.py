"""Threshold-driven alarm state machine."""

import asyncio
import logging
import math
from typing import Any, Callable, List, Optional

from .models import AlarmState, Thresholds

logger = logging.getLogger(__name__)

StateListener = Callable[[AlarmState, AlarmState], None]
Scheduler = Callable[[float, Callable[[], None]], Any]


def evaluate_alarm_state(
    dist_to_dest_km: float,
    dist_to_prev_km: float,
    thresholds: Thresholds = Thresholds(),
) -> AlarmState:
    """
    Derive the alarm state from the current distances.

    First match wins: within alarm range of the destination, then within
    pre-alert range of the previous stop, then within approach range of the
    destination. Unknown (infinite) distances never match, so they resolve to safe.
    """
    if dist_to_dest_km <= thresholds.alarm_km:
        return AlarmState.ALARM
    if dist_to_prev_km <= thresholds.pre_alert_km:
        return AlarmState.PRE_ALERT
    if dist_to_dest_km <= thresholds.approach_km:
        return AlarmState.APPROACHING
    return AlarmState.SAFE


def _call_later(delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay_s, callback)


class AlarmStateMachine:
    """
    Holds the alarm state of a trip and decides transitions.

    Evaluation is level-triggered: every update re-applies the rule to the
    current distances. Entering ``alarm`` or ``pre-alert`` dispatches exactly
    one notification per entry; staying in the state does not re-dispatch.
    """

    def __init__(
        self,
        dispatcher,
        destination_name: str,
        previous_name: str,
        thresholds: Thresholds = Thresholds(),
        scheduler: Optional[Scheduler] = None,
    ):
        """
        Args:
            dispatcher: Object with ``trigger_alarm(station_name, distance_km)``
                and ``pre_alert(prev_station_name, dest_station_name)``.
            destination_name: Name of the alarm target station.
            previous_name: Name of the station before the destination.
            thresholds: Alarm thresholds.
            scheduler: ``scheduler(delay_seconds, callback)`` returning a handle
                with ``cancel()``. Defaults to the running asyncio loop.
        """
        thresholds.validate()
        self.dispatcher = dispatcher
        self.destination_name = destination_name
        self.previous_name = previous_name
        self.thresholds = thresholds
        self._schedule = scheduler or _call_later

        self._state = AlarmState.SAFE
        self._listeners: List[StateListener] = []
        self._snooze_handle: Any = None
        self._pending: Optional[AlarmState] = None
        self._pending_count = 0

        self.dist_to_dest_km = math.inf
        self.dist_to_prev_km = math.inf

    @property
    def state(self) -> AlarmState:
        return self._state

    @property
    def snooze_pending(self) -> bool:
        return self._snooze_handle is not None

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def update(self, dist_to_dest_km: float, dist_to_prev_km: float) -> AlarmState:
        """Apply a new distance measurement and return the resulting state."""
        self.dist_to_dest_km = dist_to_dest_km
        self.dist_to_prev_km = dist_to_prev_km

        if self._state == AlarmState.SNOOZED:
            # Re-evaluated when the snooze timer expires
            return self._state

        candidate = evaluate_alarm_state(dist_to_dest_km, dist_to_prev_km, self.thresholds)
        if not self._debounced(candidate):
            return self._state

        self._transition(candidate)
        return self._state

    def dismiss(self) -> None:
        """Force the state to safe and cancel any pending snooze."""
        self._cancel_snooze()
        self._reset_debounce()
        logger.info("Alarm dismissed")
        self._transition(AlarmState.SAFE)

    def snooze(self, duration_ms: Optional[int] = None) -> bool:
        """
        Silence an active alarm for ``duration_ms``.

        Returns:
            True if the alarm was snoozed, False if there was no alarm to snooze.
        """
        if self._state != AlarmState.ALARM:
            logger.debug(f"Ignoring snooze in state {self._state.value}")
            return False

        if duration_ms is None:
            duration_ms = self.thresholds.snooze_ms
        self._cancel_snooze()
        self._snooze_handle = self._schedule(duration_ms / 1000, self._on_snooze_expired)
        logger.info(f"Alarm snoozed for {duration_ms / 1000:.0f} s")
        self._transition(AlarmState.SNOOZED)
        return True

    def close(self) -> None:
        """Cancel timers at trip end."""
        self._cancel_snooze()

    def _on_snooze_expired(self) -> None:
        self._snooze_handle = None
        self._reset_debounce()
        resolved = evaluate_alarm_state(self.dist_to_dest_km, self.dist_to_prev_km, self.thresholds)
        logger.info(f"Snooze expired, state resolves to {resolved.value}")
        self._transition(resolved)

    def _cancel_snooze(self) -> None:
        if self._snooze_handle is not None:
            self._snooze_handle.cancel()
            self._snooze_handle = None

    def _debounced(self, candidate: AlarmState) -> bool:
        """Whether ``candidate`` has been seen on enough consecutive samples to adopt."""
        if candidate == self._state or self.thresholds.debounce_samples <= 1:
            self._reset_debounce()
            return True
        if candidate == self._pending:
            self._pending_count += 1
        else:
            self._pending = candidate
            self._pending_count = 1
        if self._pending_count >= self.thresholds.debounce_samples:
            self._reset_debounce()
            return True
        return False

    def _reset_debounce(self) -> None:
        self._pending = None
        self._pending_count = 0

    def _transition(self, new_state: AlarmState) -> None:
        old_state = self._state
        if new_state == old_state:
            return

        self._state = new_state
        logger.info(f"Alarm state {old_state.value} -> {new_state.value}")

        if new_state == AlarmState.ALARM:
            self.dispatcher.trigger_alarm(self.destination_name, self.dist_to_dest_km)
        elif new_state == AlarmState.PRE_ALERT:
            self.dispatcher.pre_alert(self.previous_name, self.destination_name)

        for listener in list(self._listeners):
            listener(old_state, new_state)
