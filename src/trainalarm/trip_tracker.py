"""Main trip tracker: positions in, alarm state and notifications out."""

import asyncio
import logging
import math
from typing import Callable, List, Optional, Union

from .alarm import AlarmStateMachine, Scheduler
from .dispatcher import NotificationDispatcher
from .distance import distance, format_distance
from .exceptions import SensorError
from .messages import Message
from .models import (
    AlarmState,
    CachedRoute,
    DestinationSelection,
    PositionSample,
    Route,
    TrackingMode,
    TripStatus,
)
from .position_source import (
    GeolocationBackend,
    LivePositionSource,
    PositionSession,
    PositionSource,
    SimulatedPositionSource,
)
from .route_provider import RouteProviderClient, RouteService
from .config import Settings

logger = logging.getLogger(__name__)

StatusListener = Callable[[TripStatus], None]


class TripTracker:
    """
    Tracks a single trip and raises the destination alarm.

    This class provides methods to:
    - Look up a route by train number
    - Start a trip with live or simulated positions
    - Switch position sources mid-trip
    - Dismiss or snooze the alarm, locally or from the background context
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        settings: Optional[Settings] = None,
        route_service: Optional[RouteService] = None,
        geolocation: Optional[GeolocationBackend] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        """
        Initialize the tracker.

        Args:
            dispatcher: Sends messages to the background context.
            settings: Thresholds and provider settings. Defaults to built-in values.
            route_service: Route lookup; built from ``settings`` if omitted.
            geolocation: Platform geolocation backend, required for live tracking.
            scheduler: Timer factory for the snooze timer (see AlarmStateMachine).
        """
        self.settings = settings or Settings()
        self.dispatcher = dispatcher
        self.route_service = route_service or RouteService(
            client=RouteProviderClient(self.settings.scraper_url, self.settings.request_timeout),
            demo_mode=self.settings.demo_mode,
        )
        self.geolocation = geolocation
        self._scheduler = scheduler

        self.session = PositionSession(self._on_sample, self._on_sensor_error)
        self.cached: Optional[CachedRoute] = None
        self.alarm: Optional[AlarmStateMachine] = None
        self.mode: Optional[TrackingMode] = None
        self.status: Optional[TripStatus] = None
        self._status_listeners: List[StatusListener] = []
        self._in_sample = False
        self._speed_multiplier = self.settings.speed_multiplier

    @property
    def active(self) -> bool:
        return self.cached is not None

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def start_trip_by_number(
        self,
        train_number: str,
        destination_index: int,
        mode: Union[TrackingMode, str] = TrackingMode.LIVE,
    ) -> Route:
        """
        Fetch a route and start tracking it.

        Raises:
            RouteUnavailable: If no route could be obtained; the trip is not started.
        """
        result = self.route_service.fetch_route(train_number)
        if result.is_demo:
            logger.info(f"Using demo route for train {train_number}")
        self.start_trip(result.route, destination_index, mode)
        return result.route

    def start_trip(
        self,
        route: Route,
        destination_index: int,
        mode: Union[TrackingMode, str] = TrackingMode.LIVE,
        speed_multiplier: Optional[float] = None,
    ) -> None:
        """
        Start tracking towards ``route[destination_index]``.

        Any previous trip is stopped first. The route is pushed to the
        background context before tracking begins.

        Args:
            route: Stations in travel order.
            destination_index: Index of the alarm target; not the first station.
            mode: Live or simulated positions.
            speed_multiplier: Playback speed for simulated trips. Defaults to
                ``settings.speed_multiplier``.

        Raises:
            ValueError: If the route or destination is invalid, or live
                tracking is requested without a geolocation backend.
            RuntimeError: If simulated tracking is requested outside a
                running event loop.

        If the position source fails to start, the trip is stopped and the
        error is re-raised.
        """
        mode = TrackingMode(mode)
        route.validate()
        selection = DestinationSelection(destination_index)
        selection.validate(route)
        self._check_mode(mode)
        if speed_multiplier is not None and speed_multiplier <= 0:
            raise ValueError("speed_multiplier must be positive")

        self.stop_trip()
        self._speed_multiplier = speed_multiplier or self.settings.speed_multiplier

        self.cached = CachedRoute(route=route, destination=selection)
        self.dispatcher.cache_route(self.cached)

        self.alarm = AlarmStateMachine(
            self.dispatcher,
            destination_name=self.cached.destination_station.name,
            previous_name=self.cached.previous_station.name,
            thresholds=self.settings.thresholds,
            scheduler=self._scheduler,
        )
        self.alarm.add_listener(self._on_state_change)
        self.dispatcher.alarm = self.alarm

        self.status = TripStatus(
            state=AlarmState.SAFE,
            dist_to_dest_km=math.inf,
            dist_to_prev_km=math.inf,
            formatted_distance=format_distance(math.inf),
        )

        logger.info(
            f"Trip started on {route.train_name or route.train_number}: "
            f"destination {self.cached.destination_station.name} ({mode.value})"
        )
        self._start_source(mode)

    def switch_source(self, mode: Union[TrackingMode, str], speed_multiplier: Optional[float] = None) -> None:
        """Replace the position source of the active trip."""
        if not self.active:
            raise ValueError("No active trip")
        mode = TrackingMode(mode)
        self._check_mode(mode)
        if speed_multiplier is not None:
            if speed_multiplier <= 0:
                raise ValueError("speed_multiplier must be positive")
            self._speed_multiplier = speed_multiplier
        logger.info(f"Switching position source to {mode.value}")
        self._start_source(mode)

    def handle_background_message(self, message: Message) -> None:
        """Apply a DISMISS_ALARM or SNOOZE_ALARM message from the background context."""
        self.dispatcher.handle_message(message)

    def stop_trip(self) -> None:
        """Stop tracking and release the position source."""
        self.session.stop()
        if self.alarm is not None:
            self.alarm.close()
        if self.dispatcher.alarm is self.alarm:
            self.dispatcher.alarm = None
        if self.cached is not None:
            logger.info("Trip stopped")
        self.alarm = None
        self.cached = None
        self.mode = None

    def dismiss(self) -> None:
        if self.alarm is not None:
            self.alarm.dismiss()

    def snooze(self, duration_ms: Optional[int] = None) -> bool:
        if self.alarm is None:
            return False
        return self.alarm.snooze(duration_ms)

    def cleanup(self) -> None:
        """Release resources."""
        self.stop_trip()
        if hasattr(self.route_service.client, "clear_cache"):
            self.route_service.client.clear_cache()
        logger.info("Cleaned up tracker resources")

    def _start_source(self, mode: TrackingMode) -> None:
        try:
            source = self._make_source(mode)
            self.mode = mode
            self.session.start(source)
        except Exception:
            logger.error(f"Could not start {mode.value} tracking, stopping trip")
            self.stop_trip()
            raise

    def _check_mode(self, mode: TrackingMode) -> None:
        if mode == TrackingMode.LIVE and self.geolocation is None:
            raise ValueError("Live tracking requires a geolocation backend")
        if mode == TrackingMode.SIMULATED:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError("Simulated tracking requires a running event loop")

    def _make_source(self, mode: TrackingMode) -> PositionSource:
        if mode == TrackingMode.LIVE:
            return LivePositionSource(self.geolocation, self.status.dist_to_dest_km)
        return SimulatedPositionSource(self.cached.route, speed_multiplier=self._speed_multiplier)

    def _on_sample(self, sample: PositionSample) -> None:
        if self.cached is None or self.alarm is None:
            return

        here = sample.coordinates
        dist_to_dest = distance(here, self.cached.destination_station.coordinates)
        dist_to_prev = distance(here, self.cached.previous_station.coordinates)
        logger.debug(f"Sample ({sample.lat:.5f}, {sample.lon:.5f}): {dist_to_dest:.3f} km to destination")

        self._in_sample = True
        try:
            state = self.alarm.update(dist_to_dest, dist_to_prev)
        finally:
            self._in_sample = False

        source = self.session.active
        if isinstance(source, LivePositionSource):
            source.update_distance(dist_to_dest)

        self.status = TripStatus(
            state=state,
            dist_to_dest_km=dist_to_dest,
            dist_to_prev_km=dist_to_prev,
            formatted_distance=format_distance(dist_to_dest),
            accuracy_meters=sample.accuracy_meters,
            sample=sample,
        )
        self._publish()

    def _on_sensor_error(self, error: SensorError) -> None:
        if self.status is None:
            return
        self.status.error = str(error)
        if error.fatal:
            logger.error(f"Tracking halted: {error}")
        self._publish()

    def _on_state_change(self, old_state: AlarmState, new_state: AlarmState) -> None:
        # Dismiss, snooze and snooze expiry change state without a new sample
        if self._in_sample:
            return
        if self.status is not None and self.status.state != new_state:
            self.status.state = new_state
            self._publish()

    def _publish(self) -> None:
        for listener in list(self._status_listeners):
            listener(self.status)
