"""Live and simulated position sources behind one start/stop contract."""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .exceptions import SensorError, SensorUnavailable, classify_sensor_error
from .models import PositionSample, Route

logger = logging.getLogger(__name__)

SampleListener = Callable[[PositionSample], None]
ErrorListener = Callable[[SensorError], None]


@dataclass(frozen=True)
class AccuracyOptions:
    """Options passed to the platform geolocation watch."""
    enable_high_accuracy: bool
    timeout_ms: int
    maximum_age_ms: int


HIGH_ACCURACY_OPTIONS = AccuracyOptions(enable_high_accuracy=True, timeout_ms=10000, maximum_age_ms=5000)
LOW_ACCURACY_OPTIONS = AccuracyOptions(enable_high_accuracy=False, timeout_ms=30000, maximum_age_ms=60000)

# Below this distance to the destination the watch switches to high accuracy
HIGH_ACCURACY_RADIUS_KM = 50.0

STEPS_PER_SEGMENT = 100
BASE_INTERVAL_MS = 5000


def accuracy_options_for(distance_to_dest_km: float) -> AccuracyOptions:
    """Pick the sampling policy for the current distance to the destination."""
    if distance_to_dest_km < HIGH_ACCURACY_RADIUS_KM:
        return HIGH_ACCURACY_OPTIONS
    return LOW_ACCURACY_OPTIONS


class PositionSource(ABC):
    """Emits PositionSample events between start() and stop()."""

    def __init__(self):
        self._sample_listeners: List[SampleListener] = []
        self._error_listeners: List[ErrorListener] = []

    def subscribe(self, on_sample: SampleListener, on_error: Optional[ErrorListener] = None) -> None:
        self._sample_listeners.append(on_sample)
        if on_error is not None:
            self._error_listeners.append(on_error)

    @property
    @abstractmethod
    def running(self) -> bool:
        """Whether the source currently holds a watch or timer."""

    @abstractmethod
    def start(self) -> None:
        """Begin emitting samples."""

    @abstractmethod
    def stop(self) -> None:
        """Release the watch or timer. Safe to call when not running."""

    def _emit(self, sample: PositionSample) -> None:
        for listener in list(self._sample_listeners):
            listener(sample)

    def _report(self, error: SensorError) -> None:
        for listener in list(self._error_listeners):
            listener(error)


class GeolocationBackend(ABC):
    """
    Platform geolocation watch API.

    ``watch_position`` must call ``on_position`` with each fix and ``on_error``
    with a W3C error code (1 permission denied, 2 unavailable, 3 timeout) and a
    message. The backend keeps retrying after timeouts on its own.
    """

    @abstractmethod
    def watch_position(
        self,
        on_position: Callable[[PositionSample], None],
        on_error: Callable[[int, str], None],
        options: AccuracyOptions,
    ) -> Any:
        """Start a watch and return its handle."""

    @abstractmethod
    def clear_watch(self, handle: Any) -> None:
        """Stop the watch identified by ``handle``."""


class LivePositionSource(PositionSource):
    """Wraps a platform geolocation watch with an adaptive accuracy policy."""

    def __init__(self, backend: GeolocationBackend, distance_to_dest_km: float = math.inf):
        super().__init__()
        self.backend = backend
        self._distance_to_dest_km = distance_to_dest_km
        self._options = accuracy_options_for(distance_to_dest_km)
        self._handle: Any = None
        self.accuracy_meters: Optional[float] = None
        self.last_error: Optional[SensorError] = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def options(self) -> AccuracyOptions:
        return self._options

    def start(self) -> None:
        # Clear old watcher first
        self.stop()
        self._options = accuracy_options_for(self._distance_to_dest_km)
        logger.info(
            f"Starting location watch (high accuracy: {self._options.enable_high_accuracy}, "
            f"max age {self._options.maximum_age_ms} ms)"
        )
        try:
            self._handle = self.backend.watch_position(self._on_position, self._on_error, self._options)
        except SensorError as e:
            logger.error(f"Could not start location watch: {e}")
            self._handle = None
            self.last_error = e
            self._report(e)
        except NotImplementedError:
            error = SensorUnavailable("Geolocation is not supported on this platform.")
            logger.error(str(error))
            self.last_error = error
            self._report(error)

    def stop(self) -> None:
        if self._handle is not None:
            self.backend.clear_watch(self._handle)
            self._handle = None
            logger.debug("Cleared location watch")

    def update_distance(self, distance_to_dest_km: float) -> None:
        """Re-evaluate the accuracy policy; restarts the watch when the bucket changes."""
        self._distance_to_dest_km = distance_to_dest_km
        wanted = accuracy_options_for(distance_to_dest_km)
        if wanted != self._options and self.running:
            logger.info(f"Distance bucket changed at {distance_to_dest_km:.1f} km, restarting watch")
            self.start()
        else:
            self._options = wanted

    def _on_position(self, sample: PositionSample) -> None:
        self.accuracy_meters = sample.accuracy_meters
        self.last_error = None
        self._emit(sample)

    def _on_error(self, code: int, message: str = "") -> None:
        error = classify_sensor_error(code, message or None)
        self.last_error = error
        if error.fatal:
            logger.error(f"Location error ({error.kind}): {error}")
            self.stop()
        else:
            logger.warning(f"Location error ({error.kind}): {error}")
        self._report(error)


class SimulatedPositionSource(PositionSource):
    """
    Plays back a journey along a route.

    Interpolates linearly between consecutive stations over a fixed number of
    steps, advancing one step per tick. Stations without coordinates are
    skipped. Emits each station's exact coordinates at segment boundaries and
    stops after the final segment.
    """

    def __init__(
        self,
        route: Route,
        speed_multiplier: float = 200,
        base_interval_ms: int = BASE_INTERVAL_MS,
        steps_per_segment: int = STEPS_PER_SEGMENT,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        if speed_multiplier <= 0:
            raise ValueError(f"speed_multiplier must be positive, got {speed_multiplier}")
        self.route = route
        self.speed_multiplier = speed_multiplier
        self.tick_ms = base_interval_ms / speed_multiplier
        self.steps_per_segment = steps_per_segment
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.reset()

    def reset(self) -> None:
        self.current_segment = 0
        self.progress = 0.0
        self._step = 0
        self.finished = len(self.route) < 2

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def advance(self) -> Optional[PositionSample]:
        """
        Produce the next sample and emit it.

        Returns:
            The emitted sample, or None once playback has completed.
        """
        stations = self.route.stations
        while not self.finished:
            if self.current_segment >= len(stations) - 1:
                self.finished = True
                logger.info("Simulated journey complete")
                break

            origin = stations[self.current_segment].coordinates
            target = stations[self.current_segment + 1].coordinates
            if origin is None or target is None:
                logger.debug(f"Skipping segment {self.current_segment}: station without coordinates")
                self.current_segment += 1
                self._step = 0
                continue

            t = self._step / self.steps_per_segment
            if self._step >= self.steps_per_segment:
                lat, lon = target.lat, target.lon
            else:
                lat = origin.lat + (target.lat - origin.lat) * t
                lon = origin.lon + (target.lon - origin.lon) * t

            sample = PositionSample(lat=lat, lon=lon, timestamp_ms=int(self._clock() * 1000))
            self.progress = t

            self._step += 1
            if self._step > self.steps_per_segment:
                self._step = 0
                self.current_segment += 1
                if self.current_segment >= len(stations) - 1:
                    self.finished = True
                    logger.info("Simulated journey complete")

            self._emit(sample)
            return sample
        return None

    def start(self) -> None:
        """Start playback on the running event loop."""
        self.stop()
        self.reset()
        if self.finished:
            logger.warning("Route needs at least two stations to simulate")
            return
        logger.info(f"Starting simulation: {len(self.route)} stations, tick {self.tick_ms:.1f} ms")
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._on_task_done)

    def stop(self) -> None:
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None
            logger.debug("Stopped simulation timer")

    async def _run(self) -> None:
        while self.advance() is not None:
            await asyncio.sleep(self.tick_ms / 1000)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error(f"Simulation stopped by an error: {error}", exc_info=error)
        self._report(SensorUnavailable(f"Simulation stopped: {error}"))

    async def wait_finished(self) -> None:
        """Wait until playback completes, fails or is stopped."""
        if self._task is not None:
            await asyncio.wait({self._task})


class PositionSession:
    """
    Owns the single active position source of a trip.

    Starting a new source always stops the previous one first, so there is
    never more than one live watch or simulation timer.
    """

    def __init__(self, on_sample: SampleListener, on_error: Optional[ErrorListener] = None):
        self._on_sample = on_sample
        self._on_error = on_error
        self._active: Optional[PositionSource] = None

    @property
    def active(self) -> Optional[PositionSource]:
        return self._active

    def start(self, source: PositionSource) -> None:
        self.stop()
        source.subscribe(
            lambda sample, src=source: self._dispatch_sample(src, sample),
            lambda error, src=source: self._dispatch_error(src, error),
        )
        self._active = source
        logger.info(f"Position source switched to {type(source).__name__}")
        source.start()

    def stop(self) -> None:
        source, self._active = self._active, None
        if source is not None:
            source.stop()

    def _dispatch_sample(self, source: PositionSource, sample: PositionSample) -> None:
        # Late samples from a replaced source are dropped
        if source is self._active:
            self._on_sample(sample)

    def _dispatch_error(self, source: PositionSource, error: SensorError) -> None:
        # Errors from a replaced source are dropped like its samples
        if source is self._active and self._on_error is not None:
            self._on_error(error)
