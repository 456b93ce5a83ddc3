"""Shared fakes and sample routes for the test suite."""

import math
import sys
from pathlib import Path

# Add src to path so we can import trainalarm
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from trainalarm.models import Coordinates, PositionSample, Route, Station
from trainalarm.position_source import GeolocationBackend


def make_route(points, train_number="12661"):
    """Route of stations named S0, S1, ... at the given (lat, lon) points; None for no coordinates."""
    stations = [
        Station(
            name=f"S{i}",
            code=f"C{i}",
            sequence_index=i,
            coordinates=Coordinates(*point) if point is not None else None,
        )
        for i, point in enumerate(points)
    ]
    return Route(train_number=train_number, stations=stations, train_name="Test Express")


CHENNAI = (13.0827, 80.2707)
CHENGALPATTU = (12.6921, 79.9765)
VILLUPURAM = (11.9393, 79.4924)


# Length of one degree of latitude on the haversine sphere
KM_PER_DEGREE = 6371 * math.pi / 180


def north_of(point, km):
    """Point ``km`` kilometers due north of ``point``."""
    return (point[0] + km / KM_PER_DEGREE, point[1])


class FakeHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Records timers instead of running them; ``fire_all`` runs the live ones."""

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback):
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def fire_all(self):
        for handle in self.pending:
            handle.cancelled = True
            handle.callback()


class RecordingDispatcher:
    """Stands in for NotificationDispatcher and records outbound alerts."""

    def __init__(self):
        self.alarms = []
        self.pre_alerts = []
        self.cached = []
        self.alarm = None

    def trigger_alarm(self, station_name, distance_km):
        self.alarms.append((station_name, distance_km))
        return True

    def pre_alert(self, prev_station_name, dest_station_name):
        self.pre_alerts.append((prev_station_name, dest_station_name))
        return True

    def cache_route(self, cached):
        self.cached.append(cached)
        return True


class FakeGeolocation(GeolocationBackend):
    """Geolocation backend driven by the test."""

    def __init__(self):
        self.watches = {}
        self.options = []
        self._next_id = 1

    def watch_position(self, on_position, on_error, options):
        handle = self._next_id
        self._next_id += 1
        self.watches[handle] = (on_position, on_error)
        self.options.append(options)
        return handle

    def clear_watch(self, handle):
        del self.watches[handle]

    def push(self, lat, lon, accuracy=10.0, timestamp_ms=0):
        for on_position, _ in list(self.watches.values()):
            on_position(PositionSample(lat=lat, lon=lon, timestamp_ms=timestamp_ms, accuracy_meters=accuracy))

    def fail(self, code, message=""):
        for _, on_error in list(self.watches.values()):
            on_error(code, message)
