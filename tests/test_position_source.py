"""Tests for live and simulated position sources."""

import asyncio
import math
import unittest

from trip_fixtures import CHENNAI, CHENGALPATTU, VILLUPURAM, FakeGeolocation, make_route
from trainalarm.models import PositionSample
from trainalarm.exceptions import (
    SensorPermissionDenied,
    SensorTimeout,
    SensorUnavailable,
    SensorUnknownError,
    classify_sensor_error,
)
from trainalarm.position_source import (
    HIGH_ACCURACY_OPTIONS,
    LOW_ACCURACY_OPTIONS,
    LivePositionSource,
    PositionSession,
    SimulatedPositionSource,
    accuracy_options_for,
)


class TestSimulatedPositionSource(unittest.TestCase):
    """Test route playback."""

    def collect(self, source):
        samples = []
        source.subscribe(samples.append)
        while source.advance() is not None:
            pass
        return samples

    def test_two_station_playback_reaches_destination_and_stops(self):
        route = make_route([CHENNAI, VILLUPURAM])
        source = SimulatedPositionSource(route, speed_multiplier=200)

        samples = self.collect(source)

        self.assertEqual(source.tick_ms, 25)
        self.assertEqual(len(samples), 101)
        self.assertEqual((samples[0].lat, samples[0].lon), CHENNAI)
        self.assertEqual((samples[-1].lat, samples[-1].lon), VILLUPURAM)
        self.assertTrue(source.finished)
        self.assertIsNone(source.advance())
        self.assertEqual(len(samples), 101)

    def test_interpolates_linearly(self):
        route = make_route([(10.0, 70.0), (11.0, 72.0)])
        source = SimulatedPositionSource(route, steps_per_segment=4)

        samples = self.collect(source)

        self.assertEqual([s.lat for s in samples], [10.0, 10.25, 10.5, 10.75, 11.0])
        self.assertEqual([s.lon for s in samples], [70.0, 70.5, 71.0, 71.5, 72.0])

    def test_exact_arrival_at_every_station(self):
        route = make_route([CHENNAI, CHENGALPATTU, VILLUPURAM])
        source = SimulatedPositionSource(route, steps_per_segment=7)

        points = [(s.lat, s.lon) for s in self.collect(source)]

        self.assertIn(CHENGALPATTU, points)
        self.assertEqual(points[-1], VILLUPURAM)

    def test_station_without_coordinates_is_skipped(self):
        route = make_route([CHENNAI, None, CHENGALPATTU, VILLUPURAM])
        source = SimulatedPositionSource(route, steps_per_segment=10)

        samples = self.collect(source)

        # Segments touching the gap are skipped; only CGL -> VM is played
        self.assertEqual(len(samples), 11)
        self.assertEqual((samples[0].lat, samples[0].lon), CHENGALPATTU)
        self.assertEqual((samples[-1].lat, samples[-1].lon), VILLUPURAM)

    def test_single_station_route_never_emits(self):
        source = SimulatedPositionSource(make_route([CHENNAI]))
        self.assertTrue(source.finished)
        self.assertIsNone(source.advance())

    def test_progress_is_tracked(self):
        route = make_route([CHENNAI, CHENGALPATTU, VILLUPURAM])
        source = SimulatedPositionSource(route, steps_per_segment=4)
        for _ in range(7):
            source.advance()
        self.assertEqual(source.current_segment, 1)
        self.assertEqual(source.progress, 0.25)

    def test_rejects_non_positive_speed(self):
        with self.assertRaises(ValueError):
            SimulatedPositionSource(make_route([CHENNAI, VILLUPURAM]), speed_multiplier=0)

    def test_runs_on_event_loop_until_complete(self):
        route = make_route([CHENNAI, VILLUPURAM])
        samples = []

        async def run():
            source = SimulatedPositionSource(route, speed_multiplier=5000, steps_per_segment=10)
            source.subscribe(samples.append)
            source.start()
            self.assertTrue(source.running)
            await asyncio.wait_for(source.wait_finished(), timeout=5)
            self.assertFalse(source.running)

        asyncio.run(run())

        self.assertEqual(len(samples), 11)
        self.assertEqual((samples[-1].lat, samples[-1].lon), VILLUPURAM)

    def test_stop_cancels_playback(self):
        route = make_route([CHENNAI, VILLUPURAM])
        samples = []

        async def run():
            source = SimulatedPositionSource(route, speed_multiplier=1)
            source.subscribe(samples.append)
            source.start()
            await asyncio.sleep(0.01)
            source.stop()
            self.assertFalse(source.running)

        asyncio.run(run())

        self.assertEqual(len(samples), 1)

    def test_listener_error_stops_playback_and_is_reported(self):
        route = make_route([CHENNAI, VILLUPURAM])
        errors = []

        def fail_on_sample(sample):
            raise RuntimeError("display crashed")

        async def run():
            source = SimulatedPositionSource(route, speed_multiplier=5000, steps_per_segment=10)
            source.subscribe(fail_on_sample, errors.append)
            source.start()
            with self.assertLogs("trainalarm.position_source", level="ERROR"):
                await asyncio.wait_for(source.wait_finished(), timeout=5)
            self.assertFalse(source.running)

        asyncio.run(run())

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], SensorUnavailable)
        self.assertTrue(errors[0].fatal)
        self.assertIn("display crashed", str(errors[0]))


class TestLivePositionSource(unittest.TestCase):
    """Test the geolocation watch wrapper."""

    def setUp(self):
        self.backend = FakeGeolocation()
        self.source = LivePositionSource(self.backend)
        self.samples = []
        self.errors = []
        self.source.subscribe(self.samples.append, self.errors.append)

    def test_accuracy_policy(self):
        self.assertIs(accuracy_options_for(49.9), HIGH_ACCURACY_OPTIONS)
        self.assertIs(accuracy_options_for(50.0), LOW_ACCURACY_OPTIONS)
        self.assertIs(accuracy_options_for(math.inf), LOW_ACCURACY_OPTIONS)
        self.assertEqual(HIGH_ACCURACY_OPTIONS.maximum_age_ms, 5000)
        self.assertEqual(HIGH_ACCURACY_OPTIONS.timeout_ms, 10000)
        self.assertEqual(LOW_ACCURACY_OPTIONS.maximum_age_ms, 60000)
        self.assertEqual(LOW_ACCURACY_OPTIONS.timeout_ms, 30000)

    def test_starts_low_accuracy_when_distance_unknown(self):
        self.source.start()
        self.assertEqual(self.backend.options, [LOW_ACCURACY_OPTIONS])
        self.assertEqual(len(self.backend.watches), 1)

    def test_emits_samples(self):
        self.source.start()
        self.backend.push(12.0, 79.5, accuracy=8.0)
        self.assertEqual(len(self.samples), 1)
        self.assertEqual(self.source.accuracy_meters, 8.0)

    def test_restarts_watch_when_bucket_changes(self):
        self.source.start()
        self.source.update_distance(120.0)
        self.assertEqual(len(self.backend.options), 1)

        self.source.update_distance(30.0)

        self.assertEqual(self.backend.options, [LOW_ACCURACY_OPTIONS, HIGH_ACCURACY_OPTIONS])
        self.assertEqual(len(self.backend.watches), 1)

        self.source.update_distance(20.0)
        self.assertEqual(len(self.backend.options), 2)

    def test_timeout_is_reported_but_watch_continues(self):
        self.source.start()
        self.backend.fail(3, "timeout")

        self.assertIsInstance(self.errors[0], SensorTimeout)
        self.assertTrue(self.source.running)

        self.backend.push(12.0, 79.5)
        self.assertEqual(len(self.samples), 1)
        self.assertIsNone(self.source.last_error)

    def test_permission_denied_releases_watch(self):
        self.source.start()
        self.backend.fail(1)

        self.assertIsInstance(self.errors[0], SensorPermissionDenied)
        self.assertFalse(self.source.running)
        self.assertEqual(self.backend.watches, {})

    def test_stop_clears_watch(self):
        self.source.start()
        self.source.stop()
        self.source.stop()
        self.assertEqual(self.backend.watches, {})

    def test_error_classification(self):
        self.assertTrue(classify_sensor_error(1).fatal)
        self.assertTrue(classify_sensor_error(2).fatal)
        self.assertFalse(classify_sensor_error(3).fatal)
        self.assertIsInstance(classify_sensor_error(99), SensorUnknownError)


class TestPositionSession(unittest.TestCase):
    """Only one source may be active at a time."""

    def test_starting_new_source_stops_previous(self):
        backend = FakeGeolocation()
        received = []
        session = PositionSession(received.append)

        first = LivePositionSource(backend)
        session.start(first)
        second = LivePositionSource(backend)
        session.start(second)

        self.assertFalse(first.running)
        self.assertTrue(second.running)
        self.assertEqual(len(backend.watches), 1)
        self.assertIs(session.active, second)

    def test_samples_from_replaced_source_are_dropped(self):
        received = []
        session = PositionSession(received.append)

        replaced = LivePositionSource(FakeGeolocation())
        session.start(replaced)
        session.start(LivePositionSource(FakeGeolocation()))

        # A late callback from the replaced watch
        replaced._on_position(PositionSample(lat=12.0, lon=79.5, timestamp_ms=0))

        self.assertEqual(received, [])

    def test_errors_from_replaced_source_are_dropped(self):
        errors = []
        session = PositionSession(lambda s: None, errors.append)

        replaced = LivePositionSource(FakeGeolocation())
        session.start(replaced)
        session.start(LivePositionSource(FakeGeolocation()))

        replaced._on_error(1, "denied after switch")

        self.assertEqual(errors, [])

    def test_stop_releases_source(self):
        backend = FakeGeolocation()
        session = PositionSession(lambda s: None)
        session.start(LivePositionSource(backend))
        session.stop()
        self.assertIsNone(session.active)
        self.assertEqual(backend.watches, {})


if __name__ == "__main__":
    unittest.main()
