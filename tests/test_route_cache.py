"""Tests for the single-slot offline route cache."""

import json
import tempfile
import unittest
from pathlib import Path

from trip_fixtures import CHENGALPATTU, CHENNAI, VILLUPURAM, make_route
from trainalarm.models import CachedRoute, DestinationSelection
from trainalarm.route_cache import SCHEMA_VERSION, OfflineRouteCache


class TestOfflineRouteCache(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "cache" / "cached-route.json"
        self.cache = OfflineRouteCache(self.path)
        self.cached = CachedRoute(
            route=make_route([CHENNAI, None, VILLUPURAM]),
            destination=DestinationSelection(2),
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_empty_slot(self):
        self.assertIsNone(self.cache.load())

    def test_save_and_load_from_new_instance(self):
        self.cache.save(self.cached)

        loaded = OfflineRouteCache(self.path).load()

        self.assertEqual(loaded, self.cached)
        self.assertIsNone(loaded.route[1].coordinates)
        self.assertEqual(loaded.destination_station.name, "S2")

    def test_record_carries_schema_version_and_trip(self):
        self.cache.save(self.cached)
        with open(self.path, encoding="utf-8") as f:
            record = json.load(f)
        self.assertEqual(record["schema_version"], SCHEMA_VERSION)
        self.assertEqual(record["trip"], "12661")

    def test_new_trip_overwrites(self):
        self.cache.save(self.cached)
        other = CachedRoute(
            route=make_route([CHENNAI, CHENGALPATTU], train_number="16127"),
            destination=DestinationSelection(1),
        )
        self.cache.save(other)
        self.assertEqual(self.cache.load(), other)

    def test_unknown_schema_version_ignored(self):
        self.cache.save(self.cached)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"schema_version": 99}, f)
        self.assertIsNone(self.cache.load())

    def test_corrupt_file_ignored(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("trainalarm.route_cache", level="WARNING"):
            self.assertIsNone(self.cache.load())

    def test_clear(self):
        self.cache.save(self.cached)
        self.cache.clear()
        self.assertFalse(self.path.exists())
        self.assertIsNone(self.cache.load())

    def test_memory_slot(self):
        cache = OfflineRouteCache()
        cache.save(self.cached)
        self.assertEqual(cache.load(), self.cached)
        cache.clear()
        self.assertIsNone(cache.load())


if __name__ == "__main__":
    unittest.main()
