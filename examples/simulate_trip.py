"""Run a simulated journey and print alarm state changes.

Usage:
    python examples/simulate_trip.py [TRAIN_NUMBER] [DESTINATION]
    python examples/simulate_trip.py --csv STATIONS.csv [DESTINATION]
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Add src to path so we can import trainalarm
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from trainalarm.background import BackgroundContext, InMemoryRenderer
from trainalarm.config import Settings
from trainalarm.dispatcher import JsonChannel, NotificationDispatcher
from trainalarm.exceptions import RouteUnavailable
from trainalarm.route_cache import OfflineRouteCache
from trainalarm.route_loader import load_route_csv
from trainalarm.trip_tracker import TripTracker

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


async def run_trip(train_number: str, destination: str, csv_path: Optional[str] = None) -> None:
    """
    Simulate a journey on ``train_number`` and alarm before ``destination``.

    Args:
        train_number: 5-digit train number (e.g., "12661")
        destination: Station name or partial name
        csv_path: Load the route from this stations CSV instead of the provider
    """
    settings = Settings.from_env()

    renderer = InMemoryRenderer()
    background = BackgroundContext(renderer, OfflineRouteCache(settings.cache_path))
    background.install()

    to_background = JsonChannel(background.receive)
    dispatcher = NotificationDispatcher(to_background)
    background.connect_client(dispatcher.receive)

    tracker = TripTracker(dispatcher, settings=settings)
    if csv_path:
        route = load_route_csv(csv_path)
    else:
        route = tracker.route_service.fetch_route(train_number).route

    matches = [s for s in route.stations[1:] if destination.lower() in s.name.lower()]
    if not matches:
        print(f"No station matching '{destination}'. Stops on this train:")
        for station in route.stations:
            print(f"  {station.sequence_index:2d}. {station.name} ({station.code})")
        sys.exit(1)
    index = route.stations.index(matches[0])

    last_state = None

    def on_status(status):
        nonlocal last_state
        if status.error:
            print(f"{'':>12}  error: {status.error}")
        if status.state != last_state:
            print(f"{status.state.value:>12}  {status.formatted_distance} to {matches[0].name}")
            last_state = status.state
            for notification in renderer.active().values():
                print(f"{'':>12}  [{notification.tag}] {notification.title}: {notification.body}")

    tracker.add_status_listener(on_status)
    tracker.start_trip(route, index, mode="simulated")
    try:
        await tracker.session.active.wait_finished()
    finally:
        tracker.cleanup()


if __name__ == "__main__":
    args = sys.argv[1:]
    csv_file = None
    train = "12661"
    if args[:1] == ["--csv"]:
        if len(args) < 2:
            print(__doc__)
            sys.exit(2)
        csv_file = args[1]
        args = args[2:]
    elif args:
        train, args = args[0], args[1:]
    destination_name = " ".join(args) if args else "Villupuram"

    try:
        asyncio.run(run_trip(train, destination_name, csv_file))
    except RouteUnavailable as e:
        print(f"Cannot start trip: {e.reason}")
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
