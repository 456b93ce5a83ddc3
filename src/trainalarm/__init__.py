"""TrainAlarm - Wake-up alarm for train travellers approaching their destination."""

__version__ = "0.1.0"

from .models import (
    AlarmState,
    CachedRoute,
    Coordinates,
    DestinationSelection,
    PositionSample,
    Route,
    Station,
    Thresholds,
    TrackingMode,
    TripStatus,
)
from .distance import calculate_distance, distance, format_distance
from .alarm import AlarmStateMachine, evaluate_alarm_state
from .dispatcher import JsonChannel, NotificationDispatcher
from .background import BackgroundContext
from .route_cache import OfflineRouteCache
from .route_loader import load_route_csv
from .route_provider import DemoRouteProvider, RouteProviderClient, RouteService
from .trip_tracker import TripTracker

__all__ = [
    "TripTracker",
    "AlarmStateMachine",
    "evaluate_alarm_state",
    "NotificationDispatcher",
    "JsonChannel",
    "BackgroundContext",
    "OfflineRouteCache",
    "RouteProviderClient",
    "DemoRouteProvider",
    "RouteService",
    "load_route_csv",
    "calculate_distance",
    "distance",
    "format_distance",
    "AlarmState",
    "CachedRoute",
    "Coordinates",
    "DestinationSelection",
    "PositionSample",
    "Route",
    "Station",
    "Thresholds",
    "TrackingMode",
    "TripStatus",
]
