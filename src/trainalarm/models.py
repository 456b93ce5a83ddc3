"""Data models for the train destination alarm."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from datetime import datetime


class AlarmState(str, Enum):
    """Alarm state of the active trip."""
    SAFE = "safe"
    APPROACHING = "approaching"
    PRE_ALERT = "pre-alert"
    ALARM = "alarm"
    SNOOZED = "snoozed"


class TrackingMode(str, Enum):
    """Which position source drives a trip."""
    LIVE = "live"
    SIMULATED = "simulated"


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""
    lat: float
    lon: float


@dataclass(frozen=True)
class Station:
    """A stop on a route. Coordinates may be missing for upstream data gaps."""
    name: str
    code: str
    sequence_index: int
    coordinates: Optional[Coordinates] = None
    scheduled_arrival: str = "N/A"
    scheduled_departure: str = "N/A"
    delay: str = "00:00"

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["coordinates"] = asdict(self.coordinates) if self.coordinates else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Station":
        coords = data.get("coordinates")
        return cls(
            name=data["name"],
            code=data["code"],
            sequence_index=int(data["sequence_index"]),
            coordinates=Coordinates(coords["lat"], coords["lon"]) if coords else None,
            scheduled_arrival=data.get("scheduled_arrival", "N/A"),
            scheduled_departure=data.get("scheduled_departure", "N/A"),
            delay=data.get("delay", "00:00"),
        )


@dataclass(frozen=True)
class Route:
    """
    Ordered stations of a trip, in travel order.

    Immutable once a trip starts; ``sequence_index`` must be strictly increasing.
    """
    train_number: str
    stations: Tuple[Station, ...]
    train_name: str = ""

    def __post_init__(self):
        # Detach from the caller's list
        object.__setattr__(self, "stations", tuple(self.stations))

    def validate(self) -> None:
        """
        Validate route integrity.

        Raises:
            ValueError: If the route is empty or out of order.
        """
        if not self.stations:
            raise ValueError("route must contain at least one station")
        previous = None
        for station in self.stations:
            if previous is not None and station.sequence_index <= previous:
                raise ValueError(
                    f"sequence_index must be strictly increasing, got {station.sequence_index} "
                    f"after {previous} at '{station.name}'"
                )
            previous = station.sequence_index

    def __len__(self) -> int:
        return len(self.stations)

    def __getitem__(self, index: int) -> Station:
        return self.stations[index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "train_number": self.train_number,
            "train_name": self.train_name,
            "stations": [s.to_dict() for s in self.stations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Route":
        return cls(
            train_number=data["train_number"],
            train_name=data.get("train_name", ""),
            stations=[Station.from_dict(s) for s in data["stations"]],
        )


@dataclass(frozen=True)
class DestinationSelection:
    """Index into a Route identifying the alarm target."""
    index: int

    def validate(self, route: Route) -> None:
        """
        Check the selection against a route.

        Raises:
            ValueError: If the index is out of range or points at the first station.
        """
        if not 0 <= self.index < len(route):
            raise ValueError(f"destination index {self.index} out of range for {len(route)} stations")
        if self.index == 0:
            raise ValueError("destination cannot be the first station")

    def destination(self, route: Route) -> Station:
        return route[self.index]

    def previous(self, route: Route) -> Station:
        return route[self.index - 1]


@dataclass(frozen=True)
class PositionSample:
    """A single position fix. Each new sample supersedes the previous one."""
    lat: float
    lon: float
    timestamp_ms: int
    accuracy_meters: Optional[float] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.lat, self.lon)


@dataclass(frozen=True)
class Thresholds:
    """Alarm thresholds. Pre-alert distance is measured to the previous stop."""
    approach_km: float = 15.0
    pre_alert_km: float = 0.5
    alarm_km: float = 2.0
    snooze_ms: int = 120000
    debounce_samples: int = 1  # 1 = level-triggered, no debounce

    def validate(self) -> None:
        if self.alarm_km < 0 or self.pre_alert_km < 0 or self.approach_km < 0:
            raise ValueError("thresholds must be non-negative")
        if self.snooze_ms <= 0:
            raise ValueError(f"snooze_ms must be positive, got {self.snooze_ms}")
        if self.debounce_samples < 1:
            raise ValueError(f"debounce_samples must be at least 1, got {self.debounce_samples}")


@dataclass(frozen=True)
class CachedRoute:
    """The Route plus its DestinationSelection; the only persisted entity."""
    route: Route
    destination: DestinationSelection

    @property
    def destination_station(self) -> Station:
        return self.destination.destination(self.route)

    @property
    def previous_station(self) -> Station:
        return self.destination.previous(self.route)

    def to_dict(self) -> Dict[str, Any]:
        return {"route": self.route.to_dict(), "destination_index": self.destination.index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedRoute":
        return cls(
            route=Route.from_dict(data["route"]),
            destination=DestinationSelection(int(data["destination_index"])),
        )


@dataclass
class TripStatus:
    """Snapshot of the active trip, published after every sample or event."""
    state: AlarmState
    dist_to_dest_km: float
    dist_to_prev_km: float
    formatted_distance: str
    accuracy_meters: Optional[float] = None
    error: Optional[str] = None
    sample: Optional[PositionSample] = None
    last_updated: datetime = field(default_factory=datetime.now)
