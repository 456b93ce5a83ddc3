"""Message protocol between the foreground tracker and the background renderer."""

import json
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Union

from .models import CachedRoute


class MessageType(str, Enum):
    CACHE_ROUTE = "CACHE_ROUTE"
    PRE_ALERT = "PRE_ALERT"
    TRIGGER_ALARM = "TRIGGER_ALARM"
    DISMISS_ALARM = "DISMISS_ALARM"
    SNOOZE_ALARM = "SNOOZE_ALARM"


# Messages the foreground sends; the rest flow background -> foreground
FOREGROUND_TO_BACKGROUND = frozenset(
    {MessageType.CACHE_ROUTE, MessageType.PRE_ALERT, MessageType.TRIGGER_ALARM}
)


@dataclass(frozen=True)
class PreAlertPayload:
    prev_station_name: str
    dest_station_name: str


@dataclass(frozen=True)
class TriggerAlarmPayload:
    station_name: str
    distance_km: float


@dataclass(frozen=True)
class SnoozePayload:
    duration_ms: int = 120000


Payload = Union[CachedRoute, PreAlertPayload, TriggerAlarmPayload, SnoozePayload, None]


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {value!r}")
    return value


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class Message:
    """
    A complete, self-contained message.

    Payloads carry full data rather than references to foreground state,
    since the two contexts share no memory.
    """
    type: MessageType
    payload: Payload = None

    @property
    def to_background(self) -> bool:
        return self.type in FOREGROUND_TO_BACKGROUND

    def to_dict(self) -> Dict[str, Any]:
        if self.payload is None:
            payload = None
        elif isinstance(self.payload, CachedRoute):
            payload = self.payload.to_dict()
        else:
            payload = asdict(self.payload)
        return {"type": self.type.value, "payload": payload}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """
        Decode a message.

        Raises:
            ValueError: If the input is not an object, the type is unknown or
                the payload does not match it.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Message must be an object, got {type(data).__name__}")
        try:
            message_type = MessageType(data["type"])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Unknown message type: {data.get('type')!r}")

        raw: Optional[Dict[str, Any]] = data.get("payload")
        try:
            if message_type == MessageType.CACHE_ROUTE:
                payload: Payload = CachedRoute.from_dict(raw)
                payload.destination.validate(payload.route)
            elif message_type == MessageType.PRE_ALERT:
                payload = PreAlertPayload(
                    prev_station_name=_text(raw["prev_station_name"]),
                    dest_station_name=_text(raw["dest_station_name"]),
                )
            elif message_type == MessageType.TRIGGER_ALARM:
                payload = TriggerAlarmPayload(
                    station_name=_text(raw["station_name"]),
                    distance_km=_number(raw["distance_km"]),
                )
            elif message_type == MessageType.SNOOZE_ALARM:
                payload = SnoozePayload(**(raw or {}))
                if isinstance(payload.duration_ms, bool) or not isinstance(payload.duration_ms, int):
                    raise TypeError(f"duration_ms must be an integer, got {payload.duration_ms!r}")
                if payload.duration_ms <= 0:
                    raise ValueError(f"duration_ms must be positive, got {payload.duration_ms}")
            else:
                payload = None
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise ValueError(f"Malformed {message_type.value} payload: {e}")

        return cls(type=message_type, payload=payload)

    @classmethod
    def from_json(cls, text: str) -> "Message":
        return cls.from_dict(json.loads(text))


def cache_route(cached: CachedRoute) -> Message:
    return Message(MessageType.CACHE_ROUTE, cached)


def pre_alert(prev_station_name: str, dest_station_name: str) -> Message:
    return Message(MessageType.PRE_ALERT, PreAlertPayload(prev_station_name, dest_station_name))


def trigger_alarm(station_name: str, distance_km: float) -> Message:
    return Message(MessageType.TRIGGER_ALARM, TriggerAlarmPayload(station_name, distance_km))


def dismiss_alarm() -> Message:
    return Message(MessageType.DISMISS_ALARM)


def snooze_alarm(duration_ms: int = 120000) -> Message:
    return Message(MessageType.SNOOZE_ALARM, SnoozePayload(duration_ms))
