"""Background context that renders persistent alerts while the foreground is suspended."""

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from . import messages
from .distance import format_distance
from .exceptions import ChannelUnavailable
from .messages import Message, MessageType
from .route_cache import OfflineRouteCache

logger = logging.getLogger(__name__)

ALARM_TAG = "destination-alarm"
PRE_ALERT_TAG = "pre-alert"

ALARM_VIBRATION = (500, 200, 500, 200, 500, 200, 1000)
PRE_ALERT_VIBRATION = (200, 100, 200)
PRE_ALERT_TIMEOUT_MS = 10000

ACTION_DISMISS = "dismiss"
ACTION_SNOOZE = "snooze"

DEFAULT_SNOOZE_MS = 120000


@dataclass
class Notification:
    """A rendered alert. A new notification with the same tag replaces the old one."""
    tag: str
    title: str
    body: str
    require_interaction: bool
    vibrate: Tuple[int, ...] = ()
    actions: Tuple[Tuple[str, str], ...] = ()
    timeout_ms: Optional[int] = None  # None = stays until user action
    shown_at: float = field(default_factory=time.time)

    def expired(self, now: float) -> bool:
        if self.timeout_ms is None:
            return False
        return now - self.shown_at >= self.timeout_ms / 1000


class NotificationRenderer(ABC):
    """Platform notification surface."""

    @abstractmethod
    def show(self, notification: Notification) -> None:
        """Display ``notification``, replacing any with the same tag."""

    @abstractmethod
    def close(self, tag: str) -> None:
        """Remove the notification with ``tag`` if shown."""


class InMemoryRenderer(NotificationRenderer):
    """Keeps at most one notification per tag."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._shown: Dict[str, Notification] = {}

    def show(self, notification: Notification) -> None:
        notification.shown_at = self._clock()
        self._shown[notification.tag] = notification

    def close(self, tag: str) -> None:
        self._shown.pop(tag, None)

    def active(self) -> Dict[str, Notification]:
        now = self._clock()
        for tag in [t for t, n in self._shown.items() if n.expired(now)]:
            del self._shown[tag]
        return dict(self._shown)


class MessageInbox:
    """
    Pending inbound messages; persisted to a JSON file when ``path`` is set.

    A message stays in the inbox until ``ack`` removes it, so a context that
    is torn down mid-batch resumes with the unhandled messages.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path).expanduser() if path else None
        self._pending: List[str] = []
        if self.path is not None and self.path.exists():
            self._pending = self._read()

    def __len__(self) -> int:
        return len(self._pending)

    def put(self, text: str) -> None:
        self._pending.append(text)
        self._flush()

    def peek(self) -> Optional[str]:
        """Oldest pending message, or None when empty."""
        return self._pending[0] if self._pending else None

    def ack(self) -> None:
        """Remove the oldest pending message once it has been handled."""
        if self._pending:
            self._pending.pop(0)
            self._flush()

    def _read(self) -> List[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"[background] Inbox at {self.path} is unreadable, starting empty: {e}")
            return []
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            logger.warning(f"[background] Inbox at {self.path} has an unexpected layout, starting empty")
            return []
        return data

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._pending, f)
        os.replace(tmp_path, self.path)


class BackgroundContext:
    """
    Message-driven renderer and relay.

    Has no sensing capability and shares no memory with the foreground: it
    only sees complete JSON messages, its own inbox and the offline route
    cache. It may be suspended between events and resumes cold.
    """

    def __init__(
        self,
        renderer: NotificationRenderer,
        cache: OfflineRouteCache,
        inbox: Optional[MessageInbox] = None,
        open_app: Optional[Callable[[], None]] = None,
    ):
        self.renderer = renderer
        self.cache = cache
        self.inbox = inbox or MessageInbox()
        self.open_app = open_app
        self.installed = False
        self._clients: List[Callable[[str], None]] = []

    def install(self) -> None:
        """Activate the context. Until then ``receive`` refuses messages and ``wake`` leaves them queued."""
        self.installed = True
        logger.info("Background context installed")

    def connect_client(self, receiver: Callable[[str], None]) -> None:
        """Register a foreground window that accepts JSON messages."""
        if receiver not in self._clients:
            self._clients.append(receiver)

    def disconnect_client(self, receiver: Callable[[str], None]) -> None:
        if receiver in self._clients:
            self._clients.remove(receiver)

    def receive(self, text: str) -> None:
        """
        Accept a message from the foreground and wake to process it.

        Raises:
            ChannelUnavailable: If the context has not been installed yet.
        """
        if not self.installed:
            raise ChannelUnavailable("Background context is not installed")
        self.inbox.put(text)
        self.wake()

    def wake(self) -> int:
        """
        Process pending inbox messages in order. Returns the number handled.

        Each message leaves the inbox only after it has been handled or
        dropped as malformed.
        """
        if not self.installed:
            logger.warning(f"[background] Not installed, leaving {len(self.inbox)} messages pending")
            return 0

        handled = 0
        while True:
            text = self.inbox.peek()
            if text is None:
                break
            try:
                message = Message.from_json(text)
            except ValueError as e:
                logger.warning(f"[background] Dropping malformed message: {e}")
                self.inbox.ack()
                continue
            try:
                self.handle_message(message)
            except Exception as e:
                logger.warning(f"[background] Failed to handle {message.type.value}, dropped: {e}", exc_info=True)
            else:
                handled += 1
            self.inbox.ack()
        return handled

    def handle_message(self, message: Message) -> None:
        if message.type == MessageType.CACHE_ROUTE:
            self.cache.save(message.payload)
        elif message.type == MessageType.TRIGGER_ALARM:
            self.show_alarm(message.payload.station_name, message.payload.distance_km)
        elif message.type == MessageType.PRE_ALERT:
            self.show_pre_alert(message.payload.prev_station_name, message.payload.dest_station_name)
        else:
            logger.warning(f"[background] Unexpected {message.type.value} from foreground")

    def show_alarm(self, station_name: str, distance_km: float) -> None:
        station_name = station_name or self._cached_names()[1]
        self.renderer.show(Notification(
            tag=ALARM_TAG,
            title="WAKE UP! Destination Approaching!",
            body=f"{station_name} is {format_distance(distance_km)} away. Get ready!",
            require_interaction=True,
            vibrate=ALARM_VIBRATION,
            actions=((ACTION_DISMISS, "I'm Awake!"), (ACTION_SNOOZE, "Snooze 2 min")),
        ))
        logger.info(f"[background] Alarm shown for {station_name}")

    def show_pre_alert(self, prev_station_name: str, dest_station_name: str) -> None:
        if not prev_station_name or not dest_station_name:
            cached_prev, cached_dest = self._cached_names()
            prev_station_name = prev_station_name or cached_prev
            dest_station_name = dest_station_name or cached_dest
        self.renderer.show(Notification(
            tag=PRE_ALERT_TAG,
            title="Next Stop Alert",
            body=f"Leaving {prev_station_name}. Your destination {dest_station_name} is the next stop!",
            require_interaction=False,
            vibrate=PRE_ALERT_VIBRATION,
            timeout_ms=PRE_ALERT_TIMEOUT_MS,
        ))
        logger.info(f"[background] Pre-alert shown for {dest_station_name}")

    def on_notification_click(self, tag: str, action: Optional[str] = None) -> None:
        """Handle a user interaction with a rendered notification."""
        self.renderer.close(tag)

        if action == ACTION_DISMISS:
            self._post_to_clients(messages.dismiss_alarm())
        elif action == ACTION_SNOOZE:
            self._post_to_clients(messages.snooze_alarm(DEFAULT_SNOOZE_MS))
        elif not self._clients and self.open_app is not None:
            self.open_app()

    def _post_to_clients(self, message: Message) -> None:
        if not self._clients:
            logger.warning(f"[background] No foreground client for {message.type.value}")
            return
        text = message.to_json()
        for receiver in list(self._clients):
            receiver(text)

    def _cached_names(self) -> Tuple[str, str]:
        cached = self.cache.load()
        if cached is None:
            return "your previous stop", "your destination"
        return cached.previous_station.name, cached.destination_station.name
