"""Foreground side of the cross-context notification protocol."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from . import messages
from .exceptions import ChannelUnavailable
from .messages import Message, MessageType
from .models import CachedRoute

logger = logging.getLogger(__name__)


class MessageChannel(ABC):
    """One-way asynchronous transport to another execution context."""

    @abstractmethod
    def post(self, message: Message) -> None:
        """
        Hand a message to the other context.

        Raises:
            ChannelUnavailable: If the receiving context is not installed.
        """


class JsonChannel(MessageChannel):
    """
    Delivers messages as JSON text.

    Serializing on every post keeps the two contexts from sharing object
    references. ``receiver`` is None until the other context is installed.
    """

    def __init__(self, receiver: Optional[Callable[[str], None]] = None):
        self.receiver = receiver

    def connect(self, receiver: Callable[[str], None]) -> None:
        self.receiver = receiver

    def disconnect(self) -> None:
        self.receiver = None

    def post(self, message: Message) -> None:
        if self.receiver is None:
            raise ChannelUnavailable(f"No receiver for {message.type.value}")
        self.receiver(message.to_json())


class NotificationDispatcher:
    """
    Sends alert and cache messages to the background context and routes its
    dismiss/snooze replies to the alarm state machine.

    Delivery failures are logged and dropped; the next CACHE_ROUTE or
    TRIGGER_ALARM re-establishes consistency.
    """

    def __init__(self, channel: MessageChannel):
        self.channel = channel
        self.alarm = None  # AlarmStateMachine of the active trip

    def send(self, message: Message) -> bool:
        try:
            self.channel.post(message)
        except ChannelUnavailable as e:
            logger.warning(f"Background context unavailable, dropped {message.type.value}: {e}")
            return False
        logger.debug(f"Sent {message.type.value}")
        return True

    def cache_route(self, cached: CachedRoute) -> bool:
        return self.send(messages.cache_route(cached))

    def pre_alert(self, prev_station_name: str, dest_station_name: str) -> bool:
        return self.send(messages.pre_alert(prev_station_name, dest_station_name))

    def trigger_alarm(self, station_name: str, distance_km: float) -> bool:
        return self.send(messages.trigger_alarm(station_name, distance_km))

    def receive(self, text: str) -> None:
        """Entry point for JSON messages from the background context."""
        try:
            message = Message.from_json(text)
        except ValueError as e:
            logger.warning(f"Ignoring malformed message from background: {e}")
            return
        self.handle_message(message)

    def handle_message(self, message: Message) -> None:
        if self.alarm is None:
            logger.debug(f"No active trip, ignoring {message.type.value}")
            return

        if message.type == MessageType.DISMISS_ALARM:
            self.alarm.dismiss()
        elif message.type == MessageType.SNOOZE_ALARM:
            duration_ms = message.payload.duration_ms if message.payload is not None else None
            self.alarm.snooze(duration_ms)
        else:
            logger.warning(f"Unexpected {message.type.value} sent to foreground")
