"""Loan event fan-out and notification delivery channels.

Two pieces work together here:

- ``LoanEventDispatcher`` keeps an ordered list of subscribers and calls
  each one's ``on_loan_event(user_id, isbn, message)`` synchronously, in
  registration order.
- ``NotificationService`` is the subscriber that turns events into notices.
  It renders through exactly one active ``NotificationChannel`` at a time,
  picked by name from ``CHANNELS``. Switching channels only affects events
  dispatched afterwards.

Channels only format and write; nothing is actually sent over the network.
"""
import sys
import threading
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from email.mime.text import MIMEText
from enum import Enum
from typing import Deque, Dict, List, NamedTuple, Optional, Protocol, TextIO, Type

from pydantic import BaseModel, Field

from circulation.core.config import settings
from circulation.core.errors import UnknownChannel
from circulation.core.logging import get_logger
from circulation.domain.events import LoanEvent
from circulation.services.users import UserService
from circulation.utils.formatting import render_frame, sanitize_text

logger = get_logger(__name__)

EMAIL_SUBJECT = "Library notification"


class NotificationChannel(str, Enum):
    CONSOLE = "console"
    EMAIL = "email"


class Delivery(BaseModel):
    """Record of one rendered notice."""
    channel: NotificationChannel
    recipient: str
    message: str
    rendered: str
    delivered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ==================== CHANNELS ====================

class NotificationRenderer(ABC):
    """One delivery channel: formats a notice and writes it to a text stream."""

    channel: NotificationChannel

    def __init__(self, stream: Optional[TextIO] = None, sender: Optional[str] = None):
        """Initialize the renderer.

        Args:
            stream: Where rendered notices go (stdout at call time if None)
            sender: From address for channels that show one
        """
        self.stream = stream
        self.sender = sender or settings.library_sender_email
        self.logger = get_logger(__name__, {"channel": self.channel.value})

    @abstractmethod
    def render(self, recipient: str, message: str) -> str:
        """Return the full text of the notice."""

    def deliver(self, recipient: str, message: str) -> Delivery:
        message = sanitize_text(message)
        rendered = self.render(recipient, message)
        out = self.stream if self.stream is not None else sys.stdout
        print(rendered, file=out)

        self.logger.info(f"Notification delivered via {self.channel.value} to {recipient}")
        return Delivery(
            channel=self.channel,
            recipient=recipient,
            message=message,
            rendered=rendered,
        )


class ConsoleNotification(NotificationRenderer):
    channel = NotificationChannel.CONSOLE

    def render(self, recipient: str, message: str) -> str:
        return render_frame(
            "📢 NOTIFICATION",
            [f"Recipient : {recipient}"],
            message.split("\n"),
        )


class EmailNotification(NotificationRenderer):
    """Simulated email: builds the MIME message and prints it instead of sending."""

    channel = NotificationChannel.EMAIL

    def build_message(self, recipient: str, message: str) -> MIMEText:
        msg = MIMEText(message, "plain", "utf-8")
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = EMAIL_SUBJECT
        return msg

    def render(self, recipient: str, message: str) -> str:
        msg = self.build_message(recipient, message)
        return render_frame(
            "📧 EMAIL",
            [
                f"From    : {msg['From']}",
                f"To      : {msg['To']}",
                f"Subject : {msg['Subject']}",
            ],
            ["Message :"] + [f"  {line}" for line in message.split("\n")],
            footer="✅ Email sent",
        )


CHANNELS: Dict[NotificationChannel, Type[NotificationRenderer]] = {
    NotificationChannel.CONSOLE: ConsoleNotification,
    NotificationChannel.EMAIL: EmailNotification,
}


def available_channels() -> tuple:
    return tuple(channel.value for channel in CHANNELS)


def create_channel(
    name: str,
    stream: Optional[TextIO] = None,
    sender: Optional[str] = None,
) -> NotificationRenderer:
    """Build the renderer registered under ``name`` (case-insensitive).

    Raises:
        UnknownChannel: If ``name`` is empty or not in ``CHANNELS``
    """
    key = (name or "").strip().lower()
    try:
        channel = NotificationChannel(key)
    except ValueError:
        raise UnknownChannel(name, available_channels()) from None
    return CHANNELS[channel](stream=stream, sender=sender)


# ==================== DISPATCH ====================

class LoanSubscriber(Protocol):
    def on_loan_event(self, user_id: str, isbn: str, message: str) -> None:
        ...


class SubscriberFailure(NamedTuple):
    subscriber: LoanSubscriber
    error: Exception


class LoanEventDispatcher:
    """Ordered, synchronous fan-out of loan events.

    With ``isolate_failures`` on, an exception from one subscriber is logged
    and the remaining subscribers still run. With it off, the first exception
    propagates to whoever triggered the event and later subscribers are
    skipped.
    """

    def __init__(self, isolate_failures: bool = True):
        self.isolate_failures = isolate_failures
        self._subscribers: List[LoanSubscriber] = []
        self._lock = threading.Lock()

    @property
    def subscribers(self) -> tuple:
        with self._lock:
            return tuple(self._subscribers)

    def subscribe(self, subscriber: LoanSubscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)
        logger.debug(f"Subscriber registered: {type(subscriber).__name__}")

    def unsubscribe(self, subscriber: LoanSubscriber) -> bool:
        with self._lock:
            if subscriber not in self._subscribers:
                return False
            self._subscribers.remove(subscriber)
        return True

    def notify(self, user_id: str, isbn: str, message: str) -> List[SubscriberFailure]:
        """Call every subscriber in registration order.

        Returns:
            Failures swallowed in isolated mode (always empty otherwise)
        """
        failures: List[SubscriberFailure] = []
        for subscriber in self.subscribers:
            if not self.isolate_failures:
                subscriber.on_loan_event(user_id, isbn, message)
                continue
            try:
                subscriber.on_loan_event(user_id, isbn, message)
            except Exception as exc:
                logger.error(
                    f"Subscriber {type(subscriber).__name__} failed: {exc}",
                    extra={"user_id": user_id, "isbn": isbn, "error_type": type(exc).__name__},
                    exc_info=True
                )
                failures.append(SubscriberFailure(subscriber, exc))
        return failures

    def publish(self, event: LoanEvent) -> List[SubscriberFailure]:
        logger.info(
            f"{event.kind.value} {event.loan_id}",
            extra={
                "event": event.kind.value,
                "loan_id": event.loan_id,
                "user_id": event.user_id,
                "isbn": event.isbn,
            }
        )
        return self.notify(event.user_id, event.isbn, event.message)


# ==================== BRIDGE ====================

class NotificationService:
    """Subscriber that delivers loan events through the active channel.

    Example:
        >>> notifier = NotificationService(users)
        >>> dispatcher.subscribe(notifier)
        >>> notifier.set_channel("email")
    """

    def __init__(
        self,
        users: UserService,
        channel: Optional[str] = None,
        stream: Optional[TextIO] = None,
        sender: Optional[str] = None,
        history_size: int = 100,
    ):
        self.users = users
        self.stream = stream
        self.sender = sender
        self._renderer = create_channel(
            channel or settings.default_notification_channel, stream=stream, sender=sender
        )
        self.deliveries: Deque[Delivery] = deque(maxlen=history_size)

    @property
    def channel(self) -> NotificationChannel:
        return self._renderer.channel

    def set_channel(self, name: str) -> NotificationChannel:
        """Switch the active channel for every later event.

        Raises:
            UnknownChannel: If ``name`` is not a registered channel
        """
        self._renderer = create_channel(name, stream=self.stream, sender=self.sender)
        logger.info(
            f"Notification channel changed: {self.channel.value}",
            extra={"channel": self.channel.value}
        )
        return self.channel

    def on_loan_event(self, user_id: str, isbn: str, message: str) -> None:
        # Fall back to the user id when there is no address on file
        recipient = self.users.user_email(user_id) or user_id
        self.send(recipient, message)

    def send(self, recipient: str, message: str) -> Delivery:
        delivery = self._renderer.deliver(recipient, message)
        self.deliveries.append(delivery)
        return delivery
