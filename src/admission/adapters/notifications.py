"""User-facing notification adapters.

The saga only decides *what* the operator is told. Rendering, styling and
auto-dismiss timers belong to the web client, which receives notifications
from the Redis channel.
"""

import abc
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis

from config import get_notification_channel, get_redis_host_and_port

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationAction:
    """A button the client renders next to a notification."""
    label: str
    action: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Notification:
    level: str  # 'success' | 'error' | 'warning'
    message: str
    persistent: bool = False
    actions: List[NotificationAction] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


class AbstractNotifier(abc.ABC):

    def success(self, message: str) -> None:
        self._send(Notification(level="success", message=message))

    def error(self, message: str, persistent: bool = False,
              actions: Optional[List[NotificationAction]] = None) -> None:
        self._send(Notification(level="error", message=message,
                                persistent=persistent, actions=list(actions or [])))

    def warning(self, message: str, persistent: bool = False,
                actions: Optional[List[NotificationAction]] = None) -> None:
        self._send(Notification(level="warning", message=message,
                                persistent=persistent, actions=list(actions or [])))

    @abc.abstractmethod
    def _send(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotifier(AbstractNotifier):
    """Writes notifications to the application log."""

    _LEVELS = {
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def _send(self, notification):
        actions = ", ".join(action.label for action in notification.actions)
        logger.log(
            self._LEVELS.get(notification.level, logging.INFO),
            f"[{notification.level}] {notification.message}"
            + (f" (actions: {actions})" if actions else ""),
        )


class RedisNotifier(AbstractNotifier):
    """Publishes notifications as JSON on a Redis channel."""

    def __init__(self, client: Optional[redis.Redis] = None, channel: Optional[str] = None):
        self.client = client or redis.Redis(**get_redis_host_and_port())
        self.channel = channel or get_notification_channel()

    def _send(self, notification):
        logger.info("publishing notification: channel=%s, level=%s", self.channel, notification.level)
        try:
            self.client.publish(self.channel, json.dumps(notification.to_dict()))
        except redis.RedisError as e:
            logger.error(f"Failed to publish notification '{notification.message}': {e}")
            # Don't re-raise - a lost notification must not abort the saga
