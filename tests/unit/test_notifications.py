import json
import logging

import redis

from admission.adapters.notifications import (
    LoggingNotifier,
    Notification,
    NotificationAction,
    RedisNotifier,
)


def test_redis_notifier_publishes_json(fake_redis):
    pubsub = fake_redis.pubsub()
    pubsub.subscribe("ui")
    assert pubsub.get_message(timeout=1)["type"] == "subscribe"
    notifier = RedisNotifier(client=fake_redis, channel="ui")

    notifier.warning(
        "Paziente creato ma evento fallito",
        persistent=True,
        actions=[NotificationAction(label="Annulla", action="rollback_patient_creation",
                                    data={"patient_id": "p-1"})],
    )

    message = pubsub.get_message(timeout=1)
    assert message["type"] == "message"
    payload = json.loads(message["data"])
    assert payload["level"] == "warning"
    assert payload["persistent"] is True
    assert payload["actions"] == [
        {"label": "Annulla", "action": "rollback_patient_creation", "data": {"patient_id": "p-1"}},
    ]
    assert "created_at" in payload


def test_redis_errors_are_logged_not_raised(caplog):
    class DownRedis:
        def publish(self, channel, message):
            raise redis.ConnectionError("connection refused")

    notifier = RedisNotifier(client=DownRedis(), channel="ui")

    notifier.success("ok")

    assert "connection refused" in caplog.text


def test_success_notifications_are_transient():
    sent = []

    class ListNotifier(LoggingNotifier):
        def _send(self, notification):
            sent.append(notification)

    ListNotifier().success("fatto")

    assert sent[0].level == "success"
    assert sent[0].persistent is False
    assert sent[0].actions == []


def test_logging_notifier_maps_levels(caplog):
    caplog.set_level(logging.INFO)
    notifier = LoggingNotifier()

    notifier.error("Rollback fallito", persistent=True)
    notifier.warning("attenzione", actions=[NotificationAction(label="Crea Comunque", action="retry")])

    levels = [record.levelno for record in caplog.records]
    assert logging.ERROR in levels
    assert logging.WARNING in levels
    assert "(actions: Crea Comunque)" in caplog.text


def test_notification_to_dict_is_json_ready():
    data = Notification(level="error", message="x").to_dict()

    assert json.dumps(data)
    assert data["actions"] == []
