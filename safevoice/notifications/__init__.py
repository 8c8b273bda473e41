"""Notification inbox, deduplication, scheduling, and delivery."""

from safevoice.notifications.deduplicator import NotificationDeduplicator
from safevoice.notifications.delivery import (
    DisabledNotificationDeliverer,
    NotificationDeliverer,
    WebhookNotificationDeliverer,
)
from safevoice.notifications.inbox import NotificationInbox
from safevoice.notifications.scheduling import AlertScheduler, build_alert_trigger

__all__ = [
    "AlertScheduler",
    "DisabledNotificationDeliverer",
    "NotificationDeduplicator",
    "NotificationDeliverer",
    "NotificationInbox",
    "WebhookNotificationDeliverer",
    "build_alert_trigger",
]
