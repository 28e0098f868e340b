"""Upstream notifiers."""

from beacon_id.notify.notifier import (
    HttpNotifier,
    LoggingNotifier,
    Notifier,
    NotificationType,
    PaymentStatus,
)

__all__ = [
    "HttpNotifier",
    "LoggingNotifier",
    "Notifier",
    "NotificationType",
    "PaymentStatus",
]
