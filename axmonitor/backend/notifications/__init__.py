"""notifications/__init__.py"""
from .router import NotificationRouter
from .sinks import DashboardNotificationSink, LogNotificationSink, WebhookNotificationSink

__all__ = [
    "NotificationRouter",
    "DashboardNotificationSink",
    "LogNotificationSink",
    "WebhookNotificationSink",
]
