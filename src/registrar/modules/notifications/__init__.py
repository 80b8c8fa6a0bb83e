"""
Notifications Module

Persisted in-app notifications and real-time delivery for enrollment
lifecycle events (approved, enrolled, rejected).
"""

from .router import get_notification_dispatcher, router

__all__ = ["router", "get_notification_dispatcher"]
