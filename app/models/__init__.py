"""
Database models package.

Import all models here so Base.metadata knows every table.
"""

from app.models.geo import GeoCacheEntry
from app.models.household import HouseholdLocation
from app.models.trust_score import UserTrustScore
from app.models.rule import Rule, rule_notifications
from app.models.rule_violation import RuleViolation
from app.models.notification_channel import NotificationChannel
from app.models.watch_history import WatchHistory

__all__ = [
    "GeoCacheEntry",
    "HouseholdLocation",
    "UserTrustScore",
    "Rule",
    "rule_notifications",
    "RuleViolation",
    "NotificationChannel",
    "WatchHistory",
]
