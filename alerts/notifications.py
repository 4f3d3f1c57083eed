# =========================================================
# NOTIFICATION DISPATCH
# ---------------------------------------------------------
# Subscribers come from the "users" collection. Each alert
# fans out to every eligible subscriber on every channel they
# opted into. Delivery failures are logged and counted, never
# retried and never raised to the evaluator.
# =========================================================

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from config.constants import SUBSCRIBER_COLLECTION
from config.logging import logger
from alerts.schemas import MODERATE, AlertRecord, NotificationStats, severity_rank
from data_pipeline.schemas import Location

EMAIL = "email"
PUSH = "push"
SMS = "sms"

CHANNELS = [EMAIL, PUSH, SMS]

STATS_FIELDS = {
    EMAIL: "email_sent",
    PUSH: "push_sent",
    SMS: "sms_sent",
}


@dataclass
class Subscriber:
    subscriber_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    channels: Dict[str, bool] = field(default_factory=lambda: {EMAIL: True, PUSH: True, SMS: False})
    severity_threshold: str = MODERATE
    locations: List[str] = field(default_factory=list)
    enabled: bool = True

    def should_receive(self, severity: str) -> bool:
        if not self.enabled:
            return False
        return severity_rank(severity) >= severity_rank(self.severity_threshold)

    def subscribed_to(self, location: Location) -> bool:
        return location.location_id in self.locations or location.name in self.locations

    def active_channels(self) -> List[str]:
        active = []
        for channel in CHANNELS:
            if not self.channels.get(channel):
                continue
            if channel == EMAIL and not self.email:
                continue
            if channel == SMS and not self.phone_number:
                continue
            active.append(channel)
        return active

    @classmethod
    def from_document(cls, doc: dict) -> "Subscriber":
        prefs = doc.get("alert_preferences") or {}
        locations = []
        for loc in prefs.get("locations") or []:
            if isinstance(loc, dict):
                locations.extend(v for v in (loc.get("location_id"), loc.get("name")) if v)
            else:
                locations.append(str(loc))

        return cls(
            subscriber_id=str(doc.get("_id", doc.get("email", ""))),
            name=doc.get("name"),
            email=doc.get("email"),
            phone_number=doc.get("phone_number"),
            channels={
                EMAIL: bool(prefs.get(EMAIL, True)),
                PUSH: bool(prefs.get(PUSH, True)),
                SMS: bool(prefs.get(SMS, False)),
            },
            severity_threshold=prefs.get("severity_threshold", MODERATE),
            locations=locations,
            enabled=bool(prefs.get("enabled", True)),
        )


# =====================================================
# SUBSCRIBER LOOKUP
# =====================================================

class SubscriberRepository(ABC):

    @abstractmethod
    async def find_for_location(self, location: Location) -> List[Subscriber]:
        ...


class MongoSubscriberRepository(SubscriberRepository):

    def __init__(self, db):
        self.collection = db[SUBSCRIBER_COLLECTION]

    async def find_for_location(self, location):
        cursor = self.collection.find({
            "alert_preferences.enabled": True,
            "$or": [
                {"alert_preferences.locations.location_id": location.location_id},
                {"alert_preferences.locations.name": location.name},
            ]
        })
        docs = await cursor.to_list(None)
        return [Subscriber.from_document(d) for d in docs]


# =====================================================
# CHANNELS
# =====================================================

def render_alert_email(subscriber: Subscriber, alert: AlertRecord,
                       location_name: Optional[str] = None) -> Tuple[str, str]:
    """Subject line and plain-text body for an alert email."""
    place = location_name or alert.location_id
    pollutant = (alert.dominant_parameter or "multiple").upper()

    subject = f"Air Quality Alert: {alert.severity.upper()} - {place}"
    body = "\n".join([
        f"Hello {subscriber.name or 'User'},",
        "",
        f"Location: {place}",
        f"Alert Level: {alert.severity.capitalize()}",
        f"AQI: {alert.index}",
        f"Primary Pollutant: {pollutant}",
        f"Message: {alert.message}",
        "",
        "Health Recommendations:",
        alert.health_impact,
        "",
        "What you can do:",
        "- Limit outdoor activities, especially strenuous exercise",
        "- Keep windows and doors closed",
        "- Use air purifiers if available",
        "- Check on vulnerable family members and friends",
        "",
        f"Generated at {alert.created_at:%Y-%m-%d %H:%M %Z}.",
        "To unsubscribe from these alerts, update your alert preferences.",
    ])
    return subject, body


class NotificationChannel(ABC):

    @abstractmethod
    async def send(self, subscriber: Subscriber, alert: AlertRecord) -> None:
        """Deliver one notification. Raise on failure."""


class LogChannel(NotificationChannel):
    """Writes the notification to the pipeline log instead of delivering it."""

    def __init__(self, kind: str):
        self.kind = kind

    async def send(self, subscriber, alert):
        if self.kind == EMAIL:
            subject, _ = render_alert_email(subscriber, alert)
            logger.info(f"[email] to={subscriber.email} | {subject}")
        elif self.kind == SMS:
            logger.info(f"[sms] to={subscriber.phone_number} | {alert.location_id} {alert.severity}")
        else:
            logger.info(f"[{self.kind}] to={subscriber.subscriber_id} | {alert.location_id} {alert.severity}")


async def _deliver(channel: NotificationChannel, subscriber: Subscriber, alert: AlertRecord):
    # calling send() inside the coroutine keeps a raise before its first await inside gather
    return await channel.send(subscriber, alert)


class NotificationDispatcher:

    def __init__(self, channels: Optional[Dict[str, NotificationChannel]] = None):
        self.channels = channels or {kind: LogChannel(kind) for kind in CHANNELS}

    async def notify(self, alert: AlertRecord, recipients: List[Subscriber]) -> NotificationStats:
        stats = NotificationStats()

        eligible = [r for r in recipients if r.should_receive(alert.severity)]
        stats.total_users = len(eligible)

        jobs = []
        for subscriber in eligible:
            for kind in subscriber.active_channels():
                channel = self.channels.get(kind)
                if channel is None:
                    continue
                jobs.append((kind, subscriber, _deliver(channel, subscriber, alert)))

        if not jobs:
            return stats

        logger.info(f"Sending {len(jobs)} notifications to {len(eligible)} users for {alert.location_id}")

        results = await asyncio.gather(*(job[2] for job in jobs), return_exceptions=True)

        for (kind, subscriber, _), result in zip(jobs, results):
            if isinstance(result, Exception):
                stats.failed_notifications += 1
                logger.error(f"Failed {kind} notification to {subscriber.subscriber_id}: {result}")
            else:
                field_name = STATS_FIELDS[kind]
                setattr(stats, field_name, getattr(stats, field_name) + 1)

        return stats
