import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.constants import ALERT_TTL_HOURS

# =========================
# SEVERITY / STATUS
# =========================

INFO = "info"
MODERATE = "moderate"
HIGH = "high"
CRITICAL = "critical"

SEVERITY_ORDER = [INFO, MODERATE, HIGH, CRITICAL]

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"


def severity_rank(severity: str) -> int:
    return SEVERITY_ORDER.index(severity) if severity in SEVERITY_ORDER else -1


@dataclass
class NotificationStats:
    total_users: int = 0
    email_sent: int = 0
    push_sent: int = 0
    sms_sent: int = 0
    failed_notifications: int = 0

    def to_document(self) -> dict:
        return asdict(self)

    @classmethod
    def from_document(cls, doc: Optional[dict]) -> "NotificationStats":
        doc = doc or {}
        return cls(**{k: int(doc.get(k, 0)) for k in cls.__dataclass_fields__})


@dataclass
class AlertRecord:
    location_id: str
    latitude: float
    longitude: float
    severity: str
    index: int
    dominant_parameter: Optional[str]
    message: str
    health_impact: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None
    status: str = STATUS_ACTIVE
    notifications: NotificationStats = field(default_factory=NotificationStats)
    alert_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def prepare_for_save(self) -> "AlertRecord":
        """
        Pre-save hook: escalate severity when the index says so and
        default the expiry. Both escalation steps run in order, so a
        moderate alert at 250 ends up critical.
        """
        if self.severity == MODERATE and self.index > 150:
            self.severity = HIGH
        if self.severity == HIGH and self.index > 200:
            self.severity = CRITICAL

        if self.expires_at is None:
            self.expires_at = self.created_at + timedelta(hours=ALERT_TTL_HOURS)

        return self

    def is_active(self, now: datetime) -> bool:
        return self.status == STATUS_ACTIVE and (self.expires_at is None or self.expires_at > now)

    def to_document(self) -> dict:
        doc = asdict(self)
        doc["notifications"] = self.notifications.to_document()
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "AlertRecord":
        return cls(
            alert_id=doc["alert_id"],
            location_id=doc["location_id"],
            latitude=float(doc["latitude"]),
            longitude=float(doc["longitude"]),
            severity=doc["severity"],
            index=int(doc["index"]),
            dominant_parameter=doc.get("dominant_parameter"),
            message=doc.get("message", ""),
            health_impact=doc.get("health_impact", ""),
            created_at=doc["created_at"],
            expires_at=doc.get("expires_at"),
            status=doc.get("status", STATUS_ACTIVE),
            notifications=NotificationStats.from_document(doc.get("notifications")),
        )
