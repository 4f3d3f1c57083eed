# =========================================================
# ALERT REPOSITORY
# ---------------------------------------------------------
# Persistence for AlertRecords. Every write goes through
# AlertRecord.prepare_for_save() so escalation and expiry
# defaults hold no matter who creates the alert.
# =========================================================

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING

from config.constants import ALERT_COLLECTION
from config.logging import logger
from alerts.schemas import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    AlertRecord,
    NotificationStats,
)


class AlertRepository(ABC):

    @abstractmethod
    async def create(self, alert: AlertRecord) -> AlertRecord:
        ...

    @abstractmethod
    async def find_recent(self, location_id: str, severity: str, since: datetime) -> List[AlertRecord]:
        """Alerts for a location+severity created at or after `since`, newest first."""

    @abstractmethod
    async def find_active(self, location_id: Optional[str], now: datetime) -> List[AlertRecord]:
        ...

    @abstractmethod
    async def expire_stale(self, now: datetime) -> int:
        """Mark active alerts whose expiry has passed as expired. Returns the count."""

    @abstractmethod
    async def cancel(self, alert_id: str) -> bool:
        ...

    @abstractmethod
    async def record_notifications(self, alert_id: str, stats: NotificationStats) -> None:
        ...


class MongoAlertRepository(AlertRepository):

    def __init__(self, db):
        self.collection = db[ALERT_COLLECTION]

    async def ensure_indexes(self):
        await self.collection.create_index("alert_id", unique=True)
        await self.collection.create_index(
            [("location_id", ASCENDING), ("severity", ASCENDING), ("created_at", DESCENDING)]
        )
        await self.collection.create_index([("status", ASCENDING), ("expires_at", ASCENDING)])

    async def create(self, alert):
        alert.prepare_for_save()
        await self.collection.insert_one(alert.to_document())
        logger.info(f"Alert stored | {alert.location_id} | {alert.severity} | AQI={alert.index}")
        return alert

    async def find_recent(self, location_id, severity, since):
        cursor = self.collection.find(
            {"location_id": location_id, "severity": severity, "created_at": {"$gte": since}},
            {"_id": 0}
        ).sort("created_at", DESCENDING)
        docs = await cursor.to_list(None)
        return [AlertRecord.from_document(d) for d in docs]

    async def find_active(self, location_id, now):
        query = {"status": STATUS_ACTIVE, "expires_at": {"$gt": now}}
        if location_id is not None:
            query["location_id"] = location_id

        cursor = self.collection.find(query, {"_id": 0}).sort("created_at", DESCENDING)
        docs = await cursor.to_list(None)
        return [AlertRecord.from_document(d) for d in docs]

    async def expire_stale(self, now):
        result = await self.collection.update_many(
            {"status": STATUS_ACTIVE, "expires_at": {"$lte": now}},
            {"$set": {"status": STATUS_EXPIRED}}
        )
        return result.modified_count

    async def cancel(self, alert_id):
        result = await self.collection.update_one(
            {"alert_id": alert_id, "status": STATUS_ACTIVE},
            {"$set": {"status": STATUS_CANCELLED}}
        )
        return result.modified_count > 0

    async def record_notifications(self, alert_id, stats):
        await self.collection.update_one(
            {"alert_id": alert_id},
            {"$set": {"notifications": stats.to_document()}}
        )
