# =========================================================
# ALERT EVALUATOR
# ---------------------------------------------------------
# Current index -> threshold tier -> quiet hours -> dedup
# -> persist -> notify. One location per call.
# =========================================================

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from config.constants import (
    ALERT_DEDUP_WINDOW_MINUTES,
    ALERT_LOOKBACK_MINUTES,
    PARAMETER_ORDER,
    SOURCE_GROUND,
    SOURCE_SATELLITE,
)
from config.logging import logger
from alerts.schemas import CRITICAL, HIGH, INFO, MODERATE, AlertRecord
from data_pipeline.schemas import Location
from models.aqi import compute_index
from models.health import alert_message, health_impact

STATE_NORMAL = "normal"
STATE_ALERTING = "alerting"


def _parse_time(value) -> time:
    if isinstance(value, time):
        return value
    hours, minutes = str(value).split(":")
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class ThresholdTier:
    name: str
    threshold: int
    severity: str
    enabled: bool = True


@dataclass(frozen=True)
class QuietHours:
    start: time
    end: time
    enabled: bool = True

    def is_active(self, local_time: time) -> bool:
        """Start inclusive, end exclusive. Windows may wrap past midnight."""
        if not self.enabled or self.start == self.end:
            return False

        t = local_time.replace(second=0, microsecond=0, tzinfo=None)
        if self.start < self.end:
            return self.start <= t < self.end
        return t >= self.start or t < self.end


def default_tiers(s) -> List[ThresholdTier]:
    return [
        ThresholdTier("moderate", s.AQI_MODERATE_THRESHOLD, INFO, s.AQI_MODERATE_ENABLED),
        ThresholdTier("unhealthy_sensitive", s.AQI_UNHEALTHY_SENSITIVE_THRESHOLD, MODERATE,
                      s.AQI_UNHEALTHY_SENSITIVE_ENABLED),
        ThresholdTier("unhealthy", s.AQI_UNHEALTHY_THRESHOLD, HIGH, s.AQI_UNHEALTHY_ENABLED),
        ThresholdTier("very_unhealthy", s.AQI_VERY_UNHEALTHY_THRESHOLD, CRITICAL, s.AQI_VERY_UNHEALTHY_ENABLED),
    ]


@dataclass
class AlertConfig:
    tiers: List[ThresholdTier]
    quiet_hours: QuietHours
    timezone: str = "UTC"
    dedup_window: timedelta = timedelta(minutes=ALERT_DEDUP_WINDOW_MINUTES)
    lookback: timedelta = timedelta(minutes=ALERT_LOOKBACK_MINUTES)

    @classmethod
    def from_settings(cls, s=None) -> "AlertConfig":
        if s is None:
            from config.settings import settings as s

        return cls(
            tiers=default_tiers(s),
            quiet_hours=QuietHours(
                start=_parse_time(s.QUIET_HOURS_START),
                end=_parse_time(s.QUIET_HOURS_END),
                enabled=s.QUIET_HOURS_ENABLED,
            ),
            timezone=s.TIMEZONE,
        )

    def enabled_tiers(self) -> List[ThresholdTier]:
        return sorted((t for t in self.tiers if t.enabled), key=lambda t: t.threshold)

    def tier_for(self, index: int) -> Optional[ThresholdTier]:
        """Highest enabled tier whose threshold the index reaches."""
        matched = None
        for tier in self.enabled_tiers():
            if index >= tier.threshold:
                matched = tier
        return matched

    def is_top_tier(self, tier: ThresholdTier) -> bool:
        enabled = self.enabled_tiers()
        return bool(enabled) and tier == enabled[-1]

    def local_time(self, now: datetime) -> time:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(ZoneInfo(self.timezone)).time()


@dataclass
class CurrentIndex:
    index: int
    dominant_parameter: Optional[str]
    source: str
    breakdown: Dict[str, int] = field(default_factory=dict)


class AlertEvaluator:

    def __init__(self, sample_repo, alert_repo, subscriber_repo, dispatcher, config: AlertConfig = None):
        self.sample_repo = sample_repo
        self.alert_repo = alert_repo
        self.subscriber_repo = subscriber_repo
        self.dispatcher = dispatcher
        self.config = config or AlertConfig.from_settings()
        self._state: Dict[str, str] = {}

    def state(self, location_id: str) -> str:
        return self._state.get(location_id, STATE_NORMAL)

    def _transition(self, location: Location, new_state: str, index=None):
        old_state = self.state(location.location_id)
        if old_state != new_state:
            logger.info(f"{location.name}: {old_state} -> {new_state} (AQI={index})")
        self._state[location.location_id] = new_state

    async def current_index(self, location: Location, now: datetime) -> Optional[CurrentIndex]:
        """
        Max sub-index over the latest sample of each parameter within the
        lookback window. Ground readings win; satellite is the fallback.
        """
        since = now - self.config.lookback
        geobox = location.geobox()

        for source in (SOURCE_GROUND, SOURCE_SATELLITE):
            samples = await self.sample_repo.find_recent(geobox, since, source=source)

            latest = {}
            for s in samples:
                latest.setdefault(s.parameter, s)

            breakdown = {}
            for parameter in sorted(latest, key=lambda p: PARAMETER_ORDER.index(p) if p in PARAMETER_ORDER else 99):
                s = latest[parameter]
                index = compute_index(parameter, s.value, s.unit)
                if index is not None:
                    breakdown[parameter] = index

            if breakdown:
                dominant = None
                for parameter, index in breakdown.items():
                    if dominant is None or index > breakdown[dominant]:
                        dominant = parameter
                return CurrentIndex(breakdown[dominant], dominant, source, breakdown)

        return None

    async def evaluate(self, location: Location, now: datetime = None) -> Optional[AlertRecord]:
        now = now or datetime.now(timezone.utc)

        current = await self.current_index(location, now)
        if current is None:
            logger.info(f"No recent readings for {location.name}, skipping alert check")
            return None

        tier = self.config.tier_for(current.index)
        if tier is None:
            self._transition(location, STATE_NORMAL, current.index)
            return None

        self._transition(location, STATE_ALERTING, current.index)

        if self.config.quiet_hours.is_active(self.config.local_time(now)) and not self.config.is_top_tier(tier):
            logger.info(f"Quiet hours: suppressed {tier.severity} alert for {location.name}")
            return None

        alert = AlertRecord(
            location_id=location.location_id,
            latitude=location.latitude,
            longitude=location.longitude,
            severity=tier.severity,
            index=current.index,
            dominant_parameter=current.dominant_parameter,
            message="",
            health_impact="",
            created_at=now,
        ).prepare_for_save()
        alert.message = alert_message(alert.severity, alert.dominant_parameter, alert.index)
        alert.health_impact = health_impact(alert.severity)

        recent = await self.alert_repo.find_recent(
            location.location_id, alert.severity, now - self.config.dedup_window
        )
        if recent:
            logger.info(f"Similar alert already sent for {location.name} in the last hour")
            return None

        # a failed lookup aborts before anything is stored
        recipients = await self.subscriber_repo.find_for_location(location)

        await self.alert_repo.create(alert)
        logger.info(f"Alert created for {location.name}: {alert.severity.upper()} (AQI={alert.index})")

        # the stored alert stands even if delivery bookkeeping fails
        try:
            alert.notifications = await self.dispatcher.notify(alert, recipients)
            await self.alert_repo.record_notifications(alert.alert_id, alert.notifications)
        except Exception:
            logger.exception(f"Notification step failed for alert {alert.alert_id} ({location.name})")

        return alert

    async def active_alerts(self, location_id: Optional[str] = None, now: datetime = None) -> List[AlertRecord]:
        """Unexpired active alerts, for one location or all when location_id is None."""
        now = now or datetime.now(timezone.utc)
        return await self.alert_repo.find_active(location_id, now)

    async def cancel(self, alert_id: str) -> bool:
        cancelled = await self.alert_repo.cancel(alert_id)
        if cancelled:
            logger.info(f"Alert {alert_id} cancelled")
        else:
            logger.warning(f"Alert {alert_id} not found or no longer active")
        return cancelled

    async def expire_stale(self, now: datetime = None) -> int:
        now = now or datetime.now(timezone.utc)
        expired = await self.alert_repo.expire_stale(now)
        if expired:
            logger.info(f"Expired {expired} stale alerts")
        return expired
