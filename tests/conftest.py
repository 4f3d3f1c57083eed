"""
Shared fixtures: environment, a fixed clock and in-memory stand-ins for
the Mongo-backed repositories and notification channels.
"""

import os
import tempfile

# settings fail fast on import, so the environment has to be in place first
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DB_NAME", "air_quality_test")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="aqi_logs_"))
os.environ["OPENWEATHER_API_KEY"] = ""

from datetime import datetime, time, timedelta, timezone

import pytest

from config.constants import ACCEPTED_QUALITY_FLAGS, SOURCE_GROUND
from alerts.evaluator import AlertConfig, AlertEvaluator, QuietHours, ThresholdTier
from alerts.notifications import NotificationChannel, NotificationDispatcher, Subscriber, SubscriberRepository
from alerts.repository import AlertRepository
from alerts.schemas import CRITICAL, HIGH, INFO, MODERATE, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_EXPIRED
from data_pipeline.repositories import SampleRepository, WeatherRepository
from data_pipeline.schemas import Location, Sample, WeatherSample, normalize_parameter
from models.aqi import UG_M3


# =====================================================
# IN-MEMORY REPOSITORIES
# =====================================================

class InMemorySampleRepository(SampleRepository):

    def __init__(self, samples=None):
        self.samples = list(samples or [])

    def _match(self, s, geobox, since):
        return (
            geobox.contains(s.latitude, s.longitude)
            and s.quality_flag in ACCEPTED_QUALITY_FLAGS
            and (since is None or s.timestamp >= since)
        )

    async def find_samples(self, parameter, geobox, since):
        wanted = normalize_parameter(parameter)
        found = [
            s for s in self.samples
            if normalize_parameter(s.parameter) == wanted and self._match(s, geobox, since)
        ]
        return sorted(found, key=lambda s: s.timestamp)

    async def find_latest(self, geobox):
        found = [s for s in self.samples if self._match(s, geobox, None)]
        return max(found, key=lambda s: s.timestamp) if found else None

    async def find_recent(self, geobox, since, source=None):
        found = [
            s for s in self.samples
            if self._match(s, geobox, since) and (source is None or s.source == source)
        ]
        return sorted(found, key=lambda s: s.timestamp, reverse=True)

    async def insert_many(self, samples):
        self.samples.extend(samples)
        return len(samples)


class InMemoryWeatherRepository(WeatherRepository):

    def __init__(self, weather=None):
        self.weather = list(weather or [])

    async def find_weather(self, geobox, since):
        found = [w for w in self.weather if geobox.contains(w.latitude, w.longitude) and w.timestamp >= since]
        return sorted(found, key=lambda w: w.timestamp)

    async def find_latest(self, geobox):
        found = [w for w in self.weather if geobox.contains(w.latitude, w.longitude)]
        return max(found, key=lambda w: w.timestamp) if found else None

    async def insert(self, weather):
        self.weather.append(weather)


class InMemoryAlertRepository(AlertRepository):

    def __init__(self):
        self.alerts = []
        self.notification_updates = []

    async def create(self, alert):
        alert.prepare_for_save()
        self.alerts.append(alert)
        return alert

    async def find_recent(self, location_id, severity, since):
        found = [
            a for a in self.alerts
            if a.location_id == location_id and a.severity == severity and a.created_at >= since
        ]
        return sorted(found, key=lambda a: a.created_at, reverse=True)

    async def find_active(self, location_id, now):
        return [
            a for a in self.alerts
            if a.is_active(now) and (location_id is None or a.location_id == location_id)
        ]

    async def expire_stale(self, now):
        count = 0
        for a in self.alerts:
            if a.status == STATUS_ACTIVE and a.expires_at <= now:
                a.status = STATUS_EXPIRED
                count += 1
        return count

    async def cancel(self, alert_id):
        for a in self.alerts:
            if a.alert_id == alert_id and a.status == STATUS_ACTIVE:
                a.status = STATUS_CANCELLED
                return True
        return False

    async def record_notifications(self, alert_id, stats):
        self.notification_updates.append((alert_id, stats))


class InMemorySubscriberRepository(SubscriberRepository):

    def __init__(self, subscribers=None):
        self.subscribers = list(subscribers or [])

    async def find_for_location(self, location):
        return [s for s in self.subscribers if s.enabled and s.subscribed_to(location)]


class RecordingChannel(NotificationChannel):

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, subscriber, alert):
        if self.fail:
            raise RuntimeError("transport down")
        self.sent.append((subscriber.subscriber_id, alert.alert_id))


# =====================================================
# FIXTURES
# =====================================================

@pytest.fixture
def now():
    # Monday, mid-afternoon UTC
    return datetime(2025, 6, 16, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def location():
    return Location(location_id="test-city", name="Test City", latitude=40.0, longitude=-74.0)


@pytest.fixture
def sample_repo():
    return InMemorySampleRepository()


@pytest.fixture
def weather_repo():
    return InMemoryWeatherRepository()


@pytest.fixture
def alert_repo():
    return InMemoryAlertRepository()


@pytest.fixture
def channels():
    return {"email": RecordingChannel(), "push": RecordingChannel(), "sms": RecordingChannel()}


@pytest.fixture
def subscriber(location):
    return Subscriber(
        subscriber_id="u1",
        name="Alex",
        email="alex@example.com",
        phone_number=None,
        channels={"email": True, "push": True, "sms": True},
        severity_threshold=MODERATE,
        locations=[location.location_id],
    )


@pytest.fixture
def subscriber_repo(subscriber):
    return InMemorySubscriberRepository([subscriber])


@pytest.fixture
def alert_config():
    return AlertConfig(
        tiers=[
            ThresholdTier("moderate", 100, INFO, enabled=False),
            ThresholdTier("unhealthy_sensitive", 101, MODERATE),
            ThresholdTier("unhealthy", 151, HIGH),
            ThresholdTier("very_unhealthy", 201, CRITICAL),
        ],
        quiet_hours=QuietHours(start=time(22, 0), end=time(7, 0), enabled=True),
        timezone="UTC",
    )


@pytest.fixture
def evaluator(sample_repo, alert_repo, subscriber_repo, channels, alert_config):
    return AlertEvaluator(
        sample_repo,
        alert_repo,
        subscriber_repo,
        NotificationDispatcher(channels),
        alert_config,
    )


def make_sample(location, parameter, value, timestamp, unit=UG_M3, source=SOURCE_GROUND,
                quality_flag="valid"):
    return Sample(
        parameter=parameter,
        value=value,
        unit=unit,
        latitude=location.latitude,
        longitude=location.longitude,
        timestamp=timestamp,
        quality_flag=quality_flag,
        source=source,
    )


def make_weather(location, timestamp, **fields):
    values = {"temperature": 22.0, "humidity": 55.0, "wind_speed": 4.0, "pressure": 1012.0, "cloud_cover": 40.0}
    values.update(fields)
    return WeatherSample(
        latitude=location.latitude,
        longitude=location.longitude,
        timestamp=timestamp,
        **values
    )


def hourly(start, hours):
    return [start + timedelta(hours=h) for h in range(hours)]
