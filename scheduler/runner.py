# =========================================================
# MONITORING SCHEDULER
# ---------------------------------------------------------
# Periodic sweep over every monitored location plus an hourly
# alert-expiry job. Locations run one after another; a failure
# in one is logged and the next location still runs.
# =========================================================

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import settings
from config.logging import logger
from config.constants import EXPIRY_SWEEP_INTERVAL_MINUTES
from alerts.schemas import AlertRecord
from data_pipeline.schemas import Location
from models.predict import ForecastResult
from scheduler.sweep import LocationSweep, SweepResult


class MonitoringScheduler:

    def __init__(self, sweep: LocationSweep, locations: List[Location], interval_minutes: int = None):
        self.sweep = sweep
        self.locations = list(locations)
        self.interval_minutes = settings.SWEEP_INTERVAL_MINUTES if interval_minutes is None else interval_minutes
        if self.interval_minutes <= 0:
            raise ValueError(f"Sweep interval must be positive, got {self.interval_minutes}")
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._locks: Dict[str, asyncio.Lock] = {}
        self._latest: Dict[str, ForecastResult] = {}

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self):
        """Start the sweep and expiry jobs. Must be called from a running event loop."""
        if self.running:
            logger.warning("Monitoring scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)

        self.scheduler.add_job(
            self.run_once,
            IntervalTrigger(minutes=self.interval_minutes),
            id="location_sweep",
            replace_existing=True,
            name="Location Sweep",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )

        self.scheduler.add_job(
            self.expire_alerts,
            IntervalTrigger(minutes=EXPIRY_SWEEP_INTERVAL_MINUTES),
            id="alert_expiry",
            replace_existing=True,
            name="Alert Expiry",
        )

        self.scheduler.start()
        logger.info(
            f"Monitoring scheduler started | {len(self.locations)} locations | "
            f"every {self.interval_minutes} min"
        )

    def stop(self):
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info("Monitoring scheduler stopped")

    def get_jobs(self) -> List[Dict]:
        if self.scheduler is None:
            return []
        return [
            {"id": job.id, "name": job.name, "next_run_time": job.next_run_time}
            for job in self.scheduler.get_jobs()
        ]

    def latest_forecast(self, location_id: str) -> Optional[ForecastResult]:
        return self._latest.get(location_id)

    async def active_alerts(self, location_id: str = None, now: datetime = None) -> List[AlertRecord]:
        return await self.sweep.evaluator.active_alerts(location_id, now)

    async def cancel_alert(self, alert_id: str) -> bool:
        return await self.sweep.evaluator.cancel(alert_id)

    def _lock(self, location_id: str) -> asyncio.Lock:
        if location_id not in self._locks:
            self._locks[location_id] = asyncio.Lock()
        return self._locks[location_id]

    async def run_location(self, location: Location, now: datetime = None) -> Optional[SweepResult]:
        lock = self._lock(location.location_id)
        if lock.locked():
            logger.warning(f"Sweep still in flight for {location.name}, skipping")
            return None

        async with lock:
            try:
                result = await self.sweep.run(location, now)
            except Exception:
                logger.exception(f"Sweep failed for {location.name}")
                return None

        if result.forecast is not None:
            self._latest[location.location_id] = result.forecast
        return result

    async def run_once(self, now: datetime = None) -> List[SweepResult]:
        logger.info("========== LOCATION SWEEP STARTED ==========")

        results = []
        for location in self.locations:
            result = await self.run_location(location, now)
            if result is not None:
                results.append(result)

        logger.info(f"========== LOCATION SWEEP COMPLETED ({len(results)}/{len(self.locations)}) ==========")
        return results

    async def expire_alerts(self, now: datetime = None) -> int:
        try:
            return await self.sweep.evaluator.expire_stale(now)
        except Exception:
            logger.exception("Alert expiry failed")
            return 0


# =====================================================
# ENTRY POINT
# =====================================================

async def main():
    from config.constants import MODEL_COLLECTION
    from config.mongo import MongoManager, get_database
    from alerts.evaluator import AlertEvaluator
    from alerts.notifications import MongoSubscriberRepository, NotificationDispatcher
    from alerts.repository import MongoAlertRepository
    from data_pipeline.ingest_latest import LatestIngestor
    from data_pipeline.repositories import MongoSampleRepository, MongoWeatherRepository
    from models.predict import ForecastGenerator

    db = await get_database()

    sample_repo = MongoSampleRepository(db)
    weather_repo = MongoWeatherRepository(db)
    alert_repo = MongoAlertRepository(db)
    for repo in (sample_repo, weather_repo, alert_repo):
        await repo.ensure_indexes()

    sweep = LocationSweep(
        ingestor=LatestIngestor(sample_repo, weather_repo),
        generator=ForecastGenerator(sample_repo, weather_repo),
        evaluator=AlertEvaluator(
            sample_repo,
            alert_repo,
            MongoSubscriberRepository(db),
            NotificationDispatcher(),
        ),
        model_collection=db[MODEL_COLLECTION],
    )

    locations = [Location.from_dict(d) for d in settings.MONITORED_LOCATIONS]
    runner = MonitoringScheduler(sweep, locations)
    runner.start()

    try:
        await asyncio.Event().wait()
    finally:
        runner.stop()
        await MongoManager.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down")
