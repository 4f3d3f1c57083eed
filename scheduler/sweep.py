from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from config.logging import logger
from alerts.schemas import AlertRecord
from data_pipeline.schemas import Location, Sample, WeatherSample
from models.predict import ForecastResult


@dataclass
class SweepResult:
    location_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    weather: Optional[WeatherSample] = None
    samples: List[Sample] = field(default_factory=list)
    forecast: Optional[ForecastResult] = None
    alert: Optional[AlertRecord] = None


class LocationSweep:
    """One monitoring cycle for one location: ingest -> forecast -> evaluate."""

    def __init__(self, ingestor, generator, evaluator, model_collection=None):
        self.ingestor = ingestor
        self.generator = generator
        self.evaluator = evaluator
        self.model_collection = model_collection

    async def run(self, location: Location, now: datetime = None) -> SweepResult:
        now = now or datetime.now(timezone.utc)
        result = SweepResult(location_id=location.location_id, started_at=now)

        result.weather, result.samples = await self.ingestor.ingest(location, now)
        result.forecast = await self.generator.forecast_location(location, now=now)

        if self.model_collection is not None and result.forecast.registry:
            await result.forecast.registry.record(self.model_collection, location.location_id)

        result.alert = await self.evaluator.evaluate(location, now)
        result.finished_at = datetime.now(timezone.utc)

        peak = max((p.index for p in result.forecast.index if p.index is not None), default=None)
        logger.info(
            f"Sweep done for {location.name} | samples={len(result.samples)} | "
            f"peak forecast AQI={peak} | alert={result.alert.severity if result.alert else None}"
        )
        return result
