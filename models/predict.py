# =====================================================
# FORECAST GENERATOR
# Projected weather + per-parameter models -> hourly
# concentration forecast with decaying confidence.
# Falls back to a trend (or synthetic baseline) forecast
# when a parameter has no trained model.
# =====================================================

import math
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import numpy as np

from config.settings import settings
from config.logging import logger
from config.constants import (
    CONFIDENCE_DECAY_HOURS,
    CONFIDENCE_HORIZON_POINTS,
    FORECAST_PARAMETERS,
    HCHO,
    MAX_CONFIDENCE,
    NO2,
    O3,
    PM10,
    PM25,
    TREND_WINDOW_POINTS,
    WEATHER_DEFAULTS,
)
from data_pipeline.feature_engineering import build_training_data, group_by_parameter
from data_pipeline.schemas import FeatureVector, Location, Sample, WeatherSample
from models.aggregate import IndexPoint, aggregate
from models.aqi import BREAKPOINT_VERSION, canonical_unit, normalize_concentration
from models.health import health_recommendations
from models.training import ModelRegistry, TrainedModel, train_all

# Used when a parameter has no history at all
BASELINE_CONCENTRATIONS = {
    NO2: 25.0,
    PM25: 15.0,
    PM10: 30.0,
    O3: 60.0,
    "so2": 10.0,
    "co": 1.0,
    HCHO: 8.0,
}
DEFAULT_BASELINE = 20.0

SYNTHETIC_CONFIDENCE = 0.3
TREND_CONFIDENCE = 0.5
NO_MODEL_BASE_CONFIDENCE = 0.5

MIN_ADJUSTMENT = 0.3
MAX_ADJUSTMENT = 2.0

PARAMETER_FAMILIES = {
    NO2: "nitrogen_dioxide",
    PM25: "particulate",
    PM10: "particulate",
    O3: "ozone",
    HCHO: "formaldehyde",
}


@dataclass
class ForecastPoint:
    parameter: str
    timestamp: datetime
    value: float
    unit: str
    confidence: float
    method: str = "model"
    weather_influence: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "parameter": self.parameter,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "unit": self.unit,
            "confidence": self.confidence,
            "method": self.method,
            "weather_influence": list(self.weather_influence),
        }


@dataclass
class ForecastResult:
    location: Location
    horizon_hours: int
    generated_at: datetime
    per_parameter_forecast: Dict[str, List[ForecastPoint]]
    index: List[IndexPoint]
    confidence: float
    health: dict = field(default_factory=dict)
    model_metrics: Dict[str, dict] = field(default_factory=dict)
    breakpoint_version: str = BREAKPOINT_VERSION
    registry: Optional[ModelRegistry] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "location": {
                "location_id": self.location.location_id,
                "name": self.location.name,
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
            },
            "horizon_hours": self.horizon_hours,
            "generated_at": self.generated_at.isoformat(),
            "per_parameter_forecast": {
                p: [pt.to_dict() for pt in points]
                for p, points in self.per_parameter_forecast.items()
            },
            "index": [pt.to_dict() for pt in self.index],
            "confidence": self.confidence,
            "health": self.health,
            "model_metrics": self.model_metrics,
            "breakpoint_version": self.breakpoint_version,
        }


# =====================================================
# HELPERS
# =====================================================

def forecast_start(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0)


def forecast_rng(location_id: str, start: datetime, salt: str = "") -> np.random.Generator:
    # crc32 rather than hash(): stable across processes
    key = f"{location_id}|{start:%Y%m%dT%H}|{salt}".encode()
    return np.random.default_rng(zlib.crc32(key))


def _diurnal(h: int) -> float:
    return math.sin(h * math.pi / 12)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _field(weather: WeatherSample, name: str) -> float:
    value = getattr(weather, name)
    return WEATHER_DEFAULTS[name] if value is None else float(value)


def project_weather(current: Optional[WeatherSample], location: Location, start: datetime,
                    hours: int, rng: np.random.Generator) -> List[WeatherSample]:
    """
    Hourly weather for the forecast window: the current reading plus a
    24h sinusoid and bounded jitter, or a generic diurnal curve when no
    reading exists.
    """
    series = []

    if current is None:
        base_temp = 20 + _diurnal(start.hour) * 10

        for h in range(hours):
            series.append(WeatherSample(
                latitude=location.latitude,
                longitude=location.longitude,
                timestamp=start + timedelta(hours=h),
                temperature=base_temp + _diurnal(h) * 5 + rng.uniform(-2, 2),
                humidity=50 + rng.uniform(0, 30),
                wind_speed=3 + rng.uniform(0, 8),
                pressure=1013 + rng.uniform(-10, 10),
                cloud_cover=rng.uniform(0, 100),
                source="synthetic",
            ))
        return series

    temperature = _field(current, "temperature")
    humidity = _field(current, "humidity")
    wind_speed = _field(current, "wind_speed")
    pressure = _field(current, "pressure")
    cloud_cover = _field(current, "cloud_cover")

    for h in range(hours):
        series.append(WeatherSample(
            latitude=location.latitude,
            longitude=location.longitude,
            timestamp=start + timedelta(hours=h),
            temperature=temperature + _diurnal(h) * 3 + rng.uniform(-1, 1),
            humidity=_clamp(humidity + rng.uniform(-10, 10), 20, 90),
            wind_speed=max(0.0, wind_speed + rng.uniform(-2, 2)),
            pressure=pressure + rng.uniform(-5, 5),
            cloud_cover=_clamp(cloud_cover + rng.uniform(-20, 20), 0, 100),
            source="projected",
        ))
    return series


def weather_adjustment(parameter: str, weather: WeatherSample) -> float:
    family = PARAMETER_FAMILIES.get(parameter)
    temperature = _field(weather, "temperature")
    humidity = _field(weather, "humidity")
    wind_speed = _field(weather, "wind_speed")
    pressure = _field(weather, "pressure")

    adjustment = 1.0

    if family == "nitrogen_dioxide":
        # stagnant, high-pressure air traps NO2
        adjustment *= (pressure / 1013) * 0.2 + 0.8
        adjustment *= max(0.5, (10 - wind_speed) / 10)

    elif family == "particulate":
        adjustment *= max(0.6, (8 - wind_speed) / 8)
        adjustment *= (humidity / 100) * 0.3 + 0.7

    elif family == "ozone":
        adjustment *= max(0.7, (temperature - 10) / 30)
        adjustment *= max(0.8, (100 - humidity) / 100)

    elif family == "formaldehyde":
        adjustment *= max(0.8, (temperature - 5) / 25)

    return _clamp(adjustment, MIN_ADJUSTMENT, MAX_ADJUSTMENT)


def prediction_confidence(base_confidence: float, hour_offset: int) -> float:
    decay = math.exp(-hour_offset / CONFIDENCE_DECAY_HOURS)
    return min(MAX_CONFIDENCE, max(0.0, base_confidence) * decay)


def weather_influence(parameter: str, weather: WeatherSample) -> List[str]:
    influences = []

    if _field(weather, "wind_speed") < 3:
        influences.append("low_wind_dispersion")
    if _field(weather, "humidity") > 70:
        influences.append("high_humidity")
    if _field(weather, "temperature") > 25 and parameter == O3:
        influences.append("heat_ozone_formation")
    if _field(weather, "pressure") > 1020:
        influences.append("high_pressure_stagnation")

    return influences


# =====================================================
# PER-PARAMETER FORECASTS
# =====================================================

def model_forecast(parameter: str, model: TrainedModel, weather_series: List[WeatherSample],
                   start: datetime, hours: int) -> List[ForecastPoint]:
    points = []
    unit = canonical_unit(parameter)

    for h in range(hours):
        weather = weather_series[h]
        timestamp = start + timedelta(hours=h)

        features = FeatureVector(
            hour=timestamp.hour,
            day_of_week=timestamp.weekday(),
            temperature=_field(weather, "temperature"),
            humidity=_field(weather, "humidity"),
            wind_speed=_field(weather, "wind_speed"),
            pressure=_field(weather, "pressure"),
            cloud_cover=_field(weather, "cloud_cover"),
        )

        prediction = model.predict(features) * weather_adjustment(parameter, weather)
        if not math.isfinite(prediction):
            prediction = 0.0

        points.append(ForecastPoint(
            parameter=parameter,
            timestamp=timestamp,
            value=round(max(0.0, prediction), 2),
            unit=unit,
            confidence=prediction_confidence(model.r2, h),
            method="model",
            weather_influence=weather_influence(parameter, weather),
        ))

    return points


def trend_forecast(parameter: str, history: List[float], start: datetime, hours: int,
                   rng: np.random.Generator) -> List[ForecastPoint]:
    """
    Fallback forecast: recent mean + linear trend + diurnal swing.
    With no history at all a fixed per-parameter baseline is used.
    """
    unit = canonical_unit(parameter)
    recent = history[-TREND_WINDOW_POINTS:]

    if not recent:
        base_value = BASELINE_CONCENTRATIONS.get(parameter, DEFAULT_BASELINE)
        return [
            ForecastPoint(
                parameter=parameter,
                timestamp=start + timedelta(hours=h),
                value=round(max(0.0, base_value + _diurnal(h) * 5 + rng.uniform(-2, 2)), 2),
                unit=unit,
                confidence=SYNTHETIC_CONFIDENCE,
                method="synthetic",
            )
            for h in range(hours)
        ]

    avg_value = sum(recent) / len(recent)
    trend = (recent[-1] - recent[0]) / len(recent) if len(recent) > 1 else 0.0

    return [
        ForecastPoint(
            parameter=parameter,
            timestamp=start + timedelta(hours=h),
            value=round(max(0.0, avg_value + trend * h + _diurnal(h) * avg_value * 0.2), 2),
            unit=unit,
            confidence=TREND_CONFIDENCE,
            method="trend",
        )
        for h in range(hours)
    ]


def overall_confidence(per_parameter: Dict[str, List[ForecastPoint]]) -> float:
    confidences = [
        pt.confidence
        for points in per_parameter.values()
        for pt in points[:CONFIDENCE_HORIZON_POINTS]
    ]
    return sum(confidences) / len(confidences) if confidences else NO_MODEL_BASE_CONFIDENCE


def concentration_history(samples: List[Sample]) -> List[float]:
    ordered = sorted(samples, key=lambda s: s.timestamp)
    values = []
    for s in ordered:
        value = normalize_concentration(s.parameter, s.value, s.unit)
        if value is not None:
            values.append(value)
    return values


# =====================================================
# GENERATOR
# =====================================================

class ForecastGenerator:

    def __init__(self, sample_repo, weather_repo, training_window_days: int = None):
        self.sample_repo = sample_repo
        self.weather_repo = weather_repo
        self.training_window_days = (
            settings.TRAINING_WINDOW_DAYS if training_window_days is None else training_window_days
        )

    async def _load(self, location: Location, parameters: List[str], now: datetime):
        geobox = location.geobox()
        since = now - timedelta(days=self.training_window_days)

        samples = {}
        for parameter in parameters:
            samples[parameter] = await self.sample_repo.find_samples(parameter, geobox, since)

        weather = await self.weather_repo.find_weather(geobox, since)
        current = await self.weather_repo.find_latest(geobox)
        return samples, weather, current

    @staticmethod
    def _train(parameters, samples, weather) -> ModelRegistry:
        all_samples = [s for p in parameters for s in samples[p]]
        rows = group_by_parameter(build_training_data(all_samples, weather))
        return train_all(rows, parameters)

    def _parameter_forecast(self, parameter, model, samples, weather_series, location, start, hours):
        if model is not None:
            return model_forecast(parameter, model, weather_series, start, hours)

        logger.info(f"No model available for {parameter}, using simple trend")
        rng = forecast_rng(location.location_id, start, salt=parameter)
        return trend_forecast(parameter, concentration_history(samples), start, hours, rng)

    async def train_models(self, location: Location, parameters: List[str] = None,
                           now: datetime = None) -> ModelRegistry:
        parameters = FORECAST_PARAMETERS if parameters is None else parameters
        now = now or datetime.now(timezone.utc)

        samples, weather, _ = await self._load(location, parameters, now)
        return self._train(parameters, samples, weather)

    async def forecast(self, parameter: str, location: Location, horizon_hours: int,
                       now: datetime = None) -> List[ForecastPoint]:
        """Hourly forecast for one parameter, offsets 0..horizon_hours-1."""
        result = await self.forecast_location(location, horizon_hours, [parameter], now)
        return result.per_parameter_forecast[parameter]

    async def forecast_location(self, location: Location, horizon_hours: int = None,
                                parameters: List[str] = None, now: datetime = None) -> ForecastResult:
        horizon_hours = settings.FORECAST_HORIZON_HOURS if horizon_hours is None else horizon_hours
        if horizon_hours < 0:
            raise ValueError(f"Forecast horizon cannot be negative, got {horizon_hours}")
        parameters = FORECAST_PARAMETERS if parameters is None else parameters
        now = now or datetime.now(timezone.utc)
        start = forecast_start(now)

        logger.info(f"Generating {horizon_hours}-hour forecast for {location.name}...")

        samples, weather, current = await self._load(location, parameters, now)
        registry = self._train(parameters, samples, weather)

        # one weather projection shared by every parameter
        weather_series = project_weather(
            current, location, start, horizon_hours, forecast_rng(location.location_id, start)
        )

        per_parameter = {
            p: self._parameter_forecast(p, registry.get(p), samples[p], weather_series,
                                        location, start, horizon_hours)
            for p in parameters
        }

        index_points = aggregate(per_parameter, horizon_hours)

        return ForecastResult(
            location=location,
            horizon_hours=horizon_hours,
            generated_at=now,
            per_parameter_forecast=per_parameter,
            index=index_points,
            confidence=overall_confidence(per_parameter),
            health=health_recommendations(index_points),
            model_metrics=registry.metrics(),
            registry=registry,
        )
