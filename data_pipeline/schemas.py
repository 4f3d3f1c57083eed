from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

from config.constants import (
    LOCATION_RADIUS_DEG,
    PARAMETER_ALIASES,
    SOURCE_GROUND,
)


def normalize_parameter(parameter: str) -> str:
    parameter = (parameter or "").strip().lower()
    return PARAMETER_ALIASES.get(parameter, parameter)


def parameter_names(parameter: str) -> list:
    """Canonical name first, then every alias stored records may carry."""
    canonical = normalize_parameter(parameter)
    return [canonical] + sorted(alias for alias, name in PARAMETER_ALIASES.items() if name == canonical)


@dataclass(frozen=True)
class GeoBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_lat <= latitude <= self.max_lat
            and self.min_lon <= longitude <= self.max_lon
        )

    def to_query(self) -> dict:
        return {
            "latitude": {"$gte": self.min_lat, "$lte": self.max_lat},
            "longitude": {"$gte": self.min_lon, "$lte": self.max_lon},
        }


@dataclass(frozen=True)
class Location:
    location_id: str
    name: str
    latitude: float
    longitude: float
    radius_deg: float = LOCATION_RADIUS_DEG

    def geobox(self) -> GeoBox:
        return GeoBox(
            min_lat=self.latitude - self.radius_deg,
            max_lat=self.latitude + self.radius_deg,
            min_lon=self.longitude - self.radius_deg,
            max_lon=self.longitude + self.radius_deg,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        return cls(
            location_id=data["location_id"],
            name=data.get("name", data["location_id"]),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            radius_deg=float(data.get("radius_deg", LOCATION_RADIUS_DEG)),
        )


@dataclass(frozen=True)
class Sample:
    """One pollutant concentration reading. Never mutated after ingestion."""

    parameter: str
    value: float
    unit: str
    latitude: float
    longitude: float
    timestamp: datetime
    quality_flag: str = "valid"
    source: str = SOURCE_GROUND
    source_name: Optional[str] = None

    def to_document(self) -> dict:
        return asdict(self)

    @classmethod
    def from_document(cls, doc: dict) -> "Sample":
        return cls(
            parameter=normalize_parameter(doc["parameter"]),
            value=float(doc["value"]),
            unit=doc["unit"],
            latitude=float(doc["latitude"]),
            longitude=float(doc["longitude"]),
            timestamp=doc["timestamp"],
            quality_flag=doc.get("quality_flag", "valid"),
            source=doc.get("source", SOURCE_GROUND),
            source_name=doc.get("source_name"),
        )


@dataclass(frozen=True)
class WeatherSample:
    latitude: float
    longitude: float
    timestamp: datetime
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    pressure: Optional[float] = None
    cloud_cover: Optional[float] = None
    source: str = "observed"

    def to_document(self) -> dict:
        return asdict(self)

    @classmethod
    def from_document(cls, doc: dict) -> "WeatherSample":
        return cls(
            latitude=float(doc["latitude"]),
            longitude=float(doc["longitude"]),
            timestamp=doc["timestamp"],
            temperature=doc.get("temperature"),
            humidity=doc.get("humidity"),
            wind_speed=doc.get("wind_speed"),
            pressure=doc.get("pressure"),
            cloud_cover=doc.get("cloud_cover"),
            source=doc.get("source", "observed"),
        )


@dataclass(frozen=True)
class FeatureVector:
    hour: int
    day_of_week: int
    temperature: float
    humidity: float
    wind_speed: float
    pressure: float
    cloud_cover: float

    def as_list(self) -> list:
        return [
            self.hour,
            self.day_of_week,
            self.temperature,
            self.humidity,
            self.wind_speed,
            self.pressure,
            self.cloud_cover,
        ]


@dataclass(frozen=True)
class TrainingRow:
    parameter: str
    features: FeatureVector
    target: float
    timestamp: Optional[datetime] = field(default=None, compare=False)
