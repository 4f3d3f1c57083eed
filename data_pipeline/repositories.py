# =========================================================
# SAMPLE & WEATHER REPOSITORIES
# ---------------------------------------------------------
# Read/write access to ingested pollutant and weather records.
# The pipeline only talks to the abstract interfaces; MongoDB
# backs them in production, in-memory fakes back them in tests.
# =========================================================

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING

from config.constants import (
    ACCEPTED_QUALITY_FLAGS,
    SAMPLE_COLLECTION,
    WEATHER_COLLECTION,
)
from config.logging import logger
from data_pipeline.schemas import GeoBox, Sample, WeatherSample, parameter_names


class SampleRepository(ABC):

    @abstractmethod
    async def find_samples(self, parameter: str, geobox: GeoBox, since: datetime) -> List[Sample]:
        """Accepted-quality samples for one parameter, oldest first."""

    @abstractmethod
    async def find_latest(self, geobox: GeoBox) -> Optional[Sample]:
        """Most recent accepted-quality sample of any parameter."""

    @abstractmethod
    async def find_recent(self, geobox: GeoBox, since: datetime,
                          source: Optional[str] = None) -> List[Sample]:
        """Accepted-quality samples newer than `since`, newest first."""

    @abstractmethod
    async def insert_many(self, samples: List[Sample]) -> int:
        ...


class WeatherRepository(ABC):

    @abstractmethod
    async def find_weather(self, geobox: GeoBox, since: datetime) -> List[WeatherSample]:
        """Weather records newer than `since`, oldest first."""

    @abstractmethod
    async def find_latest(self, geobox: GeoBox) -> Optional[WeatherSample]:
        ...

    @abstractmethod
    async def insert(self, weather: WeatherSample) -> None:
        ...


class MongoSampleRepository(SampleRepository):

    def __init__(self, db):
        self.collection = db[SAMPLE_COLLECTION]

    async def ensure_indexes(self):
        await self.collection.create_index(
            [("latitude", ASCENDING), ("longitude", ASCENDING), ("timestamp", DESCENDING)]
        )
        await self.collection.create_index([("parameter", ASCENDING), ("timestamp", DESCENDING)])

    def _base_query(self, geobox: GeoBox, since: Optional[datetime] = None) -> dict:
        query = geobox.to_query()
        query["quality_flag"] = {"$in": ACCEPTED_QUALITY_FLAGS}
        if since is not None:
            query["timestamp"] = {"$gte": since}
        return query

    async def find_samples(self, parameter, geobox, since):
        query = self._base_query(geobox, since)
        query["parameter"] = {"$in": parameter_names(parameter)}

        cursor = self.collection.find(query, {"_id": 0}).sort("timestamp", ASCENDING)
        docs = await cursor.to_list(None)
        return [Sample.from_document(d) for d in docs]

    async def find_latest(self, geobox):
        doc = await self.collection.find_one(
            self._base_query(geobox),
            projection={"_id": 0},
            sort=[("timestamp", DESCENDING)]
        )
        return Sample.from_document(doc) if doc else None

    async def find_recent(self, geobox, since, source=None):
        query = self._base_query(geobox, since)
        if source is not None:
            query["source"] = source

        cursor = self.collection.find(query, {"_id": 0}).sort("timestamp", DESCENDING)
        docs = await cursor.to_list(None)
        return [Sample.from_document(d) for d in docs]

    async def insert_many(self, samples):
        if not samples:
            return 0
        result = await self.collection.insert_many([s.to_document() for s in samples])
        logger.info(f"Inserted samples: {len(result.inserted_ids)}")
        return len(result.inserted_ids)


class MongoWeatherRepository(WeatherRepository):

    def __init__(self, db):
        self.collection = db[WEATHER_COLLECTION]

    async def ensure_indexes(self):
        await self.collection.create_index(
            [("latitude", ASCENDING), ("longitude", ASCENDING), ("timestamp", DESCENDING)]
        )

    async def find_weather(self, geobox, since):
        query = geobox.to_query()
        query["timestamp"] = {"$gte": since}

        cursor = self.collection.find(query, {"_id": 0}).sort("timestamp", ASCENDING)
        docs = await cursor.to_list(None)
        return [WeatherSample.from_document(d) for d in docs]

    async def find_latest(self, geobox):
        doc = await self.collection.find_one(
            geobox.to_query(),
            projection={"_id": 0},
            sort=[("timestamp", DESCENDING)]
        )
        return WeatherSample.from_document(doc) if doc else None

    async def insert(self, weather):
        await self.collection.insert_one(weather.to_document())
