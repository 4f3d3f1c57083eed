import asyncio
from datetime import datetime, timezone

import numpy as np
import requests

from config.settings import settings
from config.logging import logger
from config.constants import CO, NO2, O3, PM10, PM25, SO2, SOURCE_GROUND
from data_pipeline.schemas import Location, Sample, WeatherSample
from data_pipeline.simulation import simulate_ground_samples, simulate_weather
from models.aqi import UG_M3

WEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
AIR_POLLUTION_URL = "https://api.openweathermap.org/data/2.5/air_pollution"

# OpenWeather component name -> parameter (all reported in µg/m³)
COMPONENT_MAP = {
    "pm2_5": PM25,
    "pm10": PM10,
    "no2": NO2,
    "o3": O3,
    "so2": SO2,
    "co": CO,
}


# =====================================================
# FETCH CURRENT WEATHER
# =====================================================

def fetch_current_weather(location: Location, api_key: str, timeout: float) -> WeatherSample:
    logger.info(f"Fetching current weather for {location.name}...")

    params = {
        "lat": location.latitude,
        "lon": location.longitude,
        "appid": api_key,
        "units": "metric"
    }

    response = requests.get(WEATHER_URL, params=params, timeout=timeout)
    response.raise_for_status()

    payload = response.json()
    main = payload["main"]
    observed = payload.get("dt")

    return WeatherSample(
        latitude=location.latitude,
        longitude=location.longitude,
        timestamp=datetime.fromtimestamp(observed, tz=timezone.utc) if observed else datetime.now(timezone.utc),
        temperature=main.get("temp"),
        humidity=main.get("humidity"),
        wind_speed=(payload.get("wind") or {}).get("speed", 0),
        pressure=main.get("pressure"),
        cloud_cover=(payload.get("clouds") or {}).get("all", 0),
        source="OpenWeatherMap",
    )


# =====================================================
# FETCH CURRENT AIR POLLUTION
# =====================================================

def fetch_current_air_pollution(location: Location, api_key: str, timeout: float) -> list:
    logger.info(f"Fetching current pollutant levels for {location.name}...")

    params = {
        "lat": location.latitude,
        "lon": location.longitude,
        "appid": api_key
    }

    response = requests.get(AIR_POLLUTION_URL, params=params, timeout=timeout)
    response.raise_for_status()

    data = response.json().get("list", [])
    if not data:
        raise ValueError("No air pollution records returned from API")

    item = data[0]
    ts = datetime.fromtimestamp(item["dt"], tz=timezone.utc)
    comp = item.get("components", {})

    samples = []
    for component, parameter in COMPONENT_MAP.items():
        value = comp.get(component)
        if value is None:
            continue
        samples.append(Sample(
            parameter=parameter,
            value=float(value),
            unit=UG_M3,
            latitude=location.latitude,
            longitude=location.longitude,
            timestamp=ts,
            quality_flag="valid",
            source=SOURCE_GROUND,
            source_name="OpenWeatherMap",
        ))

    return samples


# =====================================================
# INGEST: FETCH (OR SIMULATE) + STORE
# =====================================================

class LatestIngestor:
    """
    Deposits the current weather and ground readings for a location.

    Network failures, timeouts and bad payloads fall back to simulated
    readings. Store failures are not caught here.
    """

    def __init__(self, sample_repo, weather_repo, api_key=None, timeout=None, rng=None):
        self.sample_repo = sample_repo
        self.weather_repo = weather_repo
        self.api_key = api_key if api_key is not None else settings.OPENWEATHER_API_KEY
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self.rng = rng or np.random.default_rng()

    async def _call(self, fetch, location):
        # requests is blocking; keep it off the loop and bound the wait
        return await asyncio.wait_for(
            asyncio.to_thread(fetch, location, self.api_key, self.timeout),
            timeout=self.timeout + 1
        )

    async def fetch_weather(self, location: Location, now: datetime) -> WeatherSample:
        if not self.api_key:
            logger.warning("OPENWEATHER_API_KEY not set. Using simulated weather.")
            return simulate_weather(location, now, self.rng)

        try:
            return await self._call(fetch_current_weather, location)
        except (requests.RequestException, asyncio.TimeoutError, KeyError, ValueError) as e:
            logger.warning(f"Weather fetch failed for {location.name}: {e}. Using simulated weather.")
            return simulate_weather(location, now, self.rng)

    async def fetch_samples(self, location: Location, now: datetime) -> list:
        if not self.api_key:
            return simulate_ground_samples(location, now, self.rng)

        try:
            return await self._call(fetch_current_air_pollution, location)
        except (requests.RequestException, asyncio.TimeoutError, KeyError, ValueError) as e:
            logger.warning(f"Air pollution fetch failed for {location.name}: {e}. Using simulated samples.")
            return simulate_ground_samples(location, now, self.rng)

    async def ingest(self, location: Location, now: datetime = None):
        now = now or datetime.now(timezone.utc)

        weather = await self.fetch_weather(location, now)
        samples = await self.fetch_samples(location, now)

        await self.weather_repo.insert(weather)
        inserted = await self.sample_repo.insert_many(samples)

        logger.info(
            f"Ingestion complete for {location.name} | "
            f"weather={weather.source} | samples={inserted}"
        )
        return weather, samples
