"""
Simulated readings used when live acquisition is unavailable.

Kept behind the ingestion step so the rest of the pipeline never knows
whether a record came from an API or from here. Pass a seeded
``numpy.random.Generator`` for reproducible output.
"""

from datetime import datetime
from typing import List, Optional

import numpy as np

from config.constants import CO, NO2, O3, PM10, PM25, SO2, SOURCE_GROUND
from data_pipeline.schemas import Location, Sample, WeatherSample
from models.aqi import UG_M3

# (low, high) uniform ranges in µg/m³
SIMULATED_GROUND_RANGES = {
    PM25: (5.0, 55.0),
    PM10: (10.0, 90.0),
    NO2: (10.0, 70.0),
    O3: (20.0, 200.0),
    SO2: (2.0, 32.0),
    CO: (100.0, 2100.0),
}


def simulate_weather(location: Location, timestamp: datetime,
                     rng: Optional[np.random.Generator] = None) -> WeatherSample:
    rng = rng or np.random.default_rng()

    return WeatherSample(
        latitude=location.latitude,
        longitude=location.longitude,
        timestamp=timestamp,
        temperature=float(rng.uniform(5, 35)),
        humidity=float(rng.uniform(30, 90)),
        wind_speed=float(rng.uniform(1, 16)),
        pressure=float(rng.uniform(1000, 1050)),
        cloud_cover=float(rng.uniform(0, 100)),
        source="simulated",
    )


def simulate_ground_samples(location: Location, timestamp: datetime,
                            rng: Optional[np.random.Generator] = None) -> List[Sample]:
    rng = rng or np.random.default_rng()
    samples = []

    for parameter, (low, high) in SIMULATED_GROUND_RANGES.items():
        samples.append(Sample(
            parameter=parameter,
            value=float(rng.uniform(low, high)),
            unit=UG_M3,
            latitude=location.latitude + float(rng.uniform(-0.05, 0.05)),
            longitude=location.longitude + float(rng.uniform(-0.05, 0.05)),
            timestamp=timestamp,
            quality_flag="valid",
            source=SOURCE_GROUND,
            source_name="Simulated",
        ))

    return samples
