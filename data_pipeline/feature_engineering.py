# =========================================================
# FEATURE ENGINEERING (TRAINING ROWS)
# ---------------------------------------------------------
# Each pollutant sample is joined with the weather record
# nearest in time (|dt| <= 6h). Unmatched samples are dropped.
# Features: hour, day_of_week + 5 weather covariates
# Target:   concentration in the parameter's canonical unit
# ---------------------------------------------------------
# Pure and deterministic: same inputs -> same rows, same order.
# =========================================================

from typing import Dict, List

import pandas as pd

from config.logging import logger
from config.constants import (
    FEATURE_COLUMNS,
    WEATHER_DEFAULTS,
    WEATHER_FEATURES,
    WEATHER_JOIN_TOLERANCE_HOURS,
)
from data_pipeline.schemas import FeatureVector, Sample, TrainingRow, WeatherSample
from models.aqi import normalize_concentration


def _sample_frame(samples: List[Sample]) -> pd.DataFrame:
    df = pd.DataFrame([
        {
            "order": i,
            "parameter": s.parameter,
            "value": s.value,
            "unit": s.unit,
            "timestamp": s.timestamp,
        }
        for i, s in enumerate(samples)
    ])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def _weather_frame(weather_samples: List[WeatherSample]) -> pd.DataFrame:
    df = pd.DataFrame([w.to_document() for w in weather_samples])
    df = df[["timestamp"] + WEATHER_FEATURES].rename(columns={"timestamp": "weather_timestamp"})
    df["weather_timestamp"] = pd.to_datetime(df["weather_timestamp"], utc=True)
    for col in WEATHER_FEATURES:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def join_nearest_weather(samples: List[Sample], weather_samples: List[WeatherSample]) -> pd.DataFrame:
    """
    Sample rows with the nearest-in-time weather columns attached.
    Samples with no weather record within the tolerance are removed.
    """
    if not samples or not weather_samples:
        return pd.DataFrame()

    sample_df = _sample_frame(samples).sort_values("timestamp", kind="mergesort")
    weather_df = _weather_frame(weather_samples).sort_values("weather_timestamp", kind="mergesort")

    merged = pd.merge_asof(
        sample_df,
        weather_df,
        left_on="timestamp",
        right_on="weather_timestamp",
        direction="nearest",
        tolerance=pd.Timedelta(hours=WEATHER_JOIN_TOLERANCE_HOURS)
    )

    before = len(merged)
    merged = merged.dropna(subset=["weather_timestamp"])
    dropped = before - len(merged)
    if dropped > 0:
        logger.info(f"Excluded {dropped} samples with no weather within {WEATHER_JOIN_TOLERANCE_HOURS}h")

    merged = merged.fillna(value=WEATHER_DEFAULTS)
    return merged.sort_values("order").reset_index(drop=True)


def build_training_data(samples: List[Sample], weather_samples: List[WeatherSample]) -> List[TrainingRow]:
    merged = join_nearest_weather(samples, weather_samples)
    if merged.empty:
        return []

    merged["hour"] = merged["timestamp"].dt.hour
    merged["day_of_week"] = merged["timestamp"].dt.dayofweek

    rows = []
    for rec in merged.itertuples(index=False):
        target = normalize_concentration(rec.parameter, rec.value, rec.unit)
        if target is None:
            continue

        rows.append(TrainingRow(
            parameter=rec.parameter,
            features=FeatureVector(
                hour=int(rec.hour),
                day_of_week=int(rec.day_of_week),
                temperature=float(rec.temperature),
                humidity=float(rec.humidity),
                wind_speed=float(rec.wind_speed),
                pressure=float(rec.pressure),
                cloud_cover=float(rec.cloud_cover),
            ),
            target=target,
            timestamp=rec.timestamp.to_pydatetime(),
        ))

    return rows


def group_by_parameter(rows: List[TrainingRow]) -> Dict[str, List[TrainingRow]]:
    grouped: Dict[str, List[TrainingRow]] = {}
    for row in rows:
        grouped.setdefault(row.parameter, []).append(row)
    return grouped


def rows_to_frame(rows: List[TrainingRow]) -> pd.DataFrame:
    df = pd.DataFrame([r.features.as_list() for r in rows], columns=FEATURE_COLUMNS)
    df["target"] = [r.target for r in rows]
    return df
