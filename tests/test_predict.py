import math
from datetime import timedelta

import numpy as np
import pytest

from conftest import InMemorySampleRepository, InMemoryWeatherRepository, hourly, make_sample, make_weather
from models.predict import (
    ForecastGenerator,
    MAX_ADJUSTMENT,
    MIN_ADJUSTMENT,
    forecast_rng,
    forecast_start,
    prediction_confidence,
    project_weather,
    trend_forecast,
    weather_adjustment,
    weather_influence,
)


class TestConfidence:

    def test_decay(self):
        assert prediction_confidence(0.8, 0) == pytest.approx(0.8)
        assert prediction_confidence(0.8, 12) == pytest.approx(0.8 * math.exp(-1), abs=1e-3)
        assert prediction_confidence(0.8, 12) == pytest.approx(0.294, abs=1e-3)

    def test_capped_and_floored(self):
        assert prediction_confidence(1.0, 0) == 0.95
        assert prediction_confidence(-0.4, 3) == 0.0

    def test_non_increasing(self):
        values = [prediction_confidence(0.9, h) for h in range(48)]
        assert all(a >= b for a, b in zip(values, values[1:]))


class TestProjectWeather:

    def test_bounds_with_current_reading(self, location, now):
        current = make_weather(location, now, humidity=88.0, wind_speed=0.5, cloud_cover=95.0)
        series = project_weather(current, location, forecast_start(now), 48, np.random.default_rng(1))

        assert len(series) == 48
        assert all(20 <= w.humidity <= 90 for w in series)
        assert all(w.wind_speed >= 0 for w in series)
        assert all(0 <= w.cloud_cover <= 100 for w in series)
        assert series[1].timestamp - series[0].timestamp == timedelta(hours=1)

    def test_synthetic_without_reading(self, location, now):
        series = project_weather(None, location, forecast_start(now), 24, np.random.default_rng(1))

        assert {w.source for w in series} == {"synthetic"}
        assert all(50 <= w.humidity <= 80 for w in series)
        assert all(1003 <= w.pressure <= 1023 for w in series)


class TestWeatherEffects:

    def test_adjustment_is_clamped(self, location, now):
        calm = make_weather(location, now, wind_speed=0.0, pressure=1100.0, humidity=100.0, temperature=45.0)
        for parameter in ("no2", "pm25", "o3", "hcho", "so2"):
            assert MIN_ADJUSTMENT <= weather_adjustment(parameter, calm) <= MAX_ADJUSTMENT

    def test_unknown_family_is_neutral(self, location, now):
        assert weather_adjustment("so2", make_weather(location, now)) == 1.0

    def test_influence_tags(self, location, now):
        hot_still = make_weather(location, now, wind_speed=1.0, humidity=80.0, temperature=30.0, pressure=1025.0)
        tags = weather_influence("o3", hot_still)
        assert tags == ["low_wind_dispersion", "high_humidity", "heat_ozone_formation", "high_pressure_stagnation"]
        assert "heat_ozone_formation" not in weather_influence("no2", hot_still)


class TestTrendForecast:

    def test_synthetic_without_history(self, now):
        points = trend_forecast("no2", [], forecast_start(now), 24, np.random.default_rng(0))

        assert len(points) == 24
        assert {p.method for p in points} == {"synthetic"}
        assert {p.confidence for p in points} == {0.3}
        assert all(p.value >= 0 for p in points)

    def test_trend_from_history(self, now):
        points = trend_forecast("pm25", [10.0, 12.0, 14.0], forecast_start(now), 6, np.random.default_rng(0))

        assert {p.method for p in points} == {"trend"}
        assert {p.confidence for p in points} == {0.5}
        # mean 12 + trend 4/3 * 0, no diurnal swing at h=0
        assert points[0].value == pytest.approx(12.0)

    def test_never_negative(self, now):
        points = trend_forecast("o3", [50.0, 1.0], forecast_start(now), 24, np.random.default_rng(0))
        assert all(p.value >= 0 for p in points)


def _rich_history(location, now, hours=72):
    start = now - timedelta(hours=hours)
    samples, weather = [], []
    for i, t in enumerate(hourly(start, hours)):
        temperature = 15.0 + (i * 7) % 15
        wind = 1.0 + (i * 3) % 8
        weather.append(make_weather(location, t, temperature=temperature, wind_speed=wind,
                                    humidity=40.0 + (i * 11) % 40, cloud_cover=float((i * 17) % 100)))
        samples.append(make_sample(location, "no2", 20.0 + temperature - wind, t))
    return samples, weather


class TestForecastGenerator:

    @pytest.mark.asyncio
    async def test_no_data_falls_back_to_synthetic(self, location, now):
        generator = ForecastGenerator(InMemorySampleRepository(), InMemoryWeatherRepository())
        result = await generator.forecast_location(location, 12, now=now)

        assert set(result.per_parameter_forecast) == {"no2", "pm25", "o3", "hcho"}
        for points in result.per_parameter_forecast.values():
            assert len(points) == 12
            assert all(p.method == "synthetic" for p in points)
        assert result.confidence == pytest.approx(0.3)
        assert len(result.index) == 12
        assert result.model_metrics == {}

    @pytest.mark.asyncio
    async def test_trained_model_is_used(self, location, now):
        samples, weather = _rich_history(location, now)
        generator = ForecastGenerator(InMemorySampleRepository(samples), InMemoryWeatherRepository(weather))

        points = await generator.forecast("no2", location, 24, now=now)

        assert len(points) == 24
        assert all(p.method == "model" for p in points)
        assert all(p.value >= 0 for p in points)
        confidences = [p.confidence for p in points]
        assert all(a >= b for a, b in zip(confidences, confidences[1:]))
        assert points[0].timestamp == forecast_start(now)

    @pytest.mark.asyncio
    async def test_parameter_with_short_history_uses_trend(self, location, now):
        samples = [make_sample(location, "pm25", 12.0, now - timedelta(hours=h)) for h in range(1, 4)]
        generator = ForecastGenerator(InMemorySampleRepository(samples), InMemoryWeatherRepository())

        points = await generator.forecast("pm25", location, 6, now=now)
        assert {p.method for p in points} == {"trend"}

    @pytest.mark.asyncio
    async def test_identical_inputs_give_identical_forecasts(self, location, now):
        samples, weather = _rich_history(location, now)
        sample_repo = InMemorySampleRepository(samples)
        weather_repo = InMemoryWeatherRepository(weather)

        first = await ForecastGenerator(sample_repo, weather_repo).forecast_location(location, 24, now=now)
        second = await ForecastGenerator(sample_repo, weather_repo).forecast_location(
            location, 24, now=now + timedelta(minutes=20)
        )

        for parameter in first.per_parameter_forecast:
            assert [p.value for p in first.per_parameter_forecast[parameter]] == \
                   [p.value for p in second.per_parameter_forecast[parameter]]
        assert [p.index for p in first.index] == [p.index for p in second.index]

    @pytest.mark.asyncio
    async def test_result_serializes(self, location, now):
        generator = ForecastGenerator(InMemorySampleRepository(), InMemoryWeatherRepository())
        result = await generator.forecast_location(location, 3, now=now)

        data = result.to_dict()
        assert data["location"]["location_id"] == "test-city"
        assert data["breakpoint_version"]
        assert "registry" not in data
        assert len(data["index"]) == 3

    @pytest.mark.asyncio
    async def test_zero_horizon_is_empty(self, location, now):
        generator = ForecastGenerator(InMemorySampleRepository(), InMemoryWeatherRepository())
        result = await generator.forecast_location(location, 0, now=now)

        assert result.horizon_hours == 0
        assert result.index == []
        assert all(points == [] for points in result.per_parameter_forecast.values())
        assert await generator.forecast("no2", location, 0, now=now) == []

    @pytest.mark.asyncio
    async def test_negative_horizon_is_rejected(self, location, now):
        generator = ForecastGenerator(InMemorySampleRepository(), InMemoryWeatherRepository())
        with pytest.raises(ValueError):
            await generator.forecast_location(location, -1, now=now)

    @pytest.mark.asyncio
    async def test_empty_parameter_list_is_respected(self, location, now):
        generator = ForecastGenerator(InMemorySampleRepository(), InMemoryWeatherRepository())
        result = await generator.forecast_location(location, 4, parameters=[], now=now)

        assert result.per_parameter_forecast == {}
        assert result.index == []

    @pytest.mark.asyncio
    async def test_train_models(self, location, now):
        samples, weather = _rich_history(location, now)
        generator = ForecastGenerator(InMemorySampleRepository(samples), InMemoryWeatherRepository(weather))

        registry = await generator.train_models(location, ["no2", "pm25"], now=now)

        assert "no2" in registry
        assert "pm25" not in registry
        assert len(registry) == 1
        assert registry.get("no2").n_samples == 72
        assert set(registry.metrics()) == {"no2"}

    @pytest.mark.asyncio
    async def test_train_models_respects_window(self, location, now):
        samples, weather = _rich_history(location, now)
        generator = ForecastGenerator(InMemorySampleRepository(samples), InMemoryWeatherRepository(weather),
                                      training_window_days=0)

        registry = await generator.train_models(location, ["no2"], now=now)
        assert len(registry) == 0


def test_rng_is_stable_per_location_and_hour(now):
    a = forecast_rng("nyc", forecast_start(now)).uniform()
    b = forecast_rng("nyc", forecast_start(now)).uniform()
    c = forecast_rng("chicago", forecast_start(now)).uniform()
    assert a == b
    assert a != c
