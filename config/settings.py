import json
import os
from dotenv import load_dotenv

# -----------------------------------------------------
# LOAD LOCAL .env IF EXISTS
# -----------------------------------------------------
load_dotenv()  # safe: only affects local dev


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DEFAULT_LOCATIONS = [
    {"location_id": "new-york", "name": "New York, NY", "latitude": 40.7128, "longitude": -74.0060},
    {"location_id": "los-angeles", "name": "Los Angeles, CA", "latitude": 34.0522, "longitude": -118.2437},
    {"location_id": "chicago", "name": "Chicago, IL", "latitude": 41.8781, "longitude": -87.6298},
    {"location_id": "denver", "name": "Denver, CO", "latitude": 39.7392, "longitude": -104.9903},
    {"location_id": "washington", "name": "Washington, DC", "latitude": 38.9072, "longitude": -77.0369},
    {"location_id": "houston", "name": "Houston, TX", "latitude": 29.7604, "longitude": -95.3698},
]


class Settings:
    """
    Central configuration for the forecasting and alerting pipeline.
    Works for both local dev (.env) and deployed workers (env vars).
    """

    # ---------------- ENV ----------------
    ENV = os.getenv("ENV", "dev")
    TIMEZONE = os.getenv("TIMEZONE", "America/New_York")

    # ---------------- API ----------------
    OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY")
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    # ---------------- DATABASE ----------------
    MONGO_URI = os.getenv("MONGO_URI")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "air_quality")

    # ---------------- PIPELINE ----------------
    SWEEP_INTERVAL_MINUTES = int(os.getenv("SWEEP_INTERVAL_MINUTES", "15"))
    FORECAST_HORIZON_HOURS = int(os.getenv("FORECAST_HORIZON_HOURS", "24"))
    TRAINING_WINDOW_DAYS = int(os.getenv("TRAINING_WINDOW_DAYS", "30"))

    # ---------------- ALERTS ----------------
    QUIET_HOURS_ENABLED = _env_bool("QUIET_HOURS_ENABLED", "true")
    QUIET_HOURS_START = os.getenv("QUIET_HOURS_START", "22:00")
    QUIET_HOURS_END = os.getenv("QUIET_HOURS_END", "07:00")

    AQI_MODERATE_THRESHOLD = int(os.getenv("AQI_MODERATE_THRESHOLD", "100"))
    AQI_MODERATE_ENABLED = _env_bool("AQI_MODERATE_ENABLED", "false")
    AQI_UNHEALTHY_SENSITIVE_THRESHOLD = int(os.getenv("AQI_UNHEALTHY_SENSITIVE_THRESHOLD", "101"))
    AQI_UNHEALTHY_SENSITIVE_ENABLED = _env_bool("AQI_UNHEALTHY_SENSITIVE_ENABLED", "true")
    AQI_UNHEALTHY_THRESHOLD = int(os.getenv("AQI_UNHEALTHY_THRESHOLD", "151"))
    AQI_UNHEALTHY_ENABLED = _env_bool("AQI_UNHEALTHY_ENABLED", "true")
    AQI_VERY_UNHEALTHY_THRESHOLD = int(os.getenv("AQI_VERY_UNHEALTHY_THRESHOLD", "201"))
    AQI_VERY_UNHEALTHY_ENABLED = _env_bool("AQI_VERY_UNHEALTHY_ENABLED", "true")

    # ---------------- LOCATIONS ----------------
    # JSON list of {"location_id", "name", "latitude", "longitude"}
    MONITORED_LOCATIONS = json.loads(os.getenv("MONITORED_LOCATIONS", "null")) or DEFAULT_LOCATIONS


# ---------------- CREATE INSTANCE ----------------
settings = Settings()

# ---------------- FAIL FAST ----------------
missing_vars = []

if not settings.MONGO_URI:
    missing_vars.append("MONGO_URI")

if settings.SWEEP_INTERVAL_MINUTES <= 0:
    raise ValueError("SWEEP_INTERVAL_MINUTES must be a positive integer")

if missing_vars:
    raise ValueError(f"Missing environment variables: {', '.join(missing_vars)}")
