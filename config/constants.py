# =========================
# POLLUTANT PARAMETERS
# =========================

PM25 = "pm25"
PM10 = "pm10"
NO2 = "no2"
O3 = "o3"
SO2 = "so2"
CO = "co"
HCHO = "hcho"

# Fixed evaluation order; ties in dominant-pollutant selection go to the
# parameter listed first.
PARAMETER_ORDER = [PM25, PM10, NO2, O3, SO2, CO, HCHO]

# Parameters that get a per-hour forecast
FORECAST_PARAMETERS = [NO2, PM25, O3, HCHO]

# Satellite product names that map onto the canonical parameter set
PARAMETER_ALIASES = {
    "pm": PM25,
    "pm2_5": PM25,
    "pm2.5": PM25,
}

# =========================
# SAMPLE SOURCES & QUALITY
# =========================

SOURCE_GROUND = "ground"
SOURCE_SATELLITE = "satellite"

ACCEPTED_QUALITY_FLAGS = ["good", "uncertain", "valid", "questionable"]

# =========================
# DATA CONFIG
# =========================

WEATHER_JOIN_TOLERANCE_HOURS = 6
MIN_TRAINING_ROWS = 10
TREND_WINDOW_POINTS = 24
CONFIDENCE_HORIZON_POINTS = 6
MAX_CONFIDENCE = 0.95
CONFIDENCE_DECAY_HOURS = 12
LOCATION_RADIUS_DEG = 0.1

# =========================
# ALERT CONFIG
# =========================

ALERT_DEDUP_WINDOW_MINUTES = 60
ALERT_LOOKBACK_MINUTES = 60
ALERT_TTL_HOURS = 24
EXPIRY_SWEEP_INTERVAL_MINUTES = 60

# =========================
# DATABASE SCHEMA
# =========================

SAMPLE_COLLECTION = "samples"
WEATHER_COLLECTION = "weather"
ALERT_COLLECTION = "alerts"
SUBSCRIBER_COLLECTION = "users"
MODEL_COLLECTION = "model_registry"

# =========================
# FEATURE CONFIG
# =========================

TIME_FEATURES = [
    "hour",
    "day_of_week"
]

WEATHER_FEATURES = [
    "temperature",
    "humidity",
    "wind_speed",
    "pressure",
    "cloud_cover"
]

FEATURE_COLUMNS = TIME_FEATURES + WEATHER_FEATURES

# Used when a joined weather record is missing a field
WEATHER_DEFAULTS = {
    "temperature": 20.0,
    "humidity": 50.0,
    "wind_speed": 5.0,
    "pressure": 1013.0,
    "cloud_cover": 50.0
}
