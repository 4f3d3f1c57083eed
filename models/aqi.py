# =========================================================
# AQI INDEX CALCULATOR
# ---------------------------------------------------------
# Concentration -> severity index (0-500) by piecewise-linear
# interpolation over US EPA style breakpoint tables.
# Pure functions over plain values; no persistence here.
# =========================================================

import math
from typing import Optional

from config.constants import CO, HCHO, NO2, O3, PM10, PM25, SO2

# Changing any band below changes index semantics: bump the version.
BREAKPOINT_VERSION = "us-epa-2012.1"

MAX_INDEX = 500

UG_M3 = "µg/m³"
MG_M3 = "mg/m³"
PPB = "ppb"
PPM = "ppm"

UNIT_ALIASES = {
    "ug/m3": UG_M3,
    "µg/m3": UG_M3,
    "μg/m³": UG_M3,
    "ug/m³": UG_M3,
    "mg/m3": MG_M3,
}

# =========================================================
# AQI BREAKPOINT TABLES
# (concentration_low, concentration_high, index_low, index_high)
# ---------------------------------------------------------
# NO2, SO2 and O3 reuse the numeric EPA gas bands (published in
# ppb; O3 from the 8-hour table, which stops at 300) but are
# applied to µg/m³ readings, with ppb input converted first.
# Stored index history depends on this; switching these tables
# to ppb needs a BREAKPOINT_VERSION bump.
# =========================================================
AQI_BREAKPOINTS = {
    PM25: [(0.0, 12.0, 0, 50), (12.1, 35.4, 51, 100), (35.5, 55.4, 101, 150),
           (55.5, 150.4, 151, 200), (150.5, 250.4, 201, 300), (250.5, 500.4, 301, 500)],
    PM10: [(0, 54, 0, 50), (55, 154, 51, 100), (155, 254, 101, 150),
           (255, 354, 151, 200), (355, 424, 201, 300), (425, 604, 301, 500)],
    NO2: [(0, 53, 0, 50), (54, 100, 51, 100), (101, 360, 101, 150),
          (361, 649, 151, 200), (650, 1249, 201, 300), (1250, 2049, 301, 500)],
    SO2: [(0, 35, 0, 50), (36, 75, 51, 100), (76, 185, 101, 150),
          (186, 304, 151, 200), (305, 604, 201, 300), (605, 1004, 301, 500)],
    O3: [(0, 54, 0, 50), (55, 70, 51, 100), (71, 85, 101, 150),
         (86, 105, 151, 200), (106, 200, 201, 300)],
    CO: [(0.0, 4.4, 0, 50), (4.5, 9.4, 51, 100), (9.5, 12.4, 101, 150),
         (12.5, 15.4, 151, 200), (15.5, 30.4, 201, 300), (30.5, 50.4, 301, 500)]
}

# Unit each table is defined in
TABLE_UNITS = {
    PM25: UG_M3,
    PM10: UG_M3,
    NO2: UG_M3,
    SO2: UG_M3,
    O3: UG_M3,
    CO: MG_M3,
}

# Molecular weight / molar volume at 25 °C: 1 ppb -> x µg/m³ (1 ppm -> x mg/m³)
PPB_TO_UG_M3 = {
    NO2: 1.88,
    O3: 1.96,
    SO2: 2.62,
    CO: 1.145,
    HCHO: 1.23,
}

AQI_CATEGORIES = [
    (50, "good", "Good"),
    (100, "moderate", "Moderate"),
    (150, "unhealthy_sensitive", "Unhealthy for Sensitive Groups"),
    (200, "unhealthy", "Unhealthy"),
    (300, "very_unhealthy", "Very Unhealthy"),
]


def canonical_unit(parameter: str) -> str:
    return TABLE_UNITS.get(parameter, UG_M3)


def _normalize_unit(unit: Optional[str]) -> Optional[str]:
    if unit is None:
        return None
    unit = unit.strip()
    lowered = unit.lower()
    if lowered in (PPB, PPM):
        return lowered
    return UNIT_ALIASES.get(lowered, unit)


def _to_ug_m3(parameter: str, value: float, unit: str) -> Optional[float]:
    if unit == UG_M3:
        return value
    if unit == MG_M3:
        return value * 1000.0
    factor = PPB_TO_UG_M3.get(parameter)
    if factor is None:
        return None
    if unit == PPB:
        return value * factor
    if unit == PPM:
        return value * 1000.0 * factor
    return None


def normalize_concentration(parameter: str, value, unit: Optional[str]) -> Optional[float]:
    """
    Convert a concentration into the parameter's canonical unit.
    Returns None when the value is missing or the unit cannot be converted.
    """
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None

    unit = _normalize_unit(unit) or canonical_unit(parameter)
    target = canonical_unit(parameter)
    if unit == target:
        return value

    ug_m3 = _to_ug_m3(parameter, value, unit)
    if ug_m3 is None:
        return None
    return ug_m3 / 1000.0 if target == MG_M3 else ug_m3


def compute_index(parameter: str, concentration, unit: Optional[str] = None) -> Optional[int]:
    """
    Sub-index for one pollutant concentration.

    Returns None ("unknown") for parameters without a breakpoint table,
    unconvertible units and negative or missing values. Concentrations
    above the last band are capped at 500.
    """
    breakpoints = AQI_BREAKPOINTS.get(parameter)
    if not breakpoints:
        return None

    conc = normalize_concentration(parameter, concentration, unit)
    if conc is None or conc < 0:
        return None

    for c_low, c_high, i_low, i_high in breakpoints:
        if conc <= c_high:
            # values in the rounding gap below c_low belong to this band
            conc = max(conc, c_low)
            index = ((i_high - i_low) / (c_high - c_low)) * (conc - c_low) + i_low
            return int(round(index))

    return MAX_INDEX


def category_key(index) -> Optional[str]:
    if index is None:
        return None
    for upper, key, _ in AQI_CATEGORIES:
        if index <= upper:
            return key
    return "hazardous"


# =====================================================
# AQI VALUE → CATEGORY
# =====================================================
def aqi_category(index) -> str:
    if index is None:
        return "Unknown"

    try:
        index = float(index)
    except (TypeError, ValueError):
        return "Unknown"

    for upper, _, label in AQI_CATEGORIES:
        if index <= upper:
            return label
    return "Hazardous"
