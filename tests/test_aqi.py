import math

import numpy as np
import pytest

from models.aqi import (
    AQI_BREAKPOINTS,
    MAX_INDEX,
    MG_M3,
    PPB,
    PPM,
    TABLE_UNITS,
    UG_M3,
    aqi_category,
    category_key,
    compute_index,
    normalize_concentration,
)


class TestComputeIndex:
    """Breakpoint interpolation."""

    def test_band_edges_are_continuous(self):
        assert compute_index("pm25", 35.4, UG_M3) == 100
        assert compute_index("pm25", 35.5, UG_M3) == 101

    def test_rounding_gap_maps_to_upper_band_floor(self):
        assert compute_index("pm25", 35.45, UG_M3) == 101
        assert compute_index("pm25", 12.05, UG_M3) == 51

    def test_zero_concentration(self):
        assert compute_index("no2", 0, UG_M3) == 0

    def test_interpolates_inside_band(self):
        # (49 / 94.9) * (100 - 55.5) + 151
        assert compute_index("pm25", 100, UG_M3) == 174

    def test_above_top_band_is_capped(self):
        assert compute_index("pm25", 900, UG_M3) == 500
        assert compute_index("o3", 450, UG_M3) == 500

    def test_unit_defaults_to_table_unit(self):
        assert compute_index("pm25", 35.4) == 100

    def test_parameter_without_table_is_unknown(self):
        assert compute_index("hcho", 10, UG_M3) is None
        assert compute_index("radon", 10, UG_M3) is None

    def test_invalid_values_are_unknown(self):
        assert compute_index("pm25", -1, UG_M3) is None
        assert compute_index("pm25", float("nan"), UG_M3) is None
        assert compute_index("pm25", None, UG_M3) is None

    def test_unconvertible_unit_is_unknown(self):
        assert compute_index("pm25", 10, "furlongs") is None
        assert compute_index("pm25", 10, PPB) is None

    def test_ppb_is_converted_before_lookup(self):
        # 100 ppb NO2 -> 188 µg/m³
        assert compute_index("no2", 100, PPB) == 117
        assert compute_index("no2", 100, "PPB") == 117

    def test_o3_table_is_applied_to_ug_m3(self):
        # 40 ppb O3 -> 78.4 µg/m³, read against the 71-85 band
        assert compute_index("o3", 40, PPB) == 127
        assert compute_index("o3", 78.4, UG_M3) == 127

    def test_co_table_is_in_mg_m3(self):
        # 5 ppm CO -> 5.725 mg/m³
        assert compute_index("co", 5, PPM) == 63
        assert compute_index("co", 5725, UG_M3) == 63
        assert compute_index("co", 5.725, MG_M3) == 63


@pytest.mark.parametrize("parameter", sorted(AQI_BREAKPOINTS))
class TestBreakpointTables:
    """Every table, not just PM2.5."""

    def test_band_edges_map_to_index_edges(self, parameter):
        unit = TABLE_UNITS[parameter]
        for c_low, c_high, i_low, i_high in AQI_BREAKPOINTS[parameter]:
            assert compute_index(parameter, c_low, unit) == i_low
            assert compute_index(parameter, c_high, unit) == i_high

    def test_adjacent_bands_are_contiguous(self, parameter):
        bands = AQI_BREAKPOINTS[parameter]
        assert bands[0][0] == 0 and bands[0][2] == 0
        for (_, prev_c_high, _, prev_i_high), (c_low, _, i_low, _) in zip(bands, bands[1:]):
            assert c_low > prev_c_high
            assert i_low == prev_i_high + 1

    def test_index_never_decreases(self, parameter):
        unit = TABLE_UNITS[parameter]
        top = AQI_BREAKPOINTS[parameter][-1][1]
        indices = [compute_index(parameter, c, unit) for c in np.linspace(0, top * 1.2, 2000)]

        assert None not in indices
        assert all(a <= b for a, b in zip(indices, indices[1:]))
        assert indices[-1] == MAX_INDEX

    def test_gap_between_bands_takes_upper_floor(self, parameter):
        unit = TABLE_UNITS[parameter]
        bands = AQI_BREAKPOINTS[parameter]
        for (_, prev_c_high, _, _), (c_low, _, i_low, _) in zip(bands, bands[1:]):
            midpoint = (prev_c_high + c_low) / 2
            assert compute_index(parameter, midpoint, unit) == i_low


class TestNormalizeConcentration:

    def test_same_unit_is_unchanged(self):
        assert normalize_concentration("pm25", 12.5, UG_M3) == 12.5

    def test_unit_aliases(self):
        assert normalize_concentration("pm25", 12.5, "ug/m3") == 12.5

    def test_mg_to_ug(self):
        assert normalize_concentration("no2", 0.2, MG_M3) == pytest.approx(200.0)

    def test_hcho_ppb(self):
        assert normalize_concentration("hcho", 10, PPB) == pytest.approx(12.3)

    def test_garbage_value(self):
        assert normalize_concentration("pm25", "abc", UG_M3) is None


class TestCategory:

    @pytest.mark.parametrize("index,label", [
        (0, "Good"),
        (50, "Good"),
        (51, "Moderate"),
        (100, "Moderate"),
        (101, "Unhealthy for Sensitive Groups"),
        (151, "Unhealthy"),
        (201, "Very Unhealthy"),
        (301, "Hazardous"),
        (500, "Hazardous"),
    ])
    def test_ladder(self, index, label):
        assert aqi_category(index) == label

    def test_unknown(self):
        assert aqi_category(None) == "Unknown"
        assert category_key(None) is None

    def test_keys(self):
        assert category_key(120) == "unhealthy_sensitive"
        assert category_key(math.inf) == "hazardous"
