from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from config.constants import PARAMETER_ORDER
from models.aqi import aqi_category, compute_index


@dataclass
class IndexPoint:
    timestamp: datetime
    index: Optional[int]
    category: str
    dominant_parameter: Optional[str]
    breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "index": self.index,
            "category": self.category,
            "dominant_parameter": self.dominant_parameter,
            "breakdown": dict(self.breakdown),
        }


def _ordered_parameters(parameters) -> List[str]:
    known = [p for p in PARAMETER_ORDER if p in parameters]
    extra = sorted(p for p in parameters if p not in PARAMETER_ORDER)
    return known + extra


def aggregate(per_parameter_forecasts: Dict[str, list], horizon_hours: int) -> List[IndexPoint]:
    """
    Hourly index rollup: the max sub-index across parameters wins and
    names the dominant parameter. Unknown sub-indices are skipped; on a
    tie the parameter evaluated first keeps the lead.
    """
    parameters = _ordered_parameters(per_parameter_forecasts.keys())
    points = []

    for h in range(horizon_hours):
        breakdown = {}
        max_index = None
        dominant = None
        timestamp = None

        for parameter in parameters:
            forecast = per_parameter_forecasts[parameter]
            if h >= len(forecast):
                continue

            point = forecast[h]
            timestamp = timestamp or point.timestamp

            index = compute_index(parameter, point.value, point.unit)
            if index is None:
                continue

            breakdown[parameter] = index
            if max_index is None or index > max_index:
                max_index = index
                dominant = parameter

        if timestamp is None:
            continue

        points.append(IndexPoint(
            timestamp=timestamp,
            index=max_index,
            category=aqi_category(max_index),
            dominant_parameter=dominant,
            breakdown=breakdown,
        ))

    return points
