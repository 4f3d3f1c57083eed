from typing import List

from models.aqi import category_key

# =====================================================
# CATEGORY → ADVICE
# =====================================================

HEALTH_ADVICE = {
    "good": "Great day for outdoor activities!",
    "moderate": "Sensitive individuals should limit prolonged outdoor exertion.",
    "unhealthy_sensitive": "Reduce time outdoors, especially if you're sensitive to air pollution.",
    "unhealthy": "Limit outdoor activities. Everyone may experience health effects.",
    "very_unhealthy": "Avoid outdoor activities. Serious health effects possible.",
    "hazardous": "Emergency conditions! Stay indoors with windows closed.",
}

OUTDOOR_ACTIVITY_ADVICE = {
    "good": "All outdoor activities recommended",
    "moderate": "Most activities OK, sensitive groups be cautious",
    "unhealthy_sensitive": "Light activities only for sensitive groups",
    "unhealthy": "Limit all outdoor activities",
    "very_unhealthy": "Avoid all outdoor activities",
    "hazardous": "Stay indoors completely",
}

AFFECTED_GROUPS = {
    "unhealthy_sensitive": ["children", "elderly", "respiratory_conditions", "heart_conditions"],
    "unhealthy": ["everyone", "especially_sensitive_groups"],
    "very_unhealthy": ["everyone"],
    "hazardous": ["everyone"],
}

FORECAST_ALERT_MESSAGES = {
    "unhealthy": "Air quality is unhealthy due to elevated {pollutant}. Limit outdoor activities.",
    "very_unhealthy": "Air quality alert! Everyone may experience health effects from {pollutant}.",
    "hazardous": "Health emergency! Air quality is hazardous due to {pollutant}. Stay indoors.",
}

# =====================================================
# ALERT SEVERITY → TEXT
# =====================================================

SEVERITY_MESSAGES = {
    "info": "Moderate air quality detected due to elevated {pollutant}. AQI: {index}",
    "moderate": "Air quality is unhealthy for sensitive groups due to elevated {pollutant}. AQI: {index}",
    "high": "Unhealthy air quality detected due to elevated {pollutant}. AQI: {index}",
    "critical": "Very unhealthy air quality detected due to elevated {pollutant}. AQI: {index}",
}

SEVERITY_HEALTH_IMPACT = {
    "info": "Unusually sensitive people should consider reducing prolonged outdoor exertion.",
    "moderate": "Sensitive groups should limit outdoor activities.",
    "high": "Everyone may experience health effects. Limit outdoor activities.",
    "critical": "Everyone should avoid all outdoor activities. Emergency conditions.",
}


def alert_message(severity: str, pollutant, index) -> str:
    template = SEVERITY_MESSAGES.get(severity, SEVERITY_MESSAGES["moderate"])
    return template.format(pollutant=pollutant or "multiple pollutants", index=index)


def health_impact(severity: str) -> str:
    return SEVERITY_HEALTH_IMPACT.get(severity, SEVERITY_HEALTH_IMPACT["moderate"])


def health_advice(category: str) -> str:
    return HEALTH_ADVICE.get(category, "Monitor air quality conditions.")


def outdoor_activity_advice(category: str) -> str:
    return OUTDOOR_ACTIVITY_ADVICE.get(category, "Use caution outdoors")


def affected_groups(category: str) -> List[str]:
    return AFFECTED_GROUPS.get(category, ["sensitive_groups"])


def health_recommendations(index_points, advice_hours: int = 6) -> dict:
    """Forecast-window alerts plus hour-by-hour advice for the first hours."""
    recommendations = []
    alerts = []

    for offset, point in enumerate(index_points):
        category = category_key(point.index)
        if category is None:
            continue

        if category in FORECAST_ALERT_MESSAGES:
            alerts.append({
                "timestamp": point.timestamp,
                "severity": category,
                "message": FORECAST_ALERT_MESSAGES[category].format(pollutant=point.dominant_parameter),
                "affected_groups": affected_groups(category),
            })

        if offset < advice_hours:
            recommendations.append({
                "time_period": point.timestamp.strftime("%H:%M"),
                "category": category,
                "advice": health_advice(category),
                "outdoor_activities": outdoor_activity_advice(category),
            })

    return {"recommendations": recommendations, "alerts": alerts}
