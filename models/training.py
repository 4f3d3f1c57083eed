# =====================================================
# PER-PARAMETER TRAINING PIPELINE
# -----------------------------------------------------
# Degree-2 polynomial least squares over the 7-feature
# vector. Retrained from scratch every scheduling cycle;
# estimators live in memory only, metrics go to the
# model registry collection.
# =====================================================

import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from pymongo import DESCENDING
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_squared_error, r2_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import PolynomialFeatures, StandardScaler

from config.logging import logger
from config.constants import FEATURE_COLUMNS, MIN_TRAINING_ROWS
from data_pipeline.feature_engineering import rows_to_frame
from data_pipeline.schemas import FeatureVector, TrainingRow

PIPELINE_VERSION = "poly2_weather_v1"


@dataclass
class TrainedModel:
    parameter: str
    estimator: Pipeline
    mse: float
    r2: float
    n_samples: int
    trained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def predict(self, features: FeatureVector) -> float:
        X = pd.DataFrame([features.as_list()], columns=FEATURE_COLUMNS)
        return float(self.estimator.predict(X)[0])

    @property
    def metrics(self) -> dict:
        return {"mse": self.mse, "r2": self.r2, "data_points": self.n_samples}


def build_estimator() -> Pipeline:
    return Pipeline([
        ("scale", StandardScaler()),
        ("poly", PolynomialFeatures(degree=2)),
        ("ols", LinearRegression()),
    ])


def train(parameter: str, rows: List[TrainingRow]) -> Optional[TrainedModel]:
    """
    Fit one parameter's model. Returns None when fewer than
    MIN_TRAINING_ROWS rows are available; callers fall back to trend.
    """
    if len(rows) < MIN_TRAINING_ROWS:
        logger.warning(f"Insufficient data for {parameter} model ({len(rows)} points)")
        return None

    df = rows_to_frame(rows)
    X = df[FEATURE_COLUMNS]
    y = df["target"]

    model = build_estimator()

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        model.fit(X, y)
        preds = model.predict(X)

    # In-sample fit quality, used only as a confidence proxy
    mse = float(mean_squared_error(y, preds))
    r2 = float(r2_score(y, preds))
    if not np.isfinite(r2):
        r2 = 0.0

    logger.info(f"Trained {parameter} model: R2 = {r2:.3f}, MSE = {mse:.2f}, N = {len(rows)}")

    return TrainedModel(
        parameter=parameter,
        estimator=model,
        mse=mse,
        r2=r2,
        n_samples=len(rows),
    )


class ModelRegistry:
    """Models for the current cycle, keyed by parameter."""

    def __init__(self, models: Optional[Dict[str, TrainedModel]] = None):
        self._models: Dict[str, TrainedModel] = dict(models or {})

    def get(self, parameter: str) -> Optional[TrainedModel]:
        return self._models.get(parameter)

    def __contains__(self, parameter) -> bool:
        return parameter in self._models

    def __len__(self) -> int:
        return len(self._models)

    def metrics(self) -> Dict[str, dict]:
        return {p: m.metrics for p, m in self._models.items()}

    async def record(self, collection, location_id: str):
        """
        Register this cycle's metrics (never the estimator itself).
        Previous active entries for the same target are archived.
        """
        for parameter, model in self._models.items():
            target = f"{location_id}:{parameter}"

            await collection.update_many(
                {"target": target, "status": "active"},
                {"$set": {"status": "archived"}}
            )

            # =====================================================
            # DYNAMIC VERSIONING
            # =====================================================
            last_model = await collection.find_one({"target": target}, sort=[("created_at", DESCENDING)])
            last_version_num = 0
            if last_model:
                v_str = str(last_model.get("version", "v0")).lstrip("v").split(".")[0]
                if v_str.isdigit():
                    last_version_num = int(v_str)
            new_version = f"v{last_version_num + 1}"

            await collection.insert_one({
                "target": target,
                "location_id": location_id,
                "parameter": parameter,
                "model_name": "PolynomialRegression",
                "version": new_version,
                "metrics": model.metrics,
                "trained_at": model.trained_at,
                "status": "active",
                "features": FEATURE_COLUMNS,
                "data_rows_used": model.n_samples,
                "pipeline_version": PIPELINE_VERSION,
                "created_at": datetime.now(timezone.utc)
            })

            logger.info(f"Registered {target} | Version={new_version}")


def train_all(rows_by_parameter: Dict[str, List[TrainingRow]], parameters: List[str]) -> ModelRegistry:
    models = {}
    for parameter in parameters:
        model = train(parameter, rows_by_parameter.get(parameter, []))
        if model is not None:
            models[parameter] = model
    return ModelRegistry(models)
