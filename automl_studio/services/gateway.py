"""
Model Gateway

Request handlers over persisted models:
- predict: real engine prediction, or a fallback value clearly flagged as such
- export: MOJO bytes from the engine, or a labelled JSON placeholder
- deploy: a logical endpoint descriptor pointing at our own predict route
"""

import datetime
import json
import re
from typing import Any, Callable, Dict, Optional

import numpy as np
from sqlalchemy.orm import Session

from automl_studio.schemas.schemas import (
    DeployResponse,
    ExportResponse,
    PredictionOutput,
    PredictResponse,
    ProblemType,
)
from automl_studio.services.h2o_client import H2OClient
from automl_studio.services.model_manager import ModelManager
from automl_studio.services.storage import BlobStorage
from automl_studio.utils.errors import EngineError
from automl_studio.utils.logger import get_logger

logger = get_logger("gateway")

EXPORT_BUCKET = "exports"
NATIVE_FORMAT = "mojo"


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "model"


class ModelGateway:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine: H2OClient,
        storage: BlobStorage,
        public_base_url: str,
        export_url_ttl: int = 3600,
        seed: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.storage = storage
        self.public_base_url = public_base_url.rstrip("/")
        self.export_url_ttl = export_url_ttl
        self._rng = np.random.default_rng(seed)

    def _load_model(self, user_id: str, model_id: str) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            model = ModelManager(db).get_model(user_id, model_id)
            return {
                "id": model.id,
                "name": model.name,
                "model_type": model.model_type,
                "model_config": dict(model.model_config or {}),
            }
        finally:
            db.close()

    # ----------------------------
    # Predict
    # ----------------------------
    async def predict(self, user_id: str, model_id: str, input_row: Optional[Dict[str, Any]]) -> PredictResponse:
        model = self._load_model(user_id, model_id)
        handle = model["model_config"].get("best_model")

        if not handle:
            return self._fallback_prediction(model, input_row, "Engine model handle not found, using fallback prediction")
        if not await self.engine.probe():
            return self._fallback_prediction(model, input_row, "H2O unavailable, using fallback prediction")

        try:
            result = await self.engine.predict(handle, input_row or {})
        except EngineError as e:
            logger.warning(f"H2O prediction failed for model {model_id}: {e}")
            return self._fallback_prediction(model, input_row, f"H2O prediction failed, using fallback prediction: {e}")

        return PredictResponse(
            model_id=model["id"],
            model_name=model["name"],
            engine_model_id=handle,
            output=PredictionOutput(
                prediction=result.prediction,
                probability=result.probability,
                raw_predictions=result.raw,
            ),
            input=input_row,
            fallback=False,
        )

    def _fallback_prediction(self, model: Dict[str, Any], input_row, warning: str) -> PredictResponse:
        problem_type = (model["model_config"].get("automl_config") or {}).get("problem_type")
        if problem_type == ProblemType.regression.value:
            prediction = round(float(self._rng.random()) * 100, 1)
        else:
            prediction = int(self._rng.random() > 0.5)
        probability = round(0.5 + float(self._rng.random()) * 0.5, 3)
        return PredictResponse(
            model_id=model["id"],
            model_name=model["name"],
            output=PredictionOutput(prediction=prediction, probability=probability),
            input=input_row,
            fallback=True,
            warning=warning,
        )

    # ----------------------------
    # Export
    # ----------------------------
    async def export_model(self, user_id: str, model_id: str, fmt: str) -> ExportResponse:
        model = self._load_model(user_id, model_id)
        fmt = fmt.strip().lower()
        handle = model["model_config"].get("best_model")
        base = _safe_name(model["name"])
        warning = None

        if fmt == NATIVE_FORMAT and handle and await self.engine.probe():
            try:
                data = await self.engine.download_artifact(handle)
                return self._store(user_id, model, f"{base}.mojo.zip", data, fmt, placeholder=False)
            except EngineError as e:
                logger.warning(f"H2O export failed for model {model_id}: {e}")
                warning = f"H2O export failed, placeholder exported: {e}"
        elif fmt == NATIVE_FORMAT:
            warning = "H2O unavailable or model handle missing, placeholder exported"

        description = {
            "model_id": model["id"],
            "model_name": model["name"],
            "model_type": model["model_type"],
            "engine_model_id": handle,
            "format": fmt,
            "created_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "placeholder": True,
            "note": "This is a placeholder export, not a converted model. Use MOJO format for actual model files.",
        }
        if warning:
            description["warning"] = warning
        data = json.dumps(description, indent=2).encode("utf-8")
        return self._store(user_id, model, f"{base}.{_safe_name(fmt)}.placeholder.json", data, fmt, True, warning)

    def _store(self, user_id, model, file_name, data, fmt, placeholder, warning=None) -> ExportResponse:
        path = f"{user_id}/{model['id']}_{file_name}"
        self.storage.put(EXPORT_BUCKET, path, data)
        url = self.storage.signed_url(EXPORT_BUCKET, path, self.export_url_ttl)
        logger.info(f"Exported model {model['id']} as {fmt} ({'placeholder' if placeholder else 'native'})")
        return ExportResponse(
            download_url=url,
            path=path,
            file_name=file_name,
            format=fmt,
            placeholder=placeholder,
            warning=warning,
        )

    # ----------------------------
    # Deploy
    # ----------------------------
    def deploy_model(self, user_id: str, model_id: str) -> DeployResponse:
        model = self._load_model(user_id, model_id)
        return DeployResponse(endpoint=f"{self.public_base_url}/models/{model['id']}/predict")
