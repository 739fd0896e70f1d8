"""
H2O AutoML Engine Client

Translates orchestrator intents into the H2O REST protocol and normalizes
the results:
- Probe cluster health (the only call that never raises)
- Upload + parse a CSV into a named frame
- Submit an AutoML run and poll its progress
- Fetch the leaderboard, predict on a single row, download the MOJO artifact
"""

from __future__ import annotations

import asyncio
import io
import re
import time
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
import pandas as pd
from pydantic import BaseModel, Field

from automl_studio.utils.errors import EngineError
from automl_studio.utils.logger import get_logger

logger = get_logger("h2o-client")

JSON_HEADERS = {"Content-Type": "application/json"}


# ----------------------------
# Normalized engine results
# ----------------------------
class AutoMLSubmission(BaseModel):
    project_name: str
    job: Optional[Dict[str, Any]] = None


class AutoMLProgress(BaseModel):
    fraction_complete: float = Field(0.0, ge=0.0, le=1.0)
    models_built: int = 0
    leader_model_id: Optional[str] = None
    leader_algorithm: Optional[str] = None
    leader_metrics: Dict[str, Any] = Field(default_factory=dict)


class LeaderboardEntry(BaseModel):
    model_id: str
    algorithm: Optional[str] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)


class EnginePrediction(BaseModel):
    prediction: Any = None
    probability: Optional[float] = None
    raw: Any = None


_ALGO_PREFIX = re.compile(r"^(StackedEnsemble|DeepLearning|XGBoost|DRF|GBM|GLM|XRT)")


def algorithm_from_model_id(model_id: Optional[str]) -> Optional[str]:
    """H2O AutoML model ids start with the algorithm, e.g. ``GBM_1_AutoML_1_2024...``."""
    if not model_id:
        return None
    match = _ALGO_PREFIX.match(model_id)
    return match.group(1) if match else model_id.split("_", 1)[0]


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _key_name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("name")
    return value


class H2OClient:
    def __init__(self, base_url: str, probe_timeout: float = 5.0, request_timeout: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def _session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def _request(self, method: str, path: str, what: str, *, expect: str = "json", **kwargs):
        session = await self._session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, **kwargs) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise EngineError(f"{what} failed: {resp.status} {body}".strip(), status=resp.status)
                if expect == "bytes":
                    return await resp.read()
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    raise EngineError(f"{what} failed: invalid JSON response", status=resp.status) from None
                if not isinstance(data, dict):
                    raise EngineError(f"{what} failed: unexpected response body", status=resp.status)
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise EngineError(f"{what} failed: {e.__class__.__name__} {e}".strip()) from e

    # ----------------------------
    # Cluster health
    # ----------------------------
    async def probe(self) -> bool:
        logger.info(f"Checking H2O cluster at {self.base_url}")
        try:
            session = await self._session()
            timeout = aiohttp.ClientTimeout(total=self.probe_timeout)
            async with session.get(f"{self.base_url}/3/Cloud", headers=JSON_HEADERS, timeout=timeout) as resp:
                if 200 <= resp.status < 300:
                    return True
                logger.info(f"H2O cluster check failed: {resp.status}")
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.info(f"H2O cluster not available: {e}")
            return False

    # ----------------------------
    # Data upload
    # ----------------------------
    async def upload_table(self, raw: bytes, frame_name: str) -> str:
        logger.info(f"Uploading table to H2O as frame {frame_name}")
        upload = await self._request(
            "POST", "/3/PostFile", "File upload", data=raw, headers={"Content-Type": "text/csv"}
        )
        destination = (upload.get("destination_frames") or [upload.get("destination_frame")])[0]
        if not destination:
            raise EngineError("File upload failed: no destination frame returned")

        setup = await self._request(
            "POST",
            "/3/ParseSetup",
            "ParseSetup",
            headers=JSON_HEADERS,
            json={
                "source_frames": [_key_name(destination)],
                "parse_type": "CSV",
                "separator": 44,
                "number_columns": 0,
                "single_quotes": False,
                "column_names": [],
                "column_types": [],
                "na_strings": [],
                "check_header": 1,
            },
        )

        await self._request(
            "POST",
            "/3/Parse",
            "Parse",
            headers=JSON_HEADERS,
            json={"job": setup.get("job"), "destination_frame": frame_name},
        )
        return frame_name

    # ----------------------------
    # AutoML lifecycle
    # ----------------------------
    async def submit_automl(
        self,
        frame: str,
        target_column: str,
        max_models: int = 20,
        max_runtime_secs: int = 300,
        sort_metric: str = "AUTO",
        nfolds: int = 5,
        exclude_algos: Sequence[str] = (),
    ) -> AutoMLSubmission:
        project_name = f"automl_{int(time.time() * 1000)}"
        result = await self._request(
            "POST",
            "/3/AutoML",
            "AutoML start",
            headers=JSON_HEADERS,
            json={
                "training_frame": frame,
                "y": target_column,
                "max_models": max_models,
                "max_runtime_secs": max_runtime_secs,
                "project_name": project_name,
                "sort_metric": sort_metric or "AUTO",
                "nfolds": nfolds,
                "fold_assignment": "AUTO",
                "balance_classes": False,
                "keep_cross_validation_predictions": False,
                "keep_cross_validation_models": False,
                "parallelize_cross_validation": True,
                "seed": -1,
                "exclude_algos": list(exclude_algos),
                "include_algos": [],
            },
        )
        logger.info(f"AutoML project {project_name} submitted for frame {frame}")
        return AutoMLSubmission(project_name=project_name, job=result.get("job"))

    async def poll_progress(self, project_name: str) -> AutoMLProgress:
        data = await self._request("GET", f"/3/AutoML/{project_name}", "Progress check")
        auto_ml = data.get("auto_ml") or {}
        leader = auto_ml.get("leader") or {}
        leader_id = _key_name(leader.get("model_id"))
        fraction = float(auto_ml.get("progress") or 0.0)
        return AutoMLProgress(
            fraction_complete=min(max(fraction, 0.0), 1.0),
            models_built=int(auto_ml.get("models_built") or 0),
            leader_model_id=leader_id,
            leader_algorithm=leader.get("algo") or algorithm_from_model_id(leader_id),
            leader_metrics=leader.get("validation_metrics") or {},
        )

    async def leaderboard(self, project_name: str) -> List[LeaderboardEntry]:
        data = await self._request("GET", f"/3/AutoML/{project_name}/leaderboard", "Leaderboard fetch")
        entries = []
        for item in data.get("models") or []:
            if isinstance(item, dict):
                model_id = _key_name(item.get("model_id")) or item.get("name")
                metrics = item.get("metrics") or {
                    k: v for k, v in item.items() if isinstance(v, (int, float)) and not isinstance(v, bool)
                }
                algorithm = item.get("algo")
            else:
                model_id, metrics, algorithm = str(item), {}, None
            if not model_id:
                continue
            entries.append(
                LeaderboardEntry(
                    model_id=model_id,
                    algorithm=algorithm or algorithm_from_model_id(model_id),
                    metrics=metrics,
                )
            )
        return entries

    # ----------------------------
    # Inference & artifacts
    # ----------------------------
    async def predict(self, model_id: str, input_row: Dict[str, Any]) -> EnginePrediction:
        frame_id = f"predict_{int(time.time() * 1000)}"
        buf = io.StringIO()
        pd.DataFrame([input_row or {}]).to_csv(buf, index=False)
        await self.upload_table(buf.getvalue().encode("utf-8"), frame_id)

        result = await self._request(
            "POST",
            f"/3/Predictions/models/{model_id}/frames/{frame_id}",
            "Prediction",
            headers=JSON_HEADERS,
            json={"predict_contributions": False, "predict_leaf_node_assignment": False},
        )

        if isinstance(result.get("predictions"), list):
            values = result["predictions"]
            prediction = values[0] if values else None
            probability = to_number(values[1]) if len(values) > 1 else None
            return EnginePrediction(prediction=prediction, probability=probability, raw=values)

        frame_name = _key_name(result.get("predictions_frame"))
        if not frame_name:
            raise EngineError("Prediction failed: no predictions returned")
        frame = await self._request("GET", f"/3/Frames/{frame_name}", "Prediction frame fetch")
        return self._first_row_prediction(frame)

    @staticmethod
    def _first_row_prediction(frame_payload: Dict[str, Any]) -> EnginePrediction:
        frames = frame_payload.get("frames") or [{}]
        row = {}
        for column in frames[0].get("columns") or []:
            values = column.get("data") or column.get("string_data") or []
            if values:
                row[column.get("label")] = values[0]
        prediction = row.pop("predict", None)
        probabilities = [v for v in row.values() if isinstance(v, (int, float))]
        probability = max(probabilities) if probabilities else None
        return EnginePrediction(prediction=prediction, probability=probability, raw=row)

    async def download_artifact(self, model_id: str) -> bytes:
        return await self._request("GET", f"/3/Models/{model_id}/mojo", "MOJO download", expect="bytes")
