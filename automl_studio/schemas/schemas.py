"""
Pydantic schemas for API requests, responses and the orchestrator's
internal snapshots.

Defines:
- Training config & job schemas
- Metrics / training history
- Model schemas
- Gateway (predict / export / deploy) schemas
- Dataset schemas
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProblemType(str, Enum):
    classification = "classification"
    regression = "regression"


class JobStatus(str, Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = {JobStatus.completed.value, JobStatus.failed.value}


# ------------------- Training config -------------------
class TrainingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=300)
    dataset_id: str = Field(..., min_length=1)
    problem_type: ProblemType
    target_column: str = Field(..., description="Column the models learn to predict")
    selected_features: List[str] = Field(default_factory=list, description="Empty means use every column")
    time_budget: int = Field(5, gt=0, description="Minutes the engine may spend searching")
    optimization_metric: str = Field("AUTO")

    @field_validator("target_column")
    @classmethod
    def target_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("target_column must be a non-empty string")
        return v.strip()

    @field_validator("selected_features", mode="before")
    @classmethod
    def features_list(cls, v):
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            raise ValueError("selected_features must be a list of column names")
        return v


# ------------------- Metrics & history -------------------
class MetricsSnapshot(BaseModel):
    """Known metric fields plus an open map for engine-specific values."""

    accuracy: Optional[float] = None
    precision: Optional[float] = None
    recall: Optional[float] = None
    f1: Optional[float] = None
    models_trained: Optional[int] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class TrainingHistoryEntry(BaseModel):
    model: int
    algorithm: str
    metric: Optional[float] = None
    elapsed_seconds: float
    timestamp: datetime
    progress: Optional[float] = None
    models_built: Optional[int] = None


# ------------------- Job -------------------
class JobCreated(BaseModel):
    job_id: str
    status: str
    message: str = "Training started successfully"


class DatasetRef(BaseModel):
    name: str
    source: str


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    dataset_id: Optional[str] = None
    problem_type: str
    target_column: str
    selected_features: List[str] = Field(default_factory=list)
    config: Dict[str, Any] = Field(default_factory=dict)
    status: str
    progress: int
    accuracy: Optional[float] = None
    metrics: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    datasets: Optional[DatasetRef] = None


# ------------------- Model -------------------
class ModelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=(), populate_by_name=True)

    id: str
    user_id: str
    job_id: Optional[str] = None
    name: str
    model_type: str
    metrics: Dict[str, Any] = Field(default_factory=dict)
    training_history: List[Dict[str, Any]] = Field(default_factory=list)
    status: str
    engine_config: Dict[str, Any] = Field(
        default_factory=dict, validation_alias="model_config", serialization_alias="model_config"
    )
    created_at: Optional[datetime] = None


# ------------------- Gateway -------------------
class PredictRequest(BaseModel):
    input: Optional[Dict[str, Any]] = None


class PredictionOutput(BaseModel):
    prediction: Any
    probability: Optional[float] = None
    raw_predictions: Optional[Any] = None


class PredictResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    model_name: str
    output: PredictionOutput
    input: Optional[Dict[str, Any]] = None
    fallback: bool = False
    engine_model_id: Optional[str] = None
    warning: Optional[str] = None


class ExportRequest(BaseModel):
    format: str = Field(..., min_length=1)


class ExportResponse(BaseModel):
    download_url: str
    path: str
    file_name: str
    format: str
    placeholder: bool
    warning: Optional[str] = None


class DeployResponse(BaseModel):
    endpoint: str


# ------------------- Dataset -------------------
class DatasetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    source: str
    rows: Optional[int] = None
    columns: Optional[int] = None
    column_names: Optional[List[str]] = None
    status: str
    created_at: Optional[datetime] = None
