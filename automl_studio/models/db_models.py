# db_models.py
import datetime

from sqlalchemy import Column, Integer, String, ForeignKey, Text, DateTime, JSON, Float
from sqlalchemy.orm import relationship

from automl_studio.utils.db import Base


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class Dataset(Base):
    __tablename__ = "datasets"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(300), nullable=False)
    source = Column(String(100), nullable=False, default="upload")
    file_path = Column(String(500), nullable=True)
    rows = Column(Integer, nullable=True)
    columns = Column(Integer, nullable=True)
    column_names = Column(JSON, nullable=True)
    status = Column(String(30), nullable=False, default="uploaded")  # uploaded|processing|ready|error
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class MLJob(Base):
    """
    One row per submitted training request. Mutated only by the job's
    background task once created; completed/failed rows are final.
    """
    __tablename__ = "ml_jobs"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    # submitted training config
    name = Column(String(300), nullable=False)
    dataset_id = Column(String(36), ForeignKey("datasets.id", ondelete="SET NULL"), nullable=True)
    problem_type = Column(String(30), nullable=False)       # classification | regression
    target_column = Column(String(300), nullable=False)
    selected_features = Column(JSON, nullable=False, default=list)
    config = Column(JSON, nullable=False, default=dict)     # time_budget, optimization_metric

    # live status
    status = Column(String(30), nullable=False, default="queued")  # queued|running|completed|failed
    progress = Column(Integer, nullable=False, default=0)          # 0-100 %
    accuracy = Column(Float, nullable=True)
    metrics = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    dataset = relationship("Dataset", lazy="joined")


class MLModel(Base):
    __tablename__ = "ml_models"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    # weak lineage reference, at most one model per job
    job_id = Column(String(36), nullable=True, unique=True, index=True)

    name = Column(String(300), nullable=False)
    model_type = Column(String(50), nullable=False)          # H2O_AutoML | Simulated_AutoML
    metrics = Column(JSON, nullable=False, default=dict)
    training_history = Column(JSON, nullable=False, default=list)
    status = Column(String(30), nullable=False, default="ready")
    model_config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
