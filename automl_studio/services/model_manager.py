"""
Model Manager

Handles trained-model registration and lookup.
- Register the model produced by a completed job (at most one per job)
- Fetch model metadata scoped by owner
- Delete a model without touching its job
"""

import uuid
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from automl_studio.models.db_models import MLModel
from automl_studio.utils.errors import NotFoundError
from automl_studio.utils.logger import get_logger

logger = get_logger("model-manager")


class ModelManager:
    def __init__(self, db: Session):
        self.db = db

    def get_model_for_job(self, user_id: str, job_id: str) -> MLModel:
        return (
            self.db.query(MLModel)
            .filter(MLModel.job_id == job_id, MLModel.user_id == user_id)
            .first()
        )

    def register_model(
        self,
        user_id: str,
        job_id: str,
        name: str,
        model_type: str,
        metrics: Dict[str, Any],
        training_history: List[Dict[str, Any]],
        model_config: Dict[str, Any],
    ) -> MLModel:
        existing = self.get_model_for_job(user_id, job_id)
        if existing:
            logger.info(f"Model {existing.id} already registered for job {job_id}")
            return existing

        model = MLModel(
            id=str(uuid.uuid4()),
            user_id=user_id,
            job_id=job_id,
            name=name,
            model_type=model_type,
            metrics=metrics,
            training_history=training_history,
            status="ready",
            model_config=model_config,
        )
        self.db.add(model)
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent registration for this job won the unique constraint
            self.db.rollback()
            existing = self.get_model_for_job(user_id, job_id)
            if existing is None:
                raise
            return existing
        self.db.refresh(model)
        logger.info(f"Registered model {model.id} ({name}, {model_type}) for job {job_id}")
        return model

    def get_model(self, user_id: str, model_id: str) -> MLModel:
        model = (
            self.db.query(MLModel)
            .filter(MLModel.id == model_id, MLModel.user_id == user_id)
            .first()
        )
        if not model:
            raise NotFoundError(f"Model {model_id} not found")
        return model

    def list_models(self, user_id: str):
        return (
            self.db.query(MLModel)
            .filter(MLModel.user_id == user_id)
            .order_by(MLModel.created_at.desc())
            .all()
        )

    def delete_model(self, user_id: str, model_id: str) -> bool:
        model = self.get_model(user_id, model_id)
        self.db.delete(model)
        self.db.commit()
        logger.info(f"Deleted model {model_id}")
        return True
