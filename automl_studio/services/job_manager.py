"""
Job Lifecycle Manager

Handles job status transitions and persistence.
- Create job (status=running at submission)
- Write progress snapshots (never lowering progress)
- Complete / fail job (terminal, written once)
- List, fetch and delete jobs scoped by owner
"""

import datetime
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from automl_studio.models.db_models import MLJob, MLModel
from automl_studio.schemas.schemas import JobStatus, TERMINAL_STATUSES, TrainingConfig
from automl_studio.utils.errors import NotFoundError
from automl_studio.utils.logger import get_logger

logger = get_logger("job-manager")


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class JobManager:
    def __init__(self, db: Session):
        self.db = db

    def create_job(self, user_id: str, config: TrainingConfig) -> MLJob:
        job = MLJob(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=config.name,
            dataset_id=config.dataset_id,
            problem_type=config.problem_type.value,
            target_column=config.target_column,
            selected_features=list(config.selected_features),
            config={
                "time_budget": config.time_budget,
                "optimization_metric": config.optimization_metric,
            },
            status=JobStatus.running.value,
            progress=0,
            started_at=_utcnow(),
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info(f"Created job {job.id} for user {user_id}")
        return job

    def get_job(self, user_id: str, job_id: str) -> Optional[MLJob]:
        return (
            self.db.query(MLJob)
            .filter(MLJob.id == job_id, MLJob.user_id == user_id)
            .first()
        )

    def require_job(self, user_id: str, job_id: str) -> MLJob:
        job = self.get_job(user_id, job_id)
        if not job:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(self, user_id: str):
        return (
            self.db.query(MLJob)
            .filter(MLJob.user_id == user_id)
            .order_by(MLJob.created_at.desc())
            .all()
        )

    def _running_job(self, user_id: str, job_id: str) -> Optional[MLJob]:
        job = self.get_job(user_id, job_id)
        if job is None:
            logger.debug(f"Job {job_id} no longer exists; write skipped")
            return None
        if job.status in TERMINAL_STATUSES:
            logger.debug(f"Job {job_id} already {job.status}; write skipped")
            return None
        return job

    def update_progress(
        self,
        user_id: str,
        job_id: str,
        progress: int,
        accuracy: Optional[float] = None,
        metrics: Optional[Dict[str, Any]] = None,
    ) -> Optional[MLJob]:
        job = self._running_job(user_id, job_id)
        if job is None:
            return None
        job.progress = max(job.progress or 0, min(int(progress), 100))
        if accuracy is not None:
            job.accuracy = accuracy
        if metrics is not None:
            job.metrics = metrics
        self.db.commit()
        return job

    def complete_job(
        self, user_id: str, job_id: str, accuracy: Optional[float], metrics: Dict[str, Any]
    ) -> Optional[MLJob]:
        job = self._running_job(user_id, job_id)
        if job is None:
            return None
        job.status = JobStatus.completed.value
        job.progress = 100
        job.accuracy = accuracy
        job.metrics = metrics
        job.completed_at = _utcnow()
        self.db.commit()
        logger.info(f"Job {job_id} marked as completed")
        return job

    def fail_job(self, user_id: str, job_id: str, error_message: str) -> Optional[MLJob]:
        job = self._running_job(user_id, job_id)
        if job is None:
            return None
        job.status = JobStatus.failed.value
        job.error_message = error_message
        self.db.commit()
        logger.info(f"Job {job_id} marked as failed: {error_message}")
        return job

    def delete_job(self, user_id: str, job_id: str) -> bool:
        """Delete the job's model (if any) first, then the job itself."""
        job = self.require_job(user_id, job_id)
        removed = (
            self.db.query(MLModel)
            .filter(MLModel.job_id == job_id, MLModel.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.delete(job)
        self.db.commit()
        logger.info(f"Deleted job {job_id} (and {removed} model)")
        return True
