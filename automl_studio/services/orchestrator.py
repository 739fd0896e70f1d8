"""
Orchestrator Service

Coordinates the full training-job lifecycle:
1. Validates the training config and creates the job (status=running)
2. Dispatches one background task per job and returns immediately
3. Probes the H2O cluster and drives either the engine or the simulator
4. Persists progress snapshots while the job runs
5. Completes the job and registers its model, or marks the job failed
"""

from __future__ import annotations

import asyncio
import datetime
import io
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from automl_studio.dispatcher import JobDispatcher
from automl_studio.schemas.schemas import (
    DatasetRef,
    JobCreated,
    JobOut,
    JobStatus,
    MetricsSnapshot,
    ModelOut,
    ProblemType,
    TrainingConfig,
    TrainingHistoryEntry,
)
from automl_studio.services.dataset_manager import DatasetManager
from automl_studio.services.h2o_client import AutoMLProgress, H2OClient, to_number
from automl_studio.services.job_manager import JobManager
from automl_studio.services.model_manager import ModelManager
from automl_studio.services.simulator import ALGORITHMS, AutoMLSimulator
from automl_studio.services.storage import BlobStorage
from automl_studio.utils.config import Settings
from automl_studio.utils.errors import EngineError, NotFoundError, TrainingConfigError
from automl_studio.utils.logger import get_logger

logger = get_logger("orchestrator")

ENGINE_MODEL_TYPE = "H2O_AutoML"
SIMULATED_MODEL_TYPE = "Simulated_AutoML"


class OrchestratorConfig(BaseModel):
    max_models: int = 20
    nfolds: int = 5
    poll_interval: float = 10.0
    progress_write_delta: int = 5
    max_poll_failures: int = 5

    @classmethod
    def from_settings(cls, s: Settings) -> "OrchestratorConfig":
        return cls(
            max_models=s.AUTOML_MAX_MODELS,
            nfolds=s.AUTOML_NFOLDS,
            poll_interval=s.POLL_INTERVAL_SECONDS,
            progress_write_delta=s.PROGRESS_WRITE_DELTA,
            max_poll_failures=s.MAX_POLL_FAILURES,
        )


def final_accuracy(problem_type: ProblemType, leader_metrics: Dict[str, Any]) -> Optional[float]:
    """
    Headline accuracy of the engine's leader model.

    classification: ``accuracy``, else ``1 - mean_per_class_error``.
    regression: ``r2`` clamped to [0, 1].
    None when the leader reports neither.
    """
    metrics = leader_metrics or {}
    if ProblemType(problem_type) == ProblemType.classification:
        accuracy = to_number(metrics.get("accuracy"))
        if accuracy is not None:
            return accuracy
        error = to_number(metrics.get("mean_per_class_error"))
        return None if error is None else 1.0 - error
    r2 = to_number(metrics.get("r2"))
    return None if r2 is None else min(max(r2, 0.0), 1.0)


class Orchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine: H2OClient,
        simulator: AutoMLSimulator,
        dispatcher: JobDispatcher,
        storage: BlobStorage,
        config: OrchestratorConfig = None,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.simulator = simulator
        self.dispatcher = dispatcher
        self.storage = storage
        self.config = config or OrchestratorConfig()

    @contextmanager
    def _db(self):
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    # ----------------------------
    # Submission
    # ----------------------------
    async def start_training(self, user_id: str, config: TrainingConfig) -> JobCreated:
        with self._db() as db:
            self._validate(db, user_id, config)
            job = JobManager(db).create_job(user_id, config)
            job_id = job.id

        self.dispatcher.spawn(job_id, lambda: self.run_job(user_id, job_id, config))
        return JobCreated(job_id=job_id, status=JobStatus.running.value)

    def _validate(self, db: Session, user_id: str, config: TrainingConfig):
        try:
            dataset = DatasetManager(db, self.storage).get_dataset(user_id, config.dataset_id)
        except NotFoundError:
            raise TrainingConfigError(f"Dataset {config.dataset_id} not found") from None
        if dataset.status != "ready":
            raise TrainingConfigError(f"Dataset {config.dataset_id} is not ready (status: {dataset.status})")

        columns = dataset.column_names or []
        if columns:
            if config.target_column not in columns:
                raise TrainingConfigError(f"Target column '{config.target_column}' not found in dataset")
            unknown = [f for f in config.selected_features if f not in columns]
            if unknown:
                raise TrainingConfigError(f"Unknown feature columns: {', '.join(unknown)}")

    # ----------------------------
    # Background task
    # ----------------------------
    async def run_job(self, user_id: str, job_id: str, config: TrainingConfig):
        logger.info(f"Starting AutoML training for job {job_id}")
        try:
            if await self.engine.probe():
                logger.info("H2O cluster is available, proceeding with real training")
                await self._train_with_engine(user_id, job_id, config)
            else:
                logger.info("H2O not available, falling back to simulation")
                await self._train_with_simulator(user_id, job_id, config)
        except asyncio.CancelledError:
            logger.info(f"Training task for job {job_id} cancelled")
            self._fail(user_id, job_id, "Training cancelled")
            raise
        except Exception as e:
            logger.exception(f"AutoML training error for job {job_id}")
            self._fail(user_id, job_id, str(e) or e.__class__.__name__)

    def _write_progress(self, user_id: str, job_id: str, progress: int, accuracy: Optional[float], metrics: Dict):
        with self._db() as db:
            JobManager(db).update_progress(user_id, job_id, progress, accuracy, metrics)

    def _fail(self, user_id: str, job_id: str, message: str):
        try:
            with self._db() as db:
                JobManager(db).fail_job(user_id, job_id, message)
        except Exception:
            logger.exception(f"Could not record failure for job {job_id}")

    # ----------------------------
    # Simulator path
    # ----------------------------
    async def _train_with_simulator(self, user_id: str, job_id: str, config: TrainingConfig):
        result = await self.simulator.run(
            job_id,
            config.problem_type,
            lambda progress, best, metrics: self._write_progress(user_id, job_id, progress, best, metrics),
        )
        metrics = result.final_metrics()
        metrics.extra = {
            "final_accuracy": result.best_accuracy,
            "best_algorithm": result.best_algorithm,
            "training_method": SIMULATED_MODEL_TYPE,
        }
        self.complete_job(
            user_id,
            job_id,
            config,
            accuracy=result.best_accuracy,
            metrics=metrics,
            history=result.history,
            model_type=SIMULATED_MODEL_TYPE,
            model_config={
                "framework": SIMULATED_MODEL_TYPE,
                "automl_config": config.model_dump(mode="json"),
                "algorithms_tested": list(ALGORITHMS),
            },
        )

    # ----------------------------
    # Engine path
    # ----------------------------
    def _training_table(self, user_id: str, config: TrainingConfig) -> bytes:
        with self._db() as db:
            datasets = DatasetManager(db, self.storage)
            dataset = datasets.get_dataset(user_id, config.dataset_id)
            if not config.selected_features and not dataset.name.lower().endswith(".json"):
                return datasets.download(dataset.file_path)
            frame = datasets.load_frame(dataset)

        if config.selected_features:
            keep = [c for c in config.selected_features if c != config.target_column]
            frame = frame[keep + [config.target_column]]
        buf = io.StringIO()
        frame.to_csv(buf, index=False)
        return buf.getvalue().encode("utf-8")

    async def _train_with_engine(self, user_id: str, job_id: str, config: TrainingConfig):
        raw = self._training_table(user_id, config)
        frame_name = f"dataset_{job_id}"
        await self.engine.upload_table(raw, frame_name)
        logger.info(f"Dataset uploaded to H2O as frame: {frame_name}")

        submission = await self.engine.submit_automl(
            frame_name,
            config.target_column,
            max_models=self.config.max_models,
            max_runtime_secs=config.time_budget * 60,
            sort_metric=config.optimization_metric,
            nfolds=self.config.nfolds,
        )
        project_name = submission.project_name
        logger.info(f"AutoML training started with project: {project_name}")

        final, history = await self._poll_until_done(user_id, job_id, config, project_name)
        leaderboard = await self.engine.leaderboard(project_name)

        accuracy = final_accuracy(config.problem_type, final.leader_metrics)
        leader = final.leader_model_id or (leaderboard[0].model_id if leaderboard else None)
        board = [entry.model_dump() for entry in leaderboard]
        lm = final.leader_metrics
        metrics = MetricsSnapshot(
            accuracy=accuracy,
            precision=to_number(lm.get("precision")),
            recall=to_number(lm.get("recall")),
            f1=to_number(lm.get("f1")),
            models_trained=final.models_built or len(leaderboard),
            extra={
                "final_accuracy": accuracy,
                "best_model": leader,
                "best_algorithm": final.leader_algorithm,
                "training_method": ENGINE_MODEL_TYPE,
                "leaderboard": board,
            },
        )
        self.complete_job(
            user_id,
            job_id,
            config,
            accuracy=accuracy,
            metrics=metrics,
            history=history,
            model_type=ENGINE_MODEL_TYPE,
            model_config={
                "framework": "H2O",
                "automl_config": config.model_dump(mode="json"),
                "best_model": leader,
                "project_name": project_name,
                "leaderboard": board,
            },
        )

    async def _poll_until_done(
        self, user_id: str, job_id: str, config: TrainingConfig, project_name: str
    ) -> tuple[AutoMLProgress, List[TrainingHistoryEntry]]:
        """
        Poll the engine at a fixed interval until it reports completion.

        Progress is only written once it has advanced by ``progress_write_delta``
        points. Up to ``max_poll_failures - 1`` consecutive failed polls are
        tolerated; the next one propagates and fails the job.
        """
        started = time.monotonic()
        history: List[TrainingHistoryEntry] = []
        last_written = 0
        failures = 0

        while True:
            try:
                progress = await self.engine.poll_progress(project_name)
                failures = 0
            except EngineError as e:
                failures += 1
                if failures >= self.config.max_poll_failures:
                    raise
                logger.warning(f"Progress check failed for {project_name} ({failures}), continuing: {e}")
                await asyncio.sleep(self.config.poll_interval)
                continue

            percent = int(progress.fraction_complete * 100)
            done = progress.fraction_complete >= 1.0
            performance = final_accuracy(config.problem_type, progress.leader_metrics)

            if done or percent - last_written >= self.config.progress_write_delta:
                history.append(
                    TrainingHistoryEntry(
                        model=len(history) + 1,
                        algorithm=progress.leader_algorithm or "AutoML",
                        metric=performance,
                        elapsed_seconds=round(time.monotonic() - started, 3),
                        timestamp=datetime.datetime.now(datetime.timezone.utc),
                        progress=progress.fraction_complete * 100,
                        models_built=progress.models_built,
                    )
                )
            if not done and percent - last_written >= self.config.progress_write_delta:
                self._write_progress(
                    user_id,
                    job_id,
                    percent,
                    performance,
                    {
                        "models_trained": progress.models_built,
                        "best_model": progress.leader_model_id,
                        "best_model_performance": performance,
                    },
                )
                last_written = percent

            if done:
                return progress, history
            await asyncio.sleep(self.config.poll_interval)

    # ----------------------------
    # Completion
    # ----------------------------
    def complete_job(
        self,
        user_id: str,
        job_id: str,
        config: TrainingConfig,
        accuracy: Optional[float],
        metrics: MetricsSnapshot,
        history: List[TrainingHistoryEntry],
        model_type: str,
        model_config: Dict[str, Any],
    ):
        """Mark the job completed, then register its model. Safe to call more than once."""
        with self._db() as db:
            jobs = JobManager(db)
            job = jobs.complete_job(user_id, job_id, accuracy, metrics.model_dump(mode="json"))
            if job is None:
                job = jobs.get_job(user_id, job_id)
                if job is None or job.status != JobStatus.completed.value:
                    logger.info(f"Job {job_id} not completable (deleted or failed); no model created")
                    return None

        try:
            with self._db() as db:
                model = ModelManager(db).register_model(
                    user_id=user_id,
                    job_id=job_id,
                    name=config.name or f"{model_type}_{job_id[:8]}",
                    model_type=model_type,
                    metrics=metrics.model_dump(mode="json"),
                    training_history=[entry.model_dump(mode="json") for entry in history],
                    model_config=model_config,
                )
                logger.info(f"AutoML training completed for job {job_id}")
                return model.id
        except Exception:
            logger.exception(f"Job {job_id} completed but its model could not be created")
            return None

    # ----------------------------
    # Reads & administration
    # ----------------------------
    def get_jobs(self, user_id: str) -> List[JobOut]:
        with self._db() as db:
            return [self._job_out(job) for job in JobManager(db).list_jobs(user_id)]

    def get_job(self, user_id: str, job_id: str) -> JobOut:
        with self._db() as db:
            return self._job_out(JobManager(db).require_job(user_id, job_id))

    @staticmethod
    def _job_out(job) -> JobOut:
        out = JobOut.model_validate(job)
        if job.dataset is not None:
            out.datasets = DatasetRef(name=job.dataset.name, source=job.dataset.source)
        return out

    def get_models(self, user_id: str) -> List[ModelOut]:
        with self._db() as db:
            return [ModelOut.model_validate(m) for m in ModelManager(db).list_models(user_id)]

    def delete_job(self, user_id: str, job_id: str) -> bool:
        with self._db() as db:
            JobManager(db).delete_job(user_id, job_id)
        self.dispatcher.cancel(job_id)
        return True

    def delete_model(self, user_id: str, model_id: str) -> bool:
        with self._db() as db:
            return ModelManager(db).delete_model(user_id, model_id)
