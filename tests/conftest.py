import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from automl_studio.dispatcher import JobDispatcher
from automl_studio.services.dataset_manager import DatasetManager
from automl_studio.services.h2o_client import (
    AutoMLProgress,
    AutoMLSubmission,
    EnginePrediction,
    LeaderboardEntry,
)
from automl_studio.services.orchestrator import Orchestrator, OrchestratorConfig
from automl_studio.services.simulator import AutoMLSimulator
from automl_studio.services.storage import BlobStorage
from automl_studio.utils.db import Base
from automl_studio.utils.errors import EngineError

CHURN_CSV = b"tenure,monthly_charges,plan,churn\n1,29.85,basic,1\n34,56.95,pro,0\n2,53.85,basic,1\n45,42.30,pro,0\n"


class FakeEngine:
    """Scriptable stand-in for H2OClient."""

    def __init__(
        self,
        available=False,
        progress=(0.0, 0.07, 0.1, 0.5, 1.0),
        leader_metrics=None,
        poll_errors=0,
        upload_error=None,
        predict_error=None,
    ):
        self.available = available
        self.progress = list(progress)
        self.leader_metrics = leader_metrics if leader_metrics is not None else {
            "accuracy": 0.91, "precision": 0.9, "recall": 0.88, "f1": 0.89,
        }
        self.poll_errors = poll_errors
        self.upload_error = upload_error
        self.predict_error = predict_error
        self.artifact = b"PK\x03\x04fake-mojo"
        self.uploads = {}
        self.submissions = []
        self.probes = 0

    async def probe(self):
        self.probes += 1
        return self.available

    async def upload_table(self, raw, frame_name):
        if self.upload_error:
            raise self.upload_error
        self.uploads[frame_name] = raw
        return frame_name

    async def submit_automl(self, frame, target_column, max_models=20, max_runtime_secs=300,
                            sort_metric="AUTO", nfolds=5, exclude_algos=()):
        self.submissions.append({
            "frame": frame,
            "target_column": target_column,
            "max_models": max_models,
            "max_runtime_secs": max_runtime_secs,
            "sort_metric": sort_metric,
            "nfolds": nfolds,
        })
        return AutoMLSubmission(project_name="automl_test")

    async def poll_progress(self, project_name):
        if self.poll_errors:
            self.poll_errors -= 1
            raise EngineError("Progress check failed: 503 Service Unavailable", status=503)
        fraction = self.progress.pop(0) if len(self.progress) > 1 else self.progress[0]
        return AutoMLProgress(
            fraction_complete=fraction,
            models_built=int(fraction * 10),
            leader_model_id="GBM_1_AutoML_1",
            leader_algorithm="GBM",
            leader_metrics=self.leader_metrics,
        )

    async def leaderboard(self, project_name):
        return [
            LeaderboardEntry(model_id="GBM_1_AutoML_1", algorithm="GBM", metrics={"auc": 0.95}),
            LeaderboardEntry(model_id="GLM_1_AutoML_1", algorithm="GLM", metrics={"auc": 0.81}),
        ]

    async def predict(self, model_id, input_row):
        if self.predict_error:
            raise self.predict_error
        return EnginePrediction(prediction=1, probability=0.83, raw=[1, 0.83])

    async def download_artifact(self, model_id):
        return self.artifact

    async def close(self):
        pass


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(str(tmp_path / "storage"), "test-secret", "http://testserver")


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def simulator():
    return AutoMLSimulator(iterations=15, write_every=3, min_delay=0.0, max_delay=0.0, seed=7)


@pytest.fixture
def dispatcher():
    return JobDispatcher()


@pytest.fixture
def orchestrator(session_factory, fake_engine, simulator, dispatcher, storage):
    config = OrchestratorConfig(poll_interval=0.0, progress_write_delta=5, max_poll_failures=3)
    return Orchestrator(session_factory, fake_engine, simulator, dispatcher, storage, config)


def make_dataset(session_factory, storage, user_id="user-1", name="churn.csv", raw=CHURN_CSV, analyze=True):
    db = session_factory()
    try:
        manager = DatasetManager(db, storage)
        dataset = manager.register_dataset(user_id, name, raw)
        if analyze:
            dataset = manager.analyze_dataset(user_id, dataset.id)
        return dataset.id
    finally:
        db.close()


@pytest.fixture
def ready_dataset(session_factory, storage):
    return make_dataset(session_factory, storage)
