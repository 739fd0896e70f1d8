import json
from urllib.parse import parse_qs, urlparse

import pytest

from automl_studio.services.gateway import EXPORT_BUCKET, ModelGateway
from automl_studio.services.model_manager import ModelManager
from automl_studio.utils.errors import EngineError, NotFoundError

from conftest import FakeEngine

USER = "user-1"


def register(session_factory, model_config, name="Churn model", model_type="H2O_AutoML", job_id="job-1"):
    db = session_factory()
    try:
        model = ModelManager(db).register_model(
            user_id=USER,
            job_id=job_id,
            name=name,
            model_type=model_type,
            metrics={"accuracy": 0.9},
            training_history=[],
            model_config=model_config,
        )
        return model.id
    finally:
        db.close()


@pytest.fixture
def engine_model(session_factory):
    return register(
        session_factory,
        {"framework": "H2O", "best_model": "GBM_1_AutoML_1", "automl_config": {"problem_type": "classification"}},
    )


@pytest.fixture
def simulated_model(session_factory):
    return register(
        session_factory,
        {"framework": "Simulated_AutoML", "automl_config": {"problem_type": "regression"}},
        name="House prices",
        model_type="Simulated_AutoML",
        job_id="job-2",
    )


def make_gateway(session_factory, storage, engine):
    return ModelGateway(session_factory, engine, storage, "http://testserver", export_url_ttl=600, seed=11)


async def test_predict_uses_engine_when_available(session_factory, storage, engine_model):
    gateway = make_gateway(session_factory, storage, FakeEngine(available=True))

    response = await gateway.predict(USER, engine_model, {"tenure": 3})

    assert response.fallback is False
    assert response.warning is None
    assert response.engine_model_id == "GBM_1_AutoML_1"
    assert response.output.prediction == 1
    assert response.output.probability == pytest.approx(0.83)
    assert response.input == {"tenure": 3}


async def test_predict_falls_back_when_engine_is_down(session_factory, storage, engine_model):
    gateway = make_gateway(session_factory, storage, FakeEngine(available=False))

    response = await gateway.predict(USER, engine_model, {"tenure": 3})

    assert response.fallback is True
    assert "H2O unavailable" in response.warning
    assert response.output.prediction in (0, 1)
    assert 0.5 <= response.output.probability <= 1.0


async def test_predict_falls_back_when_engine_errors(session_factory, storage, engine_model):
    engine = FakeEngine(available=True, predict_error=EngineError("Prediction failed: 500 boom", status=500))
    gateway = make_gateway(session_factory, storage, engine)

    response = await gateway.predict(USER, engine_model, {})

    assert response.fallback is True
    assert "Prediction failed: 500 boom" in response.warning


async def test_simulated_regression_model_gets_flagged_numeric_prediction(session_factory, storage, simulated_model):
    engine = FakeEngine(available=True)
    gateway = make_gateway(session_factory, storage, engine)

    response = await gateway.predict(USER, simulated_model, {"rooms": 4})

    assert response.fallback is True
    assert response.engine_model_id is None
    assert 0.0 <= response.output.prediction <= 100.0
    assert engine.probes == 0


async def test_mojo_export_stores_engine_artifact(session_factory, storage, engine_model):
    gateway = make_gateway(session_factory, storage, FakeEngine(available=True))

    export = await gateway.export_model(USER, engine_model, "MOJO")

    assert export.placeholder is False
    assert export.format == "mojo"
    assert export.file_name == "Churn_model.mojo.zip"
    assert storage.get(EXPORT_BUCKET, export.path) == b"PK\x03\x04fake-mojo"
    url = urlparse(export.download_url)
    assert url.path == f"/files/{EXPORT_BUCKET}/{export.path}"
    query = parse_qs(url.query)
    assert storage.verify(EXPORT_BUCKET, export.path, int(query["expires"][0]), query["signature"][0])


async def test_other_formats_export_a_labelled_placeholder(session_factory, storage, engine_model):
    gateway = make_gateway(session_factory, storage, FakeEngine(available=True))

    export = await gateway.export_model(USER, engine_model, "onnx")

    assert export.placeholder is True
    assert export.warning is None
    assert export.file_name == "Churn_model.onnx.placeholder.json"
    body = json.loads(storage.get(EXPORT_BUCKET, export.path))
    assert body["placeholder"] is True
    assert body["format"] == "onnx"
    assert body["engine_model_id"] == "GBM_1_AutoML_1"


async def test_mojo_export_without_engine_is_placeholder_with_warning(session_factory, storage, simulated_model):
    gateway = make_gateway(session_factory, storage, FakeEngine(available=False))

    export = await gateway.export_model(USER, simulated_model, "mojo")

    assert export.placeholder is True
    assert export.warning
    body = json.loads(storage.get(EXPORT_BUCKET, export.path))
    assert body["warning"] == export.warning
    assert body["model_type"] == "Simulated_AutoML"


async def test_deploy_returns_predict_endpoint(session_factory, storage, engine_model):
    gateway = make_gateway(session_factory, storage, FakeEngine())

    deployed = gateway.deploy_model(USER, engine_model)

    assert deployed.endpoint == f"http://testserver/models/{engine_model}/predict"


async def test_unknown_or_foreign_model_is_not_found(session_factory, storage, engine_model):
    gateway = make_gateway(session_factory, storage, FakeEngine(available=True))

    with pytest.raises(NotFoundError):
        await gateway.predict(USER, "missing", {})
    with pytest.raises(NotFoundError):
        await gateway.export_model("user-2", engine_model, "mojo")
    with pytest.raises(NotFoundError):
        gateway.deploy_model("user-2", engine_model)
