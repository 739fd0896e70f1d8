"""
API routes for trained models.

Endpoints:
- GET /models -> list the caller's models
- DELETE /models/{model_id} -> delete a model (its job is untouched)
- POST /models/{model_id}/predict -> predict one row
- POST /models/{model_id}/export -> export and return a signed download URL
- POST /models/{model_id}/deploy -> return the prediction endpoint
"""

from typing import List

from fastapi import APIRouter, Depends

from automl_studio.api.deps import get_gateway, get_orchestrator, get_user_id
from automl_studio.schemas.schemas import (
    DeployResponse,
    ExportRequest,
    ExportResponse,
    ModelOut,
    PredictRequest,
    PredictResponse,
)
from automl_studio.services.gateway import ModelGateway
from automl_studio.services.orchestrator import Orchestrator

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=List[ModelOut])
def list_models(user_id: str = Depends(get_user_id), orchestrator: Orchestrator = Depends(get_orchestrator)):
    return orchestrator.get_models(user_id)


@router.delete("/{model_id}")
def delete_model(model_id: str, user_id: str = Depends(get_user_id), orchestrator: Orchestrator = Depends(get_orchestrator)):
    orchestrator.delete_model(user_id, model_id)
    return {"success": True}


@router.post("/{model_id}/predict", response_model=PredictResponse)
async def predict(
    model_id: str,
    body: PredictRequest,
    user_id: str = Depends(get_user_id),
    gateway: ModelGateway = Depends(get_gateway),
):
    return await gateway.predict(user_id, model_id, body.input)


@router.post("/{model_id}/export", response_model=ExportResponse)
async def export_model(
    model_id: str,
    body: ExportRequest,
    user_id: str = Depends(get_user_id),
    gateway: ModelGateway = Depends(get_gateway),
):
    return await gateway.export_model(user_id, model_id, body.format)


@router.post("/{model_id}/deploy", response_model=DeployResponse)
def deploy_model(model_id: str, user_id: str = Depends(get_user_id), gateway: ModelGateway = Depends(get_gateway)):
    return gateway.deploy_model(user_id, model_id)
