"""
API routes for training jobs.

Endpoints:
- POST /jobs -> start training, returns the job id immediately
- GET /jobs -> list the caller's jobs (newest first)
- GET /jobs/{job_id} -> get one job
- DELETE /jobs/{job_id} -> delete a job and its model
"""

from typing import List

from fastapi import APIRouter, Depends

from automl_studio.api.deps import get_orchestrator, get_user_id
from automl_studio.schemas.schemas import JobCreated, JobOut, TrainingConfig
from automl_studio.services.orchestrator import Orchestrator

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobCreated, status_code=202)
async def start_training(
    config: TrainingConfig,
    user_id: str = Depends(get_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return await orchestrator.start_training(user_id, config)


@router.get("", response_model=List[JobOut])
def list_jobs(user_id: str = Depends(get_user_id), orchestrator: Orchestrator = Depends(get_orchestrator)):
    return orchestrator.get_jobs(user_id)


@router.get("/{job_id}", response_model=JobOut)
def get_job(job_id: str, user_id: str = Depends(get_user_id), orchestrator: Orchestrator = Depends(get_orchestrator)):
    return orchestrator.get_job(user_id, job_id)


@router.delete("/{job_id}")
async def delete_job(job_id: str, user_id: str = Depends(get_user_id), orchestrator: Orchestrator = Depends(get_orchestrator)):
    orchestrator.delete_job(user_id, job_id)
    return {"success": True}
