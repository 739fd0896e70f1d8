"""
API routes for dataset management.

Endpoints:
- POST /datasets -> upload a CSV/JSON file
- GET /datasets -> list the caller's datasets
- POST /datasets/{dataset_id}/analyze -> count rows/columns and mark ready
"""

from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from automl_studio.api.deps import get_db, get_storage, get_user_id
from automl_studio.schemas.schemas import DatasetOut
from automl_studio.services.dataset_manager import DatasetManager

router = APIRouter(prefix="/datasets", tags=["datasets"])

ALLOWED_SUFFIXES = (".csv", ".json")


@router.post("", response_model=DatasetOut, status_code=201)
async def upload_dataset(
    file: UploadFile = File(...),
    source: str = Form("upload"),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    if not file.filename or not file.filename.lower().endswith(ALLOWED_SUFFIXES):
        raise HTTPException(400, "Only CSV and JSON files are accepted")
    raw = await file.read()
    dataset = DatasetManager(db, storage).register_dataset(user_id, file.filename, raw, source=source)
    return DatasetOut.model_validate(dataset)


@router.get("", response_model=List[DatasetOut])
def list_datasets(user_id: str = Depends(get_user_id), db: Session = Depends(get_db), storage=Depends(get_storage)):
    return [DatasetOut.model_validate(d) for d in DatasetManager(db, storage).list_datasets(user_id)]


@router.post("/{dataset_id}/analyze", response_model=DatasetOut)
def analyze_dataset(
    dataset_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    dataset = DatasetManager(db, storage).analyze_dataset(user_id, dataset_id)
    return DatasetOut.model_validate(dataset)
