"""
Dataset Manager

Handles dataset registration and loading for training jobs.
- Register an uploaded file (blob + metadata row)
- Analyze it (rows, columns, header) and mark it ready
- Fetch dataset by ID for an owner
- Download raw bytes for the engine upload
"""

import io
import json
import os
import uuid

import pandas as pd
from sqlalchemy.orm import Session

from automl_studio.models.db_models import Dataset
from automl_studio.services.storage import BlobStorage
from automl_studio.utils.errors import NotFoundError, StorageError
from automl_studio.utils.logger import get_logger

logger = get_logger("dataset-manager")

DATASET_BUCKET = "datasets"


class DatasetManager:
    def __init__(self, db: Session, storage: BlobStorage):
        self.db = db
        self.storage = storage

    def register_dataset(self, user_id: str, name: str, raw: bytes, source: str = "upload") -> Dataset:
        dataset_id = str(uuid.uuid4())
        file_path = f"{user_id}/{dataset_id}_{os.path.basename(name)}"
        self.storage.put(DATASET_BUCKET, file_path, raw)

        dataset = Dataset(
            id=dataset_id,
            user_id=user_id,
            name=name,
            source=source,
            file_path=file_path,
            status="uploaded",
        )
        self.db.add(dataset)
        self.db.commit()
        self.db.refresh(dataset)
        logger.info(f"Registered dataset {dataset.id} ({name}) for user {user_id}")
        return dataset

    def get_dataset(self, user_id: str, dataset_id: str) -> Dataset:
        dataset = (
            self.db.query(Dataset)
            .filter(Dataset.id == dataset_id, Dataset.user_id == user_id)
            .first()
        )
        if not dataset:
            raise NotFoundError(f"Dataset {dataset_id} not found")
        return dataset

    def list_datasets(self, user_id: str):
        return (
            self.db.query(Dataset)
            .filter(Dataset.user_id == user_id)
            .order_by(Dataset.created_at.desc())
            .all()
        )

    def download(self, file_path: str) -> bytes:
        if not file_path:
            raise StorageError("Dataset file not found")
        return self.storage.get(DATASET_BUCKET, file_path)

    def update_status(self, user_id: str, dataset_id: str, status: str) -> Dataset:
        dataset = self.get_dataset(user_id, dataset_id)
        dataset.status = status
        self.db.commit()
        self.db.refresh(dataset)
        return dataset

    def load_frame(self, dataset: Dataset) -> pd.DataFrame:
        raw = self.download(dataset.file_path)
        if dataset.name.lower().endswith(".json"):
            records = json.loads(raw.decode("utf-8"))
            if not isinstance(records, list):
                raise ValueError("JSON datasets must be a list of records")
            return pd.DataFrame.from_records(records)
        return pd.read_csv(io.BytesIO(raw))

    def analyze_dataset(self, user_id: str, dataset_id: str) -> Dataset:
        """Count rows/columns and mark the dataset ready (or error if it cannot be parsed)."""
        dataset = self.update_status(user_id, dataset_id, "processing")
        try:
            frame = self.load_frame(dataset)
        except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as e:
            logger.warning(f"Dataset {dataset_id} could not be parsed: {e}")
            dataset.status = "error"
            self.db.commit()
            self.db.refresh(dataset)
            return dataset

        dataset.rows = int(frame.shape[0])
        dataset.columns = int(frame.shape[1])
        dataset.column_names = [str(c) for c in frame.columns]
        dataset.status = "ready"
        self.db.commit()
        self.db.refresh(dataset)
        logger.info(f"Analyzed dataset {dataset_id}: {dataset.rows} rows x {dataset.columns} columns")
        return dataset
