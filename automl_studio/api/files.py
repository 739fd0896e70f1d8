"""
Signed blob downloads (model exports).

GET /files/{bucket}/{path}?expires=...&signature=...
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from automl_studio.api.deps import get_storage
from automl_studio.services.storage import BlobStorage

router = APIRouter(prefix="/files", tags=["files"])

DOWNLOADABLE_BUCKETS = {"exports"}


@router.get("/{bucket}/{path:path}")
def download(
    bucket: str,
    path: str,
    expires: int = Query(...),
    signature: str = Query(...),
    storage: BlobStorage = Depends(get_storage),
):
    if bucket not in DOWNLOADABLE_BUCKETS or not storage.verify(bucket, path, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired download link")
    data = storage.get(bucket, path)
    media_type = "application/json" if path.endswith(".json") else "application/octet-stream"
    filename = path.rsplit("/", 1)[-1]
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
