# api/errors.py
from fastapi import Request
from fastapi.responses import JSONResponse

from automl_studio.utils.errors import EngineError, NotFoundError, StorageError, TrainingConfigError
from automl_studio.utils.logger import get_logger

logger = get_logger("api")


def register_error_handlers(app):
    @app.exception_handler(TrainingConfigError)
    async def invalid_config(request: Request, e: TrainingConfigError):
        return JSONResponse(status_code=400, content={"error": str(e)})

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, e: NotFoundError):
        return JSONResponse(status_code=404, content={"error": str(e)})

    @app.exception_handler(EngineError)
    async def engine_error(request: Request, e: EngineError):
        logger.error(f"Engine error on {request.url.path}: {e}")
        return JSONResponse(status_code=502, content={"error": str(e)})

    @app.exception_handler(StorageError)
    async def storage_error(request: Request, e: StorageError):
        logger.error(f"Storage error on {request.url.path}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
