# event_gallery/app/exceptions.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import logging

from event_gallery.core.exceptions import (
    AuthenticationRequired,
    GalleryError,
    ImageNotFound,
    RecognitionError,
    StorageError,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI):

    @app.exception_handler(AuthenticationRequired)
    async def authentication_required_handler(request: Request, exc: AuthenticationRequired):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ImageNotFound)
    async def image_not_found_handler(request: Request, exc: ImageNotFound):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc)},
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(RecognitionError)
    async def recognition_error_handler(request: Request, exc: RecognitionError):
        logger.error(f"Recognition error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(GalleryError)
    async def gallery_error_handler(request: Request, exc: GalleryError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app
