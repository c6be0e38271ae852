import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from module_2_classification_relay.app.dependencies import build_relay_service
from module_2_classification_relay.app.settings import get_settings
from module_2_classification_relay.core.errors import MissingInput
from module_2_classification_relay.core.models import DetectionResult, ErrorResponse
from module_2_classification_relay.services.relay_service import RelayService


logger = logging.getLogger(__name__)
settings = get_settings()

relay_service = build_relay_service(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    relay_service.staging.ensure_directory()
    if not settings.s3_bucket_name:
        logger.warning("S3_BUCKET_NAME is not set; /detect requests will fail until it is configured")
    logger.info("Classification relay ready, staging uploads in %s", settings.upload_dir)
    yield


app = FastAPI(title="Module 2 Classification Relay", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> RelayService:
    return relay_service


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    # a non-file "image" field counts as no image at all
    if request.url.path == "/detect" and any("image" in error.get("loc", ()) for error in exc.errors()):
        return _error(400, "No image uploaded")
    return await request_validation_exception_handler(request, exc)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post(
    "/detect",
    response_model=DetectionResult,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def detect(
    image: Optional[UploadFile] = File(None),
    service: RelayService = Depends(get_service),
):
    """
    Stage the uploaded frame, store it in S3 and return Rekognition's labels.
    """
    if image is None:
        return _error(400, "No image uploaded")

    try:
        data = await image.read()
        # boto3 blocks, so the relay runs off the event loop
        result = await run_in_threadpool(service.classify, data, image.filename)
    except MissingInput:
        return _error(400, "No image uploaded")
    except Exception:
        logger.exception("Error processing image %s", image.filename)
        return _error(500, "Failed to process image")
    finally:
        await image.close()

    return JSONResponse(content=result.to_response())
