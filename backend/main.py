import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile

from app import config
from app.auth import token_from_request
from app.db import SqlKeyValueStore
from app.errors import UnexpectedError, UploadFlowError
from app.flow import ImageUpload, UploadFlow
from app.models import UploadResponse
from app.services import (
    get_store,
    get_upload_flow,
    local_assets_dir,
    s3_configured,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("agify-backend")

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS + ["http://127.0.0.1:3000", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(UploadFlowError)
async def upload_flow_error_handler(request: Request, exc: UploadFlowError):
    logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": UnexpectedError.message}, status_code=500)


@app.get("/healthz")
def healthz():
    return {
        "ok": True,
        "storage": "s3" if s3_configured() else "local",
        "rate_limiter": "redis" if config.REDIS_URL else "memory",
        "inference": "replicate" if config.REPLICATE_API_TOKEN else "unconfigured",
    }


async def _read_image(request: Request) -> Optional[ImageUpload]:
    """Pull the `image` file out of the form; a missing or non-file value reads as absent."""
    form = await request.form()
    image = form.get("image")
    if not isinstance(image, UploadFile):
        return None
    return ImageUpload(
        data=await image.read(),
        content_type=image.content_type or "application/octet-stream",
        filename=image.filename,
    )


async def _run_flow(request: Request, flow: UploadFlow) -> str:
    image = await _read_image(request)
    # Collaborators block on network I/O; keep them off the event loop
    return await run_in_threadpool(flow.run, token_from_request(request), image)


@app.post("/upload")
async def upload(request: Request, flow: UploadFlow = Depends(get_upload_flow)):
    """Form action: on success redirect to the result page for the new key."""
    key = await _run_flow(request, flow)
    return RedirectResponse(f"/p/{key}", status_code=303)


@app.api_route("/api/upload", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def api_upload(request: Request, flow: UploadFlow = Depends(get_upload_flow)):
    """JSON variant of the upload action; answers with the allocated key."""
    if request.method != "POST":
        return JSONResponse({"error": "Method Not Allowed"}, status_code=405)
    key = await _run_flow(request, flow)
    return UploadResponse(key=key)


@app.get("/jobs/{key}")
def get_job(key: str, store: SqlKeyValueStore = Depends(get_store)):
    record = store.get_record(key)
    if not record:
        return JSONResponse({"error": "not_found"}, status_code=404)
    return {
        "id": record.id,
        "status": record.status,
        "created_at": record.created_at.isoformat(),
        "prediction_id": record.prediction_id,
    }


# Dev-only static file serving for local storage
assets_root = local_assets_dir()
os.makedirs(assets_root, exist_ok=True)
app.mount("/assets", StaticFiles(directory=assets_root), name="assets")
