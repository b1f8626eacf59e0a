# amount_detection/main.py
"""
FastAPI boundary for bill amount detection.

Routes hand text or image bytes to the pipeline; the OCR engine is owned by
the app and started/stopped with it.
"""
import logging
import time
from datetime import datetime
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .classification import classification_service
from .config import get_settings
from .exceptions import OCRUnavailableError
from .extraction import extraction_service
from .models import (
    APIInfo, ClassificationOutput, ClassificationRequest, ExtractionResult, HealthResponse,
    NormalizationOutput, NormalizationRequest, ResponseModel, TextRequest
)
from .normalization import normalization_service
from .ocr_service import OCREngine
from .pipeline import amount_detection_service
from .utils import utility_service

load_dotenv()
settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Bill Amount Detection API",
    description="Extracts and labels monetary amounts from bill text or images",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def start_ocr_engine():
    """Text requests work even when tesseract is missing"""
    engine = OCREngine(settings)
    try:
        engine.start()
    except OCRUnavailableError as e:
        logger.warning(f"Image input disabled: {e}")
        engine = None

    app.state.ocr_engine = engine
    logger.info(f"Bill Amount Detection API {__version__} ready (OCR {'on' if engine else 'off'})")


@app.on_event("shutdown")
async def stop_ocr_engine():
    engine = get_ocr_engine()
    if engine is not None:
        engine.close()
    app.state.ocr_engine = None


def get_ocr_engine() -> Optional[OCREngine]:
    return getattr(app.state, "ocr_engine", None)


def _upload_size(file: UploadFile) -> int:
    stream = file.file
    position = stream.tell()
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(position)
    return size


def validate_uploaded_file(file: UploadFile) -> None:
    """Reject nameless, oversized or non-image uploads"""
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    limit = settings.max_file_size
    if _upload_size(file) > limit:
        raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {limit // (1024 * 1024)}MB")

    if file.content_type not in settings.allowed_content_types:
        allowed = ", ".join(settings.allowed_content_types)
        raise HTTPException(status_code=400, detail=f"Unsupported file type. Allowed types: {allowed}")


@app.post("/extract-amounts", response_model=ResponseModel, response_model_exclude_none=True)
async def extract_amounts(
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None)
):
    """
    Extract and classify the amounts on a bill.

    Send either an image as `file` (JPEG, PNG, GIF) or the bill text as the
    `text` form field. The response status is `ok` with labelled amounts,
    `no_amounts_found` with a reason, or `error`.
    """
    if not file and not text:
        raise HTTPException(status_code=400, detail="No input provided. Please provide either a file or text.")

    if file:
        validate_uploaded_file(file)
        image_data = await file.read()
        logger.info(f"Image upload {file.filename!r}: {len(image_data)} bytes")
        return await amount_detection_service.process_image_bytes(image_data, get_ocr_engine())

    return amount_detection_service.process_text(utility_service.sanitize_text_input(text))


@app.post("/extract-amounts-json", response_model=ResponseModel, response_model_exclude_none=True)
async def extract_amounts_json(request: TextRequest):
    """Same as /extract-amounts for a JSON body `{"text": ...}`"""
    return amount_detection_service.process_text(utility_service.sanitize_text_input(request.text))


@app.get("/health", response_model=HealthResponse)
async def health():
    engine = get_ocr_engine()
    return HealthResponse(
        timestamp=datetime.now().isoformat(),
        version=__version__,
        dependencies={
            "pipeline": "ready",
            "ocr_engine": "ready" if engine is not None and engine.is_ready else "not_ready",
        }
    )


@app.get("/", response_model=APIInfo)
async def api_info():
    return APIInfo(version=__version__)


# Single-step endpoints for inspecting intermediate results
@app.post("/debug/step1-extraction", response_model=ExtractionResult)
async def debug_extraction(request: TextRequest):
    return extraction_service.process_text(request.text)


@app.post("/debug/step2-normalization", response_model=NormalizationOutput)
async def debug_normalization(request: NormalizationRequest):
    return normalization_service.process_tokens(request.tokens)


@app.post("/debug/step3-classification", response_model=ClassificationOutput, response_model_exclude_none=True)
async def debug_classification(request: ClassificationRequest):
    return classification_service.process_amounts(request.text, request.amounts)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return _error(400, str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.detail}")
    return _error(exc.status_code, exc.detail)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.3f}s")
    return response


if __name__ == "__main__":
    uvicorn.run(
        "amount_detection.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower()
    )
