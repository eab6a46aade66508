"""Main FastAPI application."""
import sys
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import psutil
from loguru import logger

from backend.analyzer import SalaryAnalyzer
from backend.config import settings
from backend.exceptions import ConfigurationError
from backend.llm_client import ClientHandle, create_llm_client
from backend.models import ErrorResponse, HealthResponse, SalaryAnalysisResponse
from backend.upload import UploadedDocument, encode_data_url, validate_upload


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())
    logger.info(f"Starting {settings.app_name} application")
    logger.info(f"LLM provider: {settings.llm_provider}")
    logger.info(f"GOOGLE_API_KEY present: {bool(settings.google_api_key)}")

    client_handle = ClientHandle(lambda: create_llm_client(settings))
    try:
        client_handle.get()
    except ConfigurationError as e:
        logger.error(f"LLM client not available at startup: {e}")

    app.state.client_handle = client_handle
    app.state.analyzer = SalaryAnalyzer(client_handle)

    yield

    logger.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_analyzer(request: Request) -> SalaryAnalyzer:
    return request.app.state.analyzer


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Resume Salary Analyzer API",
        "version": settings.version,
        "docs": "/docs"
    }


@app.get("/api/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint, including whether the LLM client is configured."""
    client_handle: Optional[ClientHandle] = getattr(request.app.state, "client_handle", None)
    ram = psutil.virtual_memory()

    model = settings.gemini_model if settings.llm_provider.lower() == "gemini" else settings.ollama_model
    configured = client_handle is not None and client_handle.is_ready()
    return HealthResponse(
        status="healthy" if configured else "degraded",
        provider=settings.llm_provider,
        model=model,
        llm_configured=configured,
        ram_total=ram.total // (1024 * 1024),
        ram_used=ram.used // (1024 * 1024)
    )


@app.post(
    "/api/analyze",
    response_model=SalaryAnalysisResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}
)
async def analyze_resume(
    file: Optional[UploadFile] = File(None),
    analyzer: SalaryAnalyzer = Depends(get_analyzer)
):
    """
    Estimate a monthly Swedish salary from an uploaded PDF resume.

    Returns 400 for a missing, non-PDF or oversized file and 503 when the
    LLM service is not configured. A result whose retries were exhausted is
    returned with status 200 and an `error` field.
    """
    try:
        document = None
        if file is not None:
            file.file.seek(0, 2)
            file_size = file.file.tell()
            file.file.seek(0)
            document = UploadedDocument(
                content_type=file.content_type,
                size=file_size,
                content=b""
            )

        outcome = validate_upload(document)
        if not outcome.valid:
            logger.warning(f"File validation failed: {outcome.reason}")
            return _error(400, outcome.reason)

        content = await file.read()
        document = UploadedDocument(content_type=file.content_type, size=len(content), content=content)
        logger.info(f"Processing file: {file.filename} ({document.size} bytes)")

        result = await analyzer.analyze(encode_data_url(document))

        if result.error_code == "configuration":
            return _error(503, result.error)

        logger.info(f"Processing completed: {file.filename}")
        return result

    except Exception:
        logger.exception("Error processing the resume")
        return _error(500, "Error processing the resume")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
