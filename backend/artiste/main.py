from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import time
from .config import settings
from .db import engine
from .models import Base
from .logger import logger
from .exceptions import (
    ArtisteBaseException,
    artiste_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from .notifications.hub import NotificationHub
from .routes import jobs, notifications
from .schemas import HealthResponse, VersionResponse
from .services.jobs import JobStore

APP_VERSION = "1.0.0"

app = FastAPI(
    title="Artiste Generation API",
    version=APP_VERSION,
    description="Prompt parsing, image generation jobs and live gallery notifications"
)

app.add_exception_handler(ArtisteBaseException, artiste_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Response: {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response

app.include_router(jobs.router)
app.include_router(notifications.router)

# The web process only delivers events; generation runs in Celery workers.
app.state.hub = NotificationHub(storage_root=settings.PHOTOS_ROOT)
app.state.job_store = JobStore()
app.state.enqueue = jobs.enqueue_generation

@app.on_event("startup")
async def startup():
    logger.info("Starting Artiste Generation API", extra={"backend": settings.IMAGE_GENERATION_BACKEND})
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Artiste Generation API")
    await app.state.hub.aclose()

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@app.get("/version", response_model=VersionResponse)
async def version():
    return {"name": "artiste", "version": APP_VERSION, "backend": settings.IMAGE_GENERATION_BACKEND}
