"""
IntimaSync - FastAPI Backend
"""
from fastapi import Depends, FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi import status
from sqlalchemy import func, text
from sqlalchemy.orm import Session
import uvicorn
import logging

from routes.api import register_routes
from app.database import engine, Base, get_db
from app.models import SubmissionStatus, SubmissionTask
from app.config import settings
from app.workers.scheduler import start_background_workers, stop_background_workers, get_workers_status

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="IntimaSync API",
    description="Multi-supplier dropshipping: catalog sync and order routing",
    version="1.0.0",
    docs_url="/docs" if settings.IS_DEVELOPMENT else None,
    redoc_url="/redoc" if settings.IS_DEVELOPMENT else None,
)

logger.info("Starting IntimaSync API")
logger.info("Environment: %s (production=%s, cloud=%s)", settings.ENV, settings.IS_PRODUCTION, settings.IS_CLOUD)

# Startup config validation (warn only)
if settings.IS_PRODUCTION and settings.ENCRYPTION_KEY == "your-32-character-encryption-key!!":
    logger.warning("ENCRYPTION_KEY is the default in production. Set a strong ENCRYPTION_KEY in environment.")
if not settings.SHOPIFY_WEBHOOK_SECRET:
    logger.warning("SHOPIFY_WEBHOOK_SECRET is not set. Storefront webhooks will be rejected.")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Validation error: %s", exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": exc.errors(),
            "message": "Validation error: Please check your request format"
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.IS_DEVELOPMENT else "An error occurred"
        },
    )


cors_kwargs = {
    "allow_origins": settings.ALLOWED_ORIGINS,
    "allow_credentials": True,
    "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    "allow_headers": ["*"],
}
if settings.CORS_ORIGIN_REGEX:
    cors_kwargs["allow_origin_regex"] = settings.CORS_ORIGIN_REGEX
app.add_middleware(CORSMiddleware, **cors_kwargs)

register_routes(app, settings)


@app.get("/")
async def root():
    return {"name": "IntimaSync API", "version": "1.0.0", "status": "running"}


@app.get("/health")
async def health(db: Session = Depends(get_db)):
    """Health check: DB connectivity, submission outbox backlog and worker state."""
    db_status = "ok"
    outbox = None
    try:
        db.execute(text("SELECT 1"))
        rows = (
            db.query(SubmissionTask.status, func.count(SubmissionTask.id))
            .filter(SubmissionTask.status != SubmissionStatus.SUBMITTED)
            .group_by(SubmissionTask.status)
            .all()
        )
        outbox = {s.value: n for s, n in rows}
    except Exception as e:
        logger.warning("Health check DB ping failed: %s", e)
        db_status = "error"
    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "service": "api",
        "db": db_status,
        "environment": settings.ENV,
        "outbox": outbox,
        "workers": get_workers_status(),
    }


@app.on_event("startup")
async def startup() -> None:
    """Create tables (development convenience) and start background workers."""
    Base.metadata.create_all(bind=engine)
    start_background_workers()


@app.on_event("shutdown")
async def shutdown() -> None:
    stop_background_workers()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.IS_DEVELOPMENT,
        log_level=settings.LOG_LEVEL.lower()
    )
