"""
FastAPI application entry point
"""
import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.v1.api import api_router
from app.core.logger import logger
from app.db.database import SessionLocal, init_db
from app.middleware.correlation import CorrelationMiddleware
from app.services.idempotency_service import delete_expired_idempotency_records

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api_router, prefix="/api/v1")

# ── Correlation ID middleware (must be added before CORS) ─────────────────────
app.add_middleware(CorrelationMiddleware)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "X-Tab-ID", "*"],
)


@app.get("/")
def read_root():
    logger.info("Root endpoint accessed")
    return {"message": "LegalAI Connect API is running", "version": "1.0.0", "docs": "/docs"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ── Background loops ──────────────────────────────────────────────────────────

async def _idempotency_cleanup_loop() -> None:
    """Delete expired idempotency_records rows every hour."""
    while True:
        try:
            await asyncio.sleep(3600)
            db = SessionLocal()
            try:
                deleted = delete_expired_idempotency_records(db)
                if deleted:
                    logger.info("idempotency_cleanup: deleted %d expired rows", deleted)
            finally:
                db.close()
        except asyncio.CancelledError:
            break
        except Exception:
            logger.exception("_idempotency_cleanup_loop crashed")
            await asyncio.sleep(60)


# ── Startup / Shutdown ────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    logger.info("LegalAI Connect API started")
    # Local SQLite runs have no migrations; create tables on boot
    if settings.DATABASE_URL.startswith("sqlite"):
        init_db()
    app.state.idempotency_cleanup_task = asyncio.create_task(_idempotency_cleanup_loop())


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("LegalAI Connect API shutdown")
    task = getattr(app.state, "idempotency_cleanup_task", None)
    if task is not None:
        task.cancel()
