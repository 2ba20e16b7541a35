"""
Smokewatch - Main Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from smokewatch.config import settings
from smokewatch.database import AsyncSessionLocal, init_db
from smokewatch.errors import StoreError, TargetNotFound
from smokewatch.routers import probes
from smokewatch.services.monitor_engine import MonitorEngine
from smokewatch.services.result_store import ResultStore
from smokewatch.services.target_registry import DatabaseTargetRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_engine() -> MonitorEngine:
    return MonitorEngine(
        store=ResultStore(AsyncSessionLocal),
        registry=DatabaseTargetRegistry(AsyncSessionLocal),
        config=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()
    engine = build_engine()
    app.state.engine = engine
    engine.start()

    yield

    # Shutdown
    await engine.shutdown()
    logger.info(f"{settings.APP_NAME} shutting down")


async def target_not_found_handler(request: Request, exc: TargetNotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Result store unavailable", "message": str(exc)},
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan if use_lifespan else None,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_exception_handler(TargetNotFound, target_not_found_handler)
    app.add_exception_handler(StoreError, store_error_handler)

    origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(probes.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


app = create_app()
