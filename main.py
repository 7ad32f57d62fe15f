"""
TECHRUN Pose Service API

FastAPI application entry point for exercise frame and video analysis.
"""

import logging
import sys
import time
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from shared.utils import LOG_DATE_FORMAT, LOG_FORMAT, error_response, setup_logger

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)]
)

from pose_service.models import PoseAnalysisService
from pose_service.router import router as pose_router

logger = setup_logger("techrun.main", level=logging.DEBUG if settings.DEBUG else logging.INFO)
request_logger = setup_logger("techrun.requests", level=logging.DEBUG if settings.DEBUG else logging.INFO)


# ============================================
# Request Logging Middleware
# ============================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests and responses with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        query_string = f"?{request.url.query}" if request.url.query else ""
        request_logger.info(f"➡️  {request.method} {request.url.path}{query_string}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            request_logger.error(
                f"💥 {request.method} {request.url.path} → ERROR: {type(e).__name__}: {e} ({process_time:.1f}ms)"
            )
            request_logger.error(traceback.format_exc())
            raise

        process_time = (time.time() - start_time) * 1000
        if response.status_code < 300:
            status_emoji = "✅"
        elif response.status_code < 400:
            status_emoji = "↪️"
        elif response.status_code < 500:
            status_emoji = "⚠️"
        else:
            status_emoji = "❌"

        request_logger.info(
            f"{status_emoji} {request.method} {request.url.path} → {response.status_code} ({process_time:.1f}ms)"
        )
        return response


def create_app(pose_service: Optional[PoseAnalysisService] = None) -> FastAPI:
    """Build the API. A prebuilt service may be injected (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ===== STARTUP =====
        logger.info("🚀 TECHRUN Pose API starting up...")
        service = pose_service or PoseAnalysisService.from_settings(settings)
        app.state.pose_service = service
        if service.degraded:
            logger.warning("⚠️ Pose engine unavailable, running in SIMULATION MODE")
        logger.info("✅ TECHRUN Pose API ready!")

        yield  # Application runs here

        # ===== SHUTDOWN =====
        logger.info("👋 TECHRUN Pose API shutting down...")
        service.shutdown()
        app.state.pose_service = None
        logger.info("✅ Shutdown complete")

    app = FastAPI(
        title="TECHRUN Pose API",
        description="Exercise video frame analysis - pose feedback and exercise metrics",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error", error_code=type(exc).__name__),
        )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint for monitoring."""
        service = getattr(request.app.state, "pose_service", None)
        return {
            "status": "healthy" if service is not None else "starting",
            "service": "techrun-pose-api",
            "pose_source": service.pose_source.name if service else None,
            "simulation_mode": service.simulation_mode if service else None,
        }

    app.include_router(pose_router, prefix="/api/pose", tags=["Pose Analysis"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
