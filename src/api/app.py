"""
Advisor API - FastAPI application.

Defines the app, lifespan, CORS and error handlers, and includes the
advisor routes. Run with::

    uvicorn api.app:app --app-dir src --reload
"""

import os
from contextlib import asynccontextmanager
from loguru import logger
from typing import Optional

from dotenv import load_dotenv

# Load before the advisor imports: tracing decorators read the env at import time
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from advisor.orchestrator import AdvisorOrchestrator
from api.routes import router
from infrastructure.observability import flush

SHUTDOWN_DRAIN_SECONDS = 30


def create_app(advisor: Optional[AdvisorOrchestrator] = None) -> FastAPI:
    """
    Build the API app.

    Args:
        advisor: Pre-wired orchestrator. When None one is built from
                 config / env at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from infrastructure.log import setup_logging

        setup_logging()
        if getattr(app.state, "advisor", None) is None:
            from advisor.orchestrator import build_advisor

            app.state.advisor = build_advisor()
        logger.info("[startup] Advisor API ready")

        yield

        jobs = app.state.advisor.jobs
        if jobs.pending:
            logger.info("[shutdown] Waiting for {} background job(s)", jobs.pending)
        await jobs.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        flush()

    app = FastAPI(
        title="Yuri - K-Beauty Skincare Advisor",
        description="Streaming skincare advisor with specialist routing and user memory",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.advisor = advisor

    # CORS
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        logger.info("Rejected request to {}: {} validation error(s)", request.url.path, len(exc.errors()))
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "service": "skincare-advisor"}

    app.include_router(router)
    return app


app = create_app()
