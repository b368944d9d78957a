"""API server with health check and assessment endpoints.

Follows the CDP APIRouter pattern: each feature has its own router module,
assembled here into a single FastAPI app.

Endpoints:
    GET  /health                                       - Health check for CDP ECS monitoring
    POST /assessments                                  - Run an assessment attempt synchronously
    GET  /assessments/{participant_id}/{challenge_id}  - Attempt history
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from assessor.api.assess_router import router as assess_router
from assessor.api.health_router import router as health_router
from assessor.common.tracing import TraceIdMiddleware
from assessor.config import ApiServerConfig

logger = logging.getLogger(__name__)


def create_app(orchestrator=None, repository=None, config: ApiServerConfig | None = None) -> FastAPI:
    """Build the API application.

    Args:
        orchestrator: Assessment orchestrator; built from configuration at
            startup when assessment endpoints are enabled and none is given
        repository: Result store used for attempt history
        config: API server configuration (defaults to environment)
    """
    config = config or ApiServerConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.assessment_enabled and app.state.orchestrator is None:
            from assessor.wiring import build_orchestrator

            logger.info("Initialising assessment engine for API...")
            app.state.orchestrator, app.state.repository = build_orchestrator()
        yield

    app = FastAPI(title="Dynamic Assessment Engine API", lifespan=lifespan)
    app.state.assessment_enabled = config.assessment_enabled
    app.state.orchestrator = orchestrator
    app.state.repository = repository

    app.add_middleware(TraceIdMiddleware)
    app.include_router(health_router)
    app.include_router(assess_router)
    return app
