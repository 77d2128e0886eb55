import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from dealflow.config import configure_logging, get_settings
from dealflow.errors import DomainError, domain_error_handler
from dealflow.models import EntityKind
from dealflow.models.base import async_session_maker, init_db
from dealflow.api import pipeline
from dealflow.api.research import build_research_router
from dealflow.services.pipeline_board import PipelineBoard
from dealflow.services.research.container import ResearchServices, build_research_services

logger = logging.getLogger(__name__)

RESEARCH_PREFIXES = {
    EntityKind.health_system: ("/health-systems", "health-systems"),
    EntityKind.company: ("/companies", "companies"),
    EntityKind.co_investor: ("/co-investors", "co-investors"),
}


def create_app(
    research_services: Optional[ResearchServices] = None,
    pipeline_board: Optional[PipelineBoard] = None,
    *,
    initialize_database: bool = True,
) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        if initialize_database:
            await init_db()
        if getattr(app.state, "research", None) is None:
            app.state.research = build_research_services(async_session_maker, settings)
        if getattr(app.state, "pipeline_board", None) is None:
            app.state.pipeline_board = PipelineBoard(async_session_maker)
        logger.info("Deal flow API started")
        yield
        # Let detached research runs finish before the loop goes away
        await app.state.research.trigger.drain()

    app = FastAPI(
        title="Deal Flow API",
        description="Investment pipeline tracking with background entity research",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.research = research_services
    app.state.pipeline_board = pipeline_board

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(DomainError, domain_error_handler)

    for kind, (prefix, tag) in RESEARCH_PREFIXES.items():
        app.include_router(build_research_router(kind), prefix=prefix, tags=[tag])
    app.include_router(pipeline.router, tags=["pipeline"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
