import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dealflow.config import Settings
from dealflow.main import create_app
from dealflow.models import EntityKind
from dealflow.models.base import init_db
from dealflow.services.llm.types import LLMOrchestrationError, LLMResponse
from dealflow.services.pipeline_board import PipelineBoard
from dealflow.services.research.candidate_source import CandidateSource
from dealflow.services.research.container import build_research_services
from dealflow.services.research.types import ResearchResult


class StubProcedure:
    """Research procedure double: succeeds unless the entity name is marked failing or slow.

    ``related`` maps an entity name to the child rows the next run returns for it."""

    def __init__(self):
        self.calls = []
        self.failing = set()
        self.slow = set()
        self.related = {}

    async def enrich(self, subject):
        self.calls.append(subject)
        if subject.search_name in self.slow:
            await asyncio.sleep(5)
        if subject.search_name in self.failing:
            raise RuntimeError(f"upstream research failed for {subject.search_name}")
        return ResearchResult(
            summary=f"{subject.search_name} summary",
            research_notes=f"Notes on {subject.search_name}",
            attributes={"headquarters_city": "Springfield"},
            related=self.related.get(subject.search_name, {}),
            source_urls=["https://example.test/source"],
        )


class FakeOrchestrator:
    """Returns queued replies in order; an exception in the queue is raised instead."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.requests = []

    def run_stage(self, request):
        self.requests.append(request)
        if not self.replies:
            raise LLMOrchestrationError("no routes configured")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(text=reply, provider="fake", model="fake-1")


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        research_job_timeout_seconds=1.0,
        research_batch_max_jobs=10,
        stage_retry_backoff_seconds=0,
        tavily_api_key="",
        serpapi_api_key="",
        gemini_api_key="",
        openai_api_key="",
        anthropic_api_key="",
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'dealflow.db'}",
        connect_args={"timeout": 30},
    )

    # Take the write lock when a transaction starts so concurrent writers queue up
    # instead of deadlocking on lock upgrades.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def procedure():
    return StubProcedure()


@pytest.fixture
def orchestrator():
    return FakeOrchestrator()


@pytest.fixture
def services(session_factory, settings, procedure, orchestrator):
    procedures = {kind: procedure for kind in EntityKind}
    return build_research_services(
        session_factory,
        settings,
        procedures=procedures,
        candidate_source=CandidateSource(settings, orchestrator, cache=None),
    )


@pytest.fixture
def board(session_factory):
    return PipelineBoard(session_factory)


@pytest.fixture
async def client(services, board):
    app = create_app(services, board, initialize_database=False)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    await services.trigger.drain()


@pytest.fixture
def create_entity(session_factory):
    async def _create(model, **fields):
        async with session_factory() as session:
            async with session.begin():
                entity = model(**fields)
                session.add(entity)
        return entity

    return _create
