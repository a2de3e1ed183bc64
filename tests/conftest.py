from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401  registers every table on Base.metadata
from app.api.v1.routes.auth.auth import get_current_user
from app.api.v1.routes.router import router as api_router
from app.core.error_handlers import register_exception_handlers
from app.db.deps import Base, get_db
from app.models.user import User
from app.services.pipeline.services import get_pipeline_services
from tests.fakes import FakeAdapter, FakeRenderer, FakeStorage, build_services, create_user


@pytest.fixture()
def test_app() -> FastAPI:
    app = FastAPI()
    app.include_router(api_router, prefix="/api/v1")
    register_exception_handlers(app)
    return app


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_grader.sqlite'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture()
async def teacher(db_session: AsyncSession) -> User:
    return await create_user(db_session)


@pytest.fixture()
def primary() -> FakeAdapter:
    """The single provider the default services use; tests script its results."""
    return FakeAdapter("primary")


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer(page_count=1)


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest_asyncio.fixture()
async def services(session_factory, primary, renderer, storage):
    services = build_services(session_factory, [primary], renderer=renderer, storage=storage)
    try:
        yield services
    finally:
        await services.runner.cancel_all()


def _override_db(app: FastAPI, session_factory) -> None:
    async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db


@pytest_asyncio.fixture()
async def client(test_app: FastAPI, session_factory, teacher: User, services) -> AsyncGenerator[AsyncClient, None]:
    _override_db(test_app, session_factory)
    test_app.dependency_overrides[get_current_user] = lambda: teacher
    test_app.dependency_overrides[get_pipeline_services] = lambda: services

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client

    test_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def anonymous_client(test_app: FastAPI, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Client that goes through real token authentication."""
    _override_db(test_app, session_factory)

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client

    test_app.dependency_overrides.clear()
