import asyncio
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")


def ensure_event_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop


ensure_event_loop()

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from atelier.api.identity import Role
from atelier.domain.proposals import service as proposals_service
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.schemas import RequestCreate
from atelier.infra.auth import create_access_token
from atelier.infra.db import Base, get_db_session
from atelier.main import app
from atelier.settings import settings


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def test_engine():
    db_path = Path("test.db")
    if db_path.exists():
        db_path.unlink()
    engine = create_async_engine(
        "sqlite+aiosqlite:///./test.db",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=StaticPool,
    )

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture(scope="session")
def async_session_maker(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture(autouse=True)
def restore_settings():
    original_schedule = settings.payment_schedule_raw
    original_terminal = settings.terminal_stage
    original_metrics_token = settings.metrics_token
    original_message_max = settings.message_max_length
    original_image_max = settings.image_max_bytes
    yield
    settings.payment_schedule_raw = original_schedule
    settings.terminal_stage = original_terminal
    settings.metrics_token = original_metrics_token
    settings.message_max_length = original_message_max
    settings.image_max_bytes = original_image_max


@pytest.fixture(autouse=True)
def clean_database(test_engine):
    async def truncate_tables() -> None:
        async with test_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

    asyncio.run(truncate_tables())
    asyncio.run(app.state.services.cache.reset())
    yield


@pytest.fixture()
def client(async_session_maker):
    ensure_event_loop()

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    original_factory = getattr(app.state, "db_session_factory", None)
    app.state.db_session_factory = async_session_maker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.db_session_factory = original_factory


def auth_headers(user_id: str, role: Role | str, name: str | None = None) -> dict[str, str]:
    role_value = role.value if isinstance(role, Role) else role
    token = create_access_token(user_id, role_value, settings, name=name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def customer_headers() -> dict[str, str]:
    return auth_headers("customer-1", Role.CUSTOMER, name="Casey Customer")


@pytest.fixture()
def designer_headers() -> dict[str, str]:
    return auth_headers("designer-1", Role.DESIGNER, name="Dana Designer")


def request_fields(**overrides) -> RequestCreate:
    data = {
        "title": "Linen wedding suit",
        "description": "Three-piece suit in natural linen",
        "material": "Linen",
        "timeframe": "6 weeks",
        "budget_cents": 90000,
        "size": "M",
        "images": ["https://cdn.example.com/ref-1.jpg"],
    }
    data.update(overrides)
    return RequestCreate(**data)


async def create_assigned_request(
    session,
    *,
    customer_id: str = "customer-1",
    designer_id: str = "designer-1",
    price_cents: int = 10000,
):
    """Open a request, accept a single bid and commit; returns (request, proposal)."""
    request = await requests_service.create_request(
        session, customer_id=customer_id, customer_name="Casey Customer", fields=request_fields()
    )
    proposal = await proposals_service.submit_proposal(
        session,
        request.request_id,
        designer_id=designer_id,
        designer_name="Dana Designer",
        price_cents=price_cents,
        estimated_time="3 weeks",
    )
    await proposals_service.accept_proposal(
        session, request.request_id, proposal.proposal_id, customer_id=customer_id
    )
    await session.commit()
    return request, proposal
