from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from faker import Faker
from freezegun import freeze_time
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from progress_service.domain.entities import Budget, BudgetCategory, Goal
from progress_service.domain.enums import BudgetPeriod
from progress_service.domain.tracker import ProgressTracker, TrackerConfig
from progress_service.infrastructure.db import models  # noqa: F401
from progress_service.infrastructure.db.base import Base
from progress_service.infrastructure.db.uow import UnitOfWork
from progress_service.main import app

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _sqlite_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = _sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def uow(session_maker) -> UnitOfWork:
    return UnitOfWork(session_maker)


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker(TrackerConfig())


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture(scope="session")
def faker():
    return Faker()


@pytest.fixture
def frozen_now():
    with freeze_time(NOW, real_asyncio=True) as frozen:
        yield frozen


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, session_maker):
    """httpx client bound to the app with the sqlite session factory."""
    app.state.engine = db_engine
    app.state.db_session_maker = session_maker
    app.state.arq_pool = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides = {}
    app.state.engine = None
    app.state.db_session_maker = None


def make_goal(
    user_id=None,
    target_amount="1000",
    current_amount="0",
    target_date: date | None = None,
    **overrides,
) -> Goal:
    data = dict(
        id=uuid4(),
        user_id=user_id or uuid4(),
        name="Vacation",
        target_amount=Decimal(target_amount),
        current_amount=Decimal(current_amount),
        target_date=target_date or (NOW + timedelta(days=90)).date(),
        created_at=NOW - timedelta(days=30),
        updated_at=NOW - timedelta(days=30),
    )
    data.update(overrides)
    return Goal(**data)


def make_budget(
    user_id=None,
    total_amount="1000",
    spent_amount="0",
    categories=(),
    **overrides,
) -> Budget:
    data = dict(
        id=uuid4(),
        user_id=user_id or uuid4(),
        name="June",
        period=BudgetPeriod.MONTHLY,
        total_amount=Decimal(total_amount),
        spent_amount=Decimal(spent_amount),
        start_date=date(2025, 6, 1),
        end_date=date(2025, 6, 30),
        categories=tuple(
            BudgetCategory(
                name=name,
                allocated_amount=Decimal(allocated),
                spent_amount=Decimal(spent),
            )
            for name, allocated, spent in categories
        ),
        created_at=NOW - timedelta(days=14),
        updated_at=NOW - timedelta(days=14),
    )
    data.update(overrides)
    return Budget(**data)
