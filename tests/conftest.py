import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()
os.environ.setdefault("TRACING_ENABLED", "false")

from sfa_api.app import create_app  # noqa: E402
from sfa_api.db.base import Base  # noqa: E402
from sfa_api.db.session import get_session  # noqa: E402
from sfa_api.models import MasonAccount, User  # noqa: E402
from sfa_api.models.loyalty import BagLift, Reward  # noqa: E402
from sfa_api.observability.loyalty import get_loyalty_store  # noqa: E402
from sfa_api.services.access import Actor  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_loyalty_store():
    store = get_loyalty_store()
    store.reset()
    yield store
    store.reset()


@pytest_asyncio.fixture
async def loyalty_world(session_factory):
    """Two tenants, a salesman-owned mason referred by another mason, and a reward."""

    async with session_factory() as session:
        manager = User(company_id=1, email="manager@example.com", first_name="Asha", last_name="Rao", role="manager")
        executive = User(company_id=1, email="executive@example.com", role="executive")
        outsider = User(company_id=2, email="outsider@example.com", role="manager")
        field_rep = User(company_id=1, email="rep@example.com", role="junior-executive")
        session.add_all([manager, executive, outsider, field_rep])
        await session.flush()

        referrer = MasonAccount(name="Ramesh Kumar", phone_number="9000000001", user_id=manager.id)
        session.add(referrer)
        await session.flush()

        mason = MasonAccount(
            name="Suresh Patel",
            phone_number="9000000002",
            user_id=manager.id,
            is_referred=True,
            referred_by_user=referrer.id,
        )
        unassigned = MasonAccount(name="Vijay Singh", phone_number="9000000003")
        reward = Reward(item_name="Cement Mixer", point_cost=20, stock=3, total_available_quantity=3)
        session.add_all([mason, unassigned, reward])
        await session.commit()

        return SimpleNamespace(
            manager=Actor(user_id=manager.id, company_id=1, role="manager"),
            executive=Actor(user_id=executive.id, company_id=1, role="executive"),
            outsider=Actor(user_id=outsider.id, company_id=2, role="manager"),
            field_rep=Actor(user_id=field_rep.id, company_id=1, role="junior-executive"),
            manager_id=manager.id,
            outsider_id=outsider.id,
            mason_id=mason.id,
            referrer_id=referrer.id,
            unassigned_id=unassigned.id,
            reward_id=reward.id,
        )


@pytest.fixture
def make_bag_lift(session_factory):
    """Persist a pending bag lift and return its id."""

    async def _make(mason_id, *, bag_count, points_credited, purchased=None):
        async with session_factory() as session:
            bag_lift = BagLift(
                mason_id=mason_id,
                bag_count=bag_count,
                points_credited=points_credited,
                purchase_date=purchased or datetime(2026, 3, 1, tzinfo=timezone.utc),
            )
            session.add(bag_lift)
            await session.commit()
            return bag_lift.id

    return _make
