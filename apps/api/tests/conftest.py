import sys
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists() and str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_configure_path()

from loyalvest_api import models  # noqa: E402,F401
from loyalvest_api.app import create_app  # noqa: E402
from loyalvest_api.core.settings import settings  # noqa: E402
from loyalvest_api.db.base import Base  # noqa: E402
from loyalvest_api.db.session import get_session  # noqa: E402
from loyalvest_api.models import HolderNftTier, Merchant, NftTier, SubscriptionPlan  # noqa: E402
from loyalvest_api.observability.engine import get_engine_store  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_runtime(monkeypatch):
    monkeypatch.setattr(settings, "tracing_enabled", False)
    monkeypatch.setattr(settings, "engine_api_key", "")
    get_engine_store().reset()
    yield
    get_engine_store().reset()


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


@pytest.fixture
def make_merchant(session_factory):
    """Persist a merchant, optionally on a plan with a monthly cap."""

    async def _make(
        *,
        points_cap: Decimal | int | None = 1000,
        default_reward_percentage: Decimal | None = None,
        plan_name: str | None = None,
    ) -> Merchant:
        async with session_factory() as session:
            plan = None
            if points_cap is not None:
                plan = SubscriptionPlan(
                    name=plan_name or f"plan-{uuid4().hex[:8]}",
                    monthly_points_cap=Decimal(str(points_cap)),
                )
                session.add(plan)
                await session.flush()
            merchant = Merchant(
                name="Corner Coffee",
                subscription_plan_id=plan.id if plan else None,
                default_reward_percentage=default_reward_percentage,
            )
            session.add(merchant)
            await session.commit()
            return merchant

    return _make


@pytest.fixture
def assign_tier(session_factory):
    async def _assign(holder_id: str, *, slug: str = "gold", multiplier: str = "2.0") -> None:
        async with session_factory() as session:
            tier = NftTier(slug=slug, name=slug.title(), multiplier=Decimal(multiplier))
            session.add(tier)
            await session.flush()
            session.add(HolderNftTier(holder_id=holder_id, tier_id=tier.id))
            await session.commit()

    return _assign
