import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loyalvest_api.core.settings import Settings, settings
from loyalvest_api.db.base import Base
from loyalvest_api.models import Merchant, MerchantMonthlyPeriod, RewardGrant, RewardGrantStatus, SubscriptionPlan
from loyalvest_api.observability.engine import get_engine_store
from loyalvest_api.services.errors import (
    AlreadyVestedError,
    CapExceededError,
    DuplicateTransactionError,
    NotFoundError,
    TransactionProcessingError,
)
from loyalvest_api.services.rewards import MonthlyPeriodRepository, TransactionProcessor
from loyalvest_api.services.vesting import VestingLedger


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


async def _grant_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(RewardGrant))).scalar_one()


async def _distributed(session_factory, merchant_id) -> Decimal:
    async with session_factory() as session:
        result = await session.execute(
            select(MerchantMonthlyPeriod.points_distributed).where(MerchantMonthlyPeriod.merchant_id == merchant_id)
        )
        value = result.scalar_one_or_none()
        return Decimal(str(value)) if value is not None else Decimal("0")


@pytest.mark.asyncio
async def test_gold_holder_purchase_vests_after_thirty_days(session_factory, make_merchant, assign_tier) -> None:
    merchant = await make_merchant(points_cap=1000)
    await assign_tier("holder-gold", multiplier="2.0")

    async with session_factory() as session:
        result = await TransactionProcessor(session).process_transaction(
            merchant.id, "holder-gold", "order-200", "200", "5", now=NOW
        )

    assert result.amount == Decimal("20")
    assert result.status == RewardGrantStatus.VESTING
    assert result.vesting_end_at == NOW + timedelta(days=30)
    assert result.remaining == Decimal("980")
    assert get_engine_store().snapshot().transactions["granted"] == 1

    async with session_factory() as session:
        processor = TransactionProcessor(session)
        summary = await processor.get_vesting_summary("holder-gold", now=NOW + timedelta(days=10))
        assert summary.totals["vesting"].amount == Decimal("20")
        assert summary.vesting[0].days_remaining == 20

        await processor.ledger.sweep_maturities(NOW + timedelta(days=30))

        with pytest.raises(AlreadyVestedError):
            await processor.cancel_transaction("order-200", now=NOW + timedelta(days=31))

        grant = await processor.ledger.get_grant(result.grant_id)
        assert grant.status == RewardGrantStatus.VESTED


@pytest.mark.asyncio
async def test_reward_percentage_falls_back_to_merchant_then_governed_default(session_factory, make_merchant) -> None:
    generous = await make_merchant(default_reward_percentage=Decimal("10"))
    plain = await make_merchant()

    async with session_factory() as session:
        processor = TransactionProcessor(session)
        from_merchant = await processor.process_transaction(generous.id, "holder-1", "tx-m", "100", now=NOW)
        from_default = await processor.process_transaction(plain.id, "holder-1", "tx-d", "100", now=NOW)

    assert from_merchant.amount == Decimal("10")
    assert from_default.amount == Decimal("5")

    async with session_factory() as session:
        grant = await VestingLedger(session).get_grant(from_merchant.grant_id)
        assert Decimal(grant.metadata_json["rewardPercentage"]) == Decimal("10")


@pytest.mark.asyncio
async def test_cap_rejection_leaves_no_grant(session_factory, make_merchant) -> None:
    merchant = await make_merchant(points_cap=15)

    async with session_factory() as session:
        processor = TransactionProcessor(session)
        await processor.process_transaction(merchant.id, "holder-1", "tx-ok", "200", "5", now=NOW)
        with pytest.raises(CapExceededError):
            await processor.process_transaction(merchant.id, "holder-1", "tx-over", "200", "5", now=NOW)

    assert await _grant_count(session_factory) == 1
    assert await _distributed(session_factory, merchant.id) == Decimal("10")
    assert get_engine_store().snapshot().transactions["cap_rejected"] == 1


@pytest.mark.asyncio
async def test_duplicate_transaction_does_not_touch_cap(session_factory, make_merchant) -> None:
    merchant = await make_merchant(points_cap=1000)

    async with session_factory() as session:
        processor = TransactionProcessor(session)
        first = await processor.process_transaction(merchant.id, "holder-1", "tx-1", "100", "5", now=NOW)
        with pytest.raises(DuplicateTransactionError) as exc_info:
            await processor.process_transaction(merchant.id, "holder-1", "tx-1", "100", "5", now=NOW)

    assert exc_info.value.grant_id == first.grant_id
    assert await _distributed(session_factory, merchant.id) == Decimal("5")
    assert get_engine_store().snapshot().transactions["duplicate"] == 1


@pytest.mark.asyncio
async def test_unknown_merchant_is_not_found(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await TransactionProcessor(session).process_transaction(uuid4(), "holder-1", "tx-x", "10", now=NOW)

    assert await _grant_count(session_factory) == 0


@pytest.mark.asyncio
async def test_storage_conflicts_are_retried_then_alerted(session_factory, make_merchant, monkeypatch) -> None:
    merchant = await make_merchant(points_cap=1000)
    calls = {"count": 0}

    async def locked(self, period_id, amount):
        calls["count"] += 1
        raise OperationalError("UPDATE merchant_monthly_points", {}, Exception("database is locked"))

    monkeypatch.setattr(MonthlyPeriodRepository, "increment_within_cap", locked)
    config = Settings(transaction_max_attempts=3, transaction_retry_backoff_seconds=0)

    async with session_factory() as session:
        with pytest.raises(TransactionProcessingError):
            await TransactionProcessor(session, config=config).process_transaction(
                merchant.id, "holder-1", "tx-locked", "100", "5", now=NOW
            )

    assert calls["count"] == 3
    assert await _grant_count(session_factory) == 0
    snapshot = get_engine_store().snapshot()
    assert snapshot.transactions["retried"] == 2
    assert snapshot.transactions["failed"] == 1
    assert snapshot.alerts["transaction_processing"] == 1


@pytest.mark.asyncio
async def test_transient_conflict_recovers_on_retry(session_factory, make_merchant, monkeypatch) -> None:
    merchant = await make_merchant(points_cap=1000)
    original = MonthlyPeriodRepository.increment_within_cap
    calls = {"count": 0}

    async def flaky(self, period_id, amount):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("UPDATE merchant_monthly_points", {}, Exception("database is locked"))
        return await original(self, period_id, amount)

    monkeypatch.setattr(MonthlyPeriodRepository, "increment_within_cap", flaky)
    config = Settings(transaction_max_attempts=2, transaction_retry_backoff_seconds=0)

    async with session_factory() as session:
        result = await TransactionProcessor(session, config=config).process_transaction(
            merchant.id, "holder-1", "tx-flaky", "100", "5", now=NOW
        )

    assert result.amount == Decimal("5")
    assert await _distributed(session_factory, merchant.id) == Decimal("5")
    assert await _grant_count(session_factory) == 1


@pytest.mark.asyncio
async def test_cancel_unknown_transaction_is_not_found(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await TransactionProcessor(session).cancel_transaction("missing")


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("points_cap", "amount", "attempts", "expected_grants"),
    [(100, "600", 6, 1), (100, "300", 6, 3)],
)
async def test_concurrent_transactions_never_overrun_the_cap(
    file_session_factory, monkeypatch, points_cap, amount, attempts, expected_grants
) -> None:
    monkeypatch.setattr(settings, "transaction_max_attempts", 25)
    monkeypatch.setattr(settings, "transaction_retry_backoff_seconds", 0.01)
    async with file_session_factory() as session:
        plan = SubscriptionPlan(name="concurrency", monthly_points_cap=Decimal(points_cap))
        session.add(plan)
        await session.flush()
        merchant = Merchant(name="Busy Bakery", subscription_plan_id=plan.id)
        session.add(merchant)
        await session.commit()
        merchant_id = merchant.id

    async def _process(index: int):
        async with file_session_factory() as session:
            return await TransactionProcessor(session).process_transaction(
                merchant_id, f"holder-{index}", f"rush-{index}", amount, "10", now=NOW
            )

    outcomes = await asyncio.gather(*(_process(index) for index in range(attempts)), return_exceptions=True)

    granted = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
    refused = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    assert all(isinstance(error, CapExceededError) for error in refused)
    assert len(granted) == expected_grants

    async with file_session_factory() as session:
        grant_total = (await session.execute(select(func.coalesce(func.sum(RewardGrant.amount), 0)))).scalar_one()
    distributed = await _distributed(file_session_factory, merchant_id)

    assert distributed <= Decimal(points_cap)
    assert distributed == Decimal(str(grant_total))
    assert distributed == sum(result.amount for result in granted)
