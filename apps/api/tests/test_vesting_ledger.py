import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from loyalvest_api.models.vesting import RewardGrantStatus
from loyalvest_api.observability.engine import get_engine_store
from loyalvest_api.services.errors import (
    AlreadyCancelledError,
    AlreadyVestedError,
    DuplicateTransactionError,
    InvalidInputError,
    NotFoundError,
)
from loyalvest_api.services.vesting import VestingLedger, days_remaining, vesting_progress


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


async def _grant(session_factory, transaction_id: str, *, holder_id: str = "holder-1", amount: str = "20", now=NOW):
    async with session_factory() as session:
        grant = await VestingLedger(session).create_grant(transaction_id, holder_id, amount, now=now)
        await session.commit()
        return grant.id


@pytest.mark.asyncio
async def test_create_grant_opens_thirty_day_window(session_factory) -> None:
    async with session_factory() as session:
        ledger = VestingLedger(session)
        grant = await ledger.create_grant("tx-1", "holder-1", Decimal("20"), now=NOW)
        await session.commit()

        assert grant.status == RewardGrantStatus.VESTING
        assert grant.vesting_start_at == NOW
        assert grant.vesting_end_at == NOW + timedelta(days=30)

    async with session_factory() as session:
        stored = await VestingLedger(session).get_grant_by_transaction("tx-1")
        assert stored is not None
        assert stored.amount == Decimal("20")


@pytest.mark.asyncio
async def test_create_grant_rejects_duplicate_transaction(session_factory) -> None:
    await _grant(session_factory, "tx-dup")

    async with session_factory() as session:
        with pytest.raises(DuplicateTransactionError) as exc_info:
            await VestingLedger(session).create_grant("tx-dup", "holder-2", "5", now=NOW)

    assert exc_info.value.transaction_id == "tx-dup"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("transaction_id", "holder_id", "amount"),
    [("", "holder-1", "1"), ("tx-x", " ", "1"), ("tx-y", "holder-1", "-1")],
)
async def test_create_grant_validates_input(session_factory, transaction_id, holder_id, amount) -> None:
    async with session_factory() as session:
        with pytest.raises(InvalidInputError):
            await VestingLedger(session).create_grant(transaction_id, holder_id, amount, now=NOW)


@pytest.mark.asyncio
async def test_cancel_within_window_marks_grant_cancelled(session_factory) -> None:
    grant_id = await _grant(session_factory, "tx-cancel")

    async with session_factory() as session:
        cancelled = await VestingLedger(session).cancel_grant(grant_id, now=NOW + timedelta(days=3))

    assert cancelled.status == RewardGrantStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert get_engine_store().snapshot().grants["cancelled"] == 1

    async with session_factory() as session:
        with pytest.raises(AlreadyCancelledError):
            await VestingLedger(session).cancel_grant(grant_id, now=NOW + timedelta(days=4))


@pytest.mark.asyncio
async def test_cancel_after_window_closes_is_rejected(session_factory) -> None:
    grant_id = await _grant(session_factory, "tx-late")

    async with session_factory() as session:
        with pytest.raises(AlreadyVestedError):
            await VestingLedger(session).cancel_grant(grant_id, now=NOW + timedelta(days=30))

    async with session_factory() as session:
        grant = await VestingLedger(session).get_grant(grant_id)
        assert grant.status == RewardGrantStatus.VESTING


@pytest.mark.asyncio
async def test_cancel_unknown_grant_raises_not_found(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await VestingLedger(session).cancel_grant(uuid4(), now=NOW)


@pytest.mark.asyncio
async def test_sweep_matures_only_due_grants(session_factory) -> None:
    due_id = await _grant(session_factory, "tx-due", now=NOW - timedelta(days=31))
    fresh_id = await _grant(session_factory, "tx-fresh", now=NOW)
    cancelled_id = await _grant(session_factory, "tx-gone", now=NOW - timedelta(days=40))
    async with session_factory() as session:
        await VestingLedger(session).cancel_grant(cancelled_id, now=NOW - timedelta(days=39))

    async with session_factory() as session:
        matured = await VestingLedger(session).sweep_maturities(NOW)

    assert matured == 1

    async with session_factory() as session:
        ledger = VestingLedger(session)
        assert (await ledger.get_grant(due_id)).status == RewardGrantStatus.VESTED
        assert (await ledger.get_grant(due_id)).vested_at is not None
        assert (await ledger.get_grant(fresh_id)).status == RewardGrantStatus.VESTING
        assert (await ledger.get_grant(cancelled_id)).status == RewardGrantStatus.CANCELLED

        assert await ledger.sweep_maturities(NOW) == 0

        with pytest.raises(AlreadyVestedError):
            await ledger.cancel_grant(due_id, now=NOW)

    snapshot = get_engine_store().snapshot().as_dict()
    assert snapshot["grants"]["matured"] == 1
    assert snapshot["sweeps"]["last_matured_count"] == 0


@pytest.mark.asyncio
async def test_sweep_respects_limit_oldest_first(session_factory) -> None:
    oldest = await _grant(session_factory, "tx-a", now=NOW - timedelta(days=45))
    middle = await _grant(session_factory, "tx-b", now=NOW - timedelta(days=40))
    newest = await _grant(session_factory, "tx-c", now=NOW - timedelta(days=35))

    async with session_factory() as session:
        ledger = VestingLedger(session)
        assert await ledger.sweep_maturities(NOW, limit=2) == 2
        assert (await ledger.get_grant(oldest)).status == RewardGrantStatus.VESTED
        assert (await ledger.get_grant(middle)).status == RewardGrantStatus.VESTED
        assert (await ledger.get_grant(newest)).status == RewardGrantStatus.VESTING

        with pytest.raises(InvalidInputError):
            await ledger.sweep_maturities(NOW, limit=0)


@pytest.mark.asyncio
async def test_summary_groups_by_status_with_progress(session_factory) -> None:
    await _grant(session_factory, "tx-s1", amount="10", now=NOW - timedelta(days=15))
    await _grant(session_factory, "tx-s2", amount="30", now=NOW - timedelta(days=31))
    cancelled_id = await _grant(session_factory, "tx-s3", amount="5", now=NOW - timedelta(days=1))
    await _grant(session_factory, "tx-other", holder_id="holder-2", amount="99")

    async with session_factory() as session:
        ledger = VestingLedger(session)
        await ledger.cancel_grant(cancelled_id, now=NOW)
        await ledger.sweep_maturities(NOW)
        summary = await ledger.summary("holder-1", now=NOW)

    assert len(summary.vesting) == 1
    assert summary.vesting[0].progress == pytest.approx(50.0)
    assert summary.vesting[0].days_remaining == 15
    assert [view.grant.transaction_id for view in summary.vested] == ["tx-s2"]
    assert [view.grant.transaction_id for view in summary.cancelled] == ["tx-s3"]
    assert summary.totals["vesting"].amount == Decimal("10")
    assert summary.totals["vested"].count == 1
    assert summary.totals["cancelled"].amount == Decimal("5")


@pytest.mark.asyncio
async def test_progress_and_days_remaining_are_clamped(session_factory) -> None:
    async with session_factory() as session:
        grant = await VestingLedger(session).create_grant("tx-p", "holder-1", "1", now=NOW)

    assert vesting_progress(grant, NOW - timedelta(days=1)) == 0.0
    assert vesting_progress(grant, NOW + timedelta(days=60)) == 100.0
    assert days_remaining(grant, NOW + timedelta(hours=1)) == 30
    assert days_remaining(grant, NOW + timedelta(days=29, hours=23)) == 1
    assert days_remaining(grant, NOW + timedelta(days=31)) == 0


@pytest.mark.asyncio
async def test_random_cancel_and_sweep_interleavings_keep_terminal_states(session_factory) -> None:
    rng = random.Random(20261017)
    grant_ids = [
        await _grant(session_factory, f"tx-r{index}", now=NOW + timedelta(days=rng.randint(0, 20)))
        for index in range(12)
    ]
    terminal: dict = {}

    for step in range(40):
        clock = NOW + timedelta(days=step * 1.5)
        async with session_factory() as session:
            ledger = VestingLedger(session)
            if rng.random() < 0.5:
                grant_id = rng.choice(grant_ids)
                try:
                    await ledger.cancel_grant(grant_id, now=clock)
                except (AlreadyCancelledError, AlreadyVestedError):
                    pass
            else:
                await ledger.sweep_maturities(clock)

            for grant_id in grant_ids:
                status = (await ledger.get_grant(grant_id)).status
                if grant_id in terminal:
                    assert status == terminal[grant_id]
                elif status != RewardGrantStatus.VESTING:
                    terminal[grant_id] = status
