"""Composite authorize + grant flow for merchant transactions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.clock import ensure_utc, utcnow
from loyalvest_api.core.settings import Settings, settings as default_settings
from loyalvest_api.models.vesting import RewardGrant, RewardGrantStatus
from loyalvest_api.observability.engine import EngineObservabilityStore, get_engine_store
from loyalvest_api.services.errors import (
    DuplicateTransactionError,
    EngineError,
    InvalidInputError,
    NotFoundError,
    TransactionProcessingError,
)
from loyalvest_api.services.governance.parameters import EngineParameters
from loyalvest_api.services.vesting.ledger import VestingLedger, VestingSummary

from .calculator import NftMultiplierDirectory, compute_reward
from .cap_tracker import MonthlyCapTracker


@dataclass
class TransactionResult:
    grant_id: UUID
    transaction_id: str
    amount: Decimal
    status: RewardGrantStatus
    vesting_end_at: datetime
    remaining: Decimal


class TransactionProcessor:
    """Entry point for merchant transactions, cancellations and summaries.

    The cap increment and the grant insert commit together or not at all.
    Storage conflicts (a concurrent period insert, a lost row lock) roll the
    whole unit back and retry it; business rejections are never retried.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        config: Settings | None = None,
        observability: EngineObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._config = config or default_settings
        self._observability = observability or get_engine_store()
        self._parameters = EngineParameters(db_session, config=self._config)
        self._ledger = VestingLedger(db_session, parameters=self._parameters, observability=self._observability)
        self._caps = MonthlyCapTracker(db_session, parameters=self._parameters, observability=self._observability)
        self._multipliers = NftMultiplierDirectory(db_session, parameters=self._parameters)

    @property
    def ledger(self) -> VestingLedger:
        return self._ledger

    @property
    def cap_tracker(self) -> MonthlyCapTracker:
        return self._caps

    async def process_transaction(
        self,
        merchant_id: UUID,
        holder_id: str,
        transaction_id: str,
        amount: Decimal | int | str,
        reward_percentage: Decimal | int | str | None = None,
        *,
        now: datetime | None = None,
    ) -> TransactionResult:
        reference = ensure_utc(now or utcnow())
        attempts = max(1, self._config.transaction_max_attempts)

        for attempt in range(1, attempts + 1):
            try:
                result = await self._authorize_and_grant(
                    merchant_id, holder_id, transaction_id, amount, reward_percentage, reference
                )
                await self._db.commit()
            except EngineError as exc:
                await self._db.rollback()
                if isinstance(exc, DuplicateTransactionError):
                    self._observability.record_transaction_event("duplicate")
                elif isinstance(exc, (InvalidInputError, NotFoundError)):
                    self._observability.record_transaction_event("invalid")
                raise
            except (IntegrityError, DBAPIError) as exc:
                await self._db.rollback()
                if attempt < attempts:
                    self._observability.record_transaction_event("retried")
                    logger.warning(
                        "Authorize and grant conflict; retrying",
                        transaction_id=transaction_id,
                        attempt=attempt,
                        error=str(exc.orig) if exc.orig is not None else str(exc),
                    )
                    await asyncio.sleep(self._config.transaction_retry_backoff_seconds * attempt)
                    continue
                self._observability.record_transaction_event("failed")
                self._observability.record_alert(
                    "transaction_processing",
                    f"Transaction {transaction_id} could not be processed after {attempts} attempts",
                )
                logger.exception(
                    "Authorize and grant failed after retries",
                    transaction_id=transaction_id,
                    merchant_id=str(merchant_id),
                    attempts=attempts,
                )
                raise TransactionProcessingError(
                    f"Transaction {transaction_id} could not be processed",
                    transaction_id=transaction_id,
                    attempts=attempts,
                ) from exc
            except Exception:
                await self._db.rollback()
                raise

            self._observability.record_transaction_event("granted")
            return result

        raise AssertionError("unreachable")  # pragma: no cover

    async def _authorize_and_grant(
        self,
        merchant_id: UUID,
        holder_id: str,
        transaction_id: str,
        amount: Any,
        reward_percentage: Any,
        now: datetime,
    ) -> TransactionResult:
        if not transaction_id or not str(transaction_id).strip():
            raise InvalidInputError("transactionId is required")
        if not holder_id or not str(holder_id).strip():
            raise InvalidInputError("holderId is required")

        existing = await self._ledger.get_grant_by_transaction(transaction_id)
        if existing is not None:
            raise DuplicateTransactionError(transaction_id, existing.id)

        merchant = await self._caps.get_merchant(merchant_id)
        if reward_percentage is None:
            if merchant.default_reward_percentage is not None:
                reward_percentage = Decimal(str(merchant.default_reward_percentage))
            else:
                reward_percentage = await self._parameters.default_reward_percentage()

        multiplier = await self._multipliers.resolve_multiplier(holder_id)
        reward = compute_reward(amount, reward_percentage, multiplier)

        authorization = await self._caps.authorize_distribution(merchant_id, reward, now)
        grant = await self._ledger.create_grant(
            transaction_id,
            holder_id,
            reward,
            merchant_id=merchant_id,
            now=now,
            metadata={
                "transactionAmount": str(amount),
                "rewardPercentage": str(reward_percentage),
                "nftMultiplier": str(multiplier),
            },
        )
        return TransactionResult(
            grant_id=grant.id,
            transaction_id=transaction_id,
            amount=reward,
            status=grant.status,
            vesting_end_at=grant.vesting_end_at,
            remaining=authorization.remaining,
        )

    async def cancel_transaction(self, transaction_id: str, *, now: datetime | None = None) -> RewardGrant:
        grant = await self._ledger.get_grant_by_transaction(transaction_id)
        if grant is None:
            raise NotFoundError(
                f"No reward grant recorded for transaction {transaction_id}",
                transaction_id=transaction_id,
            )
        return await self._ledger.cancel_grant(grant.id, now=now)

    async def get_vesting_summary(self, holder_id: str, *, now: datetime | None = None) -> VestingSummary:
        return await self._ledger.summary(holder_id, now=now)


__all__ = ["TransactionProcessor", "TransactionResult"]
