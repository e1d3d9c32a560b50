from decimal import Decimal

import pytest

from loyalvest_api.services.errors import InvalidInputError
from loyalvest_api.services.governance import EngineParameters
from loyalvest_api.services.rewards import NftMultiplierDirectory, compute_reward


@pytest.mark.parametrize(
    ("amount", "percentage", "multiplier", "expected"),
    [
        (100, 5, 2, Decimal("10")),
        (101, 5, 1, Decimal("5")),
        (200, 5, "2.0", Decimal("20")),
        ("19.99", "10", "1.5", Decimal("2")),
        (0, 5, 1, Decimal("0")),
        (250, 0, 3, Decimal("0")),
    ],
)
def test_compute_reward_floors_to_whole_points(amount, percentage, multiplier, expected) -> None:
    assert compute_reward(amount, percentage, multiplier) == expected


def test_compute_reward_result_is_integral() -> None:
    reward = compute_reward("333.33", "7.5", "1.25")
    assert reward == reward.to_integral_value()
    assert reward <= Decimal("333.33") * Decimal("7.5") / 100 * Decimal("1.25")


@pytest.mark.parametrize(
    ("amount", "percentage", "multiplier", "field"),
    [
        (-1, 5, 1, "transactionAmount"),
        (100, -0.5, 1, "rewardPercentage"),
        (100, 101, 1, "rewardPercentage"),
        (100, 5, "0.5", "nftMultiplier"),
        ("abc", 5, 1, "transactionAmount"),
        (100, True, 1, "rewardPercentage"),
        (100, 5, "NaN", "nftMultiplier"),
    ],
)
def test_compute_reward_rejects_out_of_domain_inputs(amount, percentage, multiplier, field) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        compute_reward(amount, percentage, multiplier)

    assert exc_info.value.details["field"] == field


@pytest.mark.asyncio
async def test_multiplier_defaults_to_one_without_tier(session_factory) -> None:
    async with session_factory() as session:
        directory = NftMultiplierDirectory(session)
        assert await directory.resolve_multiplier("holder-without-nft") == Decimal("1")


@pytest.mark.asyncio
async def test_multiplier_reads_holder_tier(session_factory, assign_tier) -> None:
    await assign_tier("holder-gold", slug="gold", multiplier="2.0")

    async with session_factory() as session:
        directory = NftMultiplierDirectory(session)
        assert await directory.resolve_multiplier("holder-gold") == Decimal("2")


@pytest.mark.asyncio
async def test_multiplier_is_bounded_by_governed_range(session_factory, assign_tier) -> None:
    await assign_tier("holder-whale", slug="mythic", multiplier="25")
    await assign_tier("holder-broken", slug="broken", multiplier="0.5")

    async with session_factory() as session:
        parameters = EngineParameters(session)
        directory = NftMultiplierDirectory(session, parameters=parameters)
        ceiling = await parameters.max_nft_multiplier()

        assert await directory.resolve_multiplier("holder-whale") == ceiling
        assert await directory.resolve_multiplier("holder-broken") == Decimal("1")
