"""
Tests for the opportunity validation pipeline
"""
import pytest

from dexarb.analytics.opportunity_validator import OpportunityValidator
from dexarb.analytics.profit_calculator import ProfitCalculator
from dexarb.analytics.reference_price import ReferencePrice
from dexarb.utils.helpers import SCALE, get_utc_now

from conftest import DAI, USDC, WETH, make_settings


@pytest.fixture
def validator(settings):
    return OpportunityValidator(settings)


def test_valid_opportunity_accepted(validator, make_opportunity):
    verdict = validator.validate(make_opportunity())

    assert verdict.is_valid
    assert verdict.reason is None


def test_validate_is_pure(validator, make_opportunity):
    """Same opportunity and time give the identical verdict"""
    now = get_utc_now()
    opportunity = make_opportunity(now=now, age_seconds=45)

    first = validator.validate(opportunity, now=now)
    second = validator.validate(opportunity, now=now)

    assert first == second


def test_stale_opportunity_rejected(validator, make_opportunity):
    now = get_utc_now()
    verdict = validator.validate(make_opportunity(now=now, age_seconds=61), now=now)

    assert not verdict.is_valid
    assert verdict.reason == "Opportunity is stale: 61s old (max: 60s)"


def test_aging_opportunity_accepted_with_warning(validator, make_opportunity):
    now = get_utc_now()
    verdict = validator.validate(make_opportunity(now=now, age_seconds=59), now=now)

    assert verdict.is_valid
    assert any("aging" in w for w in verdict.warnings)


def test_liquidity_below_floor_rejected(validator, make_opportunity):
    # 4.5 units at $2000 = $9,000 against a $10,000 floor
    verdict = validator.validate(make_opportunity(available_liquidity=45 * SCALE // 10))

    assert not verdict.is_valid
    assert verdict.reason.startswith("Insufficient liquidity: $9000")


def test_liquidity_exactly_at_floor_accepted(validator, make_opportunity):
    verdict = validator.validate(make_opportunity(available_liquidity=5 * SCALE))

    assert verdict.is_valid
    assert any("Low liquidity" in w for w in verdict.warnings)


def test_zero_liquidity_rejected(validator, make_opportunity):
    verdict = validator.validate(make_opportunity(available_liquidity=0))
    assert verdict.reason == "Available liquidity must be positive"


@pytest.mark.parametrize("overrides, reason", [
    ({"token_in": "0x1234"}, "Invalid tokenIn address: 0x1234"),
    ({"token_out": "not-an-address"}, "Invalid tokenOut address: not-an-address"),
    ({"token_out": WETH}, "TokenIn and tokenOut cannot be the same"),
    ({"sell_dex": "Uniswap V2"}, "Buy and sell DEX cannot be the same"),
    ({"buy_pool_address": "0xdead"}, "Invalid buy pool address: 0xdead"),
    ({"buy_price": 0}, "Buy price must be positive"),
    ({"sell_price": 1000 * SCALE}, "Sell price must be higher than buy price for profitable arbitrage"),
    ({"estimated_profit": 0}, "Estimated profit must be positive"),
])
def test_rejection_reasons(validator, make_opportunity, overrides, reason):
    verdict = validator.validate(make_opportunity(**overrides))

    assert not verdict.is_valid
    assert verdict.reason == reason
    assert verdict.warnings == []


def test_first_failing_stage_wins(validator, make_opportunity):
    """Token stage runs before the freshness stage"""
    now = get_utc_now()
    opportunity = make_opportunity(now=now, age_seconds=600, token_out=WETH)

    verdict = validator.validate(opportunity, now=now)
    assert verdict.reason == "TokenIn and tokenOut cannot be the same"


def test_low_estimated_profit_rejected(validator, make_opportunity):
    # 0.02 units at $2000 = $40 < $50
    verdict = validator.validate(make_opportunity(estimated_profit=2 * SCALE // 100))

    assert not verdict.is_valid
    assert verdict.reason == "Estimated profit $40.00 below minimum $50.0"


def test_marginal_profit_accepted_with_warning(validator, make_opportunity):
    # 0.0275 units at $2000 = $55, within 1.2x of the $50 minimum
    verdict = validator.validate(make_opportunity(estimated_profit=275 * SCALE // 10_000))

    assert verdict.is_valid
    assert verdict.warnings == ["Marginal profit: $55.00 - vulnerable to price changes"]


def test_missing_estimated_profit_is_only_a_warning(validator, make_opportunity):
    verdict = validator.validate(make_opportunity(estimated_profit=None))

    assert verdict.is_valid
    assert "No estimated profit provided - validation limited" in verdict.warnings


def test_price_difference_warnings(validator, make_opportunity):
    high = validator.validate(make_opportunity(sell_price=1200 * SCALE))
    low = validator.validate(make_opportunity(sell_price=1002 * SCALE))

    assert high.is_valid and any("Very high price difference: 20.00%" in w for w in high.warnings)
    assert low.is_valid and any("Low price difference: 0.20%" in w for w in low.warnings)


def test_blacklists(validator, make_opportunity):
    validator.add_to_blacklist(USDC)
    assert validator.validate(make_opportunity()).reason == f"TokenOut is blacklisted: {USDC}"

    validator.remove_from_blacklist(USDC)
    validator.add_dex_to_blacklist("SushiSwap")
    assert validator.validate(make_opportunity()).reason == "Sell DEX is blacklisted: SushiSwap"

    validator.remove_dex_from_blacklist("SushiSwap")
    assert validator.validate(make_opportunity()).is_valid


def test_whitelist_enforcement(validator, make_opportunity):
    validator.enable_whitelist()
    validator.add_to_whitelist(WETH)

    verdict = validator.validate(make_opportunity())
    assert verdict.reason == f"TokenOut not in whitelist: {USDC}"

    validator.add_to_whitelist(USDC)
    assert validator.validate(make_opportunity()).is_valid

    validator.disable_whitelist()
    assert validator.validate(make_opportunity(token_out=DAI)).is_valid


def test_lists_from_settings(make_opportunity):
    validator = OpportunityValidator(make_settings(BLACKLISTED_TOKENS=[WETH.lower()]))

    assert validator.validate(make_opportunity()).reason == f"TokenIn is blacklisted: {WETH}"


def test_set_min_liquidity_and_stats(validator, make_opportunity):
    validator.set_min_liquidity(100_000)
    assert not validator.validate(make_opportunity()).is_valid

    stats = validator.get_stats()
    assert stats["min_liquidity_usd"] == 100_000
    assert stats["use_whitelist"] is False


def test_reference_price_is_shared_with_profit_model(settings, make_opportunity):
    reference_price = ReferencePrice.from_settings(settings)
    validator = OpportunityValidator(settings, reference_price)
    calculator = ProfitCalculator(settings, reference_price)
    assert validator.validate(make_opportunity()).is_valid

    calculator.update_reference_price(200)

    # 25 units at $200 = $5,000
    verdict = validator.validate(make_opportunity())
    assert verdict.reason == "Insufficient liquidity: $5000 < $10000.0"
    assert validator.get_stats()["reference_price_usd"] == 200

    validator.set_reference_price(2000)
    assert calculator.to_usd(SCALE) == 2000
