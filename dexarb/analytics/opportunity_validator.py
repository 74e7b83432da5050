"""
Opportunity validation pipeline
Ordered, fail-fast checks that accept or reject a candidate opportunity
"""
from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import datetime
from decimal import Decimal
import logging

from dexarb.analytics.reference_price import ReferencePrice
from dexarb.config.settings import Settings
from dexarb.core.data_models import ArbitrageOpportunity, ValidationVerdict
from dexarb.utils.helpers import get_utc_now
from dexarb.utils.validators import AddressValidator


logger = logging.getLogger(__name__)


# Stage outcome: (rejection reason or None, warnings)
StageResult = Tuple[Optional[str], List[str]]


class OpportunityValidator:
    """
    Screens opportunities before they are scored

    Stages run in order: tokens, venues, prices, liquidity, profit potential,
    freshness. The first rejection short-circuits the rest. The verdict
    depends only on configuration (reference price included) and the
    opportunity's fields, so the same input always produces the same verdict.
    """

    HIGH_DIFF_WARNING_PERCENT = Decimal(10)
    LOW_DIFF_WARNING_PERCENT = Decimal("0.3")
    LIQUIDITY_WARNING_FACTOR = Decimal("1.5")
    PROFIT_WARNING_FACTOR = Decimal("1.2")

    def __init__(self, settings: Settings, reference_price: Optional[ReferencePrice] = None):
        self.reference_price = reference_price or ReferencePrice.from_settings(settings)
        self.min_liquidity_usd = Decimal(str(settings.MIN_LIQUIDITY_USD))
        self.min_profit_usd = Decimal(str(settings.MIN_PROFIT_USD))
        self.max_age_seconds = settings.MAX_OPPORTUNITY_AGE_SECONDS
        self.use_whitelist = settings.USE_WHITELIST

        self.blacklisted_tokens = set(AddressValidator.normalize_all(settings.BLACKLISTED_TOKENS))
        self.whitelisted_tokens = set(AddressValidator.normalize_all(settings.WHITELISTED_TOKENS))
        self.blacklisted_dexes = set(settings.BLACKLISTED_DEXES)

        logger.info(
            f"Opportunity validator initialized (min liquidity ${self.min_liquidity_usd}, "
            f"max age {self.max_age_seconds}s, whitelist {'on' if self.use_whitelist else 'off'})"
        )

    def validate(
        self,
        opportunity: ArbitrageOpportunity,
        now: Optional[datetime] = None
    ) -> ValidationVerdict:
        """
        Run every stage against the opportunity

        Args:
            opportunity: Candidate to screen
            now: Evaluation time for the freshness stage (defaults to current UTC)

        Returns:
            Rejected verdict with a single reason, or an accepted verdict
            carrying the warnings accumulated by all stages
        """
        now = now or get_utc_now()
        stages: List[Callable[[], StageResult]] = [
            lambda: self._validate_tokens(opportunity),
            lambda: self._validate_dexes(opportunity),
            lambda: self._validate_prices(opportunity),
            lambda: self._validate_liquidity(opportunity),
            lambda: self._validate_profit_potential(opportunity),
            lambda: self._validate_freshness(opportunity, now),
        ]

        warnings: List[str] = []
        for stage in stages:
            reason, stage_warnings = stage()
            if reason is not None:
                logger.debug(f"Opportunity {opportunity.id} rejected: {reason}")
                return ValidationVerdict.reject(reason)
            warnings.extend(stage_warnings)

        return ValidationVerdict.accept(warnings)

    def _validate_tokens(self, opportunity: ArbitrageOpportunity) -> StageResult:
        token_in, token_out = opportunity.token_in, opportunity.token_out

        if not AddressValidator.validate_ethereum_address(token_in):
            return f"Invalid tokenIn address: {token_in}", []
        if not AddressValidator.validate_ethereum_address(token_out):
            return f"Invalid tokenOut address: {token_out}", []
        if token_in.lower() == token_out.lower():
            return "TokenIn and tokenOut cannot be the same", []

        if token_in.lower() in self.blacklisted_tokens:
            return f"TokenIn is blacklisted: {token_in}", []
        if token_out.lower() in self.blacklisted_tokens:
            return f"TokenOut is blacklisted: {token_out}", []

        if self.use_whitelist:
            if token_in.lower() not in self.whitelisted_tokens:
                return f"TokenIn not in whitelist: {token_in}", []
            if token_out.lower() not in self.whitelisted_tokens:
                return f"TokenOut not in whitelist: {token_out}", []

        return None, []

    def _validate_dexes(self, opportunity: ArbitrageOpportunity) -> StageResult:
        if opportunity.buy_dex == opportunity.sell_dex:
            return "Buy and sell DEX cannot be the same", []
        if opportunity.buy_dex in self.blacklisted_dexes:
            return f"Buy DEX is blacklisted: {opportunity.buy_dex}", []
        if opportunity.sell_dex in self.blacklisted_dexes:
            return f"Sell DEX is blacklisted: {opportunity.sell_dex}", []
        if not AddressValidator.validate_ethereum_address(opportunity.buy_pool_address):
            return f"Invalid buy pool address: {opportunity.buy_pool_address}", []
        if not AddressValidator.validate_ethereum_address(opportunity.sell_pool_address):
            return f"Invalid sell pool address: {opportunity.sell_pool_address}", []
        return None, []

    def _validate_prices(self, opportunity: ArbitrageOpportunity) -> StageResult:
        if opportunity.buy_price <= 0:
            return "Buy price must be positive", []
        if opportunity.sell_price <= 0:
            return "Sell price must be positive", []
        if opportunity.sell_price <= opportunity.buy_price:
            return "Sell price must be higher than buy price for profitable arbitrage", []

        warnings = []
        diff_percentage = opportunity.diff_percentage
        if diff_percentage > self.HIGH_DIFF_WARNING_PERCENT:
            warnings.append(f"Very high price difference: {diff_percentage:.2f}% - verify data accuracy")
        elif diff_percentage < self.LOW_DIFF_WARNING_PERCENT:
            warnings.append(f"Low price difference: {diff_percentage:.2f}% - may not cover all fees")

        return None, warnings

    def _validate_liquidity(self, opportunity: ArbitrageOpportunity) -> StageResult:
        if opportunity.available_liquidity <= 0:
            return "Available liquidity must be positive", []

        estimated_usd = self.reference_price.to_usd(opportunity.available_liquidity)
        if estimated_usd < self.min_liquidity_usd:
            return f"Insufficient liquidity: ${estimated_usd:.0f} < ${self.min_liquidity_usd}", []

        if estimated_usd < self.min_liquidity_usd * self.LIQUIDITY_WARNING_FACTOR:
            return None, [f"Low liquidity: ${estimated_usd:.0f} - expect high slippage"]
        return None, []

    def _validate_profit_potential(self, opportunity: ArbitrageOpportunity) -> StageResult:
        if opportunity.estimated_profit is None:
            return None, ["No estimated profit provided - validation limited"]

        if opportunity.estimated_profit <= 0:
            return "Estimated profit must be positive", []

        profit_usd = self.reference_price.to_usd(opportunity.estimated_profit)
        if profit_usd < self.min_profit_usd:
            return f"Estimated profit ${profit_usd:.2f} below minimum ${self.min_profit_usd}", []

        if profit_usd < self.min_profit_usd * self.PROFIT_WARNING_FACTOR:
            return None, [f"Marginal profit: ${profit_usd:.2f} - vulnerable to price changes"]
        return None, []

    def _validate_freshness(self, opportunity: ArbitrageOpportunity, now: datetime) -> StageResult:
        age_seconds = opportunity.age_seconds(now)

        if age_seconds > self.max_age_seconds:
            return f"Opportunity is stale: {age_seconds:.0f}s old (max: {self.max_age_seconds:g}s)", []

        if age_seconds > self.max_age_seconds / 2:
            return None, [f"Opportunity aging: {age_seconds:.0f}s old - execute quickly"]
        return None, []

    # Runtime list management

    def add_to_blacklist(self, token: str) -> None:
        self.blacklisted_tokens.add(AddressValidator.normalize(token))
        logger.info(f"Token blacklisted: {token}")

    def remove_from_blacklist(self, token: str) -> None:
        self.blacklisted_tokens.discard(AddressValidator.normalize(token))
        logger.info(f"Token removed from blacklist: {token}")

    def add_to_whitelist(self, token: str) -> None:
        self.whitelisted_tokens.add(AddressValidator.normalize(token))
        logger.info(f"Token whitelisted: {token}")

    def remove_from_whitelist(self, token: str) -> None:
        self.whitelisted_tokens.discard(AddressValidator.normalize(token))
        logger.info(f"Token removed from whitelist: {token}")

    def add_dex_to_blacklist(self, dex: str) -> None:
        self.blacklisted_dexes.add(dex)
        logger.info(f"DEX blacklisted: {dex}")

    def remove_dex_from_blacklist(self, dex: str) -> None:
        self.blacklisted_dexes.discard(dex)
        logger.info(f"DEX removed from blacklist: {dex}")

    def enable_whitelist(self) -> None:
        self.use_whitelist = True
        logger.info("Whitelist enforcement enabled")

    def disable_whitelist(self) -> None:
        self.use_whitelist = False
        logger.info("Whitelist enforcement disabled")

    def set_min_liquidity(self, min_liquidity_usd: float) -> None:
        self.min_liquidity_usd = Decimal(str(min_liquidity_usd))
        logger.info(f"Minimum liquidity set to ${min_liquidity_usd}")

    def set_reference_price(self, price_usd: float) -> None:
        self.reference_price.update(price_usd)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "blacklisted_tokens": len(self.blacklisted_tokens),
            "whitelisted_tokens": len(self.whitelisted_tokens),
            "blacklisted_dexes": len(self.blacklisted_dexes),
            "use_whitelist": self.use_whitelist,
            "min_liquidity_usd": float(self.min_liquidity_usd),
            "max_age_seconds": self.max_age_seconds,
            "reference_price_usd": float(self.reference_price.usd)
        }
