"""
Profit model: trade sizing, fee and gas deductions, executability verdict
"""
from typing import Optional
from decimal import Decimal
import logging

from dexarb.analytics.reference_price import ReferencePrice
from dexarb.config.settings import Settings
from dexarb.core.data_models import ArbitrageOpportunity, PriceImpact, ProfitAnalysis
from dexarb.utils.helpers import (
    BPS_DENOMINATOR,
    SCALE,
    apply_bps,
    bps_to_percent,
    calculate_price_impact,
    from_units,
    to_units
)


logger = logging.getLogger(__name__)

GWEI = 10 ** 9
DEFAULT_DEX_FEE_BPS = 30


class ProfitCalculator:
    """
    Scores opportunities with a linear cost model

    All magnitudes are 18-decimal integers; the USD view goes through the
    reference price shared with the validator. Liquidity and trade-size
    limits are in reference-token units. Non-executable is a normal result,
    never an error.
    """

    def __init__(self, settings: Settings, reference_price: Optional[ReferencePrice] = None):
        self.settings = settings
        self.reference_price = reference_price or ReferencePrice.from_settings(settings)
        self.max_trade_size = from_units(settings.MAX_TRADE_SIZE)
        self.min_trade_size = from_units(settings.MIN_TRADE_SIZE)
        self.min_profit_usd = Decimal(str(settings.MIN_PROFIT_USD))
        self.min_profit_percentage = Decimal(str(settings.MIN_PROFIT_PERCENTAGE))
        self.max_slippage_percent = bps_to_percent(settings.MAX_SLIPPAGE_BPS)
        self.estimated_gas_units = settings.ESTIMATED_GAS_UNITS
        self.max_gas_price_wei = int(Decimal(str(settings.MAX_GAS_PRICE_GWEI)) * GWEI)
        self.depth_multiplier = settings.PRICE_IMPACT_DEPTH_MULTIPLIER

        provider = settings.get_flash_loan_provider()
        self.flash_loan_fee_bps = provider.fee_bps if provider else 0

    def calculate_profit(
        self,
        opportunity: ArbitrageOpportunity,
        amount: Optional[int] = None
    ) -> ProfitAnalysis:
        """
        Build the full profit analysis of an opportunity

        Args:
            opportunity: Candidate that passed validation
            amount: Trade size override; sized from liquidity when omitted
        """
        if amount is not None:
            recommended_amount = amount
        else:
            recommended_amount = self.to_token_in_amount(
                self.calculate_optimal_amount(opportunity.available_liquidity),
                opportunity
            )

        gross_profit = self.calculate_gross_profit(
            recommended_amount,
            opportunity.buy_price,
            opportunity.sell_price
        )
        flash_loan_fee = self.calculate_flash_loan_fee(recommended_amount)
        dex_fees = self.calculate_dex_fees(recommended_amount, opportunity.buy_dex, opportunity.sell_dex)
        gas_cost = self.estimate_gas_cost()

        net_profit = gross_profit - flash_loan_fee - dex_fees - gas_cost
        net_profit_usd = self.to_usd(net_profit)
        profit_percentage = self.calculate_profit_percentage(
            net_profit,
            recommended_amount,
            opportunity.buy_price
        )

        price_impact = PriceImpact(
            buy=self.calculate_price_impact(recommended_amount),
            sell=self.calculate_price_impact(recommended_amount)
        )

        is_executable = self.is_opportunity_executable(
            net_profit,
            net_profit_usd,
            profit_percentage,
            price_impact
        )

        logger.debug(
            f"Profit analysis complete: net {to_units(net_profit):.6f} "
            f"({profit_percentage:.2f}%), executable={is_executable}",
            extra={"opportunity_id": opportunity.id, "pair": opportunity.pair_key}
        )

        return ProfitAnalysis(
            opportunity=opportunity,
            recommended_amount=recommended_amount,
            gross_profit=gross_profit,
            flash_loan_fee=flash_loan_fee,
            dex_fees=dex_fees,
            gas_cost=gas_cost,
            net_profit=net_profit,
            net_profit_usd=net_profit_usd,
            profit_percentage=profit_percentage,
            price_impact=price_impact,
            is_executable=is_executable
        )

    def calculate_optimal_amount(self, available_liquidity: int) -> int:
        """min(max trade size, 10% of liquidity), never below the minimum trade size"""
        amount = min(self.max_trade_size, available_liquidity // 10)
        return max(amount, self.min_trade_size)

    def to_token_in_amount(self, amount: int, opportunity: ArbitrageOpportunity) -> int:
        """
        Reference-token amount to token_in units

        Prices are token_out per token_in, so when token_out is the reference
        the buy price converts. Pairs without the reference token are sized
        as if token_in were the reference.
        """
        if self.reference_price.is_reference(opportunity.token_out) and opportunity.buy_price > 0:
            return amount * SCALE // opportunity.buy_price
        return amount

    @staticmethod
    def calculate_gross_profit(amount: int, buy_price: int, sell_price: int) -> int:
        return (sell_price - buy_price) * amount // SCALE

    def calculate_flash_loan_fee(self, amount: int) -> int:
        return apply_bps(amount, self.flash_loan_fee_bps)

    def get_dex_fee(self, dex_name: str) -> int:
        venue = self.settings.get_venue(dex_name)
        return venue.fee_bps if venue else DEFAULT_DEX_FEE_BPS

    def calculate_dex_fees(self, amount: int, buy_dex: str, sell_dex: str) -> int:
        return apply_bps(amount, self.get_dex_fee(buy_dex) + self.get_dex_fee(sell_dex))

    def estimate_gas_cost(self) -> int:
        """Worst-case gas cost at the configured price ceiling, in wei"""
        return self.estimated_gas_units * self.max_gas_price_wei

    @staticmethod
    def calculate_profit_percentage(net_profit: int, amount: int, buy_price: int) -> Decimal:
        """Net profit relative to the cost basis amount * buy_price"""
        cost_basis = amount * buy_price // SCALE
        if cost_basis == 0:
            return Decimal(0)
        return Decimal(net_profit) * 100 / Decimal(cost_basis)

    def calculate_price_impact(self, amount: int) -> Decimal:
        """Coarse impact against an assumed depth of amount * multiplier"""
        return calculate_price_impact(amount, amount * self.depth_multiplier)

    def is_opportunity_executable(
        self,
        net_profit: int,
        net_profit_usd: Decimal,
        profit_percentage: Decimal,
        price_impact: PriceImpact
    ) -> bool:
        if net_profit <= 0:
            return False
        if net_profit_usd < self.min_profit_usd:
            return False
        if profit_percentage < self.min_profit_percentage:
            return False
        if price_impact.buy > self.max_slippage_percent or price_impact.sell > self.max_slippage_percent:
            return False
        return True

    def to_usd(self, amount: int) -> Decimal:
        return self.reference_price.to_usd(amount)

    def update_reference_price(self, price_usd: float) -> None:
        """Update the USD value of one reference-token unit for every holder of it"""
        self.reference_price.update(price_usd)

    def calculate_minimum_profitable_amount(
        self,
        buy_price: int,
        sell_price: int,
        buy_dex: Optional[str] = None,
        sell_dex: Optional[str] = None
    ) -> int:
        """
        Break-even trade size where gross profit covers fees and gas

        Solves diff * a / SCALE = a * fee_bps / 10000 + gas for a, rounding up.
        Returns 0 when the spread does not even cover the proportional fees.
        """
        price_diff = sell_price - buy_price
        if price_diff <= 0:
            return 0

        fee_bps = self.flash_loan_fee_bps
        fee_bps += self.get_dex_fee(buy_dex) if buy_dex else DEFAULT_DEX_FEE_BPS
        fee_bps += self.get_dex_fee(sell_dex) if sell_dex else DEFAULT_DEX_FEE_BPS

        margin = price_diff * BPS_DENOMINATOR - fee_bps * SCALE
        if margin <= 0:
            return 0

        gas_cost = self.estimate_gas_cost()
        return -(-gas_cost * SCALE * BPS_DENOMINATOR // margin)
