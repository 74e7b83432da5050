"""
Data models for the DEX arbitrage bot
Uses Pydantic for validation and serialization

On-chain magnitudes (prices, reserves, amounts, fees) are integers in an
18-decimal fixed-point scale; percentages and USD values are Decimals.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
from decimal import Decimal

from dexarb.utils.helpers import SCALE, get_pair_key


class VenueType(str, Enum):
    """Exchange protocol family"""
    UNISWAP_V2 = "UniswapV2"
    SUSHISWAP = "SushiSwap"
    UNISWAP_V3 = "UniswapV3"


class FlashLoanProvider(str, Enum):
    """Flash-loan source"""
    AAVE = "aave"
    BALANCER = "balancer"


class PriceQuote(BaseModel):
    """Point-in-time price of token_b in token_a on one venue"""
    model_config = ConfigDict(frozen=True)

    dex: str
    pool_address: str
    token_a: str
    token_b: str
    price: int
    inverse_price: int
    block_number: int
    timestamp: datetime
    # Amount of token_a held by the pool, 18-decimal scale
    liquidity: Optional[int] = None


class ReserveSnapshot(BaseModel):
    """Pool reserves as read from chain"""
    model_config = ConfigDict(frozen=True)

    pool_address: str
    token0: str
    token1: str
    reserve0: int
    reserve1: int
    block_timestamp_last: int


class LiquidityInfo(BaseModel):
    """In-pool liquidity denominated in token_a"""
    model_config = ConfigDict(frozen=True)

    token_a: str
    token_b: str
    liquidity: int
    dex: str
    pool_address: str


class SwapPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_in: str
    token_out: str
    path: List[str]
    pool_addresses: List[str]
    dex: str


class SwapQuote(BaseModel):
    """Expected output of a single-pool swap"""
    model_config = ConfigDict(frozen=True)

    amount_in: int
    amount_out: int
    price_impact: Decimal
    path: SwapPath
    gas_estimate: int


class ArbitrageOpportunity(BaseModel):
    """
    Candidate cross-venue discrepancy: buy token_out with token_in on
    buy_dex, sell it back on sell_dex.

    The aggregator only synthesizes instances with sell_price > buy_price;
    the model itself does not enforce it so the validator can screen
    externally supplied candidates.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    token_in: str
    token_out: str
    buy_dex: str
    sell_dex: str
    buy_price: int
    sell_price: int
    buy_pool_address: str
    sell_pool_address: str
    # Reference-token units, 18-decimal scale
    available_liquidity: int
    block_number: int
    timestamp: datetime
    estimated_profit: Optional[int] = None

    @property
    def pair_key(self) -> str:
        return get_pair_key(self.token_in, self.token_out)

    @property
    def route_key(self) -> str:
        """Pair + venue direction; stable across cycles"""
        return f"{self.pair_key}:{self.buy_dex}->{self.sell_dex}"

    @property
    def diff_percentage(self) -> Decimal:
        if self.buy_price <= 0:
            return Decimal(0)
        return Decimal(self.sell_price - self.buy_price) * 100 / Decimal(self.buy_price)

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.timestamp).total_seconds()


class ValidationVerdict(BaseModel):
    """Outcome of one validation pass"""
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    reason: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def accept(cls, warnings: Optional[List[str]] = None) -> "ValidationVerdict":
        return cls(is_valid=True, warnings=list(warnings or []))

    @classmethod
    def reject(cls, reason: str) -> "ValidationVerdict":
        return cls(is_valid=False, reason=reason)


class PriceImpact(BaseModel):
    model_config = ConfigDict(frozen=True)

    buy: Decimal
    sell: Decimal


class ProfitAnalysis(BaseModel):
    """Scored opportunity; derived entirely from its inputs"""
    model_config = ConfigDict(frozen=True)

    opportunity: ArbitrageOpportunity
    recommended_amount: int
    gross_profit: int
    flash_loan_fee: int
    dex_fees: int
    gas_cost: int
    net_profit: int
    net_profit_usd: Decimal
    profit_percentage: Decimal
    price_impact: PriceImpact
    is_executable: bool


class FlashLoanParams(BaseModel):
    """Arguments of one flash-loan arbitrage call"""
    provider: FlashLoanProvider
    token: str
    # Native token units, as the contract expects
    amount: int
    buy_dex: str
    sell_dex: str
    buy_router: str
    sell_router: str


class SimulationResult(BaseModel):
    success: bool
    gas_used: int = 0
    return_data: str = "0x"
    error: Optional[str] = None


class ExecutionResult(BaseModel):
    success: bool
    opportunity: ArbitrageOpportunity
    execution_time: float
    transaction_hash: Optional[str] = None
    profit: Optional[int] = None
    gas_used: Optional[int] = None
    # Wei paid for gas
    gas_cost: Optional[int] = None
    error: Optional[str] = None
    dry_run: bool = False


class BotMetrics(BaseModel):
    """Operational counters of the opportunity pipeline"""
    opportunities_detected: int = 0
    opportunities_executed: int = 0
    opportunities_skipped: int = 0
    duplicates_dropped: int = 0
    simulation_failures: int = 0
    execution_failures: int = 0
    total_profit_usd: Decimal = Decimal(0)
    total_gas_spent_wei: int = 0
    total_transactions: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_execution_time: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.opportunities_detected == 0:
            return 0.0
        return round(self.opportunities_executed / self.opportunities_detected * 100, 2)

    @property
    def average_profit_per_tx(self) -> Decimal:
        if self.successful_transactions == 0:
            return Decimal(0)
        return self.total_profit_usd / self.successful_transactions

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()

    def summary(self) -> dict:
        return {
            **self.model_dump(mode="json"),
            "success_rate": self.success_rate,
            "average_profit_per_tx": float(self.average_profit_per_tx),
            "total_gas_spent_eth": float(Decimal(self.total_gas_spent_wei) / SCALE),
            "uptime_seconds": round(self.uptime_seconds, 1),
        }
