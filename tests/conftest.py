"""
Shared fixtures: settings, fake price sources and a scripted web3 stand-in
"""
import pytest
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from dexarb.config.constants import TOKEN_ADDRESSES
from dexarb.config.settings import Settings
from dexarb.core.data_models import (
    ArbitrageOpportunity,
    LiquidityInfo,
    PriceQuote,
    ReserveSnapshot,
    SwapPath,
    SwapQuote
)
from dexarb.utils.helpers import SCALE, get_utc_now


WETH = TOKEN_ADDRESSES["WETH"]
USDC = TOKEN_ADDRESSES["USDC"]
DAI = TOKEN_ADDRESSES["DAI"]

BUY_POOL = "0x" + "11" * 20
SELL_POOL = "0x" + "22" * 20


def make_settings(**overrides) -> Settings:
    values = {"RPC_URL": "http://localhost:8545", "LOG_DIR": "/tmp/dexarb-test-logs"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


class FakePriceSource:
    """In-memory PriceSource with a fixed quote"""

    def __init__(
        self,
        name: str,
        price: int,
        liquidity: Optional[int] = None,
        ready: bool = True,
        error: Optional[Exception] = None,
        pool_address: str = BUY_POOL,
        fee_bps: int = 30
    ):
        self._name = name
        self._fee_bps = fee_bps
        self._ready = ready
        self.price = price
        self.liquidity = liquidity
        self.error = error
        self.pool_address = pool_address
        self.calls = 0
        self.unsubscribe_calls = 0
        self.listeners: List = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def fee_bps(self) -> int:
        return self._fee_bps

    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        self._ready = True

    async def get_price(self, token_a: str, token_b: str) -> PriceQuote:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return PriceQuote(
            dex=self.name,
            pool_address=self.pool_address,
            token_a=token_a,
            token_b=token_b,
            price=self.price,
            inverse_price=SCALE * SCALE // self.price,
            block_number=100,
            timestamp=get_utc_now(),
            liquidity=self.liquidity
        )

    async def get_reserves(self, pool_address: str) -> ReserveSnapshot:
        return ReserveSnapshot(
            pool_address=pool_address,
            token0=WETH,
            token1=USDC,
            reserve0=self.liquidity or 0,
            reserve1=(self.liquidity or 0) * self.price // SCALE,
            block_timestamp_last=0
        )

    async def get_liquidity(self, token_a: str, token_b: str) -> LiquidityInfo:
        return LiquidityInfo(
            token_a=token_a,
            token_b=token_b,
            liquidity=self.liquidity or 0,
            dex=self.name,
            pool_address=self.pool_address
        )

    async def get_quote(self, token_in: str, token_out: str, amount_in: int) -> SwapQuote:
        return SwapQuote(
            amount_in=amount_in,
            amount_out=amount_in * self.price // SCALE,
            price_impact=0,
            path=SwapPath(
                token_in=token_in,
                token_out=token_out,
                path=[token_in, token_out],
                pool_addresses=[self.pool_address],
                dex=self.name
            ),
            gas_estimate=150_000
        )

    async def subscribe_to_price_updates(self, token_a: str, token_b: str, on_change) -> None:
        self.listeners.append((token_a, token_b, on_change))

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.listeners.clear()

    async def push_update(self) -> None:
        """Simulate a pool change event"""
        for token_a, token_b, on_change in list(self.listeners):
            on_change(await self.get_price(token_a, token_b))


@pytest.fixture
def make_opportunity():
    """Factory for opportunities that pass every validation stage by default"""

    def _make(now: Optional[datetime] = None, age_seconds: float = 0, **overrides) -> ArbitrageOpportunity:
        now = now or get_utc_now()
        values = dict(
            id="test-opportunity",
            token_in=WETH,
            token_out=USDC,
            buy_dex="Uniswap V2",
            sell_dex="SushiSwap",
            buy_price=1000 * SCALE,
            sell_price=1010 * SCALE,
            buy_pool_address=BUY_POOL,
            sell_pool_address=SELL_POOL,
            available_liquidity=25 * SCALE,  # $50k at $2000
            block_number=100,
            timestamp=now - timedelta(seconds=age_seconds),
            estimated_profit=10 * SCALE
        )
        values.update(overrides)
        return ArbitrageOpportunity(**values)

    return _make


def contract_call(value=None, side_effect=None) -> MagicMock:
    """Bound contract function whose .call() is awaitable"""
    function = MagicMock()
    function.call = AsyncMock(return_value=value, side_effect=side_effect)
    return function


def erc20(decimals=None, side_effect=None) -> MagicMock:
    token = MagicMock()
    token.functions.decimals.return_value = contract_call(decimals, side_effect)
    return token


TOKEN_DECIMALS = {WETH: 18, USDC: 6, DAI: 18}


class FakeEth:
    """Subset of AsyncEth used by the adapters and the dispatcher"""

    def __init__(self, contracts: Optional[Dict[str, MagicMock]] = None, block: int = 100):
        self.contracts = {token.lower(): erc20(decimals) for token, decimals in TOKEN_DECIMALS.items()}
        self.contracts.update({k.lower(): v for k, v in (contracts or {}).items()})
        self.block = block
        self.block_error: Optional[Exception] = None
        self.priority_fee = 2 * 10 ** 9
        self.get_logs = AsyncMock(return_value=[])
        self.get_block = AsyncMock(return_value={"baseFeePerGas": 10 * 10 ** 9})
        self.get_transaction_count = AsyncMock(return_value=7)
        self.send_raw_transaction = AsyncMock(return_value=b"\x12" * 32)
        self.wait_for_transaction_receipt = AsyncMock(return_value={
            "status": 1,
            "gasUsed": 300_000,
            "effectiveGasPrice": 20 * 10 ** 9,
            "blockNumber": 100
        })
        self.account = MagicMock()
        self.account.from_key.return_value = MagicMock(address="0x" + "33" * 20)
        self.account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x01\x02")

    @property
    def block_number(self):
        async def _block_number():
            if self.block_error is not None:
                raise self.block_error
            return self.block
        return _block_number()

    @property
    def max_priority_fee(self):
        async def _max_priority_fee():
            return self.priority_fee
        return _max_priority_fee()

    def contract(self, address: str, abi=None):
        return self.contracts[address.lower()]


class FakeWeb3:
    def __init__(self, contracts: Optional[Dict[str, MagicMock]] = None, block: int = 100):
        self.eth = FakeEth(contracts, block)
