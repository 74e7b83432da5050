"""
Uniswap V3 DEX adapter implementation
Handles concentrated-liquidity pools via Web3.py
"""
from typing import Dict, Optional, Tuple
import logging

from web3 import AsyncWeb3, Web3

from dexarb.config.constants import UNISWAP_V3_FEE_TIERS, V3_SWAP_GAS_UNITS
from dexarb.config.settings import VenueConfig
from dexarb.core.base_connector import BaseDexAdapter
from dexarb.core.data_models import (
    LiquidityInfo,
    PriceQuote,
    ReserveSnapshot,
    SwapPath,
    SwapQuote
)
from dexarb.core.exceptions import InitializationError, NoPoolError
from dexarb.utils.helpers import (
    ZERO_ADDRESS,
    calculate_amount_out,
    calculate_price,
    calculate_price_impact,
    get_pair_key,
    get_utc_now,
    scale_to_18,
    sort_tokens
)


logger = logging.getLogger(__name__)

Q96 = 2 ** 96


def virtual_reserves(liquidity: int, sqrt_price_x96: int) -> Tuple[int, int]:
    """
    Reserves a constant-product pool would need to match the active range:
        x = L * 2^96 / sqrtP,  y = L * sqrtP / 2^96
    """
    if sqrt_price_x96 <= 0:
        return 0, 0
    return liquidity * Q96 // sqrt_price_x96, liquidity * sqrt_price_x96 // Q96


class ConcentratedLiquidityAdapter(BaseDexAdapter):
    """Uniswap V3 DEX adapter"""

    # Minimal ABIs for required functions
    FACTORY_ABI = [
        {
            "inputs": [
                {"internalType": "address", "name": "tokenA", "type": "address"},
                {"internalType": "address", "name": "tokenB", "type": "address"},
                {"internalType": "uint24", "name": "fee", "type": "uint24"}
            ],
            "name": "getPool",
            "outputs": [{"internalType": "address", "name": "pool", "type": "address"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [{"internalType": "uint24", "name": "", "type": "uint24"}],
            "name": "feeAmountTickSpacing",
            "outputs": [{"internalType": "int24", "name": "", "type": "int24"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    POOL_ABI = [
        {
            "inputs": [],
            "name": "token0",
            "outputs": [{"internalType": "address", "name": "", "type": "address"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "token1",
            "outputs": [{"internalType": "address", "name": "", "type": "address"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "slot0",
            "outputs": [
                {"internalType": "uint160", "name": "sqrtPriceX96", "type": "uint160"},
                {"internalType": "int24", "name": "tick", "type": "int24"},
                {"internalType": "uint16", "name": "observationIndex", "type": "uint16"},
                {"internalType": "uint16", "name": "observationCardinality", "type": "uint16"},
                {"internalType": "uint16", "name": "observationCardinalityNext", "type": "uint16"},
                {"internalType": "uint8", "name": "feeProtocol", "type": "uint8"},
                {"internalType": "bool", "name": "unlocked", "type": "bool"}
            ],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "liquidity",
            "outputs": [{"internalType": "uint128", "name": "", "type": "uint128"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    SWAP_TOPIC = Web3.to_hex(Web3.keccak(text="Swap(address,address,int256,int256,uint160,uint128,int24)"))

    def __init__(self, venue: VenueConfig, w3: AsyncWeb3, event_poll_interval: float = 2.0):
        super().__init__(venue, w3, event_poll_interval)
        self.fee_tiers = list(venue.fee_tiers or UNISWAP_V3_FEE_TIERS)
        self.factory_contract = self._contract(venue.factory, self.FACTORY_ABI)
        self._pool_fees: Dict[str, int] = {}
        self._pool_tokens: Dict[str, Tuple[str, str]] = {}

    async def _initialize_dex_specific(self) -> None:
        tick_spacing = await self._call(
            self.factory_contract.functions.feeAmountTickSpacing(500).call(),
            "feeAmountTickSpacing"
        )
        if not tick_spacing:
            raise InitializationError(
                f"{self.name} factory at {self.venue.factory} reports no 0.05% fee tier",
                code="INIT_FAILED"
            )
        logger.info(f"{self.name} factory verified, fee tiers {self.fee_tiers}")

    @property
    def change_event_topic(self) -> str:
        return self.SWAP_TOPIC

    async def get_pool_address(self, token_a: str, token_b: str) -> str:
        """Pool of the pair with the most in-range liquidity across fee tiers"""
        key = get_pair_key(token_a, token_b)
        if key in self._pool_cache:
            return self._pool_cache[key]

        best_pool: Optional[str] = None
        best_liquidity = 0
        token0, token1 = sort_tokens(token_a, token_b)

        for fee in self.fee_tiers:
            pool_address = await self._call(
                self.factory_contract.functions.getPool(
                    Web3.to_checksum_address(token0),
                    Web3.to_checksum_address(token1),
                    fee
                ).call(),
                f"getPool({fee})"
            )
            if not pool_address or pool_address.lower() == ZERO_ADDRESS:
                continue

            pool = self._contract(pool_address, self.POOL_ABI)
            liquidity = await self._call(pool.functions.liquidity().call(), "liquidity")
            logger.debug(f"{self.name} pool {pool_address} fee {fee} liquidity {liquidity}")

            if liquidity > best_liquidity:
                best_pool, best_liquidity = pool_address, liquidity
                self._pool_fees[pool_address.lower()] = fee

        if best_pool is None:
            raise NoPoolError(
                f"No {self.name} pool with liquidity for {token_a}/{token_b}",
                dex=self.name,
                token_a=token_a,
                token_b=token_b
            )

        self._pool_cache[key] = best_pool
        return best_pool

    def get_pool_fee_bps(self, pool_address: str) -> int:
        """Fee of a discovered pool in bps (V3 fees are hundredths of a bip)"""
        fee = self._pool_fees.get(pool_address.lower())
        if fee is None:
            return self.fee_bps
        return fee // 100

    async def _get_pool_tokens(self, pool_address: str) -> Tuple[str, str]:
        key = pool_address.lower()
        if key not in self._pool_tokens:
            pool = self._contract(pool_address, self.POOL_ABI)
            token0 = await self._call(pool.functions.token0().call(), "token0")
            token1 = await self._call(pool.functions.token1().call(), "token1")
            self._pool_tokens[key] = (token0, token1)
        return self._pool_tokens[key]

    async def get_reserves(self, pool_address: str) -> ReserveSnapshot:
        """Virtual reserves of the active price range"""
        pool = self._contract(pool_address, self.POOL_ABI)
        slot0 = await self._call(pool.functions.slot0().call(), "slot0")
        liquidity = await self._call(pool.functions.liquidity().call(), "liquidity")
        token0, token1 = await self._get_pool_tokens(pool_address)

        reserve0, reserve1 = virtual_reserves(liquidity, slot0[0])

        return ReserveSnapshot(
            pool_address=pool_address,
            token0=token0,
            token1=token1,
            reserve0=reserve0,
            reserve1=reserve1,
            block_timestamp_last=int(get_utc_now().timestamp())
        )

    async def _get_oriented_reserves(self, token_a: str, token_b: str) -> Tuple[str, int, int]:
        pool_address = await self.get_pool_address(token_a, token_b)
        reserves = await self.get_reserves(pool_address)

        if reserves.token0.lower() == token_a.lower():
            return pool_address, reserves.reserve0, reserves.reserve1
        return pool_address, reserves.reserve1, reserves.reserve0

    async def get_price(self, token_a: str, token_b: str) -> PriceQuote:
        """
        Get current price for a token pair

        Price comes from slot0.sqrtPriceX96 through the virtual reserves, so
        both directions are derived the same way as on constant-product pools.
        """
        self._ensure_ready()

        pool_address, reserve_a, reserve_b = await self._get_oriented_reserves(token_a, token_b)
        decimals_a, decimals_b = await self._get_pair_decimals(token_a, token_b)
        price, inverse_price = calculate_price(reserve_a, reserve_b, decimals_a, decimals_b)
        block_number = await self.get_block_number()

        return PriceQuote(
            dex=self.name,
            pool_address=pool_address,
            token_a=token_a,
            token_b=token_b,
            price=price,
            inverse_price=inverse_price,
            block_number=block_number,
            timestamp=get_utc_now(),
            liquidity=scale_to_18(reserve_a, decimals_a)
        )

    async def get_liquidity(self, token_a: str, token_b: str) -> LiquidityInfo:
        self._ensure_ready()

        pool_address, reserve_a, _ = await self._get_oriented_reserves(token_a, token_b)
        decimals_a = await self.get_token_decimals(token_a)

        return LiquidityInfo(
            token_a=token_a,
            token_b=token_b,
            liquidity=scale_to_18(reserve_a, decimals_a),
            dex=self.name,
            pool_address=pool_address
        )

    async def get_quote(self, token_in: str, token_out: str, amount_in: int) -> SwapQuote:
        """Constant-product quote within the active range"""
        self._ensure_ready()

        pool_address, reserve_in, reserve_out = await self._get_oriented_reserves(token_in, token_out)
        decimals_in, decimals_out = await self._get_pair_decimals(token_in, token_out)
        scaled_in = scale_to_18(reserve_in, decimals_in)
        scaled_out = scale_to_18(reserve_out, decimals_out)

        amount_out = calculate_amount_out(
            amount_in,
            scaled_in,
            scaled_out,
            self.get_pool_fee_bps(pool_address)
        )

        return SwapQuote(
            amount_in=amount_in,
            amount_out=amount_out,
            price_impact=calculate_price_impact(amount_in, scaled_in),
            path=SwapPath(
                token_in=token_in,
                token_out=token_out,
                path=[token_in, token_out],
                pool_addresses=[pool_address],
                dex=self.name
            ),
            gas_estimate=V3_SWAP_GAS_UNITS
        )
