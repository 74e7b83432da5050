"""
Constant-product DEX adapter (Uniswap V2 and forks such as SushiSwap)
Reads pair reserves via Web3.py and prices swaps locally
"""
from typing import Dict, Tuple
import logging

from web3 import AsyncWeb3, Web3

from dexarb.config.constants import V2_SWAP_GAS_UNITS
from dexarb.config.settings import VenueConfig
from dexarb.core.base_connector import BaseDexAdapter
from dexarb.core.data_models import (
    LiquidityInfo,
    PriceQuote,
    ReserveSnapshot,
    SwapPath,
    SwapQuote
)
from dexarb.core.exceptions import NoPoolError
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


class ConstantProductAdapter(BaseDexAdapter):
    """Uniswap V2 style pair adapter"""

    # Minimal ABIs for required functions
    FACTORY_ABI = [
        {
            "inputs": [
                {"internalType": "address", "name": "tokenA", "type": "address"},
                {"internalType": "address", "name": "tokenB", "type": "address"}
            ],
            "name": "getPair",
            "outputs": [{"internalType": "address", "name": "pair", "type": "address"}],
            "stateMutability": "view",
            "type": "function"
        },
        {
            "inputs": [],
            "name": "allPairsLength",
            "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    PAIR_ABI = [
        {
            "inputs": [],
            "name": "getReserves",
            "outputs": [
                {"internalType": "uint112", "name": "_reserve0", "type": "uint112"},
                {"internalType": "uint112", "name": "_reserve1", "type": "uint112"},
                {"internalType": "uint32", "name": "_blockTimestampLast", "type": "uint32"}
            ],
            "stateMutability": "view",
            "type": "function"
        },
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
        }
    ]

    SYNC_TOPIC = Web3.to_hex(Web3.keccak(text="Sync(uint112,uint112)"))

    def __init__(self, venue: VenueConfig, w3: AsyncWeb3, event_poll_interval: float = 2.0):
        super().__init__(venue, w3, event_poll_interval)
        self.factory_contract = self._contract(venue.factory, self.FACTORY_ABI)
        self._pool_tokens: Dict[str, Tuple[str, str]] = {}

    async def _initialize_dex_specific(self) -> None:
        pair_count = await self._call(
            self.factory_contract.functions.allPairsLength().call(),
            "allPairsLength"
        )
        logger.info(f"{self.name} factory at {self.venue.factory} lists {pair_count} pairs")

    @property
    def change_event_topic(self) -> str:
        return self.SYNC_TOPIC

    async def get_pool_address(self, token_a: str, token_b: str) -> str:
        """Get pair address from factory"""
        key = get_pair_key(token_a, token_b)
        if key in self._pool_cache:
            return self._pool_cache[key]

        token0, token1 = sort_tokens(token_a, token_b)
        pool_address = await self._call(
            self.factory_contract.functions.getPair(
                Web3.to_checksum_address(token0),
                Web3.to_checksum_address(token1)
            ).call(),
            "getPair"
        )

        if not pool_address or pool_address.lower() == ZERO_ADDRESS:
            raise NoPoolError(
                f"No {self.name} pool for {token_a}/{token_b}",
                dex=self.name,
                token_a=token_a,
                token_b=token_b
            )

        self._pool_cache[key] = pool_address
        return pool_address

    async def _get_pool_tokens(self, pool_address: str) -> Tuple[str, str]:
        key = pool_address.lower()
        if key not in self._pool_tokens:
            pair = self._contract(pool_address, self.PAIR_ABI)
            token0 = await self._call(pair.functions.token0().call(), "token0")
            token1 = await self._call(pair.functions.token1().call(), "token1")
            self._pool_tokens[key] = (token0, token1)
        return self._pool_tokens[key]

    async def get_reserves(self, pool_address: str) -> ReserveSnapshot:
        pair = self._contract(pool_address, self.PAIR_ABI)
        reserve0, reserve1, block_timestamp_last = await self._call(
            pair.functions.getReserves().call(),
            "getReserves"
        )
        token0, token1 = await self._get_pool_tokens(pool_address)

        return ReserveSnapshot(
            pool_address=pool_address,
            token0=token0,
            token1=token1,
            reserve0=reserve0,
            reserve1=reserve1,
            block_timestamp_last=block_timestamp_last
        )

    async def _get_oriented_reserves(self, token_a: str, token_b: str) -> Tuple[str, int, int]:
        """Pool address and the raw reserves of token_a and token_b, in that order"""
        pool_address = await self.get_pool_address(token_a, token_b)
        reserves = await self.get_reserves(pool_address)

        if reserves.token0.lower() == token_a.lower():
            return pool_address, reserves.reserve0, reserves.reserve1
        return pool_address, reserves.reserve1, reserves.reserve0

    async def get_price(self, token_a: str, token_b: str) -> PriceQuote:
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
        """
        Expected output of swapping amount_in (18-decimal) of token_in

        The constant-product formula is applied to reserves rescaled to
        18 decimals, so amount_out is 18-decimal as well.
        """
        self._ensure_ready()

        pool_address, reserve_in, reserve_out = await self._get_oriented_reserves(token_in, token_out)
        decimals_in, decimals_out = await self._get_pair_decimals(token_in, token_out)
        scaled_in = scale_to_18(reserve_in, decimals_in)
        scaled_out = scale_to_18(reserve_out, decimals_out)

        amount_out = calculate_amount_out(amount_in, scaled_in, scaled_out, self.fee_bps)

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
            gas_estimate=V2_SWAP_GAS_UNITS
        )
