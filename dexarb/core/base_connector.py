"""
Base adapter class for on-chain exchange integrations
Provides the shared plumbing behind every PriceSource implementation
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, Tuple
import asyncio
import aiohttp
import logging

from web3 import AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from dexarb.config.settings import VenueConfig
from dexarb.core.data_models import (
    LiquidityInfo,
    PriceQuote,
    ReserveSnapshot,
    SwapQuote,
    VenueType
)
from dexarb.core.exceptions import InitializationError, QueryError
from dexarb.core.price_source import PriceCallback
from dexarb.utils.helpers import DECIMALS, resolve_callback


logger = logging.getLogger(__name__)


# Errors raised by web3 and its transports; ContractLogicError and
# BadFunctionCallOutput derive from Web3Exception
TRANSPORT_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError)


class BaseDexAdapter(ABC):
    """Base class for all exchange adapters"""

    ERC20_ABI = [
        {
            "inputs": [],
            "name": "decimals",
            "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    def __init__(
        self,
        venue: VenueConfig,
        w3: AsyncWeb3,
        event_poll_interval: float = 2.0
    ):
        self.venue = venue
        self.w3 = w3
        self.event_poll_interval = event_poll_interval
        self._is_initialized = False
        self._decimals_cache: Dict[str, int] = {}
        self._pool_cache: Dict[str, str] = {}
        self._subscription_tasks: List[asyncio.Task] = []

        logger.info(f"Created {venue.name} adapter ({venue.type.value})")

    async def __aenter__(self):
        """Async context manager entry"""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        self.unsubscribe()

    @property
    def name(self) -> str:
        return self.venue.name

    @property
    def venue_type(self) -> VenueType:
        return self.venue.type

    @property
    def fee_bps(self) -> int:
        return self.venue.fee_bps

    def is_ready(self) -> bool:
        """Check if adapter finished initialization"""
        return self._is_initialized

    async def initialize(self) -> None:
        """
        Verify the RPC endpoint and the venue's contracts answer

        Raises:
            InitializationError: endpoint unreachable or factory not responding
        """
        if self._is_initialized:
            logger.warning(f"{self.name} adapter already initialized")
            return

        try:
            block_number = await self.w3.eth.block_number
            await self._initialize_dex_specific()
        except TRANSPORT_ERRORS as e:
            raise InitializationError(
                f"Failed to initialize {self.name}: {str(e)}",
                code="INIT_FAILED"
            ) from e
        except QueryError as e:
            raise InitializationError(
                f"Failed to initialize {self.name}: {e.message}",
                code="INIT_FAILED"
            ) from e

        self._is_initialized = True
        logger.info(f"{self.name} adapter initialized at block {block_number}")

    @abstractmethod
    async def _initialize_dex_specific(self) -> None:
        """Check venue prerequisites, e.g. that the factory contract answers"""
        pass

    @property
    @abstractmethod
    def change_event_topic(self) -> str:
        """topic0 of the pool event emitted whenever the price moves"""
        pass

    @abstractmethod
    async def get_pool_address(self, token_a: str, token_b: str) -> str:
        """
        Resolve the pool of a pair

        Raises:
            NoPoolError: the venue lists no pool for the pair
        """
        pass

    @abstractmethod
    async def get_price(self, token_a: str, token_b: str) -> PriceQuote:
        pass

    @abstractmethod
    async def get_reserves(self, pool_address: str) -> ReserveSnapshot:
        pass

    @abstractmethod
    async def get_liquidity(self, token_a: str, token_b: str) -> LiquidityInfo:
        pass

    @abstractmethod
    async def get_quote(self, token_in: str, token_out: str, amount_in: int) -> SwapQuote:
        pass

    def _ensure_ready(self) -> None:
        if not self._is_initialized:
            raise InitializationError(f"{self.name} adapter not initialized", code="NOT_READY")

    def _contract(self, address: str, abi: List[Dict[str, Any]]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def _call(self, call: Awaitable[Any], description: str) -> Any:
        """Await an RPC call, translating transport failures into QueryError"""
        try:
            return await call
        except TRANSPORT_ERRORS as e:
            raise QueryError(f"{self.name}: {description} failed: {str(e)}", code="QUERY_FAILED") from e

    async def get_block_number(self) -> int:
        return await self._call(self.w3.eth.block_number, "block_number")

    async def get_token_decimals(self, token: str) -> int:
        """Token decimals, cached per address; unreadable tokens are assumed 18"""
        key = token.lower()
        if key in self._decimals_cache:
            return self._decimals_cache[key]

        contract = self._contract(token, self.ERC20_ABI)
        try:
            decimals = int(await contract.functions.decimals().call())
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Could not read decimals of {token} on {self.name}, assuming {DECIMALS}: {str(e)}")
            return DECIMALS

        self._decimals_cache[key] = decimals
        return decimals

    async def _get_pair_decimals(self, token_a: str, token_b: str) -> Tuple[int, int]:
        return await self.get_token_decimals(token_a), await self.get_token_decimals(token_b)

    async def subscribe_to_price_updates(
        self,
        token_a: str,
        token_b: str,
        on_change: PriceCallback
    ) -> None:
        """Watch the pair's pool for change events and push fresh quotes"""
        self._ensure_ready()
        pool_address = await self.get_pool_address(token_a, token_b)

        task = asyncio.create_task(
            self._watch_pool(pool_address, token_a, token_b, on_change),
            name=f"{self.name}:{pool_address}"
        )
        self._subscription_tasks.append(task)
        logger.info(f"Subscribed to {self.name} pool {pool_address}")

    async def _watch_pool(
        self,
        pool_address: str,
        token_a: str,
        token_b: str,
        on_change: PriceCallback
    ) -> None:
        """Poll eth_getLogs for the change topic; one delivery at a time"""
        last_block: Optional[int] = None

        while True:
            try:
                current_block = await self.get_block_number()
                if last_block is None:
                    last_block = current_block
                elif current_block > last_block:
                    logs = await self._call(
                        self.w3.eth.get_logs({
                            "address": Web3.to_checksum_address(pool_address),
                            "fromBlock": last_block + 1,
                            "toBlock": current_block,
                            "topics": [self.change_event_topic]
                        }),
                        "get_logs"
                    )
                    last_block = current_block

                    if logs:
                        quote = await self.get_price(token_a, token_b)
                        await resolve_callback(on_change(quote))
            except Exception as e:
                logger.error(f"Error watching {self.name} pool {pool_address}: {str(e)}")

            await asyncio.sleep(self.event_poll_interval)

    def unsubscribe(self) -> None:
        """Cancel every pool watcher of this adapter"""
        for task in self._subscription_tasks:
            task.cancel()
        if self._subscription_tasks:
            logger.info(f"Unsubscribed {len(self._subscription_tasks)} {self.name} listeners")
        self._subscription_tasks.clear()

    @property
    def subscription_count(self) -> int:
        return len(self._subscription_tasks)
