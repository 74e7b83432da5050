"""
Price-source capability contract
Every exchange family implements it; the aggregator only depends on this
"""
from typing import Awaitable, Callable, Protocol, Union, runtime_checkable

from dexarb.core.data_models import (
    LiquidityInfo,
    PriceQuote,
    ReserveSnapshot,
    SwapQuote
)


PriceCallback = Callable[[PriceQuote], Union[None, Awaitable[None]]]


@runtime_checkable
class PriceSource(Protocol):
    """Read-side view of one venue"""

    @property
    def name(self) -> str:
        ...

    @property
    def fee_bps(self) -> int:
        ...

    def is_ready(self) -> bool:
        ...

    async def initialize(self) -> None:
        """
        Verify RPC reachability and venue prerequisites

        Raises:
            InitializationError: endpoint unreachable or contracts not answering
        """
        ...

    async def get_price(self, token_a: str, token_b: str) -> PriceQuote:
        """
        Raises:
            NoPoolError: the venue lists no pool for the pair
            TransportError: the RPC failed
        """
        ...

    async def get_reserves(self, pool_address: str) -> ReserveSnapshot:
        """
        Raises:
            QueryError: the read failed
        """
        ...

    async def get_liquidity(self, token_a: str, token_b: str) -> LiquidityInfo:
        ...

    async def get_quote(self, token_in: str, token_out: str, amount_in: int) -> SwapQuote:
        ...

    async def subscribe_to_price_updates(
        self,
        token_a: str,
        token_b: str,
        on_change: PriceCallback
    ) -> None:
        ...

    def unsubscribe(self) -> None:
        """Release every listener this source registered"""
        ...
