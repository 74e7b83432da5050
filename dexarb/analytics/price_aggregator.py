"""
Cross-venue price aggregation and opportunity synthesis
Compares every pair of venues in both directions on each scan cycle
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union
from datetime import datetime
from decimal import Decimal
import logging

from dexarb.config.constants import TOKEN_ADDRESSES
from dexarb.core.data_models import ArbitrageOpportunity, PriceQuote
from dexarb.core.exceptions import DexArbitrageException, NoPoolError
from dexarb.core.price_source import PriceSource
from dexarb.utils.helpers import (
    SCALE,
    get_pair_key,
    get_utc_now,
    parse_pair_key,
    resolve_callback
)


logger = logging.getLogger(__name__)


OpportunityCallback = Callable[[ArbitrageOpportunity], Union[None, Awaitable[None]]]


class PriceAggregator:
    """
    Registry of price sources and monitored pairs

    Opportunities reach registered callbacks from two paths that share
    one synthesis function: the polling loop and the event queue fed by
    adapter subscriptions.

    Liquidity and estimated profit on an opportunity are expressed in
    reference-token units. Quotes that cannot be valued against the
    reference token count as unknown liquidity.
    """

    def __init__(
        self,
        adapters: Optional[List[PriceSource]] = None,
        min_price_diff_percent: float = 0.5,
        default_liquidity: int = 10 * SCALE,
        reference_token: str = TOKEN_ADDRESSES["WETH"]
    ):
        self.min_price_diff_percent = Decimal(str(min_price_diff_percent))
        self.default_liquidity = default_liquidity
        self.reference_token = reference_token.lower()

        self._adapters: Dict[str, PriceSource] = {}
        self._pairs: Dict[str, Tuple[str, str]] = {}
        self._callbacks: List[OpportunityCallback] = []
        self._pair_locks: Dict[str, asyncio.Lock] = {}

        self._is_monitoring = False
        self._stop_event = asyncio.Event()
        self._event_queue: Optional[asyncio.Queue] = None
        self._pending_pairs: Set[str] = set()
        self._dispatch_task: Optional[asyncio.Task] = None
        self._rescan_tasks: Set[asyncio.Task] = set()

        # (adapter name, pair key) pairs with a live watcher
        self._subscriptions: Set[Tuple[str, str]] = set()
        self._event_mode = False
        self._subscribe_tasks: Set[asyncio.Task] = set()

        for adapter in adapters or []:
            self.add_adapter(adapter)

        logger.info("Price aggregator initialized")

    # Registry

    def add_adapter(self, adapter: PriceSource) -> None:
        if adapter.name in self._adapters:
            logger.warning(f"Replacing adapter {adapter.name}")
        self._adapters[adapter.name] = adapter
        logger.info(f"Added adapter: {adapter.name}")

    def remove_adapter(self, name: str) -> bool:
        adapter = self._adapters.pop(name, None)
        if adapter is None:
            return False
        adapter.unsubscribe()
        self._subscriptions = {s for s in self._subscriptions if s[0] != name}
        logger.info(f"Removed adapter: {name}")
        return True

    def get_adapter(self, name: str) -> Optional[PriceSource]:
        return self._adapters.get(name)

    def get_adapters(self) -> List[PriceSource]:
        return list(self._adapters.values())

    def add_pair(self, token_a: str, token_b: str) -> str:
        """
        Start monitoring a pair

        Returns:
            The canonical pair key; adding (B, A) after (A, B) is a no-op
        """
        if token_a.lower() == token_b.lower():
            raise ValueError(f"Pair tokens must differ: {token_a}")

        key = get_pair_key(token_a, token_b)
        if key not in self._pairs:
            self._pairs[key] = parse_pair_key(key)
            logger.info(f"Monitoring pair {key}")

            if self._event_mode:
                task = asyncio.create_task(self._subscribe_pair(key))
                self._subscribe_tasks.add(task)
                task.add_done_callback(self._subscribe_tasks.discard)
        return key

    def add_pairs(self, pairs: List[Tuple[str, str]]) -> None:
        for token_a, token_b in pairs:
            self.add_pair(token_a, token_b)

    def remove_pair(self, token_a: str, token_b: str) -> bool:
        key = get_pair_key(token_a, token_b)
        removed = self._pairs.pop(key, None) is not None
        if removed:
            self._pair_locks.pop(key, None)
            logger.info(f"Stopped monitoring pair {key}")
        return removed

    def get_monitored_pairs(self) -> List[Tuple[str, str]]:
        return list(self._pairs.values())

    def on_opportunity(self, callback: OpportunityCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    # Detection

    async def fetch_prices(self, token_a: str, token_b: str) -> List[PriceQuote]:
        """Query every ready adapter; failures skip that venue for this cycle"""
        ready = []
        for adapter in self._adapters.values():
            if adapter.is_ready():
                ready.append(adapter)
            else:
                logger.warning(f"Adapter {adapter.name} not initialized, skipping")

        results = await asyncio.gather(
            *(adapter.get_price(token_a, token_b) for adapter in ready),
            return_exceptions=True
        )

        quotes = []
        for adapter, result in zip(ready, results):
            if isinstance(result, NoPoolError):
                logger.debug(f"No {adapter.name} pool for {token_a}/{token_b}")
            elif isinstance(result, Exception):
                logger.warning(
                    f"Price query failed on {adapter.name}: {str(result)}",
                    extra={"dex": adapter.name, "pair": get_pair_key(token_a, token_b)}
                )
            else:
                quotes.append(result)
        return quotes

    def find_opportunities(
        self,
        quotes: List[PriceQuote],
        now: Optional[datetime] = None
    ) -> List[ArbitrageOpportunity]:
        """Compare every unordered pair of venues in both directions"""
        now = now or get_utc_now()
        opportunities = []

        for i, first in enumerate(quotes):
            for second in quotes[i + 1:]:
                for buy, sell in ((first, second), (second, first)):
                    opportunity = self._create_opportunity_if_profitable(buy, sell, now)
                    if opportunity is not None:
                        opportunities.append(opportunity)

        return opportunities

    def _create_opportunity_if_profitable(
        self,
        buy: PriceQuote,
        sell: PriceQuote,
        now: datetime
    ) -> Optional[ArbitrageOpportunity]:
        if buy.dex == sell.dex:
            return None
        if buy.price <= 0 or sell.price <= buy.price:
            return None

        price_diff = sell.price - buy.price
        diff_percent = Decimal(price_diff) * 100 / Decimal(buy.price)
        if diff_percent < self.min_price_diff_percent:
            return None

        valued = [self._reference_liquidity(q) for q in (buy, sell)]
        known = [liquidity for liquidity in valued if liquidity is not None]
        available_liquidity = min(known) if known else self.default_liquidity

        timestamp_ms = int(now.timestamp() * 1000)

        return ArbitrageOpportunity(
            id=f"{buy.token_a}-{buy.token_b}-{buy.dex}-{sell.dex}-{timestamp_ms}",
            token_in=buy.token_a,
            token_out=buy.token_b,
            buy_dex=buy.dex,
            sell_dex=sell.dex,
            buy_price=buy.price,
            sell_price=sell.price,
            buy_pool_address=buy.pool_address,
            sell_pool_address=sell.pool_address,
            available_liquidity=available_liquidity,
            block_number=max(buy.block_number, sell.block_number),
            timestamp=now,
            estimated_profit=self._reference_profit(buy, price_diff)
        )

    def _reference_liquidity(self, quote: PriceQuote) -> Optional[int]:
        """Pool depth in reference-token units; quote.liquidity counts token_a"""
        if quote.liquidity is None:
            return None
        if quote.token_a.lower() == self.reference_token:
            return quote.liquidity
        if quote.token_b.lower() == self.reference_token:
            return quote.liquidity * quote.price // SCALE
        return None

    def _reference_profit(self, buy: PriceQuote, price_diff: int) -> Optional[int]:
        """Gross profit of a one-unit trade, in reference-token units"""
        if buy.token_b.lower() == self.reference_token:
            return price_diff
        if buy.token_a.lower() == self.reference_token:
            return price_diff * SCALE // buy.price
        return None

    async def detect_opportunities_for_pair(self, token_a: str, token_b: str) -> List[ArbitrageOpportunity]:
        key = get_pair_key(token_a, token_b)
        lock = self._pair_locks.setdefault(key, asyncio.Lock())

        async with lock:
            quotes = await self.fetch_prices(token_a, token_b)
            if len(quotes) < 2:
                logger.debug(f"Only {len(quotes)} venue(s) quoted {key}, nothing to compare")
                return []
            return self.find_opportunities(quotes)

    async def detect_opportunities(self) -> List[ArbitrageOpportunity]:
        """Full scan of every monitored pair"""
        pairs = list(self._pairs.values())
        results = await asyncio.gather(
            *(self.detect_opportunities_for_pair(a, b) for a, b in pairs),
            return_exceptions=True
        )

        opportunities = []
        for (token_a, token_b), result in zip(pairs, results):
            if isinstance(result, Exception):
                logger.error(f"Scan of {token_a}/{token_b} failed: {str(result)}")
            else:
                opportunities.extend(result)

        if opportunities:
            logger.info(f"Detected {len(opportunities)} opportunities across {len(pairs)} pairs")
        return opportunities

    async def _emit(self, opportunities: List[ArbitrageOpportunity]) -> None:
        """Deliver to every callback; one failing callback does not stop the rest"""
        for opportunity in opportunities:
            for callback in list(self._callbacks):
                try:
                    await resolve_callback(callback(opportunity))
                except Exception as e:
                    logger.error(
                        f"Opportunity callback failed: {str(e)}",
                        exc_info=True,
                        extra={"opportunity_id": opportunity.id}
                    )

    # Delivery modes

    async def monitor_continuously(
        self,
        callback: Optional[OpportunityCallback] = None,
        interval: float = 12.0
    ) -> None:
        """Scan all pairs every interval seconds until stop_monitoring()"""
        if self._is_monitoring:
            logger.warning("Monitoring already running")
            return

        if callback is not None:
            self.on_opportunity(callback)

        if self._stop_event.is_set():
            logger.info("Stop already requested, monitoring not started")
            self._stop_event.clear()
            return

        self._is_monitoring = True
        logger.info(f"Starting continuous monitoring (interval {interval}s, {len(self._pairs)} pairs)")

        while not self._stop_event.is_set():
            try:
                opportunities = await self.detect_opportunities()
                await self._emit(opportunities)
            except Exception as e:
                logger.error(f"Error in monitoring cycle: {str(e)}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        self._is_monitoring = False
        self._stop_event.clear()
        logger.info("Continuous monitoring stopped")

    async def subscribe_to_updates(self, callback: Optional[OpportunityCallback] = None) -> int:
        """
        Event-driven mode: re-scan a pair as soon as any venue reports a change

        Returns:
            Number of new (adapter, pair) subscriptions; pairs already
            watched are skipped, and pairs added later subscribe on add_pair
        """
        if callback is not None:
            self.on_opportunity(callback)

        self._event_mode = True
        if self._event_queue is None:
            self._event_queue = asyncio.Queue()
        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = asyncio.create_task(self._dispatch_events(), name="aggregator-events")

        count = 0
        for key in list(self._pairs):
            count += await self._subscribe_pair(key)

        logger.info(f"Event monitoring active with {len(self._subscriptions)} subscriptions ({count} new)")
        return count

    async def _subscribe_pair(self, key: str) -> int:
        if key not in self._pairs:
            return 0
        token_a, token_b = self._pairs[key]

        count = 0
        for adapter in list(self._adapters.values()):
            subscription = (adapter.name, key)
            if not adapter.is_ready() or subscription in self._subscriptions:
                continue
            # Claimed before awaiting so a concurrent call skips it
            self._subscriptions.add(subscription)
            try:
                await adapter.subscribe_to_price_updates(
                    token_a,
                    token_b,
                    self._make_change_handler(key)
                )
                count += 1
            except NoPoolError:
                self._subscriptions.discard(subscription)
                logger.debug(f"No {adapter.name} pool for {key}, not subscribing")
            except DexArbitrageException as e:
                self._subscriptions.discard(subscription)
                logger.warning(f"Could not subscribe to {adapter.name} for {key}: {e.message}")
        return count

    def _make_change_handler(self, pair_key: str) -> Callable[[PriceQuote], None]:
        def on_change(quote: PriceQuote) -> None:
            self._enqueue(pair_key)
        return on_change

    def _enqueue(self, pair_key: str) -> None:
        # Coalesce bursts: one pending re-scan per pair
        if self._event_queue is None or pair_key in self._pending_pairs:
            return
        self._pending_pairs.add(pair_key)
        self._event_queue.put_nowait(pair_key)

    async def _dispatch_events(self) -> None:
        while True:
            pair_key = await self._event_queue.get()
            self._pending_pairs.discard(pair_key)

            if pair_key not in self._pairs:
                continue

            task = asyncio.create_task(self._rescan_pair(pair_key))
            self._rescan_tasks.add(task)
            task.add_done_callback(self._rescan_tasks.discard)

    async def _rescan_pair(self, pair_key: str) -> None:
        token_a, token_b = self._pairs.get(pair_key, parse_pair_key(pair_key))
        try:
            opportunities = await self.detect_opportunities_for_pair(token_a, token_b)
            await self._emit(opportunities)
        except Exception as e:
            logger.error(f"Event re-scan of {pair_key} failed: {str(e)}", exc_info=True)

    def stop_monitoring(self) -> None:
        """
        Halt polling at the next cycle boundary and release adapter listeners

        A stop requested before monitor_continuously starts is kept, and that
        run returns without scanning.
        """
        self._stop_event.set()
        self._event_mode = False
        for task in list(self._subscribe_tasks):
            task.cancel()

        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            self._dispatch_task = None
        self._pending_pairs.clear()
        self._event_queue = None

        for adapter in self._adapters.values():
            adapter.unsubscribe()
        self._subscriptions.clear()

        logger.info("Monitoring stop requested")

    def unsubscribe(self) -> None:
        """Release every adapter listener and drop all callbacks"""
        self.stop_monitoring()
        self._callbacks.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "adapters": len(self._adapters),
            "ready_adapters": sum(1 for a in self._adapters.values() if a.is_ready()),
            "monitored_pairs": len(self._pairs),
            "is_monitoring": self._is_monitoring,
            "callbacks": len(self._callbacks),
            "pending_rescans": len(self._rescan_tasks),
            "subscriptions": len(self._subscriptions)
        }
