"""
Service Manager for dependency injection and lifecycle management
"""
import asyncio
import logging
from typing import List, Optional

from web3 import AsyncWeb3

from dexarb.analytics.opportunity_validator import OpportunityValidator
from dexarb.analytics.price_aggregator import PriceAggregator
from dexarb.analytics.profit_calculator import ProfitCalculator
from dexarb.analytics.reference_price import ReferencePrice
from dexarb.config.settings import Settings
from dexarb.connectors.dex.factory import create_adapters
from dexarb.core.base_connector import BaseDexAdapter
from dexarb.core.exceptions import ConfigurationError, DexArbitrageException
from dexarb.execution.dispatcher import ExecutionDispatcher
from dexarb.storage.redis_manager import RedisManager
from dexarb.utils.helpers import from_units
from dexarb.utils.validators import parse_pair_spec
from dexarb.workers.monitoring import OpportunityHandler, monitoring_worker, stats_reporter

logger = logging.getLogger(__name__)


class ServiceManager:

    def __init__(self, settings: Settings, w3: Optional[AsyncWeb3] = None):
        self.settings = settings
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.RPC_URL))

        # Storage
        self.redis_manager: Optional[RedisManager] = None
        if settings.ENABLE_REDIS_ALERTS:
            self.redis_manager = RedisManager(settings.REDIS_URL, settings.ALERT_CHANNEL)

        # Connectors
        self.adapters: List[BaseDexAdapter] = create_adapters(
            settings.VENUES,
            self.w3,
            settings.EVENT_POLL_INTERVAL_SECONDS
        )

        # Analytics
        self.reference_price = ReferencePrice.from_settings(settings)
        self.aggregator = PriceAggregator(
            min_price_diff_percent=settings.MIN_PRICE_DIFF_PERCENT,
            default_liquidity=from_units(settings.DEFAULT_LIQUIDITY),
            reference_token=settings.REFERENCE_TOKEN
        )
        self.validator = OpportunityValidator(settings, self.reference_price)
        self.profit_calculator = ProfitCalculator(settings, self.reference_price)

        # Execution
        self.dispatcher = ExecutionDispatcher(settings, self.w3)
        self.handler = OpportunityHandler(
            self.validator,
            self.profit_calculator,
            self.dispatcher,
            redis_manager=self.redis_manager,
            alert_min_profit_usd=settings.ALERT_MIN_PROFIT_USD,
            recent_limit=settings.RECENT_ANALYSES_LIMIT
        )

        self._tasks: List[asyncio.Task] = []

    async def initialize(self):
        """Initialize all services"""
        logger.info("Initializing services...")

        if not await self.w3.is_connected():
            raise ConfigurationError(f"Cannot reach RPC endpoint for {self.settings.NETWORK}", code="RPC_UNREACHABLE")

        chain_id = await self.w3.eth.chain_id
        if chain_id != self.settings.CHAIN_ID:
            raise ConfigurationError(
                f"RPC chain id {chain_id} does not match CHAIN_ID {self.settings.CHAIN_ID}",
                code="CHAIN_MISMATCH"
            )

        # Connectors
        for adapter in self.adapters:
            try:
                await adapter.initialize()
                self.aggregator.add_adapter(adapter)
            except DexArbitrageException as e:
                logger.error(f"Adapter {adapter.name} unavailable: {e.message}")

        ready = len(self.aggregator.get_adapters())
        if ready < 2:
            raise ConfigurationError(f"Arbitrage needs at least two venues, {ready} initialized", code="NOT_ENOUGH_VENUES")

        self.aggregator.add_pairs([parse_pair_spec(p) for p in self.settings.MONITORED_PAIRS])

        # Storage
        if self.redis_manager:
            try:
                await self.redis_manager.connect()
            except Exception as e:
                logger.warning(f"Redis alerts disabled: {str(e)}")

        logger.info(f"All services initialized successfully ({ready} venues, "
                    f"{len(self.aggregator.get_monitored_pairs())} pairs)")

    async def start(self):
        """Launch background workers"""
        self._tasks = [
            asyncio.create_task(monitoring_worker(self), name="monitoring"),
            asyncio.create_task(
                stats_reporter(self.handler, self.settings.STATS_INTERVAL_SECONDS),
                name="stats"
            ),
        ]
        logger.info("Background workers started")

    async def cleanup(self):
        """Cleanup all services"""
        logger.info("Cleaning up services...")

        self.aggregator.unsubscribe()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.redis_manager:
            await self.redis_manager.disconnect()

        await self.w3.provider.disconnect()

        logger.info("Cleanup completed")
