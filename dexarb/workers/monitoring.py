"""
Background workers: opportunity handling, monitoring loop and periodic stats
"""
import asyncio
import logging
from collections import deque
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Set, TYPE_CHECKING

from dexarb.analytics.opportunity_validator import OpportunityValidator
from dexarb.analytics.profit_calculator import ProfitCalculator
from dexarb.config.logging_config import log_execution, log_opportunity
from dexarb.core.data_models import ArbitrageOpportunity, BotMetrics, ExecutionResult, ProfitAnalysis
from dexarb.core.exceptions import ExecutionFailure, SimulationFailure
from dexarb.execution.dispatcher import ExecutionDispatcher
from dexarb.storage.redis_manager import RedisManager
from dexarb.utils.helpers import get_utc_now

if TYPE_CHECKING:
    from dexarb.core.service_manager import ServiceManager

logger = logging.getLogger(__name__)


class OpportunityHandler:
    """
    Callback registered on the aggregator

    Runs validate -> score -> dispatch for each opportunity. A second
    opportunity on the same pair and venue route is dropped while the
    first one is still being processed.
    """

    def __init__(
        self,
        validator: OpportunityValidator,
        profit_calculator: ProfitCalculator,
        dispatcher: ExecutionDispatcher,
        redis_manager: Optional[RedisManager] = None,
        alert_min_profit_usd: float = 100.0,
        recent_limit: int = 100
    ):
        self.validator = validator
        self.profit_calculator = profit_calculator
        self.dispatcher = dispatcher
        self.redis_manager = redis_manager
        self.alert_min_profit_usd = Decimal(str(alert_min_profit_usd))

        self.metrics = BotMetrics()
        self.recent_analyses: Deque[ProfitAnalysis] = deque(maxlen=recent_limit)
        self._in_flight: Set[str] = set()

    async def __call__(self, opportunity: ArbitrageOpportunity) -> None:
        self.metrics.opportunities_detected += 1
        log_opportunity(logger, opportunity)

        route = opportunity.route_key
        if route in self._in_flight:
            self.metrics.duplicates_dropped += 1
            logger.info(f"Duplicate opportunity dropped, {route} already in flight",
                        extra={"opportunity_id": opportunity.id})
            return

        self._in_flight.add(route)
        try:
            await self._process(opportunity)
        finally:
            self._in_flight.discard(route)

    @property
    def in_flight(self) -> List[str]:
        return sorted(self._in_flight)

    async def _process(self, opportunity: ArbitrageOpportunity) -> None:
        verdict = self.validator.validate(opportunity)
        if not verdict.is_valid:
            self.metrics.opportunities_skipped += 1
            logger.info(f"Opportunity rejected: {verdict.reason}", extra={"opportunity_id": opportunity.id})
            return

        for warning in verdict.warnings:
            logger.warning(warning, extra={"opportunity_id": opportunity.id})

        analysis = self.profit_calculator.calculate_profit(opportunity)
        self.recent_analyses.append(analysis)

        if not analysis.is_executable:
            self.metrics.opportunities_skipped += 1
            logger.info(
                f"Opportunity not executable: net ${analysis.net_profit_usd:.2f} "
                f"({analysis.profit_percentage:.2f}%)",
                extra={"opportunity_id": opportunity.id}
            )
            return

        await self._publish_alert(analysis)

        try:
            result = await self.dispatcher.execute(analysis)
        except SimulationFailure as e:
            self.metrics.simulation_failures += 1
            self.metrics.opportunities_skipped += 1
            logger.warning(f"Skipping opportunity: {e.message}", extra={"opportunity_id": opportunity.id})
            return
        except ExecutionFailure as e:
            result = ExecutionResult(
                success=False,
                opportunity=opportunity,
                execution_time=0.0,
                transaction_hash=e.transaction_hash,
                error=e.message
            )

        log_execution(logger, result)
        self._record(result, analysis)

    async def _publish_alert(self, analysis: ProfitAnalysis) -> None:
        if self.redis_manager is None or not self.redis_manager.is_connected:
            return
        if analysis.net_profit_usd < self.alert_min_profit_usd:
            return
        await self.redis_manager.publish_analysis(analysis)

    def _record(self, result: ExecutionResult, analysis: ProfitAnalysis) -> None:
        metrics = self.metrics

        if not result.success:
            metrics.execution_failures += 1
            if result.transaction_hash:
                metrics.total_transactions += 1
                metrics.failed_transactions += 1
            return

        metrics.opportunities_executed += 1
        metrics.last_execution_time = get_utc_now()

        if not result.dry_run:
            metrics.total_transactions += 1
            metrics.successful_transactions += 1
            metrics.total_profit_usd += analysis.net_profit_usd
            metrics.total_gas_spent_wei += result.gas_cost or 0

    def get_recent_analyses(self, limit: int = 20) -> List[Dict[str, Any]]:
        recent = list(self.recent_analyses)[-limit:]
        return [a.model_dump(mode="json") for a in reversed(recent)]


async def stats_reporter(handler: OpportunityHandler, interval: float = 60.0):
    """Log bot metrics periodically"""
    logger.info("Starting stats reporter...")

    while True:
        await asyncio.sleep(interval)
        summary = handler.metrics.summary()
        logger.info(
            f"Bot statistics: {summary['opportunities_detected']} detected, "
            f"{summary['opportunities_executed']} executed, "
            f"success rate {summary['success_rate']}%",
            extra={"context": summary}
        )


async def monitoring_worker(services: "ServiceManager"):
    """Background worker for opportunity detection"""
    logger.info("Starting monitoring worker...")
    settings = services.settings

    if settings.ENABLE_EVENT_MONITORING:
        await services.aggregator.subscribe_to_updates(services.handler)

    await services.aggregator.monitor_continuously(
        services.handler,
        interval=settings.POLL_INTERVAL_SECONDS
    )
