"""
Execution dispatcher for the flash-loan arbitrage contract
Simulates every candidate before committing a transaction
"""
from typing import Any, Dict, Optional
import asyncio
import logging
import time

from web3 import AsyncWeb3, Web3

from dexarb.config.settings import Settings
from dexarb.core.base_connector import TRANSPORT_ERRORS, BaseDexAdapter
from dexarb.core.data_models import (
    ExecutionResult,
    FlashLoanParams,
    FlashLoanProvider,
    ProfitAnalysis,
    SimulationResult
)
from dexarb.core.exceptions import ConfigurationError, ExecutionFailure, SimulationFailure
from dexarb.utils.helpers import scale_from_18


logger = logging.getLogger(__name__)

GWEI = 10 ** 9
RECEIPT_TIMEOUT_SECONDS = 120


def _arbitrage_entry(name: str) -> Dict[str, Any]:
    return {
        "inputs": [
            {"internalType": "address", "name": "token", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "address", "name": "buyRouter", "type": "address"},
            {"internalType": "address", "name": "sellRouter", "type": "address"}
        ],
        "name": name,
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }


class ExecutionDispatcher:
    """Sends executable analyses to the on-chain arbitrage contract"""

    CONTRACT_ABI = [
        _arbitrage_entry("executeAaveArbitrage"),
        _arbitrage_entry("executeBalancerArbitrage"),
        {
            "inputs": [],
            "name": "paused",
            "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
            "stateMutability": "view",
            "type": "function"
        }
    ]

    ENTRY_POINTS = {
        FlashLoanProvider.AAVE: "executeAaveArbitrage",
        FlashLoanProvider.BALANCER: "executeBalancerArbitrage",
    }

    def __init__(self, settings: Settings, w3: AsyncWeb3):
        self.settings = settings
        self.w3 = w3
        self.dry_run = settings.DRY_RUN
        self.enable_simulation = settings.ENABLE_SIMULATION
        self.provider = settings.FLASH_LOAN_PROVIDER
        self.chain_id = settings.CHAIN_ID
        self.max_gas_price_wei = int(settings.MAX_GAS_PRICE_GWEI * GWEI)
        self.confirmations = settings.CONFIRMATIONS
        self._decimals_cache: Dict[str, int] = {}

        self.contract = None
        if settings.ARBITRAGE_CONTRACT_ADDRESS:
            self.contract = w3.eth.contract(
                address=Web3.to_checksum_address(settings.ARBITRAGE_CONTRACT_ADDRESS),
                abi=self.CONTRACT_ABI
            )

        self.account = w3.eth.account.from_key(settings.PRIVATE_KEY) if settings.PRIVATE_KEY else None

        if not self.dry_run and (self.contract is None or self.account is None):
            raise ConfigurationError(
                "Live execution requires ARBITRAGE_CONTRACT_ADDRESS and PRIVATE_KEY",
                code="INVALID_CONFIG"
            )

        mode = "DRY RUN" if self.dry_run else "LIVE"
        logger.info(f"Execution dispatcher initialized ({mode}, provider {self.provider.value})")

    async def get_token_decimals(self, token: str) -> int:
        key = token.lower()
        if key not in self._decimals_cache:
            contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(token),
                abi=BaseDexAdapter.ERC20_ABI
            )
            self._decimals_cache[key] = int(await contract.functions.decimals().call())
        return self._decimals_cache[key]

    async def build_params(self, analysis: ProfitAnalysis) -> FlashLoanParams:
        """
        Contract arguments for an analysis

        The recommended amount is 18-decimal; the loan is requested in the
        borrowed token's native units.

        Raises:
            ExecutionFailure: unknown venue, or the token's decimals are unreadable
        """
        opportunity = analysis.opportunity
        buy_venue = self.settings.get_venue(opportunity.buy_dex)
        sell_venue = self.settings.get_venue(opportunity.sell_dex)

        if buy_venue is None or sell_venue is None:
            raise ExecutionFailure(
                f"No router configured for {opportunity.buy_dex} or {opportunity.sell_dex}",
                opportunity=opportunity,
                code="UNKNOWN_VENUE"
            )

        try:
            decimals = await self.get_token_decimals(opportunity.token_in)
        except TRANSPORT_ERRORS as e:
            raise ExecutionFailure(
                f"Could not read decimals of {opportunity.token_in}: {str(e)}",
                opportunity=opportunity,
                code="TOKEN_DECIMALS"
            ) from e

        return FlashLoanParams(
            provider=self.provider,
            token=opportunity.token_in,
            amount=scale_from_18(analysis.recommended_amount, decimals),
            buy_dex=opportunity.buy_dex,
            sell_dex=opportunity.sell_dex,
            buy_router=buy_venue.router,
            sell_router=sell_venue.router
        )

    def _contract_function(self, params: FlashLoanParams):
        entry_point = getattr(self.contract.functions, self.ENTRY_POINTS[params.provider])
        return entry_point(
            Web3.to_checksum_address(params.token),
            params.amount,
            Web3.to_checksum_address(params.buy_router),
            Web3.to_checksum_address(params.sell_router)
        )

    def _sender(self) -> Dict[str, str]:
        return {"from": self.account.address} if self.account else {}

    async def is_paused(self) -> bool:
        if self.contract is None:
            return False
        return bool(await self.contract.functions.paused().call())

    async def simulate(self, params: FlashLoanParams) -> SimulationResult:
        """Pre-flight the call with eth_call and a gas estimate"""
        if self.contract is None:
            return SimulationResult(success=False, error="No arbitrage contract configured")

        function = self._contract_function(params)
        try:
            return_data = await function.call(self._sender())
            gas_used = await function.estimate_gas(self._sender())
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Simulation failed: {str(e)}")
            return SimulationResult(success=False, error=str(e))

        logger.info(f"Simulation successful, estimated gas: {gas_used}")
        return SimulationResult(
            success=True,
            gas_used=gas_used,
            return_data=Web3.to_hex(return_data) if isinstance(return_data, bytes) else "0x"
        )

    async def _fee_params(self) -> Dict[str, int]:
        """EIP-1559 fees, both capped at MAX_GAS_PRICE_GWEI"""
        block = await self.w3.eth.get_block("latest")
        priority_fee = await self.w3.eth.max_priority_fee
        base_fee = block.get("baseFeePerGas", 0)

        max_fee = min(2 * base_fee + priority_fee, self.max_gas_price_wei)
        return {
            "maxFeePerGas": max_fee,
            "maxPriorityFeePerGas": min(priority_fee, max_fee)
        }

    async def _commit(self, params: FlashLoanParams, gas_limit: Optional[int], analysis: ProfitAnalysis) -> ExecutionResult:
        """Sign, send and wait for the receipt"""
        opportunity = analysis.opportunity
        tx_hash: Optional[str] = None
        started = time.monotonic()

        try:
            nonce = await self.w3.eth.get_transaction_count(self.account.address, "pending")
            tx = {
                "from": self.account.address,
                "nonce": nonce,
                "chainId": self.chain_id,
                **(await self._fee_params())
            }
            if gas_limit:
                # 20% headroom over the simulated gas
                tx["gas"] = gas_limit * 12 // 10

            tx = await self._contract_function(params).build_transaction(tx)
            signed = self.w3.eth.account.sign_transaction(tx, self.settings.PRIVATE_KEY)
            tx_hash = Web3.to_hex(await self.w3.eth.send_raw_transaction(signed.raw_transaction))
            logger.info(f"Transaction submitted: {tx_hash}", extra={"tx_hash": tx_hash, "opportunity_id": opportunity.id})

            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT_SECONDS)

            while await self.w3.eth.block_number - receipt["blockNumber"] + 1 < self.confirmations:
                await asyncio.sleep(1)
        except TRANSPORT_ERRORS as e:
            raise ExecutionFailure(
                f"Transaction failed: {str(e)}",
                opportunity=opportunity,
                transaction_hash=tx_hash,
                code="TX_FAILED"
            ) from e

        if receipt["status"] != 1:
            raise ExecutionFailure(
                "Transaction reverted",
                opportunity=opportunity,
                transaction_hash=tx_hash,
                code="TX_REVERTED"
            )

        return ExecutionResult(
            success=True,
            opportunity=opportunity,
            execution_time=time.monotonic() - started,
            transaction_hash=tx_hash,
            profit=analysis.net_profit,
            gas_used=receipt["gasUsed"],
            gas_cost=receipt["gasUsed"] * receipt.get("effectiveGasPrice", 0)
        )

    async def execute(self, analysis: ProfitAnalysis) -> ExecutionResult:
        """
        Simulate then commit an executable analysis

        Raises:
            SimulationFailure: the contract is paused or the pre-flight call failed
            ExecutionFailure: the call could not be built

        A failure after submission is returned as an unsuccessful
        ExecutionResult carrying the opportunity and the error.
        """
        opportunity = analysis.opportunity
        started = time.monotonic()

        if not analysis.is_executable:
            return ExecutionResult(
                success=False,
                opportunity=opportunity,
                execution_time=0.0,
                error="Opportunity is not executable",
                dry_run=self.dry_run
            )

        params = await self.build_params(analysis)
        gas_limit: Optional[int] = None

        if self.contract is not None:
            try:
                paused = await self.is_paused()
            except TRANSPORT_ERRORS as e:
                raise SimulationFailure(f"Could not read contract state: {str(e)}", code="SIMULATION_FAILED") from e
            if paused:
                raise SimulationFailure("Arbitrage contract is paused", code="CONTRACT_PAUSED")

            if self.enable_simulation:
                simulation = await self.simulate(params)
                if not simulation.success:
                    raise SimulationFailure(f"Simulation failed: {simulation.error}", code="SIMULATION_FAILED")
                gas_limit = simulation.gas_used

        if self.dry_run:
            logger.info(
                f"DRY RUN: would borrow {params.amount} of {params.token} via {params.provider.value}, "
                f"buy on {params.buy_dex}, sell on {params.sell_dex}",
                extra={"opportunity_id": opportunity.id}
            )
            return ExecutionResult(
                success=True,
                opportunity=opportunity,
                execution_time=time.monotonic() - started,
                profit=analysis.net_profit,
                gas_used=gas_limit,
                dry_run=True
            )

        try:
            result = await self._commit(params, gas_limit, analysis)
        except ExecutionFailure as e:
            return ExecutionResult(
                success=False,
                opportunity=opportunity,
                execution_time=time.monotonic() - started,
                transaction_hash=e.transaction_hash,
                error=e.message
            )

        return result.model_copy(update={"execution_time": time.monotonic() - started})
