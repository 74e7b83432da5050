"""
Tests for the execution dispatcher
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from dexarb.analytics.profit_calculator import ProfitCalculator
from dexarb.core.data_models import FlashLoanProvider
from dexarb.core.exceptions import ConfigurationError, ExecutionFailure, SimulationFailure
from dexarb.execution.dispatcher import ExecutionDispatcher
from dexarb.utils.helpers import SCALE

from conftest import USDC, WETH, FakeWeb3, contract_call, erc20, make_settings


GWEI = 10 ** 9
CONTRACT = "0x" + "ee" * 20
PRIVATE_KEY = "0x" + "01" * 32


def arbitrage_contract(paused=False, simulate_error=None) -> MagicMock:
    contract = MagicMock()
    contract.functions.paused.return_value = contract_call(paused)

    entry = MagicMock()
    entry.call = AsyncMock(return_value=b"", side_effect=simulate_error)
    entry.estimate_gas = AsyncMock(return_value=250_000)
    entry.build_transaction = AsyncMock(side_effect=lambda tx: {**tx, "to": CONTRACT, "data": "0x"})
    contract.functions.executeAaveArbitrage.return_value = entry
    contract.functions.executeBalancerArbitrage.return_value = entry
    contract.entry = entry
    return contract


def live_settings(**overrides):
    values = dict(DRY_RUN=False, ARBITRAGE_CONTRACT_ADDRESS=CONTRACT, PRIVATE_KEY=PRIVATE_KEY)
    values.update(overrides)
    return make_settings(**values)


@pytest.fixture
def analysis(settings, make_opportunity):
    result = ProfitCalculator(settings).calculate_profit(make_opportunity())
    assert result.is_executable
    return result


@pytest.mark.asyncio
async def test_dry_run_without_contract(settings, analysis):
    dispatcher = ExecutionDispatcher(settings, FakeWeb3())

    result = await dispatcher.execute(analysis)

    assert result.success
    assert result.dry_run
    assert result.transaction_hash is None
    assert result.profit == analysis.net_profit


@pytest.mark.asyncio
async def test_non_executable_analysis_is_not_sent(settings, analysis):
    w3 = FakeWeb3()
    dispatcher = ExecutionDispatcher(settings, w3)

    result = await dispatcher.execute(analysis.model_copy(update={"is_executable": False}))

    assert not result.success
    assert result.error == "Opportunity is not executable"
    w3.eth.send_raw_transaction.assert_not_awaited()


def test_live_mode_requires_contract_and_key():
    with pytest.raises(ConfigurationError):
        ExecutionDispatcher(make_settings(DRY_RUN=False), FakeWeb3())


@pytest.mark.asyncio
async def test_build_params_uses_venue_routers(settings, analysis):
    dispatcher = ExecutionDispatcher(settings, FakeWeb3())

    params = await dispatcher.build_params(analysis)

    assert params.provider == FlashLoanProvider.AAVE
    assert params.token == analysis.opportunity.token_in
    assert params.amount == analysis.recommended_amount
    assert params.buy_router == settings.get_venue("Uniswap V2").router
    assert params.sell_router == settings.get_venue("SushiSwap").router


@pytest.mark.asyncio
async def test_build_params_uses_native_decimals(settings, analysis, make_opportunity):
    w3 = FakeWeb3()
    dispatcher = ExecutionDispatcher(settings, w3)
    usdc_analysis = analysis.model_copy(update={
        "opportunity": make_opportunity(token_in=USDC, token_out=WETH),
        "recommended_amount": 25 * SCALE // 10
    })

    params = await dispatcher.build_params(usdc_analysis)
    await dispatcher.build_params(usdc_analysis)

    assert params.token == USDC
    assert params.amount == 2_500_000
    assert w3.eth.contracts[USDC.lower()].functions.decimals.return_value.call.await_count == 1


@pytest.mark.asyncio
async def test_unreadable_decimals_fail_the_build(settings, analysis):
    w3 = FakeWeb3({WETH: erc20(side_effect=BadFunctionCallOutput("no code at address"))})
    dispatcher = ExecutionDispatcher(settings, w3)

    with pytest.raises(ExecutionFailure) as exc_info:
        await dispatcher.execute(analysis)

    assert exc_info.value.code == "TOKEN_DECIMALS"


@pytest.mark.asyncio
async def test_paused_contract_raises_simulation_failure(analysis):
    contract = arbitrage_contract(paused=True)
    dispatcher = ExecutionDispatcher(live_settings(), FakeWeb3({CONTRACT: contract}))

    with pytest.raises(SimulationFailure) as exc_info:
        await dispatcher.execute(analysis)

    assert exc_info.value.code == "CONTRACT_PAUSED"
    contract.entry.build_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_reverting_simulation_is_never_committed(analysis):
    contract = arbitrage_contract(simulate_error=ContractLogicError("execution reverted: no profit"))
    w3 = FakeWeb3({CONTRACT: contract})
    dispatcher = ExecutionDispatcher(live_settings(), w3)

    with pytest.raises(SimulationFailure) as exc_info:
        await dispatcher.execute(analysis)

    assert "no profit" in exc_info.value.message
    w3.eth.send_raw_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_dry_run_still_simulates(analysis):
    contract = arbitrage_contract()
    dispatcher = ExecutionDispatcher(live_settings(DRY_RUN=True), FakeWeb3({CONTRACT: contract}))

    result = await dispatcher.execute(analysis)

    assert result.success and result.dry_run
    assert result.gas_used == 250_000
    contract.entry.call.assert_awaited_once()


@pytest.mark.asyncio
async def test_live_execution_commits_transaction(analysis):
    contract = arbitrage_contract()
    w3 = FakeWeb3({CONTRACT: contract})
    dispatcher = ExecutionDispatcher(live_settings(), w3)

    result = await dispatcher.execute(analysis)

    assert result.success
    assert not result.dry_run
    assert result.transaction_hash == "0x" + "12" * 32
    assert result.gas_used == 300_000
    assert result.gas_cost == 300_000 * 20 * GWEI

    tx = contract.entry.build_transaction.await_args.args[0]
    assert tx["gas"] == 300_000
    assert tx["nonce"] == 7
    assert tx["chainId"] == 1
    assert tx["maxFeePerGas"] == 22 * GWEI
    assert tx["maxPriorityFeePerGas"] == 2 * GWEI
    w3.eth.account.sign_transaction.assert_called_once()


@pytest.mark.asyncio
async def test_live_call_borrows_native_units(analysis, make_opportunity):
    contract = arbitrage_contract()
    dispatcher = ExecutionDispatcher(live_settings(), FakeWeb3({CONTRACT: contract}))
    usdc_analysis = analysis.model_copy(update={
        "opportunity": make_opportunity(token_in=USDC, token_out=WETH),
        "recommended_amount": 1234 * SCALE
    })

    result = await dispatcher.execute(usdc_analysis)

    assert result.success
    token, amount = contract.functions.executeAaveArbitrage.call_args.args[:2]
    assert token == USDC
    assert amount == 1234 * 10 ** 6


@pytest.mark.asyncio
async def test_fee_cap_applies(analysis):
    contract = arbitrage_contract()
    w3 = FakeWeb3({CONTRACT: contract})
    dispatcher = ExecutionDispatcher(live_settings(MAX_GAS_PRICE_GWEI=15), w3)

    await dispatcher.execute(analysis)

    tx = contract.entry.build_transaction.await_args.args[0]
    assert tx["maxFeePerGas"] == 15 * GWEI


@pytest.mark.asyncio
async def test_reverted_transaction_returns_failed_result(analysis):
    contract = arbitrage_contract()
    w3 = FakeWeb3({CONTRACT: contract})
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "gasUsed": 90_000, "blockNumber": 100}
    dispatcher = ExecutionDispatcher(live_settings(), w3)

    result = await dispatcher.execute(analysis)

    assert not result.success
    assert result.error == "Transaction reverted"
    assert result.transaction_hash == "0x" + "12" * 32
    assert result.opportunity == analysis.opportunity
