"""
Tests for service wiring and lifecycle
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from web3.exceptions import BadFunctionCallOutput

from dexarb.core.exceptions import ConfigurationError
from dexarb.core.service_manager import ServiceManager

from conftest import FakeEth, USDC, WETH, contract_call, make_settings


class ChainEth(FakeEth):
    chain = 1

    @property
    def chain_id(self):
        async def _chain_id():
            return self.chain
        return _chain_id()


class ChainWeb3:
    def __init__(self, contracts, connected=True):
        self.eth = ChainEth(contracts)
        self.is_connected = AsyncMock(return_value=connected)
        self.provider = MagicMock()
        self.provider.disconnect = AsyncMock()


def factory(pair_count=None, side_effect=None) -> MagicMock:
    contract = MagicMock()
    contract.functions.allPairsLength.return_value = contract_call(pair_count, side_effect)
    return contract


@pytest.fixture
def settings():
    return make_settings(MONITORED_PAIRS=[f"{WETH}:{USDC}"])


def venue_factories(settings, **overrides):
    contracts = {v.factory: factory(100) for v in settings.enabled_venues}
    for name, contract in overrides.items():
        contracts[settings.get_venue(name).factory] = contract
    return contracts


@pytest.mark.asyncio
async def test_initialize_wires_pipeline(settings):
    services = ServiceManager(settings, w3=ChainWeb3(venue_factories(settings)))

    await services.initialize()

    assert [a.name for a in services.aggregator.get_adapters()] == ["Uniswap V2", "SushiSwap"]
    assert services.aggregator.get_monitored_pairs() == [(USDC.lower(), WETH.lower())]
    assert services.redis_manager is None
    assert services.aggregator.reference_token == WETH.lower()
    assert services.validator.reference_price is services.profit_calculator.reference_price

    await services.cleanup()
    services.w3.provider.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_unreachable_rpc(settings):
    services = ServiceManager(settings, w3=ChainWeb3(venue_factories(settings), connected=False))

    with pytest.raises(ConfigurationError) as exc_info:
        await services.initialize()
    assert exc_info.value.code == "RPC_UNREACHABLE"


@pytest.mark.asyncio
async def test_chain_mismatch(settings):
    w3 = ChainWeb3(venue_factories(settings))
    w3.eth.chain = 5
    services = ServiceManager(settings, w3=w3)

    with pytest.raises(ConfigurationError) as exc_info:
        await services.initialize()
    assert exc_info.value.code == "CHAIN_MISMATCH"


@pytest.mark.asyncio
async def test_one_failed_venue_leaves_too_few(settings):
    broken = factory(side_effect=BadFunctionCallOutput("no code"))
    services = ServiceManager(settings, w3=ChainWeb3(venue_factories(settings, SushiSwap=broken)))

    with pytest.raises(ConfigurationError) as exc_info:
        await services.initialize()

    assert exc_info.value.code == "NOT_ENOUGH_VENUES"
    assert [a.name for a in services.aggregator.get_adapters()] == ["Uniswap V2"]


@pytest.mark.asyncio
async def test_redis_failure_only_disables_alerts():
    settings = make_settings(ENABLE_REDIS_ALERTS=True, REDIS_URL="redis://127.0.0.1:1/0")
    services = ServiceManager(settings, w3=ChainWeb3(venue_factories(settings)))
    services.redis_manager.connect = AsyncMock(side_effect=ConnectionError("refused"))

    await services.initialize()

    assert not services.redis_manager.is_connected
    assert len(services.aggregator.get_adapters()) == 2
