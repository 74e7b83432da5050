"""
Tests for settings and startup validation
"""
import pytest

from dexarb.config.settings import Settings, VenueConfig, validate_settings
from dexarb.core.data_models import FlashLoanProvider, VenueType
from dexarb.core.exceptions import ConfigurationError

from conftest import make_settings


def test_defaults(settings):
    assert settings.DRY_RUN is True
    assert settings.MIN_PROFIT_USD == 50.0
    assert settings.MIN_PROFIT_PERCENTAGE == 0.5
    assert settings.MAX_OPPORTUNITY_AGE_SECONDS == 60.0
    assert settings.MIN_LIQUIDITY_USD == 10_000.0
    assert settings.FLASH_LOAN_PROVIDER == FlashLoanProvider.AAVE
    assert settings.get_flash_loan_provider().fee_bps == 9
    assert [v.name for v in settings.enabled_venues] == ["Uniswap V2", "SushiSwap"]
    assert settings.get_venue("Uniswap V3").type == VenueType.UNISWAP_V3
    assert settings.explorer_url == "https://etherscan.io"
    assert settings.REFERENCE_TOKEN == "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"


def test_default_settings_validate(settings):
    validate_settings(settings)


def test_missing_rpc_url():
    with pytest.raises(ConfigurationError) as exc_info:
        validate_settings(Settings(_env_file=None))
    assert "RPC_URL is required" in exc_info.value.message


def test_live_mode_requires_contract_and_key():
    with pytest.raises(ConfigurationError) as exc_info:
        validate_settings(make_settings(DRY_RUN=False, PRIVATE_KEY="deadbeef"))

    message = exc_info.value.message
    assert "ARBITRAGE_CONTRACT_ADDRESS is required" in message
    assert "Invalid private key format" in message


def test_all_problems_reported_together():
    venues = [VenueConfig(name="Only", type="UniswapV2", router="0x" + "11" * 20, factory="0x" + "22" * 20)]
    settings = make_settings(
        VENUES=venues,
        MAX_SLIPPAGE_BPS=20_000,
        MONITORED_PAIRS=["0xnotapair"],
        REFERENCE_TOKEN="0x1234"
    )

    with pytest.raises(ConfigurationError) as exc_info:
        validate_settings(settings)

    message = exc_info.value.message
    assert "At least two enabled venues" in message
    assert "slippage" in message.lower()
    assert "Invalid reference token address" in message
    assert exc_info.value.code == "INVALID_CONFIG"


def test_duplicate_venue_names_rejected():
    venue = dict(name="Same", type="UniswapV2", router="0x" + "11" * 20, factory="0x" + "22" * 20)
    settings = make_settings(VENUES=[VenueConfig(**venue), VenueConfig(**venue)])

    with pytest.raises(ConfigurationError, match="Venue names must be unique"):
        validate_settings(settings)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MIN_PROFIT_USD", "75")
    monkeypatch.setenv("DRY_RUN", "false")
    monkeypatch.setenv("FLASH_LOAN_PROVIDER", "balancer")
    monkeypatch.setenv("BLACKLISTED_DEXES", '["SushiSwap"]')

    settings = make_settings()

    assert settings.MIN_PROFIT_USD == 75.0
    assert settings.DRY_RUN is False
    assert settings.FLASH_LOAN_PROVIDER == FlashLoanProvider.BALANCER
    assert settings.BLACKLISTED_DEXES == ["SushiSwap"]
