"""
Configuration settings for the DEX arbitrage bot
Manages environment variables and application settings
"""
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from dexarb.config.constants import (
    DEFAULT_VENUES,
    DEFAULT_FLASH_LOAN_PROVIDERS,
    MONITORED_PAIRS,
    EXPLORER_URLS,
    ARBITRAGE_GAS_UNITS,
    TOKEN_ADDRESSES
)
from dexarb.core.data_models import VenueType, FlashLoanProvider
from dexarb.core.exceptions import ConfigurationError
from dexarb.utils.validators import AddressValidator, parse_pair_spec, validate_execution_params


class VenueConfig(BaseModel):
    """One exchange deployment"""
    name: str
    type: VenueType
    router: str
    factory: str
    quoter: Optional[str] = None
    fee_bps: int = Field(30, ge=0, lt=10_000)
    fee_tiers: List[int] = Field(default_factory=list)
    enabled: bool = True


class FlashLoanProviderConfig(BaseModel):
    """Flash-loan pool/vault and its fee"""
    name: FlashLoanProvider
    address: str
    fee_bps: int = Field(0, ge=0, lt=10_000)


class Settings(BaseSettings):
    """Application configuration settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "DEX Arbitrage Bot"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    RATE_LIMIT_PER_MINUTE: int = 60

    # Network
    NETWORK: str = "mainnet"
    CHAIN_ID: int = 1
    RPC_URL: Optional[str] = None
    EXPLORER_URL: Optional[str] = None

    # Signer and flash-loan receiver contract
    PRIVATE_KEY: Optional[str] = None
    ARBITRAGE_CONTRACT_ADDRESS: Optional[str] = None

    # Registries
    VENUES: List[VenueConfig] = Field(default_factory=lambda: [VenueConfig(**v) for v in DEFAULT_VENUES])
    FLASH_LOAN_PROVIDERS: List[FlashLoanProviderConfig] = Field(
        default_factory=lambda: [FlashLoanProviderConfig(**p) for p in DEFAULT_FLASH_LOAN_PROVIDERS]
    )
    FLASH_LOAN_PROVIDER: FlashLoanProvider = FlashLoanProvider.AAVE

    # Execution thresholds
    MIN_PROFIT_USD: float = 50.0
    MIN_PROFIT_PERCENTAGE: float = 0.5
    MAX_GAS_PRICE_GWEI: float = 100.0
    MAX_SLIPPAGE_BPS: int = 100
    MAX_TRADE_SIZE: float = 10.0  # reference-token units
    MIN_TRADE_SIZE: float = 0.1
    ESTIMATED_GAS_UNITS: int = ARBITRAGE_GAS_UNITS
    PRICE_IMPACT_DEPTH_MULTIPLIER: int = 100
    CONFIRMATIONS: int = 1
    ENABLE_SIMULATION: bool = True
    DRY_RUN: bool = True

    # Detection
    MIN_PRICE_DIFF_PERCENT: float = 0.5
    POLL_INTERVAL_SECONDS: float = 12.0  # one block
    ENABLE_EVENT_MONITORING: bool = False
    EVENT_POLL_INTERVAL_SECONDS: float = 2.0
    DEFAULT_LIQUIDITY: float = 10.0  # reference-token units

    # Validation
    MIN_LIQUIDITY_USD: float = 10_000.0
    MAX_OPPORTUNITY_AGE_SECONDS: float = 60.0
    USE_WHITELIST: bool = False
    BLACKLISTED_TOKENS: List[str] = []
    WHITELISTED_TOKENS: List[str] = []
    BLACKLISTED_DEXES: List[str] = []

    # Liquidity, sizing and USD values are expressed in this token
    REFERENCE_TOKEN: str = TOKEN_ADDRESSES["WETH"]
    # USD value of one reference-token unit
    REFERENCE_PRICE_USD: float = 2000.0

    # Pairs ("tokenA:tokenB")
    MONITORED_PAIRS: List[str] = Field(default_factory=lambda: list(MONITORED_PAIRS))

    # Alerts
    ENABLE_REDIS_ALERTS: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    ALERT_CHANNEL: str = "arbitrage_alerts"
    ALERT_MIN_PROFIT_USD: float = 100.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    LOG_DIR: str = "logs"

    # Metrics
    STATS_INTERVAL_SECONDS: float = 60.0
    RECENT_ANALYSES_LIMIT: int = 100

    @property
    def explorer_url(self) -> str:
        return self.EXPLORER_URL or EXPLORER_URLS.get(self.CHAIN_ID, "https://etherscan.io")

    @property
    def enabled_venues(self) -> List[VenueConfig]:
        return [v for v in self.VENUES if v.enabled]

    def get_venue(self, name: str) -> Optional[VenueConfig]:
        return next((v for v in self.VENUES if v.name == name), None)

    def get_flash_loan_provider(self, name: Optional[FlashLoanProvider] = None) -> Optional[FlashLoanProviderConfig]:
        wanted = name or self.FLASH_LOAN_PROVIDER
        return next((p for p in self.FLASH_LOAN_PROVIDERS if p.name == wanted), None)


def validate_settings(settings: Settings) -> None:
    """
    Check startup invariants

    Raises:
        ConfigurationError: listing every problem found
    """
    errors = []

    if not settings.RPC_URL:
        errors.append("RPC_URL is required")

    if not settings.DRY_RUN:
        if not settings.ARBITRAGE_CONTRACT_ADDRESS:
            errors.append("ARBITRAGE_CONTRACT_ADDRESS is required")
        elif not AddressValidator.validate_ethereum_address(settings.ARBITRAGE_CONTRACT_ADDRESS):
            errors.append("Invalid arbitrage contract address")

        if not settings.PRIVATE_KEY or not settings.PRIVATE_KEY.startswith("0x"):
            errors.append("Invalid private key format")

    errors.extend(validate_execution_params(
        settings.MIN_PROFIT_USD,
        settings.MAX_SLIPPAGE_BPS,
        settings.MIN_PROFIT_PERCENTAGE
    ))

    if len(settings.enabled_venues) < 2:
        errors.append("At least two enabled venues are required for arbitrage")

    names = [v.name for v in settings.VENUES]
    if len(names) != len(set(names)):
        errors.append("Venue names must be unique")

    if settings.get_flash_loan_provider() is None:
        errors.append(f"Unknown flash-loan provider: {settings.FLASH_LOAN_PROVIDER.value}")

    if not AddressValidator.validate_ethereum_address(settings.REFERENCE_TOKEN):
        errors.append(f"Invalid reference token address: {settings.REFERENCE_TOKEN}")
    if settings.REFERENCE_PRICE_USD <= 0:
        errors.append("REFERENCE_PRICE_USD must be positive")

    for pair in settings.MONITORED_PAIRS:
        try:
            parse_pair_spec(pair)
        except ValueError as e:
            errors.append(str(e))

    if errors:
        raise ConfigurationError("; ".join(errors), code="INVALID_CONFIG")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
