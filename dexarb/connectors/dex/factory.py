"""
Adapter factory: maps a venue's protocol family to its adapter class
"""
from typing import Dict, List, Type

from web3 import AsyncWeb3

from dexarb.config.settings import VenueConfig
from dexarb.connectors.dex.uniswap_v2 import ConstantProductAdapter
from dexarb.connectors.dex.uniswap_v3 import ConcentratedLiquidityAdapter
from dexarb.core.base_connector import BaseDexAdapter
from dexarb.core.data_models import VenueType
from dexarb.core.exceptions import ConfigurationError


ADAPTER_CLASSES: Dict[VenueType, Type[BaseDexAdapter]] = {
    VenueType.UNISWAP_V2: ConstantProductAdapter,
    VenueType.SUSHISWAP: ConstantProductAdapter,
    VenueType.UNISWAP_V3: ConcentratedLiquidityAdapter,
}


def create_adapter(venue: VenueConfig, w3: AsyncWeb3, event_poll_interval: float = 2.0) -> BaseDexAdapter:
    adapter_class = ADAPTER_CLASSES.get(venue.type)
    if adapter_class is None:
        raise ConfigurationError(f"Unsupported venue type: {venue.type}", code="UNSUPPORTED_VENUE")
    return adapter_class(venue, w3, event_poll_interval)


def create_adapters(venues: List[VenueConfig], w3: AsyncWeb3, event_poll_interval: float = 2.0) -> List[BaseDexAdapter]:
    """Build an adapter for every enabled venue"""
    return [create_adapter(v, w3, event_poll_interval) for v in venues if v.enabled]
