"""
Reference token and its USD price
One instance is shared by the validator and the profit model
"""
from decimal import Decimal
import logging

from dexarb.config.settings import Settings
from dexarb.utils.helpers import to_units


logger = logging.getLogger(__name__)


class ReferencePrice:
    """USD value of one reference-token unit"""

    def __init__(self, token: str, price_usd: float):
        if price_usd <= 0:
            raise ValueError(f"Reference price must be positive: {price_usd}")
        self.token = token.lower()
        self._usd = Decimal(str(price_usd))

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReferencePrice":
        return cls(settings.REFERENCE_TOKEN, settings.REFERENCE_PRICE_USD)

    @property
    def usd(self) -> Decimal:
        return self._usd

    def update(self, price_usd: float) -> None:
        if price_usd <= 0:
            raise ValueError(f"Reference price must be positive: {price_usd}")
        self._usd = Decimal(str(price_usd))
        logger.info(f"Reference price updated to ${price_usd}")

    def is_reference(self, token: str) -> bool:
        return token.lower() == self.token

    def to_usd(self, amount: int) -> Decimal:
        """18-decimal reference-token amount to USD"""
        return to_units(amount) * self._usd
