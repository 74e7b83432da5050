"""
Input validation utilities
"""
from typing import Iterable, List, Optional, Tuple
import re

from web3 import Web3


ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')


class AddressValidator:
    """Validate blockchain addresses"""

    @staticmethod
    def validate_ethereum_address(address: Optional[str]) -> bool:
        """Validate Ethereum address format"""
        if not address or not isinstance(address, str):
            return False

        if not ADDRESS_PATTERN.match(address):
            return False

        # Mixed-case addresses must carry a valid EIP-55 checksum
        body = address[2:]
        if body != body.lower() and body != body.upper():
            return Web3.is_checksum_address(address)

        return True

    @staticmethod
    def normalize(address: str) -> str:
        """Lower-case form used for set membership"""
        return address.strip().lower()

    @classmethod
    def normalize_all(cls, addresses: Iterable[str]) -> List[str]:
        return [cls.normalize(a) for a in addresses if a]


def parse_pair_spec(spec: str) -> Tuple[str, str]:
    """
    Parse a monitored pair written as "tokenA:tokenB"

    Raises:
        ValueError: if the spec is malformed or an address is invalid
    """
    parts = [p.strip() for p in spec.split(":")]
    if len(parts) != 2:
        raise ValueError(f"Pair must be written as 'tokenA:tokenB': {spec}")

    token_a, token_b = parts
    for token in (token_a, token_b):
        if not AddressValidator.validate_ethereum_address(token):
            raise ValueError(f"Invalid token address in pair {spec}: {token}")

    if token_a.lower() == token_b.lower():
        raise ValueError(f"Pair tokens must differ: {spec}")

    return token_a, token_b


def validate_execution_params(
    min_profit_usd: float,
    max_slippage_bps: int,
    min_profit_percentage: float
) -> List[str]:
    """
    Validate execution thresholds

    Returns:
        List of error messages, empty when valid
    """
    errors = []

    if min_profit_usd <= 0:
        errors.append("MIN_PROFIT_USD must be greater than 0")

    if max_slippage_bps <= 0 or max_slippage_bps > 10_000:
        errors.append("MAX_SLIPPAGE_BPS must be between 0 and 10000 basis points")

    if min_profit_percentage < 0:
        errors.append("MIN_PROFIT_PERCENTAGE must be non-negative")

    return errors
