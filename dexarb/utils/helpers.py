"""
Utility helper functions
Fixed-point and constant-product math shared by adapters and analytics
"""
import inspect
from typing import Any, Tuple
from decimal import Decimal
from datetime import datetime, timezone


DECIMALS = 18
SCALE = 10 ** DECIMALS
BPS_DENOMINATOR = 10_000
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def get_pair_key(token_a: str, token_b: str) -> str:
    """Canonical key for a pair: lower-cased addresses in lexicographic order"""
    first, second = sorted((token_a.lower(), token_b.lower()))
    return f"{first}-{second}"


def parse_pair_key(pair_key: str) -> Tuple[str, str]:
    token_a, token_b = pair_key.split("-")
    return token_a, token_b


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """Order two tokens the way Uniswap orders token0/token1"""
    if token_a.lower() < token_b.lower():
        return token_a, token_b
    return token_b, token_a


def scale_to_18(amount: int, decimals: int) -> int:
    """Rescale a raw token amount to the 18-decimal base"""
    if decimals <= DECIMALS:
        return amount * 10 ** (DECIMALS - decimals)
    return amount // 10 ** (decimals - DECIMALS)


def scale_from_18(amount: int, decimals: int) -> int:
    """Rescale an 18-decimal amount to a token's native units, rounding down"""
    if decimals <= DECIMALS:
        return amount // 10 ** (DECIMALS - decimals)
    return amount * 10 ** (decimals - DECIMALS)


def calculate_price(
    reserve_in: int,
    reserve_out: int,
    decimals_in: int,
    decimals_out: int
) -> Tuple[int, int]:
    """
    Price of the out-token in units of the in-token, and its inverse.

    Both directions are built from the scaled reserves rather than by
    dividing one result into the other, so each carries a single rounding.

    Returns:
        Tuple of (price, inverse_price), 18-decimal fixed point
    """
    scaled_in = scale_to_18(reserve_in, decimals_in)
    scaled_out = scale_to_18(reserve_out, decimals_out)

    if scaled_in <= 0 or scaled_out <= 0:
        raise ValueError(f"Reserves must be positive: in={reserve_in}, out={reserve_out}")

    price = scaled_out * SCALE // scaled_in
    inverse_price = scaled_in * SCALE // scaled_out
    return price, inverse_price


def calculate_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_bps: int = 30
) -> int:
    """
    Constant-product output with the fee taken on the input:
        amountOut = amountIn*(1-fee)*reserveOut / (reserveIn + amountIn*(1-fee))
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError(f"Reserves must be positive: in={reserve_in}, out={reserve_out}")
    if not 0 <= fee_bps < BPS_DENOMINATOR:
        raise ValueError(f"Fee must be in [0, {BPS_DENOMINATOR}) bps: {fee_bps}")

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def calculate_price_impact(amount_in: int, reserve_in: int) -> Decimal:
    """Price impact in percent: amountIn / reserveIn * 100"""
    if reserve_in <= 0:
        return Decimal(100)
    return min(Decimal(amount_in) * 100 / Decimal(reserve_in), Decimal(100))


def apply_bps(amount: int, bps: int) -> int:
    return amount * bps // BPS_DENOMINATOR


def bps_to_percent(bps: int) -> Decimal:
    """50 bps -> 0.5%"""
    return Decimal(bps) / 100


def percent_to_bps(percent: float) -> int:
    """0.09% -> 9 bps"""
    return int((Decimal(str(percent)) * 100).to_integral_value())


def to_units(amount: int) -> Decimal:
    """Fixed-point integer to a human-readable Decimal"""
    return Decimal(amount) / SCALE


def from_units(value) -> int:
    """Human-readable value ("0.1", 10, Decimal) to 18-decimal fixed point"""
    return int(Decimal(str(value)) * SCALE)


def get_utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


async def resolve_callback(result: Any) -> Any:
    """Await the result of a callback that may be sync or async"""
    if inspect.isawaitable(result):
        return await result
    return result
