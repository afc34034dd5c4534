"""Swap fee arithmetic."""

# Granularity of the fee rate: rates are expressed in parts per million.
FEE_RATE_TOTAL_PARTS = 1_000_000


def _div_truncate(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def calc_fee(amount: int, fee_base: int, fee_rate: int) -> int:
    """Return the swap fee for a swap amount, truncating the rate part."""
    return fee_base + _div_truncate(amount * fee_rate, FEE_RATE_TOTAL_PARTS)


def fee_rate_as_percentage(fee_rate: int) -> float:
    """Convert a parts-per-million fee rate to a percentage."""
    return fee_rate / (FEE_RATE_TOTAL_PARTS / 100)