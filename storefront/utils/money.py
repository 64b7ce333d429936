# storefront/utils/money.py
from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round half-up to cents. Used for every amount that is stored or displayed."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_match(a, b, epsilon: Decimal = CENT) -> bool:
    return abs(to_money(a) - to_money(b)) <= epsilon
