"""Fixed-point helpers. Every amount in the ledger is a Decimal with 2 places."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest value a NUMERIC(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")


def to_money(value) -> Decimal:
    """Convert ``value`` to a 2-place Decimal, rejecting anything finer than a cent."""
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    if amount != amount.quantize(CENT, rounding=ROUND_HALF_UP):
        raise ValueError("amount must have at most 2 decimal places")
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"amount must not exceed {MAX_AMOUNT}")
    return amount.quantize(CENT)


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_percent(value) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("percentage must be a number")
    try:
        percent = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid percentage: {value!r}")
    if not percent.is_finite() or percent <= 0:
        raise ValueError("percentages must be positive")
    return percent


def from_db(value) -> Decimal:
    """Normalise a NUMERIC column or aggregate to a 2-place Decimal."""
    if value is None:
        return ZERO
    return quantize(value if isinstance(value, Decimal) else Decimal(str(value)))
