from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Anything at or below half a centavo counts as settled.
BALANCE_TOLERANCE = Decimal("0.005")


def to_money(value) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def percent_of(amount: Decimal, rate) -> Decimal:
    return to_money(Decimal(amount) * Decimal(rate) / Decimal("100"))


def is_settled(remaining_balance: Decimal) -> bool:
    return remaining_balance <= BALANCE_TOLERANCE


def format_peso(amount: Decimal) -> str:
    return f"₱{to_money(amount):,.2f}"
