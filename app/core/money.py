from decimal import Decimal, ROUND_HALF_UP

CURRENCY = "TJS"
MINOR_PER_MAJOR = 100  # 1 TJS = 100 dirams
# Snapshot vs. recomputed price may differ by one diram of client-side rounding.
EPSILON_MINOR = 1


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def to_minor(value) -> int:
    """Major units (Decimal/str/int/float) -> integer dirams."""
    return int((to_decimal(value) * MINOR_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor(amount_minor: int) -> Decimal:
    return (Decimal(int(amount_minor)) / MINOR_PER_MAJOR).quantize(Decimal("0.01"))


def format_major(amount_minor: int) -> str:
    return f"{from_minor(amount_minor):.2f}"


def amounts_match(a_minor: int, b_minor: int) -> bool:
    return abs(int(a_minor) - int(b_minor)) <= EPSILON_MINOR
