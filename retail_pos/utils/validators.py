# utils/validators.py
from decimal import Decimal, InvalidOperation


# ---- Numeric parsing & validators ----

def try_parse_decimal(x):
    """
    Best-effort parse to Decimal.

    Returns:
        (ok: bool, value: Decimal|None)

    ok == False means parsing failed and value is None. Floats go through
    str() so 0.1 parses as Decimal('0.1').
    """
    if x is None or isinstance(x, bool):
        return False, None
    try:
        val = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        return False, None
    if not val.is_finite():
        return False, None
    return True, val


def parse_decimal(x) -> Decimal:
    """
    Strict parse to Decimal; raises ValueError with a clear message on failure.
    """
    ok, val = try_parse_decimal(x)
    if not ok:
        raise ValueError(f"Could not parse '{x}' as a number.")
    return val  # type: ignore[return-value]


def parse_optional_decimal(x) -> Decimal | None:
    """parse_decimal(), but None/'' pass through as None."""
    if x is None or (isinstance(x, str) and not x.strip()):
        return None
    return parse_decimal(x)


def is_positive_int(x) -> bool:
    """
    True iff x is a whole number > 0 (ints, or numeric strings like '3').
    Booleans and fractional values are rejected.
    """
    ok, val = try_parse_decimal(x)
    return bool(ok and val is not None and val > 0 and val == val.to_integral_value())
