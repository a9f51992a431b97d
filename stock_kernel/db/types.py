"""
Module: stock_kernel.db.types
Responsibility: Quantity coercion and rendering shared by validation,
    the batch ledger and user-facing messages, so that a quantity is
    compared and printed the same way everywhere.
Architecture position: Kernel > DB.  Pure functions; no session, no
    SQLAlchemy import.

Invariants enforced:
    CRITICAL: No floats for quantities or costs.  Values entering the ledger
    pass through to_quantity(), which rejects floats and non-finite values.
"""

from decimal import Decimal, InvalidOperation


def to_quantity(value: Decimal | int | str) -> Decimal:
    """
    Coerce a caller-supplied value to a Decimal quantity.

    Raises:
        TypeError: if value is a float (binary rounding is not acceptable).
        ValueError: if value is not a finite number.
    """
    if isinstance(value, float):
        raise TypeError("Quantities must be Decimal, int or str, not float")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a valid quantity: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a valid quantity: {value!r}")
    return result


def format_quantity(value: Decimal) -> str:
    """Render a quantity without trailing zeros ("10", "2.5")."""
    return format(value.normalize(), "f")
