"""
Human-readable document reference numbering.

Formats:
    Request            REQ-MP-YYYY-NNN     (yearly sequence)
    Purchase order     BC-YYYY-NNNNN       (yearly sequence)
    Reception          REC-YYYYMMDD-NNN    (daily sequence)
    Inventory / loss   INV-YYYYMMDD-NNN, LOSS-YYYYMMDD-NNN

``latest_reference`` looks up the highest existing reference carrying the
prefix; ``next_reference`` itself is pure.
"""

from datetime import date

from sqlalchemy import func, select

REQUEST_PREFIX = "REQ-MP"
PURCHASE_ORDER_PREFIX = "BC"
RECEPTION_PREFIX = "REC"
INVENTORY_PREFIX = "INV"
LOSS_PREFIX = "LOSS"
LOT_PREFIX = "L"
ADJUSTMENT_LOT_PREFIX = "ADJ"


def yearly_prefix(kind: str, day: date) -> str:
    return f"{kind}-{day.year}-"


def daily_prefix(kind: str, day: date) -> str:
    return f"{kind}-{day:%Y%m%d}-"


def next_reference(prefix: str, width: int, last_reference: str | None) -> str:
    """
    Next reference after ``last_reference`` within ``prefix``.

    >>> next_reference("BC-2025-", 5, None)
    'BC-2025-00001'
    >>> next_reference("BC-2025-", 5, "BC-2025-00041")
    'BC-2025-00042'
    """
    sequence = 1
    if last_reference:
        if not last_reference.startswith(prefix):
            raise ValueError(f"Reference {last_reference} does not start with {prefix}")
        sequence = int(last_reference.rsplit("-", 1)[-1]) + 1
    return f"{prefix}{sequence:0{width}d}"


def latest_reference(session, column, prefix: str) -> str | None:
    """Highest reference in ``column`` starting with ``prefix`` (fixed-width sequences sort lexically)."""
    return session.execute(
        select(func.max(column)).where(column.like(f"{prefix}%"))
    ).scalar_one_or_none()
