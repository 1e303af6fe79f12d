"""Customer directory lookups."""

from __future__ import annotations

from customers.models import Customer


def find_by_code(code: str) -> Customer | None:
    """Return the customer for an ERP card code, or None when unknown."""
    if not code:
        return None
    return (
        Customer.objects
        .select_related("assigned_agent")
        .filter(code=code.strip())
        .first()
    )
