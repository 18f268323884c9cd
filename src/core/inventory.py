"""Inventory helpers — stock levels and quantity changes.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Sequence

from src.core.errors import ValidationError

if TYPE_CHECKING:
    from src.data.models import Item

STOCK_LOW = "low"
STOCK_MEDIUM = "medium"
STOCK_GOOD = "good"


def validate_item_fields(name: str, quantity: int, min_quantity: int) -> str:
    """Check user-supplied item fields; returns the cleaned name."""
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Item name is required")
    if quantity < 0:
        raise ValidationError(f"Quantity cannot be negative (got {quantity})")
    if min_quantity < 0:
        raise ValidationError(f"Minimum quantity cannot be negative (got {min_quantity})")
    return cleaned


def adjust_quantity(item: Item, change: int) -> Item:
    """Return a copy of ``item`` with ``change`` applied, never below zero."""
    return replace(item, quantity=max(0, item.quantity + change))


def stock_status(item: Item) -> str:
    """Classify stock as low (at or under minimum), medium (up to 2x) or good."""
    if item.quantity <= item.min_quantity:
        return STOCK_LOW
    if item.quantity <= item.min_quantity * 2:
        return STOCK_MEDIUM
    return STOCK_GOOD


def low_stock_items(items: Sequence[Item]) -> list[Item]:
    return [item for item in items if stock_status(item) == STOCK_LOW]
