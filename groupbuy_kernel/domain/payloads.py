"""
Payloads -- typed schemas for the structured blobs of a group buy.

Responsibility:
    ``group_buys.items`` and ``group_buys.metadata`` are stored as JSON
    text.  This module is the only place that turns caller input or stored
    text into typed values and back: validate-on-write, parse-on-read.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Item names are non-blank, trimmed and unique within a round.
    - Unit prices are non-negative Decimals; floats are rejected.
    - Metadata is a flat mapping of str -> str.

Failure modes:
    - ValidationError (field="items" / "metadata") on any malformed value.

Accepted item input shapes:
    [ItemSpec(...)]                          typed
    [{"name": "蝦", "unit_price": "100"}]    stored / JSON form
    [("蝦", "100")]                          pairs
    {"蝦": "100"}                            name -> price mapping
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from groupbuy_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class ItemSpec:
    """One purchasable item of a round."""

    name: str
    unit_price: Decimal

    def to_json(self) -> dict[str, str]:
        return {"name": self.name, "unit_price": str(self.unit_price)}


def parse_price(value: Any, item_name: str = "") -> Decimal:
    """Coerce a price to Decimal, rejecting floats, bools and negatives."""
    if isinstance(value, (bool, float)) or value is None:
        raise ValidationError(
            f"Price of {item_name!r} must be a decimal string or integer, got {value!r}",
            field="items",
        )
    try:
        price = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValidationError(
            f"Price of {item_name!r} is not a number: {value!r}", field="items"
        ) from None
    if not price.is_finite() or price < 0:
        raise ValidationError(
            f"Price of {item_name!r} must be a non-negative number, got {value!r}",
            field="items",
        )
    return price


def _item_from(raw: Any) -> ItemSpec:
    if isinstance(raw, ItemSpec):
        name, price = raw.name, raw.unit_price
    elif isinstance(raw, Mapping):
        if "name" not in raw or "unit_price" not in raw:
            raise ValidationError(
                f"Item must have 'name' and 'unit_price': {dict(raw)!r}", field="items"
            )
        name, price = raw["name"], raw["unit_price"]
    elif isinstance(raw, (tuple, list)) and len(raw) == 2:
        name, price = raw
    else:
        raise ValidationError(f"Malformed item: {raw!r}", field="items")

    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Item name must be a non-empty string", field="items")
    name = name.strip()
    return ItemSpec(name=name, unit_price=parse_price(price, name))


def parse_items(raw: Any) -> tuple[ItemSpec, ...]:
    """
    Validate and normalize an item list.

    Raises:
        ValidationError: empty list, malformed entry, or duplicate name.
    """
    if raw is None or isinstance(raw, (str, bytes)):
        raise ValidationError("Items must be a list or mapping", field="items")
    if isinstance(raw, Mapping):
        entries = list(raw.items())
    else:
        try:
            entries = list(raw)
        except TypeError:
            raise ValidationError("Items must be a list or mapping", field="items") from None
    if not entries:
        raise ValidationError("A group buy needs at least one item", field="items")

    items = tuple(_item_from(entry) for entry in entries)
    seen: set[str] = set()
    for item in items:
        if item.name in seen:
            raise ValidationError(f"Duplicate item name: {item.name!r}", field="items")
        seen.add(item.name)
    return items


def items_to_json(items: tuple[ItemSpec, ...]) -> list[dict[str, str]]:
    return [item.to_json() for item in items]


def parse_metadata(raw: Any) -> dict[str, str]:
    """Validate a metadata mapping; ``None`` means no metadata."""
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError("Metadata must be a mapping", field="metadata")
    result: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Metadata keys must be non-empty strings", field="metadata")
        if not isinstance(value, str):
            raise ValidationError(
                f"Metadata value for {key!r} must be a string", field="metadata"
            )
        result[key.strip()] = value
    return result


def find_item(items: tuple[ItemSpec, ...], name: str) -> ItemSpec | None:
    for item in items:
        if item.name == name:
            return item
    return None
