"""Tests for the typed item/metadata schemas (groupbuy_kernel.domain.payloads)."""

from decimal import Decimal

import pytest

from groupbuy_kernel.domain.payloads import (
    ItemSpec,
    find_item,
    items_to_json,
    parse_items,
    parse_metadata,
    parse_price,
)
from groupbuy_kernel.exceptions import ValidationError


class TestParseItems:
    def test_accepts_stored_form(self):
        items = parse_items([{"name": "蝦", "unit_price": "100"}])
        assert items == (ItemSpec(name="蝦", unit_price=Decimal("100")),)

    def test_accepts_pairs_and_mapping(self):
        assert parse_items([("蝦", "100")]) == parse_items({"蝦": "100"})

    def test_accepts_item_specs(self):
        spec = ItemSpec(name="蟹", unit_price=Decimal("250.5"))
        assert parse_items([spec]) == (spec,)

    def test_integer_price_is_allowed(self):
        (item,) = parse_items([("rice", 30)])
        assert item.unit_price == Decimal("30")

    def test_names_are_trimmed(self):
        (item,) = parse_items([("  蝦 ", "1")])
        assert item.name == "蝦"

    def test_order_is_preserved(self):
        items = parse_items([("b", "1"), ("a", "2"), ("c", "3")])
        assert [item.name for item in items] == ["b", "a", "c"]

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            {},
            "蝦",
            [{"name": "蝦"}],
            [("", "1")],
            [("   ", "1")],
            [("蝦", "-1")],
            [("蝦", "abc")],
            [("蝦", "NaN")],
            [("蝦", 1.5)],
            [("蝦", True)],
            [("蝦", None)],
            [("蝦", "1"), ("蝦", "2")],
            [42],
        ],
    )
    def test_rejects_malformed(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_items(raw)
        assert exc_info.value.field == "items"

    def test_round_trips_through_json_form(self):
        items = parse_items([("蝦", "100.50"), ("蟹", "0")])
        assert parse_items(items_to_json(items)) == items
        assert items_to_json(items)[0] == {"name": "蝦", "unit_price": "100.50"}


class TestParsePrice:
    def test_zero_is_allowed(self):
        assert parse_price("0") == Decimal("0")

    def test_float_rejected_even_if_exact(self):
        with pytest.raises(ValidationError):
            parse_price(2.0)


class TestParseMetadata:
    def test_none_is_empty(self):
        assert parse_metadata(None) == {}

    def test_string_mapping(self):
        assert parse_metadata({"deadline": "週五"}) == {"deadline": "週五"}

    @pytest.mark.parametrize(
        "raw",
        [["a"], {"k": 1}, {"": "v"}, {1: "v"}, "text"],
    )
    def test_rejects_non_string_mappings(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_metadata(raw)
        assert exc_info.value.field == "metadata"


def test_find_item():
    items = parse_items({"蝦": "100", "蟹": "250"})
    assert find_item(items, "蟹").unit_price == Decimal("250")
    assert find_item(items, "魚") is None
