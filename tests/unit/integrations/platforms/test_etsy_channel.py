# tests/unit/integrations/platforms/test_etsy_channel.py
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.enums import OrderStatus
from app.core.exceptions import EtsyAPIError
from app.integrations.platforms.etsy import EtsyChannel, map_etsy_status


def _listing(listing_id, products):
    return {"listing_id": listing_id, "inventory": {"products": products}}


def _product(sku, quantity, enabled=True, price=None):
    return {
        "sku": sku,
        "is_deleted": False,
        "property_values": [{"property_id": 200, "property_name": "Color", "values": ["Red"], "value_ids": [1], "scale_id": None}],
        "offerings": [{
            "price": price or {"amount": 1250, "divisor": 100, "currency_code": "USD"},
            "quantity": quantity,
            "is_enabled": enabled,
        }],
    }


@pytest.fixture
def client():
    client = MagicMock()
    client.get_all_listings = AsyncMock(return_value=[
        _listing(11, [_product("A", 7), _product("B", 2, enabled=False)]),
        {"listing_id": 12, "skus": ["D"], "quantity": 2},
    ])
    client.get_listing_inventory = AsyncMock(return_value={
        "products": [_product("A", 7), _product("A2", 1)],
        "price_on_property": [200],
        "quantity_on_property": [200],
        "sku_on_property": [200],
    })
    client.update_listing_inventory = AsyncMock(return_value={})
    client.get_all_receipts = AsyncMock(return_value=[])
    client.get_shop = AsyncMock(return_value={"shop_id": 1})
    return client


@pytest.fixture
def channel(client):
    return EtsyChannel(client=client)


"""
1. Inventory
"""

async def test_fetch_remote_inventory_sums_enabled_offerings(channel):
    items = await channel.fetch_remote_inventory()

    assert [(i.sku, i.quantity, i.external_id) for i in items] == [("A", 7, "11"), ("B", 0, "11"), ("D", 2, "12")]


async def test_push_quantity_rewrites_listing_inventory(channel, client):
    await channel.fetch_remote_inventory()

    assert await channel.push_quantity("A", 0) is True

    client.get_listing_inventory.assert_awaited_once_with("11")
    listing_id, body = client.update_listing_inventory.await_args.args
    assert listing_id == "11"
    target, other = body["products"]
    assert target["offerings"] == [{"price": 12.5, "quantity": 0, "is_enabled": False}]
    assert other["offerings"][0]["quantity"] == 1
    assert target["property_values"][0]["property_id"] == 200
    assert body["quantity_on_property"] == [200]


async def test_push_quantity_resolves_unknown_sku_by_refetching(channel, client):
    await channel.push_quantity("A", 3)

    client.get_all_listings.assert_awaited_once()


async def test_push_quantity_unknown_sku(channel):
    with pytest.raises(EtsyAPIError):
        await channel.push_quantity("NOPE", 3)


"""
2. Orders
"""

@pytest.mark.parametrize("receipt, expected", [
    ({"status": "Canceled", "was_paid": True}, OrderStatus.CANCELLED),
    ({"was_paid": True, "was_shipped": True, "was_delivered": True}, OrderStatus.DELIVERED),
    ({"was_paid": True, "was_shipped": True}, OrderStatus.SHIPPED),
    ({"was_paid": True}, OrderStatus.PROCESSING),
    ({"status": "Open"}, OrderStatus.PENDING),
])
def test_status_mapping(receipt, expected):
    assert map_etsy_status(receipt) == expected


def test_normalize_receipt(channel):
    order = channel.normalize_order({
        "receipt_id": 987,
        "was_paid": True,
        "create_timestamp": 1704067200,
        "grandtotal": {"amount": 2500, "divisor": 100, "currency_code": "USD"},
        "transactions": [
            {"sku": "A", "quantity": 2, "price": {"amount": 1250, "divisor": 100}},
            {"sku": "", "quantity": 1, "price": {"amount": 100, "divisor": 100}},
        ],
    })

    assert order.external_id == "987"
    assert order.status == OrderStatus.PROCESSING
    assert order.total == Decimal("25")
    assert order.order_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert [(i.sku, i.quantity, i.unit_price) for i in order.items] == [("A", 2, Decimal("12.5")), (None, 1, Decimal("1"))]


async def test_fetch_orders_uses_min_created_and_filters_status(channel, client):
    client.get_all_receipts.return_value = [{"receipt_id": 1, "status": "Paid"}, {"receipt_id": 2, "status": "Completed"}]
    since = datetime(2024, 1, 1, tzinfo=timezone.utc)

    receipts = await channel.fetch_orders(since, statuses=["paid"])

    client.get_all_receipts.assert_awaited_once_with(min_created=1704067200)
    assert [r["receipt_id"] for r in receipts] == [1]


async def test_health_check_reads_the_shop(channel, client):
    client.get_shop.side_effect = EtsyAPIError("Request failed (401)")

    with pytest.raises(EtsyAPIError):
        await channel.health_check()
