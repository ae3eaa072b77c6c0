# tests/unit/services/test_inventory_ledger.py
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.enums import AuditChangeType, ChannelName, OrderStatus
from app.core.exceptions import (
    AuditWriteError,
    CatalogReadError,
    InsufficientInventoryError,
    NotFoundError,
)
from app.database import build_sessionmaker
from app.schemas.inventory import InventoryAdjustment, StockItem
from app.schemas.sync import ChannelOrder, ChannelOrderItem
from app.services.inventory_ledger import InventoryLedger


@pytest.fixture
async def empty_ledger():
    """Ledger over a database with no tables, so every query fails"""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    yield InventoryLedger(build_sessionmaker(engine))
    await engine.dispose()


def _order(external_id, items, status=OrderStatus.PROCESSING, channel=ChannelName.AMAZON):
    return ChannelOrder(
        channel=channel,
        external_id=external_id,
        status=status,
        total=Decimal("20.00"),
        items=[ChannelOrderItem(sku=sku, quantity=qty, unit_price=Decimal("10.00")) for sku, qty in items],
    )


"""
1. Catalog and channel records
"""

async def test_catalog_only_contains_stocked_variants(ledger, variant_ids):
    catalog = await ledger.get_catalog_for_sync()

    assert sorted(entry.sku for entry in catalog) == ["A", "B", "D"]
    entry = next(e for e in catalog if e.sku == "A")
    assert entry.local_quantity == 10
    assert entry.product_name == "Guitar Strings"
    assert entry.channel_records == {}


async def test_catalog_read_failure_raises(empty_ledger):
    with pytest.raises(CatalogReadError):
        await empty_ledger.get_catalog_for_sync()


async def test_upsert_channel_record_is_last_write_wins(ledger, variant_ids):
    await ledger.upsert_channel_record(variant_ids["A"], ChannelName.AMAZON, 7, external_id="ASIN-A")
    record = await ledger.upsert_channel_record(variant_ids["A"], ChannelName.AMAZON, 10)

    assert record.quantity == 10
    assert record.external_id == "ASIN-A"

    entry = await ledger.get_variant(variant_ids["A"])
    assert list(entry.channel_records) == [ChannelName.AMAZON]
    assert entry.channel_records[ChannelName.AMAZON].quantity == 10


async def test_upsert_channel_record_accepts_channel_name_strings(ledger, variant_ids):
    record = await ledger.upsert_channel_record(variant_ids["B"], "ETSY", 4)
    assert record.channel == ChannelName.ETSY


@pytest.mark.parametrize("channel", [ChannelName.PWA, "EBAY"])
async def test_upsert_channel_record_rejects_non_marketplace_channels(ledger, variant_ids, channel):
    with pytest.raises(NotFoundError):
        await ledger.upsert_channel_record(variant_ids["A"], channel, 1)


async def test_upsert_channel_record_unknown_variant(ledger, variant_ids):
    with pytest.raises(NotFoundError):
        await ledger.upsert_channel_record(9999, ChannelName.AMAZON, 1)


"""
2. Audit trail
"""

async def test_append_audit_persists_row(ledger, variant_ids, read_audit):
    entry_id = await ledger.append_audit(variant_ids["A"], 3, AuditChangeType.SYNC_CORRECTION, "channel sync")

    rows = await read_audit(variant_ids["A"])
    assert [r.id for r in rows] == [entry_id]
    assert rows[0].quantity_change == 3
    assert rows[0].change_type == "SYNC_CORRECTION"


async def test_append_audit_failure_is_never_silent(empty_ledger):
    with pytest.raises(AuditWriteError) as exc_info:
        await empty_ledger.append_audit(1, -2, AuditChangeType.ADJUSTMENT, "count")

    assert exc_info.value.variant_id == 1
    assert exc_info.value.quantity_change == -2
    assert exc_info.value.change_type == "ADJUSTMENT"


async def test_audit_trail_is_newest_first(ledger, variant_ids):
    await ledger.append_audit(variant_ids["A"], 1, AuditChangeType.ADJUSTMENT, "first")
    await ledger.append_audit(variant_ids["A"], 2, AuditChangeType.ADJUSTMENT, "second")
    await ledger.append_audit(variant_ids["B"], 5, AuditChangeType.ADJUSTMENT, "other")

    trail = await ledger.get_audit_trail(variant_ids["A"])
    assert [e.reason for e in trail] == ["second", "first"]
    assert trail[0].sku == "A"

    assert len(await ledger.get_audit_trail(limit=2)) == 2


"""
3. Reservations
"""

async def test_reserve_for_order_decrements_and_audits(ledger, variant_ids, read_quantity, read_audit):
    await ledger.reserve_for_order("PWA-1", [
        StockItem(variant_id=variant_ids["A"], quantity=4),
        StockItem(variant_id=variant_ids["B"], quantity=5),
    ])

    assert await read_quantity(variant_ids["A"]) == 6
    assert await read_quantity(variant_ids["B"]) == 0

    rows = await read_audit()
    assert [(r.variant_id, r.quantity_change, r.change_type) for r in rows] == [
        (variant_ids["A"], -4, "RESERVED"),
        (variant_ids["B"], -5, "RESERVED"),
    ]
    assert rows[0].reason == "Order PWA-1"


async def test_reserve_for_order_is_all_or_nothing(ledger, variant_ids, read_quantity, read_audit):
    with pytest.raises(InsufficientInventoryError) as exc_info:
        await ledger.reserve_for_order("PWA-2", [
            StockItem(variant_id=variant_ids["A"], quantity=4),
            StockItem(variant_id=variant_ids["D"], quantity=3),
        ])

    assert exc_info.value.variant_ids == [variant_ids["D"]]
    assert await read_quantity(variant_ids["A"]) == 10
    assert await read_quantity(variant_ids["D"]) == 2
    assert await read_audit() == []


async def test_reserve_for_order_never_goes_negative(ledger, variant_ids, read_quantity):
    await ledger.reserve_for_order("PWA-3", [StockItem(variant_id=variant_ids["D"], quantity=2)])

    with pytest.raises(InsufficientInventoryError):
        await ledger.reserve_for_order("PWA-4", [StockItem(variant_id=variant_ids["D"], quantity=1)])

    assert await read_quantity(variant_ids["D"]) == 0


async def test_reserve_for_order_unknown_variant_rolls_back(ledger, variant_ids, read_quantity):
    with pytest.raises(NotFoundError):
        await ledger.reserve_for_order("PWA-5", [
            StockItem(variant_id=variant_ids["A"], quantity=1),
            StockItem(variant_id=9999, quantity=1),
        ])

    assert await read_quantity(variant_ids["A"]) == 10


async def test_release_for_order_returns_stock(ledger, variant_ids, read_quantity, read_audit):
    released = await ledger.release_for_order("PWA-6", [
        StockItem(variant_id=variant_ids["C"], quantity=2),
        StockItem(variant_id=9999, quantity=1),
    ])

    assert released == [variant_ids["C"]]
    assert await read_quantity(variant_ids["C"]) == 2
    rows = await read_audit()
    assert [(r.quantity_change, r.change_type) for r in rows] == [(2, "RELEASED")]


"""
4. Bulk adjustments
"""

async def test_bulk_adjust_applies_valid_items_and_reports_the_rest(ledger, variant_ids, read_quantity, read_audit):
    result = await ledger.bulk_adjust([
        InventoryAdjustment(variant_id=variant_ids["A"], new_quantity=12, reason="Stock count"),
        InventoryAdjustment(variant_id=9999, new_quantity=3),
        InventoryAdjustment(variant_id=variant_ids["B"], new_quantity=-1),
    ])

    assert result.updated == [variant_ids["A"]]
    assert result.updated_count == 1
    assert {(s.variant_id, s.reason) for s in result.skipped} == {
        (9999, "not found"),
        (variant_ids["B"], "negative quantity"),
    }

    assert await read_quantity(variant_ids["A"]) == 12
    assert await read_quantity(variant_ids["B"]) == 5
    rows = await read_audit()
    assert [(r.variant_id, r.quantity_change, r.change_type, r.reason) for r in rows] == [
        (variant_ids["A"], 2, "ADJUSTMENT", "Stock count"),
    ]


async def test_bulk_adjust_without_change_writes_no_audit(ledger, variant_ids, read_audit):
    result = await ledger.bulk_adjust([InventoryAdjustment(variant_id=variant_ids["B"], new_quantity=5)])

    assert result.updated == [variant_ids["B"]]
    assert await read_audit() == []


"""
5. Marketplace orders
"""

async def test_record_channel_order_takes_sold_stock(ledger, variant_ids, read_quantity, read_audit):
    record = await ledger.record_channel_order(_order("AMZ-1", [("A", 2), ("B", 1)]))

    assert record is not None
    assert record.decremented == {variant_ids["A"]: 2, variant_ids["B"]: 1}
    assert record.skipped_skus == []
    assert await read_quantity(variant_ids["A"]) == 8
    assert await read_quantity(variant_ids["B"]) == 4

    rows = await read_audit(variant_ids["A"])
    assert rows[0].change_type == "RESERVED"
    assert rows[0].reason == "Order AMAZON AMZ-1"


async def test_record_channel_order_is_idempotent(ledger, variant_ids, read_quantity):
    first = await ledger.record_channel_order(_order("AMZ-2", [("A", 1)]))
    second = await ledger.record_channel_order(_order("AMZ-2", [("A", 1)]))

    assert first is not None
    assert second is None
    assert await ledger.order_exists(ChannelName.AMAZON, "AMZ-2")
    assert await read_quantity(variant_ids["A"]) == 9


async def test_same_external_id_on_another_channel_is_a_different_order(ledger, variant_ids):
    await ledger.record_channel_order(_order("X-1", [("A", 1)]))
    record = await ledger.record_channel_order(_order("X-1", [("A", 1)], channel=ChannelName.ETSY))

    assert record is not None


async def test_record_channel_order_skips_unknown_skus(ledger, variant_ids, read_quantity):
    record = await ledger.record_channel_order(_order("AMZ-3", [("NOPE", 1), ("B", 2)]))

    assert record.skipped_skus == ["NOPE"]
    assert record.decremented == {variant_ids["B"]: 2}
    assert await read_quantity(variant_ids["B"]) == 3


async def test_record_channel_order_clamps_at_zero(ledger, variant_ids, read_quantity, read_audit):
    record = await ledger.record_channel_order(_order("AMZ-4", [("D", 5)]))

    assert record.decremented == {variant_ids["D"]: 2}
    assert await read_quantity(variant_ids["D"]) == 0
    rows = await read_audit(variant_ids["D"])
    assert [r.quantity_change for r in rows] == [-2]


async def test_cancelled_order_is_stored_without_taking_stock(ledger, variant_ids, read_quantity, read_audit):
    record = await ledger.record_channel_order(_order("AMZ-5", [("A", 3)], status=OrderStatus.CANCELLED))

    assert record is not None
    assert record.decremented == {}
    assert await read_quantity(variant_ids["A"]) == 10
    assert await read_audit() == []


"""
6. Reporting
"""

async def test_low_stock_alerts(ledger, variant_ids):
    alerts = await ledger.get_low_stock_alerts(threshold=2)
    assert [a.sku for a in alerts] == ["C", "D"]


async def test_inventory_value(ledger, variant_ids):
    value = await ledger.get_inventory_value()

    assert value.total_items == 3
    assert value.total_value == Decimal("85")
    assert value.min_price == Decimal("5")
    assert value.max_price == Decimal("5")


async def test_inventory_levels(ledger, variant_ids):
    await ledger.upsert_channel_record(variant_ids["A"], ChannelName.AMAZON, 10)
    await ledger.upsert_channel_record(variant_ids["A"], ChannelName.ETSY, 8)
    await ledger.upsert_channel_record(variant_ids["B"], ChannelName.ETSY, 5)

    levels = await ledger.get_inventory_levels(variant_ids["A"])
    assert [(level.channel, level.quantity) for level in levels] == [
        (ChannelName.AMAZON, 10),
        (ChannelName.ETSY, 8),
    ]
    assert len(await ledger.get_inventory_levels()) == 3


async def test_stock_movement_summary(ledger, variant_ids):
    await ledger.reserve_for_order("PWA-7", [StockItem(variant_id=variant_ids["A"], quantity=3)])
    await ledger.release_for_order("PWA-7", [StockItem(variant_id=variant_ids["A"], quantity=1)])

    movements = await ledger.get_stock_movement_summary()
    assert len(movements) == 1
    movement = movements[0]
    assert movement.sku == "A"
    assert movement.stock_in == 1
    assert movement.stock_out == 3
    assert movement.total_movements == 2
    assert movement.last_movement is not None


async def test_cached_discrepancies_use_last_known_records(ledger, variant_ids):
    await ledger.upsert_channel_record(variant_ids["A"], ChannelName.AMAZON, 7)
    await ledger.upsert_channel_record(variant_ids["B"], ChannelName.AMAZON, 5)

    discrepancies = await ledger.get_cached_discrepancies()

    assert len(discrepancies) == 1
    assert discrepancies[0].sku == "A"
    assert discrepancies[0].local_quantity == 10
    assert discrepancies[0].channel_quantity == 7
