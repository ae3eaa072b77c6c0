# app/services/inventory_ledger.py
"""
Inventory ledger: the only writer of variant quantities, channel inventory
records and the inventory audit log.

Every operation opens its own short session so no transaction is ever held
open across marketplace I/O. Operations that change inventory_quantity do so
with row locks or conditional updates inside one transaction, and write their
audit rows in that same transaction.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.enums import AuditChangeType, ChannelName, OrderStatus
from app.core.exceptions import (
    AuditWriteError,
    CatalogReadError,
    InsufficientInventoryError,
    InventoryServiceError,
    NotFoundError,
)
from app.models import ChannelInventory, InventoryAuditLog, Order, OrderItem, Product, ProductVariant
from app.schemas.inventory import (
    AuditEntry,
    BulkAdjustResult,
    CachedDiscrepancy,
    CatalogEntry,
    ChannelRecordView,
    InventoryAdjustment,
    InventoryLevel,
    InventoryValue,
    LowStockItem,
    OrderRecord,
    SkippedAdjustment,
    StockItem,
    StockMovement,
)
from app.schemas.sync import ChannelOrder

logger = logging.getLogger(__name__)


def _as_channel(channel: Union[ChannelName, str]) -> Optional[ChannelName]:
    try:
        return ChannelName(channel)
    except ValueError:
        return None


def _to_catalog_entry(variant: ProductVariant) -> CatalogEntry:
    records: Dict[ChannelName, ChannelRecordView] = {}
    for record in variant.channel_records:
        channel = _as_channel(record.channel)
        if channel is None:
            logger.warning(f"Ignoring channel record with unknown channel '{record.channel}' for variant {variant.id}")
            continue
        records[channel] = ChannelRecordView(
            channel=channel,
            quantity=record.quantity,
            external_id=record.external_id,
            last_synced=record.last_synced,
        )

    return CatalogEntry(
        variant_id=variant.id,
        product_id=variant.product_id,
        sku=variant.sku,
        product_name=variant.product.name if variant.product else variant.name,
        variant_name=variant.name,
        price=variant.price or Decimal("0"),
        local_quantity=variant.inventory_quantity,
        channel_records=records,
    )


class InventoryLedger:
    """Persistent quantities per variant and channel, plus the audit trail"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _add_audit(
        session: AsyncSession,
        variant_id: int,
        quantity_change: int,
        change_type: AuditChangeType,
        reason: Optional[str],
    ) -> InventoryAuditLog:
        entry = InventoryAuditLog(
            variant_id=variant_id,
            quantity_change=quantity_change,
            change_type=AuditChangeType(change_type).value,
            reason=reason,
            created_at=datetime.now(timezone.utc),
        )
        session.add(entry)
        return entry

    # --- Sync reads ---

    async def get_catalog_for_sync(self) -> List[CatalogEntry]:
        """
        Snapshot of every variant with stock on hand, annotated with its
        channel records. Read-only; takes no row locks.

        Raises:
            CatalogReadError: if the catalog cannot be read at all
        """
        stmt = (
            select(ProductVariant)
            .join(Product, ProductVariant.product_id == Product.id)
            .where(ProductVariant.inventory_quantity > 0)
            .options(selectinload(ProductVariant.product), selectinload(ProductVariant.channel_records))
            .order_by(Product.name, ProductVariant.name)
        )
        try:
            async with self.session_factory() as session:
                variants = (await session.execute(stmt)).scalars().all()
                return [_to_catalog_entry(v) for v in variants]
        except SQLAlchemyError as e:
            logger.error(f"Error getting products for sync: {e}", exc_info=True)
            raise CatalogReadError("Failed to get products for synchronization") from e

    async def get_variant(self, variant_id: int) -> CatalogEntry:
        async with self.session_factory() as session:
            stmt = (
                select(ProductVariant)
                .where(ProductVariant.id == variant_id)
                .options(selectinload(ProductVariant.product), selectinload(ProductVariant.channel_records))
            )
            variant = (await session.execute(stmt)).scalar_one_or_none()
            if variant is None:
                raise NotFoundError(f"Variant {variant_id} not found")
            return _to_catalog_entry(variant)

    # --- Channel records and audit ---

    async def upsert_channel_record(
        self,
        variant_id: int,
        channel: Union[ChannelName, str],
        quantity: int,
        external_id: Optional[str] = None,
    ) -> ChannelRecordView:
        """
        Record the quantity a channel now holds for a variant (last write wins).

        Raises:
            NotFoundError: unknown variant, unknown channel, or PWA
        """
        resolved = _as_channel(channel)
        if resolved is None or not resolved.is_external:
            raise NotFoundError(f"Channel {channel} has no inventory records")

        # A concurrent insert of the same key loses on the unique constraint; retry as an update
        for attempt in range(2):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        if await session.get(ProductVariant, variant_id) is None:
                            raise NotFoundError(f"Variant {variant_id} not found")

                        record = (await session.execute(
                            select(ChannelInventory)
                            .where(ChannelInventory.variant_id == variant_id, ChannelInventory.channel == resolved.value)
                            .with_for_update()
                        )).scalar_one_or_none()

                        now = datetime.now(timezone.utc)
                        if record is None:
                            record = ChannelInventory(variant_id=variant_id, channel=resolved.value)
                            session.add(record)
                        record.quantity = quantity
                        record.last_synced = now
                        if external_id is not None:
                            record.external_id = external_id

                    logger.debug(f"Channel record {resolved.value}/{variant_id} set to {quantity}")
                    return ChannelRecordView(
                        channel=resolved,
                        quantity=record.quantity,
                        external_id=record.external_id,
                        last_synced=record.last_synced,
                    )
            except IntegrityError:
                if attempt:
                    raise
                logger.info(f"Concurrent insert of channel record {resolved.value}/{variant_id}, retrying")

    async def append_audit(
        self,
        variant_id: int,
        quantity_change: int,
        change_type: AuditChangeType,
        reason: Optional[str] = None,
    ) -> int:
        """
        Append one audit row in its own transaction.

        Raises:
            AuditWriteError: the row did not persist
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    entry = self._add_audit(session, variant_id, quantity_change, change_type, reason)
                    await session.flush()
                    return entry.id
        except SQLAlchemyError as e:
            logger.error(
                f"Audit write failed for variant {variant_id} ({change_type} {quantity_change:+d}): {e}"
            )
            raise AuditWriteError(
                f"Failed to persist audit entry for variant {variant_id}",
                variant_id=variant_id,
                quantity_change=quantity_change,
                change_type=str(AuditChangeType(change_type).value),
            ) from e

    # --- Quantity mutations ---

    async def reserve_for_order(self, order_ref: str, items: Iterable[StockItem]) -> None:
        """
        Take stock for every item or for none of them.

        Raises:
            InsufficientInventoryError: an item could not be covered; nothing was reserved
            NotFoundError: an item references an unknown variant; nothing was reserved
        """
        items = list(items)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for item in items:
                        result = await session.execute(
                            update(ProductVariant)
                            .where(
                                ProductVariant.id == item.variant_id,
                                ProductVariant.inventory_quantity >= item.quantity,
                            )
                            .values(inventory_quantity=ProductVariant.inventory_quantity - item.quantity)
                            .execution_options(synchronize_session=False)
                        )
                        if result.rowcount == 0:
                            if await session.get(ProductVariant, item.variant_id) is None:
                                raise NotFoundError(f"Variant {item.variant_id} not found")
                            raise InsufficientInventoryError(
                                f"Insufficient inventory for variant {item.variant_id}",
                                variant_ids=[item.variant_id],
                            )
                        self._add_audit(session, item.variant_id, -item.quantity, AuditChangeType.RESERVED, f"Order {order_ref}")
        except InventoryServiceError:
            logger.info(f"Reservation for order {order_ref} rolled back")
            raise
        except SQLAlchemyError as e:
            logger.error(f"Reservation for order {order_ref} failed: {e}")
            raise InventoryServiceError(f"Reservation for order {order_ref} failed") from e

        logger.info(f"Reserved {len(items)} item(s) for order {order_ref}")

    async def release_for_order(self, order_ref: str, items: Iterable[StockItem]) -> List[int]:
        """Give reserved stock back (order cancelled). Unknown variants are skipped."""
        released: List[int] = []
        async with self.session_factory() as session:
            async with session.begin():
                for item in items:
                    result = await session.execute(
                        update(ProductVariant)
                        .where(ProductVariant.id == item.variant_id)
                        .values(inventory_quantity=ProductVariant.inventory_quantity + item.quantity)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        logger.warning(f"Variant {item.variant_id} not found, skipping release for order {order_ref}")
                        continue
                    self._add_audit(session, item.variant_id, item.quantity, AuditChangeType.RELEASED, f"Order {order_ref} cancelled")
                    released.append(item.variant_id)

        logger.info(f"Released {len(released)} item(s) for order {order_ref}")
        return released

    async def bulk_adjust(self, updates: Iterable[InventoryAdjustment]) -> BulkAdjustResult:
        """Set absolute quantities; unknown variants and negative targets are reported, not fatal"""
        result = BulkAdjustResult()

        async with self.session_factory() as session:
            async with session.begin():
                for adjustment in updates:
                    if adjustment.new_quantity < 0:
                        result.skipped.append(SkippedAdjustment(variant_id=adjustment.variant_id, reason="negative quantity"))
                        continue

                    variant = (await session.execute(
                        select(ProductVariant).where(ProductVariant.id == adjustment.variant_id).with_for_update()
                    )).scalar_one_or_none()
                    if variant is None:
                        logger.warning(f"Variant {adjustment.variant_id} not found, skipping")
                        result.skipped.append(SkippedAdjustment(variant_id=adjustment.variant_id, reason="not found"))
                        continue

                    delta = adjustment.new_quantity - variant.inventory_quantity
                    variant.inventory_quantity = adjustment.new_quantity
                    if delta:
                        self._add_audit(session, variant.id, delta, AuditChangeType.ADJUSTMENT, adjustment.reason)
                    result.updated.append(variant.id)

        logger.info(f"Bulk adjust: {len(result.updated)} updated, {len(result.skipped)} skipped")
        return result

    async def order_exists(self, channel: ChannelName, external_id: str) -> bool:
        async with self.session_factory() as session:
            found = await session.scalar(
                select(Order.id).where(Order.channel == channel.value, Order.external_id == external_id)
            )
            return found is not None

    async def record_channel_order(self, order: ChannelOrder) -> Optional[OrderRecord]:
        """
        Create a marketplace order with its items and take the sold stock, in
        one transaction.

        Returns None when the order was already recorded. Items whose SKU is
        unknown locally are skipped. The marketplace has already sold the
        units, so the decrement is clamped at zero instead of failing.
        """
        skipped_skus: List[str] = []
        decremented: Dict[int, int] = {}
        reason = f"Order {order.channel.value} {order.external_id}"

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    existing = await session.scalar(
                        select(Order.id).where(Order.channel == order.channel.value, Order.external_id == order.external_id)
                    )
                    if existing is not None:
                        return None

                    db_order = Order(
                        channel=order.channel.value,
                        external_id=order.external_id,
                        status=order.status.value,
                        total=order.total,
                        order_date=order.order_date,
                    )
                    session.add(db_order)
                    await session.flush()

                    for item in order.items:
                        variant = None
                        if item.sku:
                            variant = (await session.execute(
                                select(ProductVariant).where(ProductVariant.sku == item.sku).with_for_update()
                            )).scalar_one_or_none()
                        if variant is None:
                            logger.warning(f"Variant with SKU {item.sku} not found, skipping item of {reason}")
                            skipped_skus.append(item.sku or "")
                            continue

                        session.add(OrderItem(
                            order_id=db_order.id,
                            variant_id=variant.id,
                            quantity=item.quantity,
                            unit_price=item.unit_price,
                            total_price=item.unit_price * item.quantity,
                        ))

                        if order.status == OrderStatus.CANCELLED:
                            continue

                        taken = min(item.quantity, variant.inventory_quantity)
                        if taken < item.quantity:
                            logger.warning(
                                f"{reason} oversold {item.sku}: wanted {item.quantity}, had {variant.inventory_quantity}"
                            )
                        if taken > 0:
                            variant.inventory_quantity -= taken
                            self._add_audit(session, variant.id, -taken, AuditChangeType.RESERVED, reason)
                            decremented[variant.id] = decremented.get(variant.id, 0) + taken

                    order_id = db_order.id
        except IntegrityError:
            # Another ingestion pass recorded the same order first
            logger.info(f"{reason} already recorded")
            return None

        return OrderRecord(
            order_id=order_id,
            channel=order.channel,
            external_id=order.external_id,
            decremented=decremented,
            skipped_skus=skipped_skus,
        )

    # --- Reporting ---

    async def get_inventory_levels(self, variant_id: Optional[int] = None) -> List[InventoryLevel]:
        stmt = (
            select(ChannelInventory, ProductVariant, Product)
            .join(ProductVariant, ChannelInventory.variant_id == ProductVariant.id)
            .join(Product, ProductVariant.product_id == Product.id)
            .order_by(Product.name, ProductVariant.name, ChannelInventory.channel)
        )
        if variant_id is not None:
            stmt = stmt.where(ChannelInventory.variant_id == variant_id)

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        levels = []
        for record, variant, product in rows:
            channel = _as_channel(record.channel)
            if channel is None:
                continue
            levels.append(InventoryLevel(
                variant_id=variant.id,
                sku=variant.sku,
                variant_name=variant.name,
                product_name=product.name,
                channel=channel,
                quantity=record.quantity,
                last_synced=record.last_synced,
            ))
        return levels

    async def get_low_stock_alerts(self, threshold: int = 10) -> List[LowStockItem]:
        stmt = (
            select(ProductVariant, Product)
            .join(Product, ProductVariant.product_id == Product.id)
            .where(ProductVariant.inventory_quantity <= threshold)
            .order_by(ProductVariant.inventory_quantity.asc(), ProductVariant.sku)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            LowStockItem(
                variant_id=variant.id,
                sku=variant.sku,
                variant_name=variant.name,
                product_name=product.name,
                inventory_quantity=variant.inventory_quantity,
            )
            for variant, product in rows
        ]

    async def get_audit_trail(self, variant_id: Optional[int] = None, limit: int = 100) -> List[AuditEntry]:
        """Newest first"""
        stmt = (
            select(InventoryAuditLog, ProductVariant, Product)
            .join(ProductVariant, InventoryAuditLog.variant_id == ProductVariant.id)
            .join(Product, ProductVariant.product_id == Product.id)
            .order_by(InventoryAuditLog.created_at.desc(), InventoryAuditLog.id.desc())
            .limit(limit)
        )
        if variant_id is not None:
            stmt = stmt.where(InventoryAuditLog.variant_id == variant_id)

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            AuditEntry(
                id=entry.id,
                variant_id=entry.variant_id,
                quantity_change=entry.quantity_change,
                change_type=entry.change_type,
                reason=entry.reason,
                created_at=entry.created_at,
                sku=variant.sku,
                variant_name=variant.name,
                product_name=product.name,
            )
            for entry, variant, product in rows
        ]

    async def get_stock_movement_summary(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[StockMovement]:
        stock_in = func.sum(case((InventoryAuditLog.quantity_change > 0, InventoryAuditLog.quantity_change), else_=0))
        stock_out = func.sum(case((InventoryAuditLog.quantity_change < 0, -InventoryAuditLog.quantity_change), else_=0))
        movements = func.count(InventoryAuditLog.id)

        stmt = (
            select(
                ProductVariant.id,
                ProductVariant.sku,
                ProductVariant.name,
                Product.name,
                stock_in,
                stock_out,
                movements,
                func.max(InventoryAuditLog.created_at),
            )
            .join(ProductVariant, InventoryAuditLog.variant_id == ProductVariant.id)
            .join(Product, ProductVariant.product_id == Product.id)
            .group_by(ProductVariant.id, ProductVariant.sku, ProductVariant.name, Product.name)
            .order_by(movements.desc())
        )
        if date_from is not None:
            stmt = stmt.where(InventoryAuditLog.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(InventoryAuditLog.created_at <= date_to)

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            StockMovement(
                variant_id=row[0],
                sku=row[1],
                variant_name=row[2],
                product_name=row[3],
                stock_in=int(row[4] or 0),
                stock_out=int(row[5] or 0),
                total_movements=int(row[6] or 0),
                last_movement=row[7],
            )
            for row in rows
        ]

    async def get_inventory_value(self) -> InventoryValue:
        stmt = select(
            func.sum(ProductVariant.inventory_quantity * ProductVariant.price),
            func.count(ProductVariant.id),
            func.avg(ProductVariant.price),
            func.min(ProductVariant.price),
            func.max(ProductVariant.price),
        ).where(ProductVariant.inventory_quantity > 0)

        async with self.session_factory() as session:
            total_value, total_items, average_price, min_price, max_price = (await session.execute(stmt)).one()

        def _dec(value) -> Decimal:
            return Decimal(str(value)) if value is not None else Decimal("0")

        return InventoryValue(
            total_value=_dec(total_value),
            total_items=total_items or 0,
            average_price=_dec(average_price),
            min_price=_dec(min_price),
            max_price=_dec(max_price),
        )

    async def get_cached_discrepancies(self) -> List[CachedDiscrepancy]:
        """Catalog quantities against the last known channel records; no marketplace calls"""
        discrepancies = []
        for entry in await self.get_catalog_for_sync():
            for channel, record in entry.channel_records.items():
                if record.quantity != entry.local_quantity:
                    discrepancies.append(CachedDiscrepancy(
                        sku=entry.sku,
                        product_name=entry.product_name,
                        channel=channel,
                        local_quantity=entry.local_quantity,
                        channel_quantity=record.quantity,
                        last_synced=record.last_synced,
                    ))
        return discrepancies
