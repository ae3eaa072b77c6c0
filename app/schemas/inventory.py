"""
Schemas for the inventory ledger: catalog snapshots, stock movements and
audit trail rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field

from app.core.enums import ChannelName, AuditChangeType
from app.schemas.base import BaseSchema


class ChannelRecordView(BaseSchema):
    """Last known quantity of one variant on one channel"""
    channel: ChannelName
    quantity: int
    external_id: Optional[str] = None
    last_synced: Optional[datetime] = None


class CatalogEntry(BaseSchema):
    """A sellable variant as seen by the reconciliation engine"""
    variant_id: int
    product_id: int
    sku: str
    product_name: str
    variant_name: str
    price: Decimal
    local_quantity: int
    channel_records: Dict[ChannelName, ChannelRecordView] = Field(default_factory=dict)


class StockItem(BaseSchema):
    variant_id: int = Field(alias="variantId")
    quantity: int = Field(gt=0)


class ReservationRequest(BaseSchema):
    order_ref: str = Field(alias="orderRef")
    items: List[StockItem]


class InventoryAdjustment(BaseSchema):
    variant_id: int = Field(alias="variantId")
    new_quantity: int = Field(alias="newQuantity")
    reason: str = "Bulk update"


class SkippedAdjustment(BaseSchema):
    variant_id: int
    reason: str


class BulkAdjustResult(BaseSchema):
    updated: List[int] = Field(default_factory=list)
    skipped: List[SkippedAdjustment] = Field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated)


class AuditEntry(BaseSchema):
    id: int
    variant_id: int
    quantity_change: int
    change_type: AuditChangeType
    reason: Optional[str] = None
    created_at: datetime
    sku: Optional[str] = None
    variant_name: Optional[str] = None
    product_name: Optional[str] = None


class InventoryLevel(BaseSchema):
    variant_id: int
    sku: str
    variant_name: str
    product_name: str
    channel: ChannelName
    quantity: int
    last_synced: Optional[datetime] = None


class LowStockItem(BaseSchema):
    variant_id: int
    sku: str
    variant_name: str
    product_name: str
    inventory_quantity: int


class StockMovement(BaseSchema):
    variant_id: int
    sku: str
    variant_name: str
    product_name: str
    stock_in: int
    stock_out: int
    total_movements: int
    last_movement: Optional[datetime] = None


class InventoryValue(BaseSchema):
    total_value: Decimal = Decimal("0")
    total_items: int = 0
    average_price: Decimal = Decimal("0")
    min_price: Decimal = Decimal("0")
    max_price: Decimal = Decimal("0")


class CachedDiscrepancy(BaseSchema):
    """Catalog quantity vs. last known channel quantity, computed without channel I/O"""
    sku: str
    product_name: str
    channel: ChannelName
    local_quantity: int
    channel_quantity: int
    last_synced: Optional[datetime] = None


class OrderRecord(BaseSchema):
    """Outcome of materializing a marketplace order locally"""
    order_id: int
    channel: ChannelName
    external_id: str
    decremented: Dict[int, int] = Field(default_factory=dict)  # variant_id -> units taken
    skipped_skus: List[str] = Field(default_factory=list)
