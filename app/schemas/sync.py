"""
Schemas for channel sync runs: remote inventory, discrepancies, per-channel
results, run history and the request bodies of the sync endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field, computed_field

from app.core.enums import ChannelName, DiscrepancyIssue, OrderStatus, CoordinatorState, HealthStatus
from app.schemas.base import BaseSchema


class RemoteInventoryItem(BaseSchema):
    """One SKU as reported by a marketplace"""
    sku: str
    quantity: int
    external_id: Optional[str] = None


class ChannelOrderItem(BaseSchema):
    sku: Optional[str] = None
    quantity: int
    unit_price: Decimal = Decimal("0")


class ChannelOrder(BaseSchema):
    """A marketplace order normalized to the internal shape"""
    channel: ChannelName
    external_id: str
    status: OrderStatus = OrderStatus.PENDING
    total: Decimal = Decimal("0")
    order_date: Optional[datetime] = None
    items: List[ChannelOrderItem] = Field(default_factory=list)


class Discrepancy(BaseSchema):
    sku: str
    product_name: str
    channel: ChannelName
    local_quantity: int
    remote_quantity: Optional[int] = None
    issue: DiscrepancyIssue


class SyncErrorEntry(BaseSchema):
    channel: ChannelName
    message: str
    sku: Optional[str] = None


class AuditFailure(BaseSchema):
    """A correction whose quantity write landed but whose audit row did not"""
    channel: ChannelName
    variant_id: int
    sku: str
    quantity_change: int
    message: str


class ChannelSyncResult(BaseSchema):
    channel: ChannelName
    synced: int = 0
    skipped: int = 0
    errors: int = 0
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    error_entries: List[SyncErrorEntry] = Field(default_factory=list)
    audit_failures: List[AuditFailure] = Field(default_factory=list)


class SyncRun(BaseSchema):
    sync_id: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    auto_correct: bool = False
    total_products: int = 0
    channels: Dict[ChannelName, ChannelSyncResult] = Field(default_factory=dict)
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    errors: List[SyncErrorEntry] = Field(default_factory=list)
    audit_failures: List[AuditFailure] = Field(default_factory=list)

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    @computed_field
    @property
    def has_audit_failures(self) -> bool:
        return bool(self.audit_failures)


class IngestedOrder(BaseSchema):
    channel: ChannelName
    external_id: str
    order_id: int
    skipped_skus: List[str] = Field(default_factory=list)


class OrderIngestionResult(BaseSchema):
    synced: int = 0
    skipped: int = 0
    errors: int = 0
    orders: List[IngestedOrder] = Field(default_factory=list)
    error_entries: List[SyncErrorEntry] = Field(default_factory=list)


class VariantSyncResult(BaseSchema):
    channel: ChannelName
    success: bool
    quantity: Optional[int] = None
    error: Optional[str] = None


class ChannelHealth(BaseSchema):
    status: HealthStatus
    message: str


class HealthReport(BaseSchema):
    overall: HealthStatus
    channels: Dict[ChannelName, ChannelHealth]


class SyncStatusSnapshot(BaseSchema):
    state: CoordinatorState
    is_running: bool
    last_run: Optional[SyncRun] = None
    total_runs: int = 0
    auto_sync_interval_minutes: Optional[int] = None
    next_run_time: Optional[datetime] = None


# --- Request bodies ---

class InventorySyncRequest(BaseSchema):
    channels: Optional[List[ChannelName]] = None
    auto_sync: bool = Field(default=False, alias="autoSync")


class OrderSyncRequest(BaseSchema):
    channels: Optional[List[ChannelName]] = None
    since: Optional[datetime] = None


class ProductSyncRequest(BaseSchema):
    channels: List[ChannelName]
    target_quantity: Optional[int] = Field(default=None, ge=0, alias="targetQuantity")


class ScheduleRequest(BaseSchema):
    interval_minutes: int = Field(ge=5, le=1440, alias="intervalMinutes")
