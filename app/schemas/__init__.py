from .base import BaseSchema
from .inventory import (
    CatalogEntry,
    ChannelRecordView,
    StockItem,
    InventoryAdjustment,
    BulkAdjustResult,
    AuditEntry,
    OrderRecord,
)
from .sync import (
    RemoteInventoryItem,
    ChannelOrder,
    ChannelOrderItem,
    Discrepancy,
    ChannelSyncResult,
    SyncRun,
    OrderIngestionResult,
    SyncStatusSnapshot,
)
