"""
Core module exports.
"""
from .enums import (
    ChannelName,
    AuditChangeType,
    DiscrepancyIssue,
    OrderStatus,
    CoordinatorState,
    HealthStatus,
)

from .exceptions import (
    BaseServiceError,
    InventoryServiceError,
    NotFoundError,
    InsufficientInventoryError,
    AuditWriteError,
    CatalogReadError,
    PlatformServiceError,
    ChannelUnavailableError,
    AmazonAPIError,
    EtsyAPIError,
    SyncError,
    SyncInProgressError,
    ValidationError,
)
