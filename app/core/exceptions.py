from typing import Iterable, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class InventoryServiceError(BaseServiceError):
    """Base exception for inventory ledger errors."""
    pass


class NotFoundError(InventoryServiceError):
    """Raised when a variant or (variant, channel) key does not exist."""
    pass


class InsufficientInventoryError(InventoryServiceError):
    """Raised when a reservation cannot be satisfied. Nothing was reserved."""

    def __init__(self, message: str, variant_ids: Optional[Iterable[int]] = None):
        super().__init__(message)
        self.variant_ids = list(variant_ids or [])


class AuditWriteError(InventoryServiceError):
    """Raised when a quantity change was applied but its audit row did not persist."""

    def __init__(self, message: str, variant_id: int, quantity_change: int, change_type: str):
        super().__init__(message)
        self.variant_id = variant_id
        self.quantity_change = quantity_change
        self.change_type = change_type


class CatalogReadError(InventoryServiceError):
    """Raised when the local catalog snapshot cannot be read."""
    pass


class PlatformServiceError(BaseServiceError):
    """Base exception for marketplace errors."""
    pass


class ChannelUnavailableError(PlatformServiceError):
    """Raised when a channel adapter call fails (auth, network, timeout)."""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message)
        self.channel = channel


class AmazonAPIError(ChannelUnavailableError):
    """Raised when Amazon SP-API calls fail."""

    def __init__(self, message: str):
        super().__init__(message, channel="AMAZON")


class EtsyAPIError(ChannelUnavailableError):
    """Raised when Etsy API calls fail."""

    def __init__(self, message: str):
        super().__init__(message, channel="ETSY")


class SyncError(PlatformServiceError):
    """Raised when platform synchronization fails."""
    pass


class SyncInProgressError(SyncError):
    """Raised when a sync is triggered while another one is running."""
    pass


class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass
