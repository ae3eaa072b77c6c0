"""
Shared enums and constants used across the application.
"""

from enum import Enum


class ChannelName(str, Enum):
    """Sales surfaces. PWA is the local storefront and never has an adapter."""
    PWA = "PWA"
    AMAZON = "AMAZON"
    ETSY = "ETSY"

    @property
    def slug(self):
        return self.value.lower()

    @property
    def is_external(self) -> bool:
        return self is not ChannelName.PWA

    @classmethod
    def external(cls):
        return [c for c in cls if c.is_external]


class AuditChangeType(str, Enum):
    """Reason codes for rows in the inventory audit log"""
    RESERVED = "RESERVED"
    RELEASED = "RELEASED"
    ADJUSTMENT = "ADJUSTMENT"
    SYNC_CORRECTION = "SYNC_CORRECTION"


class DiscrepancyIssue(str, Enum):
    QUANTITY_MISMATCH = "QUANTITY_MISMATCH"
    NOT_FOUND_REMOTE = "NOT_FOUND_REMOTE"


class OrderStatus(str, Enum):
    """Internal order status values used in both models and schemas"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class CoordinatorState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"
