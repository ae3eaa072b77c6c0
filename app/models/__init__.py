from .product import Product, ProductVariant
from .channel_inventory import ChannelInventory
from .inventory_audit_log import InventoryAuditLog
from .order import Order, OrderItem

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Product',
    'ProductVariant',
    'ChannelInventory',
    'InventoryAuditLog',
    'Order',
    'OrderItem',
]
