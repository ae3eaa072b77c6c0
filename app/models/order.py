# app/models/order.py
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base
from app.core.enums import OrderStatus
from app.models.product import utc_now


class Order(Base):
    """Local order, either placed on the storefront or ingested from a marketplace"""
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("channel", "external_id", name="uq_orders_channel_external_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    channel = Column(String(20), nullable=False, index=True)
    external_id = Column(String, nullable=True, index=True)  # Marketplace order reference
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    order_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)

    order = relationship("Order", back_populates="items")
