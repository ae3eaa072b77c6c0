"""
Models for the storefront catalog.

A Product groups one or more sellable ProductVariants. The variant's
inventory_quantity is the authoritative on-hand count (localQuantity); every
marketplace's view of that number lives in ChannelInventory.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from ..database import Base


def utc_now():
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    variants = relationship("ProductVariant", back_populates="product", order_by="ProductVariant.name")

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("inventory_quantity >= 0", name="ck_product_variants_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    sku = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    inventory_quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    product = relationship("Product", back_populates="variants")
    channel_records = relationship("ChannelInventory", back_populates="variant")

    @property
    def display_name(self):
        if self.product is not None and self.product.name:
            return f"{self.product.name} - {self.name}"
        return self.name

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, sku='{self.sku}', qty={self.inventory_quantity})>"
