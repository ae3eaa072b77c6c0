# app/models/channel_inventory.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.product import utc_now


class ChannelInventory(Base):
    """
    Last known quantity of a variant on one marketplace.

    One row per (variant, channel) where the variant is listed. The quantity
    is a cache of what the channel reported or what we last pushed to it;
    upserts are last-write-wins.
    """
    __tablename__ = "channel_inventory"
    __table_args__ = (
        UniqueConstraint("variant_id", "channel", name="uq_channel_inventory_variant_channel"),
    )

    id = Column(Integer, primary_key=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    external_id = Column(String, nullable=True)
    last_synced = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    variant = relationship("ProductVariant", back_populates="channel_records")

    def __repr__(self):
        return (f"<ChannelInventory(variant_id={self.variant_id}, channel='{self.channel}', "
                f"quantity={self.quantity})>")
