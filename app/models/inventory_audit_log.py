# app/models/inventory_audit_log.py
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey

from app.database import Base
from app.models.product import utc_now


class InventoryAuditLog(Base):
    """
    Append-only history of every quantity change.

    Rows are only ever inserted (see InventoryLedger.append_audit); this is
    the source of truth for why stock changed.

    change_type is one of RESERVED, RELEASED, ADJUSTMENT, SYNC_CORRECTION.
    """
    __tablename__ = "inventory_audit_log"

    id = Column(Integer, primary_key=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity_change = Column(Integer, nullable=False)
    change_type = Column(String(30), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    def __repr__(self):
        return (f"<InventoryAuditLog(variant_id={self.variant_id}, change={self.quantity_change}, "
                f"type='{self.change_type}')>")
