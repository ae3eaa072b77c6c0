# app/routes/inventory.py
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.core.exceptions import InsufficientInventoryError, NotFoundError
from app.dependencies import get_ledger
from app.schemas.inventory import InventoryAdjustment, ReservationRequest
from app.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("/levels")
async def inventory_levels(
    variant_id: Optional[int] = Query(None, alias="variantId"),
    ledger: InventoryLedger = Depends(get_ledger),
):
    return await ledger.get_inventory_levels(variant_id)


@router.get("/low-stock")
async def low_stock(
    request: Request,
    threshold: Optional[int] = Query(None, ge=0),
    ledger: InventoryLedger = Depends(get_ledger),
):
    if threshold is None:
        threshold = request.app.state.settings.LOW_STOCK_THRESHOLD
    return await ledger.get_low_stock_alerts(threshold)


@router.get("/audit")
async def audit_trail(
    variant_id: Optional[int] = Query(None, alias="variantId"),
    limit: int = Query(100, ge=1, le=1000),
    ledger: InventoryLedger = Depends(get_ledger),
):
    return await ledger.get_audit_trail(variant_id, limit)


@router.get("/movements")
async def stock_movements(
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    ledger: InventoryLedger = Depends(get_ledger),
):
    return await ledger.get_stock_movement_summary(date_from, date_to)


@router.get("/value")
async def inventory_value(ledger: InventoryLedger = Depends(get_ledger)):
    return await ledger.get_inventory_value()


@router.post("/bulk-adjust")
async def bulk_adjust(
    updates: List[InventoryAdjustment],
    ledger: InventoryLedger = Depends(get_ledger),
):
    result = await ledger.bulk_adjust(updates)
    return {
        "success": True,
        "updated": result.updated_count,
        "results": result,
    }


@router.post("/reserve")
async def reserve(
    body: ReservationRequest,
    ledger: InventoryLedger = Depends(get_ledger),
):
    try:
        await ledger.reserve_for_order(body.order_ref, body.items)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientInventoryError as e:
        raise HTTPException(status_code=409, detail={"message": str(e), "variantIds": e.variant_ids})
    return {"success": True, "orderRef": body.order_ref, "reserved": len(body.items)}


@router.post("/release")
async def release(
    body: ReservationRequest,
    ledger: InventoryLedger = Depends(get_ledger),
):
    released = await ledger.release_for_order(body.order_ref, body.items)
    return {"success": True, "orderRef": body.order_ref, "released": released}
