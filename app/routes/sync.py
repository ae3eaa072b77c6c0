# app/routes/sync.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.exceptions import CatalogReadError, NotFoundError, SyncInProgressError, ValidationError
from app.dependencies import get_coordinator, get_ledger
from app.schemas.sync import InventorySyncRequest, OrderSyncRequest, ProductSyncRequest, ScheduleRequest
from app.services.inventory_ledger import InventoryLedger
from app.services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/inventory")
async def sync_inventory(
    body: InventorySyncRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Reconcile local stock with the marketplaces; autoSync pushes local quantities"""
    try:
        run = await coordinator.trigger_sync(body.channels, auto_correct=body.auto_sync)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CatalogReadError as e:
        logger.error(f"Inventory sync failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        "results": run,
        "message": f"Inventory sync completed: {len(run.discrepancies)} discrepancies, {len(run.errors)} errors",
    }


@router.post("/orders")
async def sync_orders(
    body: OrderSyncRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    try:
        result = await coordinator.trigger_order_sync(body.channels, since=body.since)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "success": True,
        "results": result,
        "message": f"Order sync completed: {result.synced} new orders",
    }


@router.post("/product/{variant_id}")
async def sync_product(
    variant_id: int,
    body: ProductSyncRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Push one variant's quantity to the given channels"""
    try:
        results = await coordinator.trigger_variant_sync(variant_id, body.channels, body.target_quantity)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "success": all(r.success for r in results),
        "results": results,
        "message": f"Product {variant_id} synced to {sum(1 for r in results if r.success)} channel(s)",
    }


@router.get("/status")
async def sync_status(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.get_status()


@router.get("/history")
async def sync_history(
    limit: int = Query(10, ge=1, le=100),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    history = coordinator.get_history(limit)
    return {"history": history, "total": len(history)}


@router.get("/discrepancies")
async def cached_discrepancies(ledger: InventoryLedger = Depends(get_ledger)):
    """Differences against the last known channel quantities, without calling the marketplaces"""
    try:
        discrepancies = await ledger.get_cached_discrepancies()
    except CatalogReadError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"discrepancies": discrepancies, "total": len(discrepancies)}


@router.post("/schedule")
async def schedule_sync(
    body: ScheduleRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    try:
        status = coordinator.schedule_recurring(body.interval_minutes)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "success": True,
        "status": status,
        "message": f"Auto sync scheduled every {body.interval_minutes} minutes",
    }


@router.post("/schedule/stop")
async def stop_schedule(coordinator: SyncCoordinator = Depends(get_coordinator)):
    stopped = coordinator.stop_recurring()
    return {
        "success": True,
        "message": "Auto sync stopped" if stopped else "Auto sync was not scheduled",
    }


@router.get("/health")
async def channel_health(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Connectivity of every registered channel"""
    return await coordinator.engine.check_channel_health()
