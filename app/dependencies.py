from fastapi import Request

from app.services.inventory_ledger import InventoryLedger
from app.services.sync_coordinator import SyncCoordinator


def get_coordinator(request: Request) -> SyncCoordinator:
    """The process-wide coordinator built in the app lifespan."""
    return request.app.state.coordinator


def get_ledger(request: Request) -> InventoryLedger:
    return request.app.state.ledger
