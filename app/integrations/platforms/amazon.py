"""
AmazonChannel: the ChannelAdapter for Amazon, backed by AmazonClient (SP-API).

Inventory comes from FBA inventory summaries (sellerSku + fulfillable
quantity); pushes go through the Listings Items API as an absolute quantity.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List, Iterable
from datetime import datetime, timezone

from app.core.enums import ChannelName, OrderStatus
from app.core.exceptions import AmazonAPIError
from app.integrations.base import ChannelAdapter
from app.schemas.sync import RemoteInventoryItem, ChannelOrder, ChannelOrderItem
from app.services.amazon.client import AmazonClient

logger = logging.getLogger(__name__)

AMAZON_STATUS_MAP = {
    "Pending": OrderStatus.PENDING,
    "PendingAvailability": OrderStatus.PENDING,
    "Unshipped": OrderStatus.PROCESSING,
    "PartiallyShipped": OrderStatus.PROCESSING,
    "Shipped": OrderStatus.SHIPPED,
    "InvoiceUnconfirmed": OrderStatus.SHIPPED,
    "Delivered": OrderStatus.DELIVERED,
    "Canceled": OrderStatus.CANCELLED,
    "Cancelled": OrderStatus.CANCELLED,
    "Unfulfillable": OrderStatus.CANCELLED,
}


def _money(value: Optional[Dict[str, Any]]) -> Decimal:
    if not value:
        return Decimal("0")
    try:
        return Decimal(str(value.get("Amount", "0")))
    except (InvalidOperation, TypeError):
        return Decimal("0")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable Amazon timestamp: {value}")
        return None


class AmazonChannel(ChannelAdapter):
    channel = ChannelName.AMAZON

    def __init__(self, api_credentials: Optional[Dict[str, str]] = None, client: Optional[AmazonClient] = None):
        super().__init__(api_credentials)
        if client is None:
            creds = self.api_credentials
            client = AmazonClient(
                client_id=creds.get("client_id", ""),
                client_secret=creds.get("client_secret", ""),
                refresh_token=creds.get("refresh_token", ""),
                marketplace_id=creds.get("marketplace_id", ""),
                seller_id=creds.get("seller_id", ""),
                base_url=creds.get("endpoint") or None,
            )
        self.client = client

    async def fetch_remote_inventory(self) -> List[RemoteInventoryItem]:
        summaries = await self.client.get_inventory_summaries()
        items = []
        for summary in summaries:
            sku = summary.get("sellerSku")
            if not sku:
                continue
            details = summary.get("inventoryDetails") or {}
            quantity = details.get("fulfillableQuantity")
            if quantity is None:
                quantity = summary.get("totalQuantity", 0)
            items.append(RemoteInventoryItem(sku=sku, quantity=int(quantity or 0), external_id=summary.get("asin") or sku))

        self._last_sync = datetime.now(timezone.utc)
        logger.info(f"Fetched {len(items)} Amazon inventory summaries")
        return items

    async def fetch_orders(self, since: datetime, statuses: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        orders = await self.client.get_orders(since, statuses)
        # Order list responses don't carry line items
        for order in orders:
            if "OrderItems" not in order:
                order["OrderItems"] = await self.client.get_order_items(order["AmazonOrderId"])
        return orders

    async def push_quantity(self, sku: str, quantity: int) -> bool:
        await self.client.update_listing_quantity(sku, quantity)
        self._last_sync = datetime.now(timezone.utc)
        logger.info(f"Pushed Amazon quantity {quantity} for {sku}")
        return True

    def normalize_order(self, native_order: Dict[str, Any]) -> ChannelOrder:
        external_id = native_order.get("AmazonOrderId")
        if not external_id:
            raise AmazonAPIError("Amazon order without AmazonOrderId")

        items = []
        for item in native_order.get("OrderItems") or []:
            quantity = int(item.get("QuantityOrdered", 0) or 0)
            if quantity <= 0:
                continue
            # ItemPrice is the line total on Amazon
            line_total = _money(item.get("ItemPrice"))
            items.append(ChannelOrderItem(
                sku=item.get("SellerSKU"),
                quantity=quantity,
                unit_price=(line_total / quantity) if quantity else Decimal("0"),
            ))

        return ChannelOrder(
            channel=self.channel,
            external_id=str(external_id),
            status=AMAZON_STATUS_MAP.get(native_order.get("OrderStatus"), OrderStatus.PENDING),
            total=_money(native_order.get("OrderTotal")),
            order_date=_parse_timestamp(native_order.get("PurchaseDate")),
            items=items,
        )

    async def health_check(self) -> None:
        await self.client.get_access_token()
        await self.client.get_inventory_summaries(skus=["__health_check__"])
