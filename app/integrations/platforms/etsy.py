"""
EtsyChannel: the ChannelAdapter for Etsy, backed by EtsyClient (Open API v3).

Etsy keeps quantities on listing inventory products, so a SKU is resolved to
its listing first and the whole inventory document is written back with the
new absolute quantity on the matching product(s).
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List, Iterable
from datetime import datetime, timezone

from app.core.enums import ChannelName, OrderStatus
from app.core.exceptions import EtsyAPIError
from app.integrations.base import ChannelAdapter
from app.schemas.sync import RemoteInventoryItem, ChannelOrder, ChannelOrderItem
from app.services.etsy.client import EtsyClient

logger = logging.getLogger(__name__)

PROPERTY_VALUE_FIELDS = ("property_id", "property_name", "scale_id", "value_ids", "values")


def _etsy_money(value: Any) -> Decimal:
    """Etsy money is {amount, divisor, currency_code}; older payloads use plain numbers"""
    if value is None:
        return Decimal("0")
    try:
        if isinstance(value, dict):
            divisor = value.get("divisor") or 1
            return Decimal(str(value.get("amount", 0))) / Decimal(str(divisor))
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ZeroDivisionError):
        return Decimal("0")


def map_etsy_status(receipt: Dict[str, Any]) -> OrderStatus:
    """Etsy exposes flags rather than one status, so the mapping is a precedence list"""
    status = str(receipt.get("status") or "").lower()
    if status in {"canceled", "cancelled", "fully refunded"} or receipt.get("is_canceled"):
        return OrderStatus.CANCELLED
    if receipt.get("was_delivered") or receipt.get("is_delivered"):
        return OrderStatus.DELIVERED
    if receipt.get("was_shipped") or receipt.get("is_shipped") or status == "completed":
        return OrderStatus.SHIPPED
    if receipt.get("was_paid") or receipt.get("is_paid") or status == "paid":
        return OrderStatus.PROCESSING
    return OrderStatus.PENDING


class EtsyChannel(ChannelAdapter):
    channel = ChannelName.ETSY

    def __init__(self, api_credentials: Optional[Dict[str, str]] = None, client: Optional[EtsyClient] = None):
        super().__init__(api_credentials)
        if client is None:
            creds = self.api_credentials
            client = EtsyClient(
                api_key=creds.get("api_key", ""),
                access_token=creds.get("access_token", ""),
                shop_id=creds.get("shop_id", ""),
            )
        self.client = client
        self._listing_ids: Dict[str, str] = {}  # sku -> listing_id, refreshed on every inventory fetch

    @staticmethod
    def _products_of(listing: Dict[str, Any]) -> List[Dict[str, Any]]:
        return ((listing.get("inventory") or {}).get("products")) or []

    async def fetch_remote_inventory(self) -> List[RemoteInventoryItem]:
        listings = await self.client.get_all_listings()
        items: List[RemoteInventoryItem] = []
        listing_ids: Dict[str, str] = {}

        for listing in listings:
            listing_id = str(listing.get("listing_id"))
            products = self._products_of(listing)
            if not products:
                # Listings without variations carry the SKU on the listing itself
                skus = listing.get("skus") or ([listing["sku"]] if listing.get("sku") else [])
                for sku in skus:
                    listing_ids[sku] = listing_id
                    items.append(RemoteInventoryItem(sku=sku, quantity=int(listing.get("quantity") or 0), external_id=listing_id))
                continue

            for product in products:
                sku = product.get("sku")
                if not sku or product.get("is_deleted"):
                    continue
                offerings = product.get("offerings") or [{}]
                quantity = sum(int(o.get("quantity") or 0) for o in offerings if o.get("is_enabled", True))
                listing_ids[sku] = listing_id
                items.append(RemoteInventoryItem(sku=sku, quantity=quantity, external_id=listing_id))

        self._listing_ids = listing_ids
        self._last_sync = datetime.now(timezone.utc)
        logger.info(f"Fetched {len(items)} Etsy inventory products from {len(listings)} listings")
        return items

    async def _resolve_listing_id(self, sku: str) -> str:
        if sku not in self._listing_ids:
            await self.fetch_remote_inventory()
        listing_id = self._listing_ids.get(sku)
        if not listing_id:
            raise EtsyAPIError(f"No Etsy listing found for SKU {sku}")
        return listing_id

    @staticmethod
    def _build_inventory_update(inventory: Dict[str, Any], sku: str, quantity: int) -> Dict[str, Any]:
        """Rebuild the writable part of a listing inventory with `quantity` on `sku`"""
        products = []
        matched = False
        for product in inventory.get("products") or []:
            if product.get("is_deleted"):
                continue
            is_target = product.get("sku") == sku
            matched = matched or is_target
            offerings = []
            for offering in product.get("offerings") or []:
                offerings.append({
                    "price": float(_etsy_money(offering.get("price"))),
                    "quantity": quantity if is_target else int(offering.get("quantity") or 0),
                    "is_enabled": (quantity > 0) if is_target else bool(offering.get("is_enabled", True)),
                })
            products.append({
                "sku": product.get("sku") or "",
                "property_values": [
                    {k: v for k, v in pv.items() if k in PROPERTY_VALUE_FIELDS}
                    for pv in product.get("property_values") or []
                ],
                "offerings": offerings,
            })

        if not matched:
            raise EtsyAPIError(f"SKU {sku} not present in listing inventory")

        return {
            "products": products,
            "price_on_property": inventory.get("price_on_property", []),
            "quantity_on_property": inventory.get("quantity_on_property", []),
            "sku_on_property": inventory.get("sku_on_property", []),
        }

    async def push_quantity(self, sku: str, quantity: int) -> bool:
        listing_id = await self._resolve_listing_id(sku)
        inventory = await self.client.get_listing_inventory(listing_id)
        await self.client.update_listing_inventory(listing_id, self._build_inventory_update(inventory, sku, quantity))
        self._last_sync = datetime.now(timezone.utc)
        logger.info(f"Pushed Etsy quantity {quantity} for {sku} (listing {listing_id})")
        return True

    async def fetch_orders(self, since: datetime, statuses: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        receipts = await self.client.get_all_receipts(min_created=int(since.timestamp()))
        if statuses:
            wanted = {s.lower() for s in statuses}
            receipts = [r for r in receipts if str(r.get("status") or "").lower() in wanted]
        return receipts

    def normalize_order(self, native_order: Dict[str, Any]) -> ChannelOrder:
        receipt_id = native_order.get("receipt_id")
        if receipt_id is None:
            raise EtsyAPIError("Etsy receipt without receipt_id")

        items = []
        for transaction in native_order.get("transactions") or []:
            quantity = int(transaction.get("quantity") or 0)
            if quantity <= 0:
                continue
            items.append(ChannelOrderItem(
                sku=transaction.get("sku") or None,
                quantity=quantity,
                unit_price=_etsy_money(transaction.get("price")),
            ))

        created = native_order.get("create_timestamp") or native_order.get("created_timestamp")
        order_date = datetime.fromtimestamp(int(created), tz=timezone.utc) if created else None

        total = native_order.get("grandtotal", native_order.get("total_price"))

        return ChannelOrder(
            channel=self.channel,
            external_id=str(receipt_id),
            status=map_etsy_status(native_order),
            total=_etsy_money(total),
            order_date=order_date,
            items=items,
        )

    async def health_check(self) -> None:
        await self.client.get_shop()
