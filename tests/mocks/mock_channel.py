import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from app.core.enums import ChannelName, OrderStatus
from app.core.exceptions import ChannelUnavailableError
from app.integrations.base import ChannelAdapter
from app.schemas.sync import ChannelOrder, ChannelOrderItem, RemoteInventoryItem


class MockChannel(ChannelAdapter):
    """In-memory marketplace: a sku -> quantity map plus a list of native orders"""

    def __init__(self, channel: ChannelName = ChannelName.AMAZON, stock: Optional[Dict[str, int]] = None):
        super().__init__({})
        self.channel = channel
        self.stock_levels: Dict[str, int] = dict(stock or {})
        self.orders: List[Dict[str, Any]] = []
        self.push_calls: List[tuple] = []  # Track calls for testing
        self.should_fail = False  # Toggle to test error scenarios
        self.fail_push_skus: Set[str] = set()
        self.fetch_delay = 0.0

    async def fetch_remote_inventory(self) -> List[RemoteInventoryItem]:
        if self.should_fail:
            raise ChannelUnavailableError(f"{self.channel.value} unavailable", channel=self.channel)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        return [RemoteInventoryItem(sku=sku, quantity=qty, external_id=f"ext-{sku}") for sku, qty in self.stock_levels.items()]

    async def fetch_orders(self, since: datetime, statuses: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        if self.should_fail:
            raise ChannelUnavailableError(f"{self.channel.value} unavailable", channel=self.channel)
        return list(self.orders)

    async def push_quantity(self, sku: str, quantity: int) -> bool:
        if self.should_fail or sku in self.fail_push_skus:
            raise ChannelUnavailableError(f"push of {sku} rejected", channel=self.channel)
        self.push_calls.append((sku, quantity))
        self.stock_levels[sku] = quantity
        self._last_sync = datetime.now()
        return True

    def normalize_order(self, native_order: Dict[str, Any]) -> ChannelOrder:
        return ChannelOrder(
            channel=self.channel,
            external_id=native_order["id"],
            status=native_order.get("status", OrderStatus.PROCESSING),
            total=Decimal(str(native_order.get("total", "0"))),
            items=[
                ChannelOrderItem(sku=sku, quantity=qty, unit_price=Decimal("10.00"))
                for sku, qty in native_order.get("items", [])
            ],
        )

    async def health_check(self) -> None:
        if self.should_fail:
            raise ChannelUnavailableError(f"{self.channel.value} unavailable", channel=self.channel)
