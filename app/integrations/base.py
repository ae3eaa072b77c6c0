from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Iterable
from datetime import datetime

from app.core.enums import ChannelName
from app.schemas.sync import RemoteInventoryItem, ChannelOrder


class ChannelAdapter(ABC):
    """
    Uniform contract every marketplace implements.

    Every call may raise ChannelUnavailableError (auth, network, timeout);
    callers treat that as a failure of this channel only.
    push_quantity always sends an absolute quantity, so repeating the same
    (sku, quantity) push is harmless.
    """

    channel: ChannelName

    def __init__(self, api_credentials: Optional[Dict[str, str]] = None):
        self.api_credentials = api_credentials or {}
        self._last_sync: Optional[datetime] = None

    @property
    def last_sync(self) -> Optional[datetime]:
        return self._last_sync

    @abstractmethod
    async def fetch_remote_inventory(self) -> List[RemoteInventoryItem]:
        """Current quantity of every SKU listed on the channel"""
        pass

    @abstractmethod
    async def fetch_orders(self, since: datetime, statuses: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Channel-native order records created after `since`"""
        pass

    @abstractmethod
    async def push_quantity(self, sku: str, quantity: int) -> bool:
        """Set the channel's quantity for `sku` to `quantity`"""
        pass

    @abstractmethod
    def normalize_order(self, native_order: Dict[str, Any]) -> ChannelOrder:
        """Map a channel-native order onto the internal order shape and status enum"""
        pass

    @abstractmethod
    async def health_check(self) -> None:
        """Cheapest read the channel offers; raises ChannelUnavailableError on failure"""
        pass
