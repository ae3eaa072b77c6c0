# app/services/order_ingestion.py
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

from app.core.enums import ChannelName
from app.integrations.base import ChannelAdapter
from app.schemas.sync import IngestedOrder, OrderIngestionResult, SyncErrorEntry
from app.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


class OrderIngestionService:
    """
    Pulls recent orders from each marketplace and materializes them locally.

    Orders are keyed by (channel, external id), so running an ingestion pass
    twice over the same window creates each order once and takes its stock
    once. A failing channel is reported and the remaining channels continue.
    """

    def __init__(
        self,
        ledger: InventoryLedger,
        adapters: Dict[ChannelName, ChannelAdapter],
        lookback_hours: int = 24,
        channel_timeout: Optional[float] = None,
    ):
        self.ledger = ledger
        self.adapters = adapters
        self.lookback_hours = lookback_hours
        self.channel_timeout = channel_timeout

    async def ingest_orders(
        self,
        channels: Optional[Iterable[ChannelName]] = None,
        since: Optional[datetime] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> OrderIngestionResult:
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(hours=self.lookback_hours)
        targets = list(self.adapters.keys()) if channels is None else [ChannelName(c) for c in channels]
        statuses = list(statuses) if statuses else None

        result = OrderIngestionResult()
        for channel in targets:
            adapter = self.adapters.get(channel)
            if adapter is None:
                result.errors += 1
                result.error_entries.append(SyncErrorEntry(channel=channel, message="no adapter configured"))
                continue

            try:
                native_orders = await asyncio.wait_for(
                    adapter.fetch_orders(since, statuses), timeout=self.channel_timeout
                )
            except Exception as e:
                logger.error(f"Error syncing orders from {channel.value}: {e}")
                result.errors += 1
                result.error_entries.append(SyncErrorEntry(channel=channel, message=str(e) or type(e).__name__))
                continue

            logger.info(f"Fetched {len(native_orders)} orders from {channel.value} since {since.isoformat()}")

            for native in native_orders:
                try:
                    order = adapter.normalize_order(native)
                except Exception as e:
                    logger.error(f"Could not normalize {channel.value} order: {e}")
                    result.errors += 1
                    result.error_entries.append(SyncErrorEntry(channel=channel, message=str(e) or type(e).__name__))
                    continue

                if await self.ledger.order_exists(channel, order.external_id):
                    result.skipped += 1
                    continue

                try:
                    record = await self.ledger.record_channel_order(order)
                except Exception as e:
                    logger.error(f"Failed to record {channel.value} order {order.external_id}: {e}")
                    result.errors += 1
                    result.error_entries.append(SyncErrorEntry(channel=channel, message=str(e) or type(e).__name__))
                    continue

                if record is None:
                    result.skipped += 1
                    continue

                if record.skipped_skus:
                    logger.warning(
                        f"{channel.value} order {order.external_id}: no local variant for {record.skipped_skus}"
                    )
                result.synced += 1
                result.orders.append(IngestedOrder(
                    channel=channel,
                    external_id=order.external_id,
                    order_id=record.order_id,
                    skipped_skus=record.skipped_skus,
                ))

        logger.info(f"Order sync finished: {result.synced} new, {result.skipped} existing, {result.errors} errors")
        return result
