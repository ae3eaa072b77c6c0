# app/services/reconciliation_engine.py
"""
Compares local stock with what each marketplace reports and, when asked to,
pushes the local quantity out to fix quantity mismatches. SKUs a channel
does not list are reported but never pushed.

The catalog is loaded once per run and shared by all channels. Channels run
concurrently; within a channel, pushes are bounded by a semaphore
(CHANNEL_PUSH_CONCURRENCY, 1 by default, i.e. sequential). A failure in one
channel or on one SKU is recorded in the run result and never stops the
other channels or SKUs. Only a catalog read failure fails a run.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Dict, Iterable, List, Optional, TypeVar

from app.core.enums import AuditChangeType, ChannelName, DiscrepancyIssue, HealthStatus
from app.core.exceptions import AuditWriteError, ChannelUnavailableError
from app.integrations.base import ChannelAdapter
from app.schemas.inventory import CatalogEntry
from app.schemas.sync import (
    AuditFailure,
    ChannelHealth,
    ChannelSyncResult,
    Discrepancy,
    HealthReport,
    RemoteInventoryItem,
    SyncErrorEntry,
    SyncRun,
    VariantSyncResult,
)
from app.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_ADAPTER_MESSAGE = "no adapter configured"
CORRECTION_REASON = "channel sync"


class ReconciliationEngine:

    def __init__(
        self,
        ledger: InventoryLedger,
        adapters: Dict[ChannelName, ChannelAdapter],
        channel_timeout: float = 30.0,
        push_concurrency: int = 1,
    ):
        self.ledger = ledger
        self.adapters = adapters
        self.channel_timeout = channel_timeout
        self.push_concurrency = max(1, push_concurrency)

    def resolve_channels(self, channels: Optional[Iterable[ChannelName]]) -> List[ChannelName]:
        """Requested channels, de-duplicated in order; None means every registered adapter"""
        if channels is None:
            return list(self.adapters.keys())
        resolved: List[ChannelName] = []
        for channel in channels:
            channel = ChannelName(channel)
            if channel not in resolved:
                resolved.append(channel)
        return resolved

    async def _call(self, channel: ChannelName, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.channel_timeout)
        except asyncio.TimeoutError as e:
            raise ChannelUnavailableError(
                f"{channel.value} did not respond within {self.channel_timeout}s", channel=channel
            ) from e

    # --- Full reconciliation ---

    async def run_sync(
        self,
        channels: Optional[Iterable[ChannelName]],
        auto_correct: bool,
        sync_id: Optional[str] = None,
    ) -> SyncRun:
        """
        Reconcile the catalog against the given channels.

        Args:
            channels: channels to check; None means every registered adapter
            auto_correct: push the local quantity for every quantity mismatch found
            sync_id: identifier for the run, generated when omitted

        Raises:
            CatalogReadError: the local catalog could not be loaded
        """
        run = SyncRun(
            sync_id=sync_id or f"sync_{uuid.uuid4().hex[:12]}",
            auto_correct=auto_correct,
        )
        targets = self.resolve_channels(channels)

        catalog = await self.ledger.get_catalog_for_sync()
        run.total_products = len(catalog)
        logger.info(
            f"Sync {run.sync_id}: {len(catalog)} products against {[c.value for c in targets]} "
            f"(auto_correct={auto_correct})"
        )

        results = await asyncio.gather(
            *(self._sync_channel(channel, catalog, auto_correct) for channel in targets)
        )

        for result in results:
            run.channels[result.channel] = result
            run.discrepancies.extend(result.discrepancies)
            run.errors.extend(result.error_entries)
            run.audit_failures.extend(result.audit_failures)

        logger.info(
            f"Sync {run.sync_id} finished: {len(run.discrepancies)} discrepancies, "
            f"{len(run.errors)} errors, {len(run.audit_failures)} audit failures"
        )
        return run

    async def _sync_channel(
        self,
        channel: ChannelName,
        catalog: List[CatalogEntry],
        auto_correct: bool,
    ) -> ChannelSyncResult:
        result = ChannelSyncResult(channel=channel)

        adapter = self.adapters.get(channel)
        if adapter is None:
            logger.warning(f"Skipping {channel.value}: {NO_ADAPTER_MESSAGE}")
            result.errors += 1
            result.error_entries.append(SyncErrorEntry(channel=channel, message=NO_ADAPTER_MESSAGE))
            return result

        try:
            remote_items = await self._call(channel, adapter.fetch_remote_inventory())
        except Exception as e:
            logger.error(f"Failed to fetch {channel.value} inventory: {e}")
            result.errors += 1
            result.error_entries.append(SyncErrorEntry(channel=channel, message=str(e) or type(e).__name__))
            return result

        remote: Dict[str, RemoteInventoryItem] = {item.sku: item for item in remote_items}

        mismatched = []
        for entry in catalog:
            remote_item = remote.get(entry.sku)
            if remote_item is None:
                issue = DiscrepancyIssue.NOT_FOUND_REMOTE
            elif remote_item.quantity != entry.local_quantity:
                issue = DiscrepancyIssue.QUANTITY_MISMATCH
            else:
                result.skipped += 1
                continue

            result.discrepancies.append(Discrepancy(
                sku=entry.sku,
                product_name=entry.product_name,
                channel=channel,
                local_quantity=entry.local_quantity,
                remote_quantity=remote_item.quantity if remote_item else None,
                issue=issue,
            ))
            if issue is DiscrepancyIssue.QUANTITY_MISMATCH:
                mismatched.append((entry, remote_item))

        logger.info(
            f"{channel.value}: {len(remote)} remote SKUs, {len(result.discrepancies)} discrepancies, {result.skipped} in sync"
        )

        if auto_correct and mismatched:
            semaphore = asyncio.Semaphore(self.push_concurrency)
            await asyncio.gather(
                *(self._correct(adapter, entry, remote_item, result, semaphore) for entry, remote_item in mismatched)
            )

        return result

    async def _correct(
        self,
        adapter: ChannelAdapter,
        entry: CatalogEntry,
        remote_item: RemoteInventoryItem,
        result: ChannelSyncResult,
        semaphore: asyncio.Semaphore,
    ) -> None:
        channel = adapter.channel

        async with semaphore:
            try:
                await self._call(channel, adapter.push_quantity(entry.sku, entry.local_quantity))
            except Exception as e:
                logger.error(f"Failed to push {entry.sku} to {channel.value}: {e}")
                result.errors += 1
                result.error_entries.append(
                    SyncErrorEntry(channel=channel, message=str(e) or type(e).__name__, sku=entry.sku)
                )
                return

        try:
            await self.ledger.upsert_channel_record(
                entry.variant_id,
                channel,
                entry.local_quantity,
                external_id=remote_item.external_id,
            )
        except Exception as e:
            logger.error(f"Pushed {entry.sku} to {channel.value} but could not store the channel record: {e}")
            result.errors += 1
            result.error_entries.append(
                SyncErrorEntry(channel=channel, message=f"channel record not saved: {e}", sku=entry.sku)
            )
            return

        quantity_change = entry.local_quantity - remote_item.quantity
        try:
            await self.ledger.append_audit(
                entry.variant_id, quantity_change, AuditChangeType.SYNC_CORRECTION, CORRECTION_REASON
            )
        except AuditWriteError as e:
            logger.error(
                f"Consistency warning: {channel.value} correction of variant {entry.variant_id} "
                f"({quantity_change:+d}) applied without an audit row: {e}"
            )
            result.audit_failures.append(AuditFailure(
                channel=channel,
                variant_id=entry.variant_id,
                sku=entry.sku,
                quantity_change=quantity_change,
                message=str(e),
            ))

        result.synced += 1

    # --- Single variant ---

    async def sync_variant(
        self,
        variant_id: int,
        channels: Iterable[ChannelName],
        target_quantity: Optional[int] = None,
    ) -> List[VariantSyncResult]:
        """
        Push one variant's quantity to the given channels.

        Raises:
            NotFoundError: unknown variant
        """
        entry = await self.ledger.get_variant(variant_id)
        quantity = entry.local_quantity if target_quantity is None else target_quantity

        results = []
        for channel in self.resolve_channels(channels):
            adapter = self.adapters.get(channel)
            if adapter is None:
                results.append(VariantSyncResult(channel=channel, success=False, error=NO_ADAPTER_MESSAGE))
                continue

            try:
                await self._call(channel, adapter.push_quantity(entry.sku, quantity))
                await self.ledger.upsert_channel_record(variant_id, channel, quantity)
            except Exception as e:
                logger.error(f"Failed to sync {entry.sku} to {channel.value}: {e}")
                results.append(VariantSyncResult(channel=channel, success=False, error=str(e) or type(e).__name__))
                continue

            previous = entry.channel_records.get(channel)
            quantity_change = quantity - (previous.quantity if previous else 0)
            if quantity_change:
                try:
                    await self.ledger.append_audit(
                        variant_id, quantity_change, AuditChangeType.SYNC_CORRECTION, f"Product sync to {channel.value}"
                    )
                except AuditWriteError as e:
                    logger.error(
                        f"Consistency warning: product sync of variant {variant_id} to {channel.value} "
                        f"({quantity_change:+d}) applied without an audit row: {e}"
                    )

            results.append(VariantSyncResult(channel=channel, success=True, quantity=quantity))

        return results

    # --- Health ---

    async def check_channel_health(self, channels: Optional[Iterable[ChannelName]] = None) -> HealthReport:
        targets = self.resolve_channels(channels)
        if channels is None:
            targets = [ChannelName.PWA] + targets

        report: Dict[ChannelName, ChannelHealth] = {}
        for channel in targets:
            if channel is ChannelName.PWA:
                report[channel] = ChannelHealth(status=HealthStatus.HEALTHY, message="Local storefront")
                continue

            adapter = self.adapters.get(channel)
            if adapter is None:
                report[channel] = ChannelHealth(status=HealthStatus.UNHEALTHY, message=NO_ADAPTER_MESSAGE)
                continue

            try:
                await self._call(channel, adapter.health_check())
                report[channel] = ChannelHealth(status=HealthStatus.HEALTHY, message="Connected")
            except Exception as e:
                logger.warning(f"{channel.value} health check failed: {e}")
                report[channel] = ChannelHealth(status=HealthStatus.UNHEALTHY, message=str(e) or type(e).__name__)

        overall = (
            HealthStatus.HEALTHY
            if all(h.status is HealthStatus.HEALTHY for h in report.values())
            else HealthStatus.DEGRADED
        )
        return HealthReport(overall=overall, channels=report)
