"""Reconciliation engine — idempotent application of registry events.

Both the backfill loop and the live subscription funnel every event
through this engine; it is the only writer of assets and transfers.

Idempotency rests on two storage constraints: the asset primary key and
the unique ``transfers.transaction_hash``. Existence checks before each
write only avoid pointless write attempts. When two appliers race past
the check, the loser's commit hits the constraint, its whole unit of
work rolls back, and the collision is reported as a duplicate.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from registry_sync.chain.source import ChainEventSource, EventKind
from registry_sync.common.database import DatabaseManager
from registry_sync.ledger.models import AssetModel, TransferModel
from registry_sync.ledger.normalizer import (
    event_args,
    normalize_address,
    normalize_envelope,
    to_decimal_text,
    to_hex,
)

logger = logging.getLogger(__name__)


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    ORPHAN = "orphan"
    # Asset side effect applied, but the envelope had no transaction metadata.
    UNTRACKED = "untracked"


@dataclass
class ApplyResult:
    outcome: ApplyOutcome
    asset_id: str
    asset_created: bool = False
    transfer_id: int | None = None


class ReconciliationEngine:
    """Applies AssetRegistered / AssetTransferred events to the store."""

    def __init__(
        self,
        db: DatabaseManager,
        source: ChainEventSource | None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.source = source
        self._clock = clock
        # Serializes read-modify-write of an asset's transfer chain within
        # this process; the unique constraint still guards other processes.
        self._chain_lock = asyncio.Lock()

    async def apply(self, kind: EventKind, raw: Any) -> ApplyResult:
        """Apply a raw event as delivered by either controller."""
        args = event_args(raw, kind)
        if kind is EventKind.REGISTERED:
            asset_id, owner, description, timestamp = args
            return await self.apply_registered(asset_id, owner, description, timestamp, raw)
        asset_id, new_owner = args
        return await self.apply_transferred(asset_id, new_owner, raw)

    # ── Registration ──

    async def apply_registered(
        self,
        asset_id: Any,
        owner: Any,
        description: str,
        timestamp: Any,
        envelope: Any,
    ) -> ApplyResult:
        asset_id = to_hex(asset_id)
        owner = normalize_address(owner)
        origin_timestamp = to_decimal_text(timestamp)

        logger.info("AssetRegistered: %s by %s", asset_id, owner)
        created = await self._create_asset_if_absent(
            asset_id, owner, description, origin_timestamp,
        )

        meta = normalize_envelope(envelope)
        if meta is None:
            logger.debug("Registration of %s has no transaction metadata", asset_id)
            return ApplyResult(ApplyOutcome.UNTRACKED, asset_id, asset_created=created)

        if await self._transfer_exists(meta.transaction_hash):
            logger.debug("Transfer %s already recorded", meta.transaction_hash)
            return ApplyResult(ApplyOutcome.DUPLICATE, asset_id, asset_created=created)

        transfer = TransferModel(
            asset_id=asset_id,
            from_owner=None,
            to_owner=owner,
            block_number=str(meta.block_number),
            transaction_hash=meta.transaction_hash,
            timestamp=origin_timestamp,
        )
        try:
            async with self.db.get_session() as session:
                session.add(transfer)
        except IntegrityError:
            if not await self._transfer_exists(meta.transaction_hash):
                raise
            logger.debug("Transfer %s inserted concurrently", meta.transaction_hash)
            return ApplyResult(ApplyOutcome.DUPLICATE, asset_id, asset_created=created)

        logger.info("Initial transfer record created for asset %s", asset_id)
        return ApplyResult(
            ApplyOutcome.APPLIED, asset_id,
            asset_created=created, transfer_id=transfer.id,
        )

    async def _create_asset_if_absent(
        self, asset_id: str, owner: str, description: str, origin_timestamp: str,
    ) -> bool:
        try:
            async with self.db.get_session() as session:
                if await session.get(AssetModel, asset_id) is not None:
                    logger.debug("Asset %s already exists", asset_id)
                    return False
                session.add(AssetModel(
                    id=asset_id,
                    owner=owner,
                    description=description,
                    origin_timestamp=origin_timestamp,
                ))
        except IntegrityError:
            async with self.db.get_session() as session:
                if await session.get(AssetModel, asset_id) is None:
                    raise
            logger.debug("Asset %s was registered concurrently", asset_id)
            return False

        logger.info("Asset %s stored", asset_id)
        return True

    # ── Transfer ──

    async def apply_transferred(
        self, asset_id: Any, new_owner: Any, envelope: Any,
    ) -> ApplyResult:
        asset_id = to_hex(asset_id)
        new_owner = normalize_address(new_owner)
        meta = normalize_envelope(envelope)

        logger.info("AssetTransferred: %s to %s", asset_id, new_owner)

        # Duplicate check comes before any owner mutation so a re-delivered
        # event cannot rewrite the owner with stale data.
        if meta is not None and await self._transfer_exists(meta.transaction_hash):
            logger.debug("Transfer %s already recorded", meta.transaction_hash)
            return ApplyResult(ApplyOutcome.DUPLICATE, asset_id)

        async with self.db.get_session() as session:
            asset = await session.get(AssetModel, asset_id)
            if asset is None:
                logger.warning(
                    "Asset %s not found when processing transfer; event discarded",
                    asset_id,
                )
                return ApplyResult(ApplyOutcome.ORPHAN, asset_id)
            if meta is None:
                asset.owner = new_owner
                logger.debug("Transfer of %s has no transaction metadata", asset_id)
                return ApplyResult(ApplyOutcome.UNTRACKED, asset_id)

        timestamp = await self._resolve_block_timestamp(meta.block_number)

        try:
            async with self._chain_lock, self.db.get_session() as session:
                asset = await session.get(AssetModel, asset_id)
                transfer = TransferModel(
                    asset_id=asset_id,
                    to_owner=new_owner,
                    block_number=str(meta.block_number),
                    transaction_hash=meta.transaction_hash,
                    timestamp=timestamp,
                )
                await self._link_into_chain(session, asset, transfer, meta.block_number)
                session.add(transfer)
        except IntegrityError:
            if not await self._transfer_exists(meta.transaction_hash):
                raise
            logger.debug("Transfer %s inserted concurrently", meta.transaction_hash)
            return ApplyResult(ApplyOutcome.DUPLICATE, asset_id)

        logger.info("Transfer record created for asset %s", asset_id)
        return ApplyResult(ApplyOutcome.APPLIED, asset_id, transfer_id=transfer.id)

    async def _link_into_chain(
        self, session: AsyncSession, asset: AssetModel, transfer: TransferModel, block_number: int,
    ) -> None:
        """Place ``transfer`` in the asset's block-ordered chain.

        Rows in the same block keep arrival order, so the new row follows any
        recorded row at its block. ``from_owner`` comes from the row before
        it, the row after it (if any) is re-pointed at the new owner, and the
        asset's current owner only moves when nothing newer is recorded.
        """
        result = await session.execute(
            select(TransferModel).where(TransferModel.asset_id == asset.id)
        )
        recorded = sorted(result.scalars().all(), key=lambda t: (int(t.block_number), t.id))
        before = [t for t in recorded if int(t.block_number) <= block_number]
        after = [
            t for t in recorded
            if int(t.block_number) > block_number and t.from_owner is not None
        ]

        if before:
            transfer.from_owner = before[-1].to_owner
        elif after:
            transfer.from_owner = after[0].from_owner
        else:
            transfer.from_owner = asset.owner

        if after:
            logger.info(
                "Transfer of %s at block %s arrived after block %s; relinking chain",
                asset.id, block_number, after[0].block_number,
            )
            after[0].from_owner = transfer.to_owner
        else:
            asset.owner = transfer.to_owner

    async def _resolve_block_timestamp(self, block_number: int) -> str:
        """Block time for a transfer, or local wall-clock seconds as a fallback.

        The fallback makes Transfer.timestamp approximate for affected rows.
        """
        block_ts = None
        if self.source is not None:
            try:
                block_ts = await self.source.block_timestamp(block_number)
            except Exception:
                logger.warning(
                    "Timestamp lookup for block %s failed", block_number, exc_info=True,
                )
        if block_ts is not None:
            return to_decimal_text(block_ts)

        logger.warning("Using local clock as timestamp for block %s", block_number)
        return str(int(self._clock()))

    # ── Helpers ──

    async def _transfer_exists(self, transaction_hash: str) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(TransferModel.id).where(
                    TransferModel.transaction_hash == transaction_hash,
                )
            )
            return result.first() is not None
