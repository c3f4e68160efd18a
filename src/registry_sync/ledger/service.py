"""Ledger query service — read-only projections of assets and transfers."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from registry_sync.common.exceptions import InvalidQueryError
from registry_sync.ledger.models import AssetModel, TransferModel

_ASSET_ID_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

TRANSFER_ORDERINGS = ("time", "block")


def validate_asset_id(asset_id: str) -> str:
    if not asset_id or not _ASSET_ID_RE.match(asset_id):
        raise InvalidQueryError(
            "Invalid asset ID format. Expected a hex string starting with 0x."
        )
    return asset_id


def validate_address(address: str) -> str:
    if not address or not _ADDRESS_RE.match(address):
        raise InvalidQueryError(
            "Invalid address format. Expected a valid Ethereum address."
        )
    return address.lower()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Block numbers are decimal text without leading zeros, so ordering by
# (length, text) is numeric ordering.

def _block_order(descending: bool = False) -> list:
    length = func.length(TransferModel.block_number)
    if descending:
        return [length.desc(), TransferModel.block_number.desc()]
    return [length.asc(), TransferModel.block_number.asc()]


def _block_at_least(block: int):
    text = str(block)
    length = func.length(TransferModel.block_number)
    return or_(
        length > len(text),
        and_(length == len(text), TransferModel.block_number >= text),
    )


def _block_at_most(block: int):
    text = str(block)
    length = func.length(TransferModel.block_number)
    return or_(
        length < len(text),
        and_(length == len(text), TransferModel.block_number <= text),
    )


@dataclass
class RecentEvents:
    from_block: int
    to_block: int
    assets: list[AssetModel] = field(default_factory=list)
    transfers: list[TransferModel] = field(default_factory=list)


@dataclass
class SearchResult:
    transfers: list[TransferModel] = field(default_factory=list)
    assets: list[AssetModel] = field(default_factory=list)


class LedgerService:
    """Read access to the asset/transfer store. Never writes."""

    # ── Assets ──

    async def get_asset(
        self, session: AsyncSession, asset_id: str,
    ) -> AssetModel | None:
        result = await session.execute(
            select(AssetModel)
            .options(selectinload(AssetModel.transfers))
            .where(AssetModel.id == asset_id)
        )
        return result.scalar_one_or_none()

    async def list_assets(
        self,
        session: AsyncSession,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AssetModel]:
        query = select(AssetModel).order_by(AssetModel.registered_at.desc(), AssetModel.id)
        if limit is not None:
            query = query.offset(offset).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def assets_by_owner(
        self, session: AsyncSession, address: str,
    ) -> list[AssetModel]:
        owner = validate_address(address)
        result = await session.execute(
            select(AssetModel)
            .options(selectinload(AssetModel.transfers))
            .where(AssetModel.owner == owner)
            .order_by(AssetModel.registered_at.desc(), AssetModel.id)
        )
        return list(result.scalars().all())

    # ── Transfers ──

    async def list_transfers(
        self,
        session: AsyncSession,
        order: str = "time",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TransferModel]:
        query = select(TransferModel).options(selectinload(TransferModel.asset))
        query = query.order_by(*self._transfer_order(order))
        if limit is not None:
            query = query.offset(offset).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def transfers_for_asset(
        self, session: AsyncSession, asset_id: str, order: str = "block",
    ) -> list[TransferModel]:
        """Ownership chain of one asset, oldest first."""
        validate_asset_id(asset_id)
        result = await session.execute(
            select(TransferModel)
            .options(selectinload(TransferModel.asset))
            .where(TransferModel.asset_id == asset_id)
            .order_by(*self._transfer_order(order))
        )
        return list(result.scalars().all())

    async def latest_block(self, session: AsyncSession) -> int | None:
        result = await session.execute(
            select(TransferModel.block_number).order_by(*_block_order(descending=True)).limit(1)
        )
        value = result.scalar_one_or_none()
        return int(value) if value is not None else None

    # ── Events ──

    async def recent_events(
        self,
        session: AsyncSession,
        blocks: int,
        current_block: int | None = None,
    ) -> RecentEvents:
        """Registrations and transfers within the last ``blocks`` blocks.

        ``current_block`` comes from the chain when available; otherwise the
        highest stored block bounds the window.
        """
        if current_block is None:
            current_block = await self.latest_block(session) or 0
        from_block = max(0, current_block - blocks)
        in_window = and_(_block_at_least(from_block), _block_at_most(current_block))

        transfers = await session.execute(
            select(TransferModel)
            .options(selectinload(TransferModel.asset))
            .where(in_window)
            .order_by(*_block_order(), TransferModel.id)
        )
        assets = await session.execute(
            select(AssetModel)
            .options(selectinload(AssetModel.transfers))
            .join(TransferModel, TransferModel.asset_id == AssetModel.id)
            .where(TransferModel.from_owner.is_(None), in_window)
            .order_by(AssetModel.registered_at.desc(), AssetModel.id)
        )
        return RecentEvents(
            from_block=from_block,
            to_block=current_block,
            assets=list(assets.scalars().unique().all()),
            transfers=list(transfers.scalars().all()),
        )

    async def search(
        self,
        session: AsyncSession,
        asset_id: str | None = None,
        owner: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> SearchResult:
        """Transfers by asset, party (sender or receiver) and local time range.

        Assets are included only when an asset id or owner narrows the search.
        """
        transfer_query = select(TransferModel).options(selectinload(TransferModel.asset))
        asset_query = select(AssetModel).options(selectinload(AssetModel.transfers))

        if asset_id:
            validate_asset_id(asset_id)
            transfer_query = transfer_query.where(TransferModel.asset_id == asset_id)
            asset_query = asset_query.where(AssetModel.id == asset_id)
        if owner:
            owner = validate_address(owner)
            transfer_query = transfer_query.where(
                or_(TransferModel.from_owner == owner, TransferModel.to_owner == owner)
            )
            asset_query = asset_query.where(AssetModel.owner == owner)
        if start_date is not None:
            transfer_query = transfer_query.where(
                TransferModel.transferred_at >= _as_utc(start_date)
            )
        if end_date is not None:
            transfer_query = transfer_query.where(
                TransferModel.transferred_at <= _as_utc(end_date)
            )

        transfers = await session.execute(
            transfer_query.order_by(TransferModel.transferred_at.desc(), TransferModel.id.desc())
        )
        result = SearchResult(transfers=list(transfers.scalars().all()))
        if asset_id or owner:
            assets = await session.execute(
                asset_query.order_by(AssetModel.registered_at.desc(), AssetModel.id)
            )
            result.assets = list(assets.scalars().all())
        return result

    @staticmethod
    def _transfer_order(order: str) -> list:
        if order not in TRANSFER_ORDERINGS:
            raise InvalidQueryError(
                f"Invalid order '{order}'. Expected one of: {', '.join(TRANSFER_ORDERINGS)}"
            )
        if order == "block":
            return [*_block_order(), TransferModel.id]
        return [TransferModel.transferred_at.asc(), TransferModel.id]
