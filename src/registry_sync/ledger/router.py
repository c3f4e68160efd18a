"""Ledger API router — read-only views over assets and transfers."""

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query

from registry_sync.ledger.schemas import (
    AssetDetailResponse,
    AssetListResponse,
    AssetResponse,
    BlockRange,
    OwnerAssetsResponse,
    RecentEventsResponse,
    SearchQuery,
    SearchResponse,
    SyncReportResponse,
    SyncStatusResponse,
    TransferListResponse,
    TransferResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _get_service():
    from registry_sync.deps import get_ledger_service
    return get_ledger_service()


def _get_db():
    from registry_sync.deps import get_db
    return get_db()


def _asset_list(assets) -> AssetListResponse:
    return AssetListResponse(
        count=len(assets),
        data=[AssetResponse.model_validate(a) for a in assets],
    )


def _transfer_list(transfers, asset_id: str | None = None) -> TransferListResponse:
    return TransferListResponse(
        asset_id=asset_id,
        count=len(transfers),
        data=[TransferResponse.model_validate(t) for t in transfers],
    )


async def _chain_height() -> int | None:
    from registry_sync.deps import chain_available, get_chain_source

    if not chain_available():
        return None
    try:
        return await get_chain_source().current_height()
    except Exception:
        logger.warning("Could not fetch current block number", exc_info=True)
        return None


@router.get("/assets", response_model=AssetListResponse)
async def list_assets(
    limit: int | None = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        assets = await svc.list_assets(session, limit=limit, offset=offset)
        return _asset_list(assets)


@router.get("/assets/owner/{address}", response_model=OwnerAssetsResponse)
async def assets_by_owner(address: str):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        assets = await svc.assets_by_owner(session, address)
        return OwnerAssetsResponse(
            owner=address.lower(),
            count=len(assets),
            data=[AssetDetailResponse.model_validate(a) for a in assets],
        )


@router.get("/assets/{asset_id}", response_model=AssetDetailResponse)
async def get_asset(asset_id: str):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        asset = await svc.get_asset(session, asset_id)
        if asset is None:
            raise HTTPException(status_code=404, detail="Asset not found")
        return AssetDetailResponse.model_validate(asset)


@router.get("/assets/{asset_id}/transfers", response_model=TransferListResponse)
async def asset_transfers(
    asset_id: str,
    order: str = Query("block", pattern=r"^(time|block)$"),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        transfers = await svc.transfers_for_asset(session, asset_id, order=order)
        return _transfer_list(transfers, asset_id=asset_id)


@router.get("/transfers", response_model=TransferListResponse)
async def list_transfers(
    order: str = Query("time", pattern=r"^(time|block)$"),
    limit: int | None = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        transfers = await svc.list_transfers(session, order=order, limit=limit, offset=offset)
        return _transfer_list(transfers)


@router.get("/events/recent", response_model=RecentEventsResponse)
async def recent_events(blocks: int | None = Query(None, ge=1)):
    from registry_sync.common.config import get_settings

    blocks = blocks or get_settings().recent_blocks_default
    current_block = await _chain_height()

    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        events = await svc.recent_events(session, blocks, current_block=current_block)
        return RecentEventsResponse(
            block_range=BlockRange(
                from_block=events.from_block,
                to_block=events.to_block,
                blocks=events.to_block - events.from_block,
            ),
            assets=_asset_list(events.assets),
            transfers=_transfer_list(events.transfers),
        )


@router.get("/events/search", response_model=SearchResponse)
async def search_events(
    asset_id: str | None = Query(None, alias="assetId"),
    owner: str | None = Query(None),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        result = await svc.search(
            session, asset_id=asset_id, owner=owner,
            start_date=start_date, end_date=end_date,
        )
        return SearchResponse(
            query=SearchQuery(
                asset_id=asset_id, owner=owner,
                start_date=start_date, end_date=end_date,
            ),
            transfers=_transfer_list(result.transfers),
            assets=_asset_list(result.assets),
        )


@router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status():
    from registry_sync.deps import chain_available, get_backfill_controller, get_live_controller

    if not chain_available():
        return SyncStatusResponse(
            chain_configured=False, listener_state="idle", backfill_running=False,
        )

    backfill = get_backfill_controller()
    live = get_live_controller()
    report = backfill.last_report
    return SyncStatusResponse(
        chain_configured=True,
        listener_state=live.state.value,
        backfill_running=backfill.running,
        last_backfill=SyncReportResponse.model_validate(report) if report else None,
    )
