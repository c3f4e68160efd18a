"""Pydantic schemas for the read-only ledger API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AssetSummary(BaseModel):
    id: str
    description: str
    owner: str

    model_config = {"from_attributes": True}


class TransferSummary(BaseModel):
    id: int
    from_owner: Optional[str] = None
    to_owner: str
    block_number: str
    transaction_hash: str
    transferred_at: datetime

    model_config = {"from_attributes": True}


class AssetResponse(BaseModel):
    id: str
    owner: str
    description: str
    origin_timestamp: str
    registered_at: datetime

    model_config = {"from_attributes": True}


class AssetDetailResponse(AssetResponse):
    transfers: list[TransferSummary] = []


class TransferResponse(BaseModel):
    id: int
    asset_id: str
    from_owner: Optional[str] = None
    to_owner: str
    block_number: str
    transaction_hash: str
    timestamp: str
    transferred_at: datetime
    asset: Optional[AssetSummary] = None

    model_config = {"from_attributes": True}


class AssetListResponse(BaseModel):
    count: int
    data: list[AssetResponse]


class OwnerAssetsResponse(BaseModel):
    owner: str
    count: int
    data: list[AssetDetailResponse]


class TransferListResponse(BaseModel):
    asset_id: Optional[str] = None
    count: int
    data: list[TransferResponse]


class BlockRange(BaseModel):
    from_block: int
    to_block: int
    blocks: int


class RecentEventsResponse(BaseModel):
    block_range: BlockRange
    assets: AssetListResponse
    transfers: TransferListResponse


class SearchQuery(BaseModel):
    asset_id: Optional[str] = None
    owner: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SearchResponse(BaseModel):
    query: SearchQuery
    transfers: TransferListResponse
    assets: AssetListResponse


class ChunkFailureResponse(BaseModel):
    from_block: int
    to_block: int
    error: str

    model_config = {"from_attributes": True}


class SyncReportResponse(BaseModel):
    from_block: int
    to_block: int
    chunks_total: int
    chunks_processed: int
    registered: int
    transferred: int
    failed_chunks: list[ChunkFailureResponse] = []
    stopped: bool
    complete: bool
    started_at: datetime
    finished_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SyncStatusResponse(BaseModel):
    chain_configured: bool
    listener_state: str
    backfill_running: bool
    last_backfill: Optional[SyncReportResponse] = None
