"""Dependency injection singletons for Registry-Sync."""

from registry_sync.chain.source import ChainEventSource
from registry_sync.common.config import get_settings
from registry_sync.common.database import DatabaseManager
from registry_sync.common.exceptions import ChainNotConfiguredError
from registry_sync.ledger.engine import ReconciliationEngine
from registry_sync.ledger.service import LedgerService
from registry_sync.sync.backfill import BackfillController
from registry_sync.sync.live import LiveController

_db: DatabaseManager | None = None
_source: ChainEventSource | None = None
_engine: ReconciliationEngine | None = None
_backfill: BackfillController | None = None
_live: LiveController | None = None
_ledger: LedgerService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def chain_available() -> bool:
    return _source is not None or get_settings().chain_configured


def get_chain_source() -> ChainEventSource:
    global _source
    if _source is None:
        settings = get_settings()
        if not settings.chain_configured:
            raise ChainNotConfiguredError()
        from registry_sync.chain.web3_source import Web3EventSource
        _source = Web3EventSource(
            settings.rpc_url,
            settings.contract_address,
            poll_interval=settings.poll_interval,
            max_poll_range=settings.chunk_size,
        )
    return _source


def set_chain_source(source: ChainEventSource) -> None:
    """Install a specific source (alternate transports, tests)."""
    global _source, _engine, _backfill, _live
    _source = source
    _engine = None
    _backfill = None
    _live = None


def get_engine() -> ReconciliationEngine:
    global _engine
    if _engine is None:
        _engine = ReconciliationEngine(get_db(), get_chain_source())
    return _engine


def get_backfill_controller() -> BackfillController:
    global _backfill
    if _backfill is None:
        settings = get_settings()
        _backfill = BackfillController(
            get_engine(),
            get_chain_source(),
            chunk_size=settings.chunk_size,
            chunk_delay=settings.chunk_delay,
        )
    return _backfill


def get_live_controller() -> LiveController:
    global _live
    if _live is None:
        _live = LiveController(get_engine(), get_chain_source())
    return _live


def get_ledger_service() -> LedgerService:
    global _ledger
    if _ledger is None:
        _ledger = LedgerService()
    return _ledger


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _source, _engine, _backfill, _live, _ledger
    _db = None
    _source = None
    _engine = None
    _backfill = None
    _live = None
    _ledger = None
