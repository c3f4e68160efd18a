"""Registry-Sync: idempotent projection of asset registry chain events."""

from registry_sync.chain.source import ChainEventSource, EventKind
from registry_sync.ledger.engine import ApplyOutcome, ApplyResult, ReconciliationEngine
from registry_sync.ledger.normalizer import EventEnvelope, normalize_envelope
from registry_sync.sync.backfill import BackfillController, SyncReport
from registry_sync.sync.live import ListenerState, LiveController

__all__ = [
    "ChainEventSource",
    "EventKind",
    "ApplyOutcome",
    "ApplyResult",
    "ReconciliationEngine",
    "EventEnvelope",
    "normalize_envelope",
    "BackfillController",
    "SyncReport",
    "ListenerState",
    "LiveController",
]
__version__ = "0.1.0"
