"""Live controller — apply registry events as the subscription delivers them."""

import logging
from enum import Enum
from typing import Any

from registry_sync.chain.source import ChainEventSource, EventHandler, EventKind
from registry_sync.ledger.engine import ReconciliationEngine

logger = logging.getLogger(__name__)


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


class LiveController:
    """Owns the subscription lifecycle: IDLE -> LISTENING -> IDLE."""

    def __init__(self, engine: ReconciliationEngine, source: ChainEventSource):
        self.engine = engine
        self.source = source
        self.state = ListenerState.IDLE
        self.events_applied = 0
        self.events_failed = 0

    @property
    def listening(self) -> bool:
        return self.state is ListenerState.LISTENING

    async def start(self, from_block: int | None = None) -> None:
        """Subscribe to both event kinds.

        ``from_block`` resumes delivery right after a completed backfill;
        without it the subscription starts at the chain head.
        """
        if self.state is ListenerState.LISTENING:
            logger.info("Event listener is already running")
            return

        try:
            for kind in EventKind:
                await self.source.subscribe(kind, self._handler_for(kind), from_block=from_block)
        except Exception:
            await self.source.unsubscribe()
            raise
        self.state = ListenerState.LISTENING
        logger.info("Event listener started")

    async def stop(self) -> None:
        if self.state is ListenerState.IDLE:
            return
        await self.source.unsubscribe()
        self.state = ListenerState.IDLE
        logger.info("Event listener stopped")

    def _handler_for(self, kind: EventKind) -> EventHandler:
        async def handle(raw: Any) -> None:
            # One bad event must not end the subscription.
            try:
                await self.engine.apply(kind, raw)
            except Exception:
                self.events_failed += 1
                logger.exception("Error handling %s event", kind.value)
                return
            self.events_applied += 1

        return handle
