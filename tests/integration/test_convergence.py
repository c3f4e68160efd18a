"""Backfill and live delivery running together converge on one ledger."""

import asyncio

import pytest
from sqlalchemy import select

from conftest import FakeChainSource, make_settings, populate
from registry_sync.chain.source import EventKind
from registry_sync.common.database import DatabaseManager
from registry_sync.ledger.engine import ReconciliationEngine
from registry_sync.ledger.models import AssetModel, TransferModel
from registry_sync.sync.backfill import BackfillController
from registry_sync.sync.live import LiveController


async def ledger_state(db: DatabaseManager) -> tuple:
    async with db.get_session() as session:
        assets = (await session.execute(select(AssetModel).order_by(AssetModel.id))).scalars().all()
        transfers = (
            await session.execute(select(TransferModel).order_by(TransferModel.transaction_hash))
        ).scalars().all()
        return (
            [(a.id, a.owner, a.description, a.origin_timestamp) for a in assets],
            [
                (t.asset_id, t.from_owner, t.to_owner, t.block_number, t.transaction_hash, t.timestamp)
                for t in transfers
            ],
        )


def chain_order(source: FakeChainSource, from_block: int) -> list[tuple[EventKind, dict]]:
    events = [
        (block, 0 if kind is EventKind.REGISTERED else 1, kind, raw)
        for kind, entries in source.events.items()
        for block, raw in entries
        if block >= from_block
    ]
    events.sort(key=lambda e: (e[0], e[1]))
    return [(kind, raw) for _, _, kind, raw in events]


@pytest.fixture
async def file_db(tmp_path):
    manager = DatabaseManager(make_settings(db_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"))
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


async def reference_state() -> tuple:
    source = FakeChainSource()
    populate(source)
    db = DatabaseManager(make_settings())
    await db.init()
    await db.create_all()
    try:
        engine = ReconciliationEngine(db, source)
        await BackfillController(engine, source, chunk_size=1000, chunk_delay=0).sync(0)
        return await ledger_state(db)
    finally:
        await db.close()


class TestConvergence:
    @pytest.mark.parametrize("live_from", [0, 12, 25])
    async def test_backfill_and_live_overlap(self, file_db, live_from):
        source = FakeChainSource()
        populate(source)
        engine = ReconciliationEngine(file_db, source)
        backfill = BackfillController(engine, source, chunk_size=5, chunk_delay=0)
        live = LiveController(engine, source)
        await live.start()

        async def deliver_live():
            for kind, raw in chain_order(source, live_from):
                await source.emit(kind, raw)
                await asyncio.sleep(0)

        report, _ = await asyncio.gather(backfill.sync(0), deliver_live())
        await live.stop()

        assert report.complete
        assert live.events_failed == 0
        assert await ledger_state(file_db) == await reference_state()

    async def test_restart_resync_after_live(self, file_db):
        source = FakeChainSource()
        populate(source)
        engine = ReconciliationEngine(file_db, source)
        live = LiveController(engine, source)
        await live.start()
        for kind, raw in chain_order(source, 0):
            await source.emit(kind, raw)
        await live.stop()

        # A restart replays history over a ledger the listener already filled.
        report = await BackfillController(engine, source, chunk_size=7, chunk_delay=0).sync(0)

        assert report.complete
        assert await ledger_state(file_db) == await reference_state()
