"""Shared test fixtures for Registry-Sync."""

from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from registry_sync.chain.source import EventKind
from registry_sync.common.config import RegistrySyncSettings
from registry_sync.common.database import DatabaseManager

OWNER_A = "0x" + "aa" * 20
OWNER_B = "0x" + "bb" * 20
OWNER_C = "0x" + "cc" * 20


def asset_hex(n: int) -> str:
    return "0x" + f"{n:064x}"


def tx_hex(n: int) -> str:
    return "0x" + f"{n:064x}"


class FakeChainSource:
    """In-process chain source with scriptable failures.

    Events are kept per kind in emission order; ``query_range`` returns the
    ones whose block falls inside the range, like ``eth_getLogs``.
    """

    def __init__(self, height: int = 0):
        self.height = height
        self.block_times: dict[int, int] = {}
        self.events: dict[EventKind, list[tuple[int, Any]]] = {
            EventKind.REGISTERED: [],
            EventKind.TRANSFERRED: [],
        }
        self.fail_height = False
        self.fail_block_lookup = False
        self.fail_ranges: list[tuple[int, int]] = []
        self.queries: list[tuple[EventKind, int, int]] = []
        self.handlers: dict[EventKind, list] = {}
        self.subscribe_calls = 0
        self.subscribed_from: int | None = None
        self.unsubscribe_calls = 0

    # ── Event builders ──

    @staticmethod
    def envelope(tx: str | None, block: int | None, shape: str = "log") -> dict:
        meta: dict[str, Any] = {}
        if tx is not None:
            meta["hash" if shape == "hash" else "transactionHash"] = tx
        if block is not None:
            meta["blockNumber"] = block
        if shape == "log":
            return {"log": meta}
        return meta

    def register(
        self, asset_id: str, owner: str, description: str, timestamp: int,
        tx: str, block: int, shape: str = "log",
    ) -> dict:
        raw = {"args": (asset_id, owner, description, timestamp)}
        raw.update(self.envelope(tx, block, shape))
        self.events[EventKind.REGISTERED].append((block, raw))
        self.height = max(self.height, block)
        return raw

    def transfer(
        self, asset_id: str, new_owner: str, tx: str, block: int,
        block_time: int | None = None, shape: str = "log",
    ) -> dict:
        raw = {"args": (asset_id, new_owner)}
        raw.update(self.envelope(tx, block, shape))
        self.events[EventKind.TRANSFERRED].append((block, raw))
        self.height = max(self.height, block)
        if block_time is not None:
            self.block_times[block] = block_time
        return raw

    # ── ChainEventSource ──

    async def current_height(self) -> int:
        if self.fail_height:
            raise ConnectionError("rpc unreachable")
        return self.height

    async def block_timestamp(self, block_number: int) -> int | None:
        if self.fail_block_lookup:
            raise ConnectionError("block lookup failed")
        return self.block_times.get(block_number)

    async def query_range(self, kind: EventKind, from_block: int, to_block: int):
        self.queries.append((kind, from_block, to_block))
        for start, end in self.fail_ranges:
            if from_block <= end and start <= to_block:
                raise RuntimeError(f"query failed for {from_block}-{to_block}")
        return [raw for block, raw in self.events[kind] if from_block <= block <= to_block]

    async def subscribe(self, kind: EventKind, handler, from_block: int | None = None) -> None:
        self.subscribe_calls += 1
        self.subscribed_from = from_block
        self.handlers.setdefault(kind, []).append(handler)

    async def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.handlers.clear()

    async def emit(self, kind: EventKind, raw: Any) -> None:
        for handler in list(self.handlers.get(kind, ())):
            await handler(raw)


def populate(source: FakeChainSource) -> None:
    """Three assets registered and traded across blocks 0..40."""
    owners = [OWNER_A, OWNER_B, OWNER_C]
    tx = 0
    for n in range(3):
        tx += 1
        source.register(asset_hex(n), owners[n], f"asset {n}", 1000 + n, tx_hex(tx), 2 + n * 3)
    for step in range(6):
        n = step % 3
        tx += 1
        block = 10 + step * 5
        source.transfer(
            asset_hex(n), owners[(n + step + 1) % 3], tx_hex(tx), block,
            block_time=5000 + block,
        )
    source.height = 40


def make_settings(**overrides) -> RegistrySyncSettings:
    defaults = {"db_url": "sqlite+aiosqlite://", "chunk_delay": 0}
    defaults.update(overrides)
    return RegistrySyncSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def source():
    return FakeChainSource()


@pytest.fixture
def app(source, monkeypatch):
    """Create a test app with in-memory DB and the fake chain source."""
    monkeypatch.setenv("REGISTRY_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("REGISTRY_CHUNK_DELAY", "0")

    # Clear caches and singletons so new env vars take effect
    from registry_sync.common.config import get_settings
    get_settings.cache_clear()

    from registry_sync.deps import reset_singletons, set_chain_source
    reset_singletons()
    set_chain_source(source)

    from registry_sync.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from registry_sync.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()
