"""Chain event source contract consumed by the sync controllers."""

from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, Sequence


class EventKind(str, Enum):
    """Contract events the registry emits, keyed by their on-chain name."""

    REGISTERED = "AssetRegistered"
    TRANSFERRED = "AssetTransferred"

    @property
    def arg_names(self) -> tuple[str, ...]:
        return _ARG_NAMES[self]


_ARG_NAMES: dict[EventKind, tuple[str, ...]] = {
    EventKind.REGISTERED: ("id", "owner", "description", "timestamp"),
    EventKind.TRANSFERRED: ("id", "newOwner"),
}

EventHandler = Callable[[Any], Awaitable[None]]


class ChainEventSource(Protocol):
    """Capability object wrapping a contract on a JSON-RPC node.

    Raw events returned by ``query_range`` and passed to subscription
    handlers carry an ``args`` field plus transaction metadata, either
    inline or nested under ``log``.
    """

    async def current_height(self) -> int: ...

    async def block_timestamp(self, block_number: int) -> int | None: ...

    async def query_range(
        self, kind: EventKind, from_block: int, to_block: int,
    ) -> Sequence[Any]: ...

    async def subscribe(
        self, kind: EventKind, handler: EventHandler, from_block: int | None = None,
    ) -> None:
        """Deliver ``kind`` events to ``handler`` from ``from_block`` on.

        Without ``from_block`` delivery starts after the current head.
        """

    async def unsubscribe(self) -> None: ...
