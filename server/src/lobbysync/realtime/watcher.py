"""Watcher sessions: live views of one lobby's membership.

A WatcherSession subscribes to a lobby's membership events and answers each
one by fetching a complete snapshot through the lobby service. Event payloads
are never applied as diffs.

Refreshes are serialized per session and coalesced: events that arrive while
a fetch is running cause exactly one more fetch once it completes. Every
applied snapshot is numbered with a per-session sequence, and nothing is
applied after the session is closed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING

from lobbysync.lobby.errors import LobbyServiceError
from lobbysync.lobby.models import Lobby, LobbySnapshot
from lobbysync.realtime.notifier import ChangeNotifier, MembershipEvent, Subscription

if TYPE_CHECKING:
    from lobbysync.lobby.service import LobbyService

logger = logging.getLogger(__name__)

SnapshotSink = Callable[[LobbySnapshot, int], Awaitable[None]]
ErrorSink = Callable[[LobbyServiceError], Awaitable[None]]


class WatcherState(Enum):
    """Lifecycle states of a watcher session."""

    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    CLOSED = "closed"


class WatcherSession:
    """Keeps one viewer's copy of a lobby in sync with the store.

    Use as an async context manager so the subscription is released on every
    exit path:

        async with WatcherSession(service, notifier, code, on_snapshot) as session:
            ...

    Attributes:
        code: The lobby code being watched
        lobby_id: The lobby's ID, known once the session is open
        state: Current lifecycle state
        snapshot: The most recently applied snapshot
        sequence: Number of snapshots applied so far
    """

    def __init__(
        self,
        service: "LobbyService",
        notifier: ChangeNotifier,
        code: str,
        on_snapshot: SnapshotSink,
        on_error: ErrorSink | None = None,
    ) -> None:
        """Initialize the watcher session.

        Args:
            service: Lobby service used to fetch snapshots
            notifier: Source of membership events
            code: Lobby code to watch
            on_snapshot: Called with (snapshot, sequence) for each applied snapshot
            on_error: Called when a refresh fails (the session stays open)
        """
        self.service = service
        self.notifier = notifier
        self.code = code
        self.lobby_id: int | None = None
        self.state = WatcherState.IDLE
        self.snapshot: LobbySnapshot | None = None
        self.sequence = 0
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._subscription: Subscription | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._dirty = False
        self._fetch_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self.state in (WatcherState.SUBSCRIBING, WatcherState.ACTIVE)

    async def open(self, lobby: Lobby | None = None) -> LobbySnapshot:
        """Subscribe to the lobby and apply the initial snapshot.

        The subscription is made before the initial fetch, so no change
        between the two can be missed.

        Args:
            lobby: The lobby for this code if the caller already resolved it

        Returns:
            The initial snapshot

        Raises:
            LobbyNotFound: If the lobby does not exist
            RuntimeError: If the session was already opened
        """
        if self.state is not WatcherState.IDLE:
            raise RuntimeError(f"Watcher session for {self.code} already {self.state.value}")

        self.state = WatcherState.SUBSCRIBING
        try:
            if lobby is None:
                lobby = await self.service.resolve_lobby(self.code)
            if self.state is WatcherState.CLOSED:
                raise RuntimeError(f"Watcher session for {self.code} closed while opening")
            self.lobby_id = lobby.id
            self.code = lobby.code
            self._subscription = self.notifier.subscribe(lobby.id, self._on_event)
            self.state = WatcherState.ACTIVE

            async with self._fetch_lock:
                snapshot = await self.service.fetch_lobby(self.code)
                await self._apply(snapshot)
        except BaseException:
            await self.close()
            raise

        logger.debug(f"Watching lobby {self.code} (id={self.lobby_id})")
        return snapshot

    async def close(self) -> None:
        """Release the subscription and stop any pending refresh.

        Safe to call more than once and from any state.
        """
        if self.state is WatcherState.CLOSED:
            return
        self.state = WatcherState.CLOSED

        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.debug(f"Stopped watching lobby {self.code}")

    async def settle(self) -> None:
        """Wait until no refresh is pending."""
        while self._refresh_task is not None and not self._refresh_task.done():
            await asyncio.wait({self._refresh_task})

    async def __aenter__(self) -> "WatcherSession":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _on_event(self, event: MembershipEvent) -> None:
        """Schedule a refresh for a membership event."""
        if self.state is not WatcherState.ACTIVE:
            return
        logger.debug(f"Lobby {self.code} changed ({event.kind}), refreshing")
        self._dirty = True
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while self._dirty and self.state is WatcherState.ACTIVE:
            self._dirty = False
            async with self._fetch_lock:
                try:
                    await self._refresh_once()
                except Exception:
                    logger.exception(f"Snapshot delivery failed for lobby {self.code}, closing")
                    await self.close()
                    return

    async def _refresh_once(self) -> None:
        try:
            snapshot = await self.service.fetch_lobby(self.code)
        except LobbyServiceError as e:
            if self.state is not WatcherState.ACTIVE:
                return
            logger.warning(f"Refresh of lobby {self.code} failed: {e.message}")
            if self._on_error is not None:
                await self._on_error(e)
            return
        await self._apply(snapshot)

    async def _apply(self, snapshot: LobbySnapshot) -> None:
        """Deliver a snapshot unless the session has been closed meanwhile."""
        if self.state is not WatcherState.ACTIVE:
            return
        self.sequence += 1
        self.snapshot = snapshot
        await self._on_snapshot(snapshot, self.sequence)
