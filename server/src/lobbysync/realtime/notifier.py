"""Change notifiers for lobby membership.

A notifier fans membership events out to the subscribers of one lobby.
Events are wake-up signals only: subscribers re-read the lobby instead of
trusting the event contents, so duplicate or reordered delivery is harmless.
"""

import asyncio
import contextlib
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import asyncpg

from lobbysync.lobby.errors import StoreUnavailable
from lobbysync.settings import Settings

logger = logging.getLogger(__name__)

# Channel the lobby_players trigger notifies on (see migration 001)
LOBBY_PLAYERS_CHANNEL = "lobby_players_changes"

# Seconds to wait before each reconnect attempt; the last delay repeats
RECONNECT_DELAYS = (0.5, 1.0, 2.0, 5.0)


@dataclass(frozen=True)
class MembershipEvent:
    """A change to one lobby's membership rows.

    Attributes:
        lobby_id: The lobby whose members changed
        kind: "insert", "update", "delete", "upsert" or "resync" (informational only)
    """

    lobby_id: int
    kind: str


EventCallback = Callable[[MembershipEvent], None]


class Subscription:
    """Handle for one callback registered with a notifier."""

    def __init__(self, notifier: "ChangeNotifier", lobby_id: int, callback: EventCallback) -> None:
        self.notifier = notifier
        self.lobby_id = lobby_id
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        """Stop delivery to this subscription. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self.notifier._unsubscribe(self)


class ChangeNotifier(ABC):
    """Base class for membership change notifiers."""

    def __init__(self) -> None:
        # lobby_id -> subscriptions
        self._subscriptions: dict[int, list[Subscription]] = {}

    def subscribe(self, lobby_id: int, callback: EventCallback) -> Subscription:
        """Register a callback for membership events of a lobby.

        Callbacks run on the event loop and must not block.
        """
        subscription = Subscription(self, lobby_id, callback)
        self._subscriptions.setdefault(lobby_id, []).append(subscription)
        logger.debug(f"Subscribed to lobby {lobby_id} ({self.subscriber_count(lobby_id)} total)")
        return subscription

    def subscriber_count(self, lobby_id: int | None = None) -> int:
        """Count live subscriptions, for one lobby or overall."""
        if lobby_id is not None:
            return len(self._subscriptions.get(lobby_id, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.lobby_id)
        if not subs:
            return
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            del self._subscriptions[subscription.lobby_id]
        logger.debug(f"Unsubscribed from lobby {subscription.lobby_id}")

    def _dispatch(self, event: MembershipEvent) -> None:
        """Deliver an event to every live subscription of its lobby."""
        for subscription in list(self._subscriptions.get(event.lobby_id, [])):
            if subscription.closed:
                continue
            try:
                subscription.callback(event)
            except Exception:
                # One failing watcher must not break delivery to the others
                logger.exception(f"Membership callback failed for lobby {event.lobby_id}")

    @abstractmethod
    def publish(self, event: MembershipEvent) -> None:
        """Report a committed membership mutation."""

    async def start(self) -> None:
        """Start receiving events."""

    async def close(self) -> None:
        """Stop receiving events and drop all subscriptions."""
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.close()


class LocalChangeNotifier(ChangeNotifier):
    """In-process notifier fed directly by the lobby service.

    Only sees mutations made by this process.
    """

    def publish(self, event: MembershipEvent) -> None:
        self._dispatch(event)


class PostgresChangeNotifier(ChangeNotifier):
    """Notifier fed by PostgreSQL NOTIFY from the lobby_players trigger.

    Sees mutations from every process sharing the database. Service-side
    publishes are ignored since the trigger already reports them.

    If the LISTEN connection is lost the notifier reconnects with backoff.
    Notifications sent while disconnected are gone, so after reconnecting
    every subscribed lobby gets a "resync" event and its watchers re-read it.
    """

    def __init__(
        self,
        dsn: str,
        channel: str = LOBBY_PLAYERS_CHANNEL,
        reconnect_delays: Sequence[float] = RECONNECT_DELAYS,
    ) -> None:
        super().__init__()
        self.dsn = dsn
        self.channel = channel
        self.reconnect_delays = tuple(reconnect_delays) or (0.0,)
        self._connection: asyncpg.Connection | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def publish(self, event: MembershipEvent) -> None:
        pass

    async def start(self) -> None:
        self._closing = False
        if self._connection is not None:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        await self._connect()
        logger.info(f"Listening for lobby changes on channel {self.channel}")

    async def _connect(self) -> None:
        try:
            connection = await asyncpg.connect(self.dsn)
        except (OSError, asyncpg.PostgresError) as e:
            raise StoreUnavailable(f"Could not listen for lobby changes: {e}") from e
        try:
            await connection.add_listener(self.channel, self._on_notification)
        except (OSError, asyncpg.PostgresError) as e:
            await connection.close()
            raise StoreUnavailable(f"Could not listen for lobby changes: {e}") from e
        connection.add_termination_listener(self._on_connection_lost)
        self._connection = connection

    async def close(self) -> None:
        self._closing = True
        await super().close()

        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        connection = self._connection
        self._connection = None
        if connection is None:
            return
        connection.remove_termination_listener(self._on_connection_lost)
        try:
            await connection.remove_listener(self.channel, self._on_notification)
        finally:
            await connection.close()
        logger.info(f"Stopped listening on channel {self.channel}")

    def _on_notification(self, _connection: Any, _pid: int, _channel: str, payload: str) -> None:
        event = parse_notification(payload)
        if event is None:
            logger.warning(f"Ignoring malformed lobby change notification: {payload!r}")
            return
        self._dispatch(event)

    def _on_connection_lost(self, connection: Any) -> None:
        if self._closing or connection is not self._connection:
            return
        logger.warning(f"Lost the listen connection for channel {self.channel}, reconnecting")
        self._connection = None
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        attempt = 0
        while not self._closing:
            delay = self.reconnect_delays[min(attempt, len(self.reconnect_delays) - 1)]
            attempt += 1
            await asyncio.sleep(delay)
            try:
                await self._connect()
            except StoreUnavailable as e:
                logger.warning(f"Reconnect attempt {attempt} failed: {e.message}")
                continue

            logger.info(f"Listening for lobby changes on channel {self.channel} again")
            for lobby_id in list(self._subscriptions):
                self._dispatch(MembershipEvent(lobby_id=lobby_id, kind="resync"))
            return


def parse_notification(payload: str) -> MembershipEvent | None:
    """Parse a trigger payload like {"lobby_id": 1, "op": "INSERT"}.

    Returns:
        The event, or None if the payload is malformed
    """
    try:
        data = json.loads(payload)
        return MembershipEvent(lobby_id=int(data["lobby_id"]), kind=str(data["op"]).lower())
    except (ValueError, KeyError, TypeError):
        return None


def build_notifier(settings: Settings) -> ChangeNotifier:
    """Create the notifier selected by settings."""
    if settings.change_feed == "postgres":
        return PostgresChangeNotifier(settings.listen_dsn)
    return LocalChangeNotifier()
