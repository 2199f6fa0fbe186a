"""Tests for WatcherSession."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from lobbysync.lobby.errors import LobbyNotFound, StoreUnavailable
from lobbysync.lobby.models import Lobby, LobbySnapshot, Member
from lobbysync.lobby.service import LobbyService
from lobbysync.realtime.notifier import LocalChangeNotifier, MembershipEvent
from lobbysync.realtime.watcher import WatcherSession, WatcherState


class SnapshotRecorder:
    """Snapshot sink that remembers everything it was given."""

    def __init__(self) -> None:
        self.snapshots: list[LobbySnapshot] = []
        self.sequences: list[int] = []

    async def __call__(self, snapshot: LobbySnapshot, sequence: int) -> None:
        self.snapshots.append(snapshot)
        self.sequences.append(sequence)

    @property
    def member_counts(self) -> list[int]:
        return [len(s.members) for s in self.snapshots]


class FakeLobbyService:
    """Stands in for LobbyService with controllable fetches."""

    def __init__(self) -> None:
        self.lobby = Lobby(id=1, code="AB2K9Z", created_at=datetime.now(UTC))
        self.members: list[Member] = []
        self.fetch_calls = 0
        self.resolve_calls = 0
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def resolve_lobby(self, code: str) -> Lobby:
        self.resolve_calls += 1
        return self.lobby

    async def fetch_lobby(self, code: str) -> LobbySnapshot:
        self.fetch_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return LobbySnapshot(lobby=self.lobby, members=tuple(self.members))

    def add_member(self, user_id: str) -> None:
        self.members.append(
            Member(
                id=len(self.members) + 1,
                lobby_id=self.lobby.id,
                user_id=user_id,
                wallet_address=None,
                joined_at=datetime.now(UTC),
            )
        )


async def wait_for_fetches(service: FakeLobbyService, count: int) -> None:
    while service.fetch_calls < count:
        await asyncio.sleep(0)


def changed(lobby_id: int = 1) -> MembershipEvent:
    return MembershipEvent(lobby_id=lobby_id, kind="upsert")


class TestWatcherWithStore:
    """WatcherSession driven by a real LobbyService."""

    @pytest.mark.asyncio
    async def test_open_applies_initial_snapshot(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        lobby = await lobby_service.create_lobby(owner_user_id="owner")
        recorder = SnapshotRecorder()
        session = WatcherSession(lobby_service, notifier, lobby.code.lower(), recorder)

        snapshot = await session.open()

        assert session.state is WatcherState.ACTIVE
        assert session.lobby_id == lobby.id
        assert session.code == lobby.code
        assert snapshot.user_ids == ["owner"]
        assert recorder.sequences == [1]
        assert session.snapshot == snapshot
        assert notifier.subscriber_count(lobby.id) == 1

        await session.close()

    @pytest.mark.asyncio
    async def test_joins_converge(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        """Two joins while watching end with both members, counts never going back."""
        lobby = await lobby_service.create_lobby()
        recorder = SnapshotRecorder()

        async with WatcherSession(lobby_service, notifier, lobby.code, recorder) as session:
            await lobby_service.join_lobby(lobby.code, "user-1")
            await lobby_service.join_lobby(lobby.code, "user-2")
            await session.settle()

            assert session.snapshot is not None
            assert session.snapshot.user_ids == ["user-1", "user-2"]

        assert recorder.member_counts[0] == 0
        assert recorder.member_counts[-1] == 2
        assert recorder.member_counts == sorted(recorder.member_counts)
        assert recorder.sequences == list(range(1, len(recorder.sequences) + 1))

    @pytest.mark.asyncio
    async def test_leave_is_observed(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        lobby = await lobby_service.create_lobby(owner_user_id="owner")
        await lobby_service.join_lobby(lobby.code, "user-1")
        recorder = SnapshotRecorder()

        async with WatcherSession(lobby_service, notifier, lobby.code, recorder) as session:
            await lobby_service.leave_lobby(lobby.id, "user-1")
            await session.settle()

        assert recorder.snapshots[-1].user_ids == ["owner"]

    @pytest.mark.asyncio
    async def test_close_releases_subscription(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        lobby = await lobby_service.create_lobby()
        recorder = SnapshotRecorder()
        session = WatcherSession(lobby_service, notifier, lobby.code, recorder)
        await session.open()

        await session.close()
        await lobby_service.join_lobby(lobby.code, "user-1")
        await asyncio.sleep(0)

        assert session.state is WatcherState.CLOSED
        assert notifier.subscriber_count(lobby.id) == 0
        assert recorder.sequences == [1]

    @pytest.mark.asyncio
    async def test_open_unknown_code(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        recorder = SnapshotRecorder()
        session = WatcherSession(lobby_service, notifier, "ZZZZZZ", recorder)

        with pytest.raises(LobbyNotFound):
            await session.open()

        assert session.state is WatcherState.CLOSED
        assert notifier.subscriber_count() == 0
        assert recorder.snapshots == []

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        lobby = await lobby_service.create_lobby()

        with pytest.raises(ValueError):
            async with WatcherSession(lobby_service, notifier, lobby.code, SnapshotRecorder()):
                raise ValueError("viewer went away")

        assert notifier.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_independent_watchers(
        self, lobby_service: LobbyService, notifier: LocalChangeNotifier
    ) -> None:
        lobby = await lobby_service.create_lobby()
        first = SnapshotRecorder()
        second = SnapshotRecorder()

        async with WatcherSession(lobby_service, notifier, lobby.code, first) as a:
            async with WatcherSession(lobby_service, notifier, lobby.code, second) as b:
                assert notifier.subscriber_count(lobby.id) == 2
                await lobby_service.join_lobby(lobby.code, "user-1")
                await a.settle()
                await b.settle()
            assert notifier.subscriber_count(lobby.id) == 1

        assert first.snapshots[-1].user_ids == ["user-1"]
        assert second.snapshots[-1].user_ids == ["user-1"]


class TestWatcherLifecycle:
    """State machine and refresh scheduling, with a fake service."""

    @pytest.mark.asyncio
    async def test_open_twice(self) -> None:
        service = FakeLobbyService()
        session = WatcherSession(service, LocalChangeNotifier(), "AB2K9Z", SnapshotRecorder())
        await session.open()

        with pytest.raises(RuntimeError):
            await session.open()

        await session.close()

    @pytest.mark.asyncio
    async def test_open_with_resolved_lobby(self) -> None:
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        session = WatcherSession(service, notifier, "ab2k9z", SnapshotRecorder())

        await session.open(service.lobby)

        assert service.resolve_calls == 0
        assert session.code == "AB2K9Z"
        assert notifier.subscriber_count(service.lobby.id) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_open_after_close(self) -> None:
        session = WatcherSession(
            FakeLobbyService(), LocalChangeNotifier(), "AB2K9Z", SnapshotRecorder()
        )
        await session.close()

        with pytest.raises(RuntimeError):
            await session.open()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        notifier = LocalChangeNotifier()
        session = WatcherSession(FakeLobbyService(), notifier, "AB2K9Z", SnapshotRecorder())
        await session.open()

        await session.close()
        await session.close()

        assert not session.is_open
        assert notifier.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_events_are_coalesced(self) -> None:
        """Events during an in-flight fetch cause exactly one more fetch."""
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        recorder = SnapshotRecorder()
        session = WatcherSession(service, notifier, "AB2K9Z", recorder)
        await session.open()

        service.gate = asyncio.Event()
        notifier.publish(changed())
        await wait_for_fetches(service, 2)

        service.add_member("user-1")
        notifier.publish(changed())
        notifier.publish(changed())
        notifier.publish(changed())
        service.gate.set()
        await session.settle()

        assert service.fetch_calls == 3
        assert recorder.sequences == [1, 2, 3]
        assert recorder.member_counts[-1] == 1

        await session.close()

    @pytest.mark.asyncio
    async def test_close_during_refresh_drops_result(self) -> None:
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        recorder = SnapshotRecorder()
        session = WatcherSession(service, notifier, "AB2K9Z", recorder)
        await session.open()

        service.gate = asyncio.Event()
        notifier.publish(changed())
        await wait_for_fetches(service, 2)

        await session.close()
        service.gate.set()
        await asyncio.sleep(0)

        assert recorder.sequences == [1]
        assert session.sequence == 1

    @pytest.mark.asyncio
    async def test_close_while_opening(self) -> None:
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        recorder = SnapshotRecorder()
        session = WatcherSession(service, notifier, "AB2K9Z", recorder)
        service.gate = asyncio.Event()

        opening = asyncio.create_task(session.open())
        await wait_for_fetches(service, 1)
        await session.close()
        service.gate.set()

        await opening
        assert recorder.snapshots == []
        assert notifier.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_events_for_other_lobbies_ignored(self) -> None:
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        session = WatcherSession(service, notifier, "AB2K9Z", SnapshotRecorder())
        await session.open()

        notifier.publish(changed(lobby_id=2))
        await session.settle()

        assert service.fetch_calls == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_refresh_error_goes_to_error_sink(self) -> None:
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        on_error = AsyncMock()
        recorder = SnapshotRecorder()
        session = WatcherSession(service, notifier, "AB2K9Z", recorder, on_error=on_error)
        await session.open()

        service.error = StoreUnavailable("down")
        notifier.publish(changed())
        await session.settle()

        on_error.assert_awaited_once_with(service.error)
        assert session.state is WatcherState.ACTIVE
        assert recorder.sequences == [1]

        # The session keeps watching after the store recovers
        service.error = None
        notifier.publish(changed())
        await session.settle()
        assert recorder.sequences == [1, 2]

        await session.close()

    @pytest.mark.asyncio
    async def test_failing_sink_closes_session(self) -> None:
        service = FakeLobbyService()
        notifier = LocalChangeNotifier()
        calls = 0

        async def flaky_sink(snapshot: LobbySnapshot, sequence: int) -> None:
            nonlocal calls
            calls += 1
            if calls > 1:
                raise ConnectionError("socket gone")

        session = WatcherSession(service, notifier, "AB2K9Z", flaky_sink)
        await session.open()

        notifier.publish(changed())
        await session.settle()

        assert session.state is WatcherState.CLOSED
        assert notifier.subscriber_count() == 0
