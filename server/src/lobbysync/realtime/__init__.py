"""Realtime propagation of lobby membership changes."""

from lobbysync.realtime.notifier import (
    ChangeNotifier,
    LocalChangeNotifier,
    MembershipEvent,
    PostgresChangeNotifier,
    Subscription,
    build_notifier,
)
from lobbysync.realtime.watcher import WatcherSession, WatcherState

__all__ = [
    "ChangeNotifier",
    "LocalChangeNotifier",
    "MembershipEvent",
    "PostgresChangeNotifier",
    "Subscription",
    "WatcherSession",
    "WatcherState",
    "build_notifier",
]
