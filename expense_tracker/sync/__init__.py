"""Live synchronization package."""

from expense_tracker.sync.controller import LiveSyncController, SyncState

__all__ = ["LiveSyncController", "SyncState"]
