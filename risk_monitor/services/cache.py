"""Latest-snapshot cache, keyed by user."""
from __future__ import annotations

from ..models import Snapshot


class SnapshotCache:
    """Holds the newest complete snapshot per user.

    Written only by the pipeline. A snapshot is immutable and replaced in a
    single assignment, so readers never see stats from one cycle paired with
    an assessment from another.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, Snapshot] = {}

    def get(self, user_id: str) -> Snapshot | None:
        return self._snapshots.get(user_id)

    def publish(self, snapshot: Snapshot) -> None:
        self._snapshots[snapshot.user_id] = snapshot

    def users(self) -> list[str]:
        return list(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)
