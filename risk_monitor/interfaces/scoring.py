"""Scoring service protocol — remote liquidation-risk model."""
from typing import Any, Protocol


class ScoringService(Protocol):
    """Remote prediction endpoint. Raises UpstreamUnavailable on any failure."""

    async def predict(self, user_id: str, inputs: dict[str, Any]) -> dict[str, Any]: ...
