"""Advisory service protocol — conversational guidance."""
from typing import Any, Protocol


class AdvisoryService(Protocol):
    """Remote chat endpoint. Raises UpstreamUnavailable on any failure."""

    async def complete(self, user_id: str, query: str, context: dict[str, Any]) -> str: ...
