"""History windowing: the bounded slice of prior messages sent as context."""
from typing import List, Optional

from api.features.chat.models import HistoryEntry
from api.features.chat.repository import MessageStore


class HistoryWindow:
    """Loads the newest ``limit`` messages of a session, oldest first.

    Raises StoreError on failure; whether that is fatal is the caller's call.
    """

    def __init__(self, store: MessageStore, limit: int = 10):
        self.store = store
        self.limit = limit

    async def load_history(
        self,
        session_id: str,
        limit: Optional[int] = None,
        *,
        exclude_message_id: Optional[str] = None,
    ) -> List[HistoryEntry]:
        window = self.limit if limit is None else limit
        if window <= 0:
            return []
        messages = await self.store.fetch_recent_messages(
            session_id=session_id,
            limit=window,
            exclude_message_id=exclude_message_id,
        )
        return [HistoryEntry(role=m.role, content=m.content) for m in messages[-window:]]
