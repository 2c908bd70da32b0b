import dataclasses
import logging
import threading

logger = logging.getLogger("video-bot")


@dataclasses.dataclass(frozen=True)
class PendingSelection:
    source_url: str
    status_message_id: int
    created_at: float


class PendingSelectionStore:
    """One outstanding quality choice per chat, expired lazily on lookup."""

    def __init__(self) -> None:
        self._entries: dict[int, PendingSelection] = {}
        self._lock = threading.Lock()

    def put(self, chat_id: int, selection: PendingSelection) -> None:
        with self._lock:
            replaced = self._entries.get(chat_id)
            self._entries[chat_id] = selection
        if replaced is not None:
            logger.info("Replaced pending selection: chat_id=%s url=%s", chat_id, replaced.source_url)

    def take_if_valid(
        self,
        chat_id: int,
        now: float,
        expiry_seconds: float,
        message_id: int | None = None,
    ) -> PendingSelection | None:
        """Remove and return the chat's selection unless it has expired.

        With ``message_id`` set, a selection attached to a different status
        message is left in place and ``None`` is returned: the button belongs
        to a menu that a newer link has superseded.
        """
        with self._lock:
            selection = self._entries.get(chat_id)
            if selection is None:
                return None
            if message_id is not None and selection.status_message_id != message_id:
                return None
            del self._entries[chat_id]
        if now - selection.created_at > expiry_seconds:
            logger.info("Pending selection expired: chat_id=%s url=%s", chat_id, selection.source_url)
            return None
        return selection

    def remove(self, chat_id: int) -> PendingSelection | None:
        with self._lock:
            return self._entries.pop(chat_id, None)

    def __contains__(self, chat_id: object) -> bool:
        with self._lock:
            return chat_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
