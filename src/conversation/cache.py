"""Short-term conversation memory keyed by participant."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal

from core.logger import get_logger
from core.settings import get_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConversationEntry:
    role: Literal["user", "assistant"]
    content: str

    def to_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationRecord:
    participant_id: str
    created_at: float
    entries: list[ConversationEntry] = field(default_factory=list)


class ConversationCache:
    """
    In-memory dialogue history, one record per participant.

    Records older than ``ttl_seconds`` are discarded the next time they are
    touched; there is no background eviction. Each record keeps at most
    ``max_pairs`` user/assistant pairs, dropping the oldest pair first.
    """

    def __init__(
        self,
        ttl_seconds: float = 24 * 60 * 60,
        max_pairs: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_pairs = max_pairs
        self._clock = clock
        self._records: dict[str, ConversationRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _is_expired(self, record: ConversationRecord) -> bool:
        return self._clock() - record.created_at > self.ttl_seconds

    def get(self, participant_id: str | None) -> list[ConversationEntry]:
        """Return the participant's history oldest-first, empty if absent or expired."""
        if not participant_id:
            return []

        record = self._records.get(participant_id)
        if record is None:
            return []

        if self._is_expired(record):
            del self._records[participant_id]
            logger.debug(f"Conversation for {participant_id} expired")
            return []

        return list(record.entries)

    def to_messages(self, participant_id: str | None) -> list[dict[str, str]]:
        return [entry.to_message() for entry in self.get(participant_id)]

    def append(self, participant_id: str | None, user_text: str, assistant_text: str) -> None:
        """Add one user/assistant exchange to the participant's history."""
        if not participant_id:
            return

        record = self._records.get(participant_id)
        if record is None or self._is_expired(record):
            record = ConversationRecord(participant_id=participant_id, created_at=self._clock())
            self._records[participant_id] = record

        record.entries.append(ConversationEntry("user", user_text))
        record.entries.append(ConversationEntry("assistant", assistant_text))

        overflow = len(record.entries) - self.max_pairs * 2
        if overflow > 0:
            del record.entries[:overflow]

    def clear(self) -> None:
        self._records.clear()


@lru_cache
def get_conversation_cache() -> ConversationCache:
    """
    Get the process-wide conversation cache.
    LRU cache ensures we always get the same instance.
    """
    settings = get_settings()
    return ConversationCache(
        ttl_seconds=settings.conversation_ttl_seconds,
        max_pairs=settings.conversation_max_pairs,
    )
