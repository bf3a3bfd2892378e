"""
ConversationHistory: the resident list of turns, oldest first.

Two budgets keep it bounded:
  - max_context_characters: the context sent with each request. Enforced
    by build_context(), which drops whole user/assistant pairs from the
    front and commits the trimmed history straight away.
  - max_history_items: the number of resident messages. Enforced after
    every committed turn and whenever the bounds change.

Thread safety: every method runs under a threading.Lock and none of them
awaits, so callers on any task or thread see whole updates only.
"""

from __future__ import annotations

import logging
import threading

from dialtone.models import Message, Role, total_characters

logger = logging.getLogger(__name__)


class ConversationHistory:
    def __init__(self, max_context_characters: int, max_history_items: int):
        self.max_context_characters = max(1, max_context_characters)
        self.max_history_items = max(1, max_history_items)
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    def build_context(self, user_text: str) -> list[Message]:
        """
        Return resident history plus a new user message, trimmed to fit the
        character budget. The user message itself is never shortened, so a
        single oversized message goes out with an empty history.
        """
        user = Message(role=Role.USER, content=user_text)
        with self._lock:
            trimmed = list(self._messages)
            dropped = 0
            while (
                trimmed
                and total_characters(trimmed) + len(user.content) > self.max_context_characters
            ):
                chunk = min(2, len(trimmed))
                del trimmed[:chunk]
                dropped += chunk

            if dropped:
                logger.debug(
                    "Dropped %d oldest message(s) to fit %d characters",
                    dropped, self.max_context_characters,
                )
            self._messages = trimmed
            return trimmed + [user]

    def commit_turn(self, user_text: str, assistant_text: str) -> None:
        with self._lock:
            self._messages.append(Message(role=Role.USER, content=user_text))
            self._messages.append(Message(role=Role.ASSISTANT, content=assistant_text))
            self._trim_items()

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def snapshot(self) -> list[Message]:
        with self._lock:
            return list(self._messages)

    def reconfigure(self, max_context_characters: int, max_history_items: int) -> None:
        with self._lock:
            self.max_context_characters = max(1, max_context_characters)
            self.max_history_items = max(1, max_history_items)
            self._trim_items()

    def _trim_items(self) -> None:
        # caller holds the lock
        overflow = len(self._messages) - self.max_history_items
        if overflow > 0:
            del self._messages[:overflow]

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
