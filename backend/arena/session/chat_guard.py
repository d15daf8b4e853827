"""Per-player sliding-window limiter for chat messages."""

from collections import deque
from typing import Any

MAX_CHAT_LENGTH = 200
DEFAULT_MAX_MESSAGES = 5
DEFAULT_WINDOW_SECONDS = 60.0


def clean_chat_text(raw: Any) -> str:  # noqa: ANN401
    """Coerce a chat payload to trimmed text of at most MAX_CHAT_LENGTH characters.

    Returns an empty string for payloads that are not text or numbers.
    """
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        return ""
    return str(raw).strip()[:MAX_CHAT_LENGTH].strip()


class ChatGuard:
    """Allow at most max_messages per player within a trailing window.

    The window itself lives on the Player record (chat_history) so one
    player's messages never consume another player's budget. Timestamps
    that have left the window are pruned lazily on each attempt; excess
    messages are rejected, never truncated into the window.
    """

    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        self._max_messages = max_messages
        self._window_seconds = window_seconds

    def allow(self, history: deque[float], now: float) -> bool:
        """Try to record a message at `now`. Returns False if the player is over budget."""
        while history and now - history[0] >= self._window_seconds:
            history.popleft()

        if len(history) >= self._max_messages:
            return False
        history.append(now)
        return True
