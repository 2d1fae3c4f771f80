# ============================================================
# SQLChat - Natural Language to SQL Chat Assistant
# core/history.py — Bounded Conversational Contexts & Sessions
# ============================================================

from typing import Dict, List, Optional
from loguru import logger

Message = Dict[str, str]


def trim_history(messages: List[Message], max_pairs: int) -> List[Message]:
    """
    Drop the oldest user/assistant pairs (entries 1 and 2) until at most
    ``max_pairs`` pairs remain after the pinned system entry.
    Mutates and returns ``messages``.
    """
    limit = 1 + 2 * max(max_pairs, 0)
    while len(messages) > limit and len(messages) >= 3:
        del messages[1:3]
    return messages


class ConversationHistory:
    """
    One conversational context fed to the language model.

    Entry 0 is the system instruction: it is never evicted and is the
    only entry rewritten in place. Everything after it is stored as
    user/assistant pairs.
    """

    def __init__(self, name: str, system_prompt: str = "", max_pairs: int = 10):
        self.name = name
        self.max_pairs = max_pairs
        self._messages: List[Message] = [{"role": "system", "content": system_prompt}]

    @property
    def system_prompt(self) -> str:
        return self._messages[0]["content"]

    def set_system_prompt(self, content: str) -> None:
        self._messages[0]["content"] = content

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def trim(self) -> None:
        before = len(self._messages)
        trim_history(self._messages, self.max_pairs)
        if len(self._messages) != before:
            logger.debug(f"[{self.name}] trimmed history {before} -> {len(self._messages)} entries")

    def build_messages(self, user_content: str) -> List[Message]:
        """Trim, then return the prompt for a new turn without recording it."""
        self.trim()
        return self.messages + [{"role": "user", "content": user_content}]

    def append_exchange(self, user_content: str, assistant_content: str) -> None:
        """Record a completed round as a user entry followed by an assistant entry."""
        self._messages.append({"role": "user", "content": user_content})
        self._messages.append({"role": "assistant", "content": assistant_content})

    def clear(self) -> None:
        del self._messages[1:]

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self):
        return f"<ConversationHistory {self.name} entries={len(self._messages)}>"


class ChatSession:
    """Per-conversation state: independent translation and summarization contexts."""

    def __init__(self, session_id: str, max_pairs: int = 10):
        self.session_id = session_id
        self.translation = ConversationHistory("translation", max_pairs=max_pairs)
        self.summarization = ConversationHistory("summarization", max_pairs=max_pairs)

    def __repr__(self):
        return f"<ChatSession {self.session_id} {self.translation!r} {self.summarization!r}>"


class SessionStore:
    """
    Session registry. With the default configuration every caller shares
    the single ``default_session_id`` session.
    """

    def __init__(self, default_session_id: str = "default", max_pairs: int = 10):
        self.default_session_id = default_session_id
        self.max_pairs = max_pairs
        self._sessions: Dict[str, ChatSession] = {}
        self._initializers = []

    def on_create(self, initializer) -> None:
        """Register a callback applied to every newly created session."""
        self._initializers.append(initializer)

    def get(self, session_id: Optional[str] = None) -> ChatSession:
        key = session_id or self.default_session_id
        session = self._sessions.get(key)
        if session is None:
            session = ChatSession(key, max_pairs=self.max_pairs)
            for initializer in self._initializers:
                initializer(session)
            self._sessions[key] = session
            logger.info(f"Created chat session: {key}")
        return session

    def all(self) -> List[ChatSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)
