"""
Conversation Memory Module

Keeps the recent turns of each chat so follow-up questions can be answered
in context. History is handed to the RAG prompt as role-tagged dicts.

Usage:
    memory = ConversationMemory(max_turns=10)
    memory.add_user_message("What does the contract say about renewals?")
    memory.add_assistant_message("Section 4 says the contract renews yearly...")

    history = memory.get_history()
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Any

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """
    A single message in the conversation.

    Attributes:
        role: "user" or "assistant"
        content: The message text
        timestamp: When the message was created (UTC)
        metadata: Additional info (sources, chunk counts)
    """
    role: str
    content: str
    timestamp: datetime = field(default_factory=_utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(timestamp) if timestamp else _utc_now(),
            metadata=data.get("metadata", {}),
        )

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


class ConversationMemory:
    """
    Sliding window of the last `max_turns` user/assistant exchanges.

    Messages past the window fall off the front; a character budget trims
    further so very long answers do not crowd the prompt.
    """

    def __init__(
        self,
        max_turns: int = 10,
        max_chars: int = 8000,
        conversation_id: Optional[str] = None,
    ):
        """
        Initialize conversation memory.

        Args:
            max_turns: Exchanges to keep (each is a user and an assistant message)
            max_chars: Approximate character budget for the whole history
            conversation_id: Unique ID for this conversation
        """
        self.max_turns = max_turns
        self.max_chars = max_chars
        self.conversation_id = conversation_id or uuid.uuid4().hex[:12]

        self._messages: deque = deque(maxlen=max_turns * 2)
        self._lock = threading.Lock()

        logger.debug(f"ConversationMemory created: id={self.conversation_id}")

    def _add(self, role: str, content: str, metadata: Optional[Dict[str, Any]]) -> None:
        message = Message(role=role, content=content, metadata=metadata or {})
        with self._lock:
            self._messages.append(message)
            self._trim()
        logger.debug(f"Added {role} message to {self.conversation_id}")

    def add_user_message(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._add("user", content, metadata)

    def add_assistant_message(
        self,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._add("assistant", content, metadata)

    def _trim(self) -> None:
        total = sum(len(m.content) for m in self._messages)
        # Keep at least the latest exchange
        while total > self.max_chars and len(self._messages) > 2:
            total -= len(self._messages.popleft().content)

    def get_messages(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    def get_history(self) -> List[Dict[str, str]]:
        """Return messages as [{"role": ..., "content": ...}], oldest first."""
        with self._lock:
            return [{"role": m.role, "content": m.content} for m in self._messages]

    @property
    def last_activity(self) -> Optional[datetime]:
        with self._lock:
            return self._messages[-1].timestamp if self._messages else None

    def clear(self) -> None:
        """Clear all messages from memory."""
        with self._lock:
            self._messages.clear()
        logger.debug(f"Cleared memory for {self.conversation_id}")

    def __len__(self) -> int:
        return len(self._messages)

    def to_dict(self) -> Dict[str, Any]:
        """Export memory to a dictionary."""
        with self._lock:
            return {
                "conversation_id": self.conversation_id,
                "max_turns": self.max_turns,
                "max_chars": self.max_chars,
                "messages": [m.to_dict() for m in self._messages],
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMemory":
        memory = cls(
            max_turns=data.get("max_turns", 10),
            max_chars=data.get("max_chars", 8000),
            conversation_id=data.get("conversation_id"),
        )
        for message_data in data.get("messages", []):
            memory._messages.append(Message.from_dict(message_data))
        return memory


class ConversationManager:
    """
    Holds one ConversationMemory per conversation id.

    Example:
        manager = ConversationManager()
        memory = manager.get_memory("session-42")
        memory.add_user_message("Hello!")

        manager.cleanup_old_conversations(max_age_hours=24)
    """

    def __init__(self, default_max_turns: int = 10):
        self._memories: Dict[str, ConversationMemory] = {}
        self._lock = threading.Lock()
        self.default_max_turns = default_max_turns

        logger.info("ConversationManager initialized")

    def get_memory(
        self,
        conversation_id: str,
        create_if_missing: bool = True,
    ) -> Optional[ConversationMemory]:
        """
        Get memory for a conversation ID.

        Returns:
            ConversationMemory instance, or None when missing and not created
        """
        with self._lock:
            memory = self._memories.get(conversation_id)
            if memory is None and create_if_missing:
                memory = ConversationMemory(
                    max_turns=self.default_max_turns,
                    conversation_id=conversation_id,
                )
                self._memories[conversation_id] = memory
                logger.debug(f"Created new memory for {conversation_id}")
            return memory

    def delete_memory(self, conversation_id: str) -> bool:
        """Delete a conversation memory; False if it did not exist."""
        with self._lock:
            removed = self._memories.pop(conversation_id, None) is not None
        if removed:
            logger.debug(f"Deleted memory for {conversation_id}")
        return removed

    def cleanup_old_conversations(self, max_age_hours: float = 24) -> int:
        """
        Remove conversations with no message newer than max_age_hours.

        Returns:
            Number of conversations removed
        """
        cutoff = _utc_now() - timedelta(hours=max_age_hours)

        with self._lock:
            stale = [
                conv_id
                for conv_id, memory in self._memories.items()
                if memory.last_activity is None or memory.last_activity < cutoff
            ]
            for conv_id in stale:
                del self._memories[conv_id]

        if stale:
            logger.info(f"Cleaned up {len(stale)} old conversations")
        return len(stale)

    def get_all_conversation_ids(self) -> List[str]:
        with self._lock:
            return list(self._memories.keys())

    def __len__(self) -> int:
        return len(self._memories)
