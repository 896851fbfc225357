# action_engine/action_store.py
"""
PendingActionStore

Keeps actions that are waiting for the customer's "yes", keyed two ways:
- by action id (the caller confirms or discards a specific action)
- by conversation (restaurant id, table number), so the next turn's context
  knows what a bare "yes" or "no" refers to

Only the latest pending action per conversation is tracked. Entries expire
after a TTL.

In-memory and per process. In production, you might want to replace this
with Redis or a database table.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from .actions import BaseAction

ConversationKey = Tuple[str, Optional[int]]


@dataclass
class _Entry:
    action: BaseAction
    conversation: ConversationKey
    stored_at: datetime


class PendingActionStore:
    """
    In-memory dictionary-based store with a TTL.
    """

    def __init__(self, ttl_minutes: int = 15) -> None:
        self._by_id: Dict[str, _Entry] = {}
        self._by_conversation: Dict[ConversationKey, str] = {}
        self.ttl = timedelta(minutes=ttl_minutes)

    @staticmethod
    def _key(restaurant_id: str, table_number: Optional[int]) -> ConversationKey:
        return (restaurant_id, table_number)

    def _expired(self, entry: _Entry, now: datetime) -> bool:
        return now - entry.stored_at > self.ttl

    def save(
        self,
        restaurant_id: str,
        table_number: Optional[int],
        action: BaseAction,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Store an action awaiting confirmation. Replaces any earlier pending
        action for the same conversation.
        """
        key = self._key(restaurant_id, table_number)
        previous = self._by_conversation.get(key)
        if previous is not None and previous != action.id:
            self._by_id.pop(previous, None)

        self._by_id[action.id] = _Entry(
            action=action,
            conversation=key,
            stored_at=now or datetime.now(timezone.utc),
        )
        self._by_conversation[key] = action.id

    def get(self, action_id: str, now: Optional[datetime] = None) -> Optional[BaseAction]:
        entry = self._by_id.get(action_id)
        if entry is None:
            return None
        if self._expired(entry, now or datetime.now(timezone.utc)):
            self._remove(action_id)
            return None
        return entry.action

    def pending_for(
        self, restaurant_id: str, table_number: Optional[int], now: Optional[datetime] = None
    ) -> Optional[BaseAction]:
        action_id = self._by_conversation.get(self._key(restaurant_id, table_number))
        if action_id is None:
            return None
        return self.get(action_id, now)

    def confirm(self, action_id: str, now: Optional[datetime] = None) -> Optional[BaseAction]:
        """
        Take the action out of the store for execution. Returns None if it is
        unknown or expired; an action can only be confirmed once.
        """
        action = self.get(action_id, now)
        if action is not None:
            self._remove(action_id)
        return action

    def discard(self, action_id: str) -> bool:
        return self._remove(action_id)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Remove expired entries. This can be called periodically if needed.
        """
        now = now or datetime.now(timezone.utc)
        expired = [aid for aid, entry in self._by_id.items() if self._expired(entry, now)]
        for action_id in expired:
            self._remove(action_id)
        return len(expired)

    def __len__(self) -> int:
        return len(self._by_id)

    def _remove(self, action_id: str) -> bool:
        entry = self._by_id.pop(action_id, None)
        if entry is None:
            return False
        if self._by_conversation.get(entry.conversation) == action_id:
            self._by_conversation.pop(entry.conversation, None)
        return True
