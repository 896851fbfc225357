"""
Tests for the pending-action store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from action_engine.action_store import PendingActionStore
from action_engine.actions import CancelOrderAction, EditOrderAction

T0 = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def pending_store():
    return PendingActionStore(ttl_minutes=15)


class TestPendingActionStore:
    def test_save_and_lookup_both_ways(self, pending_store):
        action = CancelOrderAction(order_id="o-1")
        pending_store.save("rest-1", 5, action, now=T0)

        assert pending_store.get(action.id, now=T0) is action
        assert pending_store.pending_for("rest-1", 5, now=T0) is action
        assert pending_store.pending_for("rest-1", 6, now=T0) is None

    def test_newer_action_replaces_older_for_conversation(self, pending_store):
        first, second = CancelOrderAction(), EditOrderAction()
        pending_store.save("rest-1", 5, first, now=T0)
        pending_store.save("rest-1", 5, second, now=T0)

        assert pending_store.pending_for("rest-1", 5, now=T0) is second
        assert pending_store.get(first.id, now=T0) is None
        assert len(pending_store) == 1

    def test_confirm_only_once(self, pending_store):
        action = CancelOrderAction()
        pending_store.save("rest-1", 5, action, now=T0)

        assert pending_store.confirm(action.id, now=T0) is action
        assert pending_store.confirm(action.id, now=T0) is None
        assert pending_store.pending_for("rest-1", 5, now=T0) is None

    def test_discard(self, pending_store):
        action = CancelOrderAction()
        pending_store.save("rest-1", None, action, now=T0)

        assert pending_store.discard(action.id) is True
        assert pending_store.discard(action.id) is False
        assert pending_store.pending_for("rest-1", None, now=T0) is None

    def test_entries_expire(self, pending_store):
        action = CancelOrderAction()
        pending_store.save("rest-1", 5, action, now=T0)

        later = T0 + timedelta(minutes=16)
        assert pending_store.get(action.id, now=T0 + timedelta(minutes=14)) is action
        assert pending_store.pending_for("rest-1", 5, now=later) is None
        assert pending_store.confirm(action.id, now=later) is None

    def test_purge_expired(self, pending_store):
        old, fresh = CancelOrderAction(), EditOrderAction()
        pending_store.save("rest-1", 1, old, now=T0)
        pending_store.save("rest-1", 2, fresh, now=T0 + timedelta(minutes=10))

        assert pending_store.purge_expired(now=T0 + timedelta(minutes=20)) == 1
        assert len(pending_store) == 1
        assert pending_store.pending_for("rest-1", 2, now=T0 + timedelta(minutes=20)) is fresh
