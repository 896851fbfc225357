"""
Unit tests for the order state gate.
"""

from dataclasses import dataclass

import pytest

from action_engine import order_gate
from action_engine.order_gate import NOTHING_TO_MODIFY, OrderStatus


@dataclass
class _Order:
    status: OrderStatus


class TestModifiability:
    """Only PENDING orders can change."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            (OrderStatus.PENDING, True),
            (OrderStatus.PREPARING, False),
            (OrderStatus.READY, False),
            (OrderStatus.SERVED, False),
            (OrderStatus.CANCELLED, False),
        ],
    )
    def test_is_modifiable(self, status, expected):
        assert order_gate.is_modifiable(status) is expected

    def test_map_covers_every_status(self):
        mapping = order_gate.modifiability_by_status()
        assert set(mapping) == {s.value for s in OrderStatus}
        assert [k for k, v in mapping.items() if v] == ["PENDING"]


class TestEvaluate:
    """Table-wide verdict from the most recent non-cancelled order."""

    def test_no_orders(self):
        verdict = order_gate.evaluate([])
        assert verdict.can_modify is False
        assert verdict.reason == NOTHING_TO_MODIFY
        assert verdict.blocking_status is None
        assert verdict.has_locked_order is False

    def test_only_cancelled_orders_count_as_none(self):
        verdict = order_gate.evaluate([_Order(OrderStatus.CANCELLED)])
        assert verdict.can_modify is False
        assert verdict.blocking_status is None

    def test_latest_pending_is_modifiable(self):
        verdict = order_gate.evaluate([_Order(OrderStatus.PENDING), _Order(OrderStatus.SERVED)])
        assert verdict.can_modify is True
        assert verdict.blocking_status is None

    @pytest.mark.parametrize("status", [OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.SERVED])
    def test_latest_locked_blocks(self, status):
        verdict = order_gate.evaluate([_Order(status), _Order(OrderStatus.PENDING)])
        assert verdict.can_modify is False
        assert verdict.blocking_status is status
        assert status.value.lower() in verdict.reason

    def test_cancelled_latest_is_skipped(self):
        verdict = order_gate.evaluate([_Order(OrderStatus.CANCELLED), _Order(OrderStatus.PREPARING)])
        assert verdict.blocking_status is OrderStatus.PREPARING
        assert verdict.reason == "Your order is already preparing"


class TestTransitions:
    """Forward-only lifecycle for the order-commit collaborator."""

    def test_forward_transitions(self):
        assert order_gate.can_transition(OrderStatus.PENDING, OrderStatus.PREPARING)
        assert order_gate.can_transition(OrderStatus.PREPARING, OrderStatus.READY)
        assert order_gate.can_transition(OrderStatus.READY, OrderStatus.SERVED)

    def test_cancellation_only_while_pending(self):
        assert order_gate.can_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
        assert not order_gate.can_transition(OrderStatus.PREPARING, OrderStatus.CANCELLED)
        assert not order_gate.can_transition(OrderStatus.READY, OrderStatus.CANCELLED)

    def test_no_going_back(self):
        assert not order_gate.can_transition(OrderStatus.SERVED, OrderStatus.PENDING)
        assert order_gate.allowed_transitions(OrderStatus.CANCELLED) == []
