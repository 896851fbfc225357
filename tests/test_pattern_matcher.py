"""
Tests for the deterministic fallback path.
"""

import pytest

from action_engine.actions import (
    ActionType,
    AddItemAction,
    ConfirmOrderAction,
    OrderLine,
)
from action_engine.config import EngineSettings
from action_engine.order_gate import OrderStatus
from action_engine.pattern_matcher import PatternMatcher, normalize, singular
from action_engine.store import OrderItemRecord


@pytest.fixture
def matcher(engine_settings):
    return PatternMatcher(engine_settings)


class TestHelpers:
    def test_normalize(self):
        assert normalize("  I'd LIKE   two Cokes!! ") == "i'd like two cokes"

    def test_singular(self):
        assert singular("salads") == "salad"
        assert singular("berries") == "berry"
        assert singular("tomatoes") == "tomato"
        assert singular("glass") == "glass"


class TestItemRules:
    """Quantity + item patterns against available menu items."""

    def test_exact_item_with_quantity(self, matcher, build_context):
        result = matcher.match("I want 2 caesar salads", build_context())

        assert isinstance(result.action, AddItemAction)
        line = result.action.items[0]
        assert line.menu_item_id == "menu-item-1"
        assert line.quantity == 2
        assert line.unit_price == 12.99
        assert result.action.total == pytest.approx(25.98)
        assert result.confidence == pytest.approx(0.6)
        assert result.used_fallback is True

    def test_vague_item_matches_single_candidate(self, matcher, build_context):
        result = matcher.match("give me 2 salads", build_context())

        assert result.action_type is ActionType.ADD_ITEM
        assert result.action.items[0].name == "Caesar Salad"
        assert result.action.items[0].quantity == 2
        assert result.confidence == pytest.approx(0.4)

    def test_number_words(self, matcher, build_context):
        result = matcher.match("two cokes please", build_context())

        assert result.action.items[0].menu_item_id == "menu-item-6"
        assert result.action.items[0].quantity == 2
        assert result.action.total == pytest.approx(5.0)

    def test_ambiguous_item_asks_for_clarification(self, matcher, build_context):
        result = matcher.match("2 pizzas", build_context())

        assert result.action_type is ActionType.REQUEST_CLARIFICATION
        names = {o.name for o in result.action.options}
        assert names == {"Margherita Pizza", "Pepperoni Pizza"}

    def test_unavailable_item_is_not_ordered(self, matcher, build_context):
        result = matcher.match("I'd like the lobster bisque", build_context())

        assert result.action is None
        assert "unavailable" in result.reply

    def test_several_items_without_an_order_confirm_a_new_one(self, matcher, build_context):
        result = matcher.match("I'll have a margherita pizza and a garlic bread", build_context())

        assert isinstance(result.action, ConfirmOrderAction)
        assert [l.menu_item_id for l in result.action.items] == ["menu-item-3", "menu-item-4"]
        assert result.action.total == pytest.approx(19.5)

    def test_items_join_a_pending_order(self, matcher, build_context, add_order):
        order = add_order(OrderStatus.PENDING)
        result = matcher.match("Margherita Pizza and a Coke please", build_context())

        assert isinstance(result.action, AddItemAction)
        assert result.action.order_id == order.id
        assert len(result.action.items) == 2

    def test_question_about_item_is_information(self, matcher, build_context):
        result = matcher.match("What's in the caesar salad?", build_context())

        assert result.action_type is ActionType.PROVIDE_INFO
        assert result.action.menu_item_id == "menu-item-1"
        assert result.action.information_type == "ingredients"


class TestConfirmation:
    """Yes/no against an action awaiting confirmation."""

    @pytest.fixture
    def pending(self):
        return AddItemAction(
            items=[OrderLine(menu_item_id="menu-item-6", name="Coke", quantity=1, unit_price=2.5, line_total=2.5)],
            total=2.5,
        )

    def test_yes_confirms_pending_action(self, matcher, build_context, pending):
        result = matcher.match("yes please", build_context(pending_action=pending))

        assert result.action.id == pending.id
        assert result.intent == "confirm_pending_action"
        assert result.confidence == pytest.approx(0.7)

    def test_no_declines_pending_action(self, matcher, build_context, pending):
        result = matcher.match("no thanks", build_context(pending_action=pending))

        assert result.action is None
        assert result.intent == "decline_pending_action"
        assert result.entities["action_id"] == pending.id

    def test_yes_without_pending_action_is_chat(self, matcher, build_context):
        result = matcher.match("yes", build_context())
        assert result.action is None
        assert result.intent == "chat"


class TestOrderChanges:
    """Cancellation, removal, quantity change and edit keywords."""

    def test_cancel(self, matcher, build_context, add_order):
        order = add_order(OrderStatus.PENDING)
        result = matcher.match("Please cancel my order", build_context())

        assert result.action_type is ActionType.CANCEL_ORDER
        assert result.action.order_id == order.id
        assert result.confidence == pytest.approx(0.6)

    def test_remove_item_in_order(self, matcher, build_context, add_order):
        add_order(
            OrderStatus.PENDING,
            items=[OrderItemRecord("oi-9", "menu-item-4", "Garlic Bread", 1, 5.5)],
        )
        result = matcher.match("remove the garlic bread from my order", build_context())

        assert result.action_type is ActionType.REMOVE_ITEM
        assert result.action.target.menu_item_id == "menu-item-4"
        assert result.action.target.order_item_id == "oi-9"

    def test_cancel_named_item_removes_only_that_item(self, matcher, build_context, add_order):
        add_order(
            OrderStatus.PENDING,
            items=[
                OrderItemRecord("oi-6", "menu-item-6", "Coke", 1, 2.5),
                OrderItemRecord("oi-4", "menu-item-4", "Garlic Bread", 1, 5.5),
            ],
        )
        result = matcher.match("cancel the coke from my order", build_context())

        assert result.action_type is ActionType.REMOVE_ITEM
        assert result.action.target.order_item_id == "oi-6"
        assert result.action.target.name == "Coke"

    def test_change_quantity(self, matcher, build_context, add_order):
        add_order(OrderStatus.PENDING)
        result = matcher.match("make it 3 caesar salads", build_context())

        assert result.action_type is ActionType.MODIFY_ITEM_QUANTITY
        assert result.action.new_quantity == 3
        assert result.action.target.menu_item_id == "menu-item-1"
        assert result.action.unit_price == 12.99

    def test_edit_order(self, matcher, build_context, add_order):
        add_order(OrderStatus.PENDING)
        result = matcher.match("Can I change my order?", build_context())

        assert result.action_type is ActionType.EDIT_ORDER
        assert result.confidence == pytest.approx(0.5)


class TestKeywordFamilies:
    def test_recommendation(self, matcher, build_context):
        result = matcher.match("What do you recommend?", build_context())

        assert result.action_type is ActionType.REQUEST_RECOMMENDATION
        assert result.action.preference_type == "popular"
        assert len(result.action.suggestions) == 3
        assert all(s.menu_item_id != "menu-item-5" for s in result.action.suggestions)

    def test_dietary_recommendation(self, matcher, build_context):
        result = matcher.match("anything vegetarian you would recommend", build_context())

        assert result.action.preference_type == "dietary"
        assert {s.name for s in result.action.suggestions} == {"Veggie Burger", "Margherita Pizza"}

    def test_status(self, matcher, build_context):
        result = matcher.match("Where is my food?", build_context())
        assert result.action_type is ActionType.CHECK_ORDERS

    def test_complaint(self, matcher, build_context):
        result = matcher.match("my soup is cold", build_context())

        assert result.action_type is ActionType.HANDLE_COMPLAINT
        assert result.action.issue_type == "food_quality"

    def test_greeting_is_chat(self, matcher, build_context):
        result = matcher.match("Hello there", build_context())

        assert result.action is None
        assert "Trattoria Test" in result.reply
        assert result.confidence == pytest.approx(0.3)


class TestCoverage:
    """The fallback always answers and never reaches the trusted threshold."""

    @pytest.mark.parametrize(
        "message",
        ["", "???", "I want 2 caesar salads", "yes", "cancel my order", "asdf qwer", "1 2 3"],
    )
    def test_always_returns_untrusted_result(self, matcher, build_context, message):
        result = matcher.match(message, build_context())

        assert result.used_fallback is True
        assert result.confidence < 0.8
        assert result.reply

    def test_cap_follows_trusted_threshold(self, build_context):
        matcher = PatternMatcher(EngineSettings(TRUSTED_CONFIDENCE=0.6))
        result = matcher.match("I want 2 caesar salads", build_context())
        assert result.confidence == pytest.approx(0.55)
