# action_engine/actions.py
"""
Candidate actions.

One pydantic model per action type, joined into the `CandidateAction`
discriminated union on the `type` field. Both decision paths produce these
shapes; "no action" is represented by `None`.

Every action carries:
- a generated id (used by the pending-action store for the confirm round trip)
- `requires_confirmation`: whether the customer must say yes before the
  caller commits it
- `confirmation_message()`: the customer-facing sentence for the action
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, ClassVar, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .order_gate import OrderStatus


class ActionType(str, Enum):
    ADD_ITEM = "add-item"
    REMOVE_ITEM = "remove-item"
    MODIFY_ITEM_QUANTITY = "modify-item-quantity"
    CONFIRM_ORDER = "confirm-order"
    CANCEL_ORDER = "cancel-order"
    CHECK_ORDERS = "check-orders"
    EDIT_ORDER = "edit-order"
    REQUEST_RECOMMENDATION = "request-recommendation"
    REQUEST_CLARIFICATION = "request-clarification"
    EXPLAIN_LOCKED_ORDER = "explain-locked-order"
    PROVIDE_INFO = "provide-info"
    HANDLE_COMPLAINT = "handle-complaint"


# Actions that change an order and are therefore subject to the order gate.
MUTATING_ACTIONS: FrozenSet[ActionType] = frozenset(
    {
        ActionType.ADD_ITEM,
        ActionType.REMOVE_ITEM,
        ActionType.MODIFY_ITEM_QUANTITY,
        ActionType.CONFIRM_ORDER,
        ActionType.CANCEL_ORDER,
        ActionType.EDIT_ORDER,
    }
)

# Mutating actions that create new order lines rather than touching old ones.
ORDER_CREATING_ACTIONS: FrozenSet[ActionType] = frozenset(
    {ActionType.ADD_ITEM, ActionType.CONFIRM_ORDER}
)


def new_action_id() -> str:
    return f"action_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def _money(value: float) -> str:
    return f"${value:.2f}"


# -----------------------------------------------------------------------------
# Building blocks
# -----------------------------------------------------------------------------
class OrderLine(BaseModel):
    """One menu item at a quantity. Prices are filled in by the validator."""
    menu_item_id: str = ""
    name: str
    quantity: int = 1
    unit_price: float = 0.0
    line_total: float = 0.0
    notes: Optional[str] = None


class ItemRef(BaseModel):
    """Reference to an item in an existing order."""
    menu_item_id: str = ""
    name: str
    order_item_id: Optional[str] = None


class ClarificationOption(BaseModel):
    name: str
    description: Optional[str] = None
    menu_item_id: Optional[str] = None


class BaseAction(BaseModel):
    id: str = Field(default_factory=new_action_id)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    requires_confirmation: ClassVar[bool] = True

    def confirmation_message(self) -> str:
        return "Would you like me to go ahead?"


# -----------------------------------------------------------------------------
# Order-changing actions
# -----------------------------------------------------------------------------
class AddItemAction(BaseAction):
    type: Literal[ActionType.ADD_ITEM] = ActionType.ADD_ITEM
    items: List[OrderLine]
    total: float = 0.0
    order_id: Optional[str] = None

    def confirmation_message(self) -> str:
        if len(self.items) == 1:
            line = self.items[0]
            return (
                f"Add {line.quantity}x {line.name} "
                f"({_money(line.unit_price)} each) to your order?"
            )
        names = ", ".join(f"{line.quantity}x {line.name}" for line in self.items)
        return f"Add {names} to your order for {_money(self.total)}?"


class ConfirmOrderAction(BaseAction):
    type: Literal[ActionType.CONFIRM_ORDER] = ActionType.CONFIRM_ORDER
    items: List[OrderLine]
    total: float = 0.0
    customer_notes: Optional[str] = None

    def confirmation_message(self) -> str:
        lines = ["I'll place this order for you:", ""]
        for line in self.items:
            lines.append(f"- {line.quantity}x {line.name} - {_money(line.line_total)}")
        lines.append("")
        lines.append(f"Total: {_money(self.total)}")
        lines.append("")
        lines.append("Shall I place this order?")
        return "\n".join(lines)


class RemoveItemAction(BaseAction):
    type: Literal[ActionType.REMOVE_ITEM] = ActionType.REMOVE_ITEM
    target: ItemRef
    order_id: Optional[str] = None
    reason: Optional[str] = None

    def confirmation_message(self) -> str:
        return f"Remove {self.target.name} from your order?"


class ModifyItemQuantityAction(BaseAction):
    type: Literal[ActionType.MODIFY_ITEM_QUANTITY] = ActionType.MODIFY_ITEM_QUANTITY
    target: ItemRef
    new_quantity: int
    order_id: Optional[str] = None
    unit_price: Optional[float] = None

    def confirmation_message(self) -> str:
        return f"Change {self.target.name} to {self.new_quantity}?"


class CancelOrderAction(BaseAction):
    type: Literal[ActionType.CANCEL_ORDER] = ActionType.CANCEL_ORDER
    order_id: Optional[str] = None
    scope: Literal["full_order", "specific_items"] = "full_order"
    items_to_cancel: List[str] = Field(default_factory=list)
    reason: str = "Customer request"

    def confirmation_message(self) -> str:
        what = "your entire order" if self.scope == "full_order" else "the selected items"
        return f"Cancel {what}?"


class EditOrderAction(BaseAction):
    type: Literal[ActionType.EDIT_ORDER] = ActionType.EDIT_ORDER
    order_id: Optional[str] = None

    def confirmation_message(self) -> str:
        return (
            "I'll show you your current orders so you can edit them. You can change "
            "quantities, remove items, or cancel orders that haven't started cooking yet."
        )


# -----------------------------------------------------------------------------
# Informational actions
# -----------------------------------------------------------------------------
class CheckOrdersAction(BaseAction):
    type: Literal[ActionType.CHECK_ORDERS] = ActionType.CHECK_ORDERS
    order_id: Optional[str] = None

    requires_confirmation: ClassVar[bool] = False

    def confirmation_message(self) -> str:
        return "Let me pull up your orders."


class RequestRecommendationAction(BaseAction):
    type: Literal[ActionType.REQUEST_RECOMMENDATION] = ActionType.REQUEST_RECOMMENDATION
    preference_type: str = "popular"
    dietary_restrictions: List[str] = Field(default_factory=list)
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    mood_or_occasion: Optional[str] = None
    specific_cravings: Optional[str] = None
    suggestions: List[ClarificationOption] = Field(default_factory=list)

    requires_confirmation: ClassVar[bool] = False

    def confirmation_message(self) -> str:
        if self.suggestions:
            names = ", ".join(s.name for s in self.suggestions)
            return f"You might enjoy: {names}. Would you like to try any of these?"
        return "Based on your preferences, would you like me to recommend some dishes?"


class RequestClarificationAction(BaseAction):
    type: Literal[ActionType.REQUEST_CLARIFICATION] = ActionType.REQUEST_CLARIFICATION
    ambiguous_request: str
    options: List[ClarificationOption] = Field(default_factory=list)

    requires_confirmation: ClassVar[bool] = False

    def confirmation_message(self) -> str:
        if self.options:
            names = ", ".join(o.name for o in self.options)
            return f'Which one did you mean by "{self.ambiguous_request}": {names}?'
        return f'Could you tell me a bit more about "{self.ambiguous_request}"?'


class ExplainLockedOrderAction(BaseAction):
    type: Literal[ActionType.EXPLAIN_LOCKED_ORDER] = ActionType.EXPLAIN_LOCKED_ORDER
    reason: str
    blocking_status: Optional[OrderStatus] = None
    blocked_action: Optional[ActionType] = None
    suggested_action: Literal["place_new_order", "contact_staff"] = "contact_staff"

    requires_confirmation: ClassVar[bool] = False

    def confirmation_message(self) -> str:
        if self.blocking_status is None:
            return f"{self.reason}. Would you like to start an order?"
        if self.suggested_action == "place_new_order":
            return (
                f"I'm sorry, but {self.reason.lower()}. Orders can't be changed once "
                "they're being prepared. Would you like to place a new order instead?"
            )
        return (
            f"I'm sorry, but {self.reason.lower()}. Once your order is being prepared, "
            "changes can only be made by speaking with our staff directly."
        )


class ProvideInfoAction(BaseAction):
    type: Literal[ActionType.PROVIDE_INFO] = ActionType.PROVIDE_INFO
    information_type: str = "menu_item_details"
    query: str
    menu_item_id: Optional[str] = None

    requires_confirmation: ClassVar[bool] = False

    def confirmation_message(self) -> str:
        return f"Here's what I know about {self.query}."


class HandleComplaintAction(BaseAction):
    type: Literal[ActionType.HANDLE_COMPLAINT] = ActionType.HANDLE_COMPLAINT
    issue_type: str = "other"
    severity: Literal["low", "medium", "high"] = "medium"
    description: str = ""
    needs_staff_attention: bool = False

    def confirmation_message(self) -> str:
        if self.needs_staff_attention:
            return f"I'm sorry about the {self.issue_type} issue. I'll get a member of staff to help right away."
        return f"I'm sorry about the {self.issue_type} issue. Let me help resolve this."


CandidateAction = Annotated[
    Union[
        AddItemAction,
        RemoveItemAction,
        ModifyItemQuantityAction,
        ConfirmOrderAction,
        CancelOrderAction,
        CheckOrdersAction,
        EditOrderAction,
        RequestRecommendationAction,
        RequestClarificationAction,
        ExplainLockedOrderAction,
        ProvideInfoAction,
        HandleComplaintAction,
    ],
    Field(discriminator="type"),
]

candidate_action_adapter: TypeAdapter = TypeAdapter(CandidateAction)


def is_mutating(action: Optional[BaseAction]) -> bool:
    return action is not None and getattr(action, "type", None) in MUTATING_ACTIONS
