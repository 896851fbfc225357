# action_engine/action_validator.py
"""
Action Validator

Last stage for every candidate action, whichever path produced it.

- Hard gate: order-changing actions are replaced by explain-locked-order
  whenever the order gate says the orders cannot be modified. Confidence and
  path do not matter.
- Menu references are resolved against the context menu: by id, then exact
  name (case-insensitive), then a unique containment match, then a unique
  close match (difflib). A hallucinated id with a correct name heals to the
  real id.
- Unresolved or unavailable items are dropped and noted.
- Prices and totals are recomputed from the menu; quantities are clamped.
- An order action left with no items becomes a clarification request.

Validating an already validated action returns an equal action.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .actions import (
    ORDER_CREATING_ACTIONS,
    ActionType,
    AddItemAction,
    BaseAction,
    CancelOrderAction,
    ClarificationOption,
    ConfirmOrderAction,
    EditOrderAction,
    ExplainLockedOrderAction,
    ItemRef,
    ModifyItemQuantityAction,
    OrderLine,
    ProvideInfoAction,
    RemoveItemAction,
    RequestClarificationAction,
    RequestRecommendationAction,
    is_mutating,
)
from .config import EngineSettings, settings
from .models import ActionContext, MenuItemContext

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    action: Optional[BaseAction]
    notes: List[str] = field(default_factory=list)
    gate_blocked: bool = False
    downgraded: bool = False


class ActionValidator:
    """
    Normalizes candidate actions against the context snapshot.
    """

    def __init__(self, engine_settings: EngineSettings = settings, fuzzy_threshold: float = 0.85) -> None:
        self.settings = engine_settings
        self.fuzzy_threshold = fuzzy_threshold

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------
    def validate(self, action: Optional[BaseAction], ctx: ActionContext) -> ValidationOutcome:
        if action is None:
            return ValidationOutcome(action=None)

        blocked = self._gate(action, ctx)
        if blocked is not None:
            logger.info("Order gate blocked %s: %s", action.type.value, ctx.gate.reason)
            return ValidationOutcome(
                action=blocked,
                notes=[f"{action.type.value} blocked: {ctx.gate.reason}"],
                gate_blocked=True,
            )

        notes: List[str] = []
        if isinstance(action, (AddItemAction, ConfirmOrderAction)):
            result = self._order_lines(action, ctx, notes)
        elif isinstance(action, (RemoveItemAction, ModifyItemQuantityAction)):
            result = self._item_target(action, ctx, notes)
        elif isinstance(action, (CancelOrderAction, EditOrderAction)):
            result = self._order_reference(action, ctx)
        elif isinstance(action, ProvideInfoAction):
            result = self._info(action, ctx)
        elif isinstance(action, RequestRecommendationAction):
            result = self._suggestions(action, ctx, notes)
        else:
            result = action

        downgraded = isinstance(result, RequestClarificationAction) and not isinstance(
            action, RequestClarificationAction
        )
        return ValidationOutcome(action=result, notes=notes, downgraded=downgraded)

    def resolve(self, menu_item_id: str, name: str, ctx: ActionContext) -> Optional[MenuItemContext]:
        """Find the menu item an action refers to, or None."""
        if menu_item_id:
            item = ctx.menu_item(menu_item_id)
            if item is not None:
                return item

        wanted = (name or "").strip().lower()
        if not wanted:
            return None

        for item in ctx.menu_items:
            if item.name.lower() == wanted:
                return item

        contained = [
            m for m in ctx.menu_items
            if wanted in m.name.lower() or m.name.lower() in wanted
        ]
        if len(contained) == 1:
            return contained[0]

        pool = contained or ctx.menu_items
        scored = [
            (difflib.SequenceMatcher(None, wanted, m.name.lower()).ratio(), m) for m in pool
        ]
        close = [m for ratio, m in scored if ratio >= self.fuzzy_threshold]
        if len(close) == 1:
            return close[0]
        return None

    # -------------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------------
    @staticmethod
    def _gate(action: BaseAction, ctx: ActionContext) -> Optional[ExplainLockedOrderAction]:
        gate = ctx.gate
        if gate.can_modify or not is_mutating(action):
            return None
        # No orders at all: starting one is not a modification
        if gate.blocking_status is None and action.type in ORDER_CREATING_ACTIONS:
            return None

        return ExplainLockedOrderAction(
            reason=gate.reason,
            blocking_status=gate.blocking_status,
            blocked_action=action.type,
            suggested_action=(
                "place_new_order"
                if action.type in ORDER_CREATING_ACTIONS or action.type is ActionType.EDIT_ORDER
                else "contact_staff"
            ),
        )

    # -------------------------------------------------------------------------
    # Per action family
    # -------------------------------------------------------------------------
    def _order_lines(self, action: BaseAction, ctx: ActionContext, notes: List[str]) -> BaseAction:
        lines: List[OrderLine] = []
        for line in action.items:
            item = self.resolve(line.menu_item_id, line.name, ctx)
            if item is None:
                notes.append(f"'{line.name}' is not on the menu")
                continue
            if not item.available:
                notes.append(f"{item.name} is currently unavailable")
                continue
            if line.menu_item_id and line.menu_item_id != item.id:
                notes.append(f"menu item id for {item.name} corrected to {item.id}")

            quantity = self._clamp(line.quantity, item.name, notes)
            lines.append(
                line.model_copy(
                    update={
                        "menu_item_id": item.id,
                        "name": item.name,
                        "quantity": quantity,
                        "unit_price": item.price,
                        "line_total": round(item.price * quantity, 2),
                    }
                )
            )

        if not lines:
            return self._clarify(", ".join(l.name for l in action.items) or "your order", ctx)

        update = {"items": lines, "total": round(sum(l.line_total for l in lines), 2)}
        if isinstance(action, AddItemAction) and action.order_id is None and ctx.gate.can_modify:
            latest = ctx.latest_active_order()
            update["order_id"] = latest.id if latest else None
        return action.model_copy(update=update)

    def _item_target(self, action: BaseAction, ctx: ActionContext, notes: List[str]) -> BaseAction:
        target: ItemRef = action.target
        item = self.resolve(target.menu_item_id, target.name, ctx)
        if item is None:
            notes.append(f"'{target.name}' is not on the menu")
            return self._clarify(target.name, ctx)

        latest = ctx.latest_active_order()
        order_id = action.order_id or (latest.id if latest else None)
        order_item_id = target.order_item_id
        if order_item_id is None and latest is not None:
            for order_item in latest.items:
                if order_item.menu_item_id == item.id:
                    order_item_id = order_item.id
                    break

        target = ItemRef(menu_item_id=item.id, name=item.name, order_item_id=order_item_id)
        if isinstance(action, ModifyItemQuantityAction) and action.new_quantity <= 0:
            notes.append(f"quantity {action.new_quantity} for {item.name} treated as removal")
            return RemoveItemAction(
                id=action.id,
                target=target,
                order_id=order_id,
                reason=f"Quantity set to {action.new_quantity}",
            )

        update = {"target": target, "order_id": order_id}
        if isinstance(action, ModifyItemQuantityAction):
            update["new_quantity"] = self._clamp(action.new_quantity, item.name, notes)
            update["unit_price"] = item.price
        return action.model_copy(update=update)

    @staticmethod
    def _order_reference(action: BaseAction, ctx: ActionContext) -> BaseAction:
        if action.order_id is not None:
            return action
        latest = ctx.latest_active_order()
        return action.model_copy(update={"order_id": latest.id if latest else None})

    def _info(self, action: ProvideInfoAction, ctx: ActionContext) -> BaseAction:
        if action.menu_item_id and ctx.menu_item(action.menu_item_id) is not None:
            return action
        item = self.resolve("", action.query, ctx)
        return action.model_copy(update={"menu_item_id": item.id if item else None})

    def _suggestions(
        self, action: RequestRecommendationAction, ctx: ActionContext, notes: List[str]
    ) -> BaseAction:
        kept: List[ClarificationOption] = []
        for suggestion in action.suggestions:
            item = self.resolve(suggestion.menu_item_id or "", suggestion.name, ctx)
            if item is None or not item.available:
                notes.append(f"dropped suggestion '{suggestion.name}'")
                continue
            kept.append(suggestion.model_copy(update={"menu_item_id": item.id, "name": item.name}))
        if len(kept) == len(action.suggestions) and all(
            a == b for a, b in zip(kept, action.suggestions)
        ):
            return action
        return action.model_copy(update={"suggestions": kept})

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def _clamp(self, quantity: int, name: str, notes: List[str]) -> int:
        upper = self.settings.MAX_ITEM_QUANTITY
        clamped = max(1, min(int(quantity), upper))
        if clamped != quantity:
            notes.append(f"quantity for {name} adjusted from {quantity} to {clamped}")
        return clamped

    def _clarify(self, request: str, ctx: ActionContext) -> RequestClarificationAction:
        words = request.lower()
        options = [
            ClarificationOption(name=m.name, description=m.description or None, menu_item_id=m.id)
            for m in ctx.available_items
            if any(w in m.name.lower() for w in words.split() if len(w) > 2)
        ][:3]
        return RequestClarificationAction(ambiguous_request=request, options=options)
