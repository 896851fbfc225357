# action_engine/function_catalogue.py
"""
Function catalogue offered to the language model.

One entry per action type plus `no_action_needed`. Each entry has:
- a pydantic argument model (its JSON schema is what the model sees)
- a default confidence used when the model does not report one
- a builder turning validated arguments into a candidate action

A function call is accepted only if its name is in the catalogue and its
arguments parse into that entry's argument model; anything else raises
AIDecisionError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .actions import (
    AddItemAction,
    BaseAction,
    CancelOrderAction,
    CheckOrdersAction,
    ClarificationOption,
    ConfirmOrderAction,
    EditOrderAction,
    ExplainLockedOrderAction,
    HandleComplaintAction,
    ItemRef,
    ModifyItemQuantityAction,
    OrderLine,
    ProvideInfoAction,
    RemoveItemAction,
    RequestClarificationAction,
    RequestRecommendationAction,
)
from .errors import AIDecisionError
from .models import ActionContext


# -----------------------------------------------------------------------------
# Argument models
# -----------------------------------------------------------------------------
class FunctionArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confidence: Optional[float] = Field(
        None, ge=0.0, le=1.0, description="How sure you are about this interpretation, 0 to 1"
    )


class ItemArg(BaseModel):
    menu_item_id: str = Field("", description="Exact menu item id from the menu list")
    name: str = Field(..., description="Menu item name")
    quantity: int = Field(1, description="How many")
    price: Optional[float] = Field(None, description="Unit price from the menu")
    special_requests: Optional[str] = None


class PlaceOrderArgs(FunctionArgs):
    items: List[ItemArg] = Field(..., min_length=1)
    estimated_total: Optional[float] = None
    customer_notes: Optional[str] = None


class AddToOrderArgs(FunctionArgs):
    items: List[ItemArg] = Field(..., min_length=1)
    order_id: Optional[str] = None


class RemoveItemArgs(FunctionArgs):
    item_name: str
    menu_item_id: str = ""
    order_id: Optional[str] = None
    reason: Optional[str] = None


class ChangeQuantityArgs(FunctionArgs):
    item_name: str
    menu_item_id: str = ""
    new_quantity: int
    order_id: Optional[str] = None


class CancelOrderArgs(FunctionArgs):
    order_id: Optional[str] = None
    cancellation_type: Literal["full_order", "specific_items"] = "full_order"
    items_to_cancel: List[str] = Field(default_factory=list)
    reason: str = "Customer request"


class CheckOrderArgs(FunctionArgs):
    order_id: Optional[str] = None


class EditOrderArgs(FunctionArgs):
    order_id: Optional[str] = None


class PriceRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class RecommendationArgs(FunctionArgs):
    preference_type: Literal["dietary", "price", "mood", "popular", "chef_special"]
    dietary_restrictions: List[str] = Field(default_factory=list)
    price_range: Optional[PriceRange] = None
    mood_or_occasion: Optional[str] = None
    specific_cravings: Optional[str] = None


class OptionArg(BaseModel):
    name: str
    description: Optional[str] = None


class ClarifyArgs(FunctionArgs):
    ambiguous_request: str
    possible_options: List[OptionArg] = Field(default_factory=list)


class ExplainLockedArgs(FunctionArgs):
    reason: Optional[str] = None
    order_status: Optional[str] = None
    suggested_action: Literal["place_new_order", "contact_staff"] = "contact_staff"


class ProvideInfoArgs(FunctionArgs):
    information_type: Literal[
        "menu_item_details", "ingredients", "nutritional_info", "restaurant_info", "policy"
    ]
    specific_query: str
    menu_item_id: Optional[str] = None


class ComplaintArgs(FunctionArgs):
    issue_type: Literal["food_quality", "service", "wait_time", "order_accuracy", "billing", "other"] = "other"
    severity: Literal["low", "medium", "high"] = "medium"
    description: str = ""
    needs_staff_attention: bool = False


class NoActionArgs(FunctionArgs):
    conversation_type: Literal["greeting", "thanks", "small_talk", "general_question"] = "small_talk"
    response_tone: Optional[Literal["friendly", "professional", "casual"]] = None


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------
def _lines(items: List[ItemArg]) -> List[OrderLine]:
    return [
        OrderLine(
            menu_item_id=i.menu_item_id,
            name=i.name,
            quantity=i.quantity,
            unit_price=i.price or 0.0,
            notes=i.special_requests,
        )
        for i in items
    ]


def _latest_order_id(ctx: ActionContext) -> Optional[str]:
    latest = ctx.latest_active_order()
    return latest.id if latest else None


def _place_order(args: PlaceOrderArgs, ctx: ActionContext) -> BaseAction:
    return ConfirmOrderAction(
        items=_lines(args.items),
        total=args.estimated_total or 0.0,
        customer_notes=args.customer_notes,
    )


def _add_to_order(args: AddToOrderArgs, ctx: ActionContext) -> BaseAction:
    return AddItemAction(items=_lines(args.items), order_id=args.order_id or _latest_order_id(ctx))


def _remove_item(args: RemoveItemArgs, ctx: ActionContext) -> BaseAction:
    return RemoveItemAction(
        target=ItemRef(menu_item_id=args.menu_item_id, name=args.item_name),
        order_id=args.order_id or _latest_order_id(ctx),
        reason=args.reason,
    )


def _change_quantity(args: ChangeQuantityArgs, ctx: ActionContext) -> BaseAction:
    return ModifyItemQuantityAction(
        target=ItemRef(menu_item_id=args.menu_item_id, name=args.item_name),
        new_quantity=args.new_quantity,
        order_id=args.order_id or _latest_order_id(ctx),
    )


def _cancel_order(args: CancelOrderArgs, ctx: ActionContext) -> BaseAction:
    return CancelOrderAction(
        order_id=args.order_id or _latest_order_id(ctx),
        scope=args.cancellation_type,
        items_to_cancel=args.items_to_cancel,
        reason=args.reason,
    )


def _check_orders(args: CheckOrderArgs, ctx: ActionContext) -> BaseAction:
    return CheckOrdersAction(order_id=args.order_id)


def _edit_order(args: EditOrderArgs, ctx: ActionContext) -> BaseAction:
    return EditOrderAction(order_id=args.order_id or _latest_order_id(ctx))


def _recommend(args: RecommendationArgs, ctx: ActionContext) -> BaseAction:
    return RequestRecommendationAction(
        preference_type=args.preference_type,
        dietary_restrictions=args.dietary_restrictions,
        price_min=args.price_range.min if args.price_range else None,
        price_max=args.price_range.max if args.price_range else None,
        mood_or_occasion=args.mood_or_occasion,
        specific_cravings=args.specific_cravings,
    )


def _clarify(args: ClarifyArgs, ctx: ActionContext) -> BaseAction:
    return RequestClarificationAction(
        ambiguous_request=args.ambiguous_request,
        options=[ClarificationOption(name=o.name, description=o.description) for o in args.possible_options],
    )


def _explain_locked(args: ExplainLockedArgs, ctx: ActionContext) -> BaseAction:
    return ExplainLockedOrderAction(
        reason=ctx.gate.reason,
        blocking_status=ctx.gate.blocking_status,
        suggested_action=args.suggested_action,
    )


def _provide_info(args: ProvideInfoArgs, ctx: ActionContext) -> BaseAction:
    return ProvideInfoAction(
        information_type=args.information_type,
        query=args.specific_query,
        menu_item_id=args.menu_item_id,
    )


def _complaint(args: ComplaintArgs, ctx: ActionContext) -> BaseAction:
    return HandleComplaintAction(
        issue_type=args.issue_type,
        severity=args.severity,
        description=args.description,
        needs_staff_attention=args.needs_staff_attention or args.severity == "high",
    )


def _no_action(args: NoActionArgs, ctx: ActionContext) -> None:
    return None


# -----------------------------------------------------------------------------
# Catalogue
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FunctionSpec:
    name: str
    description: str
    args_model: Type[FunctionArgs]
    default_confidence: float
    build: Callable[[Any, ActionContext], Optional[BaseAction]]

    def tool_definition(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_model.model_json_schema(),
            },
        }


_SPECS = [
    FunctionSpec(
        "place_order",
        "Place a new order when the customer has clearly chosen items and there is no modifiable order.",
        PlaceOrderArgs, 0.8, _place_order,
    ),
    FunctionSpec(
        "add_to_existing_order",
        "Add items to the customer's order. Only when the latest order can still be modified, or to start one.",
        AddToOrderArgs, 0.75, _add_to_order,
    ),
    FunctionSpec(
        "remove_item",
        "Remove an item from a modifiable order.",
        RemoveItemArgs, 0.7, _remove_item,
    ),
    FunctionSpec(
        "change_item_quantity",
        "Change the quantity of an item in a modifiable order.",
        ChangeQuantityArgs, 0.7, _change_quantity,
    ),
    FunctionSpec(
        "cancel_order",
        "Cancel a modifiable order, fully or specific items.",
        CancelOrderArgs, 0.85, _cancel_order,
    ),
    FunctionSpec(
        "check_order_status",
        "Show the customer their orders and where they are in the kitchen.",
        CheckOrderArgs, 0.9, _check_orders,
    ),
    FunctionSpec(
        "edit_order",
        "Open the customer's orders for editing when they want changes but have not said which.",
        EditOrderArgs, 0.8, _edit_order,
    ),
    FunctionSpec(
        "request_recommendations",
        "The customer wants suggestions.",
        RecommendationArgs, 0.8, _recommend,
    ),
    FunctionSpec(
        "clarify_customer_request",
        "The request is ambiguous or matches several menu items; ask which one they mean.",
        ClarifyArgs, 0.6, _clarify,
    ),
    FunctionSpec(
        "explain_order_locked",
        "The customer wants to change an order that can no longer be modified; explain why.",
        ExplainLockedArgs, 0.9, _explain_locked,
    ),
    FunctionSpec(
        "provide_information",
        "Answer a question about a menu item, ingredients, the restaurant or its policies.",
        ProvideInfoArgs, 0.85, _provide_info,
    ),
    FunctionSpec(
        "handle_complaint_or_issue",
        "The customer is unhappy or reports a problem.",
        ComplaintArgs, 0.65, _complaint,
    ),
    FunctionSpec(
        "no_action_needed",
        "Conversation only: greetings, thanks, small talk or general questions.",
        NoActionArgs, 0.9, _no_action,
    ),
]

CATALOGUE: Dict[str, FunctionSpec] = {spec.name: spec for spec in _SPECS}


def tool_definitions() -> List[Dict[str, Any]]:
    return [spec.tool_definition() for spec in _SPECS]


@dataclass
class ParsedCall:
    function_name: str
    action: Optional[BaseAction]
    confidence: float
    arguments: FunctionArgs


def parse_call(name: str, arguments_json: Optional[str], ctx: ActionContext) -> ParsedCall:
    """
    Validate a model function call and build its candidate action.

    Raises AIDecisionError for unknown names, unparseable JSON or arguments
    that do not fit the function's schema.
    """
    spec = CATALOGUE.get(name)
    if spec is None:
        raise AIDecisionError(f"unknown function '{name}'")

    try:
        raw = json.loads(arguments_json or "{}")
    except json.JSONDecodeError as exc:
        raise AIDecisionError(f"invalid arguments for '{name}': {exc}") from exc
    if not isinstance(raw, dict):
        raise AIDecisionError(f"invalid arguments for '{name}': expected an object")

    try:
        args = spec.args_model.model_validate(raw)
    except ValidationError as exc:
        raise AIDecisionError(
            f"invalid arguments for '{name}': {exc.error_count()} validation error(s)"
        ) from exc

    confidence = args.confidence if args.confidence is not None else spec.default_confidence
    return ParsedCall(
        function_name=name,
        action=spec.build(args, ctx),
        confidence=confidence,
        arguments=args,
    )
