# action_engine/models.py
"""
Pydantic models for the decision context, requests and results.

Context models are frozen: an ActionContext is a snapshot built once per turn
and never updated while a decision is being made.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .actions import ActionType, CandidateAction
from .order_gate import GateVerdict, OrderStatus

Role = Literal["user", "assistant", "system"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# -----------------------------------------------------------------------------
# Context building blocks
# -----------------------------------------------------------------------------
class ConversationMessage(_Frozen):
    role: Role
    content: str
    timestamp: Optional[datetime] = None


class MenuItemContext(_Frozen):
    id: str
    name: str
    description: str = ""
    price: float
    category: str = ""
    available: bool = True
    image_url: Optional[str] = None
    dietary_tags: List[str] = Field(default_factory=list)
    ingredients: List[str] = Field(default_factory=list)
    prep_time: int = 15
    popularity_score: float = 0.5


class OrderItemContext(_Frozen):
    id: str
    menu_item_id: str
    name: str
    quantity: int
    price: float
    notes: Optional[str] = None
    can_modify: bool = False


class OrderContext(_Frozen):
    id: str
    status: OrderStatus
    total: float
    created_at: datetime
    items: List[OrderItemContext] = Field(default_factory=list)
    can_modify: bool = False
    notes: Optional[str] = None

    @property
    def short_id(self) -> str:
        return self.id[-6:].upper()


class CustomerSessionContext(_Frozen):
    id: str
    table_number: str
    status: str = "ACTIVE"
    customer_name: Optional[str] = None
    start_time: Optional[datetime] = None
    total_orders: int = 0
    total_spent: float = 0.0


class RestaurantSettings(_Frozen):
    waiter_personality: str = "FRIENDLY"
    conversation_tone: Literal["WARM", "ENERGETIC", "CALM", "NEUTRAL"] = "NEUTRAL"
    response_style: Literal["CONCISE", "DETAILED", "ENTERTAINING", "HELPFUL"] = "HELPFUL"
    specialty_knowledge: List[str] = Field(default_factory=list)
    custom_instructions: Optional[str] = None


class RestaurantInfo(_Frozen):
    id: str
    name: str
    subdomain: str = ""
    waiter_name: str = "Your AI Waiter"


class OrderStatusEntry(_Frozen):
    order_id: str
    status: OrderStatus
    can_modify: bool


class OrderValidationSummary(_Frozen):
    can_modify_by_status: Dict[str, bool]
    current_order_statuses: List[OrderStatusEntry] = Field(default_factory=list)
    has_modifiable_orders: bool = False


class CustomerPreferences(_Frozen):
    dietary_restrictions: List[str] = Field(default_factory=list)
    spice_tolerance: Optional[Literal["MILD", "HOT"]] = None
    price_range: Optional[Literal["BUDGET", "PREMIUM"]] = None


class ActionContext(_Frozen):
    """
    Everything one decision is allowed to know.

    Built by the ContextBuilder, consumed by every later stage, discarded
    after the call.
    """
    restaurant: RestaurantInfo
    settings: RestaurantSettings = Field(default_factory=RestaurantSettings)
    table_number: Optional[int] = None
    menu_items: List[MenuItemContext] = Field(default_factory=list)
    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    customer_session: Optional[CustomerSessionContext] = None
    current_orders: List[OrderContext] = Field(default_factory=list)
    gate: GateVerdict
    order_validation: OrderValidationSummary
    preferences: CustomerPreferences = Field(default_factory=CustomerPreferences)
    pending_action: Optional[CandidateAction] = None

    @property
    def restaurant_id(self) -> str:
        return self.restaurant.id

    @property
    def available_items(self) -> List[MenuItemContext]:
        return [m for m in self.menu_items if m.available]

    def menu_item(self, menu_item_id: str) -> Optional[MenuItemContext]:
        for item in self.menu_items:
            if item.id == menu_item_id:
                return item
        return None

    def latest_active_order(self) -> Optional[OrderContext]:
        for order in self.current_orders:
            if order.status is not OrderStatus.CANCELLED:
                return order
        return None


# -----------------------------------------------------------------------------
# Request / result
# -----------------------------------------------------------------------------
class DecisionRequest(BaseModel):
    """
    Input to DecisionEngine.process: one customer turn.
    """
    restaurant_id: str = Field(..., description="Restaurant the customer is chatting with")
    message: str = Field(..., description="The customer's raw message")
    table_number: Optional[int] = Field(None, description="Table number, if known")
    conversation_history: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Prior messages as {role, content}, oldest first",
    )


class DecisionMetadata(BaseModel):
    latency_ms: float = 0.0
    path: Literal["ai", "fallback", "ai+fallback"] = "ai"
    states: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    function_name: Optional[str] = None
    ai_failure: Optional[str] = None


class DecisionResult(BaseModel):
    """
    What the engine proposes for one turn.

    `action` is None for a purely conversational reply. The caller shows
    `reply` to the customer and commits `action` only after the customer
    confirms it.
    """
    action: Optional[CandidateAction] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str
    used_fallback: bool = False
    reply: Optional[str] = None
    intent: Optional[str] = None
    entities: Dict[str, Any] = Field(default_factory=dict)
    metadata: DecisionMetadata = Field(default_factory=DecisionMetadata)

    @property
    def action_type(self) -> Optional[ActionType]:
        return self.action.type if self.action is not None else None
