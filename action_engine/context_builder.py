# action_engine/context_builder.py
"""
ContextBuilder

Assembles the ActionContext for one decision:
- Restaurant identity and waiter settings.
- Menu items, enriched with derived ingredients, prep time and popularity.
- The active customer session for the table (if a table is known).
- Recent orders for that session, or for the table within a recent window.
- Conversation history, trimmed to a bounded window.
- The Order State Gate verdict and the order validation summary.
- Customer preferences picked up from the conversation.

This module only reads. Data store failures propagate unchanged: deciding
against a partial or empty context is never safe.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from . import order_gate
from .actions import BaseAction
from .config import EngineSettings, settings
from .errors import RestaurantNotFoundError
from .models import (
    ActionContext,
    ConversationMessage,
    CustomerPreferences,
    CustomerSessionContext,
    MenuItemContext,
    OrderContext,
    OrderItemContext,
    OrderStatusEntry,
    OrderValidationSummary,
    RestaurantInfo,
    RestaurantSettings,
)
from .store import (
    DataStore,
    MenuItemRecord,
    OrderRecord,
    RestaurantRecord,
    SessionRecord,
    table_label,
)

logger = logging.getLogger(__name__)

INGREDIENT_VOCABULARY: List[str] = [
    "cheese", "tomato", "lettuce", "onion", "garlic", "chicken", "beef", "pork",
    "fish", "shrimp", "nuts", "peanuts", "eggs", "milk", "wheat", "gluten",
    "mushrooms", "peppers", "olives", "basil", "oregano", "spinach",
]

PREP_TIME_BY_CATEGORY: Dict[str, int] = {
    "appetizers": 10,
    "salads": 8,
    "soups": 12,
    "pizzas": 15,
    "pasta": 12,
    "main courses": 20,
    "desserts": 8,
    "drinks": 3,
    "sides": 8,
}
DEFAULT_PREP_TIME = 15

DIETARY_KEYWORDS = ["vegetarian", "vegan", "gluten-free", "dairy-free", "nut allergy", "pescatarian"]
_SPICY = re.compile(r"\b(spicy|hot)\b")
_MILD = re.compile(r"\bmild\b")
_BUDGET = re.compile(r"\b(cheap|budget)\b")
_PREMIUM = re.compile(r"\b(expensive|premium)\b")

_TONES = {"WARM", "ENERGETIC", "CALM"}
_STYLES = {"CONCISE", "DETAILED", "ENTERTAINING"}

HistoryEntry = Union[ConversationMessage, Mapping[str, Any]]


# -----------------------------------------------------------------------------
# Derivation helpers
# -----------------------------------------------------------------------------
def extract_ingredients(description: Optional[str], vocabulary: Iterable[str] = INGREDIENT_VOCABULARY) -> List[str]:
    if not description:
        return []
    lower = description.lower()
    return [word for word in vocabulary if word in lower]


def estimate_prep_time(
    category: Optional[str],
    table: Mapping[str, int] = PREP_TIME_BY_CATEGORY,
    default: int = DEFAULT_PREP_TIME,
) -> int:
    return table.get((category or "").lower(), default)


def popularity_score(item: MenuItemRecord, average_price: float) -> float:
    """
    Heuristic stand-in for real order statistics: items with a photo, a
    description and a price near the menu average score higher.
    """
    score = 0.5
    if item.image_url:
        score += 0.2
    if item.description:
        score += 0.1
    price = float(item.price)
    if average_price > 0 and average_price * 0.8 <= price <= average_price * 1.2:
        score += 0.2
    return min(1.0, round(score, 2))


def map_tone(tone: Optional[str]) -> str:
    value = (tone or "").upper()
    return value if value in _TONES else "NEUTRAL"


def map_style(style: Optional[str]) -> str:
    value = (style or "").upper()
    return value if value in _STYLES else "HELPFUL"


def extract_preferences(history: Sequence[ConversationMessage]) -> CustomerPreferences:
    text = " ".join(m.content.lower() for m in history if m.role == "user")

    spice = None
    if _SPICY.search(text):
        spice = "HOT"
    elif _MILD.search(text):
        spice = "MILD"

    price = None
    if _BUDGET.search(text):
        price = "BUDGET"
    elif _PREMIUM.search(text):
        price = "PREMIUM"

    return CustomerPreferences(
        dietary_restrictions=[k for k in DIETARY_KEYWORDS if re.search(r"\b" + re.escape(k) + r"\b", text)],
        spice_tolerance=spice,
        price_range=price,
    )


def build_validation_summary(orders: Sequence[OrderContext]) -> OrderValidationSummary:
    return OrderValidationSummary(
        can_modify_by_status=order_gate.modifiability_by_status(),
        current_order_statuses=[
            OrderStatusEntry(order_id=o.short_id, status=o.status, can_modify=o.can_modify)
            for o in orders
        ],
        has_modifiable_orders=any(o.can_modify for o in orders),
    )


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------
class ContextBuilder:
    """
    Builds one ActionContext per customer turn from a read-only DataStore.
    """

    def __init__(
        self,
        store: DataStore,
        engine_settings: EngineSettings = settings,
        ingredient_vocabulary: Optional[List[str]] = None,
        prep_times: Optional[Dict[str, int]] = None,
        default_prep_time: int = DEFAULT_PREP_TIME,
    ) -> None:
        self.store = store
        self.settings = engine_settings
        self.ingredient_vocabulary = ingredient_vocabulary or INGREDIENT_VOCABULARY
        self.prep_times = prep_times or PREP_TIME_BY_CATEGORY
        self.default_prep_time = default_prep_time

    async def build(
        self,
        restaurant: Union[str, RestaurantRecord],
        table_number: Optional[int],
        conversation_history: Sequence[HistoryEntry],
        pending_action: Optional[BaseAction] = None,
        now: Optional[datetime] = None,
    ) -> ActionContext:
        now = now or datetime.now(timezone.utc)

        if isinstance(restaurant, RestaurantRecord):
            record = restaurant
        else:
            record = await self.store.get_restaurant(restaurant)
            if record is None:
                raise RestaurantNotFoundError(restaurant)

        menu_records = await self.store.list_menu_items(record.id)
        menu_items = self._map_menu(menu_records)

        session = await self._active_session(record.id, table_number)
        orders = await self._recent_orders(record.id, table_number, session, now)

        history = self._map_history(conversation_history, now)
        verdict = order_gate.evaluate(orders)

        ctx = ActionContext(
            restaurant=RestaurantInfo(
                id=record.id,
                name=record.name,
                subdomain=record.subdomain,
                waiter_name=record.waiter_name or "Your AI Waiter",
            ),
            settings=RestaurantSettings(
                waiter_personality=record.waiter_personality or "FRIENDLY",
                conversation_tone=map_tone(record.conversation_tone),
                response_style=map_style(record.response_style),
                specialty_knowledge=[
                    s.strip() for s in (record.specialty_knowledge or "").split(",") if s.strip()
                ],
                custom_instructions=record.custom_instructions,
            ),
            table_number=table_number,
            menu_items=menu_items,
            conversation_history=history,
            customer_session=session,
            current_orders=orders,
            gate=verdict,
            order_validation=build_validation_summary(orders),
            preferences=extract_preferences(history),
            pending_action=pending_action,
        )

        logger.info(
            "Context built for %s: menu=%d history=%d orders=%d session=%s table=%s can_modify=%s",
            record.name,
            len(menu_items),
            len(history),
            len(orders),
            session.id if session else None,
            table_number,
            verdict.can_modify,
        )
        return ctx

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------
    async def _active_session(
        self, restaurant_id: str, table_number: Optional[int]
    ) -> Optional[CustomerSessionContext]:
        if table_number is None:
            return None
        record = await self.store.get_active_session(restaurant_id, str(table_number))
        if record is None:
            return None
        return self._map_session(record)

    async def _recent_orders(
        self,
        restaurant_id: str,
        table_number: Optional[int],
        session: Optional[CustomerSessionContext],
        now: datetime,
    ) -> List[OrderContext]:
        if table_number is None:
            return []

        limit = self.settings.RECENT_ORDER_LIMIT
        if session is not None:
            records = await self.store.list_session_orders(session.id, limit)
        else:
            since = now - timedelta(hours=self.settings.ORDER_LOOKBACK_HOURS)
            records = await self.store.list_table_orders(
                restaurant_id, table_label(table_number), since, limit
            )

        orders = [self._map_order(r) for r in records[:limit]]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------
    def _map_menu(self, records: Sequence[MenuItemRecord]) -> List[MenuItemContext]:
        if not records:
            return []
        average = sum(float(r.price) for r in records) / len(records)
        return [
            MenuItemContext(
                id=r.id,
                name=r.name,
                description=r.description or "",
                price=float(r.price),
                category=r.category,
                available=r.available,
                image_url=r.image_url,
                dietary_tags=list(r.dietary_tags),
                ingredients=extract_ingredients(r.description, self.ingredient_vocabulary),
                prep_time=estimate_prep_time(r.category, self.prep_times, self.default_prep_time),
                popularity_score=popularity_score(r, average),
            )
            for r in records
        ]

    @staticmethod
    def _map_session(record: SessionRecord) -> CustomerSessionContext:
        return CustomerSessionContext(
            id=record.id,
            table_number=record.table_number,
            status=record.status,
            customer_name=record.customer_name,
            start_time=record.start_time,
            total_orders=record.total_orders,
            total_spent=float(record.total_spent),
        )

    @staticmethod
    def _map_order(record: OrderRecord) -> OrderContext:
        status = order_gate.OrderStatus(record.status)
        modifiable = order_gate.is_modifiable(status)
        return OrderContext(
            id=record.id,
            status=status,
            total=float(record.total),
            created_at=record.created_at,
            can_modify=modifiable,
            notes=record.notes,
            items=[
                OrderItemContext(
                    id=i.id,
                    menu_item_id=i.menu_item_id,
                    name=i.name,
                    quantity=i.quantity,
                    price=float(i.price_at_time),
                    notes=i.notes,
                    can_modify=modifiable,
                )
                for i in record.items
            ],
        )

    def _map_history(
        self, history: Sequence[HistoryEntry], now: datetime
    ) -> List[ConversationMessage]:
        window = list(history)[-self.settings.HISTORY_WINDOW:] if self.settings.HISTORY_WINDOW > 0 else []
        messages: List[ConversationMessage] = []
        for index, entry in enumerate(window):
            if isinstance(entry, ConversationMessage):
                messages.append(entry)
                continue
            role = "user" if entry.get("role") == "user" else "assistant"
            messages.append(
                ConversationMessage(
                    role=role,
                    content=str(entry.get("content") or ""),
                    # Estimated one minute apart when the caller has no timestamps
                    timestamp=entry.get("timestamp") or now - timedelta(minutes=len(window) - index),
                )
            )
        return messages
