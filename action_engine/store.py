# action_engine/store.py
"""
Read-only data access.

The engine never owns restaurant, menu, session or order data; it reads them
through a `DataStore`. Any persistence layer can implement the protocol; the
in-memory implementation below backs tests and local experiments.

Records are plain dataclasses mirroring what a persistence layer returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from .order_gate import OrderStatus


@dataclass
class RestaurantRecord:
    id: str
    name: str
    subdomain: str = ""
    waiter_name: Optional[str] = None
    waiter_personality: Optional[str] = None
    conversation_tone: Optional[str] = None
    response_style: Optional[str] = None
    specialty_knowledge: Optional[str] = None  # comma separated
    custom_instructions: Optional[str] = None


@dataclass
class MenuItemRecord:
    id: str
    restaurant_id: str
    name: str
    price: float
    category: str = ""
    description: Optional[str] = None
    available: bool = True
    image_url: Optional[str] = None
    dietary_tags: List[str] = field(default_factory=list)


@dataclass
class SessionRecord:
    id: str
    restaurant_id: str
    table_number: str
    status: str = "ACTIVE"
    customer_name: Optional[str] = None
    start_time: Optional[datetime] = None
    total_orders: int = 0
    total_spent: float = 0.0


@dataclass
class OrderItemRecord:
    id: str
    menu_item_id: str
    name: str
    quantity: int
    price_at_time: float
    notes: Optional[str] = None


@dataclass
class OrderRecord:
    id: str
    restaurant_id: str
    status: OrderStatus
    total: float
    created_at: datetime
    session_id: Optional[str] = None
    table_label: Optional[str] = None  # e.g. "Table 5"
    notes: Optional[str] = None
    items: List[OrderItemRecord] = field(default_factory=list)


def table_label(table_number: int) -> str:
    return f"Table {table_number}"


class DataStore(Protocol):
    """
    Query operations the context builder needs. All reads, no writes.

    Implementations should raise on connectivity problems rather than return
    empty results; the engine refuses to decide without ground truth.
    """

    async def get_restaurant(self, restaurant_id: str) -> Optional[RestaurantRecord]: ...

    async def list_menu_items(self, restaurant_id: str) -> List[MenuItemRecord]: ...

    async def get_active_session(
        self, restaurant_id: str, table_number: str
    ) -> Optional[SessionRecord]: ...

    async def list_session_orders(self, session_id: str, limit: int) -> List[OrderRecord]: ...

    async def list_table_orders(
        self, restaurant_id: str, table_label: str, since: datetime, limit: int
    ) -> List[OrderRecord]: ...


class InMemoryDataStore:
    """
    Dictionary-backed DataStore.

    Orders are returned most-recent-first, like the production queries.
    """

    def __init__(self) -> None:
        self.restaurants: Dict[str, RestaurantRecord] = {}
        self.menu_items: List[MenuItemRecord] = []
        self.sessions: List[SessionRecord] = []
        self.orders: List[OrderRecord] = []

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------
    def add_restaurant(self, restaurant: RestaurantRecord) -> None:
        self.restaurants[restaurant.id] = restaurant

    def add_menu_item(self, item: MenuItemRecord) -> None:
        self.menu_items.append(item)

    def add_session(self, session: SessionRecord) -> None:
        self.sessions.append(session)

    def add_order(self, order: OrderRecord) -> None:
        self.orders.append(order)

    # -------------------------------------------------------------------------
    # DataStore protocol
    # -------------------------------------------------------------------------
    async def get_restaurant(self, restaurant_id: str) -> Optional[RestaurantRecord]:
        return self.restaurants.get(restaurant_id)

    async def list_menu_items(self, restaurant_id: str) -> List[MenuItemRecord]:
        return [m for m in self.menu_items if m.restaurant_id == restaurant_id]

    async def get_active_session(
        self, restaurant_id: str, table_number: str
    ) -> Optional[SessionRecord]:
        for session in self.sessions:
            if (
                session.restaurant_id == restaurant_id
                and session.table_number == table_number
                and session.status == "ACTIVE"
            ):
                return session
        return None

    async def list_session_orders(self, session_id: str, limit: int) -> List[OrderRecord]:
        matches = [o for o in self.orders if o.session_id == session_id]
        return self._newest_first(matches)[:limit]

    async def list_table_orders(
        self, restaurant_id: str, table_label: str, since: datetime, limit: int
    ) -> List[OrderRecord]:
        matches = [
            o
            for o in self.orders
            if o.restaurant_id == restaurant_id
            and o.table_label == table_label
            and o.created_at >= since
        ]
        return self._newest_first(matches)[:limit]

    @staticmethod
    def _newest_first(orders: List[OrderRecord]) -> List[OrderRecord]:
        return sorted(orders, key=lambda o: o.created_at, reverse=True)
