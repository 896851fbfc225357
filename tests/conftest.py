import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from action_engine.config import EngineSettings
from action_engine.context_builder import ContextBuilder
from action_engine.order_gate import OrderStatus
from action_engine.store import (
    InMemoryDataStore,
    MenuItemRecord,
    OrderItemRecord,
    OrderRecord,
    RestaurantRecord,
    SessionRecord,
)

RESTAURANT_ID = "rest-1"
TABLE = 5


@pytest.fixture
def engine_settings():
    """Settings with an API key so the AI path is attempted."""
    return EngineSettings(OPENAI_API_KEY="test-key", LLM_TIMEOUT_SECONDS=0.5)


@pytest.fixture
def offline_settings():
    """Settings without a model: the engine runs on the pattern matcher."""
    return EngineSettings(OPENAI_API_KEY=None)


@pytest.fixture
def store():
    """In-memory store with one restaurant, a small menu and an active session at table 5."""
    s = InMemoryDataStore()
    s.add_restaurant(
        RestaurantRecord(
            id=RESTAURANT_ID,
            name="Trattoria Test",
            subdomain="trattoria",
            waiter_name="Marco",
            waiter_personality="FRIENDLY",
            conversation_tone="warm",
            response_style="concise",
            specialty_knowledge="wine pairing, pasta",
        )
    )
    menu = [
        MenuItemRecord(
            id="menu-item-1",
            restaurant_id=RESTAURANT_ID,
            name="Caesar Salad",
            price=12.99,
            category="Salads",
            description="Crisp romaine, parmesan cheese, croutons and caesar dressing",
            image_url="https://img.example/caesar.jpg",
        ),
        MenuItemRecord(
            id="menu-item-2",
            restaurant_id=RESTAURANT_ID,
            name="Veggie Burger",
            price=13.50,
            category="Main Courses",
            description="Black bean patty with lettuce and tomato",
            dietary_tags=["vegetarian"],
        ),
        MenuItemRecord(
            id="menu-item-3",
            restaurant_id=RESTAURANT_ID,
            name="Margherita Pizza",
            price=14.00,
            category="Pizzas",
            description="Tomato, mozzarella cheese and basil",
            dietary_tags=["vegetarian"],
        ),
        MenuItemRecord(
            id="menu-item-4",
            restaurant_id=RESTAURANT_ID,
            name="Garlic Bread",
            price=5.50,
            category="Sides",
        ),
        MenuItemRecord(
            id="menu-item-5",
            restaurant_id=RESTAURANT_ID,
            name="Lobster Bisque",
            price=9.00,
            category="Soups",
            available=False,
        ),
        MenuItemRecord(
            id="menu-item-6",
            restaurant_id=RESTAURANT_ID,
            name="Coke",
            price=2.50,
            category="Drinks",
        ),
        MenuItemRecord(
            id="menu-item-7",
            restaurant_id=RESTAURANT_ID,
            name="Pepperoni Pizza",
            price=15.50,
            category="Pizzas",
            description="Tomato, mozzarella cheese and pepperoni",
        ),
    ]
    for item in menu:
        s.add_menu_item(item)

    s.add_session(
        SessionRecord(
            id="sess-1",
            restaurant_id=RESTAURANT_ID,
            table_number=str(TABLE),
            customer_name="Alex",
            start_time=datetime.now(timezone.utc) - timedelta(minutes=20),
        )
    )
    return s


@pytest.fixture
def add_order(store):
    """Factory: add an order for the active session at table 5."""
    counter = {"n": 0}

    def _add(status: OrderStatus, minutes_ago: int = 10, items=None) -> OrderRecord:
        counter["n"] += 1
        n = counter["n"]
        lines = items or [
            OrderItemRecord(
                id=f"order-item-{n}",
                menu_item_id="menu-item-1",
                name="Caesar Salad",
                quantity=1,
                price_at_time=12.99,
            )
        ]
        order = OrderRecord(
            id=f"order-abcdef{n}",
            restaurant_id=RESTAURANT_ID,
            status=status,
            total=round(sum(i.price_at_time * i.quantity for i in lines), 2),
            created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
            session_id="sess-1",
            table_label=f"Table {TABLE}",
            items=lines,
        )
        store.add_order(order)
        return order

    return _add


@pytest.fixture
def build_context(store, engine_settings):
    """Factory: build an ActionContext for table 5 synchronously."""

    def _build(table_number: Optional[int] = TABLE, history=(), pending_action=None):
        builder = ContextBuilder(store, engine_settings)
        return asyncio.run(
            builder.build(RESTAURANT_ID, table_number, list(history), pending_action=pending_action)
        )

    return _build
