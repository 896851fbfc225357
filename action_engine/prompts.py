# action_engine/prompts.py
"""
Prompt rendering for the AI decision path.

The system prompt carries, in order:
- who the waiter is (restaurant personality, tone, response style)
- the order state verdict and the rules for locked orders
- the menu with ids, prices and availability
- the customer session and current orders
- preferences picked up from the conversation

Conversation history is sent as chat messages, trimmed to the prompt window.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from .config import EngineSettings, settings
from .models import ActionContext

_TONE_LINES = {
    "WARM": "Be warm and welcoming, like a regular's favourite waiter.",
    "ENERGETIC": "Be upbeat and enthusiastic.",
    "CALM": "Be calm and unhurried.",
    "NEUTRAL": "Be professional yet friendly.",
}

_STYLE_LINES = {
    "CONCISE": "Keep replies brief and to the point.",
    "DETAILED": "Give helpful detail about dishes when it is relevant.",
    "ENTERTAINING": "A little humour is welcome, but stay accurate.",
    "HELPFUL": "Focus on helping the customer decide and order.",
}

ORDER_STATUS_RULES = """
ORDER STATUS RULES:
- PENDING orders can be modified (add, remove, change quantity, cancel).
- PREPARING, READY and SERVED orders can NOT be modified. The kitchen has started.
- CANCELLED orders are ignored.
- Never offer or perform a modification when CAN MODIFY is NO. Call
  explain_order_locked instead and suggest a new order or speaking to staff.
- Only use menu item ids from the MENU section. Never invent ids or prices.
""".strip()


def _section(title: str, lines: List[str]) -> str:
    return "\n".join([f"{title}:"] + lines)


def render_personality(ctx: ActionContext) -> str:
    s = ctx.settings
    lines = [
        f"You are {ctx.restaurant.waiter_name}, the AI waiter at {ctx.restaurant.name}.",
        f"Personality: {s.waiter_personality}.",
        _TONE_LINES.get(s.conversation_tone, _TONE_LINES["NEUTRAL"]),
        _STYLE_LINES.get(s.response_style, _STYLE_LINES["HELPFUL"]),
    ]
    if s.specialty_knowledge:
        lines.append(f"You know a lot about: {', '.join(s.specialty_knowledge)}.")
    if s.custom_instructions:
        lines.append(f"House instructions: {s.custom_instructions}")
    if ctx.table_number is not None:
        lines.append(f"The customer is at table {ctx.table_number}.")
    return "\n".join(lines)


def render_gate(ctx: ActionContext) -> str:
    gate = ctx.gate
    lines = [
        f"- CAN MODIFY: {'YES' if gate.can_modify else 'NO'}",
        f"- Reason: {gate.reason}",
    ]
    if gate.blocking_status is not None:
        lines.append(f"- Blocking status: {gate.blocking_status.value}")
    return _section("ORDER STATE", lines) + "\n\n" + ORDER_STATUS_RULES


def render_menu(ctx: ActionContext) -> str:
    if not ctx.menu_items:
        return "MENU: (no items)"

    by_category: Dict[str, List[str]] = {}
    for item in ctx.menu_items:
        line = f"- [{item.id}] {item.name} - ${item.price:.2f}"
        if not item.available:
            line += " [UNAVAILABLE]"
        if item.dietary_tags:
            line += f" ({', '.join(item.dietary_tags)})"
        if item.description:
            line += f": {item.description}"
        by_category.setdefault(item.category or "Other", []).append(line)

    blocks = [f"{category}:\n" + "\n".join(lines) for category, lines in by_category.items()]
    return "MENU:\n" + "\n\n".join(blocks)


def render_session(ctx: ActionContext, now: Optional[datetime] = None) -> str:
    session = ctx.customer_session
    if session is None:
        return ""

    lines = [f"- Name: {session.customer_name or 'Guest'}"]
    if session.start_time is not None:
        now = now or datetime.now(timezone.utc)
        start = session.start_time
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        lines.append(f"- Session duration: {int((now - start).total_seconds() // 60)} minutes")
    lines.append(f"- Total orders: {session.total_orders}")
    lines.append(f"- Total spent: ${session.total_spent:.2f}")
    return _section("CUSTOMER SESSION", lines)


def render_orders(ctx: ActionContext) -> str:
    if not ctx.current_orders:
        return "CURRENT ORDERS: none"

    lines: List[str] = []
    for index, order in enumerate(ctx.current_orders, start=1):
        lines.append(
            f"{index}. Order #{order.short_id}: {order.status.value} - ${order.total:.2f} "
            f"({'CAN EDIT' if order.can_modify else 'LOCKED'})"
        )
        for item in order.items:
            lines.append(f"   - {item.quantity}x {item.name} (ItemID: {item.id}, MenuID: {item.menu_item_id})")
    return _section("CURRENT ORDERS", lines)


def render_preferences(ctx: ActionContext) -> str:
    prefs = ctx.preferences
    lines: List[str] = []
    if prefs.dietary_restrictions:
        lines.append(f"- Dietary: {', '.join(prefs.dietary_restrictions)}")
    if prefs.spice_tolerance:
        lines.append(f"- Spice: {prefs.spice_tolerance}")
    if prefs.price_range:
        lines.append(f"- Price range: {prefs.price_range}")
    return _section("CUSTOMER PREFERENCES", lines) if lines else ""


def build_system_prompt(ctx: ActionContext, now: Optional[datetime] = None) -> str:
    parts = [
        render_personality(ctx),
        render_gate(ctx),
        render_menu(ctx),
        render_session(ctx, now),
        render_orders(ctx),
        render_preferences(ctx),
        "Pick exactly one function for the customer's latest message. "
        "Include a confidence between 0 and 1 in the arguments.",
    ]
    return "\n\n".join(p for p in parts if p)


def build_messages(
    ctx: ActionContext, message: str, engine_settings: EngineSettings = settings
) -> List[Dict[str, str]]:
    window = engine_settings.PROMPT_HISTORY_WINDOW
    history = ctx.conversation_history[-window:] if window > 0 else []
    messages = [
        {"role": m.role, "content": m.content}
        for m in history
        if m.role in ("user", "assistant")
    ]
    messages.append({"role": "user", "content": message})
    return messages
