# action_engine/usage_tracker.py
"""
Usage tracking

Records one event per decision: restaurant, path taken, action type,
confidence, latency and any AI failure. This enables building dashboards
(AI vs fallback share, latency, failure causes) later.

Tracking is best-effort: a tracker must never break a decision.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class UsageEvent(BaseModel):
    restaurant_id: str
    table_number: Optional[int] = None
    path: str
    action_type: Optional[str] = None
    confidence: float
    used_fallback: bool
    latency_ms: float
    model: Optional[str] = None
    function_name: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class UsageTracker(Protocol):
    async def record(self, event: UsageEvent) -> None: ...


class NullUsageTracker:
    async def record(self, event: UsageEvent) -> None:
        return None


class InMemoryUsageTracker:
    """Keeps events in a list; handy for tests and local summaries."""

    def __init__(self) -> None:
        self.events: List[UsageEvent] = []

    async def record(self, event: UsageEvent) -> None:
        self.events.append(event)

    def summary(self) -> Dict[str, Any]:
        total = len(self.events)
        if not total:
            return {"total": 0, "fallback_rate": 0.0, "avg_latency_ms": 0.0, "failures": 0}
        fallback = sum(1 for e in self.events if e.used_fallback)
        return {
            "total": total,
            "fallback_rate": round(fallback / total, 3),
            "avg_latency_ms": round(sum(e.latency_ms for e in self.events) / total, 1),
            "failures": sum(1 for e in self.events if e.error),
        }


class WebhookUsageTracker:
    """
    Posts each event as JSON to a webhook. Failures are logged and dropped.
    """

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def record(self, event: UsageEvent) -> None:
        payload: Dict[str, Any] = {
            "timestamp": event.timestamp.isoformat(),
            "restaurant": {
                "id": event.restaurant_id,
                "table_number": event.table_number,
            },
            "decision": {
                "path": event.path,
                "action_type": event.action_type,
                "confidence": event.confidence,
                "used_fallback": event.used_fallback,
                "function_name": event.function_name,
            },
            "performance": {
                "latency_ms": event.latency_ms,
                "model": event.model,
                "error": event.error,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            # Never let tracking affect the customer
            logger.warning("Usage webhook %s failed: %s", self.url, exc)
