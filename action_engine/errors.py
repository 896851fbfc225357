# action_engine/errors.py
"""
Exception types raised by the engine.

Only context errors ever leave the engine. AI-path errors are turned into a
failed outcome inside the AI client, and validation/policy problems are
downgraded to safe actions by the validator.
"""

from __future__ import annotations


class ActionEngineError(Exception):
    """Base class for engine errors."""


class ContextBuildError(ActionEngineError):
    """The decision context could not be assembled; no decision is possible."""


class RestaurantNotFoundError(ContextBuildError):
    def __init__(self, restaurant_id: str) -> None:
        super().__init__(f"Restaurant {restaurant_id!r} not found")
        self.restaurant_id = restaurant_id


class AIDecisionError(ActionEngineError):
    """The language model reply could not be turned into a catalogue decision."""
