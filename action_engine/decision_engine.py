# action_engine/decision_engine.py
"""
DecisionEngine

This is the main "brain" of the action engine.

Responsibilities:
- Build the ActionContext for the turn (ContextBuilder), including any action
  still waiting for the customer's confirmation.
- Try the AI decision path once (AIDecisionClient).
- Fall back to the PatternMatcher when the AI path fails, is skipped, or is
  not confident enough and the matcher has something better.
- Run every candidate through the ActionValidator (hard order gate, menu
  resolution, pricing).
- Store actions that need a "yes" in the PendingActionStore.
- Record one usage event per decision.
- Return a DecisionResult with reply, action, confidence and a state trace.

States: BUILD_CONTEXT -> GATE_CHECK -> TRY_AI -> AI_OK | AI_FAILED ->
[TRY_FALLBACK] -> VALIDATE -> DONE. AI_SKIPPED replaces TRY_AI when no model
is configured or the menu is empty.

This module does NOT:
- Write orders (the caller commits confirmed actions).
- Deal with HTTP.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import List, Optional

from .action_store import PendingActionStore
from .action_validator import ActionValidator
from .actions import BaseAction
from .config import EngineSettings, settings
from .context_builder import ContextBuilder
from .language_model import LanguageModel, OpenAILanguageModel
from .llm_router import AIDecision, AIDecisionClient
from .models import ActionContext, DecisionMetadata, DecisionRequest, DecisionResult
from .pattern_matcher import PatternMatcher
from .store import DataStore
from .usage_tracker import NullUsageTracker, UsageEvent, UsageTracker, WebhookUsageTracker

logger = logging.getLogger(__name__)


class DecisionState(str, Enum):
    BUILD_CONTEXT = "BUILD_CONTEXT"
    GATE_CHECK = "GATE_CHECK"
    TRY_AI = "TRY_AI"
    AI_OK = "AI_OK"
    AI_FAILED = "AI_FAILED"
    AI_SKIPPED = "AI_SKIPPED"
    TRY_FALLBACK = "TRY_FALLBACK"
    VALIDATE = "VALIDATE"
    DONE = "DONE"


class DecisionEngine:
    """
    The core decision orchestrator.

    You typically create this once at startup and reuse it for all turns.
    """

    def __init__(
        self,
        context_builder: ContextBuilder,
        ai_client: AIDecisionClient,
        pattern_matcher: Optional[PatternMatcher] = None,
        validator: Optional[ActionValidator] = None,
        action_store: Optional[PendingActionStore] = None,
        usage_tracker: Optional[UsageTracker] = None,
        engine_settings: EngineSettings = settings,
    ) -> None:
        self.context_builder = context_builder
        self.ai_client = ai_client
        self.pattern_matcher = pattern_matcher or PatternMatcher(engine_settings)
        self.validator = validator or ActionValidator(engine_settings)
        self.action_store = action_store or PendingActionStore(engine_settings.PENDING_ACTION_TTL_MINUTES)
        self.usage_tracker = usage_tracker or NullUsageTracker()
        self.settings = engine_settings

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------
    async def process(self, req: DecisionRequest) -> DecisionResult:
        """
        Build the context for a request, then decide.

        Context errors (unknown restaurant, data store failures) are raised.
        """
        states = [DecisionState.BUILD_CONTEXT]
        pending = self.action_store.pending_for(req.restaurant_id, req.table_number)
        ctx = await self.context_builder.build(
            req.restaurant_id,
            req.table_number,
            req.conversation_history,
            pending_action=pending,
        )
        return await self._decide(req.message, ctx, states)

    async def decide(self, message: str, ctx: ActionContext) -> DecisionResult:
        """Decide against an already built context. Never raises."""
        return await self._decide(message, ctx, [])

    def confirm(self, action_id: str) -> Optional[BaseAction]:
        """Hand a pending action to the caller for execution."""
        return self.action_store.confirm(action_id)

    def discard(self, action_id: str) -> bool:
        return self.action_store.discard(action_id)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------
    async def _decide(self, message: str, ctx: ActionContext, states: List[DecisionState]) -> DecisionResult:
        started = time.perf_counter()

        states.append(DecisionState.GATE_CHECK)
        logger.debug("Gate for %s: can_modify=%s (%s)", ctx.restaurant.name, ctx.gate.can_modify, ctx.gate.reason)

        ai_failure: Optional[str] = None
        skip_reason = self._skip_reason(ctx)

        if skip_reason is not None:
            states.append(DecisionState.AI_SKIPPED)
            states.append(DecisionState.TRY_FALLBACK)
            result = self.pattern_matcher.match(message, ctx)
            result.reasoning = f"AI skipped ({skip_reason}); {result.reasoning}"
        else:
            states.append(DecisionState.TRY_AI)
            outcome = await self.ai_client.decide(message, ctx)

            if outcome.ok:
                states.append(DecisionState.AI_OK)
                result = self._from_ai(outcome.decision)

                if outcome.decision.confidence < self.settings.FALLBACK_CONFIDENCE:
                    states.append(DecisionState.TRY_FALLBACK)
                    fallback = self.pattern_matcher.match(message, ctx)
                    if fallback.action is not None:
                        fallback.reasoning = (
                            f"AI confidence {outcome.decision.confidence:.2f} too low; {fallback.reasoning}"
                        )
                        fallback.metadata = result.metadata.model_copy(update={"path": "ai+fallback"})
                        result = fallback
            else:
                states.append(DecisionState.AI_FAILED)
                states.append(DecisionState.TRY_FALLBACK)
                ai_failure = outcome.failure
                result = self.pattern_matcher.match(message, ctx)
                result.reasoning = f"{outcome.failure}; {result.reasoning}"

        states.append(DecisionState.VALIDATE)
        result = self._validate(result, ctx)
        self._track_pending(result, ctx)

        states.append(DecisionState.DONE)
        result.metadata.latency_ms = round((time.perf_counter() - started) * 1000, 1)
        result.metadata.states = [s.value for s in states]
        result.metadata.model = result.metadata.model or self.ai_client.model_name
        result.metadata.ai_failure = ai_failure

        logger.info(
            "Decision for %s table=%s: path=%s action=%s confidence=%.2f latency=%.0fms",
            ctx.restaurant.name,
            ctx.table_number,
            result.metadata.path,
            result.action_type.value if result.action_type else None,
            result.confidence,
            result.metadata.latency_ms,
        )
        await self._record_usage(result, ctx)
        return result

    def _skip_reason(self, ctx: ActionContext) -> Optional[str]:
        if not self.ai_client.configured:
            return "no language model configured"
        if not ctx.menu_items:
            return "menu is empty"
        return None

    def _from_ai(self, decision: AIDecision) -> DecisionResult:
        return DecisionResult(
            action=decision.action,
            confidence=decision.confidence,
            reasoning=decision.reasoning,
            used_fallback=False,
            reply=decision.content,
            intent=decision.function_name,
            metadata=DecisionMetadata(
                path="ai",
                model=self.ai_client.model_name,
                function_name=decision.function_name,
            ),
        )

    def _validate(self, result: DecisionResult, ctx: ActionContext) -> DecisionResult:
        before = result.action
        outcome = self.validator.validate(before, ctx)
        result.action = outcome.action

        if outcome.notes:
            result.reasoning = f"{result.reasoning} [{'; '.join(outcome.notes)}]"

        action = result.action
        if action is None:
            return result
        # Confirmable actions always show validated names and prices
        if (
            outcome.gate_blocked
            or outcome.downgraded
            or action.requires_confirmation
            or not result.reply
        ):
            result.reply = action.confirmation_message()
        return result

    def _track_pending(self, result: DecisionResult, ctx: ActionContext) -> None:
        intent = result.intent
        pending = ctx.pending_action

        if pending is not None and intent == "confirm_pending_action":
            # The gate may have closed since the action was proposed
            if result.action is not None and result.action.id == pending.id:
                self.action_store.confirm(pending.id)
                result.entities["confirmed"] = True
                result.reply = "Great, I'll take care of that."
            else:
                self.action_store.discard(pending.id)
            return
        if pending is not None and intent == "decline_pending_action":
            self.action_store.discard(pending.id)
            return

        action = result.action
        if action is not None and action.requires_confirmation:
            self.action_store.save(ctx.restaurant_id, ctx.table_number, action)

    async def _record_usage(self, result: DecisionResult, ctx: ActionContext) -> None:
        event = UsageEvent(
            restaurant_id=ctx.restaurant_id,
            table_number=ctx.table_number,
            path=result.metadata.path,
            action_type=result.action_type.value if result.action_type else None,
            confidence=result.confidence,
            used_fallback=result.used_fallback,
            latency_ms=result.metadata.latency_ms,
            model=result.metadata.model,
            function_name=result.metadata.function_name,
            error=result.metadata.ai_failure,
        )
        try:
            await self.usage_tracker.record(event)
        except Exception:
            # Tracking must never affect the customer
            logger.warning("Usage tracking failed", exc_info=True)


def build_engine(
    store: DataStore,
    engine_settings: EngineSettings = settings,
    model: Optional[LanguageModel] = None,
    usage_tracker: Optional[UsageTracker] = None,
) -> DecisionEngine:
    """
    Wire the default collaborators. Without an explicit model, the OpenAI one
    is used when an API key is configured; otherwise the engine runs on the
    pattern matcher alone.
    """
    if model is None and engine_settings.ai_configured:
        model = OpenAILanguageModel(engine_settings)
    if usage_tracker is None and engine_settings.USAGE_WEBHOOK_URL:
        usage_tracker = WebhookUsageTracker(engine_settings.USAGE_WEBHOOK_URL)

    return DecisionEngine(
        context_builder=ContextBuilder(store, engine_settings),
        ai_client=AIDecisionClient(model, engine_settings),
        pattern_matcher=PatternMatcher(engine_settings),
        validator=ActionValidator(engine_settings),
        action_store=PendingActionStore(engine_settings.PENDING_ACTION_TTL_MINUTES),
        usage_tracker=usage_tracker,
        engine_settings=engine_settings,
    )
