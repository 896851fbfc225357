# action_engine/llm_router.py
"""
AI Decision Client

Primary decision path. Renders the prompt, makes one language model call
offering the function catalogue, and turns the reply into an intermediate
decision:
- a function call -> the catalogue's candidate action, with the model's
  confidence or the function's default
- free text only  -> no action, the text becomes the reply

Every failure (network, timeout, unknown function, bad arguments) is turned
into a failed `AIOutcome` whose reason reads "AI call failed: <cause>". This
client never raises on the AI path, so the orchestrator can fall back.

We keep this layer separate so you can:
- Swap models (anything implementing LanguageModel)
- Change prompts
- Unit-test routing logic without a network
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import openai

from . import prompts
from .actions import BaseAction
from .config import EngineSettings, settings
from .errors import AIDecisionError
from .function_catalogue import parse_call, tool_definitions
from .language_model import LanguageModel
from .models import ActionContext

logger = logging.getLogger(__name__)

# Free text without a function call is the model choosing to just talk.
FREE_TEXT_CONFIDENCE = 0.9


@dataclass
class AIDecision:
    action: Optional[BaseAction]
    confidence: float
    function_name: Optional[str]
    content: Optional[str]
    reasoning: str


@dataclass
class AIOutcome:
    decision: Optional[AIDecision] = None
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.decision is not None


class AIDecisionClient:
    """
    One attempt per call, bounded by `LLM_TIMEOUT_SECONDS`.
    """

    def __init__(
        self,
        model: Optional[LanguageModel],
        engine_settings: EngineSettings = settings,
    ) -> None:
        self.model = model
        self.settings = engine_settings
        self.tools = tool_definitions()

    @property
    def configured(self) -> bool:
        return self.model is not None

    @property
    def model_name(self) -> Optional[str]:
        return getattr(self.model, "model_name", None) if self.model else None

    async def decide(self, message: str, ctx: ActionContext) -> AIOutcome:
        if self.model is None:
            return _failed("no language model configured")

        try:
            system_prompt = prompts.build_system_prompt(ctx)
            messages = prompts.build_messages(ctx, message, self.settings)
            reply = await asyncio.wait_for(
                self.model.complete(system_prompt, messages, self.tools),
                timeout=self.settings.LLM_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            return _failed(f"timed out after {self.settings.LLM_TIMEOUT_SECONDS:g}s")
        except openai.OpenAIError as exc:
            return _failed(f"{type(exc).__name__}: {exc}")
        except (ConnectionError, OSError) as exc:
            return _failed(f"service unreachable: {exc}")
        except Exception as exc:
            logger.exception("Unexpected error from language model")
            return _failed(f"{type(exc).__name__}: {exc}")

        if reply.function_call is None:
            if not (reply.content or "").strip():
                return _failed("empty reply")
            return AIOutcome(
                decision=AIDecision(
                    action=None,
                    confidence=FREE_TEXT_CONFIDENCE,
                    function_name=None,
                    content=reply.content,
                    reasoning="Model replied without calling a function",
                )
            )

        try:
            parsed = parse_call(reply.function_call.name, reply.function_call.arguments_json, ctx)
        except AIDecisionError as exc:
            return _failed(str(exc))
        except Exception as exc:
            logger.exception("Could not build action from %s", reply.function_call.name)
            return _failed(f"{type(exc).__name__}: {exc}")

        logger.debug(
            "Model chose %s (confidence %.2f)", parsed.function_name, parsed.confidence
        )
        return AIOutcome(
            decision=AIDecision(
                action=parsed.action,
                confidence=parsed.confidence,
                function_name=parsed.function_name,
                content=reply.content,
                reasoning=f"AI selected {parsed.function_name}",
            )
        )


def _failed(cause: str) -> AIOutcome:
    reason = f"AI call failed: {cause}"
    logger.warning(reason)
    return AIOutcome(failure=reason)
