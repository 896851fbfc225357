# action_engine/config.py
"""
Engine configuration.

All tunables live here and are read once from the environment (a project-root
.env is loaded first, if present). Modules consume the shared `settings`
object; tests build their own `EngineSettings(...)` and inject it.

Environment variables:
- OPENAI_API_KEY / OPENAI_MODEL      : language model credentials and model name
- LLM_TIMEOUT_SECONDS                : overall budget for one model call
- LLM_TEMPERATURE / LLM_MAX_TOKENS   : completion parameters
- TRUSTED_CONFIDENCE                 : at or above this the AI path is trusted
- FALLBACK_CONFIDENCE                : below this the fallback path is consulted
- HISTORY_WINDOW                     : conversation messages kept in the context
- PROMPT_HISTORY_WINDOW              : conversation messages sent to the model
- MAX_ITEM_QUANTITY                  : quantities are clamped to 1..this
- ORDER_LOOKBACK_HOURS               : table-scoped order window without a session
- RECENT_ORDER_LIMIT                 : max recent orders in the context
- PENDING_ACTION_TTL_MINUTES         : lifetime of actions awaiting confirmation
- USAGE_WEBHOOK_URL                  : optional usage-tracking webhook
- LOG_LEVEL                          : see logging_config
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid value for %s=%r, using default %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid value for %s=%r, using default %s", name, raw, default)
        return default


@dataclass(frozen=True)
class EngineSettings:
    """
    Immutable bag of engine settings.

    The confidence thresholds and the context heuristics are hand-tuned;
    they are kept configurable rather than baked into the decision code.
    """
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = 10.0
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 1000

    TRUSTED_CONFIDENCE: float = 0.8
    FALLBACK_CONFIDENCE: float = 0.5

    HISTORY_WINDOW: int = 10
    PROMPT_HISTORY_WINDOW: int = 5
    MAX_ITEM_QUANTITY: int = 20
    ORDER_LOOKBACK_HOURS: float = 4.0
    RECENT_ORDER_LIMIT: int = 10
    PENDING_ACTION_TTL_MINUTES: int = 15

    USAGE_WEBHOOK_URL: Optional[str] = None

    @property
    def ai_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    @property
    def fallback_confidence_cap(self) -> float:
        """Highest confidence a fallback-path result may report."""
        return round(self.TRUSTED_CONFIDENCE - 0.05, 2)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            OPENAI_API_KEY=os.getenv("OPENAI_API_KEY") or None,
            OPENAI_MODEL=os.getenv("OPENAI_MODEL", cls.OPENAI_MODEL),
            LLM_TIMEOUT_SECONDS=_env_float("LLM_TIMEOUT_SECONDS", cls.LLM_TIMEOUT_SECONDS),
            LLM_TEMPERATURE=_env_float("LLM_TEMPERATURE", cls.LLM_TEMPERATURE),
            LLM_MAX_TOKENS=_env_int("LLM_MAX_TOKENS", cls.LLM_MAX_TOKENS),
            TRUSTED_CONFIDENCE=_env_float("TRUSTED_CONFIDENCE", cls.TRUSTED_CONFIDENCE),
            FALLBACK_CONFIDENCE=_env_float("FALLBACK_CONFIDENCE", cls.FALLBACK_CONFIDENCE),
            HISTORY_WINDOW=_env_int("HISTORY_WINDOW", cls.HISTORY_WINDOW),
            PROMPT_HISTORY_WINDOW=_env_int("PROMPT_HISTORY_WINDOW", cls.PROMPT_HISTORY_WINDOW),
            MAX_ITEM_QUANTITY=_env_int("MAX_ITEM_QUANTITY", cls.MAX_ITEM_QUANTITY),
            ORDER_LOOKBACK_HOURS=_env_float("ORDER_LOOKBACK_HOURS", cls.ORDER_LOOKBACK_HOURS),
            RECENT_ORDER_LIMIT=_env_int("RECENT_ORDER_LIMIT", cls.RECENT_ORDER_LIMIT),
            PENDING_ACTION_TTL_MINUTES=_env_int(
                "PENDING_ACTION_TTL_MINUTES", cls.PENDING_ACTION_TTL_MINUTES
            ),
            USAGE_WEBHOOK_URL=os.getenv("USAGE_WEBHOOK_URL") or None,
        )


settings = EngineSettings.from_env()

logger.debug("OpenAI API key configured: %s", "Yes" if settings.ai_configured else "No")
logger.debug("Using model: %s", settings.OPENAI_MODEL)
