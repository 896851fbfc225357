# action_engine/language_model.py
"""
Language model seam.

The AI client talks to a `LanguageModel`: one request with a system prompt,
chat messages and the function catalogue; one reply with an optional
function call and optional free text. Errors are raised, not returned.

`OpenAILanguageModel` implements it on the OpenAI chat-completions API with
tools. The SDK's own retries are disabled: the engine makes exactly one
attempt per turn and falls back on failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel

from .config import EngineSettings, settings

logger = logging.getLogger(__name__)


class FunctionCall(BaseModel):
    name: str
    arguments_json: str = "{}"


class ModelReply(BaseModel):
    function_call: Optional[FunctionCall] = None
    content: Optional[str] = None


class LanguageModel(Protocol):
    model_name: str

    async def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        functions: List[Dict[str, Any]],
    ) -> ModelReply: ...


class OpenAILanguageModel:
    """
    Chat completions with `tool_choice="auto"`. Only the first tool call of
    the first choice is used.
    """

    def __init__(
        self,
        engine_settings: EngineSettings = settings,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.settings = engine_settings
        self.model_name = engine_settings.OPENAI_MODEL
        self.client = client or AsyncOpenAI(
            api_key=engine_settings.OPENAI_API_KEY,
            timeout=engine_settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        functions: List[Dict[str, Any]],
    ) -> ModelReply:
        logger.debug("System prompt for %s:\n%s", self.model_name, system_prompt)

        resp = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            tools=functions,
            tool_choice="auto",
            temperature=self.settings.LLM_TEMPERATURE,
            max_tokens=self.settings.LLM_MAX_TOKENS,
        )

        if not resp.choices:
            return ModelReply()

        message = resp.choices[0].message
        call = None
        if message.tool_calls:
            fn = message.tool_calls[0].function
            call = FunctionCall(name=fn.name, arguments_json=fn.arguments or "{}")

        return ModelReply(function_call=call, content=message.content)
