"""
Tests for the AI decision client, prompts and function catalogue.
"""

import asyncio
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from action_engine import llm_router, prompts
from action_engine.actions import ActionType
from action_engine.errors import AIDecisionError
from action_engine.function_catalogue import CATALOGUE, parse_call, tool_definitions
from action_engine.language_model import ModelReply, OpenAILanguageModel
from action_engine.llm_router import FREE_TEXT_CONFIDENCE, AIDecisionClient
from action_engine.order_gate import OrderStatus

from fakes import FakeLanguageModel, function_reply


def _run(client, message, ctx):
    return asyncio.run(client.decide(message, ctx))


class TestCatalogue:
    def test_one_function_per_action_plus_no_action(self):
        names = {t["function"]["name"] for t in tool_definitions()}
        assert "no_action_needed" in names
        assert "explain_order_locked" in names
        assert len(names) == 13

    def test_schemas_are_objects(self):
        for tool in tool_definitions():
            assert tool["type"] == "function"
            assert tool["function"]["parameters"]["type"] == "object"

    def test_parse_uses_default_confidence(self, build_context):
        parsed = parse_call("check_order_status", "{}", build_context())
        assert parsed.action.type is ActionType.CHECK_ORDERS
        assert parsed.confidence == CATALOGUE["check_order_status"].default_confidence

    def test_parse_prefers_model_confidence(self, build_context):
        parsed = parse_call("cancel_order", json.dumps({"confidence": 0.42}), build_context())
        assert parsed.confidence == pytest.approx(0.42)

    @pytest.mark.parametrize(
        "name,arguments",
        [
            ("teleport_customer", "{}"),
            ("place_order", "{not json"),
            ("place_order", "[]"),
            ("place_order", json.dumps({"items": []})),
            ("change_item_quantity", json.dumps({"item_name": "Coke"})),
            ("request_recommendations", json.dumps({"preference_type": "astrology"})),
        ],
    )
    def test_parse_rejects_bad_calls(self, build_context, name, arguments):
        with pytest.raises(AIDecisionError):
            parse_call(name, arguments, build_context())


class TestPrompt:
    def test_prompt_embeds_gate_menu_and_orders(self, build_context, add_order):
        add_order(OrderStatus.PREPARING)
        ctx = build_context()
        text = prompts.build_system_prompt(ctx)

        assert "Marco" in text and "Trattoria Test" in text
        assert "CAN MODIFY: NO" in text
        assert "explain_order_locked" in text
        assert "[menu-item-1] Caesar Salad - $12.99" in text
        assert "Lobster Bisque - $9.00 [UNAVAILABLE]" in text
        assert "PREPARING" in text and "LOCKED" in text

    def test_history_is_trimmed_for_the_prompt(self, build_context, engine_settings):
        history = [{"role": "user", "content": f"m{i}"} for i in range(8)]
        messages = prompts.build_messages(build_context(history=history), "latest", engine_settings)

        assert len(messages) == engine_settings.PROMPT_HISTORY_WINDOW + 1
        assert messages[0]["content"] == "m3"
        assert messages[-1] == {"role": "user", "content": "latest"}


class TestDecide:
    """Success and every failure mode of the single model call."""

    def test_function_call_becomes_action(self, build_context, engine_settings):
        args = {
            "items": [{"menu_item_id": "menu-item-1", "name": "Caesar Salad", "quantity": 2, "price": 12.99}],
            "confidence": 0.93,
        }
        model = FakeLanguageModel(function_reply("add_to_existing_order", json.dumps(args)))
        outcome = _run(AIDecisionClient(model, engine_settings), "2 caesar salads", build_context())

        assert outcome.ok
        assert outcome.decision.function_name == "add_to_existing_order"
        assert outcome.decision.action.type is ActionType.ADD_ITEM
        assert outcome.decision.confidence == pytest.approx(0.93)
        assert len(model.calls) == 1
        assert len(model.calls[0]["functions"]) == len(CATALOGUE)

    def test_place_order_maps_to_confirm_order(self, build_context, engine_settings):
        args = {"items": [{"name": "Coke", "menu_item_id": "menu-item-6", "quantity": 1}]}
        model = FakeLanguageModel(function_reply("place_order", json.dumps(args)))
        outcome = _run(AIDecisionClient(model, engine_settings), "a coke", build_context())

        assert outcome.decision.action.type is ActionType.CONFIRM_ORDER
        assert outcome.decision.confidence == pytest.approx(0.8)

    def test_free_text_is_no_action(self, build_context, engine_settings):
        model = FakeLanguageModel(ModelReply(content="Welcome! Take your time."))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())

        assert outcome.ok
        assert outcome.decision.action is None
        assert outcome.decision.confidence == FREE_TEXT_CONFIDENCE
        assert outcome.decision.content == "Welcome! Take your time."

    def test_no_action_needed_function(self, build_context, engine_settings):
        model = FakeLanguageModel(
            function_reply("no_action_needed", json.dumps({"conversation_type": "thanks"}), content="Anytime!")
        )
        outcome = _run(AIDecisionClient(model, engine_settings), "thanks", build_context())

        assert outcome.decision.action is None
        assert outcome.decision.content == "Anytime!"

    def test_unknown_function_fails(self, build_context, engine_settings):
        model = FakeLanguageModel(function_reply("summon_chef", "{}"))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())

        assert not outcome.ok
        assert outcome.failure.startswith("AI call failed: ")
        assert "summon_chef" in outcome.failure

    def test_malformed_arguments_fail(self, build_context, engine_settings):
        model = FakeLanguageModel(function_reply("place_order", '{"items": [oops'))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())
        assert not outcome.ok

    def test_timeout_fails(self, build_context, engine_settings):
        model = FakeLanguageModel(ModelReply(content="too late"), delay=5)
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())

        assert not outcome.ok
        assert "timed out" in outcome.failure

    def test_api_error_fails(self, build_context, engine_settings):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        model = FakeLanguageModel(error=openai.APIConnectionError(request=request))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())

        assert not outcome.ok
        assert "APIConnectionError" in outcome.failure

    def test_unreachable_service_fails(self, build_context, engine_settings):
        model = FakeLanguageModel(error=ConnectionRefusedError("refused"))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())
        assert "unreachable" in outcome.failure

    @pytest.mark.parametrize(
        "error",
        [RuntimeError("boom"), httpx.ReadTimeout("slow"), ValueError("bad"), IndexError("no choices")],
    )
    def test_unexpected_errors_fail(self, build_context, engine_settings, error):
        model = FakeLanguageModel(error=error)
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())

        assert not outcome.ok
        assert type(error).__name__ in outcome.failure

    def test_action_builder_errors_fail(self, build_context, engine_settings, monkeypatch):
        def broken_parse(name, arguments_json, ctx):
            raise KeyError("menu_item_id")

        monkeypatch.setattr(llm_router, "parse_call", broken_parse)
        model = FakeLanguageModel(function_reply("place_order", "{}"))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())

        assert not outcome.ok
        assert "KeyError" in outcome.failure

    def test_empty_reply_fails(self, build_context, engine_settings):
        model = FakeLanguageModel(ModelReply(content="  "))
        outcome = _run(AIDecisionClient(model, engine_settings), "hi", build_context())
        assert not outcome.ok

    def test_no_model(self, build_context, engine_settings):
        client = AIDecisionClient(None, engine_settings)
        assert client.configured is False
        assert not _run(client, "hi", build_context()).ok


class TestOpenAILanguageModel:
    """The OpenAI adapter only reshapes the SDK response."""

    @staticmethod
    def _client(message):
        calls = []

        async def create(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        return client, calls

    def test_tool_call_is_extracted(self, engine_settings):
        message = SimpleNamespace(
            content=None,
            tool_calls=[SimpleNamespace(function=SimpleNamespace(name="check_order_status", arguments='{"order_id": "ABC123"}'))],
        )
        client, calls = self._client(message)
        model = OpenAILanguageModel(engine_settings, client=client)

        reply = asyncio.run(model.complete("system", [{"role": "user", "content": "status?"}], tool_definitions()))

        assert reply.function_call.name == "check_order_status"
        assert json.loads(reply.function_call.arguments_json) == {"order_id": "ABC123"}
        assert calls[0]["model"] == engine_settings.OPENAI_MODEL
        assert calls[0]["tool_choice"] == "auto"
        assert calls[0]["messages"][0] == {"role": "system", "content": "system"}

    def test_plain_text_reply(self, engine_settings):
        client, _ = self._client(SimpleNamespace(content="Hi there", tool_calls=None))
        reply = asyncio.run(OpenAILanguageModel(engine_settings, client=client).complete("s", [], []))

        assert reply.function_call is None
        assert reply.content == "Hi there"

    def test_no_choices_is_an_empty_reply(self, engine_settings):
        async def create(**kwargs):
            return SimpleNamespace(choices=[])

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        reply = asyncio.run(OpenAILanguageModel(engine_settings, client=client).complete("s", [], []))

        assert reply.function_call is None
        assert reply.content is None
