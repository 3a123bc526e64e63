from __future__ import annotations

import httpx
import pytest

from geoask.core.capabilities.base import CapabilityParam, FunctionCapability
from geoask.core.capabilities.builtin import register_builtin_capabilities
from geoask.core.capabilities.registry import CapabilityRegistry
from geoask.core.models.llm_provider import GeoAskLLM, LLMOutputError, LLMUnavailable, parse_json_object
from geoask.core.models.prompts import planner_system_prompt
from geoask.core.orchestration.errors import MalformedPlanError, PlannerUnavailable
from geoask.core.orchestration.planner import Planner
from geoask.core.sessions import ChatMessage


class StubLLM:
    def __init__(self, answer: str) -> None:
        self.answer = answer
        self.transcripts: list[list[dict[str, str]]] = []

    def complete(self, messages: list[dict[str, str]]) -> str:
        self.transcripts.append(messages)
        return self.answer


def test_plan_sends_prompt_history_and_records_exchange(registry, stores) -> None:
    registry.register(
        FunctionCapability(
            "geolocation.geocode",
            lambda args: None,
            description="Geocoder for addresses.",
            params=[CapabilityParam(name="q", description="address", required=True)],
        )
    )
    stores.chat_memory.append_message("s1", ChatMessage(role="user", content="earlier question"))
    answer = '{"requestId": "r7", "steps": [{"intent": "goto_address", "toolCalls": [{"capabilityId": "geolocation.geocode", "args": {"q": "Main 1"}}]}]}'
    llm = StubLLM(answer)

    plan = Planner(registry=registry, chat_memory=stores.chat_memory, llm=llm).plan("s1", "go to Main 1")

    assert plan.request_id == "r7"
    [step] = plan.steps
    assert step.tool_calls[0].capability_id == "geolocation.geocode"
    assert step.tool_calls[0].args == {"q": "Main 1"}
    assert step.result.status == "pending"

    [messages] = llm.transcripts
    assert [message["role"] for message in messages] == ["system", "user", "user"]
    assert '"geolocation.geocode": Geocoder for addresses.' in messages[0]["content"]
    assert "* q (required) - address" in messages[0]["content"]
    assert "goto_address" in messages[0]["content"]
    assert messages[-1]["content"] == "go to Main 1"

    history = stores.chat_memory.get_messages("s1")
    assert [(message.role, message.content) for message in history[1:]] == [("user", "go to Main 1"), ("assistant", answer)]


def test_plan_without_request_id_gets_one(registry, stores) -> None:
    llm = StubLLM('```json\n{"steps": []}\n```')

    plan = Planner(registry=registry, chat_memory=stores.chat_memory, llm=llm).plan("s1", "hi")

    assert plan.request_id
    assert plan.steps == []


@pytest.mark.parametrize("answer", ["no json here", '{"steps": "nope"}', "[1, 2]"])
def test_malformed_plan_raises(registry, stores, answer: str) -> None:
    planner = Planner(registry=registry, chat_memory=stores.chat_memory, llm=StubLLM(answer))

    with pytest.raises(MalformedPlanError):
        planner.plan("s1", "hi")


def test_provider_off_raises_planner_unavailable(registry, stores) -> None:
    planner = Planner(registry=registry, chat_memory=stores.chat_memory, llm=GeoAskLLM())

    with pytest.raises(PlannerUnavailable):
        planner.plan("s1", "hi")
    assert stores.chat_memory.get_messages("s1") == []


def test_llm_posts_openai_compatible_payload(monkeypatch) -> None:
    monkeypatch.setenv("GEOASK_LLM_PROVIDER", "http")
    monkeypatch.setenv("GEOASK_LLM_URL", "http://llm.local/v1/chat/completions")
    monkeypatch.setenv("GEOASK_LLM_MODEL", "planner-model")
    monkeypatch.setenv("GEOASK_LLM_API_KEY", "secret")
    captured: dict = {}

    def fake_request(method, url, *, json, headers, timeout_override):
        captured.update(method=method, url=url, json=json, headers=headers, timeout=timeout_override)
        request = httpx.Request("POST", url)
        return httpx.Response(200, request=request, json={"choices": [{"message": {"content": '{"steps": []}'}}]})

    monkeypatch.setattr("geoask.core.models.llm_openai_compat.request_with_retry", fake_request)

    output = GeoAskLLM().complete([{"role": "user", "content": "hi"}])

    assert output == '{"steps": []}'
    assert captured["method"] == "POST"
    assert captured["url"] == "http://llm.local/v1/chat/completions"
    assert captured["json"]["model"] == "planner-model"
    assert captured["json"]["messages"] == [{"role": "user", "content": "hi"}]
    assert captured["headers"] == {"Authorization": "Bearer secret"}
    assert captured["json"]["response_format"] == {"type": "json_object"}


def test_llm_http_failure_is_unavailable(monkeypatch) -> None:
    monkeypatch.setenv("GEOASK_LLM_PROVIDER", "http")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    monkeypatch.setattr("geoask.core.http.client.get_http_client", lambda: client)

    with pytest.raises(LLMUnavailable):
        GeoAskLLM().complete([{"role": "user", "content": "hi"}])


def test_parse_json_object_rejects_arrays() -> None:
    with pytest.raises(LLMOutputError):
        parse_json_object("[]")
    assert parse_json_object('noise {"a": 1} noise') == {"a": 1}


def test_planner_prompt_advertises_only_served_intents() -> None:
    registry = register_builtin_capabilities(CapabilityRegistry())

    prompt = planner_system_prompt(list(registry.list_capabilities().values()))

    assert '"geothermal_probe_assessment"' in prompt
    assert "processing.getGeothermalBoreInfoByXY" in prompt
    assert "featureSearch.getEgridByNumberAndMunicipality" in prompt
    assert "cadastral_plan" not in prompt
    assert "processing.getCadastralPlanByGeometry" not in prompt
