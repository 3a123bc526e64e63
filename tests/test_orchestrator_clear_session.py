from __future__ import annotations

from geoask.core.orchestration.orchestrator import MESSAGE_NO_PENDING_CHOICE, Orchestrator
from geoask.core.orchestration.planner import Planner


class StubLLM:
    def __init__(self, answer: str) -> None:
        self.answer = answer
        self.transcripts: list[list[dict[str, str]]] = []

    def complete(self, messages: list[dict[str, str]]) -> str:
        self.transcripts.append(messages)
        return self.answer


PLAN_JSON = """{"requestId": "r1", "steps": [{"intent": "oereb_extract", "toolCalls": [
  {"capabilityId": "oereb.egridByXY", "args": {"x": 1, "y": 2}},
  {"capabilityId": "oereb.extractById", "args": {}}]}]}"""


def test_clear_session_forgets_history_pending_choice_and_selection(make_capability, registry, stores) -> None:
    make_capability("oereb.egridByXY", {"status": "ok", "items": [{"id": "a"}, {"id": "b"}]})
    make_capability("oereb.extractById", {"status": "ok", "items": []})
    llm = StubLLM(PLAN_JSON)
    planner = Planner(registry=registry, chat_memory=stores.chat_memory, llm=llm)
    orchestrator = Orchestrator(registry=registry, planner=planner, stores=stores)

    orchestrator.handle_prompt("s1", user_message="extract at 1, 2")
    stores.selections.save("s1", {"id": "a"})
    assert stores.chat_memory.get_messages("s1")
    assert stores.pending_choices.peek("s1") is not None

    orchestrator.clear_session("s1")

    assert stores.chat_memory.get_messages("s1") == []
    assert stores.pending_choices.peek("s1") is None
    assert stores.selections.get("s1") is None
    assert orchestrator.handle_prompt("s1", choice_id="a").steps[0].message == MESSAGE_NO_PENDING_CHOICE

    orchestrator.handle_prompt("s1", user_message="again")
    roles = [message["role"] for message in llm.transcripts[-1]]
    assert roles == ["system", "user"]
