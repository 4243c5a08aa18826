from __future__ import annotations

import json

import httpx
import pytest

from sandbox_agent.client.api import OrchestratorClient
from sandbox_agent.client.conversation import Conversation
from sandbox_agent.errors import OrchestratorError
from sandbox_agent.models import ConfirmedMessage, ConversationState, PendingMessage


def _api(handler) -> OrchestratorClient:
    return OrchestratorClient("http://orchestrator.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_submit_adds_pending_then_adopts_conversation() -> None:
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"conversationId": "c42", "status": "running"})

    async with _api(handler) as api:
        conversation = Conversation(api)
        resets: list[bool] = []
        conversation.on_submit(lambda: resets.append(True))

        entry = await conversation.submit("Build me a site")

    assert requests == [{"content": "Build me a site"}]
    assert resets == [True]
    assert conversation.conversation_id == "c42"
    assert conversation.state.status == "running"
    assert conversation.pending == [entry]


@pytest.mark.asyncio
async def test_follow_up_sends_conversation_id() -> None:
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"conversationId": "c1", "status": "running"})

    async with _api(handler) as api:
        conversation = Conversation(api, "c1")
        await conversation.submit("and a blog")

    assert requests == [{"content": "and a blog", "conversationId": "c1"}]


@pytest.mark.asyncio
async def test_failed_submit_removes_its_pending_entry() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "Conversation is already running"})

    async with _api(handler) as api:
        conversation = Conversation(api, "c1")
        with pytest.raises(OrchestratorError, match="already running") as info:
            await conversation.submit("again")

    assert info.value.status_code == 409
    assert conversation.pending == []
    assert conversation.state.error_message == "Conversation is already running"


@pytest.mark.asyncio
async def test_blank_submit_is_rejected_locally() -> None:
    async with _api(lambda request: httpx.Response(500)) as api:
        with pytest.raises(ValueError):
            await Conversation(api).submit("   ")


@pytest.mark.asyncio
async def test_fetch_parses_conversation_state() -> None:
    payload = {
        "status": "completed",
        "errorMessage": None,
        "messages": [
            {"type": "user", "uuid": "u1", "parentUuid": None, "message": {"role": "user", "content": "hi"}},
            {
                "type": "assistant",
                "uuid": "a1",
                "parentUuid": "u1",
                "message": {"role": "assistant", "content": [{"type": "text", "text": "hello"}]},
            },
        ],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/conversations/c1"
        return httpx.Response(200, json=payload)

    async with _api(handler) as api:
        state = await Conversation(api, "c1").refresh()

    assert state.is_terminal
    assert [message.text for message in state.messages] == ["hi", "hello"]
    assert state.messages[1].parent_uuid == "u1"


@pytest.mark.asyncio
async def test_fetch_failure_is_orchestrator_error() -> None:
    async with _api(lambda request: httpx.Response(404, json={"error": "Conversation not found"})) as api:
        with pytest.raises(OrchestratorError, match="not found"):
            await api.fetch_conversation("missing")


def test_combined_view_appends_pending_after_confirmed() -> None:
    conversation = Conversation(api=None)  # type: ignore[arg-type]
    conversation.state = ConversationState(
        status="running",
        messages=[ConfirmedMessage.model_validate({"type": "user", "uuid": "u1", "message": {"content": "first"}})],
    )
    conversation.pending.append(PendingMessage("p1", "second"))

    messages = conversation.messages

    assert [message.uuid for message in messages] == ["u1", "p1"]
    assert messages[1].role == "user"
    assert messages[1].parent_uuid == "u1"
    assert messages[1].text == "second"


@pytest.mark.asyncio
async def test_malformed_send_answer_rolls_back_pending_entry() -> None:
    async with _api(lambda request: httpx.Response(200, json={"unexpected": True})) as api:
        conversation = Conversation(api, "c1")
        with pytest.raises(OrchestratorError, match="malformed send payload"):
            await conversation.submit("hello")

    assert conversation.pending == []
    assert conversation.conversation_id == "c1"


@pytest.mark.asyncio
async def test_non_json_send_answer_is_orchestrator_error() -> None:
    async with _api(lambda request: httpx.Response(200, text="<html>")) as api:
        with pytest.raises(OrchestratorError):
            await api.send_message("hello")
