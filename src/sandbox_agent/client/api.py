"""HTTP client for the orchestrator's conversation endpoints."""

from __future__ import annotations

from types import TracebackType

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sandbox_agent.config import Settings
from sandbox_agent.errors import OrchestratorError
from sandbox_agent.models import ConversationState, ConversationStatus


class SendMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    status: ConversationStatus = "running"


def _error_text(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return default


class OrchestratorClient:
    """Thin async wrapper over ``/api/conversations``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorClient:
        return cls(settings.api_base, timeout_seconds=settings.request_timeout_seconds)

    async def __aenter__(self) -> OrchestratorClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_conversation(self, conversation_id: str) -> ConversationState:
        """Fetch status, confirmed messages and error text for one conversation.

        Raises:
            OrchestratorError: On transport failure, a non-2xx answer or an
                unparseable body.
        """
        try:
            response = await self._client.get(f"/api/conversations/{conversation_id}")
        except httpx.HTTPError as exc:
            raise OrchestratorError(f"fetch failed: {exc!r}") from exc
        if not response.is_success:
            raise OrchestratorError(
                _error_text(response, f"fetch failed: HTTP {response.status_code}"),
                status_code=response.status_code,
            )
        try:
            return ConversationState.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise OrchestratorError(f"malformed conversation payload: {exc}") from exc

    async def send_message(self, content: str, conversation_id: str | None = None) -> SendMessageResponse:
        """Start a conversation, or continue ``conversation_id``, with ``content``."""
        payload: dict[str, str] = {"content": content}
        if conversation_id is not None:
            payload["conversationId"] = conversation_id
        try:
            response = await self._client.post("/api/conversations", json=payload)
        except httpx.HTTPError as exc:
            raise OrchestratorError(f"send failed: {exc!r}") from exc
        if not response.is_success:
            raise OrchestratorError(
                _error_text(response, "Failed to send message"),
                status_code=response.status_code,
            )
        try:
            result = SendMessageResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise OrchestratorError(f"malformed send payload: {exc}") from exc
        logger.info("client.send conversation_id={} status={}", result.conversation_id, result.status)
        return result
