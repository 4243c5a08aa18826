"""Polling client for conversations hosted by the orchestrator."""

from sandbox_agent.client.api import OrchestratorClient, SendMessageResponse
from sandbox_agent.client.conversation import Conversation
from sandbox_agent.client.poller import Poller
from sandbox_agent.client.reconciler import PollSnapshot, Reconciler, ReconcileResult

__all__ = [
    "Conversation",
    "OrchestratorClient",
    "PollSnapshot",
    "Poller",
    "ReconcileResult",
    "Reconciler",
    "SendMessageResponse",
]
