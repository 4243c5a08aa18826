"""sandbox-agent: session protocol for sandboxed agents and a reconciling poll client."""

from sandbox_agent.agent import CompletionNotifier, ProcessEngine, SessionRunner
from sandbox_agent.client import Conversation, OrchestratorClient, Poller, Reconciler
from sandbox_agent.protocol import ControlChannel

__version__ = "0.1.0"

__all__ = [
    "CompletionNotifier",
    "ControlChannel",
    "Conversation",
    "OrchestratorClient",
    "Poller",
    "ProcessEngine",
    "Reconciler",
    "SessionRunner",
]
