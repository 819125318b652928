"""API Explorer - LLM-assisted ideas for combining public APIs."""

from .models import (  # noqa: F401 -- public re-exports
    CatalogueEntry,
    ChatMessage,
    ControllerState,
    Role,
    WorkspaceNode,
)
from .catalogue import Catalogue, load_catalogue
from .config import ExplorerConfig
from .controller import ConversationController, HttpTransport, InProcessTransport
from .llm import ProviderChain, build_provider_chain
from .workspace import Workspace

__version__ = "0.1.0"

__all__ = [
    "Catalogue",
    "ConversationController",
    "ExplorerConfig",
    "HttpTransport",
    "InProcessTransport",
    "ProviderChain",
    "Workspace",
    "build_provider_chain",
    "load_catalogue",
    "CatalogueEntry",
    "ChatMessage",
    "ControllerState",
    "Role",
    "WorkspaceNode",
]
