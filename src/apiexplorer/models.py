"""Pydantic models shared by the explorer library and its HTTP surface."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Catalogue / workspace
# ---------------------------------------------------------------------------

class CatalogueEntry(BaseModel):
    """One static API or AI-model listing.

    The bundled dataset uses capitalised keys (``Name``, ``Description``...),
    so the fields accept both spellings.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="Name")
    description: str = Field(default="", alias="Description")
    category: str = Field(default="", alias="Category")
    url: str = Field(default="", alias="URL")
    # AI-model listings only
    downloads: int | None = Field(default=None, alias="Downloads")
    likes: int | None = Field(default=None, alias="Likes")
    tags: tuple[str, ...] = Field(default=(), alias="Tags")

    def to_node(self) -> "WorkspaceNode":
        return WorkspaceNode(
            name=self.name,
            category=self.category,
            description=self.description,
            url=self.url,
        )


class WorkspaceNode(BaseModel):
    """A catalogue entry the user has added to the active selection."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: str = ""
    description: str = ""
    url: str = ""


class Bookmark(BaseModel):
    """A bookmarked catalogue entry, keyed by name."""

    name: str
    category: str = ""
    description: str = ""
    url: str = ""

    @classmethod
    def from_entry(cls, entry: CatalogueEntry) -> "Bookmark":
        return cls(
            name=entry.name,
            category=entry.category,
            description=entry.description,
            url=entry.url,
        )


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class Role(str, Enum):
    user = "user"
    assistant = "assistant"
    thinking = "thinking"


class ChatMessage(BaseModel):
    """One entry of the visible transcript."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_upstream(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ControllerState(str, Enum):
    idle = "idle"
    loading = "loading"
    error = "error"
    done = "done"


# ---------------------------------------------------------------------------
# HTTP request / response bodies
# ---------------------------------------------------------------------------

class UpstreamMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class GenerateRequest(BaseModel):
    messages: list[UpstreamMessage] = Field(min_length=1)
    systemPrompt: str | None = None
    isUserReply: bool = False


class GenerateResponse(BaseModel):
    response: str


class MockupApi(BaseModel):
    name: str
    description: str = ""
    url: str = ""


class MockupRequest(BaseModel):
    businessIdea: str = Field(min_length=1)
    activeApis: list[MockupApi] = Field(min_length=1)


class MockupResponse(BaseModel):
    mockupUrl: str
    mockupCode: str


class ProxyRequest(BaseModel):
    url: str = Field(min_length=1)
    method: str = "GET"
    data: object | None = None
    headers: dict[str, str] = Field(default_factory=dict)


class SuggestionRequest(BaseModel):
    text: str = ""
    activeNodes: list[WorkspaceNode] = Field(default_factory=list)
    limit: int = Field(default=5, ge=1, le=50)
