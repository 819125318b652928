"""Conversation controller: turns workspace and chat events into generation requests.

The controller is a small state machine (idle -> loading -> done | error)
driving one recommendation request at a time.  Triggers that arrive while a
request is in flight are dropped, not queued.  Transport failures are retried
a fixed number of times with a fixed delay; rate limiting and rejected
requests are surfaced immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from .catalogue import Catalogue
from .models import (
    CatalogueEntry,
    ChatMessage,
    ControllerState,
    MockupApi,
    MockupResponse,
    Role,
    WorkspaceNode,
)
from .prompts import build_recommendation_prompt, workspace_change_message
from .ranking import find_relevant
from .references import ReferenceSegment, Segment, render_references
from .workspace import Workspace, fingerprint

if TYPE_CHECKING:
    from .llm import ProviderChain
    from .storage import TranscriptCache

logger = logging.getLogger(__name__)

THINKING_TEXT = "Thinking..."
MOCKUP_THINKING_TEXT = "Generating web application..."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment before trying again."
REJECTED_MESSAGE = "An error occurred while generating ideas. Please try again later."
EXHAUSTED_MESSAGE = "Failed to get response after multiple attempts. Please try again."
NO_FREE_API_MESSAGE = "Please use at least one free API to generate a code example."
MOCKUP_FAILED_MESSAGE = "Sorry, there was an error generating the application. Please try again."


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------


class TransportError(RuntimeError):
    """The recommendation endpoint could not be reached or answered badly."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitedError(TransportError):
    """HTTP 429. Not retried."""


class RequestRejectedError(TransportError):
    """HTTP 4xx validation failure. Not retried."""


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class RecommendationTransport(ABC):
    """Where the controller sends its requests."""

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        system_prompt: str | None,
        is_user_reply: bool,
    ) -> str:
        """Return the assistant reply text or raise ``TransportError``."""

    @abstractmethod
    async def create_mockup(self, idea: str, apis: list[MockupApi]) -> MockupResponse:
        """Return the generated mockup or raise ``TransportError``."""


class HttpTransport(RecommendationTransport):
    """Talks to a running proxy server over HTTP (stdlib only)."""

    def __init__(self, base_url: str, *, timeout: float = 120.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post_sync(self, path: str, payload: dict) -> dict:
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8", errors="replace")
            if exc.code == 429:
                raise RateLimitedError(error_body, status=429) from exc
            if 400 <= exc.code < 500:
                raise RequestRejectedError(error_body, status=exc.code) from exc
            raise TransportError(f"Server error ({exc.code}): {error_body}", status=exc.code) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise TransportError(f"Could not reach {self.base_url}: {exc}") from exc
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransportError("Malformed response body") from exc
        if not isinstance(data, dict):
            raise TransportError("Unexpected response body")
        return data

    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        system_prompt: str | None,
        is_user_reply: bool,
    ) -> str:
        payload: dict = {"messages": messages, "isUserReply": is_user_reply}
        if system_prompt is not None:
            payload["systemPrompt"] = system_prompt
        data = await asyncio.to_thread(self._post_sync, "/api/generate-response", payload)
        reply = data.get("response")
        if not isinstance(reply, str) or not reply.strip():
            raise TransportError("Empty response from recommendation endpoint")
        return reply

    async def create_mockup(self, idea: str, apis: list[MockupApi]) -> MockupResponse:
        payload = {"businessIdea": idea, "activeApis": [a.model_dump() for a in apis]}
        data = await asyncio.to_thread(self._post_sync, "/api/create-mockup", payload)
        try:
            return MockupResponse.model_validate(data)
        except ValueError as exc:
            raise TransportError("Malformed mockup response") from exc


class InProcessTransport(RecommendationTransport):
    """Calls the provider chain directly, for the CLI without a server."""

    def __init__(self, chain: ProviderChain, *, default_system_prompt: str, max_tokens: int = 1000) -> None:
        self._chain = chain
        self._default_system_prompt = default_system_prompt
        self._max_tokens = max_tokens

    async def generate(
        self,
        messages: list[dict[str, str]],
        *,
        system_prompt: str | None,
        is_user_reply: bool,
    ) -> str:
        from .llm import AllProvidersFailed, RateLimitError

        outgoing = [{"role": "system", "content": system_prompt or self._default_system_prompt}, *messages]
        try:
            completion = await self._chain.complete(
                outgoing,
                temperature=0.7 if is_user_reply else 0.9,
                max_tokens=self._max_tokens,
            )
        except AllProvidersFailed as exc:
            if exc.errors and all(isinstance(e, RateLimitError) for e in exc.errors):
                raise RateLimitedError(str(exc), status=429) from exc
            raise TransportError(str(exc)) from exc
        return completion.content

    async def create_mockup(self, idea: str, apis: list[MockupApi]) -> MockupResponse:
        raise TransportError("Mockup generation requires the proxy server.")


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class ConversationController:
    """Single-session chat state tied to a workspace."""

    def __init__(
        self,
        transport: RecommendationTransport,
        catalogue: Catalogue,
        workspace: Workspace | None = None,
        *,
        cache: TranscriptCache | None = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        suggestion_limit: int = 5,
        jitter: float = 0.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_change: Callable[["ConversationController"], None] | None = None,
    ) -> None:
        self._transport = transport
        self._catalogue = catalogue
        self.workspace = workspace if workspace is not None else Workspace()
        self._cache = cache
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.suggestion_limit = suggestion_limit
        self.jitter = jitter
        self._rng = rng
        self._sleep = sleep
        self._on_change = on_change

        self._messages: list[ChatMessage] = []
        self._state = ControllerState.idle
        self._error: str | None = None
        self._in_flight = False
        self._closed = False
        self._snapshot = fingerprint(self.workspace.nodes)

        if cache is not None:
            self._messages = cache.load(self._snapshot)

    # -- read-only state ------------------------------------------------------

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # -- helpers --------------------------------------------------------------

    def _notify(self) -> None:
        if self._on_change is not None and not self._closed:
            self._on_change(self)

    def _append(self, role: Role, content: str) -> None:
        self._messages.append(ChatMessage(role=role, content=content))
        self._notify()

    def _drop_placeholders(self) -> None:
        self._messages = [m for m in self._messages if m.role is not Role.thinking]

    def _history(self) -> list[ChatMessage]:
        return [m for m in self._messages if m.role is not Role.thinking]

    def _persist(self) -> None:
        if self._cache is not None:
            self._cache.save(self._snapshot, self._messages)

    def _fail(self, message: str) -> None:
        self._drop_placeholders()
        self._error = message
        self._state = ControllerState.error
        self._persist()
        self._notify()

    def suggestions(self, text: str) -> list[CatalogueEntry]:
        return find_relevant(
            text,
            self._catalogue,
            self.workspace.nodes,
            limit=self.suggestion_limit,
            jitter=self.jitter,
            rng=self._rng,
        )

    def system_prompt(self, last_user_text: str) -> str:
        nodes = self.workspace.nodes
        return build_recommendation_prompt(nodes, self.suggestions(last_user_text))

    # -- request path ---------------------------------------------------------

    async def _run(self, outgoing: list[ChatMessage], *, is_user_reply: bool) -> bool:
        self._in_flight = True
        self._state = ControllerState.loading
        self._error = None
        self._append(Role.thinking, THINKING_TEXT)
        try:
            last_user = next((m.content for m in reversed(outgoing) if m.role is Role.user), "")
            system_prompt = self.system_prompt(last_user)
            payload = [m.to_upstream() for m in outgoing]

            reply: str | None = None
            for attempt in range(1, self.max_attempts + 1):
                try:
                    reply = await self._transport.generate(
                        payload, system_prompt=system_prompt, is_user_reply=is_user_reply
                    )
                    break
                except RateLimitedError:
                    if not self._closed:
                        self._fail(RATE_LIMIT_MESSAGE)
                    return False
                except RequestRejectedError as exc:
                    logger.warning("Recommendation request rejected: %s", exc)
                    if not self._closed:
                        self._fail(REJECTED_MESSAGE)
                    return False
                except Exception as exc:  # noqa: BLE001 -- counts as a failed attempt
                    logger.warning("Attempt %d/%d failed: %s", attempt, self.max_attempts, exc)
                    if attempt < self.max_attempts:
                        await self._sleep(self.retry_delay)

            if self._closed:
                logger.debug("Controller closed; discarding late response.")
                return False
            if reply is None:
                self._fail(EXHAUSTED_MESSAGE)
                return False

            self._drop_placeholders()
            self._messages.append(ChatMessage(role=Role.assistant, content=reply))
            self._state = ControllerState.done
            self._persist()
            self._notify()
            return True
        finally:
            self._in_flight = False

    async def submit_user_message(self, text: str) -> bool:
        """Send a free-text message. No-op for blank text or while in flight."""
        if not text or not text.strip() or self._in_flight or self._closed:
            return False
        history = self._history()
        message = ChatMessage(role=Role.user, content=text)
        self._append(message.role, message.content)
        return await self._run([*history, message], is_user_reply=True)

    async def on_workspace_changed(self, nodes: Sequence[WorkspaceNode] | None = None) -> bool:
        """Start a new topic when the node set differs from the last snapshot.

        Returns True only when a request was issued and answered.
        """
        if self._in_flight or self._closed:
            return False
        current = tuple(nodes) if nodes is not None else self.workspace.nodes
        snapshot = fingerprint(current)
        if snapshot == self._snapshot:
            return False

        if nodes is not None and current != self.workspace.nodes:
            self.workspace = Workspace(current)
        self._snapshot = snapshot
        self._messages = []
        self._error = None
        if not current:
            self._state = ControllerState.idle
            self._persist()
            self._notify()
            return False

        message = ChatMessage(role=Role.user, content=workspace_change_message(current))
        self._append(message.role, message.content)
        return await self._run([message], is_user_reply=False)

    # -- workspace operations ---------------------------------------------------

    async def add_node(self, item: WorkspaceNode | CatalogueEntry) -> bool:
        if not self.workspace.add(item):
            return False
        await self.on_workspace_changed()
        return True

    async def remove_node(self, name: str) -> bool:
        if not self.workspace.remove(name):
            return False
        await self.on_workspace_changed()
        return True

    async def clear_workspace(self) -> None:
        self.workspace.clear()
        await self.on_workspace_changed()

    def render(self, message: ChatMessage) -> list[Segment]:
        """Reference-annotated segments for an assistant message."""
        return render_references(message.content, self._catalogue, self.workspace)

    async def activate_reference(self, segment: ReferenceSegment) -> bool:
        """Click on a rendered reference: adds the entry unless inert."""
        if not segment.clickable or segment.entry is None:
            return False
        return await self.add_node(segment.entry)

    # -- mockups --------------------------------------------------------------

    async def generate_mockup(self, idea: str, free_api_names: Iterable[str]) -> MockupResponse | None:
        if self._in_flight or self._closed:
            return None
        free = set(free_api_names)
        apis = [
            MockupApi(name=n.name, description=n.description, url=n.url)
            for n in self.workspace.nodes
            if n.name in free
        ]
        if not apis:
            self._append(Role.assistant, NO_FREE_API_MESSAGE)
            self._persist()
            return None

        self._in_flight = True
        self._state = ControllerState.loading
        self._error = None
        self._append(Role.thinking, MOCKUP_THINKING_TEXT)
        try:
            result = await self._transport.create_mockup(idea, apis)
        except Exception as exc:  # noqa: BLE001 -- reported inline
            logger.warning("Mockup generation failed: %s", exc)
            if not self._closed:
                self._drop_placeholders()
                self._messages.append(ChatMessage(role=Role.assistant, content=MOCKUP_FAILED_MESSAGE))
                self._fail(MOCKUP_FAILED_MESSAGE)
            return None
        finally:
            self._in_flight = False

        if self._closed:
            return result
        self._drop_placeholders()
        self._messages.append(ChatMessage(role=Role.assistant, content=format_mockup_message(result)))
        self._state = ControllerState.done
        self._persist()
        self._notify()
        return result

    def close(self) -> None:
        """Detach from the UI; responses that arrive later are discarded."""
        self._closed = True


def format_mockup_message(result: MockupResponse) -> str:
    return (
        "### Generated Web Application\n\n"
        "The application has been generated and is ready to view. You can:\n"
        f"1. View the live application: [Open Application]({result.mockupUrl})\n"
        "2. Review the source code below\n\n"
        "### Source Code\n"
        f"```html\n{result.mockupCode}\n```\n"
    )
