"""Upstream chat-completion providers and the ordered fallback chain."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ExplorerConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ProviderError(RuntimeError):
    """A single upstream provider failed to produce a completion."""

    def __init__(self, message: str, *, provider: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status


class RateLimitError(ProviderError):
    """Upstream answered 429."""


class AllProvidersFailed(RuntimeError):
    """Every provider in the chain failed."""

    def __init__(self, errors: list[ProviderError]) -> None:
        self.errors = errors
        detail = "; ".join(f"{e.provider}: {e}" for e in errors) or "no providers configured"
        super().__init__(f"All providers failed ({detail})")


# ---------------------------------------------------------------------------
# Single provider
# ---------------------------------------------------------------------------


@dataclass
class Completion:
    content: str
    provider: str
    model: str


def _extract_content(data: object) -> str:
    """Pull ``choices[0].message.content`` out of an OpenAI-style body."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return ""
    return str(message.get("content") or "")


@dataclass
class ChatProvider:
    """OpenAI-compatible ``/chat/completions`` endpoint, stdlib HTTP only."""

    name: str
    api_key: str
    model: str
    base_url: str
    extra_headers: dict[str, str] = field(default_factory=dict)

    def _json_headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self.extra_headers)
        return headers

    def _complete_sync(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        """Blocking call. Meant to be run via asyncio.to_thread."""
        body = json.dumps({
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }).encode("utf-8")
        req = urllib.request.Request(
            f"{self.base_url.rstrip('/')}/chat/completions",
            data=body,
            headers=self._json_headers(),
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8", errors="replace")
            if exc.code == 429:
                raise RateLimitError(
                    f"{self.name} rate limited: {error_body}", provider=self.name, status=429
                ) from exc
            raise ProviderError(
                f"{self.name} API error ({exc.code}): {error_body}",
                provider=self.name,
                status=exc.code,
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            raise ProviderError(f"{self.name} transport error: {exc}", provider=self.name) from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderError(f"{self.name} returned malformed JSON", provider=self.name) from exc

        content = _extract_content(data)
        if not content.strip():
            raise ProviderError(f"{self.name} returned an empty completion", provider=self.name)
        return content

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout: float = 60.0,
    ) -> str:
        return await asyncio.to_thread(
            self._complete_sync,
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )


# ---------------------------------------------------------------------------
# Ordered fallback chain
# ---------------------------------------------------------------------------


@dataclass
class ProviderChain:
    """Try providers in order within one shared timeout budget.

    This is a one-shot failover: each provider gets at most one attempt.
    """

    providers: list[ChatProvider]
    timeout_budget: float = 60.0
    _stats_lock: asyncio.Lock = field(init=False, repr=False)
    _total_calls: int = field(default=0, init=False, repr=False)
    _fallbacks: int = field(default=0, init=False, repr=False)
    _failures: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._stats_lock = asyncio.Lock()

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> Completion:
        deadline = time.monotonic() + self.timeout_budget
        errors: list[ProviderError] = []

        for position, provider in enumerate(self.providers):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                errors.append(ProviderError("timeout budget exhausted", provider=provider.name))
                continue
            try:
                content = await asyncio.wait_for(
                    provider.complete(
                        messages,
                        temperature=temperature,
                        max_tokens=max_tokens,
                        timeout=remaining,
                    ),
                    timeout=remaining,
                )
            except asyncio.TimeoutError:
                err = ProviderError(f"timed out after {remaining:.1f}s", provider=provider.name)
            except ProviderError as exc:
                err = exc
            except Exception as exc:  # noqa: BLE001 -- any failure triggers failover
                err = ProviderError(str(exc) or type(exc).__name__, provider=provider.name)
            else:
                async with self._stats_lock:
                    self._total_calls += 1
                    if position > 0:
                        self._fallbacks += 1
                if position > 0:
                    logger.info("Served by fallback provider '%s'.", provider.name)
                return Completion(content=content, provider=provider.name, model=provider.model)

            logger.warning("Provider '%s' failed: %s", provider.name, err)
            errors.append(err)

        async with self._stats_lock:
            self._failures += 1
        failure = AllProvidersFailed(errors)
        logger.error("%s", failure)
        raise failure

    async def get_stats(self) -> dict[str, int]:
        async with self._stats_lock:
            return {
                "total_calls": self._total_calls,
                "fallbacks": self._fallbacks,
                "failures": self._failures,
            }


def build_provider_chain(config: ExplorerConfig) -> ProviderChain:
    """Primary (Groq) then fallback (OpenRouter), skipping unconfigured ones."""
    providers: list[ChatProvider] = []
    if config.primary_api_key:
        providers.append(ChatProvider(
            name="groq",
            api_key=config.primary_api_key,
            model=config.primary_model,
            base_url=config.primary_base_url,
        ))
    else:
        logger.warning("GROQ_API_KEY not set; primary provider disabled.")
    if config.fallback_api_key:
        providers.append(ChatProvider(
            name="openrouter",
            api_key=config.fallback_api_key,
            model=config.fallback_model,
            base_url=config.fallback_base_url,
            extra_headers={"HTTP-Referer": config.app_url, "X-Title": "API Explorer"},
        ))
    else:
        logger.warning("OPENROUTER_API_KEY not set; fallback provider disabled.")
    return ProviderChain(providers=providers, timeout_budget=config.timeout_budget)
