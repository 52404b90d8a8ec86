"""
Provider abstraction and registry.

A provider runs the listing agent end to end: images + seller notes in,
validated ListingAgentOutput out, progress events pushed to a sink along
the way. One provider is active per process; ProviderRegistry picks it
from config.AGENT_PROVIDER on first use and caches it until reset().
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

import config
from features.listings.models import ProgressEvent
from models.schemas import AgentImage, AgentProviderResult

log = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]


class AgentProvider(ABC):
    """Strategy for running the agent. Constructors must not do I/O."""

    name: str = ""

    @abstractmethod
    async def run(
        self,
        images: list[AgentImage],
        user_description: str | None,
        on_progress: ProgressSink,
    ) -> AgentProviderResult:
        ...


def _build_sandbox() -> AgentProvider:
    from agent.providers.sandbox import SandboxProvider
    return SandboxProvider()


def _build_anthropic_api() -> AgentProvider:
    from agent.providers.anthropic_api import AnthropicApiProvider
    return AnthropicApiProvider()


PROVIDER_FACTORIES: dict[str, Callable[[], AgentProvider]] = {
    "sandbox": _build_sandbox,
    "e2b": _build_sandbox,
    "anthropic-api": _build_anthropic_api,
}


class ProviderRegistry:
    """Selects and caches the active provider.

    Args:
        selector: provider name; defaults to config.AGENT_PROVIDER, read
            lazily on the first get().
        factories: name → zero-arg constructor. Tests pass their own.
    """

    def __init__(
        self,
        selector: str | None = None,
        factories: dict[str, Callable[[], AgentProvider]] | None = None,
    ):
        self._initial_selector = selector
        self._selector = selector
        self._factories = factories if factories is not None else PROVIDER_FACTORIES
        self._cached: AgentProvider | None = None

    def get(self) -> AgentProvider:
        if self._cached is None:
            self._cached = self._build()
        return self._cached

    def reset(self, selector: str | None = None) -> None:
        """Drop the cached provider so the next get() builds a fresh one.

        Without an argument the registry goes back to the selector it was
        constructed with, or config.AGENT_PROVIDER if it had none. config
        reads the environment once at import, so a changed AGENT_PROVIDER
        env var only takes effect after a restart.
        """
        self._cached = None
        self._selector = selector if selector is not None else self._initial_selector

    def _build(self) -> AgentProvider:
        name = (self._selector or config.AGENT_PROVIDER or "").strip().lower()
        factory = self._factories.get(name)
        if factory is None:
            log.warning(
                "Unknown agent provider %r, falling back to %r",
                name, config.DEFAULT_AGENT_PROVIDER,
            )
            factory = self._factories[config.DEFAULT_AGENT_PROVIDER]
        provider = factory()
        log.info("Using agent provider: %s", provider.name)
        return provider
