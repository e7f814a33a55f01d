"""AI provider registry."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..config import ProviderKeys
from ..constants import PROVIDER_PREFERENCE
from .agent import MODEL_FACTORIES, AgentProvider
from .base import (
    AIProvider,
    CompletionOptions,
    CompletionResult,
    ProviderError,
    QuotaExceededError,
    StructuredResult,
    is_quota_error,
)

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Explicit set of configured AI providers plus a default."""

    def __init__(self) -> None:
        self._providers: Dict[str, AIProvider] = {}
        self._default: Optional[str] = None

    def register(self, provider: AIProvider, set_default: bool = False) -> None:
        self._providers[provider.name] = provider
        if set_default or self._default is None:
            self._default = provider.name
        logger.debug(f"Registered AI provider: {provider.name}")

    @property
    def default_name(self) -> Optional[str]:
        return self._default

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    def get(self, name: Optional[str] = None) -> AIProvider:
        """Return the named provider, or the default one."""
        provider_name = name or self._default
        if provider_name is None:
            raise ProviderError("No AI providers configured")
        provider = self._providers.get(provider_name)
        if provider is None:
            raise ProviderError(f"AI provider '{provider_name}' not configured")
        return provider


def build_registry(keys: ProviderKeys) -> ProviderRegistry:
    """Register a provider for every API key, in order of preference."""
    registry = ProviderRegistry()
    for name in PROVIDER_PREFERENCE:
        api_key = getattr(keys, name)
        if api_key:
            registry.register(AgentProvider(name, MODEL_FACTORIES[name](api_key)))

    if registry.default_name is None:
        logger.warning("No AI providers configured")
    else:
        logger.info(f"AI providers ready (default: {registry.default_name})")
    return registry


__all__ = [
    "AIProvider",
    "AgentProvider",
    "CompletionOptions",
    "CompletionResult",
    "ProviderError",
    "ProviderRegistry",
    "QuotaExceededError",
    "StructuredResult",
    "build_registry",
    "is_quota_error",
]
