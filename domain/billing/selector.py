"""
Provider selector - picks a gateway for (method, amount).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from domain.billing.providers import ProviderDescriptor, ProviderRegistry
from domain.common.exceptions import NoProviderAvailableError, UnsupportedMethodError


@dataclass(frozen=True)
class ProviderSelection:
    provider: ProviderDescriptor
    fallback: bool = False

    @property
    def key(self) -> str:
        return self.provider.key


class ProviderSelector:
    """
    Priority + bounds selection over an immutable registry.

    The default provider is checked at construction so a broken setup fails
    at boot instead of on the first request.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        priority: Mapping[str, Sequence[str]],
        default_provider: str,
    ) -> None:
        default = registry.find(default_provider)
        if default is None:
            raise NoProviderAvailableError(default_provider, "not registered")
        if not default.configured:
            raise NoProviderAvailableError(default_provider, "missing credentials")
        self.registry = registry
        self.priority = {method: tuple(keys) for method, keys in priority.items()}
        self.default = default

    def select(self, method: str, amount: int) -> ProviderSelection:
        candidates = self.priority.get(method)
        if candidates is None:
            raise UnsupportedMethodError(self.default.key, method)

        for key in candidates:
            provider: Optional[ProviderDescriptor] = self.registry.find(key)
            if provider is None or not provider.configured:
                continue
            if provider.accepts_amount(amount):
                return ProviderSelection(provider=provider)

        return ProviderSelection(provider=self.default, fallback=True)
