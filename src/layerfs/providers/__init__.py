"""Provider implementations and the registry that resolves them."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from layerfs.errors import UnsupportedSourceError
from layerfs.protocols import Provider

from .archive import ZipProvider
from .base import BaseProvider
from .folder import FolderProvider
from .gittree import GitTreeProvider
from .memory import MemoryProvider, MemoryStore

logger = logging.getLogger(__name__)

__all__ = [
    "BaseProvider",
    "FolderProvider",
    "GitTreeProvider",
    "MemoryProvider",
    "MemoryStore",
    "ProviderRegistry",
    "ZipProvider",
    "get_provider",
]


# Priority order used by the default registry. The folder provider claims
# any directory, so it stays last.
PROVIDERS: dict[str, type[Provider]] = {
    "zip": ZipProvider,
    "git": GitTreeProvider,
    "memory": MemoryProvider,
    "folder": FolderProvider,
}


def get_provider(name: str) -> Provider:
    """Create a provider instance by name.

    Args:
        name: Provider name (zip, git, memory, folder).

    Returns:
        Provider instance.

    Raises:
        ValueError: If the provider is not known.
    """
    if name not in PROVIDERS:
        raise ValueError(f"Unknown provider: {name}. Supported: {list(PROVIDERS.keys())}")
    return PROVIDERS[name]()


class ProviderRegistry:
    """Ordered collection of providers, searched in priority order."""

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: dict[str, Provider] = {}
        for provider in providers:
            self.register(provider)

    @classmethod
    def create_default(cls) -> ProviderRegistry:
        """Create a registry holding one instance of every built-in provider."""
        return cls(get_provider(name) for name in PROVIDERS)

    def register(self, provider: Provider, first: bool = False) -> Provider:
        """Add or replace a provider.

        Args:
            provider: Provider to add; replaces one with the same name.
            first: Give the provider the highest priority.

        Returns:
            The registered provider.
        """
        self._providers.pop(provider.name, None)
        if first:
            self._providers = {provider.name: provider, **self._providers}
        else:
            self._providers[provider.name] = provider
        return provider

    def get(self, name: str) -> Provider:
        """Look up a provider by name.

        Raises:
            UnsupportedSourceError: If no provider has that name.
        """
        try:
            return self._providers[name]
        except KeyError:
            raise UnsupportedSourceError(
                f"Provider '{name}' is not registered. Registered: {self.names}"
            ) from None

    def resolve(self, physical_path: str) -> Provider:
        """Return the first provider that claims a physical location.

        Raises:
            UnsupportedSourceError: If no provider can read the location.
        """
        for provider in self._providers.values():
            if provider.can_read(physical_path):
                logger.debug("Provider '%s' claims %s", provider.name, physical_path)
                return provider
        raise UnsupportedSourceError(f"No provider can read {physical_path}")

    @property
    def memory(self) -> MemoryProvider:
        """The registered memory provider.

        Raises:
            UnsupportedSourceError: If none is registered.
        """
        provider = self.get(MemoryProvider.name)
        if not isinstance(provider, MemoryProvider):
            raise UnsupportedSourceError("Registered 'memory' provider does not hold stores")
        return provider

    @property
    def names(self) -> list[str]:
        return list(self._providers)

    def __iter__(self) -> Iterator[Provider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers
