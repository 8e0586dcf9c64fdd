"""
Provider Registry

Architectural Intent:
- Explicit registry of provider profiles and credential schemas, built
  once in the composition root and passed to whoever needs it
- Replaces import-time self-registration: a provider is available only
  after something calls its ``register_*`` function on a registry
"""

from __future__ import annotations
import logging

from stackweaver.domain.entities.credential import CredentialValue
from stackweaver.domain.entities.provider_profile import ProviderProfile
from stackweaver.domain.errors import ResourceNotFoundError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    def __init__(self) -> None:
        self._profiles: dict[str, ProviderProfile] = {}
        self._credentials: dict[str, type[CredentialValue]] = {}

    def register(self, profile: ProviderProfile) -> None:
        if profile.name in self._profiles:
            raise ValueError(f"provider {profile.name!r} is already registered")
        self._profiles[profile.name] = profile
        self._credentials[profile.name] = profile.credential_cls
        logger.debug("Provider registered: %s", profile.name)

    def register_credential(self, provider: str, schema: type[CredentialValue]) -> None:
        """Register a credential schema that has no provider profile."""
        self._credentials[provider] = schema

    def get(self, name: str) -> ProviderProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise ResourceNotFoundError("provider", name) from None

    def credential_schema(self, provider: str) -> type[CredentialValue]:
        """Raises KeyError for providers with no registered schema."""
        return self._credentials[provider]

    def names(self) -> list[str]:
        return sorted(self._profiles)

    def __contains__(self, name: str) -> bool:
        return name in self._profiles
