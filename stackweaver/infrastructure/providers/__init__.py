"""
Providers Package

Architectural Intent:
- Provider plugins and the registry that makes them available to the host
"""

from stackweaver.infrastructure.providers.registry import ProviderRegistry
from stackweaver.infrastructure.providers.base import Provider, ProviderServices
from stackweaver.infrastructure.providers.example import (
    EXAMPLE_PROFILE,
    ExampleCredential,
    ExampleMeta,
    register_example,
)

__all__ = [
    "ProviderRegistry",
    "Provider",
    "ProviderServices",
    "EXAMPLE_PROFILE",
    "ExampleCredential",
    "ExampleMeta",
    "register_example",
]
