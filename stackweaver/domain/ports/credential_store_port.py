"""
Credential Store Port

Architectural Intent:
- Port interface for the host's secret store
- Holds per-user credential data and bootstrap outputs keyed by
  credential identifier
- Implemented by SQLiteRepository or a vault-backed adapter
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence
from stackweaver.domain.entities.credential import CredentialValue


class CredentialStorePort(ABC):
    """
    Port interface for reading and writing credential secret material.
    """

    @abstractmethod
    def fetch(self, username: str, identifiers: Sequence[str]) -> dict[str, dict[str, Any]]:
        """
        Returns raw credential data keyed by identifier.
        Identifiers with no stored data are absent from the result.
        """
        pass

    @abstractmethod
    def put(self, username: str, data: Mapping[str, CredentialValue]) -> None:
        """
        Stores credential values on behalf of the acting user.
        """
        pass
