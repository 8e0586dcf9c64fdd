"""
Credential Resolver

Architectural Intent:
- Turns credential identifiers into validated, typed CredentialRecords
- Combines three sources: database metadata (provider, access),
  secret data from the credential store, and the provider's credential
  variant registered as a factory
- Read-only: resolving never writes the store or the database
"""

from __future__ import annotations
import logging
from typing import Any, Collection, Mapping, Optional, Protocol, Sequence

from stackweaver.domain.entities.credential import (
    CredentialInfo,
    CredentialRecord,
    CredentialValue,
)
from stackweaver.domain.errors import InvalidCredentialError, MissingCredentialError
from stackweaver.domain.ports.credential_store_port import CredentialStorePort
from stackweaver.domain.ports.stack_repository_port import StackRepositoryPort

logger = logging.getLogger(__name__)


class CredentialSchemas(Protocol):
    def credential_schema(self, provider: str) -> type[CredentialValue]: ...


class CredentialResolver:
    def __init__(
        self,
        repository: StackRepositoryPort,
        store: CredentialStorePort,
        schemas: CredentialSchemas,
    ):
        self._repository = repository
        self._store = store
        self._schemas = schemas

    def _info(self, identifier: str, username: str, group_name: str) -> CredentialInfo:
        info = self._repository.get_credential_info(identifier)
        if info is None or not info.accessible_by(username, group_name):
            raise MissingCredentialError(f"credential {identifier!r} not found")
        return info

    def _build(
        self,
        info: CredentialInfo,
        data: Mapping[str, Any] | None,
    ) -> CredentialRecord:
        identifier = info.identifier
        if data is None:
            raise MissingCredentialError(f"no data stored for credential {identifier!r}")

        try:
            schema = self._schemas.credential_schema(info.provider)
        except KeyError:
            raise InvalidCredentialError(
                f"credential {identifier!r} uses unknown provider {info.provider!r}"
            ) from None

        try:
            value = schema.from_dict(data)
        except TypeError as e:
            raise InvalidCredentialError(
                f"credential {identifier!r} has malformed data: {e}"
            ) from e
        value.validate()

        return CredentialRecord(
            identifier=identifier,
            provider=info.provider,
            value=value,
            title=info.title,
        )

    def resolve_one(self, username: str, group_name: str, identifier: str) -> CredentialRecord:
        info = self._info(identifier, username, group_name)
        data = self._store.fetch(username, [identifier]).get(identifier)
        return self._build(info, data)

    def resolve(
        self,
        username: str,
        group_name: str,
        identifiers: Sequence[str],
        providers: Optional[Collection[str]] = None,
    ) -> list[CredentialRecord]:
        """
        Resolve identifiers in order; the first failure aborts the call.

        With ``providers`` set, credentials of any other provider are
        skipped before their data is fetched or decoded.
        """
        if not identifiers:
            return []
        infos = [self._info(ident, username, group_name) for ident in identifiers]
        if providers is not None:
            skipped = [i.identifier for i in infos if i.provider not in providers]
            if skipped:
                logger.debug("Skipping credential(s) of other providers: %s", ", ".join(skipped))
            infos = [i for i in infos if i.provider in providers]
        if not infos:
            return []

        stored = self._store.fetch(username, [i.identifier for i in infos])
        records = [self._build(info, stored.get(info.identifier)) for info in infos]
        logger.debug(
            "Resolved %d credential(s) for %s: %s",
            len(records),
            username,
            ", ".join(f"{r.identifier}={r.provider}" for r in records),
        )
        return records
