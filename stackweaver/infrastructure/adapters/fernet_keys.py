"""
Fernet Key Issuer

Architectural Intent:
- Infrastructure adapter implementing KeyIssuerPort
- Connection keys are Fernet tokens (cryptography) binding a username to
  an agent ID; the host verifies them when the agent dials back
- Tokens carry their issue time, so verify() enforces the TTL without
  any server-side state

Design Decisions:
- The Fernet key is derived from a configured secret with PBKDF2-SHA256;
  without a secret a random key is generated for the process lifetime
"""

from __future__ import annotations
import base64
import json
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from stackweaver.domain.errors import CredentialError
from stackweaver.domain.ports.userdata_port import KeyIssuerPort

logger = logging.getLogger(__name__)

KDF_ITERATIONS = 100_000
KEY_BYTES = 32
KDF_SALT = b"stackweaver-agent-keys"


def _derive_key(secret: str) -> bytes:
    """Derive a Fernet key from a secret using PBKDF2-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


class FernetKeyIssuer(KeyIssuerPort):
    def __init__(self, secret: str = "", ttl_seconds: int = 3600):
        if not secret:
            logger.warning("No key secret configured; issued keys die with the process")
        key = _derive_key(secret) if secret else Fernet.generate_key()
        self._fernet = Fernet(key)
        self._ttl = ttl_seconds

    def create(self, username: str, agent_id: str) -> str:
        payload = json.dumps({"username": username, "agentID": agent_id}, sort_keys=True)
        return self._fernet.encrypt(payload.encode("utf-8")).decode("ascii")

    def verify(self, token: str, ttl_seconds: Optional[int] = None) -> tuple[str, str]:
        """Return (username, agent_id) for a valid, unexpired key."""
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        try:
            raw = self._fernet.decrypt(token.encode("ascii"), ttl=ttl)
        except (InvalidToken, UnicodeEncodeError) as e:
            raise CredentialError("connection key is invalid or expired") from e
        data = json.loads(raw)
        return data["username"], data["agentID"]
