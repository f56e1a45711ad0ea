"""
Simulated ABHA identity.

Callers depend on the IdentityProvider protocol; the mock provider is one
implementation backed by a fixed user list. Tokens are HS256 JWTs signed
with a shared mock secret, so they are a convenience, not a security
boundary.
"""
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import jwt

from .config import ABHA_TOKEN_SECRET, ABHA_TOKEN_TTL_SECONDS

TOKEN_ALGORITHM = "HS256"
DEFAULT_SCOPE = "terminology.read terminology.write bundle.create bundle.read"


@dataclass
class Principal:
    id: str
    abha_id: str
    name: str
    roles: List[str] = field(default_factory=list)
    abha_address: Optional[str] = None
    hpr_id: Optional[str] = None
    facility_id: Optional[str] = None
    scopes: List[str] = field(default_factory=list)

    def public(self) -> dict:
        return {
            "id": self.id,
            "abha_id": self.abha_id,
            "abha_address": self.abha_address,
            "name": self.name,
            "roles": list(self.roles),
            "hpr_id": self.hpr_id,
            "facility_id": self.facility_id,
        }


class IdentityProvider(Protocol):
    def authenticate(self, credential: str) -> Optional[Principal]:
        ...


DEMO_USERS = [
    Principal(id="abha-001", abha_id="14-1234-5678-9012", abha_address="dr.admin@sbx",
              name="Dr. Administrative Officer", roles=["healthcare_provider", "ayush_practitioner", "admin"],
              hpr_id="HPR-12345", facility_id="FAC-67890"),
    Principal(id="abha-002", abha_id="14-2345-6789-0123", abha_address="dr.clinical@sbx",
              name="Dr. Clinical Practitioner", roles=["healthcare_provider", "ayush_practitioner"],
              hpr_id="HPR-23456", facility_id="FAC-78901"),
    Principal(id="abha-003", abha_id="14-3456-7890-1234", abha_address="viewer.user@sbx",
              name="Research Viewer", roles=["viewer", "researcher"],
              hpr_id="HPR-34567", facility_id="FAC-89012"),
]


class MockAbhaIdentityProvider:
    """Authenticates an ABHA id (XX-XXXX-XXXX-XXXX) against an injected user list."""

    def __init__(self, users=None):
        self._users = {u.abha_id: u for u in (DEMO_USERS if users is None else users)}

    def authenticate(self, credential: str) -> Optional[Principal]:
        if not credential:
            return None
        return self._users.get(credential.strip())


def issue_token(principal: Principal, ttl_seconds: int = ABHA_TOKEN_TTL_SECONDS, now: Optional[int] = None) -> dict:
    issued_at = int(now if now is not None else time.time())
    payload = {
        "sub": principal.id,
        "abha_id": principal.abha_id,
        "abha_address": principal.abha_address,
        "name": principal.name,
        "roles": list(principal.roles),
        "scope": DEFAULT_SCOPE,
        "hpr_id": principal.hpr_id,
        "facility_id": principal.facility_id,
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
    }
    token = jwt.encode(payload, ABHA_TOKEN_SECRET, algorithm=TOKEN_ALGORITHM)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": ttl_seconds,
        "expires_at": payload["exp"],
        "user": principal.public(),
    }


def decode_token(token: str) -> Principal:
    """Raises jwt.PyJWTError for malformed, tampered or expired tokens."""
    payload = jwt.decode(token, ABHA_TOKEN_SECRET, algorithms=[TOKEN_ALGORITHM])
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no sub claim")
    return Principal(
        id=payload["sub"],
        abha_id=payload.get("abha_id"),
        name=payload.get("name"),
        roles=payload.get("roles") or [],
        abha_address=payload.get("abha_address"),
        hpr_id=payload.get("hpr_id"),
        facility_id=payload.get("facility_id"),
        scopes=(payload.get("scope") or "").split(),
    )
