"""
Admin authorization.

Only the session-history feature is privileged; the room engine never
calls into this module. Identities are resolved per request from the
Authorization header and never cached.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable


@dataclass
class AdminIdentity:
    uid: str
    email: str | None = None
    is_admin: bool = True


TokenVerifier = Callable[[str], "AdminIdentity | None"]


def parse_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from 'Bearer <token>'."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


def parse_token_list(raw: str) -> dict[str, AdminIdentity]:
    """
    Parse 'token:uid[:email],...' into an allow-list.

    Malformed entries raise ValueError so a typo in configuration is
    noticed at startup.
    """
    tokens = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":", 2)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Malformed admin token entry: {entry!r}")
        email = parts[2] if len(parts) == 3 and parts[2] else None
        tokens[parts[0]] = AdminIdentity(uid=parts[1], email=email)
    return tokens


class AdminAuthorizer:
    """
    Resolves an Authorization header to an admin identity.

    The default verifier checks a static allow-list; any callable
    token -> AdminIdentity | None can be injected instead.
    """

    def __init__(self, verifier: TokenVerifier | None = None, tokens: dict[str, AdminIdentity] | None = None):
        allow_list = tokens or {}
        self.verifier = verifier or allow_list.get

    @classmethod
    def from_token_list(cls, raw: str) -> AdminAuthorizer:
        return cls(tokens=parse_token_list(raw))

    def verify(self, authorization: str | None) -> AdminIdentity | None:
        token = parse_bearer_token(authorization)
        if token is None:
            return None
        identity = self.verifier(token)
        if identity is None or not identity.is_admin:
            return None
        return identity
