"""
Karaoke Queue Service - Bearer Token Auth

Identity is owned by an external provider.  This module only verifies the
principal it hands us: a base64url JSON payload ``{sub, role, org, ts}``
signed with HMAC-SHA256 over SECRET_KEY, sent as
``Authorization: Bearer <payload>.<signature>``.

Usage:
    - Add ``Depends(get_principal)`` to any authenticated route.
    - Add ``Depends(require_admin)`` to admin-only routes.
    - Call ``create_access_token(principal)`` to mint a token (dev / tests).
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from karaoke.config import SECRET_KEY, TOKEN_MAX_AGE
from karaoke.errors import ForbiddenError, UnauthorizedError
from karaoke.models import Role


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    id: str
    role: Role = Role.SINGER
    org_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------


def _sign(payload: str) -> str:
    """Create an HMAC-SHA256 signature for a payload string."""
    return hmac.new(
        SECRET_KEY.encode("utf-8"),
        payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def _b64encode(data: str) -> str:
    return base64.urlsafe_b64encode(data.encode("utf-8")).decode("ascii").rstrip("=")


def _b64decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def create_access_token(principal: AuthenticatedPrincipal, issued_at: Optional[int] = None) -> str:
    """Create a signed bearer token for *principal*."""
    data = json.dumps(
        {
            "sub": principal.id,
            "role": principal.role.value,
            "org": principal.org_id,
            "ts": int(time.time()) if issued_at is None else issued_at,
        },
        separators=(",", ":"),
    )
    payload = _b64encode(data)
    return f"{payload}.{_sign(payload)}"


def parse_access_token(token: str) -> Optional[AuthenticatedPrincipal]:
    """Verify a token and return its principal, or None if invalid/expired."""
    if not token or "." not in token:
        return None

    try:
        payload, sig = token.rsplit(".", 1)
        if not hmac.compare_digest(sig, _sign(payload)):
            return None

        claims = json.loads(_b64decode(payload))

        created = claims.get("ts", 0)
        if time.time() - created > TOKEN_MAX_AGE:
            return None

        sub = claims.get("sub")
        if not sub or not isinstance(sub, str):
            return None
        return AuthenticatedPrincipal(
            id=sub,
            role=Role(claims.get("role", Role.SINGER.value)),
            org_id=claims.get("org") or None,
        )
    except (ValueError, TypeError, AttributeError, binascii.Error, UnicodeDecodeError):
        return None


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_principal(authorization: Optional[str] = Header(None)) -> AuthenticatedPrincipal:
    """Resolve the caller from the ``Authorization`` header (401 if absent/invalid)."""
    if not authorization:
        raise UnauthorizedError("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Invalid authorization header format")

    principal = parse_access_token(token.strip())
    if principal is None:
        raise UnauthorizedError("Invalid or expired token")
    return principal


def require_admin(
    principal: AuthenticatedPrincipal = Depends(get_principal),
) -> AuthenticatedPrincipal:
    """Allow only principals with the admin role (403 otherwise)."""
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
    return principal
