"""HS256 signed tokens embedded in digest emails (unsubscribe links)."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt

ALGORITHM = "HS256"

# Subjects with a lifetime in seconds; 0 means the token never expires.
EXPIRATIONS = {"auth": 0, "unsubscribe": 0, "subscribe": 30 * 60, "app": 0}


class TokenError(ValueError):
    """Token is malformed, has a bad signature, or is expired."""


def sign_token(uid: str, subject: str, secret: str, *, issued_at: Optional[int] = None) -> str:
    issued = int(time.time()) if issued_at is None else issued_at
    lifetime = EXPIRATIONS.get(subject, 0)
    claims: Dict[str, Any] = {
        "sub": subject,
        "uid": uid,
        "iat": issued,
        "exp": issued + lifetime if lifetime else 0,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_token(token: str, secret: str, *, subject: Optional[str] = None, now: Optional[int] = None) -> Dict[str, Any]:
    """Return the claims of a valid token or raise :class:`TokenError`.

    An ``exp`` of 0 never expires; otherwise expiry is checked against ``now``
    (defaults to the wall clock).
    """
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"verify_exp": False, "verify_iat": False},
        )
    except jwt.InvalidTokenError as exc:
        raise TokenError(str(exc)) from exc
    if subject is not None and claims.get("sub") != subject:
        raise TokenError("unexpected subject")
    expires = int(claims.get("exp") or 0)
    current = int(time.time()) if now is None else now
    if expires and current >= expires:
        raise TokenError("token expired")
    return claims
