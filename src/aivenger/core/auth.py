"""Credential gate: resolve the caller's identity from a session token.

Sessions are issued elsewhere.  This module only verifies them: a session
token is an HS256-signed JWT whose ``sub`` claim is the user id (an optional
``email`` claim is carried through).  Expired, malformed, or wrongly signed
tokens resolve to no identity.
"""

import logging

from jose import JWTError, jwt

from aivenger.core.models import Identity

logger = logging.getLogger(__name__)


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_identity(token: str | None, secret: str, algorithm: str = "HS256") -> Identity | None:
    """Verify a session token and return the identity it carries.

    Args:
        token: Raw JWT, or None when the request carried no credentials
        secret: Signing secret
        algorithm: Accepted signing algorithm

    Returns:
        The identity, or None if the token is absent or invalid
    """
    if not token:
        return None

    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        logger.info(f"Rejected session token: {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        logger.info("Rejected session token without a subject")
        return None

    return Identity(user_id=str(user_id), email=payload.get("email"))
