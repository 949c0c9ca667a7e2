"""
JWT verification for socket connections.

Tokens are HS256 (by default) JWTs signed with a shared secret by the
meetings backend. The user id is read from the ``userId`` claim, falling back
to ``sub``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Verified identity attached to a connection session."""

    user_id: str
    email: Optional[str]
    token: str


class TokenVerificationError(Exception):
    """Token could not be verified."""


class TokenVerifier:
    """Verifies bearer tokens against the configured secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("JWT secret is required")
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: str) -> Identity:
        """Decode and validate a token.

        Raises:
            TokenVerificationError: bad signature, expired, malformed or
                missing a user id
        """
        try:
            claims: Dict[str, Any] = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenVerificationError("Token has expired") from e
        except JWTError as e:
            raise TokenVerificationError(f"Invalid token: {e}") from e

        user_id = claims.get("userId") or claims.get("sub")
        if not user_id:
            raise TokenVerificationError("Token has no user id claim")

        email = claims.get("email")
        return Identity(user_id=str(user_id), email=str(email) if email else None, token=token)


def extract_token(environ: Optional[Dict[str, Any]], auth: Any = None) -> Optional[str]:
    """Extract the bearer token from a Socket.IO handshake.

    Checks (in order):
    1. ``auth.token`` sent by the client
    2. ``?token=`` query parameter
    3. ``Authorization: Bearer`` header
    """
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token.strip():
            return auth_token.strip()

    if not isinstance(environ, dict):
        return None

    query_string = environ.get("QUERY_STRING", "")
    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")
    query_token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(query_token, str) and query_token:
        return query_token

    auth_header = environ.get("HTTP_AUTHORIZATION")
    if isinstance(auth_header, str) and auth_header.lower().startswith("bearer "):
        header_token = auth_header.split(" ", 1)[1].strip()
        if header_token:
            return header_token

    return None
