"""Connection gateway: decides whether an inbound socket is accepted."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from socketio.exceptions import ConnectionRefusedError

from meetrelay.auth.token_verifier import (
    Identity,
    TokenVerificationError,
    TokenVerifier,
    extract_token,
)
from meetrelay.config.settings import Settings

logger = logging.getLogger(__name__)


class ConnectionGateway:
    """Authenticates connections before any event handler runs.

    With authentication disabled every connection is accepted and the client
    must name its user id when joining a room.
    """

    def __init__(self, auth_required: bool = True, verifier: Optional[TokenVerifier] = None) -> None:
        self.auth_required = auth_required
        self.verifier = verifier

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionGateway":
        verifier = None
        if settings.auth_required and settings.jwt_secret:
            verifier = TokenVerifier(settings.jwt_secret, settings.jwt_algorithm)
        return cls(auth_required=settings.auth_required, verifier=verifier)

    def authenticate(
        self,
        sid: str,
        environ: Optional[Dict[str, Any]],
        auth: Any = None,
    ) -> Optional[Identity]:
        """Return the verified identity, or None when auth is disabled.

        Raises:
            ConnectionRefusedError: missing or invalid token, or no secret configured
        """
        if not self.auth_required:
            return None

        logger.info("[SocketIO] Authenticating socket | sid=%s", sid)
        token = extract_token(environ, auth)
        if not token:
            logger.warning("[SocketIO] No token provided | sid=%s", sid)
            raise ConnectionRefusedError("Authentication token required")

        if self.verifier is None:
            logger.error("[SocketIO] JWT_SECRET not configured | sid=%s", sid)
            raise ConnectionRefusedError("Server configuration error")

        try:
            identity = self.verifier.verify(token)
        except TokenVerificationError as e:
            logger.warning("[SocketIO] Invalid token | sid=%s: %s", sid, e)
            raise ConnectionRefusedError("Invalid or expired token") from e

        logger.info("[SocketIO] Token valid | sid=%s user=%s", sid, identity.user_id)
        return identity
