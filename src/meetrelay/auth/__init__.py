"""
Bearer-token authentication for socket connections.
"""

from .token_verifier import Identity, TokenVerificationError, TokenVerifier, extract_token

__all__ = [
    'Identity',
    'TokenVerificationError',
    'TokenVerifier',
    'extract_token',
]
