"""
Identity provider boundary.

Token verification is done upstream (identity provider / auth gateway). The game service only receives the verified
principal and never keeps session state of its own.
"""

from typing import Protocol

from fastapi import Request

from connect4.core.exceptions import UnauthorizedError
from connect4.services.user_service import Principal


class IdentityProvider(Protocol):
    def verify(self, request: Request) -> Principal:
        """Return the verified principal of the request, or raise UnauthorizedError."""
        ...


class TrustedHeaderIdentityProvider:
    """Principal forwarded by an authenticating reverse proxy in `X-User-*` headers."""

    def verify(self, request: Request) -> Principal:
        uid = request.headers.get("X-User-Id", "").strip()
        if not uid:
            raise UnauthorizedError("Missing authenticated user.")
        return Principal(
            uid=uid,
            email=request.headers.get("X-User-Email") or None,
            is_guest=request.headers.get("X-User-Guest", "false").lower() in {"1", "true", "yes"},
            display_name=request.headers.get("X-User-Name") or None,
        )


def get_principal(request: Request) -> Principal:
    provider: IdentityProvider = request.app.state.identity_provider
    return provider.verify(request)
