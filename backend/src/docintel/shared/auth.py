"""FastAPI dependency resolving the calling client's identity."""

import logging
import os

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

# Header set by the load balancer after OIDC authentication
IDENTITY_HEADER = "x-amzn-oidc-identity"


def authentication_enabled() -> bool:
    """Authentication defaults to on; ENABLE_AUTHENTICATION=false is for local development only."""
    return os.environ.get("ENABLE_AUTHENTICATION", "true").lower() == "true"


async def get_client_identity(request: Request) -> str:
    """
    Resolve the client identity used for rate limiting.

    Returns:
        Identity string ("anonymous" when authentication is disabled)

    Raises:
        HTTPException: 401 if authentication is enabled and no identity was forwarded
    """
    if not authentication_enabled():
        return "anonymous"

    identity = request.headers.get(IDENTITY_HEADER, "").strip()
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
        )
    return identity
