"""Admin API key authentication and operator context."""

import hashlib
import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from tacs.config import settings
from tacs.storage.audit import AdminContext


API_KEY_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Hash API key with salt for storage/lookup."""
    return hashlib.sha256(
        f"{settings.api_key_hash_salt}:{api_key}".encode()
    ).hexdigest()


async def get_admin_context(
    request: Request,
    auth_header: str | None = Depends(API_KEY_HEADER),
    x_actor: Annotated[str | None, Header()] = None,
    user_agent: Annotated[str | None, Header()] = None,
) -> AdminContext:
    """Authenticate an operator from the Bearer key and build their context."""
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
        )
    api_key = auth_header[7:].strip()
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )
    expected = settings.admin_api_key_hash
    if not expected or not hmac.compare_digest(hash_api_key(api_key), expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
    client_host = request.client.host if request.client else None
    return AdminContext(
        actor=x_actor or "api",
        session_user=x_actor,
        host=request.headers.get("host"),
        ip_address=client_host,
        module=user_agent,
    )


# Type alias for dependency injection
AdminDep = Annotated[AdminContext, Depends(get_admin_context)]
