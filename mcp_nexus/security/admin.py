"""Admin API authentication.

Validates the Authorization bearer against ADMIN_API_TOKEN. The admin API
is disabled entirely while ADMIN_API_TOKEN is empty.
"""

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from mcp_nexus.config.settings import get_settings
from mcp_nexus.crypto.codec import constant_time_equal
from mcp_nexus.security.auth import parse_bearer
from mcp_nexus.errors import AuthError

admin_auth_header = APIKeyHeader(name="Authorization", auto_error=False)


async def verify_admin_token(authorization: str | None = Security(admin_auth_header)) -> None:
    """FastAPI dependency guarding /admin/api/*."""
    settings = get_settings()
    if not settings.admin_api_token:
        raise HTTPException(status_code=503, detail="Admin API disabled (ADMIN_API_TOKEN not set)")

    try:
        supplied = parse_bearer(authorization)
    except AuthError:
        raise HTTPException(status_code=401, detail="Missing admin token")

    if not constant_time_equal(supplied, settings.admin_api_token):
        raise HTTPException(status_code=403, detail="Invalid admin token")
