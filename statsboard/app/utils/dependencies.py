from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .error_handlers import UnauthorizedError, get_error_message
from .jwt import decode_access_token

_bearer = HTTPBearer(auto_error=False)


def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> dict:
    """
    Resolve the bearer token into its claims.

    `sub` carries the owner id: either our numeric users.id or the identity
    provider's subject id (matched against users.external_id).
    """
    if credentials is None or not (credentials.credentials or "").strip():
        raise UnauthorizedError(get_error_message("unauthorized"))

    claims = decode_access_token(credentials.credentials.strip())
    if not claims:
        raise UnauthorizedError(get_error_message("session_expired"))

    sub = str(claims.get("sub") or "").strip()
    if not sub:
        raise UnauthorizedError(get_error_message("unauthorized"))

    return {**claims, "sub": sub}
