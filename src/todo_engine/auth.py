from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import get_settings

_security = HTTPBasic(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


# PUBLIC_INTERFACE
def require_basic_auth(creds: Optional[HTTPBasicCredentials] = Depends(_security)) -> None:
    """
    Guard the local engine API with HTTP Basic Auth when ENABLE_BASIC_AUTH is on.

    Settings are read per request so toggling the environment takes effect without
    rebuilding the app. When auth is disabled (the default) this does nothing.

    Raises:
        HTTPException(401) if credentials are missing, wrong, or not configured.
    """
    settings = get_settings()
    if not settings.enable_basic_auth:
        return None

    if creds is None:
        raise _unauthorized("Not authenticated")

    expected_user = settings.basic_auth_username
    expected_pass = settings.basic_auth_password
    if expected_user is None or expected_pass is None:
        raise _unauthorized("Server authentication not configured")

    user_ok = secrets.compare_digest(creds.username.encode(), expected_user.encode())
    pass_ok = secrets.compare_digest(creds.password.encode(), expected_pass.encode())
    if not (user_ok and pass_ok):
        raise _unauthorized("Invalid authentication credentials")
    return None
