"""Authentication helpers and FastAPI security dependency.

This module provides utilities to decode JWT tokens and a FastAPI
dependency `get_current_user` that validates the bearer token and
returns the identity carried in its payload.

The guard is stateless: the token payload `{id, name, email}` is trusted
once the signature and expiry check out, and no database lookup is
made. Verification failures raise HTTPException(401) so the dependency
can be used directly on routers.
"""

from typing import Optional

import jwt
from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError

from .config import settings

bearer_scheme = HTTPBearer(auto_error=False)
_CHALLENGE = {'WWW-Authenticate': 'Bearer'}


class CurrentUser(BaseModel):
    """Identity decoded from a verified token."""
    id: int
    name: str
    email: str


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired', headers=_CHALLENGE)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token', headers=_CHALLENGE)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> CurrentUser:
    """FastAPI dependency that returns the authenticated user.

    The function extracts the bearer token from the request, decodes it
    and attaches the identity to `request.state.user`. A missing header,
    a malformed token or a payload without `{id, name, email}` all
    produce a 401.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail='access token required', headers=_CHALLENGE)
    payload = decode_token(credentials.credentials)
    try:
        user = CurrentUser(**payload)
    except (ValidationError, TypeError):
        raise HTTPException(status_code=401, detail='invalid token payload', headers=_CHALLENGE)
    request.state.user = user
    return user
