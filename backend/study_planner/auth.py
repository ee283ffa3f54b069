"""Identity resolution for incoming requests.

This module decodes JWT tokens and provides the FastAPI dependency
`get_current_user_id`, which turns a request into the id of an existing
user. The token is read from an `Authorization: Bearer` header, falling
back to the session cookie. Any missing, malformed or expired credential
raises `Unauthorized`; there is no anonymous principal.
"""

import logging
from typing import Optional

import jwt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import repositories
from .config import settings
from .database import get_session
from .errors import Unauthorized

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("study_planner.auth")


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `Unauthorized`.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("invalid token")


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> int:
    """FastAPI dependency that returns the authenticated user's id.

    The user is looked up so tokens of deleted accounts stop working.
    """
    token = _token_from_request(request, credentials)
    if not token:
        raise Unauthorized("Authentication required")
    payload = decode_token(token)
    user_id = payload.get('user_id')
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise Unauthorized('invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        logger.info("token for unknown user %s rejected", user_id)
        raise Unauthorized('user not found')
    return user.id
