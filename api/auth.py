"""
API Authentication for ClientDesk.

Two ways in:
1. Session cookie: POST /api/auth/login stores the user id in the signed
   Starlette session.
2. Shared token: if CLIENTDESK_API_TOKEN is set, a matching
   ``Authorization: Bearer <token>`` or ``X-API-Token`` header is accepted
   (for scripts and cron jobs).

Usage:
    from api.auth import require_auth

    @router.get("/protected")
    def protected_endpoint(user: User = Depends(require_auth)):
        ...
"""

import logging
import os
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from api.response_models import UserOut
from clientdesk import config, users
from clientdesk.observability import bind_user
from clientdesk.users import User

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)

SESSION_USER_KEY = "user_id"

TOKEN_USER = User(id=0, username="api-token", full_name="API token")


def _get_token_from_env() -> str | None:
    return os.environ.get(config.API_TOKEN_ENV)


def _get_token_from_request(request: Request) -> str | None:
    """
    Extract token from request.

    Checks in order:
    1. Authorization: Bearer <token> header
    2. X-API-Token header
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]

    x_token = request.headers.get("X-API-Token")
    if x_token:
        return x_token
    return None


def _unauthorized(detail: str = "Authentication required") -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_auth(
    request: Request, credentials: HTTPAuthorizationCredentials | None = Depends(security)
) -> User:
    """
    Dependency that requires a logged-in session or the shared API token.

    Returns the current user. Raises HTTPException 401 otherwise.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is not None:
        user = users.get_user(user_id)
        if user and user.is_active:
            bind_user(user.username)
            return user
        # Stale cookie for a removed or disabled user
        request.session.clear()

    expected_token = _get_token_from_env()
    provided_token = _get_token_from_request(request)
    if expected_token and provided_token:
        if secrets.compare_digest(provided_token, expected_token):
            logger.debug("Token auth succeeded for %s", request.url.path)
            bind_user(TOKEN_USER.username)
            return TOKEN_USER
        logger.warning("Auth failed: invalid token for %s", request.url.path)
        raise _unauthorized("Invalid authentication token")

    logger.info("Auth failed: no session for %s", request.url.path)
    raise _unauthorized()


# ==== Auth endpoints ====

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


@router.post("/login", response_model=UserOut)
def login(body: LoginRequest, request: Request):
    user = users.authenticate(body.username, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    return UserOut.model_validate(user)


@router.post("/logout", status_code=204)
def logout(request: Request):
    request.session.clear()
    return Response(status_code=204)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(require_auth)):
    return UserOut.model_validate(user)
