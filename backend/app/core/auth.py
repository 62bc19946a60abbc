"""
Authentication helpers for verifying Clerk session JWTs and resolving the current app User.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import MissingEmailError
from app.database import get_db
from app.models import User
from app.core.user_helpers import ensure_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as asserted by the session token."""
    external_id: str
    email: Optional[str] = None


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(request: Request) -> str:
    """
    Extract 'Bearer <token>' from Authorization header.
    """
    auth = request.headers.get("Authorization")
    if not auth:
        raise _unauthorized("Missing Authorization header")

    parts = auth.split()
    if len(parts) != 2:
        raise _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme. Expected 'Bearer'")

    if not token.strip():
        raise _unauthorized("Empty bearer token")

    return token


def _decode_clerk_jwt(token: str) -> Dict[str, Any]:
    """
    Decode and validate a Clerk session token.

    Verified locally against CLERK_JWT_KEY (RS256 PEM public key). The issuer is
    checked only when CLERK_JWT_ISSUER is configured; Clerk session tokens carry
    no audience claim.
    """
    try:
        key = settings.require_jwt_key()
    except RuntimeError as e:
        logger.error(f"Clerk configuration missing: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Clerk environment variables not configured. Authentication is not available.",
        )

    options = {"verify_aud": False, "leeway": settings.CLERK_JWT_LEEWAY_SECONDS}
    try:
        return jwt.decode(
            token,
            key,
            algorithms=[settings.CLERK_JWT_ALGORITHM],
            issuer=settings.CLERK_JWT_ISSUER or None,
            options=options,
        )
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise _unauthorized("Token validation failed")


def get_current_principal(request: Request) -> Principal:
    """
    FastAPI dependency: the verified identity behind the request.

    - Reads Authorization: Bearer <token>
    - Verifies JWT
    - Extracts sub (Clerk user id) and, when the session template adds it, email
    """
    token = _extract_bearer_token(request)
    payload = _decode_clerk_jwt(token)

    external_id = payload.get("sub")
    if not external_id:
        raise _unauthorized("Token missing subject (sub)")

    email = payload.get("email") or payload.get("primary_email_address") or None
    return Principal(external_id=str(external_id), email=str(email) if email else None)


def get_current_user(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency: returns the current local User (SQLAlchemy object).

    Falls back to lazy creation via ensure_user() when the user.created webhook
    has not been processed yet.
    """
    try:
        return ensure_user(db, principal.external_id, principal.email)
    except MissingEmailError:
        logger.error(
            f"[LAZY_USER] create blocked: endpoint={request.method} {request.url.path}, "
            f"external_id={principal.external_id}, reason=email_claim_missing"
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="email_claim_missing_cannot_create_user",
        )
