"""Dependencies for API endpoints."""

import hmac
import logging
import uuid
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import PyJWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from knowdesk.config.db import get_db_session, set_tenant_context
from knowdesk.models.user import User
from knowdesk.services.container import get_usage_ledger
from knowdesk.services.pricing import estimate_units_per_message
from knowdesk.settings import settings
from knowdesk.utils.jwt_manager import CHAT_ROLE

reusable_oauth2 = HTTPBearer(scheme_name="Bearer")


async def get_current_user(
    request: Request,
    token: HTTPAuthorizationCredentials = Depends(reusable_oauth2),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Dependency to get the current user from the JWT token, attach the RLS-scoped
    session to the request state, and return the user.
    """
    try:
        payload = jwt.decode(
            token.credentials,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience="authenticated",
        )
        user_id = payload.get("sub")
        if user_id is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: Subject not found.",
            )

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has expired."
        ) from None
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}"
        ) from e
    try:
        _user_uuid = uuid.UUID(user_id)
    except ValueError as e:
        logging.warning(f"Malformed user ID in token: {user_id}. Error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        ) from e

    user = await db.scalar(
        select(User).options(joinedload(User.tenant)).where(User.id == _user_uuid)
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found."
        )
    if not user.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "User is deactivated")
    await set_tenant_context(db, str(user.tenant_id))
    request.state.db = db
    db.expunge(user)
    return user


async def get_rls_session(request: Request) -> AsyncSession:
    """
    Dependency that retrieves the RLS-scoped session from the request state.
    """
    db = getattr(request.state, "db", None)
    if db is None:
        raise HTTPException(
            status_code=500, detail="Database session not found in request state."
        )
    return db


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin role required")
    return current_user


async def get_chat_session(
    token: HTTPAuthorizationCredentials = Depends(reusable_oauth2),
) -> tuple[uuid.UUID, uuid.UUID, uuid.UUID]:
    """
    Dependency to decode the anonymous customer JWT.

    Returns the tenant_id, agent_id and conversation_id claims.
    """
    try:
        payload = jwt.decode(
            token.credentials, settings.SUPABASE_JWT_SECRET, algorithms=["HS256"]
        )
        if payload.get("role") != CHAT_ROLE:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Invalid role for chat")

        claims = [payload.get(k) for k in ("tenant_id", "agent_id", "conversation_id")]
        if not all(claims):
            raise HTTPException(
                status.HTTP_401_UNAUTHORIZED, "Token missing required claims"
            )
        tenant_id, agent_id, conversation_id = (uuid.UUID(c) for c in claims)
    except (PyJWTError, ValueError) as e:
        logging.warning(f"Chat session token error: {e}")
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED, "Invalid or expired session"
        ) from e
    return tenant_id, agent_id, conversation_id


async def verify_platform_secret(
    x_platform_secret: Optional[str] = Header(default=None),
) -> None:
    """Guards platform operations: the scheduled sweep and manual credits."""
    expected = settings.CRON_SECRET
    if not expected or not x_platform_secret or not hmac.compare_digest(
        x_platform_secret, expected
    ):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid platform secret")


async def ensure_balance(tenant_id: uuid.UUID, model: str) -> None:
    """Rejects a question up front when the balance cannot cover a typical answer."""
    estimated = estimate_units_per_message(model)
    if not await get_usage_ledger().check_balance(tenant_id, estimated):
        raise HTTPException(
            status.HTTP_402_PAYMENT_REQUIRED,
            "Insufficient token balance. Please top up to continue.",
        )
