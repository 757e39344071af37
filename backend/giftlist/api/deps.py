from typing import Annotated
import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.core.security import decode_access_token
from giftlist.db.session import get_db
from giftlist.models.models import User


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
logger = logging.getLogger("giftlist.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.removeprefix("Bearer ").strip()
        return token or None
    return None


def _subject_user_id(token: str) -> int | None:
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None


async def get_current_user(request: Request, db: DbSessionDep) -> User:
    token = _bearer_token(request)
    if not token:
        logger.info(
            "Auth token missing path=%s ip=%s",
            request.url.path,
            request.client.host if request.client else None,
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no token")

    user_id = _subject_user_id(token)
    if user_id is None:
        logger.info("Auth token invalid path=%s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, token failed")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        logger.info("Auth user missing path=%s user_id=%s", request.url.path, user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, user not found")

    logger.debug("get_current_user: authenticated user_id=%s", user.id)
    return user


async def get_optional_user(request: Request, db: DbSessionDep) -> User | None:
    """Resolve the bearer token when one is present; invalid tokens count as anonymous."""
    token = _bearer_token(request)
    if not token:
        return None

    user_id = _subject_user_id(token)
    if user_id is None:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()
