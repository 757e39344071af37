import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from giftlist.api.deps import DbSessionDep, get_current_user
from giftlist.core.audit import (
    audit_login_failed,
    audit_login_success,
    audit_profile_update,
    audit_register,
)
from giftlist.core.security import create_access_token, get_password_hash, verify_password
from giftlist.models.models import User
from giftlist.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    UserPublic,
    UserUpdate,
    UserWithToken,
)


router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger("giftlist.auth")

INVALID_CREDENTIALS = "Invalid email or password"


def _with_token(user: User) -> UserWithToken:
    return UserWithToken(
        id=user.id,
        name=user.name,
        email=user.email,
        token=create_access_token(str(user.id)),
    )


@router.post("", response_model=UserWithToken, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: RegisterRequest,
    db: DbSessionDep,
    request: Request,
) -> UserWithToken:
    existing = await db.execute(select(User).where(User.email == payload.email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = User(
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        name=payload.name,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists") from None

    audit_register(request, user.id, user.email)
    logger.info("User registered user_id=%s", user.id)
    return _with_token(user)


@router.post("/login", response_model=UserWithToken)
async def login_user(
    payload: LoginRequest,
    db: DbSessionDep,
    request: Request,
) -> UserWithToken:
    result = await db.execute(select(User).where(User.email == payload.email))
    user = result.scalar_one_or_none()

    if not user:
        audit_login_failed(request, payload.email, "user_not_found")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    if not verify_password(payload.password, user.hashed_password):
        audit_login_failed(request, payload.email, "invalid_password")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    audit_login_success(request, user.id, user.email)
    return _with_token(user)


@router.get("/profile", response_model=UserPublic)
async def get_profile(current_user: User = Depends(get_current_user)) -> UserPublic:
    return UserPublic.model_validate(current_user)


@router.put("/profile", response_model=UserWithToken)
async def update_profile(
    payload: UserUpdate,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> UserWithToken:
    update_data = payload.model_dump(exclude_unset=True, exclude_none=True)

    new_email = update_data.get("email")
    if new_email and new_email != current_user.email:
        taken = await db.execute(select(User.id).where(User.email == new_email))
        if taken.scalar_one_or_none() is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
        current_user.email = new_email

    if "name" in update_data:
        current_user.name = update_data["name"]
    if "password" in update_data:
        current_user.hashed_password = get_password_hash(update_data["password"])

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use") from None

    audit_profile_update(request, current_user.id, sorted(update_data))
    return _with_token(current_user)
