from fastapi import APIRouter, Depends, Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from loomio.constants.constants import UserRole
from loomio.core.config import settings
from loomio.core.database import aget_db
from loomio.core.exceptions import AuthenticationError, AuthorizationError, ValidationError
from loomio.core.rate_limit import limiter
from loomio.core.security import (
    create_access_token,
    create_refresh_token,
    decode_jwt_token,
    get_current_user,
    hash_password,
    verify_password,
)
from loomio.models.user import User
from loomio.schemas.userSchema import LoginRequest, ProfileUpdateRequest, RefreshTokenRequest, RegisterRequest
from loomio.services import StatisticsService
from loomio.utils.check_community_role import get_active_memberships
from loomio.utils.serializers import serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


def _token_response(message: str, user: User, memberships=None) -> dict:
    return {
        "message": message,
        "token": create_access_token(user.user_id),
        "refresh_token": create_refresh_token(user.user_id),
        "user": serialize_user(user, memberships),
    }


# -----------------------------
# Register / Login
# -----------------------------
@router.post("/register", status_code=201)
async def register(request: RegisterRequest, db: AsyncSession = Depends(aget_db)):
    """
    Create an account and return a token pair.
    Self-registration may ask for `member` or `community_admin`; platform admins are provisioned out of band.
    """
    if request.role == UserRole.platform_admin:
        raise AuthorizationError("Cannot self-register as a platform administrator")

    email = request.email.lower()
    existing = await db.execute(select(User.user_id).where(func.lower(User.email) == email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError("User with this email already exists")

    user = User(
        email=email,
        full_name=request.full_name.strip(),
        password_hash=hash_password(request.password),
        role=request.role,
        points=0,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info(f"Registered user {user.user_id} ({user.role.value})")
    return _token_response("User registered successfully", user, [])


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(request: Request, credentials: LoginRequest, db: AsyncSession = Depends(aget_db)):
    result = await db.execute(select(User).where(func.lower(User.email) == credentials.email.lower()))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    if not verify_password(credentials.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")

    memberships = await get_active_memberships(db, user.user_id)
    return _token_response("Login successful", user, memberships)


@router.post("/refresh")
async def refresh_token(request: RefreshTokenRequest, db: AsyncSession = Depends(aget_db)):
    payload = decode_jwt_token(request.refresh_token, expected_type="refresh")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid refresh token")

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise AuthenticationError("Invalid user")

    return {
        "message": "Token refreshed successfully",
        "token": create_access_token(user.user_id),
        "refresh_token": create_refresh_token(user.user_id),
    }


# -----------------------------
# Current user
# -----------------------------
@router.get("/me")
async def get_me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    memberships = await get_active_memberships(db, current_user.user_id)
    return {"user": serialize_user(current_user, memberships)}


@router.get("/profile")
async def get_profile(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Current user with communities and task stats."""
    memberships = await get_active_memberships(db, current_user.user_id)

    stats = {"total_points": current_user.points}
    stats.update(StatisticsService.task_summary(await StatisticsService.assignment_counts(db, current_user.user_id)))
    return {"user": serialize_user(current_user, memberships), "stats": stats}


@router.put("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(aget_db)
):
    """Update the caller's display name and/or password. Changing the password needs the current one."""
    if request.full_name is not None:
        current_user.full_name = request.full_name.strip()

    if request.new_password is not None:
        if not request.current_password or not verify_password(request.current_password, current_user.password_hash):
            raise ValidationError("Current password is incorrect")
        current_user.password_hash = hash_password(request.new_password)

    await db.commit()
    await db.refresh(current_user)
    memberships = await get_active_memberships(db, current_user.user_id)
    return {"message": "Profile updated successfully", "user": serialize_user(current_user, memberships)}
