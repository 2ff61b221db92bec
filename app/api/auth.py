"""Authentication dependencies and identity endpoints.

Tokens are issued by the identity provider; this module only verifies them and
resolves the caller into an ``Actor`` for the reservation services.
"""

from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_registry
from app.config import settings
from app.database import get_db
from app.errors import Unauthorized
from app.models.user import User, UserRole
from app.schemas.auth import ActorResponse, UserResponse
from app.services.actors import Actor
from app.services.registry import ResourceRegistry

router = APIRouter()

# OAuth2 scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def create_access_token(user: User) -> str:
    """Create JWT access token (development and tests)"""
    expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user from token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
        user_id: str = payload.get("sub")
        token_type: str = payload.get("type")

        if user_id is None or token_type != "access":
            raise credentials_exception
        user_uuid = UUID(user_id)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Verify user is active"""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


def require_role(required_role: UserRole):
    """Dependency factory for role-based access control"""
    async def role_checker(current_user: User = Depends(get_current_active_user)) -> User:
        if not current_user.has_permission(required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user
    return role_checker


async def get_current_actor(
    current_user: User = Depends(get_current_active_user),
    registry: ResourceRegistry = Depends(get_registry),
) -> Actor:
    """Resolve the caller into an Actor with their staff venues"""
    return Actor(
        user_id=str(current_user.id),
        is_super_admin=current_user.role == UserRole.SUPER_ADMIN,
        staff_venue_ids=await registry.staff_venues_for(current_user.id),
    )


async def verify_venue_access(venue_id: UUID, actor: Actor) -> Actor:
    """Verify the actor works at the specified venue"""
    if not actor.can_override(venue_id):
        raise Unauthorized("Access denied to this venue", venue_id=str(venue_id))
    return actor


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_active_user),
):
    """Get current user information"""
    return current_user


@router.get("/me/actor", response_model=ActorResponse)
async def get_current_actor_info(
    actor: Actor = Depends(get_current_actor),
):
    """Identity and override privileges as the reservation services see them"""
    return ActorResponse(
        user_id=actor.user_id,
        is_super_admin=actor.is_super_admin,
        staff_venue_ids=sorted(actor.staff_venue_ids, key=str),
    )
