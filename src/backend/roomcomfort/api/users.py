"""User registration, login and profile API endpoints."""

from datetime import datetime

from fastapi import APIRouter, status
from pydantic import EmailStr, Field

from roomcomfort.api.common import CamelModel
from roomcomfort.core.deps import CurrentUser, DbSession, ensure_self_or_admin
from roomcomfort.models.user import User
from roomcomfort.services.auth_service import AuthService
from roomcomfort.services.user_service import UserService

router = APIRouter()


# Request schemas
class RegisterRequest(CamelModel):
    """User registration request schema."""

    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=12)


class LoginRequest(CamelModel):
    username: str
    password: str


class RefreshTokenRequest(CamelModel):
    """Refresh token request schema."""

    refresh_token: str


class ChangeUsernameRequest(CamelModel):
    new_username: str = Field(..., min_length=3, max_length=50)
    version: int


# Response schemas
class UserOut(CamelModel):
    id: int
    username: str


class UserProfile(CamelModel):
    """Profile of a user; tokens are present after register, login and refresh."""

    id: int
    username: str
    email: str
    role_name: str
    version: int
    created_at: datetime
    updated_at: datetime
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None


def _profile(user: User, tokens: dict[str, str] | None = None) -> UserProfile:
    profile = UserProfile.model_validate(user)
    if tokens:
        profile.access_token = tokens["access_token"]
        profile.refresh_token = tokens["refresh_token"]
        profile.token_type = tokens["token_type"]
    return profile


@router.post("/register", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, db: DbSession) -> UserProfile:
    """Register a new user and sign them in."""
    user = await UserService(db).register(data.username, data.email, data.password)
    return _profile(user, AuthService(db).create_tokens(user))


@router.post("/login", response_model=UserProfile)
async def login(data: LoginRequest, db: DbSession) -> UserProfile:
    """Authenticate user and return tokens."""
    auth_service = AuthService(db)
    user = await auth_service.authenticate_user(data.username, data.password)
    return _profile(user, auth_service.create_tokens(user))


@router.post("/refresh", response_model=UserProfile)
async def refresh(data: RefreshTokenRequest, db: DbSession) -> UserProfile:
    """Exchange a refresh token for a new token pair."""
    user, tokens = await AuthService(db).refresh_access_token(data.refresh_token)
    return _profile(user, tokens)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: int, db: DbSession, current_user: CurrentUser) -> UserOut:
    ensure_self_or_admin(current_user, user_id)
    username = await UserService(db).get_username(user_id)
    return UserOut(id=user_id, username=username)


@router.get("/{user_id}/profile", response_model=UserProfile)
async def get_profile(user_id: int, db: DbSession, current_user: CurrentUser) -> UserProfile:
    ensure_self_or_admin(current_user, user_id)
    user = await UserService(db).get_user(user_id)
    return _profile(user)


@router.put("/{user_id}/username", response_model=UserProfile)
async def change_username(
    user_id: int,
    data: ChangeUsernameRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> UserProfile:
    """Rename a user; ``version`` must be the profile version last read.

    The rename retires the user's earlier tokens; a user renaming themselves
    gets a fresh pair.
    """
    ensure_self_or_admin(current_user, user_id)
    user = await UserService(db).change_username(user_id, data.new_username, data.version)
    if user.id != current_user.id:
        return _profile(user)
    return _profile(user, AuthService(db).create_tokens(user))
