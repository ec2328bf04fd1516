"""
API request and response models for the scout portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Every non-2xx response body: {"error": {"code", "message", "detail"}}."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    # bcrypt only reads the first 72 bytes.
    password: str = Field(min_length=1, max_length=128)


class UserCreate(BaseModel):
    """Body for POST /api/v1/users (executive only)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    role: str = Field(pattern=r"^(parent|leader|executive|support)$")
    password: str = Field(min_length=8, max_length=128)
    avatar: Optional[str] = None
    is_parent: bool = False
    is_leader: bool = False
    is_executive: bool = False
    is_support: bool = False


class UserUpdate(BaseModel):
    """Body for PATCH /api/v1/users/{user_id} (executive only). Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[str] = Field(default=None, pattern=r"^(parent|leader|executive|support)$")
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    avatar: Optional[str] = None
    is_parent: Optional[bool] = None
    is_leader: Optional[bool] = None
    is_executive: Optional[bool] = None
    is_support: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    avatar: Optional[str] = None
    is_parent: bool = False
    is_leader: bool = False
    is_executive: bool = False
    is_support: bool = False
    is_online: bool = False
    last_seen: Optional[str] = None
    created_at: Optional[str] = None


class LoginResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


class DemoLoginResponse(LoginResponse):
    message: str = "Demo login successful"


class ValidateResponse(BaseModel):
    valid: bool


class LogoutResponse(BaseModel):
    success: bool = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListResponse(BaseModel):
    users: list[UserResponse]
    pagination: Pagination


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str


def to_user_response(user: User) -> UserResponse:
    """Map the domain User to its public shape. hashed_password never leaves the server."""
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        avatar=user.avatar,
        is_parent=user.is_parent,
        is_leader=user.is_leader,
        is_executive=user.is_executive,
        is_support=user.is_support,
        is_online=user.is_online,
        last_seen=user.last_seen,
        created_at=user.created_at,
    )
