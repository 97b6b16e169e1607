import re
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime


class LoginRequest(BaseModel):
    """Email/password login request.

    Fields are optional here so that missing credentials and a missing
    bot-check token reach the auth service and are rejected (and logged)
    there rather than by request validation.
    """
    email: Optional[str] = None
    password: Optional[str] = None
    turnstile_token: Optional[str] = Field(None, alias="turnstileToken")

    model_config = ConfigDict(populate_by_name=True)


class AdminLoginRequest(LoginRequest):
    """Admin-credentials login request"""


class GoogleOAuthRequest(BaseModel):
    """Google ID token from the client-side sign-in flow"""
    id_token: str


class RegisterRequest(BaseModel):
    """Credentials sign-up request"""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: str = Field(..., alias="confirmPassword")
    turnstile_token: Optional[str] = Field(None, alias="turnstileToken")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    def name_characters(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        if not re.match(r"^[a-zA-Z\s'-]+$", v):
            raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
        return v

    @field_validator("password")
    def password_strength(cls, v):
        """Password must contain lowercase, uppercase and a digit"""
        if not re.search(r"[a-z]", v):
            raise ValueError("Password must contain lowercase letter")
        if not re.search(r"[A-Z]", v):
            raise ValueError("Password must contain uppercase letter")
        if not re.search(r"[0-9]", v):
            raise ValueError("Password must contain digit")
        return v

    @field_validator("confirm_password")
    def passwords_match(cls, v, info):
        password = info.data.get("password") if info and info.data else None
        if password and v != password:
            raise ValueError("Passwords don't match")
        return v


class TokenResponse(BaseModel):
    """Session token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str
    session_type: str
    provider: str
    session_id: str


class SessionResponse(BaseModel):
    """Current validated session"""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str
    session_type: str
    provider: str
    session_id: str
    issued_at: datetime


class CsrfTokenResponse(BaseModel):
    """CSRF token for state-changing requests; send it back in X-CSRF-Token"""
    csrf_token: str = Field(..., serialization_alias="csrfToken")
    expires_in: int  # seconds


class UserResponse(BaseModel):
    """User profile response"""
    id: str
    email: str
    name: Optional[str]
    image: Optional[str]
    role: str
    provider: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
