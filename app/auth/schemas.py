import re
from pydantic import BaseModel, SecretStr, field_validator
from typing import Optional

from app.utils.profiles import ProfileSnapshot


"""
auth/register
"""


class UserRegistrationModel(BaseModel):
    email: str
    name: str
    username: str
    password: SecretStr
    avatar: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, username: str) -> str:
        # Length check (min 3, max 20)
        if not (3 <= len(username) <= 20):
            raise ValueError(
                f"Username must be between 3 and 20 characters long (got {len(username)})."
            )

        # Allow only characters (letters, numbers, underscores, and dots)
        if not re.match(r"^[a-zA-Z0-9_.]+$", username):
            raise ValueError(
                "Username must only contain letters, numbers, underscores, and dots."
            )

        return username.lower()

    @field_validator("name")
    @classmethod
    def validate_name(cls, name: str) -> str:
        name = name.strip()
        if not name:
            raise ValueError("Name must not be blank.")
        return name

    @field_validator("password")
    @classmethod
    def validate_password(cls, password: SecretStr) -> SecretStr:
        if len(password.get_secret_value()) < 8:
            raise ValueError("Password must be at least 8 characters long.")
        return password


class UserRegistrationResponseModel(BaseModel):
    id: str
    email: str
    username: str


"""
auth/login
"""


class UserLoginModel(BaseModel):
    email: str
    password: SecretStr


class UserLoginResponseModel(BaseModel):
    access_token: str
    expires_in: int
    user_id: str
    email: str


"""
auth/access
"""


class AccessTokenResponseModel(BaseModel):
    access_token: str


"""
auth/me
"""


class AuthInfo(BaseModel):
    id: str
    email: Optional[str] = None
    is_admin: bool = False


class MeResponseModel(BaseModel):
    auth: AuthInfo
    profile: ProfileSnapshot
