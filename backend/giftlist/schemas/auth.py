from pydantic import EmailStr, Field, field_validator

from giftlist.schemas.base import CamelModel


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def _email_lower(cls, value: str) -> str:
        return value.strip().lower()


class RegisterRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        return normalized

    @field_validator("email")
    @classmethod
    def _email_lower(cls, value: str) -> str:
        return value.strip().lower()


class UserPublic(CamelModel):
    id: int
    name: str
    email: EmailStr


class UserWithToken(UserPublic):
    token: str


class UserUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def _name_update_strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator("email")
    @classmethod
    def _email_update_lower(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else None
