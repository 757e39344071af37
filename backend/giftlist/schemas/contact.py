from typing import Literal

from pydantic import Field, field_validator

from giftlist.schemas.base import CamelModel, UtcDatetime, strip_or_none
from giftlist.schemas.friend import FriendPublic


def _normalize_interests(values):
    if not values:
        return []
    if not isinstance(values, list):
        return values
    return [value.strip() for value in values if value and value.strip()]


class ContactBase(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=4000)
    interests: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        return normalized

    @field_validator("email", "phone", "notes")
    @classmethod
    def _optional_strip(cls, value: str | None) -> str | None:
        return strip_or_none(value)

    @field_validator("interests", mode="before")
    @classmethod
    def _interests_clean(cls, value: list[str] | None) -> list[str]:
        return _normalize_interests(value)


class ContactCreate(ContactBase):
    pass


class ContactUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=4000)
    interests: list[str] | None = None

    @field_validator("name", "email", "phone", "notes")
    @classmethod
    def _optional_strip(cls, value: str | None) -> str | None:
        return strip_or_none(value)

    @field_validator("interests", mode="before")
    @classmethod
    def _interests_clean(cls, value: list[str] | None) -> list[str]:
        return _normalize_interests(value)


class GiftIdeaCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    notes: str = Field(default="", max_length=2000)

    @field_validator("name")
    @classmethod
    def _name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        return normalized


class GiftIdeaUpdate(CamelModel):
    name: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)


class GiftIdeaPublic(CamelModel):
    id: int
    name: str
    notes: str
    purchased: bool


class ContactPublic(CamelModel):
    id: int
    name: str
    email: str | None
    phone: str | None
    notes: str | None
    interests: list[str]
    gift_ideas: list[GiftIdeaPublic]
    linked_user_id: int | None = None
    linked_at: UtcDatetime | None = None
    created_at: UtcDatetime


class ContactData(CamelModel):
    """What a user sees about a friend through their own linked contact."""

    interests: list[str]
    gift_ideas: list[GiftIdeaPublic]


class LinkSuggestion(CamelModel):
    contact: ContactPublic
    friend: FriendPublic
    match_reason: Literal["email", "manual"] = "email"
