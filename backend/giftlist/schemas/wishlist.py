from pydantic import Field, field_validator

from giftlist.models.models import VisibilityEnum
from giftlist.schemas.base import CamelModel, UtcDatetime, strip_or_none


# Numeric(12, 2) column limit
MAX_PRICE = 9_999_999_999.99


class WishlistBase(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    visibility: VisibilityEnum = VisibilityEnum.PUBLIC
    shared_with: list[int] | None = None

    @field_validator("name")
    @classmethod
    def _wishlist_name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        return normalized

    @field_validator("description", mode="before")
    @classmethod
    def _wishlist_description_strip(cls, value):
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value


class WishlistCreate(WishlistBase):
    pass


class WishlistUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    visibility: VisibilityEnum | None = None
    shared_with: list[int] | None = None


class ItemBase(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    link: str | None = Field(default=None, max_length=2048)
    price: float | None = Field(default=None, ge=0, le=MAX_PRICE)

    @field_validator("name")
    @classmethod
    def _item_name_strip(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required")
        return normalized

    @field_validator("description", "link")
    @classmethod
    def _item_optional_strip(cls, value: str | None) -> str | None:
        return strip_or_none(value)


class ItemCreate(ItemBase):
    pass


class ItemUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    link: str | None = Field(default=None, max_length=2048)
    price: float | None = Field(default=None, ge=0, le=MAX_PRICE)


class BoughtUpdate(CamelModel):
    bought: bool = True


class ItemPublic(CamelModel):
    """Item as returned to the owner; who reserved it is never exposed."""

    id: int
    name: str
    description: str | None
    link: str | None
    price: float | None
    reserved: bool
    bought: bool
    created_at: UtcDatetime


class ItemActionResponse(CamelModel):
    message: str
    item: ItemPublic


class WishlistPublic(CamelModel):
    id: int
    name: str
    description: str
    visibility: VisibilityEnum
    shared_with: list[int] = []
    items: list[ItemPublic]
    created_at: UtcDatetime


class VisibleWishlist(CamelModel):
    id: int
    name: str
    description: str
    visibility: VisibilityEnum
    is_shared: bool
    items: list[ItemPublic]


class PublicWishlists(CamelModel):
    user_name: str
    wishlists: list[VisibleWishlist]


class ShareRequest(CamelModel):
    friend_ids: list[int] = Field(default_factory=list)


class ShareResponse(CamelModel):
    message: str
    shared_with: list[int]
