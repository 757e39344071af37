from pydantic import EmailStr, Field, field_validator

from giftlist.models.models import FriendStatusEnum
from giftlist.schemas.base import CamelModel, UtcDatetime


class UserSummary(CamelModel):
    id: int
    name: str
    email: str


class FriendRequestCreate(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _email_lower(cls, value: str) -> str:
        return value.strip().lower()


class FriendPublic(CamelModel):
    """An accepted friendship seen from one side: `id` is the friendship id."""

    id: int
    friend_id: int
    name: str
    email: str
    groups: list[str]
    accepted_at: UtcDatetime | None = None


class FriendRequestPublic(CamelModel):
    id: int
    requested_by: UserSummary
    requested_at: UtcDatetime


class FriendshipPublic(CamelModel):
    id: int
    user: UserSummary
    friend: UserSummary
    status: FriendStatusEnum
    requested_by: int
    requested_at: UtcDatetime
    accepted_at: UtcDatetime | None = None
    groups: list[str]


class FriendRequestSent(CamelModel):
    message: str
    request: FriendshipPublic


class FriendshipAccepted(CamelModel):
    message: str
    friendship: FriendshipPublic


class UserSearchResult(CamelModel):
    id: int
    name: str
    email: str
    friendship_status: FriendStatusEnum | None = None
    friendship_id: int | None = None


class GroupsUpdate(CamelModel):
    groups: list[str] = Field(default_factory=list)

    @field_validator("groups", mode="before")
    @classmethod
    def _groups_clean(cls, value: list[str] | None) -> list[str]:
        if not value:
            return []
        if not isinstance(value, list):
            return value
        return [group.strip() for group in value if isinstance(group, str) and group.strip()]


class GroupsResponse(CamelModel):
    message: str
    groups: list[str]
