from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from giftlist.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )


class VisibilityEnum(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class FriendStatusEnum(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class Wishlist(Base):
    __tablename__ = "wishlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(2000), default="")
    visibility: Mapped[str] = mapped_column(String(20), default=VisibilityEnum.PUBLIC.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    items: Mapped[list["WishlistItem"]] = relationship(
        back_populates="wishlist",
        cascade="all, delete-orphan",
        order_by="WishlistItem.id",
        lazy="selectin",
    )
    shares: Mapped[list["WishlistShare"]] = relationship(
        back_populates="wishlist",
        cascade="all, delete-orphan",
        order_by="WishlistShare.id",
        lazy="selectin",
    )

    @property
    def shared_with(self) -> list[int]:
        return [share.user_id for share in self.shares]


class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    wishlist_id: Mapped[int] = mapped_column(ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    link: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    reserved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # null while reserved means an anonymous reservation
    reserved_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    bought: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    wishlist: Mapped[Wishlist] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("price IS NULL OR price >= 0", name="ck_wishlist_items_price_non_negative"),
    )


class WishlistShare(Base):
    __tablename__ = "wishlist_shares"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    wishlist_id: Mapped[int] = mapped_column(ForeignKey("wishlists.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    wishlist: Mapped[Wishlist] = relationship(back_populates="shares")

    __table_args__ = (
        UniqueConstraint("wishlist_id", "user_id", name="ux_wishlist_shares_wishlist_user"),
    )


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    interests: Mapped[list[str]] = mapped_column(JSON, default=list)
    linked_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    gift_ideas: Mapped[list["GiftIdea"]] = relationship(
        back_populates="contact",
        cascade="all, delete-orphan",
        order_by="GiftIdea.id",
        lazy="selectin",
    )


class GiftIdea(Base):
    __tablename__ = "gift_ideas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contact_id: Mapped[int] = mapped_column(ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str] = mapped_column(String(2000), default="")
    purchased: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    contact: Mapped[Contact] = relationship(back_populates="gift_ideas")


class Friend(Base):
    __tablename__ = "friends"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    friend_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=FriendStatusEnum.PENDING.value, nullable=False)
    requested_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    groups: Mapped[list[str]] = mapped_column(JSON, default=list)

    user: Mapped[User] = relationship(foreign_keys=[user_id], lazy="joined")
    friend: Mapped[User] = relationship(foreign_keys=[friend_id], lazy="joined")

    __table_args__ = (
        # The stored pair is directional; callers check (a, b) and (b, a) before insert.
        UniqueConstraint("user_id", "friend_id", name="ux_friends_user_friend"),
    )

    def involves(self, user_id: int) -> bool:
        return user_id in (self.user_id, self.friend_id)

    def other_party(self, user_id: int) -> User:
        return self.friend if self.user_id == user_id else self.user
