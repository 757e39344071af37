from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.api.deps import DbSessionDep, get_current_user
from giftlist.core.audit import AuditAction, audit_friendship_action
from giftlist.models.models import Contact, Friend, FriendStatusEnum, User
from giftlist.schemas.base import MessageResponse
from giftlist.schemas.contact import ContactData
from giftlist.schemas.friend import (
    FriendPublic,
    FriendRequestCreate,
    FriendRequestPublic,
    FriendRequestSent,
    FriendshipAccepted,
    FriendshipPublic,
    GroupsResponse,
    GroupsUpdate,
    UserSearchResult,
    UserSummary,
)


router = APIRouter(prefix="/friends", tags=["friends"])
logger = logging.getLogger("giftlist.friends")

FRIEND_SEARCH_LIMIT = 10

_EXISTING_FRIENDSHIP_MESSAGES = {
    FriendStatusEnum.ACCEPTED.value: "Already friends",
    FriendStatusEnum.PENDING.value: "Friend request already sent",
    FriendStatusEnum.DECLINED.value: "Friend request was previously declined",
}


def _pair_clause(user_a: int, user_b: int):
    return or_(
        and_(Friend.user_id == user_a, Friend.friend_id == user_b),
        and_(Friend.user_id == user_b, Friend.friend_id == user_a),
    )


async def find_friendship(db: AsyncSession, user_a: int, user_b: int) -> Friend | None:
    """Return the record between two users regardless of direction or status."""
    result = await db.execute(select(Friend).where(_pair_clause(user_a, user_b)).limit(1))
    return result.scalars().first()


async def find_accepted_friendship(db: AsyncSession, user_a: int, user_b: int) -> Friend | None:
    result = await db.execute(
        select(Friend)
        .where(_pair_clause(user_a, user_b))
        .where(Friend.status == FriendStatusEnum.ACCEPTED.value)
        .limit(1)
    )
    return result.scalars().first()


async def list_accepted_friendships(db: AsyncSession, user_id: int) -> list[Friend]:
    result = await db.execute(
        select(Friend)
        .where(or_(Friend.user_id == user_id, Friend.friend_id == user_id))
        .where(Friend.status == FriendStatusEnum.ACCEPTED.value)
        .order_by(Friend.accepted_at.desc(), Friend.id.desc())
    )
    return list(result.scalars().unique().all())


def serialize_friend(friendship: Friend, viewer_id: int) -> FriendPublic:
    other = friendship.other_party(viewer_id)
    return FriendPublic(
        id=friendship.id,
        friend_id=other.id,
        name=other.name,
        email=other.email,
        groups=list(friendship.groups or []),
        accepted_at=friendship.accepted_at,
    )


async def _get_friendship_or_404(db: AsyncSession, friendship_id: int, detail: str) -> Friend:
    result = await db.execute(select(Friend).where(Friend.id == friendship_id))
    friendship = result.scalars().first()
    if not friendship:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    return friendship


async def _get_pending_request_for(db: AsyncSession, request_id: int, user: User, verb: str) -> Friend:
    friendship = await _get_friendship_or_404(db, request_id, "Friend request not found")
    if friendship.friend_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not authorized to {verb} this request",
        )
    if friendship.status != FriendStatusEnum.PENDING.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request is not pending")
    return friendship


def _ensure_party(friendship: Friend, user: User, detail: str = "Not authorized") -> None:
    if not friendship.involves(user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@router.get("", response_model=list[FriendPublic])
async def list_friends(
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[FriendPublic]:
    friendships = await list_accepted_friendships(db, current_user.id)
    return [serialize_friend(friendship, current_user.id) for friendship in friendships]


@router.get("/requests", response_model=list[FriendRequestPublic])
async def list_friend_requests(
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[FriendRequestPublic]:
    result = await db.execute(
        select(Friend)
        .where(Friend.friend_id == current_user.id)
        .where(Friend.status == FriendStatusEnum.PENDING.value)
        .order_by(Friend.requested_at.desc(), Friend.id.desc())
    )
    return [
        FriendRequestPublic(
            id=request.id,
            requested_by=UserSummary.model_validate(request.user),
            requested_at=request.requested_at,
        )
        for request in result.scalars().unique().all()
    ]


@router.post("/request", response_model=FriendRequestSent, status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    payload: FriendRequestCreate,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> FriendRequestSent:
    result = await db.execute(select(User).where(User.email == payload.email))
    target = result.scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if target.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot send friend request to yourself",
        )

    existing = await find_friendship(db, current_user.id, target.id)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_EXISTING_FRIENDSHIP_MESSAGES.get(existing.status, "Friend request already exists"),
        )

    friendship = Friend(
        user=current_user,
        friend=target,
        status=FriendStatusEnum.PENDING.value,
        requested_by=current_user.id,
        requested_at=datetime.now(timezone.utc),
        accepted_at=None,
        groups=[],
    )
    db.add(friendship)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Friend request already exists",
        ) from None

    audit_friendship_action(AuditAction.FRIEND_REQUEST, request, current_user.id, friendship.id, target.id)
    return FriendRequestSent(
        message="Friend request sent",
        request=FriendshipPublic.model_validate(friendship),
    )


@router.get("/search", response_model=list[UserSearchResult])
async def search_users(
    db: DbSessionDep,
    q: str | None = None,
    current_user: User = Depends(get_current_user),
) -> list[UserSearchResult]:
    needle = (q or "").strip().lower()
    if not needle:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query required")

    result = await db.execute(
        select(User)
        .where(func.lower(User.email).contains(needle, autoescape=True))
        .where(User.id != current_user.id)
        .order_by(User.email)
        .limit(FRIEND_SEARCH_LIMIT)
    )
    users = list(result.scalars().all())
    if not users:
        return []

    user_ids = [user.id for user in users]
    friendships_result = await db.execute(
        select(Friend).where(
            or_(
                and_(Friend.user_id == current_user.id, Friend.friend_id.in_(user_ids)),
                and_(Friend.friend_id == current_user.id, Friend.user_id.in_(user_ids)),
            )
        )
    )
    by_other_id = {
        friendship.other_party(current_user.id).id: friendship
        for friendship in friendships_result.scalars().unique().all()
    }

    results = []
    for user in users:
        friendship = by_other_id.get(user.id)
        results.append(
            UserSearchResult(
                id=user.id,
                name=user.name,
                email=user.email,
                friendship_status=friendship.status if friendship else None,
                friendship_id=friendship.id if friendship else None,
            )
        )
    return results


@router.put("/{request_id}/accept", response_model=FriendshipAccepted)
async def accept_friend_request(
    request_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> FriendshipAccepted:
    friendship = await _get_pending_request_for(db, request_id, current_user, "accept")

    friendship.status = FriendStatusEnum.ACCEPTED.value
    friendship.accepted_at = datetime.now(timezone.utc)
    await db.commit()

    audit_friendship_action(AuditAction.FRIEND_ACCEPT, request, current_user.id, friendship.id, friendship.user_id)
    return FriendshipAccepted(
        message="Friend request accepted",
        friendship=FriendshipPublic.model_validate(friendship),
    )


@router.put("/{request_id}/decline", response_model=MessageResponse)
async def decline_friend_request(
    request_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    friendship = await _get_pending_request_for(db, request_id, current_user, "decline")

    friendship.status = FriendStatusEnum.DECLINED.value
    await db.commit()

    audit_friendship_action(AuditAction.FRIEND_DECLINE, request, current_user.id, friendship.id, friendship.user_id)
    return MessageResponse(message="Friend request declined")


@router.delete("/{friendship_id}", response_model=MessageResponse)
async def remove_friend(
    friendship_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    friendship = await _get_friendship_or_404(db, friendship_id, "Friendship not found")
    _ensure_party(friendship, current_user, "Not authorized to remove this friend")

    user_a, user_b = friendship.user_id, friendship.friend_id
    # Contacts on either side may only stay linked while the friendship exists.
    await db.execute(
        update(Contact)
        .where(
            or_(
                and_(Contact.owner_id == user_a, Contact.linked_user_id == user_b),
                and_(Contact.owner_id == user_b, Contact.linked_user_id == user_a),
            )
        )
        .values(linked_user_id=None, linked_at=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(friendship)
    await db.commit()

    other_id = user_b if user_a == current_user.id else user_a
    audit_friendship_action(AuditAction.FRIEND_REMOVE, request, current_user.id, friendship_id, other_id)
    return MessageResponse(message="Friend removed")


@router.post("/{friendship_id}/groups", response_model=GroupsResponse)
async def add_friend_to_groups(
    friendship_id: int,
    payload: GroupsUpdate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> GroupsResponse:
    if not payload.groups:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Groups array required")

    friendship = await _get_friendship_or_404(db, friendship_id, "Friendship not found")
    _ensure_party(friendship, current_user)

    friendship.groups = list(dict.fromkeys([*(friendship.groups or []), *payload.groups]))
    await db.commit()
    return GroupsResponse(message="Groups updated", groups=friendship.groups)


@router.delete("/{friendship_id}/groups/{group_name}", response_model=GroupsResponse)
async def remove_friend_from_group(
    friendship_id: int,
    group_name: str,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> GroupsResponse:
    friendship = await _get_friendship_or_404(db, friendship_id, "Friendship not found")
    _ensure_party(friendship, current_user)

    friendship.groups = [group for group in (friendship.groups or []) if group != group_name]
    await db.commit()
    return GroupsResponse(message="Group removed", groups=friendship.groups)


@router.get("/{friend_id}/contact-data", response_model=ContactData | None)
async def get_friend_contact_data(
    friend_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> ContactData | None:
    if not await find_accepted_friendship(db, current_user.id, friend_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not friends with this user")

    result = await db.execute(
        select(Contact)
        .where(Contact.owner_id == current_user.id)
        .where(Contact.linked_user_id == friend_id)
        .order_by(Contact.id)
        .limit(1)
    )
    contact = result.scalars().first()
    if contact is None:
        return None
    return ContactData.model_validate(contact)
