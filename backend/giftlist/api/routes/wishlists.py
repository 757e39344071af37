from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.api.deps import DbSessionDep, get_current_user, get_optional_user
from giftlist.core.audit import AuditAction, audit_item_action, audit_share_action
from giftlist.models.models import User, VisibilityEnum, Wishlist, WishlistItem, WishlistShare
from giftlist.schemas.base import MessageResponse
from giftlist.schemas.friend import UserSummary
from giftlist.schemas.wishlist import (
    BoughtUpdate,
    ItemActionResponse,
    ItemCreate,
    ItemPublic,
    ItemUpdate,
    PublicWishlists,
    ShareRequest,
    ShareResponse,
    VisibleWishlist,
    WishlistCreate,
    WishlistPublic,
    WishlistUpdate,
)

logger = logging.getLogger("giftlist.wishlists")

router = APIRouter(prefix="/wishlists", tags=["wishlists"])


async def _get_owned_wishlist_or_404(db: AsyncSession, owner: User, wishlist_id: int) -> Wishlist:
    result = await db.execute(
        select(Wishlist).where(Wishlist.id == wishlist_id).where(Wishlist.owner_id == owner.id)
    )
    wishlist = result.scalar_one_or_none()
    if not wishlist:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wishlist not found")
    return wishlist


def _find_item_or_404(wishlist: Wishlist, item_id: int) -> WishlistItem:
    for item in wishlist.items:
        if item.id == item_id:
            return item
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")


def _is_available(item: WishlistItem) -> bool:
    return not item.reserved and not item.bought


def filter_visible_wishlists(wishlists: list[Wishlist], viewer_id: int | None) -> list[VisibleWishlist]:
    """Wishlists another person may see: public ones, plus private ones shared with the viewer.

    Only items that are neither reserved nor bought are exposed.
    """
    visible = []
    for wishlist in wishlists:
        is_public = wishlist.visibility == VisibilityEnum.PUBLIC.value
        is_shared = (
            not is_public
            and viewer_id is not None
            and viewer_id in wishlist.shared_with
        )
        if not is_public and not is_shared:
            continue
        visible.append(
            VisibleWishlist(
                id=wishlist.id,
                name=wishlist.name,
                description=wishlist.description or "",
                visibility=wishlist.visibility,
                is_shared=is_shared,
                items=[ItemPublic.model_validate(item) for item in wishlist.items if _is_available(item)],
            )
        )
    return visible


async def _resolve_share_targets(db: AsyncSession, owner: User, user_ids: list[int]) -> list[int]:
    targets = [user_id for user_id in dict.fromkeys(user_ids) if user_id != owner.id]
    if not targets:
        return []
    result = await db.execute(select(User.id).where(User.id.in_(targets)))
    known = set(result.scalars().all())
    missing = [user_id for user_id in targets if user_id not in known]
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return targets


def _add_shares(wishlist: Wishlist, user_ids: list[int]) -> None:
    current = set(wishlist.shared_with)
    for user_id in user_ids:
        if user_id not in current:
            wishlist.shares.append(WishlistShare(user_id=user_id))
            current.add(user_id)


async def try_reserve_item(db: AsyncSession, item_id: int, reserver_id: int | None) -> bool:
    """Reserve in one conditional UPDATE; False when someone else already holds the item.

    The same reserver (anonymous included) may reserve again.
    """
    result = await db.execute(
        update(WishlistItem)
        .where(WishlistItem.id == item_id)
        .where(
            or_(
                WishlistItem.reserved.is_(False),
                WishlistItem.reserved_by.is_not_distinct_from(reserver_id),
            )
        )
        .values(reserved=True, reserved_by=reserver_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


@router.get("/public/{user_id}", response_model=PublicWishlists)
async def get_public_wishlists(
    user_id: int,
    db: DbSessionDep,
    viewer: User | None = Depends(get_optional_user),
) -> PublicWishlists:
    owner_result = await db.execute(select(User).where(User.id == user_id))
    owner = owner_result.scalar_one_or_none()
    if not owner:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    result = await db.execute(
        select(Wishlist).where(Wishlist.owner_id == owner.id).order_by(Wishlist.id)
    )
    wishlists = list(result.scalars().all())
    return PublicWishlists(
        user_name=owner.name,
        wishlists=filter_visible_wishlists(wishlists, viewer.id if viewer else None),
    )


@router.get("", response_model=list[WishlistPublic])
async def list_my_wishlists(
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[WishlistPublic]:
    result = await db.execute(
        select(Wishlist).where(Wishlist.owner_id == current_user.id).order_by(Wishlist.id)
    )
    return [WishlistPublic.model_validate(wishlist) for wishlist in result.scalars().all()]


@router.post("", response_model=WishlistPublic, status_code=status.HTTP_201_CREATED)
async def create_wishlist(
    payload: WishlistCreate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> WishlistPublic:
    wishlist = Wishlist(
        owner_id=current_user.id,
        name=payload.name,
        description=payload.description,
        visibility=payload.visibility.value,
        created_at=datetime.now(timezone.utc),
        items=[],
        shares=[],
    )
    if payload.shared_with:
        _add_shares(wishlist, await _resolve_share_targets(db, current_user, payload.shared_with))

    db.add(wishlist)
    await db.commit()
    logger.info("Wishlist created wishlist_id=%s owner_id=%s", wishlist.id, current_user.id)
    return WishlistPublic.model_validate(wishlist)


@router.put("/{wishlist_id}", response_model=WishlistPublic)
async def update_wishlist(
    wishlist_id: int,
    payload: WishlistUpdate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> WishlistPublic:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)

    update_data = payload.model_dump(exclude_unset=True, exclude={"shared_with"})
    if "name" in update_data:
        name = (update_data["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
        wishlist.name = name
    if "description" in update_data:
        wishlist.description = (update_data["description"] or "").strip()
    if update_data.get("visibility") is not None:
        wishlist.visibility = update_data["visibility"].value

    if payload.shared_with is not None:
        targets = await _resolve_share_targets(db, current_user, payload.shared_with)
        wishlist.shares = [share for share in wishlist.shares if share.user_id in targets]
        _add_shares(wishlist, targets)

    await db.commit()
    return WishlistPublic.model_validate(wishlist)


@router.delete("/{wishlist_id}", response_model=MessageResponse)
async def delete_wishlist(
    wishlist_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    await db.delete(wishlist)
    await db.commit()
    return MessageResponse(message="Wishlist deleted")


@router.get("/{wishlist_id}/items", response_model=list[ItemPublic])
async def list_wishlist_items(
    wishlist_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[ItemPublic]:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    return [ItemPublic.model_validate(item) for item in wishlist.items]


@router.post("/{wishlist_id}/items", response_model=ItemPublic, status_code=status.HTTP_201_CREATED)
async def add_wishlist_item(
    wishlist_id: int,
    payload: ItemCreate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> ItemPublic:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)

    item = WishlistItem(
        name=payload.name,
        description=payload.description,
        link=payload.link,
        price=payload.price,
        reserved=False,
        reserved_by=None,
        bought=False,
        created_at=datetime.now(timezone.utc),
    )
    wishlist.items.append(item)
    await db.commit()
    return ItemPublic.model_validate(item)


@router.put("/{wishlist_id}/items/{item_id}", response_model=ItemPublic)
async def update_wishlist_item(
    wishlist_id: int,
    item_id: int,
    payload: ItemUpdate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> ItemPublic:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    item = _find_item_or_404(wishlist, item_id)

    update_data = payload.model_dump(exclude_unset=True)
    if "name" in update_data:
        name = (update_data["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
        item.name = name
    for key in ("description", "link"):
        if key in update_data:
            setattr(item, key, (update_data[key] or "").strip() or None)
    if "price" in update_data:
        item.price = update_data["price"]

    await db.commit()
    return ItemPublic.model_validate(item)


@router.delete("/{wishlist_id}/items/{item_id}", response_model=MessageResponse)
async def delete_wishlist_item(
    wishlist_id: int,
    item_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    item = _find_item_or_404(wishlist, item_id)

    # Reserved or bought items can be removed by the owner too.
    wishlist.items.remove(item)
    await db.commit()
    return MessageResponse(message="Wishlist item removed")


@router.put("/{wishlist_id}/items/{item_id}/reserve", response_model=ItemActionResponse)
async def reserve_wishlist_item(
    wishlist_id: int,
    item_id: int,
    db: DbSessionDep,
    request: Request,
    viewer: User | None = Depends(get_optional_user),
) -> ItemActionResponse:
    # No owner scope here: whoever holds the link (signed in or not) may reserve.
    result = await db.execute(select(Wishlist).where(Wishlist.id == wishlist_id))
    wishlist = result.scalar_one_or_none()
    if not wishlist:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wishlist not found")
    item = _find_item_or_404(wishlist, item_id)

    reserver_id = viewer.id if viewer else None
    if reserver_id is not None and reserver_id == wishlist.owner_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Owner cannot reserve own item")

    if not await try_reserve_item(db, item.id, reserver_id):
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Item already reserved by someone else",
        )
    await db.commit()
    await db.refresh(item, attribute_names=["reserved", "reserved_by"])

    audit_item_action(AuditAction.ITEM_RESERVE, request, reserver_id, wishlist.id, item.id)
    return ItemActionResponse(message="Item reserved successfully", item=ItemPublic.model_validate(item))


@router.delete("/{wishlist_id}/items/{item_id}/reserve", response_model=ItemActionResponse)
async def unreserve_wishlist_item(
    wishlist_id: int,
    item_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ItemActionResponse:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    item = _find_item_or_404(wishlist, item_id)
    if not item.reserved:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Item is not reserved")

    item.reserved = False
    item.reserved_by = None
    await db.commit()

    audit_item_action(AuditAction.ITEM_UNRESERVE, request, current_user.id, wishlist.id, item.id)
    return ItemActionResponse(message="Item unreserved successfully", item=ItemPublic.model_validate(item))


@router.put("/{wishlist_id}/items/{item_id}/bought", response_model=ItemActionResponse)
async def mark_item_bought(
    wishlist_id: int,
    item_id: int,
    db: DbSessionDep,
    payload: BoughtUpdate | None = Body(default=None),
    current_user: User = Depends(get_current_user),
) -> ItemActionResponse:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    item = _find_item_or_404(wishlist, item_id)

    item.bought = payload.bought if payload is not None else True
    await db.commit()

    message = "Item marked as bought" if item.bought else "Item marked as not bought"
    return ItemActionResponse(message=message, item=ItemPublic.model_validate(item))


@router.get("/{wishlist_id}/share", response_model=list[UserSummary])
@router.get("/{wishlist_id}/shared", response_model=list[UserSummary])
async def get_shared_with(
    wishlist_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[UserSummary]:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    user_ids = wishlist.shared_with
    if not user_ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users_by_id = {user.id: user for user in result.scalars().all()}
    return [UserSummary.model_validate(users_by_id[user_id]) for user_id in user_ids if user_id in users_by_id]


@router.post("/{wishlist_id}/share", response_model=ShareResponse)
async def share_wishlist(
    wishlist_id: int,
    payload: ShareRequest,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ShareResponse:
    if not payload.friend_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend IDs array required")

    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    targets = await _resolve_share_targets(db, current_user, payload.friend_ids)
    _add_shares(wishlist, targets)
    await db.commit()

    audit_share_action(AuditAction.WISHLIST_SHARE, request, current_user.id, wishlist.id, targets)
    return ShareResponse(message="Wishlist shared successfully", shared_with=wishlist.shared_with)


@router.delete("/{wishlist_id}/share/{friend_id}", response_model=ShareResponse)
async def unshare_wishlist(
    wishlist_id: int,
    friend_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ShareResponse:
    wishlist = await _get_owned_wishlist_or_404(db, current_user, wishlist_id)
    if not wishlist.shares:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Wishlist not shared with anyone")

    wishlist.shares = [share for share in wishlist.shares if share.user_id != friend_id]
    await db.commit()

    audit_share_action(AuditAction.WISHLIST_UNSHARE, request, current_user.id, wishlist.id, [friend_id])
    return ShareResponse(message="Wishlist unshared successfully", shared_with=wishlist.shared_with)
