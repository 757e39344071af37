from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from giftlist.api.deps import DbSessionDep, get_current_user
from giftlist.api.routes.friends import (
    find_accepted_friendship,
    list_accepted_friendships,
    serialize_friend,
)
from giftlist.core.audit import AuditAction, audit_contact_link_action
from giftlist.models.models import Contact, Friend, GiftIdea, User
from giftlist.schemas.base import MessageResponse
from giftlist.schemas.contact import (
    ContactCreate,
    ContactPublic,
    ContactUpdate,
    GiftIdeaCreate,
    GiftIdeaPublic,
    GiftIdeaUpdate,
    LinkSuggestion,
)


router = APIRouter(prefix="/contacts", tags=["contacts"])
logger = logging.getLogger("giftlist.contacts")


async def _get_contact_or_404(db: AsyncSession, owner: User, contact_id: int) -> Contact:
    result = await db.execute(
        select(Contact).where(Contact.id == contact_id).where(Contact.owner_id == owner.id)
    )
    contact = result.scalar_one_or_none()
    if not contact:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    return contact


def _find_gift_idea_or_404(contact: Contact, gift_idea_id: int) -> GiftIdea:
    for gift_idea in contact.gift_ideas:
        if gift_idea.id == gift_idea_id:
            return gift_idea
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift idea not found")


def build_link_suggestions(
    contacts: list[Contact],
    friendships: list[Friend],
    viewer_id: int,
) -> list[LinkSuggestion]:
    """Pair unlinked contacts with accepted friends whose email matches, ignoring case."""
    friends_by_email: dict[str, list[Friend]] = {}
    for friendship in friendships:
        email = (friendship.other_party(viewer_id).email or "").strip().lower()
        if email:
            friends_by_email.setdefault(email, []).append(friendship)

    suggestions = []
    for contact in contacts:
        if contact.linked_user_id is not None or not contact.email:
            continue
        for friendship in friends_by_email.get(contact.email.strip().lower(), []):
            suggestions.append(
                LinkSuggestion(
                    contact=ContactPublic.model_validate(contact),
                    friend=serialize_friend(friendship, viewer_id),
                    match_reason="email",
                )
            )
    return suggestions


@router.get("", response_model=list[ContactPublic])
async def list_contacts(
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[ContactPublic]:
    result = await db.execute(
        select(Contact).where(Contact.owner_id == current_user.id).order_by(Contact.id)
    )
    return [ContactPublic.model_validate(contact) for contact in result.scalars().all()]


@router.post("", response_model=ContactPublic, status_code=status.HTTP_201_CREATED)
async def create_contact(
    payload: ContactCreate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> ContactPublic:
    contact = Contact(
        owner_id=current_user.id,
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        notes=payload.notes,
        interests=payload.interests,
        linked_user_id=None,
        linked_at=None,
        gift_ideas=[],
    )
    db.add(contact)
    await db.commit()
    return ContactPublic.model_validate(contact)


@router.get("/link-suggestions", response_model=list[LinkSuggestion])
async def get_link_suggestions(
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> list[LinkSuggestion]:
    contacts_result = await db.execute(
        select(Contact)
        .where(Contact.owner_id == current_user.id)
        .where(Contact.linked_user_id.is_(None))
        .where(Contact.email.is_not(None))
        .order_by(Contact.id)
    )
    contacts = list(contacts_result.scalars().all())
    if not contacts:
        return []

    friendships = await list_accepted_friendships(db, current_user.id)
    return build_link_suggestions(contacts, friendships, current_user.id)


@router.get("/{contact_id}", response_model=ContactPublic)
async def get_contact(
    contact_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> ContactPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    return ContactPublic.model_validate(contact)


@router.put("/{contact_id}", response_model=ContactPublic)
async def update_contact(
    contact_id: int,
    payload: ContactUpdate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> ContactPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)

    update_data = payload.model_dump(exclude_unset=True)
    if "name" in update_data and not update_data["name"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    for key, value in update_data.items():
        setattr(contact, key, value)

    await db.commit()
    return ContactPublic.model_validate(contact)


@router.delete("/{contact_id}", response_model=MessageResponse)
async def delete_contact(
    contact_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    await db.delete(contact)
    await db.commit()
    return MessageResponse(message="Contact removed")


@router.post("/{contact_id}/gift-ideas", response_model=GiftIdeaPublic, status_code=status.HTTP_201_CREATED)
async def add_gift_idea(
    contact_id: int,
    payload: GiftIdeaCreate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> GiftIdeaPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)

    gift_idea = GiftIdea(name=payload.name, notes=payload.notes, purchased=False)
    contact.gift_ideas.append(gift_idea)
    await db.commit()
    return GiftIdeaPublic.model_validate(gift_idea)


@router.put("/{contact_id}/gift-ideas/{gift_idea_id}", response_model=GiftIdeaPublic)
async def toggle_gift_idea_purchased(
    contact_id: int,
    gift_idea_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> GiftIdeaPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    gift_idea = _find_gift_idea_or_404(contact, gift_idea_id)

    gift_idea.purchased = not gift_idea.purchased
    await db.commit()
    return GiftIdeaPublic.model_validate(gift_idea)


@router.put("/{contact_id}/gift-ideas/{gift_idea_id}/update", response_model=GiftIdeaPublic)
async def update_gift_idea(
    contact_id: int,
    gift_idea_id: int,
    payload: GiftIdeaUpdate,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> GiftIdeaPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    gift_idea = _find_gift_idea_or_404(contact, gift_idea_id)

    # A blank name keeps the current one; notes are replaced whenever sent.
    if payload.name and payload.name.strip():
        gift_idea.name = payload.name.strip()
    if payload.notes is not None:
        gift_idea.notes = payload.notes
    await db.commit()
    return GiftIdeaPublic.model_validate(gift_idea)


@router.delete("/{contact_id}/gift-ideas/{gift_idea_id}", response_model=MessageResponse)
async def delete_gift_idea(
    contact_id: int,
    gift_idea_id: int,
    db: DbSessionDep,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    gift_idea = _find_gift_idea_or_404(contact, gift_idea_id)

    contact.gift_ideas.remove(gift_idea)
    await db.commit()
    return MessageResponse(message="Gift idea deleted")


@router.post("/{contact_id}/link/{friend_id}", response_model=ContactPublic)
async def link_contact_to_friend(
    contact_id: int,
    friend_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ContactPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    if contact.linked_user_id is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Contact is already linked to a friend")

    friendship = await find_accepted_friendship(db, current_user.id, friend_id)
    if not friendship:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Friend relationship not found or not accepted",
        )

    already_linked = await db.execute(
        select(Contact.id)
        .where(Contact.owner_id == current_user.id)
        .where(Contact.linked_user_id == friend_id)
        .limit(1)
    )
    if already_linked.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Another contact is already linked to this friend",
        )

    friend = friendship.other_party(current_user.id)
    if contact.email and contact.email.strip().lower() != (friend.email or "").lower():
        logger.info(
            "Linking contact with mismatched email contact_id=%s friend_id=%s",
            contact.id,
            friend_id,
        )

    contact.linked_user_id = friend_id
    contact.linked_at = datetime.now(timezone.utc)
    await db.commit()

    audit_contact_link_action(AuditAction.CONTACT_LINK, request, current_user.id, contact.id, friend_id)
    return ContactPublic.model_validate(contact)


@router.delete("/{contact_id}/link", response_model=ContactPublic)
async def unlink_contact_from_friend(
    contact_id: int,
    db: DbSessionDep,
    request: Request,
    current_user: User = Depends(get_current_user),
) -> ContactPublic:
    contact = await _get_contact_or_404(db, current_user, contact_id)
    if contact.linked_user_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Contact is not linked to any friend")

    previous = contact.linked_user_id
    contact.linked_user_id = None
    contact.linked_at = None
    await db.commit()

    audit_contact_link_action(AuditAction.CONTACT_UNLINK, request, current_user.id, contact.id, previous)
    return ContactPublic.model_validate(contact)
