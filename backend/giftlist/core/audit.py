"""Audit logging for account, friendship and reservation events."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("giftlist.audit")

_SENSITIVE_KEYS = {"password", "token", "secret", "key", "authorization"}


class AuditAction(str, Enum):
    """Audit action types."""
    # Authentication
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    REGISTER = "register"
    PROFILE_UPDATE = "profile_update"
    PASSWORD_CHANGE = "password_change"

    # Friendships
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPT = "friend_accept"
    FRIEND_DECLINE = "friend_decline"
    FRIEND_REMOVE = "friend_remove"

    # Contacts
    CONTACT_LINK = "contact_link"
    CONTACT_UNLINK = "contact_unlink"

    # Wishlists
    ITEM_RESERVE = "item_reserve"
    ITEM_UNRESERVE = "item_unreserve"
    WISHLIST_SHARE = "wishlist_share"
    WISHLIST_UNSHARE = "wishlist_unshare"


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        user_id: ID of the user performing the action, None for anonymous callers
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if user_id is not None:
        event["user_id"] = str(user_id)

    if request:
        client_host = request.client.host if request.client else None
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()

        event["ip"] = client_host
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = {
            key: "***REDACTED***" if key in _SENSITIVE_KEYS else value
            for key, value in details.items()
        }

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_login_success(request: Request, user_id: int, email: str) -> None:
    """Log successful login."""
    audit_log(AuditAction.LOGIN, request=request, user_id=user_id, details={"email": email})


def audit_login_failed(request: Request, email: str, reason: str) -> None:
    """Log failed login attempt."""
    audit_log(
        AuditAction.LOGIN_FAILED,
        request=request,
        details={"email": email, "reason": reason},
        success=False,
    )


def audit_register(request: Request, user_id: int, email: str) -> None:
    """Log user registration."""
    audit_log(AuditAction.REGISTER, request=request, user_id=user_id, details={"email": email})


def audit_profile_update(request: Request, user_id: int, fields: list[str]) -> None:
    action = AuditAction.PASSWORD_CHANGE if "password" in fields else AuditAction.PROFILE_UPDATE
    audit_log(action, request=request, user_id=user_id, details={"fields": fields})


def audit_friendship_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    friendship_id: int,
    other_user_id: int,
) -> None:
    """Log a friendship state transition."""
    audit_log(
        action,
        request=request,
        user_id=user_id,
        details={"friendship_id": friendship_id, "other_user_id": other_user_id},
    )


def audit_contact_link_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    contact_id: int,
    linked_user_id: int | None,
) -> None:
    audit_log(
        action,
        request=request,
        user_id=user_id,
        details={"contact_id": contact_id, "linked_user_id": linked_user_id},
    )


def audit_item_action(
    action: AuditAction,
    request: Request,
    user_id: int | None,
    wishlist_id: int,
    item_id: int,
) -> None:
    """Log reservation changes on a wishlist item."""
    audit_log(
        action,
        request=request,
        user_id=user_id,
        details={"wishlist_id": wishlist_id, "item_id": item_id},
    )


def audit_share_action(
    action: AuditAction,
    request: Request,
    user_id: int,
    wishlist_id: int,
    target_ids: list[int],
) -> None:
    audit_log(
        action,
        request=request,
        user_id=user_id,
        details={"wishlist_id": wishlist_id, "target_ids": target_ids},
    )
