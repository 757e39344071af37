"""
Linking contacts to friends: suggestions, link/unlink and shared contact data.
"""
from datetime import datetime, timezone

from giftlist.api.routes.contacts import build_link_suggestions
from giftlist.models.models import Contact, Friend, User


def _contact(client, user, **payload):
    res = client.post("/contacts", json={"name": "Someone", **payload}, headers=user["headers"])
    assert res.status_code == 201, res.text
    return res.json()


def test_link_flow_exposes_only_interests_and_gift_ideas(client, register_user):
    alice = register_user(name="Alice", email="alice-flow@example.com")
    bob = register_user(name="Bob", email="bob-flow@example.com")

    res = client.post("/friends/request", json={"email": bob["email"]}, headers=alice["headers"])
    request_id = res.json()["request"]["id"]
    client.put(f"/friends/{request_id}/accept", headers=bob["headers"])

    _contact(client, alice, name="Bob", email=bob["email"], notes="Met at work")
    alice_contacts_before = client.get("/contacts", headers=alice["headers"]).json()

    contact = _contact(
        client,
        bob,
        name="Alice",
        email="ALICE-FLOW@example.com",
        phone="555-0100",
        notes="Private note",
        interests=["pottery"],
    )
    client.post(f"/contacts/{contact['id']}/gift-ideas", json={"name": "Clay set"}, headers=bob["headers"])

    suggestions = client.get("/contacts/link-suggestions", headers=bob["headers"]).json()
    assert len(suggestions) == 1
    assert suggestions[0]["contact"]["id"] == contact["id"]
    assert suggestions[0]["friend"]["friendId"] == alice["id"]
    assert suggestions[0]["matchReason"] == "email"

    res = client.post(f"/contacts/{contact['id']}/link/{alice['id']}", headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["linkedUserId"] == alice["id"]
    assert res.json()["linkedAt"]

    assert client.get("/contacts/link-suggestions", headers=bob["headers"]).json() == []

    res = client.get(f"/friends/{alice['id']}/contact-data", headers=bob["headers"])
    assert res.status_code == 200
    data = res.json()
    assert set(data) == {"interests", "giftIdeas"}
    assert data["interests"] == ["pottery"]
    assert [idea["name"] for idea in data["giftIdeas"]] == ["Clay set"]

    res = client.delete(f"/contacts/{contact['id']}/link", headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["notes"] == "Private note"
    assert res.json()["interests"] == ["pottery"]

    suggestions = client.get("/contacts/link-suggestions", headers=bob["headers"]).json()
    assert [item["contact"]["id"] for item in suggestions] == [contact["id"]]
    assert client.get(f"/friends/{alice['id']}/contact-data", headers=bob["headers"]).json() is None

    # Linking and unlinking on Bob's side never touches Alice's own book.
    assert client.get("/contacts", headers=alice["headers"]).json() == alice_contacts_before


def test_contact_data_is_null_without_linked_contact(client, register_user, make_friends):
    alice = register_user()
    bob = register_user()
    make_friends(alice, bob)

    res = client.get(f"/friends/{bob['id']}/contact-data", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json() is None


def test_contact_data_requires_friendship(client, register_user):
    alice = register_user()
    bob = register_user()

    res = client.get(f"/friends/{bob['id']}/contact-data", headers=alice["headers"])
    assert res.status_code == 403
    assert res.json() == {"message": "Not friends with this user"}


def test_link_requires_accepted_friendship(client, register_user):
    alice = register_user()
    bob = register_user()
    client.post("/friends/request", json={"email": bob["email"]}, headers=alice["headers"])
    contact = _contact(client, alice, name="Bob")

    res = client.post(f"/contacts/{contact['id']}/link/{bob['id']}", headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"message": "Friend relationship not found or not accepted"}


def test_link_rejects_second_link(client, register_user, make_friends):
    alice = register_user()
    bob = register_user()
    carol = register_user()
    make_friends(alice, bob)
    make_friends(carol, alice)
    contact = _contact(client, alice, name="Bob")
    client.post(f"/contacts/{contact['id']}/link/{bob['id']}", headers=alice["headers"])

    res = client.post(f"/contacts/{contact['id']}/link/{carol['id']}", headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"message": "Contact is already linked to a friend"}


def test_link_rejects_second_contact_for_same_friend(client, register_user, make_friends):
    alice = register_user()
    bob = register_user()
    make_friends(alice, bob)
    first = _contact(client, alice, name="Bob")
    second = _contact(client, alice, name="Bobby")
    client.post(f"/contacts/{first['id']}/link/{bob['id']}", headers=alice["headers"])

    res = client.post(f"/contacts/{second['id']}/link/{bob['id']}", headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"message": "Another contact is already linked to this friend"}


def test_link_with_mismatched_email_is_allowed(client, register_user, make_friends):
    alice = register_user()
    bob = register_user()
    make_friends(alice, bob)
    contact = _contact(client, alice, name="Bob", email="old-address@example.com")

    res = client.post(f"/contacts/{contact['id']}/link/{bob['id']}", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["linkedUserId"] == bob["id"]


def test_link_unknown_contact(client, register_user, make_friends):
    alice = register_user()
    bob = register_user()
    make_friends(alice, bob)

    res = client.post(f"/contacts/9999/link/{bob['id']}", headers=alice["headers"])
    assert res.status_code == 404


def test_unlink(client, register_user, make_friends):
    alice = register_user()
    bob = register_user()
    make_friends(alice, bob)
    contact = _contact(client, alice, name="Bob")
    client.post(f"/contacts/{contact['id']}/link/{bob['id']}", headers=alice["headers"])

    res = client.delete(f"/contacts/{contact['id']}/link", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["linkedUserId"] is None
    assert res.json()["linkedAt"] is None

    res = client.delete(f"/contacts/{contact['id']}/link", headers=alice["headers"])
    assert res.status_code == 400
    assert res.json() == {"message": "Contact is not linked to any friend"}


def test_suggestions_skip_pending_friends(client, register_user):
    alice = register_user()
    bob = register_user()
    client.post("/friends/request", json={"email": bob["email"]}, headers=alice["headers"])
    _contact(client, alice, name="Bob", email=bob["email"])

    assert client.get("/contacts/link-suggestions", headers=alice["headers"]).json() == []


def _user(user_id: int, email: str) -> User:
    return User(id=user_id, email=email, name=email.split("@")[0], hashed_password="x")


def _unsaved_contact(contact_id: int, email: str | None, linked_user_id: int | None = None) -> Contact:
    return Contact(
        id=contact_id,
        owner_id=1,
        name=f"contact-{contact_id}",
        email=email,
        phone=None,
        notes=None,
        interests=[],
        linked_user_id=linked_user_id,
        linked_at=None,
        created_at=datetime.now(timezone.utc),
        gift_ideas=[],
    )


def test_build_link_suggestions_matches_case_insensitively():
    me = _user(1, "me@example.com")
    bob = _user(2, "bob@example.com")
    carol = _user(3, "carol@example.com")
    friendships = [
        Friend(id=10, user_id=1, friend_id=2, user=me, friend=bob, groups=[], accepted_at=None),
        Friend(id=11, user_id=3, friend_id=1, user=carol, friend=me, groups=[], accepted_at=None),
    ]
    contacts = [
        _unsaved_contact(100, " Bob@Example.com "),
        _unsaved_contact(101, "carol@example.com", linked_user_id=3),
        _unsaved_contact(102, None),
        _unsaved_contact(103, "stranger@example.com"),
        _unsaved_contact(104, "CAROL@example.com"),
    ]

    suggestions = build_link_suggestions(contacts, friendships, viewer_id=1)

    assert [(item.contact.id, item.friend.friend_id) for item in suggestions] == [(100, 2), (104, 3)]
    assert suggestions[1].friend.id == 11
