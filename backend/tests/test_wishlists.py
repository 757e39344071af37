"""
Wishlist and item management by the owner.
"""
from datetime import datetime, timezone

from giftlist.schemas.wishlist import ItemPublic


def _wishlist(client, user, **payload):
    res = client.post("/wishlists", json={"name": "Birthday", **payload}, headers=user["headers"])
    assert res.status_code == 201, res.text
    return res.json()


def _item(client, user, wishlist_id, **payload):
    res = client.post(
        f"/wishlists/{wishlist_id}/items",
        json={"name": "Headphones", **payload},
        headers=user["headers"],
    )
    assert res.status_code == 201, res.text
    return res.json()


class TestWishlistCrud:
    def test_wishlists_require_auth(self, client):
        res = client.get("/wishlists")
        assert res.status_code == 401

    def test_create_defaults(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)

        assert wishlist["name"] == "Birthday"
        assert wishlist["description"] == ""
        assert wishlist["visibility"] == "public"
        assert wishlist["sharedWith"] == []
        assert wishlist["items"] == []

    def test_create_requires_name(self, client, register_user):
        user = register_user()
        res = client.post("/wishlists", json={"name": "  "}, headers=user["headers"])
        assert res.status_code == 400

    def test_create_rejects_unknown_visibility(self, client, register_user):
        user = register_user()
        res = client.post("/wishlists", json={"name": "X", "visibility": "friends"}, headers=user["headers"])
        assert res.status_code == 400

    def test_list_only_own(self, client, register_user):
        alice = register_user()
        bob = register_user()
        mine = _wishlist(client, alice, name="Mine")
        _wishlist(client, bob, name="Theirs")

        res = client.get("/wishlists", headers=alice["headers"])
        assert [item["id"] for item in res.json()] == [mine["id"]]

    def test_update(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user, description="For June")

        res = client.put(
            f"/wishlists/{wishlist['id']}",
            json={"name": "Anniversary", "visibility": "private"},
            headers=user["headers"],
        )
        assert res.status_code == 200
        data = res.json()
        assert data["name"] == "Anniversary"
        assert data["visibility"] == "private"
        assert data["description"] == "For June"

    def test_update_foreign_wishlist(self, client, register_user):
        alice = register_user()
        bob = register_user()
        wishlist = _wishlist(client, alice)

        res = client.put(f"/wishlists/{wishlist['id']}", json={"name": "Mine now"}, headers=bob["headers"])
        assert res.status_code == 404
        assert res.json() == {"message": "Wishlist not found"}

    def test_delete(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        _item(client, user, wishlist["id"])

        res = client.delete(f"/wishlists/{wishlist['id']}", headers=user["headers"])
        assert res.json() == {"message": "Wishlist deleted"}
        assert client.get("/wishlists", headers=user["headers"]).json() == []


class TestItems:
    def test_add_and_list(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        item = _item(client, user, wishlist["id"], price=59.9, link=" https://shop.example/hp ")

        assert item["price"] == 59.9
        assert item["link"] == "https://shop.example/hp"
        assert item["reserved"] is False
        assert item["bought"] is False
        assert "reservedBy" not in item

        res = client.get(f"/wishlists/{wishlist['id']}/items", headers=user["headers"])
        assert [entry["id"] for entry in res.json()] == [item["id"]]

    def test_negative_price_rejected(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        res = client.post(
            f"/wishlists/{wishlist['id']}/items",
            json={"name": "Gift", "price": -1},
            headers=user["headers"],
        )
        assert res.status_code == 400

    def test_price_above_column_limit_rejected(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        res = client.post(
            f"/wishlists/{wishlist['id']}/items",
            json={"name": "Yacht", "price": 1e20},
            headers=user["headers"],
        )
        assert res.status_code == 400

        item = _item(client, user, wishlist["id"], price=9_999_999_999.99)
        res = client.put(
            f"/wishlists/{wishlist['id']}/items/{item['id']}",
            json={"price": 1e11},
            headers=user["headers"],
        )
        assert res.status_code == 400

    def test_created_at_keeps_utc_after_reload(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        created = _item(client, user, wishlist["id"])

        listed = client.get(f"/wishlists/{wishlist['id']}/items", headers=user["headers"]).json()[0]
        assert created["createdAt"].endswith("Z")
        assert listed["createdAt"] == created["createdAt"]

    def test_update_item(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        item = _item(client, user, wishlist["id"], description="Wireless")

        res = client.put(
            f"/wishlists/{wishlist['id']}/items/{item['id']}",
            json={"price": 10},
            headers=user["headers"],
        )
        assert res.status_code == 200
        assert res.json()["price"] == 10
        assert res.json()["description"] == "Wireless"

    def test_unknown_item(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        res = client.delete(f"/wishlists/{wishlist['id']}/items/9999", headers=user["headers"])
        assert res.status_code == 404
        assert res.json() == {"message": "Item not found"}

    def test_delete_item(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        item = _item(client, user, wishlist["id"])

        res = client.delete(f"/wishlists/{wishlist['id']}/items/{item['id']}", headers=user["headers"])
        assert res.json() == {"message": "Wishlist item removed"}
        assert client.get(f"/wishlists/{wishlist['id']}/items", headers=user["headers"]).json() == []

    def test_mark_bought_and_back(self, client, register_user):
        user = register_user()
        wishlist = _wishlist(client, user)
        item = _item(client, user, wishlist["id"])
        url = f"/wishlists/{wishlist['id']}/items/{item['id']}/bought"

        res = client.put(url, headers=user["headers"])
        assert res.json()["message"] == "Item marked as bought"
        assert res.json()["item"]["bought"] is True

        res = client.put(url, json={"bought": False}, headers=user["headers"])
        assert res.json()["message"] == "Item marked as not bought"
        assert res.json()["item"]["bought"] is False

    def test_only_owner_marks_bought(self, client, register_user):
        alice = register_user()
        bob = register_user()
        wishlist = _wishlist(client, alice)
        item = _item(client, alice, wishlist["id"])

        res = client.put(f"/wishlists/{wishlist['id']}/items/{item['id']}/bought", headers=bob["headers"])
        assert res.status_code == 404


def test_naive_timestamps_are_read_as_utc():
    naive = datetime(2024, 5, 1, 12, 30)
    item = ItemPublic(
        id=1,
        name="Kettle",
        description=None,
        link=None,
        price=None,
        reserved=False,
        bought=False,
        created_at=naive,
    )

    assert item.created_at == naive.replace(tzinfo=timezone.utc)
    assert item.model_dump(mode="json", by_alias=True)["createdAt"] == "2024-05-01T12:30:00Z"
