from types import SimpleNamespace

import pytest

ADDRESS = {
    "street": "4 Harbour Rd",
    "city": "Chattogram",
    "state": "Chattogram",
    "zip_code": "4000",
    "country": "BD",
}


@pytest.fixture()
def place_order(client, add_product):
    add_product("p1", price=10.0)

    def _place(account, quantity=1):
        client.post("/cart/add", json={"product_id": "p1", "quantity": quantity}, headers=account.headers)
        response = client.post("/orders", json={"shipping_address": ADDRESS}, headers=account.headers)
        assert response.status_code == 201
        return response.json()

    return _place


@pytest.fixture()
def other(signup):
    data = signup(email="other@example.com", name="Other")
    return SimpleNamespace(id=data["user"]["id"], headers={"Authorization": f"Bearer {data['token']}"})


class TestReadingOrders:
    def test_list_only_own_orders(self, client, user, other, place_order):
        place_order(user)
        place_order(user, quantity=3)
        place_order(other)

        response = client.get("/orders", headers=user.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert {o["user_id"] for o in data["orders"]} == {user.id}

    def test_get_own_order(self, client, user, place_order):
        order = place_order(user)
        response = client.get(f"/orders/{order['id']}", headers=user.headers)
        assert response.status_code == 200
        assert response.json()["id"] == order["id"]

    def test_get_someone_elses_order(self, client, user, other, place_order):
        order = place_order(other)
        response = client.get(f"/orders/{order['id']}", headers=user.headers)
        assert response.status_code == 403

    def test_get_missing_order(self, client, user):
        response = client.get("/orders/nope", headers=user.headers)
        assert response.status_code == 404
        assert response.json() == {"message": "Order not found"}


class TestStatusUpdates:
    def test_owner_updates_only_supplied_field(self, client, user, place_order):
        order = place_order(user)
        response = client.put(
            f"/orders/{order['id']}/status", json={"payment_status": "paid"}, headers=user.headers
        )
        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"
        assert response.json()["order_status"] == "pending"

    def test_no_transition_table(self, client, user, place_order):
        order = place_order(user)
        response = client.put(
            f"/orders/{order['id']}/status",
            json={"order_status": "delivered", "payment_status": "pending"},
            headers=user.headers,
        )
        assert response.status_code == 200
        response = client.put(
            f"/orders/{order['id']}/status", json={"order_status": "pending"}, headers=user.headers
        )
        assert response.json()["order_status"] == "pending"

    def test_non_owner_is_forbidden(self, client, db, user, other, place_order):
        order = place_order(other)
        response = client.put(
            f"/orders/{order['id']}/status", json={"order_status": "cancelled"}, headers=user.headers
        )
        assert response.status_code == 403
        assert response.json() == {"message": "Not authorized"}
        assert db["orders"].docs[0]["order_status"] == "pending"

    def test_admin_may_update_any_order(self, client, admin, user, place_order):
        order = place_order(user)
        response = client.put(
            f"/orders/{order['id']}/status", json={"order_status": "shipped"}, headers=admin.headers
        )
        assert response.status_code == 200
        assert response.json()["order_status"] == "shipped"

    def test_unknown_status_value(self, client, user, place_order):
        order = place_order(user)
        response = client.put(
            f"/orders/{order['id']}/status", json={"order_status": "lost"}, headers=user.headers
        )
        assert response.status_code == 400

    def test_empty_update(self, client, user, place_order):
        order = place_order(user)
        response = client.put(f"/orders/{order['id']}/status", json={}, headers=user.headers)
        assert response.status_code == 400

    def test_items_and_total_cannot_be_edited(self, client, user, place_order):
        order = place_order(user, quantity=2)
        response = client.put(
            f"/orders/{order['id']}/status",
            json={"order_status": "processing", "total_amount": 0, "items": []},
            headers=user.headers,
        )
        assert response.status_code == 200
        assert response.json()["total_amount"] == 20
        assert len(response.json()["items"]) == 1
