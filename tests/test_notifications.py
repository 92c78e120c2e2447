import database
from conftest import CONSUMER, register


def _first_order(place, product, qty=1):
    return place([(product, qty)]).json()["orders"][0]


def test_notifications_are_scoped_by_role(client, producer, consumer, make_product, place):
    product = make_product()
    order_id = _first_order(place, product)

    seller_view = client.get("/api/notifications", headers=producer["headers"]).json()
    assert len(seller_view) == 1
    assert seller_view[0]["orderId"] == order_id
    assert seller_view[0]["audience"] == "seller"
    assert client.get("/api/notifications", headers=consumer["headers"]).json() == []

    client.post(f"/api/order-action/{order_id}", json={"action": "accepted"}, headers=producer["headers"])
    buyer_view = client.get("/api/notifications", headers=consumer["headers"]).json()
    assert len(buyer_view) == 1
    assert buyer_view[0]["audience"] == "buyer"
    assert "accepted" in buyer_view[0]["message"]


def test_mark_read_leaves_order_untouched(client, producer, make_product, place):
    product = make_product()
    order_id = _first_order(place, product)
    note = client.get("/api/notifications", headers=producer["headers"]).json()[0]

    r = client.post(f"/api/notification-action/{note['id']}", json={"action": "read"}, headers=producer["headers"])
    assert r.status_code == 200
    assert database.db["notification"].find_one({"id": note["id"]})["status"] == "read"
    assert database.db["order"].find_one({"id": order_id})["status"] == "pending"


def test_accept_through_notification_runs_order_workflow(client, producer, make_product, place):
    product = make_product(quantity=10)
    order_id = _first_order(place, product, qty=3)
    note = client.get("/api/notifications", headers=producer["headers"]).json()[0]

    r = client.post(f"/api/notification-action/{note['id']}", json={"action": "accepted"}, headers=producer["headers"])
    assert r.status_code == 200
    assert database.db["order"].find_one({"id": order_id})["status"] == "accepted"
    assert database.db["product"].find_one({"id": product["id"]})["quantity"] == 7
    assert database.db["notification"].find_one({"id": note["id"]})["status"] == "accepted"

    again = client.post(f"/api/notification-action/{note['id']}", json={"action": "accepted"}, headers=producer["headers"])
    assert again.status_code == 409
    assert database.db["product"].find_one({"id": product["id"]})["quantity"] == 7


def test_buyer_cannot_decide_through_own_notification(client, producer, consumer, make_product, place):
    product = make_product()
    order_id = _first_order(place, product)
    client.post(f"/api/order-action/{order_id}", json={"action": "accepted"}, headers=producer["headers"])
    note = client.get("/api/notifications", headers=consumer["headers"]).json()[0]

    r = client.post(f"/api/notification-action/{note['id']}", json={"action": "declined"}, headers=consumer["headers"])
    assert r.status_code == 400
    r = client.post(f"/api/notification-action/{note['id']}", json={"action": "read"}, headers=consumer["headers"])
    assert r.status_code == 200


def test_notification_actions_require_ownership(client, producer, consumer, make_product, place):
    product = make_product()
    _first_order(place, product)
    note = client.get("/api/notifications", headers=producer["headers"]).json()[0]

    r = client.post(f"/api/notification-action/{note['id']}", json={"action": "read"}, headers=consumer["headers"])
    assert r.status_code == 404
    assert client.delete(f"/api/notification-action/{note['id']}", headers=consumer["headers"]).status_code == 404
    r = client.post(f"/api/notification-action/{note['id']}", json={"action": "archive"}, headers=producer["headers"])
    assert r.status_code == 400


def test_delete_notification(client, producer, make_product, place):
    product = make_product()
    _first_order(place, product)
    note = client.get("/api/notifications", headers=producer["headers"]).json()[0]
    assert client.delete(f"/api/notification-action/{note['id']}", headers=producer["headers"]).status_code == 200
    assert client.get("/api/notifications", headers=producer["headers"]).json() == []


def test_accept_recreates_deleted_seller_notification(client, producer, make_product, place):
    product = make_product()
    order_id = _first_order(place, product)
    database.db["notification"].delete_many({})
    client.post(f"/api/order-action/{order_id}", json={"action": "accepted"}, headers=producer["headers"])
    assert database.db["notification"].count_documents({"orderId": order_id}) == 2


def test_chat_between_buyer_and_seller(client, producer, consumer, make_product, place, outbox):
    product = make_product()
    order_id = _first_order(place, product)

    r = client.post(f"/api/chat-messages/{order_id}", json={"message": "When can you deliver?"}, headers=consumer["headers"])
    assert r.status_code == 201
    assert r.json()["receiver"] == "ravi"
    assert outbox[-1]["subject"] == "New Message Received"
    assert outbox[-1]["to"] == producer["email"]

    r = client.post("/api/send-message", json={
        "orderId": order_id, "sender": "ravi", "receiver": "asha", "message": "Tomorrow morning",
    }, headers=producer["headers"])
    assert r.status_code == 201

    thread = client.get(f"/api/chat-messages/{order_id}", headers=producer["headers"]).json()
    assert [m["message"] for m in thread] == ["When can you deliver?", "Tomorrow morning"]


def test_send_message_checks_parties(client, producer, consumer, make_product, place):
    product = make_product()
    order_id = _first_order(place, product)
    base = {"orderId": order_id, "message": "hello"}

    r = client.post("/api/send-message", json={**base, "sender": "ravi", "receiver": "asha"}, headers=consumer["headers"])
    assert r.status_code == 403
    r = client.post("/api/send-message", json={**base, "sender": "asha", "receiver": "someone"}, headers=consumer["headers"])
    assert r.status_code == 400
    r = client.post("/api/send-message", json={**base, "sender": "asha"}, headers=consumer["headers"])
    assert r.status_code == 400


def test_strangers_cannot_read_chat(client, make_product, place):
    product = make_product()
    order_id = _first_order(place, product)
    stranger = register(client, CONSUMER, username="kiran", email="kiran@example.com", mobileNumber="9666666666")
    assert client.get(f"/api/chat-messages/{order_id}", headers=stranger["headers"]).status_code == 403
    assert client.get("/api/chat-messages/bad-id", headers=stranger["headers"]).status_code == 400


def test_chat_email_respects_notification_setting(client, producer, consumer, make_product, place, outbox):
    product = make_product()
    order_id = _first_order(place, product)
    client.put("/api/settings", json={"notifications": False}, headers=producer["headers"])
    outbox.clear()
    client.post(f"/api/chat-messages/{order_id}", json={"message": "hi"}, headers=consumer["headers"])
    assert outbox == []
