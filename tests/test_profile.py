import database
from conftest import CONSUMER, PRODUCER


def test_profile_hides_secrets(client, consumer):
    r = client.get("/api/profile", headers=consumer["headers"])
    assert r.status_code == 200
    data = r.json()
    assert data["username"] == "asha"
    assert "passwordHash" not in data
    assert "refreshToken" not in data
    assert 0 < data["profile"]["completion"] < 100


def test_update_profile_recomputes_completion(client, consumer):
    before = client.get("/api/profile", headers=consumer["headers"]).json()["profile"]["completion"]
    r = client.put("/api/profile", json={
        "address": "Pune", "occupation": "Teacher", "photo": "/Uploads/asha.png", "kisanCard": "ignored",
    }, headers=consumer["headers"])
    assert r.status_code == 200
    data = client.get("/api/profile", headers=consumer["headers"]).json()
    assert data["profile"]["completion"] == 100 > before
    assert data.get("kisanCard") is None
    assert database.db["profile"].find_one({"userId": consumer["id"]})["completion"] == 100


def test_bank_details_are_producer_only(client, producer, consumer):
    bank = {**PRODUCER["bank"], "accountNumber": "999"}
    assert client.put("/api/update-bank-details", json=bank, headers=consumer["headers"]).status_code == 403

    r = client.put("/api/update-bank-details", json=bank, headers=producer["headers"])
    assert r.status_code == 200
    user = database.db["user"].find_one({"id": producer["id"]})
    assert user["bank"]["accountNumber"] == "999"
    assert user["verified"] is False
    profile = client.get("/api/profile", headers=producer["headers"]).json()["profile"]
    assert profile["verified"] is False
    assert profile["bankUpdatedAt"]


def test_bank_details_require_every_field(client, producer):
    bank = {**PRODUCER["bank"], "ifsc": ""}
    assert client.put("/api/update-bank-details", json=bank, headers=producer["headers"]).status_code == 400


def test_change_password(client, consumer):
    r = client.put("/api/change-password", json={"currentPassword": "wrong", "newPassword": "newsecret"}, headers=consumer["headers"])
    assert r.status_code == 401
    r = client.put("/api/change-password", json={"currentPassword": CONSUMER["password"], "newPassword": "newsecret"}, headers=consumer["headers"])
    assert r.status_code == 200

    old = client.post("/api/login", json={"email": CONSUMER["email"], "password": CONSUMER["password"], "userType": "Consumer"})
    new = client.post("/api/login", json={"email": CONSUMER["email"], "password": "newsecret", "userType": "Consumer"})
    assert old.status_code == 401
    assert new.status_code == 200
    assert client.post("/api/refresh-token", json={"token": consumer["refreshToken"]}).status_code == 403


def test_settings_round_trip(client, consumer):
    assert client.get("/api/settings", headers=consumer["headers"]).json() == {"notifications": True, "language": "en"}
    r = client.put("/api/settings", json={"language": "hi"}, headers=consumer["headers"])
    assert r.json()["language"] == "hi"
    assert r.json()["notifications"] is True
    assert client.put("/api/settings", json={}, headers=consumer["headers"]).status_code == 400


def test_delete_account_cascades(client, producer, consumer, make_product, place):
    product = make_product()
    order_id = place([(product, 1)]).json()["orders"][0]
    client.post(f"/api/chat-messages/{order_id}", json={"message": "hi"}, headers=consumer["headers"])

    r = client.delete("/api/delete-account", headers=producer["headers"])
    assert r.status_code == 200
    for name in ("product", "order", "notification", "message"):
        assert database.db[name].count_documents({}) == 0
    assert database.db["user"].count_documents({"id": producer["id"]}) == 0
    assert database.db["profile"].count_documents({"userId": producer["id"]}) == 0
    assert client.get("/api/profile", headers=producer["headers"]).status_code == 401
    assert client.get("/api/profile", headers=consumer["headers"]).status_code == 200


def test_health_endpoints(client):
    assert client.get("/").json() == {"message": "Nutri Store API running"}
    assert client.get("/test").json()["database"] == "✅ Connected"


def test_startup_creates_indexes(client):
    assert "username_1" in database.db["user"].index_information()
    assert "orderId_1_audience_1" in database.db["notification"].index_information()


def test_error_responses_share_one_shape(client, consumer):
    missing = client.get("/api/products/64b7f0c2a1b2c3d4e5f60718")
    assert missing.status_code == 404
    assert missing.json() == {"message": "Product not found", "error": "Product not found"}
    denied = client.get("/api/profile")
    assert denied.status_code == 401
    assert set(denied.json()) == {"message", "error"}
    invalid = client.post("/api/place-order", json={}, headers=consumer["headers"])
    assert invalid.status_code == 400
    assert set(invalid.json()) == {"message", "error"}
