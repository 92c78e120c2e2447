import os
from unittest import mock

import mongomock
import pytest

os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "nutri_store_test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("RESEND_API_KEY", None)

with mock.patch("pymongo.MongoClient", mongomock.MongoClient):
    import database
    import mailer as mailer_module
    import main

from fastapi.testclient import TestClient

PRODUCER = {
    "username": "ravi",
    "email": "ravi@example.com",
    "password": "secret123",
    "mobileNumber": "9000000001",
    "userType": "Producer",
    "name": "Ravi Kumar",
    "address": "Rampur, Kanpur",
    "kisanCard": "KC-1001",
    "farmerId": "F-2001",
    "bank": {
        "accountNumber": "1234567890",
        "bankName": "State Bank",
        "branch": "Kanpur",
        "ifsc": "SBIN0000001",
        "accountHolderName": "Ravi Kumar",
        "upiId": "ravi@sbi",
    },
}

CONSUMER = {
    "username": "asha",
    "email": "asha@example.com",
    "password": "secret123",
    "mobileNumber": "9000000002",
    "userType": "Consumer",
    "name": "Asha Verma",
}

PRODUCT = {
    "itemName": "Tomatoes",
    "price": 40.0,
    "location": "Nashik",
    "unit": "per kg",
    "quantity": 10,
    "harvestCondition": "harvested",
    "deliveryTime": 2,
    "expiryDate": "2030-01-01T00:00:00",
}


@pytest.fixture(autouse=True)
def clean_db():
    yield
    for name in database.db.list_collection_names():
        database.db[name].delete_many({})


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def fake_send(to, subject, text):
        sent.append({"to": to, "subject": subject, "text": text})
        return True

    monkeypatch.setattr(mailer_module.mailer, "send", fake_send)
    return sent


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c


def register(client, base, **overrides):
    payload = {**base, **overrides}
    r = client.post("/api/signup", json=payload)
    assert r.status_code == 201, r.text
    r = client.post("/api/login", json={
        "email": payload["email"],
        "password": payload["password"],
        "userType": payload["userType"],
    })
    assert r.status_code == 200, r.text
    data = r.json()
    user = database.db["user"].find_one({"username": payload["username"]})
    return {
        "id": user["id"],
        "username": payload["username"],
        "email": payload["email"],
        "password": payload["password"],
        "userType": payload["userType"],
        "refreshToken": data["refreshToken"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


@pytest.fixture
def producer(client):
    return register(client, PRODUCER)


@pytest.fixture
def consumer(client):
    return register(client, CONSUMER)


@pytest.fixture
def make_product(client, producer):
    def _make(owner=None, **overrides):
        r = client.post("/api/submit-product", json={**PRODUCT, **overrides}, headers=(owner or producer)["headers"])
        assert r.status_code == 201, r.text
        return r.json()["product"]
    return _make


@pytest.fixture
def place(client, consumer):
    def _place(lines, buyer=None, total=None, **extra):
        cart = [{"_id": product["id"], "quantity": qty, "price": product["price"]} for product, qty in lines]
        if total is None:
            total = sum(product["price"] * qty for product, qty in lines)
        payload = {"cart": cart, "deliveryAddress": "12, Main Road, Pune - 411001", "paymentMethod": "cod", "total": total, **extra}
        return client.post("/api/place-order", json=payload, headers=(buyer or consumer)["headers"])
    return _place
