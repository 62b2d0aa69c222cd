import os

# must be set before main builds its CryptContext
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("CATALOG_BASE_URL", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mongo(monkeypatch):
    mock_db = mongomock.MongoClient()["storefront_test"]
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(main, "db", mock_db)
    monkeypatch.setattr(main.limiter, "enabled", False)
    return mock_db


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(email, otp, name=None, purpose="verification"):
        sent.append({"email": email, "otp": otp, "name": name, "purpose": purpose})
        return True

    monkeypatch.setattr(main, "send_otp_email", fake_send)
    return sent


@pytest.fixture
def uploads(monkeypatch):
    calls = []

    def fake_upload(payload, folder=None):
        calls.append({"payload": payload, "folder": folder})
        return f"https://cdn.example.com/img/{len(calls)}.jpg"

    monkeypatch.setattr(main, "upload_image", fake_upload)
    return calls


@pytest.fixture
def client(mongo, outbox, uploads):
    with TestClient(main.app) as c:
        yield c


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register_vendor(client, outbox, email="vendor@example.com", business_name="Ada's Kitchen"):
    res = client.post("/api/auth/register", json={
        "name": "Ada Obi",
        "email": email,
        "phone_number": "+2348012345678",
        "business_name": business_name,
        "password": "secret123",
    })
    assert res.status_code == 200, res.text
    code = [m for m in outbox if m["email"] == email][-1]["otp"]
    res = client.post("/api/auth/verify-otp", json={"email": email, "otp": code})
    assert res.status_code == 200, res.text
    data = res.json()
    return data["token"], data["user"]


def signup_buyer(client, email="buyer@example.com"):
    res = client.post("/api/auth/signup", json={
        "name": "Bola Ade",
        "email": email,
        "password": "secret123",
        "phone": "+2348099999999",
    })
    assert res.status_code == 201, res.text
    data = res.json()
    return data["token"], data["user"]


def create_product(client, token, **fields):
    body = {"name": "Jollof Tray", "price": 4500, "category": "food"}
    body.update(fields)
    res = client.post("/api/products", json=body, headers=auth(token))
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def vendor(client, outbox):
    return register_vendor(client, outbox)


@pytest.fixture
def other_vendor(client, outbox):
    return register_vendor(client, outbox, email="rival@example.com", business_name="Rival Foods")


@pytest.fixture
def buyer(client):
    return signup_buyer(client)


def order_body(vendor_id, product, **overrides):
    body = {
        "vendor_id": vendor_id,
        "buyer_name": "Chidi",
        "buyer_phone": "+2348030000000",
        "buyer_email": "chidi@example.com",
        "items": [{"product_id": product["id"], "name": product["name"], "price": product["price"], "quantity": 2}],
        "delivery_address": "12 Allen Avenue, Ikeja",
    }
    body.update(overrides)
    return body
