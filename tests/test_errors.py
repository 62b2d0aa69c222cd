from bson import ObjectId
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.util import get_remote_address

import main
from conftest import auth


def test_rate_limit_returns_429(client, monkeypatch):
    strict = Limiter(key_func=get_remote_address, default_limits=["2 per minute"])
    monkeypatch.setattr(main.app.state, "limiter", strict)

    codes = [client.get("/api/test").status_code for _ in range(3)]
    assert codes == [200, 200, 429]


def test_unhandled_error_is_a_generic_500(mongo, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("connection reset by peer")

    monkeypatch.setattr(main, "get_documents", broken)
    with TestClient(main.app, raise_server_exceptions=False) as c:
        res = c.get("/api/buyer/products")
    assert res.status_code == 500
    assert res.json() == {"detail": "Server error"}


def test_unconfigured_database(client, monkeypatch):
    monkeypatch.setattr(main, "db", None)
    token = main.create_access_token({"sub": str(ObjectId()), "role": "vendor", "email": "v@example.com"})

    responses = [
        client.post("/api/auth/login", json={"email": "v@example.com", "password": "secret123"}),
        client.get("/api/buyer/products"),
        client.get("/api/products", headers=auth(token)),
        client.get("/api/auth/me", headers=auth(token)),
        client.get(f"/api/buyer/products/{ObjectId()}", headers=auth(token)),
    ]
    for res in responses:
        assert res.status_code == 500
        assert res.json()["detail"] == "Database not configured"


def test_email_taken_between_check_and_insert(client, mongo, monkeypatch):
    insert = main.create_document

    def racing_insert(collection_name, data):
        if collection_name == "user":
            mongo["user"].insert_one({"email": data["email"], "role": "buyer", "name": "Twin"})
        return insert(collection_name, data)

    monkeypatch.setattr(main, "create_document", racing_insert)

    res = client.post("/api/auth/signup", json={
        "name": "Bola Ade", "email": "bola@example.com", "password": "secret123",
    })
    assert res.status_code == 400
    assert res.json()["detail"] == "Email already registered"

    res = client.post("/api/auth/register", json={
        "name": "Ada Obi", "email": "ada@example.com", "phone_number": "+2348012345678",
        "business_name": "Ada's Kitchen", "password": "secret123",
    })
    assert res.status_code == 400
    assert res.json()["detail"] == "Email already registered"

    assert mongo["user"].count_documents({"email": "bola@example.com"}) == 1
    assert mongo["user"].count_documents({"email": "ada@example.com"}) == 1
