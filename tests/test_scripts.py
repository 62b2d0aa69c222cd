import mongomock
import pytest
from bson import ObjectId

import main
import seed_data
from migrate_users import migrate_legacy_accounts


@pytest.fixture
def legacy_db():
    database = mongomock.MongoClient()["legacy"]
    database["vendors"].insert_many([
        {"_id": ObjectId(), "name": "Ada Obi", "email": "Ada@Example.com", "password": "hash-a",
         "phoneNumber": "+2348012345678", "businessName": "Ada's Kitchen", "catalogId": "ada-kitchen",
         "isVerified": True, "otp": "123456"},
        {"_id": ObjectId(), "name": "Tunde", "email": "tunde@example.com", "password": "hash-t",
         "phoneNumber": "+2348000000000", "businessName": "Tunde Tailors", "isVerified": False},
    ])
    database["buyers"].insert_many([
        {"_id": ObjectId(), "name": "Bola", "email": "bola@example.com", "password": "hash-b",
         "phone": "+2348099999999", "address": "Yaba"},
        # same person also signed up as a vendor: the vendor account wins
        {"_id": ObjectId(), "name": "Ada", "email": "ada@example.com", "password": "hash-x"},
    ])
    return database


def test_migration_preserves_ids_and_catalog(legacy_db):
    counts = migrate_legacy_accounts(legacy_db)
    assert counts == {"vendors": 2, "buyers": 1, "skipped": 1}

    ada_legacy = legacy_db["vendors"].find_one({"businessName": "Ada's Kitchen"})
    ada = legacy_db["user"].find_one({"_id": ada_legacy["_id"]})
    assert ada["email"] == "ada@example.com"
    assert ada["role"] == "vendor"
    assert ada["catalog_id"] == "ada-kitchen"
    assert ada["business_name"] == "Ada's Kitchen"
    assert "otp" not in ada

    tunde = legacy_db["user"].find_one({"email": "tunde@example.com"})
    assert tunde["catalog_id"] == str(tunde["_id"])
    assert tunde["is_verified"] is False

    bola = legacy_db["user"].find_one({"email": "bola@example.com"})
    assert bola["role"] == "buyer"
    assert bola["is_verified"] is True
    assert bola["address"] == "Yaba"


def test_migration_is_idempotent(legacy_db):
    migrate_legacy_accounts(legacy_db)
    counts = migrate_legacy_accounts(legacy_db)
    assert counts == {"vendors": 0, "buyers": 0, "skipped": 4}
    assert legacy_db["user"].count_documents({}) == 3


def test_seeded_accounts_can_log_in(client, mongo):
    mongo["order"].insert_one({"vendor_id": "stale"})
    counts = seed_data.reset_database(mongo)
    assert counts == {"vendors": 4, "buyers": 3, "products": 8}
    assert mongo["order"].count_documents({}) == 0

    vendors = list(mongo["user"].find({"role": "vendor"}))
    assert all(v["catalog_id"] == str(v["_id"]) for v in vendors)
    assert mongo["product"].count_documents({"featured": True}) == 4

    res = client.post("/api/auth/login", json={"email": "vendor1@example.com", "password": seed_data.DEMO_PASSWORD})
    assert res.status_code == 200
    assert res.json()["user"]["business_name"] == "Tech Solutions Ltd"

    browse = client.get("/api/buyer/products", params={"category": "food"}).json()
    assert {p["vendor"]["business_name"] for p in browse} == {"Healthy Foods Market"}
    assert main.verify_password(seed_data.DEMO_PASSWORD, vendors[0]["password"])
