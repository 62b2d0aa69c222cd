from datetime import datetime, timedelta

from bson import ObjectId

import database
import main
from conftest import auth, create_product
from database import utc_now
from schemas import Customer


def test_track_interest_keeps_one_entry_per_product(client, mongo, vendor):
    token, user = vendor
    jollof = create_product(client, token)
    suya = create_product(client, token, name="Suya")
    body = {"phone_number": "+2348055555555", "vendor_id": user["id"], "product_id": jollof["id"]}

    assert client.post("/api/automation/track-interest", json=body).status_code == 200
    client.post("/api/automation/track-interest", json=body)
    client.post("/api/automation/track-interest", json={**body, "product_id": suya["id"]})

    customers = list(mongo["customer"].find({"vendor_id": user["id"]}))
    assert len(customers) == 1
    entries = customers[0]["interested_products"]
    assert sorted(e["product_id"] for e in entries) == sorted([jollof["id"], suya["id"]])
    assert all(e["status"] == "interested" for e in entries)
    assert Customer(**customers[0]).total_purchases == 0


def test_track_interest_product_must_belong_to_vendor(client, vendor, other_vendor):
    token, _ = vendor
    _, rival = other_vendor
    product = create_product(client, token)
    res = client.post("/api/automation/track-interest", json={
        "phone_number": "1", "vendor_id": rival["id"], "product_id": product["id"],
    })
    assert res.status_code == 404


def test_follow_up_customers(client, mongo, vendor):
    token, user = vendor
    product = create_product(client, token)
    client.post("/api/automation/track-interest", json={
        "phone_number": "+2348055555555", "vendor_id": user["id"], "product_id": product["id"],
    })
    stale = utc_now() - timedelta(days=3)
    mongo["customer"].insert_one({
        "vendor_id": user["id"], "phone_number": "+2340000000000", "name": "", "last_interaction": stale,
        "interested_products": [{"product_id": product["id"], "timestamp": stale, "status": "interested"}],
        "total_purchases": 0, "is_active": True,
    })

    res = client.get("/api/automation/follow-up-customers", headers=auth(token))
    assert res.status_code == 200
    data = res.json()
    assert [c["phone_number"] for c in data] == ["+2348055555555"]
    assert data[0]["interested_products"][0]["product"]["name"] == "Jollof Tray"


def test_auto_post_settings_default_and_upsert(client, mongo, vendor, other_vendor):
    token, user = vendor
    rival_token, _ = other_vendor
    assert client.get("/api/automation/auto-post/settings", headers=auth(token)).json() == {"is_enabled": False}

    mine = create_product(client, token)
    theirs = create_product(client, rival_token)

    res = client.post("/api/automation/auto-post/setup", headers=auth(token), json={
        "is_enabled": True, "post_time": "08:30", "selected_products": [theirs["id"]],
    })
    assert res.status_code == 400

    for post_time in ["08:30", "19:45"]:
        res = client.post("/api/automation/auto-post/setup", headers=auth(token), json={
            "is_enabled": True, "post_time": post_time, "selected_products": [mine["id"], mine["id"]],
        })
        assert res.status_code == 200
    assert mongo["autopost"].count_documents({"vendor_id": user["id"]}) == 1

    settings = client.get("/api/automation/auto-post/settings", headers=auth(token)).json()
    assert settings["is_enabled"] is True
    assert settings["post_time"] == "19:45"
    assert settings["post_frequency"] == "daily"
    assert settings["selected_products"] == [mine["id"]]
    assert [p["id"] for p in settings["products"]] == [mine["id"]]

    bad = client.post("/api/automation/auto-post/setup", headers=auth(token), json={"post_time": "25:00"})
    assert bad.status_code == 400


def test_generate_card(client, vendor, other_vendor):
    token, user = vendor
    rival_token, _ = other_vendor
    product = create_product(client, token, description="Smoky party jollof")

    res = client.post(f"/api/automation/generate-card/{product['id']}", headers=auth(token))
    assert res.status_code == 200
    card = res.json()
    assert card["catalog_url"].endswith(f"/catalog/{user['catalog_id']}")
    assert "₦4,500" in card["text"]
    assert "Smoky party jollof" in card["text"]
    assert card["whatsapp_url"].startswith("https://wa.me/?text=")
    assert card["qr_code"].startswith("data:image/png;base64,")

    assert client.post(f"/api/automation/generate-card/{product['id']}", headers=auth(rival_token)).status_code == 404
    assert client.post(f"/api/automation/generate-card/{ObjectId()}", headers=auth(token)).status_code == 404


def test_format_price():
    assert main.format_price(4500) == "₦4,500"
    assert main.format_price(19.5, "usd") == "$19.50"
    assert main.format_price(10, "KES") == "KES 10"


def test_track_interest_refreshes_entry_in_place(mongo, monkeypatch):
    database.ensure_indexes(mongo)
    vendor_id, product_id = str(ObjectId()), str(ObjectId())
    earlier = datetime(2026, 1, 5, 9, 0, 0)

    monkeypatch.setattr(main, "utc_now", lambda: earlier)
    main.track_customer_interest(vendor_id, "+2348055555555", product_id)
    mongo["customer"].update_one({}, {"$set": {"interested_products.0.status": "abandoned"}})

    later = earlier + timedelta(hours=3)
    monkeypatch.setattr(main, "utc_now", lambda: later)
    main.track_customer_interest(vendor_id, "+2348055555555", product_id)

    customer = mongo["customer"].find_one({"vendor_id": vendor_id})
    assert customer["interested_products"] == [{"product_id": product_id, "timestamp": later, "status": "interested"}]
    assert customer["last_interaction"] == later


class _ConcurrentWriter:
    """Customer collection where another request lands right after the first lookup."""

    def __init__(self, collection, competing_doc):
        self._collection = collection
        self._competing_doc = competing_doc

    def update_one(self, *args, **kwargs):
        res = self._collection.update_one(*args, **kwargs)
        if self._competing_doc is not None:
            self._collection.insert_one(self._competing_doc)
            self._competing_doc = None
        return res

    def __getattr__(self, name):
        return getattr(self._collection, name)


def test_concurrent_interest_keeps_a_single_entry(mongo, monkeypatch):
    database.ensure_indexes(mongo)
    vendor_id, product_id = str(ObjectId()), str(ObjectId())
    stamp = utc_now() - timedelta(minutes=1)
    customers = _ConcurrentWriter(mongo["customer"], {
        "vendor_id": vendor_id, "phone_number": "+2348055555555", "name": "", "last_interaction": stamp,
        "interested_products": [{"product_id": product_id, "timestamp": stamp, "status": "interested"}],
        "total_purchases": 0, "is_active": True,
    })

    class RacingDatabase:
        def __getitem__(self, name):
            return customers if name == "customer" else mongo[name]

    monkeypatch.setattr(main, "db", RacingDatabase())
    main.track_customer_interest(vendor_id, "+2348055555555", product_id)

    docs = list(mongo["customer"].find({"vendor_id": vendor_id}))
    assert len(docs) == 1
    assert [e["product_id"] for e in docs[0]["interested_products"]] == [product_id]
    assert docs[0]["interested_products"][0]["timestamp"] > stamp
