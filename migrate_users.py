"""
Collapse the legacy `vendors` / `buyers` collections into the unified `user` collection.

Legacy documents keep their `_id`, so products and orders that reference them stay valid.
Accounts whose email already exists in `user` are skipped, which makes the migration
safe to run more than once.

Usage:
    python migrate_users.py
"""

import logging
import sys

from schemas import normalize_email

logger = logging.getLogger("migrate_users")

LEGACY_VENDORS = "vendors"
LEGACY_BUYERS = "buyers"


def vendor_to_user(doc: dict) -> dict:
    return {
        "_id": doc["_id"],
        "email": normalize_email(doc.get("email")),
        "password": doc.get("password"),
        "role": "vendor",
        "name": (doc.get("name") or "").strip(),
        "phone": doc.get("phoneNumber"),
        "is_active": True,
        "business_name": doc.get("businessName"),
        "logo": doc.get("logo"),
        "about": doc.get("about") or "",
        "is_verified": bool(doc.get("isVerified", False)),
        # catalog ids are public links; never regenerate an existing one
        "catalog_id": doc.get("catalogId") or str(doc["_id"]),
        "created_at": doc.get("createdAt"),
        "updated_at": doc.get("updatedAt"),
    }


def buyer_to_user(doc: dict) -> dict:
    return {
        "_id": doc["_id"],
        "email": normalize_email(doc.get("email")),
        "password": doc.get("password"),
        "role": "buyer",
        "name": (doc.get("name") or "").strip(),
        "phone": doc.get("phone"),
        "is_active": True,
        "about": "",
        "is_verified": True,
        "address": doc.get("address"),
        "created_at": doc.get("createdAt"),
        "updated_at": doc.get("updatedAt"),
    }


def _migrate(database, source: str, convert, counts: dict, key: str):
    users = database["user"]
    for legacy in database[source].find({}):
        email = normalize_email(legacy.get("email"))
        if not email or users.find_one({"$or": [{"email": email}, {"_id": legacy["_id"]}]}):
            logger.info("User with email %s already exists, skipping", email or "<missing>")
            counts["skipped"] += 1
            continue
        users.insert_one({k: v for k, v in convert(legacy).items() if v is not None})
        counts[key] += 1
        logger.info("Migrated %s: %s", key[:-1], email)


def migrate_legacy_accounts(database) -> dict:
    counts = {"vendors": 0, "buyers": 0, "skipped": 0}
    _migrate(database, LEGACY_VENDORS, vendor_to_user, counts, "vendors")
    _migrate(database, LEGACY_BUYERS, buyer_to_user, counts, "buyers")
    return counts


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    from database import db, ensure_indexes

    if db is None:
        logger.error("DATABASE_URL / DATABASE_NAME are not set")
        sys.exit(1)
    result = migrate_legacy_accounts(db)
    ensure_indexes(db)
    logger.info("Migration completed: %s", result)
