"""
Reset the database and load demo vendors, buyers and products.

Every seeded account uses the password `password123`. Development use only.

Usage:
    python seed_data.py
"""

import logging
import sys

from bson import ObjectId

from database import utc_now
from main import get_password_hash
from schemas import Product, User

logger = logging.getLogger("seed_data")

DEMO_PASSWORD = "password123"
COLLECTIONS = ["user", "product", "order", "customer", "buyerinteraction", "autopost"]

VENDORS = [
    {"email": "vendor1@example.com", "name": "John Smith", "business_name": "Tech Solutions Ltd",
     "phone": "+234-801-234-5678", "about": "Leading provider of technology solutions and gadgets"},
    {"email": "vendor2@example.com", "name": "Sarah Johnson", "business_name": "Fashion Hub",
     "phone": "+234-802-345-6789", "about": "Premium fashion and accessories for modern lifestyle"},
    {"email": "vendor3@example.com", "name": "Mike Wilson", "business_name": "Home & Garden Store",
     "phone": "+234-803-456-7890", "about": "Everything you need for your home and garden"},
    {"email": "vendor4@example.com", "name": "Lisa Brown", "business_name": "Healthy Foods Market",
     "phone": "+234-804-567-8901", "about": "Organic and healthy food products"},
]

BUYERS = [
    {"email": "buyer1@example.com", "name": "Alice Cooper", "phone": "+234-805-678-9012",
     "address": "123 Main Street, Lagos"},
    {"email": "buyer2@example.com", "name": "Bob Davis", "phone": "+234-806-789-0123",
     "address": "456 Oak Avenue, Abuja"},
    {"email": "buyer3@example.com", "name": "Carol White", "phone": "+234-807-890-1234",
     "address": "789 Pine Road, Port Harcourt"},
]

# (vendor index, product fields)
PRODUCTS = [
    (0, {"name": "Wireless Bluetooth Headphones", "price": 15000, "category": "electronics", "featured": True,
         "stock": 50, "description": "High-quality wireless headphones with noise cancellation"}),
    (0, {"name": "Smartphone Stand", "price": 3500, "category": "electronics", "stock": 100,
         "description": "Adjustable phone stand for desk use"}),
    (1, {"name": "Designer Handbag", "price": 25000, "category": "fashion", "featured": True, "stock": 20,
         "description": "Elegant leather handbag for professional women"}),
    (1, {"name": "Casual T-Shirt", "price": 5000, "category": "fashion", "stock": 75,
         "description": "Comfortable cotton t-shirt in various colors"}),
    (2, {"name": "Indoor Plant Pot", "price": 2500, "category": "home", "stock": 30,
         "description": "Ceramic pot perfect for indoor plants"}),
    (2, {"name": "LED Table Lamp", "price": 8000, "category": "home", "featured": True, "stock": 25,
         "description": "Modern LED lamp with adjustable brightness"}),
    (3, {"name": "Organic Honey", "price": 4500, "category": "food", "stock": 40,
         "description": "Pure organic honey from local beekeepers"}),
    (3, {"name": "Mixed Nuts Pack", "price": 3000, "category": "food", "featured": True, "stock": 60,
         "description": "Healthy mix of almonds, cashews, and walnuts"}),
]


def reset_database(database) -> dict:
    for name in COLLECTIONS:
        database[name].delete_many({})
    logger.info("Cleared %s", ", ".join(COLLECTIONS))

    password = get_password_hash(DEMO_PASSWORD)
    now = utc_now()

    vendor_ids = []
    for fields in VENDORS:
        _id = ObjectId()
        user = User(password=password, role="vendor", is_verified=True, catalog_id=str(_id), **fields)
        database["user"].insert_one({"_id": _id, **user.model_dump(exclude_none=True),
                                     "created_at": now, "updated_at": now})
        vendor_ids.append(str(_id))

    for fields in BUYERS:
        user = User(password=password, role="buyer", is_verified=True, **fields)
        database["user"].insert_one({**user.model_dump(exclude_none=True), "created_at": now, "updated_at": now})

    for vendor_index, fields in PRODUCTS:
        product = Product(vendor_id=vendor_ids[vendor_index], **fields)
        database["product"].insert_one({**product.model_dump(), "created_at": now, "updated_at": now})

    counts = {"vendors": len(VENDORS), "buyers": len(BUYERS), "products": len(PRODUCTS)}
    logger.info("Seeded %s (password for every account: %s)", counts, DEMO_PASSWORD)
    return counts


if __name__ == "__main__":
    from database import db

    if db is None:
        logger.error("DATABASE_URL / DATABASE_NAME are not set")
        sys.exit(1)
    reset_database(db)
    for v in VENDORS:
        print(f"vendor  {v['business_name']:<24} {v['email']}")
    for b in BUYERS:
        print(f"buyer   {b['name']:<24} {b['email']}")
