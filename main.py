import logging
import os
import re
import secrets
import time
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import quote

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from database import db, create_document, get_documents, ensure_indexes, utc_now
from schemas import (
    AutoPost,
    BuyerInteraction,
    InteractionAction,
    InterestedProduct,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    PostFrequency,
    Product,
    User,
    normalize_email,
    sanitize_input,
)
from media import ImageUploadError, upload_image
from notifications import send_otp_email

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("storefront")

# Security settings
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkeychange")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))

OTP_LENGTH = 6
VERIFY_OTP_TTL = timedelta(minutes=5)
RESET_OTP_TTL = timedelta(minutes=10)
FOLLOW_UP_WINDOW = timedelta(days=2)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[os.getenv("RATE_LIMIT", "100 per 15 minutes")],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    yield


app = FastAPI(title="Vendor Storefront API", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(ImageUploadError)
async def image_upload_exception_handler(request: Request, exc: ImageUploadError):
    return JSONResponse(status_code=500, content={"detail": "Image upload failed"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


# Request models
class VendorRegisterBody(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    phone_number: str = Field(..., min_length=10)
    business_name: str = Field(..., min_length=2)
    password: str = Field(..., min_length=6)

    @field_validator("name", "phone_number", "business_name", mode="before")
    @classmethod
    def _clean(cls, v):
        return sanitize_input(v)


class BuyerSignupBody(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("name", "phone", "address", mode="before")
    @classmethod
    def _clean(cls, v):
        return sanitize_input(v)


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailBody(BaseModel):
    email: EmailStr


class OTPBody(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=OTP_LENGTH, max_length=OTP_LENGTH)


class ResetPasswordBody(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=OTP_LENGTH, max_length=OTP_LENGTH)
    new_password: str = Field(..., min_length=6)


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=0)
    description: str = Field("", max_length=500)
    image: Optional[str] = None
    category: str = "general"
    currency: str = "NGN"
    payment_link: Optional[str] = None
    stock: int = Field(0, ge=0)
    featured: bool = False

    @field_validator("name", "description", "category", mode="before")
    @classmethod
    def _clean(cls, v):
        return sanitize_input(v)

    @field_validator("category", mode="after")
    @classmethod
    def _default_category(cls, v):
        return v or "general"


class VendorProfileIn(BaseModel):
    name: str = Field(..., min_length=1)
    business_name: str = Field(..., min_length=1, max_length=100)
    about: str = ""
    logo: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name", "business_name", "about", "phone", mode="before")
    @classmethod
    def _clean(cls, v):
        return sanitize_input(v)


class OrderIn(BaseModel):
    vendor_id: str
    buyer_name: str = Field(..., min_length=1)
    buyer_phone: str = Field(..., min_length=1)
    buyer_email: Optional[EmailStr] = None
    items: List[OrderItem] = Field(..., min_length=1)
    total: Optional[float] = Field(None, ge=0)
    delivery_address: str = Field(..., min_length=1)
    notes: Optional[str] = None

    @field_validator("buyer_name", "buyer_phone", "delivery_address", "notes", mode="before")
    @classmethod
    def _clean(cls, v):
        return sanitize_input(v)


class OrderStatusIn(BaseModel):
    status: OrderStatus
    payment_status: Optional[PaymentStatus] = None


class TrackOrderBody(BaseModel):
    phone: Optional[str] = None
    order_id: Optional[str] = None


class BuyerInterestBody(BaseModel):
    product_id: str
    buyer_phone: str = Field(..., min_length=1)


class InteractionIn(BaseModel):
    vendor_id: str
    product_id: Optional[str] = None
    action: InteractionAction


class InterestIn(BaseModel):
    phone_number: str = Field(..., min_length=1)
    product_id: str
    vendor_id: str


class AutoPostIn(BaseModel):
    is_enabled: bool = False
    post_time: str = Field("09:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    selected_products: List[str] = Field(default_factory=list)
    post_frequency: PostFrequency = "daily"


# Utils

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # stored value is not a recognised hash (e.g. legacy plaintext code)
        return False


def generate_otp() -> str:
    return f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"


def otp_is_live(expires_at: Optional[datetime], now: datetime) -> bool:
    """A code is usable strictly before its expiry instant."""
    return expires_at is not None and now < expires_at


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def issue_token(user: dict) -> str:
    return create_access_token({"sub": str(user["_id"]), "role": user["role"], "email": user["email"]})


def require_db():
    if db is None:
        raise HTTPException(500, "Database not configured")


def parse_object_id(value: Optional[str], detail: str = "Not found", status_code: int = 404) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=status_code, detail=detail)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def serialize_doc(doc: Optional[dict]):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return doc


def user_summary(user: dict) -> dict:
    data = {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "phone": user.get("phone"),
    }
    if user.get("role") == "vendor":
        data.update({
            "business_name": user.get("business_name"),
            "catalog_id": user.get("catalog_id"),
            "logo": user.get("logo"),
            "about": user.get("about", ""),
            "is_verified": user.get("is_verified", False),
        })
    else:
        data["address"] = user.get("address")
    return data


def vendor_public(vendor: dict) -> dict:
    return {
        "id": str(vendor["_id"]),
        "name": vendor.get("name"),
        "business_name": vendor.get("business_name"),
        "phone": vendor.get("phone"),
        "logo": vendor.get("logo"),
        "about": vendor.get("about", ""),
        "catalog_id": vendor.get("catalog_id"),
    }


def find_vendor(vendor_id: str) -> Optional[dict]:
    try:
        oid = ObjectId(vendor_id)
    except (InvalidId, TypeError):
        return None
    return db["user"].find_one({"_id": oid, "role": "vendor"})


def attach_vendors(docs: List[dict]) -> List[dict]:
    """Embed a public vendor summary in each product/order under `vendor`."""
    ids = []
    for d in docs:
        vid = d.get("vendor_id")
        if vid and ObjectId.is_valid(vid):
            ids.append(ObjectId(vid))
    vendors = {}
    if ids:
        for v in db["user"].find({"_id": {"$in": ids}, "role": "vendor"}):
            vendors[str(v["_id"])] = vendor_public(v)
    out = []
    for d in docs:
        item = serialize_doc(d)
        item["vendor"] = vendors.get(d.get("vendor_id"))
        out.append(item)
    return out


def _user_from_token(token: str) -> dict:
    require_db()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    try:
        user = db["user"].find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        user = None
    if not user:
        raise credentials_exception
    return user


async def get_current_user(token: str = Depends(oauth2_scheme)):
    return _user_from_token(token)


async def get_optional_buyer(token: Optional[str] = Depends(optional_oauth2_scheme)):
    if not token:
        return None
    try:
        user = _user_from_token(token)
    except HTTPException as exc:
        if exc.status_code != status.HTTP_401_UNAUTHORIZED:
            raise
        # stale or foreign tokens just mean an anonymous caller
        return None
    return user if user.get("role") == "buyer" else None


async def require_vendor(user=Depends(get_current_user)):
    if user.get("role") != "vendor":
        raise HTTPException(status_code=403, detail="Vendor access required")
    return user


async def require_buyer(user=Depends(get_current_user)):
    if user.get("role") != "buyer":
        raise HTTPException(status_code=403, detail="Buyer access required")
    return user


def record_interaction(buyer_id: str, vendor_id: str, action: str, product_id: Optional[str] = None):
    interaction = BuyerInteraction(
        buyer_id=buyer_id, vendor_id=vendor_id, product_id=product_id, action=action, timestamp=utc_now()
    )
    return create_document("buyerinteraction", interaction)


def track_customer_interest(vendor_id: str, phone_number: str, product_id: str):
    """Refresh one product's interest entry on the (vendor, phone) customer record."""
    now = utc_now()
    key = {"vendor_id": vendor_id, "phone_number": phone_number}
    entry = InterestedProduct(product_id=product_id, timestamp=now)
    touched = {"last_interaction": now, "updated_at": now}

    for attempt in range(2):
        res = db["customer"].update_one(
            {**key, "interested_products.product_id": product_id},
            {"$set": {
                "interested_products.$.timestamp": entry.timestamp,
                "interested_products.$.status": entry.status,
                **touched,
            }},
        )
        if res.matched_count:
            return
        try:
            # only pushes while the product is absent; (vendor_id, phone_number) is unique
            db["customer"].update_one(
                {**key, "interested_products.product_id": {"$ne": product_id}},
                {
                    "$push": {"interested_products": entry.model_dump()},
                    "$set": touched,
                    "$setOnInsert": {"name": "", "total_purchases": 0, "is_active": True, "created_at": now},
                },
                upsert=True,
            )
            return
        except DuplicateKeyError:
            # a concurrent call added the entry first; refresh it instead
            if attempt:
                raise
            logger.debug("Interest for %s on %s raced, retrying", phone_number, product_id)


def record_purchase(vendor_id: str, phone_number: str, name: str):
    now = utc_now()
    db["customer"].update_one(
        {"vendor_id": vendor_id, "phone_number": phone_number},
        {
            "$set": {"name": name, "last_interaction": now, "updated_at": now},
            "$inc": {"total_purchases": 1},
            "$setOnInsert": {"interested_products": [], "is_active": True, "created_at": now},
        },
        upsert=True,
    )


def place_order(payload: OrderIn, buyer: Optional[dict]) -> dict:
    vendor = find_vendor(payload.vendor_id)
    if not vendor:
        raise HTTPException(400, "Invalid vendor")

    # items are stored as submitted; later catalog edits never touch them
    total = payload.total
    if total is None:
        total = round(sum(it.price * it.quantity for it in payload.items), 2)

    order = Order(
        vendor_id=str(vendor["_id"]),
        buyer_id=str(buyer["_id"]) if buyer else None,
        buyer_name=payload.buyer_name,
        buyer_phone=payload.buyer_phone,
        buyer_email=normalize_email(payload.buyer_email) or None,
        items=payload.items,
        total=total,
        delivery_address=payload.delivery_address,
        notes=payload.notes,
    )
    order_id = create_document("order", order)

    record_purchase(order.vendor_id, order.buyer_phone, order.buyer_name)
    if buyer:
        record_interaction(str(buyer["_id"]), order.vendor_id, "PlaceOrder")

    logger.info("Order %s placed with vendor %s (total %s)", order_id, order.vendor_id, total)
    return db["order"].find_one({"_id": ObjectId(order_id)})


def sales_in_window(vendor_id: str, start: datetime, end: Optional[datetime] = None) -> dict:
    """Sum non-cancelled order totals with start <= created_at < end."""
    created = {"$gte": start}
    if end is not None:
        created["$lt"] = end
    pipeline = [
        {"$match": {"vendor_id": vendor_id, "status": {"$ne": "cancelled"}, "created_at": created}},
        {"$group": {"_id": None, "total": {"$sum": "$total"}, "orders": {"$sum": 1}}},
    ]
    res = list(db["order"].aggregate(pipeline))
    if res:
        return {"total": round(res[0].get("total", 0), 2), "order_count": res[0].get("orders", 0)}
    return {"total": 0, "order_count": 0}


CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$", "GBP": "£", "EUR": "€"}


def format_price(price: float, currency: str = "NGN") -> str:
    amount = f"{price:,.2f}"
    if amount.endswith(".00"):
        amount = amount[:-3]
    symbol = CURRENCY_SYMBOLS.get((currency or "").upper())
    return f"{symbol}{amount}" if symbol else f"{currency} {amount}"


def qr_data_url(data: str) -> str:
    import base64
    import io

    import qrcode

    img = qrcode.make(data)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    b64 = base64.b64encode(buf.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{b64}"


# Health and DB test
@app.get("/")
def read_root():
    return {"message": "Vendor Storefront API ready"}


@app.get("/api/test")
def api_test():
    return {"message": "Server is working!"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth routes
@app.post("/api/auth/register")
@app.post("/api/auth/vendor/register")
def register_vendor(body: VendorRegisterBody):
    require_db()
    email = normalize_email(body.email)
    if db["user"].find_one({"email": email}):
        raise HTTPException(400, "Email already registered")

    otp = generate_otp()
    vendor_id = ObjectId()
    vendor = User(
        email=email,
        password=get_password_hash(body.password),
        role="vendor",
        name=body.name,
        phone=body.phone_number,
        business_name=body.business_name,
        is_verified=False,
        catalog_id=str(vendor_id),
        otp=get_password_hash(otp),
        otp_expiry=utc_now() + VERIFY_OTP_TTL,
    )
    doc = vendor.model_dump(exclude_none=True)
    doc["_id"] = vendor_id
    try:
        create_document("user", doc)
    except DuplicateKeyError:
        raise HTTPException(400, "Email already registered")

    logger.info("Vendor %s registered, awaiting email verification", vendor_id)
    if not send_otp_email(email, otp, body.name, purpose="verification"):
        raise HTTPException(500, "Failed to send verification email")

    return {"message": "Registration successful. Please check your email for verification code.", "email": email}


@app.post("/api/auth/signup", status_code=201)
@app.post("/api/auth/buyer/signup", status_code=201)
def signup_buyer(body: BuyerSignupBody):
    require_db()
    email = normalize_email(body.email)
    if db["user"].find_one({"email": email}):
        raise HTTPException(400, "Email already registered")

    buyer = User(
        email=email,
        password=get_password_hash(body.password),
        role="buyer",
        name=body.name,
        phone=body.phone,
        address=body.address,
        is_verified=True,
    )
    try:
        buyer_id = create_document("user", buyer.model_dump(exclude_none=True))
    except DuplicateKeyError:
        raise HTTPException(400, "Email already registered")

    user = db["user"].find_one({"_id": ObjectId(buyer_id)})
    return {"token": issue_token(user), "user": user_summary(user)}


@app.post("/api/auth/verify-otp")
@app.post("/api/auth/vendor/verify-otp")
def verify_otp(body: OTPBody):
    require_db()
    vendor = db["user"].find_one({"email": normalize_email(body.email), "role": "vendor"})
    if not vendor:
        raise HTTPException(400, "Vendor not found")
    if vendor.get("is_verified"):
        raise HTTPException(400, "Account already verified")
    if not verify_password(body.otp, vendor.get("otp")):
        raise HTTPException(400, "Invalid OTP")
    if not otp_is_live(vendor.get("otp_expiry"), utc_now()):
        raise HTTPException(400, "OTP expired")

    db["user"].update_one(
        {"_id": vendor["_id"]},
        {"$set": {"is_verified": True, "updated_at": utc_now()}, "$unset": {"otp": "", "otp_expiry": ""}},
    )
    vendor = db["user"].find_one({"_id": vendor["_id"]})
    logger.info("Vendor %s verified", vendor["_id"])
    return {"token": issue_token(vendor), "user": user_summary(vendor)}


@app.post("/api/auth/resend-otp")
def resend_otp(body: EmailBody):
    require_db()
    email = normalize_email(body.email)
    vendor = db["user"].find_one({"email": email, "role": "vendor"})
    if not vendor:
        raise HTTPException(400, "Vendor not found")
    if vendor.get("is_verified"):
        raise HTTPException(400, "Account already verified")

    otp = generate_otp()
    db["user"].update_one(
        {"_id": vendor["_id"]},
        {"$set": {"otp": get_password_hash(otp), "otp_expiry": utc_now() + VERIFY_OTP_TTL, "updated_at": utc_now()}},
    )
    if not send_otp_email(email, otp, vendor.get("name"), purpose="verification"):
        raise HTTPException(500, "Failed to send verification email")
    return {"message": "New verification code sent to your email"}


@app.post("/api/auth/login")
def login(body: LoginBody):
    require_db()
    user = db["user"].find_one({"email": normalize_email(body.email)})
    if not user or not verify_password(body.password, user.get("password")):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if user.get("role") == "vendor" and not user.get("is_verified"):
        raise HTTPException(status_code=400, detail="Please verify your email first")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account is disabled")
    return {"token": issue_token(user), "user": user_summary(user)}


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return {"user": user_summary(user)}


@app.post("/api/auth/forgot-password")
def forgot_password(body: EmailBody):
    require_db()
    user = db["user"].find_one({"email": normalize_email(body.email)})
    if not user:
        raise HTTPException(404, "No account found with this email address")

    otp = generate_otp()
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"reset_otp": get_password_hash(otp), "reset_otp_expires": utc_now() + RESET_OTP_TTL}},
    )
    if not send_otp_email(user["email"], otp, user.get("name"), purpose="password_reset"):
        raise HTTPException(500, "Failed to send OTP. Please try again.")
    return {"message": "OTP sent to your email address"}


def _user_with_live_reset_otp(email: str, otp: str) -> dict:
    user = db["user"].find_one({"email": normalize_email(email)})
    if (
        not user
        or not otp_is_live(user.get("reset_otp_expires"), utc_now())
        or not verify_password(otp, user.get("reset_otp"))
    ):
        raise HTTPException(400, "Invalid or expired OTP")
    return user


@app.post("/api/auth/verify-reset-otp")
def verify_reset_otp(body: OTPBody):
    require_db()
    _user_with_live_reset_otp(body.email, body.otp)
    return {"message": "OTP verified successfully"}


@app.post("/api/auth/reset-password")
def reset_password(body: ResetPasswordBody):
    require_db()
    user = _user_with_live_reset_otp(body.email, body.otp)
    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password": get_password_hash(body.new_password), "updated_at": utc_now()},
            "$unset": {"reset_otp": "", "reset_otp_expires": ""},
        },
    )
    logger.info("Password reset for user %s", user["_id"])
    return {"message": "Password reset successfully"}


@app.post("/api/auth/logout")
def logout():
    return {"message": "Logged out successfully"}


# Product endpoints (vendor, owner-scoped)
@app.get("/api/products")
def list_my_products(vendor=Depends(require_vendor)):
    docs = get_documents(
        "product", {"vendor_id": str(vendor["_id"]), "is_active": True}, sort=[("created_at", -1)]
    )
    return [serialize_doc(d) for d in docs]


@app.post("/api/products", status_code=201)
def create_product(body: ProductIn, vendor=Depends(require_vendor)):
    image_url = upload_image(body.image) if body.image else None
    product = Product(
        name=body.name,
        price=body.price,
        currency=body.currency,
        description=body.description,
        image=image_url,
        category=body.category,
        payment_link=body.payment_link,
        vendor_id=str(vendor["_id"]),
        featured=body.featured,
        stock=body.stock,
    )
    _id = create_document("product", product)
    return serialize_doc(db["product"].find_one({"_id": ObjectId(_id)}))


@app.get("/api/products/{product_id}")
def get_my_product(product_id: str, vendor=Depends(require_vendor)):
    oid = parse_object_id(product_id, "Product not found")
    doc = db["product"].find_one({"_id": oid, "vendor_id": str(vendor["_id"])})
    if not doc:
        raise HTTPException(404, "Product not found")
    return serialize_doc(doc)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductIn, vendor=Depends(require_vendor)):
    oid = parse_object_id(product_id, "Product not found")
    owner_filter = {"_id": oid, "vendor_id": str(vendor["_id"])}
    current = db["product"].find_one(owner_filter)
    if not current:
        raise HTTPException(404, "Product not found")

    image_url = current.get("image")
    if body.image and body.image != current.get("image"):
        image_url = upload_image(body.image)

    updates = body.model_dump(exclude={"image"})
    updates.update({"image": image_url, "updated_at": utc_now()})
    doc = db["product"].find_one_and_update(
        owner_filter, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise HTTPException(404, "Product not found")
    return serialize_doc(doc)


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, vendor=Depends(require_vendor)):
    oid = parse_object_id(product_id, "Product not found")
    res = db["product"].update_one(
        {"_id": oid, "vendor_id": str(vendor["_id"])},
        {"$set": {"is_active": False, "updated_at": utc_now()}},
    )
    if res.matched_count == 0:
        raise HTTPException(404, "Product not found")
    return {"message": "Product deleted successfully"}


# Vendor profile endpoints
@app.put("/api/vendors/profile")
def update_vendor_profile(body: VendorProfileIn, vendor=Depends(require_vendor)):
    logo_url = vendor.get("logo")
    if body.logo and body.logo != vendor.get("logo"):
        logo_url = upload_image(body.logo, folder="vendor-logos")

    updates = {
        "name": body.name,
        "business_name": body.business_name,
        "about": body.about or "",
        "logo": logo_url,
        "updated_at": utc_now(),
    }
    if body.phone:
        updates["phone"] = body.phone
    db["user"].update_one({"_id": vendor["_id"]}, {"$set": updates})
    return {"vendor": vendor_public(db["user"].find_one({"_id": vendor["_id"]}))}


@app.get("/api/vendors/{catalog_id}")
def get_vendor_catalog(catalog_id: str):
    require_db()
    query = {"role": "vendor", "catalog_id": catalog_id}
    if ObjectId.is_valid(catalog_id):
        query = {"role": "vendor", "$or": [{"catalog_id": catalog_id}, {"_id": ObjectId(catalog_id)}]}
    vendor = db["user"].find_one(query)
    if not vendor:
        raise HTTPException(404, "Vendor not found")

    products = get_documents(
        "product", {"vendor_id": str(vendor["_id"]), "is_active": True}, sort=[("created_at", -1)]
    )
    return {"vendor": vendor_public(vendor), "products": [serialize_doc(p) for p in products]}


# Orders (vendor side + public creation)
@app.get("/api/orders")
def list_orders(vendor=Depends(require_vendor)):
    docs = get_documents("order", {"vendor_id": str(vendor["_id"])}, sort=[("created_at", -1)])
    return [serialize_doc(d) for d in docs]


@app.get("/api/orders/recent")
def recent_orders(vendor=Depends(require_vendor)):
    docs = get_documents("order", {"vendor_id": str(vendor["_id"])}, limit=10, sort=[("created_at", -1)])
    return [serialize_doc(d) for d in docs]


@app.post("/api/orders", status_code=201)
def create_order(body: OrderIn, buyer=Depends(get_optional_buyer)):
    require_db()
    return serialize_doc(place_order(body, buyer))


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: OrderStatusIn, vendor=Depends(require_vendor)):
    oid = parse_object_id(order_id, "Order not found")
    updates = {"status": body.status, "updated_at": utc_now()}
    if body.payment_status:
        updates["payment_status"] = body.payment_status
    doc = db["order"].find_one_and_update(
        {"_id": oid, "vendor_id": str(vendor["_id"])},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise HTTPException(404, "Order not found")
    return serialize_doc(doc)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, vendor=Depends(require_vendor)):
    oid = parse_object_id(order_id, "Order not found")
    doc = db["order"].find_one({"_id": oid, "vendor_id": str(vendor["_id"])})
    if not doc:
        raise HTTPException(404, "Order not found")
    return serialize_doc(doc)


# Buyer browse & ordering
BROWSE_SORTS = {
    "newest": [("created_at", -1)],
    "price-low": [("price", 1)],
    "price-high": [("price", -1)],
    "popular": [("views", -1)],
}


@app.get("/api/buyer/vendors")
def browse_vendors(search: Optional[str] = None):
    require_db()
    query = {"role": "vendor", "is_verified": True}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"business_name": pattern}, {"name": pattern}]
    return [vendor_public(v) for v in get_documents("user", query, limit=20)]


@app.get("/api/buyer/products")
def browse_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: str = "newest",
):
    require_db()
    query = {"is_active": True}
    if search:
        query["name"] = {"$regex": re.escape(search), "$options": "i"}
    if category:
        query["category"] = category
    if min_price is not None or max_price is not None:
        price = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        query["price"] = price

    docs = get_documents("product", query, limit=50, sort=BROWSE_SORTS.get(sort, BROWSE_SORTS["newest"]))
    return attach_vendors(docs)


@app.get("/api/buyer/products/featured")
def featured_products():
    require_db()
    docs = get_documents("product", {"is_active": True, "featured": True}, limit=10, sort=[("views", -1)])
    return attach_vendors(docs)


@app.get("/api/buyer/products/{product_id}")
def view_product(product_id: str, buyer=Depends(get_optional_buyer)):
    require_db()
    oid = parse_object_id(product_id, "Product not found")
    doc = db["product"].find_one_and_update(
        {"_id": oid, "is_active": True},
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise HTTPException(404, "Product not found")
    if buyer:
        record_interaction(str(buyer["_id"]), doc["vendor_id"], "ViewProduct", product_id=str(doc["_id"]))
    return attach_vendors([doc])[0]


@app.post("/api/buyer/orders", status_code=201)
def buyer_create_order(body: OrderIn, buyer=Depends(get_optional_buyer)):
    require_db()
    order = place_order(body, buyer)
    return {"message": "Order created successfully", "order_id": str(order["_id"])}


@app.post("/api/buyer/track-order")
def track_order(body: TrackOrderBody):
    require_db()
    if body.order_id:
        if not ObjectId.is_valid(body.order_id):
            return []
        query = {"_id": ObjectId(body.order_id)}
    elif body.phone:
        query = {"buyer_phone": body.phone}
    else:
        raise HTTPException(400, "Phone number or order ID required")
    return attach_vendors(get_documents("order", query, sort=[("created_at", -1)]))


@app.post("/api/buyer/track-interest")
def buyer_track_interest(body: BuyerInterestBody):
    require_db()
    oid = parse_object_id(body.product_id, "Product not found")
    product = db["product"].find_one({"_id": oid})
    if not product:
        raise HTTPException(404, "Product not found")
    track_customer_interest(product["vendor_id"], body.buyer_phone, str(product["_id"]))
    return {"message": "Interest tracked successfully"}


@app.post("/api/buyer/interactions", status_code=201)
def log_interaction(body: InteractionIn, buyer=Depends(require_buyer)):
    if not find_vendor(body.vendor_id):
        raise HTTPException(400, "Invalid vendor")
    _id = record_interaction(str(buyer["_id"]), body.vendor_id, body.action, product_id=body.product_id)
    return {"id": _id}


@app.get("/api/buyer/my-orders")
def my_orders(buyer=Depends(require_buyer)):
    query = {"$or": [{"buyer_id": str(buyer["_id"])}, {"buyer_email": buyer["email"]}]}
    return attach_vendors(get_documents("order", query, sort=[("created_at", -1)]))


# Vendor dashboard
@app.get("/api/dashboard/stats")
def dashboard_stats(vendor=Depends(require_vendor)):
    vendor_id = str(vendor["_id"])
    now = utc_now()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total_orders = db["order"].count_documents({"vendor_id": vendor_id})
    views = list(db["product"].aggregate([
        {"$match": {"vendor_id": vendor_id}},
        {"$group": {"_id": None, "views": {"$sum": "$views"}}},
    ]))
    total_views = views[0].get("views", 0) if views else 0
    conversion_rate = round(total_orders / total_views * 100, 2) if total_views else 0

    return {
        "today_sales": sales_in_window(vendor_id, today)["total"],
        "week_sales": sales_in_window(vendor_id, now - timedelta(days=7))["total"],
        "month_sales": sales_in_window(vendor_id, now - timedelta(days=30))["total"],
        "pending_orders": db["order"].count_documents({"vendor_id": vendor_id, "status": "pending"}),
        "total_orders": total_orders,
        "total_products": db["product"].count_documents({"vendor_id": vendor_id, "is_active": True}),
        "total_customers": len(db["order"].distinct("buyer_phone", {"vendor_id": vendor_id})),
        "total_views": total_views,
        "conversion_rate": conversion_rate,
    }


@app.get("/api/dashboard/sales")
def dashboard_sales(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    vendor=Depends(require_vendor),
):
    vendor_id = str(vendor["_id"])
    end = to_naive_utc(end) or utc_now()
    start = to_naive_utc(start) or end - timedelta(days=30)
    if start > end:
        raise HTTPException(400, "start must be before end")

    summary = sales_in_window(vendor_id, start, end)
    orders = db["order"].find(
        {"vendor_id": vendor_id, "status": {"$ne": "cancelled"}, "created_at": {"$gte": start, "$lt": end}},
        {"total": 1, "created_at": 1},
    )
    daily = {}
    for o in orders:
        day = o["created_at"].date().isoformat()
        daily[day] = round(daily.get(day, 0) + o.get("total", 0), 2)

    return {
        "start": start,
        "end": end,
        "total": summary["total"],
        "order_count": summary["order_count"],
        "daily": [{"date": d, "total": daily[d]} for d in sorted(daily)],
    }


# Automation
@app.post("/api/automation/track-interest")
def automation_track_interest(body: InterestIn):
    require_db()
    oid = parse_object_id(body.product_id, "Product not found")
    if not db["product"].find_one({"_id": oid, "vendor_id": body.vendor_id}):
        raise HTTPException(404, "Product not found")
    track_customer_interest(body.vendor_id, body.phone_number, body.product_id)
    return {"message": "Interest tracked"}


@app.get("/api/automation/follow-up-customers")
def follow_up_customers(vendor=Depends(require_vendor)):
    customers = get_documents(
        "customer",
        {
            "vendor_id": str(vendor["_id"]),
            "last_interaction": {"$gte": utc_now() - FOLLOW_UP_WINDOW},
            "interested_products.status": "interested",
        },
        sort=[("last_interaction", -1)],
    )

    product_ids = {
        ObjectId(p["product_id"])
        for c in customers
        for p in c.get("interested_products", [])
        if ObjectId.is_valid(p.get("product_id"))
    }
    products = {}
    if product_ids:
        for p in db["product"].find({"_id": {"$in": list(product_ids)}}):
            products[str(p["_id"])] = serialize_doc(p)

    out = []
    for c in customers:
        item = serialize_doc(c)
        item["interested_products"] = [
            {**entry, "product": products.get(entry.get("product_id"))}
            for entry in c.get("interested_products", [])
        ]
        out.append(item)
    return out


@app.post("/api/automation/auto-post/setup")
def setup_auto_post(body: AutoPostIn, vendor=Depends(require_vendor)):
    vendor_id = str(vendor["_id"])
    selected = list(dict.fromkeys(body.selected_products))
    if selected:
        oids = [parse_object_id(pid, "Invalid product selection", 400) for pid in selected]
        owned = db["product"].count_documents({"_id": {"$in": oids}, "vendor_id": vendor_id})
        if owned != len(oids):
            raise HTTPException(400, "Invalid product selection")

    settings = AutoPost(
        vendor_id=vendor_id,
        is_enabled=body.is_enabled,
        post_time=body.post_time,
        selected_products=selected,
        post_frequency=body.post_frequency,
    )
    now = utc_now()
    fields = settings.model_dump(exclude={"vendor_id", "last_posted"})
    fields["updated_at"] = now
    doc = db["autopost"].find_one_and_update(
        {"vendor_id": vendor_id},
        {"$set": fields, "$setOnInsert": {"last_posted": None, "created_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc)


@app.get("/api/automation/auto-post/settings")
def auto_post_settings(vendor=Depends(require_vendor)):
    doc = db["autopost"].find_one({"vendor_id": str(vendor["_id"])})
    if not doc:
        return {"is_enabled": False}
    data = serialize_doc(doc)
    oids = [ObjectId(pid) for pid in doc.get("selected_products", []) if ObjectId.is_valid(pid)]
    data["products"] = [serialize_doc(p) for p in db["product"].find({"_id": {"$in": oids}})] if oids else []
    return data


@app.post("/api/automation/generate-card/{product_id}")
def generate_card(product_id: str, request: Request, vendor=Depends(require_vendor)):
    oid = parse_object_id(product_id, "Product not found")
    product = db["product"].find_one({"_id": oid, "vendor_id": str(vendor["_id"])})
    if not product:
        raise HTTPException(404, "Product not found")

    base_url = (os.getenv("CATALOG_BASE_URL") or str(request.base_url)).rstrip("/")
    catalog_url = f"{base_url}/catalog/{vendor.get('catalog_id')}"
    text = (
        f"🛍️ *{product['name']}*\n\n"
        f"💰 {format_price(product['price'], product.get('currency', 'NGN'))}\n\n"
        f"{product.get('description', '')}\n\n"
        f"📱 Message me to order!\n{catalog_url}"
    )
    return {
        "text": text,
        "image": product.get("image"),
        "catalog_url": catalog_url,
        "whatsapp_url": f"https://wa.me/?text={quote(text)}",
        "qr_code": qr_data_url(catalog_url),
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
