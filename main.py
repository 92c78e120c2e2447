import logging
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, BackgroundTasks, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import (
    OTP_EXPIRE_MINUTES,
    consume_otp,
    discard_otp,
    get_current_user,
    get_password_hash,
    issue_otp,
    issue_session,
    refresh_access_token,
    require_user_type,
    verify_password,
)
from database import db, ensure_indexes, get_by_id, insert_with_id, list_many, require_oid, serialize_doc, utcnow
from mailer import local_timestamp, mailer, notify_user
from orders import (
    ORDER_ACTIONS,
    confirm_order,
    notification_query_for,
    order_action,
    order_bill,
    order_summary,
    orders_query_for,
    owns_notification,
    place_order,
    producer_metrics,
)
from schemas import BankDetails, Cart, HarvestCondition, Message, Product, Profile, Unit, User, UserType

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("nutri_store")

HIDDEN_USER_FIELDS = ("passwordHash", "refreshToken")
PROFILE_FIELDS = ("name", "email", "mobileNumber", "address", "occupation", "photo")
PRODUCER_PROFILE_FIELDS = ("kisanCard", "farmerId", "bank")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    if mailer.configured:
        mailer.verify_in_background()
    else:
        mailer.verify()
    yield


app = FastAPI(title="Nutri Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ------------------------- Error responses -------------------------


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail, "error": exc.detail}, headers=getattr(exc, "headers", None))


def _summarize_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    summary = _summarize_errors(exc.errors())
    return JSONResponse(status_code=400, content={"message": f"Invalid request: {summary}", "error": summary})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error", "error": str(exc)})

# ------------------------- Profile helpers -------------------------


def profile_completion(user: dict) -> int:
    fields = PROFILE_FIELDS + (PRODUCER_PROFILE_FIELDS if user.get("userType") == "Producer" else ())
    filled = sum(1 for f in fields if user.get(f))
    return round(100 * filled / len(fields))


def sync_profile(user: dict, **extra):
    fields = {k: user.get(k) for k in ("name", "address", "occupation", "photo")}
    fields.update(completion=profile_completion(user), updatedAt=utcnow(), **extra)
    db["profile"].update_one({"userId": user["id"]}, {"$set": fields}, upsert=True)

# ------------------------- Auth endpoints -------------------------


class SignupBody(BaseModel):
    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)
    mobileNumber: str = Field(..., min_length=1)
    userType: UserType
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    occupation: Optional[str] = None
    kisanCard: Optional[str] = None
    farmerId: Optional[str] = None
    bank: Optional[BankDetails] = None


class LoginBody(BaseModel):
    email: str
    password: str
    userType: str


class RefreshBody(BaseModel):
    token: Optional[str] = None


class OtpRequestBody(BaseModel):
    email: str
    userType: Optional[UserType] = None


class OtpVerifyBody(BaseModel):
    email: str
    otp: str
    userType: str


class ActionOtpBody(BaseModel):
    otp: str


@app.post("/api/signup", status_code=201)
def signup(body: SignupBody):
    email = body.email.lower()
    existing = db["user"].find_one({"$or": [
        {"username": body.username},
        {"email": email, "userType": body.userType},
        {"mobileNumber": body.mobileNumber, "userType": body.userType},
    ]})
    if existing:
        raise HTTPException(status_code=400, detail="User already exists")
    is_producer = body.userType == "Producer"
    if is_producer and not (body.kisanCard and body.farmerId and body.bank):
        raise HTTPException(status_code=400, detail="Producers must provide kisanCard, farmerId and bank details")

    now = utcnow()
    user_doc = User(
        username=body.username,
        email=email,
        passwordHash=get_password_hash(body.password),
        mobileNumber=body.mobileNumber,
        userType=body.userType,
        name=body.name,
        address=body.address,
        occupation=body.occupation,
        kisanCard=body.kisanCard if is_producer else None,
        farmerId=body.farmerId if is_producer else None,
        bank=body.bank if is_producer else None,
        verified=not is_producer,
        createdAt=now,
        updatedAt=now,
    ).model_dump()
    try:
        user_id = insert_with_id("user", user_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")
    insert_with_id("profile", Profile(
        userId=user_id,
        name=body.name,
        address=body.address,
        occupation=body.occupation,
        completion=profile_completion(user_doc),
        verified=not is_producer,
        updatedAt=now,
    ).model_dump())
    logger.info("New %s account %s", body.userType, body.username)
    return {"message": "Signup successful"}


@app.post("/api/login")
def login(body: LoginBody):
    user = db["user"].find_one({"email": body.email.lower(), "userType": body.userType})
    if not user or not verify_password(body.password, user.get("passwordHash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"message": "Login successful", **issue_session(user)}


@app.post("/api/refresh-token")
def refresh_token(body: RefreshBody):
    return {"token": refresh_access_token(body.token)}


@app.post("/api/send-otp")
def send_otp(body: OtpRequestBody):
    query = {"email": body.email.lower()}
    if body.userType:
        query["userType"] = body.userType
    matches = list_many("user", query)
    if not matches:
        raise HTTPException(status_code=404, detail="User not found")
    if len(matches) > 1:
        raise HTTPException(status_code=400, detail="userType is required for this email")
    user = matches[0]
    code = issue_otp(user, "login")
    if not mailer.send(user["email"], "OTP Login", f"Your OTP is {code}. It expires in {OTP_EXPIRE_MINUTES} minutes."):
        discard_otp(user, "login")
        raise HTTPException(status_code=500, detail="Failed to send OTP")
    return {"message": "OTP sent"}


@app.post("/api/verify-otp")
def verify_otp(body: OtpVerifyBody):
    user = db["user"].find_one({"email": body.email.lower(), "userType": body.userType})
    if not user or not consume_otp(user, "login", body.otp):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    return {"message": "OTP login successful", **issue_session(user)}


@app.post("/api/send-action-otp")
def send_action_otp(user=Depends(get_current_user)):
    code = issue_otp(user, "action")
    text = f"Your OTP for action verification is {code}. It expires in {OTP_EXPIRE_MINUTES} minutes."
    if not mailer.send(user["email"], "Nutri Store Action Verification OTP", text):
        discard_otp(user, "action")
        raise HTTPException(status_code=500, detail="Failed to send OTP")
    return {"message": "OTP sent successfully to your registered email."}


@app.post("/api/verify-action-otp")
def verify_action_otp(body: ActionOtpBody, user=Depends(get_current_user)):
    if not consume_otp(user, "action", body.otp):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP")
    return {"message": "Action verified", "verified": True}

# ------------------------- Profile & account -------------------------


class ProfileUpdateBody(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    occupation: Optional[str] = None
    photo: Optional[str] = None
    kisanCard: Optional[str] = None
    farmerId: Optional[str] = None


class ChangePasswordBody(BaseModel):
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6)


class SettingsBody(BaseModel):
    notifications: Optional[bool] = None
    language: Optional[str] = None


@app.get("/api/profile")
def get_profile(user=Depends(get_current_user)):
    data = serialize_doc(user, hidden=HIDDEN_USER_FIELDS)
    if user.get("userType") == "Producer":
        metrics = producer_metrics(user)
        db["user"].update_one({"id": user["id"]}, {"$set": metrics})
        data.update(metrics)
    profile = db["profile"].find_one({"userId": user["id"]}) or {}
    data["profile"] = {
        "completion": profile_completion(user),
        "verified": profile.get("verified", user.get("verified", False)),
        "verifiedAt": serialize_doc({"v": profile.get("verifiedAt")})["v"],
        "bankUpdatedAt": serialize_doc({"v": profile.get("bankUpdatedAt")})["v"],
    }
    return data


@app.put("/api/profile")
def update_profile(body: ProfileUpdateBody, user=Depends(get_current_user)):
    updates = body.model_dump(exclude_none=True)
    if user.get("userType") != "Producer":
        updates.pop("kisanCard", None)
        updates.pop("farmerId", None)
    if updates:
        updates["updatedAt"] = utcnow()
        db["user"].update_one({"id": user["id"]}, {"$set": updates})
    sync_profile({**user, **updates})
    return {"message": "Profile updated successfully"}


@app.put("/api/update-bank-details")
def update_bank_details(body: BankDetails, user=Depends(require_user_type("Producer"))):
    now = utcnow()
    db["user"].update_one({"id": user["id"]}, {"$set": {"bank": body.model_dump(), "verified": False, "updatedAt": now}})
    sync_profile({**user, "bank": body.model_dump()}, verified=False, verifiedAt=None, bankUpdatedAt=now)
    return {"message": "Bank details updated successfully"}


@app.put("/api/change-password")
def change_password(body: ChangePasswordBody, user=Depends(get_current_user)):
    if not verify_password(body.currentPassword, user.get("passwordHash", "")):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    db["user"].update_one(
        {"id": user["id"]},
        {"$set": {"passwordHash": get_password_hash(body.newPassword), "refreshToken": None, "updatedAt": utcnow()}},
    )
    return {"message": "Password changed successfully"}


@app.delete("/api/delete-account")
def delete_account(user=Depends(get_current_user)):
    uid = user["id"]
    order_ids = [o["id"] for o in list_many("order", {"$or": [{"sellerId": uid}, {"buyerId": uid}]})]
    product_ids = [p["id"] for p in list_many("product", {"sellerId": uid})]
    db["notification"].delete_many({"orderId": {"$in": order_ids}})
    db["message"].delete_many({"orderId": {"$in": order_ids}})
    db["order"].delete_many({"id": {"$in": order_ids}})
    db["cart"].delete_many({"$or": [{"userId": uid}, {"productId": {"$in": product_ids}}]})
    db["product"].delete_many({"sellerId": uid})
    db["otp"].delete_many({"userId": uid})
    db["profile"].delete_many({"userId": uid})
    db["user"].delete_one({"id": uid})
    logger.info("Deleted account %s with %d product(s) and %d order(s)", user["username"], len(product_ids), len(order_ids))
    return {"message": "Account deleted successfully"}


@app.get("/api/settings")
def get_settings(user=Depends(get_current_user)):
    return {"notifications": user.get("notifications", True), "language": user.get("language", "en")}


@app.put("/api/settings")
def update_settings(body: SettingsBody, user=Depends(get_current_user)):
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No settings provided to update")
    db["user"].update_one({"id": user["id"]}, {"$set": updates})
    current = {**user, **updates}
    return {
        "message": "Settings updated successfully",
        "notifications": current.get("notifications", True),
        "language": current.get("language", "en"),
    }

# ------------------------- Products -------------------------


class ProductBody(BaseModel):
    itemName: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)
    location: str = Field(..., min_length=1)
    unit: Unit
    quantity: int = Field(..., gt=0)
    harvestCondition: HarvestCondition
    deliveryTime: int = Field(..., gt=0)
    expiryDate: datetime
    offers: Optional[str] = None
    image: Optional[str] = None
    video: Optional[str] = None


class ProductUpdateBody(BaseModel):
    itemName: Optional[str] = None
    price: Optional[float] = None
    location: Optional[str] = None
    unit: Optional[Unit] = None
    quantity: Optional[int] = None
    harvestCondition: Optional[HarvestCondition] = None
    deliveryTime: Optional[int] = None
    expiryDate: Optional[datetime] = None
    offers: Optional[str] = None
    image: Optional[str] = None
    video: Optional[str] = None


def _owned_product(product_id: str, user: dict) -> dict:
    require_oid(product_id, "product ID")
    product = get_by_id("product", product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if product.get("sellerId") != user["id"]:
        raise HTTPException(status_code=403, detail="You can only manage your own products")
    return product


def _validated_product(fields: dict) -> dict:
    try:
        return Product.model_validate(fields).model_dump()
    except ValidationError as exc:
        summary = _summarize_errors(exc.errors())
        raise HTTPException(status_code=400, detail=f"Invalid product: {summary}")


def _product_card(product: dict, with_date: bool = False) -> dict:
    card = {
        "_id": product["id"],
        "name": product.get("itemName"),
        "image": product.get("image") or "",
        "price": product.get("price") or 0,
    }
    if with_date:
        card["listDate"] = serialize_doc({"v": product.get("createdAt")})["v"]
    return card


@app.post("/api/submit-product", status_code=201)
def submit_product(body: ProductBody, user=Depends(require_user_type("Producer"))):
    now = utcnow()
    doc = _validated_product({
        **body.model_dump(),
        "sellerId": user["id"],
        "sellerName": user["username"],
        "createdAt": now,
        "updatedAt": now,
    })
    insert_with_id("product", doc)
    db["user"].update_one({"id": user["id"]}, {"$inc": {"listedItems": 1}})
    logger.info("Product %s listed by %s", doc["id"], user["username"])
    return {"message": "Product submitted successfully", "product": serialize_doc(doc)}


@app.get("/api/products/your")
def your_products(user=Depends(get_current_user)):
    return [serialize_doc(p) for p in list_many("product", {"sellerId": user["id"]}, sort=[("createdAt", -1)])]


@app.get("/api/products")
def list_products(search: Optional[str] = None, limit: int = Query(100, ge=1, le=500)):
    query = {"quantity": {"$gt": 0}}
    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{"itemName": pattern}, {"location": pattern}]
    return [serialize_doc(p) for p in list_many("product", query, sort=[("createdAt", -1)], limit=limit)]


@app.get("/api/products/new")
def new_products(limit: int = Query(10, ge=1, le=100)):
    return [_product_card(p, with_date=True) for p in list_many("product", sort=[("createdAt", -1)], limit=limit)]


@app.get("/api/products/premium")
def premium_products(limit: int = Query(4, ge=1, le=100)):
    return [_product_card(p) for p in list_many("product", sort=[("price", -1)], limit=limit)]


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    require_oid(product_id, "product ID")
    product = get_by_id("product", product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return serialize_doc(product)


@app.put("/api/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(get_current_user)):
    product = _owned_product(product_id, user)
    updates = body.model_dump(exclude_none=True)
    merged = _validated_product({**product, **updates, "updatedAt": utcnow()})
    changes = {k: merged[k] for k in list(updates) + ["updatedAt"]}
    db["product"].update_one({"id": product["id"]}, {"$set": changes})
    return serialize_doc({**product, **changes})


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user=Depends(get_current_user)):
    product = _owned_product(product_id, user)
    db["product"].delete_one({"id": product["id"]})
    db["cart"].delete_many({"productId": product["id"]})
    db["user"].update_one({"id": user["id"], "listedItems": {"$gt": 0}}, {"$inc": {"listedItems": -1}})
    return {"message": "Product deleted successfully"}

# ------------------------- Cart -------------------------


class AddToCartBody(BaseModel):
    quantity: int = Field(..., gt=0)


@app.post("/api/add-to-cart/{product_id}")
def add_to_cart(product_id: str, body: AddToCartBody, user=Depends(get_current_user)):
    require_oid(product_id, "product ID")
    product = get_by_id("product", product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    row = db["cart"].find_one({"userId": user["id"], "productId": product["id"]})
    quantity = body.quantity + (row["quantity"] if row else 0)
    if product.get("quantity", 0) < quantity:
        raise HTTPException(status_code=400, detail="Insufficient stock")
    if row:
        db["cart"].update_one({"id": row["id"]}, {"$set": {"quantity": quantity}})
    else:
        insert_with_id("cart", Cart(userId=user["id"], productId=product["id"], quantity=quantity).model_dump())
    return {"message": "Added to cart", "productId": product["id"], "quantity": quantity}


@app.get("/api/cart")
def get_cart(user=Depends(get_current_user)):
    items = []
    for row in list_many("cart", {"userId": user["id"]}):
        product = get_by_id("product", row["productId"])
        if not product:
            continue
        items.append({
            "id": row["id"],
            "quantity": row["quantity"],
            "product": serialize_doc(product),
        })
    return items

# ------------------------- Orders -------------------------


class CartLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    quantity: int = Field(..., gt=0)
    price: Optional[float] = Field(None, ge=0)


class PlaceOrderBody(BaseModel):
    cart: List[CartLine]
    deliveryAddress: str = Field(..., min_length=1)
    paymentMethod: str = Field(..., min_length=1)
    total: float
    mobileNo: Optional[str] = None


class ActionBody(BaseModel):
    action: str


@app.post("/api/place-order")
def place_order_endpoint(body: PlaceOrderBody, background_tasks: BackgroundTasks, user=Depends(get_current_user)):
    return place_order(user, body, background_tasks)


@app.post("/api/confirm-order/{order_id}")
def confirm_order_endpoint(order_id: str, background_tasks: BackgroundTasks, user=Depends(get_current_user)):
    return confirm_order(user, order_id, background_tasks)


@app.post("/api/verify-payment")
def verify_payment(user=Depends(get_current_user)):
    raise HTTPException(status_code=400, detail="Online payment verification is not supported")


@app.get("/api/your-orders")
def your_orders(user=Depends(get_current_user)):
    return [order_summary(o) for o in list_many("order", orders_query_for(user), sort=[("orderDate", -1)])]


@app.post("/api/order-action/{order_id}")
def order_action_endpoint(order_id: str, body: ActionBody, background_tasks: BackgroundTasks, user=Depends(get_current_user)):
    require_oid(order_id, "order ID")
    return order_action(user, order_id, body.action, background_tasks)


@app.get("/api/orders/{order_id}/bill")
def get_bill(order_id: str, user=Depends(get_current_user)):
    return order_bill(user, order_id)

# ------------------------- Notifications -------------------------


def _owned_notification(notification_id: str, user: dict) -> dict:
    require_oid(notification_id, "notification ID")
    notification = get_by_id("notification", notification_id)
    if not notification or not owns_notification(user, notification):
        raise HTTPException(status_code=404, detail="Notification not found or unauthorized")
    return notification


@app.get("/api/notifications")
def list_notifications(user=Depends(get_current_user)):
    rows = list_many("notification", notification_query_for(user), sort=[("createdAt", -1)])
    return [serialize_doc(n) for n in rows]


@app.post("/api/notification-action/{notification_id}")
def notification_action(notification_id: str, body: ActionBody, background_tasks: BackgroundTasks, user=Depends(get_current_user)):
    notification = _owned_notification(notification_id, user)
    if body.action == "read":
        db["notification"].update_one({"id": notification["id"]}, {"$set": {"status": "read", "updatedAt": utcnow()}})
        return {"message": "Notification marked as read"}
    if body.action not in ORDER_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")
    if notification.get("audience") != "seller":
        raise HTTPException(status_code=400, detail="Only the seller can accept or decline an order")
    order_action(user, notification["orderId"], body.action, background_tasks)
    return {"message": f"Notification {body.action} successfully", "status": body.action}


@app.delete("/api/notification-action/{notification_id}")
def delete_notification(notification_id: str, user=Depends(get_current_user)):
    notification = _owned_notification(notification_id, user)
    db["notification"].delete_one({"id": notification["id"]})
    return {"message": "Notification deleted successfully"}

# ------------------------- Chat -------------------------


class ChatBody(BaseModel):
    message: str = Field(..., min_length=1)


class SendMessageBody(BaseModel):
    orderId: str
    sender: str
    receiver: str
    message: str = Field(..., min_length=1)


def _chat_order(order_id: str, user: dict) -> dict:
    require_oid(order_id, "order ID")
    order = get_by_id("order", order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if user["id"] not in (order.get("buyerId"), order.get("sellerId")):
        raise HTTPException(status_code=403, detail="Unauthorized to access messages for this order")
    return order


def _counterparty(order: dict, user: dict):
    if order["buyerId"] == user["id"]:
        return order["sellerId"], order["sellerName"]
    return order["buyerId"], order["buyerUsername"]


def _post_message(order: dict, user: dict, text: str, background_tasks: BackgroundTasks) -> dict:
    receiver_id, receiver = _counterparty(order, user)
    doc = Message(
        orderId=order["id"],
        senderId=user["id"],
        sender=user["username"],
        receiverId=receiver_id,
        receiver=receiver,
        message=text,
        timestamp=utcnow(),
    ).model_dump()
    insert_with_id("message", doc)
    background_tasks.add_task(
        notify_user,
        receiver_id,
        "New Message Received",
        f"You have a new message from {user['username']} regarding order #{order['id']} on {local_timestamp()}. "
        "Check the app to reply.",
    )
    return serialize_doc(doc)


@app.get("/api/chat-messages/{order_id}")
def chat_messages(order_id: str, user=Depends(get_current_user)):
    order = _chat_order(order_id, user)
    return [serialize_doc(m) for m in list_many("message", {"orderId": order["id"]}, sort=[("timestamp", 1)])]


@app.post("/api/chat-messages/{order_id}", status_code=201)
def post_chat_message(order_id: str, body: ChatBody, background_tasks: BackgroundTasks, user=Depends(get_current_user)):
    order = _chat_order(order_id, user)
    return _post_message(order, user, body.message, background_tasks)


@app.post("/api/send-message", status_code=201)
def send_message(body: SendMessageBody, background_tasks: BackgroundTasks, user=Depends(get_current_user)):
    order = _chat_order(body.orderId, user)
    if body.sender != user["username"]:
        raise HTTPException(status_code=403, detail="Sender mismatch")
    if body.receiver != _counterparty(order, user)[1]:
        raise HTTPException(status_code=400, detail="Receiver mismatch")
    return _post_message(order, user, body.message, background_tasks)

# Root and health
@app.get("/")
def read_root():
    return {"message": "Nutri Store API running"}

@app.get("/test")
def test_database():
    response = {"backend": "✅ Running", "database": "❌ Not Available", "email": "✅ Ready" if mailer.ready else "❌ Not Ready"}
    try:
        if db is not None:
            db.list_collection_names()
            response["database"] = "✅ Connected"
    except Exception as e:
        response["database"] = f"⚠️ {str(e)[:80]}"
    return response

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
