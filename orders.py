"""
Order workflow: checkout, the producer's accept/decline decision, and the
notifications both produce.

Multi-document writes run under a CompensationLog. Each write registers an
undo step, and the steps are replayed newest-first if anything later in the
same request fails, so a rejected request leaves no orders, notifications or
stock changes behind.
"""

import base64
import io
import logging
import random
import time
from collections import defaultdict
from datetime import timedelta
from urllib.parse import quote

from fastapi import HTTPException
from pymongo import ReturnDocument
from qrcode import QRCode

from database import db, get_by_id, insert_with_id, list_many, utcnow, as_utc
from mailer import notify_user, local_timestamp
from schemas import Order, Notification

logger = logging.getLogger(__name__)

ORDER_ACTIONS = ("accepted", "declined")
# "confirmed" is a stored status with no incoming edge
ORDER_TRANSITIONS = {
    "pending": {"accepted", "declined"},
    "accepted": set(),
    "declined": set(),
    "confirmed": set(),
}
SOLD_STATUSES = ("accepted", "confirmed")
TOTAL_TOLERANCE = 0.01
DELIVERY_DAYS = 3


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


def generate_order_group_id() -> str:
    return f"ORD_{int(time.time() * 1000)}_{random.randint(0, 999)}"


class CompensationLog:
    def __init__(self):
        self._steps = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            logger.warning("Rolling back %d write(s) after %s", len(self._steps), exc_type.__name__)
            self.rollback()
        return False

    def __len__(self):
        return len(self._steps)

    def record(self, description: str, undo):
        self._steps.append((description, undo))

    def insert(self, collection: str, doc: dict) -> str:
        doc_id = insert_with_id(collection, doc)
        self.record(f"insert {collection}/{doc_id}", lambda: db[collection].delete_one({"id": doc_id}))
        return doc_id

    def rollback(self):
        while self._steps:
            description, undo = self._steps.pop()
            try:
                undo()
            except Exception:
                logger.exception("Compensation step failed: %s", description)

# ------------------------- Notifications -------------------------


def notification_owner_field(audience: str) -> str:
    return "sellerId" if audience == "seller" else "buyerId"


def notification_query_for(user: dict) -> dict:
    if user.get("userType") == "Producer":
        return {"sellerId": user["id"], "audience": "seller"}
    return {"buyerId": user["id"], "audience": "buyer"}


def owns_notification(user: dict, notification: dict) -> bool:
    return notification.get(notification_owner_field(notification.get("audience"))) == user["id"]


def new_order_message(order: dict) -> str:
    return f"New order from {order['buyerUsername']}: {order['quantity']} x {order['itemName']}"


def build_notification(order: dict, audience: str, status: str, message: str) -> dict:
    now = utcnow()
    return Notification(
        orderId=order["id"],
        orderGroupId=order["orderId"],
        audience=audience,
        buyerId=order["buyerId"],
        buyerUsername=order["buyerUsername"],
        sellerId=order["sellerId"],
        sellerName=order["sellerName"],
        deliveryAddress=order["deliveryAddress"],
        status=status,
        message=message,
        createdAt=now,
        updatedAt=now,
    ).model_dump()


def upsert_notification(order: dict, audience: str, status: str, message: str, log: CompensationLog) -> str:
    """One row per (order, audience); an existing row is updated in place."""
    query = {"orderId": order["id"], "audience": audience}
    previous = db["notification"].find_one(query)
    if previous is None:
        return log.insert("notification", build_notification(order, audience, status, message))
    db["notification"].update_one(
        {"id": previous["id"]},
        {"$set": {"status": status, "message": message, "updatedAt": utcnow()}},
    )
    restore = {k: previous.get(k) for k in ("status", "message", "updatedAt")}
    log.record(
        f"restore notification/{previous['id']}",
        lambda: db["notification"].update_one({"id": previous["id"]}, {"$set": restore}),
    )
    return previous["id"]


def action_messages(order: dict, action: str):
    """(buyer-facing, seller-facing) texts for a decided order."""
    item = f"{order['quantity']} x {order['itemName']}"
    if action == "accepted":
        return (
            f"Your order for {item} was accepted by {order['sellerName']} and is being processed.",
            f"You accepted {order['buyerUsername']}'s order for {item}.",
        )
    return (
        f"Your order for {item} was declined by {order['sellerName']}. Please try another product.",
        f"You declined {order['buyerUsername']}'s order for {item}.",
    )

# ------------------------- Placement -------------------------


def _plan_lines(buyer: dict, lines: list) -> list:
    """Resolve every cart line against live stock without writing anything."""
    planned = []
    requested = defaultdict(int)
    for line in lines:
        product = get_by_id("product", line.id)
        if not product:
            logger.info("Checkout by %s references unknown product %s", buyer["username"], line.id)
            raise HTTPException(status_code=400, detail=f"Product not found for ID: {line.id}")
        requested[product["id"]] += line.quantity
        if product.get("quantity", 0) < requested[product["id"]]:
            raise HTTPException(status_code=400, detail=f"Insufficient stock for {product['itemName']}")
        unit_price = float(product["price"])
        if line.price is not None and abs(line.price - unit_price) > TOTAL_TOLERANCE:
            logger.info("Checkout by %s quoted %.2f for %s listed at %.2f", buyer["username"], line.price, product["id"], unit_price)
            raise HTTPException(status_code=400, detail=f"Price mismatch for {product['itemName']}")
        planned.append((product, line.quantity, unit_price, round(line.quantity * unit_price, 2)))
    return planned


def place_order(buyer: dict, body, background_tasks) -> dict:
    if not body.cart:
        raise HTTPException(status_code=400, detail="Missing required fields")
    planned = _plan_lines(buyer, body.cart)
    calculated_total = round(sum(line_total for _, _, _, line_total in planned), 2)
    if abs(calculated_total - float(body.total)) > TOTAL_TOLERANCE:
        raise HTTPException(status_code=400, detail="Total amount mismatch")

    group_id = generate_order_group_id()
    now = utcnow()
    orders = []
    with CompensationLog() as log:
        for product, quantity, unit_price, line_total in planned:
            order = Order(
                orderId=group_id,
                buyerId=buyer["id"],
                buyerUsername=buyer["username"],
                sellerId=product["sellerId"],
                sellerName=product["sellerName"],
                productId=product["id"],
                itemName=product["itemName"],
                quantity=quantity,
                unitPrice=unit_price,
                totalPrice=line_total,
                deliveryAddress=body.deliveryAddress,
                mobileNo=body.mobileNo,
                paymentMethod=body.paymentMethod,
                orderDate=now,
                updatedAt=now,
            ).model_dump()
            log.insert("order", order)
            log.insert("notification", build_notification(order, "seller", "pending", new_order_message(order)))
            orders.append(order)

    ordered_ids = list({o["productId"] for o in orders})
    db["cart"].delete_many({"userId": buyer["id"], "productId": {"$in": ordered_ids}})

    for order in orders:
        background_tasks.add_task(
            notify_user,
            order["sellerId"],
            "New Order Notification",
            f"You have a new order from {buyer['username']} on {local_timestamp()}. "
            f"Address: {body.deliveryAddress}. Please accept or decline via the app. Order ID: {order['id']}",
        )
    logger.info("Order %s placed by %s with %d line(s), total %.2f", group_id, buyer["username"], len(orders), calculated_total)
    return {
        "message": "Order placed successfully",
        "orderId": group_id,
        "status": "pending",
        "orders": [o["id"] for o in orders],
        "total": calculated_total,
        "redirect": "/your-orders",
    }

# ------------------------- Producer decision -------------------------


def _reserve_stock(order: dict, log: CompensationLog):
    product_id, quantity = order["productId"], order["quantity"]
    product = db["product"].find_one_and_update(
        {"id": product_id, "quantity": {"$gte": quantity}},
        {"$inc": {"quantity": -quantity}, "$set": {"updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if product is None:
        if get_by_id("product", product_id) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        raise HTTPException(status_code=400, detail="Insufficient stock to accept order")
    log.record(
        f"restore stock product/{product_id}",
        lambda: db["product"].update_one({"id": product_id}, {"$inc": {"quantity": quantity}}),
    )
    return product


def order_action(user: dict, order_id: str, action: str, background_tasks) -> dict:
    if action not in ORDER_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")
    order = get_by_id("order", order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("sellerId") != user["id"]:
        raise HTTPException(status_code=403, detail="Unauthorized to perform action on this order")
    if not can_transition(order["status"], action):
        raise HTTPException(status_code=409, detail=f"Order is already {order['status']}")

    with CompensationLog() as log:
        updated = db["order"].find_one_and_update(
            {"id": order["id"], "status": "pending"},
            {"$set": {"status": action, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            current = get_by_id("order", order["id"]) or order
            raise HTTPException(status_code=409, detail=f"Order is already {current['status']}")
        log.record(
            f"revert order/{order['id']}",
            lambda: db["order"].update_one({"id": order["id"], "status": action}, {"$set": {"status": "pending"}}),
        )
        if action == "accepted":
            _reserve_stock(updated, log)
        buyer_text, seller_text = action_messages(updated, action)
        upsert_notification(updated, "seller", action, seller_text, log)
        upsert_notification(updated, "buyer", action, buyer_text, log)

    logger.info("Order %s %s by %s", order["id"], action, user["username"])
    subject = "Order Accepted" if action == "accepted" else "Order Declined"
    follow_up = "Your order is being processed." if action == "accepted" else "Please contact support or try another product."
    background_tasks.add_task(
        notify_user,
        updated["buyerId"],
        subject,
        f"Your order #{updated['id']} has been {action} on {local_timestamp()}. {follow_up}",
    )
    return {"message": f"Order {action} successfully", "status": action}


def confirm_order(user: dict, group_id: str, background_tasks) -> dict:
    """Re-announce a checkout's pending lines to their producers."""
    orders = list_many("order", {"orderId": group_id})
    if not orders or any(o.get("buyerId") != user["id"] for o in orders):
        raise HTTPException(status_code=404, detail="Order not found or unauthorized")
    pending = [o for o in orders if o["status"] == "pending"]
    if not pending:
        raise HTTPException(status_code=400, detail="Order is not in a pending state")
    for order in pending:
        if db["notification"].find_one({"orderId": order["id"], "audience": "seller"}) is None:
            insert_with_id("notification", build_notification(order, "seller", "pending", new_order_message(order)))
        background_tasks.add_task(
            notify_user,
            order["sellerId"],
            "New Order Notification",
            f"You have a new order from {order['buyerUsername']} on {local_timestamp()}. "
            f"Address: {order['deliveryAddress']}. Please accept or decline via the app. Order ID: {order['id']}",
        )
    return {
        "message": "Order request sent to producer successfully",
        "orderId": group_id,
        "redirect": "/your-orders",
    }

# ------------------------- Listings -------------------------


def orders_query_for(user: dict) -> dict:
    if user.get("userType") == "Producer":
        return {"sellerId": user["id"]}
    return {"buyerId": user["id"]}


def order_summary(order: dict) -> dict:
    buyer = get_by_id("user", order.get("buyerId")) or {}
    order_date = as_utc(order.get("orderDate"))
    expected = order_date + timedelta(days=DELIVERY_DAYS) if order_date else None
    return {
        "_id": order["id"],
        "id": order["id"],
        "orderId": order["orderId"],
        "buyerUsername": order["buyerUsername"],
        "sellerName": order["sellerName"],
        "productId": order["productId"],
        "itemName": order.get("itemName"),
        "quantity": order["quantity"],
        "totalPrice": order["totalPrice"],
        "deliveryAddress": order["deliveryAddress"],
        "mobileNo": order.get("mobileNo") or buyer.get("mobileNumber") or "Not provided",
        "paymentMethod": order["paymentMethod"],
        "status": order["status"],
        "orderDate": order_date.isoformat() if order_date else None,
        "expectedDeliveryDate": expected.isoformat() if expected else None,
    }


def producer_metrics(user: dict) -> dict:
    """Dashboard counters recomputed from products and sold orders."""
    listed_items = db["product"].count_documents({"sellerId": user["id"]})
    sold = list_many("order", {"sellerId": user["id"], "status": {"$in": list(SOLD_STATUSES)}})
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    monthly_income = sum(o["totalPrice"] for o in sold if as_utc(o.get("orderDate")) and as_utc(o["orderDate"]) >= month_start)
    return {
        "listedItems": listed_items,
        "monthlyIncome": round(monthly_income, 2),
        "buyersCount": len({o["buyerId"] for o in sold}),
        "quantitySold": sum(o["quantity"] for o in sold),
    }


def upi_payment_uri(upi_id: str, amount: float, group_id: str) -> str:
    # am is in rupees with two decimals
    return (
        f"upi://pay?pa={quote(upi_id, safe='@')}&am={amount:.2f}"
        f"&tn={quote(f'Payment for Order #{group_id}', safe='')}&cu=INR"
    )


def qr_data_url(data: str) -> str:
    qr = QRCode(box_size=4, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return f"data:image/png;base64,{base64.b64encode(bio.getvalue()).decode('utf-8')}"


def seller_payments(orders: list, group_id: str) -> list:
    """One pay-by-UPI entry per seller; qr is None when the seller has no UPI ID."""
    subtotals = defaultdict(float)
    names = {}
    for o in orders:
        subtotals[o["sellerId"]] += o["totalPrice"]
        names[o["sellerId"]] = o["sellerName"]
    payments = []
    for seller_id, amount in subtotals.items():
        seller = get_by_id("user", seller_id) or {}
        upi_id = (seller.get("bank") or {}).get("upiId")
        uri = upi_payment_uri(upi_id, round(amount, 2), group_id) if upi_id else None
        payments.append({
            "sellerName": names[seller_id],
            "upiId": upi_id,
            "amount": round(amount, 2),
            "upiUri": uri,
            "qr": qr_data_url(uri) if uri else None,
        })
    return payments


def order_bill(user: dict, group_id: str) -> dict:
    orders = list_many("order", {"orderId": group_id}, sort=[("orderDate", 1)])
    visible = [o for o in orders if user["id"] in (o.get("buyerId"), o.get("sellerId"))]
    if not visible:
        raise HTTPException(status_code=404, detail="Order not found or unauthorized")

    return {
        "orderId": group_id,
        "buyerUsername": visible[0]["buyerUsername"],
        "deliveryAddress": visible[0]["deliveryAddress"],
        "paymentMethod": visible[0]["paymentMethod"],
        "items": [
            {
                "id": o["id"],
                "itemName": o.get("itemName"),
                "sellerName": o["sellerName"],
                "quantity": o["quantity"],
                "unitPrice": o.get("unitPrice"),
                "totalPrice": o["totalPrice"],
                "status": o["status"],
            }
            for o in visible
        ],
        "total": round(sum(o["totalPrice"] for o in visible), 2),
        "payments": seller_payments(visible, group_id),
    }
