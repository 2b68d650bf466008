"""
Checkout and order management.

Confirming an order runs as a short saga: the order is persisted first,
then each line's stock is decremented with a conditional update, then the
cart is emptied. If a decrement finds less stock than ordered, the
decrements already applied are restored and the order is removed.
"""
import logging
from typing import List, Optional

from pymongo import ReturnDocument

import catalog
from cart import user_lock
from config import ORDER_STATUSES, PAYMENT_METHOD, RESTOCK_PRODUCTS_ONLY
from database import is_object_id, now, parse_object_id, to_public_doc
from errors import NotFound, StockInsufficient, ValidationError
from schemas import Order, OrderLine, ShippingInfo

logger = logging.getLogger(__name__)


def confirm(db, user_id: str, shipping_info: ShippingInfo) -> dict:
    with user_lock(user_id):
        cart = db["cart"].find_one({"user_id": user_id})
        if not cart or not cart.get("items"):
            raise ValidationError("Your cart is empty")

        lines: List[OrderLine] = []
        for entry in cart["items"]:
            kind = catalog.kind_by_key(entry["product"].get("kind"))
            item = catalog.find_item(db, kind, entry["product"]["id"])
            if not item:
                raise NotFound("Product not found")
            if item["stock"] < entry["quantity"]:
                raise StockInsufficient(f"Insufficient stock for {item['name']}",
                                        available_stock=item["stock"])
            lines.append(OrderLine(item_id=str(item["_id"]), kind=kind.key, name=item["name"],
                                   price=item["price"], quantity=entry["quantity"]))

        order = Order(
            user_id=user_id,
            shipping_info=shipping_info,
            items=lines,
            total_price=sum(line.price * line.quantity for line in lines),
            payment_method=PAYMENT_METHOD,
            status="Pending",
        )
        doc = order.model_dump()
        doc["created_at"] = doc["updated_at"] = now()
        doc["_id"] = db["order"].insert_one(doc).inserted_id

        applied: List[OrderLine] = []
        for line in lines:
            kind = catalog.kind_by_key(line.kind)
            if not catalog.adjust_stock(db, kind, line.item_id, -line.quantity):
                for done in applied:
                    catalog.adjust_stock(db, catalog.kind_by_key(done.kind), done.item_id, done.quantity)
                db["order"].delete_one({"_id": doc["_id"]})
                item = catalog.find_item(db, kind, line.item_id)
                raise StockInsufficient(f"Insufficient stock for {line.name}",
                                        available_stock=item["stock"] if item else 0)
            applied.append(line)

        db["cart"].update_one({"user_id": user_id}, {"$set": {"items": [], "updated_at": now()}})

    logger.info("order placed: %s user=%s total=%s", doc["_id"], user_id, doc["total_price"])
    return to_public_doc(doc)


def list_for_user(db, user_id: str) -> List[dict]:
    return [to_public_doc(o) for o in db["order"].find({"user_id": user_id}).sort([("created_at", -1)])]


def get_by_id(db, order_id: str, user: Optional[dict] = None) -> dict:
    """Fetch one order; when ``user`` is given it must own the order or be an admin."""
    order = db["order"].find_one({"_id": parse_object_id(order_id, "order ID")})
    if not order:
        raise NotFound("Order not found")
    if user is not None and order.get("user_id") != str(user["_id"]) and not user.get("is_admin"):
        raise NotFound("Order not found")
    return to_public_doc(order)


def cancel(db, order_id: str, user_id: str):
    oid = parse_object_id(order_id, "order ID")
    order = db["order"].find_one({"_id": oid, "user_id": user_id})
    if not order:
        raise NotFound("Order not found")
    if order.get("status") != "Pending":
        raise ValidationError("Only pending orders can be canceled")

    # Restock runs at most once per order: only the caller that deletes it restocks.
    deleted = db["order"].find_one_and_delete({"_id": oid, "user_id": user_id, "status": "Pending"})
    if not deleted:
        raise ValidationError("Only pending orders can be canceled")

    for line in deleted.get("items", []):
        kind = catalog.kind_by_key(line.get("kind"))
        if RESTOCK_PRODUCTS_ONLY and kind is not catalog.PRODUCT:
            continue
        catalog.adjust_stock(db, kind, line["item_id"], line["quantity"])
    logger.info("order canceled: %s user=%s", oid, user_id)


def list_all(db) -> List[dict]:
    orders = list(db["order"].find().sort([("created_at", -1)]))
    user_ids = {o.get("user_id") for o in orders if o.get("user_id")}
    users = {}
    if user_ids:
        ids = [parse_object_id(u) for u in user_ids if is_object_id(u)]
        for u in db["user"].find({"_id": {"$in": ids}}):
            users[str(u["_id"])] = {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
    result = []
    for o in orders:
        doc = to_public_doc(o)
        doc["user"] = users.get(o.get("user_id"))
        result.append(doc)
    return result


def set_status(db, order_id: str, status: str) -> dict:
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status value")
    order = db["order"].find_one_and_update(
        {"_id": parse_object_id(order_id, "order ID")},
        {"$set": {"status": status, "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not order:
        raise NotFound("Order not found")
    logger.info("order %s status -> %s", order["_id"], status)
    return to_public_doc(order)
