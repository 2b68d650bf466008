"""
Per-user shopping cart.

Each line stores a snapshot of the catalog item taken when it was written
plus the requested quantity. Stock is checked against the live catalog on
every mutation. Mutations of one user's cart are serialised with an
in-process lock, so a check and the save that follows it cannot interleave
with another request for the same user.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Tuple

from pymongo import ReturnDocument

import catalog
from database import now, parse_object_id, to_public_doc
from errors import NotFound, StockInsufficient, ValidationError
from schemas import Cart, CartLine, CartLineIn, CartProduct

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
# user_id -> [lock, number of callers holding or waiting for it]
_user_locks: Dict[str, list] = {}


@contextmanager
def user_lock(user_id: str):
    with _locks_guard:
        entry = _user_locks.setdefault(user_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _user_locks[user_id]


def _snapshot(item: dict, category: str, kind: catalog.CatalogKind, quantity: int) -> dict:
    line = CartLine(
        product=CartProduct(
            id=str(item["_id"]),
            name=item["name"],
            price=item["price"],
            stock=item["stock"],
            category=category,
            kind=kind.key,
        ),
        quantity=quantity,
    )
    return line.model_dump(exclude={"product": {"image"}})


def _line_key(line: dict) -> Tuple[str, str]:
    product = line["product"]
    return product["id"], product.get("kind") or catalog.PRODUCT.key


def _find_cart(db, user_id: str):
    return db["cart"].find_one({"user_id": user_id})


def _save_items(db, user_id: str, items: List[dict]) -> dict:
    ts = now()
    cart = db["cart"].find_one_and_update(
        {"user_id": user_id},
        {"$set": {"items": items, "updated_at": ts}, "$setOnInsert": {"created_at": ts}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return to_public_doc(cart)


def replace_cart(db, user_id: str, lines: List[CartLineIn]) -> dict:
    """Overwrite the whole cart; nothing is written unless every line validates."""
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError("Each item must have productId, positive quantity, and category")
        catalog.kind_for_category(line.category)

    with user_lock(user_id):
        merged: Dict[Tuple[str, str], dict] = {}
        for line in lines:
            kind = catalog.kind_for_category(line.category)
            item = catalog.find_item(db, kind, line.productId)
            if not item:
                raise NotFound(f"Product not found: {line.productId}")
            key = (str(item["_id"]), kind.key)
            quantity = line.quantity + (merged[key]["quantity"] if key in merged else 0)
            if item["stock"] < quantity:
                raise StockInsufficient(
                    f"Insufficient stock for product {item['name']}",
                    available_stock=item["stock"],
                    product_id=line.productId,
                )
            merged[key] = {"item": item, "category": line.category, "kind": kind, "quantity": quantity}

        items = [_snapshot(m["item"], m["category"], m["kind"], m["quantity"]) for m in merged.values()]
        cart = _save_items(db, user_id, items)
    logger.info("cart replaced for user %s (%d lines)", user_id, len(items))
    return cart


def add_item(db, user_id: str, item_id: str, category: str, quantity: int) -> dict:
    if not item_id or quantity is None or quantity <= 0 or not category:
        raise ValidationError("productId, category and positive quantity are required")
    kind = catalog.kind_for_category(category)

    with user_lock(user_id):
        item = catalog.find_item(db, kind, item_id)
        if not item:
            raise NotFound("Product not found")
        stock = item["stock"]
        if stock <= 0:
            raise StockInsufficient("This product is out of stock", available_stock=0)
        if stock < quantity:
            raise StockInsufficient("Out of stock", available_stock=stock)

        cart = _find_cart(db, user_id)
        if cart is None:
            cart = Cart(user_id=user_id).model_dump()
        items = list(cart.get("items", []))

        key = (str(item["_id"]), kind.key)
        existing = next((line for line in items if _line_key(line) == key), None)
        held = existing["quantity"] if existing else 0
        if stock < held + quantity:
            available = max(stock - held, 0)
            message = (f"You can only add {available} more of this item" if available > 0
                       else "No additional items available")
            raise StockInsufficient(message, max_available=available)

        if existing:
            existing["quantity"] = held + quantity
        else:
            items.append(_snapshot(item, category, kind, quantity))
        return _save_items(db, user_id, items)


def update_line(db, user_id: str, item_id: str, quantity: int) -> dict:
    if quantity is None or quantity <= 0:
        raise ValidationError("Positive quantity is required")

    with user_lock(user_id):
        cart = _find_cart(db, user_id)
        if not cart:
            raise NotFound("Cart not found")
        items = list(cart.get("items", []))
        line = next((ln for ln in items if ln["product"]["id"] == item_id), None)
        if line is None:
            raise NotFound("Item not in cart")

        item = catalog.find_item(db, catalog.kind_by_key(line["product"].get("kind")), item_id)
        if not item:
            raise NotFound("Product no longer available")
        if item["stock"] < quantity:
            raise StockInsufficient(f"Only {item['stock']} items available", max_available=item["stock"])

        line["quantity"] = quantity
        return _save_items(db, user_id, items)


def remove_line(db, user_id: str, item_id: str) -> dict:
    parse_object_id(item_id, "product ID")
    with user_lock(user_id):
        cart = _find_cart(db, user_id)
        if not cart:
            raise NotFound("Cart not found")
        items = [ln for ln in cart.get("items", []) if ln["product"]["id"] != item_id]
        if len(items) == len(cart.get("items", [])):
            raise NotFound("Item not found in your cart",
                           suggestion="Please refresh your cart and try again")
        return _save_items(db, user_id, items)


def clear(db, user_id: str) -> dict:
    with user_lock(user_id):
        if not _find_cart(db, user_id):
            raise NotFound("Cart not found")
        return _save_items(db, user_id, [])


def fetch(db, user_id: str) -> dict:
    """Return the cart with each line's current first image attached."""
    cart = _find_cart(db, user_id)
    if not cart:
        raise NotFound("Cart not found")
    result = to_public_doc(cart)
    for line in result.get("items", []):
        product = line["product"]
        item = catalog.find_item(db, catalog.kind_by_key(product.get("kind")), product["id"])
        images = item.get("images", []) if item else []
        product["image"] = images[0] if images else None
    return result
