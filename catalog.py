"""
Catalog store shared by every sellable kind.

Products, gadgets, fragrances and car care services have the same document
shape and live in separate collections. ``CatalogKind`` describes one of
them and the functions below work against any kind.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import media
from config import PAGE_SIZE
from database import now, parse_object_id, to_public_doc
from errors import NotFound, ValidationError
from schemas import CatalogItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogKind:
    key: str
    label: str
    collection: str
    folder: str


PRODUCT = CatalogKind("product", "Product", "product", "products")
GADGET = CatalogKind("gadget", "Gadget", "gadget", "gadgets")
FRAGRANCE = CatalogKind("fragrance", "Fragrance", "fragrance", "fragrances")
CARCARE = CatalogKind("carcare", "Car care service", "carcare", "carCareServices")

KINDS: Dict[str, CatalogKind] = {k.key: k for k in (PRODUCT, GADGET, FRAGRANCE, CARCARE)}

# Category tags accepted on cart lines
CART_CATEGORIES = {
    "Product": PRODUCT,
    "Interior": PRODUCT,
    "Exterior": PRODUCT,
    "Test": PRODUCT,
    "Gadget": GADGET,
    "Fragrance": FRAGRANCE,
    "CarCare": CARCARE,
}

# Category values used by the product details page
DETAIL_CATEGORIES = {
    "Test": PRODUCT,
    "Interior": PRODUCT,
    "Exterior": PRODUCT,
    "Gadgets": GADGET,
    "Fragrance": FRAGRANCE,
    "CarCare": CARCARE,
}


def kind_for_category(category: str) -> CatalogKind:
    kind = CART_CATEGORIES.get(category)
    if kind is None:
        raise ValidationError(f"Invalid category: {category}")
    return kind


def kind_by_key(key: Optional[str]) -> CatalogKind:
    # Lines written before kinds were recorded belong to the product catalog
    return KINDS.get(key or PRODUCT.key, PRODUCT)


def _name_filter(keyword: Optional[str]) -> Dict[str, Any]:
    if not keyword:
        return {}
    return {"name": {"$regex": re.escape(keyword), "$options": "i"}}


def _page_number(page: Optional[int]) -> int:
    return page if page and page > 0 else 1


def page_count(total: int) -> int:
    return math.ceil(total / PAGE_SIZE)


def find_item(db, kind: CatalogKind, item_id) -> Optional[dict]:
    return db[kind.collection].find_one({"_id": parse_object_id(item_id, f"{kind.label.lower()} ID")})


def list_items(db, kind: CatalogKind, keyword: Optional[str] = None, page: Optional[int] = 1,
               category: Optional[str] = None) -> Tuple[List[dict], int, int]:
    """Return one page of items matching the keyword, with the page count."""
    page = _page_number(page)
    query = _name_filter(keyword)
    if category:
        query["category"] = category
    total = db[kind.collection].count_documents(query)
    cursor = db[kind.collection].find(query).skip(PAGE_SIZE * (page - 1)).limit(PAGE_SIZE)
    return [to_public_doc(d) for d in cursor], page, page_count(total)


def get_item(db, kind: CatalogKind, item_id: str) -> dict:
    doc = find_item(db, kind, item_id)
    if not doc:
        raise NotFound(f"{kind.label} not found")
    return to_public_doc(doc)


def create_item(db, kind: CatalogKind, fields: CatalogItem, image: Optional[Tuple[bytes, Optional[str]]]) -> dict:
    if not image or not image[0]:
        raise ValidationError("Image is required")
    url = media.upload_image(image[0], image[1], kind.folder)
    doc = fields.model_dump(exclude={"created_at", "updated_at"})
    doc["images"] = [url]
    doc["created_at"] = doc["updated_at"] = now()
    try:
        res = db[kind.collection].insert_one(doc)
    except DuplicateKeyError:
        media.release_images([url], kind.folder)
        raise ValidationError(f"A {kind.label.lower()} named '{fields.name}' already exists")
    doc["_id"] = res.inserted_id
    logger.info("%s created: %s", kind.key, res.inserted_id)
    return to_public_doc(doc)


def update_item(db, kind: CatalogKind, item_id: str, patch: Dict[str, Any],
                image: Optional[Tuple[bytes, Optional[str]]] = None) -> dict:
    """Apply a partial update; keys whose value is None keep their stored value."""
    existing = find_item(db, kind, item_id)
    if not existing:
        raise NotFound(f"{kind.label} not found")

    update = {k: v for k, v in patch.items() if v is not None}
    images = list(existing.get("images", []))
    replaced: List[str] = []
    url = None
    if image and image[0]:
        url = media.upload_image(image[0], image[1], kind.folder)
        if images:
            replaced = images[:1]
            images[0] = url
        else:
            images.append(url)
        update["images"] = images
    update["updated_at"] = now()

    try:
        doc = db[kind.collection].find_one_and_update(
            {"_id": existing["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        if url:
            media.release_images([url], kind.folder)
        raise ValidationError(f"A {kind.label.lower()} named '{update.get('name')}' already exists")
    if not doc:
        if url:
            media.release_images([url], kind.folder)
        raise NotFound(f"{kind.label} not found")
    # The previous image is only dropped once the record points at its replacement
    if replaced:
        media.release_images(replaced, kind.folder)
    return to_public_doc(doc)


def delete_item(db, kind: CatalogKind, item_id: str):
    doc = find_item(db, kind, item_id)
    if not doc:
        raise NotFound(f"{kind.label} not found")
    failures = media.release_images(doc.get("images", []), kind.folder)
    if failures:
        logger.warning("%s %s deleted with %d unreleased image(s)", kind.key, doc["_id"], failures)
    db[kind.collection].delete_one({"_id": doc["_id"]})
    logger.info("%s deleted: %s", kind.key, doc["_id"])


def adjust_stock(db, kind: CatalogKind, item_id, delta: int) -> bool:
    """Add ``delta`` to an item's stock; a decrement only applies while stock stays >= 0."""
    query: Dict[str, Any] = {"_id": parse_object_id(item_id)}
    if delta < 0:
        query["stock"] = {"$gte": -delta}
    res = db[kind.collection].update_one(query, {"$inc": {"stock": delta}, "$set": {"updated_at": now()}})
    return res.modified_count == 1


# Unified lookup across every kind

def list_unified(db, keyword: Optional[str] = None, category: Optional[str] = None,
                 page: Optional[int] = 1) -> Tuple[List[dict], int, int]:
    """Concatenate each kind's own page; ``pages`` counts matches over all kinds.

    Every kind is sliced independently, so one page holds up to
    ``PAGE_SIZE * len(KINDS)`` items and has no global ordering.
    """
    page = _page_number(page)
    query = _name_filter(keyword)
    if category:
        query["category"] = category

    items: List[dict] = []
    total = 0
    for kind in KINDS.values():
        cursor = db[kind.collection].find(query).skip(PAGE_SIZE * (page - 1)).limit(PAGE_SIZE)
        for d in cursor:
            item = to_public_doc(d)
            item["kind"] = kind.key
            items.append(item)
        total += db[kind.collection].count_documents(query)
    return items, page, page_count(total)


def get_unified(db, item_id: str, name: Optional[str], category: Optional[str]) -> dict:
    oid = parse_object_id(item_id, "product ID")
    kind = DETAIL_CATEGORIES.get(category or "")
    if kind is None:
        raise ValidationError("Invalid category")
    doc = db[kind.collection].find_one({"_id": oid, "name": name})
    if not doc:
        raise NotFound("Product not found")
    item = to_public_doc(doc)
    item["kind"] = kind.key
    return item
