import logging
from typing import List, Optional

import config
from database import is_object_id, now, parse_object_id, to_public_doc
from errors import Forbidden, NotFound, ValidationError
from schemas import Review

logger = logging.getLogger(__name__)


def has_qualifying_order(db, user_id: str, item_id: str) -> bool:
    return db["order"].find_one({
        "user_id": user_id,
        "status": {"$in": config.REVIEW_QUALIFYING_STATUSES},
        "items.item_id": item_id,
    }) is not None


def add(db, user_id: str, item_id: str, rating: Optional[int], comment: Optional[str]) -> dict:
    # Repeat reviews of the same item by the same user are accepted.
    if not rating or rating < 1 or rating > 5:
        raise ValidationError("Please enter a rating between 1 & 5")
    parse_object_id(item_id, "product ID")

    if not has_qualifying_order(db, user_id, item_id):
        raise ValidationError("You can only review products from delivered orders")

    doc = Review(user_id=user_id, item_id=item_id, rating=rating, comment=comment,
                 created_at=now()).model_dump()
    doc["_id"] = db["review"].insert_one(doc).inserted_id
    return to_public_doc(doc)


def list_for_item(db, item_id: str) -> List[dict]:
    reviews = list(db["review"].find({"item_id": item_id}).sort([("created_at", -1)]))
    ids = [parse_object_id(r["user_id"]) for r in reviews if is_object_id(r.get("user_id"))]
    names = {str(u["_id"]): u.get("name") for u in db["user"].find({"_id": {"$in": ids}})} if ids else {}
    result = []
    for r in reviews:
        doc = to_public_doc(r)
        doc["user"] = {"id": r["user_id"], "name": names.get(r["user_id"])}
        result.append(doc)
    return result


def remove(db, review_id: str, caller_id: str, caller_is_admin: bool):
    review = db["review"].find_one({"_id": parse_object_id(review_id, "review ID")})
    if not review:
        raise NotFound("Review not found")
    if review["user_id"] != caller_id and not caller_is_admin:
        raise Forbidden("Not authorized")
    db["review"].delete_one({"_id": review["_id"]})
    logger.info("review %s deleted by %s", review["_id"], caller_id)
