from typing import List

from database import create_document, get_documents, parse_object_id, to_public_doc
from errors import NotFound
from schemas import ContactMessage


def create(db, message: ContactMessage) -> dict:
    return to_public_doc(create_document(db, "contact", message.model_dump()))


def list_all(db) -> List[dict]:
    return [to_public_doc(m) for m in get_documents(db, "contact")]


def get_by_id(db, message_id: str) -> dict:
    oid = parse_object_id(message_id, "ID format - must be a 24 character hex string")
    doc = db["contact"].find_one({"_id": oid})
    if not doc:
        raise NotFound("No message found with the provided ID")
    return to_public_doc(doc)


def delete(db, message_id: str):
    res = db["contact"].delete_one({"_id": parse_object_id(message_id, "ID format")})
    if res.deleted_count == 0:
        raise NotFound("Message not found")
