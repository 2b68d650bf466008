"""User accounts: registration, login and admin management."""
import logging
from typing import List

from pymongo.errors import DuplicateKeyError

from database import create_document, now, parse_object_id
from errors import Forbidden, NotFound, ValidationError
from schemas import LoginRequest, UserCreate, UserPublic, UserUpdate
from security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def public_user(user: dict) -> dict:
    return UserPublic(
        id=str(user["_id"]),
        name=user["name"],
        email=user["email"],
        is_admin=user.get("is_admin", False),
    ).model_dump()


def register(db, payload: UserCreate, is_admin: bool = False) -> dict:
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise ValidationError("Email already in use")
    try:
        user = create_document(db, "user", {
            "name": payload.name,
            "email": email,
            "password_hash": hash_password(payload.password),
            "is_admin": is_admin,
        })
    except DuplicateKeyError:
        raise ValidationError("Email already in use")
    logger.info("user registered: %s", user["_id"])
    return public_user(user)


def login(db, payload: LoginRequest) -> dict:
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise ValidationError("Incorrect email or password")
    token = create_access_token({"sub": str(user["_id"])})
    return {"access_token": token, "token_type": "bearer", "user": public_user(user)}


def list_all(db) -> List[dict]:
    return [public_user(u) for u in db["user"].find().sort([("created_at", -1)])]


def get_by_id(db, user_id: str, caller: dict) -> dict:
    oid = parse_object_id(user_id, "user ID")
    if oid != caller["_id"] and not caller.get("is_admin"):
        raise Forbidden("Not authorized")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise NotFound("User not found")
    return public_user(user)


def update(db, user_id: str, body: UserUpdate, caller: dict) -> dict:
    oid = parse_object_id(user_id, "user ID")
    if oid != caller["_id"] and not caller.get("is_admin"):
        raise Forbidden("Not authorized")
    if body.is_admin is not None and not caller.get("is_admin"):
        raise Forbidden("Only admins can change admin rights")

    user = db["user"].find_one({"_id": oid})
    if not user:
        raise NotFound("User not found")

    update = {}
    if body.name is not None:
        update["name"] = body.name
    if body.email is not None:
        update["email"] = body.email.lower()
    if body.password is not None:
        update["password_hash"] = hash_password(body.password)
    if body.is_admin is not None:
        update["is_admin"] = body.is_admin
    if not update:
        return public_user(user)
    update["updated_at"] = now()
    try:
        db["user"].update_one({"_id": oid}, {"$set": update})
    except DuplicateKeyError:
        raise ValidationError("Email already in use")
    return public_user(db["user"].find_one({"_id": oid}))


def delete(db, user_id: str):
    res = db["user"].delete_one({"_id": parse_object_id(user_id, "user ID")})
    if res.deleted_count == 0:
        raise NotFound("User not found")
    logger.info("user deleted: %s", user_id)


def ensure_admin(db, email: str, password: str):
    if db["user"].find_one({"email": email.lower()}):
        return
    create_document(db, "user", {
        "name": "Admin",
        "email": email.lower(),
        "password_hash": hash_password(password),
        "is_admin": True,
    })
    logger.info("bootstrap admin created: %s", email)
