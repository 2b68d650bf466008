import json
import hmac
import base64
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext

from config import JWT_SECRET, ACCESS_TOKEN_EXPIRE_MINUTES
from database import get_db, is_object_id, parse_object_id
from errors import Forbidden, Unauthorized

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login", auto_error=False)


# HS256 tokens signed with the shared JWT_SECRET
def _b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode()

def _b64url_decode(s: str) -> bytes:
    pad = '=' * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

def jwt_encode(payload: dict, secret: str) -> str:
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(',', ':')).encode())
    payload_b64 = _b64url_encode(json.dumps(payload, default=str, separators=(',', ':')).encode())
    signing_input = f"{header_b64}.{payload_b64}".encode()
    signature = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
    return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"

def jwt_decode(token: str, secret: str) -> dict:
    try:
        header_b64, payload_b64, sig_b64 = token.split('.')
        signing_input = f"{header_b64}.{payload_b64}".encode()
        expected_sig = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
        if not hmac.compare_digest(_b64url_encode(expected_sig), sig_b64):
            raise ValueError("Invalid signature")
        payload = json.loads(_b64url_decode(payload_b64))
        if 'exp' in payload and datetime.now(timezone.utc).timestamp() > payload['exp']:
            raise ValueError("Token expired")
        return payload
    except Exception as e:
        raise ValueError(str(e))


def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode["exp"] = int(expire.timestamp())
    return jwt_encode(to_encode, JWT_SECRET)


# Dependencies
def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db=Depends(get_db)) -> dict:
    if not token:
        raise Unauthorized("Not authorized, no token")
    try:
        payload = jwt_decode(token, JWT_SECRET)
    except ValueError:
        raise Unauthorized("Not authorized, token failed")
    user_id = payload.get("sub")
    if not user_id or not is_object_id(user_id):
        raise Unauthorized("Not authorized, token failed")
    user = db["user"].find_one({"_id": parse_object_id(user_id)})
    if not user:
        raise Unauthorized("User not found")
    return user


def get_admin_user(current_user: dict = Depends(get_current_user)) -> dict:
    require_admin(current_user)
    return current_user


def require_admin(user: dict):
    if not user.get("is_admin"):
        raise Forbidden("Not authorized as an admin")
