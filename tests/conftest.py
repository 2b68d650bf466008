from datetime import datetime, timezone
from types import SimpleNamespace

import mongomock
import pytest
from fastapi.testclient import TestClient

import media
import users
from database import ensure_indexes, get_db
from main import app
from schemas import UserCreate
from security import create_access_token


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    database = client["storefront_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture(autouse=True)
def cloud(monkeypatch):
    """Record Cloudinary traffic instead of sending it."""
    state = SimpleNamespace(uploaded=[], destroyed=[])

    def upload_image(data, content_type, folder):
        url = f"https://res.cloudinary.com/demo/image/upload/v1/{folder}/img{len(state.uploaded)}.jpg"
        state.uploaded.append(url)
        return url

    def destroy_image(url, folder):
        state.destroyed.append(url)

    monkeypatch.setattr(media, "upload_image", upload_image)
    monkeypatch.setattr(media, "destroy_image", destroy_image)
    return state


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _account(db, name, email, is_admin=False):
    public = users.register(db, UserCreate(name=name, email=email, password="secret123"), is_admin=is_admin)
    token = create_access_token({"sub": public["id"]})
    return SimpleNamespace(id=public["id"], name=name, email=email,
                           headers={"Authorization": f"Bearer {token}"})


@pytest.fixture
def user(db):
    return _account(db, "Jane Buyer", "jane@shop.com")


@pytest.fixture
def other_user(db):
    return _account(db, "Sam Other", "sam@shop.com")


@pytest.fixture
def admin(db):
    return _account(db, "Admin", "admin@shop.com", is_admin=True)


@pytest.fixture
def make_item(db):
    def _make(kind="product", name="Seat Cover", price=25.0, stock=5, category="Interior", images=None):
        ts = datetime.now(timezone.utc)
        doc = {
            "name": name,
            "description": f"{name} description",
            "price": price,
            "category": category,
            "stock": stock,
            "images": images if images is not None else [f"https://res.cloudinary.com/demo/{name}.jpg"],
            "created_at": ts,
            "updated_at": ts,
        }
        doc["_id"] = db[kind].insert_one(doc).inserted_id
        doc["id"] = str(doc["_id"])
        return doc
    return _make


SHIPPING = {
    "firstName": "Jane",
    "lastName": "Buyer",
    "phone": "0771234567",
    "address": "12 Main Street",
    "city": "Colombo",
}


@pytest.fixture
def shipping():
    return dict(SHIPPING)
