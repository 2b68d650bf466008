import os
import logging
import traceback
from typing import Optional, Tuple

from fastapi import APIRouter, FastAPI, Depends, File, Form, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import cart
import catalog
import contact
import database
import media
import orders
import reviews
import users
from config import ADMIN_EMAIL, ADMIN_PASSWORD, DEBUG, FRONTEND_URL, MAX_UPLOAD_BYTES, configure_logging
from database import get_db
from errors import AppError, ValidationError
from schemas import (
    CartItemAdd, CartItemUpdate, CartReplace, CatalogItem, CatalogItemUpdate, ContactMessage,
    LoginRequest, OrderConfirm, OrderStatusUpdate, ReviewCreate, UserCreate, UserUpdate,
)
from security import get_admin_user, get_current_user

configure_logging()
logger = logging.getLogger("storefront")

# FastAPI app
app = FastAPI(title="Storefront API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL] if FRONTEND_URL != "*" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error rendering: every error body carries a "message"
@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_body()))

@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())})

@app.exception_handler(PydanticValidationError)
def model_validation_handler(request: Request, exc: PydanticValidationError):
    errors = jsonable_encoder(exc.errors(include_url=False, include_context=False))
    return JSONResponse(status_code=400, content={"message": "Invalid request data", "errors": errors})

@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    body = {"message": "Internal Server Error"}
    if DEBUG:
        body["error"] = str(exc)
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=body)


@app.on_event("startup")
def startup():
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; running without a database")
        return
    try:
        database.ensure_indexes(database.db)
        if ADMIN_EMAIL and ADMIN_PASSWORD:
            users.ensure_admin(database.db, ADMIN_EMAIL, ADMIN_PASSWORD)
    except PyMongoError:
        logger.exception("database setup failed")


def _read_upload(file: Optional[UploadFile]) -> Optional[Tuple[bytes, Optional[str]]]:
    if file is None:
        return None
    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError("File size limit has been reached (5 MB)")
    if not data:
        return None
    return data, file.content_type


# Health
@app.get("/")
def root():
    return {"message": "Storefront API running"}

@app.get("/api/health")
def health():
    db_state = "Disconnected"
    if database.db is not None:
        try:
            database.db.command("ping")
            db_state = "Connected"
        except PyMongoError:
            pass
    return {
        "status": "OK",
        "db": db_state,
        "cloudinary": "Configured" if media.is_configured() else "Not Configured",
    }


# Users
@app.post("/api/users/register", status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db=Depends(get_db)):
    return users.register(db, payload)

@app.post("/api/users/login")
def login(payload: LoginRequest, db=Depends(get_db)):
    return users.login(db, payload)

@app.get("/api/users")
def list_users(admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    return users.list_all(db)

@app.get("/api/users/me")
def get_me(current_user: dict = Depends(get_current_user)):
    return users.public_user(current_user)

@app.get("/api/users/{user_id}")
def get_user(user_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return users.get_by_id(db, user_id, current_user)

@app.put("/api/users/{user_id}")
def update_user(user_id: str, body: UserUpdate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return users.update(db, user_id, body, current_user)

@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    users.delete(db, user_id)
    return {"message": "User removed"}


# Unified catalog (registered before /api/products/{item_id})
@app.get("/api/products/unified")
def unified_products(keyword: Optional[str] = None, category: Optional[str] = None,
                     pageNumber: int = 1, db=Depends(get_db)):
    items, page, pages = catalog.list_unified(db, keyword, category, pageNumber)
    return {"items": items, "page": page, "pages": pages}

@app.get("/api/products/productdetails/{item_id}")
def unified_product_detail(item_id: str, name: Optional[str] = None, category: Optional[str] = None,
                           db=Depends(get_db)):
    return catalog.get_unified(db, item_id, name, category)


# Catalog kinds
def catalog_router(kind: catalog.CatalogKind, prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[kind.label])

    @router.get("")
    def list_items(keyword: Optional[str] = None, pageNumber: int = 1, db=Depends(get_db)):
        items, page, pages = catalog.list_items(db, kind, keyword, pageNumber)
        return {"items": items, "page": page, "pages": pages}

    @router.get("/{item_id}")
    def get_item(item_id: str, db=Depends(get_db)):
        return catalog.get_item(db, kind, item_id)

    @router.post("", status_code=status.HTTP_201_CREATED)
    def create_item(
        name: str = Form(...),
        description: str = Form(...),
        price: float = Form(...),
        category: str = Form(...),
        stock: int = Form(0),
        image: Optional[UploadFile] = File(None),
        admin: dict = Depends(get_admin_user),
        db=Depends(get_db),
    ):
        fields = CatalogItem(name=name, description=description, price=price, category=category, stock=stock)
        return catalog.create_item(db, kind, fields, _read_upload(image))

    @router.put("/{item_id}")
    def update_item(
        item_id: str,
        name: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        price: Optional[float] = Form(None),
        category: Optional[str] = Form(None),
        stock: Optional[int] = Form(None),
        image: Optional[UploadFile] = File(None),
        admin: dict = Depends(get_admin_user),
        db=Depends(get_db),
    ):
        patch = CatalogItemUpdate(name=name, description=description, price=price, category=category, stock=stock)
        return catalog.update_item(db, kind, item_id, patch.model_dump(), _read_upload(image))

    @router.delete("/{item_id}")
    def delete_item(item_id: str, admin: dict = Depends(get_admin_user), db=Depends(get_db)):
        catalog.delete_item(db, kind, item_id)
        return {"message": f"{kind.label} removed"}

    return router


app.include_router(catalog_router(catalog.PRODUCT, "/api/products"))
app.include_router(catalog_router(catalog.GADGET, "/api/gadgets"))
app.include_router(catalog_router(catalog.FRAGRANCE, "/api/fragrances"))
app.include_router(catalog_router(catalog.CARCARE, "/api/carcare"))


# Cart
@app.get("/api/cart")
def get_cart(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return cart.fetch(db, str(current_user["_id"]))

@app.post("/api/cart")
def replace_cart(payload: CartReplace, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    result = cart.replace_cart(db, str(current_user["_id"]), payload.items)
    return {"message": "Cart updated successfully", "cart": result}

@app.delete("/api/cart")
def clear_cart(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    result = cart.clear(db, str(current_user["_id"]))
    return {"message": "Cart cleared successfully", "cart": result}

@app.post("/api/cart/items")
def add_cart_item(payload: CartItemAdd, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    result = cart.add_item(db, str(current_user["_id"]), payload.productId, payload.category, payload.quantity)
    return {"message": "Item added to cart", "cart": result}

@app.put("/api/cart/items/{item_id}")
def update_cart_item(item_id: str, payload: CartItemUpdate, current_user: dict = Depends(get_current_user),
                     db=Depends(get_db)):
    result = cart.update_line(db, str(current_user["_id"]), item_id, payload.quantity)
    return {"message": "Cart item updated", "cart": result}

@app.delete("/api/cart/items/{item_id}")
def remove_cart_item(item_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    result = cart.remove_line(db, str(current_user["_id"]), item_id)
    return {"message": "Item removed from cart successfully", "cart": result}


# Orders
@app.post("/api/orders/confirm", status_code=status.HTTP_201_CREATED)
def confirm_order(payload: OrderConfirm, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    order = orders.confirm(db, str(current_user["_id"]), payload.shippingInfo)
    return {"message": "Order placed successfully", "order": order}

@app.get("/api/orders")
def my_orders(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return orders.list_for_user(db, str(current_user["_id"]))

@app.get("/api/orders/all")
def all_orders(admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    return orders.list_all(db)

@app.get("/api/orders/{order_id}")
def order_detail(order_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return orders.get_by_id(db, order_id, current_user)

@app.delete("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    orders.cancel(db, order_id, str(current_user["_id"]))
    return {"message": "Order canceled successfully"}

@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: OrderStatusUpdate, admin: dict = Depends(get_admin_user),
                        db=Depends(get_db)):
    order = orders.set_status(db, order_id, body.status)
    return {"message": f"Order status updated to {body.status}", "order": order}


# Reviews
@app.post("/api/reviews/{item_id}", status_code=status.HTTP_201_CREATED)
def add_review(item_id: str, body: ReviewCreate, current_user: dict = Depends(get_current_user),
               db=Depends(get_db)):
    review = reviews.add(db, str(current_user["_id"]), item_id, body.rating, body.comment)
    return {"message": "Review added successfully", "review": review}

@app.get("/api/reviews/{item_id}")
def list_reviews(item_id: str, db=Depends(get_db)):
    return reviews.list_for_item(db, item_id)

@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    reviews.remove(db, review_id, str(current_user["_id"]), bool(current_user.get("is_admin")))
    return {"message": "Review deleted successfully"}


# Contact
@app.post("/api/contact", status_code=status.HTTP_201_CREATED)
def create_contact_message(payload: ContactMessage, db=Depends(get_db)):
    contact.create(db, payload)
    return {"message": "Contact message sent successfully"}

@app.get("/api/contact")
def list_contact_messages(admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    return contact.list_all(db)

@app.get("/api/contact/{message_id}")
def get_contact_message(message_id: str, admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    return {"success": True, "data": contact.get_by_id(db, message_id)}

@app.delete("/api/contact/{message_id}")
def delete_contact_message(message_id: str, admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    contact.delete(db, message_id)
    return {"message": "Message deleted successfully"}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
