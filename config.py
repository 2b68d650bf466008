import os
import logging

from dotenv import load_dotenv
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

APP_ENV = os.getenv("APP_ENV", "production")
DEBUG = APP_ENV == "development"

FRONTEND_URL = os.getenv("FRONTEND_URL", "*")

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Order statuses that entitle the buyer to review the items of that order
REVIEW_QUALIFYING_STATUSES = [
    s.strip() for s in os.getenv("REVIEW_QUALIFYING_STATUSES", "Delivered").split(",") if s.strip()
]

# Legacy behaviour: cancelling an order only restocks generic products
RESTOCK_PRODUCTS_ONLY = os.getenv("RESTOCK_PRODUCTS_ONLY", "0").lower() in ("1", "true", "yes")

PAGE_SIZE = 10
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
PAYMENT_METHOD = "Cash on Delivery"
ORDER_STATUSES = ["Pending", "Processing", "Shipped", "Delivered"]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
