import os
from typing import Optional

from pydantic import BaseModel


class Settings(BaseModel):
    app_env: str = "development"
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    jwt_secret: str = "devsecret"
    jwt_algo: str = "HS256"
    access_token_minutes: int = 60
    refresh_token_days: int = 30

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    payment_timeout_seconds: float = 900

    resend_api_key: str = ""
    email_from: str = "orders@djewel.in"

    shipping_cost: float = 200
    product_limit: int = 100

    log_level: str = "INFO"
    log_json: bool = False

    @property
    def is_dev(self) -> bool:
        return self.app_env != "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            app_env=os.getenv("APP_ENV", "development"),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
            jwt_algo=os.getenv("JWT_ALGO", "HS256"),
            access_token_minutes=int(os.getenv("ACCESS_TOKEN_MINUTES", 60)),
            refresh_token_days=int(os.getenv("REFRESH_TOKEN_DAYS", 30)),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            payment_timeout_seconds=float(os.getenv("PAYMENT_TIMEOUT_SECONDS", 900)),
            resend_api_key=os.getenv("RESEND_API_KEY", ""),
            email_from=os.getenv("EMAIL_FROM", "orders@djewel.in"),
            shipping_cost=float(os.getenv("SHIPPING_COST", 200)),
            product_limit=int(os.getenv("PRODUCT_LIMIT", 100)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes"),
        )


# Dev-only test identities. Ignored when APP_ENV=production.
DEV_USERS = {
    "admin@test.com": {"password": "admin123", "name": "Admin User", "is_admin": True},
    "user1@test.com": {"password": "user123", "name": "Test User 1", "is_admin": False},
    "user2@test.com": {"password": "user123", "name": "Test User 2", "is_admin": False},
}


def get_dev_user(settings: Settings, email: str) -> Optional[dict]:
    if not settings.is_dev:
        return None
    return DEV_USERS.get(email.lower())
