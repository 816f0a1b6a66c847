from typing import Optional

import structlog
from pymongo.database import Database

from database import create_document, now_utc, serialize_doc
from schemas import ShippingAddress, UserProfile

logger = structlog.get_logger(__name__)

DEFAULT_PROFILE_NAME = "New User"


class UserProfileService:
    collection = "user_profile"

    def __init__(self, database: Database):
        self.db = database

    def get_profile(self, email: str) -> Optional[UserProfile]:
        doc = self.db[self.collection].find_one({"email": email})
        return UserProfile(**serialize_doc(doc)) if doc else None

    def get_or_create_profile(self, email: str) -> UserProfile:
        """Return the profile for ``email``, creating a default one on first sign-in."""
        profile = self.get_profile(email)
        if profile is not None:
            return profile
        logger.info("profile_created", email=email)
        return self.upsert_profile(email, DEFAULT_PROFILE_NAME, "")

    def upsert_profile(self, email: str, name: str, phone: str) -> UserProfile:
        existing = self.get_profile(email)
        if existing:
            self.db[self.collection].update_one(
                {"email": email},
                {"$set": {"name": name, "phone": phone, "updated_at": now_utc()}},
            )
        else:
            create_document(self.db, self.collection, UserProfile(email=email, name=name, phone=phone))
        return self.get_profile(email)

    def add_saved_address(self, email: str, address: ShippingAddress) -> Optional[UserProfile]:
        if self.get_profile(email) is None:
            return None
        self.db[self.collection].update_one(
            {"email": email},
            {"$push": {"saved_addresses": address.model_dump()}, "$set": {"updated_at": now_utc()}},
        )
        return self.get_profile(email)

    def is_admin(self, email: str) -> bool:
        profile = self.get_profile(email)
        return bool(profile and profile.is_admin)

    def set_admin(self, email: str, is_admin: bool = True) -> None:
        self.db[self.collection].update_one(
            {"email": email},
            {"$set": {"is_admin": is_admin, "role": "admin" if is_admin else "customer", "updated_at": now_utc()}},
        )
