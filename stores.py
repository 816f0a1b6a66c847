"""
Persisted shopper state: the cart and the wishlist.

Each store keeps its items in memory, rewrites its blob in the shopper's
``StateStorage`` after every mutation and rehydrates from it on creation.
Storage failures are logged and never reach the caller.
"""
import json
from typing import Dict, List, Optional

import structlog
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import now_utc
from errors import StorageError
from schemas import CartItem, Product

logger = structlog.get_logger(__name__)


# ----------------------- Storage -----------------------
class StateStorage:
    """Key-value storage of opaque string blobs for one shopper."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStateStorage(StateStorage):
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def remove(self, key):
        self._data.pop(key, None)


class MongoStateStorage(StateStorage):
    collection = "client_state"

    def __init__(self, database: Database, shopper_id: str):
        self.db = database
        self.shopper_id = shopper_id

    def get(self, key):
        try:
            doc = self.db[self.collection].find_one({"shopper_id": self.shopper_id, "key": key})
        except PyMongoError as e:
            raise StorageError(str(e)) from e
        return doc["value"] if doc else None

    def set(self, key, value):
        try:
            self.db[self.collection].update_one(
                {"shopper_id": self.shopper_id, "key": key},
                {"$set": {"value": value, "updated_at": now_utc()}},
                upsert=True,
            )
        except PyMongoError as e:
            raise StorageError(str(e)) from e

    def remove(self, key):
        try:
            self.db[self.collection].delete_one({"shopper_id": self.shopper_id, "key": key})
        except PyMongoError as e:
            raise StorageError(str(e)) from e


class PersistedStore:
    storage_key = ""

    def __init__(self, storage: StateStorage):
        self._storage = storage
        self._hydrate()

    def _dump(self) -> dict:
        raise NotImplementedError

    def _load(self, state: dict) -> None:
        raise NotImplementedError

    def _hydrate(self):
        try:
            raw = self._storage.get(self.storage_key)
        except StorageError as e:
            logger.warning("state_read_failed", key=self.storage_key, error=str(e))
            return
        if not raw:
            return
        try:
            self._load(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("state_blob_discarded", key=self.storage_key, error=str(e))

    def _persist(self):
        try:
            self._storage.set(self.storage_key, json.dumps(self._dump()))
        except StorageError as e:
            logger.warning("state_write_failed", key=self.storage_key, error=str(e))


# ----------------------- Cart -----------------------
class CartStore(PersistedStore):
    storage_key = "cart-storage"

    def __init__(self, storage: StateStorage):
        self._items: List[CartItem] = []
        super().__init__(storage)

    def _dump(self):
        return {"items": [item.model_dump(mode="json") for item in self._items]}

    def _load(self, state):
        self._items = [CartItem.model_validate(item) for item in state.get("items", [])]

    @property
    def items(self) -> List[CartItem]:
        return [item.model_copy(deep=True) for item in self._items]

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def subtotal(self) -> float:
        return sum(item.product.price * item.quantity for item in self._items)

    @property
    def total_savings(self) -> float:
        return sum(item.product.making_charges_saved * item.quantity for item in self._items)

    def is_empty(self) -> bool:
        return not self._items

    def get_item(self, product_id: str) -> Optional[CartItem]:
        for item in self._items:
            if item.product.id == product_id:
                return item.model_copy(deep=True)
        return None

    def add_item(self, product: Product, quantity: int = 1) -> None:
        if quantity <= 0:
            return
        for item in self._items:
            if item.product.id == product.id:
                item.quantity += quantity
                break
        else:
            self._items.append(CartItem(product=product.model_copy(deep=True), quantity=quantity))
        self._persist()

    def remove_item(self, product_id: str) -> None:
        self._items = [item for item in self._items if item.product.id != product_id]
        self._persist()

    def update_quantity(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(product_id)
            return
        for item in self._items:
            if item.product.id == product_id:
                item.quantity = quantity
        self._persist()

    def clear_cart(self) -> None:
        self._items = []
        self._persist()

    def snapshot(self) -> dict:
        return {
            "items": [item.model_dump(mode="json") for item in self._items],
            "item_count": self.item_count,
            "subtotal": self.subtotal,
            "total_savings": self.total_savings,
        }


# ----------------------- Wishlist -----------------------
class WishlistStore(PersistedStore):
    storage_key = "wishlist-storage"

    def __init__(self, storage: StateStorage):
        self._items: List[Product] = []
        super().__init__(storage)

    def _dump(self):
        return {"items": [p.model_dump(mode="json") for p in self._items]}

    def _load(self, state):
        self._items = [Product.model_validate(p) for p in state.get("items", [])]

    @property
    def items(self) -> List[Product]:
        return [p.model_copy(deep=True) for p in self._items]

    def is_in_wishlist(self, product_id: str) -> bool:
        return any(p.id == product_id for p in self._items)

    def add_item(self, product: Product) -> None:
        if self.is_in_wishlist(product.id):
            return
        self._items.append(product.model_copy(deep=True))
        self._persist()

    def remove_item(self, product_id: str) -> None:
        self._items = [p for p in self._items if p.id != product_id]
        self._persist()

    def toggle_item(self, product: Product) -> bool:
        """Add the product if absent, remove it otherwise. Returns the new presence."""
        if self.is_in_wishlist(product.id):
            self.remove_item(product.id)
            return False
        self.add_item(product)
        return True

    def clear_wishlist(self) -> None:
        self._items = []
        self._persist()
