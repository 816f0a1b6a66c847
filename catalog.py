"""
Catalog access and the shopper-facing filter layer.

``ProductService`` reads and writes the ``product`` collection.
``CatalogView`` holds the loaded active products plus the current category
and search filters, and mirrors the category into URL query parameters so a
filtered listing can be shared or bookmarked.
"""
from typing import List, Mapping, Optional
from urllib.parse import urlencode

import structlog
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, now_utc, serialize_doc, to_object_id
from schemas import CATEGORIES, Product
from validation import ProductForm, ProductUpdateForm

logger = structlog.get_logger(__name__)

ALL = "all"


def derive_making_charges(mrp: float, price: float) -> float:
    return mrp - price


class ProductService:
    collection = "product"

    def __init__(self, database: Database):
        self.db = database

    def _query(self, filt: dict, limit: int) -> List[Product]:
        cursor = self.db[self.collection].find(filt).sort("created_at", DESCENDING).limit(limit)
        return [Product(**serialize_doc(d)) for d in cursor]

    def get_all_products(self, limit: int = 100) -> List[Product]:
        return self._query({"is_active": "active"}, limit)

    def list_for_admin(self, limit: int = 500) -> List[Product]:
        return self._query({}, limit)

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        oid = to_object_id(product_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid})
        return Product(**serialize_doc(doc)) if doc else None

    def create_product(self, form: ProductForm) -> Product:
        data = form.model_dump()
        data["making_charges_saved"] = derive_making_charges(form.mrp, form.price)
        product_id = create_document(self.db, self.collection, data)
        logger.info("product_created", product_id=product_id, name=form.name)
        return self.get_product_by_id(product_id)

    def update_product(self, product_id: str, form: ProductUpdateForm) -> Optional[Product]:
        existing = self.get_product_by_id(product_id)
        if existing is None:
            return None
        update = form.model_dump(exclude_none=True)
        mrp = update.get("mrp", existing.mrp)
        price = update.get("price", existing.price)
        update["making_charges_saved"] = derive_making_charges(mrp, price)
        update["updated_at"] = now_utc()
        self.db[self.collection].update_one({"_id": to_object_id(product_id)}, {"$set": update})
        return self.get_product_by_id(product_id)

    def delete_product(self, product_id: str) -> bool:
        oid = to_object_id(product_id)
        if oid is None:
            return False
        res = self.db[self.collection].delete_one({"_id": oid})
        return res.deleted_count > 0

    def count(self) -> int:
        return self.db[self.collection].count_documents({})


def filter_products(products: List[Product], category: str, query: str) -> List[Product]:
    filtered = products
    if category != ALL:
        filtered = [p for p in filtered if p.category == category]
    q = query.strip().lower()
    if q:
        filtered = [
            p for p in filtered
            if q in p.name.lower()
            or q in p.description.lower()
            or q in p.category.lower()
            or q in p.metal_type.lower()
        ]
    return filtered


class CatalogView:
    def __init__(self, products: ProductService, limit: int = 100):
        self.service = products
        self.limit = limit
        self.products: List[Product] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.selected_category = ALL
        self.search_query = ""

    def load_products(self) -> None:
        self.is_loading = True
        self.error = None
        try:
            self.products = self.service.get_all_products(self.limit)
        except PyMongoError as e:
            logger.warning("products_load_failed", error=str(e))
            self.error = str(e) or "Failed to load products"
        finally:
            self.is_loading = False

    def filter_by_category(self, category: str) -> None:
        if category != ALL and category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")
        self.selected_category = category

    def set_search_query(self, query: str) -> None:
        self.search_query = query

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        for p in self.products:
            if p.id == product_id:
                return p
        return None

    def filtered_products(self) -> List[Product]:
        return filter_products(self.products, self.selected_category, self.search_query)

    # URL sync
    def to_query_params(self) -> dict:
        params = {}
        if self.selected_category != ALL:
            params["category"] = self.selected_category
        if self.search_query.strip():
            params["q"] = self.search_query.strip()
        return params

    def to_query_string(self) -> str:
        return urlencode(self.to_query_params())

    def apply_query_params(self, params: Mapping[str, str]) -> None:
        """Restore filters from a URL; an unknown category falls back to all."""
        category = params.get("category") or ALL
        self.selected_category = category if category in CATEGORIES else ALL
        self.search_query = params.get("q") or ""
