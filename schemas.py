"""
Database Schemas for the DJewel storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the snake_case of the class name.
"""
from typing import List, Optional, Literal

from pydantic import BaseModel, Field

ProductCategory = Literal["ring", "necklace", "earring", "bracelet", "pendant", "chain", "bangle", "anklet"]
MetalType = Literal["gold", "silver", "platinum", "white_gold", "rose_gold"]
MetalPurity = Literal["24k", "22k", "18k", "14k", "925_silver", "950_platinum"]
ActiveFlag = Literal["active", "inactive"]

PaymentStatus = Literal["pending", "paid", "completed", "failed", "refunded", "payment_failed"]
OrderStatus = Literal["placed", "confirmed", "processing", "shipped", "delivered", "cancelled", "payment_failed"]

CustomRequestStatus = Literal["pending", "reviewed", "quoted", "declined"]
UserRole = Literal["customer", "admin", "super_admin"]
AdminActionType = Literal["product_created", "product_updated", "product_deleted", "order_updated", "request_responded"]
AdminEntityType = Literal["product", "order", "request"]

CATEGORIES = ["ring", "necklace", "earring", "bracelet", "pendant", "chain", "bangle", "anklet"]


class Product(BaseModel):
    """
    Jewellery catalog schema
    Collection: "product"
    """
    id: Optional[str] = None
    name: str
    description: str = ""
    short_description: Optional[str] = None
    sku: Optional[str] = None
    category: ProductCategory
    metal_type: MetalType
    metal_purity: MetalPurity
    weight_grams: float = Field(0, ge=0)
    gross_weight_grams: Optional[float] = Field(None, ge=0)
    stone_weight: Optional[float] = Field(None, ge=0, description="Stone weight in carats")
    stone_quality: Optional[str] = None
    stone_grade: Optional[str] = None
    stone_setting: Optional[str] = None
    stone_count: Optional[int] = Field(None, ge=0)
    width_mm: Optional[float] = None
    height_mm: Optional[float] = None
    length_mm: Optional[float] = None
    price: float = Field(..., ge=0)
    mrp: float = Field(..., ge=0)
    making_charges_saved: float = 0
    images: List[str] = []
    videos: List[str] = []
    stock_quantity: int = Field(0, ge=0)
    is_active: ActiveFlag = "active"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CartItem(BaseModel):
    product: Product
    quantity: int = Field(1, ge=1)


class ShippingAddress(BaseModel):
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    pincode: str
    country: str = "India"


class OrderItem(BaseModel):
    """Frozen copy of a cart line at the moment the order was placed."""
    product_id: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    image: str = ""
    weight_grams: float = 0
    making_charges_saved: float = 0


class Order(BaseModel):
    """
    Orders schema
    Collection: "order"
    """
    id: Optional[str] = None
    order_number: str
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: ShippingAddress
    items: List[OrderItem]
    subtotal: float
    total_savings: float = 0
    shipping_cost: float = 0
    total_amount: float
    payment_status: PaymentStatus = "pending"
    payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    order_status: OrderStatus = "placed"
    tracking_number: Optional[str] = None
    shipping_provider: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UserProfile(BaseModel):
    """
    Profiles schema, one per email
    Collection: "user_profile"
    """
    id: Optional[str] = None
    email: str
    name: str = ""
    phone: str = ""
    saved_addresses: List[ShippingAddress] = []
    role: UserRole = "customer"
    is_admin: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CustomRequest(BaseModel):
    """
    Custom design requests
    Collection: "custom_request"
    """
    id: Optional[str] = None
    customer_email: str
    customer_phone: str = ""
    customer_name: Optional[str] = None
    image_url: str
    description: str
    status: CustomRequestStatus = "pending"
    admin_response: Optional[str] = None
    estimated_price: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CustomRequestComment(BaseModel):
    """Collection: "custom_request_comment" """
    id: Optional[str] = None
    request_id: str
    customer_email: str
    comment_text: str
    created_at: Optional[str] = None


class AdminLog(BaseModel):
    """Collection: "admin_log" """
    id: Optional[str] = None
    admin_email: str
    action_type: AdminActionType
    entity_type: AdminEntityType
    entity_id: str
    details: dict = {}
    timestamp: Optional[str] = None


class Notification(BaseModel):
    title: str
    description: str = ""
    variant: Literal["default", "destructive"] = "default"
