"""
Form schemas and validation helpers.

Forms are validated before any database or gateway call; failures are
reported per field using dotted paths (``shipping_address.pincode``).
"""
import html
import re
from typing import Any, Dict, List, Optional, Type

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field, ValidationError, field_validator

from schemas import ActiveFlag, MetalPurity, MetalType, ProductCategory

PHONE_RE = re.compile(r"^[+]?[0-9]{10,14}$")
PINCODE_RE = re.compile(r"^[0-9]{6}$")
OTP_RE = re.compile(r"^[0-9]{6}$")


def sanitize_input(value: str) -> str:
    value = re.sub(r"[<>]", "", value)
    value = re.sub(r"javascript:", "", value, flags=re.IGNORECASE)
    value = re.sub(r"on\w+=", "", value, flags=re.IGNORECASE)
    return value.strip()


def sanitize_html(value: str) -> str:
    return html.escape(value, quote=True)


def _check_length(value: str, min_len: int, max_len: int, too_short: str, too_long: str) -> str:
    if len(value) < min_len:
        raise ValueError(too_short)
    if len(value) > max_len:
        raise ValueError(too_long)
    return sanitize_input(value)


def _check_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("Please enter a valid email address")
    return value.strip()


# ----------------------- Checkout -----------------------
class AddressForm(BaseModel):
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    pincode: str
    country: str = "India"

    @field_validator("line1")
    @classmethod
    def _line1(cls, v):
        return _check_length(v, 5, 200, "Address must be at least 5 characters", "Address is too long")

    @field_validator("line2")
    @classmethod
    def _line2(cls, v):
        if v is None:
            return v
        return _check_length(v, 0, 200, "", "Address is too long")

    @field_validator("city")
    @classmethod
    def _city(cls, v):
        return _check_length(v, 2, 50, "City is required", "City name is too long")

    @field_validator("state")
    @classmethod
    def _state(cls, v):
        return _check_length(v, 2, 50, "State is required", "State name is too long")

    @field_validator("pincode")
    @classmethod
    def _pincode(cls, v):
        if not PINCODE_RE.match(v):
            raise ValueError("Please enter a valid 6-digit pincode")
        return v


class CheckoutForm(BaseModel):
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: AddressForm

    @field_validator("customer_name")
    @classmethod
    def _name(cls, v):
        return _check_length(v, 2, 100, "Name must be at least 2 characters", "Name is too long")

    @field_validator("customer_email")
    @classmethod
    def _email(cls, v):
        return _check_email(v)

    @field_validator("customer_phone")
    @classmethod
    def _phone(cls, v):
        if not PHONE_RE.match(v):
            raise ValueError("Please enter a valid phone number (10-14 digits)")
        return v


# ----------------------- Auth / Profile -----------------------
class EmailForm(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return _check_email(v)


class CodeForm(EmailForm):
    code: str

    @field_validator("code")
    @classmethod
    def _code(cls, v):
        if not v:
            raise ValueError("Code is required")
        return v


class PasswordForm(EmailForm):
    password: str = Field(..., min_length=1)


class ProfileForm(BaseModel):
    name: str = ""
    phone: str = ""

    @field_validator("name")
    @classmethod
    def _name(cls, v):
        if v == "":
            return v
        return _check_length(v, 2, 100, "Name must be at least 2 characters", "Name is too long")

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        if v and not PHONE_RE.match(v):
            raise ValueError("Please enter a valid phone number")
        return v


# ----------------------- Custom Requests -----------------------
class CustomRequestForm(BaseModel):
    description: str
    customer_phone: str = ""
    customer_name: Optional[str] = None

    @field_validator("description")
    @classmethod
    def _description(cls, v):
        return _check_length(
            v, 20, 2000,
            "Please provide at least 20 characters describing your request",
            "Description is too long",
        )


class CommentForm(BaseModel):
    comment_text: str

    @field_validator("comment_text")
    @classmethod
    def _text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Please enter a comment")
        return _check_length(v, 1, 1000, "", "Comment is too long")


# ----------------------- Admin Products -----------------------
class ProductForm(BaseModel):
    name: str
    description: str = ""
    short_description: Optional[str] = None
    sku: Optional[str] = None
    category: ProductCategory
    metal_type: MetalType
    metal_purity: MetalPurity
    weight_grams: float = Field(0, ge=0, le=10000)
    gross_weight_grams: Optional[float] = Field(None, ge=0)
    stone_weight: Optional[float] = Field(None, ge=0)
    stone_quality: Optional[str] = None
    stone_grade: Optional[str] = None
    stone_setting: Optional[str] = None
    stone_count: Optional[int] = Field(None, ge=0)
    width_mm: Optional[float] = None
    height_mm: Optional[float] = None
    length_mm: Optional[float] = None
    price: float = Field(..., ge=1, le=100000000)
    mrp: float = Field(..., ge=0, le=100000000)
    images: List[str] = []
    videos: List[str] = []
    stock_quantity: int = Field(0, ge=0)
    is_active: ActiveFlag = "active"

    @field_validator("name")
    @classmethod
    def _name(cls, v):
        return _check_length(v, 3, 200, "Name must be at least 3 characters", "Name is too long")

    @field_validator("description")
    @classmethod
    def _description(cls, v):
        return _check_length(v, 0, 2000, "", "Description is too long")


class ProductUpdateForm(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[ProductCategory] = None
    metal_type: Optional[MetalType] = None
    metal_purity: Optional[MetalPurity] = None
    weight_grams: Optional[float] = Field(None, ge=0, le=10000)
    gross_weight_grams: Optional[float] = Field(None, ge=0)
    stone_weight: Optional[float] = Field(None, ge=0)
    stone_quality: Optional[str] = None
    stone_grade: Optional[str] = None
    stone_setting: Optional[str] = None
    stone_count: Optional[int] = Field(None, ge=0)
    width_mm: Optional[float] = None
    height_mm: Optional[float] = None
    length_mm: Optional[float] = None
    price: Optional[float] = Field(None, ge=1, le=100000000)
    mrp: Optional[float] = Field(None, ge=0, le=100000000)
    images: Optional[List[str]] = None
    videos: Optional[List[str]] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    is_active: Optional[ActiveFlag] = None


# ----------------------- Helper -----------------------
class ValidationResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    errors: Dict[str, str] = {}


def validate_form(schema: Type[BaseModel], data: Any) -> ValidationResult:
    """Validate ``data`` against ``schema``, keeping the first message per field."""
    try:
        return ValidationResult(success=True, data=schema.model_validate(data))
    except ValidationError as exc:
        errors = {}
        for err in exc.errors():
            path = ".".join(str(p) for p in err["loc"]) or "__root__"
            message = err["msg"]
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.setdefault(path, message)
        return ValidationResult(success=False, errors=errors)
