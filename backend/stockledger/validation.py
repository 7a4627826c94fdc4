from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum price: $999,999.99
MAX_PRICE = Decimal("999999.99")
MAX_QUANTITY = 999_999

SKU_MIN_LENGTH = 3
SKU_MAX_LENGTH = 20
NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100
CATEGORY_MAX_LENGTH = 100
SUPPLIER_MAX_LENGTH = 255
BARCODE_MIN_LENGTH = 8
BARCODE_MAX_LENGTH = 20

PRODUCT_REQUIRED_FIELDS = ("sku", "name", "category", "price", "quantity", "min_stock")

_SKU_RE = re.compile(r"^[A-Z0-9_-]+$")
_BARCODE_RE = re.compile(r"^[0-9]+$")
_CENT = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict."""


class DuplicateError(ConflictError):
    """A SKU or barcode is already used by another product."""

    def __init__(self, field: str, value: str, message: str | None = None):
        self.field = field
        self.value = value
        super().__init__(message or f"A product with {field} {value!r} already exists")


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Route-level allowlist:
    - writable_fields: what clients are allowed to send (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] | None = None


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


def validate_payload(*, payload: Any, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Check an incoming JSON body against a policy.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (only provided keys)

    Returns a dict holding only writable fields. Field contents are
    normalized later by the catalog ledger.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    if not partial:
        required = policy.required_on_create or set()
        missing = sorted(f for f in required if is_missing(payload.get(f)))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return dict(payload)


def require_fields(data: dict, fields=PRODUCT_REQUIRED_FIELDS) -> None:
    missing = [f for f in fields if is_missing(data.get(f))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def normalize_text(value: Any, field: str, *, min_length: int = 1, max_length: int | None = None) -> str:
    if value is None or not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if len(text) < min_length:
        if min_length <= 1:
            raise ValidationError(f"{field} cannot be blank")
        raise ValidationError(f"{field} must be at least {min_length} characters")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def normalize_optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if is_missing(value):
        return None
    return normalize_text(value, field, max_length=max_length)


def normalize_sku(value: Any) -> str:
    sku = normalize_text(value, "sku", min_length=SKU_MIN_LENGTH, max_length=SKU_MAX_LENGTH).upper()
    if not _SKU_RE.match(sku):
        raise ValidationError("sku may only contain letters, digits, '-' and '_'")
    return sku


def normalize_name(value: Any) -> str:
    return normalize_text(value, "name", min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)


def normalize_category(value: Any) -> str:
    return normalize_text(value, "category", max_length=CATEGORY_MAX_LENGTH)


def normalize_amount(value: Any, field: str = "total") -> Decimal:
    """Parse a non-negative money amount rounded to 2 places. No upper bound."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        if isinstance(value, float):
            amount = Decimal(repr(value))
        else:
            amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def normalize_price(value: Any) -> Decimal:
    """Unit price: a money amount capped at MAX_PRICE."""
    price = normalize_amount(value, "price")
    if price > MAX_PRICE:
        raise ValidationError(f"price cannot exceed {MAX_PRICE}")
    return price


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer parsing:
    - bool is rejected even though it subclasses int
    - "12.5", "1e3" and fractional floats are rejected
    - integral floats (150.0, as some JSON encoders send) are accepted
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def normalize_quantity(value: Any, field: str = "quantity", *, cap: bool = True) -> int:
    qty = parse_int(value, field)
    if qty < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cap and qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def normalize_positive_quantity(value: Any, field: str = "quantity") -> int:
    qty = parse_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def normalize_barcode(value: Any) -> str | None:
    if is_missing(value):
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError("barcode must be a string of digits")
    barcode = str(value).strip()
    if not _BARCODE_RE.match(barcode):
        raise ValidationError("barcode may only contain digits")
    if not BARCODE_MIN_LENGTH <= len(barcode) <= BARCODE_MAX_LENGTH:
        raise ValidationError(
            f"barcode must be between {BARCODE_MIN_LENGTH} and {BARCODE_MAX_LENGTH} digits"
        )
    return barcode


def price_to_cents(price: Decimal) -> int:
    return int((price * 100).to_integral_value(rounding=ROUND_HALF_UP))


def cents_to_price(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)
