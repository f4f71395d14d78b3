from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .upstream import PayloadError


def _str(item: Dict[str, Any], key: str) -> Optional[str]:
    value = item.get(key)
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _int(item: Dict[str, Any], key: str) -> Optional[int]:
    value = item.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _bool(item: Dict[str, Any], key: str) -> Optional[bool]:
    value = item.get(key)
    return value if isinstance(value, bool) else None


def _require_object(item: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise PayloadError(f"Expected {kind} object, got {type(item).__name__}")
    return item


def format_cents(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    return f"${cents / 100:.2f}"


@dataclass(frozen=True)
class Product:
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None

    @property
    def formatted_price(self) -> str:
        return format_cents(self.price)

    @classmethod
    def from_payload(cls, item: Any) -> "Product":
        item = _require_object(item, "product")
        return cls(
            id=_str(item, "id"),
            name=_str(item, "name"),
            description=_str(item, "description"),
            price=_int(item, "price"),
        )


@dataclass(frozen=True)
class License:
    id: Optional[str] = None
    product_name: Optional[str] = None
    license_key: Optional[str] = None
    permalink: Optional[str] = None
    sale_datetime: Optional[str] = None
    purchaser_email: Optional[str] = None
    refunded: Optional[bool] = None
    disputed: Optional[bool] = None
    chargebacked: Optional[bool] = None

    @classmethod
    def from_payload(cls, item: Any) -> "License":
        item = _require_object(item, "license")
        return cls(
            id=_str(item, "id"),
            product_name=_str(item, "product_name"),
            license_key=_str(item, "license_key"),
            permalink=_str(item, "permalink"),
            sale_datetime=_str(item, "sale_datetime"),
            purchaser_email=_str(item, "purchaser_email"),
            refunded=_bool(item, "refunded"),
            disputed=_bool(item, "disputed"),
            chargebacked=_bool(item, "chargebacked"),
        )


@dataclass(frozen=True)
class Sale:
    id: Optional[str] = None
    email: Optional[str] = None
    price: Optional[int] = None
    gumroad_fee: Optional[int] = None
    currency: Optional[str] = None
    quantity: Optional[int] = None
    discover_fee: Optional[int] = None
    can_contact: Optional[bool] = None
    referrer: Optional[str] = None
    order_id: Optional[int] = None
    created_at: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    refunded: Optional[bool] = None
    disputed: Optional[bool] = None
    chargebacked: Optional[bool] = None
    affiliate_credit: Optional[int] = None
    purchaser_id: Optional[str] = None
    license_key: Optional[str] = None
    timestamp: Optional[str] = None
    daystamp: Optional[str] = None

    @property
    def formatted_price(self) -> str:
        return format_cents(self.price)

    @classmethod
    def from_payload(cls, item: Any) -> "Sale":
        item = _require_object(item, "sale")
        return cls(
            id=_str(item, "id"),
            email=_str(item, "email"),
            price=_int(item, "price"),
            gumroad_fee=_int(item, "gumroad_fee"),
            currency=_str(item, "currency"),
            quantity=_int(item, "quantity"),
            discover_fee=_int(item, "discover_fee"),
            can_contact=_bool(item, "can_contact"),
            referrer=_str(item, "referrer"),
            order_id=_int(item, "order_id"),
            created_at=_str(item, "created_at"),
            product_id=_str(item, "product_id"),
            product_name=_str(item, "product_name"),
            refunded=_bool(item, "refunded"),
            disputed=_bool(item, "disputed"),
            chargebacked=_bool(item, "chargebacked"),
            affiliate_credit=_int(item, "affiliate_credit"),
            purchaser_id=_str(item, "purchaser_id"),
            license_key=_str(item, "license_key"),
            timestamp=_str(item, "timestamp"),
            daystamp=_str(item, "daystamp"),
        )


@dataclass(frozen=True)
class LicenseVerification:
    success: bool
    uses: Optional[int] = None
    purchase: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, item: Any) -> "LicenseVerification":
        item = _require_object(item, "verification")
        if item.get("success") is True:
            purchase = item.get("purchase")
            return cls(
                success=True,
                uses=_int(item, "uses"),
                purchase=purchase if isinstance(purchase, dict) else None,
            )
        return cls(success=False, message=_str(item, "message") or "Invalid license key")

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.uses is not None:
            out["uses"] = self.uses
        if self.purchase is not None:
            out["purchase"] = self.purchase
        if self.message:
            out["message"] = self.message
        return out
