"""
Order fingerprints.

A fingerprint is a SHA-256 digest over a normalised projection of an order:
strings trimmed and lower-cased, items sorted by name, money formatted to two
decimals. The client id, bill number, timestamps and cashier are deliberately
left out, so the same bill submitted twice hashes the same.
"""

import hashlib
import json
from typing import Any, Dict, List, Mapping

from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_GST_RATE = 5


def as_mapping(order: Any) -> Mapping:
    if isinstance(order, Mapping):
        return order
    if hasattr(order, "model_dump"):
        return order.model_dump()
    return vars(order)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _money(value: Any, default: float = 0.0) -> str:
    try:
        number = float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        number = default
    return f"{number:.2f}"


def _quantity(value: Any) -> int:
    # A zero or missing quantity counts as one
    try:
        return int(float(value or 1))
    except (TypeError, ValueError, OverflowError):
        return 1


def normalize_items(items: Any) -> List[Dict[str, Any]]:
    rows = []
    for item in items or []:
        item = as_mapping(item)
        rows.append({
            "name": _text(item.get("name")).lower(),
            "price": _money(item.get("price")),
            "quantity": _quantity(item.get("quantity")),
            "total": _money(item.get("total")),
        })
    return sorted(rows, key=lambda r: r["name"])


def canonical_content(order: Any) -> Dict[str, Any]:
    """The projection of an order that takes part in the fingerprint."""
    o = as_mapping(order)
    return {
        "customer_name": _text(o.get("customer_name")).lower(),
        "customer_phone": _text(o.get("customer_phone")),
        "table_number": _text(o.get("table_number")).lower(),
        "items": normalize_items(o.get("items")),
        "subtotal": _money(o.get("subtotal")),
        "gst_rate": _money(o.get("gst_rate") or DEFAULT_GST_RATE),
        "tax_amount": _money(o.get("tax_amount")),
        "total": _money(o.get("total")),
        "payment_mode": _text(o.get("payment_mode")).lower(),
        "generated_by": (_text(o.get("generated_by")) or "cashier").lower(),
    }


def simple_digest(text: str) -> str:
    """32-bit rolling hash (h * 31 + c), hex encoded. Used when SHA-256 is unavailable."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return format(abs(h), "x")


def fingerprint(order: Any) -> str:
    """Deterministic fingerprint of an order. Never raises."""
    try:
        canonical = json.dumps(canonical_content(order), separators=(",", ":"))
    except Exception:
        logger.exception("Could not normalise order for hashing, using raw payload")
        try:
            canonical = json.dumps(order, sort_keys=True, default=str)
        except Exception:
            canonical = repr(order)
    try:
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    except Exception:
        logger.exception("SHA-256 failed, falling back to simple digest")
        return simple_digest(canonical)
