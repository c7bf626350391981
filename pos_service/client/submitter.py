import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from ..billing import temporary_bill_number
from ..clock import SystemClock
from ..hashing import fingerprint
from ..logger import get_logger
from .guard import SubmissionGuard

logger = get_logger(__name__)

ACCEPTED = "accepted"
DUPLICATE = "duplicate"
IN_PROGRESS = "in_progress"
ERROR = "error"


@dataclass
class SubmissionOutcome:
    status: str
    message: str = ""
    bill_number: Optional[str] = None
    order_id: Optional[int] = None
    existing_bill_number: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED


def new_order(
    items: Iterable[Dict[str, Any]],
    table_number: str,
    payment_mode: str = "Cash",
    gst_rate: float = 5,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    cashier: Optional[Dict[str, Any]] = None,
    generated_by: str = "cashier",
    clock=None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """Build a pending order with a temporary id and TEMP- bill number, totals computed."""
    clock = clock or SystemClock()
    lines = []
    for item in items:
        price = float(item["price"])
        quantity = int(item.get("quantity", 1))
        lines.append({"name": item["name"], "price": price, "quantity": quantity, "total": round(price * quantity, 2)})
    subtotal = round(sum(line["total"] for line in lines), 2)
    tax_amount = round(subtotal * gst_rate / 100, 2)
    now = clock.now()
    return {
        "id": int(clock.time() * 1000),
        "billNumber": temporary_bill_number(clock, rng),
        "customer_name": customer_name,
        "customer_phone": customer_phone,
        "table_number": str(table_number),
        "items": lines,
        "subtotal": subtotal,
        "gst_rate": gst_rate,
        "tax_amount": tax_amount,
        "total": round(subtotal + tax_amount, 2),
        "payment_mode": payment_mode,
        "cashier_id": (cashier or {}).get("id"),
        "cashier_name": (cashier or {}).get("name"),
        "status": "pending",
        "created_at": now.isoformat(),
        "date": clock.today().isoformat(),
        "generated_by": generated_by,
    }


def normalize_order(order: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce an order from /api/data into the shape the screens work with."""
    order = dict(order)
    items = order.get("items")
    if not isinstance(items, list):
        items = []
    normalized = []
    for item in items:
        price = _float(item.get("price"))
        quantity = int(_float(item.get("quantity"), 1)) or 1
        normalized.append({
            "name": item.get("name") or "Unknown Item",
            "price": price,
            "quantity": quantity,
            "total": _float(item.get("total"), price * quantity),
        })
    order["items"] = normalized
    order["subtotal"] = _float(order.get("subtotal"))
    order["tax_amount"] = _float(order.get("tax_amount"))
    order["total"] = _float(order.get("total"))
    order["gst_rate"] = _float(order.get("gst_rate"), 5)
    if "bill_number" in order:
        order["billNumber"] = str(order.pop("bill_number") or "")
    order["billNumber"] = str(order.get("billNumber") or "")
    return order


class OrderSubmitter:
    """
    Client half of an order submission.

    Reserves the order's fingerprint in the guard, posts it, and always releases
    the reservation once the request settles. `session` is a requests.Session or
    anything with the same get/post/put/delete methods.
    """

    def __init__(self, base_url: str = "http://localhost:3000", session=None,
                 guard: Optional[SubmissionGuard] = None, clock=None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.clock = clock or SystemClock()
        self.guard = guard or SubmissionGuard(clock=self.clock)
        self.timeout = timeout
        self.data: Dict[str, Any] = {}
        self.orders: List[Dict[str, Any]] = []

    def load_data(self) -> Dict[str, Any]:
        response = self.session.get(f"{self.base_url}/api/data", timeout=self.timeout)
        if response.status_code != 200:
            raise requests.HTTPError(f"Server responded with status: {response.status_code}")
        data = response.json()
        data["orders"] = [normalize_order(o) for o in data.get("orders") or []]
        self.data = data
        self.orders = data["orders"]
        return data

    def submit(self, order: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> SubmissionOutcome:
        fp = fingerprint(order)
        if not self.guard.reserve(fp, metadata):
            logger.info("Order %s... is already being submitted", fp[:16])
            return SubmissionOutcome(IN_PROGRESS, "This order is already being submitted. Please wait.")
        try:
            return self._send(order)
        finally:
            self.guard.release(fp)

    def _send(self, order: Dict[str, Any]) -> SubmissionOutcome:
        try:
            response = self.session.post(f"{self.base_url}/api/orders", json=order, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Error completing order: %s", exc)
            return SubmissionOutcome(ERROR, "Error completing order. Please try again.")

        body = _json_body(response)
        if response.status_code == 409:
            existing = body.get("existingBillNumber")
            logger.info("Server detected duplicate order (%s): %s", body.get("reason"), existing)
            message = "This order has already been processed."
            if existing:
                message = f"Bill already exists with number: {existing}"
            return SubmissionOutcome(DUPLICATE, message, existing_bill_number=existing)

        if response.status_code >= 400 or not body.get("success"):
            logger.error("Server rejected order with status %s: %s", response.status_code, body)
            return SubmissionOutcome(ERROR, body.get("error") or f"HTTP error! status: {response.status_code}")

        order["billNumber"] = str(body.get("billNumber"))
        order["status"] = "completed"
        if body.get("id") is not None:
            order["id"] = body["id"]
        self.reconcile(order)
        logger.info("Order completed with bill number %s", order["billNumber"])
        return SubmissionOutcome(ACCEPTED, f"Bill #{order['billNumber']} saved",
                                 bill_number=order["billNumber"], order_id=body.get("id"))

    def reconcile(self, order: Dict[str, Any]) -> None:
        """Insert or replace `order` in the local list, matching on bill number, else id."""
        for index, existing in enumerate(self.orders):
            if existing.get("billNumber") and order.get("billNumber"):
                same = existing["billNumber"] == order["billNumber"]
            else:
                same = existing.get("id") == order.get("id")
            if same:
                self.orders[index] = order
                return
        self.orders.insert(0, order)

    def set_status(self, order_id: int, status: str) -> bool:
        response = self.session.put(f"{self.base_url}/api/orders/{order_id}/status",
                                    json={"status": status}, timeout=self.timeout)
        return response.status_code == 200

    def delete_order(self, order_id: int, user_id: int) -> bool:
        response = self.session.delete(f"{self.base_url}/api/orders/{order_id}",
                                       headers={"X-User-Id": str(user_id)}, timeout=self.timeout)
        if response.status_code == 200:
            self.orders = [o for o in self.orders if o.get("id") != order_id]
            return True
        return False


def _json_body(response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default
