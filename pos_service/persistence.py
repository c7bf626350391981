from datetime import date, datetime
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .billing import BillNumberAllocator
from .clock import SystemClock
from .errors import BILL_NUMBER_CONFLICT, EXPLICIT_BILL_NUMBER, BillNumberExhaustedError, DuplicateOrderError
from .hashing import as_mapping
from .logger import get_logger
from .models import Order

logger = get_logger(__name__)


class OrderGateway:
    """Commits an accepted order exactly once, under a bill number no other order has."""

    def __init__(self, allocator: BillNumberAllocator, max_attempts: int = 5, clock=None):
        self.allocator = allocator
        self.max_attempts = int(max_attempts)
        self.clock = clock or SystemClock()

    def save(self, db: Session, order: Mapping, supplied_bill_number: Optional[str] = None) -> Order:
        """
        Pick a bill number and insert the order.

        - A real bill number supplied by the client is kept as is; if it already
          exists the order is a duplicate and nothing is renumbered.
        - A missing or TEMP- number is replaced by a generated candidate, which is
          regenerated on collision up to `max_attempts` candidates in total.
        """
        explicit = bool(supplied_bill_number) and not self.allocator.is_temporary(supplied_bill_number)
        bill_number = str(supplied_bill_number) if explicit else self.allocator.allocate()
        if not explicit:
            logger.info(
                "Generated new bill number %s for %s bill number",
                bill_number, "temp" if supplied_bill_number else "missing",
            )

        for attempt in range(1, self.max_attempts + 1):
            existing = db.query(Order.id).filter(Order.bill_number == bill_number).first()
            if existing is None:
                return self.insert(db, order, bill_number)

            if explicit:
                logger.info("Duplicate order detected: bill number %s already exists", bill_number)
                raise DuplicateOrderError(EXPLICIT_BILL_NUMBER, bill_number, existing.id)

            logger.info(
                "Bill number %s already exists (attempt %d/%d)",
                bill_number, attempt, self.max_attempts,
            )
            if attempt < self.max_attempts:
                bill_number = self.allocator.allocate()

        logger.error("Max retries exceeded for generating unique bill number")
        raise BillNumberExhaustedError(self.max_attempts)

    def insert(self, db: Session, order: Any, bill_number: str, status: str = "completed") -> Order:
        if self.allocator.is_temporary(bill_number):
            raise ValueError(f"Temporary bill number {bill_number} cannot be persisted")

        o = as_mapping(order)
        row = Order(
            bill_number=bill_number,
            customer_name=o.get("customer_name"),
            customer_phone=o.get("customer_phone"),
            table_number=str(o.get("table_number")),
            items=[_item_row(i) for i in o.get("items") or []],
            subtotal=float(o.get("subtotal") or 0),
            gst_rate=float(o["gst_rate"]) if o.get("gst_rate") is not None else 5.0,
            tax_amount=float(o.get("tax_amount") or 0),
            total=float(o.get("total") or 0),
            payment_mode=o.get("payment_mode"),
            cashier_id=o.get("cashier_id"),
            cashier_name=o.get("cashier_name"),
            # Orders arriving through submission are completed, whatever the client thought.
            status=status,
            created_at=self.clock.now(),
            date=_order_date(o.get("date")) or self.clock.today(),
            generated_by=o.get("generated_by") or "cashier",
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            existing = db.query(Order.id).filter(Order.bill_number == bill_number).first()
            if existing is None:
                raise
            # Lost a race the request lock did not cover; the unique column decides.
            logger.warning("Bill number %s was taken concurrently", bill_number)
            raise DuplicateOrderError(BILL_NUMBER_CONFLICT, bill_number, existing.id) from exc

        db.refresh(row)
        logger.info("Order saved successfully with bill number: %s", bill_number)
        return row


def _item_row(item: Any) -> dict:
    i = as_mapping(item)
    price = float(i.get("price") or 0)
    quantity = int(i.get("quantity") or 1)
    total = i.get("total")
    return {
        "name": i.get("name"),
        "price": price,
        "quantity": quantity,
        "total": float(total) if total is not None else round(price * quantity, 2),
    }


def _order_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None
