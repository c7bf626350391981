from typing import Any

from sqlalchemy.orm import Session

from .duplicates import DuplicateDetector
from .errors import DuplicateOrderError
from .hashing import as_mapping
from .locks import RequestLockTable
from .logger import get_logger
from .models import Order
from .persistence import OrderGateway

logger = get_logger(__name__)


class OrderSubmissionService:
    """Server half of a submission: lock, detect duplicates, number, persist, unlock."""

    def __init__(self, locks: RequestLockTable, detector: DuplicateDetector, gateway: OrderGateway):
        self.locks = locks
        self.detector = detector
        self.gateway = gateway

    def submit(self, db: Session, order: Any) -> Order:
        payload = as_mapping(order)
        logger.info(
            "Received order: customer=%s, table=%s, total=%s, items=%d",
            payload.get("customer_name") or "N/A", payload.get("table_number"),
            payload.get("total"), len(payload.get("items") or []),
        )

        check = self.detector.check(db, payload)
        try:
            if check.is_duplicate:
                matched = check.matched_order
                raise DuplicateOrderError(
                    check.reason,
                    matched.bill_number if matched is not None else None,
                    matched.id if matched is not None else None,
                )
            supplied = payload.get("bill_number") or payload.get("billNumber")
            return self.gateway.save(db, payload, supplied)
        finally:
            # Only the request that took the lock may release it.
            if check.lock_held:
                self.locks.release(check.fingerprint, check.lock_token)
