"""
Server-side duplicate detection.

Checks run in order and stop at the first hit:

1. request lock: the same fingerprint is being processed right now
2. id match: a persisted order carries the client's id (a retry of the same request)
3. content match: a recent order with the same customer, table, total, origin and items

A failing lookup counts as "not a duplicate"; the unique bill number is the backstop.
"""

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .clock import SystemClock
from .errors import CONTENT_MATCH, ID_MATCH, REQUEST_IN_PROGRESS
from .hashing import as_mapping, fingerprint
from .locks import RequestLockTable
from .logger import get_logger
from .models import Order

logger = get_logger(__name__)

TOTAL_TOLERANCE = 0.005

_CHECK_TYPES = {REQUEST_IN_PROGRESS: "lockActive", ID_MATCH: "idMatch", CONTENT_MATCH: "contentMatch"}


@dataclass
class DuplicateCheck:
    fingerprint: str
    is_duplicate: bool
    reason: Optional[str] = None
    matched_order: Optional[Order] = None
    # Set when this check took the request lock; the caller releases it with this token.
    lock_token: Optional[int] = None

    @property
    def lock_held(self) -> bool:
        return self.lock_token is not None


class DetectionMetrics:
    """Running counters for the duplicate detector."""

    def __init__(self):
        self._mutex = threading.Lock()
        self.total_checks = 0
        self.duplicates_found = 0
        self.lookup_errors = 0
        self.total_processing_time = 0.0
        self.duplicates_by_type: Dict[str, int] = {name: 0 for name in _CHECK_TYPES.values()}

    def record(self, result: DuplicateCheck, elapsed: float) -> None:
        with self._mutex:
            self.total_checks += 1
            self.total_processing_time += elapsed
            if result.is_duplicate:
                self.duplicates_found += 1
                kind = _CHECK_TYPES.get(result.reason)
                if kind:
                    self.duplicates_by_type[kind] += 1

    def record_lookup_error(self) -> None:
        with self._mutex:
            self.lookup_errors += 1

    def snapshot(self) -> dict:
        with self._mutex:
            checks = self.total_checks
            return {
                "totalChecks": checks,
                "totalDuplicatesFound": self.duplicates_found,
                "lookupErrors": self.lookup_errors,
                "duplicatesByType": dict(self.duplicates_by_type),
                "averageProcessingTime": (self.total_processing_time / checks * 1000) if checks else 0.0,
                "detectionRate": (self.duplicates_found / checks * 100) if checks else 0.0,
            }


def same_items(items1: Any, items2: Any) -> bool:
    """Element-wise comparison of two item lists after sorting both by name."""
    if not items1 or not items2 or len(items1) != len(items2):
        return False
    a = sorted((as_mapping(i) for i in items1), key=lambda i: str(i.get("name") or ""))
    b = sorted((as_mapping(i) for i in items2), key=lambda i: str(i.get("name") or ""))
    try:
        for x, y in zip(a, b):
            if x.get("name") != y.get("name"):
                return False
            if int(x.get("quantity") or 0) != int(y.get("quantity") or 0):
                return False
            if round(float(x.get("price") or 0), 2) != round(float(y.get("price") or 0), 2):
                return False
    except (TypeError, ValueError):
        return False
    return True


class DuplicateDetector:
    def __init__(self, locks: RequestLockTable, window_seconds: float = 300.0, clock=None):
        self.locks = locks
        self.window_seconds = float(window_seconds)
        self.clock = clock or SystemClock()
        self.metrics = DetectionMetrics()

    def check(self, db: Session, order: Any, fp: Optional[str] = None) -> DuplicateCheck:
        started = time.perf_counter()
        fp = fp or fingerprint(order)
        result = self._check(db, as_mapping(order), fp)
        elapsed = time.perf_counter() - started
        self.metrics.record(result, elapsed)
        if result.is_duplicate:
            existing = result.matched_order.bill_number if result.matched_order is not None else None
            logger.info(
                "Duplicate check for %s... completed in %.0fms - DUPLICATE (%s), existing bill: %s",
                fp[:16], elapsed * 1000, result.reason, existing,
            )
        else:
            logger.info("Duplicate check for %s... completed in %.0fms - NO DUPLICATE", fp[:16], elapsed * 1000)
        return result

    def _check(self, db: Session, order: dict, fp: str) -> DuplicateCheck:
        token = self.locks.acquire(fp)
        if token is None:
            return DuplicateCheck(fp, True, REQUEST_IN_PROGRESS)
        try:
            return self._match(db, order, fp, token)
        except BaseException:
            # The caller never gets a token from a failed check.
            self.locks.release(fp, token)
            raise

    def _match(self, db: Session, order: dict, fp: str, token: int) -> DuplicateCheck:
        client_id = order.get("id")
        if client_id not in (None, ""):
            match = self._lookup(db, self.find_by_id, client_id)
            if match is not None:
                return DuplicateCheck(fp, True, ID_MATCH, match, lock_token=token)

        match = self._lookup(db, self.find_by_content, order)
        if match is not None:
            return DuplicateCheck(fp, True, CONTENT_MATCH, match, lock_token=token)

        # Clear: the lock stays with the caller until the insert settles.
        return DuplicateCheck(fp, False, lock_token=token)

    def _lookup(self, db: Session, fn, arg) -> Optional[Order]:
        try:
            return fn(db, arg)
        except SQLAlchemyError:
            logger.exception("Duplicate lookup %s failed, treating as not duplicate", fn.__name__)
            self.metrics.record_lookup_error()
            db.rollback()
            return None

    def find_by_id(self, db: Session, client_id: Any) -> Optional[Order]:
        try:
            order_id = int(client_id)
        except (TypeError, ValueError):
            return None
        # SQLite integers are 64-bit signed
        if not 0 < order_id < 2 ** 63:
            return None
        return db.get(Order, order_id)

    def find_by_content(self, db: Session, order: dict) -> Optional[Order]:
        cutoff = self.clock.now() - timedelta(seconds=self.window_seconds)
        try:
            total = float(order.get("total") or 0)
        except (TypeError, ValueError):
            return None
        candidates = (
            db.query(Order)
            .filter(
                Order.created_at > cutoff,
                func.coalesce(Order.customer_name, "") == (order.get("customer_name") or ""),
                Order.table_number == str(order.get("table_number") or ""),
                Order.total.between(total - TOTAL_TOLERANCE, total + TOTAL_TOLERANCE),
                func.coalesce(Order.generated_by, "cashier") == (order.get("generated_by") or "cashier"),
            )
            .order_by(Order.created_at.desc())
            .all()
        )
        for candidate in candidates:
            if same_items(order.get("items"), candidate.items):
                return candidate
        return None
