from typing import Optional

REQUEST_IN_PROGRESS = "request in progress"
ID_MATCH = "id match"
CONTENT_MATCH = "content match"
EXPLICIT_BILL_NUMBER = "explicit bill number collision"
BILL_NUMBER_CONFLICT = "bill number conflict"


class OrderSubmissionError(Exception):
    """Base class for errors raised by the order submission pipeline."""


class DuplicateOrderError(OrderSubmissionError):
    """The order was already submitted, or is being submitted right now."""

    def __init__(
        self,
        reason: str,
        existing_bill_number: Optional[str] = None,
        existing_order_id: Optional[int] = None,
    ):
        self.reason = reason
        self.existing_bill_number = existing_bill_number
        self.existing_order_id = existing_order_id
        super().__init__(f"Duplicate order ({reason})")

    def to_response(self) -> dict:
        if self.reason == REQUEST_IN_PROGRESS:
            message = "This order is already being processed"
        elif self.reason in (EXPLICIT_BILL_NUMBER, BILL_NUMBER_CONFLICT):
            message = "An order with this bill number already exists"
        else:
            message = "This order has already been processed"
        return {
            "error": "Duplicate order",
            "message": message,
            "reason": self.reason,
            "existingBillNumber": self.existing_bill_number,
            "existingOrderId": self.existing_order_id,
        }


class BillNumberExhaustedError(OrderSubmissionError):
    """Every candidate bill number collided with an existing order."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"No unique bill number after {attempts} attempts")
