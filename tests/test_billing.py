import random

import pytest

from pos_service.billing import BillNumberAllocator, temporary_bill_number
from pos_service.errors import BILL_NUMBER_CONFLICT, EXPLICIT_BILL_NUMBER, BillNumberExhaustedError, DuplicateOrderError
from pos_service.models import Order
from pos_service.persistence import OrderGateway

from conftest import FixedAllocator


def test_allocate_is_a_twelve_digit_string(clock):
    allocator = BillNumberAllocator(clock, rng=random.Random(7))
    number = allocator.allocate()
    assert len(number) == 12 and number.isdigit()


def test_temporary_bill_numbers(clock):
    allocator = BillNumberAllocator(clock)
    temp = temporary_bill_number(clock)
    assert temp.startswith("TEMP-")
    assert allocator.is_temporary(temp)
    assert not allocator.is_temporary(allocator.allocate())
    assert not allocator.is_temporary(None)


def test_temporary_bill_number_is_replaced(db, gateway, make_order):
    row = gateway.save(db, make_order(status="pending"), "TEMP-1700000000000123")
    assert not row.bill_number.startswith("TEMP-")
    assert row.status == "completed"
    assert db.query(Order).filter(Order.bill_number.like("TEMP-%")).count() == 0


def test_missing_bill_number_is_generated(db, gateway, clock, make_order):
    row = gateway.save(db, make_order())
    assert row.bill_number.isdigit()
    assert row.created_at == clock.now()
    assert row.date == clock.today()
    assert row.items == [{"name": "Tea", "price": 25.0, "quantity": 2, "total": 50.0}]


def test_explicit_bill_number_is_kept(db, gateway, make_order):
    row = gateway.save(db, make_order(), "B-1001")
    assert row.bill_number == "B-1001"


def test_explicit_bill_number_collision_is_a_duplicate(db, gateway, make_order):
    first = gateway.save(db, make_order(), "B-1001")
    with pytest.raises(DuplicateOrderError) as info:
        gateway.save(db, make_order(table_number="9"), "B-1001")
    assert info.value.reason == EXPLICIT_BILL_NUMBER
    assert info.value.existing_bill_number == "B-1001"
    assert info.value.existing_order_id == first.id
    assert db.query(Order).count() == 1


def test_generated_collision_is_retried(db, clock, make_order):
    allocator = FixedAllocator("111111111111", "222222222222", clock=clock)
    gateway = OrderGateway(allocator, max_attempts=5, clock=clock)
    gateway.insert(db, make_order(), "111111111111")
    row = gateway.save(db, make_order(table_number="2"))
    assert row.bill_number == "222222222222"
    assert allocator.calls == 2


def test_five_collisions_exhaust_the_allocator(db, clock, make_order):
    allocator = FixedAllocator("111111111111", clock=clock)
    gateway = OrderGateway(allocator, max_attempts=5, clock=clock)
    gateway.insert(db, make_order(), "111111111111")
    with pytest.raises(BillNumberExhaustedError):
        gateway.save(db, make_order(table_number="2"))
    assert allocator.calls == 5
    assert db.query(Order).count() == 1


def test_insert_refuses_temporary_numbers(db, gateway, make_order):
    with pytest.raises(ValueError):
        gateway.insert(db, make_order(), "TEMP-42")


def test_unique_violation_on_insert_is_a_conflict(db, gateway, make_order):
    first = gateway.insert(db, make_order(), "333333333333")
    with pytest.raises(DuplicateOrderError) as info:
        gateway.insert(db, make_order(table_number="3"), "333333333333")
    assert info.value.reason == BILL_NUMBER_CONFLICT
    assert info.value.existing_order_id == first.id
    assert db.query(Order).count() == 1
