# --- Imports ---
import math
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from .admin import router as admin_router
from .billing import BillNumberAllocator
from .clock import SystemClock
from .config import Settings, get_settings
from .database import get_db, init_db, make_engine, make_session_factory
from .duplicates import DuplicateDetector
from .errors import BillNumberExhaustedError, DuplicateOrderError
from .locks import RequestLockTable
from .logger import get_logger, set_level
from .models import MenuCategory, MenuItem, Order, PaymentMode, QrConfig, RestaurantSettings, User
from .persistence import OrderGateway
from .schemas import LoginRequest, OrderRequest, StatusUpdate
from .seed import seed_defaults
from .service import OrderSubmissionService
from .sweeper import PeriodicSweep

logger = get_logger(__name__)


# --- Endpoints ---

routes = APIRouter()


@routes.get("/")
def root():
    """Health check endpoint."""
    return {"message": "Restaurant POS service is running"}


@routes.post("/api/orders")
def create_order(req: OrderRequest, request: Request, db: Session = Depends(get_db)):
    """
    Submits a bill.
    - Duplicates (in progress, same id, same content, taken bill number) get a 409.
    - Otherwise the order is stored as completed under a server-generated bill number.
    """
    order = request.app.state.submissions.submit(db, req)
    return {"success": True, "id": order.id, "billNumber": order.bill_number}


@routes.get("/api/orders")
def list_orders(db: Session = Depends(get_db)):
    orders = db.query(Order).order_by(Order.created_at.desc()).all()
    return [o.to_dict() for o in orders]


@routes.get("/api/orders/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db)):
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order.to_dict()


@routes.put("/api/orders/{order_id}/status")
def update_order_status(order_id: int, req: StatusUpdate, db: Session = Depends(get_db)):
    """Moves an order from pending to completed. Completed orders are never reopened."""
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.status == "completed" and req.status == "pending":
        return JSONResponse(status_code=409, content={"error": "Completed orders cannot be reopened"})
    if order.status != req.status:
        order.status = req.status
        db.commit()
    return {"success": True, "status": order.status}


@routes.delete("/api/orders/{order_id}")
def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    """Deletes an order. Only admins may delete."""
    user = db.get(User, user_id) if user_id is not None else None
    if user is None or user.role != "admin":
        raise HTTPException(status_code=403, detail="Only admins can delete orders")
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    bill_number = order.bill_number
    db.delete(order)
    db.commit()
    logger.info("Order %s (bill %s) deleted by %s", order_id, bill_number, user.username)
    return {"success": True}


@routes.get("/api/data")
def get_all_data(db: Session = Depends(get_db)):
    """Everything the POS screens load on start, in one read."""
    restaurant = db.query(RestaurantSettings).order_by(RestaurantSettings.id.desc()).first()
    qr = db.query(QrConfig).order_by(QrConfig.id.desc()).first()
    return {
        "restaurant": _restaurant_dict(restaurant) if restaurant else {},
        "users": [u.to_dict() for u in db.query(User).order_by(User.id).all()],
        "menuCategories": [c.name for c in db.query(MenuCategory).order_by(MenuCategory.name).all()],
        "menuItems": [m.to_dict() for m in db.query(MenuItem).order_by(MenuItem.id).all()],
        "paymentModes": [p.name for p in db.query(PaymentMode).order_by(PaymentMode.name).all()],
        "orders": [o.to_dict() for o in db.query(Order).order_by(Order.created_at.desc()).all()],
        "qrConfig": {
            "upiId": qr.upi_id,
            "merchantName": qr.merchant_name,
            "enabled": bool(qr.enabled),
            "fixedAmount": bool(qr.fixed_amount),
            "uploadedImage": qr.uploaded_image,
        } if qr else {"enabled": True, "uploadedImage": None},
    }


@routes.get("/api/sales-summary")
def sales_summary(request: Request, period: str = "today", db: Session = Depends(get_db)):
    """
    Totals of completed orders since the start of today, this week (Monday) or
    this month, by the restaurant's local calendar.
    """
    now: datetime = request.app.state.clock.local_now()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        start = start - timedelta(days=start.weekday())
    elif period == "month":
        start = start.replace(day=1)
    else:
        period = "today"
    # created_at is stored as naive UTC
    since = start.astimezone(timezone.utc).replace(tzinfo=None)

    row = (
        db.query(
            func.count(Order.id),
            func.sum(Order.total),
            func.sum(Order.subtotal),
            func.sum(Order.tax_amount),
        )
        .filter(Order.created_at >= since, Order.status == "completed")
        .one()
    )
    return {
        "period": period,
        "totalOrders": row[0] or 0,
        "totalSales": row[1] or 0,
        "totalSubtotal": row[2] or 0,
        "totalTax": row[3] or 0,
    }


@routes.get("/api/metrics/locks")
def lock_metrics(request: Request):
    return request.app.state.locks.stats()


@routes.get("/api/metrics/duplicate-detection")
def duplicate_detection_metrics(request: Request):
    return request.app.state.detector.metrics.snapshot()


@routes.post("/api/auth/login")
def login(req: LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == req.username.strip()).first()
    if not user or user.password != req.password:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    user.last_login = request.app.state.clock.now()
    db.commit()
    return user.to_dict()


def _restaurant_dict(r: RestaurantSettings) -> dict:
    return {
        "id": r.id,
        "name": r.name,
        "address": r.address,
        "gstin": r.gstin,
        "fssai": r.fssai,
        "phone": r.phone,
        "gst_rate": r.gst_rate,
        "upi_id": r.upi_id,
        "merchant_name": r.merchant_name,
        "logo": r.logo,
    }


def _json_safe(value):
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


def create_app(settings: Optional[Settings] = None, clock=None, allocator: Optional[BillNumberAllocator] = None) -> FastAPI:
    """Build the POS API with its own database engine, lock table and submission pipeline."""
    settings = settings or get_settings()
    clock = clock or SystemClock(settings.tzinfo)
    set_level(settings.log_level)

    engine = make_engine(settings.database_url)
    locks = RequestLockTable(settings.lock_timeout_seconds, settings.max_request_locks, clock)
    detector = DuplicateDetector(locks, settings.duplicate_window_seconds, clock)
    allocator = allocator or BillNumberAllocator(clock, temp_prefix=settings.temp_bill_prefix)
    gateway = OrderGateway(allocator, settings.bill_number_max_attempts, clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create database tables and default data on startup.
        init_db(engine)
        if settings.seed_defaults:
            with app.state.session_factory() as db:
                seed_defaults(db)
        app.state.lock_sweeper.start()
        logger.info("Restaurant POS service started, database: %s", settings.database_url)
        yield
        app.state.lock_sweeper.stop()
        engine.dispose()
        logger.info("Restaurant POS service stopped")

    app = FastAPI(title="Restaurant POS API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.clock = clock
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.locks = locks
    app.state.detector = detector
    app.state.submissions = OrderSubmissionService(locks, detector, gateway)
    app.state.lock_sweeper = PeriodicSweep(locks.sweep, settings.lock_sweep_interval_seconds, "lock-sweeper")

    @app.exception_handler(DuplicateOrderError)
    async def _duplicate_order(request: Request, exc: DuplicateOrderError):
        return JSONResponse(status_code=409, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        # Rejected input is echoed back; Infinity/NaN must not break the JSON body
        return JSONResponse(status_code=422, content={"detail": _json_safe(jsonable_encoder(exc.errors()))})

    @app.exception_handler(BillNumberExhaustedError)
    async def _bill_numbers_exhausted(request: Request, exc: BillNumberExhaustedError):
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to generate unique bill number after multiple attempts"},
        )

    app.include_router(routes)
    app.include_router(admin_router)
    return app


app = create_app()

if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", 3000))
    uvicorn.run(app, host="0.0.0.0", port=port)
