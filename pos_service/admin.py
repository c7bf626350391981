"""Reference data maintained from the admin screens: menu, users, restaurant profile, QR."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .database import get_db
from .logger import get_logger
from .models import MenuItem, QrConfig, RestaurantSettings, User
from .schemas import MenuItemIn, PasswordUpdate, QrConfigUpdate, RestaurantSettingsUpdate, UserCreate

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


# --- Menu items ---

@router.post("/menu-items")
def add_menu_item(item: MenuItemIn, db: Session = Depends(get_db)):
    db_item = MenuItem(**item.model_dump())
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    return {"id": db_item.id, "success": True}


@router.put("/menu-items/{item_id}")
def update_menu_item(item_id: int, item: MenuItemIn, db: Session = Depends(get_db)):
    db_item = db.get(MenuItem, item_id)
    if not db_item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    for field, value in item.model_dump().items():
        setattr(db_item, field, value)
    db_item.updated_at = func.current_timestamp()
    db.commit()
    return {"success": True}


@router.delete("/menu-items/{item_id}")
def delete_menu_item(item_id: int, db: Session = Depends(get_db)):
    db_item = db.get(MenuItem, item_id)
    if not db_item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    db.delete(db_item)
    db.commit()
    return {"success": True}


# --- Users ---

@router.post("/users")
def add_user(user: UserCreate, db: Session = Depends(get_db)):
    db_user = User(**user.model_dump())
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Username already exists")
    db.refresh(db_user)
    return {"id": db_user.id, "success": True}


@router.put("/users/{user_id}/password")
def update_user_password(user_id: int, req: PasswordUpdate, db: Session = Depends(get_db)):
    db_user = db.get(User, user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    db_user.password = req.password
    db_user.updated_at = func.current_timestamp()
    db.commit()
    return {"success": True}


@router.put("/users/{user_id}/last-login")
def update_last_login(user_id: int, request: Request, db: Session = Depends(get_db)):
    db_user = db.get(User, user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    db_user.last_login = request.app.state.clock.now()
    db.commit()
    return {"success": True}


@router.delete("/users/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db)):
    db_user = db.get(User, user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    db.delete(db_user)
    db.commit()
    return {"success": True}


# --- Restaurant profile and QR ---

@router.put("/restaurant-settings")
def update_restaurant_settings(req: RestaurantSettingsUpdate, db: Session = Depends(get_db)):
    """Partial update: only the fields present in the body change."""
    changes = req.model_dump(exclude_unset=True)
    if not changes:
        return {"success": True}

    settings = db.query(RestaurantSettings).order_by(RestaurantSettings.id.desc()).first()
    if settings is None:
        if not changes.get("name"):
            raise HTTPException(status_code=400, detail="Restaurant name is required")
        settings = RestaurantSettings()
        db.add(settings)
    for field, value in changes.items():
        setattr(settings, field, value)
    settings.updated_at = func.current_timestamp()
    db.commit()
    logger.info("Restaurant settings updated: %s", ", ".join(sorted(changes)))
    return {"success": True}


@router.put("/qr-config")
def update_qr_config(req: QrConfigUpdate, db: Session = Depends(get_db)):
    qr = db.query(QrConfig).order_by(QrConfig.id.desc()).first()
    if qr is None:
        qr = QrConfig()
        db.add(qr)
    for field, value in req.model_dump().items():
        setattr(qr, field, value)
    qr.updated_at = func.current_timestamp()
    db.commit()
    return {"success": True}
