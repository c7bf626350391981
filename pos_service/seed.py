from sqlalchemy.orm import Session

from .logger import get_logger
from .models import MenuCategory, MenuItem, PaymentMode, QrConfig, RestaurantSettings, User

logger = get_logger(__name__)

DEFAULT_CATEGORIES = ["Appetizers", "Main Course", "Beverages", "Desserts", "Special Items"]

DEFAULT_MENU_ITEMS = [
    ("Lachha Laddu (pc)", "Desserts", 15.00),
    ("Malai Kalakand", "Desserts", 20.00),
    ("Butter Chicken", "Main Course", 280.00),
    ("Dal Makhani", "Main Course", 220.00),
    ("Masala Chai", "Beverages", 25.00),
    ("Paneer Tikka", "Appetizers", 180.00),
    ("Chicken Biryani", "Main Course", 320.00),
    ("Gulab Jamun", "Desserts", 12.00),
]

DEFAULT_PAYMENT_MODES = ["Cash", "UPI", "Card", "Online", "Credit"]


def seed_defaults(db: Session) -> bool:
    """Insert the default restaurant data into an empty database. Returns True if seeded."""
    if db.query(User).count() > 0:
        return False

    logger.info("Inserting default data...")
    db.add(RestaurantSettings(
        name="PB's BHOJANALAY",
        address="MOHANBARI BY PASS, NH-15, Dist. - Dibrugarh, (Assam), PIN NO - 786012",
        gstin="18AJZPG4997J3Z1",
        fssai="20323116000543",
        phone="+91 9876543210",
        gst_rate=5,
        upi_id="pbsbhojanalay@upi",
        merchant_name="PB's BHOJANALAY",
    ))
    db.add_all([
        User(username="admin", password="admin123", role="admin", name="Restaurant Manager",
             phone="+91 9876543210",
             permissions="generate_bills,export_data,print_all,edit_orders,delete_orders"),
        User(username="cashier1", password="cash123", role="cashier", name="DIPANJOLI",
             phone="+91 9876543211", permissions="create_orders,print_own,view_own_history"),
        User(username="lina", password="lina123", role="cashier", name="Lina",
             phone="+91 9876543212", permissions="create_orders,print_own,view_own_history"),
    ])
    db.add_all([MenuCategory(name=name) for name in DEFAULT_CATEGORIES])
    db.add_all([
        MenuItem(name=name, category=category, price=price)
        for name, category, price in DEFAULT_MENU_ITEMS
    ])
    db.add_all([PaymentMode(name=name) for name in DEFAULT_PAYMENT_MODES])
    db.add(QrConfig(upi_id="pbsbhojanalay@upi", merchant_name="PB's BHOJANALAY", enabled=True))
    db.commit()
    logger.info("Default data inserted successfully.")
    return True
