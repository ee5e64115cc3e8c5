"""
Database seed script: the three suppliers, optional credentials from env, optional store.
"""
import os
from sqlalchemy.orm import Session
from app.database import SessionLocal, engine, Base
from app.models import Store, Supplier, SupplierType
from app.services.credentials import set_supplier_credentials

SUPPLIERS = [
    {
        "name": "nalpac",
        "display_name": "Nalpac",
        "type": SupplierType.REST_API,
        "env": {"apiToken": "NALPAC_API_TOKEN"},
    },
    {
        "name": "honeysplace",
        "display_name": "Honey's Place",
        "type": SupplierType.DATA_FEED,
        "env": {"apiToken": "HONEYSPLACE_API_TOKEN", "feedFormat": "HONEYSPLACE_FEED_FORMAT", "orderUrl": "HONEYSPLACE_ORDER_URL"},
    },
    {
        "name": "eldorado",
        "display_name": "Eldorado",
        "type": SupplierType.SFTP,
        "env": {"username": "ELDORADO_USERNAME", "password": "ELDORADO_PASSWORD"},
    },
]


def seed_suppliers(db: Session, environ=None) -> list[Supplier]:
    """Create missing suppliers; store credentials found in the environment."""
    environ = os.environ if environ is None else environ
    seeded = []
    for entry in SUPPLIERS:
        supplier = db.query(Supplier).filter(Supplier.name == entry["name"]).first()
        if not supplier:
            supplier = Supplier(name=entry["name"], display_name=entry["display_name"], type=entry["type"], is_active=True)
            db.add(supplier)
            print(f"✅ Created supplier: {entry['display_name']}")
        else:
            print(f"✅ Supplier {entry['display_name']} already exists")
        creds = {key: environ[var] for key, var in entry["env"].items() if environ.get(var)}
        if creds:
            set_supplier_credentials(supplier, creds)
            print(f"   🔐 Stored credentials for {entry['name']} ({', '.join(sorted(creds))})")
        seeded.append(supplier)
    db.commit()
    return seeded


def seed_store(db: Session, shop_domain: str) -> Store:
    store = db.query(Store).filter(Store.shop_domain == shop_domain).first()
    if not store:
        store = Store(shop_domain=shop_domain, is_active=True, auto_sync=True)
        db.add(store)
        db.commit()
        print(f"✅ Created store: {shop_domain}")
    return store


def seed_database():
    """Seed the database with initial data"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_suppliers(db)
        shop_domain = os.getenv("SEED_SHOP_DOMAIN", "").strip().lower()
        if shop_domain:
            seed_store(db, shop_domain)
        print("\n🎉 Database seeded successfully!")
    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_database()
