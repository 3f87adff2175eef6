import threading

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import utils as auth_utils
from database import ensure_indexes, get_db, utcnow
from main import app
from services import analytics


@pytest.fixture
def db():
    database = mongomock.MongoClient()["bzcart_test"]
    ensure_indexes(database)
    return database


class LockedCollection:
    """Runs each collection call under one shared lock, like a server applies single-document writes."""

    def __init__(self, collection, lock):
        self._collection = collection
        self._lock = lock

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if not callable(attr):
            return attr

        def locked(*args, **kwargs):
            with self._lock:
                return attr(*args, **kwargs)

        return locked


class LockedDatabase:
    def __init__(self, database):
        self._database = database
        self._lock = threading.RLock()

    def __getattr__(self, name):
        return LockedCollection(getattr(self._database, name), self._lock)

    def __getitem__(self, name):
        return LockedCollection(self._database[name], self._lock)


@pytest.fixture
def shared_db(db):
    """`db` as seen by many worker threads at once."""
    return LockedDatabase(db)

@pytest.fixture
def outbox(monkeypatch):
    """Every mail the app tries to send, instead of hitting SMTP."""
    sent = []

    def fake_send_email(recipients, subject, html, bcc=False):
        sent.append({"recipients": list(recipients), "subject": subject, "html": html, "bcc": bcc})
        return True

    monkeypatch.setattr(auth_utils, "send_email", fake_send_email)
    return sent


@pytest.fixture
def geo_calls(monkeypatch):
    calls = []

    async def fake_lookup(ip):
        calls.append(ip)
        return {"ip": ip, "city": "Dhaka", "country": "Bangladesh"}

    monkeypatch.setattr(analytics, "lookup_location", fake_lookup)
    return calls


@pytest.fixture
def client(db, outbox, geo_calls):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_account(db, role="user", email=None, collection=None, password="secret123"):
    collection = collection or ("users" if role == "user" else "admins")
    email = email or f"{role}{db[collection].count_documents({})}@example.com"
    account = {
        "username": email.split("@")[0],
        "email": email,
        "password": auth_utils.get_password_hash(password),
        "otp": None,
        "is_verified": True,
        "role": role,
        "createdAt": utcnow(),
    }
    account["_id"] = db[collection].insert_one(account).inserted_id
    return account


def auth_header(account):
    return {"Authorization": f"Bearer {auth_utils.create_access_token(str(account['_id']))}"}


@pytest.fixture
def user(db):
    return make_account(db, "user", "shopper@example.com")


@pytest.fixture
def user_headers(user):
    return auth_header(user)


@pytest.fixture
def admin_headers(db):
    return auth_header(make_account(db, "admin", "admin@example.com"))


@pytest.fixture
def superadmin_headers(db):
    return auth_header(make_account(db, "superadmin", "root@example.com"))


@pytest.fixture
def category(db):
    doc = {"name": "Shirts", "parent_category": None, "createdAt": utcnow()}
    doc["_id"] = db.categories.insert_one(doc).inserted_id
    return doc


def make_product(db, category, code, stock=5, sizes=None, price=100.0, shipping=0.0):
    doc = {
        "product_name": f"Product {code}",
        "product_description": "",
        "product_base_price": price + 20,
        "product_discounted_price": price,
        "product_stock": stock,
        "sizes": sizes or [],
        "product_images": [f"{code}-front.jpg", f"{code}-back.jpg"],
        "category": str(category["_id"]),
        "subcategories": [],
        "brand_name": "BZ",
        "product_code": code,
        "rating": 4,
        "bg_color": "#FFFFFF",
        "shipping": shipping,
        "payment": ["cod"],
        "reviews": [],
        "createdAt": utcnow(),
    }
    doc["_id"] = db.products.insert_one(doc).inserted_id
    return doc


@pytest.fixture
def product(db, category):
    return make_product(db, category, "P-FLAT", stock=5)


@pytest.fixture
def sized_product(db, category):
    return make_product(
        db,
        category,
        "P-SIZED",
        stock=0,
        sizes=[{"size": "M", "stock": 4}, {"size": "L", "stock": 2}],
        price=50.0,
    )
