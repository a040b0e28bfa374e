import mongomock
import pytest
from bson.objectid import ObjectId
from fastapi.testclient import TestClient

from auth import hash_password, token_for_user
from database import create_document, ensure_indexes, get_db
from main import app
from storage import StoredFile, get_file_store

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class MemoryFileStore:
    """Same interface as storage.FileStore, kept in a dict instead of GridFS."""

    def __init__(self):
        self.files = {}

    def put(self, bucket, data, filename, content_type=None, metadata=None):
        file_id = str(ObjectId())
        self.files[(bucket, file_id)] = StoredFile(file_id, filename, content_type, data)
        return file_id

    def get(self, bucket, file_id):
        return self.files.get((bucket, str(file_id)))

    def delete(self, bucket, file_id):
        return self.files.pop((bucket, str(file_id)), None) is not None


@pytest.fixture
def db():
    database = mongomock.MongoClient(tz_aware=True)["woodart_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def files():
    return MemoryFileStore()


@pytest.fixture
def client(db, files):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_file_store] = lambda: files
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(name, email, role="customer", password="secret123", **extra):
        data = {
            "name": name,
            "email": email,
            "password_hash": hash_password(password),
            "phone": extra.pop("phone", "0771234567"),
            "address": extra.pop("address", "12 Temple Road, Kandy"),
            "role": role,
            **extra,
        }
        return db["user"].find_one({"_id": ObjectId(create_document(db, "user", data))})
    return _make


@pytest.fixture
def make_design(db):
    def _make(designer, item_name="Lotus Panel", price=1500.0, quantity=5, **extra):
        data = {
            "designer_id": str(designer["_id"]),
            "item_name": item_name,
            "description": "Hand carved panel",
            "price": price,
            "quantity": quantity,
            "board_color": "brown",
            "board_thickness": "5mm-6mm",
            "material": "Mahogany",
            "board_size": "8 x 6 inches",
            "image_url": "/api/design/image/none",
            "item_code": f"ITM-{ObjectId()}",
            **extra,
        }
        return db["design"].find_one({"_id": ObjectId(create_document(db, "design", data))})
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _headers


@pytest.fixture
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user("Admin", "admin@woodart.lk", role="admin"))
