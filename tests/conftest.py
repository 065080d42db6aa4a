import copy
import os
from types import SimpleNamespace

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from db import get_db
from main import app


def _matches(doc, query):
    return all(doc.get(key) == value for key, value in query.items())


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        self.docs.sort(key=lambda d: d.get(key), reverse=direction == -1)
        return self

    def __aiter__(self):
        self._iter = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """In-memory stand-in for the handful of motor collection calls we make.

    Add an operation name to ``fail_on`` to make that call raise a store error,
    or map it to a specific exception in ``raise_on``.
    """

    def __init__(self):
        self.docs = []
        self.indexes = []
        self.fail_on = set()
        self.raise_on = {}

    def _check(self, op):
        if op in self.raise_on:
            raise self.raise_on[op]
        if op in self.fail_on:
            raise PyMongoError(f"{op} failed")

    async def create_index(self, keys, unique=False):
        self.indexes.append((keys, unique))

    async def find_one(self, query):
        self._check("find_one")
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query):
        self._check("find")
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, query)])

    async def insert_one(self, doc):
        self._check("insert_one")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, query, update):
        self._check("update_one")
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query):
        self._check("delete_one")
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture()
def db():
    return FakeDatabase()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def signup(client):
    def _signup(email="shopper@example.com", password="secret1", name="Shopper"):
        response = client.post(
            "/auth/signup", json={"name": name, "email": email, "password": password}
        )
        assert response.status_code == 201, response.json()
        return response.json()

    return _signup


@pytest.fixture()
def user(signup):
    data = signup()
    return SimpleNamespace(id=data["user"]["id"], token=data["token"], headers=auth_header(data["token"]))


@pytest.fixture()
def admin(signup, db):
    data = signup(email="admin@example.com", name="Admin")
    db["users"].docs[-1]["role"] = "admin"
    return SimpleNamespace(id=data["user"]["id"], token=data["token"], headers=auth_header(data["token"]))


@pytest.fixture()
def add_product(db):
    def _add(product_id, name="Striped Blouse", price=10.0, image="blouse.png"):
        db["products"].docs.append({
            "_id": product_id,
            "name": name,
            "category": "women",
            "image": image,
            "new_price": price,
            "old_price": price * 2,
        })
        return product_id

    return _add
