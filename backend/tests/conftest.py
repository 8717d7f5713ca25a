# backend/tests/conftest.py

import os
import re
import sys
import itertools
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# server.py reads these at import time; the client connects lazily
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "erp_core_test")

_object_ids = itertools.count(1)


def _matches(doc, query):
    for key, cond in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue
        value = doc.get(key)
        if isinstance(cond, dict):
            for op, arg in cond.items():
                if op == "$in":
                    if value not in arg:
                        return False
                elif op == "$ne":
                    if value == arg:
                        return False
                elif op == "$regex":
                    flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                    if value is None or not re.search(arg, str(value), flags):
                        return False
        elif value != cond:
            return False
    return True


def _project(doc, projection):
    if not projection:
        return dict(doc)
    fields = [k for k, v in projection.items() if v and k != "_id"]
    if fields:
        return {k: doc[k] for k in fields if k in doc}
    return {k: v for k, v in doc.items() if k != "_id"}


class MockCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction=1):
        self.docs.sort(key=lambda d: (d.get(key) is None, d.get(key)), reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return self.docs if length is None else self.docs[:length]


class MockCollection:
    """In-memory stand-in for a motor collection"""
    def __init__(self, docs=None):
        self.docs = []
        for doc in docs or []:
            self.docs.append({"_id": next(_object_ids), **doc})

    async def find_one(self, query, projection=None):
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        return MockCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    async def insert_one(self, doc):
        doc["_id"] = next(_object_ids)
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        new_doc = {k: v for k, v in query.items() if not isinstance(v, dict) and not k.startswith("$")}
        new_doc.update(update.get("$setOnInsert", {}))
        new_doc.update(update.get("$set", {}))
        result = await self.insert_one(new_doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=result.inserted_id)

    async def update_many(self, query, update):
        matched = [d for d in self.docs if _matches(d, query)]
        for doc in matched:
            doc.update(update.get("$set", {}))
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched))

    async def delete_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                self.docs.remove(doc)
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query):
        before = len(self.docs)
        self.docs = [d for d in self.docs if not _matches(d, query)]
        return SimpleNamespace(deleted_count=before - len(self.docs))

    async def create_index(self, *args, **kwargs):
        return kwargs.get("name")


class MockDB:
    """Mock MongoDB database"""
    def __init__(self):
        self.units = MockCollection()
        self.permissions = MockCollection()
        self.roles = MockCollection()
        self.role_has_permissions = MockCollection()


@pytest.fixture
def mock_db():
    """Mock MongoDB database"""
    return MockDB()
