"""
Fixtures compartidos: un SqlRecordStore sobre SQLite en memoria por prueba
y un envoltorio que inyecta fallos del almacén.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RECORD_STORE"] = "sql"

import pytest
from sqlalchemy.orm import sessionmaker

from db import Base, make_engine
from errors import RecordStoreError
from store import SqlRecordStore


@pytest.fixture()
def store():
    engine = make_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield SqlRecordStore(session_factory)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


class FlakyStore:
    """Delega en otro almacén y falla en las operaciones que `should_fail` elija.

    `should_fail(op, collection, payload, call_number)` recibe el número de
    llamada (desde 1) para esa combinación de operación y colección.
    """

    def __init__(self, inner, should_fail):
        self.inner = inner
        self.should_fail = should_fail
        self.calls = {}

    def _check(self, op, collection, payload):
        key = (op, collection)
        self.calls[key] = self.calls.get(key, 0) + 1
        if self.should_fail(op, collection, payload, self.calls[key]):
            raise RecordStoreError(f"fallo simulado en {op} {collection}")

    def read(self, collection):
        self._check("read", collection, None)
        return self.inner.read(collection)

    def insert(self, collection, records):
        self._check("insert", collection, records)
        return self.inner.insert(collection, records)

    def update(self, collection, record_id, fields):
        self._check("update", collection, record_id)
        return self.inner.update(collection, record_id, fields)

    def delete(self, collection, record_id):
        self._check("delete", collection, record_id)
        return self.inner.delete(collection, record_id)


@pytest.fixture()
def flaky(store):
    def make(should_fail):
        return FlakyStore(store, should_fail)

    return make


@pytest.fixture()
def enroll(store):
    """Inscribe estudiantes (y opcionalmente un profesor) en un curso."""

    def _enroll(course_id, student_ids, professor_id=None):
        records = [
            {"course_id": course_id, "student_id": sid, "role": "student"}
            for sid in student_ids
        ]
        if professor_id:
            records.append({"course_id": course_id, "student_id": professor_id, "role": "professor"})
        store.insert("enrollments", records)

    return _enroll


@pytest.fixture()
def seed_category(store):
    def _seed(category_id="cat-1", course_id="course-1", name="Proyecto", mode="choice", capacity=3):
        store.insert(
            "categories",
            [{"_id": category_id, "course_id": course_id, "name": name, "type": mode, "capacity": capacity}],
        )
        return category_id

    return _seed


@pytest.fixture()
def seed_group(store):
    def _seed(group_id, category_id="cat-1", name=None, members=()):
        store.insert("groups", [{"_id": group_id, "category_id": category_id, "name": name or group_id}])
        if members:
            store.insert("group_members", [{"group_id": group_id, "student_id": sid} for sid in members])
        return group_id

    return _seed
