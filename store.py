# store.py
import logging
from contextlib import contextmanager
from typing import Protocol

import requests
from sqlalchemy.exc import SQLAlchemyError

from db import SessionLocal
from errors import RecordNotFoundError, RecordStoreError
from models import COLLECTIONS

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Contrato genérico de CRUD sobre colecciones con nombre.

    Los registros son diccionarios sin esquema; el identificador va en `_id`
    y lo asigna el almacén al insertar.
    """

    def read(self, collection: str) -> list[dict]: ...

    def insert(self, collection: str, records: list[dict]) -> None: ...

    def update(self, collection: str, record_id: str, fields: dict) -> None: ...

    def delete(self, collection: str, record_id: str) -> None: ...


class SqlRecordStore:
    """Almacén respaldado por SQLAlchemy, una tabla por colección."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _session(self, action):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise RecordStoreError(f"Error de base de datos al {action}: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _model(self, collection):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise RecordStoreError(f"Colección desconocida: {collection}") from None

    @staticmethod
    def _columns(model):
        return [column.name for column in model.__table__.columns if column.name != "id"]

    def _to_record(self, row):
        record = {"_id": row.id}
        for name in self._columns(type(row)):
            record[name] = getattr(row, name)
        return record

    def _to_values(self, model, fields):
        columns = set(self._columns(model))
        values = {}
        for key, value in fields.items():
            if key in columns:
                values[key] = value
            elif key not in ("_id", "id"):
                logger.debug("Campo %s ignorado en %s", key, model.__tablename__)
        return values

    def read(self, collection):
        model = self._model(collection)
        with self._session(f"leer {collection}") as db:
            return [self._to_record(row) for row in db.query(model).all()]

    def insert(self, collection, records):
        model = self._model(collection)
        with self._session(f"insertar en {collection}") as db:
            for record in records:
                row = model(**self._to_values(model, record))
                # Se respeta un identificador provisto por quien llama
                if record.get("_id"):
                    row.id = str(record["_id"])
                db.add(row)

    def update(self, collection, record_id, fields):
        model = self._model(collection)
        with self._session(f"actualizar {collection}") as db:
            row = db.get(model, record_id)
            if row is None:
                raise RecordNotFoundError(collection, record_id)
            for key, value in self._to_values(model, fields).items():
                setattr(row, key, value)

    def delete(self, collection, record_id):
        model = self._model(collection)
        with self._session(f"eliminar de {collection}") as db:
            deleted = db.query(model).filter(model.id == record_id).delete()
            if not deleted:
                raise RecordNotFoundError(collection, record_id)


class HttpRecordStore:
    """Cliente de la base de datos remota de colecciones."""

    def __init__(self, base_url, token=None, timeout=10.0, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method, path, **kwargs):
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RecordStoreError(f"{method} {url} falló: {e}") from e
        return response

    def read(self, collection):
        response = self._request("GET", "read", params={"tableName": collection})
        data = response.json()
        if isinstance(data, dict):
            data = data.get("records", [])
        if not isinstance(data, list):
            raise RecordStoreError(f"Respuesta inesperada al leer {collection}")
        return data

    def insert(self, collection, records):
        self._request("POST", "insert", json={"tableName": collection, "records": records})

    def update(self, collection, record_id, fields):
        self._request(
            "PUT",
            "update",
            json={
                "tableName": collection,
                "idColumn": "_id",
                "idValue": record_id,
                "updates": fields,
            },
        )

    def delete(self, collection, record_id):
        self._request(
            "DELETE",
            "delete",
            json={"tableName": collection, "idColumn": "_id", "idValue": record_id},
        )
