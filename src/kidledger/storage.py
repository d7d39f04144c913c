"""Key-value stores that hold the serialised ledger documents."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine

from .clock import utcnow
from .exceptions import PersistenceError


class KeyValueStore(Protocol):
    """Durable capability the persistence adapter writes through."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Dictionary-backed store for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None) -> None:
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._data))


class StoredDocument(SQLModel, table=True):
    key: str = Field(primary_key=True)
    payload: bytes
    updated_at: datetime = Field(default_factory=utcnow)


def make_engine(sqlite_file: str) -> Engine:
    if sqlite_file in ("", ":memory:"):
        return create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        f"sqlite:///{sqlite_file}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


class SQLModelStore:
    """Store each document as one row of the ``storeddocument`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        try:
            SQLModel.metadata.create_all(engine, tables=[StoredDocument.__table__])
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not prepare document table: {exc}") from exc

    @classmethod
    def from_path(cls, sqlite_file: str) -> "SQLModelStore":
        return cls(make_engine(sqlite_file))

    def get(self, key: str) -> Optional[bytes]:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredDocument, key)
                return bytes(row.payload) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read '{key}': {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredDocument, key)
                if row:
                    row.payload = bytes(value)
                    row.updated_at = utcnow()
                else:
                    row = StoredDocument(key=key, payload=bytes(value))
                session.add(row)
                session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not write '{key}': {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with Session(self.engine) as session:
                row = session.get(StoredDocument, key)
                if row:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not delete '{key}': {exc}") from exc


__all__ = ["KeyValueStore", "MemoryStore", "SQLModelStore", "StoredDocument", "make_engine"]
