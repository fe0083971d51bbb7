# Overview: Keyed access to every entity collection; the only generic read/write path services share.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError
from .concurrency import lock_for_update
"""
EntityStore Invariants (authoritative)

- Each entity type is a SQLAlchemy model keyed by its primary key.
- get() returns None for a missing key; require() raises NotFoundError.
  Services choose one explicitly, so a miss is never silently ignored.
- insert() flushes so the caller sees the generated id before commit.
- Writes become durable only when the owning service commits; a service
  that raises rolls back through run_with_retry.
- list_where() results are ordered by primary key (insertion order).
"""


def get(model, key, *, lock: bool = False):
    query = db.session.query(model).filter(_pk_column(model) == key)
    if lock:
        query = lock_for_update(query)
    return query.first()


def require(model, key, *, lock: bool = False, label: str | None = None):
    entity = get(model, key, lock=lock)
    if entity is None:
        raise NotFoundError(label or model.__name__, key)
    return entity


def get_one_by(model, *, lock: bool = False, **filters):
    query = db.session.query(model).filter_by(**filters)
    if lock:
        query = lock_for_update(query)
    return query.first()


def insert(entity):
    db.session.add(entity)
    db.session.flush()
    return entity


def list_where(model, *criteria, **filters) -> list:
    query = db.session.query(model)
    if filters:
        query = query.filter_by(**filters)
    if criteria:
        query = query.filter(*criteria)
    return query.order_by(_pk_column(model)).all()


def count_where(model, *criteria, **filters) -> int:
    query = db.session.query(model)
    if filters:
        query = query.filter_by(**filters)
    if criteria:
        query = query.filter(*criteria)
    return query.count()


def _pk_column(model):
    return model.__mapper__.primary_key[0]
