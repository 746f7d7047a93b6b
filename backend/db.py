# db.py
from typing import Any, Dict, Iterator, List, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

import models
from config import get_settings
from models import utcnow


def build_engine(database_url: str):
    """
    Sync engine for Postgres in production. SQLite (tests, local runs) needs
    the connection shared across threads, and an in-memory database must
    stay on one connection or each checkout sees an empty schema.
    """
    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False, pool_pre_ping=True)


DATABASE_URL = get_settings().database_url

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set in the environment (.env)")

engine = build_engine(DATABASE_URL)


def init_db(bind=None) -> None:
    """
    Called on app startup to create tables if they don't exist.
    """
    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    with Session(engine) as session:
        yield session


def upsert(
    session: Session,
    model: Type[SQLModel],
    values: Dict[str, Any],
    conflict_columns: List[str],
) -> SQLModel:
    """
    Insert a row or update the existing one in a single statement, keyed by
    the table's natural unique constraint. Returns the stored row.

    ``values`` must include the primary key to use on insert; on conflict the
    existing id and created_at are kept.
    """
    table = model.__table__
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table)
    elif dialect == "sqlite":
        stmt = sqlite.insert(table)
    else:
        raise RuntimeError(f"upsert is not supported on {dialect}")

    values = dict(values)
    values.setdefault("id", models.new_id())
    if "updated_at" in table.c:
        values["updated_at"] = utcnow()

    stmt = stmt.values(**values)
    update_cols = {
        name: stmt.excluded[name]
        for name in values
        if name not in ("id", "created_at", *conflict_columns)
    }
    stmt = stmt.on_conflict_do_update(index_elements=conflict_columns, set_=update_cols)
    session.execute(stmt)
    session.commit()

    query = select(model)
    for name in conflict_columns:
        query = query.where(getattr(model, name) == values[name])
    row = session.exec(query).one()
    session.refresh(row)
    return row
