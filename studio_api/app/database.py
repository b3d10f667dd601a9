"""
Async database access helpers (raw SQL) on a SQLAlchemy AsyncEngine.

The FastAPI app creates one Database on startup, stores it on app.state and
disposes it on shutdown (see `studio_api/app/main.py`). Handlers receive it
through the `get_database` dependency rather than importing a global.

SQL parameter style:
- text() statements use named placeholders: :id, :project_id, ...
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql import Executable

from .models import metadata

Statement = str | Executable


def _as_statement(statement: Statement) -> Executable:
    if isinstance(statement, str):
        return text(statement)
    return statement


class Database:
    """
    Thin query capability over an AsyncEngine.

    Every call checks a connection out of the engine pool and returns it when
    done, so concurrent requests never share a connection.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> Database:
        return cls(create_async_engine(url, echo=echo, pool_pre_ping=True))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def fetch_one(self, statement: Statement, params: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """
        Run a query and return the first row as a dict (or None).
        """
        async with self._engine.connect() as conn:
            result = await conn.execute(_as_statement(statement), dict(params or {}))
            row = result.mappings().first()
        return dict(row) if row is not None else None

    async def fetch_all(self, statement: Statement, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """
        Run a query and return all rows as a list of dicts.
        """
        async with self._engine.connect() as conn:
            result = await conn.execute(_as_statement(statement), dict(params or {}))
            rows = result.mappings().all()
        return [dict(r) for r in rows]

    async def execute(self, statement: Statement, params: Mapping[str, Any] | None = None) -> int:
        """
        Run a statement (UPDATE/DELETE) in its own transaction.

        Returns the number of affected rows.
        """
        async with self._engine.begin() as conn:
            result = await conn.execute(_as_statement(statement), dict(params or {}))
        return result.rowcount

    async def insert(self, statement: Executable) -> int | None:
        """
        Run an INSERT in its own transaction and return the new primary key.
        """
        async with self._engine.begin() as conn:
            result = await conn.execute(statement)
        key = result.inserted_primary_key
        return key[0] if key else None

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
