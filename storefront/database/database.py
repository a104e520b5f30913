import asyncpg
import json
import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from ..config import Config
from ..errors import PersistenceError

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

_OPERATORS = {
    "=": "=",
    "!=": "<>",
    ">": ">",
    ">=": ">=",
    "<": "<",
    "<=": "<=",
    "ilike": "ILIKE",
}

Filter = Union[Any, Tuple[str, Any]]

DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _ident(name: str) -> str:
    """Validate a table or column name before it is placed into SQL"""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


def build_where(filters: Optional[Dict[str, Filter]], start: int = 1) -> Tuple[str, List[Any]]:
    """Build a WHERE clause from {column: value} or {column: (op, value)}"""
    if not filters:
        return "", []

    parts = []
    params: List[Any] = []
    index = start

    for column, condition in filters.items():
        column = _ident(column)
        if isinstance(condition, tuple):
            op, value = condition
        else:
            op, value = "=", condition

        if op == "in":
            parts.append(f"{column} = ANY(${index})")
            params.append(list(value))
        elif op == "between":
            low, high = value
            parts.append(f"{column} BETWEEN ${index} AND ${index + 1}")
            params.extend([low, high])
            index += 1
        elif value is None and op in ("=", "!="):
            parts.append(f"{column} IS {'NOT ' if op == '!=' else ''}NULL")
            continue
        elif op in _OPERATORS:
            parts.append(f"{column} {_OPERATORS[op]} ${index}")
            params.append(value)
        else:
            raise ValueError(f"Unsupported operator: {op!r}")
        index += 1

    return " WHERE " + " AND ".join(parts), params


async def _init_connection(conn):
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )
    await conn.set_type_codec(
        "json", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


class Database:
    """Connection pool plus the small set of row operations the services rely on"""

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn or Config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None
        self.logger = logging.getLogger(__name__)

    async def connect(self):
        """Open the pool and apply pending migrations"""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=Config.DB_POOL_MIN,
                max_size=Config.DB_POOL_MAX,
                init=_init_connection
            )

            await self._run_migrations()

            self.logger.info("Database connection established")
        except Exception as e:
            self.logger.error(f"Database connection failed: {e}")
            raise

    async def close(self):
        """Close the pool"""
        if self.pool:
            await self.pool.close()
            self.logger.info("Database connection closed")

    async def _run_migrations(self):
        """Apply migration files that have not been applied yet"""
        try:
            migrations_path = Path(__file__).parent / "migrations"

            async with self.pool.acquire() as conn:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS migrations (
                        id SERIAL PRIMARY KEY,
                        name VARCHAR(255) NOT NULL,
                        applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                for migration_file in sorted(migrations_path.glob("*.sql")):
                    migration_name = migration_file.name

                    is_applied = await conn.fetchval(
                        "SELECT COUNT(*) FROM migrations WHERE name = $1",
                        migration_name
                    )

                    if not is_applied:
                        async with conn.transaction():
                            await conn.execute(migration_file.read_text())
                            await conn.execute(
                                "INSERT INTO migrations (name) VALUES ($1)",
                                migration_name
                            )

                        self.logger.info(f"Migration {migration_name} applied")

        except Exception as e:
            self.logger.error(f"Migration failed: {e}")
            raise

    async def insert(self, table: str, rows: Union[Dict[str, Any], Sequence[Dict[str, Any]]],
                     returning: str = "id") -> List[Dict[str, Any]]:
        """Insert one or many rows in a single statement and return the requested columns"""
        if isinstance(rows, dict):
            rows = [rows]
        rows = list(rows)
        if not rows:
            return []

        columns: List[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(_ident(key))

        params: List[Any] = []
        groups = []
        for row in rows:
            placeholders = []
            for column in columns:
                params.append(row.get(column))
                placeholders.append(f"${len(params)}")
            groups.append(f"({', '.join(placeholders)})")

        returning_sql = ", ".join(_ident(c.strip()) for c in returning.split(","))
        query = (
            f"INSERT INTO {_ident(table)} ({', '.join(columns)}) "
            f"VALUES {', '.join(groups)} RETURNING {returning_sql}"
        )

        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(query, *params)
        except DB_ERRORS as e:
            raise PersistenceError(f"Insert into {table} failed", e) from e
        return [dict(r) for r in records]

    async def update(self, table: str, row_id: Any, values: Dict[str, Any], key: str = "id") -> bool:
        """Update a single row by its key"""
        if not values:
            return False

        assignments = []
        params: List[Any] = []
        for column, value in values.items():
            params.append(value)
            assignments.append(f"{_ident(column)} = ${len(params)}")
        params.append(row_id)

        query = (
            f"UPDATE {_ident(table)} SET {', '.join(assignments)} "
            f"WHERE {_ident(key)} = ${len(params)}"
        )

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(query, *params)
        except DB_ERRORS as e:
            raise PersistenceError(f"Update of {table} failed", e) from e
        return result == "UPDATE 1"

    async def increment(self, table: str, row_id: Any, column: str, key: str = "id", amount: int = 1) -> bool:
        """Add to a counter column in one statement"""
        query = (
            f"UPDATE {_ident(table)} SET {_ident(column)} = COALESCE({_ident(column)}, 0) + $1 "
            f"WHERE {_ident(key)} = $2"
        )

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(query, amount, row_id)
        except DB_ERRORS as e:
            raise PersistenceError(f"Increment of {table}.{column} failed", e) from e
        return result == "UPDATE 1"

    async def select(self, table: str, filters: Optional[Dict[str, Filter]] = None,
                     columns: str = "*", order_by: Optional[str] = None,
                     descending: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Select rows matching the filters"""
        if columns != "*":
            columns = ", ".join(_ident(c.strip()) for c in columns.split(","))
        where, params = build_where(filters)

        query = f"SELECT {columns} FROM {_ident(table)}{where}"
        if order_by:
            query += f" ORDER BY {_ident(order_by)} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            params.append(int(limit))
            query += f" LIMIT ${len(params)}"

        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(query, *params)
        except DB_ERRORS as e:
            raise PersistenceError(f"Select from {table} failed", e) from e
        return [dict(r) for r in records]

    async def delete(self, table: str, row_ids: Iterable[Any], key: str = "id") -> int:
        """Delete rows by key and return how many were removed"""
        row_ids = list(row_ids)
        if not row_ids:
            return 0

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    f"DELETE FROM {_ident(table)} WHERE {_ident(key)} = ANY($1)", row_ids
                )
        except DB_ERRORS as e:
            raise PersistenceError(f"Delete from {table} failed", e) from e
        return int(result.split()[-1])

    async def upsert(self, table: str, row: Dict[str, Any], conflict: str) -> None:
        """Insert a row or overwrite the one sharing the conflict column"""
        columns = [_ident(c) for c in row]
        placeholders = [f"${i}" for i in range(1, len(columns) + 1)]
        updates = [f"{c} = EXCLUDED.{c}" for c in columns if c != conflict]

        query = (
            f"INSERT INTO {_ident(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)}) "
            f"ON CONFLICT ({_ident(conflict)}) DO UPDATE SET {', '.join(updates)}"
        )

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(query, *row.values())
        except DB_ERRORS as e:
            raise PersistenceError(f"Upsert into {table} failed", e) from e

    async def hit_counter(self, key: str, window: timedelta) -> Tuple[int, Any]:
        """Increment a windowed counter and return (count, reset_at)"""
        try:
            async with self.pool.acquire() as conn:
                record = await conn.fetchrow("""
                    INSERT INTO rate_limits (key, count, reset_at)
                    VALUES ($1, 1, NOW() + $2::interval)
                    ON CONFLICT (key) DO UPDATE SET
                        count = CASE WHEN rate_limits.reset_at < NOW()
                                     THEN 1 ELSE rate_limits.count + 1 END,
                        reset_at = CASE WHEN rate_limits.reset_at < NOW()
                                        THEN EXCLUDED.reset_at ELSE rate_limits.reset_at END
                    RETURNING count, reset_at
                """, key, window)
        except DB_ERRORS as e:
            raise PersistenceError("Rate limit counter update failed", e) from e
        return record['count'], record['reset_at']

    async def ping(self) -> bool:
        """Check that the datastore answers"""
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1
