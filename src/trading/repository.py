# === MODULE PURPOSE ===
# Trade store: persistence for option trade records.
# PostgreSQL (asyncpg) for production, in-memory for local development.

# === DEPENDENCIES ===
# - asyncpg: Async PostgreSQL client
# - models: TradeRecord / SellEvent

# === KEY CONCEPTS ===
# - Schema isolation: All tables in 'trading' schema
# - Optimistic concurrency: every row carries a revision token; updates and
#   deletes must present the revision they read (compare-and-swap). A stale
#   revision raises Conflict, a missing row raises NotFound.
# - Revision format: "<generation>-<random hex>", opaque to callers
# - Auto-migration: Creates schema and tables if not exist

from __future__ import annotations

import copy
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

import asyncpg

from src.trading.errors import Conflict, NotFound
from src.trading.models import SellEvent, TradeRecord

logger = logging.getLogger(__name__)


def next_revision(revision: str | None) -> str:
    """Generate the revision token that follows `revision`."""
    generation = 0
    if revision:
        try:
            generation = int(revision.split("-", 1)[0])
        except ValueError:
            generation = 0
    return f"{generation + 1}-{uuid.uuid4().hex[:16]}"


class TradeStore(ABC):
    """
    Storage contract used by the trade service and the daily summary.

    Lifecycle:
        1. connect(): Acquire resources
        2. read/write calls
        3. close(): Release resources
    """

    async def connect(self) -> None:
        """Acquire resources (no-op by default)."""

    async def close(self) -> None:
        """Release resources (no-op by default)."""

    @abstractmethod
    async def get_trade(self, trade_id: str) -> TradeRecord | None:
        """Get one record by id, None if it does not exist."""

    @abstractmethod
    async def get_open_trades(self, user_id: str) -> list[TradeRecord]:
        """All open records of a user, oldest first."""

    @abstractmethod
    async def get_trades_by_user(self, user_id: str) -> list[TradeRecord]:
        """All records of a user, oldest first."""

    @abstractmethod
    async def get_trades_in_range(
        self,
        user_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> list[TradeRecord]:
        """
        Records of a user that may have activity within [start_time, end_time).

        Returns every record created before end_time and last updated at or
        after start_time. Callers filter the exact events by day.
        """

    @abstractmethod
    async def get_user_ids(self) -> list[str]:
        """All user ids that own at least one record."""

    @abstractmethod
    async def save_trade(self, record: TradeRecord) -> TradeRecord:
        """
        Insert or update a record.

        A record without trade_id is inserted. A record with trade_id is
        updated only if its revision matches the stored one.

        Returns:
            The record as stored, carrying its trade_id and new revision.

        Raises:
            Conflict: Stale revision (or insert of an id that already exists).
            NotFound: Update of a record that no longer exists.
        """

    @abstractmethod
    async def delete_trade(self, trade_id: str, revision: str) -> None:
        """
        Delete a record at the given revision.

        Raises:
            Conflict: Stale revision.
            NotFound: Record does not exist.
        """


# ==================== PostgreSQL ====================


@dataclass
class TradingRepositoryConfig:
    """Configuration for trading repository."""

    host: str = "localhost"
    port: int = 5432
    database: str = "trades"
    user: str = "journal"
    password: str = ""
    pool_min_size: int = 2
    pool_max_size: int = 5
    schema: str = "trading"
    auto_create_schema: bool = True


# SQL for schema and table creation
SCHEMA_SQL = """
CREATE SCHEMA IF NOT EXISTS {schema};
"""

# buy_price is DOUBLE PRECISION: the weighted average is not a fixed-scale value
TABLES_SQL = """
CREATE TABLE IF NOT EXISTS {schema}.option_trades (
    id VARCHAR(50) PRIMARY KEY,
    revision VARCHAR(50) NOT NULL,
    user_id VARCHAR(64) NOT NULL,
    stock VARCHAR(20) NOT NULL,
    contract VARCHAR(50) NOT NULL,
    expiration DATE NOT NULL,
    buy_price DOUBLE PRECISION NOT NULL,
    buy_quantity INTEGER NOT NULL,
    sold_quantity INTEGER NOT NULL DEFAULT 0,
    sell_events JSONB NOT NULL DEFAULT '[]'::jsonb,
    notes TEXT NOT NULL DEFAULT '',
    is_open BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CHECK (sold_quantity >= 0 AND sold_quantity <= buy_quantity)
);

CREATE INDEX IF NOT EXISTS idx_option_trades_user_open
    ON {schema}.option_trades(user_id, is_open);
-- At most one OPEN position per (user, stock, contract, expiration)
CREATE UNIQUE INDEX IF NOT EXISTS uq_option_trades_open_identity
    ON {schema}.option_trades(user_id, stock, upper(contract), expiration)
    WHERE is_open;
CREATE INDEX IF NOT EXISTS idx_option_trades_updated_at
    ON {schema}.option_trades(user_id, updated_at);
"""

_SELECT_COLUMNS = """
    id, revision, user_id, stock, contract, expiration, buy_price,
    buy_quantity, sold_quantity, sell_events, notes, created_at, updated_at
"""


class TradeRepository(TradeStore):
    """
    PostgreSQL repository for option trade records.

    Usage:
        repo = TradeRepository(config)
        await repo.connect()

        stored = await repo.save_trade(record)          # insert
        stored = await repo.save_trade(updated_record)  # CAS update
        open_trades = await repo.get_open_trades(user_id)

        await repo.close()
    """

    def __init__(self, config: TradingRepositoryConfig):
        self._config = config
        self._pool: asyncpg.Pool | None = None
        self._is_connected = False
        self._schema = config.schema

    async def connect(self) -> None:
        """Establish connection pool and initialize schema."""
        if self._is_connected:
            return

        try:
            logger.info(
                f"Connecting to PostgreSQL: {self._config.host}:{self._config.port}"
                f"/{self._config.database} (schema: {self._schema})"
            )

            self._pool = await asyncpg.create_pool(
                host=self._config.host,
                port=self._config.port,
                database=self._config.database,
                user=self._config.user,
                password=self._config.password,
                min_size=self._config.pool_min_size,
                max_size=self._config.pool_max_size,
            )

            if self._config.auto_create_schema:
                await self._init_schema()

            self._is_connected = True
            logger.info("TradeRepository connected to PostgreSQL")

        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise ConnectionError(f"Cannot connect to trading database: {e}") from e

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            self._is_connected = False
            logger.info("TradeRepository disconnected")

    async def _init_schema(self) -> None:
        """Create schema and tables if not exist."""
        # Called during connect() before _is_connected is set, so use _pool directly
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL.format(schema=self._schema))
            await conn.execute(TABLES_SQL.format(schema=self._schema))
            logger.info(f"Initialized trading schema: {self._schema}")

    # ==================== Reads ====================

    async def get_trade(self, trade_id: str) -> TradeRecord | None:
        async with self._db_pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM {self._schema}.option_trades WHERE id = $1",
                trade_id,
            )

        return _row_to_record(row) if row else None

    async def get_open_trades(self, user_id: str) -> list[TradeRecord]:
        async with self._db_pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_SELECT_COLUMNS} FROM {self._schema}.option_trades
                WHERE user_id = $1 AND is_open
                ORDER BY created_at, id
                """,
                user_id,
            )

        return [_row_to_record(row) for row in rows]

    async def get_trades_by_user(self, user_id: str) -> list[TradeRecord]:
        async with self._db_pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_SELECT_COLUMNS} FROM {self._schema}.option_trades
                WHERE user_id = $1
                ORDER BY created_at, id
                """,
                user_id,
            )

        return [_row_to_record(row) for row in rows]

    async def get_trades_in_range(
        self,
        user_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> list[TradeRecord]:
        async with self._db_pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_SELECT_COLUMNS} FROM {self._schema}.option_trades
                WHERE user_id = $1 AND created_at < $3 AND updated_at >= $2
                ORDER BY created_at, id
                """,
                user_id,
                start_time,
                end_time,
            )

        return [_row_to_record(row) for row in rows]

    async def get_user_ids(self) -> list[str]:
        async with self._db_pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT DISTINCT user_id FROM {self._schema}.option_trades ORDER BY user_id"
            )

        return [row["user_id"] for row in rows]

    # ==================== Writes ====================

    async def save_trade(self, record: TradeRecord) -> TradeRecord:
        if record.trade_id is None or record.revision is None:
            return await self._insert_trade(record)
        return await self._update_trade(record)

    async def _insert_trade(self, record: TradeRecord) -> TradeRecord:
        trade_id = record.trade_id or str(uuid.uuid4())
        revision = next_revision(None)

        try:
            async with self._db_pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self._schema}.option_trades
                        (id, revision, user_id, stock, contract, expiration, buy_price,
                         buy_quantity, sold_quantity, sell_events, notes, is_open,
                         created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11, $12, $13, $14)
                    """,
                    trade_id,
                    revision,
                    record.user_id,
                    record.stock,
                    record.contract,
                    record.expiration,
                    record.buy_price,
                    record.buy_quantity,
                    record.sold_quantity,
                    _dump_sell_events(record.sell_events),
                    record.notes,
                    record.is_open,
                    record.created_at,
                    record.updated_at,
                )
        except asyncpg.UniqueViolationError as e:
            # Duplicate id, or another OPEN position with the same identity
            logger.warning(f"Insert of {trade_id} rejected: {e}")
            raise Conflict(trade_id, None) from e

        logger.info(
            f"Inserted trade {trade_id}: {record.stock} {record.contract} "
            f"x{record.buy_quantity} @ {record.buy_price:.2f}"
        )
        return replace(record, trade_id=trade_id, revision=revision)

    async def _update_trade(self, record: TradeRecord) -> TradeRecord:
        assert record.trade_id is not None
        revision = next_revision(record.revision)

        async with self._db_pool.acquire() as conn:
            updated_id = await conn.fetchval(
                f"""
                UPDATE {self._schema}.option_trades SET
                    revision = $3,
                    stock = $4,
                    contract = $5,
                    expiration = $6,
                    buy_price = $7,
                    buy_quantity = $8,
                    sold_quantity = $9,
                    sell_events = $10::jsonb,
                    notes = $11,
                    is_open = $12,
                    updated_at = $13
                WHERE id = $1 AND revision = $2
                RETURNING id
                """,
                record.trade_id,
                record.revision,
                revision,
                record.stock,
                record.contract,
                record.expiration,
                record.buy_price,
                record.buy_quantity,
                record.sold_quantity,
                _dump_sell_events(record.sell_events),
                record.notes,
                record.is_open,
                record.updated_at,
            )

            if updated_id is None:
                await self._raise_write_failure(conn, record.trade_id, record.revision)

        logger.info(f"Updated trade {record.trade_id}: revision {record.revision} -> {revision}")
        return replace(record, revision=revision)

    async def delete_trade(self, trade_id: str, revision: str) -> None:
        async with self._db_pool.acquire() as conn:
            deleted_id = await conn.fetchval(
                f"""
                DELETE FROM {self._schema}.option_trades
                WHERE id = $1 AND revision = $2
                RETURNING id
                """,
                trade_id,
                revision,
            )

            if deleted_id is None:
                await self._raise_write_failure(conn, trade_id, revision)

        logger.info(f"Deleted trade {trade_id}")

    async def _raise_write_failure(
        self,
        conn: asyncpg.Connection,
        trade_id: str,
        revision: str | None,
    ) -> None:
        """Tell a stale revision apart from a missing row after a CAS miss."""
        exists = await conn.fetchval(
            f"SELECT 1 FROM {self._schema}.option_trades WHERE id = $1",
            trade_id,
        )
        if exists:
            logger.warning(f"Stale revision {revision} for trade {trade_id}")
            raise Conflict(trade_id, revision)
        raise NotFound(trade_id)

    # ==================== Utilities ====================

    def _ensure_connected(self) -> None:
        """Ensure repository is connected."""
        if not self._is_connected or not self._pool:
            raise RuntimeError("TradeRepository is not connected. Call connect() first.")

    @property
    def _db_pool(self) -> asyncpg.Pool:
        """Get the database pool, raising if not connected."""
        self._ensure_connected()
        assert self._pool is not None  # For type checker
        return self._pool

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._is_connected


def _dump_sell_events(events: list[SellEvent]) -> str:
    return json.dumps([e.to_dict() for e in events])


def _row_to_record(row: Any) -> TradeRecord:
    sell_events = row["sell_events"]
    if isinstance(sell_events, str):
        sell_events = json.loads(sell_events)

    return TradeRecord(
        trade_id=row["id"],
        revision=row["revision"],
        user_id=row["user_id"],
        stock=row["stock"],
        contract=row["contract"],
        expiration=row["expiration"],
        buy_price=float(row["buy_price"]),
        buy_quantity=row["buy_quantity"],
        sold_quantity=row["sold_quantity"],
        sell_events=[SellEvent.from_dict(e) for e in sell_events or []],
        notes=row["notes"] or "",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ==================== In-memory ====================


class InMemoryTradeRepository(TradeStore):
    """
    Process-local trade store with the same revision semantics as PostgreSQL.

    Used for local development without a database. Records are copied on the
    way in and out so callers never share state with the store. Inserting a
    second OPEN position with an existing identity raises Conflict, as the
    PostgreSQL unique index does.
    """

    def __init__(self):
        self._records: dict[str, TradeRecord] = {}

    async def get_trade(self, trade_id: str) -> TradeRecord | None:
        record = self._records.get(trade_id)
        return copy.deepcopy(record) if record else None

    async def get_open_trades(self, user_id: str) -> list[TradeRecord]:
        return [r for r in await self.get_trades_by_user(user_id) if r.is_open]

    async def get_trades_by_user(self, user_id: str) -> list[TradeRecord]:
        records = [r for r in self._records.values() if r.user_id == user_id]
        records.sort(key=lambda r: r.created_at)
        return copy.deepcopy(records)

    async def get_trades_in_range(
        self,
        user_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> list[TradeRecord]:
        return [
            r
            for r in await self.get_trades_by_user(user_id)
            if r.created_at < end_time and r.updated_at >= start_time
        ]

    async def get_user_ids(self) -> list[str]:
        return sorted({r.user_id for r in self._records.values()})

    async def save_trade(self, record: TradeRecord) -> TradeRecord:
        if record.trade_id is None or record.revision is None:
            trade_id = record.trade_id or str(uuid.uuid4())
            if trade_id in self._records:
                raise Conflict(trade_id, None)
            if record.is_open and self._has_open_duplicate(record):
                raise Conflict(trade_id, None)
            stored = replace(record, trade_id=trade_id, revision=next_revision(None))
        else:
            current = self._records.get(record.trade_id)
            if current is None:
                raise NotFound(record.trade_id)
            if current.revision != record.revision:
                raise Conflict(record.trade_id, record.revision)
            stored = replace(record, revision=next_revision(record.revision))

        assert stored.trade_id is not None
        self._records[stored.trade_id] = copy.deepcopy(stored)
        logger.debug(f"Saved trade {stored.trade_id} at revision {stored.revision}")
        return copy.deepcopy(stored)

    async def delete_trade(self, trade_id: str, revision: str) -> None:
        current = self._records.get(trade_id)
        if current is None:
            raise NotFound(trade_id)
        if current.revision != revision:
            raise Conflict(trade_id, revision)
        del self._records[trade_id]
        logger.debug(f"Deleted trade {trade_id}")

    def _has_open_duplicate(self, record: TradeRecord) -> bool:
        """Mirror of the partial unique index on open identities."""
        key = record.identity_key
        return any(r.is_open and r.identity_key == key for r in self._records.values())


def create_trade_repository_from_config(
    config_path: str = "config/database-config.yaml",
) -> TradeRepository:
    """
    Create TradeRepository from configuration file.

    Returns:
        Configured TradeRepository instance.

    Raises:
        ValueError: If the database.trading section is missing.
    """
    from src.common.config import load_config

    config = load_config(config_path)
    db_config = config.get_dict("database.trading", {})

    if not db_config:
        raise ValueError("Trading database configuration not found")

    # Support environment variable substitution
    def resolve_env(value: Any) -> Any:
        if isinstance(value, str) and value.startswith("${"):
            # Parse ${VAR:default} or ${VAR}
            inner = value[2:-1]
            if ":" in inner:
                var_name, default = inner.split(":", 1)
            else:
                var_name, default = inner, ""
            return os.environ.get(var_name, default)
        return value

    repo_config = TradingRepositoryConfig(
        host=resolve_env(db_config.get("host", "localhost")),
        port=int(resolve_env(db_config.get("port", 5432))),
        database=resolve_env(db_config.get("database", "trades")),
        user=resolve_env(db_config.get("user", "journal")),
        password=resolve_env(db_config.get("password", "")),
        pool_min_size=db_config.get("pool_min_size", 2),
        pool_max_size=db_config.get("pool_max_size", 5),
        schema=db_config.get("schema", "trading"),
        auto_create_schema=db_config.get("auto_create_schema", True),
    )

    return TradeRepository(repo_config)
