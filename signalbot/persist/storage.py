"""Append-only decision storage using SQLite."""

import json
from typing import Any

import aiosqlite
import structlog

from ..core.errors import PersistenceFailure
from ..core.interfaces import DecisionStore
from ..core.types import Decision

logger = structlog.get_logger(__name__)


class SQLiteDecisionStore(DecisionStore):
    """SQLite-based decision store."""

    def __init__(self, db_path: str = "decisions.sqlite") -> None:
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        logger.info("SQLite decision store initialized", db_path=db_path)

    async def initialize(self) -> None:
        """Initialize database tables."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS decisions (
                    id TEXT PRIMARY KEY,
                    identifier TEXT NOT NULL,
                    action TEXT NOT NULL,
                    confidence INTEGER NOT NULL,
                    position_size_usd REAL NOT NULL,
                    forced INTEGER NOT NULL,
                    reasoning TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    ts REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_decisions_identifier
                ON decisions(identifier)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_decisions_ts
                ON decisions(ts)
            """)

            await db.commit()

        logger.info("Database tables initialized")

    async def record_decision(self, decision: Decision) -> str:
        """Insert a decision record.

        Returns:
            Record key ``{identifier}_{timestamp}``

        Raises:
            PersistenceFailure: If the insert fails (including duplicate keys)
        """
        key = decision.record_key
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO decisions (
                        id, identifier, action, confidence, position_size_usd,
                        forced, reasoning, payload, ts
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        key,
                        decision.identifier,
                        decision.action.value,
                        decision.confidence,
                        decision.position_size_usd,
                        int(decision.forced),
                        decision.reasoning,
                        decision.model_dump_json(),
                        decision.created_at.timestamp(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceFailure(
                f"Failed to record decision: {e}", details={"key": key}
            ) from e

        logger.debug(
            "Decision recorded",
            key=key,
            identifier=decision.identifier,
            action=decision.action.value,
        )
        return key

    async def load_decisions(
        self, identifier: str | None = None, limit: int = 100
    ) -> list[dict[str, Any]]:
        """Load recent decisions, newest first.

        Args:
            identifier: Optional asset filter
            limit: Maximum rows

        Returns:
            Row dicts with the full decision under ``payload``
        """
        query = """
            SELECT id, identifier, action, confidence, position_size_usd,
                   forced, reasoning, payload, ts
            FROM decisions
        """
        params: tuple[Any, ...] = ()
        if identifier is not None:
            query += " WHERE identifier = ?"
            params = (identifier,)
        query += " ORDER BY ts DESC LIMIT ?"
        params = params + (limit,)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceFailure(f"Failed to load decisions: {e}") from e

        decisions = []
        for row in rows:
            record = dict(row)
            record["forced"] = bool(record["forced"])
            record["payload"] = json.loads(record["payload"])
            decisions.append(record)

        logger.debug("Loaded decisions", count=len(decisions), identifier=identifier)
        return decisions

    async def close(self) -> None:
        """Close storage (cleanup if needed)."""
        logger.info("Storage closed")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
