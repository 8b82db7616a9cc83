"""
PostgreSQL rating store.

Claims use ``FOR UPDATE SKIP LOCKED`` so concurrent workers never claim
the same dirty row. Event appends take a per-item transaction advisory
lock, so event ids for a given item always commit in id order and a
worker's replay checkpoint can never skip a late-committing event.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
import asyncpg

from src.calibration.config import CalibrationConfig
from src.calibration.engine import apply_delta
from src.errors import ClaimLostError, TransientStoreError
from src.storage.base import RatingStore
from src.storage.database import Database
from src.storage.schemas import (
    DirtyEntry,
    Event,
    Evidence,
    ItemCommit,
    ItemState,
    PipelineStatus,
    PublishedScore,
    RaterDelta,
    RaterState,
)

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.LockNotAvailableError,
    asyncpg.exceptions.QueryCanceledError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.PostgresConnectionError,
    asyncio.TimeoutError,
    OSError,
)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS item_ratings (
    item_id TEXT PRIMARY KEY,
    mean DOUBLE PRECISION NOT NULL DEFAULT 1200,
    sigma DOUBLE PRECISION NOT NULL DEFAULT 350,
    comparison_count INTEGER NOT NULL DEFAULT 0,
    signal_sum DOUBLE PRECISION NOT NULL DEFAULT 0,
    signal_weight DOUBLE PRECISION NOT NULL DEFAULT 0,
    signal_count INTEGER NOT NULL DEFAULT 0,
    boost_count INTEGER NOT NULL DEFAULT 0,
    boost_weight DOUBLE PRECISION NOT NULL DEFAULT 0,
    reliability_sum DOUBLE PRECISION NOT NULL DEFAULT 0,
    reliability_samples INTEGER NOT NULL DEFAULT 0,
    last_event_id BIGINT NOT NULL DEFAULT 0,
    last_compared_at TIMESTAMPTZ,
    frozen BOOLEAN NOT NULL DEFAULT FALSE,
    frozen_reason TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS rater_calibration (
    rater_id TEXT PRIMARY KEY,
    count INTEGER NOT NULL DEFAULT 0,
    mean DOUBLE PRECISION NOT NULL DEFAULT 0,
    m2 DOUBLE PRECISION NOT NULL DEFAULT 0,
    reliability DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    reliability_samples INTEGER NOT NULL DEFAULT 0,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS events (
    event_id BIGSERIAL PRIMARY KEY,
    event_type TEXT NOT NULL
        CHECK (event_type IN ('comparison', 'raw_signal', 'boost')),
    rater_id TEXT NOT NULL,
    item_a TEXT,
    item_b TEXT,
    winner_id TEXT,
    high_weight BOOLEAN NOT NULL DEFAULT FALSE,
    pre_mean_a DOUBLE PRECISION,
    pre_sigma_a DOUBLE PRECISION,
    pre_mean_b DOUBLE PRECISION,
    pre_sigma_b DOUBLE PRECISION,
    item_id TEXT,
    raw_value DOUBLE PRECISION,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_events_item_a ON events(item_a, event_id)
    WHERE item_a IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_events_item_b ON events(item_b, event_id)
    WHERE item_b IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_events_item_id ON events(item_id, event_id)
    WHERE item_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS dirty_items (
    item_id TEXT PRIMARY KEY,
    priority INTEGER NOT NULL DEFAULT 0,
    enqueued_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    version BIGINT NOT NULL DEFAULT 1,
    claimed_by TEXT,
    claimed_at TIMESTAMPTZ,
    attempts INTEGER NOT NULL DEFAULT 0,
    not_before TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_dirty_items_claim_order
    ON dirty_items(priority DESC, enqueued_at ASC);

CREATE TABLE IF NOT EXISTS published_scores (
    item_id TEXT PRIMARY KEY,
    score DOUBLE PRECISION NOT NULL CHECK (score BETWEEN 0 AND 100),
    confidence DOUBLE PRECISION NOT NULL CHECK (confidence BETWEEN 0 AND 100),
    provisional BOOLEAN NOT NULL DEFAULT TRUE,
    rating_component DOUBLE PRECISION NOT NULL DEFAULT 0,
    signal_component DOUBLE PRECISION NOT NULL DEFAULT 0,
    boost_component DOUBLE PRECISION NOT NULL DEFAULT 0,
    reliability DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    published_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Watermarks for periodic jobs shared by all schedulers
CREATE TABLE IF NOT EXISTS maintenance_windows (
    name TEXT PRIMARY KEY,
    last_run_at TIMESTAMPTZ NOT NULL
);
"""

IDLE_DECAY_WINDOW = "idle_decay"

_EVENT_COLUMNS = (
    "event_type, rater_id, item_a, item_b, winner_id, high_weight, "
    "pre_mean_a, pre_sigma_a, pre_mean_b, pre_sigma_b, item_id, raw_value, created_at"
)


def _row_to_item(row: asyncpg.Record) -> ItemState:
    return ItemState(
        item_id=row["item_id"],
        mean=row["mean"],
        sigma=row["sigma"],
        comparison_count=row["comparison_count"],
        signal_sum=row["signal_sum"],
        signal_weight=row["signal_weight"],
        signal_count=row["signal_count"],
        boost_count=row["boost_count"],
        boost_weight=row["boost_weight"],
        reliability_sum=row["reliability_sum"],
        reliability_samples=row["reliability_samples"],
        last_event_id=row["last_event_id"],
        last_compared_at=row["last_compared_at"],
        frozen=row["frozen"],
        frozen_reason=row["frozen_reason"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_rater(row: asyncpg.Record) -> RaterState:
    return RaterState(
        rater_id=row["rater_id"],
        count=row["count"],
        mean=row["mean"],
        m2=row["m2"],
        reliability=row["reliability"],
        reliability_samples=row["reliability_samples"],
        updated_at=row["updated_at"],
    )


def _row_to_event(row: asyncpg.Record) -> Event:
    return Event(
        event_id=row["event_id"],
        event_type=row["event_type"],
        rater_id=row["rater_id"],
        item_a=row["item_a"],
        item_b=row["item_b"],
        winner_id=row["winner_id"],
        high_weight=row["high_weight"],
        pre_mean_a=row["pre_mean_a"],
        pre_sigma_a=row["pre_sigma_a"],
        pre_mean_b=row["pre_mean_b"],
        pre_sigma_b=row["pre_sigma_b"],
        item_id=row["item_id"],
        raw_value=row["raw_value"],
        created_at=row["created_at"],
    )


def _row_to_dirty(row: asyncpg.Record) -> DirtyEntry:
    return DirtyEntry(
        item_id=row["item_id"],
        priority=row["priority"],
        enqueued_at=row["enqueued_at"],
        updated_at=row["updated_at"],
        version=row["version"],
        claimed_by=row["claimed_by"],
        claimed_at=row["claimed_at"],
        attempts=row["attempts"],
        not_before=row["not_before"],
    )


def _row_to_published(row: asyncpg.Record) -> PublishedScore:
    return PublishedScore(
        item_id=row["item_id"],
        score=row["score"],
        confidence=row["confidence"],
        provisional=row["provisional"],
        rating_component=row["rating_component"],
        signal_component=row["signal_component"],
        boost_component=row["boost_component"],
        reliability=row["reliability"],
        published_at=row["published_at"],
    )


class PostgresRatingStore(RatingStore):
    """
    RatingStore backed by PostgreSQL through the shared Database pool.

    Usage:
        store = PostgresRatingStore(Database())
        await store.connect()
        await store.create_tables()
    """

    def __init__(
        self,
        database: Database,
        calibration_config: CalibrationConfig | None = None,
    ):
        self._db = database
        self._calibration_config = calibration_config or CalibrationConfig()

    async def connect(self) -> None:
        await self._db.connect()

    async def close(self) -> None:
        await self._db.close()

    @asynccontextmanager
    async def _transient(self, operation: str) -> AsyncIterator[None]:
        """Translate contention/timeouts into TransientStoreError."""
        try:
            yield
        except _TRANSIENT_ERRORS as e:
            logger.warning(f"Transient store failure during {operation}: {e}")
            raise TransientStoreError(f"{operation} failed: {e}") from e

    async def create_tables(self) -> None:
        """Create all rating tables and indexes if they don't exist."""
        await self._db.execute(CREATE_TABLES_SQL)
        logger.info("Rating store tables ensured")

    # Items

    async def register_items(
        self,
        item_ids: list[str],
        mean: float,
        sigma: float,
    ) -> int:
        sql = """
            INSERT INTO item_ratings (item_id, mean, sigma)
            SELECT unnest($1::text[]), $2, $3
            ON CONFLICT (item_id) DO NOTHING
            RETURNING item_id
        """
        async with self._transient("register_items"):
            rows = await self._db.fetch(sql, item_ids, mean, sigma)
        return len(rows)

    async def get_item(self, item_id: str) -> ItemState | None:
        async with self._transient("get_item"):
            row = await self._db.fetchrow(
                "SELECT * FROM item_ratings WHERE item_id = $1", item_id
            )
        return _row_to_item(row) if row else None

    async def get_items(self, item_ids: list[str]) -> dict[str, ItemState]:
        if not item_ids:
            return {}
        async with self._transient("get_items"):
            rows = await self._db.fetch(
                "SELECT * FROM item_ratings WHERE item_id = ANY($1::text[])",
                item_ids,
            )
        return {row["item_id"]: _row_to_item(row) for row in rows}

    async def set_frozen(
        self,
        item_id: str,
        frozen: bool,
        reason: str | None = None,
    ) -> bool:
        sql = """
            UPDATE item_ratings
            SET frozen = $2, frozen_reason = $3, updated_at = NOW()
            WHERE item_id = $1
        """
        async with self._transient("set_frozen"):
            result = await self._db.execute(
                sql, item_id, frozen, reason if frozen else None
            )
        return result == "UPDATE 1"

    async def apply_idle_decay(
        self,
        idle_since: datetime,
        amount: float,
        cap: float,
    ) -> int:
        sql = """
            UPDATE item_ratings
            SET sigma = LEAST($3, sigma + $2)
            WHERE comparison_count > 0
              AND sigma < $3
              AND (last_compared_at IS NULL OR last_compared_at < $1)
        """
        async with self._transient("apply_idle_decay"):
            result = await self._db.execute(sql, idle_since, amount, cap)
        return int(result.split()[-1])

    async def claim_decay_window(
        self,
        now: datetime,
        interval_seconds: float,
    ) -> datetime | None:
        async with self._transient("claim_decay_window"):
            async with self._db.transaction() as conn:
                previous = await conn.fetchval(
                    "SELECT last_run_at FROM maintenance_windows "
                    "WHERE name = $1 FOR UPDATE",
                    IDLE_DECAY_WINDOW,
                )
                if previous is None:
                    await conn.execute(
                        "INSERT INTO maintenance_windows (name, last_run_at) "
                        "VALUES ($1, $2) ON CONFLICT (name) DO NOTHING",
                        IDLE_DECAY_WINDOW,
                        now,
                    )
                    return None
                if (now - previous).total_seconds() < interval_seconds:
                    return None
                await conn.execute(
                    "UPDATE maintenance_windows SET last_run_at = $2 WHERE name = $1",
                    IDLE_DECAY_WINDOW,
                    now,
                )
                return previous

    # Events

    async def append_event(
        self,
        event: Event,
        priorities: dict[str, int],
    ) -> Event:
        insert_sql = f"""
            INSERT INTO events ({_EVENT_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING *
        """
        async with self._transient("append_event"):
            async with self._db.transaction() as conn:
                for item_id in sorted(priorities):
                    await conn.execute(
                        "SELECT pg_advisory_xact_lock(hashtextextended($1, 0))",
                        item_id,
                    )
                row = await conn.fetchrow(
                    insert_sql,
                    event.event_type.value,
                    event.rater_id,
                    event.item_a,
                    event.item_b,
                    event.winner_id,
                    event.high_weight,
                    event.pre_mean_a,
                    event.pre_sigma_a,
                    event.pre_mean_b,
                    event.pre_sigma_b,
                    event.item_id,
                    event.raw_value,
                    event.created_at,
                )
                for item_id, priority in priorities.items():
                    await conn.fetchrow(_MARK_DIRTY_SQL, item_id, priority)
        return _row_to_event(row)

    async def count_comparisons(self, item_id: str) -> int:
        sql = """
            SELECT
                (SELECT COUNT(*) FROM events
                 WHERE item_a = $1 AND event_type = 'comparison')
              + (SELECT COUNT(*) FROM events
                 WHERE item_b = $1 AND event_type = 'comparison')
        """
        async with self._transient("count_comparisons"):
            return int(await self._db.fetchval(sql, item_id))

    async def evidence_counts(
        self,
        item_id: str,
        through_event_id: int | None = None,
    ) -> Evidence:
        sql = """
            WITH touching AS (
                SELECT event_type, rater_id, item_b AS opponent FROM events
                WHERE item_a = $1 AND ($2::bigint IS NULL OR event_id <= $2)
                UNION ALL
                SELECT event_type, rater_id, item_a FROM events
                WHERE item_b = $1 AND ($2::bigint IS NULL OR event_id <= $2)
                UNION ALL
                SELECT event_type, rater_id, NULL FROM events
                WHERE item_id = $1 AND event_type = 'raw_signal'
                  AND ($2::bigint IS NULL OR event_id <= $2)
            )
            SELECT
                COUNT(*) FILTER (WHERE event_type = 'comparison') AS comparisons,
                COUNT(DISTINCT opponent) FILTER (WHERE event_type = 'comparison')
                    AS unique_opponents,
                COUNT(*) FILTER (WHERE event_type = 'raw_signal') AS signals,
                COUNT(DISTINCT rater_id) FILTER (WHERE event_type = 'raw_signal')
                    AS unique_signal_raters
            FROM touching
        """
        async with self._transient("evidence_counts"):
            row = await self._db.fetchrow(sql, item_id, through_event_id)
        return Evidence(
            comparisons=row["comparisons"],
            unique_opponents=row["unique_opponents"],
            signals=row["signals"],
            unique_signal_raters=row["unique_signal_raters"],
        )

    async def pending_events(
        self,
        item_id: str,
        after_event_id: int,
        limit: int,
    ) -> list[Event]:
        sql = """
            SELECT * FROM events
            WHERE event_id > $2
              AND (item_id = $1 OR item_a = $1 OR item_b = $1)
            ORDER BY event_id ASC
            LIMIT $3
        """
        async with self._transient("pending_events"):
            rows = await self._db.fetch(sql, item_id, after_event_id, limit)
        return [_row_to_event(row) for row in rows]

    async def recent_events(self, limit: int = 50) -> list[Event]:
        async with self._transient("recent_events"):
            rows = await self._db.fetch(
                "SELECT * FROM events ORDER BY event_id DESC LIMIT $1", limit
            )
        return [_row_to_event(row) for row in rows]

    # Dirty set

    async def mark_dirty(self, item_id: str, priority: int) -> DirtyEntry:
        async with self._transient("mark_dirty"):
            row = await self._db.fetchrow(_MARK_DIRTY_SQL, item_id, priority)
        return _row_to_dirty(row)

    async def claim_dirty(
        self,
        worker_id: str,
        limit: int,
        now: datetime,
        claim_timeout_seconds: float,
    ) -> list[DirtyEntry]:
        sql = """
            WITH claimable AS (
                SELECT item_id FROM dirty_items
                WHERE (claimed_by IS NULL OR claimed_at < $3)
                  AND (not_before IS NULL OR not_before <= $2)
                ORDER BY priority DESC, enqueued_at ASC
                LIMIT $4
                FOR UPDATE SKIP LOCKED
            )
            UPDATE dirty_items d
            SET claimed_by = $1, claimed_at = $2
            FROM claimable c
            WHERE d.item_id = c.item_id
            RETURNING d.*
        """
        stale_before = now - timedelta(seconds=claim_timeout_seconds)
        async with self._transient("claim_dirty"):
            rows = await self._db.fetch(sql, worker_id, now, stale_before, limit)
        entries = [_row_to_dirty(row) for row in rows]
        entries.sort(key=lambda e: (-e.priority, e.enqueued_at))
        return entries

    async def release_claim(self, entry: DirtyEntry) -> None:
        async with self._transient("release_claim"):
            await self._db.execute(_RELEASE_SQL, entry.item_id, entry.claimed_by)

    async def requeue(
        self,
        entry: DirtyEntry,
        not_before: datetime | None,
        priority: int | None = None,
    ) -> None:
        sql = """
            UPDATE dirty_items
            SET claimed_by = NULL,
                claimed_at = NULL,
                attempts = attempts + 1,
                not_before = $3,
                priority = COALESCE($4, priority)
            WHERE item_id = $1 AND claimed_by = $2
        """
        async with self._transient("requeue"):
            await self._db.execute(
                sql, entry.item_id, entry.claimed_by, not_before, priority
            )

    async def commit_item(self, commit: ItemCommit) -> bool:
        item = commit.item
        claim = commit.claim
        async with self._transient("commit_item"):
            async with self._db.transaction() as conn:
                owned = await conn.fetchrow(
                    """
                    SELECT version FROM dirty_items
                    WHERE item_id = $1 AND claimed_by = $2
                      AND ($3::timestamptz IS NULL OR claimed_at = $3)
                    FOR UPDATE
                    """,
                    item.item_id,
                    claim.claimed_by,
                    claim.claimed_at,
                )
                if owned is None:
                    raise ClaimLostError(
                        f"Claim on {item.item_id} is no longer held by {claim.claimed_by}",
                        item_id=item.item_id,
                    )

                status = await conn.execute(
                    _SAVE_ITEM_SQL,
                    item.item_id,
                    item.mean,
                    item.sigma,
                    item.comparison_count,
                    item.signal_sum,
                    item.signal_weight,
                    item.signal_count,
                    item.boost_count,
                    item.boost_weight,
                    item.reliability_sum,
                    item.reliability_samples,
                    item.last_event_id,
                    item.last_compared_at,
                    commit.checkpoint,
                )
                if status == "UPDATE 0":
                    raise ClaimLostError(
                        f"Checkpoint of {item.item_id} moved from {commit.checkpoint}",
                        item_id=item.item_id,
                    )

                for delta in sorted(commit.rater_deltas, key=lambda d: d.rater_id):
                    if delta.is_empty:
                        continue
                    await self._merge_rater(conn, delta)

                if commit.published is not None:
                    await self._save_published(conn, commit.published)

                if not commit.keep_dirty:
                    deleted = await conn.fetchval(
                        """
                        DELETE FROM dirty_items
                        WHERE item_id = $1 AND claimed_by = $2 AND version = $3
                        RETURNING item_id
                        """,
                        item.item_id,
                        claim.claimed_by,
                        claim.version,
                    )
                    if deleted is not None:
                        return True

                await conn.execute(_RELEASE_SQL, item.item_id, claim.claimed_by)
                return False

    async def _merge_rater(self, conn: asyncpg.Connection, delta: RaterDelta) -> None:
        await conn.execute(
            "INSERT INTO rater_calibration (rater_id) VALUES ($1) "
            "ON CONFLICT (rater_id) DO NOTHING",
            delta.rater_id,
        )
        row = await conn.fetchrow(
            "SELECT * FROM rater_calibration WHERE rater_id = $1 FOR UPDATE",
            delta.rater_id,
        )
        merged = apply_delta(_row_to_rater(row), delta, self._calibration_config)
        await conn.execute(
            """
            UPDATE rater_calibration
            SET count = $2, mean = $3, m2 = $4,
                reliability = $5, reliability_samples = $6, updated_at = NOW()
            WHERE rater_id = $1
            """,
            merged.rater_id,
            merged.count,
            merged.mean,
            merged.m2,
            merged.reliability,
            merged.reliability_samples,
        )

    async def _save_published(
        self,
        conn: asyncpg.Connection,
        published: PublishedScore,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO published_scores (
                item_id, score, confidence, provisional, rating_component,
                signal_component, boost_component, reliability, published_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (item_id) DO UPDATE SET
                score = EXCLUDED.score,
                confidence = EXCLUDED.confidence,
                provisional = EXCLUDED.provisional,
                rating_component = EXCLUDED.rating_component,
                signal_component = EXCLUDED.signal_component,
                boost_component = EXCLUDED.boost_component,
                reliability = EXCLUDED.reliability,
                published_at = EXCLUDED.published_at
            """,
            published.item_id,
            published.score,
            published.confidence,
            published.provisional,
            published.rating_component,
            published.signal_component,
            published.boost_component,
            published.reliability,
            published.published_at,
        )

    # Raters

    async def get_raters(self, rater_ids: list[str]) -> dict[str, RaterState]:
        if not rater_ids:
            return {}
        async with self._transient("get_raters"):
            rows = await self._db.fetch(
                "SELECT * FROM rater_calibration WHERE rater_id = ANY($1::text[])",
                rater_ids,
            )
        return {row["rater_id"]: _row_to_rater(row) for row in rows}

    # Published scores

    async def get_published(self, item_id: str) -> PublishedScore | None:
        async with self._transient("get_published"):
            row = await self._db.fetchrow(
                "SELECT * FROM published_scores WHERE item_id = $1", item_id
            )
        return _row_to_published(row) if row else None

    # Ops

    async def pipeline_status(
        self,
        now: datetime,
        high_priority_threshold: int,
    ) -> PipelineStatus:
        dirty_sql = """
            SELECT
                COUNT(*) AS dirty_count,
                COUNT(*) FILTER (WHERE priority >= $2) AS high_priority_count,
                COUNT(*) FILTER (WHERE claimed_by IS NOT NULL) AS claimed_count,
                COUNT(*) FILTER (WHERE not_before > $1) AS backoff_count,
                MAX(EXTRACT(EPOCH FROM ($1::timestamptz - enqueued_at))) AS oldest_age,
                AVG(EXTRACT(EPOCH FROM ($1::timestamptz - enqueued_at))) AS avg_age
            FROM dirty_items
        """
        totals_sql = """
            SELECT
                (SELECT COUNT(*) FROM item_ratings) AS total_items,
                (SELECT COUNT(*) FROM item_ratings WHERE frozen) AS frozen_count,
                (SELECT COUNT(*) FROM rater_calibration) AS total_raters,
                (SELECT COUNT(*) FROM events) AS total_events,
                (SELECT COUNT(*) FROM published_scores) AS total_published
        """
        async with self._transient("pipeline_status"):
            dirty = await self._db.fetchrow(dirty_sql, now, high_priority_threshold)
            totals = await self._db.fetchrow(totals_sql)

        oldest = dirty["oldest_age"]
        avg = dirty["avg_age"]
        return PipelineStatus(
            dirty_count=dirty["dirty_count"],
            high_priority_count=dirty["high_priority_count"],
            claimed_count=dirty["claimed_count"],
            backoff_count=dirty["backoff_count"],
            frozen_count=totals["frozen_count"],
            oldest_dirty_age_seconds=float(oldest) if oldest is not None else None,
            avg_dirty_age_seconds=float(avg) if avg is not None else None,
            total_items=totals["total_items"],
            total_raters=totals["total_raters"],
            total_events=totals["total_events"],
            total_published=totals["total_published"],
        )

    async def health_check(self) -> bool:
        return await self._db.health_check()


_MARK_DIRTY_SQL = """
    INSERT INTO dirty_items (item_id, priority)
    VALUES ($1, $2)
    ON CONFLICT (item_id) DO UPDATE SET
        priority = GREATEST(dirty_items.priority, EXCLUDED.priority),
        version = dirty_items.version + 1,
        updated_at = NOW()
    RETURNING *
"""

_RELEASE_SQL = """
    UPDATE dirty_items
    SET claimed_by = NULL, claimed_at = NULL
    WHERE item_id = $1 AND claimed_by = $2
"""

_SAVE_ITEM_SQL = """
    UPDATE item_ratings SET
        mean = $2,
        sigma = $3,
        comparison_count = $4,
        signal_sum = $5,
        signal_weight = $6,
        signal_count = $7,
        boost_count = $8,
        boost_weight = $9,
        reliability_sum = $10,
        reliability_samples = $11,
        last_event_id = $12,
        last_compared_at = $13,
        updated_at = NOW()
    WHERE item_id = $1
      AND ($14::bigint IS NULL OR last_event_id = $14)
"""
