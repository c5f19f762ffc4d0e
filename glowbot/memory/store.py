"""SQLite job store for GlowBot.

Two tables:
    scheduled_jobs   job definitions + run statistics
    job_runs         one row per execution attempt
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from glowbot.core.cron.errors import PersistenceError
from glowbot.core.cron.types import JobDefinition, RunOutcome, ScheduledJob

_LIST_COLUMNS = ("niches", "tones", "templates", "platforms")
_BOOL_COLUMNS = (
    "use_spartan_format",
    "use_smart_style",
    "top_rated_style_used",
    "use_existing_products",
    "generate_affiliate_links",
    "is_active",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStore:
    """SQLite job store, the source of truth for which jobs are active.

    Every method opens its own connection; row-level updates are atomic
    and concurrent writers are last-writer-wins.
    """

    def __init__(self, db_path: str = "data/glowbot.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"JobStore initialized: {db_path}")

    @contextmanager
    def _get_conn(self):
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    # ════════════════════════════════════════════════════════════
    # JOBS
    # ════════════════════════════════════════════════════════════

    def add_job(self, definition: JobDefinition) -> ScheduledJob:
        values = _encode(definition.definition())
        now = _now()
        columns = list(values) + ["created_at", "updated_at"]
        placeholders = ", ".join("?" for _ in columns)
        with self._get_conn() as conn:
            cur = conn.execute(
                f"INSERT INTO scheduled_jobs ({', '.join(columns)}) VALUES ({placeholders})",
                (*values.values(), now, now),
            )
            conn.commit()
            job_id = cur.lastrowid
        logger.info(f"Scheduled job persisted: {job_id} ({definition.name})")
        return self._require(job_id)

    def get_job(self, job_id: int) -> ScheduledJob | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM scheduled_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, active_only: bool = False) -> list[ScheduledJob]:
        """List jobs ordered by id. Rows that no longer validate are skipped."""
        query = "SELECT * FROM scheduled_jobs"
        if active_only:
            query += " WHERE is_active = 1"
        with self._get_conn() as conn:
            rows = conn.execute(query + " ORDER BY id").fetchall()
        jobs = []
        for row in rows:
            try:
                jobs.append(_row_to_job(row))
            except ValidationError as e:
                logger.warning(f"Skipping invalid job row {row['id']}: {e.error_count()} error(s)")
        return jobs

    def active_job_ids(self) -> list[int]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT id FROM scheduled_jobs WHERE is_active = 1 ORDER BY id"
            ).fetchall()
        return [r["id"] for r in rows]

    def count_active(self) -> int:
        with self._get_conn() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM scheduled_jobs WHERE is_active = 1"
            ).fetchone()[0]

    def update_job(self, job_id: int, definition: JobDefinition) -> ScheduledJob | None:
        """Overwrite the editable fields. Returns None if the row is gone."""
        values = _encode(definition.definition())
        assignments = ", ".join(f"{col} = ?" for col in values)
        with self._get_conn() as conn:
            cur = conn.execute(
                f"UPDATE scheduled_jobs SET {assignments}, updated_at = ? WHERE id = ?",
                (*values.values(), _now(), job_id),
            )
            conn.commit()
        if cur.rowcount == 0:
            return None
        return self.get_job(job_id)

    def set_active(self, job_id: int, active: bool) -> bool:
        """Flip is_active. Returns True if the row exists."""
        with self._get_conn() as conn:
            cur = conn.execute(
                "UPDATE scheduled_jobs SET is_active = ?, updated_at = ? WHERE id = ?",
                (int(active), _now(), job_id),
            )
            conn.commit()
        return cur.rowcount > 0

    def delete_job(self, job_id: int) -> bool:
        with self._get_conn() as conn:
            conn.execute("DELETE FROM job_runs WHERE job_id = ?", (job_id,))
            cur = conn.execute("DELETE FROM scheduled_jobs WHERE id = ?", (job_id,))
            conn.commit()
        return cur.rowcount > 0

    # ── Run statistics ───────────────────────────────────────

    def record_success(self, job_id: int) -> None:
        """Bump total_runs, stamp last_run_at, reset the failure streak."""
        with self._get_conn() as conn:
            conn.execute(
                """UPDATE scheduled_jobs
                   SET total_runs = total_runs + 1,
                       last_run_at = ?,
                       consecutive_failures = 0,
                       last_error = NULL
                   WHERE id = ?""",
                (_now(), job_id),
            )
            conn.commit()

    def record_failure(self, job_id: int, error: str) -> int:
        """Increment consecutive failure count and record error. Returns new count."""
        with self._get_conn() as conn:
            conn.execute(
                """UPDATE scheduled_jobs
                   SET consecutive_failures = consecutive_failures + 1,
                       last_run_at = ?,
                       last_error = ?
                   WHERE id = ?""",
                (_now(), error, job_id),
            )
            conn.commit()
            row = conn.execute(
                "SELECT consecutive_failures FROM scheduled_jobs WHERE id = ?",
                (job_id,),
            ).fetchone()
        return row["consecutive_failures"] if row else 0

    # ── Run log ──────────────────────────────────────────────

    def log_run(self, outcome: RunOutcome) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO job_runs
                   (run_id, job_id, source, status, items_generated, error,
                    duration_ms, auto_paused, executed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    outcome.run_id, outcome.job_id, outcome.source,
                    outcome.status.value, outcome.items_generated, outcome.error,
                    outcome.duration_ms, int(outcome.auto_paused), _now(),
                ),
            )
            conn.commit()

    def get_runs(self, job_id: int, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent runs first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT * FROM job_runs
                   WHERE job_id = ? ORDER BY id DESC LIMIT ?""",
                (job_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    def _require(self, job_id: int) -> ScheduledJob:
        job = self.get_job(job_id)
        if job is None:
            raise PersistenceError(f"job {job_id} vanished after write")
        return job


# ════════════════════════════════════════════════════════════
# ROW ENCODING
# ════════════════════════════════════════════════════════════


def _encode(values: dict[str, Any]) -> dict[str, Any]:
    encoded = dict(values)
    for col in _LIST_COLUMNS:
        encoded[col] = json.dumps(encoded[col], ensure_ascii=False)
    for col in _BOOL_COLUMNS:
        encoded[col] = int(encoded[col])
    return encoded


def _row_to_job(row: sqlite3.Row) -> ScheduledJob:
    data = dict(row)
    for col in _LIST_COLUMNS:
        data[col] = json.loads(data[col] or "[]")
    for col in _BOOL_COLUMNS:
        data[col] = bool(data[col])
    return ScheduledJob(**data)


_SCHEMA = """
CREATE TABLE IF NOT EXISTS scheduled_jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    schedule_time TEXT NOT NULL,
    timezone TEXT NOT NULL DEFAULT 'America/New_York',
    niches TEXT NOT NULL DEFAULT '[]',
    tones TEXT NOT NULL DEFAULT '[]',
    templates TEXT NOT NULL DEFAULT '[]',
    platforms TEXT NOT NULL DEFAULT '[]',
    ai_model TEXT NOT NULL DEFAULT 'claude',
    use_spartan_format INTEGER DEFAULT 0,
    use_smart_style INTEGER DEFAULT 0,
    top_rated_style_used INTEGER DEFAULT 0,
    use_existing_products INTEGER DEFAULT 1,
    generate_affiliate_links INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT,
    last_run_at TEXT,
    total_runs INTEGER DEFAULT 0,
    consecutive_failures INTEGER DEFAULT 0,
    last_error TEXT
);
CREATE INDEX IF NOT EXISTS idx_jobs_active ON scheduled_jobs(is_active);

CREATE TABLE IF NOT EXISTS job_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    job_id INTEGER NOT NULL,
    source TEXT,
    status TEXT NOT NULL,
    items_generated INTEGER DEFAULT 0,
    error TEXT,
    duration_ms INTEGER DEFAULT 0,
    auto_paused INTEGER DEFAULT 0,
    executed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_runs_job ON job_runs(job_id, id DESC);
"""
