"""
SQLite job record store for MediaJobs.
Thread-safe via check_same_thread=False + explicit locking.
"""

import json
import sqlite3
import threading
import uuid
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from mediajobs.core.constants import DB_PATH, JobStatus
from mediajobs.core.error_codes import PersistenceError
from mediajobs.core.models_sqlite import Job, encode_result, decode_result

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    progress INTEGER DEFAULT 0,
    result TEXT,
    error TEXT,
    status_message TEXT,
    metadata TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jobs_type_status ON jobs(type, status);
"""

_UPDATABLE = ('status', 'progress', 'result', 'error', 'status_message')


class Database:
    """SQLite database wrapper holding the jobs table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or DB_PATH
        self._lock = threading.RLock()
        try:
            self._ensure_dirs()
            self.conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
            self._migrate()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not open job store {self.db_path}: {e}") from e

    def _ensure_dirs(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _migrate(self):
        cur = self.conn.cursor()
        cur.executescript(_CREATE_TABLES)
        cur.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()

    @contextmanager
    def transaction(self):
        """Hold the store lock across several calls (read, check, write)."""
        with self._lock:
            yield self

    @contextmanager
    def _guard(self, action: str):
        """Serialise access and convert driver errors into PersistenceError."""
        with self._lock:
            try:
                yield
            except sqlite3.Error as e:
                logger.error("Job store error while trying to %s: %s", action, e)
                try:
                    self.conn.rollback()
                except sqlite3.Error:
                    pass
                raise PersistenceError(f"Failed to {action}: {e}") from e

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        data = dict(row)
        data['metadata'] = json.loads(data['metadata']) if data['metadata'] else {}
        data['result'] = decode_result(data['type'], data['result'])
        return Job(**data)

    # ── Job CRUD ──────────────────────────────────────────────────────

    def create_job(self, job_type: str, metadata: dict | None = None) -> Job:
        now = self._now()
        job = Job(
            id=str(uuid.uuid4()),
            type=job_type,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        with self._guard("create job"):
            self.conn.execute(
                """INSERT INTO jobs
                   (id, type, status, progress, metadata, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (job.id, job.type, job.status, job.progress,
                 json.dumps(job.metadata), job.created_at, job.updated_at),
            )
            self.conn.commit()
        return job

    def get_job(self, job_id: str) -> Job | None:
        with self._guard("fetch job"):
            row = self.conn.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs(self, job_type: str | None = None, status: str | None = None,
                  limit: int = 10) -> list[Job]:
        clauses, params = [], []
        if job_type:
            clauses.append("type = ?")
            params.append(job_type)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with self._guard("list jobs"):
            rows = self.conn.execute(
                f"SELECT * FROM jobs {where} ORDER BY created_at DESC, rowid DESC LIMIT ?",
                params,
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def update_job(self, job_id: str, **kwargs) -> bool:
        """
        Update a non-terminal job. Returns False when the row is missing or
        already terminal; the guard lives in the WHERE clause so concurrent
        writers cannot resurrect a finished job.
        """
        unknown = set(kwargs) - set(_UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        if 'result' in kwargs and kwargs['result'] is not None:
            job = self.get_job(job_id)
            if job is None:
                return False
            kwargs['result'] = encode_result(job.type, kwargs['result'])

        kwargs['updated_at'] = self._now()
        sets = ', '.join(f"{k} = ?" for k in kwargs)
        vals = list(kwargs.values()) + [job_id, *JobStatus.TERMINAL]
        with self._guard("update job"):
            cur = self.conn.execute(
                f"UPDATE jobs SET {sets} WHERE id = ? AND status NOT IN (?, ?)", vals
            )
            self.conn.commit()
        return cur.rowcount > 0

    def delete_job(self, job_id: str) -> bool:
        with self._guard("delete job"):
            cur = self.conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            self.conn.commit()
        return cur.rowcount > 0
