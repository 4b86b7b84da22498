import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from fieldgates.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- JOBS
-- ============================================================
CREATE TABLE IF NOT EXISTS jobs (
    id            TEXT PRIMARY KEY,
    title         TEXT NOT NULL,
    address       TEXT,
    status        TEXT NOT NULL DEFAULT 'lead'
                  CHECK(status IN ('lead','inspection_scheduled','job_created','active_work',
                                   'ready_for_estimate','needs_follow_up','complete',
                                   'ready_to_invoice','paid','closed')),
    lead_tech_id  TEXT,
    created_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_lead_tech ON jobs(lead_tech_id);

-- ============================================================
-- GATES
-- ============================================================
CREATE TABLE IF NOT EXISTS job_gates (
    id                 TEXT PRIMARY KEY,
    job_id             TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
    stage_name         TEXT NOT NULL,
    status             TEXT NOT NULL DEFAULT 'pending'
                       CHECK(status IN ('pending','in_progress','complete','skipped')),
    metadata           TEXT,
    requires_exception INTEGER NOT NULL DEFAULT 0,
    exception_reason   TEXT,
    completed_at       TEXT,
    completed_by       TEXT,
    created_at         TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at         TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_gates_job_stage ON job_gates(job_id, stage_name);
CREATE INDEX IF NOT EXISTS idx_gates_status ON job_gates(status);

-- ============================================================
-- PHOTOS
-- ============================================================
CREATE TABLE IF NOT EXISTS job_photos (
    id              TEXT PRIMARY KEY,
    job_id          TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
    gate_id         TEXT REFERENCES job_gates(id) ON DELETE SET NULL,
    storage_path    TEXT NOT NULL,
    metadata        TEXT,
    is_ppe          INTEGER NOT NULL DEFAULT 0,
    taken_by        TEXT,
    file_hash       TEXT,
    file_size_bytes INTEGER,
    mime_type       TEXT,
    created_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_photos_job ON job_photos(job_id);
CREATE INDEX IF NOT EXISTS idx_photos_gate ON job_photos(gate_id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_photos_path ON job_photos(storage_path);
"""


MIGRATIONS = [
    # v0.2: photo provenance
    "ALTER TABLE job_photos ADD COLUMN taken_by TEXT",
    # v0.3: photo integrity
    "ALTER TABLE job_photos ADD COLUMN file_hash TEXT",
    "ALTER TABLE job_photos ADD COLUMN file_size_bytes INTEGER",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently (ALTER TABLE fails if the column exists)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # column already exists
    conn.close()
