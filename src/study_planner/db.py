"""Database initialization, connection management and session storage."""
import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from study_planner.errors import PersistenceError, SessionAlreadyCompletedError
from study_planner.models import (
    Commitment, DetailedCommitment, RevisionKind, ScheduledSession, SessionType,
)

DEFAULT_DB_PATH = os.environ.get(
    "STUDY_PLANNER_DB", str(Path.home() / ".study_planner" / "planner.db")
)
DEFAULT_USER = "local"

SCHEMA = """
CREATE TABLE IF NOT EXISTS study_plans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    start_date TEXT NOT NULL,
    target_date TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS schedule_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    plan_id INTEGER REFERENCES study_plans(id),
    item_type TEXT NOT NULL DEFAULT 'manual',
    item_id TEXT,
    title TEXT NOT NULL,
    scheduled_date TEXT NOT NULL,
    estimated_duration INTEGER NOT NULL DEFAULT 0,
    session_type TEXT,
    revision_kind TEXT,
    revision_number INTEGER DEFAULT 0,
    priority INTEGER DEFAULT 5,
    topic_id TEXT,
    subtopic_id TEXT,
    document_id TEXT,
    notes TEXT,
    completed INTEGER DEFAULT 0,
    completed_at TEXT,
    performance_data TEXT,
    fsrs_state TEXT,
    parent_item_id INTEGER REFERENCES schedule_items(id),
    next_revision_id INTEGER REFERENCES schedule_items(id),
    deleted_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_schedule_items_date ON schedule_items (user_id, scheduled_date);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);

CREATE TABLE IF NOT EXISTS day_exceptions (
    day TEXT PRIMARY KEY,
    hours REAL NOT NULL,
    reason TEXT
);
"""

# Columns a patch may touch; everything else about a stored item is fixed.
PATCHABLE_COLUMNS = {
    "item_type", "plan_id", "deleted_at", "next_revision_id",
    "performance_data", "scheduled_date", "notes",
}


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def connect(db_path: str = DEFAULT_DB_PATH):
    """Connection that commits on success and reports store failures as PersistenceError."""
    try:
        conn = get_connection(db_path)
    except sqlite3.Error as e:
        raise PersistenceError(f"Cannot open database {db_path}: {e}") from e
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceError(str(e)) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with connect(db_path) as conn:
        conn.executescript(SCHEMA)


def _dump(value) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _load(text: Optional[str]):
    return json.loads(text) if text else None


def row_to_session(row: sqlite3.Row) -> ScheduledSession:
    return ScheduledSession(
        id=row["id"],
        item_id=row["item_id"],
        title=row["title"],
        date=date.fromisoformat(row["scheduled_date"]),
        duration_minutes=row["estimated_duration"],
        session_type=SessionType(row["session_type"]) if row["session_type"] else None,
        revision_number=row["revision_number"] or 0,
        topic_id=row["topic_id"],
        subtopic_id=row["subtopic_id"],
        document_id=row["document_id"],
        plan_id=row["plan_id"],
        item_type=row["item_type"],
        revision_kind=RevisionKind(row["revision_kind"]) if row["revision_kind"] else None,
        priority=row["priority"],
        notes=row["notes"],
        completed=bool(row["completed"]),
        completed_at=row["completed_at"],
        performance_data=_load(row["performance_data"]),
        memory_state=_load(row["fsrs_state"]),
        parent_id=row["parent_item_id"],
        next_id=row["next_revision_id"],
    )


def _insert_session(conn: sqlite3.Connection, session: ScheduledSession, user_id: str) -> int:
    cursor = conn.execute(
        """INSERT INTO schedule_items (
            user_id, plan_id, item_type, item_id, title, scheduled_date, estimated_duration,
            session_type, revision_kind, revision_number, priority, topic_id, subtopic_id,
            document_id, notes, performance_data, fsrs_state, parent_item_id
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            user_id, session.plan_id, session.item_type, session.item_id, session.title,
            session.date.isoformat(), session.duration_minutes,
            session.session_type.value if session.session_type else None,
            session.revision_kind.value if session.revision_kind else None,
            session.revision_number, session.priority, session.topic_id, session.subtopic_id,
            session.document_id, session.notes, _dump(session.performance_data),
            _dump(session.memory_state), session.parent_id,
        ),
    )
    session.id = cursor.lastrowid
    return session.id


def _apply_patch(conn: sqlite3.Connection, item_id: int, patch: dict) -> None:
    unknown = set(patch) - PATCHABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot patch columns: {sorted(unknown)}")
    if not patch:
        return
    values = [_dump(v) if k == "performance_data" else v for k, v in patch.items()]
    assignments = ", ".join(f"{k} = ?" for k in patch)
    conn.execute(f"UPDATE schedule_items SET {assignments} WHERE id = ?", (*values, item_id))


def fetch_commitments(db_path: str, user_id: str, start: date, end: date) -> list[Commitment]:
    """Incomplete ad-hoc items in [start, end]."""
    return [
        Commitment(date=c.date, minutes=c.minutes, title=c.title)
        for c in fetch_detailed_commitments(db_path, user_id, start, end)
    ]


def fetch_detailed_commitments(db_path: str, user_id: str, start: date, end: date) -> list[DetailedCommitment]:
    with connect(db_path) as conn:
        rows = conn.execute(
            """SELECT id, scheduled_date, estimated_duration, title, topic_id, subtopic_id
            FROM schedule_items
            WHERE user_id = ? AND item_type = 'manual' AND completed = 0
                AND deleted_at IS NULL AND scheduled_date BETWEEN ? AND ?
            ORDER BY scheduled_date, id""",
            (user_id, start.isoformat(), end.isoformat()),
        ).fetchall()
    return [
        DetailedCommitment(
            id=r["id"],
            date=date.fromisoformat(r["scheduled_date"]),
            minutes=r["estimated_duration"] or 0,
            title=r["title"],
            topic_id=r["topic_id"],
            subtopic_id=r["subtopic_id"],
        )
        for r in rows
    ]


def add_manual_commitment(
    db_path: str,
    day: date,
    minutes: int,
    title: str,
    topic_id: str = None,
    subtopic_id: str = None,
    user_id: str = DEFAULT_USER,
) -> int:
    with connect(db_path) as conn:
        cursor = conn.execute(
            """INSERT INTO schedule_items
            (user_id, item_type, title, scheduled_date, estimated_duration, topic_id, subtopic_id)
            VALUES (?, 'manual', ?, ?, ?, ?, ?)""",
            (user_id, title, day.isoformat(), minutes, topic_id, subtopic_id),
        )
        return cursor.lastrowid


def update_commitment(db_path: str, item_id: int, patch: dict) -> None:
    with connect(db_path) as conn:
        _apply_patch(conn, item_id, patch)


def persist_sessions(db_path: str, sessions: list[ScheduledSession], user_id: str = DEFAULT_USER) -> list[int]:
    with connect(db_path) as conn:
        return [_insert_session(conn, s, user_id) for s in sessions]


def commit_plan(
    db_path: str,
    title: str,
    start: date,
    end: date,
    sessions: list[ScheduledSession],
    patches=None,
    user_id: str = DEFAULT_USER,
) -> int:
    """Create a plan with its sessions and commitment patches in one transaction.

    ``patches`` maps commitment ids to a patch or to a callable taking the new
    plan id and returning one. Each part 2 is linked to the part 1 emitted
    before it.
    """
    with connect(db_path) as conn:
        cursor = conn.execute(
            "INSERT INTO study_plans (user_id, title, start_date, target_date, created_at) VALUES (?, ?, ?, ?, ?)",
            (user_id, title, start.isoformat(), end.isoformat(), datetime.now().isoformat()),
        )
        plan_id = cursor.lastrowid
        part1_ids = {}
        for session in sessions:
            session.plan_id = plan_id
            if session.session_type == SessionType.INITIAL_PART_2:
                session.parent_id = part1_ids.get(session.item_id)
            new_id = _insert_session(conn, session, user_id)
            if session.session_type == SessionType.INITIAL_PART_1:
                part1_ids[session.item_id] = new_id
            elif session.parent_id is not None:
                _apply_patch(conn, session.parent_id, {"next_revision_id": new_id})
        for item_id, patch in (patches or {}).items():
            _apply_patch(conn, item_id, patch(plan_id) if callable(patch) else patch)
    return plan_id


def get_session(db_path: str, session_id: int, user_id: str = DEFAULT_USER) -> Optional[ScheduledSession]:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM schedule_items WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
            (session_id, user_id),
        ).fetchone()
    return row_to_session(row) if row else None


def get_sessions(db_path: str, start: date, end: date, user_id: str = DEFAULT_USER) -> list[ScheduledSession]:
    """All live items in [start, end], highest priority first within a day."""
    with connect(db_path) as conn:
        rows = conn.execute(
            """SELECT * FROM schedule_items
            WHERE user_id = ? AND deleted_at IS NULL AND scheduled_date BETWEEN ? AND ?
            ORDER BY scheduled_date, priority DESC, id""",
            (user_id, start.isoformat(), end.isoformat()),
        ).fetchall()
    return [row_to_session(r) for r in rows]


def get_plan_sessions(db_path: str, plan_id: int) -> list[ScheduledSession]:
    with connect(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM schedule_items WHERE plan_id = ? AND deleted_at IS NULL ORDER BY scheduled_date, id",
            (plan_id,),
        ).fetchall()
    return [row_to_session(r) for r in rows]


def find_overlapping_plans(db_path: str, user_id: str, start: date, end: date) -> list[dict]:
    """Active plans whose [start_date, target_date] overlaps [start, end].

    A plan stays active while it has incomplete initial or linked work;
    revisions go on after the plan period and do not keep it active.
    """
    with connect(db_path) as conn:
        rows = conn.execute(
            """SELECT p.id, p.title, p.start_date, p.target_date FROM study_plans p
            WHERE p.user_id = ? AND p.start_date <= ? AND p.target_date >= ?
                AND EXISTS (
                    SELECT 1 FROM schedule_items s
                    WHERE s.plan_id = p.id AND s.completed = 0 AND s.deleted_at IS NULL
                        AND (s.session_type IS NULL OR s.session_type != 'revision')
                )
            ORDER BY p.start_date, p.id""",
            (user_id, end.isoformat(), start.isoformat()),
        ).fetchall()
    return [
        {
            "id": r["id"],
            "title": r["title"],
            "start_date": date.fromisoformat(r["start_date"]),
            "target_date": date.fromisoformat(r["target_date"]),
        }
        for r in rows
    ]


def complete_session_record(
    db_path: str,
    session_id: int,
    performance_data: dict,
    completed_at: str,
    follow_up: ScheduledSession = None,
    predecessor_patch: dict = None,
    user_id: str = DEFAULT_USER,
) -> Optional[int]:
    """Mark a session done and store its follow-up plus the forward link.

    Raises SessionAlreadyCompletedError if the session was completed before,
    so a completion can never spawn a second follow-up.
    """
    with connect(db_path) as conn:
        cursor = conn.execute(
            """UPDATE schedule_items SET completed = 1, completed_at = ?, performance_data = ?
            WHERE id = ? AND user_id = ? AND completed = 0""",
            (completed_at, _dump(performance_data), session_id, user_id),
        )
        if cursor.rowcount == 0:
            raise SessionAlreadyCompletedError(f"Session {session_id} is already completed")
        if predecessor_patch:
            _apply_patch(conn, session_id, predecessor_patch)
        if follow_up is None:
            return None
        new_id = _insert_session(conn, follow_up, user_id)
        _apply_patch(conn, session_id, {"next_revision_id": new_id})
        return new_id
