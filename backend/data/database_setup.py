# In backend/data/database_setup.py

import logging
import os
import sqlite3
from datetime import datetime

from backend.config import settings

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """A schema step failed; startup must not continue on a half-built schema."""

    def __init__(self, name, cause):
        super().__init__(f"Migration '{name}' failed: {cause}")
        self.name = name
        self.cause = cause


def get_db_connection(path=None):
    """Open the configured database with name-addressable rows."""
    conn = sqlite3.connect(path or settings.DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _create_core_tables(c):
    # --- Accounts ---
    c.execute("""
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY, email TEXT UNIQUE, password TEXT,
        full_name TEXT, role TEXT
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS students (
        id TEXT PRIMARY KEY, user_id TEXT, name TEXT, email TEXT,
        grade TEXT, class TEXT,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY, user_id TEXT, created_at TEXT, expires_at TEXT,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )""")

    # --- Teaching content ---
    c.execute("""
    CREATE TABLE IF NOT EXISTS lessons (
        id TEXT PRIMARY KEY, teacher_id TEXT, title TEXT, class_name TEXT,
        grade TEXT, subject TEXT, topic TEXT, content TEXT, duration TEXT,
        resources TEXT, status TEXT, created_at TEXT, updated_at TEXT,
        FOREIGN KEY (teacher_id) REFERENCES users(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS assessments (
        id TEXT PRIMARY KEY, teacher_id TEXT, title TEXT, subject TEXT,
        class_name TEXT, grade TEXT, topic TEXT, type TEXT, difficulty TEXT,
        questions_count INTEGER, total_marks INTEGER, passing_marks INTEGER,
        time_limit INTEGER, status TEXT, due_date TEXT,
        created_at TEXT, updated_at TEXT,
        FOREIGN KEY (teacher_id) REFERENCES users(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS questions (
        id TEXT PRIMARY KEY, assessment_id TEXT, question_text TEXT,
        question_type TEXT, options TEXT, correct_answer TEXT, marks INTEGER,
        position INTEGER DEFAULT 0,
        FOREIGN KEY (assessment_id) REFERENCES assessments(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS rubrics (
        id TEXT PRIMARY KEY, assessment_id TEXT, criteria TEXT,
        FOREIGN KEY (assessment_id) REFERENCES assessments(id)
    )""")

    # --- Student work ---
    c.execute("""
    CREATE TABLE IF NOT EXISTS submissions (
        id TEXT PRIMARY KEY, assessment_id TEXT, student_id TEXT,
        answers TEXT, status TEXT, submitted_at TEXT, created_at TEXT,
        FOREIGN KEY (assessment_id) REFERENCES assessments(id),
        FOREIGN KEY (student_id) REFERENCES students(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS grades (
        id TEXT PRIMARY KEY, assessment_id TEXT, student_id TEXT,
        total_score REAL, max_score REAL DEFAULT 100, percentage REAL,
        grade_letter TEXT, grading_status TEXT DEFAULT 'graded',
        ai_feedback TEXT, graded_at TEXT,
        FOREIGN KEY (assessment_id) REFERENCES assessments(id),
        FOREIGN KEY (student_id) REFERENCES students(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS chat_logs (
        id TEXT PRIMARY KEY, student_id TEXT, role TEXT, content TEXT,
        timestamp TEXT,
        FOREIGN KEY (student_id) REFERENCES students(id)
    )""")
    c.execute("""
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY, title TEXT, start TEXT, "end" TEXT,
        category TEXT, color TEXT
    )""")


def _add_column(table, column, definition):
    """Build an idempotent ALTER TABLE step for databases created by older builds."""
    def step(c):
        c.execute(f"PRAGMA table_info({table})")
        columns = [col[1] for col in c.fetchall()]
        if column not in columns:
            c.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    return step


MIGRATIONS = [
    ("0001_core_tables", _create_core_tables),
    ("0002_assessments_due_date", _add_column("assessments", "due_date", "TEXT")),
    ("0003_grades_ai_feedback", _add_column("grades", "ai_feedback", "TEXT")),
    ("0004_submissions_answers", _add_column("submissions", "answers", "TEXT")),
    ("0005_grades_grading_status", _add_column("grades", "grading_status", "TEXT DEFAULT 'graded'")),
    ("0006_lessons_resources", _add_column("lessons", "resources", "TEXT")),
    ("0007_questions_position", _add_column("questions", "position", "INTEGER DEFAULT 0")),
]


def run_migrations(conn):
    """Apply pending MIGRATIONS in order; returns the names applied this run."""
    conn.execute("""
    CREATE TABLE IF NOT EXISTS schema_migrations (
        name TEXT PRIMARY KEY, applied_at TEXT
    )""")
    conn.commit()
    applied = {row[0] for row in conn.execute("SELECT name FROM schema_migrations")}

    newly_applied = []
    for name, step in MIGRATIONS:
        if name in applied:
            continue
        try:
            with conn:
                step(conn.cursor())
                conn.execute(
                    "INSERT INTO schema_migrations (name, applied_at) VALUES (?, ?)",
                    (name, datetime.now().isoformat()),
                )
        except sqlite3.Error as e:
            raise MigrationError(name, e) from e
        logger.info("Applied migration %s", name)
        newly_applied.append(name)
    return newly_applied


def init_db(path=None):
    """Create or upgrade the schema. Safe to call on every startup."""
    db_path = path or settings.DATABASE_PATH
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = get_db_connection(db_path)
    try:
        return run_migrations(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    print(f"Applied: {init_db() or 'nothing, schema is current'}")
