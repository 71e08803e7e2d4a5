import json
import logging
from datetime import datetime, timedelta

from backend.config import settings
from backend.data.database_setup import get_db_connection, init_db
from backend.src.auth.auth import create_user
from backend.src.lms.data import insert_questions, new_id, now_iso, replace_rubric

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

DEMO_STUDENTS = [
    ("Aisha Khan", "aisha.khan@school.edu", "Grade 8", "8A"),
    ("Ben Carter", "ben.carter@school.edu", "Grade 8", "8A"),
    ("Chloe Nguyen", "chloe.nguyen@school.edu", "Grade 8", "8B"),
    ("Diego Alvarez", "diego.alvarez@school.edu", "Grade 8", "8B"),
]

DEMO_QUESTIONS = [
    {
        "question_text": "What is 3/4 written as a decimal?",
        "question_type": "mcq",
        "options": ["0.34", "0.75", "0.43", "1.33"],
        "correct_answer": "0.75",
        "marks": 5,
    },
    {
        "question_text": "Which fraction is equivalent to 2/3?",
        "question_type": "mcq",
        "options": ["4/6", "3/2", "2/6", "6/4"],
        "correct_answer": "4/6",
        "marks": 5,
    },
    {
        "question_text": "What is 1/2 + 1/4?",
        "question_type": "mcq",
        "options": ["2/6", "1/6", "3/4", "1/8"],
        "correct_answer": "3/4",
        "marks": 5,
    },
]

DEMO_RUBRIC = [
    {"criteria": "Accuracy", "points": 10, "description": "Correct final answers"},
    {"criteria": "Method", "points": 5, "description": "Shows equivalent-fraction reasoning"},
]


def seed_demo_data(conn):
    """Insert demo accounts, students, a published quiz and schedule events.

    Returns False without touching anything when the demo teacher already exists.
    """
    if conn.execute("SELECT 1 FROM users WHERE email = ?", ("teacher@demo.com",)).fetchone():
        logger.info("Demo data already present, skipping")
        return False

    today = datetime.now().replace(hour=9, minute=0, second=0, microsecond=0)
    with conn:
        teacher_id, _ = create_user(conn, "teacher@demo.com", DEMO_PASSWORD, "Demo Teacher", "teacher")
        create_user(conn, "admin@demo.com", DEMO_PASSWORD, "Demo Admin", "admin")
        create_user(conn, "student@demo.com", DEMO_PASSWORD, "Demo Student", "student", "Grade 8", "8A")

        for name, email, grade, class_name in DEMO_STUDENTS:
            conn.execute(
                "INSERT INTO students (id, user_id, name, email, grade, class) VALUES (?, NULL, ?, ?, ?, ?)",
                (new_id(), name, email, grade, class_name),
            )

        assessment_id = new_id()
        now = now_iso()
        conn.execute("""
            INSERT INTO assessments
            (id, teacher_id, title, subject, class_name, grade, topic, type, difficulty,
             questions_count, total_marks, passing_marks, time_limit, status, due_date,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            assessment_id, teacher_id, "Fractions Check-in", "Mathematics", "8A", "Grade 8",
            "Fractions", "Quiz", "easy", len(DEMO_QUESTIONS),
            sum(q["marks"] for q in DEMO_QUESTIONS), 8, 20, "published",
            (today + timedelta(days=7)).isoformat(), now, now,
        ))
        insert_questions(conn, assessment_id, DEMO_QUESTIONS)
        replace_rubric(conn, assessment_id, DEMO_RUBRIC)

        conn.execute("""
            INSERT INTO lessons
            (id, teacher_id, title, class_name, grade, subject, topic, content, duration,
             resources, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            new_id(), teacher_id, "Introduction to Fractions", "8A", "Grade 8", "Mathematics",
            "Fractions", "# Introduction to Fractions\n\nObjectives: compare and add simple fractions.",
            "45 minutes", json.dumps([]), "published", now, now,
        ))

        events = [
            ("Fractions Check-in", today + timedelta(days=7), 1, "assessment", "#ef4444"),
            ("Parent-Teacher Meeting", today + timedelta(days=3), 2, "meeting", "#3b82f6"),
            ("Science Fair", today + timedelta(days=14), 6, "event", "#10b981"),
        ]
        for title, start, hours, category, color in events:
            conn.execute(
                'INSERT INTO events (id, title, start, "end", category, color) VALUES (?, ?, ?, ?, ?, ?)',
                (new_id(), title, start.isoformat(), (start + timedelta(hours=hours)).isoformat(), category, color),
            )

    logger.info("Seeded demo data (teacher@demo.com / %s)", DEMO_PASSWORD)
    return True


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    init_db()
    connection = get_db_connection()
    try:
        seeded = seed_demo_data(connection)
    finally:
        connection.close()
    print("Demo data seeded." if seeded else "Demo data already present.")
