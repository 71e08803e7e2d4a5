"""
Per-student rollup across a teacher's assessments.

Read-only and recomputed from the source tables on every call. Students are
taken from the grades on the teacher's assessments, so a student who has never
been graded (or marked pending) does not appear.
"""

import logging

from backend.config import settings

logger = logging.getLogger(__name__)

NOT_STARTED = "not_started"
SUBMITTED = "submitted"
GRADED = "graded"
PENDING = "pending"

UNKNOWN_STUDENT = "Unknown Student"


def _placeholders(values):
    return ", ".join("?" for _ in values)


def _latest_by_pair(rows, timestamp_key):
    """Keep the most recent row per (student_id, assessment_id)."""
    latest = {}
    for row in rows:
        key = (row["student_id"], row["assessment_id"])
        current = latest.get(key)
        if current is None or (row[timestamp_key] or "", row["id"]) > (current[timestamp_key] or "", current["id"]):
            latest[key] = row
    return latest


def fetch_teacher_assessments(conn, teacher_id):
    rows = conn.execute(
        "SELECT id, title, total_marks FROM assessments WHERE teacher_id = ? ORDER BY created_at DESC, id",
        (teacher_id,),
    ).fetchall()
    return [dict(row) for row in rows]


def cell_status(grade, submission):
    """graded > pending > submitted > not_started."""
    if grade is not None:
        return GRADED if grade["grading_status"] == GRADED else PENDING
    if submission is not None:
        return SUBMITTED
    return NOT_STARTED


def build_gradebook(conn, teacher_id):
    """One row per graded student: grades per assessment, average and completion counts."""
    assessments = fetch_teacher_assessments(conn, teacher_id)
    if not assessments:
        return []

    assessment_ids = [a["id"] for a in assessments]
    marks = _placeholders(assessment_ids)
    grade_rows = [dict(row) for row in conn.execute(
        f"SELECT * FROM grades WHERE assessment_id IN ({marks})", assessment_ids
    ).fetchall()]
    submission_rows = [dict(row) for row in conn.execute(
        f"SELECT id, assessment_id, student_id, status, submitted_at FROM submissions WHERE assessment_id IN ({marks})",
        assessment_ids,
    ).fetchall()]

    grades = _latest_by_pair(grade_rows, "graded_at")
    submissions = _latest_by_pair(submission_rows, "submitted_at")

    student_ids = sorted({g["student_id"] for g in grade_rows})
    if not student_ids:
        return []
    profiles = {
        row["id"]: dict(row)
        for row in conn.execute(
            f"SELECT id, name, email FROM students WHERE id IN ({_placeholders(student_ids)})", student_ids
        ).fetchall()
    }

    gradebook = []
    for student_id in student_ids:
        cells = []
        for assessment in assessments:
            key = (student_id, assessment["id"])
            grade = grades.get(key)
            status = cell_status(grade, submissions.get(key))
            cells.append({
                "assessment_id": assessment["id"],
                "assessment_title": assessment["title"],
                "score": grade["total_score"] if grade else 0,
                "max_score": (grade["max_score"] if grade else assessment["total_marks"]) or settings.DEFAULT_MAX_SCORE,
                "percentage": grade["percentage"] if grade else 0,
                "grade_letter": grade["grade_letter"] if grade else None,
                "status": status,
            })

        graded = [cell["percentage"] or 0 for cell in cells if cell["status"] == GRADED]
        average = round(sum(graded) / len(graded), 2) if graded else 0
        profile = profiles.get(student_id, {})
        gradebook.append({
            "student_id": student_id,
            "name": profile.get("name") or UNKNOWN_STUDENT,
            "email": profile.get("email") or "",
            "grades": cells,
            "average_score": average,
            "total_assessments": len(assessments),
            "completed_assessments": len(graded),
        })

    gradebook.sort(key=lambda row: (row["name"].casefold(), row["student_id"]))
    logger.debug("Built gradebook for teacher %s: %d students", teacher_id, len(gradebook))
    return gradebook
