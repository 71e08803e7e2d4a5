import numpy as np
import pandas as pd

from backend.config import settings

LETTERS = ("A", "B", "C", "D", "P")


def _passing_percentage(total_marks, passing_marks):
    if total_marks and passing_marks is not None:
        return passing_marks / total_marks * 100
    return settings.DEFAULT_PASSING_PERCENTAGE


def _empty_row(assessment):
    return {
        "assessment_id": assessment["id"],
        "title": assessment["title"],
        "graded_count": 0,
        "average_percentage": 0,
        "highest": 0,
        "lowest": 0,
        "pass_rate": 0,
    }


def _load_frame(conn, assessment_ids):
    if not assessment_ids:
        return pd.DataFrame(columns=["assessment_id", "percentage", "grade_letter", "grading_status"])
    marks = ", ".join("?" for _ in assessment_ids)
    rows = conn.execute(
        f"SELECT assessment_id, percentage, grade_letter, grading_status FROM grades WHERE assessment_id IN ({marks})",
        assessment_ids,
    ).fetchall()
    return pd.DataFrame([dict(row) for row in rows], columns=["assessment_id", "percentage", "grade_letter", "grading_status"])


def assessment_performance(conn, teacher_id):
    """Per-assessment averages and pass rates over graded (not pending) grades."""
    assessments = [dict(row) for row in conn.execute(
        "SELECT id, title, total_marks, passing_marks FROM assessments WHERE teacher_id = ? ORDER BY created_at DESC, id",
        (teacher_id,),
    ).fetchall()]
    df = _load_frame(conn, [a["id"] for a in assessments])
    df = df[df["grading_status"] == "graded"]

    rows = []
    for assessment in assessments:
        scores = df.loc[df["assessment_id"] == assessment["id"], "percentage"].astype(float)
        if scores.empty:
            rows.append(_empty_row(assessment))
            continue
        threshold = _passing_percentage(assessment["total_marks"], assessment["passing_marks"])
        passed = np.where(scores >= threshold, 1, 0)
        rows.append({
            "assessment_id": assessment["id"],
            "title": assessment["title"],
            "graded_count": int(scores.size),
            "average_percentage": round(float(scores.mean()), 2),
            "highest": float(scores.max()),
            "lowest": float(scores.min()),
            "pass_rate": round(float(passed.mean()) * 100, 2),
        })
    return rows


def assessment_summary(conn, assessment):
    """Detailed statistics for a single assessment, including pending grades in the letter spread."""
    df = _load_frame(conn, [assessment["id"]])
    letters = df["grade_letter"].value_counts().reindex(list(LETTERS), fill_value=0)

    graded = df.loc[df["grading_status"] == "graded", "percentage"].astype(float)
    if graded.empty:
        summary = _empty_row(assessment)
        summary["median_percentage"] = 0
    else:
        threshold = _passing_percentage(assessment.get("total_marks"), assessment.get("passing_marks"))
        summary = {
            "assessment_id": assessment["id"],
            "title": assessment["title"],
            "graded_count": int(graded.size),
            "average_percentage": round(float(graded.mean()), 2),
            "highest": float(graded.max()),
            "lowest": float(graded.min()),
            "pass_rate": round(float(np.mean(graded >= threshold)) * 100, 2),
            "median_percentage": float(graded.median()),
        }
    summary["letter_distribution"] = {letter: int(count) for letter, count in letters.items()}
    summary["pending_count"] = int((df["grading_status"] == "pending").sum())
    return summary
