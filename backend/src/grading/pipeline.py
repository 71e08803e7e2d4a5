"""
Submission -> Grade pipeline.

The submission row is committed before any grading happens, so a student's
answers are never lost. Grading then takes one of two routes:

* all-MCQ assessments are marked deterministically (``score_objective``);
* anything with free-text questions, or an assessment with no stored
  questions, is sent to the AI gateway.

If the AI route raises for any reason the student still gets a grade back:
a zero-score record with letter ``P`` and ``grading_status = 'pending'``,
which teachers resolve through a manual override.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from backend.config import settings
from backend.src.grading.scoring import (
    PENDING_LETTER, coerce_score, grade_letter, is_objective, score_objective, to_percentage,
)
from backend.src.lms.data import get_questions, new_id, now_iso

logger = logging.getLogger(__name__)

GRADED = "graded"
PENDING = "pending"

PENDING_FEEDBACK = "AI Auto-grading failed. Submitting for manual review."

GRADER_SYSTEM = """You are an auto-grader. Grade the student answers.
Return STRICT JSON:
{
  "score": number (0-100),
  "feedback": "Overall summary feedback",
  "rubric_feedback": [
    {"criteria": "Concept", "score": number, "max": 5, "comment": "Brief comment"},
    {"criteria": "Accuracy", "score": number, "max": 5, "comment": "Brief comment"}
  ],
  "corrections": [
    {"question_text": "text of question", "explanation": "Why the answer was right/wrong"}
  ]
}"""


class GradingFeedback(BaseModel):
    """Typed view of grades.ai_feedback; extra keys from the model are kept."""

    model_config = {"extra": "allow"}

    score: Optional[float] = None
    feedback: str = ""
    rubric_feedback: List[Dict[str, Any]] = Field(default_factory=list)
    corrections: List[Dict[str, Any]] = Field(default_factory=list)


def parse_feedback(text):
    """Decode a stored ai_feedback string, tolerating legacy or malformed rows."""
    if not text:
        return GradingFeedback()
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return GradingFeedback(feedback=str(text))
    if not isinstance(data, dict):
        return GradingFeedback()
    try:
        return GradingFeedback.model_validate(data)
    except ValidationError:
        logger.warning("Stored ai_feedback failed validation, keeping summary only")
        feedback = data.get("feedback")
        return GradingFeedback(feedback=feedback if isinstance(feedback, str) else "")


def build_grading_prompt(assessment_id, questions, answers):
    """The user turn for the AI grader: the assessment id, its questions if known, and the answers."""
    prompt = f"Grade these answers for assessment {assessment_id}: {json.dumps(answers)}"
    if questions:
        question_sheet = [
            {
                "question_id": q["id"],
                "question_text": q.get("question_text"),
                "question_type": q.get("question_type"),
                "options": q.get("options") or [],
                "correct_answer": q.get("correct_answer"),
                "marks": q.get("marks"),
            }
            for q in questions
        ]
        prompt += f"\n\nQuestions (answers are keyed by question_id): {json.dumps(question_sheet)}"
    return prompt


def grade_with_ai(gateway, assessment_id, questions, answers):
    """Ask the gateway for a grading object; a reply without a usable score counts as 0."""
    grading = gateway.complete_json(GRADER_SYSTEM, build_grading_prompt(assessment_id, questions, answers))
    logger.debug("Raw AI grading for assessment %s: %s", assessment_id, grading)
    if "score" not in grading:
        logger.warning("AI grading for assessment %s had no score, defaulting to 0", assessment_id)
    return grading


def _insert_grade(conn, grade):
    conn.execute("""
        INSERT INTO grades
        (id, assessment_id, student_id, total_score, max_score, percentage, grade_letter,
         grading_status, ai_feedback, graded_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        grade["id"], grade["assessment_id"], grade["student_id"], grade["total_score"],
        grade["max_score"], grade["percentage"], grade["grade_letter"],
        grade["grading_status"], grade["ai_feedback"], grade["graded_at"],
    ))


def submit_assessment(conn, gateway, assessment_id, student_id, answers):
    """Persist a submission and grade it. Always returns {submission_id, grade[, message]}."""
    now = now_iso()
    submission_id = new_id()
    with conn:
        conn.execute("""
            INSERT INTO submissions (id, assessment_id, student_id, answers, status, submitted_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (submission_id, assessment_id, student_id, json.dumps(answers), "submitted", now, now))

    questions = get_questions(conn, assessment_id)
    grade = {
        "id": new_id(),
        "assessment_id": assessment_id,
        "student_id": student_id,
        "max_score": settings.DEFAULT_MAX_SCORE,
        "graded_at": now,
    }

    if is_objective(questions):
        method = "objective"
        grading = score_objective(questions, answers)
    else:
        method = "ai"
        try:
            grading = grade_with_ai(gateway, assessment_id, questions, answers)
        except Exception:
            logger.exception("Auto-grading failed for submission %s, marking pending", submission_id)
            grade.update({
                "total_score": 0,
                "percentage": 0,
                "grade_letter": PENDING_LETTER,
                "grading_status": PENDING,
                "ai_feedback": json.dumps({"feedback": PENDING_FEEDBACK, "rubric_feedback": [], "corrections": []}),
            })
            with conn:
                _insert_grade(conn, grade)
            return {"submission_id": submission_id, "message": "Submitted. Grading pending.", "grade": grade}

    score = coerce_score(grading.get("score"))
    percentage = to_percentage(score)
    grade.update({
        "total_score": score,
        "percentage": percentage,
        "grade_letter": grade_letter(percentage),
        "grading_status": GRADED,
        "ai_feedback": json.dumps(grading),
    })
    logger.info("Graded submission %s via %s: %s%% (%s)", submission_id, method, percentage, grade["grade_letter"])

    with conn:
        _insert_grade(conn, grade)
        conn.execute("UPDATE submissions SET status = 'graded' WHERE id = ?", (submission_id,))
    return {"submission_id": submission_id, "grade": grade}
