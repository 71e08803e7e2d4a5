import json
import logging
import uuid
from datetime import datetime

logger = logging.getLogger(__name__)

QUESTION_TYPES = ("mcq", "short_answer", "long_answer")


def new_id():
    return str(uuid.uuid4())


def now_iso():
    return datetime.now().isoformat()


def row_to_dict(row):
    return dict(row) if row is not None else None


def _load_json(text, expected_type, column):
    """Decode a JSON-text column, falling back to an empty value of the expected shape."""
    if text is None or text == "":
        return expected_type()
    if isinstance(text, expected_type):
        return text
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed JSON in %s column, using empty value", column)
        return expected_type()
    if not isinstance(value, expected_type):
        logger.warning("Unexpected %s in %s column, using empty value", type(value).__name__, column)
        return expected_type()
    return value


def parse_options(text):
    """Question options are an ordered list of strings."""
    return [str(option) for option in _load_json(text, list, "questions.options")]


def parse_answers(text):
    """Submission answers map question_id -> answer text."""
    answers = _load_json(text, dict, "submissions.answers")
    return {str(key): "" if value is None else str(value) for key, value in answers.items()}


def parse_criteria(text):
    """Rubric criteria are an ordered list of {criteria, points, description} objects."""
    return [item for item in _load_json(text, list, "rubrics.criteria") if isinstance(item, dict)]


def parse_resources(text):
    return _load_json(text, list, "lessons.resources")


def decode_question(row):
    question = dict(row)
    question["options"] = parse_options(question.get("options"))
    return question


def decode_submission(row):
    submission = dict(row)
    submission["answers"] = parse_answers(submission.get("answers"))
    return submission


def decode_rubric(row):
    if row is None:
        return None
    rubric = dict(row)
    rubric["criteria"] = parse_criteria(rubric.get("criteria"))
    return rubric


def decode_lesson(row):
    lesson = dict(row)
    lesson["resources"] = parse_resources(lesson.get("resources"))
    return lesson


def get_questions(conn, assessment_id):
    """Questions of an assessment in authoring order, options decoded."""
    rows = conn.execute(
        "SELECT * FROM questions WHERE assessment_id = ? ORDER BY position, rowid",
        (assessment_id,),
    ).fetchall()
    return [decode_question(row) for row in rows]


def insert_questions(conn, assessment_id, questions):
    """Insert question dicts under an assessment; caller owns the transaction."""
    for position, q in enumerate(questions):
        conn.execute("""
            INSERT INTO questions
            (id, assessment_id, question_text, question_type, options, correct_answer, marks, position)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            new_id(), assessment_id, q.get("question_text"), q.get("question_type"),
            json.dumps(list(q.get("options") or [])), q.get("correct_answer"),
            q.get("marks"), position,
        ))


def get_rubric(conn, assessment_id):
    row = conn.execute(
        "SELECT * FROM rubrics WHERE assessment_id = ? ORDER BY rowid DESC LIMIT 1",
        (assessment_id,),
    ).fetchone()
    return decode_rubric(row)


def replace_rubric(conn, assessment_id, criteria):
    conn.execute("DELETE FROM rubrics WHERE assessment_id = ?", (assessment_id,))
    conn.execute(
        "INSERT INTO rubrics (id, assessment_id, criteria) VALUES (?, ?, ?)",
        (new_id(), assessment_id, json.dumps(list(criteria))),
    )


def get_student(conn, student_id):
    return row_to_dict(conn.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone())
