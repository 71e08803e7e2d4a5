import math

PENDING_LETTER = "P"

# (minimum percentage, letter), highest first
LETTER_THRESHOLDS = (
    (90, "A"),
    (80, "B"),
    (70, "C"),
)
FLOOR_LETTER = "D"


def round_half_up(value):
    """Round .5 upwards (89.5 -> 90); Python's round() would go to the even neighbour."""
    return int(math.floor(value + 0.5))


def grade_letter(percentage):
    """Map a 0-100 percentage to a letter; boundaries belong to the higher letter."""
    for minimum, letter in LETTER_THRESHOLDS:
        if percentage >= minimum:
            return letter
    return FLOOR_LETTER


def coerce_score(value):
    """Turn an untrusted score (number, numeric string, junk) into a float in [0, 100]."""
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score):
        return 0.0
    return min(max(score, 0.0), 100.0)


def to_percentage(score):
    return round_half_up(coerce_score(score))


def normalize_answer(value):
    """Trim, collapse inner whitespace and case-fold for answer comparison."""
    if value is None:
        return ""
    return " ".join(str(value).split()).casefold()


def is_objective(questions):
    """True when every question can be marked without judgement (all MCQ)."""
    return bool(questions) and all(q.get("question_type") == "mcq" for q in questions)


def score_objective(questions, answers):
    """Deterministic MCQ scoring: each correct answer is worth 100 / len(questions).

    Returns a grading payload with the same keys the AI grader is asked for,
    so both paths store an identical ai_feedback shape.
    """
    if not questions:
        return {"score": 0, "feedback": "No questions to grade.", "rubric_feedback": [], "corrections": []}

    credit = 100 / len(questions)
    correct = 0
    corrections = []
    for q in questions:
        submitted = answers.get(q["id"])
        expected = q.get("correct_answer")
        if expected is not None and normalize_answer(submitted) == normalize_answer(expected):
            correct += 1
            continue
        corrections.append({
            "question_text": q.get("question_text"),
            "explanation": f"Expected '{expected}', got '{submitted if submitted is not None else ''}'.",
        })

    return {
        "score": correct * credit,
        "feedback": f"{correct} of {len(questions)} answers correct.",
        "rubric_feedback": [],
        "corrections": corrections,
    }
