import json

from conftest import StubGateway, mcq, short_answer

from backend.src.grading.pipeline import PENDING_FEEDBACK, parse_feedback, submit_assessment


def test_failing_gateway_still_returns_pending_grade(client, failing_gateway, make_assessment, conn, student):
    assessment_id = make_assessment(questions=[short_answer("Explain photosynthesis.")])

    response = client.post("/submissions", json={
        "assessment_id": assessment_id,
        "student_id": student["student_id"],
        "answers": {"q1": "Plants make food from light."},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["grade"]["grade_letter"] == "P"
    assert body["grade"]["total_score"] == 0
    assert body["grade"]["grading_status"] == "pending"
    assert body["message"] == "Submitted. Grading pending."

    submission = conn.execute("SELECT * FROM submissions WHERE id = ?", (body["submission_id"],)).fetchone()
    assert submission is not None
    assert submission["status"] == "submitted"
    stored = conn.execute("SELECT * FROM grades WHERE assessment_id = ?", (assessment_id,)).fetchone()
    assert stored["grading_status"] == "pending"
    assert json.loads(stored["ai_feedback"])["feedback"] == PENDING_FEEDBACK


def test_ai_graded_submission(client, use_gateway, make_assessment, conn, student):
    gateway = use_gateway(data={"score": 89.5, "feedback": "Solid answer", "rubric_feedback": [], "corrections": []})
    assessment_id = make_assessment(questions=[short_answer("Why is the sky blue?")])

    body = client.post("/submissions", json={
        "assessment_id": assessment_id,
        "student_id": student["student_id"],
        "answers": {"q1": "Rayleigh scattering"},
    }).json()

    assert body["grade"]["percentage"] == 90
    assert body["grade"]["grade_letter"] == "A"
    assert body["grade"]["grading_status"] == "graded"
    assert "message" not in body
    assert "Rayleigh scattering" in gateway.calls[0]["user"]
    status = conn.execute("SELECT status FROM submissions WHERE id = ?", (body["submission_id"],)).fetchone()[0]
    assert status == "graded"


def test_reply_without_score_counts_as_zero(client, use_gateway, make_assessment, student):
    use_gateway(data={})
    assessment_id = make_assessment(questions=[short_answer("Define inertia.")])

    grade = client.post("/submissions", json={
        "assessment_id": assessment_id, "student_id": student["student_id"], "answers": {},
    }).json()["grade"]

    assert grade["total_score"] == 0
    assert grade["grade_letter"] == "D"
    assert grade["grading_status"] == "graded"


def test_mcq_assessment_is_scored_without_the_gateway(client, use_gateway, make_assessment, student):
    gateway = use_gateway(error=RuntimeError("must not be called"))
    assessment_id = make_assessment(questions=[mcq("Pick the first letter", ["A", "B", "C"], "A")])
    question_id = client.get(f"/assessments/{assessment_id}/questions").json()["data"][0]["id"]

    grade = client.post("/submissions", json={
        "assessment_id": assessment_id, "student_id": student["student_id"], "answers": {question_id: "B"},
    }).json()["grade"]

    assert grade["total_score"] == 0
    assert grade["grade_letter"] == "D"
    assert gateway.calls == []


def test_submission_for_unknown_assessment_is_404(client, use_gateway, student):
    use_gateway(data={"score": 100})
    response = client.post("/submissions", json={
        "assessment_id": "missing", "student_id": student["student_id"], "answers": {},
    })
    assert response.status_code == 404
    assert response.json() == {"error": "Assessment not found"}


def test_submission_missing_fields_is_400(client, use_gateway):
    use_gateway()
    response = client.post("/submissions", json={"answers": {}})
    assert response.status_code == 400
    assert "error" in response.json()


def test_pipeline_with_unexpected_exception(conn, student, make_assessment):
    assessment_id = make_assessment(questions=[short_answer("Explain gravity.")])
    result = submit_assessment(conn, StubGateway(error=ValueError("bad payload")), assessment_id, student["student_id"], {})
    assert result["grade"]["grade_letter"] == "P"


def test_parse_feedback_tolerates_bad_rows():
    assert parse_feedback(None).feedback == ""
    assert parse_feedback("not json").feedback == "not json"
    assert parse_feedback("[1, 2]").corrections == []
    parsed = parse_feedback(json.dumps({"score": 80, "feedback": "ok", "extra": 1}))
    assert parsed.score == 80
    assert parsed.model_dump()["extra"] == 1
