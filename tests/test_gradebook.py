import json

from conftest import add_grade, add_submission

from backend.src.gradebook.aggregator import build_gradebook


def test_average_excludes_ungraded_work(conn, teacher, student, make_assessment):
    first = make_assessment("Unit 1")
    second = make_assessment("Unit 2")
    third = make_assessment("Unit 3")
    sid = student["student_id"]
    add_grade(conn, first, sid, 80)
    add_grade(conn, second, sid, 60, letter="D")
    add_submission(conn, third, sid)

    rows = build_gradebook(conn, teacher["id"])

    assert len(rows) == 1
    row = rows[0]
    assert row["name"] == "Sam Student"
    assert row["average_score"] == 70
    assert row["completed_assessments"] == 2
    assert row["total_assessments"] == 3
    statuses = {cell["assessment_id"]: cell["status"] for cell in row["grades"]}
    assert statuses == {first: "graded", second: "graded", third: "submitted"}


def test_pending_grades_do_not_count(conn, teacher, student, make_assessment):
    graded = make_assessment("Graded")
    pending = make_assessment("Pending")
    sid = student["student_id"]
    add_grade(conn, graded, sid, 90, letter="A")
    add_grade(conn, pending, sid, 0, status="pending", letter="P")

    row = build_gradebook(conn, teacher["id"])[0]

    assert row["average_score"] == 90
    assert row["completed_assessments"] == 1
    cell = next(c for c in row["grades"] if c["assessment_id"] == pending)
    assert cell["status"] == "pending"


def test_latest_grade_wins(conn, teacher, student, make_assessment):
    assessment_id = make_assessment()
    add_grade(conn, assessment_id, student["student_id"], 40, letter="D", graded_at="2024-05-01T10:00:00")
    add_grade(conn, assessment_id, student["student_id"], 95, letter="A", graded_at="2024-05-02T10:00:00")

    row = build_gradebook(conn, teacher["id"])[0]

    assert row["grades"][0]["percentage"] == 95
    assert row["average_score"] == 95


def test_gradebook_is_idempotent(conn, teacher, student, make_assessment):
    assessment_id = make_assessment()
    add_grade(conn, assessment_id, student["student_id"], 77, letter="C")
    add_grade(conn, assessment_id, "orphan-student", 55, letter="D")

    first = json.dumps(build_gradebook(conn, teacher["id"]))
    second = json.dumps(build_gradebook(conn, teacher["id"]))
    assert first == second


def test_students_without_profiles_and_sorting(conn, teacher, student, make_assessment):
    assessment_id = make_assessment()
    add_grade(conn, assessment_id, "ghost", 50, letter="D")
    add_grade(conn, assessment_id, student["student_id"], 88)

    rows = build_gradebook(conn, teacher["id"])

    assert [r["name"] for r in rows] == ["Sam Student", "Unknown Student"]
    assert rows[1]["email"] == ""


def test_other_teachers_grades_are_ignored(conn, teacher, other_teacher, student, make_assessment):
    mine = make_assessment("Mine")
    theirs = make_assessment("Theirs", headers=other_teacher["headers"])
    add_grade(conn, theirs, student["student_id"], 30, letter="D")

    assert build_gradebook(conn, teacher["id"]) == []
    add_grade(conn, mine, student["student_id"], 100, letter="A")
    assert build_gradebook(conn, teacher["id"])[0]["total_assessments"] == 1


def test_gradebook_endpoint_requires_teacher(client, teacher, student):
    assert client.get("/gradebook").status_code == 401
    assert client.get("/gradebook", headers=student["headers"]).status_code == 403
    response = client.get("/gradebook", headers=teacher["headers"])
    assert response.status_code == 200
    assert response.json() == {"data": []}
