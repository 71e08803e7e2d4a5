from conftest import mcq, short_answer


def test_options_round_trip_in_order(client, make_assessment):
    options = ["Zebra", "apple", "[\"nested\"]", "  spaced  ", "Ünïcode"]
    assessment_id = make_assessment(questions=[mcq("Pick one", options, "apple"), short_answer("Why?")])

    data = client.get(f"/assessments/{assessment_id}").json()["data"]

    assert [q["question_text"] for q in data["questions"]] == ["Pick one", "Why?"]
    assert data["questions"][0]["options"] == options
    assert data["questions"][1]["options"] == []
    assert data["questions_count"] == 2


def test_total_marks_defaults_to_sum_of_question_marks(client, make_assessment):
    assessment_id = make_assessment(questions=[mcq("a", ["x"], "x", marks=2), short_answer("b", marks=8)])
    assert client.get(f"/assessments/{assessment_id}").json()["data"]["total_marks"] == 10


def test_create_with_rubric(client, make_assessment, teacher):
    response = client.post("/assessments", headers=teacher["headers"], json={
        "assessment": {"title": "Essay"},
        "questions": [short_answer("Discuss.")],
        "rubric": [{"criteria": "Clarity", "points": 5, "description": "Clear prose"}],
    })
    assessment_id = response.json()["id"]

    rubric = client.get(f"/assessments/{assessment_id}/rubric").json()["data"]
    assert rubric["criteria"] == [{"criteria": "Clarity", "points": 5, "description": "Clear prose"}]


def test_mcq_without_options_is_rejected(client, teacher):
    response = client.post("/assessments", headers=teacher["headers"], json={
        "assessment": {"title": "Broken"},
        "questions": [{"question_text": "Pick", "question_type": "mcq", "options": []}],
    })
    assert response.status_code == 400
    assert "mcq" in response.json()["error"]


def test_free_text_with_options_is_rejected(client, teacher):
    response = client.post("/assessments", headers=teacher["headers"], json={
        "assessment": {"title": "Broken"},
        "questions": [{"question_text": "Explain", "question_type": "long_answer", "options": ["a"]}],
    })
    assert response.status_code == 400


def test_unknown_question_type_is_rejected(client, teacher):
    response = client.post("/assessments", headers=teacher["headers"], json={
        "assessment": {"title": "Broken"},
        "questions": [{"question_text": "True?", "question_type": "true_false"}],
    })
    assert response.status_code == 400
    assert "question_type" in response.json()["error"]


def test_missing_title_is_400(client, teacher):
    response = client.post("/assessments", headers=teacher["headers"], json={"assessment": {}, "questions": []})
    assert response.status_code == 400


def test_update_merges_fields_and_replaces_questions(client, make_assessment, teacher):
    assessment_id = make_assessment(questions=[mcq("old 1", ["a"], "a"), mcq("old 2", ["b"], "b")], topic="Fractions")

    response = client.put(f"/assessments/{assessment_id}", headers=teacher["headers"], json={
        "title": "Renamed",
        "questions": [short_answer("new only")],
    })
    assert response.status_code == 200

    data = client.get(f"/assessments/{assessment_id}").json()["data"]
    assert data["title"] == "Renamed"
    assert data["topic"] == "Fractions"
    assert [q["question_text"] for q in data["questions"]] == ["new only"]
    assert data["questions_count"] == 1


def test_cascade_delete(client, teacher, student, use_gateway, conn):
    use_gateway(data={"score": 75})
    assessment_id = client.post("/assessments", headers=teacher["headers"], json={
        "assessment": {"title": "Doomed", "status": "published"},
        "questions": [short_answer("q1"), short_answer("q2")],
        "rubric": [{"criteria": "Reasoning", "points": 4, "description": "Explains steps"}],
    }).json()["id"]
    assert client.get(f"/assessments/{assessment_id}/rubric").status_code == 200
    for _ in range(2):
        client.post("/submissions", json={
            "assessment_id": assessment_id, "student_id": student["student_id"], "answers": {"x": "y"},
        })
    grade_id = conn.execute("SELECT id FROM grades WHERE assessment_id = ?", (assessment_id,)).fetchone()[0]

    response = client.delete(f"/assessments/{assessment_id}", headers=teacher["headers"])
    assert response.status_code == 200

    for table in ("questions", "submissions", "grades", "rubrics"):
        count = conn.execute(f"SELECT COUNT(*) FROM {table} WHERE assessment_id = ?", (assessment_id,)).fetchone()[0]
        assert count == 0, table
    assert client.get(f"/assessments/{assessment_id}").status_code == 404
    assert client.get(f"/assessments/{assessment_id}/rubric").status_code == 404
    assert client.get(f"/grades/{grade_id}").status_code == 404
    assert client.delete(f"/assessments/{assessment_id}", headers=teacher["headers"]).status_code == 404


def test_teachers_cannot_touch_each_others_assessments(client, make_assessment, other_teacher):
    assessment_id = make_assessment()
    assert client.delete(f"/assessments/{assessment_id}", headers=other_teacher["headers"]).status_code == 403
    assert client.put(
        f"/assessments/{assessment_id}", headers=other_teacher["headers"], json={"title": "mine now"}
    ).status_code == 403


def test_list_and_published(client, make_assessment, teacher, other_teacher):
    make_assessment("Published one")
    make_assessment("Draft one", status="draft")
    make_assessment("Someone else's", headers=other_teacher["headers"])

    mine = client.get("/assessments", headers=teacher["headers"]).json()["data"]
    assert sorted(a["title"] for a in mine) == ["Draft one", "Published one"]

    published = client.get("/published-assessments").json()["data"]
    assert sorted(a["title"] for a in published) == ["Published one", "Someone else's"]
