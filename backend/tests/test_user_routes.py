"""Profile, preferences, analytics, goals and wellness routes"""

from datetime import timedelta

from conftest import FIXED_NOW


def submit_quiz(client, headers, topic, answers):
    questions = [{"correct_answer": 0} for _ in answers]
    return client.post("/api/ai/submit-quiz", headers=headers, json={"topic": topic, "questions": questions, "answers": answers})


def test_user_profile(client, student, student_headers):
    data = client.get("/api/user/profile", headers=student_headers).json()["user"]

    assert data["id"] == student.id
    assert data["level"] == 1
    assert data["xp"] == 0
    assert data["achievements_count"] == 1
    assert data["courses_completed"] == 0
    assert data["preferences"]["learning_style"] == "visual"
    assert data["preferences"]["accessibility"]["font_size"] == "medium"
    assert data["joined_at"]
    assert "password_hash" not in data


def test_update_preferences_merges(client, student_headers):
    first = client.put(
        "/api/user/preferences",
        headers=student_headers,
        json={"notifications": False, "accessibility": {"high_contrast": True}},
    )
    assert first.status_code == 200

    second = client.put(
        "/api/user/preferences",
        headers=student_headers,
        json={"learning_style": "reading", "accessibility": {"font_size": "large"}},
    )

    prefs = second.json()["preferences"]
    assert prefs["notifications"] is False
    assert prefs["learning_style"] == "reading"
    assert prefs["accessibility"] == {"high_contrast": True, "font_size": "large", "screen_reader": False}

    profile = client.get("/api/auth/profile", headers=student_headers).json()["user"]
    assert profile["learning_style"] == "reading"


def test_update_preferences_validation(client, student_headers):
    response = client.put("/api/user/preferences", headers=student_headers, json={"accessibility": {"font_size": "huge"}})

    assert response.status_code == 400


def test_analytics(client, student_headers):
    submit_quiz(client, student_headers, "Algebra", [0, 0, 0, 0])
    submit_quiz(client, student_headers, "Algebra", [0, 0, 0, 1])
    submit_quiz(client, student_headers, "History", [1, 1, 0, 0])

    data = client.get("/api/user/analytics", params={"timeframe": "7days"}, headers=student_headers).json()

    assert data["timeframe"] == "7days"
    assert len(data["daily_activity"]) == 7
    today = data["daily_activity"][-1]
    assert today["date"] == FIXED_NOW.date().isoformat()
    assert today["quizzes_completed"] == 3
    assert today["topics_studied"] == 2
    assert today["xp_earned"] == data["summary"]["xp_gained"]
    assert data["summary"]["quizzes_completed"] == 3
    assert data["summary"]["active_days"] == 1

    metrics = data["performance_metrics"]
    assert metrics["total_quizzes"] == 3
    assert metrics["perfect_scores"] == 1
    assert metrics["average_quiz_score"] == round((100 + 75 + 50) / 3)
    assert metrics["strongest_topics"] == ["Algebra", "History"]
    assert metrics["areas_for_improvement"] == ["History"]
    assert data["learning_patterns"]["preferred_learning_time"] == "afternoon"


def test_analytics_empty(client, student_headers):
    data = client.get("/api/user/analytics", headers=student_headers).json()

    assert len(data["daily_activity"]) == 30
    assert data["summary"]["xp_gained"] == 0
    assert data["performance_metrics"]["improvement_trend"] == "stable"
    assert data["learning_patterns"]["preferred_learning_time"] is None


def test_analytics_rejects_unknown_timeframe(client, student_headers):
    assert client.get("/api/user/analytics", params={"timeframe": "1year"}, headers=student_headers).status_code == 400


def test_goals(client, student_headers):
    deadline = (FIXED_NOW + timedelta(days=30)).date().isoformat()
    past = (FIXED_NOW - timedelta(days=1)).date().isoformat()

    created = client.post(
        "/api/user/goals",
        headers=student_headers,
        json={"type": "quiz_score", "target": 80, "deadline": deadline, "title": "Ace my quizzes"},
    )
    assert created.status_code == 201
    assert created.json()["goal"]["status"] == "active"

    client.post("/api/user/goals", headers=student_headers, json={"type": "xp", "target": 1000, "deadline": past, "title": "Old goal"})
    client.post("/api/user/goals", headers=student_headers, json={"type": "streak", "target": 1, "deadline": deadline, "title": "Show up"})
    submit_quiz(client, student_headers, "Algebra", [0, 0, 1, 1])

    data = client.get("/api/user/goals", headers=student_headers).json()

    goals = {g["title"]: g for g in data["goals"]}
    assert goals["Ace my quizzes"]["current"] == 50
    assert goals["Ace my quizzes"]["progress"] == 62
    assert goals["Ace my quizzes"]["status"] == "active"
    assert goals["Old goal"]["status"] == "expired"
    assert goals["Show up"]["status"] == "completed"
    assert goals["Show up"]["progress"] == 100
    assert data["summary"] == {"active": 1, "completed": 1, "expired": 1}


def test_goal_validation(client, student_headers):
    response = client.post(
        "/api/user/goals",
        headers=student_headers,
        json={"type": "hours", "target": 0, "deadline": "soon", "title": "x"},
    )

    assert response.status_code == 400
    fields = {d["field"] for d in response.json()["details"]}
    assert {"type", "target", "deadline", "title"} <= fields


def test_mood_and_wellness(client, student_headers):
    empty = client.get("/api/user/wellness", headers=student_headers).json()
    assert empty["insights"] == []

    logged = client.post("/api/user/mood", headers=student_headers, json={"mood": "stressed", "notes": "exam week"})
    assert logged.status_code == 200
    assert "break" in logged.json()["recommendation"]
    assert logged.json()["entry"]["energy"] == "medium"

    for _ in range(2):
        client.post("/api/user/mood", headers=student_headers, json={"mood": "good"})

    data = client.get("/api/user/wellness", headers=student_headers).json()
    assert data["trends"]["dominant_mood"] == "good"
    assert data["trends"]["mood_distribution"] == {"stressed": 1, "good": 2}
    assert data["trends"]["total_entries"] == 3
    assert "67%" in data["insights"][0]["description"]
    assert len(data["recommendations"]) == 3


def test_mood_history_is_capped(client, student_headers):
    for _ in range(32):
        client.post("/api/user/mood", headers=student_headers, json={"mood": "okay"})

    data = client.get("/api/user/wellness", headers=student_headers).json()

    assert data["trends"]["total_entries"] == 30
    assert len(data["recent_entries"]) == 3
