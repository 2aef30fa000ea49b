import pytest

from backend import mock_tutor


def test_known_topic_explanations_follow_style():
    visual = mock_tutor.explanation("algebra", "beginner", "visual")
    auditory = mock_tutor.explanation("Algebra", "beginner", "auditory")

    assert visual == mock_tutor.EXPLANATIONS["algebra"]["visual"]
    assert auditory == mock_tutor.EXPLANATIONS["algebra"]["auditory"]


def test_partial_topic_match():
    assert mock_tutor.explanation("Intro to Machine-Learning") == mock_tutor.EXPLANATIONS["machine learning"]["visual"]


def test_unknown_topic_template():
    text = mock_tutor.explanation("Volcanoes", "advanced", "kinesthetic")

    assert "Volcanoes" in text
    assert "advanced" in text
    assert "kinesthetic" in text


def test_unknown_style_defaults_to_visual():
    assert mock_tutor.explanation("gravity", learning_style="telepathic") == mock_tutor.EXPLANATIONS["gravity"]["visual"]


@pytest.mark.parametrize("count", [1, 3, 7, 10])
def test_practice_questions_exact_count(count):
    questions = mock_tutor.practice_questions("Algebra", count, "beginner")

    assert len(questions) == count
    assert len({q["question"] for q in questions}) == count


def test_practice_questions_are_deterministic():
    assert mock_tutor.practice_questions("Photosynthesis", 3) == mock_tutor.practice_questions("Photosynthesis", 3)


def test_practice_questions_do_not_leak_bank_state():
    questions = mock_tutor.practice_questions("Geometry", 2, "beginner")
    questions[0]["options"].append("Bogus")

    assert "Bogus" not in mock_tutor.QUESTION_BANKS["geometry"]["beginner"][0]["options"]


def test_generic_questions_for_unknown_topics():
    questions = mock_tutor.practice_questions("Opera", 2, "advanced")

    assert all(q["correct_answer"] == 1 for q in questions)
    assert "Opera" in questions[0]["question"]


def test_learning_path_template():
    path = mock_tutor.learning_path("Statistics", "intermediate", "Analyse survey data", "2 months")

    assert [m["title"] for m in path["modules"]] == [
        "Statistics Fundamentals",
        "Intermediate Statistics",
        "Advanced Statistics",
    ]
    assert path["total_duration"] == "2 months"


@pytest.mark.parametrize("message,expected", [
    ("Hi there", "Hello!"),
    ("Can you help me?", "I'm here to help"),
    ("What is a fraction?", "Happy to explain"),
    ("Give me a quiz", "Practice is the fastest way"),
    ("Any study tips?", "Study tips for"),
    ("My homework is due", "homework together"),
])
def test_chat_intents(message, expected):
    assert expected in mock_tutor.chat_response(message, "visual")


def test_chat_detects_subject():
    reply = mock_tutor.chat_response("I need help with algebra")

    assert "with math" in reply


def test_chat_default_uses_context():
    reply = mock_tutor.chat_response("Mitochondria", "reading", context=[{"role": "user", "message": "hello"}])

    assert "Building on what we discussed" in reply
    assert '"Mitochondria"' in reply


def test_word_matching_avoids_substrings():
    # "this" contains "hi" but is not a greeting
    reply = mock_tutor.chat_response("this thing", "visual")

    assert not reply.startswith("Hello!")
