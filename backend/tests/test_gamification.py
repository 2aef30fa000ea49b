"""Tests for the pure XP, level, streak and quiz functions"""

from datetime import date, datetime, UTC

import pytest

from backend import gamification
from backend.gamification import (
    QuizResult,
    build_challenges,
    calculate_level,
    level_progress,
    quiz_achievements,
    rank_leaderboard,
    score_quiz,
    threshold_achievements,
    time_of_day_achievement,
    update_streak,
    xp_for_next_level,
)


@pytest.mark.parametrize("xp,level", [(0, 1), (99, 1), (100, 2), (399, 2), (400, 3), (2500, 6), (10000, 11)])
def test_calculate_level(xp, level):
    assert calculate_level(xp) == level


def test_negative_xp_is_level_one():
    assert calculate_level(-50) == 1


def test_level_progress_bounds():
    progress = level_progress(250)
    assert progress["level"] == 2
    assert progress["xp_to_next_level"] == xp_for_next_level(2) - 250 == 150
    assert progress["progress_to_next_level"] == pytest.approx(0.5)

    assert level_progress(0)["progress_to_next_level"] == 0.0


def test_update_streak():
    today = date(2026, 3, 10)
    assert update_streak(None, 0, today) == 1
    assert update_streak(date(2026, 3, 9), 4, today) == 5
    assert update_streak(today, 4, today) == 4
    assert update_streak(today, 0, today) == 1
    assert update_streak(date(2026, 3, 7), 12, today) == 1


def test_score_quiz_grades_by_position():
    questions = [
        {"question": "a", "correct_answer": 1, "explanation": "because"},
        {"question": "b", "correct_answer": 0},
        {"question": "c", "correct_answer": 2},
        {"question": "d", "correct_answer": 3},
    ]
    result = score_quiz(questions, [1, 0, 0])

    assert result.correct == 2
    assert result.total == 4
    assert result.score == 50
    assert not result.passed
    assert result.results[0]["is_correct"] is True
    assert result.results[1]["explanation"] == "No explanation available"
    # unanswered question counts as wrong
    assert result.results[3]["user_answer"] is None
    assert result.results[3]["is_correct"] is False


def test_score_quiz_rejects_empty_quiz():
    with pytest.raises(ValueError):
        score_quiz([], [])


@pytest.mark.parametrize("answer", [True, 1.0, "1"])
def test_score_quiz_requires_matching_answer_type(answer):
    result = score_quiz([{"correct_answer": 1}], [answer])

    assert result.correct == 0
    assert not result.passed
    assert result.results[0]["is_correct"] is False


def test_quiz_xp():
    passed = QuizResult(correct=4, total=5, score=80, passed=True)
    failed = QuizResult(correct=2, total=5, score=40, passed=False)
    assert passed.xp_earned == 5 * 2 + 8
    assert failed.xp_earned == 10


def test_passing_threshold_is_seventy():
    questions = [{"correct_answer": 0} for _ in range(10)]
    assert score_quiz(questions, [0] * 7 + [1] * 3).passed
    assert not score_quiz(questions, [0] * 6 + [1] * 4).passed


def test_quiz_achievements_skip_earned():
    perfect = QuizResult(correct=3, total=3, score=100, passed=True)
    assert quiz_achievements(perfect, []) == ["first_quiz_passed", "perfect_score"]
    assert quiz_achievements(perfect, ["first_quiz_passed"]) == ["perfect_score"]
    assert quiz_achievements(QuizResult(correct=0, total=3, score=0, passed=False), []) == []


def test_threshold_achievements():
    unlocked = threshold_achievements(level=5, streak=7, explanations=50, quizzes=3, topics=20, earned=["topic_explorer"])
    assert unlocked == ["level_up_5", "learning_streak_7", "knowledge_seeker"]
    assert threshold_achievements(level=1, streak=0, explanations=0, quizzes=0, topics=0, earned=[]) == []


def test_time_of_day_achievement():
    assert time_of_day_achievement(datetime(2026, 1, 1, 7, 30, tzinfo=UTC)) == "early_bird"
    assert time_of_day_achievement(datetime(2026, 1, 1, 12, 0, tzinfo=UTC)) is None
    assert time_of_day_achievement(datetime(2026, 1, 1, 22, 15, tzinfo=UTC)) == "night_owl"


def test_catalog_entries_are_complete():
    assert len(gamification.ACHIEVEMENTS) == 15
    for achievement_id, achievement in gamification.ACHIEVEMENTS.items():
        assert achievement["id"] == achievement_id
        assert {"title", "description", "xp", "rarity"} <= set(achievement)


def test_build_challenges_counts_today_only():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
    history = [
        {"completed_at": "2026-03-10T09:00:00+00:00"},
        {"completed_at": "2026-03-10T10:00:00+00:00"},
        {"completed_at": "2026-03-09T10:00:00+00:00"},
    ]
    challenges = build_challenges(quiz_history=history, explanations_today=7, streak=2, enrollments_this_week=2, now=now)

    daily = {c["id"]: c for c in challenges["daily"]}
    weekly = {c["id"]: c for c in challenges["weekly"]}
    assert daily["daily_quiz"]["progress"] == 2
    assert not daily["daily_quiz"]["completed"]
    assert daily["daily_learning"]["progress"] == 5
    assert daily["daily_learning"]["completed"]
    assert weekly["weekly_streak"]["progress"] == 2
    assert weekly["weekly_courses"]["completed"]
    assert set(challenges["refresh_time"]) == {"daily", "weekly"}


def test_rank_leaderboard():
    rows = [
        {"id": "a", "name": "Ann", "xp": 50},
        {"id": "b", "name": "Bob", "xp": 300},
        {"id": "c", "name": "Cat", "xp": 50, "total_xp": 900},
        {"id": "d", "name": "Dan", "xp": 10},
    ]
    ranking = rank_leaderboard(rows, current_user_id="d", limit=3)

    assert [r["id"] for r in ranking["leaderboard"]] == ["b", "a", "c"]
    assert [r["rank"] for r in ranking["leaderboard"]] == [1, 2, 3]
    assert ranking["leaderboard"][2]["level"] == calculate_level(900)
    assert ranking["current_user_rank"] == 4
    assert ranking["total_users"] == 4
    assert not any(r["is_current_user"] for r in ranking["leaderboard"])


def test_utc_isoformat_marks_naive_values_as_utc():
    assert gamification.utc_isoformat(datetime(2026, 3, 10, 12, 0)) == "2026-03-10T12:00:00+00:00"
    assert gamification.utc_isoformat(datetime(2026, 3, 10, 12, 0, tzinfo=UTC)) == "2026-03-10T12:00:00+00:00"
