"""
XP, levels, achievements, streaks, challenges and leaderboard ranking.

Everything here is a pure function of its arguments; reading and writing the
user's progress happens in the persistence layer.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, UTC
from typing import Any, Dict, Iterable, List, Optional, Sequence
import math

PASSING_SCORE = 70

# XP rewards for learning activity
EXPLANATION_XP = 5
NEW_TOPIC_XP = 10
PRACTICE_XP = 3
LEARNING_PATH_XP = 20
QUIZ_XP_PER_QUESTION = 2

ACHIEVEMENTS: Dict[str, Dict[str, Any]] = {
    "welcome": {
        "id": "welcome",
        "title": "Welcome Aboard!",
        "description": "Joined EduMind AI and started your learning journey",
        "xp": 0,
        "rarity": "common",
    },
    "first_course": {
        "id": "first_course",
        "title": "First Steps",
        "description": "Enrolled in your first course",
        "xp": 25,
        "rarity": "common",
    },
    "first_lesson": {
        "id": "first_lesson",
        "title": "First Lesson Complete!",
        "description": "Completed your first lesson",
        "xp": 15,
        "rarity": "common",
    },
    "course_completed": {
        "id": "course_completed",
        "title": "Course Master",
        "description": "Completed your first course",
        "xp": 100,
        "rarity": "uncommon",
    },
    "first_quiz_passed": {
        "id": "first_quiz_passed",
        "title": "Quiz Champion",
        "description": "Passed your first quiz with 70% or higher",
        "xp": 50,
        "rarity": "common",
    },
    "perfect_score": {
        "id": "perfect_score",
        "title": "Perfect Score",
        "description": "Achieved 100% on a quiz",
        "xp": 25,
        "rarity": "rare",
    },
    "learning_streak_7": {
        "id": "learning_streak_7",
        "title": "Week Warrior",
        "description": "Maintained a 7-day learning streak",
        "xp": 75,
        "rarity": "uncommon",
    },
    "learning_streak_30": {
        "id": "learning_streak_30",
        "title": "Consistent Learner",
        "description": "Maintained a 30-day learning streak",
        "xp": 200,
        "rarity": "epic",
    },
    "level_up_5": {
        "id": "level_up_5",
        "title": "Rising Star",
        "description": "Reached level 5",
        "xp": 0,
        "rarity": "uncommon",
    },
    "level_up_10": {
        "id": "level_up_10",
        "title": "Expert Learner",
        "description": "Reached level 10",
        "xp": 0,
        "rarity": "rare",
    },
    "knowledge_seeker": {
        "id": "knowledge_seeker",
        "title": "Knowledge Seeker",
        "description": "Generated 50 AI explanations",
        "xp": 100,
        "rarity": "uncommon",
    },
    "quiz_master": {
        "id": "quiz_master",
        "title": "Quiz Master",
        "description": "Completed 25 practice quizzes",
        "xp": 150,
        "rarity": "rare",
    },
    "topic_explorer": {
        "id": "topic_explorer",
        "title": "Topic Explorer",
        "description": "Explored 20 different topics",
        "xp": 125,
        "rarity": "uncommon",
    },
    "early_bird": {
        "id": "early_bird",
        "title": "Early Bird",
        "description": "Completed learning activities before 9 AM",
        "xp": 25,
        "rarity": "common",
    },
    "night_owl": {
        "id": "night_owl",
        "title": "Night Owl",
        "description": "Completed learning activities after 10 PM",
        "xp": 25,
        "rarity": "common",
    },
}


def calculate_level(xp: int) -> int:
    """Level = floor(sqrt(xp / 100)) + 1, so level n starts at (n-1)^2 * 100 XP."""
    return math.isqrt(max(xp, 0) // 100) + 1


def xp_for_level(level: int) -> int:
    """XP at which ``level`` starts."""
    return (level - 1) ** 2 * 100


def xp_for_next_level(level: int) -> int:
    return level ** 2 * 100


def level_progress(xp: int) -> Dict[str, Any]:
    level = calculate_level(xp)
    start = xp_for_level(level)
    target = xp_for_next_level(level)
    fraction = (xp - start) / (target - start)
    return {
        "level": level,
        "xp": xp,
        "xp_to_next_level": target - xp,
        "progress_to_next_level": max(0.0, min(1.0, fraction)),
    }


def update_streak(last_activity: Optional[date], streak: int, today: date) -> int:
    """Return the streak after learning activity on ``today``."""
    if last_activity == today:
        return max(streak, 1)
    if last_activity == today - timedelta(days=1):
        return streak + 1
    return 1


@dataclass
class QuizResult:
    correct: int
    total: int
    score: float
    passed: bool
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def xp_earned(self) -> int:
        bonus = int(self.score // 10) if self.passed else 0
        return self.total * QUIZ_XP_PER_QUESTION + bonus


def score_quiz(questions: Sequence[Dict[str, Any]], answers: Sequence[Any]) -> QuizResult:
    """Grade answers by position; unanswered questions count as wrong."""
    if not questions:
        raise ValueError("A quiz needs at least one question")

    correct = 0
    results = []
    for index, question in enumerate(questions):
        answer = answers[index] if index < len(answers) else None
        expected = question.get("correct_answer")
        is_correct = answer is not None and type(answer) is type(expected) and answer == expected
        if is_correct:
            correct += 1
        results.append({
            "question_index": index,
            "user_answer": answer,
            "correct_answer": expected,
            "is_correct": is_correct,
            "explanation": question.get("explanation") or "No explanation available",
        })

    score = correct * 100 / len(questions)
    return QuizResult(
        correct=correct,
        total=len(questions),
        score=score,
        passed=score >= PASSING_SCORE,
        results=results,
    )


def quiz_achievements(result: QuizResult, earned: Iterable[str]) -> List[str]:
    earned = set(earned)
    new = []
    if result.passed and "first_quiz_passed" not in earned:
        new.append("first_quiz_passed")
    if result.score == 100 and "perfect_score" not in earned:
        new.append("perfect_score")
    return new


def threshold_achievements(
    *,
    level: int,
    streak: int,
    explanations: int,
    quizzes: int,
    topics: int,
    earned: Iterable[str],
) -> List[str]:
    """Achievements unlocked by counters, excluding those already earned."""
    checks = [
        ("level_up_5", level >= 5),
        ("level_up_10", level >= 10),
        ("learning_streak_7", streak >= 7),
        ("learning_streak_30", streak >= 30),
        ("knowledge_seeker", explanations >= 50),
        ("quiz_master", quizzes >= 25),
        ("topic_explorer", topics >= 20),
    ]
    earned = set(earned)
    return [achievement_id for achievement_id, unlocked in checks if unlocked and achievement_id not in earned]


def time_of_day_achievement(now: datetime) -> Optional[str]:
    if now.hour < 9:
        return "early_bird"
    if now.hour >= 22:
        return "night_owl"
    return None


def utc_isoformat(value: datetime) -> str:
    """ISO timestamp with an explicit offset; naive values read back from the database are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def achievement_details(achievement_id: str, earned_at: Optional[datetime] = None) -> Dict[str, Any]:
    details = dict(ACHIEVEMENTS[achievement_id])
    if earned_at is not None:
        details["earned_at"] = utc_isoformat(earned_at)
    return details


def build_challenges(
    *,
    quiz_history: Sequence[Dict[str, Any]],
    explanations_today: int,
    streak: int,
    enrollments_this_week: int,
    now: datetime,
) -> Dict[str, Any]:
    today = now.date().isoformat()
    quizzes_today = sum(1 for quiz in quiz_history if str(quiz.get("completed_at", "")).startswith(today))
    tomorrow = (now + timedelta(days=1)).isoformat()
    next_week = (now + timedelta(days=7)).isoformat()

    daily = [
        {
            "id": "daily_quiz",
            "title": "Daily Quiz Challenge",
            "description": "Complete 3 practice quizzes",
            "target": 3,
            "progress": min(3, quizzes_today),
            "xp_reward": 50,
            "type": "daily",
            "expires_at": tomorrow,
        },
        {
            "id": "daily_learning",
            "title": "Knowledge Seeker",
            "description": "Generate 5 AI explanations",
            "target": 5,
            "progress": min(5, explanations_today),
            "xp_reward": 30,
            "type": "daily",
            "expires_at": tomorrow,
        },
    ]
    weekly = [
        {
            "id": "weekly_streak",
            "title": "Streak Master",
            "description": "Maintain a 7-day learning streak",
            "target": 7,
            "progress": min(7, streak),
            "xp_reward": 150,
            "type": "weekly",
            "expires_at": next_week,
        },
        {
            "id": "weekly_courses",
            "title": "Course Explorer",
            "description": "Enroll in 2 new courses",
            "target": 2,
            "progress": min(2, enrollments_this_week),
            "xp_reward": 100,
            "type": "weekly",
            "expires_at": next_week,
        },
    ]
    for challenge in daily + weekly:
        challenge["completed"] = challenge["progress"] >= challenge["target"]

    return {
        "daily": daily,
        "weekly": weekly,
        "refresh_time": {"daily": tomorrow, "weekly": next_week},
    }


def rank_leaderboard(rows: Sequence[Dict[str, Any]], current_user_id: str, limit: int = 10) -> Dict[str, Any]:
    """
    Rank rows by XP (ties broken by name, then id) and cut to ``limit``.

    Each row needs ``id``, ``name`` and ``xp``; an optional ``total_xp`` is
    used for the level when ``xp`` only covers a time window. The current
    user's rank is computed over all rows, not only the returned page.
    """
    ordered = sorted(rows, key=lambda row: (-row["xp"], row.get("name", ""), row["id"]))
    ranked = []
    current_rank = None
    for position, row in enumerate(ordered, start=1):
        if row["id"] == current_user_id:
            current_rank = position
        if position <= limit:
            ranked.append({
                **row,
                "level": calculate_level(row.get("total_xp", row["xp"])),
                "rank": position,
                "is_current_user": row["id"] == current_user_id,
            })
    return {
        "leaderboard": ranked,
        "current_user_rank": current_rank,
        "total_users": len(ordered),
    }
