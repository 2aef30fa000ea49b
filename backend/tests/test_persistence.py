"""XP ledger, achievement awarding and streak bookkeeping"""

from datetime import timedelta

from sqlalchemy import func

from backend.db import XpEvent
from backend.seed import DEMO_PASSWORD, seed_demo_data
from backend.auth import verify_password
from conftest import FIXED_NOW


def ledger_total(db, user_id):
    return db.query(func.coalesce(func.sum(XpEvent.amount), 0)).filter(XpEvent.user_id == user_id).scalar()


def test_new_user_has_progress_and_welcome(db, store, student):
    progress = store.get_progress(db, student.id)

    assert progress.xp == 0
    assert progress.learning_streak == 0
    assert store.earned_achievement_ids(db, student.id) == ["welcome"]


def test_grant_achievement_is_idempotent(db, store, student):
    assert store.grant_achievement(db, student.id, "first_course") is True
    assert store.grant_achievement(db, student.id, "first_course") is False
    db.commit()

    assert store.earned_achievement_ids(db, student.id).count("first_course") == 1
    assert store.get_progress(db, student.id).xp == 25


def test_xp_total_matches_ledger(db, store, student):
    store.award_xp(db, student.id, 30, "manual")
    store.grant_achievement(db, student.id, "perfect_score")
    store.record_explanation(db, student.id, "Optics")

    progress = store.get_progress(db, student.id)
    assert progress.xp == 30 + 25 + 5 + 10
    assert progress.xp == ledger_total(db, student.id)


def test_zero_xp_writes_no_ledger_row(db, store, student):
    store.award_xp(db, student.id, 0, "nothing")
    db.commit()

    assert db.query(XpEvent).filter(XpEvent.user_id == student.id).count() == 0


def test_record_activity_streak(db, store, student, monkeypatch):
    days = [FIXED_NOW - timedelta(days=2), FIXED_NOW - timedelta(days=1), FIXED_NOW - timedelta(days=1), FIXED_NOW]
    streaks = []
    for moment in days:
        monkeypatch.setattr(store, "now", lambda moment=moment: moment)
        progress, _ = store.record_activity(db, student.id)
        streaks.append(progress.learning_streak)

    assert streaks == [1, 2, 2, 3]

    monkeypatch.setattr(store, "now", lambda: FIXED_NOW + timedelta(days=3))
    progress, _ = store.record_activity(db, student.id)
    assert progress.learning_streak == 1
    assert progress.best_streak == 3


def test_week_long_streak_unlocks_achievement(db, store, student, monkeypatch):
    new = []
    for offset in range(6, -1, -1):
        moment = FIXED_NOW - timedelta(days=offset)
        monkeypatch.setattr(store, "now", lambda moment=moment: moment)
        _, earned = store.record_activity(db, student.id)
        new.extend(earned)
    db.commit()

    assert new == ["learning_streak_7"]
    assert store.get_progress(db, student.id).xp == 75


def test_early_activity_earns_early_bird(db, store, student, monkeypatch):
    monkeypatch.setattr(store, "now", lambda: FIXED_NOW.replace(hour=6))

    _, new = store.record_activity(db, student.id)

    assert new == ["early_bird"]


def test_seed_demo_data(db, store):
    assert seed_demo_data(db, store) is True
    assert seed_demo_data(db, store) is False

    teacher = store.get_user_by_email(db, "teacher@edumind.ai")
    assert teacher.role == "TEACHER"
    assert verify_password(DEMO_PASSWORD, teacher.password_hash)
    courses = store.list_courses(db)
    assert len(courses) == 2
    assert all(course.creator_id == teacher.id for course in courses)
    assert store.get_user_by_email(db, "admin@edumind.ai").role == "ADMIN"
