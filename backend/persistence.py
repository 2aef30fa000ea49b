from datetime import datetime, timedelta, UTC
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend import gamification
from backend.db import Achievement, Course, Enrollment, Lesson, LessonProgress, Progress, User, XpEvent

logger = logging.getLogger(__name__)

# Fields a user may change on their own profile
PROFILE_FIELDS = ("first_name", "last_name", "bio", "learning_style", "grade", "school", "timezone")
COURSE_FIELDS = ("title", "description", "category", "level", "tags", "thumbnail", "estimated_hours", "is_published")
LESSON_FIELDS = ("title", "content", "type", "order", "duration", "video_url")

DEFAULT_PREFERENCES = {
    "notifications": True,
    "accessibility": {
        "high_contrast": False,
        "font_size": "medium",
        "screen_reader": False,
    },
}

MAX_MOOD_ENTRIES = 30


class PersistenceLayer:
    """Data access for users, courses and gamification state.

    Helpers that only stage changes (``award_xp``, ``grant_achievement``,
    ``record_activity``) flush; the operations built on them commit.
    """

    def now(self) -> datetime:
        return datetime.now(UTC)

    # Users

    def get_user(self, db_session: Session, user_id: str) -> Optional[User]:
        return db_session.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, db_session: Session, email: str) -> Optional[User]:
        return db_session.query(User).filter(User.email == email.lower()).first()

    def get_user_by_username(self, db_session: Session, username: str) -> Optional[User]:
        return db_session.query(User).filter(User.username == username).first()

    def create_user(self, db_session: Session, *, email: str, password_hash: str, role: str = "STUDENT", **fields: Any) -> User:
        """Create a user with an empty progress record and the welcome achievement."""
        user = User(email=email.lower(), password_hash=password_hash, role=role, **fields)
        db_session.add(user)
        db_session.flush()
        self.get_progress(db_session, user.id)
        self.grant_achievement(db_session, user.id, "welcome")
        db_session.commit()
        db_session.refresh(user)
        logger.info("Registered user %s (%s)", user.username, user.role)
        return user

    def touch_last_active(self, db_session: Session, user: User) -> None:
        user.last_active = self.now()
        db_session.commit()

    def update_profile(self, db_session: Session, user: User, updates: Dict[str, Any]) -> User:
        for key in PROFILE_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(user, key, updates[key])
        db_session.commit()
        db_session.refresh(user)
        return user

    # Progress, XP and achievements

    def get_progress(self, db_session: Session, user_id: str) -> Progress:
        progress = db_session.get(Progress, user_id)
        if progress is None:
            progress = Progress(
                user_id=user_id,
                xp=0,
                learning_streak=0,
                best_streak=0,
                explanations_generated=0,
                topics_explored=[],
                practice_topics=[],
                quiz_history=[],
                learning_paths=[],
                goals=[],
                mood_entries=[],
            )
            db_session.add(progress)
            db_session.flush()
        return progress

    def earned_achievement_ids(self, db_session: Session, user_id: str) -> List[str]:
        rows = db_session.query(Achievement.achievement_id).filter(Achievement.user_id == user_id).all()
        return [row[0] for row in rows]

    def list_achievements(self, db_session: Session, user_id: str, limit: Optional[int] = None) -> List[Achievement]:
        query = (
            db_session.query(Achievement)
            .filter(Achievement.user_id == user_id)
            .order_by(Achievement.earned_at.desc(), Achievement.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def award_xp(self, db_session: Session, user_id: str, amount: int, reason: str) -> Progress:
        """Add XP to the ledger and total, then unlock any threshold achievements."""
        progress = self.get_progress(db_session, user_id)
        if amount > 0:
            db_session.add(XpEvent(user_id=user_id, amount=amount, reason=reason, created_at=self.now()))
            progress.xp = (progress.xp or 0) + amount
            db_session.flush()
        self.evaluate_achievements(db_session, progress)
        return progress

    def grant_achievement(self, db_session: Session, user_id: str, achievement_id: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """Award an achievement once. Returns False when the user already has it."""
        if achievement_id not in gamification.ACHIEVEMENTS:
            raise KeyError(f"Unknown achievement: {achievement_id}")
        if achievement_id in self.earned_achievement_ids(db_session, user_id):
            return False

        db_session.add(Achievement(
            user_id=user_id,
            achievement_id=achievement_id,
            earned_at=self.now(),
            details=details,
        ))
        db_session.flush()

        logger.info("User %s earned achievement %s", user_id, achievement_id)
        bonus = gamification.ACHIEVEMENTS[achievement_id]["xp"]
        self.award_xp(db_session, user_id, bonus, f"achievement:{achievement_id}")
        return True

    def evaluate_achievements(self, db_session: Session, progress: Progress) -> List[str]:
        """Grant every counter-based achievement the user now qualifies for."""
        unlocked: List[str] = []
        while True:
            pending = gamification.threshold_achievements(
                level=gamification.calculate_level(progress.xp or 0),
                streak=progress.learning_streak or 0,
                explanations=progress.explanations_generated or 0,
                quizzes=len(progress.quiz_history or []),
                topics=len(progress.topics_explored or []),
                earned=self.earned_achievement_ids(db_session, progress.user_id),
            )
            if not pending:
                return unlocked
            for achievement_id in pending:
                # grant_achievement re-enters here through award_xp, so some
                # pending entries may already be granted
                if self.grant_achievement(db_session, progress.user_id, achievement_id):
                    unlocked.append(achievement_id)

    def record_activity(self, db_session: Session, user_id: str) -> Tuple[Progress, List[str]]:
        """Update the learning streak for activity now; returns newly earned achievements."""
        now = self.now()
        progress = self.get_progress(db_session, user_id)
        streak = gamification.update_streak(progress.last_activity_date, progress.learning_streak or 0, now.date())
        progress.learning_streak = streak
        progress.best_streak = max(progress.best_streak or 0, streak)
        progress.last_activity_date = now.date()
        progress.last_activity_at = now
        db_session.flush()

        before = set(self.earned_achievement_ids(db_session, user_id))
        time_achievement = gamification.time_of_day_achievement(now)
        if time_achievement:
            self.grant_achievement(db_session, user_id, time_achievement)
        self.evaluate_achievements(db_session, progress)
        new = [a for a in self.earned_achievement_ids(db_session, user_id) if a not in before]
        return progress, new

    def touch_progress(self, db_session: Session, progress: Progress) -> None:
        progress.last_activity_at = self.now()

    def record_explanation(self, db_session: Session, user_id: str, topic: str) -> Progress:
        progress = self.get_progress(db_session, user_id)
        progress.explanations_generated = (progress.explanations_generated or 0) + 1
        self.touch_progress(db_session, progress)
        self.award_xp(db_session, user_id, gamification.EXPLANATION_XP, "explanation")

        topics = list(progress.topics_explored or [])
        if topic not in topics:
            progress.topics_explored = topics + [topic]
            self.award_xp(db_session, user_id, gamification.NEW_TOPIC_XP, "new_topic")
        db_session.commit()
        return progress

    def record_practice(self, db_session: Session, user_id: str, topic: str) -> Progress:
        progress = self.get_progress(db_session, user_id)
        topics = list(progress.practice_topics or [])
        if topic not in topics:
            progress.practice_topics = topics + [topic]
        self.touch_progress(db_session, progress)
        self.award_xp(db_session, user_id, gamification.PRACTICE_XP, "practice_questions")
        db_session.commit()
        return progress

    def record_learning_path(self, db_session: Session, user_id: str, subject: str) -> Progress:
        progress = self.get_progress(db_session, user_id)
        progress.learning_paths = list(progress.learning_paths or []) + [{
            "subject": subject,
            "created_at": self.now().isoformat(),
            "status": "active",
        }]
        self.touch_progress(db_session, progress)
        self.award_xp(db_session, user_id, gamification.LEARNING_PATH_XP, "learning_path")
        db_session.commit()
        return progress

    def record_quiz(self, db_session: Session, user_id: str, topic: str, result: gamification.QuizResult) -> Tuple[Progress, List[str]]:
        progress = self.get_progress(db_session, user_id)
        before = set(self.earned_achievement_ids(db_session, user_id))

        progress.quiz_history = list(progress.quiz_history or []) + [{
            "topic": topic,
            "score": result.score,
            "questions_count": result.total,
            "correct": result.correct,
            "completed_at": self.now().isoformat(),
            "passed": result.passed,
        }]
        self.award_xp(db_session, user_id, result.xp_earned, "quiz")
        for achievement_id in gamification.quiz_achievements(result, before):
            self.grant_achievement(db_session, user_id, achievement_id, {"topic": topic, "score": result.score})
        self.record_activity(db_session, user_id)
        db_session.commit()

        new = [a for a in self.earned_achievement_ids(db_session, user_id) if a not in before]
        return progress, new

    def update_preferences(self, db_session: Session, user: User, updates: Dict[str, Any]) -> Dict[str, Any]:
        progress = self.get_progress(db_session, user.id)
        current = self.preferences(progress, user)
        accessibility = dict(current.get("accessibility", {}))
        accessibility.update(updates.pop("accessibility", None) or {})
        current.update(updates)
        current["accessibility"] = accessibility
        current["updated_at"] = self.now().isoformat()
        progress.preferences = current
        if updates.get("learning_style"):
            user.learning_style = updates["learning_style"]
        db_session.commit()
        return current

    def preferences(self, progress: Progress, user: User) -> Dict[str, Any]:
        base = {
            "learning_style": user.learning_style,
            "notifications": DEFAULT_PREFERENCES["notifications"],
            "accessibility": dict(DEFAULT_PREFERENCES["accessibility"]),
        }
        stored = progress.preferences or {}
        base.update({k: v for k, v in stored.items() if k != "accessibility"})
        base["accessibility"].update(stored.get("accessibility", {}))
        return base

    def add_goal(self, db_session: Session, user_id: str, goal: Dict[str, Any]) -> Dict[str, Any]:
        progress = self.get_progress(db_session, user_id)
        now = self.now()
        new_goal = {
            "id": f"goal_{int(now.timestamp() * 1000)}_{len(progress.goals or [])}",
            "current": 0,
            "created_at": now.isoformat(),
            "status": "active",
            **goal,
        }
        progress.goals = list(progress.goals or []) + [new_goal]
        db_session.commit()
        return new_goal

    def add_mood_entry(self, db_session: Session, user_id: str, entry: Dict[str, Any]) -> Dict[str, Any]:
        progress = self.get_progress(db_session, user_id)
        new_entry = {"date": self.now().isoformat(), "session_start": True, **entry}
        progress.mood_entries = (list(progress.mood_entries or []) + [new_entry])[-MAX_MOOD_ENTRIES:]
        db_session.commit()
        return new_entry

    def xp_events_since(self, db_session: Session, user_id: str, since: datetime) -> List[XpEvent]:
        return (
            db_session.query(XpEvent)
            .filter(XpEvent.user_id == user_id, XpEvent.created_at >= since)
            .order_by(XpEvent.created_at)
            .all()
        )

    def count_xp_events(self, db_session: Session, user_id: str, reason: str, since: datetime) -> int:
        return (
            db_session.query(func.count(XpEvent.id))
            .filter(XpEvent.user_id == user_id, XpEvent.reason == reason, XpEvent.created_at >= since)
            .scalar()
        )

    def leaderboard_rows(self, db_session: Session, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """One row per user: XP total, or XP earned since ``since`` when given."""
        users = db_session.query(User).all()
        window: Dict[str, int] = {}
        if since is not None:
            sums = (
                db_session.query(XpEvent.user_id, func.coalesce(func.sum(XpEvent.amount), 0))
                .filter(XpEvent.created_at >= since)
                .group_by(XpEvent.user_id)
                .all()
            )
            window = {user_id: int(total) for user_id, total in sums}

        rows = []
        for user in users:
            progress = self.get_progress(db_session, user.id)
            total_xp = progress.xp or 0
            rows.append({
                "id": user.id,
                "name": f"{user.first_name} {user.last_name}",
                "username": user.username,
                "avatar": user.avatar,
                "xp": window.get(user.id, 0) if since is not None else total_xp,
                "total_xp": total_xp,
                "achievements": len(user.achievements),
                "streak": progress.learning_streak or 0,
            })
        return rows

    # Courses and lessons

    def list_courses(
        self,
        db_session: Session,
        category: Optional[str] = None,
        level: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Course]:
        query = db_session.query(Course).filter(Course.is_published.is_(True))
        if category:
            query = query.filter(Course.category == category)
        if level:
            query = query.filter(Course.level == level)
        courses = query.order_by(Course.created_at.desc()).all()

        if search:
            needle = search.lower()
            courses = [
                c for c in courses
                if needle in (c.title or "").lower()
                or needle in (c.description or "").lower()
                or search in (c.tags or [])
            ]
        return courses

    def get_course(self, db_session: Session, course_id: str) -> Optional[Course]:
        return db_session.get(Course, course_id)

    def create_course(self, db_session: Session, creator: User, data: Dict[str, Any], lessons: Optional[List[Dict[str, Any]]] = None) -> Course:
        course = Course(creator_id=creator.id, **{k: v for k, v in data.items() if k in COURSE_FIELDS})
        if course.tags is None:
            course.tags = []
        db_session.add(course)
        db_session.flush()
        for position, lesson in enumerate(lessons or [], start=1):
            fields = {k: v for k, v in lesson.items() if k in LESSON_FIELDS and v is not None}
            fields.setdefault("order", position)
            db_session.add(Lesson(course_id=course.id, **fields))
        db_session.commit()
        db_session.refresh(course)
        logger.info("Course %s created by %s", course.id, creator.username)
        return course

    def update_course(self, db_session: Session, course: Course, updates: Dict[str, Any]) -> Course:
        for key in COURSE_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(course, key, updates[key])
        db_session.commit()
        db_session.refresh(course)
        return course

    def delete_course(self, db_session: Session, course: Course) -> None:
        db_session.delete(course)
        db_session.commit()
        logger.info("Course %s deleted", course.id)

    def get_lesson(self, db_session: Session, lesson_id: str) -> Optional[Lesson]:
        return db_session.get(Lesson, lesson_id)

    def add_lesson(self, db_session: Session, course: Course, data: Dict[str, Any]) -> Lesson:
        fields = {k: v for k, v in data.items() if k in LESSON_FIELDS and v is not None}
        if "order" not in fields:
            last = db_session.query(func.max(Lesson.order)).filter(Lesson.course_id == course.id).scalar()
            fields["order"] = (last or 0) + 1
        lesson = Lesson(course_id=course.id, **fields)
        db_session.add(lesson)
        db_session.commit()
        db_session.refresh(lesson)
        return lesson

    def update_lesson(self, db_session: Session, lesson: Lesson, updates: Dict[str, Any]) -> Lesson:
        for key in LESSON_FIELDS:
            if key in updates and updates[key] is not None:
                setattr(lesson, key, updates[key])
        db_session.commit()
        db_session.refresh(lesson)
        return lesson

    def delete_lesson(self, db_session: Session, lesson: Lesson) -> None:
        db_session.delete(lesson)
        db_session.commit()

    # Enrollments and lesson progress

    def get_enrollment(self, db_session: Session, user_id: str, course_id: str) -> Optional[Enrollment]:
        return (
            db_session.query(Enrollment)
            .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
            .first()
        )

    def enroll(self, db_session: Session, user: User, course: Course) -> Enrollment:
        """Enroll a user; raises IntegrityError when the enrollment already exists."""
        enrollment = Enrollment(user_id=user.id, course_id=course.id, status="ACTIVE", progress=0.0, enrolled_at=self.now())
        db_session.add(enrollment)
        db_session.flush()
        self.grant_achievement(db_session, user.id, "first_course", {"course_id": course.id, "course_name": course.title})
        db_session.commit()
        db_session.refresh(enrollment)
        return enrollment

    def list_enrollments(self, db_session: Session, user_id: str) -> List[Enrollment]:
        return (
            db_session.query(Enrollment)
            .filter(Enrollment.user_id == user_id)
            .order_by(Enrollment.enrolled_at.desc())
            .all()
        )

    def count_enrollments_since(self, db_session: Session, user_id: str, since: datetime) -> int:
        return (
            db_session.query(func.count(Enrollment.id))
            .filter(Enrollment.user_id == user_id, Enrollment.enrolled_at >= since)
            .scalar()
        )

    def completed_lessons_in_course(self, db_session: Session, user_id: str, course_id: str) -> int:
        return (
            db_session.query(func.count(LessonProgress.id))
            .join(Lesson, Lesson.id == LessonProgress.lesson_id)
            .filter(
                LessonProgress.user_id == user_id,
                LessonProgress.completed.is_(True),
                Lesson.course_id == course_id,
            )
            .scalar()
        )

    def get_lesson_progress(self, db_session: Session, user_id: str, lesson_id: str) -> Optional[LessonProgress]:
        return (
            db_session.query(LessonProgress)
            .filter(LessonProgress.user_id == user_id, LessonProgress.lesson_id == lesson_id)
            .first()
        )

    def complete_lesson(self, db_session: Session, user: User, lesson: Lesson, time_spent: int = 0) -> Tuple[LessonProgress, float, List[str]]:
        """Mark a lesson complete and roll the result up into the enrollment.

        Returns the lesson progress, the course progress percent and the
        achievements earned along the way.
        """
        before = set(self.earned_achievement_ids(db_session, user.id))
        now = self.now()

        record = self.get_lesson_progress(db_session, user.id, lesson.id)
        if record is None:
            record = LessonProgress(user_id=user.id, lesson_id=lesson.id)
            db_session.add(record)
        record.completed = True
        record.time_spent = time_spent or 0
        record.completed_at = now
        db_session.flush()

        total_completed = (
            db_session.query(func.count(LessonProgress.id))
            .filter(LessonProgress.user_id == user.id, LessonProgress.completed.is_(True))
            .scalar()
        )
        if total_completed == 1:
            self.grant_achievement(db_session, user.id, "first_lesson", {"lesson_id": lesson.id, "lesson_title": lesson.title})

        total_lessons = db_session.query(func.count(Lesson.id)).filter(Lesson.course_id == lesson.course_id).scalar()
        completed_in_course = self.completed_lessons_in_course(db_session, user.id, lesson.course_id)
        course_progress = completed_in_course / total_lessons * 100 if total_lessons else 0.0

        enrollment = self.get_enrollment(db_session, user.id, lesson.course_id)
        if enrollment is not None:
            enrollment.progress = course_progress
            if course_progress >= 100 and enrollment.status != "COMPLETED":
                enrollment.status = "COMPLETED"
                enrollment.completed_at = now
                self.grant_achievement(
                    db_session,
                    user.id,
                    "course_completed",
                    {"course_id": lesson.course_id, "course_name": lesson.course.title},
                )

        self.record_activity(db_session, user.id)
        db_session.commit()
        db_session.refresh(record)

        new = [a for a in self.earned_achievement_ids(db_session, user.id) if a not in before]
        return record, course_progress, new

    def learning_stats(self, db_session: Session, user_id: str) -> Dict[str, int]:
        total_enrollments = db_session.query(func.count(Enrollment.id)).filter(Enrollment.user_id == user_id).scalar()
        completed_courses = (
            db_session.query(func.count(Enrollment.id))
            .filter(Enrollment.user_id == user_id, Enrollment.status == "COMPLETED")
            .scalar()
        )
        total_lessons_completed = (
            db_session.query(func.count(LessonProgress.id))
            .filter(LessonProgress.user_id == user_id, LessonProgress.completed.is_(True))
            .scalar()
        )
        return {
            "total_enrollments": total_enrollments,
            "completed_courses": completed_courses,
            "total_lessons_completed": total_lessons_completed,
            "completion_rate": round(completed_courses / total_enrollments * 100) if total_enrollments else 0,
        }

    def recent_lesson_activity(self, db_session: Session, user_id: str, days: int = 30, limit: int = 20) -> List[LessonProgress]:
        since = self.now() - timedelta(days=days)
        return (
            db_session.query(LessonProgress)
            .filter(
                LessonProgress.user_id == user_id,
                LessonProgress.completed.is_(True),
                LessonProgress.completed_at >= since,
            )
            .order_by(LessonProgress.completed_at.desc())
            .limit(limit)
            .all()
        )
