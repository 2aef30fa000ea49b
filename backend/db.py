from sqlalchemy import (
    create_engine,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker, relationship
from datetime import datetime, UTC
import uuid

from backend.config import DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, default="STUDENT", nullable=False)  # STUDENT, TEACHER or ADMIN
    avatar = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    learning_style = Column(String, default="visual", nullable=False)
    grade = Column(String, nullable=True)
    school = Column(String, nullable=True)
    timezone = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)
    last_active = Column(DateTime, nullable=True)

    courses = relationship("Course", back_populates="creator")
    enrollments = relationship("Enrollment", back_populates="user", cascade="all, delete-orphan")
    lesson_progress = relationship("LessonProgress", back_populates="user", cascade="all, delete-orphan")
    achievements = relationship("Achievement", back_populates="user", cascade="all, delete-orphan")
    xp_events = relationship("XpEvent", back_populates="user", cascade="all, delete-orphan")
    progress = relationship("Progress", back_populates="user", uselist=False, cascade="all, delete-orphan")


class Course(Base):
    __tablename__ = "courses"

    id = Column(String, primary_key=True, default=_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    category = Column(String, nullable=False)
    level = Column(String, default="beginner")  # beginner, intermediate or advanced
    tags = Column(JSON, default=list)
    thumbnail = Column(String, nullable=True)
    estimated_hours = Column(Integer, default=0)
    is_published = Column(Boolean, default=False)
    creator_id = Column(String, ForeignKey("users.id"))
    created_at = Column(DateTime, default=_now)
    updated_at = Column(DateTime, default=_now, onupdate=_now)

    creator = relationship("User", back_populates="courses")
    lessons = relationship(
        "Lesson", back_populates="course", order_by="Lesson.order", cascade="all, delete-orphan"
    )
    enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String, primary_key=True, default=_uuid)
    course_id = Column(String, ForeignKey("courses.id"), nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, default="")
    type = Column(String, default="TEXT")  # TEXT, VIDEO, INTERACTIVE or QUIZ
    order = Column(Integer, default=1)
    duration = Column(Integer, default=0)  # minutes
    video_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now)

    course = relationship("Course", back_populates="lessons")
    progress_records = relationship("LessonProgress", back_populates="lesson", cascade="all, delete-orphan")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    course_id = Column(String, ForeignKey("courses.id"), nullable=False)
    status = Column(String, default="ACTIVE")  # ACTIVE or COMPLETED
    progress = Column(Float, default=0.0)  # percent
    enrolled_at = Column(DateTime, default=_now)
    completed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="enrollments")
    course = relationship("Course", back_populates="enrollments")


class LessonProgress(Base):
    __tablename__ = "lesson_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_lesson_progress_user_lesson"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    lesson_id = Column(String, ForeignKey("lessons.id"), nullable=False)
    completed = Column(Boolean, default=False)
    time_spent = Column(Integer, default=0)  # seconds
    completed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="lesson_progress")
    lesson = relationship("Lesson", back_populates="progress_records")


class Achievement(Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", name="uq_achievement_user_key"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    achievement_id = Column(String, nullable=False)  # key into gamification.ACHIEVEMENTS
    earned_at = Column(DateTime, default=_now)
    details = Column(JSON, nullable=True)

    user = relationship("User", back_populates="achievements")


class XpEvent(Base):
    __tablename__ = "xp_events"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reason = Column(String, default="")
    created_at = Column(DateTime, default=_now, index=True)

    user = relationship("User", back_populates="xp_events")


class Progress(Base):
    __tablename__ = "progress"

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    xp = Column(Integer, default=0)
    learning_streak = Column(Integer, default=0)
    best_streak = Column(Integer, default=0)
    last_activity_date = Column(Date, nullable=True)
    last_activity_at = Column(DateTime, nullable=True)
    explanations_generated = Column(Integer, default=0)
    topics_explored = Column(JSON, default=list)
    practice_topics = Column(JSON, default=list)
    quiz_history = Column(JSON, default=list)  # list of quiz result dicts
    learning_paths = Column(JSON, default=list)
    preferences = Column(JSON, nullable=True)
    goals = Column(JSON, default=list)
    mood_entries = Column(JSON, default=list)

    user = relationship("User", back_populates="progress")

# Database dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Create all tables
def init_db():
    Base.metadata.create_all(bind=engine)
