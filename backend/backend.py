# backend/backend.py

# 1️⃣ Imports
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, UTC
from http import HTTPStatus
from typing import Any, Dict, List, Literal, Optional
import logging

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

# 2️⃣ Local imports
from backend import gamification
from backend.auth import (
    create_access_token,
    get_current_user,
    get_token_payload,
    hash_password,
    require_roles,
    revoke_token,
    verify_password,
)
from backend.cache import cache
from backend.config import ALLOWED_ORIGINS, SEED_DEMO_DATA, SERVICE_NAME, SERVICE_VERSION
from backend.db import Course, Enrollment, Lesson, LessonProgress, SessionLocal, User, get_db, init_db
from backend.logging_config import configure_logging
from backend.persistence import PersistenceLayer
from backend.seed import seed_demo_data
from backend.tutor import tutor_service

logger = logging.getLogger(__name__)

# 3️⃣ Configuration
EXPLANATION_CACHE_TTL = 3600
QUESTIONS_CACHE_TTL = 1800
LEARNING_PATH_CACHE_TTL = 7200
ANALYTICS_WINDOWS = {"7days": 7, "30days": 30, "90days": 90}
LEADERBOARD_WINDOWS = {"week": 7, "month": 30}

persistence = PersistenceLayer()

Difficulty = Literal["beginner", "intermediate", "advanced"]
LearningStyle = Literal["visual", "auditory", "kinesthetic", "reading"]
LessonType = Literal["TEXT", "VIDEO", "INTERACTIVE", "QUIZ"]


# 4️⃣ FastAPI app
@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    configure_logging()
    init_db()
    if SEED_DEMO_DATA:
        with SessionLocal() as db:
            seed_demo_data(db, persistence)
    logger.info("%s %s started (cache: %s)", SERVICE_NAME, SERVICE_VERSION, cache.backend_name)
    yield


app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

# 5️⃣ CORS - configured from environment
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 6️⃣ Error handling
def _error_body(request: Request, error: str, **extra: Any) -> Dict[str, Any]:
    return {
        "error": error,
        **extra,
        "timestamp": datetime.now(UTC).isoformat(),
        "path": request.url.path,
        "method": request.method,
    }


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = f"Route {request.url.path} not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, HTTPStatus(exc.status_code).phrase, detail=detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=_error_body(request, "Validation failed", details=details))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body(request, "Internal server error", detail="An unexpected error occurred"),
    )


# 7️⃣ Models
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    username: str = Field(min_length=3, max_length=30)
    learning_style: LearningStyle = "visual"
    grade: Optional[str] = None
    school: Optional[str] = None


class LoginRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    learning_style: Optional[LearningStyle] = None
    grade: Optional[str] = None
    school: Optional[str] = None
    timezone: Optional[str] = None


class LessonCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = ""
    type: LessonType = "TEXT"
    order: Optional[int] = Field(None, ge=1)
    duration: int = Field(0, ge=0)
    video_url: Optional[str] = None


class LessonUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = None
    type: Optional[LessonType] = None
    order: Optional[int] = Field(None, ge=1)
    duration: Optional[int] = Field(None, ge=0)
    video_url: Optional[str] = None


class CourseCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = ""
    category: str = Field(min_length=1, max_length=100)
    level: Difficulty = "beginner"
    tags: List[str] = []
    estimated_hours: int = Field(0, ge=0)
    thumbnail: Optional[str] = None
    is_published: bool = False
    lessons: List[LessonCreate] = []


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    level: Optional[Difficulty] = None
    tags: Optional[List[str]] = None
    estimated_hours: Optional[int] = Field(None, ge=0)
    thumbnail: Optional[str] = None
    is_published: Optional[bool] = None


class LessonCompleteRequest(BaseModel):
    time_spent: int = Field(0, ge=0)


class ExplanationRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1, max_length=200)
    difficulty: Difficulty = "intermediate"
    learning_style: Optional[LearningStyle] = None


class QuestionsRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1, max_length=200)
    count: int = Field(5, ge=1, le=10)
    difficulty: Difficulty = "intermediate"


class LearningPathRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    subject: str = Field(min_length=1, max_length=200)
    current_level: Difficulty = "beginner"
    goals: str = Field(min_length=5, max_length=1000)
    timeframe: str = "3 months"


class QuizSubmission(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(min_length=1, max_length=200)
    questions: List[Dict[str, Any]]
    answers: List[Any]


class ChatRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    message: str = Field(min_length=1, max_length=2000)
    context: List[Dict[str, Any]] = []


class AwardXpRequest(BaseModel):
    amount: int = Field(gt=0, le=10000)
    reason: str = "manual"
    user_id: Optional[str] = None


class AccessibilitySettings(BaseModel):
    high_contrast: Optional[bool] = None
    font_size: Optional[Literal["small", "medium", "large"]] = None
    screen_reader: Optional[bool] = None


class PreferencesUpdate(BaseModel):
    learning_style: Optional[LearningStyle] = None
    notifications: Optional[bool] = None
    accessibility: Optional[AccessibilitySettings] = None


class GoalCreate(BaseModel):
    type: Literal["xp", "courses", "streak", "quiz_score"]
    target: int = Field(ge=1)
    deadline: date
    title: str = Field(min_length=3, max_length=100)
    description: str = ""


class MoodEntry(BaseModel):
    mood: Literal["great", "good", "okay", "stressed", "overwhelmed"]
    energy: Literal["high", "medium", "low"] = "medium"
    focus: Literal["excellent", "good", "fair", "poor"] = "good"
    notes: str = Field("", max_length=500)


# 8️⃣ Serializers
def _iso(value: Optional[datetime]) -> Optional[str]:
    return gamification.utc_isoformat(value) if value else None


def user_to_dict(user: User) -> Dict[str, Any]:
    """Public view of a user; never includes the password hash."""
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "avatar": user.avatar,
        "bio": user.bio,
        "learning_style": user.learning_style,
        "grade": user.grade,
        "school": user.school,
        "timezone": user.timezone,
        "created_at": _iso(user.created_at),
        "last_active": _iso(user.last_active),
    }


def creator_to_dict(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "first_name": user.first_name, "last_name": user.last_name}


def lesson_to_dict(lesson: Lesson, include_content: bool = True) -> Dict[str, Any]:
    data = {
        "id": lesson.id,
        "course_id": lesson.course_id,
        "title": lesson.title,
        "type": lesson.type,
        "order": lesson.order,
        "duration": lesson.duration,
    }
    if include_content:
        data["content"] = lesson.content
        data["video_url"] = lesson.video_url
    return data


def course_to_dict(course: Course, include_content: bool = False) -> Dict[str, Any]:
    lessons = [lesson_to_dict(lesson, include_content) for lesson in course.lessons]
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "category": course.category,
        "level": course.level,
        "tags": course.tags or [],
        "thumbnail": course.thumbnail,
        "estimated_hours": course.estimated_hours,
        "is_published": course.is_published,
        "created_at": _iso(course.created_at),
        "creator": creator_to_dict(course.creator),
        "lessons": lessons,
        "lesson_count": len(lessons),
        "total_duration": sum(lesson.duration or 0 for lesson in course.lessons),
        "enrollment_count": len(course.enrollments),
    }


def lesson_progress_to_dict(record: Optional[LessonProgress]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return {
        "lesson_id": record.lesson_id,
        "completed": record.completed,
        "time_spent": record.time_spent,
        "completed_at": _iso(record.completed_at),
    }


def enrollment_to_dict(enrollment: Enrollment) -> Dict[str, Any]:
    return {
        "id": enrollment.id,
        "course_id": enrollment.course_id,
        "status": enrollment.status,
        "progress": round(enrollment.progress or 0),
        "enrolled_at": _iso(enrollment.enrolled_at),
        "completed_at": _iso(enrollment.completed_at),
    }


def achievements_to_dicts(achievement_ids: List[str]) -> List[Dict[str, Any]]:
    return [gamification.achievement_details(a) for a in achievement_ids]


# 9️⃣ Access helpers
def is_course_owner(course: Course, user: User) -> bool:
    return user.role == "ADMIN" or course.creator_id == user.id


def get_visible_course(db: Session, course_id: str, user: User) -> Course:
    course = persistence.get_course(db, course_id)
    if course is None or (not course.is_published and not is_course_owner(course, user)):
        raise HTTPException(status_code=404, detail="Course not found")
    return course


def get_owned_course(db: Session, course_id: str, user: User) -> Course:
    course = get_visible_course(db, course_id, user)
    if not is_course_owner(course, user):
        raise HTTPException(status_code=403, detail="Only the course creator or an admin can modify this course")
    return course


def get_accessible_lesson(db: Session, lesson_id: str, user: User) -> Lesson:
    lesson = persistence.get_lesson(db, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    if not is_course_owner(lesson.course, user) and persistence.get_enrollment(db, user.id, lesson.course_id) is None:
        raise HTTPException(status_code=403, detail="You must be enrolled in this course to access this lesson")
    return lesson


# 🔟 Auth routes
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    if persistence.get_user_by_email(db, req.email):
        raise HTTPException(status_code=409, detail="Email already registered")
    if persistence.get_user_by_username(db, req.username):
        raise HTTPException(status_code=409, detail="Username already taken")

    fields = req.model_dump(exclude={"email", "password"})
    user = persistence.create_user(db, email=req.email, password_hash=hash_password(req.password), role="STUDENT", **fields)
    return {
        "message": "User registered successfully",
        "user": user_to_dict(user),
        "token": create_access_token(user),
    }


@auth_router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = persistence.get_user_by_email(db, req.email)
    if user is None or not verify_password(req.password, user.password_hash):
        logger.info("Failed login for %s", req.email)
        raise HTTPException(status_code=401, detail="Email or password is incorrect")

    persistence.touch_last_active(db, user)
    return {
        "message": "Login successful",
        "user": user_to_dict(user),
        "token": create_access_token(user),
    }


@auth_router.get("/profile")
def get_auth_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    enrolled = [
        {**enrollment_to_dict(e), "course": {"id": e.course.id, "title": e.course.title, "thumbnail": e.course.thumbnail}}
        for e in persistence.list_enrollments(db, user.id)
    ]
    achievements = [
        gamification.achievement_details(a.achievement_id, a.earned_at)
        for a in persistence.list_achievements(db, user.id, limit=10)
    ]
    return {"user": {**user_to_dict(user), "enrollments": enrolled, "achievements": achievements}}


@auth_router.put("/profile")
def update_auth_profile(req: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user = persistence.update_profile(db, user, req.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "user": user_to_dict(user)}


@auth_router.post("/logout")
def logout(payload: Dict[str, Any] = Depends(get_token_payload)):
    revoke_token(payload)
    return {"message": "Logged out successfully"}


# 1️⃣1️⃣ Learning routes
learning_router = APIRouter(prefix="/api/learning", tags=["learning"], dependencies=[Depends(get_current_user)])


@learning_router.get("/courses")
def list_courses(
    category: Optional[str] = None,
    level: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    courses = persistence.list_courses(db, category=category, level=level, search=search)
    return {"courses": [course_to_dict(c) for c in courses], "total": len(courses)}


@learning_router.get("/courses/{course_id}")
def get_course(course_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    course = get_visible_course(db, course_id, user)
    enrollment = persistence.get_enrollment(db, user.id, course.id)
    return {
        "course": course_to_dict(course),
        "enrollment": enrollment_to_dict(enrollment) if enrollment else None,
    }


@learning_router.post("/courses", status_code=status.HTTP_201_CREATED)
def create_course(req: CourseCreate, user: User = Depends(require_roles("TEACHER", "ADMIN")), db: Session = Depends(get_db)):
    lessons = [lesson.model_dump() for lesson in req.lessons]
    course = persistence.create_course(db, user, req.model_dump(exclude={"lessons"}), lessons)
    return {"message": "Course created successfully", "course": course_to_dict(course, include_content=True)}


@learning_router.put("/courses/{course_id}")
def update_course(course_id: str, req: CourseUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    course = persistence.update_course(db, course, req.model_dump(exclude_unset=True))
    return {"message": "Course updated successfully", "course": course_to_dict(course, include_content=True)}


@learning_router.delete("/courses/{course_id}")
def delete_course(course_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    persistence.delete_course(db, course)
    return {"message": "Course deleted successfully"}


@learning_router.post("/courses/{course_id}/lessons", status_code=status.HTTP_201_CREATED)
def create_lesson(course_id: str, req: LessonCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    course = get_owned_course(db, course_id, user)
    lesson = persistence.add_lesson(db, course, req.model_dump())
    return {"message": "Lesson created successfully", "lesson": lesson_to_dict(lesson)}


@learning_router.put("/lessons/{lesson_id}")
def update_lesson(lesson_id: str, req: LessonUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lesson = persistence.get_lesson(db, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    get_owned_course(db, lesson.course_id, user)
    lesson = persistence.update_lesson(db, lesson, req.model_dump(exclude_unset=True))
    return {"message": "Lesson updated successfully", "lesson": lesson_to_dict(lesson)}


@learning_router.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lesson = persistence.get_lesson(db, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    get_owned_course(db, lesson.course_id, user)
    persistence.delete_lesson(db, lesson)
    return {"message": "Lesson deleted successfully"}


@learning_router.post("/courses/{course_id}/enroll", status_code=status.HTTP_201_CREATED)
def enroll(course_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    course = get_visible_course(db, course_id, user)
    if persistence.get_enrollment(db, user.id, course.id):
        raise HTTPException(status_code=409, detail="Already enrolled in this course")

    before = set(persistence.earned_achievement_ids(db, user.id))
    enrollment = persistence.enroll(db, user, course)
    new = [a for a in persistence.earned_achievement_ids(db, user.id) if a not in before]
    return {
        "message": "Successfully enrolled in course",
        "enrollment": enrollment_to_dict(enrollment),
        "new_achievements": achievements_to_dicts(new),
    }


@learning_router.get("/my-courses")
def my_courses(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    courses = []
    for enrollment in persistence.list_enrollments(db, user.id):
        total = len(enrollment.course.lessons)
        completed = persistence.completed_lessons_in_course(db, user.id, enrollment.course_id)
        courses.append({
            **enrollment_to_dict(enrollment),
            "course": course_to_dict(enrollment.course),
            "completed_lessons": completed,
            "total_lessons": total,
            "progress": round(completed / total * 100) if total else 0,
        })
    return {"courses": courses}


@learning_router.get("/lessons/{lesson_id}")
def get_lesson(lesson_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lesson = get_accessible_lesson(db, lesson_id, user)
    record = persistence.get_lesson_progress(db, user.id, lesson.id)
    return {
        "lesson": {**lesson_to_dict(lesson), "course": {"id": lesson.course.id, "title": lesson.course.title}},
        "progress": lesson_progress_to_dict(record),
    }


@learning_router.post("/lessons/{lesson_id}/complete")
def complete_lesson(
    lesson_id: str,
    req: Optional[LessonCompleteRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    lesson = get_accessible_lesson(db, lesson_id, user)
    time_spent = req.time_spent if req else 0
    record, course_progress, new = persistence.complete_lesson(db, user, lesson, time_spent)
    return {
        "message": "Lesson completed successfully",
        "progress": lesson_progress_to_dict(record),
        "course_progress": round(course_progress),
        "new_achievements": achievements_to_dicts(new),
    }


@learning_router.get("/progress")
def learning_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    progress = persistence.get_progress(db, user.id)
    recent_activity = [
        {
            **lesson_progress_to_dict(record),
            "lesson_title": record.lesson.title,
            "course_id": record.lesson.course_id,
            "course_title": record.lesson.course.title,
        }
        for record in persistence.recent_lesson_activity(db, user.id)
    ]
    return {
        "user": {"id": user.id, **gamification.level_progress(progress.xp or 0)},
        "stats": persistence.learning_stats(db, user.id),
        "recent_achievements": [
            gamification.achievement_details(a.achievement_id, a.earned_at)
            for a in persistence.list_achievements(db, user.id, limit=10)
        ],
        "recent_activity": recent_activity,
    }


# 1️⃣2️⃣ AI tutor routes
ai_router = APIRouter(prefix="/api/ai", tags=["ai"], dependencies=[Depends(get_current_user)])


@ai_router.get("/status")
def ai_status():
    return tutor_service.status()


@ai_router.post("/generate-explanation")
def generate_explanation(req: ExplanationRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    topic = req.topic
    style = req.learning_style or user.learning_style or "visual"
    cache_key = f"explanation:{topic}:{req.difficulty}:{style}"
    cached = cache.get(cache_key)
    if cached:
        return {**cached, "from_cache": True}

    result = tutor_service.generate_explanation(topic, req.difficulty, style)
    cache.set(cache_key, result, ttl=EXPLANATION_CACHE_TTL)

    xp_before = persistence.get_progress(db, user.id).xp or 0
    progress = persistence.record_explanation(db, user.id, topic)
    return {**result, "from_cache": False, "xp_earned": (progress.xp or 0) - xp_before}


@ai_router.post("/generate-questions")
def generate_questions(req: QuestionsRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    topic = req.topic
    cache_key = f"questions:{topic}:{req.count}:{req.difficulty}"
    cached = cache.get(cache_key)
    if cached:
        return {**cached, "from_cache": True}

    result = tutor_service.generate_practice_questions(topic, req.count, req.difficulty)
    cache.set(cache_key, result, ttl=QUESTIONS_CACHE_TTL)
    persistence.record_practice(db, user.id, topic)
    return {**result, "from_cache": False}


@ai_router.post("/generate-learning-path")
def generate_learning_path(req: LearningPathRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    subject = req.subject
    cache_key = f"learningpath:{user.id}:{subject}:{req.current_level}"
    cached = cache.get(cache_key)
    if cached:
        return {**cached, "from_cache": True}

    result = tutor_service.generate_learning_path(subject, req.current_level, req.goals, req.timeframe)
    cache.set(cache_key, result, ttl=LEARNING_PATH_CACHE_TTL)
    persistence.record_learning_path(db, user.id, subject)
    return {**result, "from_cache": False}


def quiz_feedback_message(result: gamification.QuizResult) -> str:
    if result.score == 100:
        return "Perfect score! Outstanding work!"
    if result.passed:
        return "Great job! You passed the quiz."
    return "Keep practicing! Review the explanations and try again."


@ai_router.post("/submit-quiz")
def submit_quiz(req: QuizSubmission, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        result = gamification.score_quiz(req.questions, req.answers)
    except ValueError:
        raise HTTPException(status_code=400, detail="Quiz must contain at least one question")

    progress, new = persistence.record_quiz(db, user.id, req.topic, result)
    return {
        "score": round(result.score, 2),
        "correct": result.correct,
        "total": result.total,
        "passed": result.passed,
        "results": result.results,
        "feedback": {
            "message": quiz_feedback_message(result),
            "xp_earned": result.xp_earned,
            "new_achievements": achievements_to_dicts(new),
            "current_streak": progress.learning_streak,
        },
    }


@ai_router.post("/chat")
def chat(req: ChatRequest, user: User = Depends(get_current_user)):
    reply = tutor_service.chat(req.message, user.learning_style or "visual", req.context)
    timestamp = datetime.now(UTC).isoformat()
    return {
        "response": reply,
        "timestamp": timestamp,
        "context": req.context + [
            {"role": "user", "message": req.message, "timestamp": timestamp},
            {"role": "assistant", "message": reply, "timestamp": timestamp},
        ],
    }


# 1️⃣3️⃣ Gamification routes
gamification_router = APIRouter(prefix="/api/gamification", tags=["gamification"], dependencies=[Depends(get_current_user)])


@gamification_router.get("/achievements")
def list_achievements(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    earned_rows = persistence.list_achievements(db, user.id)
    earned_ids = {row.achievement_id for row in earned_rows}
    available = [a for a_id, a in gamification.ACHIEVEMENTS.items() if a_id not in earned_ids]
    return {
        "earned": [gamification.achievement_details(row.achievement_id, row.earned_at) for row in earned_rows],
        "available": available[:10],
        "total_earned": len(earned_rows),
        "total_available": len(gamification.ACHIEVEMENTS),
    }


@gamification_router.get("/leaderboard")
def leaderboard(
    timeframe: Literal["all", "week", "month"] = "all",
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    since = None
    if timeframe in LEADERBOARD_WINDOWS:
        since = persistence.now() - timedelta(days=LEADERBOARD_WINDOWS[timeframe])
    ranking = gamification.rank_leaderboard(persistence.leaderboard_rows(db, since), user.id, limit)
    return {**ranking, "timeframe": timeframe}


@gamification_router.get("/progress")
def gamification_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    progress = persistence.get_progress(db, user.id)
    new = persistence.evaluate_achievements(db, progress)
    db.commit()

    quizzes = progress.quiz_history or []
    stats = persistence.learning_stats(db, user.id)
    recent = persistence.list_achievements(db, user.id, limit=3)
    return {
        **gamification.level_progress(progress.xp or 0),
        "courses_completed": stats["completed_courses"],
        "courses_enrolled": stats["total_enrollments"],
        "lessons_completed": stats["total_lessons_completed"],
        "achievements_unlocked": len(persistence.earned_achievement_ids(db, user.id)),
        "learning_streak": progress.learning_streak or 0,
        "best_streak": max(progress.learning_streak or 0, progress.best_streak or 0),
        "topics_explored": len(progress.topics_explored or []),
        "explanations_generated": progress.explanations_generated or 0,
        "quizzes_completed": len(quizzes),
        "average_quiz_score": round(sum(q["score"] for q in quizzes) / len(quizzes)) if quizzes else 0,
        "last_active": _iso(progress.last_activity_at),
        "recent_achievements": [gamification.achievement_details(a.achievement_id, a.earned_at) for a in recent],
        "recent_quizzes": quizzes[-5:],
        "new_achievements": achievements_to_dicts(new),
    }


@gamification_router.post("/award-xp")
def award_xp(req: AwardXpRequest, user: User = Depends(require_roles("TEACHER", "ADMIN")), db: Session = Depends(get_db)):
    target_id = req.user_id or user.id
    if persistence.get_user(db, target_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    old_level = gamification.calculate_level(persistence.get_progress(db, target_id).xp or 0)
    progress = persistence.award_xp(db, target_id, req.amount, req.reason)
    db.commit()
    new_level = gamification.calculate_level(progress.xp)
    logger.info("%s awarded %d XP to %s (%s)", user.username, req.amount, target_id, req.reason)
    return {
        "user_id": target_id,
        "xp_awarded": req.amount,
        "new_xp": progress.xp,
        "new_level": new_level,
        "leveled_up": new_level > old_level,
    }


@gamification_router.get("/challenges")
def challenges(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    now = persistence.now()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    progress = persistence.get_progress(db, user.id)
    return gamification.build_challenges(
        quiz_history=progress.quiz_history or [],
        explanations_today=persistence.count_xp_events(db, user.id, "explanation", start_of_day),
        streak=progress.learning_streak or 0,
        enrollments_this_week=persistence.count_enrollments_since(db, user.id, now - timedelta(days=7)),
        now=now,
    )


# 1️⃣4️⃣ User routes
user_router = APIRouter(prefix="/api/user", tags=["user"], dependencies=[Depends(get_current_user)])

MOOD_RECOMMENDATIONS = {
    "stressed": "Consider taking a 5-minute break before studying. Try some deep breathing exercises.",
    "overwhelmed": "Consider taking a 5-minute break before studying. Try some deep breathing exercises.",
    "okay": "You might benefit from starting with an easier topic to build confidence.",
    "good": "Great mindset for learning! This is a perfect time to tackle challenging topics.",
    "great": "Great mindset for learning! This is a perfect time to tackle challenging topics.",
}


@user_router.get("/profile")
def get_user_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    progress = persistence.get_progress(db, user.id)
    stats = persistence.learning_stats(db, user.id)
    return {
        "user": {
            **user_to_dict(user),
            **gamification.level_progress(progress.xp or 0),
            "achievements_count": len(persistence.earned_achievement_ids(db, user.id)),
            "courses_completed": stats["completed_courses"],
            "learning_streak": progress.learning_streak or 0,
            "best_streak": progress.best_streak or 0,
            "preferences": persistence.preferences(progress, user),
            "joined_at": _iso(user.created_at),
        }
    }


@user_router.put("/preferences")
def update_preferences(req: PreferencesUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    preferences = persistence.update_preferences(db, user, req.model_dump(exclude_none=True))
    return {"message": "Preferences updated successfully", "preferences": preferences}


def _time_of_day(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"


def _trend(scores: List[float]) -> str:
    if len(scores) < 2:
        return "stable"
    half = len(scores) // 2
    earlier = sum(scores[:half]) / half
    later = sum(scores[half:]) / (len(scores) - half)
    if later > earlier:
        return "improving"
    if later < earlier:
        return "declining"
    return "stable"


@user_router.get("/analytics")
def analytics(
    timeframe: Literal["7days", "30days", "90days"] = "30days",
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    days = ANALYTICS_WINDOWS[timeframe]
    now = persistence.now()
    first_day = now.date() - timedelta(days=days - 1)
    since = datetime.combine(first_day, datetime.min.time(), tzinfo=UTC)

    progress = persistence.get_progress(db, user.id)
    events = persistence.xp_events_since(db, user.id, since)
    quizzes = [q for q in (progress.quiz_history or []) if q.get("completed_at", "")[:10] >= first_day.isoformat()]

    daily_activity = []
    for offset in range(days):
        day = (first_day + timedelta(days=offset)).isoformat()
        day_quizzes = [q for q in quizzes if q["completed_at"][:10] == day]
        daily_activity.append({
            "date": day,
            "xp_earned": sum(e.amount for e in events if e.created_at.date().isoformat() == day),
            "quizzes_completed": len(day_quizzes),
            "topics_studied": len({q["topic"] for q in day_quizzes}),
        })

    topic_scores: Dict[str, List[float]] = {}
    for quiz in quizzes:
        topic_scores.setdefault(quiz["topic"], []).append(quiz["score"])
    topic_averages = {topic: sum(s) / len(s) for topic, s in topic_scores.items()}
    ranked_topics = sorted(topic_averages, key=lambda t: -topic_averages[t])

    hours = [e.created_at.hour for e in events]
    scores = [q["score"] for q in quizzes]
    return {
        "timeframe": timeframe,
        "summary": {
            "total_xp": progress.xp or 0,
            "xp_gained": sum(e.amount for e in events),
            "quizzes_completed": len(quizzes),
            "active_days": sum(1 for d in daily_activity if d["xp_earned"] or d["quizzes_completed"]),
            "current_streak": progress.learning_streak or 0,
        },
        "daily_activity": daily_activity,
        "performance_metrics": {
            "average_quiz_score": round(sum(scores) / len(scores)) if scores else 0,
            "total_quizzes": len(scores),
            "perfect_scores": sum(1 for s in scores if s == 100),
            "improvement_trend": _trend(scores),
            "strongest_topics": ranked_topics[:3],
            "areas_for_improvement": [t for t in ranked_topics if topic_averages[t] < gamification.PASSING_SCORE],
        },
        "learning_patterns": {
            "preferred_learning_time": _time_of_day(max(set(hours), key=hours.count)) if hours else None,
            "consistency": progress.learning_streak or 0,
            "learning_style": user.learning_style,
        },
    }


@user_router.post("/goals", status_code=status.HTTP_201_CREATED)
def create_goal(req: GoalCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    goal = persistence.add_goal(db, user.id, req.model_dump(mode="json"))
    return {"message": "Goal created successfully", "goal": goal}


def goal_current_value(goal_type: str, progress, completed_courses: int) -> int:
    if goal_type == "xp":
        return progress.xp or 0
    if goal_type == "courses":
        return completed_courses
    if goal_type == "streak":
        return progress.learning_streak or 0
    recent = (progress.quiz_history or [])[-10:]
    return round(sum(q["score"] for q in recent) / len(recent)) if recent else 0


@user_router.get("/goals")
def list_goals(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    progress = persistence.get_progress(db, user.id)
    completed_courses = persistence.learning_stats(db, user.id)["completed_courses"]
    today = persistence.now().date()

    goals = []
    for goal in progress.goals or []:
        current = goal_current_value(goal["type"], progress, completed_courses)
        if current >= goal["target"]:
            goal_status = "completed"
        elif today > date.fromisoformat(goal["deadline"]):
            goal_status = "expired"
        else:
            goal_status = "active"
        goals.append({
            **goal,
            "current": current,
            "progress": round(min(1, current / goal["target"]) * 100),
            "status": goal_status,
        })

    return {
        "goals": goals,
        "summary": {s: sum(1 for g in goals if g["status"] == s) for s in ("active", "completed", "expired")},
    }


@user_router.post("/mood")
def log_mood(req: MoodEntry, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entry = persistence.add_mood_entry(db, user.id, req.model_dump())
    return {
        "message": "Mood logged successfully",
        "recommendation": MOOD_RECOMMENDATIONS[req.mood],
        "entry": entry,
    }


@user_router.get("/wellness")
def wellness(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    entries = persistence.get_progress(db, user.id).mood_entries or []
    if not entries:
        return {
            "insights": [],
            "trends": {},
            "recommendations": ["Start tracking your mood to get personalized wellness insights"],
        }

    recent = entries[-7:]
    counts: Dict[str, int] = {}
    for entry in recent:
        counts[entry["mood"]] = counts.get(entry["mood"], 0) + 1
    dominant = max(counts, key=counts.get)

    recommendations = []
    if counts.get("stressed") or counts.get("overwhelmed"):
        recommendations.append("Consider scheduling regular breaks during study sessions")
        recommendations.append("Try meditation or mindfulness exercises before studying")
    if dominant in ("great", "good"):
        recommendations.append("Your positive mood is great for learning! Keep up the good habits")

    return {
        "insights": [{
            "type": "mood_trend",
            "title": f"Your most common mood this week: {dominant}",
            "description": f"You've felt {dominant} in {round(counts[dominant] / len(recent) * 100)}% of your recent sessions.",
        }],
        "trends": {
            "dominant_mood": dominant,
            "mood_distribution": counts,
            "total_entries": len(entries),
        },
        "recommendations": recommendations,
        "recent_entries": recent[-3:],
    }


# 1️⃣5️⃣ Root and health
@app.get("/")
def root():
    return {
        "message": f"Welcome to {SERVICE_NAME}",
        "version": SERVICE_VERSION,
        "docs": "/docs",
        "endpoints": {
            "auth": "/api/auth",
            "learning": "/api/learning",
            "ai": "/api/ai",
            "gamification": "/api/gamification",
            "user": "/api/user",
            "health": "/api/health",
        },
    }


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        database = "unavailable"
    return {
        "status": "ok" if database == "connected" else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "database": database,
        "cache": cache.backend_name,
    }


app.include_router(auth_router)
app.include_router(learning_router)
app.include_router(ai_router)
app.include_router(gamification_router)
app.include_router(user_router)
