"""Demo users and courses for local development (``SEED_DEMO_DATA=true``)."""

import logging

from sqlalchemy.orm import Session

from backend.auth import hash_password
from backend.persistence import PersistenceLayer

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

DEMO_USERS = [
    {"email": "admin@edumind.ai", "username": "admin", "first_name": "Ada", "last_name": "Admin", "role": "ADMIN"},
    {"email": "teacher@edumind.ai", "username": "teacher", "first_name": "Tariq", "last_name": "Teacher", "role": "TEACHER"},
    {"email": "student@edumind.ai", "username": "student", "first_name": "Sam", "last_name": "Student", "role": "STUDENT"},
]

DEMO_COURSES = [
    {
        "course": {
            "title": "Introduction to Algebra",
            "description": "Variables, expressions and linear equations from the ground up.",
            "category": "Mathematics",
            "level": "beginner",
            "tags": ["algebra", "math", "equations"],
            "estimated_hours": 6,
            "is_published": True,
        },
        "lessons": [
            {"title": "What is a variable?", "content": "A variable is a symbol that stands for a number.", "duration": 15},
            {"title": "Simplifying expressions", "content": "Combine like terms to simplify.", "duration": 20},
            {"title": "Solving linear equations", "content": "Do the same thing to both sides.", "duration": 25, "type": "INTERACTIVE"},
        ],
    },
    {
        "course": {
            "title": "Biology Basics: Photosynthesis",
            "description": "How plants turn light, water and carbon dioxide into food.",
            "category": "Science",
            "level": "beginner",
            "tags": ["biology", "photosynthesis", "plants"],
            "estimated_hours": 3,
            "is_published": True,
        },
        "lessons": [
            {"title": "Chloroplasts and chlorophyll", "content": "Where photosynthesis happens.", "duration": 15},
            {"title": "The light reactions", "content": "Capturing energy from sunlight.", "duration": 20, "type": "VIDEO"},
        ],
    },
]


def seed_demo_data(db_session: Session, store: PersistenceLayer) -> bool:
    """Create the demo accounts and courses unless they already exist."""
    if store.get_user_by_email(db_session, DEMO_USERS[0]["email"]):
        logger.info("Demo data already present, skipping seed")
        return False

    users = {}
    for data in DEMO_USERS:
        users[data["role"]] = store.create_user(
            db_session,
            password_hash=hash_password(DEMO_PASSWORD),
            **data,
        )

    for entry in DEMO_COURSES:
        store.create_course(db_session, users["TEACHER"], entry["course"], entry["lessons"])

    logger.info("Seeded %d demo users and %d courses", len(DEMO_USERS), len(DEMO_COURSES))
    return True
