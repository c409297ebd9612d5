"""Counselor roster seeding."""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Counselor

logger = logging.getLogger(__name__)

COUNSELORS = [
    {
        "name": "Dr. Sarah Johnson",
        "title": "Licensed Clinical Psychologist",
        "specialty": "Anxiety & Stress Management",
        "bio": "Specializing in cognitive behavioral therapy with over 15 years of experience helping clients manage anxiety and stress.",
        "avatar_color": "#4A90E2",
    },
    {
        "name": "Michael Chen",
        "title": "Career Counselor",
        "specialty": "Career Development & Planning",
        "bio": "Dedicated to helping professionals navigate career transitions and achieve their professional goals.",
        "avatar_color": "#7B68EE",
    },
    {
        "name": "Dr. Emily Rodriguez",
        "title": "Family Therapist",
        "specialty": "Family & Relationship Counseling",
        "bio": "Experienced in family systems therapy and relationship counseling with a focus on communication and conflict resolution.",
        "avatar_color": "#50C878",
    },
    {
        "name": "James Patterson",
        "title": "Academic Counselor",
        "specialty": "Academic Success & Study Skills",
        "bio": "Helping students develop effective study strategies and overcome academic challenges for over 10 years.",
        "avatar_color": "#FF6B6B",
    },
    {
        "name": "Dr. Lisa Anderson",
        "title": "Mental Health Counselor",
        "specialty": "Depression & Life Transitions",
        "bio": "Compassionate support for individuals dealing with depression, grief, and major life changes.",
        "avatar_color": "#FFA500",
    },
    {
        "name": "Robert Kim",
        "title": "Substance Abuse Counselor",
        "specialty": "Addiction & Recovery",
        "bio": "Certified addiction counselor specializing in evidence-based treatment for substance use disorders.",
        "avatar_color": "#9370DB",
    },
]


def seed_counselors(db: Session) -> int:
    """Inserts the roster if the table is empty. Returns the number of rows inserted."""
    existing = db.query(func.count(Counselor.id)).scalar()
    if existing:
        return 0

    try:
        db.add_all([Counselor(**data) for data in COUNSELORS])
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Seeded counselors table with sample data")
    return len(COUNSELORS)
