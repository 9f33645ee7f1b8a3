"""Roadmap Pydantic schemas for API validation."""

import json
from datetime import datetime
from typing import List, Literal, Optional

import structlog
from pydantic import Field

from codementor.auth.schemas import CamelModel

logger = structlog.get_logger()

Difficulty = Literal["beginner", "intermediate", "advanced"]
Status = Literal["active", "draft", "archived"]


def _json_list(raw: Optional[str], roadmap_id: int, field: str) -> List[str]:
    if not raw:
        return []
    try:
        values = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored roadmap list is not valid JSON", roadmap_id=roadmap_id, field=field)
        return []
    return [str(value) for value in values] if isinstance(values, list) else []


class RoadmapCreate(CamelModel):
    """Schema for creating a roadmap."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=50)
    difficulty: Difficulty
    estimated_duration: str = Field(..., min_length=1, max_length=50)
    topics: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)


class RoadmapUpdate(CamelModel):
    """Partial roadmap update; omitted fields keep their value."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    difficulty: Optional[Difficulty] = None
    estimated_duration: Optional[str] = Field(None, min_length=1, max_length=50)
    status: Optional[Status] = None
    topics: Optional[List[str]] = None
    goals: Optional[List[str]] = None


class RoadmapResponse(CamelModel):
    id: int
    title: str
    description: str
    category: str
    difficulty: str
    estimated_duration: str
    topics: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    status: str
    author_id: int
    author_name: str
    enrollments: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_roadmap(cls, roadmap) -> "RoadmapResponse":
        return cls(
            id=roadmap.id,
            title=roadmap.title,
            description=roadmap.description,
            category=roadmap.category,
            difficulty=roadmap.difficulty,
            estimated_duration=roadmap.estimated_duration,
            topics=_json_list(roadmap.topics, roadmap.id, "topics"),
            goals=_json_list(roadmap.goals, roadmap.id, "goals"),
            status=roadmap.status,
            author_id=roadmap.author_id,
            author_name=roadmap.author.name if roadmap.author else "Unknown",
            enrollments=len(roadmap.enrollments),
            created_at=roadmap.created_at,
            updated_at=roadmap.updated_at,
        )


class EnrolledRoadmapResponse(CamelModel):
    """A roadmap the current user follows, with their progress."""

    id: int
    title: str
    description: str
    category: str
    difficulty: str
    estimated_duration: str
    author_name: str
    progress: int
    enrolled_at: datetime
    last_accessed_at: datetime

    @classmethod
    def from_enrollment(cls, enrollment) -> "EnrolledRoadmapResponse":
        roadmap = enrollment.roadmap
        return cls(
            id=roadmap.id,
            title=roadmap.title,
            description=roadmap.description,
            category=roadmap.category,
            difficulty=roadmap.difficulty,
            estimated_duration=roadmap.estimated_duration,
            author_name=roadmap.author.name if roadmap.author else "Unknown",
            progress=enrollment.progress,
            enrolled_at=enrollment.enrolled_at,
            last_accessed_at=enrollment.last_accessed_at,
        )
