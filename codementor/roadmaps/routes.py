"""Learning roadmap API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from codementor.auth.dependencies import get_current_user
from codementor.auth.models import User
from codementor.database_deps import get_db
from codementor.roadmaps.exceptions import (
    EnrollmentConflictError,
    RoadmapNotFoundError,
    RoadmapPermissionError,
)
from codementor.roadmaps.schemas import (
    EnrolledRoadmapResponse,
    RoadmapCreate,
    RoadmapResponse,
    RoadmapUpdate,
)
from codementor.roadmaps.service import RoadmapService

router = APIRouter(prefix="/roadmaps", tags=["Roadmaps"])


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _forbidden(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.get("", response_model=List[RoadmapResponse])
async def list_roadmaps(
    category: Optional[str] = Query(None, max_length=50),
    difficulty: Optional[str] = Query(None, max_length=20),
    db: AsyncSession = Depends(get_db),
) -> List[RoadmapResponse]:
    """List active roadmaps, newest first."""
    roadmaps = await RoadmapService(db).list_roadmaps(category=category, difficulty=difficulty)
    return [RoadmapResponse.from_roadmap(r) for r in roadmaps]


@router.get("/my-roadmaps", response_model=List[RoadmapResponse])
async def list_my_roadmaps(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[RoadmapResponse]:
    """Roadmaps written by the current user."""
    roadmaps = await RoadmapService(db).list_authored(current_user)
    return [RoadmapResponse.from_roadmap(r) for r in roadmaps]


@router.get("/enrolled", response_model=List[EnrolledRoadmapResponse])
async def list_enrolled_roadmaps(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[EnrolledRoadmapResponse]:
    """Roadmaps the current user is enrolled in."""
    enrollments = await RoadmapService(db).list_enrollments(current_user)
    return [EnrolledRoadmapResponse.from_enrollment(e) for e in enrollments]


@router.get("/{roadmap_id}", response_model=RoadmapResponse)
async def get_roadmap(roadmap_id: int, db: AsyncSession = Depends(get_db)) -> RoadmapResponse:
    try:
        roadmap = await RoadmapService(db).get_roadmap(roadmap_id)
    except RoadmapNotFoundError as e:
        raise _not_found(e)

    return RoadmapResponse.from_roadmap(roadmap)


@router.post("", response_model=RoadmapResponse, status_code=status.HTTP_201_CREATED)
async def create_roadmap(
    roadmap_data: RoadmapCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RoadmapResponse:
    roadmap = await RoadmapService(db).create_roadmap(current_user, roadmap_data)
    return RoadmapResponse.from_roadmap(roadmap)


@router.put("/{roadmap_id}", response_model=RoadmapResponse)
async def update_roadmap(
    roadmap_id: int,
    roadmap_data: RoadmapUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> RoadmapResponse:
    """Update a roadmap (author or admin)."""
    try:
        roadmap = await RoadmapService(db).update_roadmap(roadmap_id, current_user, roadmap_data)
    except RoadmapNotFoundError as e:
        raise _not_found(e)
    except RoadmapPermissionError as e:
        raise _forbidden(e)

    return RoadmapResponse.from_roadmap(roadmap)


@router.delete("/{roadmap_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_roadmap(
    roadmap_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a roadmap (author or admin)."""
    try:
        await RoadmapService(db).delete_roadmap(roadmap_id, current_user)
    except RoadmapNotFoundError as e:
        raise _not_found(e)
    except RoadmapPermissionError as e:
        raise _forbidden(e)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{roadmap_id}/enroll", status_code=status.HTTP_201_CREATED)
async def enroll_in_roadmap(
    roadmap_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Enroll the current user. Enrolling twice is a conflict."""
    try:
        await RoadmapService(db).enroll(roadmap_id, current_user)
    except RoadmapNotFoundError as e:
        raise _not_found(e)
    except EnrollmentConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return {"success": True, "message": "Enrolled in roadmap"}
