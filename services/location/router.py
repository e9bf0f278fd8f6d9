"""
services/location/router.py
Current-location endpoints backed by the location permission record.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.permission import service as permission_service
from shared.middleware.auth import get_current_user
from shared.models.models import User
from shared.schemas.schemas import LastKnownLocation, LocationUpdateRequest

router = APIRouter(prefix="/api/location", tags=["Location"])


@router.get("/current", response_model=LastKnownLocation)
async def get_current_location(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """403 while location permission is off, 404 until a position has been stored."""
    record = await permission_service.get_current_location(db, current_user.id)
    return LastKnownLocation(**permission_service.last_known_location(record))


@router.post("/update", response_model=LastKnownLocation)
async def update_location(
    payload: LocationUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    record = await permission_service.update_current_location(db, current_user.id, payload)
    return LastKnownLocation(**permission_service.last_known_location(record))
