"""
services/booking/router.py
Travel booking endpoints: create, list, view, update, confirm (payment), cancel.
"""

import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.booking import service
from shared.middleware.auth import RequestContext, get_current_user, get_request_context
from shared.models.models import User
from shared.schemas.schemas import (
    BookingCancelRequest,
    BookingConfirmRequest,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingUpdateRequest,
    PaginationMeta,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

BookingTypeParam = Literal["flight", "hotel", "train", "car-rental", "tour-package", "cruise"]
BookingStatusParam = Literal["pending", "confirmed", "cancelled", "completed", "refunded"]


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate = Body(...),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """
    `booking_details` must match `type`. Any `total_price` sent by the client
    is ignored: total = base_price + taxes + fees - discount.
    """
    booking = await service.create_booking(db, ctx.user, payload)
    logger.info(f"[{ctx.request_id}] Booking {booking.booking_reference} created")
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse)
async def list_my_bookings(
    type: Optional[BookingTypeParam] = Query(None),
    status_filter: Optional[BookingStatusParam] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await service.list_bookings(
        db, user_id=current_user.id, type=type, status=status_filter, page=page, limit=limit
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in items],
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.get("/reference/{reference}", response_model=BookingResponse)
async def get_booking_by_reference(
    reference: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_by_reference(db, current_user, reference)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.get_booking_for_user(db, current_user, booking_id)
    return BookingResponse.model_validate(booking)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: UUID,
    payload: BookingUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await service.update_booking(db, current_user, booking_id, payload)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: UUID,
    payload: BookingConfirmRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Records payment details and moves pending → confirmed."""
    booking = await service.confirm_booking(
        db, ctx.user, booking_id, payload.payment_method, payload.transaction_id
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    payload: Optional[BookingCancelRequest] = Body(None),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    reason = payload.reason if payload else None
    booking = await service.cancel_booking(db, ctx.user, booking_id, reason)
    logger.info(f"[{ctx.request_id}] Booking {booking.booking_reference} cancelled")
    return BookingResponse.model_validate(booking)
