import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from pearlconnect.core.db import get_session
from pearlconnect.core.security import get_principal, Principal
from pearlconnect.modules.bookings.schemas import BookingCreate, BookingPatch, BookingOut, BookingDeleted
from pearlconnect.modules.bookings.service import BookingService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> BookingService:
    return BookingService(session)

@router.post("/bookings", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(svc),
):
    """
    Book a slot. The slot is re-validated against the provider's schedule and
    live bookings; a lost race for the same slot is reported as 409.
    """
    return await service.create_booking(principal, payload)

@router.get("/bookings", response_model=list[BookingOut])
async def list_bookings(
    status: str | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(svc),
):
    return await service.list_bookings(principal, status=status)

@router.get("/bookings/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(svc),
):
    return await service.get_booking(principal, booking_id)

@router.patch("/bookings/{booking_id}", response_model=BookingOut)
async def patch_booking(
    booking_id: uuid.UUID,
    payload: BookingPatch,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(svc),
):
    return await service.patch_booking(principal, booking_id, payload)

@router.delete("/bookings/{booking_id}", response_model=BookingDeleted)
async def delete_booking(
    booking_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(svc),
):
    return await service.delete_booking(principal, booking_id)
