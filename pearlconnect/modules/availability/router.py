import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from pearlconnect.core.db import get_session
from pearlconnect.core.security import get_principal, Principal
from pearlconnect.modules.availability.service import AvailabilityService
from pearlconnect.modules.availability.schemas import ScheduleSet, SchedulePatch, ScheduleOut, ScheduleDeleted, SlotsOut

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(s)

@router.get("/availability/provider/{provider_id}", response_model=ScheduleOut)
async def get_schedule(provider_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.get_schedule(principal, provider_id)

# Create or replace (upsert)
@router.post("/availability/provider/{provider_id}", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
async def set_schedule(provider_id: uuid.UUID, payload: ScheduleSet, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.set_schedule(principal, provider_id, payload)

@router.patch("/availability/provider/{provider_id}", response_model=ScheduleOut)
async def patch_schedule(provider_id: uuid.UUID, payload: SchedulePatch, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.patch_schedule(principal, provider_id, payload)

@router.delete("/availability/provider/{provider_id}", response_model=ScheduleDeleted)
async def delete_schedule(provider_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.delete_schedule(principal, provider_id)

# Slot search for one date (YYYY-MM-DD); parsed by the service so a bad date is a 400, not a 422
@router.get("/availability/provider/{provider_id}/slots", response_model=SlotsOut)
async def get_slots(provider_id: uuid.UUID, date: str | None = Query(default=None), principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.get_slots(principal, provider_id, date)
