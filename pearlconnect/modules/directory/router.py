import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pearlconnect.core.db import get_session
from pearlconnect.core.security import get_principal, require_roles
from pearlconnect.modules.directory.service import DirectoryService
from pearlconnect.modules.directory.schemas import UserCreate, UserOut, ServiceCreate, ServiceOut

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> DirectoryService: return DirectoryService(s)

@router.post("/directory/users", response_model=UserOut, status_code=201, dependencies=[Depends(require_roles("admin"))])
async def create_user(payload: UserCreate, service: DirectoryService = Depends(svc)):
    return await service.add_user(payload)

@router.get("/directory/users", response_model=list[UserOut], dependencies=[Depends(get_principal)])
async def list_users(role: str | None = Query(default=None, pattern="^(customer|provider|admin)$"), service: DirectoryService = Depends(svc)):
    return await service.list_users(role)

@router.get("/directory/users/{user_id}", response_model=UserOut, dependencies=[Depends(get_principal)])
async def get_user(user_id: uuid.UUID, service: DirectoryService = Depends(svc)):
    return await service.get_user(user_id)

@router.post("/directory/services", response_model=ServiceOut, status_code=201, dependencies=[Depends(require_roles("admin"))])
async def create_service(payload: ServiceCreate, service: DirectoryService = Depends(svc)):
    return await service.add_service(payload)

@router.get("/directory/services", response_model=list[ServiceOut], dependencies=[Depends(get_principal)])
async def list_services(provider_id: uuid.UUID | None = None, service: DirectoryService = Depends(svc)):
    return await service.list_services(provider_id)

@router.get("/directory/services/{service_id}", response_model=ServiceOut, dependencies=[Depends(get_principal)])
async def get_service(service_id: uuid.UUID, service: DirectoryService = Depends(svc)):
    return await service.get_service(service_id)
