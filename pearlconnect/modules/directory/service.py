import uuid
import logging
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from pearlconnect.core.errors import Conflict, InvalidInput, NotFound
from pearlconnect.modules.directory.repository import DirectoryRepository
from pearlconnect.modules.directory.schemas import UserCreate, ServiceCreate

logger = logging.getLogger(__name__)

class DirectoryService:
    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = DirectoryRepository(s)

    async def add_user(self, p: UserCreate):
        try:
            obj = await self.repo.add_user(**p.model_dump(exclude_unset=True))
            await self.s.commit()
        except IntegrityError as e:
            await self.s.rollback()
            logger.info(f"User {p.username!r} rejected by storage constraint: {e.orig}")
            raise Conflict("Username already exists")
        return obj
    async def get_user(self, user_id: uuid.UUID):
        obj = await self.repo.get_user(user_id)
        if not obj:
            raise NotFound("User not found")
        return obj
    async def list_users(self, role: str | None = None):
        return await self.repo.list_users(role)

    async def add_service(self, p: ServiceCreate):
        provider = await self.repo.get_user(p.provider_id)
        if not provider:
            raise NotFound("Provider not found")
        if provider.role != "provider":
            raise InvalidInput("Services can only be offered by providers")
        obj = await self.repo.add_service(**p.model_dump()); await self.s.commit(); return obj
    async def get_service(self, service_id: uuid.UUID):
        obj = await self.repo.get_service(service_id)
        if not obj:
            raise NotFound("Service not found")
        return obj
    async def list_services(self, provider_id: uuid.UUID | None = None):
        return await self.repo.list_services(provider_id)
